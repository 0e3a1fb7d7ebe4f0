"""
marginalia.services.story_service — Stories, likes and comments
================================================================

Stories are short reading posts.  List endpoints attach like and comment
counts with one grouped query each rather than per-story lookups.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from marginalia.constants import (
    ALLOWED_STORY_FIELDS,
    PAGE_SIZE_FEED,
    PAGE_SIZE_STORIES,
    page_offset,
)
from marginalia.database.models import Comment, Story, StoryLike
from marginalia.services.errors import ForbiddenError, InvalidInputError, NotFoundError
from marginalia.services.serializers import comment_to_dict, story_to_dict
from marginalia.services.user_service import followed_ids

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def get_story(session: Session, story_id: str) -> Story:
    story = session.scalar(
        select(Story).options(joinedload(Story.author)).where(Story.id == story_id)
    )
    if story is None:
        raise NotFoundError(f"Story not found: {story_id}")
    return story


def _grouped_counts(session: Session, column, story_ids: list[str]) -> dict[str, int]:
    if not story_ids:
        return {}
    rows = session.execute(
        select(column, func.count().label("cnt"))
        .where(column.in_(story_ids))
        .group_by(column)
    ).all()
    return {row[0]: row.cnt for row in rows}


def like_counts(session: Session, story_ids: list[str]) -> dict[str, int]:
    return _grouped_counts(session, StoryLike.story_id, story_ids)


def comment_counts(session: Session, story_ids: list[str]) -> dict[str, int]:
    return _grouped_counts(session, Comment.story_id, story_ids)


def _with_counts(session: Session, stories: list[Story]) -> list[dict[str, Any]]:
    ids = [s.id for s in stories]
    likes = like_counts(session, ids)
    comments = comment_counts(session, ids)
    items = []
    for story in stories:
        item = story_to_dict(story)
        item["likes"] = likes.get(story.id, 0)
        item["comment_count"] = comments.get(story.id, 0)
        items.append(item)
    return items


def _validate_story_fields(title, content, category) -> None:
    missing = [
        name for name, value in
        (("title", title), ("content", content), ("category", category))
        if not (value or "").strip()
    ]
    if missing:
        raise InvalidInputError("Missing required fields: " + ", ".join(missing))


# ---------------------------------------------------------------------------
# Story CRUD
# ---------------------------------------------------------------------------
def create_story(
    session: Session,
    author_id: str,
    *,
    title: str | None,
    content: str | None,
    category: str | None,
    image_urls: list[str] | None = None,
) -> Story:
    _validate_story_fields(title, content, category)
    story = Story(
        title=title.strip(),
        content=content,
        category=category.strip(),
        image_urls=list(image_urls or []),
        author_id=author_id,
    )
    session.add(story)
    session.flush()
    logger.info("Story %s created by %s", story.id, author_id)
    return story


def update_story(
    session: Session, story_id: str, actor_id: str, updates: dict[str, Any]
) -> Story:
    """Apply *updates* (title, content, category, image_urls) — author only."""
    story = get_story(session, story_id)
    if story.author_id != actor_id:
        raise ForbiddenError("You can only edit your own stories")

    merged = {
        "title": story.title,
        "content": story.content,
        "category": story.category,
        **{k: v for k, v in updates.items() if k in ALLOWED_STORY_FIELDS},
    }
    _validate_story_fields(merged["title"], merged["content"], merged["category"])

    for key, value in updates.items():
        if key not in ALLOWED_STORY_FIELDS:
            continue
        if key == "image_urls":
            value = list(value or [])
        setattr(story, key, value)
    session.flush()
    return story


def delete_story(session: Session, story_id: str, actor_id: str) -> None:
    """Delete a story with its likes and comments — author only."""
    story = get_story(session, story_id)
    if story.author_id != actor_id:
        raise ForbiddenError("You can only delete your own stories")
    session.delete(story)
    session.flush()
    logger.info("Story %s deleted by %s", story_id, actor_id)


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------
def list_stories(
    session: Session, page: int = 0, *, page_size: int = PAGE_SIZE_STORIES
) -> dict[str, Any]:
    stories = session.scalars(
        select(Story)
        .options(joinedload(Story.author))
        .order_by(Story.created_at.desc())
        .offset(page_offset(page, page_size))
        .limit(page_size)
    ).all()
    total = session.scalar(select(func.count()).select_from(Story)) or 0
    return {
        "stories": _with_counts(session, stories),
        "has_more": page_offset(page, page_size) + page_size < total,
    }


def feed(
    session: Session, viewer_id: str, page: int = 0, *, page_size: int = PAGE_SIZE_FEED
) -> dict[str, Any]:
    """Stories written by the people *viewer_id* follows."""
    authors = followed_ids(session, viewer_id)
    if not authors:
        return {"stories": [], "has_more": False}

    stories = session.scalars(
        select(Story)
        .options(joinedload(Story.author))
        .where(Story.author_id.in_(authors))
        .order_by(Story.created_at.desc())
        .offset(page_offset(page, page_size))
        .limit(page_size)
    ).all()
    total = session.scalar(
        select(func.count()).select_from(Story).where(Story.author_id.in_(authors))
    ) or 0
    return {
        "stories": _with_counts(session, stories),
        "has_more": page_offset(page, page_size) + page_size < total,
    }


def my_stories(session: Session, author_id: str) -> list[dict[str, Any]]:
    stories = session.scalars(
        select(Story)
        .options(joinedload(Story.author))
        .where(Story.author_id == author_id)
        .order_by(Story.created_at.desc())
    ).all()
    return _with_counts(session, stories)


def get_story_detail(session: Session, story_id: str) -> dict[str, Any]:
    """Story with its likes and comments (oldest first)."""
    story = get_story(session, story_id)
    likes = session.execute(
        select(StoryLike.id, StoryLike.user_id).where(StoryLike.story_id == story_id)
    ).all()
    comments = list_comments(session, story_id)

    result = story_to_dict(story)
    result["likes"] = [{"id": row.id, "user_id": row.user_id} for row in likes]
    result["comments"] = comments
    result["likes_count"] = len(likes)
    result["comments_count"] = len(comments)
    return result


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------
def _get_like(session: Session, story_id: str, user_id: str) -> StoryLike | None:
    return session.scalar(
        select(StoryLike).where(StoryLike.story_id == story_id, StoryLike.user_id == user_id)
    )


def toggle_like(session: Session, story_id: str, user_id: str) -> dict[str, Any]:
    """Like the story, or unlike it if already liked."""
    get_story(session, story_id)

    existing = _get_like(session, story_id, user_id)
    if existing is not None:
        session.delete(existing)
        session.flush()
        is_liked = False
    else:
        try:
            with session.begin_nested():
                session.add(StoryLike(story_id=story_id, user_id=user_id))
                session.flush()
        except IntegrityError:
            pass  # a concurrent toggle already liked it
        is_liked = True

    return {"is_liked": is_liked, "likes": like_counts(session, [story_id]).get(story_id, 0)}


def like_status(session: Session, story_id: str, user_id: str) -> dict[str, bool]:
    return {"liked": _get_like(session, story_id, user_id) is not None}


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
def add_comment(session: Session, story_id: str, user_id: str, content: str | None) -> Comment:
    if not (content or "").strip():
        raise InvalidInputError("Comment content is required")
    get_story(session, story_id)

    comment = Comment(content=content.strip(), story_id=story_id, user_id=user_id)
    session.add(comment)
    session.flush()
    return comment


def list_comments(session: Session, story_id: str) -> list[dict[str, Any]]:
    comments = session.scalars(
        select(Comment)
        .options(joinedload(Comment.user))
        .where(Comment.story_id == story_id)
        .order_by(Comment.created_at.asc())
    ).all()
    return [comment_to_dict(c) for c in comments]


def my_comments(session: Session, user_id: str) -> list[dict[str, Any]]:
    """The reader's comments, newest first, each with a story summary."""
    comments = session.scalars(
        select(Comment)
        .options(joinedload(Comment.story), joinedload(Comment.user))
        .where(Comment.user_id == user_id)
        .order_by(Comment.created_at.desc())
    ).all()
    items = []
    for comment in comments:
        item = comment_to_dict(comment)
        item["story"] = {
            "id": comment.story.id,
            "title": comment.story.title,
            "image_urls": list(comment.story.image_urls or []),
        }
        items.append(item)
    return items


def delete_comment(session: Session, comment_id: str, actor_id: str) -> None:
    comment = session.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError(f"Comment not found: {comment_id}")
    if comment.user_id != actor_id:
        raise ForbiddenError("You can only delete your own comments")
    session.delete(comment)
    session.flush()
