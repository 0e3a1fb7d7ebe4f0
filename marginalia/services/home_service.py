"""
marginalia.services.home_service — "My home" aggregation
=========================================================

Merges several independent reads into the single payload the home page
renders: who the reader follows, and what those people wrote lately.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from marginalia.constants import HOME_RECENT_STORIES
from marginalia.database.models import Story, StoryLike, UserFollow
from marginalia.services.serializers import isoformat, story_to_dict
from marginalia.services.story_service import comment_counts, like_counts


def _followed_users(session: Session, user_id: str) -> list[dict[str, Any]]:
    follows = session.scalars(
        select(UserFollow)
        .options(joinedload(UserFollow.following))
        .where(UserFollow.follower_id == user_id)
        .order_by(UserFollow.created_at.desc())
    ).all()
    if not follows:
        return []

    ids = [f.following_id for f in follows]
    latest = dict(session.execute(
        select(Story.author_id, func.max(Story.created_at))
        .where(Story.author_id.in_(ids))
        .group_by(Story.author_id)
    ).all())

    return [
        {
            "id": f.following.id,
            "name": f.following.name,
            "image": f.following.image,
            "last_active": isoformat(latest.get(f.following_id) or f.created_at),
        }
        for f in follows
    ]


def _recent_stories(
    session: Session, user_id: str, author_ids: list[str], limit: int
) -> list[dict[str, Any]]:
    if not author_ids:
        return []
    stories = session.scalars(
        select(Story)
        .options(joinedload(Story.author))
        .where(Story.author_id.in_(author_ids))
        .order_by(Story.created_at.desc())
        .limit(limit)
    ).all()

    ids = [s.id for s in stories]
    likes = like_counts(session, ids)
    comments = comment_counts(session, ids)
    liked = set(session.scalars(
        select(StoryLike.story_id).where(
            StoryLike.user_id == user_id, StoryLike.story_id.in_(ids)
        )
    ).all()) if ids else set()

    items = []
    for story in stories:
        item = story_to_dict(story)
        item["likes"] = likes.get(story.id, 0)
        item["comment_count"] = comments.get(story.id, 0)
        item["liked"] = story.id in liked
        items.append(item)
    return items


def get_home(
    session: Session, user_id: str, *, recent_limit: int = HOME_RECENT_STORIES
) -> dict[str, Any]:
    followed = _followed_users(session, user_id)
    return {
        "followed_users": followed,
        "recent_stories": _recent_stories(
            session, user_id, [u["id"] for u in followed], recent_limit
        ),
    }
