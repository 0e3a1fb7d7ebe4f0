"""
marginalia.api.routes.stories — Story, like & comment endpoints
================================================================

Public endpoints:
    GET    /stories                    — Page of stories with counts
    GET    /stories/{id}               — Story with likes and comments
    GET    /stories/{id}/comments      — Comments, oldest first

Reader endpoints (bearer token):
    POST   /stories                    — Publish a story
    GET    /stories/feed               — Stories by people I follow
    GET    /stories/me                 — My stories
    PATCH  /stories/{id}               — Edit my story
    DELETE /stories/{id}               — Delete my story
    POST   /stories/{id}/like          — Toggle like
    GET    /stories/{id}/like          — Do I like it?
    POST   /stories/{id}/comments      — Comment
    GET    /comments/me                — My comments
    DELETE /comments/{comment_id}      — Delete my comment
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from marginalia.api.deps import CurrentUser, get_config, get_current_user, get_session
from marginalia.services import story_service
from marginalia.services.serializers import comment_to_dict, story_to_dict

router = APIRouter(tags=["stories"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class StoryCreate(BaseModel):
    title: str | None = None
    content: str | None = None
    category: str | None = None
    image_urls: list[str] = Field(default_factory=list)


class StoryUpdate(BaseModel):
    title: str | None = None
    content: str | None = None
    category: str | None = None
    image_urls: list[str] | None = None


class CommentCreate(BaseModel):
    content: str | None = None


# ---------------------------------------------------------------------------
# Stories
# ---------------------------------------------------------------------------
@router.get("/stories")
def list_stories(page: int = Query(0), session: Session = Depends(get_session)):
    cfg = get_config()
    return story_service.list_stories(session, page, page_size=cfg.pagination.stories)


@router.post("/stories")
def create_story(
    body: StoryCreate,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    story = story_service.create_story(session, user.id, **body.model_dump())
    session.commit()
    return story_to_dict(story)


@router.get("/stories/feed")
def feed(
    page: int = Query(0),
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Newest stories from the readers I follow."""
    cfg = get_config()
    return story_service.feed(session, user.id, page, page_size=cfg.pagination.feed)


@router.get("/stories/me")
def my_stories(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return {"stories": story_service.my_stories(session, user.id)}


@router.get("/stories/{story_id}")
def get_story(story_id: str, session: Session = Depends(get_session)):
    return story_service.get_story_detail(session, story_id)


@router.patch("/stories/{story_id}")
def update_story(
    story_id: str,
    body: StoryUpdate,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    story = story_service.update_story(
        session, story_id, user.id, body.model_dump(exclude_unset=True)
    )
    session.commit()
    return story_to_dict(story)


@router.delete("/stories/{story_id}")
def delete_story(
    story_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    story_service.delete_story(session, story_id, user.id)
    session.commit()
    return {"success": True}


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------
@router.post("/stories/{story_id}/like")
def toggle_like(
    story_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    result = story_service.toggle_like(session, story_id, user.id)
    session.commit()
    return result


@router.get("/stories/{story_id}/like")
def like_status(
    story_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return story_service.like_status(session, story_id, user.id)


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------
@router.get("/stories/{story_id}/comments")
def list_comments(story_id: str, session: Session = Depends(get_session)):
    story_service.get_story(session, story_id)
    return {"comments": story_service.list_comments(session, story_id)}


@router.post("/stories/{story_id}/comments")
def add_comment(
    story_id: str,
    body: CommentCreate,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    comment = story_service.add_comment(session, story_id, user.id, body.content)
    session.commit()
    return comment_to_dict(comment)


@router.get("/comments/me")
def my_comments(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return {"comments": story_service.my_comments(session, user.id)}


@router.delete("/comments/{comment_id}")
def delete_comment(
    comment_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    story_service.delete_comment(session, comment_id, user.id)
    session.commit()
    return {"success": True}
