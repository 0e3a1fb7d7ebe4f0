"""
marginalia.api.routes.users — Profile, follow & search endpoints
=================================================================

Reader endpoints (bearer token):
    GET   /users/search?q=        — Find readers by name or email
    GET   /users/{id}             — Profile
    PATCH /users/{id}             — Edit my profile
    POST  /follows                — Toggle follow
    GET   /follows/{following_id} — Am I following them?
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from marginalia.api.deps import CurrentUser, get_config, get_current_user, get_session
from marginalia.services import user_service
from marginalia.services.serializers import user_profile

router = APIRouter(tags=["users"])


class UserUpdate(BaseModel):
    name: str | None = None
    image: str | None = None


class FollowToggle(BaseModel):
    following_id: str


@router.get("/users/search")
def search_users(
    q: str = Query(""),
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    cfg = get_config()
    return user_service.search_users(session, q, user.id, limit=cfg.pagination.search)


@router.get("/users/{user_id}")
def get_user(
    user_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return user_profile(user_service.get_user(session, user_id))


@router.patch("/users/{user_id}")
def update_user(
    user_id: str,
    body: UserUpdate,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    updated = user_service.update_user(
        session, user_id, user.id, name=body.name, image=body.image
    )
    session.commit()
    return user_profile(updated)


@router.post("/follows")
def toggle_follow(
    body: FollowToggle,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    result = user_service.toggle_follow(session, user.id, body.following_id)
    session.commit()
    return result


@router.get("/follows/{following_id}")
def follow_status(
    following_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return user_service.follow_status(session, user.id, following_id)
