"""
marginalia.services.user_service — Profiles, follows and search
================================================================

Users are owned by the external identity provider; this module mirrors
them from token claims and manages the follow graph.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marginalia.constants import PAGE_SIZE_SEARCH
from marginalia.database.models import User, UserFollow
from marginalia.services.errors import ForbiddenError, InvalidInputError, NotFoundError
from marginalia.services.serializers import user_profile

logger = logging.getLogger(__name__)


def get_or_create_user(
    session: Session,
    user_id: str,
    name: str | None = None,
    *,
    email: str | None = None,
    image: str | None = None,
) -> User:
    """Fetch or insert a User row, refreshing profile fields from claims."""
    user = session.get(User, user_id)
    if user is None:
        try:
            with session.begin_nested():
                user = User(id=user_id, name=name or "Reader", email=email, image=image)
                session.add(user)
                session.flush()
        except IntegrityError:
            # A concurrent first request registered the same subject.
            user = session.get(User, user_id)
        else:
            logger.info("User %s registered", user_id)
            return user

    if name:
        user.name = name
    if email:
        user.email = email
    if image:
        user.image = image
    return user


def get_user(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User not found: {user_id}")
    return user


def update_user(
    session: Session,
    user_id: str,
    actor_id: str,
    *,
    name: str | None,
    image: str | None = None,
) -> User:
    """Update a profile.  Readers may only edit themselves."""
    if user_id != actor_id:
        raise ForbiddenError("You can only edit your own profile")
    if not (name or "").strip():
        raise InvalidInputError("Name is required")

    user = get_user(session, user_id)
    user.name = name.strip()
    if image:
        user.image = image
    session.flush()
    return user


# ---------------------------------------------------------------------------
# Follows
# ---------------------------------------------------------------------------
def _get_follow(session: Session, follower_id: str, following_id: str) -> UserFollow | None:
    return session.scalar(
        select(UserFollow).where(
            UserFollow.follower_id == follower_id,
            UserFollow.following_id == following_id,
        )
    )


def toggle_follow(session: Session, follower_id: str, following_id: str) -> dict[str, bool]:
    """Follow *following_id*, or unfollow if already following."""
    if not following_id:
        raise InvalidInputError("following_id is required")
    if follower_id == following_id:
        raise InvalidInputError("You cannot follow yourself")
    get_user(session, following_id)

    existing = _get_follow(session, follower_id, following_id)
    if existing is not None:
        session.delete(existing)
        session.flush()
        return {"is_following": False}

    try:
        with session.begin_nested():
            session.add(UserFollow(follower_id=follower_id, following_id=following_id))
            session.flush()
    except IntegrityError:
        pass  # a concurrent toggle already created the edge
    return {"is_following": True}


def follow_status(session: Session, follower_id: str, following_id: str) -> dict[str, bool]:
    if not following_id:
        raise InvalidInputError("following_id is required")
    return {"is_following": _get_follow(session, follower_id, following_id) is not None}


def followed_ids(session: Session, follower_id: str) -> list[str]:
    return list(session.scalars(
        select(UserFollow.following_id).where(UserFollow.follower_id == follower_id)
    ).all())


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------
def search_users(
    session: Session,
    query: str | None,
    viewer_id: str,
    *,
    limit: int = PAGE_SIZE_SEARCH,
) -> dict[str, Any]:
    """Case-insensitive substring match on name or email, excluding the viewer."""
    query = (query or "").strip()
    if not query:
        raise InvalidInputError("Search query is required")

    # Wildcards in the query match literally.
    escaped = query.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    users = session.scalars(
        select(User)
        .where(
            or_(
                func.lower(User.name).like(pattern, escape="\\"),
                func.lower(User.email).like(pattern, escape="\\"),
            ),
            User.id != viewer_id,
        )
        .order_by(User.name)
        .limit(limit)
    ).all()

    return {
        "users": [user_profile(u) for u in users],
        "count": len(users),
        "query": query,
    }
