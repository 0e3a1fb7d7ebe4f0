"""
marginalia.api.deps — FastAPI dependency injection
===================================================

Identity comes from a bearer JWT minted by the external identity
provider.  Every authenticated request mirrors the token's claims into the
``users`` table and hands the resolved :class:`CurrentUser` to the route.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from marginalia.config import MarginaliaConfig, resolve_config
from marginalia.database.engine import create_db_engine
from marginalia.services.user_service import get_or_create_user

_WEAK_SECRETS = frozenset({
    "marginalia-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@dataclass(frozen=True, slots=True)
class CurrentUser:
    """The identity resolved for the current request."""

    id: str
    name: str
    image: str | None = None


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> MarginaliaConfig:
    return resolve_config()


def get_session(engine: Annotated[Engine, Depends(get_engine)]):
    with Session(engine) as session:
        yield session


def _decode_bearer(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    return payload


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    session: Session = Depends(get_session),
) -> CurrentUser:
    """Validate the JWT and sync the user row.  Raises 401 if invalid."""
    payload = _decode_bearer(authorization)
    user = get_or_create_user(
        session,
        str(payload["sub"]),
        payload.get("name"),
        email=payload.get("email"),
        image=payload.get("image"),
    )
    session.commit()
    return CurrentUser(id=user.id, name=user.name, image=user.image)


def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
    session: Session = Depends(get_session),
) -> CurrentUser | None:
    """Like :func:`get_current_user`, but anonymous requests yield ``None``."""
    if not authorization:
        return None
    return get_current_user(authorization, session)
