"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of marginalia.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from marginalia.database.models import Base, Discussion, User  # noqa: E402


@compiles(PG_JSONB, "sqlite")
def _compile_jsonb_as_text(type_, compiler, **kw):
    return "TEXT"


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Marginalia tables.

    Uses StaticPool so the TestClient's worker threads share the same
    in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Row factories
# ---------------------------------------------------------------------------
def make_user(session: Session, user_id: str, name: str | None = None, **kwargs) -> User:
    user = User(id=user_id, name=name or user_id.title(), **kwargs)
    session.add(user)
    session.flush()
    return user


def make_discussion(
    session: Session,
    author_id: str,
    *,
    max_participants: int | None = None,
    privacy: str = "public",
    title: str = "Reading Middlemarch",
) -> Discussion:
    discussion = Discussion(
        title=title,
        content="Chapters 1-10",
        book_title="Middlemarch",
        book_author="George Eliot",
        privacy=privacy,
        max_participants=max_participants,
        author_id=author_id,
    )
    session.add(discussion)
    session.flush()
    return discussion


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------
def make_token(sub: str = "reader-1", name: str | None = "Fixture Reader", **claims) -> str:
    """Create a bearer JWT.  Usable as both a fixture helper and a factory."""
    import jwt

    from marginalia.api.deps import JWT_ALGORITHM, JWT_SECRET

    payload = {"sub": sub, **claims}
    if name is not None:
        payload["name"] = name
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db_engine: Engine):
    """FastAPI TestClient bound to the in-memory SQLite engine."""
    from fastapi.testclient import TestClient

    from marginalia.api.deps import get_engine
    from marginalia.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
