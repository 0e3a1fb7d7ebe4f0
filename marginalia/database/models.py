"""
marginalia.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- users                    — Reader profiles (synced from identity claims)
- discussions              — Book-discussion groups with optional capacity
- discussion_participants  — (user, discussion) membership + approval status
- stories                  — Reading posts
- story_likes              — One like per (user, story)
- comments                 — Story comments
- user_follows             — Directed follow edges
- notes                    — Direct messages with per-side soft delete
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Marginalia ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ParticipationStatus(enum.StrEnum):
    """Approval state of a (user, discussion) participation record."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ParticipationDecision(enum.StrEnum):
    """The two actions a discussion author may take on a pending request."""
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def resulting_status(self) -> ParticipationStatus:
        if self is ParticipationDecision.APPROVE:
            return ParticipationStatus.APPROVED
        return ParticipationStatus.REJECTED


class Privacy(enum.StrEnum):
    """Discussion visibility."""
    PUBLIC = "public"
    PRIVATE = "private"


# ---------------------------------------------------------------------------
# Users — one row per identity-provider subject
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), default=None)
    image: Mapped[str | None] = mapped_column(String(500), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    # Relationships
    stories: Mapped[list[Story]] = relationship(
        back_populates="author", cascade="all, delete-orphan"
    )
    discussions: Mapped[list[Discussion]] = relationship(
        back_populates="author", cascade="all, delete-orphan"
    )
    participations: Mapped[list[DiscussionParticipant]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id!r} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Discussions — book-club topics readers can ask to join
# ---------------------------------------------------------------------------
class Discussion(Base):
    """A book discussion group.

    ``max_participants`` of ``None`` means unlimited seats.  The author is
    fixed at creation and never changes.
    """
    __tablename__ = "discussions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    book_title: Mapped[str] = mapped_column(String(200), nullable=False)
    book_author: Mapped[str] = mapped_column(String(200), nullable=False)
    topics: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    tags: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    image_urls: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    privacy: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Privacy.PUBLIC.value
    )
    scheduled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    max_participants: Mapped[int | None] = mapped_column(Integer, default=None)
    author_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    author: Mapped[User] = relationship(back_populates="discussions")
    participants: Mapped[list[DiscussionParticipant]] = relationship(
        back_populates="discussion", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_discussions_author", "author_id"),
        Index("ix_discussions_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Discussion id={self.id!r} title={self.title!r}>"


class DiscussionParticipant(Base):
    """Membership record for one user in one discussion.

    ``UNIQUE(user_id, discussion_id)`` is what closes the race between two
    concurrent join requests from the same reader.
    """
    __tablename__ = "discussion_participants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    discussion_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("discussions.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ParticipationStatus.PENDING.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    discussion: Mapped[Discussion] = relationship(back_populates="participants")
    user: Mapped[User] = relationship(back_populates="participations")

    __table_args__ = (
        UniqueConstraint(
            "user_id", "discussion_id", name="uq_discussion_participants_user_discussion"
        ),
        Index("ix_discussion_participants_discussion_status", "discussion_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<DiscussionParticipant id={self.id!r} user={self.user_id!r} "
            f"discussion={self.discussion_id!r} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# Stories — reading posts with likes and comments
# ---------------------------------------------------------------------------
class Story(Base):
    __tablename__ = "stories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    image_urls: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    author_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now(),
        onupdate=_utcnow,
    )

    author: Mapped[User] = relationship(back_populates="stories")
    likes: Mapped[list[StoryLike]] = relationship(
        back_populates="story", cascade="all, delete-orphan"
    )
    comments: Mapped[list[Comment]] = relationship(
        back_populates="story", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_stories_author_time", "author_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Story id={self.id!r} title={self.title!r}>"


class StoryLike(Base):
    __tablename__ = "story_likes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    story_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("stories.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    story: Mapped[Story] = relationship(back_populates="likes")

    __table_args__ = (
        UniqueConstraint("user_id", "story_id", name="uq_story_likes_user_story"),
    )

    def __repr__(self) -> str:
        return f"<StoryLike user={self.user_id!r} story={self.story_id!r}>"


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    story_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("stories.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    story: Mapped[Story] = relationship(back_populates="comments")
    user: Mapped[User] = relationship()

    __table_args__ = (
        Index("ix_comments_story_time", "story_id", "created_at"),
        Index("ix_comments_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Comment id={self.id!r} story={self.story_id!r}>"


# ---------------------------------------------------------------------------
# UserFollow — directed follow edges
# ---------------------------------------------------------------------------
class UserFollow(Base):
    __tablename__ = "user_follows"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    follower_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    following_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    following: Mapped[User] = relationship(foreign_keys=[following_id])

    __table_args__ = (
        UniqueConstraint(
            "follower_id", "following_id", name="uq_user_follows_follower_following"
        ),
    )

    def __repr__(self) -> str:
        return f"<UserFollow {self.follower_id!r} → {self.following_id!r}>"


# ---------------------------------------------------------------------------
# Notes — direct messages
# ---------------------------------------------------------------------------
class Note(Base):
    """A direct message.

    Each side deletes independently; the row is removed once both have.
    """
    __tablename__ = "notes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    sender_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    receiver_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    sender_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    receiver_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, server_default=func.now()
    )

    sender: Mapped[User] = relationship(foreign_keys=[sender_id])
    receiver: Mapped[User] = relationship(foreign_keys=[receiver_id])

    __table_args__ = (
        Index("ix_notes_receiver_time", "receiver_id", "created_at"),
        Index("ix_notes_sender_time", "sender_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Note id={self.id!r} {self.sender_id!r} → {self.receiver_id!r}>"
