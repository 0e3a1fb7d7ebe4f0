"""
marginalia.services.discussion_service — Discussion catalogue
==============================================================

Create, list and read discussions.  Join/approve/withdraw lives in
:mod:`marginalia.services.participation_service`.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, joinedload

from marginalia.constants import (
    DEFAULT_MAX_PARTICIPANTS,
    PAGE_SIZE_DISCUSSIONS,
    PARTICIPANT_PREVIEW,
    page_offset,
)
from marginalia.database.models import (
    Discussion,
    DiscussionParticipant,
    ParticipationStatus,
    Privacy,
)
from marginalia.services.errors import ForbiddenError, InvalidInputError, NotFoundError
from marginalia.services.participation_service import approved_counts, get_participation
from marginalia.services.serializers import (
    discussion_to_dict,
    participant_to_dict,
    user_summary,
)

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("title", "content", "book_title", "book_author")


def _string_list(value: Any) -> list[str]:
    """Accept a list or a single string; drop blanks."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    return [str(v).strip() for v in value if str(v).strip()]


def create_discussion(
    session: Session,
    author_id: str,
    *,
    title: str | None,
    content: str | None,
    book_title: str | None,
    book_author: str | None,
    topics: list[str] | str | None = None,
    tags: list[str] | None = None,
    image_urls: list[str] | None = None,
    privacy: str | None = None,
    scheduled_at: datetime | None = None,
    max_participants: int | None = None,
    default_max_participants: int = DEFAULT_MAX_PARTICIPANTS,
) -> Discussion:
    """Create a discussion owned by *author_id*.

    ``max_participants`` of ``None`` leaves the discussion unlimited; a
    falsy value (``0``) falls back to *default_max_participants*.
    """
    values = {
        "title": title,
        "content": content,
        "book_title": book_title,
        "book_author": book_author,
    }
    missing = [k for k in _REQUIRED_FIELDS if not (values[k] or "").strip()]
    if missing:
        raise InvalidInputError("Missing required fields: " + ", ".join(missing))

    try:
        privacy_value = Privacy((privacy or Privacy.PUBLIC.value).lower())
    except ValueError:
        raise InvalidInputError(f"Invalid privacy: {privacy!r}") from None

    if max_participants is not None:
        if max_participants < 0:
            raise InvalidInputError("max_participants must not be negative")
        max_participants = max_participants or default_max_participants

    discussion = Discussion(
        title=values["title"].strip(),
        content=values["content"],
        book_title=values["book_title"].strip(),
        book_author=values["book_author"].strip(),
        topics=_string_list(topics),
        tags=_string_list(tags),
        image_urls=_string_list(image_urls),
        privacy=privacy_value.value,
        scheduled_at=scheduled_at,
        max_participants=max_participants,
        author_id=author_id,
    )
    session.add(discussion)
    session.flush()
    logger.info("Discussion %s created by %s", discussion.id, author_id)
    return discussion


def list_discussions(
    session: Session,
    page: int = 0,
    *,
    viewer_id: str | None = None,
    page_size: int = PAGE_SIZE_DISCUSSIONS,
) -> dict[str, Any]:
    """Newest-first page of public discussions (plus the viewer's own)."""
    visible = Discussion.privacy == Privacy.PUBLIC.value
    if viewer_id is not None:
        visible = or_(visible, Discussion.author_id == viewer_id)

    discussions = session.scalars(
        select(Discussion)
        .options(joinedload(Discussion.author))
        .where(visible)
        .order_by(Discussion.created_at.desc())
        .offset(page_offset(page, page_size))
        .limit(page_size)
    ).all()
    total = session.scalar(
        select(func.count()).select_from(Discussion).where(visible)
    ) or 0

    counts = approved_counts(session, [d.id for d in discussions])
    items = []
    for discussion in discussions:
        item = discussion_to_dict(discussion)
        item["current_participants"] = counts.get(discussion.id, 0)
        items.append(item)

    return {
        "discussions": items,
        "has_more": page_offset(page, page_size) + page_size < total,
    }


def get_discussion_detail(
    session: Session,
    discussion_id: str,
    *,
    viewer_id: str | None = None,
    include_participants: bool = False,
    preview_size: int = PARTICIPANT_PREVIEW,
) -> dict[str, Any]:
    """A discussion with its participant roster.

    The default view lists up to *preview_size* approved participants.
    ``include_participants`` is the author's management view: every
    participant with their status.  Private discussions only reveal their
    roster to the author and approved participants.
    """
    discussion = session.scalar(
        select(Discussion)
        .options(joinedload(Discussion.author))
        .where(Discussion.id == discussion_id)
    )
    if discussion is None:
        raise NotFoundError(f"Discussion not found: {discussion_id}")

    is_author = viewer_id is not None and viewer_id == discussion.author_id
    if include_participants and not is_author:
        raise ForbiddenError("Only the discussion author can manage participants")

    result = discussion_to_dict(discussion)
    roster_stmt = (
        select(DiscussionParticipant)
        .options(joinedload(DiscussionParticipant.user))
        .where(DiscussionParticipant.discussion_id == discussion_id)
        .order_by(DiscussionParticipant.created_at.asc())
    )

    if include_participants:
        rows = session.scalars(roster_stmt).all()
        result["participants"] = [participant_to_dict(p) for p in rows]
    elif _can_see_roster(session, discussion, viewer_id):
        rows = session.scalars(
            roster_stmt.where(
                DiscussionParticipant.status == ParticipationStatus.APPROVED.value
            ).limit(preview_size)
        ).all()
        result["participants"] = [{"id": p.id, "user": user_summary(p.user)} for p in rows]
    else:
        result["participants"] = []

    result["current_participants"] = approved_counts(session, [discussion_id]).get(
        discussion_id, 0
    )
    return result


def _can_see_roster(session: Session, discussion: Discussion, viewer_id: str | None) -> bool:
    if discussion.privacy != Privacy.PRIVATE.value:
        return True
    if viewer_id is None:
        return False
    if viewer_id == discussion.author_id:
        return True
    record = get_participation(session, discussion.id, viewer_id)
    return record is not None and record.status == ParticipationStatus.APPROVED.value
