"""
marginalia.services.note_service — Direct messages
===================================================

A note is written once per receiver.  Sender and receiver each delete
their own copy; the row goes away when both have.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from marginalia.constants import PAGE_SIZE_NOTES
from marginalia.database.models import Note, User
from marginalia.services.errors import ForbiddenError, InvalidInputError, NotFoundError
from marginalia.services.serializers import note_to_dict

logger = logging.getLogger(__name__)

NOTE_BOXES = ("received", "sent")


def send_note(
    session: Session,
    sender_id: str,
    receiver_ids: list[str] | None,
    title: str | None,
    content: str | None,
) -> dict[str, Any]:
    """Send the same note to every receiver."""
    receiver_ids = [r for r in (receiver_ids or []) if r]
    if not receiver_ids:
        raise InvalidInputError("At least one receiver is required")
    if not (title or "").strip():
        raise InvalidInputError("Title is required")
    if not (content or "").strip():
        raise InvalidInputError("Content is required")

    unique_ids = list(dict.fromkeys(receiver_ids))
    known = set(session.scalars(select(User.id).where(User.id.in_(unique_ids))).all())
    unknown = [r for r in unique_ids if r not in known]
    if unknown:
        raise NotFoundError("Unknown receiver(s): " + ", ".join(unknown))

    notes = [
        Note(
            sender_id=sender_id,
            receiver_id=receiver_id,
            title=title.strip(),
            content=content.strip(),
        )
        for receiver_id in unique_ids
    ]
    session.add_all(notes)
    session.flush()
    logger.info("User %s sent a note to %d receiver(s)", sender_id, len(notes))
    return {"count": len(notes), "note_ids": [n.id for n in notes]}


def list_notes(
    session: Session,
    user_id: str,
    box: str = "received",
    *,
    page: int = 1,
    limit: int = PAGE_SIZE_NOTES,
) -> dict[str, Any]:
    """One page of the inbox (``received``) or outbox (``sent``).

    Pages are one-based.
    """
    if box not in NOTE_BOXES:
        raise InvalidInputError(f"Invalid note box: {box!r}")
    if page < 1 or limit < 1:
        raise InvalidInputError("page and limit must be positive")

    if box == "received":
        where = (Note.receiver_id == user_id, Note.receiver_deleted.is_(False))
    else:
        where = (Note.sender_id == user_id, Note.sender_deleted.is_(False))

    total = session.scalar(select(func.count()).select_from(Note).where(*where)) or 0
    notes = session.scalars(
        select(Note)
        .options(joinedload(Note.sender), joinedload(Note.receiver))
        .where(*where)
        .order_by(Note.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return {
        "notes": [note_to_dict(n) for n in notes],
        "total_count": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit),
    }


def _deleted_for(note: Note, user_id: str) -> bool:
    """True once every side *user_id* occupies has deleted the note."""
    sides = []
    if user_id == note.sender_id:
        sides.append(note.sender_deleted)
    if user_id == note.receiver_id:
        sides.append(note.receiver_deleted)
    return all(sides)


def _get_visible_note(session: Session, note_id: str, user_id: str) -> Note:
    note = session.get(Note, note_id)
    if note is None:
        raise NotFoundError(f"Note not found: {note_id}")
    if user_id not in (note.sender_id, note.receiver_id):
        raise ForbiddenError("You cannot access this note")
    if _deleted_for(note, user_id):
        raise NotFoundError(f"Note not found: {note_id}")
    return note


def get_note(session: Session, note_id: str, user_id: str) -> Note:
    """Read a note; reading as the receiver marks it read."""
    note = _get_visible_note(session, note_id, user_id)
    if note.receiver_id == user_id and not note.is_read:
        note.is_read = True
        session.flush()
    return note


def delete_note(session: Session, note_id: str, user_id: str) -> None:
    """Delete the caller's copy; drop the row once both sides deleted it."""
    note = _get_visible_note(session, note_id, user_id)
    if note.sender_id == user_id:
        note.sender_deleted = True
    if note.receiver_id == user_id:
        note.receiver_deleted = True

    if note.sender_deleted and note.receiver_deleted:
        session.delete(note)
    session.flush()


def unread_count(session: Session, user_id: str) -> int:
    return session.scalar(
        select(func.count())
        .select_from(Note)
        .where(
            Note.receiver_id == user_id,
            Note.is_read.is_(False),
            Note.receiver_deleted.is_(False),
        )
    ) or 0
