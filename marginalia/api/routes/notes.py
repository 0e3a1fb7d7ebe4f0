"""
marginalia.api.routes.notes — Direct message endpoints
=======================================================

Reader endpoints (bearer token):
    POST   /notes                 — Send a note to one or more readers
    GET    /notes?box=&page=      — Inbox (received) or outbox (sent)
    GET    /notes/unread-count    — Unread notes in my inbox
    GET    /notes/{id}            — Read a note
    DELETE /notes/{id}            — Delete my copy
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from marginalia.api.deps import CurrentUser, get_config, get_current_user, get_session
from marginalia.services import note_service
from marginalia.services.serializers import note_to_dict

router = APIRouter(prefix="/notes", tags=["notes"])


class NoteCreate(BaseModel):
    receivers: list[str] = Field(default_factory=list)
    title: str | None = None
    content: str | None = None


@router.post("")
def send_note(
    body: NoteCreate,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    result = note_service.send_note(session, user.id, body.receivers, body.title, body.content)
    session.commit()
    return result


@router.get("")
def list_notes(
    box: str = Query("received"),
    page: int = Query(1),
    limit: int | None = Query(None),
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    cfg = get_config()
    return note_service.list_notes(
        session, user.id, box, page=page, limit=limit or cfg.pagination.notes
    )


@router.get("/unread-count")
def unread_count(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return {"unread": note_service.unread_count(session, user.id)}


@router.get("/{note_id}")
def get_note(
    note_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    note = note_service.get_note(session, note_id, user.id)
    payload = note_to_dict(note)
    session.commit()
    return payload


@router.delete("/{note_id}")
def delete_note(
    note_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    note_service.delete_note(session, note_id, user.id)
    session.commit()
    return {"success": True}
