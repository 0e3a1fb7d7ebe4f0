"""
marginalia.api.routes.discussions — Discussion & participation endpoints
=========================================================================

Public endpoints:
    GET    /discussions                     — Page of discussions
    GET    /discussions/{id}                — Discussion with roster

Reader endpoints (bearer token):
    POST   /discussions                     — Create a discussion
    GET    /discussions/me                  — My authored / joined / pending
    POST   /discussions/{id}/participants   — Request to join
    GET    /discussions/{id}/participants   — My status + approved count
    DELETE /discussions/{id}/participants/me — Withdraw (approved only)
    PATCH  /discussions/{id}/participants/{participant_id}
                                            — Author approves / rejects
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from marginalia.api.deps import (
    CurrentUser,
    get_config,
    get_current_user,
    get_optional_user,
    get_session,
)
from marginalia.database.models import ParticipationDecision
from marginalia.services import discussion_service, participation_service
from marginalia.services.serializers import discussion_to_dict, participation_record

router = APIRouter(tags=["discussions"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class DiscussionCreate(BaseModel):
    title: str | None = None
    content: str | None = None
    book_title: str | None = None
    book_author: str | None = None
    topics: list[str] | str | None = None
    tags: list[str] = Field(default_factory=list)
    image_urls: list[str] = Field(default_factory=list)
    privacy: str | None = None
    scheduled_at: datetime | None = None
    max_participants: int | None = None


class ParticipantDecision(BaseModel):
    action: ParticipationDecision


# ---------------------------------------------------------------------------
# Catalogue
# ---------------------------------------------------------------------------
@router.get("/discussions")
def list_discussions(
    page: int = Query(0),
    viewer: CurrentUser | None = Depends(get_optional_user),
    session: Session = Depends(get_session),
):
    """Newest discussions first, with approved-participant counts."""
    cfg = get_config()
    return discussion_service.list_discussions(
        session,
        page,
        viewer_id=viewer.id if viewer else None,
        page_size=cfg.pagination.discussions,
    )


@router.post("/discussions")
def create_discussion(
    body: DiscussionCreate,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    cfg = get_config()
    discussion = discussion_service.create_discussion(
        session,
        user.id,
        **body.model_dump(),
        default_max_participants=cfg.discussions.default_max_participants,
    )
    session.commit()
    return discussion_to_dict(discussion)


@router.get("/discussions/me")
def my_discussions(
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Discussions I created, joined, or am waiting to join."""
    return participation_service.list_my_discussions(session, user.id)


@router.get("/discussions/{discussion_id}")
def get_discussion(
    discussion_id: str,
    include_participants: bool = Query(False),
    viewer: CurrentUser | None = Depends(get_optional_user),
    session: Session = Depends(get_session),
):
    return discussion_service.get_discussion_detail(
        session,
        discussion_id,
        viewer_id=viewer.id if viewer else None,
        include_participants=include_participants,
    )


# ---------------------------------------------------------------------------
# Participation
# ---------------------------------------------------------------------------
@router.post("/discussions/{discussion_id}/participants")
def request_join(
    discussion_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Ask to join.  Authors are approved at once; everyone else waits."""
    participant = participation_service.request_join(session, discussion_id, user.id)
    session.commit()
    return {
        "message": "Join request submitted",
        "status": participant.status,
        "participant": participation_record(participant),
    }


@router.get("/discussions/{discussion_id}/participants")
def participation_status(
    discussion_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    return participation_service.get_participation_status(session, discussion_id, user.id)


@router.delete("/discussions/{discussion_id}/participants/me")
def withdraw(
    discussion_id: str,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    participation_service.withdraw_participation(session, discussion_id, user.id)
    session.commit()
    return {"success": True, "message": "You have left the discussion"}


@router.patch("/discussions/{discussion_id}/participants/{participant_id}")
def decide(
    discussion_id: str,
    participant_id: str,
    body: ParticipantDecision,
    user: CurrentUser = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Approve or reject a pending join request (author only)."""
    cfg = get_config()
    participant = participation_service.decide_participation(
        session,
        participant_id,
        user.id,
        body.action,
        discussion_id=discussion_id,
        recheck_capacity=cfg.discussions.recheck_capacity_on_approve,
    )
    session.commit()
    return {
        "message": (
            "Join request approved"
            if body.action is ParticipationDecision.APPROVE
            else "Join request rejected"
        ),
        "participant": participation_record(participant),
    }
