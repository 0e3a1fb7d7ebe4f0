"""
marginalia.services.participation_service — Discussion Join Workflow
=====================================================================

Mediates who gets a seat in a discussion.  Per (user, discussion) pair::

                request join               author approves
     [no record] ---------> [pending] ---------------------> [approved]
                                |                                 |
                                | author rejects                  | participant withdraws
                                v                                 v
                           [rejected]                        [no record]

Rules:
  * One record per (user, discussion), enforced by a unique constraint.
    A concurrent duplicate insert surfaces as :class:`ConflictError`.
  * Capacity (``max_participants``) counts ``approved`` records only and is
    checked at join time.  The author is exempt and always ``approved``.
  * Only the author decides; only ``pending`` records can be decided.
  * Authors cannot withdraw from their own discussion.

Every function takes the caller's ``Session``; the caller commits.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from marginalia.constants import PARTICIPANT_PREVIEW
from marginalia.database.models import (
    Discussion,
    DiscussionParticipant,
    ParticipationDecision,
    ParticipationStatus,
)
from marginalia.services.errors import (
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)
from marginalia.services.serializers import (
    discussion_to_dict,
    participant_to_dict,
    participation_record,
    user_summary,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------
def get_discussion(
    session: Session, discussion_id: str, *, for_update: bool = False
) -> Discussion:
    """Load a discussion or raise :class:`NotFoundError`.

    ``for_update`` takes a row lock (``SELECT … FOR UPDATE``) so that
    capacity checks on the same discussion serialise on PostgreSQL.
    SQLite ignores the clause.
    """
    stmt = select(Discussion).where(Discussion.id == discussion_id)
    if for_update:
        stmt = stmt.with_for_update()
    discussion = session.scalar(stmt)
    if discussion is None:
        raise NotFoundError(f"Discussion not found: {discussion_id}")
    return discussion


def get_participation(
    session: Session, discussion_id: str, user_id: str
) -> DiscussionParticipant | None:
    """Fetch the (user, discussion) record, if any."""
    return session.scalar(
        select(DiscussionParticipant).where(
            DiscussionParticipant.discussion_id == discussion_id,
            DiscussionParticipant.user_id == user_id,
        )
    )


def count_approved(session: Session, discussion_id: str) -> int:
    """Number of ``approved`` participants in a discussion."""
    return session.scalar(
        select(func.count())
        .select_from(DiscussionParticipant)
        .where(
            DiscussionParticipant.discussion_id == discussion_id,
            DiscussionParticipant.status == ParticipationStatus.APPROVED.value,
        )
    ) or 0


def approved_counts(session: Session, discussion_ids: list[str]) -> dict[str, int]:
    """Approved-participant counts for many discussions in one query."""
    if not discussion_ids:
        return {}
    rows = session.execute(
        select(DiscussionParticipant.discussion_id, func.count().label("cnt"))
        .where(
            DiscussionParticipant.discussion_id.in_(discussion_ids),
            DiscussionParticipant.status == ParticipationStatus.APPROVED.value,
        )
        .group_by(DiscussionParticipant.discussion_id)
    ).all()
    return {row.discussion_id: row.cnt for row in rows}


def _is_full(session: Session, discussion: Discussion) -> bool:
    if discussion.max_participants is None:
        return False
    return count_approved(session, discussion.id) >= discussion.max_participants


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def request_join(
    session: Session, discussion_id: str, requester_id: str
) -> DiscussionParticipant:
    """Create the requester's participation record.

    Returns the new record; its ``status`` is ``approved`` for the author
    and ``pending`` for everyone else.

    Raises
    ------
    NotFoundError
        The discussion does not exist.
    ConflictError
        The requester already holds a record (``status`` carries it).
    CapacityExceededError
        A non-author asked to join a discussion whose approved seats are full.
    """
    discussion = get_discussion(session, discussion_id, for_update=True)

    existing = get_participation(session, discussion_id, requester_id)
    if existing is not None:
        raise ConflictError(
            "Already requested to join this discussion", status=existing.status
        )

    is_author = discussion.author_id == requester_id
    if not is_author and _is_full(session, discussion):
        logger.info(
            "Join refused — discussion %s is full (%d seats)",
            discussion_id, discussion.max_participants,
        )
        raise CapacityExceededError("This discussion is already full")

    status = ParticipationStatus.APPROVED if is_author else ParticipationStatus.PENDING
    participant = DiscussionParticipant(
        discussion_id=discussion_id,
        user_id=requester_id,
        status=status.value,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(participant)
            session.flush()
    except IntegrityError:
        # A concurrent request for the same pair won the insert.
        winner = get_participation(session, discussion_id, requester_id)
        raise ConflictError(
            "Already requested to join this discussion",
            status=winner.status if winner else None,
        ) from None

    logger.info(
        "User %s requested to join discussion %s → %s",
        requester_id, discussion_id, status.value,
    )
    return participant


def decide_participation(
    session: Session,
    participant_id: str,
    decider_id: str,
    decision: ParticipationDecision | str,
    *,
    discussion_id: str | None = None,
    recheck_capacity: bool = False,
) -> DiscussionParticipant:
    """Approve or reject a pending join request.

    ``discussion_id`` scopes the lookup when the caller addressed the
    participant through its discussion.  ``recheck_capacity`` refuses an
    approval that would push the approved count past ``max_participants``.
    """
    try:
        decision = ParticipationDecision(decision)
    except ValueError:
        raise InvalidInputError(f"Invalid action: {decision!r}") from None

    participant = session.get(DiscussionParticipant, participant_id)
    if participant is None or (
        discussion_id is not None and participant.discussion_id != discussion_id
    ):
        raise NotFoundError(f"Participant not found: {participant_id}")

    discussion = get_discussion(
        session,
        participant.discussion_id,
        for_update=decision is ParticipationDecision.APPROVE,
    )
    if discussion.author_id != decider_id:
        raise ForbiddenError("Only the discussion author can decide join requests")

    if participant.status != ParticipationStatus.PENDING.value:
        raise ConflictError(
            f"Request already {participant.status}", status=participant.status
        )

    if (
        decision is ParticipationDecision.APPROVE
        and recheck_capacity
        and _is_full(session, discussion)
    ):
        raise CapacityExceededError("This discussion is already full")

    participant.status = decision.resulting_status.value
    session.flush()
    logger.info(
        "Author %s %sd participant %s in discussion %s",
        decider_id, decision.value, participant_id, discussion.id,
    )
    return participant


def withdraw_participation(
    session: Session, discussion_id: str, requester_id: str
) -> None:
    """Remove the requester's ``approved`` record from a discussion.

    The author can never withdraw (``ForbiddenError``), with or without a
    record of their own.
    """
    participant = session.scalar(
        select(DiscussionParticipant)
        .options(joinedload(DiscussionParticipant.discussion))
        .where(
            DiscussionParticipant.discussion_id == discussion_id,
            DiscussionParticipant.user_id == requester_id,
            DiscussionParticipant.status == ParticipationStatus.APPROVED.value,
        )
    )
    if participant is None:
        discussion = session.get(Discussion, discussion_id)
        if discussion is not None and discussion.author_id == requester_id:
            raise ForbiddenError("Authors cannot leave their own discussion")
        raise NotFoundError("No approved participation in this discussion")

    if participant.discussion.author_id == requester_id:
        raise ForbiddenError("Authors cannot leave their own discussion")

    session.delete(participant)
    session.flush()
    logger.info("User %s withdrew from discussion %s", requester_id, discussion_id)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_participation_status(
    session: Session, discussion_id: str, requester_id: str
) -> dict[str, Any]:
    """The requester's own record (or ``None``) plus the approved count."""
    participant = get_participation(session, discussion_id, requester_id)
    return {
        "participation": participation_record(participant),
        "participants_count": count_approved(session, discussion_id),
    }


def list_my_discussions(session: Session, user_id: str) -> dict[str, Any]:
    """Aggregate the reader's discussions into three views.

    * ``authored`` — discussions the reader created, with the approved
      roster and the pending requests awaiting a decision.
    * ``participating`` — other authors' discussions where the reader holds
      any record.
    * ``pending`` — discussions where the reader's record is ``pending``.

    Each entry carries ``my_status``.  Authors without a record of their
    own default to ``approved``.
    """
    authored = session.scalars(
        select(Discussion)
        .options(joinedload(Discussion.author))
        .where(Discussion.author_id == user_id)
        .order_by(Discussion.created_at.desc())
    ).all()

    my_records = session.scalars(
        select(DiscussionParticipant)
        .options(
            joinedload(DiscussionParticipant.discussion).joinedload(Discussion.author)
        )
        .where(DiscussionParticipant.user_id == user_id)
        .order_by(DiscussionParticipant.created_at.desc())
    ).all()
    status_by_discussion = {r.discussion_id: r.status for r in my_records}

    authored_ids = [d.id for d in authored]
    roster_rows = session.scalars(
        select(DiscussionParticipant)
        .options(joinedload(DiscussionParticipant.user))
        .where(
            DiscussionParticipant.discussion_id.in_(authored_ids),
            DiscussionParticipant.status.in_([
                ParticipationStatus.APPROVED.value,
                ParticipationStatus.PENDING.value,
            ]),
        )
        .order_by(DiscussionParticipant.created_at.asc())
    ).all() if authored_ids else []

    approved_roster: dict[str, list[dict]] = {d_id: [] for d_id in authored_ids}
    pending_roster: dict[str, list[dict]] = {d_id: [] for d_id in authored_ids}
    for row in roster_rows:
        target = (
            approved_roster
            if row.status == ParticipationStatus.APPROVED.value
            else pending_roster
        )
        target[row.discussion_id].append(participant_to_dict(row))

    authored_out = []
    for discussion in authored:
        item = discussion_to_dict(discussion)
        item["my_status"] = status_by_discussion.get(
            discussion.id, ParticipationStatus.APPROVED.value
        )
        item["participants"] = approved_roster[discussion.id]
        item["participant_count"] = len(approved_roster[discussion.id])
        item["pending_participants"] = pending_roster[discussion.id]
        authored_out.append(item)

    joined = [r for r in my_records if r.discussion.author_id != user_id]
    counts = approved_counts(session, [r.discussion_id for r in joined])
    previews = _approved_previews(session, [r.discussion_id for r in joined])

    participating_out = []
    pending_out = []
    for record in joined:
        item = discussion_to_dict(record.discussion)
        item["my_status"] = record.status
        item["participant_count"] = counts.get(record.discussion_id, 0)
        item["participants"] = previews.get(record.discussion_id, [])
        participating_out.append(item)
        if record.status == ParticipationStatus.PENDING.value:
            pending_out.append(item)

    return {
        "authored": authored_out,
        "participating": participating_out,
        "pending": pending_out,
    }


def _approved_previews(
    session: Session, discussion_ids: list[str]
) -> dict[str, list[dict]]:
    """First few approved participants per discussion, as user summaries."""
    if not discussion_ids:
        return {}
    rows = session.scalars(
        select(DiscussionParticipant)
        .options(joinedload(DiscussionParticipant.user))
        .where(
            DiscussionParticipant.discussion_id.in_(discussion_ids),
            DiscussionParticipant.status == ParticipationStatus.APPROVED.value,
        )
        .order_by(DiscussionParticipant.created_at.asc())
    ).all()
    previews: dict[str, list[dict]] = {}
    for row in rows:
        bucket = previews.setdefault(row.discussion_id, [])
        if len(bucket) < PARTICIPANT_PREVIEW:
            bucket.append({"id": row.id, "user": user_summary(row.user)})
    return previews
