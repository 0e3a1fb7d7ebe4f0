"""
tests/test_participation_service.py — Discussion Join Workflow Tests
=====================================================================
Service-level tests for participation_service: join requests, author
decisions, withdrawal, capacity rules and the "my discussions" view.
"""

from __future__ import annotations

import pytest
from conftest import make_discussion, make_user

from marginalia.database.models import (
    DiscussionParticipant,
    ParticipationDecision,
    ParticipationStatus,
)
from marginalia.services import participation_service as ps
from marginalia.services.errors import (
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
)


@pytest.fixture
def people(db_session):
    """Author A plus readers B, C and D."""
    return {uid: make_user(db_session, uid) for uid in ("alice", "bob", "carol", "dave")}


def _approve(session, discussion_id: str, user_id: str, author_id: str = "alice"):
    record = ps.request_join(session, discussion_id, user_id)
    return ps.decide_participation(session, record.id, author_id, ParticipationDecision.APPROVE)


# ===========================================================================
# RequestJoin
# ===========================================================================
class TestRequestJoin:
    def test_non_author_starts_pending(self, db_session, people):
        d = make_discussion(db_session, "alice")
        record = ps.request_join(db_session, d.id, "bob")
        assert record.status == ParticipationStatus.PENDING
        assert record.user_id == "bob"
        assert record.discussion_id == d.id

    def test_author_is_approved_immediately(self, db_session, people):
        d = make_discussion(db_session, "alice", max_participants=3)
        record = ps.request_join(db_session, d.id, "alice")
        assert record.status == ParticipationStatus.APPROVED

    def test_author_joins_even_when_full(self, db_session, people):
        d = make_discussion(db_session, "alice", max_participants=1)
        _approve(db_session, d.id, "bob")
        record = ps.request_join(db_session, d.id, "alice")
        assert record.status == ParticipationStatus.APPROVED
        assert ps.count_approved(db_session, d.id) == 2

    def test_unlimited_capacity_never_fills(self, db_session, people):
        d = make_discussion(db_session, "alice", max_participants=None)
        for i in range(15):
            make_user(db_session, f"reader-{i}")
            _approve(db_session, d.id, f"reader-{i}")
        record = ps.request_join(db_session, d.id, "bob")
        assert record.status == ParticipationStatus.PENDING
        assert ps.count_approved(db_session, d.id) == 15

    def test_capacity_blocks_next_join(self, db_session, people):
        d = make_discussion(db_session, "alice", max_participants=2)
        _approve(db_session, d.id, "bob")
        _approve(db_session, d.id, "carol")
        with pytest.raises(CapacityExceededError):
            ps.request_join(db_session, d.id, "dave")
        assert ps.get_participation(db_session, d.id, "dave") is None

    def test_pending_requests_do_not_take_seats(self, db_session, people):
        d = make_discussion(db_session, "alice", max_participants=1)
        ps.request_join(db_session, d.id, "bob")
        record = ps.request_join(db_session, d.id, "carol")
        assert record.status == ParticipationStatus.PENDING

    def test_duplicate_request_conflicts_with_existing_status(self, db_session, people):
        d = make_discussion(db_session, "alice")
        first = ps.request_join(db_session, d.id, "bob")
        with pytest.raises(ConflictError) as exc_info:
            ps.request_join(db_session, d.id, "bob")
        assert exc_info.value.status == ParticipationStatus.PENDING
        assert exc_info.value.to_dict()["status"] == "pending"

        db_session.refresh(first)
        assert first.status == ParticipationStatus.PENDING
        assert db_session.query(DiscussionParticipant).count() == 1

    def test_rejected_reader_cannot_reapply(self, db_session, people):
        d = make_discussion(db_session, "alice")
        record = ps.request_join(db_session, d.id, "bob")
        ps.decide_participation(db_session, record.id, "alice", "reject")
        with pytest.raises(ConflictError) as exc_info:
            ps.request_join(db_session, d.id, "bob")
        assert exc_info.value.status == ParticipationStatus.REJECTED

    def test_missing_discussion(self, db_session, people):
        with pytest.raises(NotFoundError):
            ps.request_join(db_session, "no-such-discussion", "bob")

    def test_concurrent_duplicate_insert_becomes_conflict(self, db_session, people, monkeypatch):
        """The unique constraint catches a duplicate the pre-check missed."""
        d = make_discussion(db_session, "alice")
        ps.request_join(db_session, d.id, "bob")

        real_lookup = ps.get_participation
        calls = {"n": 0}

        def stale_first_lookup(session, discussion_id, user_id):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return real_lookup(session, discussion_id, user_id)

        monkeypatch.setattr(ps, "get_participation", stale_first_lookup)
        with pytest.raises(ConflictError) as exc_info:
            ps.request_join(db_session, d.id, "bob")
        assert exc_info.value.status == ParticipationStatus.PENDING

        # The outer transaction survives the rolled-back savepoint.
        assert db_session.query(DiscussionParticipant).count() == 1


# ===========================================================================
# DecideParticipation
# ===========================================================================
class TestDecideParticipation:
    def test_approve(self, db_session, people):
        d = make_discussion(db_session, "alice")
        record = ps.request_join(db_session, d.id, "bob")
        result = ps.decide_participation(db_session, record.id, "alice", ParticipationDecision.APPROVE)
        assert result.status == ParticipationStatus.APPROVED
        assert ps.count_approved(db_session, d.id) == 1

    def test_reject_accepts_plain_string(self, db_session, people):
        d = make_discussion(db_session, "alice")
        record = ps.request_join(db_session, d.id, "bob")
        result = ps.decide_participation(db_session, record.id, "alice", "reject")
        assert result.status == ParticipationStatus.REJECTED
        assert ps.count_approved(db_session, d.id) == 0

    def test_non_author_is_forbidden(self, db_session, people):
        d = make_discussion(db_session, "alice")
        record = ps.request_join(db_session, d.id, "bob")
        with pytest.raises(ForbiddenError):
            ps.decide_participation(db_session, record.id, "carol", "approve")
        db_session.refresh(record)
        assert record.status == ParticipationStatus.PENDING

    def test_requester_cannot_approve_self(self, db_session, people):
        d = make_discussion(db_session, "alice")
        record = ps.request_join(db_session, d.id, "bob")
        with pytest.raises(ForbiddenError):
            ps.decide_participation(db_session, record.id, "bob", "approve")

    def test_already_decided_conflicts(self, db_session, people):
        d = make_discussion(db_session, "alice")
        record = ps.request_join(db_session, d.id, "bob")
        ps.decide_participation(db_session, record.id, "alice", "approve")
        with pytest.raises(ConflictError) as exc_info:
            ps.decide_participation(db_session, record.id, "alice", "reject")
        assert exc_info.value.status == ParticipationStatus.APPROVED
        db_session.refresh(record)
        assert record.status == ParticipationStatus.APPROVED

    def test_unknown_action(self, db_session, people):
        d = make_discussion(db_session, "alice")
        record = ps.request_join(db_session, d.id, "bob")
        with pytest.raises(InvalidInputError):
            ps.decide_participation(db_session, record.id, "alice", "approved")

    def test_missing_participant(self, db_session, people):
        with pytest.raises(NotFoundError):
            ps.decide_participation(db_session, "nope", "alice", "approve")

    def test_participant_from_another_discussion(self, db_session, people):
        d1 = make_discussion(db_session, "alice")
        d2 = make_discussion(db_session, "alice", title="Another")
        record = ps.request_join(db_session, d1.id, "bob")
        with pytest.raises(NotFoundError):
            ps.decide_participation(db_session, record.id, "alice", "approve", discussion_id=d2.id)

    def test_approval_ignores_capacity_by_default(self, db_session, people):
        d = make_discussion(db_session, "alice", max_participants=1)
        bob = ps.request_join(db_session, d.id, "bob")
        carol = ps.request_join(db_session, d.id, "carol")
        ps.decide_participation(db_session, bob.id, "alice", "approve")
        ps.decide_participation(db_session, carol.id, "alice", "approve")
        assert ps.count_approved(db_session, d.id) == 2

    def test_approval_rechecks_capacity_when_enabled(self, db_session, people):
        d = make_discussion(db_session, "alice", max_participants=1)
        bob = ps.request_join(db_session, d.id, "bob")
        carol = ps.request_join(db_session, d.id, "carol")
        ps.decide_participation(db_session, bob.id, "alice", "approve", recheck_capacity=True)
        with pytest.raises(CapacityExceededError):
            ps.decide_participation(db_session, carol.id, "alice", "approve", recheck_capacity=True)
        db_session.refresh(carol)
        assert carol.status == ParticipationStatus.PENDING

    def test_rejection_never_checks_capacity(self, db_session, people):
        d = make_discussion(db_session, "alice", max_participants=1)
        bob = ps.request_join(db_session, d.id, "bob")
        carol = ps.request_join(db_session, d.id, "carol")
        ps.decide_participation(db_session, bob.id, "alice", "approve")
        result = ps.decide_participation(db_session, carol.id, "alice", "reject", recheck_capacity=True)
        assert result.status == ParticipationStatus.REJECTED


# ===========================================================================
# WithdrawParticipation
# ===========================================================================
class TestWithdrawParticipation:
    def test_participant_withdraws(self, db_session, people):
        d = make_discussion(db_session, "alice")
        _approve(db_session, d.id, "bob")
        _approve(db_session, d.id, "carol")
        before = ps.count_approved(db_session, d.id)

        ps.withdraw_participation(db_session, d.id, "bob")

        assert ps.count_approved(db_session, d.id) == before - 1
        assert ps.get_participation(db_session, d.id, "bob") is None

    def test_withdrawn_reader_may_request_again(self, db_session, people):
        d = make_discussion(db_session, "alice")
        _approve(db_session, d.id, "bob")
        ps.withdraw_participation(db_session, d.id, "bob")
        record = ps.request_join(db_session, d.id, "bob")
        assert record.status == ParticipationStatus.PENDING

    def test_author_with_record_is_forbidden(self, db_session, people):
        d = make_discussion(db_session, "alice")
        ps.request_join(db_session, d.id, "alice")
        with pytest.raises(ForbiddenError):
            ps.withdraw_participation(db_session, d.id, "alice")
        assert ps.get_participation(db_session, d.id, "alice") is not None

    def test_author_without_record_is_forbidden(self, db_session, people):
        d = make_discussion(db_session, "alice")
        with pytest.raises(ForbiddenError):
            ps.withdraw_participation(db_session, d.id, "alice")

    def test_pending_record_cannot_withdraw(self, db_session, people):
        d = make_discussion(db_session, "alice")
        ps.request_join(db_session, d.id, "bob")
        with pytest.raises(NotFoundError):
            ps.withdraw_participation(db_session, d.id, "bob")
        assert ps.get_participation(db_session, d.id, "bob") is not None

    def test_no_record(self, db_session, people):
        d = make_discussion(db_session, "alice")
        with pytest.raises(NotFoundError):
            ps.withdraw_participation(db_session, d.id, "bob")


# ===========================================================================
# GetParticipationStatus
# ===========================================================================
class TestParticipationStatus:
    def test_without_record(self, db_session, people):
        d = make_discussion(db_session, "alice")
        _approve(db_session, d.id, "carol")
        result = ps.get_participation_status(db_session, d.id, "bob")
        assert result == {"participation": None, "participants_count": 1}

    def test_with_record(self, db_session, people):
        d = make_discussion(db_session, "alice")
        record = ps.request_join(db_session, d.id, "bob")
        result = ps.get_participation_status(db_session, d.id, "bob")
        assert result["participation"]["id"] == record.id
        assert result["participation"]["status"] == "pending"
        assert result["participants_count"] == 0

    def test_unknown_discussion_reports_nothing(self, db_session, people):
        result = ps.get_participation_status(db_session, "missing", "bob")
        assert result == {"participation": None, "participants_count": 0}


# ===========================================================================
# ListMyDiscussions
# ===========================================================================
class TestListMyDiscussions:
    def test_three_views(self, db_session, people):
        mine = make_discussion(db_session, "alice", title="Mine")
        joined = make_discussion(db_session, "carol", title="Joined")
        waiting = make_discussion(db_session, "dave", title="Waiting")

        _approve(db_session, mine.id, "bob")
        ps.request_join(db_session, mine.id, "carol")
        _approve(db_session, joined.id, "alice", author_id="carol")
        ps.request_join(db_session, waiting.id, "alice")

        result = ps.list_my_discussions(db_session, "alice")

        assert [d["id"] for d in result["authored"]] == [mine.id]
        authored = result["authored"][0]
        assert authored["my_status"] == "approved"
        assert [p["user_id"] for p in authored["participants"]] == ["bob"]
        assert authored["participant_count"] == 1
        assert [p["user_id"] for p in authored["pending_participants"]] == ["carol"]

        by_id = {d["id"]: d for d in result["participating"]}
        assert set(by_id) == {joined.id, waiting.id}
        assert by_id[joined.id]["my_status"] == "approved"
        assert by_id[joined.id]["participant_count"] == 1
        assert by_id[waiting.id]["my_status"] == "pending"

        assert [d["id"] for d in result["pending"]] == [waiting.id]

    def test_author_record_is_reported(self, db_session, people):
        d = make_discussion(db_session, "alice")
        ps.request_join(db_session, d.id, "alice")
        result = ps.list_my_discussions(db_session, "alice")
        assert result["authored"][0]["my_status"] == "approved"
        assert result["participating"] == []

    def test_rejected_discussions_are_listed_with_status(self, db_session, people):
        d = make_discussion(db_session, "alice")
        record = ps.request_join(db_session, d.id, "bob")
        ps.decide_participation(db_session, record.id, "alice", "reject")
        result = ps.list_my_discussions(db_session, "bob")
        assert result["participating"][0]["my_status"] == "rejected"
        assert result["pending"] == []

    def test_empty(self, db_session, people):
        assert ps.list_my_discussions(db_session, "bob") == {
            "authored": [],
            "participating": [],
            "pending": [],
        }


# ===========================================================================
# End-to-end scenarios
# ===========================================================================
class TestScenarios:
    def test_capacity_one(self, db_session, people):
        d = make_discussion(db_session, "alice", max_participants=1)
        record = ps.request_join(db_session, d.id, "bob")
        assert record.status == ParticipationStatus.PENDING

        ps.decide_participation(db_session, record.id, "alice", "approve")
        assert record.status == ParticipationStatus.APPROVED
        assert ps.count_approved(db_session, d.id) == 1

        with pytest.raises(CapacityExceededError):
            ps.request_join(db_session, d.id, "carol")

    def test_double_request(self, db_session, people):
        d = make_discussion(db_session, "alice")
        assert ps.request_join(db_session, d.id, "bob").status == ParticipationStatus.PENDING
        with pytest.raises(ConflictError) as exc_info:
            ps.request_join(db_session, d.id, "bob")
        assert exc_info.value.status == "pending"

    def test_withdraw_clears_status(self, db_session, people):
        d = make_discussion(db_session, "alice")
        _approve(db_session, d.id, "bob")
        ps.withdraw_participation(db_session, d.id, "bob")
        assert ps.get_participation_status(db_session, d.id, "bob")["participation"] is None
