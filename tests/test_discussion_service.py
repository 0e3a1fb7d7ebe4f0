"""
tests/test_discussion_service.py — Discussion Catalogue Tests
==============================================================
Creation rules, paginated listing with visibility, and the detail view
with its roster modes.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from conftest import make_discussion, make_user

from marginalia.services import discussion_service as ds
from marginalia.services import participation_service as ps
from marginalia.services.errors import ForbiddenError, InvalidInputError, NotFoundError


@pytest.fixture
def readers(db_session):
    for uid in ("alice", "bob", "carol"):
        make_user(db_session, uid)


def _create(session, **overrides):
    fields = {
        "title": "Slow reading",
        "content": "One chapter a week",
        "book_title": "War and Peace",
        "book_author": "Leo Tolstoy",
    }
    fields.update(overrides)
    return ds.create_discussion(session, "alice", **fields)


# ===========================================================================
# CreateDiscussion
# ===========================================================================
class TestCreateDiscussion:
    def test_defaults(self, db_session, readers):
        d = _create(db_session)
        assert d.privacy == "public"
        assert d.max_participants is None
        assert d.topics == []
        assert d.tags == []
        assert d.author_id == "alice"

    def test_single_topic_string_is_wrapped(self, db_session, readers):
        d = _create(db_session, topics="Russian novels", tags=["classics", " "])
        assert d.topics == ["Russian novels"]
        assert d.tags == ["classics"]

    @pytest.mark.parametrize("field", ["title", "content", "book_title", "book_author"])
    def test_required_fields(self, db_session, readers, field):
        with pytest.raises(InvalidInputError, match=field):
            _create(db_session, **{field: "  "})

    def test_privacy_is_case_insensitive(self, db_session, readers):
        assert _create(db_session, privacy="PRIVATE").privacy == "private"

    def test_unknown_privacy(self, db_session, readers):
        with pytest.raises(InvalidInputError):
            _create(db_session, privacy="friends-only")

    def test_zero_capacity_uses_default(self, db_session, readers):
        assert _create(db_session, max_participants=0).max_participants == 10
        assert (
            _create(db_session, max_participants=0, default_max_participants=4).max_participants
            == 4
        )

    def test_explicit_capacity(self, db_session, readers):
        assert _create(db_session, max_participants=3).max_participants == 3

    def test_negative_capacity(self, db_session, readers):
        with pytest.raises(InvalidInputError):
            _create(db_session, max_participants=-1)


# ===========================================================================
# ListDiscussions
# ===========================================================================
class TestListDiscussions:
    def _seed(self, session, count: int):
        base = datetime(2024, 1, 1, tzinfo=UTC)
        made = []
        for i in range(count):
            d = make_discussion(session, "alice", title=f"D{i}")
            d.created_at = base + timedelta(hours=i)
            made.append(d)
        session.flush()
        return made

    def test_newest_first_with_has_more(self, db_session, readers):
        self._seed(db_session, 8)
        first = ds.list_discussions(db_session, 0)
        assert [d["title"] for d in first["discussions"]] == [f"D{i}" for i in range(7, 1, -1)]
        assert first["has_more"] is True

        second = ds.list_discussions(db_session, 1)
        assert [d["title"] for d in second["discussions"]] == ["D1", "D0"]
        assert second["has_more"] is False

    def test_negative_page_is_first_page(self, db_session, readers):
        self._seed(db_session, 2)
        assert len(ds.list_discussions(db_session, -3)["discussions"]) == 2

    def test_current_participants(self, db_session, readers):
        d = make_discussion(db_session, "alice")
        record = ps.request_join(db_session, d.id, "bob")
        ps.decide_participation(db_session, record.id, "alice", "approve")
        ps.request_join(db_session, d.id, "carol")

        item = ds.list_discussions(db_session)["discussions"][0]
        assert item["current_participants"] == 1
        assert item["author"]["id"] == "alice"

    def test_private_only_visible_to_author(self, db_session, readers):
        make_discussion(db_session, "alice", privacy="private", title="Secret")
        make_discussion(db_session, "bob", title="Open")

        anonymous = ds.list_discussions(db_session)["discussions"]
        assert [d["title"] for d in anonymous] == ["Open"]

        mine = ds.list_discussions(db_session, viewer_id="alice")["discussions"]
        assert {d["title"] for d in mine} == {"Secret", "Open"}


# ===========================================================================
# GetDiscussion
# ===========================================================================
class TestDiscussionDetail:
    def test_missing(self, db_session, readers):
        with pytest.raises(NotFoundError):
            ds.get_discussion_detail(db_session, "missing")

    def test_preview_lists_approved_only(self, db_session, readers):
        d = make_discussion(db_session, "alice")
        record = ps.request_join(db_session, d.id, "bob")
        ps.decide_participation(db_session, record.id, "alice", "approve")
        ps.request_join(db_session, d.id, "carol")

        detail = ds.get_discussion_detail(db_session, d.id)
        assert [p["user"]["id"] for p in detail["participants"]] == ["bob"]
        assert detail["current_participants"] == 1

    def test_preview_is_capped(self, db_session, readers):
        d = make_discussion(db_session, "alice")
        for i in range(7):
            make_user(db_session, f"r{i}")
            record = ps.request_join(db_session, d.id, f"r{i}")
            ps.decide_participation(db_session, record.id, "alice", "approve")

        detail = ds.get_discussion_detail(db_session, d.id)
        assert len(detail["participants"]) == 5
        assert detail["current_participants"] == 7

    def test_management_view_for_author(self, db_session, readers):
        d = make_discussion(db_session, "alice")
        ps.request_join(db_session, d.id, "bob")
        detail = ds.get_discussion_detail(
            db_session, d.id, viewer_id="alice", include_participants=True
        )
        assert detail["participants"][0]["status"] == "pending"
        assert detail["participants"][0]["name"] == "Bob"

    def test_management_view_forbidden_for_others(self, db_session, readers):
        d = make_discussion(db_session, "alice")
        with pytest.raises(ForbiddenError):
            ds.get_discussion_detail(db_session, d.id, viewer_id="bob", include_participants=True)
        with pytest.raises(ForbiddenError):
            ds.get_discussion_detail(db_session, d.id, include_participants=True)

    def test_private_roster_hidden_from_outsiders(self, db_session, readers):
        d = make_discussion(db_session, "alice", privacy="private")
        record = ps.request_join(db_session, d.id, "bob")
        ps.decide_participation(db_session, record.id, "alice", "approve")

        assert ds.get_discussion_detail(db_session, d.id, viewer_id="carol")["participants"] == []
        assert ds.get_discussion_detail(db_session, d.id)["participants"] == []
        assert len(ds.get_discussion_detail(db_session, d.id, viewer_id="bob")["participants"]) == 1
        assert len(ds.get_discussion_detail(db_session, d.id, viewer_id="alice")["participants"]) == 1
