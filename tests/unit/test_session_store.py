"""
Unit Tests for SessionStore
===========================

Tests session creation, record appends, recent-session summaries and
corruption handling.
"""

import json
from datetime import datetime, timezone

import pytest

from studygraph.graph import CorruptionError, SessionNotFoundError
from studygraph.sessions import SessionStore, summarize_session
from studygraph.sessions.store import utc_timestamp
from studygraph.utils import is_session_id


def completed(date, course, summary):
    return {"type": "session_completed", "timestamp": f"{date}T18:00:00.000Z",
            "date": date, "summary": summary, "course": course}


class TestSessionStore:

    def test_create(self, sessions):
        session_id = sessions.create()
        assert is_session_id(session_id)
        assert sessions.exists(session_id)
        assert sessions.records(session_id) == []

    def test_create_keeps_existing_records(self, sessions):
        sessions.create("s1")
        sessions.append("s1", {"type": "context_loaded"})
        sessions.create("s1")
        assert len(sessions.records("s1")) == 1

    def test_unknown_session(self, sessions):
        with pytest.raises(SessionNotFoundError) as exc:
            sessions.records("nope")
        assert exc.value.message == (
            "Session with ID nope not found. Please start a new session with startsession."
        )

    def test_append_to_unknown_session(self, sessions):
        with pytest.raises(SessionNotFoundError):
            sessions.append("nope", {"type": "context_loaded"})
        assert not sessions.exists("nope")

    def test_ensure(self, sessions):
        assert sessions.ensure("s1") is True
        assert sessions.ensure("s1") is False
        assert sessions.records("s1") == []

    def test_document_format(self, sessions):
        sessions.create("s1")
        sessions.append("s1", {"type": "context_loaded", "entityName": "Physics 101"})
        data = json.loads(sessions.path.read_text())
        assert data == {"s1": [{"type": "context_loaded", "entityName": "Physics 101"}]}

    def test_corrupt_document(self, sessions):
        sessions.path.write_text("[1, 2")
        with pytest.raises(CorruptionError):
            sessions.load()

    def test_wrong_shape(self, sessions):
        sessions.path.write_text(json.dumps({"s1": "not a list"}))
        with pytest.raises(CorruptionError):
            sessions.load()


class TestRecent:

    def test_newest_first_with_limit(self, sessions):
        for session_id, date in (("a", "2025-03-01"), ("b", "2025-03-09"),
                                 ("c", "2025-03-05"), ("d", "2025-02-01")):
            sessions.create(session_id)
            sessions.append(session_id, completed(date, "Physics 101", f"Session {session_id}"))
        recent = sessions.recent(limit=3)
        assert [s.session_id for s in recent] == ["b", "c", "a"]
        assert recent[0].summary == "Session b"
        assert recent[0].course == "Physics 101"

    def test_exclude(self, sessions):
        sessions.create("a")
        sessions.append("a", completed("2025-03-01", "Physics 101", "x"))
        sessions.create("new")
        assert [s.session_id for s in sessions.recent(exclude="new")] == ["a"]

    def test_undated_last(self, sessions):
        sessions.create("undated")
        sessions.create("a")
        sessions.append("a", completed("2025-03-01", "Physics 101", "x"))
        assert [s.session_id for s in sessions.recent()] == ["a", "undated"]


class TestSummarizeSession:

    def test_from_completed_record(self):
        summary = summarize_session("s", [completed("2025-03-10", "Physics 101", "Forces")])
        assert (summary.date, summary.course, summary.summary) == ("2025-03-10", "Physics 101", "Forces")

    def test_from_summary_stage(self):
        records = [{
            "type": "analysis_stage", "stage": "summary", "stageNumber": 1,
            "stageData": {"summary": "Vectors review", "duration": "1h", "course": "Calculus II"},
        }]
        summary = summarize_session("stud_1741608000000_a1b2c3d4e5f6", records)
        assert summary.course == "Calculus II"
        assert summary.summary == "Vectors review"
        assert summary.date == "2025-03-10"

    def test_from_first_timestamp(self):
        records = [{"type": "context_loaded", "timestamp": "2025-03-02T09:00:00.000Z"}]
        assert summarize_session("s", records).date == "2025-03-02"

    def test_nothing_known(self):
        summary = summarize_session("s", [])
        assert summary.date is None and summary.course is None and summary.summary is None

    def test_to_dict(self):
        assert summarize_session("s", []).to_dict()["session_id"] == "s"


def test_utc_timestamp_format():
    moment = datetime(2025, 3, 10, 12, 0, 0, 123456, tzinfo=timezone.utc)
    assert utc_timestamp(moment) == "2025-03-10T12:00:00.123Z"
