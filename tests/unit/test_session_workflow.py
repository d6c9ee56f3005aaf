"""
Unit Tests for the End-Session Workflow
=======================================

Tests stage recording, ordering, revisions, assembly and the graph
mutations applied when a session is recorded. The session date is
2025-03-10 throughout.
"""

import pytest

from studygraph.graph import (
    NotFoundError,
    SessionNotFoundError,
    StageOrderError,
    UnknownStageError,
    ValidationError,
)
from studygraph.sessions import EndSessionArgs, SessionRecordingError, StageRequest
from studygraph.sessions.workflow import AssignmentUpdate, parse_stage_data
from studygraph.utils import LockTimeoutError
from tests.fixtures.sample_graph import FIXED_TODAY

SUMMARY = {"summary": "Reviewed forces and free body diagrams", "duration": "2 hours",
           "course": "Physics 101"}
LEARNED = {"concepts": ["Newton's third law", "Free body diagrams"]}
UPDATES = {"updates": [{"name": "Problem Set 3", "status": "completed"}]}
NEW_CONCEPTS = {"concepts": [{"name": "Friction", "description": "Resistance to sliding"}]}
COURSE_STATUS = {"courseStatus": "current", "courseObservation": "Covered chapter 4"}


def stage(session_id, name, number, data=None, next_needed=True, **kwargs):
    return StageRequest(
        session_id=session_id,
        stage=name,
        stage_number=number,
        total_stages=6,
        analysis=f"{name} analysis",
        stage_data=data,
        next_stage_needed=next_needed,
        **kwargs
    )


def run_all(workflow, session_id, final=True):
    workflow.process(stage(session_id, "summary", 1, SUMMARY))
    workflow.process(stage(session_id, "conceptsLearned", 2, LEARNED))
    workflow.process(stage(session_id, "assignmentUpdates", 3, UPDATES))
    workflow.process(stage(session_id, "newConcepts", 4, NEW_CONCEPTS))
    workflow.process(stage(session_id, "courseStatus", 5, COURSE_STATUS))
    return workflow.process(stage(session_id, "assembly", 6, next_needed=not final))


@pytest.fixture
def session_id(sessions):
    return sessions.create()


class TestStagePayloads:

    def test_summary_focus_fallback(self):
        data = parse_stage_data("summary", {"summary": "x", "focus": "Calculus II"})
        assert data.course == "Calculus II"

    def test_missing_data_gives_defaults(self):
        assert parse_stage_data("conceptsLearned", None).concepts == []

    def test_assignments_alias(self):
        data = parse_stage_data("assignmentUpdates", {"assignments": [{"name": "A", "status": "graded"}]})
        assert data.updates == [AssignmentUpdate("A", "graded")]

    def test_update_requires_name_and_status(self):
        with pytest.raises(ValidationError):
            parse_stage_data("assignmentUpdates", {"updates": [{"name": "A"}]})

    def test_new_concept_requires_name(self):
        with pytest.raises(ValidationError):
            parse_stage_data("newConcepts", {"concepts": [{"description": "nameless"}]})

    def test_stage_data_must_be_object(self):
        with pytest.raises(ValidationError):
            parse_stage_data("summary", ["not", "an", "object"])

    def test_request_numbers_must_be_positive(self):
        with pytest.raises(ValidationError):
            StageRequest(session_id="s", stage="summary", stage_number=0, total_stages=6)
        with pytest.raises(ValidationError):
            StageRequest(session_id="s", stage="summary", stage_number=1, total_stages=6, revises_stage=0)


class TestStageRecording:

    def test_stage_is_recorded(self, workflow, sessions, session_id):
        outcome = workflow.process(stage(session_id, "summary", 1, SUMMARY))
        data = outcome.to_dict()
        assert data["success"] is True
        assert data["stageCompleted"] == "summary"
        assert data["nextStageNeeded"] is True
        assert data["stageResult"]["stageData"]["course"] == "Physics 101"
        assert data["endSessionArgs"] is None

        (record,) = sessions.records(session_id)
        assert record["type"] == "analysis_stage"
        assert record["stage"] == "summary"
        assert record["stageNumber"] == 1
        assert record["analysis"] == "summary analysis"
        assert record["completed"] is False

    def test_unknown_stage(self, workflow, sessions, session_id):
        with pytest.raises(UnknownStageError) as exc:
            workflow.process(stage(session_id, "reflection", 1))
        assert exc.value.message.startswith("Unknown stage: reflection")
        assert sessions.records(session_id) == []

    def test_unknown_session(self, workflow, sessions):
        with pytest.raises(SessionNotFoundError):
            workflow.process(stage("stud_0_000000000000", "summary", 1, SUMMARY))
        assert sessions.load() == {}

    def test_final_assembly_for_unknown_session(self, workflow, seeded_store, sessions, config):
        before = config.memory_file_path.read_bytes()
        with pytest.raises(SessionNotFoundError):
            workflow.process(stage("stud_0_000000000000", "assembly", 6, next_needed=False))
        assert config.memory_file_path.read_bytes() == before
        assert sessions.load() == {}

    def test_stages_may_be_skipped(self, workflow, sessions, session_id):
        workflow.process(stage(session_id, "summary", 1, SUMMARY))
        workflow.process(stage(session_id, "courseStatus", 2, COURSE_STATUS))
        assert [r["stage"] for r in sessions.records(session_id)] == ["summary", "courseStatus"]

    def test_backwards_stage_rejected(self, workflow, sessions, session_id):
        workflow.process(stage(session_id, "conceptsLearned", 1, LEARNED))
        with pytest.raises(StageOrderError):
            workflow.process(stage(session_id, "summary", 2, SUMMARY))
        assert len(sessions.records(session_id)) == 1

    def test_repeated_stage_rejected(self, workflow, session_id):
        workflow.process(stage(session_id, "summary", 1, SUMMARY))
        with pytest.raises(StageOrderError):
            workflow.process(stage(session_id, "summary", 2, SUMMARY))

    def test_revision_replaces_in_place(self, workflow, sessions, session_id):
        workflow.process(stage(session_id, "summary", 1, SUMMARY))
        workflow.process(stage(session_id, "conceptsLearned", 2, LEARNED))
        revised = dict(SUMMARY, summary="Actually reviewed energy")
        workflow.process(stage(session_id, "summary", 1, revised, is_revision=True, revises_stage=1))

        records = sessions.records(session_id)
        assert [r["stage"] for r in records] == ["summary", "conceptsLearned"]
        assert records[0]["stageData"]["summary"] == "Actually reviewed energy"

        outcome = workflow.process(stage(session_id, "assembly", 3))
        assert outcome.args.summary == "Actually reviewed energy"

    def test_revision_without_target_appends(self, workflow, sessions, session_id):
        workflow.process(stage(session_id, "conceptsLearned", 1, LEARNED))
        workflow.process(stage(session_id, "summary", 2, SUMMARY, is_revision=True))
        assert [r["stage"] for r in sessions.records(session_id)] == ["conceptsLearned", "summary"]


class TestAssembly:

    def test_assembly_without_finalizing(self, workflow, seeded_store, session_id):
        before = seeded_store.load().to_dict()
        outcome = run_all(workflow, session_id, final=False)
        data = outcome.to_dict()

        assert data["stageCompleted"] == "assembly"
        assert data["stageResult"]["analysis"] == "Final assembly of end-session arguments"
        args = data["endSessionArgs"]
        assert args == {
            "date": "2025-03-10",
            "summary": "Reviewed forces and free body diagrams",
            "duration": "2 hours",
            "course": "Physics 101",
            "conceptsLearned": ["Newton's third law", "Free body diagrams"],
            "assignmentUpdates": [{"name": "Problem Set 3", "status": "completed"}],
            "courseStatus": "current",
            "courseObservation": "Covered chapter 4",
            "newConcepts": [{"name": "Friction", "description": "Resistance to sliding"}],
        }
        assert seeded_store.load().to_dict() == before

    def test_assembly_may_repeat(self, workflow, sessions, session_id):
        workflow.process(stage(session_id, "summary", 1, SUMMARY))
        workflow.process(stage(session_id, "assembly", 2))
        workflow.process(stage(session_id, "assembly", 3))
        assert [r["stage"] for r in sessions.records(session_id)] == ["summary", "assembly", "assembly"]

    def test_defaults_for_missing_stages(self):
        args = EndSessionArgs.from_stages([], FIXED_TODAY)
        assert args.duration == "unknown"
        assert args.concepts_learned == []
        assert args.date == "2025-03-10"

    def test_first_record_of_a_stage_wins(self):
        records = [
            {"type": "analysis_stage", "stage": "summary", "stageData": {"summary": "first"}},
            {"type": "analysis_stage", "stage": "summary", "stageData": {"summary": "second"}},
        ]
        assert EndSessionArgs.from_stages(records, FIXED_TODAY).summary == "first"


class TestApply:

    def test_full_session(self, workflow, seeded_store, sessions, session_id):
        outcome = run_all(workflow, session_id)
        data = outcome.to_dict()
        assert data["sessionRecorded"] is True
        assert data["nextStageNeeded"] is False
        assert data["summaryMessage"].startswith("# Study Session Recorded")
        assert "endSessionArgs" not in data

        graph = seeded_store.load()
        first = graph.get("Concept_20250310_1", "concept")
        second = graph.get("Concept_20250310_2", "concept")
        assert first.observations == ["Newton's third law"]
        assert second.observations == ["Free body diagrams"]
        assert seeded_store.has_relation("Physics 101", "Concept_20250310_1", "contains")
        assert seeded_store.has_relation("Physics 101", "Concept_20250310_2", "contains")

        assignment = graph.get("Problem Set 3")
        assert assignment.status == "completed"
        assert "Status: in_progress" not in assignment.observations
        assert seeded_store.has_relation("Physics 101", "Problem Set 3", "created_for")
        assert seeded_store.has_relation("Problem Set 3", "Physics 101", "assigned_in")

        physics = graph.get("Physics 101")
        assert "Status: current" not in physics.observations
        assert physics.observations[-3:] == ["status:current", "updated:2025-03-10", "Covered chapter 4"]
        assert "Code: PHY101" in physics.observations

        friction = graph.get("Friction", "concept")
        assert friction.observations == ["Resistance to sliding", "last_studied:2025-03-10"]
        assert seeded_store.has_relation("Physics 101", "Friction", "contains")

        last = sessions.records(session_id)[-1]
        assert last["type"] == "session_completed"
        assert last["date"] == "2025-03-10"
        assert last["course"] == "Physics 101"
        assert last["summary"] == "Reviewed forces and free body diagrams"

    def test_completed_session_rejects_more_stages(self, workflow, session_id):
        run_all(workflow, session_id)
        with pytest.raises(StageOrderError):
            workflow.process(stage(session_id, "assembly", 7, next_needed=False))

    def test_concept_numbering_continues(self, workflow, seeded_store, session_id):
        seeded_store.create_entities([{"name": "Concept_20250310_1", "entityType": "concept",
                                       "observations": ["earlier"]}])
        workflow.process(stage(session_id, "summary", 1, SUMMARY))
        workflow.process(stage(session_id, "conceptsLearned", 2, {"concepts": ["Inertia"]}))
        workflow.process(stage(session_id, "assembly", 3, next_needed=False))
        assert seeded_store.load().get("Concept_20250310_2").observations == ["Inertia"]

    def test_course_status_only_when_given(self, workflow, seeded_store, session_id):
        workflow.process(stage(session_id, "summary", 1, SUMMARY))
        workflow.process(stage(session_id, "assembly", 2, next_needed=False))
        physics = seeded_store.get_entity("Physics 101")
        assert physics.status == "current"
        assert "Status: current" in physics.observations
        assert physics.field("updated") == "2025-03-10"

    def test_missing_assignment_is_skipped(self, workflow, seeded_store, session_id):
        workflow.process(stage(session_id, "summary", 1, SUMMARY))
        workflow.process(stage(session_id, "assignmentUpdates", 2,
                               {"updates": [{"name": "Problem Set 99", "status": "completed"}]}))
        outcome = workflow.process(stage(session_id, "assembly", 3, next_needed=False))
        assert outcome.session_recorded
        assert seeded_store.load().get("Problem Set 99") is None

    def test_existing_created_for_is_kept(self, workflow, seeded_store, session_id):
        seeded_store.create_relations([
            {"from": "Physics 101", "to": "Problem Set 3", "relationType": "created_for"}
        ])
        workflow.process(stage(session_id, "summary", 1, SUMMARY))
        workflow.process(stage(session_id, "assignmentUpdates", 2, UPDATES))
        outcome = workflow.process(stage(session_id, "assembly", 3, next_needed=False))
        assert outcome.session_recorded
        relations = [r for r in seeded_store.load().relations
                     if r.key == ("Physics 101", "Problem Set 3", "created_for")]
        assert len(relations) == 1

    def test_failure_stops_without_rollback(self, workflow, seeded_store, sessions, session_id):
        workflow.process(stage(session_id, "summary", 1, dict(SUMMARY, course="Ghost 404")))
        workflow.process(stage(session_id, "conceptsLearned", 2, {"concepts": ["Orphan idea"]}))
        with pytest.raises(SessionRecordingError) as exc:
            workflow.process(stage(session_id, "assembly", 3, next_needed=False))

        assert exc.value.message == "Error recording study session: Entity 'Ghost 404' not found"
        assert isinstance(exc.value.__cause__, NotFoundError)
        assert seeded_store.load().get("Concept_20250310_1") is not None
        assert all(r["type"] != "session_completed" for r in sessions.records(session_id))

    def test_lock_timeout_is_reported_as_recording_error(self, workflow, seeded_store, sessions,
                                                         session_id, monkeypatch):
        workflow.process(stage(session_id, "summary", 1, SUMMARY))

        def locked(*args, **kwargs):
            raise LockTimeoutError("Failed to acquire lock: sessions.json.lock")

        monkeypatch.setattr(sessions, "append", locked)
        with pytest.raises(SessionRecordingError) as exc:
            workflow.process(stage(session_id, "assembly", 2, next_needed=False))

        assert exc.value.message == (
            "Error recording study session: Failed to acquire lock: sessions.json.lock"
        )
        assert isinstance(exc.value.__cause__, LockTimeoutError)
        assert seeded_store.load().get("Physics 101").field("updated") == "2025-03-10"
