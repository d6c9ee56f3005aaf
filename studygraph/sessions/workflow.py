"""
End-session workflow.

A study session is closed out over several calls, one per stage, in the
declared order::

    summary -> conceptsLearned -> assignmentUpdates -> newConcepts -> courseStatus -> assembly

Each call normalizes its payload into a typed stage payload and records
it in the session store. Stages may be skipped forward but not repeated
or sent backwards unless flagged as a revision, which replaces the
n-th recorded stage in place. The ``assembly`` stage reduces the recorded
stages into ``EndSessionArgs``; when no further stage is needed those
arguments are applied to the graph:

1. one ``Concept_<YYYYMMDD>_<i>`` concept per learned concept, contained by the course
2. assignment ``status:`` observations replaced in place
3. course ``status:``/``updated:`` observations replaced in place
4. brand-new concepts created and contained by the course
5. a ``session_completed`` record appended to the session

Each step persists on its own; the first failure stops the rest without
rolling back what already ran.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..formatting import format_session_recorded
from ..graph.errors import (
    SessionNotFoundError,
    StageOrderError,
    StudyGraphError,
    UnknownStageError,
    ValidationError,
)
from ..graph.observations import today_compact
from ..graph.store import GraphStore
from ..graph.types import Entity
from ..utils.locking import LockTimeoutError
from .store import ANALYSIS_STAGE, SESSION_COMPLETED, Record, SessionStore, utc_timestamp

logger = logging.getLogger(__name__)

STAGES = (
    'summary',
    'conceptsLearned',
    'assignmentUpdates',
    'newConcepts',
    'courseStatus',
    'assembly',
)

ASSEMBLY_ANALYSIS = "Final assembly of end-session arguments"


def _text(value: Any) -> str:
    return "" if value is None else str(value)


# -- stage payloads ------------------------------------------------------

@dataclass
class SummaryData:
    summary: str = ""
    duration: str = ""
    course: str = ""

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> SummaryData:
        return cls(
            summary=_text(data.get('summary')),
            duration=_text(data.get('duration')),
            course=_text(data.get('course') or data.get('focus')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ConceptsLearnedData:
    concepts: List[str] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> ConceptsLearnedData:
        return cls(concepts=[_text(c) for c in data.get('concepts') or [] if c])

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AssignmentUpdate:
    name: str
    status: str

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> AssignmentUpdate:
        if not isinstance(data, Mapping) or not data.get('name') or not data.get('status'):
            raise ValidationError(
                "Assignment updates require 'name' and 'status'", update=repr(data)
            )
        return cls(name=_text(data['name']), status=_text(data['status']))


@dataclass
class AssignmentUpdatesData:
    updates: List[AssignmentUpdate] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> AssignmentUpdatesData:
        items = data.get('updates') or data.get('assignments') or []
        return cls(updates=[AssignmentUpdate.from_payload(item) for item in items])

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NewConcept:
    name: str
    description: str = ""

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> NewConcept:
        if not isinstance(data, Mapping) or not data.get('name'):
            raise ValidationError("New concepts require a 'name'", concept=repr(data))
        return cls(name=_text(data['name']), description=_text(data.get('description')))


@dataclass
class NewConceptsData:
    concepts: List[NewConcept] = field(default_factory=list)

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> NewConceptsData:
        return cls(concepts=[NewConcept.from_payload(item) for item in data.get('concepts') or []])

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CourseStatusData:
    course_status: str = ""
    course_observation: str = ""

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> CourseStatusData:
        return cls(
            course_status=_text(data.get('courseStatus')),
            course_observation=_text(data.get('courseObservation')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'courseStatus': self.course_status,
            'courseObservation': self.course_observation,
        }


STAGE_PAYLOADS = {
    'summary': SummaryData,
    'conceptsLearned': ConceptsLearnedData,
    'assignmentUpdates': AssignmentUpdatesData,
    'newConcepts': NewConceptsData,
    'courseStatus': CourseStatusData,
}


def parse_stage_data(stage: str, data: Optional[Mapping[str, Any]]):
    """Typed payload for a non-assembly stage; missing data gives the defaults."""
    payload_type = STAGE_PAYLOADS[stage]
    if not data:
        return payload_type()
    if not isinstance(data, Mapping):
        raise ValidationError(f"stageData for '{stage}' must be an object", stage=stage)
    return payload_type.from_payload(data)


# -- records and assembly ------------------------------------------------

@dataclass
class EndSessionArgs:
    """Reduced payload applied to the graph by the assembly stage."""
    date: str
    summary: str = ""
    duration: str = "unknown"
    course: str = ""
    concepts_learned: List[str] = field(default_factory=list)
    assignment_updates: List[AssignmentUpdate] = field(default_factory=list)
    course_status: str = ""
    course_observation: str = ""
    new_concepts: List[NewConcept] = field(default_factory=list)

    @classmethod
    def from_stages(cls, records: List[Record], today: date) -> EndSessionArgs:
        """Reduce analysis records (first record of each stage wins)."""
        def first(stage: str):
            for record in records:
                if record.get('type') == ANALYSIS_STAGE and record.get('stage') == stage:
                    return parse_stage_data(stage, record.get('stageData'))
            return STAGE_PAYLOADS[stage]()

        summary = first('summary')
        status = first('courseStatus')
        return cls(
            date=today.isoformat(),
            summary=summary.summary,
            duration=summary.duration or "unknown",
            course=summary.course,
            concepts_learned=first('conceptsLearned').concepts,
            assignment_updates=first('assignmentUpdates').updates,
            course_status=status.course_status,
            course_observation=status.course_observation,
            new_concepts=first('newConcepts').concepts,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'date': self.date,
            'summary': self.summary,
            'duration': self.duration,
            'course': self.course,
            'conceptsLearned': list(self.concepts_learned),
            'assignmentUpdates': [asdict(u) for u in self.assignment_updates],
            'courseStatus': self.course_status,
            'courseObservation': self.course_observation,
            'newConcepts': [asdict(c) for c in self.new_concepts],
        }


@dataclass
class StageRecord:
    stage: str
    stage_number: int
    analysis: str
    stage_data: Dict[str, Any]
    completed: bool

    def to_dict(self) -> Dict[str, Any]:
        """The stage result as returned to the caller."""
        return {
            'stage': self.stage,
            'stageNumber': self.stage_number,
            'analysis': self.analysis,
            'stageData': self.stage_data,
            'completed': self.completed,
        }

    def to_record(self) -> Record:
        """The stage result as stored in the session."""
        return {'type': ANALYSIS_STAGE, **self.to_dict()}


@dataclass
class StageRequest:
    """Arguments of one ``endsession`` call."""
    session_id: str
    stage: str
    stage_number: int
    total_stages: int
    analysis: Optional[str] = None
    stage_data: Optional[Dict[str, Any]] = None
    next_stage_needed: bool = True
    is_revision: bool = False
    revises_stage: Optional[int] = None

    def __post_init__(self):
        if self.stage_number < 1 or self.total_stages < 1:
            raise ValidationError(
                "stageNumber and totalStages must be positive",
                stage_number=self.stage_number,
                total_stages=self.total_stages,
            )
        if self.revises_stage is not None and self.revises_stage < 1:
            raise ValidationError("revisesStage must be positive", revises_stage=self.revises_stage)


@dataclass
class StageOutcome:
    """Result of one workflow step, serializable as the tool envelope."""
    stage: str
    next_stage_needed: bool
    stage_result: StageRecord
    args: Optional[EndSessionArgs] = None
    summary_message: Optional[str] = None

    @property
    def session_recorded(self) -> bool:
        return self.summary_message is not None

    def to_dict(self) -> Dict[str, Any]:
        if self.session_recorded:
            return {
                'success': True,
                'stageCompleted': self.stage,
                'nextStageNeeded': False,
                'stageResult': self.stage_result.to_dict(),
                'sessionRecorded': True,
                'summaryMessage': self.summary_message,
            }
        return {
            'success': True,
            'stageCompleted': self.stage,
            'nextStageNeeded': self.next_stage_needed,
            'stageResult': self.stage_result.to_dict(),
            'endSessionArgs': self.args.to_dict() if self.args is not None else None,
        }


class SessionRecordingError(StudyGraphError):
    """Applying the assembled session to the graph failed part-way."""
    pass


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class EndSessionWorkflow:
    """
    Staged accumulator that closes a study session.

    Args:
        store: Graph receiving the session's results
        sessions: Session record store
        today: Clock returning the session date (default: today in UTC)
    """

    def __init__(self, store: GraphStore, sessions: SessionStore,
                 today: Optional[Callable[[], date]] = None):
        self.store = store
        self.sessions = sessions
        self._today = today or _utc_today

    # -- stage handling ---------------------------------------------------

    @staticmethod
    def _check_order(recorded: List[Record], stage: str) -> None:
        """Reject a stage at or before the furthest stage already recorded."""
        positions = [STAGES.index(r['stage']) for r in recorded if r.get('stage') in STAGES]
        if not positions:
            return
        furthest = max(positions)
        if STAGES.index(stage) <= furthest:
            raise StageOrderError(
                f"Stage '{stage}' cannot follow '{STAGES[furthest]}'; "
                f"stages run in the order {' -> '.join(STAGES)}",
                stage=stage,
                last_stage=STAGES[furthest],
            )

    def _build_record(self, request: StageRequest, records: List[Record]):
        if request.stage == 'assembly':
            args = EndSessionArgs.from_stages(records, self._today())
            record = StageRecord(
                stage='assembly',
                stage_number=request.stage_number,
                analysis=ASSEMBLY_ANALYSIS,
                stage_data=args.to_dict(),
                completed=True,
            )
            return record, args

        payload = parse_stage_data(request.stage, request.stage_data)
        record = StageRecord(
            stage=request.stage,
            stage_number=request.stage_number,
            analysis=request.analysis or "",
            stage_data=payload.to_dict(),
            completed=not request.next_stage_needed,
        )
        return record, None

    @staticmethod
    def _store_record(records: List[Record], record: StageRecord, request: StageRequest) -> None:
        """Append, or replace the ``revises_stage``-th analysis record in place."""
        if request.is_revision and request.revises_stage:
            seen = 0
            for index, existing in enumerate(records):
                if existing.get('type') != ANALYSIS_STAGE:
                    continue
                seen += 1
                if seen == request.revises_stage:
                    records[index] = record.to_record()
                    return
        records.append(record.to_record())

    def process(self, request: StageRequest) -> StageOutcome:
        """
        Run one stage.

        Raises:
            UnknownStageError: Stage name outside the declared sequence
            SessionNotFoundError: Unknown session id (nothing is mutated)
            StageOrderError: Stage out of sequence and not a revision
            SessionRecordingError: Applying the assembled session failed
        """
        if request.stage not in STAGES:
            raise UnknownStageError(
                f"Unknown stage: {request.stage}. Valid stages are: {', '.join(STAGES)}",
                stage=request.stage,
            )

        with self.sessions.editing() as sessions:
            if request.session_id not in sessions:
                raise SessionNotFoundError(
                    f"Session with ID {request.session_id} not found. "
                    f"Please start a new session with startsession.",
                    session_id=request.session_id,
                )
            records = sessions[request.session_id]
            if any(r.get('type') == SESSION_COMPLETED for r in records):
                raise StageOrderError(
                    f"Session {request.session_id} has already been recorded",
                    session_id=request.session_id,
                )
            analysis = [r for r in records if r.get('type') == ANALYSIS_STAGE]
            if not request.is_revision and request.stage != 'assembly':
                self._check_order(analysis, request.stage)

            record, args = self._build_record(request, records)
            self._store_record(records, record, request)

        logger.info(f"Session {request.session_id}: recorded stage '{request.stage}'")

        outcome = StageOutcome(
            stage=request.stage,
            next_stage_needed=request.next_stage_needed,
            stage_result=record,
            args=args,
        )
        if request.stage == 'assembly' and not request.next_stage_needed:
            outcome.summary_message = self.apply(request.session_id, args)
        return outcome

    # -- graph mutation ---------------------------------------------------

    def _concept_names(self, day: date, count: int) -> List[str]:
        """``Concept_<YYYYMMDD>_<i>`` names, numbered after any already taken that day."""
        prefix = f"Concept_{today_compact(day)}_"
        taken = 0
        for entity in self.store.load().entities:
            suffix = entity.name[len(prefix):] if entity.name.startswith(prefix) else ""
            if suffix.isdigit():
                taken = max(taken, int(suffix))
        return [f"{prefix}{taken + i}" for i in range(1, count + 1)]

    def _contain(self, course: str, concepts: List[Entity]) -> None:
        self.store.create_relations(
            {'from': course, 'to': c.name, 'relationType': 'contains'} for c in concepts
        )

    def apply(self, session_id: str, args: EndSessionArgs) -> str:
        """
        Apply assembled arguments to the graph and mark the session completed.

        Returns:
            The session-recorded summary message

        Raises:
            SessionRecordingError: First failing step (earlier steps stay applied)
        """
        day = date.fromisoformat(args.date)
        try:
            if args.concepts_learned:
                names = self._concept_names(day, len(args.concepts_learned))
                learned = self.store.create_entities(
                    Entity(name, 'concept', [text])
                    for name, text in zip(names, args.concepts_learned)
                )
                self._contain(args.course, learned)

            valid_statuses = self.store.schema.statuses_for('assignment')
            for update in args.assignment_updates:
                if self.store.load().get(update.name, 'assignment') is None:
                    logger.warning(f"Assignment '{update.name}' not found, skipping status update")
                    continue
                if update.status not in valid_statuses:
                    logger.warning(f"Assignment '{update.name}' given unknown status '{update.status}'")
                self.store.update_observations(update.name, ['status'], [f"status:{update.status}"])
                if update.status == 'completed' and not self.store.has_relation(
                        args.course, update.name, 'created_for'):
                    self.store.create_relations([
                        {'from': args.course, 'to': update.name, 'relationType': 'created_for'}
                    ])

            if self.store.load().get(args.course, 'course') is not None:
                drop = ['updated']
                append = []
                if args.course_status:
                    drop.append('status')
                    append.append(f"status:{args.course_status}")
                append.append(f"updated:{args.date}")
                if args.course_observation:
                    append.append(args.course_observation)
                self.store.update_observations(args.course, drop, append)
            else:
                logger.warning(f"Course '{args.course}' not found, skipping course status update")

            if args.new_concepts:
                created = self.store.create_entities(
                    Entity(c.name, 'concept',
                           ([c.description] if c.description else []) + [f"last_studied:{args.date}"])
                    for c in args.new_concepts
                )
                self._contain(args.course, created)

            self.sessions.append(session_id, {
                'type': SESSION_COMPLETED,
                'timestamp': utc_timestamp(),
                'date': args.date,
                'summary': args.summary,
                'course': args.course,
            })
        except (StudyGraphError, LockTimeoutError, OSError) as e:
            message = e.message if isinstance(e, StudyGraphError) else str(e)
            logger.error(f"Recording session {session_id} failed: {message}")
            raise SessionRecordingError(
                f"Error recording study session: {message}", session_id=session_id
            ) from e

        logger.info(f"Session {session_id} recorded for course '{args.course}'")
        return format_session_recorded(args)
