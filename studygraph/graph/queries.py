"""
Query / derivation layer.

Read-only views assembled by joining entities through typed relations:
course overview, upcoming deadlines, assignment status, exam prep,
related concepts, lecture notes and term overview, plus the lookups the
start-session summary needs (current term, active courses, recently
studied concepts).

Every query loads the graph fresh from the store and raises
``NotFoundError`` when its subject is missing or has the wrong type.
Missing observations become ``None`` in the result rather than errors.

Relation directions used throughout::

    course  --part_of-->       term
    lecture --part_of-->       course
    course  --taught_by-->     professor
    assignment --assigned_in--> course
    course  --scheduled_for--> exam
    course|lecture|assignment|exam --covers--> concept
    resource --helps_with-->   course|lecture|assignment|exam|concept
    note    --created_for-->   course|lecture|assignment|exam
    note    --references-->    concept
"""

import logging
from datetime import datetime, timedelta, timezone
from functools import cmp_to_key
from typing import Callable, List, Optional

from ..config import StudyGraphConfig, get_default_config
from .errors import NotFoundError, ValidationError
from .observations import days_until, iso_date, milliseconds_between, parse_date
from .results import (
    AssignmentStatus,
    CourseOverview,
    CourseProgress,
    Deadline,
    DeadlineReport,
    ExamPrep,
    LectureEntry,
    LectureNotesReport,
    RelatedConceptsReport,
    TermOverview,
)
from .store import GraphStore
from .traversal import ConceptWalker
from .types import Entity, KnowledgeGraph, unique_by_name

logger = logging.getLogger(__name__)

ACTIVE_TERM_STATUSES = ('active', 'current', 'in_progress')
ACTIVE_COURSE_STATUSES = ('current', 'active', 'in_progress')


def sort_by_date(entities: List[Entity], key: str) -> List[Entity]:
    """
    Sort entities ascending by a date field.

    A pair where either side lacks a parsable date compares equal, so such
    entities keep their relative position against each other.
    """
    def compare(a: Entity, b: Entity) -> int:
        left, right = a.fields.date(key), b.fields.date(key)
        if left is None or right is None:
            return 0
        return (left > right) - (left < right)

    return sorted(entities, key=cmp_to_key(compare))


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class GraphQueries:
    """
    Derived views over a ``GraphStore``.

    Args:
        store: Source of the graph
        now: Clock returning an aware datetime (default: UTC now)
        config: Window sizes and list limits
    """

    def __init__(self, store: GraphStore, now: Optional[Callable[[], datetime]] = None,
                 config: Optional[StudyGraphConfig] = None):
        self.store = store
        self.schema = store.schema
        self.config = config or get_default_config()
        self._clock = now or _utc_now

    def now(self) -> datetime:
        return self._clock()

    def _require(self, graph: KnowledgeGraph, name: str, entity_type: str) -> Entity:
        entity = graph.get(name, entity_type)
        if entity is None:
            raise NotFoundError(
                f"{entity_type.capitalize()} '{name}' not found",
                name=name,
                entity_type=entity_type,
            )
        return entity

    # -- course -----------------------------------------------------------

    def course_overview(self, course_name: str) -> CourseOverview:
        """Everything linked to a course, with lectures/assignments/exams sorted by date."""
        graph = self.store.load()
        course = self._require(graph, course_name, 'course')

        info = {
            key: course.field(key) or 'N/A'
            for key in ('code', 'location', 'schedule', 'status')
        }
        return CourseOverview(
            course=course,
            term=graph.first_target(course_name, 'part_of', 'term'),
            professor=graph.first_target(course_name, 'taught_by', 'professor'),
            info=info,
            lectures=sort_by_date(graph.sources(course_name, 'part_of', 'lecture'), 'date'),
            assignments=sort_by_date(graph.sources(course_name, 'assigned_in', 'assignment'), 'due'),
            exams=sort_by_date(graph.targets(course_name, 'scheduled_for', 'exam'), 'date'),
            concepts=graph.targets(course_name, 'covers', 'concept'),
            resources=graph.sources(course_name, 'helps_with', 'resource'),
            notes=graph.sources(course_name, 'created_for', 'note'),
        )

    # -- deadlines --------------------------------------------------------

    def _deadlines(self, graph: KnowledgeGraph, courses: List[Entity], now: datetime,
                   until: Optional[datetime] = None) -> List[Deadline]:
        """Assignment/exam dates at or after ``now`` (and not after ``until``), sorted."""
        found = []

        def in_window(moment: Optional[datetime]) -> bool:
            if moment is None or moment < now:
                return False
            return until is None or moment <= until

        for course in courses:
            for assignment in graph.sources(course.name, 'assigned_in', 'assignment'):
                due = assignment.due
                if in_window(due):
                    found.append(Deadline(assignment, 'assignment', course, due, days_until(due, now)))
            for exam in graph.targets(course.name, 'scheduled_for', 'exam'):
                when = exam.date
                if in_window(when):
                    found.append(Deadline(exam, 'exam', course, when, days_until(when, now)))

        found.sort(key=lambda d: d.due_date)
        return found

    def upcoming_deadlines(self, term_name: Optional[str] = None,
                           course_name: Optional[str] = None,
                           days_ahead: Optional[int] = None) -> DeadlineReport:
        """
        Assignments and exams falling due within the next ``days_ahead`` days.

        Args:
            term_name: Only courses ``part_of`` this term
            course_name: Only this course
            days_ahead: Window length (default from config, 14)

        Raises:
            NotFoundError: Unknown term, or the course filter matched nothing
            ValidationError: Negative window
        """
        if days_ahead is None:
            days_ahead = self.config.default_days_ahead
        if days_ahead < 0:
            raise ValidationError(f"daysAhead must be non-negative, got {days_ahead}", days_ahead=days_ahead)

        graph = self.store.load()
        now = self.now()
        until = now + timedelta(days=days_ahead)

        if term_name:
            self._require(graph, term_name, 'term')
            courses = graph.sources(term_name, 'part_of', 'course')
        else:
            courses = graph.of_type('course')

        if course_name:
            courses = [c for c in courses if c.name == course_name]
            if not courses:
                raise NotFoundError(f"Course '{course_name}' not found", name=course_name)

        deadlines = self._deadlines(graph, unique_by_name(courses), now, until)
        logger.debug(f"Found {len(deadlines)} deadlines in the next {days_ahead} days")
        return DeadlineReport(
            deadlines=deadlines,
            start_date=iso_date(now),
            end_date=iso_date(until),
            course_filter=course_name,
            term_filter=term_name,
        )

    # -- assignment / exam ------------------------------------------------

    def _remaining(self, moment: Optional[datetime], now: datetime):
        if moment is None:
            return None, None
        millis = milliseconds_between(moment, now)
        return millis, days_until(moment, now)

    def assignment_status(self, assignment_name: str) -> AssignmentStatus:
        """Status, timing, concepts, resources and notes of one assignment."""
        graph = self.store.load()
        assignment = self._require(graph, assignment_name, 'assignment')
        now = self.now()

        time_remaining, days_remaining = self._remaining(assignment.due, now)
        concepts = graph.targets(assignment_name, 'covers', 'concept')

        resources = graph.sources(assignment_name, 'helps_with', 'resource')
        notes = graph.sources(assignment_name, 'created_for', 'note')
        for concept in concepts:
            resources.extend(graph.sources(concept.name, 'helps_with', 'resource'))
            notes.extend(graph.sources(concept.name, 'references', 'note'))

        return AssignmentStatus(
            assignment=assignment,
            course=graph.first_target(assignment_name, 'assigned_in', 'course'),
            status=assignment.status or 'not_started',
            due_date=assignment.field('due'),
            points=assignment.field('points'),
            instructions=assignment.field('instructions'),
            time_remaining=time_remaining,
            days_remaining=days_remaining,
            is_overdue=time_remaining is not None and time_remaining < 0,
            concepts=concepts,
            resources=unique_by_name(resources),
            notes=unique_by_name(notes),
        )

    def exam_prep(self, exam_name: str) -> ExamPrep:
        """
        Preparation view of one exam.

        Concepts come from the exam's own ``covers`` edges, or from the
        course's when the exam has none. Key lectures are course lectures
        covering any of those concepts.
        """
        graph = self.store.load()
        exam = self._require(graph, exam_name, 'exam')
        course = graph.first_source(exam_name, 'scheduled_for', 'course')
        now = self.now()

        time_remaining, days_remaining = self._remaining(exam.date, now)

        concepts = graph.targets(exam_name, 'covers', 'concept')
        if not concepts and course is not None:
            concepts = graph.targets(course.name, 'covers', 'concept')

        resources = graph.sources(exam_name, 'helps_with', 'resource')
        notes = graph.sources(exam_name, 'created_for', 'note')
        for concept in concepts:
            resources.extend(graph.sources(concept.name, 'helps_with', 'resource'))
            notes.extend(graph.sources(concept.name, 'references', 'note'))

        previous_exams: List[Entity] = []
        key_lectures: List[Entity] = []
        if course is not None:
            resources.extend(graph.sources(course.name, 'helps_with', 'resource'))
            for other in graph.targets(course.name, 'scheduled_for', 'exam'):
                if other.name != exam_name and other.date is not None and other.date < now:
                    previous_exams.append(other)

            concept_names = {c.name for c in concepts}
            for lecture in graph.sources(course.name, 'part_of', 'lecture'):
                covered = {c.name for c in graph.targets(lecture.name, 'covers', 'concept')}
                if covered & concept_names:
                    key_lectures.append(lecture)

        return ExamPrep(
            exam=exam,
            course=course,
            exam_date=exam.field('date'),
            location=exam.field('location'),
            exam_format=exam.field('format'),
            duration=exam.field('duration'),
            time_remaining=time_remaining,
            days_remaining=days_remaining,
            concepts=concepts,
            resources=unique_by_name(resources),
            notes=unique_by_name(notes),
            previous_exams=previous_exams,
            key_lectures=sort_by_date(unique_by_name(key_lectures), 'date'),
        )

    # -- concepts ---------------------------------------------------------

    def related_concepts(self, concept_name: str, depth: Optional[int] = None) -> RelatedConceptsReport:
        """
        Concepts reachable within ``depth`` steps (see ``ConceptWalker``).

        Raises:
            NotFoundError: Unknown concept
            ValidationError: Depth below 1
        """
        if depth is None:
            depth = self.config.default_concept_depth
        if depth < 1:
            raise ValidationError(f"depth must be at least 1, got {depth}", depth=depth)

        graph = self.store.load()
        concept = self._require(graph, concept_name, 'concept')
        related = ConceptWalker(graph).walk(concept_name, depth)
        return RelatedConceptsReport(
            concept=concept,
            related=related,
            max_depth=depth,
            courses=graph.sources(concept_name, 'covers', 'course'),
            resources=graph.sources(concept_name, 'helps_with', 'resource'),
        )

    def recent_concepts(self, limit: Optional[int] = None) -> List[Entity]:
        """Concepts carrying ``last_studied:``, most recently studied first."""
        if limit is None:
            limit = self.config.recent_concepts_limit
        studied = [c for c in self.store.load().of_type('concept') if c.last_studied]
        oldest = datetime.min.replace(tzinfo=timezone.utc)
        studied.sort(key=lambda c: parse_date(c.last_studied) or oldest, reverse=True)
        return studied[:limit]

    # -- lectures ---------------------------------------------------------

    def lecture_notes(self, course_name: str) -> LectureNotesReport:
        """Lectures of a course by date, each with notes, concepts and resources."""
        graph = self.store.load()
        course = self._require(graph, course_name, 'course')

        entries = []
        for lecture in sort_by_date(graph.sources(course_name, 'part_of', 'lecture'), 'date'):
            concepts = graph.targets(lecture.name, 'covers', 'concept')
            resources = graph.sources(lecture.name, 'helps_with', 'resource')
            for concept in concepts:
                resources.extend(graph.sources(concept.name, 'helps_with', 'resource'))
            entries.append(LectureEntry(
                lecture=lecture,
                date=lecture.field('date'),
                topic=lecture.field('topic'),
                notes=graph.sources(lecture.name, 'created_for', 'note'),
                concepts=concepts,
                resources=unique_by_name(resources),
            ))
        return LectureNotesReport(course=course, lectures=entries)

    # -- term -------------------------------------------------------------

    def term_overview(self, term_name: str) -> TermOverview:
        """Per-course progress and the future deadlines of a term."""
        graph = self.store.load()
        term = self._require(graph, term_name, 'term')
        now = self.now()

        courses = graph.sources(term_name, 'part_of', 'course')
        rows = []
        for course in courses:
            assignments = graph.sources(course.name, 'assigned_in', 'assignment')
            exams = sort_by_date(graph.targets(course.name, 'scheduled_for', 'exam'), 'date')
            upcoming = next((e for e in exams if e.date is not None and e.date > now), None)
            rows.append(CourseProgress(
                course=course,
                professor=graph.first_target(course.name, 'taught_by', 'professor'),
                code=course.code,
                schedule=course.field('schedule'),
                status=course.status or 'in_progress',
                completed_assignments=sum(1 for a in assignments if a.status == 'completed'),
                total_assignments=len(assignments),
                upcoming_exam=upcoming,
                exam_count=len(exams),
            ))

        return TermOverview(
            term=term,
            start_date=term.field('startdate'),
            end_date=term.field('enddate'),
            status=term.status or 'in_progress',
            courses=rows,
            deadlines=self._deadlines(graph, courses, now),
            deadline_limit=self.config.term_deadline_limit,
        )

    def current_term(self) -> Optional[Entity]:
        """First term whose status marks it as running."""
        for term in self.store.load().of_type('term'):
            if (term.status or '').lower() in ACTIVE_TERM_STATUSES:
                return term
        return None

    def active_courses(self, term_name: Optional[str] = None) -> List[Entity]:
        """
        Courses being taken now.

        Courses ``part_of`` the given (or current) term; with no term, courses
        whose own status marks them as running.
        """
        graph = self.store.load()
        if term_name is None:
            current = self.current_term()
            term_name = current.name if current is not None else None
        else:
            self._require(graph, term_name, 'term')

        if term_name is not None:
            return graph.sources(term_name, 'part_of', 'course')
        return [
            c for c in graph.of_type('course')
            if (c.status or '').lower() in ACTIVE_COURSE_STATUSES
        ]
