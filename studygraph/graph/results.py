"""
Result Dataclasses for the Query Layer
======================================

Typed containers returned by ``GraphQueries``. Each one serializes with
``to_dict()`` to the camelCase JSON shape returned by the
``advancedcontext`` tool, with entities rendered in the document format
and datetimes as ISO-8601 strings.

Example:
    overview = queries.course_overview("Physics 101")
    print(overview.info["code"], len(overview.assignments))
    payload = overview.to_dict()
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .types import Entity


def _entity(entity: Optional[Entity]) -> Optional[Dict[str, Any]]:
    return entity.to_dict() if entity is not None else None


def _entities(entities: List[Entity]) -> List[Dict[str, Any]]:
    return [e.to_dict() for e in entities]


def _timestamp(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat() if moment is not None else None


@dataclass
class CourseOverview:
    """
    Everything linked to one course.

    Attributes:
        course: The course entity
        term: Term the course is ``part_of`` (None if unlinked)
        professor: Professor the course is ``taught_by``
        info: code, location, schedule and status (``"N/A"`` when absent)
        lectures: Sorted by ``Date:``
        assignments: Sorted by ``Due:``
        exams: Sorted by ``Date:``
    """
    course: Entity
    term: Optional[Entity]
    professor: Optional[Entity]
    info: Dict[str, str]
    lectures: List[Entity] = field(default_factory=list)
    assignments: List[Entity] = field(default_factory=list)
    exams: List[Entity] = field(default_factory=list)
    concepts: List[Entity] = field(default_factory=list)
    resources: List[Entity] = field(default_factory=list)
    notes: List[Entity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "course": _entity(self.course),
            "term": _entity(self.term),
            "professor": _entity(self.professor),
            "info": dict(self.info),
            "summary": {
                "lectureCount": len(self.lectures),
                "assignmentCount": len(self.assignments),
                "examCount": len(self.exams),
                "conceptCount": len(self.concepts),
                "resourceCount": len(self.resources),
                "noteCount": len(self.notes),
            },
            "lectures": _entities(self.lectures),
            "assignments": _entities(self.assignments),
            "exams": _entities(self.exams),
            "concepts": _entities(self.concepts),
            "resources": _entities(self.resources),
            "notes": _entities(self.notes),
        }


@dataclass(frozen=True)
class Deadline:
    """
    An assignment due date or exam date.

    Attributes:
        entity: The assignment or exam
        kind: ``"assignment"`` or ``"exam"``
        course: Owning course
        due_date: Parsed ``Due:``/``Date:`` value
        days_remaining: Ceiling of the days between now and ``due_date``
    """
    entity: Entity
    kind: str
    course: Entity
    due_date: datetime
    days_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": _entity(self.entity),
            "type": self.kind,
            "course": _entity(self.course),
            "dueDate": _timestamp(self.due_date),
            "daysRemaining": self.days_remaining,
        }


@dataclass
class DeadlineReport:
    """Deadlines inside a window, sorted ascending."""
    deadlines: List[Deadline]
    start_date: str
    end_date: str
    course_filter: Optional[str] = None
    term_filter: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.deadlines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deadlines": [d.to_dict() for d in self.deadlines],
            "startDate": self.start_date,
            "endDate": self.end_date,
            "courseFilter": self.course_filter,
            "termFilter": self.term_filter,
            "count": self.count,
        }


@dataclass
class AssignmentStatus:
    """
    Progress view of one assignment.

    ``time_remaining`` is in signed milliseconds; negative means overdue.
    """
    assignment: Entity
    course: Optional[Entity]
    status: str
    due_date: Optional[str]
    points: Optional[str]
    instructions: Optional[str]
    time_remaining: Optional[int]
    days_remaining: Optional[int]
    is_overdue: bool
    concepts: List[Entity] = field(default_factory=list)
    resources: List[Entity] = field(default_factory=list)
    notes: List[Entity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assignment": _entity(self.assignment),
            "course": _entity(self.course),
            "info": {
                "status": self.status,
                "dueDate": self.due_date,
                "pointsWorth": self.points,
                "instructions": self.instructions,
                "timeRemaining": self.time_remaining,
                "daysRemaining": self.days_remaining,
                "isOverdue": self.is_overdue,
            },
            "concepts": _entities(self.concepts),
            "resources": _entities(self.resources),
            "notes": _entities(self.notes),
        }


@dataclass
class ExamPrep:
    """Study material and timing for one exam."""
    exam: Entity
    course: Optional[Entity]
    exam_date: Optional[str]
    location: Optional[str]
    exam_format: Optional[str]
    duration: Optional[str]
    time_remaining: Optional[int]
    days_remaining: Optional[int]
    concepts: List[Entity] = field(default_factory=list)
    resources: List[Entity] = field(default_factory=list)
    notes: List[Entity] = field(default_factory=list)
    previous_exams: List[Entity] = field(default_factory=list)
    key_lectures: List[Entity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "exam": _entity(self.exam),
            "course": _entity(self.course),
            "info": {
                "examDate": self.exam_date,
                "examLocation": self.location,
                "examFormat": self.exam_format,
                "examDuration": self.duration,
                "timeRemaining": self.time_remaining,
                "daysRemaining": self.days_remaining,
            },
            "concepts": _entities(self.concepts),
            "resources": _entities(self.resources),
            "notes": _entities(self.notes),
            "previousExams": _entities(self.previous_exams),
            "keyLectures": _entities(self.key_lectures),
            "summary": {
                "conceptCount": len(self.concepts),
                "resourceCount": len(self.resources),
                "noteCount": len(self.notes),
                "previousExamCount": len(self.previous_exams),
                "keyLectureCount": len(self.key_lectures),
            },
        }


@dataclass(frozen=True)
class RelatedConcept:
    """
    A concept reached by the related-concept traversal.

    Attributes:
        concept: The concept reached
        path: Step labels from the seed, e.g. ``["related_to Y", "prerequisite_for Z"]``
        depth: Number of steps from the seed
        courses: Courses that cover the concept
        resources: Resources that help with the concept
    """
    concept: Entity
    path: List[str]
    depth: int
    courses: List[Entity]
    resources: List[Entity]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "concept": _entity(self.concept),
            "relationPath": list(self.path),
            "depth": self.depth,
            "courses": _entities(self.courses),
            "resources": _entities(self.resources),
        }


@dataclass
class RelatedConceptsReport:
    """Traversal result ordered by depth."""
    concept: Entity
    related: List[RelatedConcept]
    max_depth: int
    courses: List[Entity] = field(default_factory=list)
    resources: List[Entity] = field(default_factory=list)

    def names(self) -> List[str]:
        return [r.concept.name for r in self.related]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "concept": _entity(self.concept),
            "courses": _entities(self.courses),
            "resources": _entities(self.resources),
            "relatedConcepts": [r.to_dict() for r in self.related],
            "summary": {
                "totalRelated": len(self.related),
                "maxDepth": self.max_depth,
            },
        }


@dataclass
class LectureEntry:
    lecture: Entity
    date: Optional[str]
    topic: Optional[str]
    notes: List[Entity] = field(default_factory=list)
    concepts: List[Entity] = field(default_factory=list)
    resources: List[Entity] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lecture": _entity(self.lecture),
            "info": {"date": self.date, "topic": self.topic},
            "notes": _entities(self.notes),
            "concepts": _entities(self.concepts),
            "resources": _entities(self.resources),
            "summary": {
                "noteCount": len(self.notes),
                "conceptCount": len(self.concepts),
                "resourceCount": len(self.resources),
            },
        }


@dataclass
class LectureNotesReport:
    course: Entity
    lectures: List[LectureEntry]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "course": _entity(self.course),
            "lectures": [entry.to_dict() for entry in self.lectures],
            "summary": {
                "lectureCount": len(self.lectures),
                "totalNotes": sum(len(entry.notes) for entry in self.lectures),
                "totalConcepts": sum(len(entry.concepts) for entry in self.lectures),
            },
        }


@dataclass
class CourseProgress:
    """Per-course row of a term overview."""
    course: Entity
    professor: Optional[Entity]
    code: Optional[str]
    schedule: Optional[str]
    status: str
    completed_assignments: int
    total_assignments: int
    upcoming_exam: Optional[Entity]
    exam_count: int

    @property
    def completion_rate(self) -> int:
        """Completed share in percent, rounded half up (0 with no assignments)."""
        if self.total_assignments == 0:
            return 0
        return (200 * self.completed_assignments + self.total_assignments) // (2 * self.total_assignments)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "course": _entity(self.course),
            "professor": _entity(self.professor),
            "info": {
                "code": self.code,
                "schedule": self.schedule,
                "status": self.status,
            },
            "progress": {
                "completedAssignments": self.completed_assignments,
                "totalAssignments": self.total_assignments,
                "completionRate": self.completion_rate,
            },
            "upcomingExam": _entity(self.upcoming_exam),
            "summary": {
                "assignmentCount": self.total_assignments,
                "examCount": self.exam_count,
            },
        }


@dataclass
class TermOverview:
    """
    Courses and future deadlines of one term.

    ``deadlines`` holds every future deadline; only the first
    ``deadline_limit`` are serialized as ``upcomingDeadlines``.
    """
    term: Entity
    start_date: Optional[str]
    end_date: Optional[str]
    status: str
    courses: List[CourseProgress]
    deadlines: List[Deadline]
    deadline_limit: int = 10

    @property
    def upcoming_deadlines(self) -> List[Deadline]:
        return self.deadlines[:self.deadline_limit]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "term": _entity(self.term),
            "info": {
                "startDate": self.start_date,
                "endDate": self.end_date,
                "status": self.status,
            },
            "courses": [c.to_dict() for c in self.courses],
            "upcomingDeadlines": [d.to_dict() for d in self.upcoming_deadlines],
            "summary": {
                "courseCount": len(self.courses),
                "deadlineCount": len(self.deadlines),
            },
        }
