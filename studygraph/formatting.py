"""
Markdown text blocks returned by the MCP tools.

``startsession`` and ``loadcontext`` answer with human-readable markdown
rather than JSON; the session-recorded message is embedded in the final
``endsession`` envelope.
"""

from typing import Iterable, List, Optional

from .graph.results import (
    AssignmentStatus,
    CourseOverview,
    DeadlineReport,
    ExamPrep,
    RelatedConceptsReport,
    TermOverview,
)
from .graph.types import Entity, KnowledgeGraph

SUMMARY_PREVIEW = 100


def _lines(items: Iterable[str], empty: str, separator: str = "\n") -> str:
    text = separator.join(items)
    return text or empty


def _description(entity: Entity, default: str = "No description") -> str:
    """``Description:`` field, else the first free-text observation."""
    described = entity.field('description')
    if described:
        return described
    return entity.descriptions[0] if entity.descriptions else default


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


# -- start session -------------------------------------------------------

def format_start_session(session_id: str, recent_sessions: list,
                         courses: List[Entity], deadlines: DeadlineReport,
                         concepts: List[Entity], days_ahead: int = 14) -> str:
    """Options offered to the user at the start of a study session."""
    sessions_text = _lines(
        (
            f"- {s.date or 'Unknown date'}: {s.course or 'Unknown course'} - "
            f"{(s.summary or 'No summary available')[:SUMMARY_PREVIEW]}"
            f"{'...' if s.summary and len(s.summary) > SUMMARY_PREVIEW else ''}"
            for s in recent_sessions
        ),
        "No recent sessions found.",
    )
    courses_text = _lines(
        (f"- **{c.name}** ({c.code or ''}): {_description(c)}" for c in courses),
        "No active courses found.",
    )
    deadlines_text = _lines(
        (
            f"- **{d.entity.name}** ({d.course.name}): Due in "
            f"{_plural(d.days_remaining, 'day')} on {d.due_date.date().isoformat()}"
            for d in deadlines.deadlines
        ),
        f"No upcoming deadlines in the next {days_ahead} days.",
    )
    concepts_text = _lines(
        (f"- **{c.name}**: Last studied on {c.last_studied or 'Unknown'}" for c in concepts),
        "No recently studied concepts found.",
    )

    return f"""# Ask user to choose what to focus on in this session. Present the following options:

## Recent Study Sessions
{sessions_text}

## Current Courses
{courses_text}

## Upcoming Deadlines (Next {days_ahead} Days)
{deadlines_text}

## Recently Studied Concepts
{concepts_text}

To load the context for a specific entity, use the `loadcontext` tool with the entity name and session ID - {session_id}"""


# -- load context --------------------------------------------------------

def _resource_line(resource: Entity) -> str:
    return f"- **{resource.name}** ({resource.field('type') or 'Unknown type'})"


def _lecture_line(lecture: Entity) -> str:
    return (
        f"- **{lecture.name}** ({lecture.field('date') or 'No date'}): "
        f"{lecture.field('topic') or 'No topic'}"
    )


def format_course_context(entity: Entity, overview: CourseOverview) -> str:
    assignments_text = _lines(
        (
            f"- **{a.name}** (Due: {a.field('due') or 'No due date'}, "
            f"Status: {a.status or 'Not started'}): {_description(a)}"
            for a in overview.assignments
        ),
        "No assignments found",
    )
    exams_text = _lines(
        (f"- **{e.name}** ({e.field('date') or 'No date'}): {_description(e)}" for e in overview.exams),
        "No exams found",
    )
    resources_text = _lines(
        (f"{_resource_line(r)}: {_description(r)}" for r in overview.resources),
        "No resources found",
    )
    if overview.professor is not None:
        professor_text = "\n".join(
            [f"**Professor**: {overview.professor.name}"] + overview.professor.observations
        )
    else:
        professor_text = "No professor information"
    term_text = f"**Term**: {overview.term.name}" if overview.term is not None else "No term information"

    return f"""# Course Context: {entity.name}

## Course Details
- **Code**: {entity.code or 'No code'}
- **Status**: {entity.status or 'current'}
- **Schedule**: {entity.field('schedule') or 'No schedule'}
- **Location**: {entity.field('location') or 'No location'}
- **Description**: {_description(entity)}
- {term_text}
- {professor_text}

## Lectures
{_lines((_lecture_line(lecture) for lecture in overview.lectures), 'No lectures found')}

## Assignments
{assignments_text}

## Exams
{exams_text}

## Key Concepts
{_lines((f"- **{c.name}**" for c in overview.concepts), 'No concepts found')}

## Resources
{resources_text}"""


def format_assignment_context(entity: Entity, status: AssignmentStatus) -> str:
    if status.days_remaining is None:
        remaining = "No due date specified"
    elif status.is_overdue:
        remaining = f"OVERDUE by {abs(status.days_remaining)} days"
    else:
        remaining = f"{status.days_remaining} days remaining"

    notes_text = _lines(
        (f"- **{n.name}** ({n.field('date') or 'No date'})" for n in status.notes),
        "No notes found",
    )
    return f"""# Assignment Context: {entity.name}

## Assignment Details
- **Course**: {status.course.name if status.course is not None else 'Unknown course'}
- **Status**: {status.status}
- **Due Date**: {status.due_date or 'No due date'}
- **Points**: {status.points or 'Not specified'}
- **Time Remaining**: {remaining}

## Instructions
{status.instructions or 'No instructions provided'}

## Related Concepts
{_lines((f"- **{c.name}**" for c in status.concepts), 'No related concepts found')}

## Helpful Resources
{_lines((_resource_line(r) for r in status.resources), 'No resources found')}

## Your Notes
{notes_text}"""


def format_exam_context(entity: Entity, prep: ExamPrep) -> str:
    if prep.days_remaining is None:
        remaining = "No exam date specified"
    else:
        remaining = f"{prep.days_remaining} days until exam"

    return f"""# Exam Context: {entity.name}

## Exam Details
- **Course**: {prep.course.name if prep.course is not None else 'Unknown course'}
- **Date**: {prep.exam_date or 'No date scheduled'}
- **Time Remaining**: {remaining}
- **Location**: {prep.location or 'No location specified'}
- **Format**: {prep.exam_format or 'No format specified'}
- **Duration**: {prep.duration or 'No duration specified'}

## Concepts to Study
{_lines((f"- **{c.name}**" for c in prep.concepts), 'No concepts listed')}

## Key Lectures
{_lines((_lecture_line(lecture) for lecture in prep.key_lectures), 'No lectures found')}

## Study Resources
{_lines((_resource_line(r) for r in prep.resources), 'No resources found')}"""


def format_concept_context(entity: Entity, report: RelatedConceptsReport) -> str:
    related_text = _lines(
        (
            f"- **{r.concept.name}** (Connection: {' → '.join(r.path)})"
            for r in report.related
        ),
        "No related concepts found",
    )
    return f"""# Concept Context: {entity.name}

## Concept Details
- **Difficulty Level**: {entity.field('level') or 'Beginner'}
- **Description**: {_description(entity, 'No description available')}

## Related Concepts
{related_text}

## Covered in Courses
{_lines((f"- **{c.name}**" for c in report.courses), 'No courses found')}

## Learning Resources
{_lines((_resource_line(r) for r in report.resources), 'No resources found')}"""


def format_term_context(entity: Entity, overview: TermOverview) -> str:
    courses_text = _lines(
        (
            f"- **{row.course.name}** ({row.code or 'No code'}, {row.status}): "
            f"{row.completion_rate}% complete"
            for row in overview.courses
        ),
        "No courses found",
        separator="\n\n",
    )
    deadlines_text = _lines(
        (
            f"- **{d.entity.name}** ({d.entity.entity_type})\n"
            f"  Course: {d.course.name}\n"
            f"  Due: {d.due_date.date().isoformat()} ({d.days_remaining} days remaining)"
            for d in overview.upcoming_deadlines
        ),
        "No upcoming deadlines",
        separator="\n\n",
    )
    return f"""# Term Context: {entity.name}

## Term Details
- **Start Date**: {overview.start_date or 'No start date'}
- **End Date**: {overview.end_date or 'No end date'}
- **Status**: {entity.status or 'Unknown status'}

## Courses This Term
{courses_text}

## Upcoming Deadlines
{deadlines_text}"""


def format_entity_context(entity: Entity, graph: KnowledgeGraph) -> str:
    """Generic block: observations plus incoming and outgoing relations."""
    incoming = []
    outgoing = []
    for relation in graph.relations:
        if relation.target == entity.name:
            source = graph.get(relation.source)
            if source is not None:
                incoming.append(
                    f"- **{source.name}** ({source.entity_type}) → {relation.relation_type} → {entity.name}"
                )
        if relation.source == entity.name:
            target = graph.get(relation.target)
            if target is not None:
                outgoing.append(
                    f"- **{entity.name}** → {relation.relation_type} → **{target.name}** ({target.entity_type})"
                )

    return f"""# Entity Context: {entity.name} ({entity.entity_type})

## Observations
{_lines((f"- {o}" for o in entity.observations), 'No observations')}

## Incoming Relations
{_lines(incoming, 'No incoming relations')}

## Outgoing Relations
{_lines(outgoing, 'No outgoing relations')}"""


# -- end session ---------------------------------------------------------

def format_session_recorded(args) -> str:
    """Confirmation for an applied session (``args`` is an ``EndSessionArgs``)."""
    new_concepts: Optional[str] = None
    if args.new_concepts:
        new_concepts = "## New Concepts Added\n" + "\n".join(
            f"- {c.name}: {c.description}" for c in args.new_concepts
        )

    return f"""# Study Session Recorded

I've recorded your study session from {args.date} focusing on {args.course}.

## Concepts Learned
{_lines((f"- {c}" for c in args.concepts_learned), 'No specific concepts recorded.')}

## Assignment Updates
{_lines((f"- {u.name}: {u.status}" for u in args.assignment_updates), 'No assignment updates.')}

## Course Status
Course {args.course} has been updated to: {args.course_status}

{new_concepts or 'No new concepts added.'}

## Session Summary
{args.summary}

Would you like me to perform any additional updates to your student knowledge graph?"""
