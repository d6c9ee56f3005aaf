"""
MCP (Model Context Protocol) Server for the study knowledge graph.

Exposes the graph to AI assistants as six tools and one resource:

- startsession:    open a session and list what to focus on
- loadcontext:     markdown context for one entity
- endsession:      one stage of the end-session workflow
- buildcontext:    create entities, relations or observations
- deletecontext:   delete entities, relations or observations
- advancedcontext: read the graph, search, or run a derived view
- graph://student: the whole graph as JSON

Every tool catches its own failures and answers with
``{"success": false, "error": "<message>"}``.

Example:
    python -m studygraph.server

    Or programmatically:
    from studygraph.server import create_mcp_server
    server = create_mcp_server()
    server.run()
"""

import json
import logging
import sys
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from mcp.server import FastMCP

from .config import StudyGraphConfig
from .formatting import (
    format_assignment_context,
    format_concept_context,
    format_course_context,
    format_entity_context,
    format_exam_context,
    format_start_session,
    format_term_context,
)
from .graph.errors import (
    NotFoundError,
    StudyGraphError,
    UnknownOperationError,
    ValidationError,
)
from .graph.queries import GraphQueries
from .graph.store import GraphStore
from .sessions.store import CONTEXT_LOADED, SessionStore, utc_timestamp
from .sessions.workflow import EndSessionWorkflow, StageRequest

logger = logging.getLogger(__name__)

SERVER_NAME = "Context Manager"
GRAPH_RESOURCE_URI = "graph://student"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

MUTATION_TYPES = ('entities', 'relations', 'observations')
QUERY_TYPES = (
    'graph', 'search', 'nodes', 'course', 'deadlines',
    'assignment', 'exam', 'concepts', 'lecture', 'term',
)


def _require_param(params: Dict[str, Any], key: str) -> Any:
    value = params.get(key)
    if value is None or value == "":
        raise ValidationError(f"Missing required parameter '{key}'", parameter=key)
    return value


def _require_list(data: Any) -> List[Any]:
    if not isinstance(data, list):
        raise ValidationError("data must be an array")
    return data


def failure(error: Exception) -> Dict[str, Any]:
    """Failure envelope for any exception raised inside a tool."""
    message = error.message if isinstance(error, StudyGraphError) else str(error)
    return {"success": False, "error": message}


def to_text(payload: Any) -> str:
    """Render a tool result: text passes through, envelopes become indented JSON."""
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, indent=2, ensure_ascii=False)


class StudyGraphMCPServer:
    """
    MCP Server over a study knowledge graph.

    The tool logic lives in plain methods (``start_session``,
    ``load_context``, ``end_session``, ``build_context``,
    ``delete_context``, ``advanced_context``) that raise on failure; the
    registered tools wrap them and turn exceptions into failure envelopes.
    """

    def __init__(
        self,
        config: Optional[StudyGraphConfig] = None,
        name: str = SERVER_NAME,
        now: Optional[Callable[[], datetime]] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize the server and its stores.

        Args:
            config: Document locations and limits (default: from environment)
            name: Server name for MCP protocol
            now: Clock for the query layer (tests)
            today: Session date for the workflow (tests)
        """
        self.config = config or StudyGraphConfig.from_env()
        self.name = name

        self.store = GraphStore(self.config.memory_file_path, schema=self.config.schema)
        self.sessions = SessionStore(self.config.sessions_file_path)
        self.queries = GraphQueries(self.store, now=now, config=self.config)
        self.workflow = EndSessionWorkflow(self.store, self.sessions, today=today)

        logger.info(
            f"Graph document: {self.config.memory_file_path}; "
            f"session document: {self.config.sessions_file_path}"
        )

        self.mcp = FastMCP(
            name=self.name,
            instructions=(
                "Student knowledge graph. Start with startsession, load context for "
                "a course, assignment, exam, concept or term with loadcontext, record "
                "the session with endsession, and maintain the graph with "
                "buildcontext, deletecontext and advancedcontext."
            )
        )
        self._register_tools()
        self._register_resources()

    # -- tool logic -------------------------------------------------------

    def start_session(self) -> str:
        """Create a session and summarize recent sessions, courses, deadlines and concepts."""
        session_id = self.sessions.create()
        recent = self.sessions.recent(self.config.recent_sessions_limit, exclude=session_id)

        term = self.queries.current_term()
        courses = self.queries.active_courses(term.name if term is not None else None)
        deadlines = self.queries.upcoming_deadlines(
            term_name=term.name if term is not None else None,
            days_ahead=self.config.default_days_ahead,
        )
        concepts = self.queries.recent_concepts(self.config.recent_concepts_limit)

        return format_start_session(
            session_id, recent, courses, deadlines, concepts,
            days_ahead=self.config.default_days_ahead,
        )

    def load_context(self, entity_name: str, entity_type: str = "course",
                     session_id: Optional[str] = None) -> str:
        """
        Markdown context for one entity.

        When a session id is given the load is recorded in that session,
        creating the session if it is unknown.
        """
        if not self.store.schema.is_valid_entity_type(entity_type):
            raise ValidationError(
                f"Invalid entity type: {entity_type}. "
                f"Valid types are: {', '.join(self.store.schema.entity_types)}",
                entity_type=entity_type,
            )

        if session_id:
            self.sessions.ensure(session_id)
            self.sessions.append(session_id, {
                'type': CONTEXT_LOADED,
                'timestamp': utc_timestamp(),
                'entityName': entity_name,
                'entityType': entity_type,
            })

        graph = self.store.load()
        entity = graph.get(entity_name)
        if entity is None:
            raise NotFoundError(f"Entity {entity_name} not found", name=entity_name)

        if entity_type == 'course':
            return format_course_context(entity, self.queries.course_overview(entity_name))
        if entity_type == 'assignment':
            return format_assignment_context(entity, self.queries.assignment_status(entity_name))
        if entity_type == 'exam':
            return format_exam_context(entity, self.queries.exam_prep(entity_name))
        if entity_type == 'concept':
            return format_concept_context(entity, self.queries.related_concepts(entity_name))
        if entity_type == 'term':
            return format_term_context(entity, self.queries.term_overview(entity_name))
        return format_entity_context(entity, graph)

    def end_session(self, session_id: str, stage: str, stage_number: int, total_stages: int,
                    next_stage_needed: bool, analysis: Optional[str] = None,
                    stage_data: Optional[Dict[str, Any]] = None,
                    is_revision: bool = False,
                    revises_stage: Optional[int] = None) -> Dict[str, Any]:
        """Run one end-session stage and return the success envelope."""
        request = StageRequest(
            session_id=session_id,
            stage=stage,
            stage_number=stage_number,
            total_stages=total_stages,
            analysis=analysis,
            stage_data=stage_data,
            next_stage_needed=next_stage_needed,
            is_revision=bool(is_revision),
            revises_stage=revises_stage,
        )
        return self.workflow.process(request).to_dict()

    def build_context(self, type: str, data: List[Any]) -> Dict[str, Any]:
        """Create entities, relations or observations."""
        if type not in MUTATION_TYPES:
            raise UnknownOperationError(
                f"Invalid type: {type}. Must be 'entities', 'relations', or 'observations'.",
                type=type,
            )
        data = _require_list(data)

        if type == 'entities':
            created = self.store.create_entities(data)
            return {"success": True, "created": [e.to_dict() for e in created]}
        if type == 'relations':
            created = self.store.create_relations(data)
            return {"success": True, "created": [r.to_dict() for r in created]}

        for item in data:
            if isinstance(item, dict) and item.get('entityName') and isinstance(item.get('contents'), list):
                self.store.add_observations(item['entityName'], item['contents'])
            else:
                logger.warning(f"Skipping malformed observation item: {item!r}")
        return {"success": True, "message": "Added observations to entities"}

    def delete_context(self, type: str, data: List[Any]) -> Dict[str, Any]:
        """Delete entities (with their relations), relations or observations."""
        if type not in MUTATION_TYPES:
            raise UnknownOperationError(
                f"Invalid type: {type}. Must be 'entities', 'relations', or 'observations'.",
                type=type,
            )
        data = _require_list(data)

        if type == 'entities':
            self.store.delete_entities(data)
            return {"success": True, "message": f"Deleted {len(data)} entities"}
        if type == 'relations':
            self.store.delete_relations(data)
            return {"success": True, "message": f"Deleted {len(data)} relations"}

        self.store.delete_observations(item for item in data if isinstance(item, dict))
        return {"success": True, "message": f"Deleted observations from {len(data)} entities"}

    def advanced_context(self, type: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Read the raw graph, search it, or run one of the derived views."""
        if type not in QUERY_TYPES:
            raise UnknownOperationError(
                f"Invalid type: {type}. Must be one of: {', '.join(QUERY_TYPES)}.",
                type=type,
            )
        params = params or {}
        queries = self.queries

        if type == 'graph':
            return {"success": True, "graph": self.store.read_graph().to_dict()}
        if type == 'search':
            return {"success": True, "results": self.store.search_nodes(params.get('query') or "").to_dict()}
        if type == 'nodes':
            names = params.get('names') or []
            return {"success": True, "nodes": self.store.open_nodes(names).to_dict()}
        if type == 'course':
            result = queries.course_overview(_require_param(params, 'courseName'))
            return {"success": True, "course": result.to_dict()}
        if type == 'deadlines':
            result = queries.upcoming_deadlines(
                term_name=params.get('termName'),
                course_name=params.get('courseName'),
                days_ahead=params.get('daysAhead'),
            )
            return {"success": True, "deadlines": result.to_dict()}
        if type == 'assignment':
            result = queries.assignment_status(_require_param(params, 'assignmentName'))
            return {"success": True, "assignment": result.to_dict()}
        if type == 'exam':
            result = queries.exam_prep(_require_param(params, 'examName'))
            return {"success": True, "exam": result.to_dict()}
        if type == 'concepts':
            result = queries.related_concepts(
                _require_param(params, 'conceptName'),
                params.get('depth'),
            )
            return {"success": True, "concepts": result.to_dict()}
        if type == 'lecture':
            result = queries.lecture_notes(_require_param(params, 'courseName'))
            return {"success": True, "lectures": result.to_dict()}

        result = queries.term_overview(_require_param(params, 'termName'))
        return {"success": True, "term": result.to_dict()}

    def read_graph_json(self) -> str:
        return json.dumps(self.store.read_graph().to_dict(), indent=2, ensure_ascii=False)

    def _guarded(self, tool: str, call: Callable[[], Any]) -> str:
        try:
            return to_text(call())
        except Exception as e:
            # Every tool answers with an envelope instead of failing the request
            logger.error(f"Error in {tool}: {e}", exc_info=True)
            return to_text(failure(e))

    # -- registration -----------------------------------------------------

    def _register_tools(self):
        """Register all MCP tools."""

        @self.mcp.tool()
        async def startsession() -> str:
            """
            Start a new study session.

            Returns the session id, recent study sessions, current courses,
            upcoming deadlines and recently studied concepts, so the user can
            choose what to focus on and which context to load.
            """
            return self._guarded("startsession", self.start_session)

        @self.mcp.tool()
        async def loadcontext(
            entityName: str,
            entityType: str = "course",
            sessionId: Optional[str] = None
        ) -> str:
            """
            Load rich context for an entity.

            Args:
                entityName: Name of the entity to load
                entityType: course, assignment, exam, concept, term, or any other entity type (default: course)
                sessionId: Session id from startsession, used to track context loading
            """
            return self._guarded(
                "loadcontext",
                lambda: self.load_context(entityName, entityType, sessionId),
            )

        @self.mcp.tool()
        async def endsession(
            sessionId: str,
            stage: str,
            stageNumber: int,
            totalStages: int,
            nextStageNeeded: bool,
            analysis: Optional[str] = None,
            stageData: Optional[Dict[str, Any]] = None,
            isRevision: Optional[bool] = None,
            revisesStage: Optional[int] = None
        ) -> str:
            """
            Record one stage of closing a study session.

            Stages run in order: summary, conceptsLearned, assignmentUpdates,
            newConcepts, courseStatus, assembly. Sending assembly with
            nextStageNeeded=false writes the session into the graph.

            Args:
                sessionId: Session id from startsession
                stage: Stage name
                stageNumber: Sequence number of this stage (starts at 1)
                totalStages: Total number of stages planned
                nextStageNeeded: Whether more stages follow this one
                analysis: Free-text analysis for this stage
                stageData: Stage payload. summary: {summary, duration, course};
                    conceptsLearned: {concepts: [str]}; assignmentUpdates:
                    {updates: [{name, status}]}; newConcepts: {concepts:
                    [{name, description}]}; courseStatus: {courseStatus,
                    courseObservation}; assembly: none
                isRevision: Whether this stage revises an earlier one
                revisesStage: Which recorded stage (1-based) is revised
            """
            return self._guarded(
                "endsession",
                lambda: self.end_session(
                    sessionId, stage, stageNumber, totalStages, nextStageNeeded,
                    analysis=analysis,
                    stage_data=stageData,
                    is_revision=bool(isRevision),
                    revises_stage=revisesStage,
                ),
            )

        @self.mcp.tool()
        async def buildcontext(type: str, data: List[Any]) -> str:
            """
            Create entities, relations, or observations.

            Args:
                type: 'entities', 'relations', or 'observations'
                data: entities: [{name, entityType, observations}];
                    relations: [{from, to, relationType}];
                    observations: [{entityName, contents: [str]}]
            """
            return self._guarded("buildcontext", lambda: self.build_context(type, data))

        @self.mcp.tool()
        async def deletecontext(type: str, data: List[Any]) -> str:
            """
            Delete entities, relations, or observations.

            Args:
                type: 'entities', 'relations', or 'observations'
                data: entities: [name]; relations: [{from, to, relationType}];
                    observations: [{entityName, observations: [str]}]
            """
            return self._guarded("deletecontext", lambda: self.delete_context(type, data))

        @self.mcp.tool()
        async def advancedcontext(type: str, params: Optional[Dict[str, Any]] = None) -> str:
            """
            Read the graph or run a derived view.

            Args:
                type: graph, search {query}, nodes {names}, course {courseName},
                    deadlines {termName?, courseName?, daysAhead?},
                    assignment {assignmentName}, exam {examName},
                    concepts {conceptName, depth?}, lecture {courseName},
                    term {termName}
                params: Parameters for the operation
            """
            return self._guarded("advancedcontext", lambda: self.advanced_context(type, params))

    def _register_resources(self):
        @self.mcp.resource(GRAPH_RESOURCE_URI, name="graph", mime_type="application/json")
        def graph() -> str:
            """The whole student knowledge graph."""
            return self.read_graph_json()

    def run(self, transport: str = "stdio"):
        """
        Run the MCP server.

        Args:
            transport: Transport protocol - 'stdio', 'sse', or 'streamable-http' (default: 'stdio')
        """
        logger.info(f"Starting {self.name} MCP server with {transport} transport")
        self.mcp.run(transport=transport)


def create_mcp_server(config: Optional[StudyGraphConfig] = None) -> StudyGraphMCPServer:
    """
    Create a study graph MCP server instance.

    Args:
        config: Optional StudyGraphConfig (default: from environment)

    Returns:
        StudyGraphMCPServer instance
    """
    return StudyGraphMCPServer(config=config)


def main():
    """
    Main entry point for running the MCP server from command line.

    Usage:
        python -m studygraph.server

    Environment variables:
        MEMORY_FILE_PATH: Graph document location
        SESSIONS_FILE_PATH: Session document location
        STUDYGRAPH_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    try:
        config = StudyGraphConfig.from_env()
    except ValueError as e:
        logging.basicConfig(format=LOG_FORMAT, stream=sys.stderr)
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    # stdout carries the stdio transport
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper()),
        format=LOG_FORMAT,
        stream=sys.stderr,
    )

    try:
        server = create_mcp_server(config)
        server.run(transport="stdio")
    except Exception as e:
        logger.error(f"Error starting server: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
