"""
studygraph
==========

A knowledge graph of courses, assignments, exams and concepts kept in a
JSON document, with derived study views and a staged session recorder,
served to AI assistants over the Model Context Protocol.

Example:
    from studygraph import GraphStore, GraphQueries

    store = GraphStore(Path("memory.json"))
    deadlines = GraphQueries(store).upcoming_deadlines(days_ahead=7)

    # MCP server (stdio)
    from studygraph.server import main
    main()
"""

from .config import GraphSchema, StudyGraphConfig, DEFAULT_SCHEMA, get_default_config
from .graph import (
    StudyGraphError,
    NotFoundError,
    SessionNotFoundError,
    ValidationError,
    DuplicateEntityError,
    DuplicateRelationError,
    UnknownOperationError,
    UnknownStageError,
    StageOrderError,
    CorruptionError,
    Entity,
    Relation,
    KnowledgeGraph,
    GraphStore,
    GraphQueries,
    ConceptWalker,
)
from .sessions import SessionStore, EndSessionWorkflow, StageRequest

__version__ = "1.0.0"
__all__ = [
    "GraphSchema",
    "StudyGraphConfig",
    "DEFAULT_SCHEMA",
    "get_default_config",
    "StudyGraphError",
    "NotFoundError",
    "SessionNotFoundError",
    "ValidationError",
    "DuplicateEntityError",
    "DuplicateRelationError",
    "UnknownOperationError",
    "UnknownStageError",
    "StageOrderError",
    "CorruptionError",
    "Entity",
    "Relation",
    "KnowledgeGraph",
    "GraphStore",
    "GraphQueries",
    "ConceptWalker",
    "SessionStore",
    "EndSessionWorkflow",
    "StageRequest",
]
