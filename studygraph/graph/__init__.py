"""
Study knowledge graph: entities, relations, storage and derived views.

Example:
    from studygraph.graph import GraphStore, GraphQueries

    store = GraphStore(Path("memory.json"))
    store.create_entities([{"name": "Physics 101", "entityType": "course", "observations": []}])
    overview = GraphQueries(store).course_overview("Physics 101")
"""

from .errors import (
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
)
from .types import Entity, Relation, KnowledgeGraph
from .observations import ObservationFields, parse_date
from .store import GraphStore
from .traversal import ConceptWalker
from .queries import GraphQueries, sort_by_date

__all__ = [
    'StudyGraphError',
    'NotFoundError',
    'SessionNotFoundError',
    'ValidationError',
    'DuplicateEntityError',
    'DuplicateRelationError',
    'UnknownOperationError',
    'UnknownStageError',
    'StageOrderError',
    'CorruptionError',
    'Entity',
    'Relation',
    'KnowledgeGraph',
    'ObservationFields',
    'parse_date',
    'GraphStore',
    'ConceptWalker',
    'GraphQueries',
    'sort_by_date',
]
