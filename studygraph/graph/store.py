"""
Graph Store
===========

Loads and saves the whole knowledge graph as one JSON document and
provides create/read/update/delete over entities, relations and
observation lists.

Every operation re-reads the document, works on the in-memory copy and,
for mutations, rewrites the document atomically. Read-modify-write cycles
run under a reentrant single-writer lock (threads and processes), so
overlapping callers serialize instead of losing updates.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from ..config import DEFAULT_SCHEMA, GraphSchema
from ..utils.locking import ProcessLock, lock_path_for
from ..utils.persistence import atomic_write_json, read_json
from .errors import (
    CorruptionError,
    DuplicateEntityError,
    DuplicateRelationError,
    NotFoundError,
    ValidationError,
)
from .types import Entity, KnowledgeGraph, Relation

logger = logging.getLogger(__name__)

EntityLike = Union[Entity, Mapping[str, Any]]
RelationLike = Union[Relation, Mapping[str, Any]]


def _empty_document() -> Dict[str, list]:
    return {"entities": [], "relations": []}


def _as_entity(item: EntityLike) -> Entity:
    if isinstance(item, Entity):
        return Entity(item.name, item.entity_type, item.observations)
    return Entity.from_dict(dict(item))


def _as_relation(item: RelationLike) -> Relation:
    if isinstance(item, Relation):
        return item
    return Relation.from_dict(dict(item))


class GraphStore:
    """
    File-backed knowledge graph.

    Example:
        >>> store = GraphStore(Path("memory.json"))
        >>> store.create_entities([{"name": "Physics 101", "entityType": "course",
        ...                         "observations": ["Code: PHY101"]}])
        >>> store.search_nodes("physics").entities[0].code
        'PHY101'
    """

    def __init__(self, path: Path, schema: GraphSchema = DEFAULT_SCHEMA,
                 lock_timeout: float = 10.0):
        """
        Initialize the store.

        Args:
            path: Location of the graph document
            schema: Entity/relation vocabularies used for validation
            lock_timeout: Seconds to wait for the single-writer lock
        """
        self.path = Path(path)
        self.schema = schema
        self._lock = ProcessLock(lock_path_for(self.path), timeout=lock_timeout)

    # -- persistence ------------------------------------------------------

    def load(self) -> KnowledgeGraph:
        """
        Read the graph document.

        Returns:
            The stored graph (empty if the document does not exist)

        Raises:
            CorruptionError: If the document is not a valid graph
        """
        try:
            data = read_json(self.path, _empty_document)
            graph = KnowledgeGraph.from_dict(data)
        except json.JSONDecodeError as e:
            raise CorruptionError(
                f"Graph document {self.path} is not valid JSON: {e}",
                path=str(self.path),
            ) from e
        except ValidationError as e:
            raise CorruptionError(
                f"Graph document {self.path} is malformed: {e.message}",
                path=str(self.path),
            ) from e
        logger.debug(
            f"Loaded {len(graph.entities)} entities and "
            f"{len(graph.relations)} relations from {self.path}"
        )
        return graph

    def save(self, graph: KnowledgeGraph) -> None:
        """Rewrite the graph document atomically."""
        with self._lock:
            atomic_write_json(self.path, graph.to_dict())
        logger.debug(
            f"Saved {len(graph.entities)} entities and "
            f"{len(graph.relations)} relations to {self.path}"
        )

    @contextmanager
    def _editing(self) -> Iterator[KnowledgeGraph]:
        """Load under the lock, yield for mutation, then save."""
        with self._lock:
            graph = self.load()
            yield graph
            self.save(graph)

    # -- entities ---------------------------------------------------------

    def create_entities(self, entities: Iterable[EntityLike]) -> List[Entity]:
        """
        Add new entities.

        Args:
            entities: Entity objects or ``{name, entityType, observations}`` dicts

        Returns:
            The created entities

        Raises:
            ValidationError: If an entity type is unknown
            DuplicateEntityError: If a name already exists or repeats in the batch
        """
        new_entities = [_as_entity(e) for e in entities]

        with self._editing() as graph:
            existing = {e.name for e in graph.entities}
            for entity in new_entities:
                if not self.schema.is_valid_entity_type(entity.entity_type):
                    raise ValidationError(
                        f"Invalid entity type: {entity.entity_type}. "
                        f"Valid types are: {', '.join(self.schema.entity_types)}",
                        name=entity.name,
                        entity_type=entity.entity_type,
                    )
                if entity.name in existing:
                    raise DuplicateEntityError(
                        f"Entity with name {entity.name} already exists",
                        name=entity.name,
                    )
                existing.add(entity.name)
            graph.entities.extend(new_entities)

        logger.info(f"Created {len(new_entities)} entities")
        return new_entities

    def delete_entities(self, names: Iterable[str]) -> int:
        """
        Remove entities and every relation touching them.

        Unknown names are ignored.

        Returns:
            Number of entities removed
        """
        doomed = set(names)
        with self._editing() as graph:
            before = len(graph.entities)
            graph.entities = [e for e in graph.entities if e.name not in doomed]
            graph.relations = [r for r in graph.relations if not r.touches(doomed)]
            removed = before - len(graph.entities)

        logger.info(f"Deleted {removed} entities")
        return removed

    def get_entity(self, name: str, entity_type: Optional[str] = None) -> Entity:
        """
        Look up one entity.

        Raises:
            NotFoundError: If absent, or present with a different type
        """
        entity = self.load().get(name, entity_type)
        if entity is None:
            label = (entity_type or "entity").capitalize()
            raise NotFoundError(f"{label} '{name}' not found", name=name, entity_type=entity_type)
        return entity

    # -- observations -----------------------------------------------------

    def add_observations(self, name: str, texts: Iterable[str]) -> Entity:
        """
        Append observations to an entity (no de-duplication).

        Raises:
            NotFoundError: If the entity does not exist
        """
        texts = list(texts)
        with self._editing() as graph:
            entity = graph.get(name)
            if entity is None:
                raise NotFoundError(f"Entity '{name}' not found", name=name)
            entity.add_observations(texts)

        logger.info(f"Added {len(texts)} observations to '{name}'")
        return entity

    def delete_observations(self, deletions: Iterable[Mapping[str, Any]]) -> None:
        """
        Remove exact-match observations.

        Args:
            deletions: ``{entityName, observations}`` items; unknown entities are ignored
        """
        deletions = list(deletions)
        with self._editing() as graph:
            for deletion in deletions:
                entity = graph.get(deletion.get("entityName", ""))
                if entity is not None:
                    entity.remove_observations(deletion.get("observations") or [])

        logger.info(f"Deleted observations from {len(deletions)} entities")

    def update_observations(self, name: str, drop_keys: Iterable[str],
                            append: Iterable[str] = ()) -> Entity:
        """
        Replace keyed observations of an entity in place.

        Observations whose field key (case-insensitive) is in ``drop_keys``
        are removed and ``append`` is added. Relations are untouched.

        Raises:
            NotFoundError: If the entity does not exist
        """
        drop_keys = list(drop_keys)
        with self._editing() as graph:
            entity = graph.get(name)
            if entity is None:
                raise NotFoundError(f"Entity '{name}' not found", name=name)
            entity.replace_fields(drop_keys, append)

        logger.info(f"Updated {', '.join(drop_keys) or 'observations'} of '{name}'")
        return entity

    # -- relations --------------------------------------------------------

    def create_relations(self, relations: Iterable[RelationLike]) -> List[Relation]:
        """
        Add new relations.

        Returns:
            The created relations

        Raises:
            NotFoundError: If an endpoint does not exist
            ValidationError: If a relation type is unknown
            DuplicateRelationError: If the triple exists or repeats in the batch
        """
        new_relations = [_as_relation(r) for r in relations]

        with self._editing() as graph:
            names = {e.name for e in graph.entities}
            existing = {r.key for r in graph.relations}
            for relation in new_relations:
                for endpoint in (relation.source, relation.target):
                    if endpoint not in names:
                        raise NotFoundError(f"Entity '{endpoint}' not found", name=endpoint)
                if not self.schema.is_valid_relation_type(relation.relation_type):
                    raise ValidationError(
                        f"Invalid relation type: {relation.relation_type}. "
                        f"Valid types are: {', '.join(self.schema.relation_types)}",
                        relation_type=relation.relation_type,
                    )
                if relation.key in existing:
                    raise DuplicateRelationError(
                        f"Relation from '{relation.source}' to '{relation.target}' "
                        f"with type '{relation.relation_type}' already exists",
                        relation=relation.to_dict(),
                    )
                existing.add(relation.key)
            graph.relations.extend(new_relations)

        logger.info(f"Created {len(new_relations)} relations")
        return new_relations

    def delete_relations(self, relations: Iterable[RelationLike]) -> int:
        """
        Remove relations matching the exact triple; non-matches are ignored.

        Returns:
            Number of relations removed
        """
        doomed = {_as_relation(r).key for r in relations}
        with self._editing() as graph:
            before = len(graph.relations)
            graph.relations = [r for r in graph.relations if r.key not in doomed]
            removed = before - len(graph.relations)

        logger.info(f"Deleted {removed} relations")
        return removed

    def has_relation(self, source: str, target: str, relation_type: str) -> bool:
        return self.load().has_relation(Relation(source, target, relation_type))

    # -- reads ------------------------------------------------------------

    def read_graph(self) -> KnowledgeGraph:
        """The full current graph."""
        return self.load()

    def search_nodes(self, query: str) -> KnowledgeGraph:
        """
        Find entities matching every whitespace-separated term.

        A term matches if it is a substring (case-insensitive) of the name,
        the entity type or any one observation; different terms may match
        different fields. A blank query matches every entity.

        Returns:
            Matching entities plus relations with both endpoints among them
        """
        terms = (query or "").lower().split()
        graph = self.load()

        def matches(entity: Entity) -> bool:
            haystack = [entity.name.lower(), entity.entity_type.lower()]
            haystack.extend(o.lower() for o in entity.observations)
            return all(any(term in text for text in haystack) for term in terms)

        return graph.subgraph(e.name for e in graph.entities if matches(e))

    def open_nodes(self, names: Iterable[str]) -> KnowledgeGraph:
        """Named entities plus relations with both endpoints among them."""
        return self.load().subgraph(names)
