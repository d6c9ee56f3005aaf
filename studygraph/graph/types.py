"""
Entity types for the study knowledge graph.

Provides the Entity, Relation and KnowledgeGraph dataclasses with JSON
serialization matching the persisted document format::

    {
      "entities": [{"name": ..., "entityType": ..., "observations": [...]}],
      "relations": [{"from": ..., "to": ..., "relationType": ...}]
    }
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .errors import ValidationError
from .observations import ObservationFields, observation_key


@dataclass
class Entity:
    """
    A named, typed node in the knowledge graph.

    The ``"Key: value"`` observations are parsed once into ``fields``;
    mutate observations through the methods below so the view stays current.
    """

    name: str
    entity_type: str
    observations: List[str] = field(default_factory=list)
    fields: ObservationFields = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        """Copy observations and build the parsed field view."""
        self.observations = list(self.observations)
        self._refresh()

    def _refresh(self) -> None:
        self.fields = ObservationFields(self.observations)

    # -- mutation ---------------------------------------------------------

    def add_observations(self, texts: Iterable[str]) -> None:
        """Append observations (no de-duplication)."""
        self.observations.extend(texts)
        self._refresh()

    def remove_observations(self, texts: Iterable[str]) -> None:
        """Remove every observation exactly equal to one of ``texts``."""
        doomed = set(texts)
        self.observations = [o for o in self.observations if o not in doomed]
        self._refresh()

    def replace_fields(self, drop_keys: Iterable[str], append: Iterable[str] = ()) -> None:
        """
        Drop observations whose field key is in ``drop_keys`` and append new ones.

        Args:
            drop_keys: Field keys to remove (case-insensitive)
            append: Observations to add afterwards
        """
        keys = {k.lower() for k in drop_keys}
        self.observations = [o for o in self.observations if observation_key(o) not in keys]
        self.observations.extend(append)
        self._refresh()

    # -- typed field access -----------------------------------------------

    def field(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.fields.get(key, default)

    @property
    def status(self) -> Optional[str]:
        return self.fields.get("status")

    @property
    def due(self) -> Optional[datetime]:
        return self.fields.date("due")

    @property
    def date(self) -> Optional[datetime]:
        return self.fields.date("date")

    @property
    def points(self) -> Optional[float]:
        return self.fields.number("points")

    @property
    def code(self) -> Optional[str]:
        return self.fields.get("code")

    @property
    def last_studied(self) -> Optional[str]:
        return self.fields.get("last_studied")

    @property
    def descriptions(self) -> List[str]:
        """Observations that carry no field key."""
        return self.fields.descriptions

    # -- serialization ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize entity to the document format."""
        return {
            "name": self.name,
            "entityType": self.entity_type,
            "observations": list(self.observations),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Entity:
        """
        Deserialize entity from the document format.

        Unknown keys (e.g. a legacy ``embedding``) are ignored.

        Raises:
            ValidationError: If ``name`` or ``entityType`` is missing
        """
        if not isinstance(data, dict):
            raise ValidationError("Entity must be an object", value=repr(data))
        name = data.get("name")
        entity_type = data.get("entityType")
        if not name or not entity_type:
            raise ValidationError(
                "Entity requires 'name' and 'entityType'",
                name=name,
                entity_type=entity_type,
            )
        observations = data.get("observations") or []
        if not isinstance(observations, list):
            raise ValidationError(
                f"Observations of entity '{name}' must be a list", name=name
            )
        return cls(
            name=str(name),
            entity_type=str(entity_type),
            observations=[str(o) for o in observations],
        )


@dataclass(frozen=True)
class Relation:
    """
    A directed, typed edge between two entities, identified by its triple.
    """

    source: str
    target: str
    relation_type: str

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.source, self.target, self.relation_type)

    def touches(self, names: Set[str]) -> bool:
        """True if either endpoint is in ``names``."""
        return self.source in names or self.target in names

    def to_dict(self) -> Dict[str, Any]:
        """Serialize relation to the document format."""
        return {
            "from": self.source,
            "to": self.target,
            "relationType": self.relation_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Relation:
        """
        Deserialize relation from the document format.

        Raises:
            ValidationError: If ``from``, ``to`` or ``relationType`` is missing
        """
        if not isinstance(data, dict):
            raise ValidationError("Relation must be an object", value=repr(data))
        source = data.get("from")
        target = data.get("to")
        relation_type = data.get("relationType")
        if not source or not target or not relation_type:
            raise ValidationError(
                "Relation requires 'from', 'to' and 'relationType'",
                relation=data,
            )
        return cls(source=str(source), target=str(target), relation_type=str(relation_type))


@dataclass
class KnowledgeGraph:
    """
    The whole graph: the unit of persistence.

    Lookup helpers follow relations in stored order and keep only endpoints
    of the requested entity type.
    """

    entities: List[Entity] = field(default_factory=list)
    relations: List[Relation] = field(default_factory=list)

    def get(self, name: str, entity_type: Optional[str] = None) -> Optional[Entity]:
        """First entity with ``name`` (and ``entity_type`` when given)."""
        for entity in self.entities:
            if entity.name == name and (entity_type is None or entity.entity_type == entity_type):
                return entity
        return None

    def has_entity(self, name: str) -> bool:
        return self.get(name) is not None

    def has_relation(self, relation: Relation) -> bool:
        return any(r.key == relation.key for r in self.relations)

    def of_type(self, entity_type: str) -> List[Entity]:
        return [e for e in self.entities if e.entity_type == entity_type]

    def targets(self, source: str, relation_type: str,
                entity_type: Optional[str] = None) -> List[Entity]:
        """
        Entities reached by ``source --relation_type--> X``.

        Args:
            source: Entity name on the ``from`` side
            relation_type: Relation type to follow
            entity_type: Keep only endpoints of this type

        Returns:
            Matching entities in relation order
        """
        found = []
        for relation in self.relations:
            if relation.relation_type == relation_type and relation.source == source:
                entity = self.get(relation.target, entity_type)
                if entity is not None:
                    found.append(entity)
        return found

    def sources(self, target: str, relation_type: str,
                entity_type: Optional[str] = None) -> List[Entity]:
        """Entities X with ``X --relation_type--> target``, in relation order."""
        found = []
        for relation in self.relations:
            if relation.relation_type == relation_type and relation.target == target:
                entity = self.get(relation.source, entity_type)
                if entity is not None:
                    found.append(entity)
        return found

    def first_target(self, source: str, relation_type: str,
                     entity_type: Optional[str] = None) -> Optional[Entity]:
        matches = self.targets(source, relation_type, entity_type)
        return matches[0] if matches else None

    def first_source(self, target: str, relation_type: str,
                     entity_type: Optional[str] = None) -> Optional[Entity]:
        matches = self.sources(target, relation_type, entity_type)
        return matches[0] if matches else None

    def subgraph(self, names: Iterable[str]) -> KnowledgeGraph:
        """Entities named in ``names`` plus relations with both endpoints in it."""
        keep = set(names)
        return KnowledgeGraph(
            entities=[e for e in self.entities if e.name in keep],
            relations=[r for r in self.relations if r.source in keep and r.target in keep],
        )

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.entities)

    def __len__(self) -> int:
        return len(self.entities)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize graph to the document format."""
        return {
            "entities": [e.to_dict() for e in self.entities],
            "relations": [r.to_dict() for r in self.relations],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> KnowledgeGraph:
        """Deserialize graph from the document format."""
        if not isinstance(data, dict):
            raise ValidationError("Graph document must be an object")
        return cls(
            entities=[Entity.from_dict(e) for e in data.get("entities") or []],
            relations=[Relation.from_dict(r) for r in data.get("relations") or []],
        )


def entity_names(entities: Iterable[Entity]) -> List[str]:
    return [e.name for e in entities]


def unique_by_name(entities: Iterable[Entity]) -> List[Entity]:
    """Drop later entities whose name already appeared, keeping order."""
    seen: Set[str] = set()
    result = []
    for entity in entities:
        if entity.name not in seen:
            seen.add(entity.name)
            result.append(entity)
    return result
