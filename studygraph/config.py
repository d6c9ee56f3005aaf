"""
Configuration Module
====================

Centralized configuration for the study knowledge graph.

Two kinds of configuration live here:

- ``GraphSchema``: the immutable vocabularies (entity types, relation
  types, per-type status values). It is handed to the store and the query
  layer at construction instead of being read from module globals.
- ``StudyGraphConfig``: runtime settings (document locations, window
  sizes, list limits, log level).

Example:
    from studygraph.config import StudyGraphConfig

    # Resolve document paths from MEMORY_FILE_PATH / SESSIONS_FILE_PATH
    config = StudyGraphConfig.from_env()

    # Or point at explicit files
    config = StudyGraphConfig(
        memory_file_path=Path("/data/memory.json"),
        sessions_file_path=Path("/data/sessions.json"),
    )
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, FrozenSet, Mapping, Optional, Tuple


# Student education entity types
ENTITY_TYPES: Tuple[str, ...] = (
    'course',
    'assignment',
    'exam',
    'concept',
    'resource',
    'note',
    'lecture',
    'project',
    'question',
    'term',
    'goal',
    'professor',
)

# Student education relation types
RELATION_TYPES: Tuple[str, ...] = (
    'enrolled_in',       # Student is taking a course
    'assigned_in',       # Assignment is part of a course
    'due_on',            # Assignment/exam has specific due date
    'covers',            # Lecture/resource covers concept
    'references',        # Note references concept
    'prerequisite_for',  # Concept is foundation for another
    'taught_by',         # Course taught by professor
    'scheduled_for',     # Lecture/exam scheduled for specific time
    'contains',          # Course contains lectures/assignments
    'requires',          # Assignment requires specific concepts
    'related_to',        # Concept related to another concept
    'created_for',       # Note created for specific lecture
    'studies',           # Study session focuses on concept/exam
    'helps_with',        # Resource helps with assignment/concept
    'submitted',         # Assignment submitted on date
    'part_of',           # Entity is part of another entity
    'included_in',       # Included in a larger component
    'follows',           # Entity follows another in sequence
    'attends',           # Student attends lecture
    'graded_with',       # Assignment/exam graded with specific criteria
)

STATUS_VALUES: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    'course': ('planned', 'current', 'completed', 'dropped', 'waitlisted'),
    'assignment': ('not_started', 'in_progress', 'completed', 'submitted', 'graded'),
    'exam': ('upcoming', 'studying', 'completed', 'graded'),
    'project': ('planning', 'in_progress', 'reviewing', 'completed'),
    'goal': ('active', 'completed', 'revised', 'dropped'),
})

DEFAULT_MEMORY_FILENAME = "memory.json"
DEFAULT_SESSIONS_FILENAME = "sessions.json"

# Directory holding the default documents (alongside the installed package)
PACKAGE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class GraphSchema:
    """
    Immutable vocabularies for the knowledge graph.

    Attributes:
        entity_types: Allowed ``entityType`` values, in display order.
        relation_types: Allowed ``relationType`` values, in display order.
        status_values: Known status vocabulary per entity type.
    """

    entity_types: Tuple[str, ...] = ENTITY_TYPES
    relation_types: Tuple[str, ...] = RELATION_TYPES
    status_values: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: STATUS_VALUES)

    @property
    def entity_type_set(self) -> FrozenSet[str]:
        return frozenset(self.entity_types)

    @property
    def relation_type_set(self) -> FrozenSet[str]:
        return frozenset(self.relation_types)

    def is_valid_entity_type(self, entity_type: str) -> bool:
        return entity_type in self.entity_type_set

    def is_valid_relation_type(self, relation_type: str) -> bool:
        return relation_type in self.relation_type_set

    def statuses_for(self, entity_type: str) -> Tuple[str, ...]:
        """Known statuses for an entity type (empty when not tracked)."""
        return tuple(self.status_values.get(entity_type, ()))


DEFAULT_SCHEMA = GraphSchema()


def resolve_path(value: Optional[str], default: Path, cwd: Optional[Path] = None) -> Path:
    """
    Resolve a path-valued setting.

    Args:
        value: Raw setting (e.g. from the environment), may be None/empty.
        default: Location used when no value is given.
        cwd: Base for relative values (default: current working directory).

    Returns:
        Absolute values verbatim, relative values joined to ``cwd``,
        otherwise ``default``.
    """
    if not value:
        return default
    path = Path(value)
    if path.is_absolute():
        return path
    return (cwd or Path.cwd()) / path


@dataclass
class StudyGraphConfig:
    """
    Runtime settings for the study graph server.

    Attributes:
        memory_file_path: Location of the graph JSON document.
        sessions_file_path: Location of the session-state JSON document.
        default_days_ahead: Deadline window used when none is given.
        default_concept_depth: Traversal depth for related-concept lookups.
        recent_sessions_limit: Sessions listed by start-session.
        recent_concepts_limit: Recently studied concepts listed by start-session.
        term_deadline_limit: Deadlines kept in a term overview.
        log_level: Logging level name.
        schema: Vocabularies injected into the store and query layer.
    """

    memory_file_path: Path = field(default_factory=lambda: PACKAGE_DIR / DEFAULT_MEMORY_FILENAME)
    sessions_file_path: Path = field(default_factory=lambda: PACKAGE_DIR / DEFAULT_SESSIONS_FILENAME)

    default_days_ahead: int = 14
    default_concept_depth: int = 1
    recent_sessions_limit: int = 3
    recent_concepts_limit: int = 5
    term_deadline_limit: int = 10

    log_level: str = "INFO"

    schema: GraphSchema = field(default_factory=lambda: DEFAULT_SCHEMA)

    def __post_init__(self):
        """Normalize paths and validate values."""
        self.memory_file_path = Path(self.memory_file_path)
        self.sessions_file_path = Path(self.sessions_file_path)
        self._validate()

    def _validate(self):
        """
        Validate configuration values are within acceptable ranges.

        Raises:
            ValueError: If any configuration value is invalid.
        """
        if self.default_days_ahead < 0:
            raise ValueError(
                f"default_days_ahead must be non-negative, got {self.default_days_ahead}"
            )
        if self.default_concept_depth < 1:
            raise ValueError(
                f"default_concept_depth must be at least 1, got {self.default_concept_depth}"
            )
        for name in ('recent_sessions_limit', 'recent_concepts_limit', 'term_deadline_limit'):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} must be at least 1, got {value}")
        if self.log_level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"log_level must be a logging level name, got {self.log_level}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None,
                 cwd: Optional[Path] = None) -> 'StudyGraphConfig':
        """
        Build configuration from environment variables.

        Environment variables:
            MEMORY_FILE_PATH: Graph document location.
            SESSIONS_FILE_PATH: Session document location.
            STUDYGRAPH_LOG_LEVEL: Logging level (default INFO).

        Args:
            environ: Mapping to read from (default: ``os.environ``).
            cwd: Base directory for relative paths.

        Returns:
            StudyGraphConfig instance.
        """
        env = os.environ if environ is None else environ
        return cls(
            memory_file_path=resolve_path(
                env.get("MEMORY_FILE_PATH"), PACKAGE_DIR / DEFAULT_MEMORY_FILENAME, cwd
            ),
            sessions_file_path=resolve_path(
                env.get("SESSIONS_FILE_PATH"), PACKAGE_DIR / DEFAULT_SESSIONS_FILENAME, cwd
            ),
            log_level=env.get("STUDYGRAPH_LOG_LEVEL", "INFO").upper(),
        )

    def to_dict(self) -> Dict:
        """
        Convert configuration to a dictionary for logging or display.

        Returns:
            Dictionary representation of the configuration.
        """
        return {
            'memory_file_path': str(self.memory_file_path),
            'sessions_file_path': str(self.sessions_file_path),
            'default_days_ahead': self.default_days_ahead,
            'default_concept_depth': self.default_concept_depth,
            'recent_sessions_limit': self.recent_sessions_limit,
            'recent_concepts_limit': self.recent_concepts_limit,
            'term_deadline_limit': self.term_deadline_limit,
            'log_level': self.log_level,
        }


def get_default_config() -> StudyGraphConfig:
    """
    Get a new instance of the default configuration.

    Returns:
        StudyGraphConfig with default values.
    """
    return StudyGraphConfig()
