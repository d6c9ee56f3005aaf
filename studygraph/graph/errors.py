"""
Exception classes for the study knowledge graph.

All exceptions are designed to be text-friendly for JSON error envelopes
returned by the MCP tools.
"""

from typing import Dict, Any


class StudyGraphError(Exception):
    """Base exception for all study graph errors."""

    def __init__(self, message: str, **context):
        """
        Initialize error with message and optional context.

        Args:
            message: Human-readable error message
            **context: Additional context for debugging (must be JSON-serializable)
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to JSON-serializable dictionary."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context
        }


class NotFoundError(StudyGraphError):
    """Entity not found, or present with the wrong entity type."""
    pass


class SessionNotFoundError(NotFoundError):
    """Session id unknown to the session store."""
    pass


class ValidationError(StudyGraphError):
    """Invalid data (unknown entity or relation type, malformed payload, etc.)."""
    pass


class DuplicateEntityError(ValidationError):
    """An entity with the same name already exists."""
    pass


class DuplicateRelationError(ValidationError):
    """A relation with the same (from, to, relationType) triple already exists."""
    pass


class UnknownOperationError(StudyGraphError):
    """Operation or sub-type name outside the supported set."""
    pass


class UnknownStageError(UnknownOperationError):
    """Session workflow stage name outside the declared sequence."""
    pass


class StageOrderError(StudyGraphError):
    """Session workflow stage submitted out of sequence."""
    pass


class CorruptionError(StudyGraphError):
    """Persisted document could not be parsed."""
    pass
