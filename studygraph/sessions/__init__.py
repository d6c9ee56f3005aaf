"""
Study sessions: the session record store and the staged end-session workflow.
"""

from .store import SessionStore, SessionSummary, summarize_session
from .workflow import (
    STAGES,
    EndSessionArgs,
    EndSessionWorkflow,
    SessionRecordingError,
    StageOutcome,
    StageRequest,
)

__all__ = [
    'SessionStore',
    'SessionSummary',
    'summarize_session',
    'STAGES',
    'EndSessionArgs',
    'EndSessionWorkflow',
    'SessionRecordingError',
    'StageOutcome',
    'StageRequest',
]
