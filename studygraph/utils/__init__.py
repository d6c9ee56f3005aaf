"""
Utility modules for studygraph.

Provides shared utilities for:
- Single-writer locking (ProcessLock)
- Session ID generation (generate_session_id)
- Atomic JSON persistence (atomic_write_json, read_json)
"""

from .locking import LockTimeoutError, ProcessLock, lock_path_for
from .id_generation import generate_session_id, is_session_id, session_timestamp_ms
from .persistence import atomic_write_json, read_json

__all__ = [
    'LockTimeoutError',
    'ProcessLock',
    'lock_path_for',
    'generate_session_id',
    'is_session_id',
    'session_timestamp_ms',
    'atomic_write_json',
    'read_json',
]
