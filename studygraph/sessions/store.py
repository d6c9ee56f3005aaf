"""
Session state store.

Sessions live in their own JSON document, a mapping from session id to
an ordered list of records::

    {
      "stud_1735689600000_a1b2c3d4e5f6": [
        {"type": "context_loaded", "timestamp": ..., "entityName": ..., "entityType": ...},
        {"type": "analysis_stage", "stage": "summary", "stageNumber": 1, ...},
        {"type": "session_completed", "timestamp": ..., "date": ..., "summary": ..., "course": ...}
      ]
    }

Sessions are never deleted. Writes go through the same atomic-write and
single-writer lock as the graph document.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from ..graph.errors import CorruptionError, SessionNotFoundError
from ..utils.id_generation import generate_session_id, session_timestamp_ms
from ..utils.locking import ProcessLock, lock_path_for
from ..utils.persistence import atomic_write_json, read_json

logger = logging.getLogger(__name__)

Record = Dict[str, Any]
Sessions = Dict[str, List[Record]]

ANALYSIS_STAGE = 'analysis_stage'
CONTEXT_LOADED = 'context_loaded'
SESSION_COMPLETED = 'session_completed'


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    moment = (moment or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.strftime('%Y-%m-%dT%H:%M:%S.') + f"{moment.microsecond // 1000:03d}Z"


@dataclass(frozen=True)
class SessionSummary:
    """One line of the recent-sessions list."""
    session_id: str
    date: Optional[str]
    course: Optional[str]
    summary: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def summarize_session(session_id: str, records: List[Record]) -> SessionSummary:
    """
    Reduce a session's records to date/course/summary.

    Prefers the ``session_completed`` record, then the ``summary`` stage,
    and dates an unfinished session by its first timestamped record or the
    time embedded in its id.
    """
    completed = next((r for r in reversed(records) if r.get('type') == SESSION_COMPLETED), None)
    summary_stage = next(
        (r for r in records if r.get('type') == ANALYSIS_STAGE and r.get('stage') == 'summary'),
        None,
    )
    stage_data = (summary_stage or {}).get('stageData') or {}

    date = (completed or {}).get('date')
    if not date:
        stamped = next((r['timestamp'] for r in records if r.get('timestamp')), None)
        date = stamped[:10] if stamped else None
    if not date:
        millis = session_timestamp_ms(session_id)
        if millis is not None:
            date = datetime.fromtimestamp(millis / 1000, tz=timezone.utc).date().isoformat()

    return SessionSummary(
        session_id=session_id,
        date=date,
        course=(completed or {}).get('course') or stage_data.get('course') or stage_data.get('focus'),
        summary=(completed or {}).get('summary') or stage_data.get('summary'),
    )


class SessionStore:
    """
    File-backed session records.

    Example:
        >>> sessions = SessionStore(Path("sessions.json"))
        >>> session_id = sessions.create()
        >>> sessions.append(session_id, {"type": "context_loaded", ...})
    """

    def __init__(self, path: Path, lock_timeout: float = 10.0):
        self.path = Path(path)
        self._lock = ProcessLock(lock_path_for(self.path), timeout=lock_timeout)

    def load(self) -> Sessions:
        """
        Read every session.

        Raises:
            CorruptionError: If the document is not a JSON object of lists
        """
        try:
            data = read_json(self.path, dict)
        except json.JSONDecodeError as e:
            raise CorruptionError(
                f"Session document {self.path} is not valid JSON: {e}",
                path=str(self.path),
            ) from e
        if not isinstance(data, dict) or not all(isinstance(v, list) for v in data.values()):
            raise CorruptionError(
                f"Session document {self.path} must map session ids to record lists",
                path=str(self.path),
            )
        return data

    def save(self, sessions: Sessions) -> None:
        with self._lock:
            atomic_write_json(self.path, sessions)
        logger.debug(f"Saved {len(sessions)} sessions to {self.path}")

    @contextmanager
    def editing(self) -> Iterator[Sessions]:
        """Load under the lock, yield for mutation, then save."""
        with self._lock:
            sessions = self.load()
            yield sessions
            self.save(sessions)

    def exists(self, session_id: str) -> bool:
        return session_id in self.load()

    def records(self, session_id: str) -> List[Record]:
        """
        Records of one session.

        Raises:
            SessionNotFoundError: Unknown session id
        """
        sessions = self.load()
        if session_id not in sessions:
            raise SessionNotFoundError(
                f"Session with ID {session_id} not found. "
                f"Please start a new session with startsession.",
                session_id=session_id,
            )
        return sessions[session_id]

    def create(self, session_id: Optional[str] = None) -> str:
        """Register a new, empty session and return its id."""
        session_id = session_id or generate_session_id()
        with self.editing() as sessions:
            sessions.setdefault(session_id, [])
        logger.info(f"Started session {session_id}")
        return session_id

    def ensure(self, session_id: str) -> bool:
        """
        Create ``session_id`` if it is unknown.

        Returns:
            True if the session had to be created
        """
        with self.editing() as sessions:
            if session_id in sessions:
                return False
            sessions[session_id] = []
        logger.warning(f"Session {session_id} not found, created it")
        return True

    def append(self, session_id: str, record: Record) -> None:
        """
        Append one record to a session.

        Raises:
            SessionNotFoundError: Unknown session id
        """
        with self.editing() as sessions:
            if session_id not in sessions:
                raise SessionNotFoundError(
                    f"Session with ID {session_id} not found. "
                    f"Please start a new session with startsession.",
                    session_id=session_id,
                )
            sessions[session_id].append(record)

    def recent(self, limit: int = 3, exclude: Optional[str] = None) -> List[SessionSummary]:
        """Most recent sessions first; undated sessions sort last."""
        summaries = [
            summarize_session(session_id, records)
            for session_id, records in self.load().items()
            if session_id != exclude
        ]
        summaries.sort(key=lambda s: (s.date is not None, s.date or ''), reverse=True)
        return summaries[:limit]
