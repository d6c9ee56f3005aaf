"""
Session ID generation.

Session IDs use format: stud_<epoch-millis>_<XXXXXXXXXXXX>
- Timestamp: milliseconds since the Unix epoch
- Suffix: 12 hex characters (6 bytes)

Examples:
    >>> generate_session_id()
    'stud_1735689600000_a1b2c3d4e5f6'

    >>> is_session_id('stud_1735689600000_a1b2c3d4e5f6')
    True
"""

import re
import secrets
import time
from typing import Optional

SESSION_PREFIX = "stud"

_SESSION_ID_PATTERN = re.compile(r'^stud_(\d+)_([0-9a-f]{12})$')


def generate_session_id(now_ms: Optional[int] = None) -> str:
    """
    Generate unique study session ID.

    Args:
        now_ms: Timestamp in epoch milliseconds (default: current time)

    Returns:
        Session ID string (e.g., 'stud_1735689600000_a1b2c3d4e5f6')
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = secrets.token_hex(6)
    return f"{SESSION_PREFIX}_{now_ms}_{suffix}"


def is_session_id(value: str) -> bool:
    """True if ``value`` has the generated session ID shape."""
    return bool(_SESSION_ID_PATTERN.match(value))


def session_timestamp_ms(session_id: str) -> Optional[int]:
    """Epoch milliseconds embedded in a generated session ID, or None."""
    match = _SESSION_ID_PATTERN.match(session_id)
    return int(match.group(1)) if match else None
