"""
Observation field parsing.

Observations are free-text lines attached to an entity. By convention some
of them carry a typed field as ``"Key: value"`` (``Due: 2025-01-10``,
``Status: completed``, ``last_studied:2025-03-02``). This module parses
those lines once into an ``ObservationFields`` view so the query layer
reads typed values instead of re-splitting strings.

Keys are matched case-insensitively; the value is everything after the
first colon, stripped. The first observation carrying a key wins.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

# A field key is a single word followed by a colon
_FIELD_PATTERN = re.compile(r'^\s*([A-Za-z][A-Za-z0-9_]*)\s*:(.*)$', re.DOTALL)

# Fallback formats tried after ISO-8601
_DATE_FORMATS = (
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%d %B %Y",
)

MS_PER_DAY = 24 * 60 * 60 * 1000


def split_observation(text: str) -> Optional[Tuple[str, str]]:
    """
    Split a ``"Key: value"`` observation.

    Args:
        text: Observation line

    Returns:
        (lowercased key, stripped value), or None for free text
    """
    match = _FIELD_PATTERN.match(text)
    if not match:
        return None
    return match.group(1).lower(), match.group(2).strip()


def observation_key(text: str) -> Optional[str]:
    """Lowercased field key of an observation, or None for free text."""
    parts = split_observation(text)
    return parts[0] if parts else None


def parse_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a date or timestamp string into an aware UTC datetime.

    Date-only values mean midnight UTC; naive timestamps are taken as UTC.

    Args:
        value: Raw field value

    Returns:
        Aware datetime, or None when missing or unparsable
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'

    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_number(value: Optional[str]) -> Optional[float]:
    """Parse a leading number (``"100 points"`` -> 100.0), or None."""
    if not value:
        return None
    match = re.match(r'^\s*(-?\d+(?:\.\d+)?)', value)
    return float(match.group(1)) if match else None


def milliseconds_between(later: datetime, earlier: datetime) -> int:
    """Signed whole milliseconds from ``earlier`` to ``later``."""
    delta = later - earlier
    return int(delta.total_seconds() * 1000)


def days_until(target: datetime, now: datetime) -> int:
    """Ceiling of the (signed) number of days from ``now`` to ``target``."""
    return math.ceil(milliseconds_between(target, now) / MS_PER_DAY)


def iso_date(moment: datetime) -> str:
    """``YYYY-MM-DD`` in UTC."""
    return moment.astimezone(timezone.utc).date().isoformat()


def today_compact(today: date) -> str:
    """``YYYYMMDD`` form used in generated concept names."""
    return today.strftime("%Y%m%d")


class ObservationFields:
    """
    Parsed view over an entity's observations.

    Example:
        >>> fields = ObservationFields(["Due: 2025-01-10", "Read chapter 3"])
        >>> fields.get("due")
        '2025-01-10'
        >>> fields.descriptions
        ['Read chapter 3']
    """

    def __init__(self, observations: Iterable[str]):
        self._values: Dict[str, str] = {}
        self._descriptions: List[str] = []
        for text in observations:
            parts = split_observation(text)
            if parts is None:
                self._descriptions.append(text)
                continue
            key, value = parts
            self._values.setdefault(key, value)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Value of a field (case-insensitive key), or ``default``."""
        return self._values.get(key.lower(), default)

    def has(self, key: str) -> bool:
        return key.lower() in self._values

    def date(self, key: str) -> Optional[datetime]:
        """Field parsed as a datetime, or None."""
        return parse_date(self.get(key))

    def number(self, key: str) -> Optional[float]:
        """Field parsed as a number, or None."""
        return parse_number(self.get(key))

    @property
    def descriptions(self) -> List[str]:
        """Observations that carry no field key."""
        return list(self._descriptions)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._values)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __repr__(self) -> str:
        return f"ObservationFields({self._values!r})"
