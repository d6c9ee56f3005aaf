"""
Atomic JSON document persistence.

Both persisted documents (the knowledge graph and the session state) are
rewritten whole on every mutation, using the write-to-temp-then-rename
pattern so a crash mid-write never leaves a truncated document behind.
"""

import json
import os
from pathlib import Path
from typing import Any, Callable


def atomic_write_json(path: Path, data: Any, indent: int = 2, encoding: str = 'utf-8') -> None:
    """
    Write JSON data to a file atomically.

    Args:
        path: Target file path (parent directories are created)
        data: JSON-serializable data to write
        indent: JSON indentation level (default: 2)
        encoding: Text encoding (default: utf-8)

    Raises:
        OSError: If write or rename fails
        TypeError: If data is not JSON-serializable

    Example:
        >>> from pathlib import Path
        >>> atomic_write_json(Path("memory.json"), {"entities": [], "relations": []})
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + '.tmp')

    try:
        with open(temp_path, 'w', encoding=encoding) as f:
            json.dump(data, f, indent=indent, ensure_ascii=False)
            f.flush()
            os.fsync(f.fileno())

        os.replace(temp_path, path)
    except Exception:
        if temp_path.exists():
            temp_path.unlink()
        raise


def read_json(path: Path, default_factory: Callable[[], Any], encoding: str = 'utf-8') -> Any:
    """
    Read a JSON document, treating a missing or blank file as empty.

    Args:
        path: Document path
        default_factory: Builds the value returned for a missing/blank file
        encoding: Text encoding (default: utf-8)

    Returns:
        Decoded JSON value

    Raises:
        json.JSONDecodeError: If the file exists but is not valid JSON
    """
    path = Path(path)
    if not path.exists():
        return default_factory()
    with open(path, 'r', encoding=encoding) as f:
        content = f.read()
    if not content.strip():
        return default_factory()
    return json.loads(content)
