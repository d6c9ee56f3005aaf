"""
Single-writer locking for the JSON documents.

Platform Support:
    This module requires POSIX systems (Linux, macOS). Windows is not supported.

``ProcessLock`` serializes read-modify-write cycles on one document across
threads (``threading.RLock``) and across processes (``fcntl.flock`` on a
sibling ``.lock`` file). It is reentrant, so a store operation that calls
another store operation while holding the lock does not deadlock.

Logging:
    Configure via::

        import logging
        logging.getLogger('studygraph.utils.locking').setLevel(logging.DEBUG)
"""

from __future__ import annotations

import fcntl
import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def lock_path_for(document: Path) -> Path:
    """Lock file that guards ``document`` (``memory.json`` -> ``memory.json.lock``)."""
    document = Path(document)
    return document.with_name(document.name + '.lock')


class LockTimeoutError(RuntimeError):
    """The lock could not be acquired within the timeout."""


class ProcessLock:
    """
    Reentrant lock held across threads and processes.

    Usage:
        lock = ProcessLock(lock_path_for(Path("memory.json")))
        with lock:
            # read, modify and rewrite the document
            pass
    """

    def __init__(self, lock_path: Path, timeout: float = 10.0, stale_timeout: float = 3600.0):
        """
        Initialize process lock.

        Args:
            lock_path: Path to lock file
            timeout: Seconds to wait for the file lock before giving up
            stale_timeout: Seconds after which a holder record is considered stale
        """
        self.lock_path = Path(lock_path)
        self.timeout = timeout
        self.stale_timeout = stale_timeout
        self._thread_lock = threading.RLock()
        self._fd = None
        self._depth = 0

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Acquire the lock, retrying with exponential backoff.

        Args:
            timeout: Override of the instance timeout, in seconds

        Returns:
            True if acquired, False on timeout
        """
        wait = self.timeout if timeout is None else timeout
        if not self._thread_lock.acquire(timeout=wait if wait >= 0 else -1):
            return False

        if self._depth > 0:
            self._depth += 1
            return True

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + wait
        backoff = 0.01

        while True:
            if self._try_flock():
                self._depth = 1
                logger.debug(f"Acquired lock {self.lock_path}")
                return True
            if self._is_stale():
                logger.warning(f"Recovering stale lock at {self.lock_path}")
                self.lock_path.unlink(missing_ok=True)
                continue
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._thread_lock.release()
                return False
            time.sleep(min(backoff, remaining))
            backoff = min(backoff * 2, 0.5)

    def _try_flock(self) -> bool:
        fd = open(self.lock_path, 'a+')
        try:
            fcntl.flock(fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            fd.close()
            return False

        fd.seek(0)
        fd.truncate()
        json.dump({"pid": os.getpid(), "acquired_at": time.time()}, fd)
        fd.flush()
        self._fd = fd
        return True

    def _is_stale(self) -> bool:
        """True if the recorded holder is dead or has held the lock too long."""
        try:
            content = self.lock_path.read_text().strip()
        except FileNotFoundError:
            return False
        if not content:
            return False
        try:
            holder = json.loads(content)
        except json.JSONDecodeError:
            logger.warning(f"Lock file {self.lock_path} has invalid JSON")
            return False

        acquired_at = holder.get("acquired_at")
        if acquired_at and time.time() - acquired_at > self.stale_timeout:
            return True
        pid = holder.get("pid")
        if pid is None or pid == os.getpid():
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return True
        except PermissionError:
            return False
        return False

    def release(self) -> None:
        """Release one level of the lock."""
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0 and self._fd is not None:
            try:
                fcntl.flock(self._fd.fileno(), fcntl.LOCK_UN)
            finally:
                self._fd.close()
                self._fd = None
            logger.debug(f"Released lock {self.lock_path}")
        self._thread_lock.release()

    def is_locked(self) -> bool:
        """True if this instance currently holds the lock."""
        return self._depth > 0

    def __enter__(self) -> ProcessLock:
        if not self.acquire():
            raise LockTimeoutError(f"Failed to acquire lock: {self.lock_path}")
        return self

    def __exit__(self, *args) -> None:
        self.release()
