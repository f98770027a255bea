"""
FIMCheck - Scan progress store.

Small time-limited cells holding one percent value per scan session. The scan
engine writes them; an independent caller (another thread, or another process
for FileProgressStore) reads them. Expired or absent sessions read as None.
"""

import json
import logging
import os
import re
import tempfile
import threading
import time
import uuid
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_SESSION = "default"
DEFAULT_TTL_SECONDS = 60.0

_SESSION_RE = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


def new_session_id() -> str:
    return uuid.uuid4().hex


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def validate_session_id(session_id: str) -> str:
    if not _SESSION_RE.match(session_id or ""):
        raise ValueError(f"Invalid session id: {session_id!r}")
    return session_id


class ProgressStore:
    """Interface: last-write-wins percent cells with expiry."""

    def set(self, session_id: str, value: float, ttl: float = DEFAULT_TTL_SECONDS) -> None:
        raise NotImplementedError

    def get(self, session_id: str = DEFAULT_SESSION) -> Optional[float]:
        raise NotImplementedError

    def clear(self, session_id: str = DEFAULT_SESSION) -> None:
        raise NotImplementedError

    def purge(self) -> int:
        """Drop expired sessions; returns how many were removed."""
        return 0


class MemoryProgressStore(ProgressStore):
    """In-process store shared between threads."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._cells: dict[str, tuple[float, float]] = {}

    def set(self, session_id: str, value: float, ttl: float = DEFAULT_TTL_SECONDS) -> None:
        validate_session_id(session_id)
        with self._lock:
            self._cells[session_id] = (_clamp(value), self._clock() + ttl)

    def get(self, session_id: str = DEFAULT_SESSION) -> Optional[float]:
        with self._lock:
            cell = self._cells.get(session_id)
            if cell is None:
                return None
            value, expires_at = cell
            if self._clock() >= expires_at:
                del self._cells[session_id]
                return None
            return value

    def clear(self, session_id: str = DEFAULT_SESSION) -> None:
        with self._lock:
            self._cells.pop(session_id, None)

    def purge(self) -> int:
        """Drop every expired cell; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._cells.items() if now >= exp]
            for k in expired:
                del self._cells[k]
        return len(expired)


class FileProgressStore(ProgressStore):
    """
    One JSON file per session under directory, so separate processes can
    poll a running scan. Writes go through a temp file and os.replace.
    """

    def __init__(self, directory: Path, clock: Callable[[], float] = time.time) -> None:
        self.directory = Path(directory)
        self._clock = clock

    def _path(self, session_id: str) -> Path:
        return self.directory / f"{validate_session_id(session_id)}.json"

    def set(self, session_id: str, value: float, ttl: float = DEFAULT_TTL_SECONDS) -> None:
        path = self._path(session_id)
        self.directory.mkdir(parents=True, exist_ok=True)
        record = {"progress": _clamp(value), "expires_at": self._clock() + ttl}
        fd, tmp = tempfile.mkstemp(prefix=".progress-", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f)
            os.replace(tmp, path)
        except OSError:
            _unlink_quietly(tmp)
            raise

    def get(self, session_id: str = DEFAULT_SESSION) -> Optional[float]:
        try:
            path = self._path(session_id)
        except ValueError:
            return None
        try:
            with open(path, encoding="utf-8") as f:
                record = json.load(f)
            value = float(record["progress"])
            expires_at = float(record["expires_at"])
        except FileNotFoundError:
            return None
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Unreadable progress record %s: %s", path, e)
            return None
        if self._clock() >= expires_at:
            _unlink_quietly(path)
            return None
        return _clamp(value)

    def clear(self, session_id: str = DEFAULT_SESSION) -> None:
        _unlink_quietly(self._path(session_id))

    def purge(self) -> int:
        """Delete session files that have expired but were never read again."""
        if not self.directory.is_dir():
            return 0
        now = self._clock()
        removed = 0
        for path in self.directory.glob("*.json"):
            try:
                with open(path, encoding="utf-8") as f:
                    expires_at = float(json.load(f)["expires_at"])
            except (OSError, ValueError, KeyError, TypeError):
                continue
            if now >= expires_at:
                _unlink_quietly(path)
                removed += 1
        return removed


def _unlink_quietly(path) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.debug("Could not remove %s: %s", path, e)
