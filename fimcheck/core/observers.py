"""
FIMCheck - Scan observers.

The scan engine and walker report what happens through a ScanObserver instead
of logging inline. LoggingObserver is the default sink; the CLI stacks the
finding log and the rich progress bar on top via CompositeObserver.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

from fimcheck.core.models import Classification, ScanResult

logger = logging.getLogger(__name__)


class ScanObserver:
    """No-op base; override the hooks you need."""

    def manifest_loaded(self, count: int, source: str, version: Optional[str]) -> None:
        pass

    def scan_started(self, session_id: str, total: int) -> None:
        pass

    def file_classified(self, rel_path: str, classification: Classification) -> None:
        pass

    def file_error(self, rel_path: str, error: Exception) -> None:
        pass

    def walk_error(self, path: Path, reason: str) -> None:
        pass

    def progress(self, session_id: str, value: float) -> None:
        pass

    def scan_finished(self, session_id: str, result: ScanResult) -> None:
        pass


class LoggingObserver(ScanObserver):
    """Writes scan diagnostics through the logging module."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self._log = log or logger

    def manifest_loaded(self, count: int, source: str, version: Optional[str]) -> None:
        self._log.info("Checksums loaded from %s (version %s): %d files", source, version or "n/a", count)

    def scan_started(self, session_id: str, total: int) -> None:
        self._log.info("Scan %s started: %d files to check", session_id, total)

    def file_classified(self, rel_path: str, classification: Classification) -> None:
        self._log.debug("%s: %s", classification.value.upper(), rel_path)

    def file_error(self, rel_path: str, error: Exception) -> None:
        self._log.warning("Unreadable file treated as unknown: %s (%s)", rel_path, error)

    def walk_error(self, path: Path, reason: str) -> None:
        self._log.warning("Skipping %s: %s", path, reason)

    def scan_finished(self, session_id: str, result: ScanResult) -> None:
        self._log.info(
            "Scan %s finished: %d scanned, %d modified, %d missing, %d unknown",
            session_id,
            result.scanned,
            len(result.modified),
            len(result.missing),
            len(result.unknown),
        )


class CompositeObserver(ScanObserver):
    """Forwards every hook to each wrapped observer in order."""

    def __init__(self, observers: Iterable[ScanObserver]) -> None:
        self.observers = list(observers)

    def manifest_loaded(self, count: int, source: str, version: Optional[str]) -> None:
        for o in self.observers:
            o.manifest_loaded(count, source, version)

    def scan_started(self, session_id: str, total: int) -> None:
        for o in self.observers:
            o.scan_started(session_id, total)

    def file_classified(self, rel_path: str, classification: Classification) -> None:
        for o in self.observers:
            o.file_classified(rel_path, classification)

    def file_error(self, rel_path: str, error: Exception) -> None:
        for o in self.observers:
            o.file_error(rel_path, error)

    def walk_error(self, path: Path, reason: str) -> None:
        for o in self.observers:
            o.walk_error(path, reason)

    def progress(self, session_id: str, value: float) -> None:
        for o in self.observers:
            o.progress(session_id, value)

    def scan_finished(self, session_id: str, result: ScanResult) -> None:
        for o in self.observers:
            o.scan_finished(session_id, result)
