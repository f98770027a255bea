"""
FIMCheck - Scan engine.

Pipeline:  walker -> hasher -> classify against baseline -> missing pass

Enumerates every non-excluded file, hashes it, classifies it as modified,
unknown or clean, then checks which baseline entries are missing from disk.
Progress is written to a ProgressStore every few files so another caller
can poll it while the scan runs. The last value is also rewritten before it
can expire, so a slow stretch of hashing never reads as "no scan running".
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterator, Mapping, Optional, Protocol

from fimcheck.core.errors import FileAccessError, ScanCancelledError, ScanRootError
from fimcheck.core.hashing import HashEngine
from fimcheck.core.models import Classification, ScanResult
from fimcheck.core.observers import LoggingObserver, ScanObserver
from fimcheck.core.progress import DEFAULT_SESSION, DEFAULT_TTL_SECONDS, MemoryProgressStore, ProgressStore
from fimcheck.core.walker import DirectoryWalker, normalize_relative

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 10
MAX_WORKERS = 32
# Rewrite the current value once this fraction of the TTL has elapsed.
REFRESH_FRACTION = 0.5
HEARTBEAT_FRACTION = 1 / 3


class Cancellable(Protocol):
    def is_cancelled(self) -> bool: ...


class CancelToken:
    """Thread-safe cancellation flag checked at every file boundary."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


class _ProgressWriter:
    """
    Progress cell of one scan session.

    Values never decrease. refresh() rewrites the current value with a fresh
    TTL; a heartbeat thread calls it while a single file takes longer to hash
    than the TTL allows.
    """

    def __init__(
        self,
        store: ProgressStore,
        observer: ScanObserver,
        session_id: str,
        ttl: float,
        clock: Callable[[], float],
    ) -> None:
        self.store = store
        self.observer = observer
        self.session_id = session_id
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._value: Optional[float] = None
        self._written_at = 0.0
        self._stop = threading.Event()
        self._heartbeat: Optional[threading.Thread] = None

    def write(self, value: float) -> None:
        with self._lock:
            if self._value is not None:
                value = max(value, self._value)
            self._value = value
            self._store(value)
        self.observer.progress(self.session_id, value)

    def refresh(self, only_if_stale: bool = False) -> None:
        with self._lock:
            if self._value is None:
                return
            if only_if_stale and self._clock() - self._written_at < self.ttl * REFRESH_FRACTION:
                return
            self._store(self._value)

    def _store(self, value: float) -> None:
        try:
            self.store.set(self.session_id, value, self.ttl)
        except OSError as e:
            logger.warning("Could not record progress for %s: %s", self.session_id, e)
        self._written_at = self._clock()

    def start_heartbeat(self) -> None:
        interval = max(0.01, self.ttl * HEARTBEAT_FRACTION)

        def _beat() -> None:
            while not self._stop.wait(interval):
                self.refresh()

        self._heartbeat = threading.Thread(
            target=_beat, name=f"fimcheck-progress-{self.session_id[:8]}", daemon=True
        )
        self._heartbeat.start()

    def stop_heartbeat(self) -> None:
        self._stop.set()
        if self._heartbeat is not None:
            self._heartbeat.join()
            self._heartbeat = None


class ScanEngine:
    """
    Classifies a directory tree against a baseline manifest.

    With workers > 1, hashing runs in a thread pool; results are still
    consumed in enumeration order, so classification and progress are the
    same as a sequential run.
    """

    def __init__(
        self,
        hasher: Optional[HashEngine] = None,
        walker: Optional[DirectoryWalker] = None,
        progress_store: Optional[ProgressStore] = None,
        observer: Optional[ScanObserver] = None,
        workers: int = 1,
        progress_every: int = PROGRESS_EVERY,
        progress_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.observer = observer or LoggingObserver()
        self.hasher = hasher or HashEngine()
        self.walker = walker or DirectoryWalker(observer=self.observer)
        self.progress_store = progress_store or MemoryProgressStore()
        self.workers = max(1, min(MAX_WORKERS, workers))
        self.progress_every = max(1, progress_every)
        self.progress_ttl = progress_ttl
        self._clock = clock

    def scan(
        self,
        root: Path,
        manifest: Mapping[str, str],
        session_id: str = DEFAULT_SESSION,
        cancel: Optional[Cancellable] = None,
        check_excluded_missing: bool = True,
    ) -> ScanResult:
        """
        Run one full pass over root.

        Args:
            root: Directory to verify.
            manifest: Relative path -> expected digest.
            session_id: Progress cell to write into.
            cancel: Optional token; ScanCancelledError is raised once it fires.
            check_excluded_missing: Whether manifest entries under an excluded
                prefix are still reported when absent from disk.

        Returns:
            ScanResult with sorted modified, missing and unknown lists.

        Raises:
            ScanRootError: root does not exist or is not a directory.
        """
        root = Path(root)
        if not root.is_dir():
            raise ScanRootError(f"Scan root is not a directory: {root}")
        exclusion = self.walker.exclusion
        files: list[tuple[Path, str]] = []
        for path in self.walker.walk(root):
            self._check_cancel(cancel)
            rel = normalize_relative(path, root)
            if exclusion.matches(rel):
                continue
            files.append((path, rel))

        total = len(files)
        self.observer.scan_started(session_id, total)
        writer = _ProgressWriter(self.progress_store, self.observer, session_id, self.progress_ttl, self._clock)
        writer.write(100.0 if total == 0 else 0.0)

        modified: list[str] = []
        unknown: list[str] = []
        errors: dict[str, str] = {}
        seen: set[str] = set()

        writer.start_heartbeat()
        try:
            processed = 0
            for rel, digest, error in self._hash_all(files, cancel, writer):
                writer.refresh(only_if_stale=True)
                seen.add(rel)
                if error is not None:
                    errors[rel] = error.reason
                    unknown.append(rel)
                    self.observer.file_error(rel, error)
                    self.observer.file_classified(rel, Classification.UNKNOWN)
                elif rel in manifest:
                    if digest != manifest[rel]:
                        modified.append(rel)
                        self.observer.file_classified(rel, Classification.MODIFIED)
                    else:
                        self.observer.file_classified(rel, Classification.CLEAN)
                else:
                    unknown.append(rel)
                    self.observer.file_classified(rel, Classification.UNKNOWN)

                processed += 1
                if processed % self.progress_every == 0 or processed == total:
                    writer.write(processed * 100.0 / total)
        finally:
            writer.stop_heartbeat()

        # Only valid once the enumeration pass has finished.
        missing: list[str] = []
        for key in manifest:
            if key in seen:
                continue
            if not check_excluded_missing and exclusion.matches(key):
                continue
            if not (root / key).exists():
                missing.append(key)
                self.observer.file_classified(key, Classification.MISSING)

        result = ScanResult(
            modified=tuple(sorted(modified)),
            missing=tuple(sorted(missing)),
            unknown=tuple(sorted(unknown)),
            errors=errors,
            scanned=total,
            manifest_size=len(manifest),
        )
        self.observer.scan_finished(session_id, result)
        return result

    @staticmethod
    def _check_cancel(cancel: Optional[Cancellable]) -> None:
        if cancel is not None and cancel.is_cancelled():
            raise ScanCancelledError("Scan cancelled")

    def _hash_one(self, path: Path) -> tuple[Optional[str], Optional[FileAccessError]]:
        try:
            return self.hasher.compute_file_hash(path), None
        except FileAccessError as e:
            return None, e

    def _hash_all(
        self,
        files: list[tuple[Path, str]],
        cancel: Optional[Cancellable],
        writer: _ProgressWriter,
    ) -> Iterator[tuple[str, Optional[str], Optional[FileAccessError]]]:
        """Yield (relative path, digest, error) in the order of files."""
        if self.workers == 1:
            for path, rel in files:
                self._check_cancel(cancel)
                writer.refresh(only_if_stale=True)
                digest, error = self._hash_one(path)
                yield rel, digest, error
            return

        executor = ThreadPoolExecutor(max_workers=self.workers)
        try:
            results = executor.map(self._hash_one, [path for path, _ in files])
            for (_, rel), (digest, error) in zip(files, results):
                self._check_cancel(cancel)
                yield rel, digest, error
        finally:
            executor.shutdown(wait=True, cancel_futures=True)
