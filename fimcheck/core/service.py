"""
FIMCheck - Scan service.

Entry points for callers (CLI, web handlers, schedulers): run a scan in the
foreground or on a background thread, and query a session's progress. All
expected failures come back as one human-readable error string.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from fimcheck.core.engine import CancelToken, ScanEngine
from fimcheck.core.errors import AuthorizationError, IntegrityCheckError
from fimcheck.core.hashing import HashEngine
from fimcheck.core.manifest import ManifestProvider, detect_version
from fimcheck.core.models import ChecksumSource, ScanResult
from fimcheck.core.observers import LoggingObserver, ScanObserver
from fimcheck.core.progress import (
    DEFAULT_SESSION,
    MemoryProgressStore,
    ProgressStore,
    new_session_id,
    validate_session_id,
)
from fimcheck.core.walker import DirectoryWalker, ExclusionRule

logger = logging.getLogger(__name__)


@dataclass
class ScanOutcome:
    """What a caller gets back from one scan request."""

    session_id: str
    ok: bool
    result: Optional[ScanResult] = None
    error: Optional[str] = None
    source: Optional[str] = None
    version: Optional[str] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "session_id": self.session_id,
            "ok": self.ok,
            "source": self.source,
            "version": self.version,
        }
        if self.ok and self.result is not None:
            out["result"] = self.result.to_dict()
        else:
            out["error"] = self.error
        return out


class IntegrityService:
    """
    Wires manifest provider, scan engine and progress store from a config
    dict (see config_loader.build_config). Collaborators may be injected.
    """

    def __init__(
        self,
        config: dict[str, Any],
        provider: Optional[ManifestProvider] = None,
        engine: Optional[ScanEngine] = None,
        progress_store: Optional[ProgressStore] = None,
        authorizer: Optional[Callable[[], bool]] = None,
        observer: Optional[ScanObserver] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.observer = observer or LoggingObserver()
        self.progress_store = progress_store or MemoryProgressStore()
        self.authorizer = authorizer
        hasher = HashEngine(config.get("hash_algorithm", HashEngine.ALGORITHM))
        self.provider = provider or ManifestProvider(
            checksum_url=config["checksum_url"],
            local_path=config["local_checksums_path"],
            digest_length=hasher.digest_length,
            timeout=config.get("http_timeout", 30.0),
        )
        self.engine = engine or ScanEngine(
            hasher=hasher,
            walker=DirectoryWalker(
                exclusion=ExclusionRule(config["exclude_prefixes"]),
                follow_symlinks=config.get("follow_symlinks", False),
                observer=self.observer,
            ),
            progress_store=self.progress_store,
            observer=self.observer,
            workers=config.get("workers", 1),
            progress_every=config.get("progress_every", 10),
            progress_ttl=config.get("progress_ttl_seconds", 60.0),
        )
        # Finished background sessions are kept this long for outcome()/wait().
        self.session_ttl = config.get("progress_ttl_seconds", 60.0)
        self._clock = clock
        self._lock = threading.Lock()
        self._threads: dict[str, threading.Thread] = {}
        self._outcomes: dict[str, ScanOutcome] = {}
        self._finished_at: dict[str, float] = {}
        self._cancel_tokens: dict[str, CancelToken] = {}

    def _authorize(self) -> None:
        if self.authorizer is not None and not self.authorizer():
            raise AuthorizationError("Access denied.")

    def resolve_version(self) -> Optional[str]:
        return self.config.get("checksum_version") or detect_version(self.config["scan_root"])

    def scan(
        self,
        session_id: Optional[str] = None,
        source: Optional[ChecksumSource] = None,
        cancel: Optional[CancelToken] = None,
    ) -> ScanOutcome:
        """Authorize, load the baseline, and run one scan to completion."""
        sid = validate_session_id(session_id or new_session_id())
        src = ChecksumSource.parse(source or self.config.get("checksum_source"))
        outcome = ScanOutcome(session_id=sid, ok=False, source=src.value, started_at=time.time())
        try:
            self._authorize()
            outcome.version = self.resolve_version()
            manifest = self.provider.load(src, outcome.version)
            self.observer.manifest_loaded(len(manifest), src.value, outcome.version)
            outcome.result = self.engine.scan(
                self.config["scan_root"],
                manifest,
                session_id=sid,
                cancel=cancel,
                check_excluded_missing=self.config.get("check_excluded_missing", True),
            )
            outcome.ok = True
        except IntegrityCheckError as e:
            logger.warning("Scan %s failed: %s", sid, e)
            outcome.error = str(e)
        outcome.finished_at = time.time()
        return outcome

    def start_scan(self, session_id: Optional[str] = None, source: Optional[ChecksumSource] = None) -> str:
        """Run scan() on a background thread; returns the session id to poll."""
        sid = validate_session_id(session_id or new_session_id())
        token = CancelToken()

        def _run() -> None:
            try:
                outcome = self.scan(session_id=sid, source=source, cancel=token)
            except Exception as e:
                logger.exception("Scan %s crashed: %s", sid, e)
                outcome = ScanOutcome(session_id=sid, ok=False, error=f"Scan failed: {e}")
            with self._lock:
                self._outcomes[sid] = outcome
                self._finished_at[sid] = self._clock()
                self._threads.pop(sid, None)
                self._cancel_tokens.pop(sid, None)

        self._evict_finished()
        try:
            self.progress_store.purge()
        except OSError as e:
            logger.warning("Could not purge expired progress records: %s", e)

        thread = threading.Thread(target=_run, name=f"fimcheck-scan-{sid[:8]}", daemon=True)
        with self._lock:
            if sid in self._threads and self._threads[sid].is_alive():
                raise ValueError(f"Scan session already running: {sid}")
            self._threads[sid] = thread
            self._cancel_tokens[sid] = token
            self._outcomes.pop(sid, None)
            self._finished_at.pop(sid, None)
        thread.start()
        return sid

    def cancel(self, session_id: str) -> bool:
        with self._lock:
            token = self._cancel_tokens.get(session_id)
        if token is None:
            return False
        token.cancel()
        return True

    def wait(self, session_id: str, timeout: Optional[float] = None) -> Optional[ScanOutcome]:
        with self._lock:
            thread = self._threads.get(session_id)
        if thread is not None:
            thread.join(timeout)
        return self.outcome(session_id)

    def outcome(self, session_id: str) -> Optional[ScanOutcome]:
        """
        Finished outcome for a background session, or None while running,
        unknown, or older than session_ttl.
        """
        self._evict_finished()
        with self._lock:
            return self._outcomes.get(session_id)

    def _evict_finished(self) -> None:
        cutoff = self._clock() - self.session_ttl
        with self._lock:
            expired = [sid for sid, at in self._finished_at.items() if at <= cutoff]
            for sid in expired:
                del self._finished_at[sid]
                self._outcomes.pop(sid, None)
        if expired:
            logger.debug("Evicted %d finished scan sessions", len(expired))

    def progress(self, session_id: str = DEFAULT_SESSION) -> float:
        value = self.progress_store.get(session_id)
        return 0.0 if value is None else value
