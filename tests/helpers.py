from __future__ import annotations

import hashlib
import threading
from pathlib import Path

from fimcheck.core.hashing import HashEngine
from fimcheck.core.models import Classification, ScanResult
from fimcheck.core.observers import ScanObserver


def md5(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class RecordingObserver(ScanObserver):
    def __init__(self) -> None:
        self.progress_values: list[float] = []
        self.classified: list[tuple[str, Classification]] = []
        self.file_errors: list[str] = []
        self.walk_errors: list[Path] = []
        self.loaded: list[int] = []
        self.finished: list[ScanResult] = []

    def manifest_loaded(self, count: int, source: str, version: str | None) -> None:
        self.loaded.append(count)

    def file_classified(self, rel_path: str, classification: Classification) -> None:
        self.classified.append((rel_path, classification))

    def file_error(self, rel_path: str, error: Exception) -> None:
        self.file_errors.append(rel_path)

    def walk_error(self, path: Path, reason: str) -> None:
        self.walk_errors.append(path)

    def progress(self, session_id: str, value: float) -> None:
        self.progress_values.append(value)

    def scan_finished(self, session_id: str, result: ScanResult) -> None:
        self.finished.append(result)




class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class BlockingHasher(HashEngine):
    """Hashes normally, but holds the first file until release is set."""

    def __init__(self) -> None:
        super().__init__()
        self.started = threading.Event()
        self.release = threading.Event()

    def compute_file_hash(self, file_path: Path) -> str:
        if not self.started.is_set():
            self.started.set()
            self.release.wait(10)
        return super().compute_file_hash(file_path)
