from __future__ import annotations

import time
from pathlib import Path

import pytest

from fimcheck.core.engine import CancelToken, ScanEngine
from fimcheck.core.errors import FileAccessError, ScanCancelledError, ScanRootError
from fimcheck.core.hashing import HashEngine
from fimcheck.core.manifest import BaselineManifest
from fimcheck.core.models import ScanResult
from fimcheck.core.progress import MemoryProgressStore
from fimcheck.core.walker import DirectoryWalker, ExclusionRule
from tests.helpers import FakeClock, RecordingObserver, md5, write


def _engine(**kwargs) -> tuple[ScanEngine, RecordingObserver, MemoryProgressStore]:
    observer = RecordingObserver()
    store = kwargs.pop("progress_store", None) or MemoryProgressStore()
    walker = DirectoryWalker(exclusion=kwargs.pop("exclusion", ExclusionRule()), observer=observer)
    engine = ScanEngine(walker=walker, progress_store=store, observer=observer, **kwargs)
    return engine, observer, store


def _as_dict(result: ScanResult) -> dict[str, list[str]]:
    return {
        "modified": list(result.modified),
        "missing": list(result.missing),
        "unknown": list(result.unknown),
    }


def test_matching_hash_is_reported_nowhere(site: Path) -> None:
    write(site, "a.txt", "hello")
    engine, _, _ = _engine()
    result = engine.scan(site, {"a.txt": md5("hello")})
    assert _as_dict(result) == {"modified": [], "missing": [], "unknown": []}
    assert result.is_clean


def test_changed_content_is_modified(site: Path) -> None:
    write(site, "a.txt", "hello, tampered")
    engine, _, _ = _engine()
    result = engine.scan(site, {"a.txt": md5("hello")})
    assert _as_dict(result) == {"modified": ["a.txt"], "missing": [], "unknown": []}


def test_absent_manifest_file_is_missing(site: Path) -> None:
    engine, _, _ = _engine()
    result = engine.scan(site, {"a.txt": md5("hello")})
    assert _as_dict(result) == {"modified": [], "missing": ["a.txt"], "unknown": []}


def test_empty_manifest_marks_everything_unknown(site: Path) -> None:
    write(site, "b.txt", "new")
    engine, _, _ = _engine()
    result = engine.scan(site, {})
    assert _as_dict(result) == {"modified": [], "missing": [], "unknown": ["b.txt"]}


def test_empty_tree_reports_every_manifest_key_missing_and_full_progress(site: Path) -> None:
    manifest = {"index.php": md5("i"), "wp-includes/load.php": md5("l")}
    engine, observer, store = _engine()
    result = engine.scan(site, manifest, session_id="empty")
    assert result.missing == ("index.php", "wp-includes/load.php")
    assert result.modified == ()
    assert result.unknown == ()
    assert observer.progress_values == [100.0]
    assert store.get("empty") == 100.0


def test_nested_paths_use_forward_slash_keys_and_sorted_lists(site: Path) -> None:
    write(site, "wp-includes/js/z.js", "z")
    write(site, "wp-includes/js/a.js", "changed")
    write(site, "wp-admin/extra.php", "x")
    manifest = {
        "wp-includes/js/a.js": md5("a"),
        "wp-includes/js/z.js": md5("z"),
        "wp-admin/gone.php": md5("gone"),
    }
    engine, _, _ = _engine()
    result = engine.scan(site, manifest)
    assert result.modified == ("wp-includes/js/a.js",)
    assert result.missing == ("wp-admin/gone.php",)
    assert result.unknown == ("wp-admin/extra.php",)
    assert result.scanned == 3
    assert result.manifest_size == 3


def test_excluded_prefix_never_modified_or_unknown(site: Path) -> None:
    write(site, "wp-content/themes/style.css", "edited theme")
    write(site, "wp-content/uploads/photo.jpg", "upload")
    write(site, "index.php", "i")
    manifest = {"index.php": md5("i"), "wp-content/themes/style.css": md5("original")}
    engine, _, _ = _engine()
    result = engine.scan(site, manifest)
    assert result.is_clean
    assert result.scanned == 1


def test_excluded_manifest_entries_checked_for_missing_by_default(site: Path) -> None:
    write(site, "index.php", "i")
    manifest = {"index.php": md5("i"), "wp-content/plugins/hello.php": md5("h")}
    engine, _, _ = _engine()

    result = engine.scan(site, manifest)
    assert result.missing == ("wp-content/plugins/hello.php",)

    result = engine.scan(site, manifest, check_excluded_missing=False)
    assert result.missing == ()


def test_progress_is_monotonic_bounded_and_ends_at_100(site: Path) -> None:
    for i in range(25):
        write(site, f"f{i:02d}.txt", str(i))
    engine, observer, store = _engine()
    engine.scan(site, {}, session_id="s1")
    assert observer.progress_values == [0.0, 40.0, 80.0, 100.0]
    assert observer.progress_values == sorted(observer.progress_values)
    assert store.get("s1") == 100.0


def test_progress_every_is_configurable(site: Path) -> None:
    for i in range(4):
        write(site, f"f{i}.txt", str(i))
    engine, observer, _ = _engine(progress_every=1)
    engine.scan(site, {})
    assert observer.progress_values == [0.0, 25.0, 50.0, 75.0, 100.0]


def test_scan_is_idempotent_and_lists_are_disjoint(site: Path) -> None:
    write(site, "same.txt", "same")
    write(site, "changed.txt", "now")
    write(site, "extra.txt", "extra")
    manifest = {"same.txt": md5("same"), "changed.txt": md5("before"), "gone.txt": md5("gone")}
    engine, _, _ = _engine()
    first = engine.scan(site, manifest)
    second = engine.scan(site, manifest)
    assert first == second
    sets = [set(first.modified), set(first.missing), set(first.unknown)]
    assert not (sets[0] & sets[1] or sets[0] & sets[2] or sets[1] & sets[2])


class _FlakyHasher(HashEngine):
    def __init__(self, broken: str) -> None:
        super().__init__()
        self.broken = broken

    def compute_file_hash(self, file_path: Path) -> str:
        if file_path.name == self.broken:
            raise FileAccessError(file_path, "Permission denied")
        return super().compute_file_hash(file_path)


def test_unreadable_file_is_unknown_and_scan_continues(site: Path) -> None:
    write(site, "locked.php", "secret")
    write(site, "ok.php", "ok")
    manifest = {"locked.php": md5("secret"), "ok.php": md5("ok")}
    engine, observer, _ = _engine(hasher=_FlakyHasher("locked.php"))
    result = engine.scan(site, manifest)
    assert result.unknown == ("locked.php",)
    assert result.errors == {"locked.php": "Permission denied"}
    assert result.missing == ()
    assert result.modified == ()
    assert observer.file_errors == ["locked.php"]


def test_parallel_hashing_matches_sequential(site: Path) -> None:
    manifest = {}
    for i in range(40):
        write(site, f"dir{i % 3}/file{i}.txt", f"content {i}")
        manifest[f"dir{i % 3}/file{i}.txt"] = md5(f"content {i}" if i % 5 else "stale")
    manifest["dir0/vanished.txt"] = md5("v")

    sequential, seq_observer, _ = _engine()
    parallel, par_observer, _ = _engine(workers=4)
    assert sequential.scan(site, manifest) == parallel.scan(site, manifest)
    assert seq_observer.progress_values == par_observer.progress_values


def test_cancelled_token_stops_scan(site: Path) -> None:
    write(site, "a.txt", "a")
    token = CancelToken()
    token.cancel()
    engine, observer, _ = _engine()
    with pytest.raises(ScanCancelledError):
        engine.scan(site, {}, cancel=token)
    assert observer.finished == []


def test_sha256_engine_compares_with_sha256_manifest(site: Path) -> None:
    import hashlib

    write(site, "a.txt", "hello")
    engine, _, _ = _engine(hasher=HashEngine("sha256"))
    result = engine.scan(site, {"a.txt": hashlib.sha256(b"hello").hexdigest()})
    assert result.is_clean


def test_non_canonical_manifest_key_still_detects_tampering(site: Path) -> None:
    write(site, "wp-includes/load.php", "tampered")
    manifest = BaselineManifest.from_mapping(
        {"wp-includes//load.php": md5("original")}, digest_length=32, source="local"
    )
    engine, _, _ = _engine()
    result = engine.scan(site, manifest)
    assert _as_dict(result) == {"modified": ["wp-includes/load.php"], "missing": [], "unknown": []}


def test_missing_scan_root_is_an_error(tmp_path: Path) -> None:
    engine, observer, store = _engine()
    with pytest.raises(ScanRootError, match="not a directory"):
        engine.scan(tmp_path / "nowhere", {"index.php": md5("i")}, session_id="noroot")
    assert observer.finished == []
    assert store.get("noroot") is None


def test_file_as_scan_root_is_an_error(site: Path) -> None:
    root = write(site, "index.php", "i")
    engine, _, _ = _engine()
    with pytest.raises(ScanRootError):
        engine.scan(root, {})


class _ClockAdvancingHasher(HashEngine):
    """Each hash takes `seconds` on the fake clock; records what a poller sees afterwards."""

    def __init__(self, clock: FakeClock, store: MemoryProgressStore, seconds: float) -> None:
        super().__init__()
        self.clock = clock
        self.store = store
        self.seconds = seconds
        self.seen: list[float | None] = []

    def compute_file_hash(self, file_path: Path) -> str:
        self.clock.now += self.seconds
        self.seen.append(self.store.get("slow"))
        return super().compute_file_hash(file_path)


def test_progress_survives_slow_hashing_between_writes(site: Path) -> None:
    for i in range(5):
        write(site, f"f{i}.txt", str(i))
    clock = FakeClock()
    store = MemoryProgressStore(clock=clock)
    hasher = _ClockAdvancingHasher(clock, store, seconds=40)
    engine, observer, _ = _engine(hasher=hasher, progress_store=store, progress_ttl=60, clock=clock)

    engine.scan(site, {}, session_id="slow")

    assert hasher.seen == [0.0] * 5
    assert observer.progress_values == [0.0, 100.0]
    assert store.get("slow") == 100.0


class _SleepingHasher(HashEngine):
    def __init__(self, store: MemoryProgressStore, seconds: float) -> None:
        super().__init__()
        self.store = store
        self.seconds = seconds
        self.seen: list[float | None] = []

    def compute_file_hash(self, file_path: Path) -> str:
        time.sleep(self.seconds)
        self.seen.append(self.store.get("big"))
        return super().compute_file_hash(file_path)


def test_progress_kept_alive_while_one_file_outlasts_ttl(site: Path) -> None:
    write(site, "huge.iso", "big")
    write(site, "small.txt", "s")
    store = MemoryProgressStore()
    hasher = _SleepingHasher(store, seconds=1.0)
    engine, _, _ = _engine(hasher=hasher, progress_store=store, progress_ttl=0.6)

    engine.scan(site, {}, session_id="big")

    assert None not in hasher.seen
    assert hasher.seen == sorted(hasher.seen)
