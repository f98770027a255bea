"""
FIMCheck - Directory walker.

Lazily yields regular files under a root, pruning excluded prefixes and
guarding against symlink loops.
"""

import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, Optional

from fimcheck.core.observers import LoggingObserver, ScanObserver

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE_PREFIXES = ("wp-content/",)


def normalize_key(path: str) -> str:
    """Slash-normalize a relative path string: backslashes to '/', no leading './' or '/'."""
    key = path.replace("\\", "/")
    while key.startswith("./"):
        key = key[2:]
    return key.lstrip("/")


def normalize_relative(path: Path, root: Path) -> str:
    """Root-relative, forward-slash form of path (the manifest key format)."""
    return normalize_key(Path(path).relative_to(root).as_posix())


class ExclusionRule:
    """Prefix predicate over root-relative paths."""

    def __init__(self, prefixes: Iterable[str] = DEFAULT_EXCLUDE_PREFIXES) -> None:
        self.prefixes = tuple(p for p in (normalize_key(str(x)) for x in prefixes) if p)

    def matches(self, rel_path: str) -> bool:
        return any(rel_path.startswith(prefix) for prefix in self.prefixes)

    def matches_dir(self, rel_dir: str) -> bool:
        """True when every file below rel_dir is excluded, so the directory can be pruned."""
        return self.matches(rel_dir.rstrip("/") + "/")

    def __repr__(self) -> str:
        return f"ExclusionRule({list(self.prefixes)!r})"


class DirectoryWalker:
    """
    Depth-first traversal with entries visited in name order.

    Symlinked files are yielded like regular files. Symlinked directories are
    only entered when follow_symlinks is set, and each real directory is
    entered at most once.
    """

    def __init__(
        self,
        exclusion: Optional[ExclusionRule] = None,
        follow_symlinks: bool = False,
        observer: Optional[ScanObserver] = None,
    ) -> None:
        self.exclusion = exclusion or ExclusionRule()
        self.follow_symlinks = follow_symlinks
        self.observer = observer or LoggingObserver()

    def walk(self, root: Path) -> Iterator[Path]:
        """Yield paths of regular, non-excluded files under root."""
        root = Path(root)
        if not root.is_dir():
            self.observer.walk_error(root, "not a directory")
            return

        visited: set[tuple[int, int]] = set()
        try:
            st = root.stat()
            visited.add((st.st_dev, st.st_ino))
        except OSError as e:
            self.observer.walk_error(root, str(e))
            return

        stack: list[Path] = [root]
        while stack:
            current = stack.pop()
            try:
                with os.scandir(current) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                self.observer.walk_error(current, e.strerror or str(e))
                continue

            subdirs: list[Path] = []
            for entry in entries:
                path = Path(entry.path)
                rel = normalize_relative(path, root)
                try:
                    if entry.is_dir(follow_symlinks=True):
                        if self.exclusion.matches_dir(rel):
                            continue
                        if entry.is_symlink():
                            if not self.follow_symlinks:
                                logger.debug("Not following directory symlink: %s", path)
                                continue
                            st = entry.stat(follow_symlinks=True)
                            key = (st.st_dev, st.st_ino)
                        else:
                            st = entry.stat(follow_symlinks=False)
                            key = (st.st_dev, st.st_ino)
                        if key in visited:
                            self.observer.walk_error(path, "directory already visited (symlink loop)")
                            continue
                        visited.add(key)
                        subdirs.append(path)
                    elif entry.is_file(follow_symlinks=True):
                        if self.exclusion.matches(rel):
                            continue
                        yield path
                except OSError as e:
                    self.observer.walk_error(path, e.strerror or str(e))
            stack.extend(reversed(subdirs))
