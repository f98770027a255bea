"""
FIMCheck - Baseline manifest provider.

Loads the trusted path -> digest mapping either from the online checksum API
or from a local JSON file, validating its shape before any scan uses it.
Also builds and saves local baselines from a trusted reference tree.
"""

import json
import logging
import re
import string
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterator, Optional

import httpx

from fimcheck.core.errors import (
    BaselineNotFoundError,
    FetchError,
    FileAccessError,
    ManifestFormatError,
)
from fimcheck.core.hashing import HashEngine
from fimcheck.core.models import ChecksumSource
from fimcheck.core.walker import DirectoryWalker, normalize_key, normalize_relative

logger = logging.getLogger(__name__)

DEFAULT_CHECKSUM_URL = "https://api.wordpress.org/core/checksums/1.0/?version={version}"
DEFAULT_TIMEOUT = 30.0
MD5_DIGEST_LENGTH = 32

_HEX_DIGITS = frozenset(string.hexdigits)
_VERSION_RE = re.compile(r"""\$wp_version\s*=\s*['"]([^'"]+)['"]""")


class BaselineManifest(Mapping):
    """Immutable, validated mapping of relative path -> expected hex digest."""

    def __init__(
        self,
        entries: Mapping[str, str],
        source: str = ChecksumSource.LOCAL.value,
        version: Optional[str] = None,
    ) -> None:
        self._entries = MappingProxyType(dict(entries))
        self.source = source
        self.version = version

    @classmethod
    def from_mapping(
        cls,
        data: Any,
        *,
        digest_length: int,
        source: str,
        version: Optional[str] = None,
    ) -> "BaselineManifest":
        """
        Validate raw decoded JSON as {relative path: hex digest}.

        Keys are reduced to canonical relative form (forward slashes, no empty
        or "." segments) and digests lowercased. Raises ManifestFormatError on
        the first structural problem.
        """
        if not isinstance(data, dict):
            raise ManifestFormatError(
                f"Checksum data must be an object of path -> hash, got {type(data).__name__}"
            )
        entries: dict[str, str] = {}
        for raw_key, raw_hash in data.items():
            if not isinstance(raw_key, str) or not raw_key.strip():
                raise ManifestFormatError(f"Invalid file path in checksums: {raw_key!r}")
            if not isinstance(raw_hash, str):
                raise ManifestFormatError(f"Hash for {raw_key} is not a string")
            digest = raw_hash.strip().lower()
            if len(digest) != digest_length or not _HEX_DIGITS.issuperset(digest):
                raise ManifestFormatError(
                    f"Hash for {raw_key} is not a {digest_length}-character hex digest: {raw_hash!r}"
                )
            parts = [p for p in normalize_key(raw_key.strip()).split("/") if p not in ("", ".")]
            if not parts or ".." in parts:
                raise ManifestFormatError(f"Invalid file path in checksums: {raw_key!r}")
            key = "/".join(parts)
            if key in entries:
                raise ManifestFormatError(f"Duplicate file path in checksums: {key}")
            entries[key] = digest
        return cls(entries, source=source, version=version)

    def __getitem__(self, key: str) -> str:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"BaselineManifest(source={self.source!r}, version={self.version!r}, files={len(self)})"


def detect_version(root: Path) -> Optional[str]:
    """Read the installed core version from wp-includes/version.php; None if not found."""
    version_file = Path(root) / "wp-includes" / "version.php"
    try:
        text = version_file.read_text(encoding="utf-8", errors="replace")
    except OSError:
        logger.debug("No version file at %s", version_file)
        return None
    match = _VERSION_RE.search(text)
    return match.group(1) if match else None


class ManifestProvider:
    """
    Loads BaselineManifest from the configured ChecksumSource.

    An httpx.Client may be injected; otherwise a short-lived one is created
    per fetch.
    """

    def __init__(
        self,
        checksum_url: str = DEFAULT_CHECKSUM_URL,
        local_path: Optional[Path] = None,
        digest_length: int = MD5_DIGEST_LENGTH,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.checksum_url = checksum_url
        self.local_path = Path(local_path) if local_path else Path("checksums.json")
        self.digest_length = digest_length
        self.timeout = timeout
        self._client = client

    def load(self, source: ChecksumSource, version: Optional[str]) -> BaselineManifest:
        source = ChecksumSource.parse(source)
        if source is ChecksumSource.LOCAL:
            manifest = self.load_local(version)
        else:
            if not version:
                raise FetchError("Cannot fetch online checksums: version is unknown")
            manifest = self.fetch_remote(version)
        logger.info("Loaded %s checksums: %d files", source.value, len(manifest))
        return manifest

    def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return self._client.get(url, timeout=self.timeout)
        with httpx.Client(timeout=self.timeout, follow_redirects=True) as client:
            return client.get(url)

    def fetch_remote(self, version: str) -> BaselineManifest:
        """GET the checksum endpoint for version and extract its mapping."""
        url = self.checksum_url.format(version=version)
        try:
            response = self._get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"Checksum API returned HTTP {e.response.status_code} for version {version}"
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Checksum API request failed: {e}") from e

        logger.debug("Checksum API response: %s", response.text[:1000])
        try:
            body = response.json()
        except ValueError as e:
            raise ManifestFormatError("Checksum API response is not valid JSON") from e
        except RecursionError as e:
            raise ManifestFormatError("Checksum API response is nested too deeply") from e
        if not isinstance(body, dict):
            raise ManifestFormatError("Checksum API response is not a JSON object")

        container = body.get("checksums", body)
        data = container.get(version) if isinstance(container, dict) else None
        if not isinstance(data, dict) or not data:
            raise ManifestFormatError(f"No checksums found for version {version}")
        return BaselineManifest.from_mapping(
            data,
            digest_length=self.digest_length,
            source=ChecksumSource.ONLINE.value,
            version=version,
        )

    def load_local(self, version: Optional[str] = None) -> BaselineManifest:
        """Load the flat path -> digest JSON file at local_path."""
        path = self.local_path
        if not path.is_file():
            raise BaselineNotFoundError(f"Local checksums file not found: {path}")
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ManifestFormatError(f"Local checksums file is not valid JSON: {path}") from e
        except RecursionError as e:
            raise ManifestFormatError(f"Local checksums file is nested too deeply: {path}") from e
        except OSError as e:
            raise BaselineNotFoundError(f"Cannot read local checksums file {path}: {e}") from e
        return BaselineManifest.from_mapping(
            data,
            digest_length=self.digest_length,
            source=ChecksumSource.LOCAL.value,
            version=version,
        )


def build_baseline(root: Path, walker: DirectoryWalker, hasher: HashEngine) -> dict[str, str]:
    """Hash every non-excluded file under root into a {relative path: digest} dict."""
    root = Path(root)
    baseline: dict[str, str] = {}
    for path in walker.walk(root):
        rel = normalize_relative(path, root)
        try:
            baseline[rel] = hasher.compute_file_hash(path)
        except FileAccessError as e:
            logger.warning("Skipping %s: %s", rel, e.reason)
    return dict(sorted(baseline.items()))


def save_baseline(baseline_path: Path, manifest: Mapping[str, str]) -> None:
    """Persist a flat path -> digest mapping as JSON."""
    path = Path(baseline_path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(dict(manifest), f, indent=2, sort_keys=True)
            f.write("\n")
    except OSError as e:
        logger.exception("Failed to save baseline: %s", e)
        raise
