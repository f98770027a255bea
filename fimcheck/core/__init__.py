"""
FIMCheck - File integrity verification core.

Provides baseline loading, directory walking, hashing, scan classification,
progress reporting, and finding logs.
"""

from fimcheck.core.alerts import FindingLog
from fimcheck.core.engine import CancelToken, ScanEngine
from fimcheck.core.errors import (
    AuthorizationError,
    BaselineNotFoundError,
    FetchError,
    FileAccessError,
    IntegrityCheckError,
    ManifestFormatError,
    ScanCancelledError,
    ScanRootError,
)
from fimcheck.core.hashing import HashEngine
from fimcheck.core.manifest import BaselineManifest, ManifestProvider
from fimcheck.core.models import ChecksumSource, Classification, ScanResult
from fimcheck.core.progress import FileProgressStore, MemoryProgressStore
from fimcheck.core.service import IntegrityService, ScanOutcome
from fimcheck.core.walker import DirectoryWalker, ExclusionRule

__all__ = [
    "AuthorizationError",
    "BaselineManifest",
    "BaselineNotFoundError",
    "CancelToken",
    "ChecksumSource",
    "Classification",
    "DirectoryWalker",
    "ExclusionRule",
    "FetchError",
    "FileAccessError",
    "FileProgressStore",
    "FindingLog",
    "HashEngine",
    "IntegrityCheckError",
    "IntegrityService",
    "ManifestFormatError",
    "ManifestProvider",
    "MemoryProgressStore",
    "ScanCancelledError",
    "ScanRootError",
    "ScanEngine",
    "ScanOutcome",
    "ScanResult",
]
