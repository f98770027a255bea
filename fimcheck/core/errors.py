"""
FIMCheck - Failure taxonomy.

Every failure carries a human-readable message; the service layer surfaces
str(exc) as the single error string shown to the caller.
"""


class IntegrityCheckError(Exception):
    """Base class for all expected, recoverable integrity check failures."""


class FetchError(IntegrityCheckError):
    """Remote checksum fetch failed (transport error or bad HTTP status)."""


class ManifestFormatError(IntegrityCheckError):
    """Checksum data is unparsable or structurally wrong."""


class BaselineNotFoundError(IntegrityCheckError):
    """Local baseline file does not exist."""


class FileAccessError(IntegrityCheckError):
    """A single file could not be read while hashing."""

    def __init__(self, path, reason: str) -> None:
        super().__init__(f"Cannot read {path}: {reason}")
        self.path = path
        self.reason = reason


class AuthorizationError(IntegrityCheckError):
    """Caller is not allowed to run a scan."""


class ScanCancelledError(IntegrityCheckError):
    """Scan stopped at a file boundary because cancellation was requested."""


class ScanRootError(IntegrityCheckError):
    """Configured scan root does not exist or is not a directory."""
