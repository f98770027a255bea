"""
FIMCheck - Shared data models (classifications, findings, scan results).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ChecksumSource(str, Enum):
    """Where the baseline checksums come from."""

    LOCAL = "local"
    ONLINE = "online"

    @classmethod
    def parse(cls, value: Optional[Any]) -> "ChecksumSource":
        """Sanitize a configured value; anything unrecognized becomes ONLINE."""
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return cls.ONLINE


class Classification(str, Enum):
    """Outcome for one path."""

    MODIFIED = "modified"
    MISSING = "missing"
    UNKNOWN = "unknown"
    CLEAN = "clean"


class Severity(str, Enum):
    """Alert severity levels."""

    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


SEVERITY_BY_CLASSIFICATION = {
    Classification.MODIFIED: Severity.WARNING,
    Classification.MISSING: Severity.WARNING,
    Classification.UNKNOWN: Severity.INFO,
    Classification.CLEAN: Severity.INFO,
}


@dataclass
class Finding:
    """One classified path."""

    path: str
    classification: Classification
    severity: Severity = Severity.INFO
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, path: str, classification: Classification, **metadata: Any) -> "Finding":
        return cls(
            path=path,
            classification=classification,
            severity=SEVERITY_BY_CLASSIFICATION[classification],
            metadata=dict(metadata),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "classification": self.classification.value,
            "severity": self.severity.value,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class ScanResult:
    """
    Three disjoint, sorted path lists. Clean paths appear nowhere.

    errors maps unreadable paths (also listed in unknown) to the read error.
    """

    modified: tuple[str, ...] = ()
    missing: tuple[str, ...] = ()
    unknown: tuple[str, ...] = ()
    errors: dict[str, str] = field(default_factory=dict)
    scanned: int = 0
    manifest_size: int = 0

    @property
    def is_clean(self) -> bool:
        return not (self.modified or self.missing or self.unknown)

    @property
    def total_findings(self) -> int:
        return len(self.modified) + len(self.missing) + len(self.unknown)

    def findings(self) -> list[Finding]:
        """All non-clean paths as Finding objects, grouped by classification."""
        out: list[Finding] = []
        out.extend(Finding.of(p, Classification.MODIFIED) for p in self.modified)
        out.extend(Finding.of(p, Classification.MISSING) for p in self.missing)
        for p in self.unknown:
            if p in self.errors:
                out.append(Finding.of(p, Classification.UNKNOWN, error=self.errors[p]))
            else:
                out.append(Finding.of(p, Classification.UNKNOWN))
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "modified": list(self.modified),
            "missing": list(self.missing),
            "unknown": list(self.unknown),
            "errors": dict(self.errors),
            "counts": {
                "scanned": self.scanned,
                "manifest": self.manifest_size,
                "modified": len(self.modified),
                "missing": len(self.missing),
                "unknown": len(self.unknown),
            },
        }
