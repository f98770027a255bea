"""
FIMCheck - Configuration loader.

Loads and validates config.yaml; resolves paths relative to project root.
The checksum source may be overridden with FIMCHECK_CHECKSUM_SOURCE.
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml

from fimcheck.core.manifest import DEFAULT_CHECKSUM_URL, DEFAULT_TIMEOUT
from fimcheck.core.models import ChecksumSource, Severity
from fimcheck.core.progress import DEFAULT_TTL_SECONDS
from fimcheck.core.walker import DEFAULT_EXCLUDE_PREFIXES

logger = logging.getLogger(__name__)

SOURCE_ENV_VAR = "FIMCHECK_CHECKSUM_SOURCE"


def _parse_severity(value: Any) -> Severity:
    try:
        return Severity(str(value).upper())
    except ValueError:
        logger.warning("Unknown min_severity %r; using INFO", value)
        return Severity.INFO


def load_config(config_path: Path, project_root: Optional[Path] = None) -> dict[str, Any]:
    """
    Load YAML config and resolve paths relative to project_root.

    Args:
        config_path: Path to config.yaml.
        project_root: Base for relative paths; defaults to the config file's directory.

    Returns:
        Config dict with resolved paths and defaults applied.
    """
    path = Path(config_path).resolve()
    if not path.is_file():
        raise FileNotFoundError(f"Config not found: {path}")

    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config must be a mapping: {path}")
    return build_config(raw, project_root or path.parent)


def build_config(raw: dict[str, Any], project_root: Path) -> dict[str, Any]:
    """Apply defaults and sanitization to an already-parsed config mapping."""
    root = Path(project_root).resolve()

    scan_raw = raw.get("scan") or {}
    scan_root = scan_raw.get("root", ".")
    exclude_prefixes = scan_raw.get("exclude_prefixes")
    if exclude_prefixes is None:
        exclude_prefixes = list(DEFAULT_EXCLUDE_PREFIXES)
    follow_symlinks = bool(scan_raw.get("follow_symlinks", False))
    workers = int(scan_raw.get("workers", 1))
    check_excluded_missing = bool(scan_raw.get("check_excluded_missing", True))

    checksums_raw = raw.get("checksums") or {}
    source_value = os.environ.get(SOURCE_ENV_VAR, "").strip() or checksums_raw.get("source")
    source = ChecksumSource.parse(source_value)
    if source_value and source.value != str(source_value).strip().lower():
        logger.warning("Invalid checksum source %r; using %s", source_value, source.value)
    version = checksums_raw.get("version")
    checksum_url = str(checksums_raw.get("url") or DEFAULT_CHECKSUM_URL)
    local_path = checksums_raw.get("local_path", "checksums.json")
    algorithm = str(checksums_raw.get("algorithm", "md5")).lower()
    timeout = float(checksums_raw.get("timeout", DEFAULT_TIMEOUT))

    progress_raw = raw.get("progress") or {}
    ttl_seconds = float(progress_raw.get("ttl_seconds", DEFAULT_TTL_SECONDS))
    progress_dir = progress_raw.get("directory", "./logs/progress")
    progress_every = int(progress_raw.get("every", 10))

    alerts_raw = raw.get("alerts") or {}
    log_path = alerts_raw.get("log_path", "./logs/findings.log")
    console_alerts = bool(alerts_raw.get("console_alerts", False))
    min_severity = _parse_severity(alerts_raw.get("min_severity", "INFO"))

    report_raw = raw.get("report") or {}
    report_path = report_raw.get("path", "./logs/scan_report.txt")
    list_limit = int(report_raw.get("list_limit", 10))

    def resolve(p: str) -> Path:
        path_obj = Path(p)
        return (root / path_obj).resolve() if not path_obj.is_absolute() else path_obj.resolve()

    return {
        "project_root": root,
        "scan_root": resolve(scan_root),
        "exclude_prefixes": [str(p) for p in exclude_prefixes],
        "follow_symlinks": follow_symlinks,
        "workers": max(1, min(32, workers)),
        "check_excluded_missing": check_excluded_missing,
        "checksum_source": source,
        "checksum_version": str(version) if version else None,
        "checksum_url": checksum_url,
        "local_checksums_path": resolve(local_path),
        "hash_algorithm": algorithm,
        "http_timeout": max(1.0, timeout),
        "progress_ttl_seconds": max(1.0, ttl_seconds),
        "progress_dir": resolve(progress_dir),
        "progress_every": max(1, progress_every),
        "findings_log_path": resolve(log_path),
        "console_alerts": console_alerts,
        "min_severity": min_severity,
        "report_path": resolve(report_path),
        "report_list_limit": max(1, list_limit),
    }
