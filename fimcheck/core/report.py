"""
FIMCheck - Scan summary report.

Writes a short plain-text summary after each scan to logs/scan_report.txt.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Sequence

from fimcheck.core.models import ScanResult

logger = logging.getLogger(__name__)


def _ts_string(t: Optional[float]) -> str:
    """Format Unix timestamp to UTC string."""
    if t is None:
        return "N/A"
    try:
        return datetime.fromtimestamp(t, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    except (OSError, ValueError):
        return str(t)


def _section(title: str, paths: Sequence[str], limit: int) -> list[str]:
    if not paths:
        return []
    lines = [f"{title} ({len(paths)}):"]
    lines.extend(f"  {p}" for p in paths[:limit])
    if len(paths) > limit:
        lines.append(f"  ... and {len(paths) - limit} more")
    lines.append("")
    return lines


def write_scan_report(
    report_path: Path,
    result: ScanResult,
    *,
    root: Path,
    version: Optional[str] = None,
    source: Optional[str] = None,
    started_at: Optional[float] = None,
    finished_at: Optional[float] = None,
    list_limit: int = 10,
) -> Optional[Path]:
    """
    Write the scan summary to report_path.

    Returns the path written, or None if the file could not be written.
    """
    report_path = Path(report_path)
    status = "OK" if result.is_clean else "CHANGES DETECTED"
    lines = [
        "=" * 60,
        "FIMCheck - File Integrity Scan Report",
        "=" * 60,
        "",
        f"  Root:               {root}",
        f"  Checksum source:    {source or 'N/A'}",
        f"  Version:            {version or 'N/A'}",
        f"  Started:            {_ts_string(started_at)}",
        f"  Finished:           {_ts_string(finished_at)}",
        f"  Files scanned:      {result.scanned}",
        f"  Baseline entries:   {result.manifest_size}",
        f"  Modified:           {len(result.modified)}",
        f"  Missing:            {len(result.missing)}",
        f"  Unknown:            {len(result.unknown)}",
        f"  Unreadable:         {len(result.errors)}",
        f"  Status:             {status}",
        "",
    ]
    if result.is_clean:
        lines.append("No changes detected.")
        lines.append("")
    else:
        lines += _section("Modified files", result.modified, list_limit)
        lines += _section("Missing files", result.missing, list_limit)
        lines += _section("Unknown files", result.unknown, list_limit)
    lines.append("=" * 60)
    try:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as e:
        logger.warning("Failed to write scan report to %s: %s", report_path, e)
        return None
    logger.info("Scan report saved to %s", report_path)
    return report_path
