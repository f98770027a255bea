"""
FIMCheck - Finding log and console alerts.

Uses colorama for cross-platform (Linux/Windows) colored console alerts.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import colorama
from colorama import Fore, Style

from fimcheck.core.models import Finding, ScanResult, Severity
from fimcheck.core.observers import ScanObserver

logger = logging.getLogger(__name__)

# Lazy init of colorama (once per process)
_colorama_init_done = False

_SEVERITY_ORDER = (Severity.INFO, Severity.WARNING, Severity.CRITICAL)


def _ensure_colorama() -> None:
    global _colorama_init_done
    if not _colorama_init_done:
        colorama.just_fix_windows_console()
        _colorama_init_done = True


def colored_alert(message: str, level: str, stream=None) -> None:
    """
    Print an alert message in color to stderr.

    level: "CRITICAL" (red), "WARNING" (yellow), "INFO" or "OK" (green).
    """
    _ensure_colorama()
    level_upper = level.upper()
    if level_upper == "CRITICAL":
        prefix = Fore.RED
    elif level_upper == "WARNING":
        prefix = Fore.YELLOW
    else:
        prefix = Fore.GREEN
    print(f"{prefix}{message}{Style.RESET_ALL}", file=stream or sys.stderr)


class FindingLog(ScanObserver):
    """
    Writes one JSON line per finding to a log file when a scan finishes and
    optionally prints colored alerts to the console.
    """

    def __init__(
        self,
        log_path: Path,
        console_alerts: bool = True,
        min_severity: Severity = Severity.INFO,
    ) -> None:
        self.log_path = Path(log_path)
        self.console_alerts = console_alerts
        self._min_severity = min_severity
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def _should_log(self, severity: Severity) -> bool:
        return _SEVERITY_ORDER.index(severity) >= _SEVERITY_ORDER.index(self._min_severity)

    def _format_finding(self, session_id: str, finding: Finding) -> dict:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "session_id": session_id,
            "classification": finding.classification.value,
            "path": finding.path,
            "severity": finding.severity.value,
            **({"metadata": finding.metadata} if finding.metadata else {}),
        }

    def emit(self, session_id: str, finding: Finding) -> None:
        """Write one finding as JSON to the log file and optionally to console."""
        if not self._should_log(finding.severity):
            return
        line = json.dumps(self._format_finding(session_id, finding)) + "\n"
        try:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.exception("Failed to write finding to %s: %s", self.log_path, e)
        if self.console_alerts:
            msg = f"[{finding.severity.value}] {finding.classification.value.upper()}: {finding.path}"
            colored_alert(msg, finding.severity.value)

    def scan_finished(self, session_id: str, result: ScanResult) -> None:
        for finding in result.findings():
            self.emit(session_id, finding)
