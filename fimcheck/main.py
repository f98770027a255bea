#!/usr/bin/env python3
"""
FIMCheck - CLI entry point.

Exposed as the 'fimcheck' console command via pyproject.toml.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FINDINGS = 2

logger = logging.getLogger("fimcheck")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging to stderr (no print-based logging)."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def get_config(args: argparse.Namespace) -> dict[str, Any]:
    """Load config from file; config path may be overridden by args."""
    from fimcheck.core.config_loader import load_config

    config_path = Path(args.config)
    if not config_path.is_absolute():
        config_path = Path.cwd() / config_path
    return load_config(config_path.resolve(), Path.cwd().resolve())


def _use_rich_progress(args: argparse.Namespace) -> bool:
    return not args.json and sys.stderr.isatty()


def cmd_scan(config: dict[str, Any], args: argparse.Namespace) -> int:
    """Run one scan, print results, write the findings log and report."""
    from rich.console import Console

    from fimcheck.core.alerts import FindingLog
    from fimcheck.core.console import RichProgressObserver, render_results
    from fimcheck.core.models import ChecksumSource
    from fimcheck.core.observers import CompositeObserver, LoggingObserver
    from fimcheck.core.progress import FileProgressStore, new_session_id, validate_session_id
    from fimcheck.core.report import write_scan_report
    from fimcheck.core.service import IntegrityService

    session_id = args.session or new_session_id()
    try:
        validate_session_id(session_id)
    except ValueError as e:
        logger.error("%s", e)
        return EXIT_ERROR
    try:
        finding_log = FindingLog(
            log_path=config["findings_log_path"],
            console_alerts=config["console_alerts"],
            min_severity=config["min_severity"],
        )
    except OSError as e:
        logger.error("Cannot create findings log %s: %s", config["findings_log_path"], e)
        return EXIT_ERROR
    observers = [LoggingObserver(), finding_log]
    progress_view = RichProgressObserver() if _use_rich_progress(args) else None
    if progress_view is not None:
        observers.append(progress_view)

    service = IntegrityService(
        config,
        progress_store=FileProgressStore(config["progress_dir"]),
        observer=CompositeObserver(observers),
    )
    source = ChecksumSource.parse(args.source) if args.source else None
    logger.info("Scan session %s (poll with: fimcheck progress --session %s)", session_id, session_id)
    try:
        outcome = service.scan(session_id=session_id, source=source)
    finally:
        if progress_view is not None:
            progress_view.stop()

    if args.json:
        print(json.dumps(outcome.to_dict(), indent=2))
    if not outcome.ok:
        logger.error("Scan failed: %s", outcome.error)
        return EXIT_ERROR

    result = outcome.result
    if not args.json:
        Console().print(
            render_results(
                result,
                limit=config["report_list_limit"],
                source=outcome.source,
                version=outcome.version,
            )
        )
    write_scan_report(
        config["report_path"],
        result,
        root=config["scan_root"],
        version=outcome.version,
        source=outcome.source,
        started_at=outcome.started_at,
        finished_at=outcome.finished_at,
        list_limit=config["report_list_limit"],
    )
    return EXIT_OK if result.is_clean else EXIT_FINDINGS


def cmd_progress(config: dict[str, Any], args: argparse.Namespace) -> int:
    """Print the current percent for a scan session (0 when absent or expired)."""
    from fimcheck.core.progress import FileProgressStore

    store = FileProgressStore(config["progress_dir"])
    try:
        value = store.get(args.session)
    except ValueError as e:
        logger.error("%s", e)
        return EXIT_ERROR
    print(f"{0.0 if value is None else value:.1f}")
    return EXIT_OK


def cmd_init_baseline(config: dict[str, Any], args: argparse.Namespace) -> int:
    """Create or overwrite the local checksums file from a trusted tree."""
    from fimcheck.core.hashing import HashEngine
    from fimcheck.core.manifest import build_baseline, save_baseline
    from fimcheck.core.walker import DirectoryWalker, ExclusionRule

    root = Path(args.root).resolve() if args.root else config["scan_root"]
    output = Path(args.output).resolve() if args.output else config["local_checksums_path"]
    if not root.is_dir():
        logger.error("Not a directory: %s", root)
        return EXIT_ERROR
    logger.info("Building baseline from %s ...", root)
    walker = DirectoryWalker(
        exclusion=ExclusionRule(config["exclude_prefixes"]),
        follow_symlinks=config["follow_symlinks"],
    )
    baseline = build_baseline(root, walker, HashEngine(config["hash_algorithm"]))
    if args.dry_run:
        logger.info("Dry run: would write %d entries to %s", len(baseline), output)
        return EXIT_OK
    save_baseline(output, baseline)
    logger.info("Baseline saved: %s (%d files)", output, len(baseline))
    return EXIT_OK


def _add_common_args(parser: argparse.ArgumentParser, default_config: str) -> None:
    """Add --config and --verbose so they work after the subcommand."""
    parser.add_argument(
        "--config",
        type=str,
        default=default_config,
        help="Path to config.yaml (default: package config; use CWD-relative or absolute)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")


def build_parser() -> argparse.ArgumentParser:
    default_config = str(Path(__file__).resolve().parent / "config" / "config.yaml")
    parser = argparse.ArgumentParser(
        prog="fimcheck",
        description="Verify installed files against trusted checksums (modified / missing / unknown).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_scan = sub.add_parser("scan", help="Scan the configured root against the checksum baseline")
    _add_common_args(p_scan, default_config)
    p_scan.add_argument("--session", type=str, default=None, help="Progress session id (default: random)")
    p_scan.add_argument("--source", choices=["local", "online"], default=None, help="Override checksum source")
    p_scan.add_argument("--json", action="store_true", help="Print the outcome as JSON on stdout")

    p_progress = sub.add_parser("progress", help="Show progress of a running scan session")
    _add_common_args(p_progress, default_config)
    p_progress.add_argument("--session", type=str, required=True, help="Session id printed by 'scan'")

    p_init = sub.add_parser("init-baseline", help="Write local checksums from a trusted directory tree")
    _add_common_args(p_init, default_config)
    p_init.add_argument("--root", type=str, default=None, help="Tree to hash (default: scan root)")
    p_init.add_argument("--output", type=str, default=None, help="Output file (default: checksums.local_path)")
    p_init.add_argument("--dry-run", action="store_true", dest="dry_run", help="Do not write the file")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """CLI logic."""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        config = get_config(args)
    except FileNotFoundError as e:
        logger.error("%s", e)
        return EXIT_ERROR
    except Exception as e:
        logger.exception("Failed to load config: %s", e)
        return EXIT_ERROR

    if args.command == "scan":
        return cmd_scan(config, args)
    if args.command == "progress":
        return cmd_progress(config, args)
    if args.command == "init-baseline":
        return cmd_init_baseline(config, args)
    parser.print_help()
    return EXIT_OK


def cli() -> None:
    """Entry point for the fimcheck console command."""
    sys.exit(main())


if __name__ == "__main__":
    cli()
