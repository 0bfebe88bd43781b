"""Command-line entry points for the scanner."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, List

from .classification import build_analysis_report
from .config import load_config
from .findings import build_final_report
from .fuzzing import DEFAULT_BASE_URL, FuzzEngine
from .reporters import render_analysis_human, render_human, render_json, render_sarif
from .route_analysis import analyze_routes
from .route_discovery import discover_routes


log = logging.getLogger(__name__)

SECURITY_REPORT = "security-report.json"
FUZZING_REPORT = "fuzzing-report.json"
FINAL_REPORT = "final-report.json"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="routeprobe",
        description="API route authentication scanner with live exploit verification",
    )
    subparsers = parser.add_subparsers(dest="command")

    scan_parser = subparsers.add_parser("scan", help="Scan a project")
    scan_parser.add_argument(
        "--project",
        default=".",
        help="Project root to scan (defaults to cwd)",
    )
    scan_parser.add_argument(
        "--config",
        help="Additional configuration file (security-config.json is read by default)",
    )
    scan_parser.add_argument(
        "--fuzz",
        action="store_true",
        help="Verify findings against a running instance of the target",
    )
    scan_parser.add_argument(
        "--base-url",
        default=DEFAULT_BASE_URL,
        help=f"Base URL of the running target (default: {DEFAULT_BASE_URL})",
    )
    scan_parser.add_argument(
        "--user-token",
        help="Non-admin session token used for privilege escalation probes",
    )
    scan_parser.add_argument(
        "--call-depth",
        type=int,
        help="How many levels of same-file helper calls to follow (default: 1)",
    )
    scan_parser.add_argument(
        "--fuzz-cases",
        type=int,
        help="Maximum generated requests per unauthenticated method",
    )
    scan_parser.add_argument(
        "--format",
        choices=["json", "human", "sarif"],
        action="append",
        help="Final report format(s) to print (default: human)",
    )
    scan_parser.add_argument(
        "--output-dir",
        help="Directory for the JSON reports (defaults to the project root)",
    )
    scan_parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )
    logging.getLogger("urllib3").setLevel(logging.ERROR)


def _config_overrides(ns: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if ns.user_token:
        overrides["sessionTokens"] = {"user": ns.user_token}
    if ns.call_depth is not None:
        overrides["callDepth"] = ns.call_depth
    if ns.fuzz_cases is not None:
        overrides["fuzzCases"] = ns.fuzz_cases
    return overrides


def _write_report(path: Path, data: Dict[str, object]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_json(data))
    log.info("Report saved to: %s", path)


def _handle_scan(ns: argparse.Namespace) -> int:
    project_root = Path(ns.project).expanduser().resolve()
    output_dir = Path(ns.output_dir) if ns.output_dir else project_root
    config = load_config(
        project_root=project_root,
        config_path=Path(ns.config) if ns.config else None,
        overrides=_config_overrides(ns) or None,
    )

    log.info("Analyzing: %s", project_root)
    route_files = discover_routes(project_root)
    log.info("Found %d API route files", len(route_files))
    if not route_files:
        log.info("No Next.js API routes found in the target directory.")
        return 0

    routes = analyze_routes(route_files, config, project_root)
    analysis = build_analysis_report(routes)
    _write_report(output_dir / SECURITY_REPORT, analysis.to_dict())
    formats = ns.format or ["human"]
    if "human" in formats:
        print(render_analysis_human(analysis.to_dict()))
        print()

    fuzz_report = None
    if ns.fuzz:
        log.info("Running fuzzer against %s", ns.base_url)
        fuzz_report = FuzzEngine(ns.base_url, config).run(analysis)
        _write_report(output_dir / FUZZING_REPORT, fuzz_report.to_dict())

    final = build_final_report(analysis, fuzz_report).to_dict()
    _write_report(output_dir / FINAL_REPORT, final)
    _print_report(final, formats)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1
    if args.command == "scan":
        _configure_logging(args.verbose)
        try:
            return _handle_scan(args)
        except Exception:
            log.exception("Analysis failed")
            return 1
    parser.error(f"Unknown command: {args.command}")
    return 1


def _print_report(data: Dict[str, object], formats: List[str]) -> None:
    formatters = {
        "json": render_json,
        "human": render_human,
        "sarif": render_sarif,
    }
    outputs: Dict[str, str] = {}
    for fmt in formats:
        renderer = formatters.get(fmt)
        if not renderer:
            continue
        outputs[fmt] = renderer(data)
    for idx, (fmt, content) in enumerate(outputs.items(), start=1):
        if len(outputs) > 1:
            print(f"--- {fmt} report {idx}/{len(outputs)} ---")
        print(content)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
