"""CLI entry point for sporeops."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Sequence

from sporeops.actions.types import ActionCenterError
from sporeops.config.loader import initialize_config, load_config, load_document
from sporeops.core.orchestrator import Orchestrator
from sporeops.reporting.types import ReportingError


DEFAULT_CONFIG = Path(__file__).parent / "config" / "defaults.yml"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sporeops")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Create starter config")
    init_parser.add_argument("--config", type=Path, default=Path("./config/sporeops.yml"))
    init_parser.add_argument("--force", action="store_true")

    report_parser = subparsers.add_parser("report", help="Generate an enterprise report from a request document")
    report_parser.add_argument("request", type=Path, help="YAML or JSON document with query, context and data")
    report_parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG)
    report_parser.add_argument("--output", type=Path, default=None, help="Write the rendered report to this path")

    actions_parser = subparsers.add_parser("actions", help="Run an action-center query from a request document")
    actions_parser.add_argument("request", type=Path, help="YAML or JSON document with query, context and inputs")
    actions_parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG)

    tenants_parser = subparsers.add_parser("tenants", help="Show configured tenants")
    tenants_parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG)

    logs_parser = subparsers.add_parser("logs", help="Show log sink configuration")
    logs_parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG)

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve_parser.add_argument("--config", type=Path, default=DEFAULT_CONFIG)
    serve_parser.add_argument("--host", type=str, default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8099)

    return parser


def _input_error(exc: Exception) -> int:
    print(json.dumps({"success": False, "error": str(exc)}, indent=2))
    return 2


def cmd_init(config_path: Path, force: bool) -> int:
    initialize_config(config_path, force=force)
    print(f"wrote config: {config_path}")
    return 0


def cmd_report(config_path: Path, request_path: Path, *, output: Path | None = None) -> int:
    try:
        request = load_document(request_path)
    except (FileNotFoundError, ValueError) as exc:
        return _input_error(exc)
    orchestrator = Orchestrator(load_config(config_path))
    try:
        result = orchestrator.run_report(request)
    except ReportingError as exc:
        return _input_error(exc)

    payload = result.to_dict()
    if output is not None and result.success:
        if result.exported is not None:
            content = result.exported.content
        else:
            content = json.dumps(payload["bundle"], indent=2)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(content, encoding="utf-8")
        payload["output"] = str(output)
    print(json.dumps(payload, indent=2))
    return 0 if result.success else 1


def cmd_actions(config_path: Path, request_path: Path) -> int:
    try:
        request = load_document(request_path)
    except (FileNotFoundError, ValueError) as exc:
        return _input_error(exc)
    orchestrator = Orchestrator(load_config(config_path))
    try:
        payload = orchestrator.run_action_query(request)
    except ActionCenterError as exc:
        return _input_error(exc)
    print(json.dumps(payload, indent=2))
    return 0 if payload["result"]["success"] else 1


def cmd_tenants(config_path: Path) -> int:
    config = load_config(config_path)
    orchestrator = Orchestrator(config)
    print(json.dumps(orchestrator.tenant_manager.snapshot(), indent=2))
    return 0


def cmd_logs(config_path: Path) -> int:
    config = load_config(config_path)
    payload = {
        "format": config.logging.fmt,
        "level": config.logging.level,
        "sink": config.logging.sink,
        "file_path": config.logging.file_path,
        "service_name": config.logging.service_name,
        "retention_days": {
            "reporting": config.reporting.log_retention_days,
            "actions": config.actions.log_retention_days,
        },
    }
    print(json.dumps(payload, indent=2))
    return 0


def cmd_serve(config_path: Path, *, host: str, port: int) -> int:
    config = load_config(config_path)
    orchestrator = Orchestrator(config)
    try:
        from sporeops.dashboard.api import create_app
        import uvicorn
    except Exception as exc:
        raise RuntimeError("http api dependencies are missing; install with 'sporeops[api]'") from exc

    app = create_app(orchestrator)
    uvicorn.run(app, host=host, port=int(port), log_level=config.logging.level.lower())
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "init":
        return cmd_init(args.config, args.force)
    if args.command == "report":
        return cmd_report(args.config, args.request, output=args.output)
    if args.command == "actions":
        return cmd_actions(args.config, args.request)
    if args.command == "tenants":
        return cmd_tenants(args.config)
    if args.command == "logs":
        return cmd_logs(args.config)
    if args.command == "serve":
        return cmd_serve(args.config, host=args.host, port=args.port)

    parser.error(f"unknown command: {args.command}")
    return 2

