"""CLI entry point: ``shepherd parse``, ``hook``, ``export`` and ``send``.

``export`` and ``send`` are what hooks run in detached children.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import httpx
from pydantic import ValidationError

from shepherd import __version__
from shepherd.config import Settings
from shepherd.constants import OTLP_TRACES_PATH, Provider
from shepherd.errors import SessionLogError
from shepherd.extractors import parse_session
from shepherd.hooks import HOOKS, HookContext, run_hook
from shepherd.logging_config import setup_logging
from shepherd.pipeline import export_trace
from shepherd.tracing.assembler import assemble
from shepherd.tracing.exporter import DetachedTransport, HttpTransport, export_spans

logger = logging.getLogger(__name__)

AUTO_PROVIDER = "auto"


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"shepherd {__version__}")
        return

    try:
        settings = Settings()
    except ValidationError as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        # A broken environment must not fail the AI CLI either
        sys.exit(0 if args.command == "hook" else 1)
    setup_logging(settings.log_level)

    if args.command == "parse":
        _run_parse(args, settings)
    elif args.command == "hook":
        _run_hook(args, settings)
    elif args.command == "export":
        _run_export(args, settings)
    elif args.command == "send":
        _run_send(args, settings)
    else:
        parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="shepherd",
        description=(
            "Turn Claude Code, Codex CLI and Gemini CLI session logs "
            "into OTLP traces."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )

    sub = parser.add_subparsers(dest="command")

    parse = sub.add_parser(
        "parse",
        help="Convert a session log to spans",
    )
    parse.add_argument(
        "session_file",
        type=str,
        help="Path to a session log (.jsonl or .json)",
    )
    parse.add_argument(
        "--provider",
        "-p",
        choices=[AUTO_PROVIDER, *(p.value for p in Provider)],
        default=AUTO_PROVIDER,
        help="Log format (default: detect from content)",
    )
    parse.add_argument(
        "--emit",
        action="store_true",
        help="Export to the collector instead of printing",
    )
    parse.add_argument(
        "--service-name",
        default=None,
        help="service.name for --emit (default: per provider)",
    )

    hook = sub.add_parser(
        "hook",
        help="Run an AI CLI hook (payload on stdin or as argument)",
    )
    hook.add_argument(
        "event",
        choices=sorted(HOOKS),
        help="Hook event name",
    )
    hook.add_argument(
        "payload",
        nargs="?",
        default=None,
        help="Hook JSON (Codex passes it as an argument)",
    )

    export = sub.add_parser(
        "export",
        help="Parse a session log and POST its trace (used by hooks)",
    )
    export.add_argument(
        "session_file",
        type=str,
        help="Path to a session log (.jsonl or .json)",
    )
    export.add_argument(
        "--provider",
        "-p",
        choices=[AUTO_PROVIDER, *(p.value for p in Provider)],
        default=AUTO_PROVIDER,
        help="Log format (default: detect from content)",
    )
    export.add_argument(
        "--git-repo",
        default="",
        help="git.repo for logs that never name their repository",
    )

    send = sub.add_parser(
        "send",
        help="POST an OTLP JSON body (used by detached exports)",
    )
    send.add_argument(
        "--endpoint",
        default=None,
        help="Collector base URL (default: OTEL_HTTP_URL)",
    )
    send.add_argument(
        "--path",
        default=OTLP_TRACES_PATH,
        help=f"Collector path (default: {OTLP_TRACES_PATH})",
    )
    send.add_argument(
        "--body-file",
        default=None,
        help="Read the body from this file and delete it (default: stdin)",
    )

    return parser


def _run_parse(args: argparse.Namespace, settings: Settings) -> None:
    """Execute the parse command."""
    path = Path(args.session_file)
    provider = (
        None if args.provider == AUTO_PROVIDER else Provider(args.provider)
    )
    try:
        session = parse_session(path, provider, settings)
    except SessionLogError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    spans = assemble(session, settings)
    if args.emit:
        service_name = args.service_name or settings.service_name(
            session.meta.provider
        )
        export_spans(spans, service_name, DetachedTransport(settings))
        return
    for span in spans:
        print(json.dumps(span.to_dict(), separators=(",", ":")))


def _run_hook(args: argparse.Namespace, settings: Settings) -> None:
    """Execute a hook. Always exits 0."""
    if args.payload is not None:
        raw = args.payload
    elif sys.stdin.isatty():
        raw = ""
    else:
        raw = sys.stdin.read()
    reply = run_hook(args.event, raw, HookContext(settings=settings))
    if reply is not None:
        print(reply)


def _run_export(args: argparse.Namespace, settings: Settings) -> None:
    """Parse, assemble and POST one trace. Runs detached; never fails loudly."""
    path = Path(args.session_file)
    provider = (
        None if args.provider == AUTO_PROVIDER else Provider(args.provider)
    )
    try:
        export_trace(
            path,
            provider,
            settings,
            HttpTransport(settings),
            git_repo=args.git_repo,
        )
    except SessionLogError as exc:
        logger.warning(
            "event=export_session_log_error path=%s error=%s", path, exc
        )


def _run_send(args: argparse.Namespace, settings: Settings) -> None:
    """POST one body to the collector. Transport errors are dropped."""
    if args.body_file:
        body_path = Path(args.body_file)
        try:
            body = body_path.read_bytes()
        except OSError:
            logger.debug("event=send_body_missing path=%s", body_path)
            return
        finally:
            body_path.unlink(missing_ok=True)
    else:
        body = sys.stdin.buffer.read()
    if not body:
        return

    if args.endpoint:
        settings = settings.model_copy(
            update={"otel_http_url": args.endpoint.rstrip("/")}
        )
    try:
        HttpTransport(settings).send(args.path, body)
    except (httpx.HTTPError, httpx.InvalidURL):
        logger.debug("event=send_failed path=%s", args.path, exc_info=True)


if __name__ == "__main__":
    main()
