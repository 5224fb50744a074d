"""CLI entrypoint: bulk-create Shortcut objectives, epics and stories from a file."""

from __future__ import annotations

import argparse
import logging
import sys
from collections import Counter
from pathlib import Path
from typing import TextIO

from pydantic import ValidationError

from bypass import __version__
from bypass.orchestrator.config import BypassSettings
from bypass.orchestrator.engine import BatchOrchestrator
from bypass.orchestrator.errors import ManifestError, SubmissionError, TemplateError
from bypass.orchestrator.logging import configure_logging
from bypass.orchestrator.manifest import parse_file
from bypass.orchestrator.models import ResourceKind, RunSummary
from bypass.orchestrator.output import make_writer
from bypass.orchestrator.shortcut.client import ShortcutClient
from bypass.orchestrator.template import EpicTemplate

logger = logging.getLogger(__name__)


def _add_token_argument(parser: argparse.ArgumentParser, *, default: object) -> None:
    parser.add_argument(
        "--token",
        default=default,
        help="Shortcut API token (overrides SHORTCUT_API_TOKEN and the config file)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bypass",
        description="Bulk-create Shortcut objectives, epics and stories from YAML, CSV or Excel",
    )
    parser.add_argument("--version", action="version", version=f"bypass-cli {__version__}")
    _add_token_argument(parser, default=None)

    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser(
        "create",
        help="Create resources from a file (objectives first, then epics, then stories)",
    )
    # Accept --token after the subcommand too, without clobbering a global value.
    _add_token_argument(create, default=argparse.SUPPRESS)
    create.add_argument(
        "--file",
        "-f",
        type=Path,
        required=True,
        help="Input file (.yaml, .yml, .csv or .xlsx)",
    )
    create.add_argument(
        "--type",
        dest="resource_type",
        choices=[kind.value for kind in ResourceKind],
        default=None,
        help="Resource kind for CSV (required) or Excel (uses the first sheet)",
    )
    create.add_argument(
        "--template",
        type=Path,
        default=None,
        help="Markdown template for epic descriptions, with {{variable}} placeholders",
    )
    create.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and resolve everything without creating resources",
    )
    create.add_argument(
        "--output",
        choices=["text", "json"],
        default="text",
        help="Output format: human-readable text or one JSON object per line",
    )

    return parser


def _create(args: argparse.Namespace, settings: BypassSettings, stdout: TextIO) -> int:
    kind = ResourceKind(args.resource_type) if args.resource_type else None
    try:
        resources = parse_file(args.file, kind)
        template = EpicTemplate.load(args.template) if args.template is not None else None
    except (ManifestError, TemplateError) as e:
        logger.error("Input could not be loaded", extra={"file": str(args.file), "error": str(e)})
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if not resources:
        print("No items found in the input file.", file=sys.stderr)
        return 0

    counts = Counter(resource.kind for resource in resources)
    logger.info(
        "Input parsed",
        extra={"file": str(args.file), **{kind.plural: counts[kind] for kind in ResourceKind}},
    )

    writer = make_writer(args.output, stdout)
    writer.parsed(dict(counts))

    client = ShortcutClient(
        token=settings.api_token,
        base_url=settings.base_url,
        timeout=settings.request_timeout_seconds,
    )
    try:
        try:
            directory = client.fetch_workspace_directory()
        except SubmissionError as e:
            logger.error("Failed to load workspace members/teams/workflows", extra={"error": str(e)})
            print(f"Error: could not load workspace data: {e}", file=sys.stderr)
            return 1

        orchestrator = BatchOrchestrator(
            transport=client, directory=directory, default_template=template
        )

        if args.dry_run:
            verdict = orchestrator.dry_run(resources)
            writer.dry_run(verdict)
            return 0 if verdict.valid else 1

        summary: RunSummary | None = None
        for event in orchestrator.run(resources):
            writer.event(event)
            if isinstance(event, RunSummary):
                summary = event
        return 1 if summary is not None and summary.error_count else 0
    finally:
        client.close()


def main(argv: list[str] | None = None, *, stdout: TextIO | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides = {"api_token": args.token} if args.token else {}
    try:
        settings = BypassSettings(**overrides)
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error:", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        if args.command == "create":
            return _create(args, settings, stdout or sys.stdout)

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
