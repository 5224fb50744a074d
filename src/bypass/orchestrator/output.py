"""Render the outcome stream as plain text or newline-delimited JSON."""

from __future__ import annotations

import json
import sys
from typing import Any, Protocol, TextIO

from bypass.orchestrator.models import (
    PHASE_ORDER,
    DryRunVerdict,
    ReferenceUnresolved,
    ResourceCreated,
    ResourceFailed,
    ResourceKind,
    RunEvent,
    RunSummary,
)


class OutputWriter(Protocol):
    def parsed(self, counts: dict[ResourceKind, int]) -> None: ...

    def event(self, event: RunEvent) -> None: ...

    def dry_run(self, verdict: DryRunVerdict) -> None: ...


def event_payload(event: RunEvent) -> dict[str, Any]:
    """JSON representation of one outcome-stream event."""

    if isinstance(event, ResourceCreated):
        return {
            "event": "created",
            "kind": event.kind.value,
            "id": event.identifier,
            "name": event.name,
            "url": event.url,
        }
    if isinstance(event, ResourceFailed):
        return {
            "event": "error",
            "kind": event.kind.value,
            "name": event.name,
            "error": event.error,
        }
    if isinstance(event, ReferenceUnresolved):
        return {
            "event": "warning",
            "kind": event.kind.value,
            "name": event.name,
            "field": event.field_name,
            "reference": event.reference,
            "message": f"{event.field_name} '{event.reference}' {event.reason}; "
            "will be submitted without this link",
        }
    return {
        "event": "summary",
        "objectives_created": event.created_count(ResourceKind.OBJECTIVE),
        "epics_created": event.created_count(ResourceKind.EPIC),
        "stories_created": event.created_count(ResourceKind.STORY),
        "error_count": event.error_count,
        "errors": list(event.errors),
        "warnings": list(event.warnings),
    }


def dry_run_payload(verdict: DryRunVerdict) -> dict[str, Any]:
    return {
        "event": "dry_run",
        "valid": verdict.valid,
        "errors": list(verdict.errors),
        "warnings": list(verdict.warnings),
    }


class JsonLinesWriter:
    """One JSON object per line; the parse header is omitted."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout

    def _write(self, payload: dict[str, Any]) -> None:
        self._stream.write(json.dumps(payload, ensure_ascii=False) + "\n")
        self._stream.flush()

    def parsed(self, counts: dict[ResourceKind, int]) -> None:
        return None

    def event(self, event: RunEvent) -> None:
        self._write(event_payload(event))

    def dry_run(self, verdict: DryRunVerdict) -> None:
        self._write(dry_run_payload(verdict))


class TextWriter:
    """Human-readable, uncoloured output."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdout

    def _line(self, text: str = "") -> None:
        print(text, file=self._stream)

    def parsed(self, counts: dict[ResourceKind, int]) -> None:
        self._line(
            f"Parsed  {counts.get(ResourceKind.OBJECTIVE, 0)} objective(s)  "
            f"{counts.get(ResourceKind.EPIC, 0)} epic(s)  "
            f"{counts.get(ResourceKind.STORY, 0)} story/stories"
        )

    def event(self, event: RunEvent) -> None:
        if isinstance(event, ResourceCreated):
            url = f"  {event.url}" if event.url else ""
            self._line(f"  ✓ {event.kind.value}: {event.name}  (#{event.identifier}){url}")
        elif isinstance(event, ResourceFailed):
            self._line(f"  ✗ {event.kind.value}: {event.name}\n    {event.error}")
        elif isinstance(event, ReferenceUnresolved):
            self._line(
                f"  ! {event.kind.value}: {event.name}\n"
                f"    {event.field_name} '{event.reference}' not found; "
                "will be submitted without this link"
            )
        else:
            self._summary(event)

    def _summary(self, summary: RunSummary) -> None:
        self._line()
        self._line("─── Summary ───────────────────────────────────")
        for kind in PHASE_ORDER:
            label = f"{kind.plural.capitalize()} created"
            self._line(f"  {label:<19}: {summary.created_count(kind)}")
        if summary.warnings:
            self._line(f"  {'Warnings':<19}: {len(summary.warnings)}")
        if summary.errors:
            self._line(f"  {'Errors':<19}: {summary.error_count}")
            for err in summary.errors:
                self._line(f"    ✗ {err}")

    def dry_run(self, verdict: DryRunVerdict) -> None:
        for warning in verdict.warnings:
            self._line(f"  ! {warning}")
        if verdict.valid:
            self._line("✓ All validations passed – no resources created (dry run).")
            return
        self._line(f"✗ {len(verdict.errors)} validation error(s):")
        for err in verdict.errors:
            self._line(f"  • {err}")


def make_writer(output: str, stream: TextIO | None = None) -> OutputWriter:
    if output == "json":
        return JsonLinesWriter(stream)
    if output == "text":
        return TextWriter(stream)
    raise ValueError(f"Unknown output format: {output!r}")
