"""CSV and Excel manifests: one resource kind per sheet/file, one row per resource.

Multi-value columns (owners, teams, labels) are separated with `;` inside a
cell, since `,` is the CSV delimiter.

Columns by kind:
- objective: name, description, state
- epic: name, description, objective, owners, teams, labels, state,
  start_date, deadline, template
- story: name, type, description, epic, owners, team, labels, estimate,
  due_date, workflow_state
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime, time
from pathlib import Path
from typing import Any

import polars as pl
from openpyxl import load_workbook
from pydantic import ValidationError

from bypass.orchestrator.errors import ManifestError
from bypass.orchestrator.models import RawResource, ResourceKind

COLUMNS: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.OBJECTIVE: ("name", "description", "state"),
    ResourceKind.EPIC: (
        "name",
        "description",
        "objective",
        "owners",
        "teams",
        "labels",
        "state",
        "start_date",
        "deadline",
        "template",
    ),
    ResourceKind.STORY: (
        "name",
        "type",
        "description",
        "epic",
        "owners",
        "team",
        "labels",
        "estimate",
        "due_date",
        "workflow_state",
    ),
}

MULTI_VALUE_COLUMNS = frozenset({"owners", "teams", "labels"})

# Column name -> RawResource field, where they differ.
FIELD_ALIASES = {"type": "story_type", "template": "template_path"}

# Sheet-name fragments used to detect the kind when --type is not given.
SHEET_KINDS: tuple[tuple[str, ResourceKind], ...] = (
    ("objective", ResourceKind.OBJECTIVE),
    ("epic", ResourceKind.EPIC),
    ("stor", ResourceKind.STORY),
)


def split_semicolons(value: str) -> list[str]:
    return [p.strip() for p in value.split(";") if p.strip()]


def resource_from_row(
    kind: ResourceKind, row: dict[str, str], *, row_number: int, source: Path
) -> RawResource:
    """Build a RawResource from a header -> cell text mapping."""

    fields: dict[str, Any] = {"kind": kind, "row": row_number}
    for column in COLUMNS[kind]:
        text = row.get(column, "").strip()
        if not text:
            continue
        value: Any = split_semicolons(text) if column in MULTI_VALUE_COLUMNS else text
        fields[FIELD_ALIASES.get(column, column)] = value
    try:
        return RawResource(**fields)
    except ValidationError as exc:
        raise ManifestError(f"{source}: row {row_number}: {exc}") from exc


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def parse_csv(path: Path, kind: ResourceKind) -> list[RawResource]:
    # Every column is read as text; typing happens in RawResource.
    try:
        frame = pl.read_csv(path, infer_schema_length=0)
    except OSError as exc:
        raise ManifestError(f"Failed to open CSV '{path}': {exc}") from exc
    except pl.exceptions.PolarsError as exc:
        raise ManifestError(f"CSV '{path}' parse error: {exc}") from exc

    headers = [column.strip().lower() for column in frame.columns]
    if "name" not in headers:
        raise ManifestError(f"CSV '{path}' is missing a 'name' column")

    resources: list[RawResource] = []
    # Row 1 is the header.
    for row_number, cells in enumerate(frame.iter_rows(), start=2):
        row = {header: value or "" for header, value in zip(headers, cells)}
        resources.append(resource_from_row(kind, row, row_number=row_number, source=path))
    return resources


# ---------------------------------------------------------------------------
# Excel
# ---------------------------------------------------------------------------


def _cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _rows_from_sheet(
    kind: ResourceKind, rows: Iterable[Sequence[object]], *, sheet: str, source: Path
) -> list[RawResource]:
    iterator = iter(rows)
    header_row = next(iterator, None)
    if header_row is None:
        return []
    headers = [_cell_text(h).lower() for h in header_row]
    if "name" not in headers:
        raise ManifestError(f"Sheet '{sheet}' in '{source}' is missing a 'name' column")

    resources: list[RawResource] = []
    for row_number, cells in enumerate(iterator, start=2):
        row = {
            header: _cell_text(cell)
            for header, cell in zip(headers, cells)
            if header
        }
        # Blank rows are common at the bottom of spreadsheets.
        if not row.get("name"):
            continue
        resources.append(resource_from_row(kind, row, row_number=row_number, source=source))
    return resources


def parse_xlsx(path: Path, kind: ResourceKind | None = None) -> list[RawResource]:
    """Parse an Excel workbook.

    With `kind`, the first sheet is used. Otherwise every sheet whose name
    contains "objective", "epic" or "stor" (case-insensitive) is parsed.
    """

    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except Exception as exc:  # openpyxl raises several unrelated types
        raise ManifestError(f"Cannot open Excel file '{path}': {exc}") from exc

    try:
        if not workbook.sheetnames:
            raise ManifestError(f"Excel file '{path}' has no sheets")

        if kind is not None:
            sheet = workbook.sheetnames[0]
            return _rows_from_sheet(
                kind, workbook[sheet].iter_rows(values_only=True), sheet=sheet, source=path
            )

        resources: list[RawResource] = []
        matched = False
        for sheet in workbook.sheetnames:
            lower = sheet.lower()
            sheet_kind = next((k for fragment, k in SHEET_KINDS if fragment in lower), None)
            if sheet_kind is None:
                continue
            matched = True
            resources.extend(
                _rows_from_sheet(
                    sheet_kind,
                    workbook[sheet].iter_rows(values_only=True),
                    sheet=sheet,
                    source=path,
                )
            )

        if not matched:
            raise ManifestError(
                f"No recognized sheet names in '{path}'. Name sheets 'Objectives', "
                "'Epics', or 'Stories', or supply --type to use the first sheet."
            )
        return resources
    finally:
        workbook.close()
