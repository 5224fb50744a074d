"""Format adapters: turn an input file into an ordered list of RawResource."""

from __future__ import annotations

from pathlib import Path

from bypass.orchestrator.errors import ManifestError
from bypass.orchestrator.manifest.tabular import parse_csv, parse_xlsx
from bypass.orchestrator.manifest.yaml_manifest import parse_yaml
from bypass.orchestrator.models import RawResource, ResourceKind


def parse_file(path: Path, kind: ResourceKind | None = None) -> list[RawResource]:
    """Detect the format from the extension and parse the file.

    YAML: kinds come from top-level keys; `kind` is ignored.
    CSV: `kind` is required.
    XLSX: `kind` selects the first sheet; otherwise sheets are matched by name.
    """

    ext = path.suffix.lower().lstrip(".")
    if ext in {"yaml", "yml"}:
        return parse_yaml(path)
    if ext == "csv":
        if kind is None:
            raise ManifestError(
                "--type is required for CSV files. Use: --type objective | epic | story"
            )
        return parse_csv(path, kind)
    if ext in {"xlsx", "xlsm"}:
        return parse_xlsx(path, kind)
    if ext == "xls":
        raise ManifestError("Legacy .xls workbooks are not supported; save the file as .xlsx")
    raise ManifestError(f"Unsupported file extension '.{ext}'. Use .yaml, .csv, or .xlsx")


__all__ = ["parse_csv", "parse_file", "parse_xlsx", "parse_yaml"]
