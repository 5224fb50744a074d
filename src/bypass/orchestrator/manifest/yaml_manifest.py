"""YAML manifests.

A single file may hold all three kinds under optional top-level keys:

```yaml
objectives:
  - name: Q3
epics:
  - name: Platform
    objective: Q3          # name from this file, or a numeric ID
    owners: [alice, bob]   # a list or "alice, bob"
    template: epic.md
stories:
  - name: Fix bug
    type: bug
    epic: Platform
```
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from bypass.orchestrator.errors import ManifestError
from bypass.orchestrator.models import PHASE_ORDER, RawResource

# YAML key -> RawResource field, where they differ.
KEY_ALIASES = {"type": "story_type", "template": "template_path"}


def parse_yaml(path: Path) -> list[RawResource]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestError(f"Cannot read '{path}': {exc}") from exc
    except yaml.YAMLError as exc:
        raise ManifestError(f"Failed to parse YAML file '{path}': {exc}") from exc

    if raw is None:
        return []
    if not isinstance(raw, dict):
        raise ManifestError(
            f"YAML file '{path}' must be a mapping with objectives/epics/stories keys"
        )

    resources: list[RawResource] = []
    for kind in PHASE_ORDER:
        items = raw.get(kind.plural)
        if items is None:
            continue
        if not isinstance(items, list):
            raise ManifestError(f"'{kind.plural}' in '{path}' must be a list")

        for index, item in enumerate(items, start=1):
            if not isinstance(item, dict):
                raise ManifestError(f"{kind.plural}[{index}] in '{path}' must be a mapping")
            fields: dict[str, Any] = {KEY_ALIASES.get(str(k), str(k)): v for k, v in item.items()}
            fields["kind"] = kind
            fields["row"] = index
            try:
                resources.append(RawResource(**fields))
            except ValidationError as exc:
                raise ManifestError(f"{kind.plural}[{index}] in '{path}': {exc}") from exc
    return resources
