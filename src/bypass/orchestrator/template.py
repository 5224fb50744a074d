"""Markdown templates for epic descriptions.

A template is plain text with `{{variable}}` placeholders. Rendering is a pure
function of (template text, variable map); unknown placeholders are left
untouched.

Available variables:
- `{{name}}`, `{{description}}`, `{{objective}}`
- `{{owners}}`, `{{teams}}`, `{{labels}}` (comma-separated)
- `{{start_date}}`, `{{deadline}}`
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from bypass.orchestrator.errors import TemplateError
from bypass.orchestrator.models import RawResource

TEMPLATE_VARIABLES: tuple[str, ...] = (
    "name",
    "description",
    "objective",
    "owners",
    "teams",
    "labels",
    "start_date",
    "deadline",
)


def render_template(text: str, variables: Mapping[str, str]) -> str:
    result = text
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", value)
    return result


def epic_variables(resource: RawResource) -> dict[str, str]:
    """Build the template variable map for one epic."""

    return {
        "name": resource.name,
        "description": resource.description or "",
        "objective": resource.objective.text if resource.objective is not None else "",
        "owners": ", ".join(resource.owners),
        "teams": ", ".join(resource.teams),
        "labels": ", ".join(resource.labels),
        "start_date": resource.start_date or "",
        "deadline": resource.deadline or "",
    }


@dataclass(frozen=True, slots=True)
class EpicTemplate:
    path: Path
    content: str

    @classmethod
    def load(cls, path: Path | str) -> EpicTemplate:
        template_path = Path(path)
        try:
            content = template_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise TemplateError(f"Cannot read template '{template_path}': {exc}") from exc
        return cls(path=template_path, content=content)

    def render(self, resource: RawResource) -> str:
        return render_template(self.content, epic_variables(resource))
