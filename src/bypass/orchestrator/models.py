"""Canonical resource model shared by the format adapters and the batch engine.

Cross-reference fields (an epic's objective, a story's epic) are parsed once,
when the record is built, into either an `IdReference` (a literal positive
integer) or a `NameReference` (a display name to resolve within the run).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_POSITIVE_INT = re.compile(r"\d+")


class ResourceKind(str, Enum):
    OBJECTIVE = "objective"
    EPIC = "epic"
    STORY = "story"

    @property
    def label(self) -> str:
        return self.value.capitalize()

    @property
    def plural(self) -> str:
        return "stories" if self is ResourceKind.STORY else f"{self.value}s"

    @property
    def parent(self) -> ResourceKind | None:
        """The kind a cross-reference on this kind points at."""

        return _PARENT_KIND.get(self)


_PARENT_KIND: dict[ResourceKind, ResourceKind] = {
    ResourceKind.EPIC: ResourceKind.OBJECTIVE,
    ResourceKind.STORY: ResourceKind.EPIC,
}

PHASE_ORDER: tuple[ResourceKind, ...] = (
    ResourceKind.OBJECTIVE,
    ResourceKind.EPIC,
    ResourceKind.STORY,
)


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class IdReference:
    """A pre-existing remote identifier, trusted as-is."""

    text: str
    identifier: int


@dataclass(frozen=True, slots=True)
class NameReference:
    """A display name to resolve against resources created earlier in the run."""

    text: str


Reference = IdReference | NameReference


def parse_reference(text: str) -> Reference:
    normalized = text.strip()
    if _POSITIVE_INT.fullmatch(normalized) and int(normalized) > 0:
        return IdReference(text=normalized, identifier=int(normalized))
    return NameReference(text=normalized)


@dataclass(frozen=True, slots=True)
class ById:
    identifier: int


@dataclass(frozen=True, slots=True)
class ByName:
    identifier: int


@dataclass(frozen=True, slots=True)
class Unresolved:
    text: str
    reason: str


ResolvedReference = ById | ByName | Unresolved


# ---------------------------------------------------------------------------
# Input records
# ---------------------------------------------------------------------------


def _split_multi(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        parts: list[Any] = value.split(",")
    elif isinstance(value, (list, tuple)):
        parts = list(value)
    else:
        parts = [value]
    return tuple(s for s in (str(p).strip() for p in parts if p is not None) if s)


def parse_estimate(text: str) -> int | None:
    """Story points as sent to the API, or None when `text` is not a non-negative integer."""

    if not text.isascii():
        return None
    try:
        value = int(text)
    except ValueError:
        return None
    return value if value >= 0 else None


def _optional_text(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        # YAML loads bare ISO dates as date objects.
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


class RawResource(BaseModel):
    """One normalized input record.

    Immutable once built by a format adapter. `name` may be empty here; an
    empty name is reported by validation rather than rejected at parse time,
    so a dry run can list it alongside other problems.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    kind: ResourceKind
    name: str = ""
    description: str | None = None
    state: str | None = None

    # Cross-references.
    objective: Reference | None = None
    epic: Reference | None = None

    owners: tuple[str, ...] = Field(default_factory=tuple)
    teams: tuple[str, ...] = Field(default_factory=tuple)
    team: str | None = None
    labels: tuple[str, ...] = Field(default_factory=tuple)

    start_date: str | None = None
    deadline: str | None = None
    due_date: str | None = None

    story_type: str | None = None
    # Kept as text so that a malformed value is reported by validation.
    estimate: str | None = None
    workflow_state: str | None = None

    template_path: str | None = None

    # 1-based position in the source (row or list index), for diagnostics.
    row: int | None = None

    @field_validator("name", mode="before")
    @classmethod
    def _normalize_name(cls, value: object) -> str:
        return _optional_text(value) or ""

    @field_validator(
        "description",
        "state",
        "team",
        "start_date",
        "deadline",
        "due_date",
        "story_type",
        "estimate",
        "workflow_state",
        "template_path",
        mode="before",
    )
    @classmethod
    def _normalize_optional(cls, value: object) -> str | None:
        return _optional_text(value)

    @field_validator("owners", "teams", "labels", mode="before")
    @classmethod
    def _normalize_multi(cls, value: object) -> tuple[str, ...]:
        return _split_multi(value)

    @field_validator("objective", "epic", mode="before")
    @classmethod
    def _parse_reference(cls, value: object) -> Reference | None:
        if isinstance(value, (IdReference, NameReference)):
            return value
        text = _optional_text(value)
        return parse_reference(text) if text is not None else None

    @property
    def parent_reference(self) -> Reference | None:
        """The cross-reference pointing at this resource's parent kind, if any."""

        if self.kind is ResourceKind.EPIC:
            return self.objective
        if self.kind is ResourceKind.STORY:
            return self.epic
        return None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return f"<unnamed, row {self.row}>" if self.row is not None else "<unnamed>"


@dataclass(frozen=True, slots=True)
class ResourceRecord:
    """A RawResource bound to every identifier it needs for submission."""

    resource: RawResource
    parent: ResolvedReference | None = None
    description: str | None = None
    owner_ids: tuple[str, ...] = ()
    group_ids: tuple[str, ...] = ()
    workflow_state_id: int | None = None
    estimate: int | None = None

    @property
    def kind(self) -> ResourceKind:
        return self.resource.kind

    @property
    def name(self) -> str:
        return self.resource.name

    @property
    def parent_id(self) -> int | None:
        if isinstance(self.parent, (ById, ByName)):
            return self.parent.identifier
        return None


@dataclass(frozen=True, slots=True)
class CreatedResource:
    """Minimal resource metadata returned by the Shortcut API."""

    kind: ResourceKind
    identifier: int
    name: str
    url: str | None


# ---------------------------------------------------------------------------
# Outcome stream events
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ResourceCreated:
    kind: ResourceKind
    identifier: int
    name: str
    url: str | None


@dataclass(frozen=True, slots=True)
class ResourceFailed:
    kind: ResourceKind
    name: str
    error: str

    def describe(self) -> str:
        return f"{self.kind.label} '{self.name}': {self.error}"


@dataclass(frozen=True, slots=True)
class ReferenceUnresolved:
    """Non-fatal notice: the resource proceeds without its parent link."""

    kind: ResourceKind
    name: str
    field_name: str
    reference: str
    reason: str

    def describe(self) -> str:
        return f"{self.kind.label} '{self.name}': {self.field_name} '{self.reference}' {self.reason}"


CreationOutcome = ResourceCreated | ResourceFailed


@dataclass(slots=True)
class RunSummary:
    """Aggregate counts for a run; owned and updated by the batch engine only."""

    created: dict[ResourceKind, int] = field(
        default_factory=lambda: {kind: 0 for kind in PHASE_ORDER}
    )
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def created_count(self, kind: ResourceKind) -> int:
        return self.created.get(kind, 0)

    def record(self, event: ResourceCreated | ResourceFailed | ReferenceUnresolved) -> None:
        if isinstance(event, ResourceCreated):
            self.created[event.kind] = self.created.get(event.kind, 0) + 1
        elif isinstance(event, ResourceFailed):
            self.errors.append(event.describe())
        else:
            self.warnings.append(event.describe())


RunEvent = ResourceCreated | ResourceFailed | ReferenceUnresolved | RunSummary


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    """Dry-run result for a single resource."""

    kind: ResourceKind
    name: str
    errors: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True, slots=True)
class DryRunVerdict:
    outcomes: tuple[ValidationOutcome, ...]
    errors: tuple[str, ...]
    warnings: tuple[str, ...]

    @property
    def valid(self) -> bool:
        return not self.errors
