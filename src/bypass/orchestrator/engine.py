"""Batch engine: creates objectives, then epics, then stories.

The run is an explicit phase state machine:

    processing_objectives -> processing_epics -> processing_stories -> done

Within a phase, resources are handled one at a time in input order, so every
name registered by a phase is visible before the next phase begins, and the
event stream order is deterministic for a given input.

Failures are resource-scoped: a failed resource yields an `error` event and
the run moves on. Later resources that needed its identifier simply see an
unresolved reference.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Protocol

from bypass.orchestrator.errors import (
    InputValidationError,
    NameNotFound,
    SubmissionError,
    TemplateError,
)
from bypass.orchestrator.models import (
    CreatedResource,
    DryRunVerdict,
    RawResource,
    ReferenceUnresolved,
    ResourceCreated,
    ResourceFailed,
    ResourceKind,
    ResourceRecord,
    RunEvent,
    RunSummary,
    Unresolved,
    ValidationOutcome,
    parse_estimate,
)
from bypass.orchestrator.resolver import ReferenceResolver, WorkspaceDirectory
from bypass.orchestrator.template import EpicTemplate

logger = logging.getLogger(__name__)

RESOURCE_STATES = ("in progress", "to do", "done")
STORY_TYPES = ("bug", "chore", "feature")


class Transport(Protocol):
    def submit(self, record: ResourceRecord) -> CreatedResource: ...


# ---------------------------------------------------------------------------
# Phase state machine
# ---------------------------------------------------------------------------


class RunPhase(str, Enum):
    PROCESSING_OBJECTIVES = "processing_objectives"
    PROCESSING_EPICS = "processing_epics"
    PROCESSING_STORIES = "processing_stories"
    DONE = "done"


ALLOWED_TRANSITIONS: dict[RunPhase, set[RunPhase]] = {
    RunPhase.PROCESSING_OBJECTIVES: {RunPhase.PROCESSING_EPICS},
    RunPhase.PROCESSING_EPICS: {RunPhase.PROCESSING_STORIES},
    RunPhase.PROCESSING_STORIES: {RunPhase.DONE},
    RunPhase.DONE: set(),
}

PHASE_KINDS: dict[RunPhase, ResourceKind] = {
    RunPhase.PROCESSING_OBJECTIVES: ResourceKind.OBJECTIVE,
    RunPhase.PROCESSING_EPICS: ResourceKind.EPIC,
    RunPhase.PROCESSING_STORIES: ResourceKind.STORY,
}

_NEXT_PHASE: dict[RunPhase, RunPhase] = {
    RunPhase.PROCESSING_OBJECTIVES: RunPhase.PROCESSING_EPICS,
    RunPhase.PROCESSING_EPICS: RunPhase.PROCESSING_STORIES,
    RunPhase.PROCESSING_STORIES: RunPhase.DONE,
}


class IllegalPhaseTransition(ValueError):
    pass


def transition(*, current: RunPhase, to: RunPhase) -> RunPhase:
    if to not in ALLOWED_TRANSITIONS.get(current, set()):
        raise IllegalPhaseTransition(f"Illegal transition: {current.value} -> {to.value}")
    return to


def iter_phases() -> Iterator[tuple[RunPhase, ResourceKind]]:
    phase = RunPhase.PROCESSING_OBJECTIVES
    while phase is not RunPhase.DONE:
        yield phase, PHASE_KINDS[phase]
        phase = transition(current=phase, to=_NEXT_PHASE[phase])


# ---------------------------------------------------------------------------
# Structural validation
# ---------------------------------------------------------------------------


def _is_iso_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
        return True
    except ValueError:
        pass
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
        return True
    except ValueError:
        return False


def validate_resource(resource: RawResource) -> list[str]:
    """Return structural problems with `resource`; empty when it is valid."""

    if not resource.name:
        return ["'name' is required"]

    errors: list[str] = []
    kind = resource.kind

    # Stories carry a workflow_state instead, resolved against the workspace.
    if kind is not ResourceKind.STORY and resource.state is not None:
        if resource.state not in RESOURCE_STATES:
            errors.append(
                f"invalid state '{resource.state}'. Must be 'in progress', 'to do', or 'done'"
            )

    if kind is ResourceKind.STORY:
        if resource.story_type is not None and resource.story_type not in STORY_TYPES:
            errors.append(
                f"invalid type '{resource.story_type}'. Must be 'bug', 'chore', or 'feature'"
            )
        if resource.estimate is not None and parse_estimate(resource.estimate) is None:
            errors.append(f"estimate '{resource.estimate}' must be a non-negative integer")

    for label, value in (
        ("start_date", resource.start_date),
        ("deadline", resource.deadline),
        ("due_date", resource.due_date),
    ):
        if value is not None and not _is_iso_date(value):
            errors.append(f"{label} '{value}' is not an ISO 8601 date")

    return errors


def ensure_valid(resource: RawResource) -> None:
    problems = validate_resource(resource)
    if problems:
        raise InputValidationError(problems)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class _Prepared:
    record: ResourceRecord | None
    notices: list[ReferenceUnresolved] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class BatchOrchestrator:
    """Drive a whole run: resolve, render, submit, and stream outcomes."""

    def __init__(
        self,
        *,
        transport: Transport | None = None,
        directory: WorkspaceDirectory | None = None,
        default_template: EpicTemplate | None = None,
    ) -> None:
        self._transport = transport
        self._directory = directory
        self._default_template = default_template
        self.phase: RunPhase | None = None

    def _template_for(
        self, resource: RawResource, cache: dict[str, EpicTemplate]
    ) -> EpicTemplate | None:
        if resource.template_path is None:
            return self._default_template
        cached = cache.get(resource.template_path)
        if cached is None:
            cached = EpicTemplate.load(resource.template_path)
            cache[resource.template_path] = cached
        return cached

    def _prepare(
        self,
        resource: RawResource,
        resolver: ReferenceResolver,
        template_cache: dict[str, EpicTemplate],
    ) -> _Prepared:
        try:
            ensure_valid(resource)
        except InputValidationError as exc:
            return _Prepared(record=None, errors=exc.problems)

        kind = resource.kind
        prepared = _Prepared(record=None)

        parent = None
        reference = resource.parent_reference
        if reference is not None and kind.parent is not None:
            parent = resolver.resolve(reference, kind.parent)
            if isinstance(parent, Unresolved):
                prepared.notices.append(
                    ReferenceUnresolved(
                        kind=kind,
                        name=resource.name,
                        field_name=kind.parent.value,
                        reference=parent.text,
                        reason=parent.reason,
                    )
                )

        owner_ids: tuple[str, ...] = ()
        group_ids: tuple[str, ...] = ()
        workflow_state_id: int | None = None
        if self._directory is not None:
            teams = resource.teams if kind is ResourceKind.EPIC else ()
            if kind is ResourceKind.STORY and resource.team is not None:
                teams = (resource.team,)
            try:
                owner_ids = self._directory.resolve_members(resource.owners)
            except NameNotFound as exc:
                prepared.errors.append(str(exc))
            try:
                group_ids = self._directory.resolve_groups(teams)
            except NameNotFound as exc:
                prepared.errors.append(str(exc))
            if kind is ResourceKind.STORY:
                if resource.workflow_state is not None:
                    try:
                        workflow_state_id = self._directory.resolve_workflow_state(
                            resource.workflow_state
                        )
                    except NameNotFound as exc:
                        prepared.errors.append(str(exc))
                else:
                    workflow_state_id = self._directory.default_workflow_state_id

        description = resource.description
        if kind is ResourceKind.EPIC:
            try:
                template = self._template_for(resource, template_cache)
            except TemplateError as exc:
                prepared.errors.append(str(exc))
                template = None
            if template is not None:
                description = template.render(resource)

        if prepared.errors:
            return prepared

        estimate = parse_estimate(resource.estimate) if resource.estimate is not None else None
        prepared.record = ResourceRecord(
            resource=resource,
            parent=parent,
            description=description,
            owner_ids=owner_ids,
            group_ids=group_ids,
            workflow_state_id=workflow_state_id,
            estimate=estimate,
        )
        return prepared

    def run(self, resources: Sequence[RawResource]) -> Iterator[RunEvent]:
        """Create every resource and yield one event per outcome, then a summary."""

        if self._transport is None:
            raise ValueError("A transport is required to run; use dry_run() to validate only")

        resolver = ReferenceResolver()
        summary = RunSummary()
        template_cache: dict[str, EpicTemplate] = {}

        for phase, kind in iter_phases():
            self.phase = phase
            batch = [r for r in resources if r.kind is kind]
            logger.info("Phase started", extra={"phase": phase.value, "count": len(batch)})
            for resource in batch:
                for event in self._process(resource, resolver, template_cache):
                    summary.record(event)
                    yield event

        self.phase = RunPhase.DONE
        logger.info(
            "Run finished",
            extra={
                "objectives_created": summary.created_count(ResourceKind.OBJECTIVE),
                "epics_created": summary.created_count(ResourceKind.EPIC),
                "stories_created": summary.created_count(ResourceKind.STORY),
                "error_count": summary.error_count,
            },
        )
        yield summary

    def _process(
        self,
        resource: RawResource,
        resolver: ReferenceResolver,
        template_cache: dict[str, EpicTemplate],
    ) -> Iterator[ResourceCreated | ResourceFailed | ReferenceUnresolved]:
        assert self._transport is not None

        prepared = self._prepare(resource, resolver, template_cache)
        for notice in prepared.notices:
            logger.warning(
                "Unresolved reference; submitting without this link",
                extra={
                    "kind": notice.kind.value,
                    "resource_name": notice.name,
                    "reference": notice.reference,
                },
            )
            yield notice

        if prepared.record is None:
            yield ResourceFailed(
                kind=resource.kind,
                name=resource.display_name,
                error="; ".join(prepared.errors),
            )
            return

        try:
            created = self._transport.submit(prepared.record)
        except SubmissionError as exc:
            logger.error(
                "Resource creation failed",
                extra={"kind": resource.kind.value, "resource_name": resource.name, "error": str(exc)},
            )
            yield ResourceFailed(kind=resource.kind, name=resource.name, error=str(exc))
            return

        resolver.register(resource.kind, resource.name, created.identifier)
        yield ResourceCreated(
            kind=resource.kind,
            identifier=created.identifier,
            name=created.name,
            url=created.url,
        )

    def dry_run(self, resources: Sequence[RawResource]) -> DryRunVerdict:
        """Resolve and validate every resource without calling the transport.

        Valid resources are registered under placeholder identifiers so that
        later phases resolve in-batch names exactly as a real run would.
        """

        resolver = ReferenceResolver()
        template_cache: dict[str, EpicTemplate] = {}
        outcomes: list[ValidationOutcome] = []
        errors: list[str] = []
        warnings: list[str] = []
        placeholder = 0

        for phase, kind in iter_phases():
            self.phase = phase
            for resource in (r for r in resources if r.kind is kind):
                prepared = self._prepare(resource, resolver, template_cache)
                warnings.extend(n.describe() for n in prepared.notices)
                name = resource.display_name
                errors.extend(
                    ResourceFailed(kind=kind, name=name, error=e).describe()
                    for e in prepared.errors
                )
                outcomes.append(
                    ValidationOutcome(kind=kind, name=name, errors=tuple(prepared.errors))
                )
                if prepared.record is not None:
                    placeholder -= 1
                    resolver.register(kind, resource.name, placeholder)

        self.phase = RunPhase.DONE
        return DryRunVerdict(outcomes=tuple(outcomes), errors=tuple(errors), warnings=tuple(warnings))
