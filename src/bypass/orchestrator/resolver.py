"""Name resolution for a single run.

`ReferenceResolver` maps in-run parent references (objective / epic names) to
identifiers minted earlier in the same run. `WorkspaceDirectory` maps
workspace names (members, teams, workflow states) to their Shortcut IDs.

Neither holds process-wide state: the batch engine builds one resolver per
run and passes it explicitly.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from bypass.orchestrator.errors import NameNotFound
from bypass.orchestrator.models import (
    ById,
    ByName,
    IdReference,
    Reference,
    ResolvedReference,
    ResourceKind,
    Unresolved,
)

logger = logging.getLogger(__name__)


class ReferenceResolver:
    """Append-only name -> identifier tables, one per resource kind."""

    def __init__(self) -> None:
        self._tables: dict[ResourceKind, dict[str, int]] = {kind: {} for kind in ResourceKind}

    def resolve(self, reference: Reference, expected_kind: ResourceKind) -> ResolvedReference:
        if isinstance(reference, IdReference):
            return ById(reference.identifier)

        identifier = self._tables[expected_kind].get(reference.text)
        if identifier is None:
            return Unresolved(
                text=reference.text,
                reason=f"does not match any {expected_kind.value} created earlier in this run",
            )
        return ByName(identifier)

    def register(self, kind: ResourceKind, name: str, identifier: int) -> None:
        table = self._tables[kind]
        previous = table.get(name)
        if previous is not None:
            logger.warning(
                "Duplicate name; later references resolve to the most recent resource",
                extra={
                    "kind": kind.value,
                    "resource_name": name,
                    "previous_id": previous,
                    "new_id": identifier,
                },
            )
        table[name] = identifier

    def registered(self, kind: ResourceKind) -> Mapping[str, int]:
        """Read-only view of the names registered so far for `kind`."""

        return dict(self._tables[kind])


@dataclass(slots=True)
class WorkspaceDirectory:
    """Lookup tables built from the workspace's members, groups and workflows."""

    members: dict[str, str] = field(default_factory=dict)
    groups: dict[str, str] = field(default_factory=dict)
    workflow_states: dict[str, int] = field(default_factory=dict)
    default_workflow_state_id: int | None = None

    @classmethod
    def from_api(
        cls,
        *,
        members: Iterable[Mapping[str, Any]],
        groups: Iterable[Mapping[str, Any]],
        workflows: Iterable[Mapping[str, Any]],
    ) -> WorkspaceDirectory:
        directory = cls()

        for member in members:
            if member.get("disabled"):
                continue
            member_id = member.get("id")
            profile = member.get("profile")
            if not isinstance(member_id, str) or not isinstance(profile, Mapping):
                continue
            for key in ("name", "mention_name", "email_address"):
                value = profile.get(key)
                if isinstance(value, str) and value.strip():
                    directory.members[value] = member_id

        for group in groups:
            if group.get("archived"):
                continue
            group_id = group.get("id")
            if not isinstance(group_id, str):
                continue
            for key in ("name", "mention_name"):
                value = group.get(key)
                if isinstance(value, str) and value.strip():
                    directory.groups[value] = group_id

        fallback_state_id: int | None = None
        for workflow in workflows:
            states = workflow.get("states")
            for state in states if isinstance(states, list) else []:
                state_id = state.get("id")
                state_name = state.get("name")
                if not isinstance(state_id, int) or not isinstance(state_name, str):
                    continue
                directory.workflow_states[state_name] = state_id
                if directory.default_workflow_state_id is None and state.get("type") == "unstarted":
                    directory.default_workflow_state_id = state_id
            if fallback_state_id is None and isinstance(workflow.get("default_state_id"), int):
                fallback_state_id = workflow["default_state_id"]
        if directory.default_workflow_state_id is None:
            directory.default_workflow_state_id = fallback_state_id

        logger.debug(
            "Workspace directory loaded",
            extra={
                "members": len(directory.members),
                "groups": len(directory.groups),
                "workflow_states": len(directory.workflow_states),
            },
        )
        return directory

    def resolve_member(self, name: str) -> str:
        member_id = self.members.get(name.strip())
        if member_id is None:
            raise NameNotFound(resource_type="user", name=name, available=list(self.members))
        return member_id

    def resolve_members(self, names: Iterable[str]) -> tuple[str, ...]:
        return tuple(self.resolve_member(n) for n in names)

    def resolve_group(self, name: str) -> str:
        group_id = self.groups.get(name.strip())
        if group_id is None:
            raise NameNotFound(resource_type="team", name=name, available=list(self.groups))
        return group_id

    def resolve_groups(self, names: Iterable[str]) -> tuple[str, ...]:
        return tuple(self.resolve_group(n) for n in names)

    def resolve_workflow_state(self, name: str) -> int:
        state_id = self.workflow_states.get(name.strip())
        if state_id is None:
            raise NameNotFound(
                resource_type="workflow state", name=name, available=list(self.workflow_states)
            )
        return state_id
