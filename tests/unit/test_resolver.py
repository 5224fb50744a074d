"""Unit tests for in-run reference resolution and workspace name lookups."""

from __future__ import annotations

import logging

import pytest

from bypass.orchestrator.errors import NameNotFound
from bypass.orchestrator.models import (
    ById,
    ByName,
    NameReference,
    ResourceKind,
    Unresolved,
    parse_reference,
)
from bypass.orchestrator.resolver import ReferenceResolver, WorkspaceDirectory


def test_numeric_reference_never_consults_the_name_table() -> None:
    resolver = ReferenceResolver()
    # A resource literally named "42" must not shadow remote id 42.
    resolver.register(ResourceKind.OBJECTIVE, "42", 7)

    assert resolver.resolve(parse_reference("42"), ResourceKind.OBJECTIVE) == ById(42)


def test_registered_name_resolves_to_its_identifier() -> None:
    resolver = ReferenceResolver()
    resolver.register(ResourceKind.EPIC, "Platform", 101)

    ref = NameReference(text="Platform")
    assert resolver.resolve(ref, ResourceKind.EPIC) == ByName(101)
    # Repeated reads are stable.
    assert resolver.resolve(ref, ResourceKind.EPIC) == ByName(101)


def test_unregistered_name_is_unresolved() -> None:
    resolver = ReferenceResolver()

    result = resolver.resolve(NameReference(text="Ghost"), ResourceKind.OBJECTIVE)

    assert isinstance(result, Unresolved)
    assert result.text == "Ghost"
    assert "objective" in result.reason


def test_names_are_scoped_per_kind() -> None:
    resolver = ReferenceResolver()
    resolver.register(ResourceKind.OBJECTIVE, "Shared", 1)

    assert isinstance(
        resolver.resolve(NameReference(text="Shared"), ResourceKind.EPIC), Unresolved
    )


def test_duplicate_name_last_registration_wins(caplog: pytest.LogCaptureFixture) -> None:
    resolver = ReferenceResolver()
    resolver.register(ResourceKind.EPIC, "Platform", 1)

    with caplog.at_level(logging.WARNING):
        resolver.register(ResourceKind.EPIC, "Platform", 2)

    assert resolver.resolve(NameReference(text="Platform"), ResourceKind.EPIC) == ByName(2)
    assert resolver.registered(ResourceKind.EPIC) == {"Platform": 2}
    assert any("Duplicate name" in r.getMessage() for r in caplog.records)


def test_directory_maps_every_member_alias(directory: WorkspaceDirectory) -> None:
    assert directory.resolve_member("Alice Smith") == "u-alice"
    assert directory.resolve_member("alice") == "u-alice"
    assert directory.resolve_member(" alice@example.com ") == "u-alice"
    assert directory.resolve_members(["alice", "bob"]) == ("u-alice", "u-bob")


def test_directory_skips_disabled_members_and_archived_groups(
    directory: WorkspaceDirectory,
) -> None:
    with pytest.raises(NameNotFound):
        directory.resolve_member("gone")
    with pytest.raises(NameNotFound):
        directory.resolve_group("Old Team")
    assert directory.resolve_group("platform") == "g-platform"


def test_unknown_name_lists_available_names(directory: WorkspaceDirectory) -> None:
    with pytest.raises(NameNotFound) as excinfo:
        directory.resolve_group("Nope")

    message = str(excinfo.value)
    assert message.startswith("unknown team 'Nope'. Available: ")
    assert "Platform Team" in message


def test_default_workflow_state_prefers_first_unstarted(directory: WorkspaceDirectory) -> None:
    assert directory.default_workflow_state_id == 500000001
    assert directory.resolve_workflow_state("In Progress") == 500000002


def test_default_workflow_state_falls_back_to_workflow_default() -> None:
    directory = WorkspaceDirectory.from_api(
        members=[],
        groups=[],
        workflows=[
            {
                "default_state_id": 9,
                "states": [{"id": 9, "name": "Started", "type": "started"}],
            }
        ],
    )

    assert directory.default_workflow_state_id == 9
