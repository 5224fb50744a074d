"""Test configuration and fixtures."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import Mock

import pytest

from bypass.orchestrator.logging import JsonFormatter
from bypass.orchestrator.models import CreatedResource, ResourceRecord
from bypass.orchestrator.resolver import WorkspaceDirectory
from bypass.orchestrator.shortcut.client import ShortcutClient


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Keep the developer's token, `.env` and config file out of every test."""
    for var in (
        "SHORTCUT_API_TOKEN",
        "SHORTCUT_BASE_URL",
        "SHORTCUT_REQUEST_TIMEOUT_SECONDS",
        "LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    config_home = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    monkeypatch.chdir(tmp_path)

    root = logging.getLogger()
    level = root.level
    yield config_home
    # The CLI installs its own stderr handler; drop it so it cannot outlive the test.
    for handler in list(root.handlers):
        if isinstance(handler.formatter, JsonFormatter):
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def directory() -> WorkspaceDirectory:
    """Provide a small workspace: two members, one team, one workflow."""
    return WorkspaceDirectory.from_api(
        members=[
            {
                "id": "u-alice",
                "profile": {
                    "name": "Alice Smith",
                    "mention_name": "alice",
                    "email_address": "alice@example.com",
                },
            },
            {"id": "u-bob", "profile": {"name": "Bob Jones", "mention_name": "bob"}},
            {"id": "u-gone", "disabled": True, "profile": {"mention_name": "gone"}},
        ],
        groups=[
            {"id": "g-platform", "name": "Platform Team", "mention_name": "platform"},
            {"id": "g-old", "name": "Old Team", "archived": True},
        ],
        workflows=[
            {
                "id": 1,
                "default_state_id": 500000003,
                "states": [
                    {"id": 500000001, "name": "Backlog", "type": "unstarted"},
                    {"id": 500000002, "name": "In Progress", "type": "started"},
                    {"id": 500000003, "name": "Done", "type": "done"},
                ],
            }
        ],
    )


@pytest.fixture
def transport() -> Mock:
    """Provide a mocked Shortcut client that mints ids 100, 101, ..."""
    ids = itertools.count(100)

    def _submit(record: ResourceRecord) -> CreatedResource:
        identifier = next(ids)
        return CreatedResource(
            kind=record.kind,
            identifier=identifier,
            name=record.name,
            url=f"https://app.shortcut.com/acme/{record.kind.value}/{identifier}",
        )

    mock = Mock(spec=ShortcutClient)
    mock.submit.side_effect = _submit
    return mock
