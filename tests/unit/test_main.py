"""Unit tests for the CLI entrypoint (Shortcut client replaced by a fake)."""

from __future__ import annotations

import io
import itertools
import json
from pathlib import Path
from typing import Any

import pytest

from bypass.orchestrator import main as main_module
from bypass.orchestrator.errors import NetworkFailure, SubmissionRejected
from bypass.orchestrator.models import CreatedResource, ResourceRecord
from bypass.orchestrator.resolver import WorkspaceDirectory

PLAN = """\
objectives:
  - name: Q3
epics:
  - name: Platform
    objective: Q3
stories:
  - name: Fix bug
    type: bug
    epic: Platform
"""


class FakeShortcutClient:
    instances: list[FakeShortcutClient] = []

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.submitted: list[ResourceRecord] = []
        self.closed = False
        self.fail_names: set[str] = set()
        self.directory_error: Exception | None = None
        self._ids = itertools.count(100)
        FakeShortcutClient.instances.append(self)

    def fetch_workspace_directory(self) -> WorkspaceDirectory:
        if self.directory_error is not None:
            raise self.directory_error
        return WorkspaceDirectory()

    def submit(self, record: ResourceRecord) -> CreatedResource:
        self.submitted.append(record)
        if record.name in self.fail_names:
            raise SubmissionRejected(status=400, message="rejected")
        return CreatedResource(
            kind=record.kind, identifier=next(self._ids), name=record.name, url=None
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_client(monkeypatch: pytest.MonkeyPatch) -> type[FakeShortcutClient]:
    FakeShortcutClient.instances = []
    monkeypatch.setattr(main_module, "ShortcutClient", FakeShortcutClient)
    return FakeShortcutClient


@pytest.fixture
def plan(tmp_path: Path) -> Path:
    path = tmp_path / "plan.yaml"
    path.write_text(PLAN, encoding="utf-8")
    return path


def _json_lines(stream: io.StringIO) -> list[dict[str, Any]]:
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_create_streams_json_events(
    fake_client: type[FakeShortcutClient], plan: Path
) -> None:
    stdout = io.StringIO()

    code = main_module.main(
        ["--token", "t", "create", "--file", str(plan), "--output", "json"], stdout=stdout
    )

    assert code == 0
    events = _json_lines(stdout)
    assert [e["event"] for e in events] == ["created", "created", "created", "summary"]
    assert [e["kind"] for e in events[:3]] == ["objective", "epic", "story"]
    assert events[-1]["stories_created"] == 1

    client = fake_client.instances[0]
    assert client.kwargs["token"] == "t"
    assert client.closed is True
    assert client.submitted[-1].parent_id == 101


def test_token_is_accepted_after_the_subcommand(
    fake_client: type[FakeShortcutClient], plan: Path
) -> None:
    code = main_module.main(
        ["create", "--token", "late", "-f", str(plan), "--output", "json"], stdout=io.StringIO()
    )

    assert code == 0
    assert fake_client.instances[0].kwargs["token"] == "late"


def test_resource_error_sets_exit_code(
    fake_client: type[FakeShortcutClient], plan: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    original_init = FakeShortcutClient.__init__

    def _init(self: FakeShortcutClient, **kwargs: Any) -> None:
        original_init(self, **kwargs)
        self.fail_names = {"Platform"}

    monkeypatch.setattr(FakeShortcutClient, "__init__", _init)
    stdout = io.StringIO()

    code = main_module.main(
        ["--token", "t", "create", "--file", str(plan), "--output", "json"], stdout=stdout
    )

    assert code == 1
    events = _json_lines(stdout)
    assert [e["event"] for e in events] == ["created", "error", "warning", "created", "summary"]
    assert events[-1]["error_count"] == 1


def test_dry_run_submits_nothing(fake_client: type[FakeShortcutClient], plan: Path) -> None:
    stdout = io.StringIO()

    code = main_module.main(
        ["--token", "t", "create", "--file", str(plan), "--dry-run", "--output", "json"],
        stdout=stdout,
    )

    assert code == 0
    assert _json_lines(stdout) == [
        {"event": "dry_run", "valid": True, "errors": [], "warnings": []}
    ]
    assert fake_client.instances[0].submitted == []


def test_dry_run_with_invalid_resource_exits_1(
    fake_client: type[FakeShortcutClient], tmp_path: Path
) -> None:
    path = tmp_path / "plan.yaml"
    path.write_text("objectives:\n  - name: Q3\n    state: someday\n", encoding="utf-8")
    stdout = io.StringIO()

    code = main_module.main(["--token", "t", "create", "-f", str(path), "--dry-run"], stdout=stdout)

    assert code == 1
    assert "1 validation error(s)" in stdout.getvalue()


def test_text_output_is_default(fake_client: type[FakeShortcutClient], plan: Path) -> None:
    stdout = io.StringIO()

    code = main_module.main(["--token", "t", "create", "--file", str(plan)], stdout=stdout)

    assert code == 0
    text = stdout.getvalue()
    assert text.startswith("Parsed  1 objective(s)  1 epic(s)  1 story/stories")
    assert "  ✓ story: Fix bug  (#102)" in text


def test_missing_token_is_a_configuration_error(
    fake_client: type[FakeShortcutClient], plan: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = main_module.main(["create", "--file", str(plan)], stdout=io.StringIO())

    assert code == 2
    assert "SHORTCUT_API_TOKEN" in capsys.readouterr().err
    assert fake_client.instances == []


def test_bad_input_file_exits_2(
    fake_client: type[FakeShortcutClient], tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "plan.txt"
    path.write_text("name\n", encoding="utf-8")

    code = main_module.main(["--token", "t", "create", "--file", str(path)], stdout=io.StringIO())

    assert code == 2
    assert "Unsupported file extension" in capsys.readouterr().err
    assert fake_client.instances == []


def test_missing_template_exits_2(
    fake_client: type[FakeShortcutClient], plan: Path, tmp_path: Path
) -> None:
    code = main_module.main(
        ["--token", "t", "create", "--file", str(plan), "--template", str(tmp_path / "no.md")],
        stdout=io.StringIO(),
    )

    assert code == 2


def test_empty_input_exits_0_with_notice(
    fake_client: type[FakeShortcutClient], tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("objectives: []\n", encoding="utf-8")
    stdout = io.StringIO()

    code = main_module.main(["--token", "t", "create", "--file", str(path)], stdout=stdout)

    assert code == 0
    assert stdout.getvalue() == ""
    assert "No items found" in capsys.readouterr().err


def test_workspace_fetch_failure_exits_1(
    fake_client: type[FakeShortcutClient], plan: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    original_init = FakeShortcutClient.__init__

    def _init(self: FakeShortcutClient, **kwargs: Any) -> None:
        original_init(self, **kwargs)
        self.directory_error = NetworkFailure(attempts=6, cause=OSError("down"))

    monkeypatch.setattr(FakeShortcutClient, "__init__", _init)

    code = main_module.main(["--token", "t", "create", "--file", str(plan)], stdout=io.StringIO())

    assert code == 1
    client = fake_client.instances[0]
    assert client.submitted == []
    assert client.closed is True


def test_csv_requires_type_flag(fake_client: type[FakeShortcutClient], tmp_path: Path) -> None:
    path = tmp_path / "stories.csv"
    path.write_text("name\nA\n", encoding="utf-8")

    assert main_module.main(["--token", "t", "create", "-f", str(path)], stdout=io.StringIO()) == 2
    assert (
        main_module.main(
            ["--token", "t", "create", "-f", str(path), "--type", "story"], stdout=io.StringIO()
        )
        == 0
    )


def test_undecodable_input_file_exits_2(
    fake_client: type[FakeShortcutClient], tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    path = tmp_path / "plan.yaml"
    path.write_bytes(b"objectives:\n  - name: \xff\xfe\n")

    code = main_module.main(["--token", "t", "create", "--file", str(path)], stdout=io.StringIO())

    assert code == 2
    assert "Cannot read" in capsys.readouterr().err
    assert fake_client.instances == []


def test_undecodable_template_exits_2(
    fake_client: type[FakeShortcutClient], plan: Path, tmp_path: Path
) -> None:
    template = tmp_path / "latin1.md"
    template.write_bytes(b"\xff\xfe\xfa")

    code = main_module.main(
        ["--token", "t", "create", "--file", str(plan), "--template", str(template)],
        stdout=io.StringIO(),
    )

    assert code == 2
