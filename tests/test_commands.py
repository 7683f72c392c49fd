"""Tests for command dispatch."""

from __future__ import annotations

from pathlib import Path

import pytest

from contextbridge.services.commands import CommandExecutor, CommandRequest, CommandResult
from contextbridge.services.events import ContextChanged, Event, EventBus
from contextbridge.services.proposals import ChangeProposalEngine
from tests.helpers import ScriptedSurface, make_workspace


@pytest.fixture
def bus() -> EventBus[Event]:
    return EventBus()


@pytest.fixture
def events(bus: EventBus[Event]) -> list[ContextChanged]:
    received: list[ContextChanged] = []
    bus.subscribe(ContextChanged, received.append)
    return received


@pytest.fixture
def workspace(tmp_path: Path):
    return make_workspace(tmp_path, {"a.py": "x = 1\ny = 2\n", "b.txt": "b\n"})


@pytest.fixture
def surface() -> ScriptedSurface:
    return ScriptedSurface("Accept")


@pytest.fixture
def executor(workspace, surface, bus) -> CommandExecutor:
    engine = ChangeProposalEngine(workspace, surface, bus=bus)
    return CommandExecutor(workspace, engine, bus=bus)


async def _run(executor: CommandExecutor, command: str, *args, **options) -> CommandResult:
    return await executor.execute(CommandRequest(command, tuple(args), options))


# =============================================================================
# Dispatch
# =============================================================================


@pytest.mark.asyncio
async def test_unknown_command_returns_failure(executor: CommandExecutor) -> None:
    result = await _run(executor, "formatDisk")

    assert result.to_dict() == {
        "success": False,
        "error": "Unknown command: formatDisk",
        "message": "Failed to execute command: formatDisk",
    }


def test_executor_lists_supported_commands(executor: CommandExecutor) -> None:
    assert set(executor.commands) == {
        "openFile",
        "writeFile",
        "deleteFile",
        "selectText",
        "showNotification",
        "proposeChange",
        "acceptProposal",
        "rejectProposal",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("command", "args"),
    [
        ("openFile", ()),
        ("openFile", (42,)),
        ("writeFile", ("a.py",)),
        ("selectText", (0, 0, "1", 2)),
        ("selectText", (0, True, 1, 2)),
        ("showNotification", ()),
        ("acceptProposal", ()),
        ("proposeChange", ({"title": "t"},)),
    ],
)
async def test_malformed_arguments_become_failures(executor, command, args) -> None:
    result = await _run(executor, command, *args)

    assert result.success is False
    assert result.error


# =============================================================================
# Editor commands
# =============================================================================


@pytest.mark.asyncio
async def test_open_file_focuses_tab_and_publishes(executor, workspace, events, tmp_path) -> None:
    result = await _run(executor, "openFile", "a.py")

    assert result.success
    assert result.message == "File opened successfully: a.py"
    assert result.data == {"filePath": "a.py"}
    assert workspace.active_tab.name == "a.py"
    assert [event.reason for event in events] == ["openFile"]


@pytest.mark.asyncio
async def test_open_file_preserve_focus_keeps_active_tab(executor, workspace) -> None:
    await _run(executor, "openFile", "a.py")

    await _run(executor, "openFile", "b.txt", preserveFocus=True)

    assert workspace.active_tab.name == "a.py"
    assert len(list(workspace.iter_tabs())) == 2


@pytest.mark.asyncio
async def test_open_missing_file_fails(executor, events) -> None:
    result = await _run(executor, "openFile", "nope.py")

    assert result.success is False
    assert result.message == "Failed to open file: nope.py"
    assert events == []


@pytest.mark.asyncio
async def test_write_file_replaces_content_on_disk(executor, workspace, tmp_path) -> None:
    result = await _run(executor, "writeFile", "b.txt", "fresh\n")

    assert result.success
    assert (tmp_path / "b.txt").read_text(encoding="utf-8") == "fresh\n"
    assert workspace.document_for("b.txt").dirty is False


@pytest.mark.asyncio
async def test_delete_file_moves_it_away(executor, tmp_path, events) -> None:
    result = await _run(executor, "deleteFile", "b.txt")

    assert result.success
    assert result.message == "File deleted successfully: b.txt"
    assert not (tmp_path / "b.txt").exists()
    assert [event.reason for event in events] == ["deleteFile"]


@pytest.mark.asyncio
async def test_select_text_sets_selection_on_active_tab(executor, workspace) -> None:
    await _run(executor, "openFile", "a.py")

    result = await _run(executor, "selectText", 0, 4, 1, 1)

    assert result.success
    assert result.data == {"startLine": 0, "startChar": 4, "endLine": 1, "endChar": 1}
    assert workspace.active_tab.document.text_in(workspace.active_tab.document.selection) == "1\ny"


@pytest.mark.asyncio
async def test_select_text_without_editor_fails(executor) -> None:
    result = await _run(executor, "selectText", 0, 0, 0, 1)

    assert result.success is False
    assert result.error == "No active text editor found"
    assert result.message == "Failed to set text selection"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("args", "options", "level"),
    [
        (("hi",), {}, "info"),
        (("hi", "warning"), {}, "warning"),
        (("hi", "warning"), {"type": "error"}, "error"),
        (("hi",), {"type": "loud"}, "info"),
        (("hi",), {"type": ["error"]}, "info"),
    ],
)
async def test_show_notification_levels(executor, workspace, events, args, options, level) -> None:
    result = await executor.execute(CommandRequest("showNotification", args, options))

    assert result.success
    assert result.data == {"message": "hi", "type": level}
    assert workspace.notifications[-1].level == level
    assert events == []


# =============================================================================
# Proposal commands
# =============================================================================


@pytest.mark.asyncio
async def test_propose_change_applies_after_acceptance(executor, tmp_path, events) -> None:
    payload = {
        "title": "Rename",
        "filePath": str(tmp_path / "a.py"),
        "changes": [{"startLine": 2, "endLine": 2, "proposedContent": "z = 2"}],
    }

    result = await _run(executor, "proposeChange", payload)

    assert result.success
    assert result.message == "Change proposal applied: Rename"
    assert result.data["status"] == "applied"
    assert result.data["decision"] == "accept"
    assert (tmp_path / "a.py").read_text(encoding="utf-8") == "x = 1\nz = 2\n"
    assert [event.reason for event in events] == ["proposal.applied"]


@pytest.mark.asyncio
async def test_propose_change_rejected(executor, surface, tmp_path) -> None:
    surface.choice = "Reject"
    payload = {"title": "Nope", "filePath": str(tmp_path / "a.py"), "startLine": 1, "endLine": 1, "proposedContent": "q"}

    result = await _run(executor, "proposeChange", payload)

    assert result.success
    assert result.message == "Change proposal rejected: Nope"
    assert (tmp_path / "a.py").read_text(encoding="utf-8") == "x = 1\ny = 2\n"


@pytest.mark.asyncio
async def test_accept_unknown_proposal_fails(executor) -> None:
    result = await _run(executor, "acceptProposal", "missing")

    assert result.to_dict() == {
        "success": False,
        "error": "Proposal not found: missing",
        "message": "Failed to accept proposal: missing",
    }


@pytest.mark.asyncio
async def test_reject_unknown_proposal_fails(executor) -> None:
    result = await _run(executor, "rejectProposal", "missing")

    assert result.success is False
    assert result.message == "Failed to reject proposal: missing"
