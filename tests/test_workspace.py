"""Unit tests for the headless document workspace."""

from __future__ import annotations

from pathlib import Path

import pytest

from contextbridge.editor.document_model import LineEdit, TextPosition
from contextbridge.editor.selection_gateway import SelectionGateway
from contextbridge.services.errors import CollaboratorFailure, InvalidRangeError
from tests.helpers import make_workspace


def test_open_document_tracks_tabs_and_active(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path, {"a.py": "print(1)\n", "b.md": "# b\n"})

    first = workspace.open_document("a.py")
    second = workspace.open_document("b.md")

    assert [tab.id for tab in workspace.iter_tabs()] == [first.id, second.id]
    assert workspace.active_tab_id == second.id
    assert first.document.metadata.language == "python"
    assert second.name == "b.md"


def test_reopening_focuses_existing_tab(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path, {"a.py": "", "b.py": ""})
    first = workspace.open_document("a.py")
    workspace.open_document("b.py")

    again = workspace.open_document(tmp_path / "a.py")

    assert again.id == first.id
    assert workspace.active_tab_id == first.id
    assert len(list(workspace.iter_tabs())) == 2


def test_open_missing_file_raises_collaborator_failure(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path)

    with pytest.raises(CollaboratorFailure):
        workspace.open_document("missing.txt")


def test_document_for_opens_in_background(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path, {"a.txt": "a", "b.txt": "b"})
    active = workspace.open_document("a.txt")

    document = workspace.document_for("b.txt")

    assert document.text == "b"
    assert workspace.active_tab_id == active.id
    assert [tab.name for tab in workspace.iter_tabs()] == ["a.txt"]

    promoted = workspace.open_document("b.txt")
    assert promoted.document is document


def test_close_active_tab_activates_neighbour(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path, {"a": "", "b": "", "c": ""})
    a = workspace.open_document("a")
    b = workspace.open_document("b")
    c = workspace.open_document("c")
    workspace.open_document("b")

    workspace.close_tab(b.id)

    assert workspace.active_tab_id == c.id
    workspace.close_tab(c.id)
    assert workspace.active_tab_id == a.id
    workspace.close_tab(a.id)
    assert workspace.active_tab is None


def test_apply_edits_is_all_or_nothing(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path, {"f.txt": "1\n2\n3\n"})
    edits = [LineEdit(1, 1, "two\n"), LineEdit(10, 12, "x\n")]

    with pytest.raises(InvalidRangeError):
        workspace.apply_edits("f.txt", edits)

    document = workspace.document_for("f.txt")
    assert document.text == "1\n2\n3\n"
    assert document.dirty is False


def test_save_writes_to_disk_and_clears_dirty(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path, {"f.txt": "old\n"})
    workspace.replace_text("f.txt", "new\n")

    saved = workspace.save("f.txt")

    assert saved.read_text(encoding="utf-8") == "new\n"
    assert workspace.document_for("f.txt").dirty is False


def test_peek_text_reads_without_loading(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path, {"p.txt": "peek\n"})

    assert workspace.peek_text("p.txt") == "peek\n"
    assert workspace.release("p.txt") is False
    assert list(workspace.iter_tabs()) == []


def test_save_keeps_line_endings_and_encoding(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path)
    target = tmp_path / "legacy.txt"
    target.write_bytes(b"caf\xe9\r\nold\r\n")

    document = workspace.document_for("legacy.txt")
    assert document.text == "caf\u00e9\nold\n"
    assert document.metadata.newline == "\r\n"

    workspace.replace_text("legacy.txt", "caf\u00e9\nnew\n")
    workspace.save("legacy.txt")

    assert target.read_bytes() == b"caf\xe9\r\nnew\r\n"
    assert workspace.release("legacy.txt") is False


def test_delete_file_moves_to_trash_and_closes_tab(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path, {"gone.txt": "bye"})
    tab = workspace.open_document("gone.txt")

    workspace.delete_file("gone.txt")

    assert not (tmp_path / "gone.txt").exists()
    assert list(workspace.iter_tabs()) == []
    trashed = list((tmp_path / ".trash").iterdir())
    assert len(trashed) == 1 and trashed[0].name.endswith("gone.txt")


def test_delete_missing_file_raises(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path)

    with pytest.raises(CollaboratorFailure):
        workspace.delete_file("nope.txt")


def test_set_selection_requires_active_tab(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path)

    with pytest.raises(CollaboratorFailure, match="No active text editor found"):
        workspace.set_selection(TextPosition(0, 0), TextPosition(0, 1))


def test_selection_gateway_reports_non_empty_selection(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path, {"s.txt": "hello\nworld\n"})
    workspace.open_document("s.txt")
    gateway = SelectionGateway(workspace)

    assert gateway.capture() is None

    workspace.set_selection(TextPosition(1, 3), TextPosition(0, 1))
    snapshot = gateway.capture()

    assert snapshot is not None
    assert snapshot.start == TextPosition(0, 1)
    assert snapshot.end == TextPosition(1, 3)
    assert snapshot.text == "ello\nwor"


def test_show_notification_records_level(tmp_path: Path) -> None:
    workspace = make_workspace(tmp_path)

    workspace.show_notification("careful", "warning")
    workspace.show_notification("odd", "shout")  # type: ignore[arg-type]

    assert [(item.message, item.level) for item in workspace.notifications] == [
        ("careful", "warning"),
        ("odd", "info"),
    ]
