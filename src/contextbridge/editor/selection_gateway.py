"""Facade exposing read-only selection snapshots for bridge clients."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .document_model import TextPosition
from .workspace import DocumentWorkspace


@dataclass(slots=True, frozen=True)
class SelectionSnapshot:
    """Read-only view of the active editor selection."""

    tab_id: str
    path: Path | None
    start: TextPosition
    end: TextPosition
    text: str


class SelectionSnapshotProvider(Protocol):
    """Protocol implemented by selection gateways consumed by the snapshot assembler."""

    def capture(self, *, tab_id: str | None = None) -> SelectionSnapshot | None:
        ...


@dataclass(slots=True)
class SelectionGateway(SelectionSnapshotProvider):
    """Reads the live selection of a workspace tab.

    Returns ``None`` when no tab is active or the selection is empty. Positions
    past the end of a line or the document are clamped, and a backwards
    selection is reported start-first.
    """

    workspace: DocumentWorkspace

    def capture(self, *, tab_id: str | None = None) -> SelectionSnapshot | None:
        tab = self.workspace.active_tab if tab_id is None else self.workspace.get_tab(tab_id)
        if tab is None:
            return None
        document = tab.document
        selection = document.selection
        if selection.is_empty:
            return None
        start, end = selection.start, selection.end
        if (end.line, end.character) < (start.line, start.character):
            start, end = end, start
        start = self._clamp(document.text, start)
        end = self._clamp(document.text, end)
        if start == end:
            return None
        return SelectionSnapshot(
            tab_id=tab.id,
            path=tab.path,
            start=start,
            end=end,
            text=document.text_in(selection),
        )

    @staticmethod
    def _clamp(text: str, position: TextPosition) -> TextPosition:
        lines = text.split("\n")
        line = max(0, min(position.line, len(lines) - 1))
        character = max(0, min(position.character, len(lines[line])))
        return TextPosition(line=line, character=character)


__all__ = [
    "SelectionGateway",
    "SelectionSnapshot",
    "SelectionSnapshotProvider",
]
