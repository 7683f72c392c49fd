"""Dataclasses representing live editor documents and line-based edits."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from ..services.errors import InvalidRangeError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class DocumentMetadata:
    """Metadata describing a loaded document."""

    path: Optional[Path] = None
    language: str = "plaintext"
    encoding: str = "utf-8"
    newline: str = "\n"
    bom: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True, frozen=True)
class TextPosition:
    """Zero-based line/character position."""

    line: int = 0
    character: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"line": self.line, "character": self.character}


@dataclass(slots=True)
class SelectionRange:
    """Selection expressed as line/character positions."""

    start: TextPosition = field(default_factory=TextPosition)
    end: TextPosition = field(default_factory=TextPosition)

    @property
    def is_empty(self) -> bool:
        return self.start == self.end


@dataclass(slots=True, frozen=True)
class LineEdit:
    """Whole-line replacement of the 0-indexed inclusive span ``[start_line, end_line]``."""

    start_line: int
    end_line: int
    replacement: str


@dataclass(slots=True)
class DocumentState:
    """Full state of one open document."""

    text: str = ""
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    selection: SelectionRange = field(default_factory=SelectionRange)
    dirty: bool = False
    version_id: int = 1

    @property
    def line_count(self) -> int:
        """Number of lines, counting the (possibly empty) line after a trailing newline."""

        return self.text.count("\n") + 1

    def line_start_offsets(self) -> tuple[int, ...]:
        return line_start_offsets(self.text)

    def offset_at(self, position: TextPosition) -> int:
        """Clamp ``position`` into the document and return its character offset."""

        offsets = self.line_start_offsets()
        line = max(0, min(position.line, len(offsets) - 1))
        line_end = offsets[line + 1] - 1 if line + 1 < len(offsets) else len(self.text)
        return min(offsets[line] + max(0, position.character), line_end)

    def text_in(self, selection: SelectionRange) -> str:
        start = self.offset_at(selection.start)
        end = self.offset_at(selection.end)
        if end < start:
            start, end = end, start
        return self.text[start:end]

    def update_text(self, new_text: str) -> None:
        """Replace the document text and mark it dirty."""

        self.text = new_text
        self.dirty = True
        self.metadata.updated_at = _utcnow()
        self.version_id += 1

    def mark_saved(self) -> None:
        self.dirty = False


def line_start_offsets(text: str) -> tuple[int, ...]:
    """Character offset of the first character of each line."""

    offsets = [0]
    cursor = text.find("\n")
    while cursor != -1:
        offsets.append(cursor + 1)
        cursor = text.find("\n", cursor + 1)
    return tuple(offsets)


def apply_line_edits(text: str, edits: Iterable[LineEdit]) -> str:
    """Apply ``edits`` to ``text`` one after another, in the order given.

    Each edit replaces whole lines: from column 0 of ``start_line`` up to
    column 0 of ``end_line + 1`` (or the end of the text when ``end_line`` is
    the last line) is swapped for ``replacement``. Every edit is checked
    against the text as it stands when that edit is reached, and any failure
    raises :class:`InvalidRangeError` before ``text`` is returned, so callers
    only ever see a fully-applied result.

    The order matters: an edit that changes the line count shifts every line
    below it. Callers that hold edits addressed against the original text must
    pass them bottom-up.
    """

    updated = text
    for edit in edits:
        offsets = line_start_offsets(updated)
        line_count = len(offsets)
        if not 0 <= edit.start_line <= edit.end_line < line_count:
            raise InvalidRangeError(
                start_line=edit.start_line + 1,
                end_line=edit.end_line + 1,
                line_count=line_count,
            )
        start = offsets[edit.start_line]
        end = offsets[edit.end_line + 1] if edit.end_line + 1 < line_count else len(updated)
        updated = updated[:start] + edit.replacement + updated[end:]
    return updated


__all__ = [
    "DocumentMetadata",
    "DocumentState",
    "LineEdit",
    "SelectionRange",
    "TextPosition",
    "apply_line_edits",
    "line_start_offsets",
]
