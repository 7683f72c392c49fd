"""Unified diff parser producing line-level changes on the new-file axis."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Literal

__all__ = ["DiffChange", "ChangeType", "parse_unified_diff", "DIFF_UNAVAILABLE_TEXT"]

ChangeType = Literal["add", "delete", "modify"]

DIFF_UNAVAILABLE_TEXT = "File has changes (diff unavailable)"

_HUNK_HEADER_RE = re.compile(
    r"^@@\s+-(?P<old_start>\d+)(?:,(?P<old_len>\d+))?\s+\+(?P<new_start>\d+)(?:,(?P<new_len>\d+))?\s+@@"
)


@dataclass(slots=True, frozen=True)
class DiffChange:
    """One changed line of a working-tree diff.

    ``line_number`` is 1-indexed: for ``add`` it addresses the new file, for
    ``delete``/``modify`` it is the new-file line the removal sits before.
    """

    type: ChangeType
    line_number: int
    original_text: str | None = None
    new_text: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type, "lineNumber": self.line_number}
        if self.original_text is not None:
            payload["originalText"] = self.original_text
        if self.new_text is not None:
            payload["newText"] = self.new_text
        return payload

    @classmethod
    def unavailable(cls) -> "DiffChange":
        """Placeholder recorded for a file whose diff could not be produced."""

        return cls(type="modify", line_number=1, new_text=DIFF_UNAVAILABLE_TEXT)


def parse_unified_diff(diff_text: str) -> list[DiffChange]:
    """Scan ``diff_text`` and return its added/deleted lines in order.

    The cursor tracks the new file only: additions consume a line number,
    deletions consume none, context lines advance it without emitting. File
    headers (``---``/``+++``) and anything unrecognised are skipped, and an
    ``@@`` line that does not parse leaves the cursor where it was. Never
    raises; input that is not a string yields no changes.
    """

    if not isinstance(diff_text, str) or not diff_text:
        return []

    changes: list[DiffChange] = []
    cursor = 0
    for line in diff_text.split("\n"):
        if line.startswith("@@"):
            match = _HUNK_HEADER_RE.match(line)
            if match is not None:
                cursor = int(match.group("new_start"))
        elif line.startswith("+") and not line.startswith("+++"):
            changes.append(DiffChange(type="add", line_number=cursor, new_text=line[1:]))
            cursor += 1
        elif line.startswith("-") and not line.startswith("---"):
            changes.append(DiffChange(type="delete", line_number=cursor, original_text=line[1:]))
        elif line.startswith(" "):
            cursor += 1
    return changes
