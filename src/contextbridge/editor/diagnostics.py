"""Per-file diagnostics registry fed by linters or language servers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Sequence

from .document_model import TextPosition

LOGGER = logging.getLogger(__name__)


class DiagnosticSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"

    @classmethod
    def coerce(cls, value: Any) -> "DiagnosticSeverity":
        """Accept enum members, names, or LSP-style integers (1=error .. 4=hint)."""

        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            ordered = (cls.ERROR, cls.WARNING, cls.INFO, cls.HINT)
            return ordered[value - 1] if 1 <= value <= len(ordered) else cls.HINT
        text = str(value or "").strip().lower()
        if text in {"information", "informational"}:
            return cls.INFO
        try:
            return cls(text)
        except ValueError:
            return cls.HINT


@dataclass(slots=True, frozen=True)
class Diagnostic:
    """A single problem reported against a range of a file."""

    message: str
    severity: DiagnosticSeverity = DiagnosticSeverity.ERROR
    start: TextPosition = field(default_factory=TextPosition)
    end: TextPosition = field(default_factory=TextPosition)
    source: str | None = None
    code: str | int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "severity", DiagnosticSeverity.coerce(self.severity))

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "severity": self.severity.value,
            "range": {"start": self.start.to_dict(), "end": self.end.to_dict()},
            "source": self.source,
            "code": self.code,
        }


class DiagnosticsCollection:
    """Ordered mapping of file path to its current diagnostics.

    Enumeration follows the order files were first published; republishing a
    file replaces its entries in place, publishing an empty list removes it.
    """

    def __init__(self) -> None:
        self._entries: dict[Path, tuple[Diagnostic, ...]] = {}

    def publish(self, path: Path | str, diagnostics: Sequence[Diagnostic]) -> None:
        key = Path(path)
        if not diagnostics:
            self._entries.pop(key, None)
            return
        self._entries[key] = tuple(diagnostics)
        LOGGER.debug("Published %d diagnostic(s) for %s", len(diagnostics), key)

    def clear(self, path: Path | str | None = None) -> None:
        if path is None:
            self._entries.clear()
        else:
            self._entries.pop(Path(path), None)

    def get(self, path: Path | str) -> tuple[Diagnostic, ...]:
        return self._entries.get(Path(path), ())

    def items(self) -> Iterator[tuple[Path, tuple[Diagnostic, ...]]]:
        yield from list(self._entries.items())

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["Diagnostic", "DiagnosticSeverity", "DiagnosticsCollection"]
