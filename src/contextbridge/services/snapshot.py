"""Point-in-time aggregation of editor and workspace state."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Sequence

from ..documents.unified_diff import DiffChange, parse_unified_diff
from ..editor.diagnostics import Diagnostic, DiagnosticsCollection
from ..editor.selection_gateway import SelectionGateway, SelectionSnapshotProvider
from ..editor.workspace import DocumentWorkspace
from ..utils.file_io import detect_language
from ..vcs.git import Repository, RepositoryProvider
from .settings import Settings

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ActiveFileInfo:
    path: str
    name: str
    language: str
    content: str
    line_count: int
    is_dirty: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "language": self.language,
            "content": self.content,
            "lineCount": self.line_count,
            "isDirty": self.is_dirty,
        }


@dataclass(slots=True, frozen=True)
class TextSelectionInfo:
    """Non-empty selection in the active file, 0-indexed as the host reports it."""

    start_line: int
    end_line: int
    start_character: int
    end_character: int
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "startLine": self.start_line,
            "endLine": self.end_line,
            "startCharacter": self.start_character,
            "endCharacter": self.end_character,
            "text": self.text,
            "range": {
                "start": {"line": self.start_line, "character": self.start_character},
                "end": {"line": self.end_line, "character": self.end_character},
            },
        }


@dataclass(slots=True, frozen=True)
class OpenTabInfo:
    path: str
    name: str
    language: str
    is_active: bool
    is_dirty: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "name": self.name,
            "language": self.language,
            "isActive": self.is_active,
            "isDirty": self.is_dirty,
        }


@dataclass(slots=True, frozen=True)
class DiffInfo:
    file_path: str
    file_name: str
    changes: tuple[DiffChange, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "filePath": self.file_path,
            "fileName": self.file_name,
            "changes": [change.to_dict() for change in self.changes],
        }


@dataclass(slots=True, frozen=True)
class FileDiagnostics:
    file_path: str
    file_name: str
    diagnostics: tuple[Diagnostic, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "filePath": self.file_path,
            "fileName": self.file_name,
            "diagnostics": [diagnostic.to_dict() for diagnostic in self.diagnostics],
        }


@dataclass(slots=True, frozen=True)
class ContextSnapshot:
    """Immutable view of the editing session at ``timestamp`` (epoch milliseconds).

    ``diffs`` is ``None`` when diff sharing is off or no repository exists, and
    ``diagnostics`` is ``None`` when diagnostics sharing is off. Both are empty
    lists when sharing is on and there is simply nothing to report.
    """

    active_file: ActiveFileInfo | None = None
    text_selection: TextSelectionInfo | None = None
    open_tabs: tuple[OpenTabInfo, ...] = ()
    diffs: tuple[DiffInfo, ...] | None = None
    diagnostics: tuple[FileDiagnostics, ...] | None = None
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> dict[str, Any]:
        return {
            "activeFile": self.active_file.to_dict() if self.active_file else None,
            "textSelection": self.text_selection.to_dict() if self.text_selection else None,
            "openTabs": [tab.to_dict() for tab in self.open_tabs],
            "diffs": None if self.diffs is None else [diff.to_dict() for diff in self.diffs],
            "diagnostics": (
                None
                if self.diagnostics is None
                else [entry.to_dict() for entry in self.diagnostics]
            ),
            "timestamp": self.timestamp,
        }


class IgnoreMatcher:
    """Substring filter over paths built from ``Settings.ignore_files``."""

    __slots__ = ("_patterns", "_mode")

    def __init__(self, patterns: Iterable[str], mode: str = "mixed") -> None:
        self._patterns = tuple(pattern for pattern in patterns if pattern)
        self._mode = mode

    @classmethod
    def from_settings(cls, settings: Settings) -> "IgnoreMatcher":
        return cls(settings.ignore_files, settings.ignore_match_mode)

    def ignores_active(self, path: str) -> bool:
        return self._matches(path, case_sensitive=self._mode == "sensitive")

    def ignores(self, path: str) -> bool:
        return self._matches(path, case_sensitive=self._mode != "insensitive")

    def _matches(self, path: str, *, case_sensitive: bool) -> bool:
        if not self._patterns:
            return False
        if case_sensitive:
            return any(pattern in path for pattern in self._patterns)
        lowered = path.lower()
        return any(pattern.lower() in lowered for pattern in self._patterns)


class ContextSnapshotAssembler:
    """Builds a fresh :class:`ContextSnapshot` from the live collaborators.

    Every field is computed on its own. A collaborator failure is logged and
    degrades only the field it feeds, so :meth:`capture` always returns.
    """

    def __init__(
        self,
        workspace: DocumentWorkspace,
        *,
        selection: SelectionSnapshotProvider | None = None,
        diagnostics: DiagnosticsCollection | None = None,
        repositories: RepositoryProvider | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._workspace = workspace
        self._selection = selection or SelectionGateway(workspace)
        self._diagnostics = diagnostics
        self._repositories = repositories
        self._clock = clock

    async def capture(self, settings: Settings) -> ContextSnapshot:
        matcher = IgnoreMatcher.from_settings(settings)
        active_file, active_ignored = self._safe(self._active_file, matcher, default=(None, False))
        text_selection = None if active_ignored else self._safe(self._text_selection, default=None)
        open_tabs = self._safe(self._open_tabs, matcher, default=())
        diffs = await self._diffs(settings, matcher)
        diagnostics = (
            self._safe(self._file_diagnostics, matcher, default=())
            if settings.share_diagnostics
            else None
        )
        return ContextSnapshot(
            active_file=active_file,
            text_selection=text_selection,
            open_tabs=open_tabs,
            diffs=diffs,
            diagnostics=diagnostics,
            timestamp=int(self._clock() * 1000),
        )

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------
    def _active_file(self, matcher: IgnoreMatcher) -> tuple[ActiveFileInfo | None, bool]:
        tab = self._workspace.active_tab
        if tab is None:
            return None, False
        path = str(tab.path) if tab.path is not None else tab.name
        if matcher.ignores_active(path):
            return None, True
        document = tab.document
        info = ActiveFileInfo(
            path=path,
            name=tab.name,
            language=document.metadata.language,
            content=document.text,
            line_count=document.line_count,
            is_dirty=document.dirty,
        )
        return info, False

    def _text_selection(self) -> TextSelectionInfo | None:
        snapshot = self._selection.capture()
        if snapshot is None:
            return None
        return TextSelectionInfo(
            start_line=snapshot.start.line,
            end_line=snapshot.end.line,
            start_character=snapshot.start.character,
            end_character=snapshot.end.character,
            text=snapshot.text,
        )

    def _open_tabs(self, matcher: IgnoreMatcher) -> tuple[OpenTabInfo, ...]:
        active_id = self._workspace.active_tab_id
        tabs: list[OpenTabInfo] = []
        for tab in self._workspace.iter_tabs():
            path = str(tab.path) if tab.path is not None else tab.name
            if matcher.ignores(path):
                continue
            tabs.append(
                OpenTabInfo(
                    path=path,
                    name=tab.name,
                    language=detect_language(tab.path),
                    is_active=tab.id == active_id,
                    is_dirty=tab.dirty,
                )
            )
        return tuple(tabs)

    async def _diffs(self, settings: Settings, matcher: IgnoreMatcher) -> tuple[DiffInfo, ...] | None:
        if not settings.share_diffs or self._repositories is None:
            return None
        try:
            repositories = await self._repositories.repositories()
        except Exception:
            LOGGER.exception("Unable to enumerate repositories")
            return None
        if not repositories:
            return None

        diffs: list[DiffInfo] = []
        for repository in repositories:
            try:
                changed = await repository.working_tree_changes()
            except Exception:
                LOGGER.exception("Unable to list working tree changes in %s", repository.root)
                continue
            for path in changed:
                file_path = str(path)
                if matcher.ignores(file_path):
                    continue
                diffs.append(await self._diff_for(repository, Path(path)))
        return tuple(diffs)

    async def _diff_for(self, repository: Repository, path: Path) -> DiffInfo:
        try:
            diff_text = await repository.diff_with_head(path)
        except Exception as exc:
            LOGGER.warning("Diff unavailable for %s: %s", path, exc)
            changes: Sequence[DiffChange] = (DiffChange.unavailable(),)
        else:
            changes = parse_unified_diff(diff_text)
        return DiffInfo(file_path=str(path), file_name=path.name, changes=tuple(changes))

    def _file_diagnostics(self, matcher: IgnoreMatcher) -> tuple[FileDiagnostics, ...]:
        if self._diagnostics is None:
            return ()
        entries: list[FileDiagnostics] = []
        for path, diagnostics in self._diagnostics.items():
            file_path = str(path)
            if matcher.ignores(file_path):
                continue
            entries.append(
                FileDiagnostics(
                    file_path=file_path,
                    file_name=path.name or "untitled",
                    diagnostics=diagnostics,
                )
            )
        return tuple(entries)

    @staticmethod
    def _safe(builder: Callable[..., Any], *args: Any, default: Any) -> Any:
        try:
            return builder(*args)
        except Exception:
            LOGGER.exception("Snapshot field %s failed; degrading", builder.__name__)
            return default


__all__ = [
    "ActiveFileInfo",
    "ContextSnapshot",
    "ContextSnapshotAssembler",
    "DiffInfo",
    "FileDiagnostics",
    "IgnoreMatcher",
    "OpenTabInfo",
    "TextSelectionInfo",
]
