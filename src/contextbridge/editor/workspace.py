"""Headless editor host: open documents, tab order, selection and saves."""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, Dict, Iterator, List, Literal, Sequence

from ..services.errors import CollaboratorFailure
from ..utils import file_io
from .document_model import (
    DocumentMetadata,
    DocumentState,
    LineEdit,
    SelectionRange,
    TextPosition,
    apply_line_edits,
)

__all__ = ["DocumentTab", "DocumentWorkspace", "Notification", "NotificationLevel"]

LOGGER = logging.getLogger(__name__)

NotificationLevel = Literal["info", "warning", "error"]
_LOG_LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class DocumentTab:
    """An open document and its tab metadata."""

    id: str
    document: DocumentState
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def path(self) -> Path | None:
        return self.document.metadata.path

    @property
    def name(self) -> str:
        path = self.path
        return path.name if path is not None else "untitled"

    @property
    def dirty(self) -> bool:
        return self.document.dirty


@dataclass(slots=True, frozen=True)
class Notification:
    message: str
    level: NotificationLevel
    created_at: datetime = field(default_factory=_utcnow)


class DocumentWorkspace:
    """Filesystem-backed stand-in for an interactive editor.

    Documents are loaded into memory when opened and only written back on
    :meth:`save`. Relative paths resolve against ``root``. Edits go through
    :meth:`apply_edits`, which computes the complete new text before touching
    the live document so a failed batch leaves it unchanged.
    """

    def __init__(self, root: Path | str | None = None, *, trash_dir: Path | str | None = None) -> None:
        self._root = Path(root).expanduser().resolve() if root is not None else Path.cwd()
        self._trash_dir = Path(trash_dir) if trash_dir is not None else None
        self._tabs: Dict[str, DocumentTab] = {}
        self._background: Dict[Path, DocumentState] = {}
        self._order: List[str] = []
        self._active_tab_id: str | None = None
        self._notifications: Deque[Notification] = deque(maxlen=100)

    @property
    def root(self) -> Path:
        return self._root

    def resolve_path(self, path: Path | str) -> Path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = self._root / candidate
        return candidate.resolve()

    # ------------------------------------------------------------------
    # Tab lifecycle
    # ------------------------------------------------------------------
    def open_document(self, path: Path | str, *, make_active: bool = True) -> DocumentTab:
        """Open ``path`` (or focus its existing tab) and return the tab."""

        resolved = self.resolve_path(path)
        tab = self.find_tab_by_path(resolved)
        if tab is None:
            document = self._background.pop(resolved, None) or self._load(resolved)
            tab = DocumentTab(id=uuid.uuid4().hex, document=document)
            self._tabs[tab.id] = tab
            self._order.append(tab.id)
            LOGGER.debug("Opened %s in tab %s", resolved, tab.id)
        if make_active or self._active_tab_id is None:
            self._active_tab_id = tab.id
        return tab

    def close_tab(self, tab_id: str) -> DocumentTab:
        if tab_id not in self._tabs:
            raise KeyError(f"Unknown tab_id: {tab_id}")
        tab = self._tabs.pop(tab_id)
        index = self._order.index(tab_id)
        self._order.pop(index)
        if self._active_tab_id == tab_id:
            if self._order:
                self._active_tab_id = self._order[min(index, len(self._order) - 1)]
            else:
                self._active_tab_id = None
        return tab

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def active_tab_id(self) -> str | None:
        return self._active_tab_id

    @property
    def active_tab(self) -> DocumentTab | None:
        if self._active_tab_id is None:
            return None
        return self._tabs.get(self._active_tab_id)

    def require_active_tab(self) -> DocumentTab:
        tab = self.active_tab
        if tab is None:
            raise CollaboratorFailure(message="No active text editor found")
        return tab

    def iter_tabs(self) -> Iterator[DocumentTab]:
        for tab_id in self._order:
            yield self._tabs[tab_id]

    def get_tab(self, tab_id: str) -> DocumentTab:
        tab = self._tabs.get(tab_id)
        if tab is not None:
            return tab
        path_match = self.find_tab_by_path(tab_id)
        if path_match is not None:
            return path_match
        raise KeyError(f"Unknown tab_id: {tab_id}")

    def find_tab_by_path(self, path: Path | str) -> DocumentTab | None:
        resolved = self.resolve_path(path)
        for tab in self.iter_tabs():
            if tab.path == resolved:
                return tab
        return None

    def document_for(self, path: Path | str) -> DocumentState:
        """Return the live document for ``path``, loading it in the background if needed.

        Background documents are not tabs. They are held until they are saved,
        released or opened in a tab.
        """

        resolved = self.resolve_path(path)
        tab = self.find_tab_by_path(resolved)
        if tab is not None:
            return tab.document
        document = self._background.get(resolved)
        if document is None:
            document = self._load(resolved)
            self._background[resolved] = document
        return document

    def peek_text(self, path: Path | str) -> str:
        """Current text of ``path`` without loading it into the workspace."""

        resolved = self.resolve_path(path)
        tab = self.find_tab_by_path(resolved)
        if tab is not None:
            return tab.document.text
        document = self._background.get(resolved)
        if document is not None:
            return document.text
        return self._load(resolved).text

    def release(self, path: Path | str) -> bool:
        """Drop the background document for ``path``. Tabs are left alone."""

        return self._background.pop(self.resolve_path(path), None) is not None

    @property
    def notifications(self) -> Sequence[Notification]:
        return tuple(self._notifications)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def apply_edits(self, path: Path | str, edits: Sequence[LineEdit]) -> DocumentState:
        """Apply ``edits`` in the given order as one all-or-nothing batch."""

        document = self.document_for(path)
        updated = apply_line_edits(document.text, edits)
        document.update_text(updated)
        return document

    def replace_text(self, path: Path | str, text: str) -> DocumentState:
        document = self.document_for(path)
        document.update_text(text)
        return document

    def save(self, path: Path | str) -> Path:
        document = self.document_for(path)
        target = document.metadata.path
        if target is None:  # pragma: no cover - every workspace document has a path
            raise CollaboratorFailure(message="Cannot save a document without a path")
        try:
            file_io.write_text(
                target,
                document.text,
                encoding=document.metadata.encoding,
                newline=document.metadata.newline,
                bom=document.metadata.bom,
            )
        except (OSError, UnicodeEncodeError) as exc:
            raise CollaboratorFailure(message=f"Unable to save {target}: {exc}") from exc
        document.mark_saved()
        self._background.pop(target, None)
        LOGGER.debug("Saved %s (version %s)", target, document.version_id)
        return target

    def delete_file(self, path: Path | str, *, use_trash: bool = True) -> Path:
        """Close any tab showing ``path`` and remove the file from disk."""

        resolved = self.resolve_path(path)
        try:
            if use_trash:
                file_io.move_to_trash(resolved, trash_dir=self._trash_dir)
            else:
                resolved.unlink()
        except OSError as exc:
            raise CollaboratorFailure(message=f"Unable to delete {resolved}: {exc}") from exc
        self._background.pop(resolved, None)
        tab = self.find_tab_by_path(resolved)
        if tab is not None:
            self.close_tab(tab.id)
        return resolved

    def set_selection(self, start: TextPosition, end: TextPosition) -> SelectionRange:
        tab = self.require_active_tab()
        selection = SelectionRange(start=start, end=end)
        tab.document.selection = selection
        return selection

    def show_notification(self, message: str, level: NotificationLevel = "info") -> Notification:
        if level not in _LOG_LEVELS:
            level = "info"
        notification = Notification(message=message, level=level)
        self._notifications.append(notification)
        LOGGER.log(_LOG_LEVELS[level], "Notification: %s", message)
        return notification

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _load(resolved: Path) -> DocumentState:
        try:
            text, text_format = file_io.read_text_with_format(resolved)
        except (OSError, UnicodeDecodeError) as exc:
            raise CollaboratorFailure(message=f"Unable to open {resolved}: {exc}") from exc
        metadata = DocumentMetadata(
            path=resolved,
            language=file_io.detect_language(resolved),
            encoding=text_format.encoding,
            newline=text_format.newline,
            bom=text_format.bom,
        )
        return DocumentState(text=text, metadata=metadata)
