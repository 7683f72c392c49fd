"""Command dispatch shared by the HTTP and WebSocket transports."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Mapping, Sequence

from ..editor.document_model import TextPosition
from ..editor.workspace import DocumentWorkspace
from .errors import BridgeError, ProtocolError, UnsupportedCommandError
from .events import ContextChanged, EventBus
from .proposals import ChangeProposalEngine, ProposalOutcome, parse_proposal_request

LOGGER = logging.getLogger(__name__)

_NOTIFICATION_LEVELS = {"info", "warning", "error"}
_FAILURE_MESSAGES: Mapping[str, str] = {
    "openFile": "Failed to open file: {0}",
    "writeFile": "Failed to write file: {0}",
    "deleteFile": "Failed to delete file: {0}",
    "selectText": "Failed to set text selection",
    "showNotification": "Failed to show notification: {0}",
    "proposeChange": "Failed to process change proposal",
    "acceptProposal": "Failed to accept proposal: {0}",
    "rejectProposal": "Failed to reject proposal: {0}",
}


@dataclass(slots=True, frozen=True)
class CommandRequest:
    command: str
    arguments: tuple[Any, ...] = ()
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class CommandResult:
    """The ``{success, data?, error?, message}`` response body."""

    success: bool
    message: str
    data: Any = None
    error: str | None = None

    @classmethod
    def failure(cls, error: str, message: str) -> "CommandResult":
        return cls(success=False, message=message, error=error)

    @classmethod
    def from_outcome(cls, outcome: ProposalOutcome) -> "CommandResult":
        return cls(
            success=outcome.success,
            message=outcome.message,
            data=outcome.to_dict(),
            error=outcome.error,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            payload["data"] = self.data
        if self.error is not None:
            payload["error"] = self.error
        payload["message"] = self.message
        return payload


Handler = Callable[[Sequence[Any], Mapping[str, Any]], Awaitable[CommandResult]]


class CommandExecutor:
    """Runs editor and proposal commands and converts every failure into a result.

    Commands that change editor state publish :class:`ContextChanged` so
    observers get a fresh snapshot. Proposal transitions publish their own
    events from the engine.
    """

    def __init__(
        self,
        workspace: DocumentWorkspace,
        engine: ChangeProposalEngine,
        *,
        bus: EventBus | None = None,
    ) -> None:
        self._workspace = workspace
        self._engine = engine
        self._bus = bus
        self._handlers: Dict[str, Handler] = {
            "openFile": self._open_file,
            "writeFile": self._write_file,
            "deleteFile": self._delete_file,
            "selectText": self._select_text,
            "showNotification": self._show_notification,
            "proposeChange": self._propose_change,
            "acceptProposal": self._accept_proposal,
            "rejectProposal": self._reject_proposal,
        }

    @property
    def commands(self) -> tuple[str, ...]:
        return tuple(self._handlers)

    async def execute(self, request: CommandRequest) -> CommandResult:
        name = request.command
        handler = self._handlers.get(name)
        if handler is None:
            error = UnsupportedCommandError(command=name)
            LOGGER.warning("%s", error)
            return CommandResult.failure(error.message, f"Failed to execute command: {name}")

        LOGGER.debug("Executing command %s", name)
        try:
            return await handler(request.arguments, request.options)
        except (BridgeError, OSError) as exc:
            LOGGER.warning("Command %s failed: %s", name, exc)
            first = request.arguments[0] if request.arguments else ""
            return CommandResult.failure(str(exc), _FAILURE_MESSAGES[name].format(first))

    # ------------------------------------------------------------------
    # Editor commands
    # ------------------------------------------------------------------
    async def _open_file(self, args: Sequence[Any], options: Mapping[str, Any]) -> CommandResult:
        path = _string_arg(args, 0, "filePath")
        make_active = not bool(options.get("preserveFocus", False))
        tab = self._workspace.open_document(path, make_active=make_active)
        self._changed("openFile", tab.path)
        return CommandResult(
            success=True,
            data={"filePath": path},
            message=f"File opened successfully: {path}",
        )

    async def _write_file(self, args: Sequence[Any], options: Mapping[str, Any]) -> CommandResult:
        path = _string_arg(args, 0, "filePath")
        content = _string_arg(args, 1, "content")
        self._workspace.replace_text(path, content)
        saved = self._workspace.save(path)
        self._changed("writeFile", saved)
        return CommandResult(
            success=True,
            data={"filePath": path},
            message=f"File written successfully: {path}",
        )

    async def _delete_file(self, args: Sequence[Any], options: Mapping[str, Any]) -> CommandResult:
        path = _string_arg(args, 0, "filePath")
        removed = self._workspace.delete_file(path, use_trash=True)
        self._changed("deleteFile", removed)
        return CommandResult(
            success=True,
            data={"filePath": path},
            message=f"File deleted successfully: {path}",
        )

    async def _select_text(self, args: Sequence[Any], options: Mapping[str, Any]) -> CommandResult:
        start_line = _int_arg(args, 0, "startLine")
        start_char = _int_arg(args, 1, "startChar")
        end_line = _int_arg(args, 2, "endLine")
        end_char = _int_arg(args, 3, "endChar")
        self._workspace.set_selection(
            TextPosition(start_line, start_char), TextPosition(end_line, end_char)
        )
        self._changed("selectText", self._workspace.require_active_tab().path)
        return CommandResult(
            success=True,
            data={
                "startLine": start_line,
                "startChar": start_char,
                "endLine": end_line,
                "endChar": end_char,
            },
            message="Text selection set successfully",
        )

    async def _show_notification(
        self, args: Sequence[Any], options: Mapping[str, Any]
    ) -> CommandResult:
        message = _string_arg(args, 0, "message")
        level = options.get("type")
        if not level and len(args) > 1:
            level = args[1]
        if not isinstance(level, str) or level not in _NOTIFICATION_LEVELS:
            level = "info"
        self._workspace.show_notification(message, level)
        return CommandResult(
            success=True,
            data={"message": message, "type": level},
            message=f"Notification shown: {message}",
        )

    # ------------------------------------------------------------------
    # Proposal commands
    # ------------------------------------------------------------------
    async def _propose_change(
        self, args: Sequence[Any], options: Mapping[str, Any]
    ) -> CommandResult:
        request = parse_proposal_request(args[0] if args else None)
        outcome = await self._engine.propose(
            request.title, request.description, request.file_path, request.regions
        )
        return CommandResult.from_outcome(outcome)

    async def _accept_proposal(
        self, args: Sequence[Any], options: Mapping[str, Any]
    ) -> CommandResult:
        outcome = await self._engine.accept(_string_arg(args, 0, "proposalId"))
        return CommandResult.from_outcome(outcome)

    async def _reject_proposal(
        self, args: Sequence[Any], options: Mapping[str, Any]
    ) -> CommandResult:
        outcome = await self._engine.reject(_string_arg(args, 0, "proposalId"))
        return CommandResult.from_outcome(outcome)

    def _changed(self, reason: str, path: Any) -> None:
        if self._bus is not None:
            self._bus.publish(
                ContextChanged(reason=reason, file_path=str(path) if path is not None else None)
            )


def _string_arg(args: Sequence[Any], index: int, name: str) -> str:
    value = args[index] if index < len(args) else None
    if not isinstance(value, str):
        raise ProtocolError(message=f"Argument '{name}' must be a string")
    return value


def _int_arg(args: Sequence[Any], index: int, name: str) -> int:
    value = args[index] if index < len(args) else None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProtocolError(message=f"Argument '{name}' must be an integer")
    return value


__all__ = ["CommandExecutor", "CommandRequest", "CommandResult"]
