"""Error taxonomy for bridge operations.

Every failure a command can hit is one of these classes. They are caught at
the command boundary and serialized into the ``{success: false, error,
message}`` response shape, so nothing propagates to the protocol layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class ErrorCode:
    """Machine-readable error identifiers carried in ``details``."""

    NOT_FOUND = "not_found"
    INVALID_RANGE = "invalid_range"
    COLLABORATOR_FAILURE = "collaborator_failure"
    PROTOCOL_ERROR = "protocol_error"
    UNSUPPORTED = "unsupported"


@dataclass
class BridgeError(Exception):
    """Base class for all bridge errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable description, surfaced as ``error`` on the wire.
        details: Additional structured information.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"code": self.error_code, "message": self.message}
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return self.message


@dataclass
class ProposalNotFoundError(BridgeError):
    """Raised when a proposal id is unknown or already resolved."""

    error_code: str = field(default=ErrorCode.NOT_FOUND)
    message: str = field(default="Proposal not found")
    details: dict[str, Any] = field(default_factory=dict)
    proposal_id: str = ""

    def __post_init__(self) -> None:
        if self.proposal_id:
            self.message = f"Proposal not found: {self.proposal_id}"
            self.details.setdefault("proposal_id", self.proposal_id)
        super().__post_init__()


@dataclass
class InvalidRangeError(BridgeError):
    """Raised when a region addresses lines outside the document.

    Line numbers are reported 1-indexed so the message matches what the
    proposal author wrote.
    """

    error_code: str = field(default=ErrorCode.INVALID_RANGE)
    message: str = field(default="Invalid line range")
    details: dict[str, Any] = field(default_factory=dict)
    start_line: int = 0
    end_line: int = 0
    line_count: int = 0

    def __post_init__(self) -> None:
        self.message = (
            f"Invalid line range {self.start_line}-{self.end_line} "
            f"(document has {self.line_count} lines)"
        )
        self.details.update(
            start_line=self.start_line,
            end_line=self.end_line,
            line_count=self.line_count,
        )
        super().__post_init__()


@dataclass
class CollaboratorFailure(BridgeError):
    """Raised when the editor host, VCS or diagnostics source fails."""

    error_code: str = field(default=ErrorCode.COLLABORATOR_FAILURE)
    message: str = field(default="Editor operation failed")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProtocolError(BridgeError):
    """Raised when a request body or socket message is not a valid command."""

    error_code: str = field(default=ErrorCode.PROTOCOL_ERROR)
    message: str = field(default="Invalid command format")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class UnsupportedCommandError(BridgeError):
    """Raised for a command name the executor does not recognise."""

    error_code: str = field(default=ErrorCode.UNSUPPORTED)
    message: str = field(default="Unknown command")
    details: dict[str, Any] = field(default_factory=dict)
    command: str = ""

    def __post_init__(self) -> None:
        self.message = f"Unknown command: {self.command}"
        self.details.setdefault("command", self.command)
        super().__post_init__()


__all__ = [
    "BridgeError",
    "CollaboratorFailure",
    "ErrorCode",
    "InvalidRangeError",
    "ProposalNotFoundError",
    "ProtocolError",
    "UnsupportedCommandError",
]
