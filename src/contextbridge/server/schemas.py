"""Request models for the bridge's HTTP and WebSocket surface."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..services.commands import CommandRequest


class CommandBody(BaseModel):
    """``{command, arguments?, options?}``; ``null`` lists and options count as empty."""

    model_config = ConfigDict(extra="ignore")

    command: str = Field(min_length=1)
    arguments: list[Any] | None = None
    options: dict[str, Any] | None = None

    def to_request(self) -> CommandRequest:
        return CommandRequest(
            command=self.command,
            arguments=tuple(self.arguments or ()),
            options=dict(self.options or {}),
        )


class SocketMessage(BaseModel):
    """Envelope of a client-to-server WebSocket frame."""

    model_config = ConfigDict(extra="ignore")

    type: str
    command: Any = None


__all__ = ["CommandBody", "SocketMessage"]
