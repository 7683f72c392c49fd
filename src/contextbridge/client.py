"""Async client for a running bridge server."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable, Mapping, Sequence

import httpx
import websockets
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ClientSettings:
    """Where the server lives and how hard to try reaching it.

    ``request_timeout`` is ``None`` by default because ``proposeChange``
    returns only after a human decides.
    """

    host: str = "127.0.0.1"
    port: int = 3000
    request_timeout: float | None = None
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def ws_url(self) -> str:
        return f"ws://{self.host}:{self.port}/"


class BridgeClient:
    """HTTP helpers for every command plus a WebSocket listener.

    Only connection failures are retried: a request that never reached the
    server is safe to resend, one that did may already have changed files.
    """

    def __init__(
        self,
        settings: ClientSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or ClientSettings()
        self._client = client or httpx.AsyncClient(
            base_url=self._settings.base_url,
            timeout=self._settings.request_timeout,
        )

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def __aenter__(self) -> "BridgeClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------
    async def health(self) -> dict[str, Any]:
        return await self._request("GET", "/health")

    async def get_context(self) -> dict[str, Any]:
        return await self._request("GET", "/context")

    async def execute_command(
        self,
        command: str,
        arguments: Sequence[Any] = (),
        options: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        body = {"command": command, "arguments": list(arguments), "options": dict(options or {})}
        return await self._request("POST", "/command", json=body)

    async def open_file(self, path: str, **options: Any) -> dict[str, Any]:
        return await self.execute_command("openFile", [path], options)

    async def write_file(self, path: str, content: str) -> dict[str, Any]:
        return await self.execute_command("writeFile", [path, content])

    async def delete_file(self, path: str) -> dict[str, Any]:
        return await self.execute_command("deleteFile", [path])

    async def select_text(
        self, start_line: int, start_char: int, end_line: int, end_char: int
    ) -> dict[str, Any]:
        return await self.execute_command(
            "selectText", [start_line, start_char, end_line, end_char]
        )

    async def show_notification(self, message: str, level: str = "info") -> dict[str, Any]:
        return await self.execute_command("showNotification", [message], {"type": level})

    async def propose_change(
        self,
        title: str,
        file_path: str,
        changes: Iterable[Mapping[str, Any]],
        *,
        description: str = "",
    ) -> dict[str, Any]:
        """Submit a proposal and wait for the reviewer's decision."""

        proposal = {
            "title": title,
            "description": description,
            "filePath": file_path,
            "changes": [dict(change) for change in changes],
        }
        return await self.execute_command("proposeChange", [proposal])

    async def accept_proposal(self, proposal_id: str) -> dict[str, Any]:
        return await self.execute_command("acceptProposal", [proposal_id])

    async def reject_proposal(self, proposal_id: str) -> dict[str, Any]:
        return await self.execute_command("rejectProposal", [proposal_id])

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        async for attempt in self._retrying():
            with attempt:
                response = await self._client.request(method, url, **kwargs)
        response.raise_for_status()
        return response.json()

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
        )

    # ------------------------------------------------------------------
    # WebSocket
    # ------------------------------------------------------------------
    async def listen(self) -> AsyncIterator[dict[str, Any]]:
        """Yield every message pushed by the server, starting with the current context."""

        async with websockets.connect(self._settings.ws_url) as socket:
            await socket.send(json.dumps({"type": "getContext"}))
            async for raw in socket:
                try:
                    message = json.loads(raw)
                except ValueError:
                    LOGGER.warning("Ignoring non-JSON frame from %s", self._settings.ws_url)
                    continue
                yield message

    async def request_context(self) -> dict[str, Any]:
        """Fetch one snapshot over the socket."""

        return await self._socket_exchange({"type": "getContext"}, "context")

    async def socket_command(
        self,
        command: str,
        arguments: Sequence[Any] = (),
        options: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        message = {
            "type": "command",
            "command": {
                "command": command,
                "arguments": list(arguments),
                "options": dict(options or {}),
            },
        }
        return await self._socket_exchange(message, "commandResponse")

    async def _socket_exchange(self, message: Mapping[str, Any], reply_type: str) -> dict[str, Any]:
        async with websockets.connect(self._settings.ws_url) as socket:
            await socket.send(json.dumps(message))
            async for raw in socket:
                reply = json.loads(raw)
                if "error" in reply and "type" not in reply:
                    raise ValueError(reply["error"])
                if reply.get("type") == reply_type:
                    return reply["data"]
        raise ConnectionError("Socket closed before a reply arrived")


__all__ = ["BridgeClient", "ClientSettings"]
