"""FastAPI application exposing snapshots and commands over HTTP and WebSocket."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator, Coroutine
from typing import Any, Iterator

import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.websockets import WebSocketState

from ..services.commands import CommandExecutor, CommandRequest
from ..services.events import ContextChanged, EventBus, ReviewPresented
from ..services.proposals import ChangeProposalEngine
from ..services.settings import Settings
from ..services.snapshot import ContextSnapshotAssembler
from ..utils.logging import uvicorn_log_config
from .schemas import CommandBody, SocketMessage

LOGGER = logging.getLogger(__name__)

INVALID_COMMAND = {"error": "Invalid command format"}
INVALID_MESSAGE = {"error": "Invalid msg format"}
UNKNOWN_MESSAGE = {"error": "Unknown message type"}


class ConnectionRegistry:
    """Open WebSocket connections that receive pushed context."""

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()

    def add(self, websocket: WebSocket) -> None:
        self._connections.add(websocket)
        LOGGER.info("WebSocket connected (%d open)", len(self._connections))

    def discard(self, websocket: WebSocket) -> None:
        if websocket in self._connections:
            self._connections.discard(websocket)
            LOGGER.info("WebSocket disconnected (%d open)", len(self._connections))

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[WebSocket]:
        return iter(list(self._connections))

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Send ``message`` to every connected socket and return how many received it.

        Sockets still handshaking or already closing are skipped. A socket
        whose send fails is dropped from the registry.
        """

        delivered = 0
        for websocket in list(self._connections):
            if not _is_open(websocket):
                continue
            try:
                await websocket.send_json(message)
            except Exception as exc:
                LOGGER.warning("Dropping WebSocket after failed send: %s", exc)
                self._connections.discard(websocket)
                continue
            delivered += 1
        return delivered


def _is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state is WebSocketState.CONNECTED
        and websocket.application_state is WebSocketState.CONNECTED
    )


class BridgeServer:
    """Binds the snapshot assembler and command executor to both transports.

    The server listens on the event bus: :class:`ContextChanged` triggers one
    fresh snapshot pushed to every open socket, :class:`ReviewPresented` pushes
    the proposal preview so a remote reviewer can answer it.
    """

    def __init__(
        self,
        settings: Settings,
        assembler: ContextSnapshotAssembler,
        executor: CommandExecutor,
        engine: ChangeProposalEngine,
        *,
        bus: EventBus,
    ) -> None:
        self.settings = settings
        self.assembler = assembler
        self.executor = executor
        self.engine = engine
        self.registry = ConnectionRegistry()
        self._bus = bus
        self._tasks: set[asyncio.Task[Any]] = set()
        self._uvicorn: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        bus.subscribe(ContextChanged, self._on_context_changed)
        bus.subscribe(ReviewPresented, self._on_review_presented)
        self.app = create_app(self)

    # ------------------------------------------------------------------
    # Operations shared by both transports
    # ------------------------------------------------------------------
    async def get_snapshot(self) -> dict[str, Any]:
        snapshot = await self.assembler.capture(self.settings)
        return snapshot.to_dict()

    async def execute_command(self, request: CommandRequest) -> dict[str, Any]:
        result = await self.executor.execute(request)
        return result.to_dict()

    async def broadcast_context(self) -> int:
        if not len(self.registry):
            return 0
        data = await self.get_snapshot()
        return await self.registry.broadcast({"type": "context", "data": data})

    # ------------------------------------------------------------------
    # Event bus
    # ------------------------------------------------------------------
    def _on_context_changed(self, event: ContextChanged) -> None:
        LOGGER.debug("Context changed (%s); broadcasting", event.reason)
        self._spawn(self.broadcast_context())

    def _on_review_presented(self, event: ReviewPresented) -> None:
        message = {
            "type": "review",
            "data": {
                "proposalId": event.proposal_id,
                "title": event.title,
                "description": event.description,
                "filePath": event.file_path,
                "diff": event.diff,
            },
        }
        self._spawn(self.registry.broadcast(message))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any] | None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            LOGGER.debug("No running event loop; skipping push")
            return None
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def is_running(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    def _build_uvicorn(self) -> uvicorn.Server:
        config = uvicorn.Config(
            self.app,
            host=self.settings.host,
            port=self.settings.port,
            log_config=uvicorn_log_config(),
        )
        return uvicorn.Server(config)

    async def start(self) -> None:
        """Start serving in the background and return once the socket is bound."""

        if self.is_running:
            LOGGER.info("Bridge server already running")
            return
        self._uvicorn = self._build_uvicorn()
        self._serve_task = asyncio.create_task(self._uvicorn.serve())
        while not self._uvicorn.started:
            if self._serve_task.done():
                self._serve_task.result()
                raise RuntimeError("Bridge server exited during startup")
            await asyncio.sleep(0.05)
        LOGGER.info(
            "Bridge server listening on http://%s:%s", self.settings.host, self.settings.port
        )

    async def serve(self) -> None:
        """Serve in the foreground until uvicorn exits."""

        await self.start()
        if self._serve_task is not None:
            await self._serve_task

    async def stop(self) -> None:
        await self.engine.shutdown()
        if self._uvicorn is not None:
            self._uvicorn.should_exit = True
        if self._serve_task is not None:
            await self._serve_task
        for task in list(self._tasks):
            task.cancel()
        self._serve_task = None
        self._uvicorn = None
        LOGGER.info("Bridge server stopped")


def create_app(server: BridgeServer) -> FastAPI:
    @contextlib.asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await server.engine.shutdown()

    app = FastAPI(title="ContextBridge", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    _register_routes(app, server)
    return app


def _register_routes(app: FastAPI, server: BridgeServer) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return JSONResponse({"error": "Not found"}, status_code=404)
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "server": "running"}

    @app.get("/context")
    async def context() -> JSONResponse:
        try:
            data = await server.get_snapshot()
        except Exception:
            LOGGER.exception("Snapshot capture failed")
            return JSONResponse({"error": "Failed to get context"}, status_code=500)
        return JSONResponse(data)

    @app.post("/command")
    async def command(request: Request) -> JSONResponse:
        try:
            body = CommandBody.model_validate(await request.json())
        except (ValueError, ValidationError):
            return JSONResponse(INVALID_COMMAND, status_code=400)
        return JSONResponse(await server.execute_command(body.to_request()))

    @app.post("/propose-change")
    async def propose_change(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError:
            return JSONResponse(INVALID_COMMAND, status_code=400)
        result = await server.execute_command(
            CommandRequest(command="proposeChange", arguments=(payload,))
        )
        return JSONResponse(result)

    @app.websocket("/")
    async def socket(websocket: WebSocket) -> None:
        await websocket.accept()
        server.registry.add(websocket)
        pending: set[asyncio.Task[None]] = set()
        try:
            while True:
                raw = await websocket.receive_text()
                task = asyncio.create_task(_handle_message(server, websocket, raw))
                pending.add(task)
                task.add_done_callback(pending.discard)
        except WebSocketDisconnect:
            pass
        finally:
            server.registry.discard(websocket)
            for task in pending:
                task.cancel()


async def _handle_message(server: BridgeServer, websocket: WebSocket, raw: str) -> None:
    try:
        message = SocketMessage.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        await _send(websocket, INVALID_MESSAGE)
        return

    if message.type == "getContext":
        await _send(websocket, {"type": "context", "data": await server.get_snapshot()})
    elif message.type == "command":
        try:
            body = CommandBody.model_validate(message.command)
        except ValidationError:
            await _send(websocket, INVALID_COMMAND)
            return
        data = await server.execute_command(body.to_request())
        await _send(websocket, {"type": "commandResponse", "data": data})
    else:
        await _send(websocket, UNKNOWN_MESSAGE)


async def _send(websocket: WebSocket, payload: dict[str, Any]) -> None:
    if not _is_open(websocket):
        return
    try:
        await websocket.send_json(payload)
    except Exception as exc:
        LOGGER.debug("Reply dropped: %s", exc)


__all__ = ["BridgeServer", "ConnectionRegistry", "create_app"]
