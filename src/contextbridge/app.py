"""Command-line entry point that wires the bridge together and serves it."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import (
    Any,
    Dict,
    Literal,
    Mapping,
    Optional,
    Sequence,
    TextIO,
    get_args,
    get_origin,
    get_type_hints,
)

from .editor.diagnostics import DiagnosticsCollection
from .editor.workspace import DocumentWorkspace
from .server.app import BridgeServer
from .services.commands import CommandExecutor
from .services.errors import CollaboratorFailure
from .services.events import EventBus
from .services.proposals import ChangeProposalEngine
from .services.review import DecisionBroker
from .services.settings import Settings, SettingsStore
from .services.snapshot import ContextSnapshotAssembler
from .utils import logging as logging_utils
from .vcs.git import GitProvider

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}
_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Bridge:
    """Every long-lived collaborator of one bridge instance."""

    settings: Settings
    bus: EventBus
    workspace: DocumentWorkspace
    diagnostics: DiagnosticsCollection
    broker: DecisionBroker
    engine: ChangeProposalEngine
    server: BridgeServer


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    log_path = logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging to %s (level=%s)", log_path, logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def build_bridge(settings: Settings, *, open_files: Sequence[str] = ()) -> Bridge:
    """Construct the workspace, review broker, engine and server for ``settings``."""

    bus = EventBus()
    workspace = DocumentWorkspace(settings.workspace_root)
    for path in open_files:
        try:
            workspace.open_document(path)
        except CollaboratorFailure as exc:
            _LOGGER.warning("Skipping %s: %s", path, exc)
    diagnostics = DiagnosticsCollection()
    broker = DecisionBroker(bus)
    engine = ChangeProposalEngine(workspace, broker, bus=bus)
    assembler = ContextSnapshotAssembler(
        workspace,
        diagnostics=diagnostics,
        repositories=GitProvider([workspace.root]),
    )
    executor = CommandExecutor(workspace, engine, bus=bus)
    server = BridgeServer(settings, assembler, executor, engine, bus=bus)
    return Bridge(
        settings=settings,
        bus=bus,
        workspace=workspace,
        diagnostics=diagnostics,
        broker=broker,
        engine=engine,
        server=server,
    )


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the ``contextbridge`` console script."""

    args = _parse_cli_args(argv)
    debug = _env_flag("CONTEXTBRIDGE_DEBUG")
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("CONTEXTBRIDGE_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc
    if args.port is not None:
        cli_overrides["port"] = args.port
    if args.root is not None:
        cli_overrides["workspace_root"] = args.root

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    bridge = build_bridge(settings, open_files=args.files)
    try:
        asyncio.run(_serve(bridge.server))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")


async def _serve(server: BridgeServer) -> None:
    try:
        await server.serve()
    finally:
        await server.stop()


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="contextbridge",
        description="Serve editor context and change proposals over HTTP and WebSocket.",
    )
    parser.add_argument("files", nargs="*", help="Files to open before serving.")
    parser.add_argument("--root", metavar="DIR", help="Workspace root (defaults to the cwd).")
    parser.add_argument("--port", type=int, help="Port to listen on.")
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.contextbridge/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override a persisted setting (repeatable).",
    )
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        key, sep, raw_value = entry.partition("=")
        key = key.strip()
        if not sep:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(type_hints.get(key, str), raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    """Convert ``raw_value`` to the field type; lists accept JSON or comma separation."""

    optional = type(None) in get_args(annotation)
    if optional and raw_value.lower() in {"none", "null", ""}:
        return None
    target = _resolve_annotation(annotation)
    if target is bool:
        return _parse_bool(raw_value)
    if target is int:
        return int(raw_value, 10)
    if target is list:
        if raw_value.startswith("["):
            try:
                return json.loads(raw_value)
            except json.JSONDecodeError as exc:
                raise ValueError("List overrides must be valid JSON arrays") from exc
        return [item.strip() for item in raw_value.split(",") if item.strip()]
    return raw_value


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin is list:
        return list
    if origin is Literal:
        return str
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return _resolve_annotation(args[0])


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    output = {
        "settings": asdict(settings),
        "meta": {
            "path": str(store.path),
            "cli_overrides": sorted(overrides),
            "environment_variables": sorted(
                name for name in os.environ if name.startswith("CONTEXTBRIDGE_")
            ),
        },
    }
    json.dump(output, destination, indent=2)
    destination.write("\n")


if __name__ == "__main__":  # pragma: no cover
    main()
