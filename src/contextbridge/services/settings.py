"""Bridge configuration and its JSON persistence."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Literal, Mapping

__all__ = [
    "IGNORE_MATCH_MODES",
    "IgnoreMatchMode",
    "Settings",
    "SettingsStore",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".contextbridge"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_ENV_OVERRIDES: Mapping[str, str] = {
    "CONTEXTBRIDGE_HOST": "host",
    "CONTEXTBRIDGE_WORKSPACE_ROOT": "workspace_root",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "CONTEXTBRIDGE_SHARE_DIFFS": "share_diffs",
    "CONTEXTBRIDGE_SHARE_DIAGNOSTICS": "share_diagnostics",
    "CONTEXTBRIDGE_DEBUG_LOGGING": "debug_logging",
}
_INT_ENV_OVERRIDES: Mapping[str, str] = {
    "CONTEXTBRIDGE_PORT": "port",
}
_TRUE_VALUES = {"1", "true", "yes", "on"}

IgnoreMatchMode = Literal["mixed", "sensitive", "insensitive"]
IGNORE_MATCH_MODES: tuple[str, ...] = ("mixed", "sensitive", "insensitive")


@dataclass(slots=True)
class Settings:
    """User-configurable bridge options.

    ``ignore_files`` holds substrings; any path containing one is left out of
    the context snapshot. ``ignore_match_mode`` picks the casing rule: in
    ``"mixed"`` mode the active file is matched case-insensitively and every
    other field case-sensitively.
    """

    port: int = 3000
    host: str = "127.0.0.1"
    ignore_files: list[str] = field(default_factory=list)
    share_diffs: bool = True
    share_diagnostics: bool = True
    ignore_match_mode: IgnoreMatchMode = "mixed"
    workspace_root: str | None = None
    debug_logging: bool = False

    def __post_init__(self) -> None:
        if self.ignore_match_mode not in IGNORE_MATCH_MODES:
            LOGGER.warning(
                "Unknown ignore_match_mode %r; falling back to 'mixed'", self.ignore_match_mode
            )
            self.ignore_match_mode = "mixed"
        if isinstance(self.ignore_files, str):
            self.ignore_files = [self.ignore_files]
        self.ignore_files = [str(pattern) for pattern in self.ignore_files if str(pattern)]


class SettingsStore:
    """Reads and writes :class:`Settings` as JSON."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, then layer CLI ``overrides`` and the environment on top."""

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data = _filter_fields(payload)
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")
        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Write ``settings`` through a temporary file so readers never see a partial payload."""

        payload = asdict(settings)
        payload["version"] = _SETTINGS_VERSION
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not hold a JSON object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str,
    ) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
        if not filtered:
            return settings
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
        return replace(settings, **filtered)

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _INT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = int(value, 10)
            except ValueError:
                LOGGER.warning("Environment override %s=%s is not a valid integer", env_name, value)
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}
