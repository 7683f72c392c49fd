"""Tests for settings persistence and overrides."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from contextbridge.services.settings import Settings, SettingsStore


def test_defaults() -> None:
    settings = Settings()

    assert settings.port == 3000
    assert settings.ignore_files == []
    assert settings.share_diffs is True
    assert settings.share_diagnostics is True
    assert settings.ignore_match_mode == "mixed"


def test_unknown_match_mode_falls_back_to_mixed() -> None:
    assert Settings(ignore_match_mode="shouty").ignore_match_mode == "mixed"  # type: ignore[arg-type]


def test_single_ignore_pattern_string_becomes_list() -> None:
    assert Settings(ignore_files=".env").ignore_files == [".env"]  # type: ignore[arg-type]


def test_missing_file_loads_defaults(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "absent.json")

    assert store.load() == Settings()


def test_save_then_load_round_trip(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "nested" / "settings.json")
    original = Settings(port=4100, ignore_files=["secret"], share_diffs=False)

    path = store.save(original)

    assert json.loads(path.read_text(encoding="utf-8"))["version"] == 1
    assert store.load() == original
    assert not path.with_suffix(".tmp").exists()


@pytest.mark.parametrize("body", ["{not json", "[1, 2]"])
def test_corrupt_file_loads_defaults(tmp_path: Path, body: str) -> None:
    path = tmp_path / "settings.json"
    path.write_text(body, encoding="utf-8")

    assert SettingsStore(path).load() == Settings()


def test_unknown_keys_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"port": 5000, "theme": "dark"}), encoding="utf-8")

    assert SettingsStore(path).load().port == 5000


def test_cli_overrides_then_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = SettingsStore(tmp_path / "settings.json")
    monkeypatch.setenv("CONTEXTBRIDGE_PORT", "4500")
    monkeypatch.setenv("CONTEXTBRIDGE_SHARE_DIAGNOSTICS", "off")

    settings = store.load(overrides={"port": 4000, "host": "0.0.0.0", "bogus": 1, "workspace_root": None})

    assert settings.port == 4500
    assert settings.host == "0.0.0.0"
    assert settings.share_diagnostics is False
    assert settings.workspace_root is None


def test_invalid_integer_environment_is_ignored(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CONTEXTBRIDGE_PORT", "eighty")

    assert SettingsStore(tmp_path / "s.json").load().port == 3000
