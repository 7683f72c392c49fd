"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from contextbridge.services.settings import Settings


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep trash, logs and settings written by the code under test inside ``tmp_path``."""

    monkeypatch.setenv("CONTEXTBRIDGE_TRASH_DIR", str(tmp_path / "trash"))
    monkeypatch.setenv("CONTEXTBRIDGE_LOG_DIR", str(tmp_path / "logs"))
    for name in (
        "CONTEXTBRIDGE_PORT",
        "CONTEXTBRIDGE_HOST",
        "CONTEXTBRIDGE_SHARE_DIFFS",
        "CONTEXTBRIDGE_SHARE_DIAGNOSTICS",
        "CONTEXTBRIDGE_DEBUG_LOGGING",
        "CONTEXTBRIDGE_WORKSPACE_ROOT",
    ):
        monkeypatch.delenv(name, raising=False)
