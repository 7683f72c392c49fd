"""Shared test helpers and stub collaborators.

Import from here instead of redefining stubs in individual test modules.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Mapping, Sequence

from contextbridge.editor.workspace import DocumentWorkspace
from contextbridge.services.proposals import Proposal


def make_workspace(root: Path, files: Mapping[str, str] | None = None) -> DocumentWorkspace:
    """Create ``files`` under ``root`` and return a workspace rooted there."""

    for name, content in (files or {}).items():
        target = root / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    return DocumentWorkspace(root, trash_dir=root / ".trash")


class ScriptedSurface:
    """Review surface that answers every review with a fixed choice.

    Records what it was shown so tests can check the preview and that the
    scratch files are gone once the review ends.
    """

    def __init__(self, choice: str | None = "Accept", *, fail_with: Exception | None = None) -> None:
        self.choice = choice
        self.fail_with = fail_with
        self.shown: list[tuple[str, str, str]] = []
        self.shown_paths: list[Path] = []
        self.dismissed: list[str] = []
        self.resolved: list[tuple[str, str]] = []

    async def show_diff(self, proposal: Proposal, original: Path, proposed: Path) -> None:
        self.shown_paths.extend([original, proposed])
        if self.fail_with is not None:
            raise self.fail_with
        self.shown.append(
            (
                proposal.id,
                original.read_text(encoding="utf-8"),
                proposed.read_text(encoding="utf-8"),
            )
        )

    async def request_decision(
        self, proposal: Proposal, choices: Sequence[str] = ("Accept", "Reject")
    ) -> str | None:
        return self.choice

    def resolve(self, proposal_id: str, choice: str) -> bool:
        self.resolved.append((proposal_id, choice))
        return False

    def dismiss(self, proposal_id: str) -> bool:
        self.dismissed.append(proposal_id)
        return False


class FakeRepository:
    """In-memory repository; a diff value that is an exception is raised."""

    def __init__(self, root: Path, diffs: Mapping[Path, str | Exception]) -> None:
        self.root = root
        self._diffs = dict(diffs)

    async def working_tree_changes(self) -> list[Path]:
        return list(self._diffs)

    async def diff_with_head(self, path: Path) -> str:
        value = self._diffs[Path(path)]
        if isinstance(value, Exception):
            raise value
        return value


class FakeRepositoryProvider:
    def __init__(self, repositories: Sequence[FakeRepository] = (), *, error: Exception | None = None) -> None:
        self._repositories = list(repositories)
        self._error = error

    async def repositories(self) -> list[FakeRepository]:
        if self._error is not None:
            raise self._error
        return list(self._repositories)


async def wait_for(predicate, *, timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the running loop until it is truthy."""

    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)
