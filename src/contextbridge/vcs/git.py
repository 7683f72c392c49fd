"""Git integration: working-tree changes and diffs against HEAD."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Protocol, Sequence

LOGGER = logging.getLogger(__name__)


class GitIntegrationError(RuntimeError):
    """Raised when a git command fails or git is unavailable."""


class Repository(Protocol):
    """What the snapshot assembler needs from one repository."""

    root: Path

    async def working_tree_changes(self) -> list[Path]:
        ...

    async def diff_with_head(self, path: Path) -> str:
        ...


class RepositoryProvider(Protocol):
    async def repositories(self) -> Sequence[Repository]:
        ...


async def _run_git(args: Sequence[str], cwd: Path, *, check: bool = True) -> str:
    """Run ``git`` with ``args`` in ``cwd`` and return its stdout."""

    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise GitIntegrationError(f"Unable to run git: {exc}") from exc
    stdout, stderr = await process.communicate()
    if check and process.returncode != 0:
        message = stderr.decode("utf-8", "replace").strip() or "Unknown git error"
        raise GitIntegrationError(f"git {' '.join(args)} failed: {message}")
    return stdout.decode("utf-8", "replace")


@dataclass(slots=True)
class GitRepository:
    """A working tree rooted at ``root``."""

    root: Path

    async def working_tree_changes(self) -> list[Path]:
        """Modified, added, deleted and untracked paths relative to HEAD, in git's order."""

        output = await _run_git(["status", "--porcelain=v1", "-z", "--untracked-files=all"], self.root)
        changes: list[Path] = []
        entries = output.split("\0")
        index = 0
        while index < len(entries):
            entry = entries[index]
            index += 1
            if len(entry) < 4:
                continue
            status, name = entry[:2], entry[3:]
            if "R" in status or "C" in status:
                # renames carry the source path as the next NUL-separated field
                index += 1
            changes.append(self.root / name)
        return changes

    async def diff_with_head(self, path: Path) -> str:
        return await _run_git(["diff", "HEAD", "--", str(path)], self.root)


class GitProvider:
    """Discovers the repositories containing the configured workspace roots."""

    def __init__(self, roots: Iterable[Path | str]) -> None:
        self._roots = [Path(root) for root in roots]
        self._cache: list[GitRepository] | None = None

    async def repositories(self) -> list[GitRepository]:
        if self._cache is not None:
            return list(self._cache)
        found: list[GitRepository] = []
        seen: set[Path] = set()
        for root in self._roots:
            try:
                top = (await _run_git(["rev-parse", "--show-toplevel"], root)).strip()
            except GitIntegrationError as exc:
                LOGGER.debug("No git repository at %s: %s", root, exc)
                continue
            repo_root = Path(top)
            if top and repo_root not in seen:
                seen.add(repo_root)
                found.append(GitRepository(repo_root))
        self._cache = found
        return list(found)


__all__ = [
    "GitIntegrationError",
    "GitProvider",
    "GitRepository",
    "Repository",
    "RepositoryProvider",
]
