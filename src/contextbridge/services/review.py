"""Human review of change proposals.

The engine talks to a :class:`ReviewSurface`: it shows the original and
proposed texts side by side, then waits for one of the offered choices.
:class:`DecisionBroker` is the headless surface used by the server. Each
pending review is an ``asyncio.Future`` that a client, a command or shutdown
resolves; resolving with ``None`` means the reviewer dismissed it.
"""

from __future__ import annotations

import asyncio
import difflib
import enum
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Protocol, Sequence

from ..utils import file_io
from .events import EventBus, ReviewPresented

if TYPE_CHECKING:  # pragma: no cover - import cycle guard
    from .proposals import Proposal

LOGGER = logging.getLogger(__name__)

ACCEPT_CHOICE = "Accept"
REJECT_CHOICE = "Reject"
DEFAULT_CHOICES: tuple[str, ...] = (ACCEPT_CHOICE, REJECT_CHOICE)


class ReviewDecision(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    DISMISSED = "dismissed"

    @classmethod
    def from_choice(cls, choice: str | None) -> "ReviewDecision":
        if choice is None:
            return cls.DISMISSED
        normalized = choice.strip().lower()
        if normalized == ACCEPT_CHOICE.lower():
            return cls.ACCEPT
        if normalized == REJECT_CHOICE.lower():
            return cls.REJECT
        return cls.DISMISSED


class ReviewSurface(Protocol):
    """Where proposals are shown to a human."""

    async def show_diff(self, proposal: "Proposal", original: Path, proposed: Path) -> None:
        ...

    async def request_decision(
        self, proposal: "Proposal", choices: Sequence[str] = DEFAULT_CHOICES
    ) -> str | None:
        ...

    def resolve(self, proposal_id: str, choice: str) -> bool:
        ...

    def dismiss(self, proposal_id: str) -> bool:
        ...


class DecisionBroker:
    """Headless :class:`ReviewSurface` resolved by remote clients."""

    def __init__(self, bus: EventBus | None = None) -> None:
        self._bus = bus
        self._waiting: Dict[str, asyncio.Future[str | None]] = {}
        self._previews: Dict[str, str] = {}

    async def show_diff(self, proposal: "Proposal", original: Path, proposed: Path) -> None:
        """Render a unified diff of the two files and announce the review."""

        before = file_io.read_text(original)
        after = file_io.read_text(proposed)
        name = Path(proposal.file_path).name
        diff = "".join(
            difflib.unified_diff(
                before.splitlines(keepends=True),
                after.splitlines(keepends=True),
                fromfile=f"a/{name}",
                tofile=f"b/{name}",
            )
        )
        self._previews[proposal.id] = diff
        LOGGER.debug("Review ready for proposal %s (%s)", proposal.id, proposal.title)
        if self._bus is not None:
            self._bus.publish(
                ReviewPresented(
                    proposal_id=proposal.id,
                    title=proposal.title,
                    description=proposal.description,
                    file_path=proposal.file_path,
                    diff=diff,
                )
            )

    async def request_decision(
        self, proposal: "Proposal", choices: Sequence[str] = DEFAULT_CHOICES
    ) -> str | None:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[str | None] = loop.create_future()
        self._waiting[proposal.id] = future
        try:
            choice = await future
        finally:
            self._waiting.pop(proposal.id, None)
            self._previews.pop(proposal.id, None)
        if choice is not None and choice not in choices:
            LOGGER.warning("Ignoring unknown choice %r for proposal %s", choice, proposal.id)
            return None
        return choice

    def resolve(self, proposal_id: str, choice: str | None) -> bool:
        """Answer the review for ``proposal_id``; returns ``False`` when none is waiting."""

        future = self._waiting.get(proposal_id)
        if future is None or future.done():
            return False
        future.set_result(choice)
        return True

    def dismiss(self, proposal_id: str) -> bool:
        return self.resolve(proposal_id, None)

    def preview(self, proposal_id: str) -> str | None:
        return self._previews.get(proposal_id)

    def waiting(self) -> tuple[str, ...]:
        return tuple(self._waiting)


__all__ = [
    "ACCEPT_CHOICE",
    "DEFAULT_CHOICES",
    "DecisionBroker",
    "REJECT_CHOICE",
    "ReviewDecision",
    "ReviewSurface",
]
