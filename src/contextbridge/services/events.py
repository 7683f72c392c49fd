"""Event bus decoupling the proposal engine and commands from the protocol layer.

Producers publish plain dataclass events; the bridge server subscribes and
turns them into WebSocket pushes. Nothing in the engine knows about sockets.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, DefaultDict, Generic, TypeVar
from weakref import WeakMethod

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for all bridge events."""


@dataclass(slots=True)
class ContextChanged(Event):
    """Editor state changed; observers should refresh their snapshot.

    Attributes:
        reason: Short label for the mutation (``"writeFile"``, ``"proposal.applied"``...).
        file_path: The file involved, when there is one.
    """

    reason: str
    file_path: str | None = None


@dataclass(slots=True)
class ReviewPresented(Event):
    """A proposal preview is on screen and awaiting a human decision.

    Attributes:
        proposal_id: Identifier to pass to ``acceptProposal``/``rejectProposal``.
        title: Proposal title.
        description: Proposal description.
        file_path: The file the proposal edits.
        diff: Unified diff between the original and proposed full texts.
    """

    proposal_id: str
    title: str
    description: str
    file_path: str
    diff: str


class EventBus(Generic[E]):
    """Typed publish/subscribe bus.

    Bound-method handlers are held weakly so a discarded subscriber drops out
    on its own; plain functions are held strongly. Handlers run synchronously
    in subscription order, and a failing handler is logged without stopping
    the rest. Not thread-safe: use it from the event loop thread only.
    """

    __slots__ = ("_handlers",)

    def __init__(self) -> None:
        self._handlers: DefaultDict[type[Event], list[_HandlerRef]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        self._handlers[event_type].append(_HandlerRef.create(handler))
        logger.debug("Subscribed %s to %s", _handler_name(handler), event_type.__name__)

    def publish(self, event: E) -> None:
        event_type = type(event)
        handlers = self._handlers.get(event_type)
        if not handlers:
            logger.debug("No handlers for %s", event_type.__name__)
            return

        dead: list[int] = []
        for index, handler_ref in enumerate(handlers):
            handler = handler_ref.resolve()
            if handler is None:
                dead.append(index)
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s raised for %s", _handler_name(handler), event_type.__name__
                )
        for index in reversed(dead):
            handlers.pop(index)


class _HandlerRef:
    """Weak reference for bound methods, strong reference for everything else."""

    __slots__ = ("_ref", "_is_weak")

    def __init__(self, handler_ref: object, is_weak: bool) -> None:
        self._ref = handler_ref
        self._is_weak = is_weak

    @classmethod
    def create(cls, handler: Handler) -> "_HandlerRef":
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                return cls(WeakMethod(handler), is_weak=True)
            except TypeError:
                pass
        return cls(handler, is_weak=False)

    def resolve(self) -> Handler | None:
        if not self._is_weak:
            return self._ref  # type: ignore[return-value]
        return self._ref()  # type: ignore[operator]


def _handler_name(handler: Handler) -> str:
    if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__name__", repr(handler))


__all__ = ["ContextChanged", "Event", "EventBus", "Handler", "ReviewPresented"]
