"""Change proposal lifecycle: create, review, apply or discard.

A proposal is a set of whole-line replacements for one file. It sits in the
engine's :class:`ProposalStore` while a human looks at it, and leaves the store
on every terminal transition. Accepting applies all regions as one batch,
bottom-up, so a region that changes the line count never shifts a region that
has not been applied yet.
"""

from __future__ import annotations

import enum
import logging
import tempfile
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Sequence

from ..editor.document_model import LineEdit, apply_line_edits
from ..editor.workspace import DocumentWorkspace
from ..utils import file_io
from .errors import (
    BridgeError,
    CollaboratorFailure,
    InvalidRangeError,
    ProposalNotFoundError,
    ProtocolError,
)
from .events import ContextChanged, EventBus
from .review import ACCEPT_CHOICE, DEFAULT_CHOICES, REJECT_CHOICE, ReviewDecision, ReviewSurface

LOGGER = logging.getLogger(__name__)

_LEGACY_REGION_FIELDS = ("startLine", "endLine", "proposedContent", "originalContent")


class ProposalStatus(str, enum.Enum):
    CREATED = "created"
    PENDING = "pending"
    APPLIED = "applied"
    DISCARDED = "discarded"

    @property
    def is_terminal(self) -> bool:
        return self in (ProposalStatus.APPLIED, ProposalStatus.DISCARDED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _require_line(payload: Mapping[str, Any], key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProtocolError(message=f"Change field '{key}' must be an integer")
    return value


@dataclass(slots=True, frozen=True)
class Region:
    """A 1-indexed inclusive ``[start_line, end_line]`` span and its replacement.

    ``original_content`` is informational only and never checked against the
    document.
    """

    start_line: int
    end_line: int
    proposed_content: str
    original_content: str | None = None
    description: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Region":
        if not isinstance(payload, Mapping):
            raise ProtocolError(message="Each change must be an object")
        proposed = payload.get("proposedContent")
        if not isinstance(proposed, str):
            raise ProtocolError(message="Change field 'proposedContent' must be a string")
        original = payload.get("originalContent")
        description = payload.get("description")
        return cls(
            start_line=_require_line(payload, "startLine"),
            end_line=_require_line(payload, "endLine"),
            proposed_content=proposed,
            original_content=original if isinstance(original, str) else None,
            description=description if isinstance(description, str) else None,
        )

    def to_line_edit(self) -> LineEdit:
        return LineEdit(
            start_line=self.start_line - 1,
            end_line=self.end_line - 1,
            replacement=self.proposed_content + "\n",
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "startLine": self.start_line,
            "endLine": self.end_line,
            "proposedContent": self.proposed_content,
        }
        if self.original_content is not None:
            payload["originalContent"] = self.original_content
        if self.description is not None:
            payload["description"] = self.description
        return payload


@dataclass(slots=True)
class Proposal:
    title: str
    description: str
    file_path: str
    regions: tuple[Region, ...]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: ProposalStatus = ProposalStatus.CREATED
    created_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if not self.regions:
            raise ProtocolError(message="A change proposal needs at least one change")
        self.regions = tuple(self.regions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "filePath": self.file_path,
            "status": self.status.value,
            "changes": [region.to_dict() for region in self.regions],
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(slots=True, frozen=True)
class ProposalRequest:
    """Validated ``proposeChange`` arguments."""

    title: str
    description: str
    file_path: str
    regions: tuple[Region, ...]


def parse_proposal_request(payload: Any) -> ProposalRequest:
    """Validate a proposal body in either the ``changes`` list or the legacy single-region shape."""

    if not isinstance(payload, Mapping):
        raise ProtocolError(message="Change proposal must be an object")
    title = payload.get("title")
    file_path = payload.get("filePath")
    if not isinstance(file_path, str) or not file_path:
        raise ProtocolError(message="Change proposal requires a 'filePath'")
    description = payload.get("description")

    changes = payload.get("changes")
    if changes is not None:
        if not isinstance(changes, list) or not changes:
            raise ProtocolError(message="'changes' must be a non-empty list")
        regions = tuple(Region.from_payload(change) for change in changes)
    elif "proposedContent" in payload:
        legacy = {key: payload[key] for key in _LEGACY_REGION_FIELDS if key in payload}
        regions = (Region.from_payload(legacy),)
    else:
        raise ProtocolError(message="Change proposal requires 'changes'")

    return ProposalRequest(
        title=title if isinstance(title, str) else "",
        description=description if isinstance(description, str) else "",
        file_path=file_path,
        regions=regions,
    )


@dataclass(slots=True, frozen=True)
class ProposalOutcome:
    """How a proposal ended, or why an operation on it failed."""

    proposal_id: str
    title: str
    status: ProposalStatus
    decision: ReviewDecision | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        if self.error is not None:
            return f"Failed to process change proposal: {self.title}"
        if self.status is ProposalStatus.APPLIED:
            return f"Change proposal applied: {self.title}"
        if self.decision is ReviewDecision.DISMISSED:
            return f"Change proposal dismissed: {self.title}"
        return f"Change proposal rejected: {self.title}"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"proposalId": self.proposal_id, "status": self.status.value}
        if self.decision is not None:
            payload["decision"] = self.decision.value
        return payload


class ProposalStore:
    """In-memory proposals keyed by id, in creation order."""

    def __init__(self) -> None:
        self._items: Dict[str, Proposal] = {}

    def add(self, proposal: Proposal) -> None:
        self._items[proposal.id] = proposal

    def get(self, proposal_id: str) -> Proposal | None:
        return self._items.get(proposal_id)

    def pop(self, proposal_id: str) -> Proposal | None:
        return self._items.pop(proposal_id, None)

    def clear(self) -> list[Proposal]:
        removed = list(self._items.values())
        self._items.clear()
        return removed

    def __contains__(self, proposal_id: object) -> bool:
        return proposal_id in self._items

    def __iter__(self) -> Iterator[Proposal]:
        return iter(list(self._items.values()))

    def __len__(self) -> int:
        return len(self._items)


class ChangeProposalEngine:
    """Owns the proposal store and every transition of a proposal."""

    def __init__(
        self,
        workspace: DocumentWorkspace,
        surface: ReviewSurface,
        *,
        bus: EventBus | None = None,
        store: ProposalStore | None = None,
    ) -> None:
        self._workspace = workspace
        self._surface = surface
        self._bus = bus
        self._store = store or ProposalStore()

    @property
    def store(self) -> ProposalStore:
        return self._store

    def pending(self) -> list[Proposal]:
        return list(self._store)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def propose(
        self,
        title: str,
        description: str,
        file_path: str,
        regions: Sequence[Region],
    ) -> ProposalOutcome:
        """Store a proposal, wait for the reviewer, then apply or discard it.

        The proposal may be resolved from elsewhere while the review is open
        (``acceptProposal``, ``rejectProposal`` or shutdown); the returned
        outcome then reports whatever that resolution was.
        """

        proposal = Proposal(
            title=title,
            description=description,
            file_path=file_path,
            regions=tuple(regions),
        )
        self._store.add(proposal)
        proposal.status = ProposalStatus.PENDING
        LOGGER.info(
            "Proposal %s created for %s with %d region(s)",
            proposal.id,
            file_path,
            len(proposal.regions),
        )

        try:
            decision = await self.present_for_review(proposal)
        except BridgeError as exc:
            LOGGER.warning("Review of proposal %s failed: %s", proposal.id, exc)
            if proposal.id in self._store:
                self._finish(proposal, ProposalStatus.DISCARDED, reason="proposal.failed")
            return self._outcome(proposal, error=exc.message)

        if proposal.id not in self._store:
            return self._outcome(proposal, decision=decision)

        try:
            if decision is ReviewDecision.ACCEPT:
                outcome = await self.accept(proposal.id)
            else:
                outcome = await self.reject(proposal.id)
        except BridgeError as exc:
            LOGGER.warning("Accepted proposal %s could not be applied: %s", proposal.id, exc)
            if proposal.id in self._store:
                self._finish(proposal, ProposalStatus.DISCARDED, reason="proposal.failed")
            return self._outcome(proposal, decision=decision, error=exc.message)
        return self._outcome(proposal, decision=decision, error=outcome.error)

    async def present_for_review(self, proposal: Proposal) -> ReviewDecision:
        """Show the original and fully substituted texts and wait for a decision.

        The live document is not touched. Both variants are written to a
        scratch directory that is removed however the review ends.
        """

        original = self._workspace.peek_text(proposal.file_path)
        preview = self._preview_text(proposal, original)
        name = Path(proposal.file_path).name or "document"
        try:
            with tempfile.TemporaryDirectory(prefix="contextbridge-review-") as scratch:
                original_path = file_io.write_text(Path(scratch) / f"original-{name}", original)
                proposed_path = file_io.write_text(Path(scratch) / f"proposed-{name}", preview)
                await self._surface.show_diff(proposal, original_path, proposed_path)
                choice = await self._surface.request_decision(proposal, DEFAULT_CHOICES)
        except OSError as exc:
            raise CollaboratorFailure(
                message=f"Unable to prepare review for {proposal.file_path}: {exc}"
            ) from exc
        decision = ReviewDecision.from_choice(choice)
        LOGGER.info("Proposal %s review decision: %s", proposal.id, decision.value)
        return decision

    async def accept(self, proposal_id: str) -> ProposalOutcome:
        """Apply every region of the proposal as one batch and save the file."""

        proposal = self._require(proposal_id)
        document = self._workspace.document_for(proposal.file_path)
        edits = self._ordered_edits(proposal)
        line_count = document.line_count
        for edit in edits:
            if not 0 <= edit.start_line <= edit.end_line < line_count:
                self._workspace.release(proposal.file_path)
                raise InvalidRangeError(
                    start_line=edit.start_line + 1,
                    end_line=edit.end_line + 1,
                    line_count=line_count,
                )

        before = document.text
        self._workspace.apply_edits(proposal.file_path, edits)
        try:
            self._workspace.save(proposal.file_path)
        except CollaboratorFailure:
            self._workspace.replace_text(proposal.file_path, before)
            self._workspace.release(proposal.file_path)
            raise
        self._finish(proposal, ProposalStatus.APPLIED, reason="proposal.applied", choice=ACCEPT_CHOICE)
        LOGGER.info("Proposal %s applied to %s", proposal.id, proposal.file_path)
        return self._outcome(proposal)

    async def reject(self, proposal_id: str) -> ProposalOutcome:
        proposal = self._require(proposal_id)
        self._finish(proposal, ProposalStatus.DISCARDED, reason="proposal.rejected", choice=REJECT_CHOICE)
        LOGGER.info("Proposal %s discarded", proposal.id)
        return self._outcome(proposal)

    async def shutdown(self) -> None:
        """Discard every pending proposal and release any open review."""

        removed = self._store.clear()
        for proposal in removed:
            proposal.status = ProposalStatus.DISCARDED
            self._surface.dismiss(proposal.id)
        if removed:
            LOGGER.info("Discarded %d pending proposal(s) on shutdown", len(removed))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _require(self, proposal_id: str) -> Proposal:
        proposal = self._store.get(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id=proposal_id)
        return proposal

    @staticmethod
    def _ordered_edits(proposal: Proposal) -> list[LineEdit]:
        edits = [region.to_line_edit() for region in proposal.regions]
        edits.sort(key=lambda edit: edit.start_line, reverse=True)
        return edits

    def _preview_text(self, proposal: Proposal, original: str) -> str:
        text = original
        for edit in self._ordered_edits(proposal):
            try:
                text = apply_line_edits(text, [edit])
            except InvalidRangeError as exc:
                LOGGER.warning("Proposal %s preview skips region: %s", proposal.id, exc)
        return text

    def _finish(
        self,
        proposal: Proposal,
        status: ProposalStatus,
        *,
        reason: str,
        choice: str | None = None,
    ) -> None:
        """Move ``proposal`` to ``status`` and close its review with ``choice`` (or dismiss it)."""

        self._store.pop(proposal.id)
        proposal.status = status
        if choice is None:
            self._surface.dismiss(proposal.id)
        else:
            self._surface.resolve(proposal.id, choice)
        if self._bus is not None:
            self._bus.publish(ContextChanged(reason=reason, file_path=proposal.file_path))

    @staticmethod
    def _outcome(
        proposal: Proposal,
        *,
        decision: ReviewDecision | None = None,
        error: str | None = None,
    ) -> ProposalOutcome:
        return ProposalOutcome(
            proposal_id=proposal.id,
            title=proposal.title,
            status=proposal.status,
            decision=decision,
            error=error,
        )


__all__ = [
    "ChangeProposalEngine",
    "Proposal",
    "ProposalOutcome",
    "ProposalRequest",
    "ProposalStatus",
    "ProposalStore",
    "Region",
    "parse_proposal_request",
]
