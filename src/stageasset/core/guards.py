from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from stageasset.db.models import AssetRequirement, Event, Speaker
from stageasset.errors import ForbiddenError
from stageasset.types import GuardDecision


class SubmissionGuard(Protocol):
    def evaluate(self, *, event: Event, speaker: Speaker, requirement: AssetRequirement) -> GuardDecision: ...


@dataclass(slots=True)
class ArchivedEventGuard:
    enabled: bool = True

    def evaluate(self, *, event: Event, speaker: Speaker, requirement: AssetRequirement) -> GuardDecision:
        if self.enabled and event.is_archived:
            return GuardDecision(allowed=False, reason=f"event '{event.name}' is archived")
        return GuardDecision(allowed=True)


@dataclass(slots=True)
class OwnershipCheck:
    """Stand-in for the auth layer: an event is managed by its owner only."""

    def ensure_event_access(self, owner_id: int | None, event: Event, *, what: str = "event") -> None:
        if owner_id is None:
            return
        if event.owner_id != owner_id:
            raise ForbiddenError(f"You do not have access to this {what}")
