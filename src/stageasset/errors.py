"""Error taxonomy shared by the ledger and the reminder pipeline.

Every failure is scoped to a single operation; none of these are meant to
stop the process.
"""

from __future__ import annotations


class StageAssetError(Exception):
    """Base class for every error raised by the core."""


class ValidationError(StageAssetError):
    """An upload broke one or more requirement constraints."""

    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        super().__init__("; ".join(self.violations) or "validation failed")


class NotFoundError(StageAssetError):
    def __init__(self, kind: str, object_id: int):
        self.kind = kind
        self.object_id = object_id
        super().__init__(f"{kind} {object_id} not found")


class ForbiddenError(StageAssetError):
    pass


class ConflictError(StageAssetError):
    pass


class DeliveryError(StageAssetError):
    """The notifier failed; the attempt has already been recorded as failed."""

    def __init__(self, message: str, *, reminder_id: int | None = None):
        self.reminder_id = reminder_id
        super().__init__(message)


class StateError(StageAssetError):
    pass


class NotifierError(StageAssetError):
    """Raised by a notifier backend when a message could not be handed off."""
