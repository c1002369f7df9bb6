from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from stageasset.config import Settings
from stageasset.db.base import ensure_utc, utcnow
from stageasset.db.models import Event, Speaker
from stageasset.db.repositories import Repository
from stageasset.types import GuardDecision


@dataclass(slots=True)
class ReminderPolicy:
    """Eligibility rules for the automated reminder sweep.

    Manual triggers do not consult this policy.
    """

    cooldown_hours: int = 24

    @classmethod
    def from_settings(cls, settings: Settings) -> ReminderPolicy:
        return cls(cooldown_hours=settings.reminder_cooldown_hours)

    def explain(self, speaker: Speaker, event: Event, now: datetime | None = None) -> GuardDecision:
        now = ensure_utc(now or utcnow())

        if not event.enable_auto_reminders:
            return GuardDecision(allowed=False, reason="auto reminders disabled for event")
        if event.is_archived:
            return GuardDecision(allowed=False, reason="event is archived")
        if speaker.submission_status == "complete":
            return GuardDecision(allowed=False, reason="speaker submissions complete")

        lead_time = timedelta(days=event.reminder_days_before)
        if ensure_utc(event.deadline) - now > lead_time:
            return GuardDecision(allowed=False, reason="deadline outside reminder window")

        if self.cooldown_hours > 0 and speaker.last_reminder_sent_at is not None:
            next_allowed = ensure_utc(speaker.last_reminder_sent_at) + timedelta(hours=self.cooldown_hours)
            if now < next_allowed:
                return GuardDecision(allowed=False, reason="reminded within cooldown window")

        return GuardDecision(allowed=True, reason="eligible")

    def is_eligible(self, speaker: Speaker, event: Event, now: datetime | None = None) -> bool:
        return self.explain(speaker, event, now).allowed

    def select_eligible(self, session: Session, now: datetime | None = None) -> list[tuple[Speaker, Event]]:
        now = now or utcnow()
        return [
            (speaker, event)
            for speaker, event in Repository(session).list_reminder_candidates()
            if self.is_eligible(speaker, event, now)
        ]
