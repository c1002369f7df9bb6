from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from stageasset.config import Settings, get_settings
from stageasset.core.delivery import ReminderDelivery
from stageasset.core.policy import ReminderPolicy
from stageasset.db.base import utcnow
from stageasset.db.repositories import Repository
from stageasset.errors import DeliveryError
from stageasset.notify.providers import Notifier
from stageasset.types import JobResult, SweepResult

logger = logging.getLogger(__name__)


def process_reminder_job(
    session: Session,
    speaker_id: int,
    event_id: int,
    *,
    delivery: ReminderDelivery | None = None,
) -> JobResult:
    """Send one queued reminder. DeliveryError propagates so the runner can retry."""
    repo = Repository(session)
    speaker = repo.get_speaker(speaker_id)
    if speaker is None or speaker.submission_status == "complete":
        return JobResult(speaker_id=speaker_id, status="skipped", message="Speaker not found or already completed")
    if repo.get_event(event_id) is None:
        return JobResult(speaker_id=speaker_id, status="skipped", message="Event not found")

    delivery = delivery or ReminderDelivery(session)
    reminder = delivery.trigger(speaker_id)
    return JobResult(
        speaker_id=speaker_id,
        status="sent",
        reminder_id=reminder.id,
        message="Reminder sent successfully",
    )


def run_reminder_sweep(
    session: Session,
    *,
    now: datetime | None = None,
    settings: Settings | None = None,
    notifier: Notifier | None = None,
) -> SweepResult:
    settings = settings or get_settings()
    now = now or utcnow()
    policy = ReminderPolicy.from_settings(settings)
    delivery = ReminderDelivery(session, settings=settings, notifier=notifier)

    candidates = [(speaker.id, event.id) for speaker, event in policy.select_eligible(session, now)]
    logger.info("Reminder sweep selected %s speaker(s)", len(candidates))

    result = SweepResult()
    for speaker_id, event_id in candidates:
        try:
            outcome = process_reminder_job(session, speaker_id, event_id, delivery=delivery)
        except DeliveryError:
            result.failed += 1
            result.failed_speaker_ids.append(speaker_id)
            continue

        if outcome.status == "sent":
            result.sent += 1
        else:
            result.skipped += 1

    logger.info(
        "Reminder sweep finished sent=%s failed=%s skipped=%s",
        result.sent,
        result.failed,
        result.skipped,
    )
    return result
