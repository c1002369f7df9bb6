from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from stageasset.config import Settings, get_settings
from stageasset.core.guards import OwnershipCheck
from stageasset.db.base import utcnow
from stageasset.db.models import Event, Reminder, Speaker
from stageasset.db.repositories import Repository
from stageasset.errors import DeliveryError, NotFoundError, StateError
from stageasset.notify.providers import Notifier, build_notifier, format_deadline
from stageasset.types import ReminderOverrides

logger = logging.getLogger(__name__)

SUBJECT_MAX_LENGTH = 255


def default_subject(event: Event) -> str:
    return f"Reminder: Submit your assets for {event.name}"


def default_body(speaker: Speaker, event: Event, portal_url: str) -> str:
    return (
        f"Hi {speaker.first_name or 'there'},\n\n"
        f'This is a reminder to submit your assets for the event "{event.name}".\n\n'
        f"Deadline: {format_deadline(event.deadline)}\n\n"
        f"Access your submission portal here:\n{portal_url}\n\n"
        "Don't miss the deadline!\n\n"
        "Best regards,\nThe StageAsset Team"
    )


class ReminderDelivery:
    """Runs reminder attempts: pending -> sent | failed.

    Every attempt is a new Reminder row. The pending row is committed before
    the notifier is called so a crash mid-send still leaves a trace.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        notifier: Notifier | None = None,
        ownership: OwnershipCheck | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.notifier = notifier or build_notifier(self.settings)
        self.ownership = ownership or OwnershipCheck()

    def portal_url(self, speaker: Speaker) -> str:
        return f"{self.settings.portal_root}/portal/speakers/{speaker.access_token}"

    def trigger(
        self,
        speaker_id: int,
        overrides: ReminderOverrides | None = None,
        *,
        owner_id: int | None = None,
    ) -> Reminder:
        speaker = self.repo.get_speaker(speaker_id)
        if speaker is None:
            raise NotFoundError("speaker", speaker_id)
        event = self.repo.get_event(speaker.event_id)
        if event is None:
            raise NotFoundError("event", speaker.event_id)
        self.ownership.ensure_event_access(owner_id, event, what="speaker")

        overrides = overrides or ReminderOverrides()
        portal_url = self.portal_url(speaker)
        return self._attempt(
            speaker,
            event,
            subject=overrides.email_subject or default_subject(event),
            body=overrides.email_body or default_body(speaker, event, portal_url),
            portal_url=portal_url,
        )

    def retry(self, reminder_id: int, *, owner_id: int | None = None) -> Reminder:
        """Re-send a failed reminder as a fresh attempt.

        The failed row stays as it is; the returned Reminder is the new one.
        """
        reminder = self.repo.get_reminder(reminder_id)
        if reminder is None:
            raise NotFoundError("reminder", reminder_id)
        event = self.repo.get_event(reminder.event_id)
        if event is None:
            raise NotFoundError("event", reminder.event_id)
        self.ownership.ensure_event_access(owner_id, event, what="reminder")

        if reminder.status != "failed":
            raise StateError(f"Can only retry failed reminders; reminder {reminder_id} is {reminder.status}")

        speaker = self.repo.get_speaker(reminder.speaker_id)
        if speaker is None:
            raise NotFoundError("speaker", reminder.speaker_id)

        portal_url = self.portal_url(speaker)
        return self._attempt(
            speaker,
            event,
            subject=reminder.email_subject or default_subject(event),
            body=reminder.email_body or default_body(speaker, event, portal_url),
            portal_url=portal_url,
            retry_of=reminder.id,
        )

    def list_for_event(self, event_id: int, *, owner_id: int | None = None) -> list[Reminder]:
        event = self.repo.get_event(event_id)
        if event is None:
            raise NotFoundError("event", event_id)
        self.ownership.ensure_event_access(owner_id, event)
        return self.repo.list_reminders_for_event(event_id)

    def list_for_speaker(self, speaker_id: int, *, owner_id: int | None = None) -> list[Reminder]:
        speaker = self.repo.get_speaker(speaker_id)
        if speaker is None:
            raise NotFoundError("speaker", speaker_id)
        event = self.repo.get_event(speaker.event_id)
        if event is None:
            raise NotFoundError("event", speaker.event_id)
        self.ownership.ensure_event_access(owner_id, event, what="speaker")
        return self.repo.list_reminders_for_speaker(speaker_id)

    def list_failed(self, *, owner_id: int | None = None) -> list[Reminder]:
        return self.repo.list_failed_reminders(owner_id=owner_id)

    def _attempt(
        self,
        speaker: Speaker,
        event: Event,
        *,
        subject: str,
        body: str,
        portal_url: str,
        retry_of: int | None = None,
    ) -> Reminder:
        subject = subject[:SUBJECT_MAX_LENGTH]
        speaker_id = speaker.id
        event_id = event.id
        to_email = speaker.email
        recipient_name = speaker.display_name
        event_name = event.name
        deadline = event.deadline

        reminder = self.repo.add_reminder(
            Reminder(
                speaker_id=speaker_id,
                event_id=event_id,
                status="pending",
                scheduled_for=utcnow(),
                email_subject=subject,
                email_body=body,
            )
        )
        self.session.commit()
        reminder_id = reminder.id
        metadata = {"reminder_id": reminder_id}
        if retry_of is not None:
            metadata["retry_of"] = retry_of

        try:
            self.notifier.send_reminder(
                to_email=to_email,
                recipient_name=recipient_name,
                event_name=event_name,
                deadline=deadline,
                portal_url=portal_url,
                subject=subject,
                body=body,
            )
        except Exception as exc:
            error_message = str(exc) or "Failed to send email"
            reminder.status = "failed"
            reminder.error_message = error_message
            self.repo.append_activity(
                event_id=event_id,
                speaker_id=speaker_id,
                action="reminder_failed",
                description=f"Reminder to {to_email} failed",
                metadata_json=metadata | {"error": error_message},
            )
            self.session.commit()
            logger.warning(
                "Reminder delivery failed reminder_id=%s speaker_id=%s: %s",
                reminder_id,
                speaker_id,
                error_message,
            )
            raise DeliveryError(
                f"Failed to send reminder email: {error_message}",
                reminder_id=reminder_id,
            ) from exc

        sent_at = utcnow()
        reminder.status = "sent"
        reminder.sent_at = sent_at
        self.repo.record_reminder_sent(speaker_id, sent_at)
        self.repo.append_activity(
            event_id=event_id,
            speaker_id=speaker_id,
            action="reminder_retried" if retry_of is not None else "reminder_sent",
            description=f"Reminder sent to {to_email}",
            metadata_json=metadata,
        )
        self.session.commit()
        logger.info("Reminder sent reminder_id=%s speaker_id=%s", reminder_id, speaker_id)
        return reminder
