from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from stageasset.config import Settings
from stageasset.core.delivery import ReminderDelivery
from stageasset.db.models import Reminder, Speaker
from stageasset.db.repositories import Repository
from stageasset.errors import DeliveryError, ForbiddenError, NotFoundError, StateError
from stageasset.types import ReminderOverrides


def _delivery(db, notifier) -> ReminderDelivery:
    return ReminderDelivery(db, settings=Settings(portal_base_url="https://portal.test/"), notifier=notifier)


def test_trigger_sends_and_updates_speaker(db, catalog, notifier) -> None:
    speaker = catalog["speaker"]
    reminder = _delivery(db, notifier).trigger(speaker.id)

    assert reminder.status == "sent"
    assert reminder.sent_at is not None
    assert reminder.error_message is None
    assert reminder.email_subject == "Reminder: Submit your assets for PyCon Demo"
    assert "Hi Ada" in reminder.email_body

    call = notifier.calls[0]
    assert call["to_email"] == "ada@example.com"
    assert call["recipient_name"] == "Ada Lovelace"
    assert call["event_name"] == "PyCon Demo"
    assert call["portal_url"] == f"https://portal.test/portal/speakers/{speaker.access_token}"

    refreshed = db.get(Speaker, speaker.id)
    assert refreshed.reminder_count == 1
    assert refreshed.last_reminder_sent_at is not None


def test_trigger_uses_overrides(db, catalog, notifier) -> None:
    overrides = ReminderOverrides(email_subject="Last call", email_body="Upload today please.")
    reminder = _delivery(db, notifier).trigger(catalog["speaker"].id, overrides)

    assert reminder.email_subject == "Last call"
    assert reminder.email_body == "Upload today please."
    assert notifier.calls[0]["subject"] == "Last call"


def test_notifier_failure_is_recorded_then_raised(db, catalog, failing_notifier) -> None:
    speaker_id = catalog["speaker"].id
    with pytest.raises(DeliveryError) as exc_info:
        _delivery(db, failing_notifier).trigger(speaker_id)

    reminder = db.get(Reminder, exc_info.value.reminder_id)
    assert reminder.status == "failed"
    assert reminder.error_message == "SMTP connection refused"
    assert reminder.sent_at is None

    speaker = db.get(Speaker, speaker_id)
    assert speaker.reminder_count == 0
    assert speaker.last_reminder_sent_at is None
    assert isinstance(exc_info.value.__cause__, Exception)


def test_each_attempt_is_a_new_row(db, catalog, notifier) -> None:
    delivery = _delivery(db, notifier)
    first = delivery.trigger(catalog["speaker"].id)
    second = delivery.trigger(catalog["speaker"].id)

    assert first.id != second.id
    assert db.get(Speaker, catalog["speaker"].id).reminder_count == 2
    assert [row.id for row in delivery.list_for_speaker(catalog["speaker"].id)] == [second.id, first.id]


def test_retry_resends_as_fresh_attempt(db, catalog, failing_notifier, notifier) -> None:
    speaker_id = catalog["speaker"].id
    overrides = ReminderOverrides(email_subject="Custom subject")
    with pytest.raises(DeliveryError) as exc_info:
        _delivery(db, failing_notifier).trigger(speaker_id, overrides)
    failed_id = exc_info.value.reminder_id

    retried = _delivery(db, notifier).retry(failed_id)

    assert retried.id != failed_id
    assert retried.status == "sent"
    assert retried.email_subject == "Custom subject"
    assert len(notifier.calls) == 1
    assert db.get(Reminder, failed_id).status == "failed"
    assert db.get(Speaker, speaker_id).reminder_count == 1

    actions = [entry.action for entry in Repository(db).list_activity(speaker_id=speaker_id)]
    assert actions[0] == "reminder_retried"


def test_retry_that_fails_again_raises(db, catalog, failing_notifier) -> None:
    delivery = _delivery(db, failing_notifier)
    with pytest.raises(DeliveryError) as first:
        delivery.trigger(catalog["speaker"].id)
    with pytest.raises(DeliveryError) as second:
        delivery.retry(first.value.reminder_id)

    assert second.value.reminder_id != first.value.reminder_id
    assert len(delivery.list_failed()) == 2


def test_retry_requires_failed_status(db, catalog, notifier) -> None:
    delivery = _delivery(db, notifier)
    sent = delivery.trigger(catalog["speaker"].id)

    with pytest.raises(StateError):
        delivery.retry(sent.id)
    assert len(notifier.calls) == 1


def test_unknown_ids_raise_not_found(db, catalog, notifier) -> None:
    delivery = _delivery(db, notifier)
    with pytest.raises(NotFoundError):
        delivery.trigger(9999)
    with pytest.raises(NotFoundError):
        delivery.retry(9999)
    assert notifier.calls == []


def test_ownership_is_enforced(db, catalog, notifier, failing_notifier) -> None:
    with pytest.raises(ForbiddenError):
        _delivery(db, notifier).trigger(catalog["speaker"].id, owner_id=2)
    assert notifier.calls == []

    with pytest.raises(DeliveryError) as exc_info:
        _delivery(db, failing_notifier).trigger(catalog["speaker"].id, owner_id=1)
    with pytest.raises(ForbiddenError):
        _delivery(db, notifier).retry(exc_info.value.reminder_id, owner_id=2)


def test_failed_listing_is_scoped_to_owner(db, catalog, failing_notifier) -> None:
    repo = Repository(db)
    other_event = repo.create_event(owner_id=2, name="Other Conf", deadline=catalog["event"].deadline)
    other_speaker = repo.create_speaker(event_id=other_event.id, email="grace@example.com", first_name="Grace")

    delivery = _delivery(db, failing_notifier)
    for speaker_id in (catalog["speaker"].id, other_speaker.id):
        with pytest.raises(DeliveryError):
            delivery.trigger(speaker_id)

    assert [row.speaker_id for row in delivery.list_failed(owner_id=1)] == [catalog["speaker"].id]
    assert len(delivery.list_failed()) == 2
    assert len(delivery.list_for_event(other_event.id, owner_id=2)) == 1
    with pytest.raises(ForbiddenError):
        delivery.list_for_event(other_event.id, owner_id=1)


def test_long_default_subject_is_sent_as_stored(db, notifier) -> None:
    repo = Repository(db)
    event = repo.create_event(owner_id=1, name="X" * 300, deadline=datetime.now(UTC) + timedelta(days=1))
    speaker = repo.create_speaker(event_id=event.id, email="lin@example.com", first_name="Lin")

    reminder = _delivery(db, notifier).trigger(speaker.id)

    assert len(reminder.email_subject) == 255
    assert notifier.calls[0]["subject"] == reminder.email_subject


def test_overlong_subject_override_is_rejected() -> None:
    with pytest.raises(PydanticValidationError):
        ReminderOverrides(email_subject="S" * 300)
