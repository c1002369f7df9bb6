from __future__ import annotations

import os
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

os.environ["DATABASE_URL"] = f"sqlite:///{Path(tempfile.gettempdir()) / 'stageasset-tests.db'}"
os.environ["APP_ENV"] = "test"
os.environ["EMAIL_BACKEND"] = "console"
os.environ["REMINDER_COOLDOWN_HOURS"] = "24"

import pytest  # noqa: E402

from stageasset.db.base import Base  # noqa: E402
from stageasset.db.repositories import Repository  # noqa: E402
from stageasset.db.session import SessionLocal, engine  # noqa: E402
from stageasset.errors import NotifierError  # noqa: E402


class RecordingNotifier:
    def __init__(self) -> None:
        self.calls: list[dict] = []

    def send_reminder(self, **kwargs) -> None:
        self.calls.append(kwargs)


class FailingNotifier(RecordingNotifier):
    def __init__(self, message: str = "SMTP connection refused") -> None:
        super().__init__()
        self.message = message

    def send_reminder(self, **kwargs) -> None:
        self.calls.append(kwargs)
        raise NotifierError(self.message)


@pytest.fixture(autouse=True)
def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    with SessionLocal() as session:
        yield session


@pytest.fixture
def catalog(db):
    """One event due in two days with a required headshot and an optional bio."""
    repo = Repository(db)
    event = repo.create_event(
        owner_id=1,
        name="PyCon Demo",
        deadline=datetime.now(UTC) + timedelta(days=2),
        reminder_days_before=3,
    )
    headshot = repo.create_requirement(
        event_id=event.id,
        asset_type="headshot",
        label="Speaker Headshot",
        is_required=True,
        accepted_file_types=[".jpg", ".png"],
        max_file_size_bytes=5 * 1024 * 1024,
        min_image_width=400,
        min_image_height=400,
    )
    bio = repo.create_requirement(
        event_id=event.id,
        asset_type="bio",
        label="Speaker Bio",
        is_required=False,
        accepted_file_types=[".txt", ".pdf"],
        sort_order=1,
    )
    speaker = repo.create_speaker(event_id=event.id, email="ada@example.com", first_name="Ada", last_name="Lovelace")
    return {"event": event, "headshot": headshot, "bio": bio, "speaker": speaker}


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def failing_notifier() -> FailingNotifier:
    return FailingNotifier()
