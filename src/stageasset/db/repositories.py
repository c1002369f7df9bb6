from __future__ import annotations

import re
import secrets
from datetime import datetime
from typing import Any

from sqlalchemy import and_, func, select, update
from sqlalchemy.orm import Session

from stageasset.db.models import ActivityLog, AssetRequirement, Event, Reminder, Speaker, Submission


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def new_access_token() -> str:
    return secrets.token_hex(32)


class Repository:
    """Persistence helpers.

    The catalog methods (events, requirements, speakers) commit on their own.
    Ledger and reminder methods only flush; the calling service owns the
    transaction and decides when to commit or roll back.
    """

    def __init__(self, session: Session):
        self.session = session

    # Catalog

    def create_event(
        self,
        *,
        owner_id: int,
        name: str,
        deadline: datetime,
        slug: str | None = None,
        enable_auto_reminders: bool = True,
        reminder_days_before: int = 3,
        is_archived: bool = False,
    ) -> Event:
        event = Event(
            owner_id=owner_id,
            name=name,
            slug=slug or f"{slugify(name)}-{secrets.token_hex(3)}",
            deadline=deadline,
            enable_auto_reminders=enable_auto_reminders,
            reminder_days_before=reminder_days_before,
            is_archived=is_archived,
        )
        self.session.add(event)
        self.session.commit()
        self.session.refresh(event)
        return event

    def get_event(self, event_id: int) -> Event | None:
        return self.session.get(Event, event_id)

    def create_requirement(
        self,
        *,
        event_id: int,
        asset_type: str,
        label: str,
        is_required: bool = True,
        accepted_file_types: list[str] | None = None,
        max_file_size_bytes: int | None = None,
        min_image_width: int | None = None,
        min_image_height: int | None = None,
        sort_order: int = 0,
    ) -> AssetRequirement:
        requirement = AssetRequirement(
            event_id=event_id,
            asset_type=asset_type,
            label=label,
            is_required=is_required,
            accepted_file_types_json=list(accepted_file_types or []),
            max_file_size_bytes=max_file_size_bytes,
            min_image_width=min_image_width,
            min_image_height=min_image_height,
            sort_order=sort_order,
        )
        self.session.add(requirement)
        self.session.commit()
        self.session.refresh(requirement)
        return requirement

    def get_requirement(self, requirement_id: int) -> AssetRequirement | None:
        return self.session.get(AssetRequirement, requirement_id)

    def list_requirements(self, event_id: int) -> list[AssetRequirement]:
        statement = (
            select(AssetRequirement)
            .where(AssetRequirement.event_id == event_id)
            .order_by(AssetRequirement.sort_order.asc(), AssetRequirement.id.asc())
        )
        return list(self.session.scalars(statement).all())

    def required_requirement_ids(self, event_id: int) -> set[int]:
        statement = select(AssetRequirement.id).where(
            and_(AssetRequirement.event_id == event_id, AssetRequirement.is_required.is_(True))
        )
        return set(self.session.scalars(statement).all())

    def create_speaker(
        self,
        *,
        event_id: int,
        email: str,
        first_name: str = "",
        last_name: str = "",
        access_token: str | None = None,
    ) -> Speaker:
        speaker = Speaker(
            event_id=event_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            access_token=access_token or new_access_token(),
        )
        self.session.add(speaker)
        self.session.commit()
        self.session.refresh(speaker)
        return speaker

    def get_speaker(self, speaker_id: int) -> Speaker | None:
        return self.session.get(Speaker, speaker_id)

    def lock_speaker(self, speaker_id: int) -> Speaker | None:
        statement = (
            select(Speaker)
            .where(Speaker.id == speaker_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.scalar(statement)

    def list_speakers(self, event_id: int | None = None) -> list[Speaker]:
        statement = select(Speaker).order_by(Speaker.id.asc())
        if event_id is not None:
            statement = statement.where(Speaker.event_id == event_id)
        return list(self.session.scalars(statement).all())

    # Ledger

    def get_submission(self, submission_id: int) -> Submission | None:
        return self.session.get(Submission, submission_id)

    def get_latest_submission(self, speaker_id: int, requirement_id: int) -> Submission | None:
        statement = select(Submission).where(
            and_(
                Submission.speaker_id == speaker_id,
                Submission.asset_requirement_id == requirement_id,
                Submission.is_latest.is_(True),
            )
        )
        return self.session.scalar(statement)

    def max_version(self, speaker_id: int, requirement_id: int) -> int:
        statement = select(func.max(Submission.version)).where(
            and_(
                Submission.speaker_id == speaker_id,
                Submission.asset_requirement_id == requirement_id,
            )
        )
        return self.session.scalar(statement) or 0

    def add_submission(self, submission: Submission) -> Submission:
        self.session.add(submission)
        self.session.flush()
        return submission

    def list_versions(self, speaker_id: int, requirement_id: int) -> list[Submission]:
        statement = (
            select(Submission)
            .where(
                and_(
                    Submission.speaker_id == speaker_id,
                    Submission.asset_requirement_id == requirement_id,
                )
            )
            .order_by(Submission.version.asc())
        )
        return list(self.session.scalars(statement).all())

    def list_latest_for_speaker(self, speaker_id: int) -> list[Submission]:
        statement = (
            select(Submission)
            .where(and_(Submission.speaker_id == speaker_id, Submission.is_latest.is_(True)))
            .order_by(Submission.asset_requirement_id.asc())
        )
        return list(self.session.scalars(statement).all())

    def list_latest_for_event(self, event_id: int) -> list[Submission]:
        statement = (
            select(Submission)
            .join(Speaker, Speaker.id == Submission.speaker_id)
            .where(and_(Speaker.event_id == event_id, Submission.is_latest.is_(True)))
            .order_by(Submission.speaker_id.asc(), Submission.asset_requirement_id.asc())
        )
        return list(self.session.scalars(statement).all())

    def latest_requirement_ids(self, speaker_id: int) -> set[int]:
        statement = select(Submission.asset_requirement_id).where(
            and_(Submission.speaker_id == speaker_id, Submission.is_latest.is_(True))
        )
        return set(self.session.scalars(statement).all())

    def count_speakers_by_status(self, event_id: int) -> dict[str, int]:
        statement = (
            select(Speaker.submission_status, func.count(Speaker.id))
            .where(Speaker.event_id == event_id)
            .group_by(Speaker.submission_status)
        )
        return {status: count for status, count in self.session.execute(statement).all()}

    def count_latest_required_submissions(self, event_id: int) -> int:
        statement = (
            select(func.count(Submission.id))
            .join(Speaker, Speaker.id == Submission.speaker_id)
            .join(AssetRequirement, AssetRequirement.id == Submission.asset_requirement_id)
            .where(
                and_(
                    Speaker.event_id == event_id,
                    Submission.is_latest.is_(True),
                    AssetRequirement.is_required.is_(True),
                )
            )
        )
        return self.session.scalar(statement) or 0

    def delete_submission(self, submission: Submission) -> None:
        # Keep the replaces chain linked across the removed version.
        self.session.execute(
            update(Submission)
            .where(Submission.replaces_submission_id == submission.id)
            .values(replaces_submission_id=submission.replaces_submission_id)
        )
        self.session.delete(submission)
        self.session.flush()

    # Reminders

    def add_reminder(self, reminder: Reminder) -> Reminder:
        self.session.add(reminder)
        self.session.flush()
        return reminder

    def get_reminder(self, reminder_id: int) -> Reminder | None:
        return self.session.get(Reminder, reminder_id)

    def list_reminders_for_event(self, event_id: int) -> list[Reminder]:
        statement = (
            select(Reminder)
            .where(Reminder.event_id == event_id)
            .order_by(Reminder.created_at.desc(), Reminder.id.desc())
        )
        return list(self.session.scalars(statement).all())

    def list_reminders_for_speaker(self, speaker_id: int) -> list[Reminder]:
        statement = (
            select(Reminder)
            .where(Reminder.speaker_id == speaker_id)
            .order_by(Reminder.created_at.desc(), Reminder.id.desc())
        )
        return list(self.session.scalars(statement).all())

    def list_failed_reminders(self, owner_id: int | None = None) -> list[Reminder]:
        statement = (
            select(Reminder)
            .where(Reminder.status == "failed")
            .order_by(Reminder.created_at.desc(), Reminder.id.desc())
        )
        if owner_id is not None:
            statement = statement.join(Event, Event.id == Reminder.event_id).where(Event.owner_id == owner_id)
        return list(self.session.scalars(statement).all())

    def record_reminder_sent(self, speaker_id: int, sent_at: datetime) -> None:
        self.session.execute(
            update(Speaker)
            .where(Speaker.id == speaker_id)
            .values(
                reminder_count=Speaker.reminder_count + 1,
                last_reminder_sent_at=sent_at,
            )
            .execution_options(synchronize_session="fetch")
        )

    def list_reminder_candidates(self) -> list[tuple[Speaker, Event]]:
        statement = (
            select(Speaker, Event)
            .join(Event, Event.id == Speaker.event_id)
            .where(
                and_(
                    Event.enable_auto_reminders.is_(True),
                    Event.is_archived.is_(False),
                    Speaker.submission_status != "complete",
                )
            )
            .order_by(Speaker.id.asc())
        )
        return [(speaker, event) for speaker, event in self.session.execute(statement).all()]

    # Activity log

    def append_activity(
        self,
        *,
        event_id: int,
        action: str,
        speaker_id: int | None = None,
        description: str = "",
        metadata_json: dict[str, Any] | None = None,
    ) -> ActivityLog:
        entry = ActivityLog(
            event_id=event_id,
            speaker_id=speaker_id,
            action=action,
            description=description,
            metadata_json=metadata_json or {},
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def list_activity(
        self,
        *,
        event_id: int | None = None,
        speaker_id: int | None = None,
        action: str | None = None,
        limit: int = 100,
    ) -> list[ActivityLog]:
        statement = select(ActivityLog)
        if event_id is not None:
            statement = statement.where(ActivityLog.event_id == event_id)
        if speaker_id is not None:
            statement = statement.where(ActivityLog.speaker_id == speaker_id)
        if action is not None:
            statement = statement.where(ActivityLog.action == action)
        statement = statement.order_by(ActivityLog.id.desc()).limit(limit)
        return list(self.session.scalars(statement).all())
