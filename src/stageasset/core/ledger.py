from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stageasset.config import Settings, get_settings
from stageasset.core.completion import refresh_speaker_status
from stageasset.core.guards import ArchivedEventGuard, SubmissionGuard
from stageasset.core.validation import validate_file
from stageasset.db.models import AssetRequirement, Submission
from stageasset.db.repositories import Repository
from stageasset.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from stageasset.types import FileMeta

logger = logging.getLogger(__name__)


class SubmissionLedger:
    """Append-only version history of uploads per (speaker, requirement).

    Each mutation runs in one transaction together with the recomputation of
    the owning speaker's completion status.
    """

    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        guard: SubmissionGuard | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.guard = guard or ArchivedEventGuard(enabled=self.settings.block_archived_event_uploads)

    def create(
        self,
        speaker_id: int,
        requirement_id: int,
        file_meta: FileMeta,
        *,
        guard: SubmissionGuard | None = None,
    ) -> Submission:
        speaker = self.repo.get_speaker(speaker_id)
        if speaker is None:
            raise NotFoundError("speaker", speaker_id)
        requirement = self.repo.get_requirement(requirement_id)
        if requirement is None:
            raise NotFoundError("asset requirement", requirement_id)
        if requirement.event_id != speaker.event_id:
            raise ValidationError([f"asset requirement {requirement_id} does not belong to this speaker's event"])
        event = self.repo.get_event(speaker.event_id)
        if event is None:
            raise NotFoundError("event", speaker.event_id)

        decision = (guard or self.guard).evaluate(event=event, speaker=speaker, requirement=requirement)
        if not decision.allowed:
            raise ForbiddenError(decision.reason or "submission not allowed")

        violations = validate_file(requirement, file_meta)
        if violations:
            raise ValidationError(violations)

        attempts = self.settings.ledger_max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                submission = self._append_version(speaker_id, requirement, file_meta)
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                logger.warning(
                    "Concurrent submission detected speaker_id=%s requirement_id=%s attempt=%s/%s",
                    speaker_id,
                    requirement_id,
                    attempt,
                    attempts,
                )
                continue

            logger.info(
                "Submission stored id=%s speaker_id=%s requirement_id=%s version=%s",
                submission.id,
                speaker_id,
                requirement_id,
                submission.version,
            )
            return submission

        raise ConflictError(
            f"could not store submission for speaker {speaker_id} and requirement {requirement_id} "
            f"after {attempts} attempts"
        )

    def delete(self, submission_id: int) -> None:
        submission = self.repo.get_submission(submission_id)
        if submission is None:
            raise NotFoundError("submission", submission_id)

        speaker_id = submission.speaker_id
        details = {
            "submission_id": submission.id,
            "asset_requirement_id": submission.asset_requirement_id,
            "version": submission.version,
            "was_latest": submission.is_latest,
        }
        file_name = submission.file_name

        self.repo.delete_submission(submission)
        speaker = self.repo.lock_speaker(speaker_id)
        if speaker is not None:
            refresh_speaker_status(self.session, speaker)
            self.repo.append_activity(
                event_id=speaker.event_id,
                speaker_id=speaker_id,
                action="submission_deleted",
                description=f"{file_name} deleted",
                metadata_json=details,
            )
        self.session.commit()
        logger.info("Submission deleted id=%s speaker_id=%s", submission_id, speaker_id)

    def get(self, submission_id: int) -> Submission:
        submission = self.repo.get_submission(submission_id)
        if submission is None:
            raise NotFoundError("submission", submission_id)
        return submission

    def get_version_history(self, speaker_id: int, requirement_id: int) -> list[Submission]:
        return self.repo.list_versions(speaker_id, requirement_id)

    def list_latest_for_speaker(self, speaker_id: int) -> list[Submission]:
        return self.repo.list_latest_for_speaker(speaker_id)

    def list_latest_for_event(self, event_id: int) -> list[Submission]:
        return self.repo.list_latest_for_event(event_id)

    def _append_version(self, speaker_id: int, requirement: AssetRequirement, file_meta: FileMeta) -> Submission:
        speaker = self.repo.lock_speaker(speaker_id)
        if speaker is None:
            raise NotFoundError("speaker", speaker_id)

        previous = self.repo.get_latest_submission(speaker_id, requirement.id)
        if previous is not None:
            previous.is_latest = False
            self.session.flush()

        version = self.repo.max_version(speaker_id, requirement.id) + 1
        submission = self.repo.add_submission(
            Submission(
                speaker_id=speaker_id,
                asset_requirement_id=requirement.id,
                file_name=file_meta.file_name,
                file_size_bytes=file_meta.size_bytes,
                mime_type=file_meta.mime_type,
                image_width=file_meta.image_width,
                image_height=file_meta.image_height,
                version=version,
                replaces_submission_id=previous.id if previous is not None else None,
                is_latest=True,
            )
        )

        refresh_speaker_status(self.session, speaker)
        self.repo.append_activity(
            event_id=speaker.event_id,
            speaker_id=speaker_id,
            action="submission_uploaded",
            description=f"{file_meta.file_name} uploaded for {requirement.label} (v{version})",
            metadata_json={
                "submission_id": submission.id,
                "asset_requirement_id": requirement.id,
                "version": version,
            },
        )
        return submission
