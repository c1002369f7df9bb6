from __future__ import annotations

import logging
from collections.abc import Collection

from sqlalchemy.orm import Session

from stageasset.core.guards import OwnershipCheck
from stageasset.db.base import utcnow
from stageasset.db.models import Speaker
from stageasset.db.repositories import Repository
from stageasset.errors import NotFoundError
from stageasset.types import CompletionStats, SubmissionStatus

logger = logging.getLogger(__name__)


def compute_status(required_ids: Collection[int], latest_submitted_ids: Collection[int]) -> SubmissionStatus:
    """Derive a speaker's completion status.

    A speaker with no current submission is pending even when the event has
    no required slots. Otherwise an empty required set means complete, and a
    non-empty one is complete only when every required id has a latest
    submission.
    """
    if not latest_submitted_ids:
        return "pending"
    if not required_ids:
        return "complete"
    if set(required_ids) <= set(latest_submitted_ids):
        return "complete"
    return "partial"


def refresh_speaker_status(session: Session, speaker: Speaker, *, restamp: bool = True) -> SubmissionStatus:
    """Recompute and store the speaker's status without committing.

    submitted_at is stamped whenever a ledger change leaves the speaker
    complete. With restamp=False only a transition into complete stamps it.
    It is never cleared when the status regresses.
    """
    repo = Repository(session)
    status = compute_status(
        repo.required_requirement_ids(speaker.event_id),
        repo.latest_requirement_ids(speaker.id),
    )
    previous = speaker.submission_status
    if status != previous:
        logger.info(
            "Speaker status changed speaker_id=%s %s -> %s",
            speaker.id,
            previous,
            status,
        )
    speaker.submission_status = status
    if status == "complete" and (restamp or previous != "complete" or speaker.submitted_at is None):
        speaker.submitted_at = utcnow()
    session.flush()
    return status


def recompute_all(session: Session, event_id: int | None = None) -> dict[str, int]:
    repo = Repository(session)
    updated = 0
    unchanged = 0
    for speaker in repo.list_speakers(event_id=event_id):
        before = speaker.submission_status
        after = refresh_speaker_status(session, speaker, restamp=False)
        if before == after:
            unchanged += 1
        else:
            updated += 1
    session.commit()
    return {"updated": updated, "unchanged": unchanged}


def completion_stats(session: Session, event_id: int, *, owner_id: int | None = None) -> CompletionStats:
    """Roll up the stored speaker statuses of one event.

    completion_rate is the share of complete speakers as a whole percentage,
    rounded half up; an event without speakers reports 0.
    """
    repo = Repository(session)
    event = repo.get_event(event_id)
    if event is None:
        raise NotFoundError("event", event_id)
    OwnershipCheck().ensure_event_access(owner_id, event)

    counts = repo.count_speakers_by_status(event_id)
    total = sum(counts.values())
    complete = counts.get("complete", 0)
    return CompletionStats(
        event_id=event_id,
        total_speakers=total,
        complete_speakers=complete,
        partial_speakers=counts.get("partial", 0),
        pending_speakers=counts.get("pending", 0),
        completion_rate=(complete * 200 + total) // (2 * total) if total else 0,
        required_assets_expected=total * len(repo.required_requirement_ids(event_id)),
        required_assets_received=repo.count_latest_required_submissions(event_id),
    )
