from __future__ import annotations

import json
from typing import Any

import typer
from pydantic import ValidationError as PydanticValidationError

from stageasset.core.completion import completion_stats, recompute_all
from stageasset.core.delivery import ReminderDelivery
from stageasset.core.jobs import run_reminder_sweep
from stageasset.core.ledger import SubmissionLedger
from stageasset.db.init import init_database
from stageasset.db.models import Reminder, Submission
from stageasset.db.session import SessionLocal
from stageasset.errors import StageAssetError, ValidationError
from stageasset.logging_config import configure_logging
from stageasset.types import FileMeta, ReminderOverrides

app = typer.Typer(help="StageAsset CLI")
submissions_app = typer.Typer(help="Speaker asset submissions")
speakers_app = typer.Typer(help="Speaker completion tracking")
reminders_app = typer.Typer(help="Reminder delivery")

app.add_typer(submissions_app, name="submissions")
app.add_typer(speakers_app, name="speakers")
app.add_typer(reminders_app, name="reminders")

_INITIALIZED = False


def ensure_initialized() -> None:
    global _INITIALIZED
    if _INITIALIZED:
        return
    init_database()
    _INITIALIZED = True


def _fail(exc: StageAssetError) -> None:
    payload: dict[str, Any] = {"ok": False, "error": exc.__class__.__name__, "message": str(exc)}
    if isinstance(exc, ValidationError):
        payload["violations"] = exc.violations
    typer.echo(json.dumps(payload, indent=2), err=True)
    raise typer.Exit(code=1)


def _submission_dict(row: Submission) -> dict[str, Any]:
    return {
        "id": row.id,
        "speaker_id": row.speaker_id,
        "asset_requirement_id": row.asset_requirement_id,
        "file_name": row.file_name,
        "file_size_bytes": row.file_size_bytes,
        "mime_type": row.mime_type,
        "version": row.version,
        "replaces_submission_id": row.replaces_submission_id,
        "is_latest": row.is_latest,
        "uploaded_at": row.uploaded_at.isoformat() if row.uploaded_at else None,
    }


def _reminder_dict(row: Reminder) -> dict[str, Any]:
    return {
        "id": row.id,
        "speaker_id": row.speaker_id,
        "event_id": row.event_id,
        "status": row.status,
        "scheduled_for": row.scheduled_for.isoformat() if row.scheduled_for else None,
        "sent_at": row.sent_at.isoformat() if row.sent_at else None,
        "email_subject": row.email_subject,
        "error_message": row.error_message,
    }


@app.command("init")
def init_cmd() -> None:
    """Create the database schema."""
    configure_logging()
    result = init_database()
    typer.echo(json.dumps({"ok": True, **result}, indent=2))


@submissions_app.command("add")
def submissions_add(
    speaker_id: int = typer.Option(..., "--speaker-id"),
    requirement_id: int = typer.Option(..., "--requirement-id"),
    file_name: str = typer.Option(..., "--file-name"),
    size_bytes: int = typer.Option(..., "--size-bytes"),
    mime_type: str = typer.Option(..., "--mime-type"),
    image_width: int | None = typer.Option(None, "--image-width"),
    image_height: int | None = typer.Option(None, "--image-height"),
) -> None:
    """Record metadata for a file that has already been stored."""
    configure_logging()
    ensure_initialized()
    try:
        file_meta = FileMeta(
            file_name=file_name,
            size_bytes=size_bytes,
            mime_type=mime_type,
            image_width=image_width,
            image_height=image_height,
        )
    except PydanticValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    with SessionLocal() as db:
        try:
            submission = SubmissionLedger(db).create(speaker_id, requirement_id, file_meta)
        except StageAssetError as exc:
            _fail(exc)
        typer.echo(json.dumps(_submission_dict(submission), indent=2))


@submissions_app.command("delete")
def submissions_delete(submission_id: int = typer.Option(..., "--submission-id")) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        try:
            SubmissionLedger(db).delete(submission_id)
        except StageAssetError as exc:
            _fail(exc)
        typer.echo(json.dumps({"ok": True, "deleted": submission_id}, indent=2))


@submissions_app.command("history")
def submissions_history(
    speaker_id: int = typer.Option(..., "--speaker-id"),
    requirement_id: int = typer.Option(..., "--requirement-id"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        rows = SubmissionLedger(db).get_version_history(speaker_id, requirement_id)
        typer.echo(json.dumps([_submission_dict(row) for row in rows], indent=2))


@submissions_app.command("latest")
def submissions_latest(
    speaker_id: int | None = typer.Option(None, "--speaker-id"),
    event_id: int | None = typer.Option(None, "--event-id"),
) -> None:
    configure_logging()
    ensure_initialized()
    if (speaker_id is None) == (event_id is None):
        raise typer.BadParameter("pass exactly one of --speaker-id or --event-id")
    with SessionLocal() as db:
        ledger = SubmissionLedger(db)
        if speaker_id is not None:
            rows = ledger.list_latest_for_speaker(speaker_id)
        else:
            rows = ledger.list_latest_for_event(event_id)
        typer.echo(json.dumps([_submission_dict(row) for row in rows], indent=2))


@speakers_app.command("recompute-status")
def speakers_recompute_status(event_id: int | None = typer.Option(None, "--event-id")) -> None:
    """Re-derive every speaker's submission status from the ledger."""
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        result = recompute_all(db, event_id=event_id)
        typer.echo(json.dumps({"ok": True, **result}, indent=2))


@speakers_app.command("stats")
def speakers_stats(
    event_id: int = typer.Option(..., "--event-id"),
    owner_id: int | None = typer.Option(None, "--owner-id"),
) -> None:
    """Summarize how many speakers of an event have completed their submissions."""
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        try:
            stats = completion_stats(db, event_id, owner_id=owner_id)
        except StageAssetError as exc:
            _fail(exc)
        typer.echo(json.dumps(stats.model_dump(), indent=2))


@reminders_app.command("sweep")
def reminders_sweep() -> None:
    """Send reminders to every eligible speaker. Meant to be run from cron."""
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        result = run_reminder_sweep(db)
        typer.echo(json.dumps(result.model_dump(), indent=2))
    if result.failed:
        raise typer.Exit(code=2)


@reminders_app.command("send")
def reminders_send(
    speaker_id: int = typer.Option(..., "--speaker-id"),
    subject: str | None = typer.Option(None, "--subject"),
    body: str | None = typer.Option(None, "--body"),
    owner_id: int | None = typer.Option(None, "--owner-id"),
) -> None:
    configure_logging()
    ensure_initialized()
    try:
        overrides = ReminderOverrides(email_subject=subject, email_body=body)
    except PydanticValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    with SessionLocal() as db:
        try:
            reminder = ReminderDelivery(db).trigger(speaker_id, overrides, owner_id=owner_id)
        except StageAssetError as exc:
            _fail(exc)
        typer.echo(json.dumps(_reminder_dict(reminder), indent=2))


@reminders_app.command("retry")
def reminders_retry(
    reminder_id: int = typer.Option(..., "--reminder-id"),
    owner_id: int | None = typer.Option(None, "--owner-id"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        try:
            reminder = ReminderDelivery(db).retry(reminder_id, owner_id=owner_id)
        except StageAssetError as exc:
            _fail(exc)
        typer.echo(json.dumps(_reminder_dict(reminder), indent=2))


@reminders_app.command("list")
def reminders_list(
    speaker_id: int | None = typer.Option(None, "--speaker-id"),
    event_id: int | None = typer.Option(None, "--event-id"),
    failed: bool = typer.Option(False, "--failed"),
    owner_id: int | None = typer.Option(None, "--owner-id"),
) -> None:
    configure_logging()
    ensure_initialized()
    with SessionLocal() as db:
        delivery = ReminderDelivery(db)
        try:
            if failed:
                rows = delivery.list_failed(owner_id=owner_id)
            elif speaker_id is not None:
                rows = delivery.list_for_speaker(speaker_id, owner_id=owner_id)
            elif event_id is not None:
                rows = delivery.list_for_event(event_id, owner_id=owner_id)
            else:
                raise typer.BadParameter("pass --failed, --speaker-id or --event-id")
        except StageAssetError as exc:
            _fail(exc)
        typer.echo(json.dumps([_reminder_dict(row) for row in rows], indent=2))
