from __future__ import annotations

from pathlib import PurePath
from typing import Literal

from pydantic import BaseModel, Field, field_validator

SubmissionStatus = Literal["pending", "partial", "complete"]
ReminderStatus = Literal["pending", "sent", "failed"]
AssetType = Literal["headshot", "bio", "presentation", "logo", "video", "other"]


class FileMeta(BaseModel):
    file_name: str
    size_bytes: int
    mime_type: str
    image_width: int | None = None
    image_height: int | None = None

    @field_validator("file_name", "mime_type")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("size_bytes")
    @classmethod
    def validate_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("size_bytes must be at least 1")
        return value

    @property
    def extension(self) -> str:
        return PurePath(self.file_name).suffix.lower()

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")


class ReminderOverrides(BaseModel):
    email_subject: str | None = Field(default=None, max_length=255)
    email_body: str | None = None


class GuardDecision(BaseModel):
    allowed: bool
    reason: str = ""


class JobResult(BaseModel):
    speaker_id: int
    status: Literal["sent", "skipped"]
    reminder_id: int | None = None
    message: str = ""


class SweepResult(BaseModel):
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    failed_speaker_ids: list[int] = Field(default_factory=list)


class CompletionStats(BaseModel):
    event_id: int
    total_speakers: int = 0
    complete_speakers: int = 0
    partial_speakers: int = 0
    pending_speakers: int = 0
    completion_rate: int = 0
    required_assets_expected: int = 0
    required_assets_received: int = 0
