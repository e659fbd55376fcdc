"""Job domain models."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from mediajobs.errors import ErrorKind


class JobType(str, Enum):
    """Kind of media operation a job performs."""

    CONVERT = "convert"
    EXTRACT_AUDIO = "extract_audio"
    COMPRESS = "compress"
    CONCATENATE = "concatenate"
    THUMBNAIL = "thumbnail"


class JobStatus(str, Enum):
    """Lifecycle state of a job."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset(
    {JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELED}
)

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.CANCELED}),
    JobStatus.RUNNING: TERMINAL_STATUSES,
    JobStatus.SUCCEEDED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELED: frozenset(),
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MediaOptions(BaseModel):
    """Encoder options. Unset fields leave the choice to the encoder."""

    video_codec: Optional[str] = None
    audio_codec: Optional[str] = Field(
        default=None,
        description="Audio codec, or target format name (mp3/aac/wav/flac) for audio extraction",
    )
    video_bitrate_kbps: int = Field(default=0, ge=0)
    audio_bitrate_kbps: int = Field(default=0, ge=0)
    width: int = Field(default=0, ge=0)
    height: int = Field(default=0, ge=0)
    crf: Optional[int] = Field(default=None, ge=0, le=51, description="Constant Rate Factor (0-51)")
    extra_args: Optional[str] = Field(default=None, description="Additional encoder arguments")
    seek_seconds: float = Field(default=0.0, ge=0, description="Thumbnail timestamp")


class MediaInfo(BaseModel):
    """Metadata scraped from the prober output."""

    file_name: str = ""
    format_name: str = ""
    duration_seconds: float = 0.0
    video_codec: str = ""
    audio_codec: str = ""
    width: int = 0
    height: int = 0
    frame_rate: float = 0.0
    bit_rate: int = 0
    size_bytes: int = 0


class JobResult(BaseModel):
    """Outcome of one orchestrator run."""

    success: bool
    output_path: Optional[str] = None
    error_message: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    processing_time_seconds: float = 0.0
    media_duration: Optional[float] = None
    output_size_bytes: Optional[int] = None


class QueueConfig(BaseModel):
    """Job queue configuration."""

    max_concurrent: int = Field(default=1, ge=1, description="Number of worker loops")
    retry_count: int = Field(default=0, ge=0, description="Reserved; no automatic retries")


class Job(BaseModel):
    """A single requested media operation and its lifecycle state."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, frozen=True)
    source_path: str = ""
    input_paths: list[str] = Field(default_factory=list)
    output_path: str
    job_type: JobType = JobType.CONVERT
    options: MediaOptions = Field(default_factory=MediaOptions)

    status: JobStatus = JobStatus.QUEUED
    progress: float = 0.0

    created_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    error: Optional[str] = None
    result: Optional[JobResult] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def inputs(self) -> list[str]:
        """Ordered input paths; single-input jobs fall back to source_path."""
        if self.input_paths:
            return list(self.input_paths)
        return [self.source_path] if self.source_path else []
