"""Pydantic schemas for API requests and responses."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from mediajobs.models.job import Job, JobType, MediaOptions


class JobCreate(BaseModel):
    """Schema for creating a single job."""
    id: Optional[str] = Field(default=None, min_length=1, description="Caller-supplied job id")
    job_type: JobType = JobType.CONVERT
    source_path: str = ""
    input_paths: list[str] = Field(default_factory=list, description="Ordered inputs for concatenation")
    output_path: str = Field(min_length=1)
    options: MediaOptions = Field(default_factory=MediaOptions)

    def to_job(self) -> Job:
        fields = self.model_dump(exclude={"id", "options"})
        if self.id:
            fields["id"] = self.id
        return Job(options=self.options.model_copy(), **fields)


class JobBatchCreate(BaseModel):
    """Schema for creating multiple jobs."""
    jobs: list[JobCreate]


class JobCreateResponse(BaseModel):
    """Schema for job creation response."""
    job_ids: list[str]


class JobListResponse(BaseModel):
    """Schema for job list response."""
    jobs: list[Job]
    total: int


class EncoderInfo(BaseModel):
    """Schema for encoder availability response."""
    available: bool
    version: str
    executable: str


class HistoryRecordResponse(BaseModel):
    """Schema for a finished-job history record."""
    id: int
    job_id: str
    job_type: str
    source_path: str
    input_paths: str
    output_path: str
    options: str
    status: str
    progress_percent: float
    error_kind: Optional[str]
    error_message: Optional[str]
    processing_time_seconds: Optional[float]
    media_duration: Optional[float]
    output_size_bytes: Optional[int]
    created_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


class HistoryListResponse(BaseModel):
    """Schema for history list response."""
    records: list[HistoryRecordResponse]
    total: int
