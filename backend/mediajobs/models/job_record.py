"""Finished-job history database model."""
from sqlalchemy import Column, DateTime, Float, Index, Integer, String, Text

from mediajobs.database import Base


class JobRecord(Base):
    """Snapshot of a job that reached a terminal state."""

    __tablename__ = "job_history"

    # Primary key
    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(String, nullable=False)

    # What was run
    job_type = Column(String, nullable=False)
    source_path = Column(String, nullable=False, default="")
    input_paths = Column(Text, default="[]")  # JSON list, concatenation inputs
    output_path = Column(String, nullable=False)
    options = Column(Text, default="{}")  # JSON string with codec, bitrate, crf, etc.

    # Outcome
    status = Column(String, nullable=False)  # succeeded, failed, canceled
    progress_percent = Column(Float, default=0.0)
    error_kind = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)
    processing_time_seconds = Column(Float, nullable=True)
    media_duration = Column(Float, nullable=True)
    output_size_bytes = Column(Integer, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # Indexes
    __table_args__ = (
        Index("idx_job_history_status", "status"),
        Index("idx_job_history_completed_at", "completed_at"),
    )
