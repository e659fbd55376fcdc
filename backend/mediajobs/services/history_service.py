"""Records finished jobs in the history table."""
import json
import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mediajobs.database import AsyncSessionLocal
from mediajobs.models.job import TERMINAL_STATUSES, Job, JobStatus
from mediajobs.models.job_record import JobRecord

logger = logging.getLogger(__name__)


class HistoryService:
    """Queue listener that writes a row for every job reaching a terminal state."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal):
        self.session_factory = session_factory

    async def on_queue_event(self, message: dict):
        """Queue listener; ignores everything but terminal job_status events."""
        if message.get("type") != "job_status" or "job" not in message:
            return
        if JobStatus(message["status"]) not in TERMINAL_STATUSES:
            return
        await self.record(Job.model_validate(message["job"]))

    async def record(self, job: Job) -> JobRecord:
        """
        Store a finished job.

        Args:
            job: Job snapshot in a terminal state

        Returns:
            The stored record
        """
        result = job.result
        record = JobRecord(
            job_id=job.id,
            job_type=job.job_type.value,
            source_path=job.source_path,
            input_paths=json.dumps(job.input_paths),
            output_path=job.output_path,
            options=job.options.model_dump_json(exclude_defaults=True),
            status=job.status.value,
            progress_percent=job.progress,
            error_kind=result.error_kind.value if result and result.error_kind else None,
            error_message=job.error,
            processing_time_seconds=result.processing_time_seconds if result else None,
            media_duration=result.media_duration if result else None,
            output_size_bytes=result.output_size_bytes if result else None,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )

        async with self.session_factory() as db:
            db.add(record)
            await db.commit()
            await db.refresh(record)

        logger.info(f"Recorded job {job.id} ({job.status.value}) in history")
        return record

    async def list_records(
        self,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        """
        List history records, newest first.

        Args:
            status: Optional status filter
            limit: Maximum number of records to return
            offset: Offset for pagination

        Returns:
            Tuple of (records, total matching)
        """
        query = select(JobRecord).order_by(JobRecord.id.desc())
        if status:
            query = query.where(JobRecord.status == status)

        async with self.session_factory() as db:
            total = (
                await db.execute(select(func.count()).select_from(query.subquery()))
            ).scalar()
            rows = await db.execute(query.limit(limit).offset(offset))
            return list(rows.scalars().all()), total
