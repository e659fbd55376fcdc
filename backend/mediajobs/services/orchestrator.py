"""Transcoding orchestrator: turns one Job into encoder invocations and a JobResult."""

import asyncio
import logging
import os
import tempfile
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from mediajobs.config import settings
from mediajobs.errors import EncoderUnavailableError, ErrorKind
from mediajobs.models.job import Job, JobResult, JobType
from mediajobs.services import command_builder
from mediajobs.services.media_probe import MediaProbe
from mediajobs.services.process_supervisor import (
    ProcessOutcome,
    ProcessRun,
    ProcessSupervisor,
    ProgressCallback,
)

logger = logging.getLogger(__name__)


class TranscodeOrchestrator:
    """Executes one job end-to-end. Never raises for job-level failures."""

    def __init__(
        self,
        supervisor: Optional[ProcessSupervisor] = None,
        probe: Optional[MediaProbe] = None,
        temp_dir: Optional[str] = None,
        thumbnail_timeout: Optional[float] = None,
    ):
        self.supervisor = supervisor or ProcessSupervisor()
        self.probe = probe or MediaProbe()
        self.temp_dir = temp_dir or settings.TEMP_DIR
        self.thumbnail_timeout = (
            thumbnail_timeout if thumbnail_timeout is not None else settings.THUMBNAIL_TIMEOUT_SECONDS
        )
        self._encoder_version: Optional[str] = None
        self._handlers = {
            JobType.CONVERT: self._single_input,
            JobType.EXTRACT_AUDIO: self._single_input,
            JobType.COMPRESS: self._single_input,
            JobType.CONCATENATE: self._concatenate,
            JobType.THUMBNAIL: self._thumbnail,
        }

    async def check_encoder(self) -> bool:
        """Availability check; a positive answer is remembered."""
        if self._encoder_version:
            return True
        version = await self.supervisor.get_version()
        if version:
            logger.info(f"Encoder available: version {version}")
            self._encoder_version = version
            return True
        return False

    async def get_version(self) -> str:
        await self.check_encoder()
        return self._encoder_version or ""

    async def run(
        self,
        job: Job,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> JobResult:
        """
        Execute a job and classify its outcome.

        Args:
            job: Job to execute (read only)
            progress_callback: Async function called with percentages 0-100
            cancel_event: Set to request cancellation

        Returns:
            JobResult; every failure, including unexpected exceptions,
            is reported here rather than raised
        """
        started = time.monotonic()
        logger.info(f"Starting {job.job_type.value} job {job.id}: {job.inputs()} -> {job.output_path}")

        try:
            if not await self.check_encoder():
                return self._failure(
                    ErrorKind.ENCODER_UNAVAILABLE,
                    f"Encoder not available: {self.supervisor.executable}",
                    started,
                )

            handler = self._handlers[job.job_type]
            return await handler(job, progress_callback, cancel_event, started)

        except EncoderUnavailableError as e:
            logger.error(f"Encoder could not be started for job {job.id}: {e}")
            self._encoder_version = None
            return self._failure(ErrorKind.ENCODER_UNAVAILABLE, str(e), started)
        except Exception as e:
            logger.error(f"Exception in {job.job_type.value} job {job.id}: {e}", exc_info=True)
            return self._failure(
                ErrorKind.INTERNAL_EXCEPTION,
                f"{_operation_name(job.job_type)} failed: {e}",
                started,
            )

    # Job types

    async def _single_input(self, job, progress_callback, cancel_event, started) -> JobResult:
        missing = self._missing_input(job.source_path)
        if missing:
            return _input_not_found(missing, started)

        if _is_set(cancel_event):
            return self._cancelled(started)
        duration = await self.probe.get_duration(job.source_path)
        args = command_builder.build_args(job.job_type, job.source_path, job.output_path, job.options)
        _ensure_parent(job.output_path)

        run = await self.supervisor.run(
            args,
            total_duration=duration,
            progress_callback=progress_callback,
            cancel_event=cancel_event,
        )
        return self._classify(run, job.output_path, duration, started)

    async def _concatenate(self, job, progress_callback, cancel_event, started) -> JobResult:
        inputs = job.inputs()
        if not inputs:
            return self._failure(ErrorKind.INPUT_NOT_FOUND, "No input files provided", started)
        for path in inputs:
            missing = self._missing_input(path)
            if missing:
                return _input_not_found(missing, started)

        total_duration = 0.0
        for path in inputs:
            if _is_set(cancel_event):
                return self._cancelled(started)
            total_duration += await self.probe.get_duration(path)

        _ensure_parent(job.output_path)
        with self._manifest(inputs) as manifest_path:
            args = command_builder.build_concat_args(manifest_path, job.output_path, job.options)
            run = await self.supervisor.run(
                args,
                total_duration=total_duration,
                progress_callback=progress_callback,
                cancel_event=cancel_event,
            )
        return self._classify(run, job.output_path, total_duration, started)

    async def _thumbnail(self, job, progress_callback, cancel_event, started) -> JobResult:
        missing = self._missing_input(job.source_path)
        if missing:
            return _input_not_found(missing, started)

        _ensure_parent(job.output_path)
        with self._scratch_file(job.output_path) as scratch_path:
            args = command_builder.build_thumbnail_args(
                job.source_path, scratch_path, job.options.seek_seconds
            )
            run = await self.supervisor.run(
                args,
                cancel_event=cancel_event,
                timeout=self.thumbnail_timeout,
            )
            if run.success:
                if not os.path.isfile(scratch_path):
                    return self._failure(
                        ErrorKind.ENCODER_NON_ZERO_EXIT,
                        run.diagnostics or "Encoder produced no thumbnail",
                        started,
                    )
                os.replace(scratch_path, job.output_path)
        return self._classify(run, job.output_path, None, started)

    # Helpers

    def _missing_input(self, path: str) -> Optional[str]:
        if not path or not os.path.isfile(path):
            return path or "<empty>"
        return None

    @contextmanager
    def _manifest(self, input_paths: list[str]) -> Iterator[str]:
        """Temporary concat manifest, removed on every exit path."""
        Path(self.temp_dir).mkdir(parents=True, exist_ok=True)
        fd, manifest_path = tempfile.mkstemp(prefix="concat_", suffix=".txt", dir=self.temp_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(command_builder.format_manifest(input_paths))
            logger.debug(f"Concat manifest written to {manifest_path} ({len(input_paths)} inputs)")
            yield manifest_path
        finally:
            _remove_quietly(manifest_path)

    @contextmanager
    def _scratch_file(self, output_path: str) -> Iterator[str]:
        """Scratch image next to the output, removed on every exit path."""
        out = Path(output_path)
        scratch = out.with_name(f".{out.stem}.{uuid.uuid4().hex[:8]}.partial{out.suffix}")
        try:
            yield str(scratch)
        finally:
            _remove_quietly(str(scratch))

    def _classify(
        self,
        run: ProcessRun,
        output_path: str,
        media_duration: Optional[float],
        started: float,
    ) -> JobResult:
        elapsed = time.monotonic() - started

        if run.outcome == ProcessOutcome.SUCCEEDED:
            size = os.path.getsize(output_path) if os.path.isfile(output_path) else None
            return JobResult(
                success=True,
                output_path=output_path,
                processing_time_seconds=elapsed,
                media_duration=media_duration,
                output_size_bytes=size,
            )

        if run.outcome == ProcessOutcome.CANCELLED:
            kind, message = ErrorKind.CANCELLED, "Operation was cancelled"
        elif run.outcome == ProcessOutcome.TIMED_OUT:
            kind, message = ErrorKind.ENCODER_TIMEOUT, "Encoder timed out"
        else:
            kind = ErrorKind.ENCODER_NON_ZERO_EXIT
            message = run.diagnostics or f"Encoder exited with code {run.return_code}"

        return JobResult(
            success=False,
            error_message=message,
            error_kind=kind,
            processing_time_seconds=elapsed,
            media_duration=media_duration,
        )

    def _cancelled(self, started: float) -> JobResult:
        return self._failure(ErrorKind.CANCELLED, "Operation was cancelled", started)

    @staticmethod
    def _failure(kind: ErrorKind, message: str, started: float) -> JobResult:
        return JobResult(
            success=False,
            error_message=message,
            error_kind=kind,
            processing_time_seconds=time.monotonic() - started,
        )


def _input_not_found(path: str, started: float) -> JobResult:
    return JobResult(
        success=False,
        error_message=f"Input file not found: {path}",
        error_kind=ErrorKind.INPUT_NOT_FOUND,
        processing_time_seconds=time.monotonic() - started,
    )


def _is_set(event: Optional[asyncio.Event]) -> bool:
    return event is not None and event.is_set()


def _operation_name(job_type: JobType) -> str:
    return {
        JobType.CONVERT: "Conversion",
        JobType.EXTRACT_AUDIO: "Audio extraction",
        JobType.COMPRESS: "Compression",
        JobType.CONCATENATE: "Concatenation",
        JobType.THUMBNAIL: "Thumbnail generation",
    }[job_type]


def _ensure_parent(path: str):
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def _remove_quietly(path: str):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Could not remove temporary file {path}: {e}")
