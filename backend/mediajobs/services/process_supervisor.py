"""Encoder subprocess supervision: spawn, drain, progress, terminate, classify."""

import asyncio
import codecs
import logging
import os
import re
import signal
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence

from mediajobs.config import settings
from mediajobs.errors import EncoderUnavailableError
from mediajobs.services.command_builder import build_version_args, command_as_string
from mediajobs.utils.timecode import compute_progress, parse_elapsed_seconds

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], Awaitable[None]]
ProcessCallback = Callable[[asyncio.subprocess.Process], Awaitable[None]]

# ffmpeg rewrites its stats line with bare carriage returns.
_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_VERSION = re.compile(r"ffmpeg version (\S+)")

_READ_CHUNK = 4096


class ProcessOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


@dataclass
class ProcessRun:
    """How one encoder invocation ended."""

    outcome: ProcessOutcome
    return_code: Optional[int]
    diagnostics: str
    elapsed_seconds: float

    @property
    def success(self) -> bool:
        return self.outcome == ProcessOutcome.SUCCEEDED


class ProcessSupervisor:
    """Runs the encoder binary and watches it until it exits."""

    def __init__(
        self,
        executable: Optional[str] = None,
        kill_grace: Optional[float] = None,
        diagnostic_lines: Optional[int] = None,
    ):
        self.executable = executable or settings.FFMPEG_PATH
        self.kill_grace = kill_grace if kill_grace is not None else settings.KILL_GRACE_SECONDS
        self.diagnostic_lines = diagnostic_lines or settings.DIAGNOSTIC_TAIL_LINES

    async def get_version(self, timeout: Optional[float] = None) -> str:
        """
        Query the encoder version.

        Args:
            timeout: Seconds to wait for the answer

        Returns:
            Version string, or "" if the binary is missing or unresponsive
        """
        timeout = timeout if timeout is not None else settings.VERSION_TIMEOUT_SECONDS
        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *build_version_args(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.warning(f"Encoder not runnable at {self.executable}: {e}")
            return ""

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Encoder version query timed out after {timeout}s")
            process.kill()
            await process.wait()
            return ""

        if process.returncode != 0:
            return ""

        output = (stdout or stderr).decode(errors="replace").strip()
        if not output:
            return ""
        match = _VERSION.search(output)
        return match.group(1) if match else output.splitlines()[0]

    async def is_available(self) -> bool:
        return bool(await self.get_version())

    async def run(
        self,
        args: Sequence[str],
        total_duration: float = 0.0,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[asyncio.Event] = None,
        timeout: Optional[float] = None,
        process_callback: Optional[ProcessCallback] = None,
    ) -> ProcessRun:
        """
        Execute the encoder with real-time progress tracking.

        stderr is drained for the whole life of the process whether or not
        progress is being reported. If the cancel event fires or the timeout
        elapses first, the process group is terminated.

        Args:
            args: Encoder arguments (without the executable)
            total_duration: Probed media duration in seconds, 0 if unknown
            progress_callback: Async function called with percentages 0-100
            cancel_event: Set by the caller to request termination
            timeout: Optional limit in seconds for the whole run
            process_callback: Optional async function called with the process object

        Returns:
            ProcessRun describing the outcome

        Raises:
            EncoderUnavailableError: if the executable cannot be started
        """
        if cancel_event is not None and cancel_event.is_set():
            return ProcessRun(ProcessOutcome.CANCELLED, None, "", 0.0)

        logger.info(f"Executing: {command_as_string(self.executable, args)}")
        started = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=(os.name == "posix"),
            )
        except (FileNotFoundError, PermissionError) as e:
            raise EncoderUnavailableError(f"Encoder not available: {self.executable} ({e})") from e

        diagnostics: deque = deque(maxlen=self.diagnostic_lines)
        reporter = _ProgressReporter(total_duration, progress_callback)

        drain_task = asyncio.create_task(self._drain(process.stderr, diagnostics, reporter))
        wait_task = asyncio.create_task(process.wait())
        cancel_task = (
            asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
        )

        outcome: Optional[ProcessOutcome] = None
        try:
            if process_callback:
                await process_callback(process)

            waiters = {wait_task} if cancel_task is None else {wait_task, cancel_task}
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )

            if wait_task not in done:
                if cancel_task is not None and cancel_task in done:
                    outcome = ProcessOutcome.CANCELLED
                    logger.info(f"Cancelling encoder process {process.pid}")
                else:
                    outcome = ProcessOutcome.TIMED_OUT
                    logger.warning(f"Encoder process {process.pid} timed out after {timeout}s")
                await self._terminate(process)

            await wait_task
            await drain_task

        finally:
            if cancel_task is not None:
                cancel_task.cancel()
            if process.returncode is None:
                # The awaiting task itself was cancelled; never leave the encoder behind.
                await self._terminate(process)
            for task in (wait_task, drain_task):
                if not task.done():
                    task.cancel()

        return_code = process.returncode
        if outcome is None:
            outcome = ProcessOutcome.SUCCEEDED if return_code == 0 else ProcessOutcome.FAILED

        if outcome == ProcessOutcome.SUCCEEDED:
            await reporter.report(100.0)
        elif outcome == ProcessOutcome.FAILED:
            logger.error(f"Encoder failed with exit code {return_code}")

        return ProcessRun(
            outcome=outcome,
            return_code=return_code,
            diagnostics="\n".join(diagnostics),
            elapsed_seconds=time.monotonic() - started,
        )

    async def _drain(
        self,
        stream: asyncio.StreamReader,
        diagnostics: deque,
        reporter: "_ProgressReporter",
    ):
        """Read stderr until EOF, splitting on CR and LF."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""

        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                break
            pending += decoder.decode(chunk)
            *lines, pending = _LINE_BREAK.split(pending)
            for line in lines:
                await self._handle_line(line, diagnostics, reporter)

        pending += decoder.decode(b"", final=True)
        if pending:
            await self._handle_line(pending, diagnostics, reporter)

    async def _handle_line(self, line: str, diagnostics: deque, reporter: "_ProgressReporter"):
        line = line.strip()
        if not line:
            return
        diagnostics.append(line)

        elapsed = parse_elapsed_seconds(line)
        if elapsed is not None:
            await reporter.report(compute_progress(elapsed, reporter.total_duration))

    async def _terminate(self, process: asyncio.subprocess.Process):
        """SIGTERM the process group, then SIGKILL if it outlives the grace period."""
        if process.returncode is not None:
            return

        try:
            self._send(process, signal.SIGTERM)
        except ProcessLookupError:
            logger.warning(f"Process {process.pid} already terminated")
            await process.wait()
            return

        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace)
        except asyncio.TimeoutError:
            try:
                self._send(process, signal.SIGKILL if os.name == "posix" else signal.SIGTERM)
            except ProcessLookupError:
                pass  # Process already gone
            await process.wait()

    @staticmethod
    def _send(process: asyncio.subprocess.Process, sig: int):
        if os.name == "posix":
            os.killpg(os.getpgid(process.pid), sig)
        elif sig == signal.SIGTERM:
            process.terminate()
        else:
            process.kill()


class _ProgressReporter:
    """Forwards non-decreasing percentages to one job's progress callback."""

    def __init__(self, total_duration: float, callback: Optional[ProgressCallback]):
        self.total_duration = total_duration if total_duration and total_duration > 0 else 0.0
        self.callback = callback
        self.last_percent = 0.0

    async def report(self, percent: float):
        if self.callback is None or percent <= self.last_percent:
            return
        self.last_percent = percent
        try:
            await self.callback(percent)
        except Exception as e:
            logger.error(f"Progress callback failed: {e}")
