"""
Encoder subprocess supervision against a fake encoder script.

Covers progress extraction from carriage-return separated stats lines,
stderr draining, failure diagnostics, cancellation and timeouts.
"""

import asyncio
import os
import time
from pathlib import Path

import pytest

from fakes import posix_only
from mediajobs.errors import EncoderUnavailableError
from mediajobs.services.process_supervisor import ProcessOutcome, ProcessSupervisor

pytestmark = posix_only


def _collector():
    seen = []

    async def callback(percent):
        seen.append(percent)

    return seen, callback


def _pid_gone(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return True
    return False


def test_progress_from_time_tokens(make_fake_ffmpeg, tmp_path):
    supervisor = ProcessSupervisor(
        executable=make_fake_ffmpeg(times=["00:00:02.50", "00:00:05.00", "00:00:07.50"]),
    )
    seen, callback = _collector()
    output = tmp_path / "out.mp4"

    run = asyncio.run(supervisor.run(
        ["-i", "in.mp4", "-y", str(output)],
        total_duration=10.0,
        progress_callback=callback,
    ))

    assert run.outcome == ProcessOutcome.SUCCEEDED
    assert run.success
    assert run.return_code == 0
    assert seen == [25.0, 50.0, 75.0, 100.0]
    assert output.read_bytes() == b"fake media payload"


def test_progress_never_goes_backwards(make_fake_ffmpeg, tmp_path):
    supervisor = ProcessSupervisor(
        executable=make_fake_ffmpeg(times=["00:00:06.00", "00:00:03.00", "00:00:15.00"]),
    )
    seen, callback = _collector()

    asyncio.run(supervisor.run(
        ["-y", str(tmp_path / "o")], total_duration=10.0, progress_callback=callback
    ))

    assert seen == [60.0, 100.0]


def test_unknown_duration_only_reports_completion(make_fake_ffmpeg, tmp_path):
    supervisor = ProcessSupervisor(executable=make_fake_ffmpeg(times=["00:00:01.00"]))
    seen, callback = _collector()

    run = asyncio.run(supervisor.run(
        ["-y", str(tmp_path / "o")], total_duration=0.0, progress_callback=callback
    ))

    assert run.success
    assert seen == [100.0]


def test_large_stderr_is_drained(make_fake_ffmpeg, tmp_path):
    supervisor = ProcessSupervisor(
        executable=make_fake_ffmpeg(noise_bytes=512 * 1024, times=["00:00:01.00"]),
        diagnostic_lines=50,
    )

    run = asyncio.run(asyncio.wait_for(
        supervisor.run(["-y", str(tmp_path / "o")], total_duration=2.0),
        timeout=30,
    ))

    assert run.success
    assert len(run.diagnostics.splitlines()) == 50


def test_non_zero_exit_keeps_diagnostics(make_fake_ffmpeg, tmp_path):
    supervisor = ProcessSupervisor(executable=make_fake_ffmpeg(
        exit_code=1,
        stderr_lines=["in.mp4: No such file or directory"],
    ))

    run = asyncio.run(supervisor.run(["-i", "in.mp4", "-y", str(tmp_path / "o")]))

    assert run.outcome == ProcessOutcome.FAILED
    assert run.return_code == 1
    assert "No such file or directory" in run.diagnostics
    assert not (tmp_path / "o").exists()


def test_cancel_terminates_process(make_fake_ffmpeg, tmp_path):
    supervisor = ProcessSupervisor(executable=make_fake_ffmpeg(hang=True), kill_grace=2.0)
    pids = []

    async def scenario():
        cancel_event = asyncio.Event()

        async def remember(process):
            pids.append(process.pid)
            asyncio.get_running_loop().call_later(0.3, cancel_event.set)

        return await supervisor.run(
            ["-y", str(tmp_path / "o")],
            cancel_event=cancel_event,
            process_callback=remember,
        )

    started = time.monotonic()
    run = asyncio.run(scenario())

    assert run.outcome == ProcessOutcome.CANCELLED
    assert time.monotonic() - started < 10
    assert _pid_gone(pids[0])


def test_cancel_escalates_to_kill(make_fake_ffmpeg, tmp_path):
    supervisor = ProcessSupervisor(
        executable=make_fake_ffmpeg(hang=True, ignore_term=True), kill_grace=0.2
    )
    pids = []

    async def scenario():
        cancel_event = asyncio.Event()

        async def remember(process):
            pids.append(process.pid)
            # Give the script time to install its SIGTERM handler
            asyncio.get_running_loop().call_later(0.5, cancel_event.set)

        return await supervisor.run(
            ["-y", str(tmp_path / "o")],
            cancel_event=cancel_event,
            process_callback=remember,
        )

    started = time.monotonic()
    run = asyncio.run(scenario())

    assert run.outcome == ProcessOutcome.CANCELLED
    assert time.monotonic() - started < 10
    assert _pid_gone(pids[0])


def test_already_cancelled_never_spawns(make_fake_ffmpeg, tmp_path):
    record = tmp_path / "calls.log"
    supervisor = ProcessSupervisor(executable=make_fake_ffmpeg(record=str(record)))

    async def scenario():
        cancel_event = asyncio.Event()
        cancel_event.set()
        return await supervisor.run(["-y", str(tmp_path / "o")], cancel_event=cancel_event)

    run = asyncio.run(scenario())

    assert run.outcome == ProcessOutcome.CANCELLED
    assert run.return_code is None
    assert not record.exists()


def test_timeout(make_fake_ffmpeg, tmp_path):
    supervisor = ProcessSupervisor(executable=make_fake_ffmpeg(hang=True), kill_grace=1.0)

    run = asyncio.run(supervisor.run(["-y", str(tmp_path / "o")], timeout=0.5))

    assert run.outcome == ProcessOutcome.TIMED_OUT
    assert not run.success


def test_task_cancellation_kills_process(make_fake_ffmpeg, tmp_path):
    supervisor = ProcessSupervisor(executable=make_fake_ffmpeg(hang=True), kill_grace=1.0)
    pids = []

    async def scenario():
        async def remember(process):
            pids.append(process.pid)

        task = asyncio.create_task(
            supervisor.run(["-y", str(tmp_path / "o")], process_callback=remember)
        )
        while not pids:
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())

    assert _pid_gone(pids[0])


def test_failing_progress_callback_does_not_abort(make_fake_ffmpeg, tmp_path):
    supervisor = ProcessSupervisor(executable=make_fake_ffmpeg(times=["00:00:01.00"]))

    async def broken(percent):
        raise RuntimeError("listener went away")

    run = asyncio.run(supervisor.run(
        ["-y", str(tmp_path / "o")], total_duration=4.0, progress_callback=broken
    ))

    assert run.success


def test_missing_executable_raises(tmp_path):
    supervisor = ProcessSupervisor(executable=str(tmp_path / "no-such-ffmpeg"))

    with pytest.raises(EncoderUnavailableError):
        asyncio.run(supervisor.run(["-y", str(tmp_path / "o")]))


def test_version(make_fake_ffmpeg, tmp_path):
    assert asyncio.run(ProcessSupervisor(executable=make_fake_ffmpeg()).get_version()) == "6.1.1"
    assert asyncio.run(
        ProcessSupervisor(executable=make_fake_ffmpeg(version_exit=1)).get_version()
    ) == ""
    assert asyncio.run(
        ProcessSupervisor(executable=str(Path(tmp_path) / "missing")).is_available()
    ) is False
