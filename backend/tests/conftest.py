"""
Shared fixtures: stand-in encoder and prober executables.

The fake binaries are small Python scripts that behave like ffmpeg/ffprobe
from the outside: they answer -version, write `time=` stats lines separated
by carriage returns, create the output file and exit with a chosen code.
"""

import stat
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))


FAKE_FFMPEG = '''#!{python}
import os
import signal
import sys
import time

BEHAVIOR = {behavior!r}

args = sys.argv[1:]
if args == ["-version"]:
    if BEHAVIOR.get("version_exit", 0):
        sys.exit(BEHAVIOR["version_exit"])
    print("ffmpeg version 6.1.1 Copyright (c) 2000-2023 the FFmpeg developers")
    sys.exit(0)

if BEHAVIOR.get("ignore_term"):
    signal.signal(signal.SIGTERM, signal.SIG_IGN)

record = BEHAVIOR.get("record")
if record:
    with open(record, "a") as fh:
        fh.write(" ".join(args) + "\\n")
        if "concat" in args:
            with open(args[args.index("-i") + 1]) as manifest:
                fh.write(manifest.read())

err = sys.stderr
err.write("ffmpeg version 6.1.1\\n")
noise = BEHAVIOR.get("noise_bytes", 0)
while noise > 0:
    err.write("x" * 79 + "\\n")
    noise -= 80
for t in BEHAVIOR.get("times", []):
    err.write("frame=  120 fps= 30 q=28.0 size=  256kB time=" + t + " bitrate= 100.0kbits/s speed=1x\\r")
    err.flush()
for line in BEHAVIOR.get("stderr_lines", []):
    err.write(line + "\\n")
err.flush()

if BEHAVIOR.get("hang"):
    time.sleep(60)

exit_code = BEHAVIOR.get("exit_code", 0)
if exit_code == 0 and BEHAVIOR.get("write_output", True):
    with open(args[-1], "wb") as fh:
        fh.write(b"fake media payload")
sys.exit(exit_code)
'''


FAKE_FFPROBE = '''#!{python}
import json
import os
import sys

DURATIONS = {durations!r}
EXIT_CODE = {exit_code!r}

if EXIT_CODE:
    sys.stderr.write("Invalid data found when processing input\\n")
    sys.exit(EXIT_CODE)

name = os.path.basename(sys.argv[-1])
duration = DURATIONS.get(name, DURATIONS.get("*", 10.0))
print(json.dumps({{
    "streams": [
        {{
            "index": 0,
            "codec_name": "h264",
            "codec_type": "video",
            "width": 1920,
            "height": 1080,
            "r_frame_rate": "30000/1001"
        }},
        {{
            "index": 1,
            "codec_name": "aac",
            "codec_type": "audio",
            "sample_rate": "48000"
        }}
    ],
    "format": {{
        "filename": sys.argv[-1],
        "format_name": "mov,mp4,m4a,3gp,3g2,mj2",
        "duration": "%.6f" % duration,
        "bit_rate": "2500000"
    }}
}}, indent=4))
'''


def _write_script(path: Path, content: str) -> str:
    path.write_text(content)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def make_fake_ffmpeg(tmp_path):
    """Factory writing a fake encoder with the given behavior; returns its path."""
    counter = {"n": 0}

    def _make(**behavior):
        counter["n"] += 1
        script = tmp_path / f"ffmpeg_{counter['n']}"
        return _write_script(script, FAKE_FFMPEG.format(python=sys.executable, behavior=behavior))

    return _make


@pytest.fixture
def make_fake_ffprobe(tmp_path):
    """Factory writing a fake prober reporting per-file durations."""

    def _make(durations=None, exit_code=0):
        script = tmp_path / "ffprobe"
        return _write_script(
            script,
            FAKE_FFPROBE.format(
                python=sys.executable,
                durations=durations or {},
                exit_code=exit_code,
            ),
        )

    return _make


@pytest.fixture
def media_file(tmp_path):
    """An existing input file; contents are irrelevant to the fakes."""
    path = tmp_path / "media" / "input.mp4"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x00" * 1024)
    return str(path)
