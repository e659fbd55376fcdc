"""FFprobe wrapper for extracting media metadata."""
import asyncio
import logging
import os
import re
from typing import Optional

from mediajobs.config import settings
from mediajobs.models.job import MediaInfo
from mediajobs.services.command_builder import build_probe_args

logger = logging.getLogger(__name__)

# Probe output is scraped by field name rather than parsed as a schema.
_FORMAT_SECTION = re.compile(r'"format"\s*:\s*\{')
_STREAM_START = re.compile(r'"index"\s*:\s*\d+')
_DURATION = re.compile(r'"duration"\s*:\s*"([\d.]+)"')
_FORMAT_NAME = re.compile(r'"format_name"\s*:\s*"([^"]+)"')
_BIT_RATE = re.compile(r'"bit_rate"\s*:\s*"(\d+)"')
_CODEC_NAME = re.compile(r'"codec_name"\s*:\s*"([^"]+)"')
_CODEC_TYPE = re.compile(r'"codec_type"\s*:\s*"([^"]+)"')
_WIDTH = re.compile(r'"width"\s*:\s*(\d+)')
_HEIGHT = re.compile(r'"height"\s*:\s*(\d+)')
_FRAME_RATE = re.compile(r'"r_frame_rate"\s*:\s*"([^"]+)"')


def eval_fps(fps_string: str) -> float:
    """
    Evaluate FPS from fraction string (e.g., "30000/1001").

    Args:
        fps_string: FPS as fraction string

    Returns:
        FPS as float
    """
    try:
        if "/" in fps_string:
            num, den = fps_string.split("/")
            return float(num) / float(den)
        return float(fps_string)
    except (ValueError, ZeroDivisionError, TypeError):
        return 0.0


def _first(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(1) if match else None


def _stream_blocks(text: str) -> list[str]:
    """Split the streams section into one chunk of text per stream."""
    format_match = _FORMAT_SECTION.search(text)
    streams_text = text[: format_match.start()] if format_match else text
    starts = [m.start() for m in _STREAM_START.finditer(streams_text)]
    return [
        streams_text[start:end]
        for start, end in zip(starts, starts[1:] + [len(streams_text)])
    ]


def parse_probe_output(text: str, file_name: str = "") -> MediaInfo:
    """
    Extract media metadata from ffprobe's JSON-style output.

    Format-level fields (duration, format_name, bit_rate) are read from the
    "format" section when present, otherwise from anywhere in the text.
    Video and audio codecs come from the first stream of each type.

    Args:
        text: Raw prober stdout
        file_name: Name recorded on the result

    Returns:
        MediaInfo; fields that could not be found keep their zero defaults
    """
    format_match = _FORMAT_SECTION.search(text)
    format_text = text[format_match.end():] if format_match else text

    info = MediaInfo(file_name=file_name)

    duration = _first(_DURATION, format_text) or _first(_DURATION, text)
    if duration:
        try:
            info.duration_seconds = float(duration)
        except ValueError:
            pass

    info.format_name = _first(_FORMAT_NAME, format_text) or ""

    bit_rate = _first(_BIT_RATE, format_text)
    if bit_rate:
        info.bit_rate = int(bit_rate)

    for block in _stream_blocks(text):
        codec_type = _first(_CODEC_TYPE, block)
        codec_name = _first(_CODEC_NAME, block) or ""

        if codec_type == "video" and not info.video_codec:
            info.video_codec = codec_name
            width = _first(_WIDTH, block)
            height = _first(_HEIGHT, block)
            if width and height:
                info.width = int(width)
                info.height = int(height)
            info.frame_rate = eval_fps(_first(_FRAME_RATE, block) or "0/1")
        elif codec_type == "audio" and not info.audio_codec:
            info.audio_codec = codec_name

    return info


class MediaProbe:
    """Runs the prober binary and scrapes its output."""

    def __init__(self, executable: Optional[str] = None, timeout: Optional[float] = None):
        self.executable = executable or settings.FFPROBE_PATH
        self.timeout = timeout if timeout is not None else settings.PROBE_TIMEOUT_SECONDS

    async def probe(self, file_path: str) -> MediaInfo:
        """
        Get media metadata using ffprobe.

        Probe failures are logged and yield a MediaInfo with zero duration,
        which callers treat as "duration unknown".

        Args:
            file_path: Path to media file

        Returns:
            MediaInfo for the file
        """
        file_name = os.path.basename(file_path)
        size_bytes = os.path.getsize(file_path) if os.path.isfile(file_path) else 0

        try:
            process = await asyncio.create_subprocess_exec(
                self.executable,
                *build_probe_args(file_path),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )

            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                logger.error(f"FFprobe timed out after {self.timeout}s for {file_path}")
                return MediaInfo(file_name=file_name, size_bytes=size_bytes)

            if process.returncode != 0:
                logger.error(
                    f"FFprobe failed for {file_path}: {stderr.decode(errors='replace').strip()}"
                )
                return MediaInfo(file_name=file_name, size_bytes=size_bytes)

            info = parse_probe_output(stdout.decode(errors="replace"), file_name)
            info.size_bytes = size_bytes
            return info

        except OSError as e:
            logger.error(f"Error getting media info for {file_path}: {e}")
            return MediaInfo(file_name=file_name, size_bytes=size_bytes)

    async def get_duration(self, file_path: str) -> float:
        """Duration in seconds, 0.0 if it cannot be determined."""
        return (await self.probe(file_path)).duration_seconds
