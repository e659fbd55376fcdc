"""
Encoder argument construction.

Every function here is pure: it returns the argument list (without the
executable) so the exact command can be logged, inspected in tests and
pasted into a terminal without running anything.
"""

import os
import shlex
from typing import Optional, Sequence

from mediajobs.models.job import JobType, MediaOptions
from mediajobs.utils.timecode import format_timestamp

DEFAULT_VIDEO_CODEC = "libx264"
DEFAULT_AUDIO_CODEC = "aac"
DEFAULT_CRF = 23
DEFAULT_AUDIO_FORMAT = "mp3"

AUDIO_CODECS = {
    "mp3": "libmp3lame",
    "aac": "aac",
    "wav": "pcm_s16le",
    "flac": "flac",
}


def resolve_audio_codec(audio_format: str) -> str:
    """Map an audio format name to an encoder codec; unknown formats are copied."""
    return AUDIO_CODECS.get(audio_format.strip().lower(), "copy")


def _quality_args(options: MediaOptions) -> list[str]:
    args: list[str] = []
    if options.video_codec:
        args += ["-c:v", options.video_codec]
    if options.audio_codec:
        args += ["-c:a", options.audio_codec]
    if options.video_bitrate_kbps > 0:
        args += ["-b:v", f"{options.video_bitrate_kbps}k"]
    if options.audio_bitrate_kbps > 0:
        args += ["-b:a", f"{options.audio_bitrate_kbps}k"]
    if options.width > 0 and options.height > 0:
        args += ["-s", f"{options.width}x{options.height}"]
    if options.crf is not None:
        args += ["-crf", str(options.crf)]
    return args


def _extra_args(options: MediaOptions) -> list[str]:
    return shlex.split(options.extra_args) if options.extra_args else []


def build_convert_args(input_path: str, output_path: str, options: MediaOptions) -> list[str]:
    return [
        "-i", input_path,
        *_quality_args(options),
        *_extra_args(options),
        "-y",
        output_path,
    ]


def build_extract_audio_args(
    input_path: str,
    output_path: str,
    audio_format: str = DEFAULT_AUDIO_FORMAT,
    audio_bitrate_kbps: int = 0,
) -> list[str]:
    codec = resolve_audio_codec(audio_format)
    args = ["-i", input_path, "-vn", "-acodec", codec]
    if audio_bitrate_kbps > 0 and codec != "copy":
        args += ["-b:a", f"{audio_bitrate_kbps}k"]
    return args + ["-y", output_path]


def build_compress_args(
    input_path: str,
    output_path: str,
    crf: Optional[int] = None,
    video_codec: Optional[str] = None,
) -> list[str]:
    return [
        "-i", input_path,
        "-c:v", video_codec or DEFAULT_VIDEO_CODEC,
        "-crf", str(DEFAULT_CRF if crf is None else crf),
        "-c:a", "copy",
        "-y",
        output_path,
    ]


def build_concat_args(manifest_path: str, output_path: str, options: MediaOptions) -> list[str]:
    """Concat demuxer invocation; segments are re-encoded so mixed sources line up."""
    args = [
        "-f", "concat",
        "-safe", "0",
        "-i", manifest_path,
        "-c:v", options.video_codec or DEFAULT_VIDEO_CODEC,
        "-c:a", options.audio_codec or DEFAULT_AUDIO_CODEC,
    ]
    if options.video_bitrate_kbps > 0:
        args += ["-b:v", f"{options.video_bitrate_kbps}k"]
    if options.audio_bitrate_kbps > 0:
        args += ["-b:a", f"{options.audio_bitrate_kbps}k"]
    return args + ["-y", output_path]


def build_thumbnail_args(input_path: str, output_path: str, seek_seconds: float = 0.0) -> list[str]:
    """Seek before -i (input seeking is much faster) and grab one frame."""
    return [
        "-ss", format_timestamp(seek_seconds),
        "-i", input_path,
        "-frames:v", "1",
        "-q:v", "2",
        "-y",
        output_path,
    ]


def build_version_args() -> list[str]:
    return ["-version"]


def build_probe_args(file_path: str) -> list[str]:
    return [
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        file_path,
    ]


def escape_manifest_path(path: str) -> str:
    """Forward slashes, and single quotes closed/escaped/reopened for the concat demuxer."""
    return path.replace("\\", "/").replace("'", "'\\''")


def format_manifest(input_paths: Sequence[str]) -> str:
    """Concat manifest text: one `file '<path>'` line per input, in order."""
    return "".join(f"file '{escape_manifest_path(p)}'\n" for p in input_paths)


def build_args(
    job_type: JobType,
    input_path: str,
    output_path: str,
    options: MediaOptions,
) -> list[str]:
    """
    Build the encoder arguments for a single-input job type.

    Concatenation needs a manifest on disk and goes through build_concat_args.
    """
    if job_type == JobType.CONVERT:
        return build_convert_args(input_path, output_path, options)
    if job_type == JobType.EXTRACT_AUDIO:
        return build_extract_audio_args(
            input_path,
            output_path,
            audio_format_for(options, output_path),
            options.audio_bitrate_kbps,
        )
    if job_type == JobType.COMPRESS:
        return build_compress_args(input_path, output_path, options.crf, options.video_codec)
    if job_type == JobType.THUMBNAIL:
        return build_thumbnail_args(input_path, output_path, options.seek_seconds)
    raise ValueError(f"No single-input command for job type {job_type.value}")


def audio_format_for(options: MediaOptions, output_path: str) -> str:
    """Target audio format: explicit option, else output suffix, else mp3."""
    if options.audio_codec:
        return options.audio_codec
    suffix = os.path.splitext(output_path)[1].lstrip(".")
    return suffix or DEFAULT_AUDIO_FORMAT


def command_as_string(executable: str, args: Sequence[str]) -> str:
    """Shell-quoted command line for logging."""
    return shlex.join([executable, *args])
