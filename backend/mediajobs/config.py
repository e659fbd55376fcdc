"""Configuration management for the media job service."""

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def _executable_name(name: str) -> str:
    return f"{name}.exe" if sys.platform == "win32" else name


def resolve_binary(name: str, override: Optional[str], bin_dir: str) -> str:
    """
    Resolve the executable used for an external binary.

    Order: explicit override, bundled copy in bin_dir, PATH lookup,
    then the bare platform name.

    Args:
        name: Binary name without extension (e.g. "ffmpeg")
        override: Explicit path from the environment, if any
        bin_dir: Directory holding bundled binaries

    Returns:
        Path or name of the executable
    """
    if override:
        return override

    executable = _executable_name(name)
    bundled = Path(bin_dir) / executable
    if bundled.is_file():
        return str(bundled)

    return shutil.which(executable) or executable


class Settings:
    """Application settings loaded from environment variables."""

    # Paths
    BIN_DIR: str = os.getenv("BIN_DIR", str(Path.cwd() / "ffmpeg" / "bin"))
    TEMP_DIR: str = os.getenv("TEMP_DIR", "/app/temp")
    DATABASE_PATH: str = os.getenv("DATABASE_PATH", "/app/data/app.db")

    # External binaries
    FFMPEG_PATH: str = resolve_binary("ffmpeg", os.getenv("FFMPEG_PATH"), BIN_DIR)
    FFPROBE_PATH: str = resolve_binary("ffprobe", os.getenv("FFPROBE_PATH"), BIN_DIR)

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Database
    DATABASE_URL: str = f"sqlite+aiosqlite:///{DATABASE_PATH}"

    # Queue
    MAX_CONCURRENT: int = int(os.getenv("MAX_CONCURRENT", "1"))
    RETRY_COUNT: int = int(os.getenv("RETRY_COUNT", "0"))

    # Subprocess limits (seconds)
    VERSION_TIMEOUT_SECONDS: float = float(os.getenv("VERSION_TIMEOUT_SECONDS", "5"))
    PROBE_TIMEOUT_SECONDS: float = float(os.getenv("PROBE_TIMEOUT_SECONDS", "30"))
    THUMBNAIL_TIMEOUT_SECONDS: float = float(os.getenv("THUMBNAIL_TIMEOUT_SECONDS", "10"))
    KILL_GRACE_SECONDS: float = float(os.getenv("KILL_GRACE_SECONDS", "0.5"))

    # Number of encoder diagnostic lines kept for error messages
    DIAGNOSTIC_TAIL_LINES: int = int(os.getenv("DIAGNOSTIC_TAIL_LINES", "200"))

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

    # CORS
    CORS_ORIGINS: list = ["*"]

    @classmethod
    def queue_config(cls):
        """Build the job queue configuration."""
        from mediajobs.models.job import QueueConfig

        return QueueConfig(
            max_concurrent=cls.MAX_CONCURRENT,
            retry_count=cls.RETRY_COUNT,
        )

    @classmethod
    def clean_temp_dir(cls, when: str = "startup"):
        """Remove leftover manifests and scratch images from the temp directory."""
        temp_path = Path(cls.TEMP_DIR)
        if not temp_path.exists():
            return
        try:
            for item in temp_path.iterdir():
                if item.is_file():
                    item.unlink()
                    logger.info(f"Cleaned temp file on {when}: {item.name}")
                elif item.is_dir():
                    shutil.rmtree(item)
                    logger.info(f"Cleaned temp directory on {when}: {item.name}")
            logger.info(f"Temp directory cleaned on {when}")
        except Exception as e:
            logger.error(f"Error cleaning temp directory on {when}: {e}")

    @classmethod
    def ensure_directories(cls):
        """Ensure required directories exist and clean temp directory."""
        cls.clean_temp_dir("startup")
        Path(cls.TEMP_DIR).mkdir(parents=True, exist_ok=True)
        Path(cls.DATABASE_PATH).parent.mkdir(parents=True, exist_ok=True)


settings = Settings()
