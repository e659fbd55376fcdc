"""Media inspection and encoder status endpoints."""
import logging
import os

from fastapi import APIRouter, Depends, HTTPException, Query

from mediajobs.dependencies import get_media_probe, get_orchestrator
from mediajobs.models.job import MediaInfo
from mediajobs.models.schemas import EncoderInfo
from mediajobs.services.media_probe import MediaProbe
from mediajobs.services.orchestrator import TranscodeOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/media/info", response_model=MediaInfo)
async def get_media_info(
    path: str = Query(..., description="Absolute path to file"),
    probe: MediaProbe = Depends(get_media_probe),
):
    """
    Get duration, codecs and resolution of a media file.

    Args:
        path: Absolute path to file

    Returns:
        Probed media metadata
    """
    if not os.path.isfile(path):
        raise HTTPException(status_code=400, detail="File does not exist")

    try:
        return await probe.probe(path)
    except Exception as e:
        logger.error(f"Error getting media info for {path}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@router.get("/encoder", response_model=EncoderInfo)
async def get_encoder_info(orchestrator: TranscodeOrchestrator = Depends(get_orchestrator)):
    """Report whether the encoder binary is usable and its version."""
    version = await orchestrator.get_version()
    return EncoderInfo(
        available=bool(version),
        version=version,
        executable=orchestrator.supervisor.executable,
    )
