"""Finished-job history API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from mediajobs.dependencies import get_history_service
from mediajobs.models.schemas import HistoryListResponse, HistoryRecordResponse
from mediajobs.services.history_service import HistoryService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=HistoryListResponse)
async def list_history(
    status: Optional[str] = Query(None, description="Filter by status"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    history: HistoryService = Depends(get_history_service),
):
    """
    List finished jobs recorded since startup, newest first.

    Args:
        status: Optional status filter
        limit: Maximum number of records to return
        offset: Offset for pagination
        history: History service

    Returns:
        Records and total count
    """
    try:
        records, total = await history.list_records(status=status, limit=limit, offset=offset)
        return HistoryListResponse(
            records=[HistoryRecordResponse.model_validate(r) for r in records],
            total=total,
        )
    except Exception as e:
        logger.error(f"Error listing history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
