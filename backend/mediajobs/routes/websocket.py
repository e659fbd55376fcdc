"""WebSocket endpoint for real-time job updates."""
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from mediajobs.dependencies import get_websocket_manager
from mediajobs.services.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    websocket_manager: WebSocketManager = Depends(get_websocket_manager),
):
    """
    WebSocket endpoint for real-time job updates.

    Clients receive:
    - job_progress: percentage updates while a job is running
    - job_status: status changes (queued -> running -> succeeded/failed/canceled)
    - queue_update: queue size and active jobs
    """
    await websocket_manager.connect(websocket)

    try:
        await websocket_manager.send_to(websocket, {
            "type": "system",
            "message": "Connected to media job service",
        })

        # Keep connection alive and handle incoming messages
        while True:
            try:
                data = await websocket.receive_json()

                if data.get("type") == "ping":
                    await websocket_manager.send_to(websocket, {"type": "pong"})

            except WebSocketDisconnect:
                logger.info("WebSocket client disconnected normally")
                break
            except Exception as e:
                logger.error(f"Error receiving WebSocket message: {e}")
                break

    finally:
        websocket_manager.disconnect(websocket)
