"""FastAPI dependencies resolving the services built by the application lifespan."""
from fastapi import Request, WebSocket

from mediajobs.services.history_service import HistoryService
from mediajobs.services.job_queue import JobQueue
from mediajobs.services.media_probe import MediaProbe
from mediajobs.services.orchestrator import TranscodeOrchestrator
from mediajobs.services.websocket_manager import WebSocketManager


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


def get_orchestrator(request: Request) -> TranscodeOrchestrator:
    return request.app.state.job_queue.orchestrator


def get_media_probe(request: Request) -> MediaProbe:
    return request.app.state.job_queue.orchestrator.probe


def get_history_service(request: Request) -> HistoryService:
    return request.app.state.history_service


def get_websocket_manager(websocket: WebSocket) -> WebSocketManager:
    return websocket.app.state.websocket_manager
