"""WebSocket connection manager for broadcasting job events."""
import asyncio
import logging
from typing import Dict

from fastapi import WebSocket

logger = logging.getLogger(__name__)

OUTBOX_SIZE = 256


class WebSocketManager:
    """
    Fans queue events out to connected WebSocket clients.

    Each connection has its own bounded outbox drained by a sender task, so
    publishing never waits on a slow client. When an outbox is full the
    oldest pending message is dropped.
    """

    def __init__(self, outbox_size: int = OUTBOX_SIZE):
        self.outbox_size = outbox_size
        self.connections: Dict[WebSocket, asyncio.Queue] = {}
        self._senders: Dict[WebSocket, asyncio.Task] = {}

    async def connect(self, websocket: WebSocket):
        """
        Accept and register new WebSocket connection.

        Args:
            websocket: WebSocket connection
        """
        await websocket.accept()
        outbox: asyncio.Queue = asyncio.Queue(maxsize=self.outbox_size)
        self.connections[websocket] = outbox
        self._senders[websocket] = asyncio.create_task(self._sender(websocket, outbox))
        logger.info(f"WebSocket connected. Total connections: {len(self.connections)}")

    def disconnect(self, websocket: WebSocket):
        """
        Remove WebSocket connection.

        Args:
            websocket: WebSocket connection
        """
        self.connections.pop(websocket, None)
        sender = self._senders.pop(websocket, None)
        if sender is not None and sender is not asyncio.current_task():
            sender.cancel()
        logger.info(f"WebSocket disconnected. Total connections: {len(self.connections)}")

    async def on_queue_event(self, message: dict):
        """Queue listener: enqueue the event for every connected client."""
        self.publish(message)

    def publish(self, message: dict):
        """
        Queue a message for all connected clients without waiting.

        Args:
            message: Message dictionary to broadcast
        """
        for outbox in self.connections.values():
            if outbox.full():
                outbox.get_nowait()
            outbox.put_nowait(message)

    async def send_to(self, websocket: WebSocket, message: dict):
        """
        Send message to specific client.

        Args:
            websocket: WebSocket connection
            message: Message dictionary to send
        """
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.error(f"Error sending message to WebSocket: {e}")
            self.disconnect(websocket)

    async def _sender(self, websocket: WebSocket, outbox: asyncio.Queue):
        while True:
            message = await outbox.get()
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.error(f"Error sending message to WebSocket: {e}")
                self.disconnect(websocket)
                return

    def get_connection_count(self) -> int:
        """Get number of active connections."""
        return len(self.connections)
