"""
Remote duplex transports for terminal sessions.
"""

import logging
from typing import Optional, Protocol, runtime_checkable

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from fleetdock.terminal.models import TransportFrame

logger = logging.getLogger(__name__)


@runtime_checkable
class RemoteTransport(Protocol):
    """Message-framed duplex channel to the remote user."""

    async def receive(self) -> Optional[TransportFrame]:
        """Next frame, or None once the remote side has closed."""
        ...

    async def send_bytes(self, data: bytes) -> None:
        ...

    async def send_text(self, text: str) -> None:
        ...

    async def close(self) -> None:
        ...


class WebSocketTransport:
    """
    RemoteTransport over an accepted FastAPI WebSocket.

    Usage:
        @app.websocket("/containers/{host}/{container_id}/terminal")
        async def terminal(websocket: WebSocket, host: str, container_id: str):
            await websocket.accept()
            await plane.open_terminal(host, container_id, WebSocketTransport(websocket))
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def receive(self) -> Optional[TransportFrame]:
        if self.websocket.client_state == WebSocketState.DISCONNECTED:
            return None

        message = await self.websocket.receive()
        if message.get("type") == "websocket.disconnect":
            return None
        if message.get("text") is not None:
            return TransportFrame(text=message["text"])
        return TransportFrame(data=message.get("bytes") or b"")

    async def send_bytes(self, data: bytes) -> None:
        await self.websocket.send_bytes(data)

    async def send_text(self, text: str) -> None:
        await self.websocket.send_text(text)

    async def close(self) -> None:
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close()
        except RuntimeError as e:
            # Already closed by the client side
            logger.debug(f"WebSocket close ignored: {e}")
