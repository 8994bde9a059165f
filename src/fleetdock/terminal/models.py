"""
Terminal session data models.
"""

import json
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class SessionState(str, Enum):
    """Lifecycle of a terminal session."""

    CREATED = "created"
    ATTACHED = "attached"
    STREAMING = "streaming"
    RESIZING = "resizing"
    CLOSED = "closed"


class ExecSession(BaseModel):
    """An exec instance bound to one container. Never reused."""

    model_config = ConfigDict(frozen=True)

    exec_id: str
    host: str
    container_id: str


class ResizeMessage(BaseModel):
    """Control frame asking for a TTY resize."""

    type: str = "resize"
    cols: int = Field(0, ge=0)
    rows: int = Field(0, ge=0)


class TransportFrame(BaseModel):
    """
    One frame received from the remote side.

    Exactly one of ``text`` and ``data`` is set.
    """

    text: Optional[str] = None
    data: Optional[bytes] = None

    @property
    def is_text(self) -> bool:
        return self.text is not None

    def payload(self) -> bytes:
        """Frame contents as bytes for the container's stdin."""
        if self.text is not None:
            return self.text.encode("utf-8")
        return self.data or b""


def parse_resize(text: str) -> Optional[ResizeMessage]:
    """
    Interpret a text frame as a resize control message.

    Returns:
        ResizeMessage if the frame is a JSON object with type "resize",
        otherwise None (the frame is regular input)
    """
    try:
        message = json.loads(text)
    except ValueError:
        return None
    if not isinstance(message, dict) or message.get("type") != "resize":
        return None
    try:
        return ResizeMessage.model_validate(message)
    except ValidationError:
        return None
