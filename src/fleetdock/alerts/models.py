"""
Alert data models.
"""

import time
import uuid
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AlertType(str, Enum):
    """Kinds of alerts raised by the monitor."""

    CONTAINER_STOPPED = "container_stopped"
    CONTAINER_STARTED = "container_started"
    CPU_THRESHOLD = "cpu_threshold"
    MEMORY_THRESHOLD = "memory_threshold"


class AcknowledgeResult(str, Enum):
    """Outcome of acknowledging one alert."""

    ACKNOWLEDGED = "acknowledged"
    NOT_FOUND = "not_found"


class Alert(BaseModel):
    """
    A raised alert.

    Only ``acknowledged`` ever changes after creation.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique alert ID")
    type: AlertType
    container_id: str
    container_name: str = ""
    host: str
    message: str
    value: Optional[float] = Field(None, description="Observed value for threshold alerts")
    threshold: Optional[float] = Field(None, description="Configured threshold for threshold alerts")
    timestamp: int = Field(default_factory=lambda: int(time.time()), description="Unix seconds")
    acknowledged: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "id": "5b0f7c9e-2d1a-4a53-9d0e-0f6f3b0f2a11",
                "type": "cpu_threshold",
                "container_id": "3f4e1c2a9b7d",
                "container_name": "web",
                "host": "local",
                "message": "CPU usage 93.2% exceeds threshold 80.0%",
                "value": 93.2,
                "threshold": 80.0,
                "timestamp": 1736937000,
                "acknowledged": False,
            }
        }


class WebhookPayload(BaseModel):
    """JSON envelope posted to the webhook for every new alert."""

    alert: Alert
    timestamp: int = Field(default_factory=lambda: int(time.time()))
    source: str = "fleetdock"


class AlertConfigView(BaseModel):
    """Active alert configuration as exposed to callers."""

    enabled: bool
    cpu_threshold: float
    memory_threshold: float
    check_interval: str = Field(..., description="Scan interval, e.g. '30s'")
    webhook_enabled: bool
