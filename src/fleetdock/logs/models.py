"""
Log data models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(str, Enum):
    """Severity detected in a log message."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"
    PANIC = "PANIC"
    UNKNOWN = "UNKNOWN"


class LogStream(str, Enum):
    """Output stream a log line was written to."""

    STDOUT = "stdout"
    STDERR = "stderr"


class LogEntry(BaseModel):
    """
    A parsed container log line.

    Entries are immutable and never persisted; consumers buffer them if they
    need more history than the requested tail.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: Optional[datetime] = Field(None, description="Parsed timestamp, None if absent")
    level: LogLevel = LogLevel.UNKNOWN
    message: str = Field("", description="Message without timestamp and ANSI codes")
    stream: LogStream = LogStream.STDOUT
    raw: str = Field("", description="Original log line")


class LogOptions(BaseModel):
    """Options for fetching container logs."""

    follow: bool = False
    timestamps: bool = True
    since: Optional[str] = None
    until: Optional[str] = None
    tail: str = "100"
    details: bool = False
    show_stdout: bool = True
    show_stderr: bool = True

    class Config:
        json_schema_extra = {
            "example": {
                "follow": True,
                "timestamps": True,
                "since": "2025-01-15T10:00:00Z",
                "tail": "200",
                "show_stdout": True,
                "show_stderr": True,
            }
        }
