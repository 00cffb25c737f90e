"""Session-related data models."""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .requests import CrawlConfig


class SessionStatus(str, Enum):
    """Lifecycle status of the monitored session."""

    IDLE = "IDLE"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {SessionStatus.STOPPED, SessionStatus.COMPLETED, SessionStatus.FAILED}
)


class Session(BaseModel):
    """The crawl job currently tracked by the monitor."""

    session_id: str
    status: SessionStatus
    config: CrawlConfig
    started_at: datetime
    ended_at: Optional[datetime] = None
    error_message: Optional[str] = None
