"""Aggregate view derived from a session's event stream."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_LOG_CAPACITY = 100


class LogLevel(str, Enum):
    """Severity of a user-facing log entry."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARN = "WARN"
    ERROR = "ERROR"


class LogEntry(BaseModel):
    """One line of the user-facing activity log."""

    model_config = ConfigDict(frozen=True)

    timestamp: str
    level: str
    message: str

    @classmethod
    def create(
        cls, level: str, message: str, at: Optional[datetime] = None
    ) -> "LogEntry":
        """Create an entry stamped with ``at`` (defaults to now), formatted HH:MM:SS."""
        at = at or datetime.now()
        level = level.value if isinstance(level, LogLevel) else str(level).upper()
        return cls(timestamp=at.strftime("%H:%M:%S"), level=level, message=message)


class AggregateState(BaseModel):
    """Counters, bounded log and collections for the monitored session.

    Pages, flows, downloads and external URLs are absolute server counters;
    ``total_extracted`` is summed locally from per-event deltas.
    """

    total_pages: int = Field(default=0, ge=0)
    total_flows: int = Field(default=0, ge=0)
    total_extracted: int = Field(default=0, ge=0)
    total_downloaded: int = Field(default=0, ge=0)
    total_external_urls: int = Field(default=0, ge=0)

    pages_per_second: float = Field(default=0.0, ge=0)
    queue_size: int = Field(default=0, ge=0)
    active_threads: int = Field(default=0, ge=0)

    # Newest first
    log_buffer: List[LogEntry] = Field(default_factory=list)

    flows: List[Dict[str, Any]] = Field(default_factory=list)
    extracted_data: List[Dict[str, Any]] = Field(default_factory=list)
    pages: List[Dict[str, Any]] = Field(default_factory=list)

    def with_log(
        self, entry: LogEntry, capacity: int = DEFAULT_LOG_CAPACITY
    ) -> "AggregateState":
        """Return a copy with ``entry`` prepended and the oldest entries evicted."""
        return self.model_copy(
            update={"log_buffer": [entry, *self.log_buffer][:capacity]}
        )

    def summary(self) -> Dict[str, Any]:
        """Counters only, as shown in a status line."""
        return self.model_dump(
            include={
                "total_pages",
                "total_flows",
                "total_extracted",
                "total_downloaded",
                "total_external_urls",
                "pages_per_second",
                "queue_size",
                "active_threads",
            }
        )
