"""Typed push events delivered on a session's progress topic.

Every envelope on the wire has the shape ``{"type": KIND, "data": {...}}`` with an
optional ``timestamp`` and ``sessionId``. :func:`parse_event` turns an envelope into
one of the immutable event models below; anything it cannot type is raised as an
:class:`~crawl_monitor.src.exceptions.EventDecodeError` so callers can report it.
"""
import json
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..exceptions import EventDecodeError, UnknownEventError


class EventKind(str, Enum):
    """Discriminator carried in the ``type`` field of every envelope."""

    PAGE_DISCOVERED = "PAGE_DISCOVERED"
    FLOW_DISCOVERED = "FLOW_DISCOVERED"
    DATA_EXTRACTED = "DATA_EXTRACTED"
    FILE_DOWNLOADED = "FILE_DOWNLOADED"
    EXTERNAL_URL_FOUND = "EXTERNAL_URL_FOUND"
    METRICS = "METRICS"
    LOG = "LOG"
    CRAWL_COMPLETED = "CRAWL_COMPLETED"
    CRAWL_ERROR = "CRAWL_ERROR"


class BaseEvent(BaseModel):
    """Fields shared by every event."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    kind: ClassVar[EventKind]

    timestamp: Optional[datetime] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _parse_timestamp(cls, value):
        # Jackson may serialize LocalDateTime as [y, m, d, h, min, s, nanos]
        if isinstance(value, (list, tuple)):
            parts = [int(p) for p in value[:6]]
            if len(value) > 6:
                parts.append(int(value[6]) // 1000)
            return datetime(*parts)
        return value

    def record(self) -> Dict[str, Any]:
        """Payload as a camelCase dict, the shape kept in aggregate collections."""
        return self.model_dump(mode="json", by_alias=True, exclude={"timestamp"})


class PageDiscovered(BaseEvent):
    kind: ClassVar[EventKind] = EventKind.PAGE_DISCOVERED

    url: str = ""
    depth: int = 0
    total_pages: int = Field(..., ge=0)


class FlowDiscovered(BaseEvent):
    kind: ClassVar[EventKind] = EventKind.FLOW_DISCOVERED

    flow_id: Optional[Union[int, str]] = None
    path: List[str] = Field(default_factory=list)
    total_flows: int = Field(..., ge=0)


class DataExtracted(BaseEvent):
    kind: ClassVar[EventKind] = EventKind.DATA_EXTRACTED

    rule_name: str = ""
    count: int = Field(..., ge=0)
    value: Optional[str] = None


class FileDownloaded(BaseEvent):
    kind: ClassVar[EventKind] = EventKind.FILE_DOWNLOADED

    file_name: str = ""
    size: Optional[int] = None
    total_downloaded: int = Field(..., ge=0)


class ExternalUrlFound(BaseEvent):
    kind: ClassVar[EventKind] = EventKind.EXTERNAL_URL_FOUND

    url: str = ""
    total_external_urls: int = Field(..., ge=0)


class Metrics(BaseEvent):
    kind: ClassVar[EventKind] = EventKind.METRICS

    pages_per_second: float = Field(..., ge=0)
    queue_size: int = Field(..., ge=0)
    active_threads: int = Field(default=0, ge=0)


class LogMessage(BaseEvent):
    kind: ClassVar[EventKind] = EventKind.LOG

    level: str = "INFO"
    message: str = ""


class CrawlCompleted(BaseEvent):
    kind: ClassVar[EventKind] = EventKind.CRAWL_COMPLETED

    message: Optional[str] = None


class CrawlError(BaseEvent):
    kind: ClassVar[EventKind] = EventKind.CRAWL_ERROR

    error: str = "Unknown error"


Event = Union[
    PageDiscovered,
    FlowDiscovered,
    DataExtracted,
    FileDownloaded,
    ExternalUrlFound,
    Metrics,
    LogMessage,
    CrawlCompleted,
    CrawlError,
]

EVENT_TYPES: Dict[EventKind, Type[BaseEvent]] = {
    cls.kind: cls
    for cls in (
        PageDiscovered,
        FlowDiscovered,
        DataExtracted,
        FileDownloaded,
        ExternalUrlFound,
        Metrics,
        LogMessage,
        CrawlCompleted,
        CrawlError,
    )
}


def parse_event(envelope: Mapping[str, Any]) -> Event:
    """Build a typed event from a decoded ``{type, data}`` envelope.

    Args:
        envelope: Decoded JSON envelope

    Returns:
        The typed, immutable event

    Raises:
        UnknownEventError: If ``type`` is not a known event kind
        EventDecodeError: If the envelope or its payload is malformed
    """
    if not isinstance(envelope, Mapping):
        raise EventDecodeError("Event envelope must be a JSON object", envelope)

    kind_value = envelope.get("type")
    try:
        kind = EventKind(kind_value)
    except ValueError:
        raise UnknownEventError(kind_value, envelope) from None

    data = envelope.get("data") or {}
    if not isinstance(data, Mapping):
        raise EventDecodeError(f"{kind.value} payload must be a JSON object", envelope)

    payload = dict(data)
    if envelope.get("timestamp") is not None and "timestamp" not in payload:
        payload["timestamp"] = envelope["timestamp"]

    try:
        return EVENT_TYPES[kind].model_validate(payload)
    except PydanticValidationError as e:
        raise EventDecodeError(f"Malformed {kind.value} payload: {e}", envelope) from e


def decode_event(text: Union[str, bytes]) -> Event:
    """Decode a JSON text frame into a typed event."""
    try:
        envelope = json.loads(text)
    except (TypeError, ValueError) as e:
        raise EventDecodeError(f"Invalid JSON in event frame: {e}", text) from e
    return parse_event(envelope)
