"""Data models for the application."""
from .requests import (
    CrawlConfig,
    ExportFormat,
    ExportRequest,
    ExtractionRule,
    SelectorType,
)
from .responses import CrawlStatusResponse, ExportResponse, StartResponse
from .session import Session, SessionStatus, TERMINAL_STATUSES
from .state import AggregateState, LogEntry, LogLevel
from .events import (
    Event,
    EventKind,
    PageDiscovered,
    FlowDiscovered,
    DataExtracted,
    FileDownloaded,
    ExternalUrlFound,
    Metrics,
    LogMessage,
    CrawlCompleted,
    CrawlError,
    parse_event,
    decode_event,
)

__all__ = [
    "CrawlConfig",
    "ExportFormat",
    "ExportRequest",
    "ExtractionRule",
    "SelectorType",
    "CrawlStatusResponse",
    "ExportResponse",
    "StartResponse",
    "Session",
    "SessionStatus",
    "TERMINAL_STATUSES",
    "AggregateState",
    "LogEntry",
    "LogLevel",
    "Event",
    "EventKind",
    "PageDiscovered",
    "FlowDiscovered",
    "DataExtracted",
    "FileDownloaded",
    "ExternalUrlFound",
    "Metrics",
    "LogMessage",
    "CrawlCompleted",
    "CrawlError",
    "parse_event",
    "decode_event",
]
