"""Client-side monitor for remote crawl sessions."""
from .src import (
    settings,
    CrawlConfig,
    ExtractionRule,
    SelectorType,
    ExportFormat,
    AggregateState,
    SessionStatus,
    Session,
    ControlClient,
    EventChannel,
    SessionController,
    reconcile,
)

__all__ = [
    "settings",
    "CrawlConfig",
    "ExtractionRule",
    "SelectorType",
    "ExportFormat",
    "AggregateState",
    "SessionStatus",
    "Session",
    "ControlClient",
    "EventChannel",
    "SessionController",
    "reconcile",
]
