"""Crawl monitor source package."""
from .config import settings
from .models import (
    CrawlConfig,
    ExtractionRule,
    SelectorType,
    ExportFormat,
    AggregateState,
    SessionStatus,
    Session,
)
from .services import ControlClient, EventChannel, SessionController, reconcile
