"""Pure reconciliation of push events into aggregate state.

Each handler takes an event and the current :class:`AggregateState` and returns a
new state; the input is never mutated. Pages, flows, downloads and external URLs
arrive as absolute totals and overwrite; extraction counts arrive as deltas and
accumulate. The two schemes must not be merged.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ..config import settings
from ..exceptions import UnknownEventError
from ..models.events import (
    CrawlCompleted,
    CrawlError,
    DataExtracted,
    Event,
    EventKind,
    ExternalUrlFound,
    FileDownloaded,
    FlowDiscovered,
    LogMessage,
    Metrics,
    PageDiscovered,
)
from ..models.session import SessionStatus
from ..models.state import DEFAULT_LOG_CAPACITY, AggregateState, LogEntry, LogLevel


@dataclass(frozen=True)
class ReconcileOptions:
    """Knobs that shape how events are folded into state."""

    log_capacity: int = DEFAULT_LOG_CAPACITY
    activity_log: bool = True

    @classmethod
    def from_settings(cls) -> "ReconcileOptions":
        return cls(
            log_capacity=settings.log_buffer_capacity,
            activity_log=settings.activity_log,
        )


Handler = Callable[[Event, AggregateState, ReconcileOptions], AggregateState]

_HANDLERS: Dict[EventKind, Handler] = {}


def _handles(kind: EventKind) -> Callable[[Handler], Handler]:
    def register(func: Handler) -> Handler:
        _HANDLERS[kind] = func
        return func

    return register


def _log(
    state: AggregateState,
    event: Event,
    level: LogLevel,
    message: str,
    options: ReconcileOptions,
) -> AggregateState:
    entry = LogEntry.create(level, message, at=event.timestamp)
    return state.with_log(entry, options.log_capacity)


def _activity(
    state: AggregateState,
    event: Event,
    level: LogLevel,
    message: str,
    options: ReconcileOptions,
) -> AggregateState:
    if not options.activity_log:
        return state
    return _log(state, event, level, message, options)


@_handles(EventKind.PAGE_DISCOVERED)
def _page_discovered(
    event: PageDiscovered, state: AggregateState, options: ReconcileOptions
) -> AggregateState:
    state = state.model_copy(update={"total_pages": event.total_pages})
    return _activity(state, event, LogLevel.INFO, f"Discovered: {event.url}", options)


@_handles(EventKind.FLOW_DISCOVERED)
def _flow_discovered(
    event: FlowDiscovered, state: AggregateState, options: ReconcileOptions
) -> AggregateState:
    state = state.model_copy(
        update={
            "total_flows": event.total_flows,
            "flows": [*state.flows, event.record()],
        }
    )
    return _activity(
        state, event, LogLevel.INFO, f"Flow discovered: depth {len(event.path)}", options
    )


@_handles(EventKind.DATA_EXTRACTED)
def _data_extracted(
    event: DataExtracted, state: AggregateState, options: ReconcileOptions
) -> AggregateState:
    state = state.model_copy(
        update={
            "total_extracted": state.total_extracted + event.count,
            "extracted_data": [*state.extracted_data, event.record()],
        }
    )
    return _activity(
        state,
        event,
        LogLevel.SUCCESS,
        f"Extracted {event.count} items ({event.rule_name})",
        options,
    )


@_handles(EventKind.FILE_DOWNLOADED)
def _file_downloaded(
    event: FileDownloaded, state: AggregateState, options: ReconcileOptions
) -> AggregateState:
    state = state.model_copy(update={"total_downloaded": event.total_downloaded})
    return _activity(
        state, event, LogLevel.SUCCESS, f"Downloaded: {event.file_name}", options
    )


@_handles(EventKind.EXTERNAL_URL_FOUND)
def _external_url_found(
    event: ExternalUrlFound, state: AggregateState, options: ReconcileOptions
) -> AggregateState:
    state = state.model_copy(update={"total_external_urls": event.total_external_urls})
    return _activity(
        state,
        event,
        LogLevel.INFO,
        f"External URL found: {event.url} (Total: {event.total_external_urls})",
        options,
    )


@_handles(EventKind.METRICS)
def _metrics(
    event: Metrics, state: AggregateState, options: ReconcileOptions
) -> AggregateState:
    # Last write wins: the transport carries no sequence numbers.
    return state.model_copy(
        update={
            "pages_per_second": event.pages_per_second,
            "queue_size": event.queue_size,
            "active_threads": event.active_threads,
        }
    )


@_handles(EventKind.LOG)
def _log_message(
    event: LogMessage, state: AggregateState, options: ReconcileOptions
) -> AggregateState:
    return _log(state, event, event.level, event.message, options)


@_handles(EventKind.CRAWL_COMPLETED)
def _crawl_completed(
    event: CrawlCompleted, state: AggregateState, options: ReconcileOptions
) -> AggregateState:
    return _log(state, event, LogLevel.SUCCESS, "Crawl completed successfully!", options)


@_handles(EventKind.CRAWL_ERROR)
def _crawl_error(
    event: CrawlError, state: AggregateState, options: ReconcileOptions
) -> AggregateState:
    return _log(state, event, LogLevel.ERROR, f"Crawl failed: {event.error}", options)


_unhandled = set(EventKind) - set(_HANDLERS)
if _unhandled:
    raise RuntimeError(
        f"No reconciler for event kinds: {sorted(k.value for k in _unhandled)}"
    )


def reconcile(
    event: Event,
    state: AggregateState,
    options: Optional[ReconcileOptions] = None,
) -> AggregateState:
    """Fold one event into the aggregate state.

    Args:
        event: Typed event from the channel
        state: Current aggregate state (left untouched)
        options: Log capacity and activity logging; defaults to the settings

    Returns:
        The new aggregate state

    Raises:
        UnknownEventError: If the event is not one of the known kinds
    """
    kind = getattr(event, "kind", None)
    handler = _HANDLERS.get(kind)
    if handler is None:
        raise UnknownEventError(kind, event)
    return handler(event, state, options or ReconcileOptions.from_settings())


def lifecycle_effect(event: Event) -> Optional[SessionStatus]:
    """Lifecycle status an event forces on the session, if any."""
    if isinstance(event, CrawlCompleted):
        return SessionStatus.COMPLETED
    if isinstance(event, CrawlError):
        return SessionStatus.FAILED
    return None
