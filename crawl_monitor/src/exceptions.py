"""Error taxonomy for the crawl monitor."""
from typing import Any, Dict, List, Optional


class MonitorError(Exception):
    """Base class for every error raised by the monitor."""


class ValidationError(MonitorError):
    """A crawl configuration was rejected before anything was sent."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class NetworkError(MonitorError):
    """A control call or channel connection failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class InvalidStateError(MonitorError):
    """A command is illegal in the current lifecycle state, or another is in flight."""


class ServerReportedError(MonitorError):
    """The remote crawl reported a fatal error through a ``CRAWL_ERROR`` event."""

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id


class PartialHydrateError(MonitorError):
    """One of the finalization snapshot requests failed.

    The affected collection keeps its event-accumulated value.
    """

    def __init__(self, collection: str, session_id: str, cause: BaseException):
        super().__init__(f"Failed to load final {collection} for session {session_id}: {cause}")
        self.collection = collection
        self.session_id = session_id
        self.cause = cause


class EventDecodeError(MonitorError):
    """A push frame could not be turned into a typed event."""

    def __init__(self, message: str, raw: Any = None):
        super().__init__(message)
        self.raw = raw


class UnknownEventError(EventDecodeError):
    """A push envelope carried an event kind the monitor does not know."""

    def __init__(self, kind: Any, raw: Any = None):
        super().__init__(f"Unknown event kind: {kind!r}", raw)
        self.kind = kind
