"""Session controller: lifecycle state machine and event reconciliation."""
import asyncio
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Iterable, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import (
    EventDecodeError,
    InvalidStateError,
    MonitorError,
    NetworkError,
    PartialHydrateError,
    ServerReportedError,
    UnknownEventError,
    ValidationError,
)
from ..models import (
    AggregateState,
    CrawlConfig,
    CrawlError,
    CrawlStatusResponse,
    Event,
    ExportFormat,
    ExportRequest,
    ExportResponse,
    LogEntry,
    LogLevel,
    Session,
    SessionStatus,
    TERMINAL_STATUSES,
)
from ..utils.logger import logger
from .control_client import ControlClient
from .event_channel import EventChannel
from .finalizer import HydrateResult, fetch_final_snapshots
from .reconciler import ReconcileOptions, lifecycle_effect, reconcile

ChangeListener = Callable[["SessionController"], None]

ACTIVE_STATUSES = frozenset({SessionStatus.RUNNING, SessionStatus.PAUSED})


def validate_config(config: Union[CrawlConfig, Mapping[str, Any]]) -> CrawlConfig:
    """Validate a crawl configuration.

    Args:
        config: A CrawlConfig or a camelCase/snake_case mapping

    Returns:
        A validated CrawlConfig

    Raises:
        ValidationError: If any field is missing or out of range
    """
    if isinstance(config, CrawlConfig):
        # Re-validate: instances built with model_construct skip validation
        data = config.model_dump(by_alias=True)
    elif isinstance(config, Mapping):
        data = dict(config)
    else:
        raise ValidationError(f"Unsupported config type: {type(config).__name__}")

    try:
        return CrawlConfig.model_validate(data)
    except PydanticValidationError as e:
        errors = e.errors(include_url=False)
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in errors)
        raise ValidationError(f"Invalid crawl configuration: {fields}", errors) from e


class SessionController:
    """Owns the session lifecycle, its event channel and its aggregate state.

    State changes happen synchronously on the event loop, either from a channel
    event or from a finished finalization fetch, so they are applied one at a
    time in arrival order. Only one control command may be in flight; a second
    one is rejected with :class:`InvalidStateError` instead of being queued.
    """

    def __init__(
        self,
        client: Optional[ControlClient] = None,
        channel: Optional[EventChannel] = None,
        options: Optional[ReconcileOptions] = None,
    ):
        """Initialize the controller.

        Args:
            client: Control interface client. Defaults to a new ControlClient
            channel: Event channel. Defaults to a new EventChannel
            options: Reconciliation options. Defaults to the settings
        """
        self.client = client or ControlClient()
        self.channel = channel or EventChannel()
        self.options = options or ReconcileOptions.from_settings()

        self._status = SessionStatus.IDLE
        self._session: Optional[Session] = None
        self._state = AggregateState()
        self._pending: Optional[str] = None

        # Bumped on every start, stop and reset; work tagged with an older
        # epoch belongs to a previous session and is discarded.
        self._epoch = 0
        self._finalization_task: Optional[asyncio.Task] = None
        self._deferred_terminal: Optional[Event] = None

        self.hydrate_errors: List[PartialHydrateError] = []
        self.anomalies: List[MonitorError] = []
        self.last_error: Optional[ServerReportedError] = None

        self._listeners: List[ChangeListener] = []
        self.channel.add_connection_listener(self._on_connection_change)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def session_id(self) -> Optional[str]:
        return self._session.session_id if self._session else None

    @property
    def state(self) -> AggregateState:
        return self._state

    @property
    def pending_command(self) -> Optional[str]:
        return self._pending

    @property
    def finalization_task(self) -> Optional[asyncio.Task]:
        return self._finalization_task

    def add_listener(self, listener: ChangeListener) -> None:
        """Register a callback invoked after every state or status change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def wait_finalized(self) -> None:
        """Wait for a running finalization fetch, if any."""
        task = self._finalization_task
        if task is not None:
            await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Lifecycle commands
    # ------------------------------------------------------------------

    async def start(self, config: Union[CrawlConfig, Mapping[str, Any]]) -> Session:
        """Start a crawl and begin monitoring it.

        Args:
            config: Crawl configuration

        Returns:
            The new session

        Raises:
            InvalidStateError: If not idle or another command is in flight
            ValidationError: If the configuration is invalid (nothing changes)
            NetworkError: If the start command fails (status returns to IDLE)
        """
        with self._in_flight("start"):
            self._require("start", SessionStatus.IDLE)
            crawl_config = validate_config(config)

            self._transition(SessionStatus.STARTING)
            try:
                response = await self.client.start(crawl_config)
            except NetworkError as e:
                self._transition(SessionStatus.IDLE)
                self._append_log(LogLevel.ERROR, f"Failed to start crawl: {e}")
                raise
            except BaseException:
                self._transition(SessionStatus.IDLE)
                raise

            await self.channel.close()
            self._epoch += 1
            self._clear_session_data()
            self._session = Session(
                session_id=response.session_id,
                status=SessionStatus.RUNNING,
                config=crawl_config,
                started_at=response.start_time or datetime.now(),
            )
            self._transition(SessionStatus.RUNNING)
            self._append_log(
                LogLevel.SUCCESS, f"Crawl started with session ID: {response.session_id}"
            )

            epoch = self._epoch
            await self.channel.open(
                response.session_id,
                lambda event: self._on_event(event, epoch),
                lambda error: self._on_channel_error(error, epoch),
            )
            return self._session

    async def pause(self) -> None:
        """Pause the running crawl."""
        with self._in_flight("pause"):
            self._require("pause", SessionStatus.RUNNING)
            try:
                await self.client.pause(self.session_id)
            except NetworkError as e:
                self._append_log(LogLevel.ERROR, f"Failed to pause: {e}")
                raise

            # A terminal event may have landed while the command was in flight
            if self._status == SessionStatus.RUNNING:
                self._transition(SessionStatus.PAUSED)
                self._append_log(LogLevel.INFO, "Crawl paused")

    async def resume(self) -> None:
        """Resume a paused crawl."""
        with self._in_flight("resume"):
            self._require("resume", SessionStatus.PAUSED)
            try:
                await self.client.resume(self.session_id)
            except NetworkError as e:
                self._append_log(LogLevel.ERROR, f"Failed to resume: {e}")
                raise

            if self._status == SessionStatus.PAUSED:
                self._transition(SessionStatus.RUNNING)
                self._append_log(LogLevel.INFO, "Crawl resumed")

    async def stop(self) -> None:
        """Stop the crawl and close its event channel."""
        with self._in_flight("stop"):
            self._require("stop", SessionStatus.RUNNING, SessionStatus.PAUSED)
            previous = self._status
            self._transition(SessionStatus.STOPPING)
            try:
                await self.client.stop(self.session_id)
            except BaseException as e:
                self._transition(previous)
                deferred, self._deferred_terminal = self._deferred_terminal, None
                if deferred is not None:
                    self._apply_lifecycle(deferred)
                if isinstance(e, NetworkError):
                    self._append_log(LogLevel.ERROR, f"Failed to stop: {e}")
                raise

            self._deferred_terminal = None
            self._epoch += 1
            self._end_session()
            self._transition(SessionStatus.STOPPED)
            await self.channel.close()
            self._append_log(LogLevel.INFO, "Crawl stopped")

    async def reset(self) -> None:
        """Return to IDLE, clearing the session and all aggregate state.

        Legal from STOPPED, COMPLETED and FAILED. Calling it again once idle is a
        no-op.
        """
        if self._status == SessionStatus.IDLE:
            if self.channel.is_open:
                await self.channel.close()
            return

        if self._pending is not None:
            raise InvalidStateError(
                f"Cannot reset while '{self._pending}' is in flight"
            )
        self._require("reset", *TERMINAL_STATUSES)

        self._epoch += 1
        await self.channel.close()

        self._session = None
        self._finalization_task = None
        self._deferred_terminal = None
        self._clear_session_data()
        self._transition(SessionStatus.IDLE)
        logger.info("Monitor reset; ready for a new crawl")

    # ------------------------------------------------------------------
    # Other control calls
    # ------------------------------------------------------------------

    async def export(
        self,
        formats: Iterable[Union[ExportFormat, str]],
        include_pages: bool = True,
        include_flows: bool = True,
        include_extracted_data: bool = True,
        include_downloaded_files: bool = True,
    ) -> ExportResponse:
        """Ask the server to export the session's results."""
        with self._in_flight("export"):
            session_id = self._require_session("export")
            try:
                request = ExportRequest(
                    formats=list(formats),
                    include_pages=include_pages,
                    include_flows=include_flows,
                    include_extracted_data=include_extracted_data,
                    include_downloaded_files=include_downloaded_files,
                )
            except PydanticValidationError as e:
                raise ValidationError(
                    "Invalid export request", e.errors(include_url=False)
                ) from e

            names = ", ".join(f.value for f in request.formats)
            self._append_log(LogLevel.INFO, f"Exporting to {names}...")
            try:
                result = await self.client.export(session_id, request)
            except NetworkError as e:
                self._append_log(LogLevel.ERROR, f"Export failed: {e}")
                raise
            self._append_log(LogLevel.SUCCESS, "Export completed!")
            return result

    async def refresh_status(self) -> CrawlStatusResponse:
        """Fetch the server's snapshot of the session. Local state is untouched."""
        with self._in_flight("status"):
            session_id = self._require_session("status")
            return await self.client.status(session_id)

    async def fetch_downloads(self) -> List[dict]:
        with self._in_flight("downloads"):
            session_id = self._require_session("downloads")
            return await self.client.downloads(session_id)

    async def fetch_external_urls(self) -> List[dict]:
        with self._in_flight("external-urls"):
            session_id = self._require_session("external-urls")
            return await self.client.external_urls(session_id)

    # ------------------------------------------------------------------
    # Serialized update path
    # ------------------------------------------------------------------

    def _on_event(self, event: Event, epoch: int) -> None:
        if epoch != self._epoch:
            logger.debug(f"Dropping {event.kind.value} from a previous session")
            return

        try:
            self._commit(reconcile(event, self._state, self.options))
        except UnknownEventError as e:
            self._record_anomaly(e)
            return

        self._apply_lifecycle(event)

    def _apply_lifecycle(self, event: Event) -> None:
        effect = lifecycle_effect(event)
        if effect is None:
            return

        if self._status == SessionStatus.STOPPING:
            # Applied only if the stop command fails
            self._deferred_terminal = event
            return

        if self._status not in ACTIVE_STATUSES:
            logger.info(
                f"Ignoring {event.kind.value} while session is {self._status.value}"
            )
            return

        if effect == SessionStatus.COMPLETED:
            self._end_session()
            self._transition(SessionStatus.COMPLETED)
            logger.info(f"Crawl completed: {self.session_id}")
            self._schedule_finalization()
        elif effect == SessionStatus.FAILED:
            message = event.error if isinstance(event, CrawlError) else "Crawl failed"
            self.last_error = ServerReportedError(message, self.session_id)
            if self._session is not None:
                self._session.error_message = message
            self._end_session()
            self._transition(SessionStatus.FAILED)
            logger.error(f"Crawl failed: {self.session_id} - {message}")

    def _schedule_finalization(self) -> None:
        session_id, epoch = self.session_id, self._epoch
        self._finalization_task = asyncio.create_task(
            self._finalize(session_id, epoch), name=f"finalize-{session_id}"
        )

    async def _finalize(self, session_id: str, epoch: int) -> None:
        result = await fetch_final_snapshots(self.client, session_id)
        if epoch != self._epoch or session_id != self.session_id:
            logger.info(f"Discarding finalization results for stale session {session_id}")
            return
        self._merge_snapshots(result)

    def _merge_snapshots(self, result: HydrateResult) -> None:
        if result.snapshots:
            self._commit(self._state.model_copy(update=dict(result.snapshots)))
        for error in result.errors:
            self.hydrate_errors.append(error)
            self._append_log(LogLevel.ERROR, str(error))

    def _on_channel_error(self, error: MonitorError, epoch: int) -> None:
        if epoch != self._epoch:
            return
        self._record_anomaly(error)

    def _record_anomaly(self, error: MonitorError) -> None:
        self.anomalies.append(error)
        if isinstance(error, EventDecodeError):
            self._append_log(LogLevel.WARN, f"Ignored event: {error}")
        else:
            self._append_log(LogLevel.ERROR, f"Event channel error: {error}")

    def _on_connection_change(self, connected: bool) -> None:
        if connected:
            self._append_log(LogLevel.INFO, "Event channel connected")
        elif self._status in ACTIVE_STATUSES:
            self._append_log(LogLevel.WARN, "Event channel disconnected")

    def _commit(self, state: AggregateState) -> None:
        self._state = state
        self._notify()

    def _append_log(self, level: LogLevel, message: str) -> None:
        self._commit(
            self._state.with_log(LogEntry.create(level, message), self.options.log_capacity)
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _in_flight(self, command: str):
        if self._pending is not None:
            raise InvalidStateError(
                f"Cannot {command}: '{self._pending}' is still in flight"
            )
        self._pending = command
        try:
            yield
        finally:
            self._pending = None

    def _require(self, command: str, *allowed: SessionStatus) -> None:
        if self._status not in allowed:
            raise InvalidStateError(
                f"Cannot {command} while session is {self._status.value}"
            )

    def _require_session(self, command: str) -> str:
        if self._session is None or self._status in (
            SessionStatus.STARTING,
            SessionStatus.STOPPING,
        ):
            raise InvalidStateError(
                f"Cannot {command} while session is {self._status.value}"
            )
        return self._session.session_id

    def _transition(self, status: SessionStatus) -> None:
        if status == self._status:
            return
        logger.info(f"Session status: {self._status.value} -> {status.value}")
        self._status = status
        if self._session is not None:
            self._session.status = status
        self._notify()

    def _end_session(self) -> None:
        if self._session is not None and self._session.ended_at is None:
            self._session.ended_at = datetime.now()

    def _clear_session_data(self) -> None:
        self._state = AggregateState()
        self.hydrate_errors = []
        self.anomalies = []
        self.last_error = None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.exception(f"Session listener failed: {e}")
