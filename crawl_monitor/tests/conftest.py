"""Shared fixtures and fakes for the monitor tests."""
from typing import Any, Callable, List, Optional
from unittest.mock import AsyncMock

import pytest

from src.exceptions import EventDecodeError
from src.models import StartResponse
from src.models.events import parse_event
from src.services.control_client import ControlClient
from src.services.reconciler import ReconcileOptions
from src.services.session_controller import SessionController


class FakeChannel:
    """In-memory stand-in for EventChannel driven directly by the test."""

    def __init__(self):
        self.session_id: Optional[str] = None
        self.consumer: Optional[Callable] = None
        self.on_error: Optional[Callable] = None
        self.connected = False
        self.opened: List[str] = []
        self.close_calls = 0
        self._open = False
        self._listeners: List[Callable[[bool], None]] = []

    @property
    def is_open(self) -> bool:
        return self._open

    def add_connection_listener(self, listener):
        self._listeners.append(listener)

    async def open(self, session_id, consumer, on_error=None):
        await self.close()
        self.session_id = session_id
        self.consumer = consumer
        self.on_error = on_error
        self.opened.append(session_id)
        self._open = True

    async def close(self):
        if not self._open:
            return
        self.close_calls += 1
        self._open = False
        self.set_connected(False)
        self.consumer = None
        self.on_error = None

    def set_connected(self, connected: bool):
        if connected == self.connected:
            return
        self.connected = connected
        for listener in self._listeners:
            listener(connected)

    def emit(self, kind: str, **data: Any):
        """Deliver one event the way the real channel does."""
        self.emit_envelope({"type": kind, "data": data})

    def emit_envelope(self, envelope: Any):
        try:
            event = parse_event(envelope)
        except EventDecodeError as e:
            if self.on_error is not None:
                self.on_error(e)
            return
        if self.consumer is not None:
            self.consumer(event)


@pytest.fixture
def valid_config():
    """A minimal valid crawl configuration in wire form."""
    return {
        "startUrl": "https://example.com",
        "maxDepth": 2,
        "maxPages": 100,
        "requestDelay": 0.5,
        "concurrentThreads": 4,
    }


@pytest.fixture
def client():
    """Control client mock answering every call successfully."""
    mock = AsyncMock(spec=ControlClient)
    mock.start.return_value = StartResponse(session_id="42", status="RUNNING")
    mock.pause.return_value = None
    mock.resume.return_value = None
    mock.stop.return_value = None
    mock.pages.return_value = []
    mock.flows.return_value = []
    mock.extracted_data.return_value = []
    return mock


@pytest.fixture
def channel():
    """Fake event channel."""
    return FakeChannel()


@pytest.fixture
def controller(client, channel):
    """Session controller wired to the mock client and fake channel."""
    return SessionController(
        client=client,
        channel=channel,
        options=ReconcileOptions(log_capacity=100, activity_log=False),
    )

