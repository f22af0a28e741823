"""Shared fakes for the container runtime and the notification sink."""

import json
import struct
import threading

import docker.errors
import pytest

from discord_logger.docker_monitoring.docker_helpers import ContainerSnapshot
from discord_logger.docker_monitoring.registry import ContainerRegistry
from discord_logger.docker_monitoring.runtime import LogStream, StreamAttachError


def frame(stream_byte: int, payload: bytes) -> bytes:
    """Build one multiplexed log frame."""
    return struct.pack(">BxxxI", stream_byte, len(payload)) + payload


def start_event(name: str, container_id: str, labels: dict | None = None, legacy_id: bool = True) -> bytes:
    """Build a docker 'start' event line as emitted by the daemon."""
    attributes = {"name": name, **(labels or {})}
    event = {
        "Type": "container",
        "Action": "start",
        "Actor": {"ID": container_id, "Attributes": attributes},
    }
    if legacy_id:
        event["id"] = container_id
        event["status"] = "start"
    return json.dumps(event).encode() + b"\n"


class FakeEventStream:
    def __init__(self, chunks):
        self._chunks = list(chunks)
        self.closed = False

    def __iter__(self):
        for chunk in self._chunks:
            if self.closed:
                return
            yield chunk

    def close(self):
        self.closed = True


class FakeRuntime:
    """In-memory stand-in for DockerRuntime."""

    def __init__(self, containers=None, logs=None, events=None, list_error=None, events_error=None):
        self.containers: list[ContainerSnapshot] = list(containers or [])
        self.logs: dict = dict(logs or {})
        self.events = list(events or [])
        self.list_error = list_error
        self.events_error = events_error
        self.opened: list[str] = []
        self._lock = threading.Lock()

    def _lookup(self, identifier: str) -> ContainerSnapshot | None:
        for snapshot in self.containers:
            if snapshot.matches(identifier):
                return snapshot
        return None

    def inspect(self, identifier):
        snapshot = self._lookup(identifier)
        if snapshot is None:
            raise docker.errors.NotFound(f"No such container: {identifier}")
        return snapshot

    def list_containers(self, label="discord-logger.enabled=true"):
        if self.list_error is not None:
            raise self.list_error
        return [s for s in self.containers if s.opted_in]

    def get_log_stream(self, identifier):
        snapshot = self._lookup(identifier)
        if snapshot is None:
            raise StreamAttachError(identifier, "Container not found (404)")
        with self._lock:
            self.opened.append(identifier)
        source = self.logs.get(snapshot.name, [])
        if isinstance(source, LogStream):
            return source
        if callable(source):
            return LogStream(snapshot, source())
        return LogStream(snapshot, iter(source))

    def subscribe_events(self):
        if self.events_error is not None:
            raise self.events_error
        return FakeEventStream(self.events)


class RecordingDispatcher:
    """Dispatcher that records submitted messages instead of sending them."""

    def __init__(self):
        self.messages = []
        self._lock = threading.Lock()

    def submit(self, message):
        with self._lock:
            self.messages.append(message)
        return None

    @property
    def texts(self) -> list[str]:
        with self._lock:
            return [m.text for m in self.messages]

    def shutdown(self, wait=True, cancel_pending=False):
        pass


class RecordingNotifier:
    def __init__(self, fail_on=None):
        self.sent = []
        self.fail_on = fail_on
        self._lock = threading.Lock()

    def send(self, message):
        from discord_logger.notifier import DeliveryError

        with self._lock:
            self.sent.append(message)
        if self.fail_on and self.fail_on in message:
            raise DeliveryError("webhook returned 500")


@pytest.fixture
def registry():
    return ContainerRegistry()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()
