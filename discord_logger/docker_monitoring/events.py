import logging
import threading
import traceback
from typing import Callable, Iterable, Iterator

import docker.errors
import requests

from discord_logger.docker_monitoring.docker_helpers import EventParseError, parse_event
from discord_logger.docker_monitoring.registry import ContainerRegistry

logger = logging.getLogger(__name__)


def iter_event_lines(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Re-split the event stream on newlines, an event may arrive in several chunks."""
    buffer = b""
    for chunk in chunks:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        buffer += chunk
        while b"\n" in buffer:
            line, buffer = buffer.split(b"\n", 1)
            if line.strip():
                yield line
    if buffer.strip():
        yield buffer


class EventSubscriber:
    """
    Watches docker 'start' events for the life of the process and starts a ContainerWatcher
    for every started container that resolves against the registry.

    All registry mutation after startup happens from this loop.
    """

    def __init__(self,
                 runtime,
                 registry: ContainerRegistry,
                 spawn_watcher: Callable[[str, bool], object],
                 announce: bool = True,
                 ):
        self.runtime = runtime
        self.registry = registry
        self.spawn_watcher = spawn_watcher
        self.announce = announce
        self.event_stream = None
        self.stop_event = threading.Event()
        self.finished_event = threading.Event()
        self.thread: threading.Thread | None = None
        self.events_processed = 0
        self.events_skipped = 0

    def start(self) -> threading.Thread:
        self.thread = threading.Thread(target=self.run, name="docker-events", daemon=True)
        self.thread.start()
        return self.thread

    def stop(self):
        self.stop_event.set()
        if self.event_stream is not None:
            try:
                self.event_stream.close()
            except Exception as e:
                logger.debug(f"Error trying to close the docker event stream: {e}")

    def run(self):
        try:
            self._run()
        finally:
            self.event_stream = None
            self.finished_event.set()

    def _run(self):
        try:
            self.event_stream = self.runtime.subscribe_events()
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            logger.error(f"Could not subscribe to docker events: {e}. Started containers will not be picked up.")
            return
        logger.info("Docker Event Watcher started. Watching for new containers...")
        try:
            for line in iter_event_lines(self.event_stream):
                if self.stop_event.is_set():
                    break
                self.process_line(line)
        except Exception as e:
            if not self.stop_event.is_set():
                logger.error(f"Docker Event Watcher failed: {e}")
                logger.debug(f"Traceback: {traceback.format_exc()}")
        if self.stop_event.is_set():
            logger.debug("Docker Event Watcher is shutting down.")
        else:
            logger.warning("Event listener process exited. Containers started from now on will not be picked up.")

    def process_line(self, line: bytes | str) -> str | None:
        """
        Handle one raw event. Returns the identifier a watcher was started for, else None.
        Malformed events are logged and skipped.
        """
        try:
            snapshot = parse_event(line)
        except EventParseError as e:
            self.events_skipped += 1
            logger.warning(f"Skipping malformed docker event: {e}")
            return None
        self.events_processed += 1

        try:
            return self._handle_event(snapshot)
        except Exception as e:
            self.events_skipped += 1
            logger.warning(f"Skipping docker event for {snapshot.name} that could not be handled: {e}")
            logger.debug(f"Traceback: {traceback.format_exc()}")
            return None

    def _handle_event(self, snapshot) -> str | None:
        match = self.registry.resolve(snapshot)
        if match is None:
            logger.debug(f"Container {snapshot.name} started but is not watched.")
            return None
        identifier = match.identifier
        if match.discovered:
            identifier = self.registry.add(identifier, snapshot)
            logger.debug(f"Container {identifier} opted in via label.")
        if not self.registry.claim(identifier):
            logger.debug(f"Container {identifier} is already being watched.")
            return None
        logger.info(f'Container "{identifier}" started, attaching listener.')
        try:
            self.spawn_watcher(identifier, self.announce)
        except Exception:
            self.registry.release(identifier)
            raise
        return identifier
