import logging
import threading
import traceback
from typing import Callable

from discord_logger.docker_monitoring.demux import StreamDemultiplexer
from discord_logger.docker_monitoring.docker_helpers import ContainerSnapshot
from discord_logger.docker_monitoring.registry import ContainerRegistry
from discord_logger.docker_monitoring.runtime import LogStream, StreamAttachError
from discord_logger.line_processor import LogProcessor
from discord_logger.notification_formatter import format_exited, format_started

logger = logging.getLogger(__name__)


class WatchSession:
    """
    Live attachment to the log stream of one container.
    Owns the stream handle and the demultiplexer for as long as the stream is open.
    """

    def __init__(self, identifier: str, log_stream: LogStream):
        self.identifier = identifier
        self.log_stream = log_stream
        self.snapshot: ContainerSnapshot = log_stream.snapshot
        self.demuxer = StreamDemultiplexer(unit_name=identifier, raw=self.snapshot.tty)
        self.closed_event = threading.Event()

    @property
    def closed(self) -> bool:
        return self.closed_event.is_set()

    def close(self):
        if self.closed_event.is_set():
            return
        self.closed_event.set()
        self.demuxer.close()
        try:
            self.log_stream.close()
        except Exception as e:
            logger.debug(f"Error trying to close log stream for {self.identifier}: {e}")


class ContainerWatcher:
    """
    Follows the log stream of one container and forwards every line to the dispatcher.

    run() blocks until the stream ends. The result attribute tells how it ended:
    "exited" (stream closed by the runtime), "attach_failed", "error" or "stopped" (process teardown).
    The registry claim for the identifier is released when run() returns.
    """

    def __init__(self,
                 runtime,
                 identifier: str,
                 dispatcher,
                 registry: ContainerRegistry,
                 announce: bool = False,
                 on_finished: Callable[["ContainerWatcher"], None] | None = None,
                 ):
        self.runtime = runtime
        self.identifier = identifier
        self.dispatcher = dispatcher
        self.registry = registry
        self.announce = announce
        self.on_finished = on_finished
        self.session: WatchSession | None = None
        self.result: str | None = None
        self.stop_event = threading.Event()
        self.finished_event = threading.Event()
        self.thread: threading.Thread | None = None

    def start(self) -> threading.Thread:
        self.thread = threading.Thread(target=self.run, name=f"watch-{self.identifier}", daemon=True)
        self.thread.start()
        return self.thread

    def stop(self):
        """Stop watching without announcing an exit (used on shutdown)."""
        self.stop_event.set()
        if self.session is not None:
            self.session.close()

    def run(self) -> str:
        try:
            self.result = self._watch()
        finally:
            self.registry.release(self.identifier)
            self.finished_event.set()
            if self.on_finished is not None:
                self.on_finished(self)
        return self.result

    def _watch(self) -> str:
        try:
            log_stream = self.runtime.get_log_stream(self.identifier)
        except StreamAttachError as e:
            logger.error(str(e))
            return "attach_failed"

        session = WatchSession(self.identifier, log_stream)
        self.session = session
        if self.stop_event.is_set():
            session.close()
            return "stopped"
        processor = LogProcessor(logger, self.identifier, self.dispatcher)
        logger.info(f"Monitoring for Container started: {self.identifier}")
        if self.announce:
            self.dispatcher.submit(format_started(self.identifier))

        error = None
        try:
            for chunk in log_stream:
                if session.closed:
                    break
                for record in session.demuxer.feed(chunk):
                    processor.process_record(record)
        except Exception as e:
            error = e
        finally:
            session.close()

        if self.stop_event.is_set():
            logger.info(f"Monitoring stopped for container {self.identifier}.")
            return "stopped"
        if error is not None:
            logger.error(f"Error while reading the log stream of {self.identifier}: {error}")
            logger.debug("Traceback: " + "".join(traceback.format_exception(type(error), error, error.__traceback__)))
            return "error"
        logger.info(f"Container {self.identifier} exited. {processor.line_count} lines forwarded.")
        self.dispatcher.submit(format_exited(self.identifier))
        return "exited"
