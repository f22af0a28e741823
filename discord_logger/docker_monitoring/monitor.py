import logging
import threading

from discord_logger.config.config_model import GlobalConfig
from discord_logger.docker_monitoring.discovery import DiscoveryEngine
from discord_logger.docker_monitoring.events import EventSubscriber
from discord_logger.docker_monitoring.registry import ContainerRegistry
from discord_logger.docker_monitoring.watcher import ContainerWatcher

logger = logging.getLogger(__name__)


class DockerLogMonitor:
    """
    Wires discovery, the registry, one ContainerWatcher thread per container and the EventSubscriber thread.
    """

    def __init__(self, config: GlobalConfig, runtime, dispatcher, registry: ContainerRegistry | None = None):
        self.config = config
        self.runtime = runtime
        self.dispatcher = dispatcher
        self.registry = registry if registry is not None else ContainerRegistry()
        self.discovery = DiscoveryEngine(runtime)
        self.event_subscriber = EventSubscriber(
            runtime,
            self.registry,
            spawn_watcher=self.spawn_watcher,
            announce=not config.settings.disable_container_event_message,
        )
        self.shutdown_event = threading.Event()
        self._watchers: dict[str, ContainerWatcher] = {}
        self._watchers_lock = threading.Lock()

    def start(self) -> str:
        """Seed the registry, attach to all seeded containers and start listening for events."""
        entries = self.discovery.discover(self.config.containers)
        members = self.registry.add_all(entries)
        for identifier in members:
            if self.registry.claim(identifier):
                self.spawn_watcher(identifier, False)
        self.event_subscriber.start()
        return self._start_message(members)

    def _start_message(self, members: list[str]) -> str:
        if not members:
            return "Not watching any containers yet. Waiting for containers to start."
        return f"Watching {len(members)} container(s): {', '.join(members)}"

    def spawn_watcher(self, identifier: str, announce: bool) -> ContainerWatcher | None:
        """Start a watcher thread. The caller must have claimed identifier in the registry."""
        watcher = ContainerWatcher(
            self.runtime,
            identifier,
            self.dispatcher,
            self.registry,
            announce=announce,
            on_finished=self._watcher_finished,
        )
        with self._watchers_lock:
            # checked under the lock so cleanup() either sees this watcher or it is never started
            if self.shutdown_event.is_set():
                self.registry.release(identifier)
                return None
            self._watchers[identifier] = watcher
            watcher.start()
        return watcher

    def _watcher_finished(self, watcher: ContainerWatcher):
        with self._watchers_lock:
            if self._watchers.get(watcher.identifier) is watcher:
                del self._watchers[watcher.identifier]
        logger.debug(f"Watcher for {watcher.identifier} finished: {watcher.result}")

    def watchers(self) -> list[ContainerWatcher]:
        with self._watchers_lock:
            return list(self._watchers.values())

    def cleanup(self, timeout: float = 2.0):
        """
        Close all log streams and the event subscription. No exit messages are sent for streams closed here.
        """
        logger.info("Stopping all watchers...")
        self.shutdown_event.set()
        self.event_subscriber.stop()
        watchers = self.watchers()
        for watcher in watchers:
            watcher.stop()
        for watcher in watchers:
            if watcher.thread is not None:
                watcher.thread.join(timeout=timeout)
        if self.event_subscriber.thread is not None:
            self.event_subscriber.thread.join(timeout=timeout)
        logger.info("All watchers stopped.")
