import sys
import time
import signal
import logging
import threading
import traceback
import docker
import docker.errors
from pydantic import ValidationError

from discord_logger.config.load_config import load_config, format_pydantic_error, ConfigurationError
from discord_logger.constants import START_MESSAGE, SHUTDOWN_MESSAGE
from discord_logger.docker_monitoring.monitor import DockerLogMonitor
from discord_logger.docker_monitoring.runtime import DockerRuntime
from discord_logger.notification_formatter import OutboundMessage
from discord_logger.notifier import Notifier, NotificationDispatcher, DeliveryError, SinkValidationError

logging.basicConfig(
    level="INFO",
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler()
    ]
)
logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)
logging.getLogger("docker").setLevel(logging.INFO)

RESTART_LOOP_DELAY = 5


def exit_with_error(message: str):
    """Fatal startup error: log it and exit with a non-zero status before anything is watched."""
    logging.critical(message)
    logging.info(f"Waiting {RESTART_LOOP_DELAY}s to prevent restart loop...")
    time.sleep(RESTART_LOOP_DELAY)
    sys.exit(1)


def create_docker_client() -> docker.DockerClient:
    """Connect to the docker daemon configured via DOCKER_HOST or the local socket."""
    try:
        client = docker.from_env()
        client.ping()
    except docker.errors.DockerException as e:
        logging.debug(f"Traceback: {traceback.format_exc()}")
        exit_with_error(f"Could not connect to the docker daemon: {e}")
    logging.info(f"Connected to Docker Client on {client.api.base_url}")
    return client


def validate_sink(notifier: Notifier, send_start_message: bool):
    """
    The process must not run without a working notification endpoint.
    Raises SinkValidationError.
    """
    notifier.validate()
    if send_start_message:
        try:
            notifier.send(START_MESSAGE)
        except DeliveryError as e:
            raise SinkValidationError(f"Provided webhook url is invalid: {e}") from e


def create_handle_signal(monitor: DockerLogMonitor, dispatcher: NotificationDispatcher, config):
    """
    Create signal handler for graceful shutdown.

    Returns:
        tuple: (signal_handler_function, global_shutdown_event)
    """
    global_shutdown_event = threading.Event()

    def handle_signal(signum, frame):
        if global_shutdown_event.is_set():
            return
        logging.info("Shutting down...")
        monitor.cleanup()
        if not config.settings.disable_shutdown_message:
            dispatcher.submit(OutboundMessage(SHUTDOWN_MESSAGE))
        dispatcher.shutdown(wait=True)
        global_shutdown_event.set()

    return handle_signal, global_shutdown_event


def start_logger() -> threading.Event:
    """
    Loads config, validates the notification endpoint, starts monitoring and installs signal handlers.

    Returns:
        threading.Event: Global shutdown event that can be waited on
    """
    try:
        config, _ = load_config()
    except ValidationError as e:
        exit_with_error(f"Config validation failed: {format_pydantic_error(e)}")
    except ConfigurationError as e:
        exit_with_error(str(e))

    logging.getLogger().setLevel(getattr(logging, config.settings.log_level, logging.INFO))
    logging.info(f"Log-Level set to {config.settings.log_level}")
    logging.info("Starting docker discord logger...")

    client = create_docker_client()
    notifier = Notifier.from_config(config)
    try:
        validate_sink(notifier, send_start_message=not config.settings.disable_start_message)
    except SinkValidationError as e:
        exit_with_error(str(e))

    dispatcher = NotificationDispatcher(notifier, max_workers=config.settings.notification_workers)
    monitor = DockerLogMonitor(config, DockerRuntime(client), dispatcher)
    logging.info(f"Docker discord logger started. {monitor.start()}")

    handle_signal, global_shutdown_event = create_handle_signal(monitor, dispatcher, config)
    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)
    return global_shutdown_event


def main():
    global_shutdown_event = start_logger()
    global_shutdown_event.wait()


if __name__ == "__main__":
    main()
