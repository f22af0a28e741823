import logging
from typing import Iterator

import docker
import docker.errors
import requests
from docker.types import CancellableStream

from discord_logger.constants import OPT_IN_LABEL
from discord_logger.docker_monitoring.docker_helpers import ContainerSnapshot, format_docker_error

logger = logging.getLogger(__name__)


class StreamAttachError(Exception):
    """Raised when the log stream of a container can not be opened (not found, permission denied, ...)"""
    def __init__(self, identifier: str, reason: str):
        super().__init__(f"Could not attach to container '{identifier}': {reason}")
        self.identifier = identifier
        self.reason = reason


class LogStream:
    """
    Open, following log stream of one container.
    Iterating yields raw (still multiplexed) byte chunks until the container stops.
    """

    def __init__(self, snapshot: ContainerSnapshot, chunks: Iterator[bytes], closer=None):
        self.snapshot = snapshot
        self._chunks = chunks
        self._closer = closer

    def __iter__(self):
        return iter(self._chunks)

    def close(self):
        if self._closer is not None:
            self._closer()


class DockerRuntime:
    """
    Container runtime capability backed by the docker SDK.

    The docker SDK demultiplexes log streams itself and hides the frame headers,
    so logs are requested through the low level API client and read as raw bytes.
    """

    def __init__(self, client: docker.DockerClient):
        self.client = client

    def inspect(self, identifier: str) -> ContainerSnapshot:
        return ContainerSnapshot.from_container(self.client.containers.get(identifier))

    def list_containers(self, label: str = f"{OPT_IN_LABEL}=true") -> list[ContainerSnapshot]:
        containers = self.client.containers.list(filters={"label": label})
        return [ContainerSnapshot.from_container(c) for c in containers]

    def get_log_stream(self, identifier: str) -> LogStream:
        """Open a following log stream without history (tail=0) for stdout and stderr."""
        try:
            snapshot = self.inspect(identifier)
            api = self.client.api
            url = api._url("/containers/{0}/logs", snapshot.id)
            params = {"stdout": 1, "stderr": 1, "follow": 1, "tail": 0, "timestamps": 0}
            response = api._get(url, params=params, stream=True)
            api._raise_for_status(response)
        except docker.errors.NotFound as e:
            raise StreamAttachError(identifier, "Container not found (404)") from e
        except (docker.errors.APIError, requests.exceptions.RequestException) as e:
            raise StreamAttachError(identifier, format_docker_error(e)) from e
        chunks = api._stream_raw_result(response, chunk_size=None, decode=False)
        stream = CancellableStream(chunks, response)
        return LogStream(snapshot, stream, closer=stream.close)

    def subscribe_events(self) -> CancellableStream:
        """Subscribe to container start events. Yields raw JSON bytes, one or more events per chunk."""
        return self.client.events(
            decode=False,
            filters={"type": "container", "event": "start"},
        )
