import logging
import traceback

import docker.errors
import requests

from discord_logger.constants import OPT_IN_LABEL
from discord_logger.docker_monitoring.docker_helpers import ContainerSnapshot

logger = logging.getLogger(__name__)


class DiscoveryEngine:
    """
    Builds the initial set of containers to watch.

    Merges the configured identifiers with the running containers carrying the opt-in label
    and deduplicates them by prefix-or-exact identity.
    """

    def __init__(self, runtime, label: str = OPT_IN_LABEL):
        self.runtime = runtime
        self.label = label

    def labeled_containers(self) -> list[ContainerSnapshot]:
        """Query the runtime for opted-in containers. Failures degrade to an empty list."""
        try:
            return self.runtime.list_containers(f"{self.label}=true")
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            logger.error(f"Error while checking running containers: {e}")
            logger.debug(f"Traceback: {traceback.format_exc()}")
            return []

    def _inspect_configured(self, identifier: str) -> ContainerSnapshot | None:
        """Best effort lookup so that a configured name or id prefix can be matched against discovered containers."""
        try:
            return self.runtime.inspect(identifier)
        except docker.errors.NotFound:
            logger.debug(f"Configured container '{identifier}' does not exist (yet).")
        except (docker.errors.DockerException, requests.exceptions.RequestException) as e:
            logger.debug(f"Could not inspect configured container '{identifier}': {e}")
        return None

    def discover(self, configured: list[str]) -> list[tuple[str, ContainerSnapshot | None]]:
        """
        Returns:
            Deduplicated list of (identifier, snapshot) pairs. Configured identifiers keep their
            spelling, discovered containers are identified by name. snapshot is None if unknown.
        """
        entries: list[tuple[str, ContainerSnapshot | None]] = []
        for identifier in configured:
            if identifier:
                entries.append((identifier, self._inspect_configured(identifier)))
        for snapshot in self.labeled_containers():
            entries.append((snapshot.name, snapshot))
        return merge_identifiers(entries)


def _same(a: tuple[str, ContainerSnapshot | None], b: tuple[str, ContainerSnapshot | None]) -> bool:
    identifier_a, snapshot_a = a
    identifier_b, snapshot_b = b
    if identifier_a == identifier_b:
        return True
    if snapshot_a is not None and snapshot_a.matches(identifier_b):
        return True
    if snapshot_b is not None and snapshot_b.matches(identifier_a):
        return True
    return snapshot_a is not None and snapshot_b is not None and snapshot_a.same_container(snapshot_b)


def merge_identifiers(entries: list[tuple[str, ContainerSnapshot | None]]) -> list[tuple[str, ContainerSnapshot | None]]:
    """Union with duplicates removed, the first spelling of a container wins."""
    merged: list[tuple[str, ContainerSnapshot | None]] = []
    for entry in entries:
        for i, existing in enumerate(merged):
            if _same(existing, entry):
                if existing[1] is None and entry[1] is not None:
                    merged[i] = (existing[0], entry[1])
                break
        else:
            merged.append(entry)
    return merged
