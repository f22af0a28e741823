import json
from dataclasses import dataclass, field

from discord_logger.constants import OPT_IN_LABEL


class EventParseError(Exception):
    """Raised when a docker event can not be parsed into a container snapshot"""
    pass


def identifier_matches(identifier: str, name: str, container_id: str) -> bool:
    """
    Prefix-or-exact identity.
    An identifier refers to a container if it equals the container name or is a prefix of its full id.
    Names are never prefix matched, 'app' does not refer to 'app-worker'.
    """
    if not identifier:
        return False
    if identifier == name:
        return True
    return bool(container_id) and container_id.startswith(identifier)


def is_opted_in(labels: dict | None) -> bool:
    """Check the opt-in label (discord-logger.enabled=true)."""
    if not labels:
        return False
    return labels.get(OPT_IN_LABEL) == "true"


@dataclass(frozen=True)
class ContainerSnapshot:
    """
    Lightweight, immutable snapshot of container metadata.

    Avoids passing heavy Docker container objects around.
    """
    name: str
    id: str
    labels: dict = field(default_factory=dict, compare=False, hash=False)
    tty: bool = False

    @property
    def short_id(self) -> str:
        return self.id[:12]

    @property
    def opted_in(self) -> bool:
        return is_opted_in(self.labels)

    def matches(self, identifier: str) -> bool:
        return identifier_matches(identifier, self.name, self.id)

    def same_container(self, other: "ContainerSnapshot") -> bool:
        if self.id and other.id:
            return self.id.startswith(other.id) or other.id.startswith(self.id)
        return self.name == other.name

    @classmethod
    def from_container(cls, container) -> "ContainerSnapshot":
        """
        Extract minimal metadata from a Docker container object.
        """
        attrs = container.attrs or {}
        return cls(
            name=container.name,
            id=container.id,
            labels=container.labels or {},
            tty=bool(attrs.get("Config", {}).get("Tty", False)),
        )

    @classmethod
    def from_event(cls, event: dict) -> "ContainerSnapshot":
        """
        Create snapshot from a docker event.
        Docker events carry the container name and labels in Actor.Attributes.
        Newer API versions dropped the top level 'id' so Actor.ID is used as fallback.
        """
        if not isinstance(event, dict):
            raise EventParseError(f"Event is not a JSON object: {event!r}")
        actor = event.get("Actor") or {}
        if not isinstance(actor, dict):
            raise EventParseError(f"Event Actor is not an object: {event}")
        attrs = actor.get("Attributes") or {}
        if not isinstance(attrs, dict):
            raise EventParseError(f"Event Attributes are not an object: {event}")
        container_id = event.get("id") or actor.get("ID") or ""
        container_name = attrs.get("name", "")
        if not isinstance(container_id, str) or not isinstance(container_name, str):
            raise EventParseError(f"Event has a malformed container id or name: {event}")
        if not container_id or not container_name:
            raise EventParseError(f"Event is missing container id or name: {event}")
        return cls(
            name=container_name,
            id=container_id,
            labels=attrs,
        )


def parse_event(line: bytes | str) -> ContainerSnapshot:
    """Parse one JSON event line of the docker event stream."""
    try:
        event = json.loads(line)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise EventParseError(f"Could not parse docker event {line!r}: {e}") from e
    return ContainerSnapshot.from_event(event)


def format_docker_error(error: Exception) -> str:
    """
    Extract user-friendly message from Docker exception.
    """
    error_str = str(error)
    if "403" in error_str or "Forbidden" in error_str:
        return "Permission denied (403 Forbidden)"
    if "404" in error_str or "Not Found" in error_str:
        return "Container not found (404)"
    if "500" in error_str or "Internal Server Error" in error_str:
        return "Docker daemon error (500)"
    if "permission denied" in error_str.lower():
        return "Permission denied"
    if "timeout" in error_str.lower():
        return "Operation timed out"
    return error_str or "See logs for details."
