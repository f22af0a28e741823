import logging
import threading
from dataclasses import dataclass
from typing import Iterable

from discord_logger.docker_monitoring.docker_helpers import ContainerSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Match:
    """Result of resolving a started container against the registry."""
    identifier: str
    discovered: bool = False  # True if matched only through the opt-in label


class ContainerRegistry:
    """
    Deduplicated set of container identifiers that are watched or pending watch.

    Members are never removed, a restarted container is found again under the same identifier.
    Next to the members the registry tracks which identifiers currently have an active
    WatchSession so that claim() can act as the atomic check-and-mark before a watcher is started.
    """

    def __init__(self):
        self._members: dict[str, ContainerSnapshot | None] = {}
        self._active: set[str] = set()
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._members)

    def __iter__(self):
        return iter(self.members())

    def members(self) -> list[str]:
        with self._lock:
            return list(self._members)

    def _find(self, identifier: str | ContainerSnapshot) -> str | None:
        for member, known in self._members.items():
            if isinstance(identifier, ContainerSnapshot):
                if identifier.matches(member):
                    return member
                if known is not None and known.same_container(identifier):
                    return member
            else:
                if member == identifier:
                    return member
                if known is not None and known.matches(identifier):
                    return member
        return None

    def find(self, identifier: str | ContainerSnapshot) -> str | None:
        """Return the member that refers to the same container as identifier."""
        with self._lock:
            return self._find(identifier)

    def contains(self, identifier: str | ContainerSnapshot) -> bool:
        return self.find(identifier) is not None

    def add(self, identifier: str, snapshot: ContainerSnapshot | None = None) -> str:
        """
        Insert identifier unless an equal member exists.
        Returns the member the identifier is stored under.
        """
        with self._lock:
            existing = self._find(snapshot) if snapshot is not None else None
            existing = existing or self._find(identifier)
            if existing is not None:
                if snapshot is not None and self._members[existing] is None:
                    self._members[existing] = snapshot
                return existing
            self._members[identifier] = snapshot
            return identifier

    def add_all(self, identifiers: Iterable[str | ContainerSnapshot | tuple[str, ContainerSnapshot | None]]) -> list[str]:
        """Add identifiers, snapshots or (identifier, snapshot) pairs. Returns the resulting members in order."""
        added = []
        for item in identifiers:
            if isinstance(item, ContainerSnapshot):
                member = self.add(item.name, item)
            elif isinstance(item, tuple):
                member = self.add(*item)
            else:
                member = self.add(item)
            if member not in added:
                added.append(member)
        return added

    def resolve(self, snapshot: ContainerSnapshot) -> Match | None:
        """
        Resolve a started container.
        Returns the registry member referring to it (by name or id prefix),
        else the container's own name if it carries the opt-in label, else None.
        """
        member = self.find(snapshot)
        if member is not None:
            return Match(member)
        if snapshot.opted_in:
            return Match(snapshot.name, discovered=True)
        return None

    def claim(self, identifier: str) -> bool:
        """Mark identifier as having an active WatchSession. False if it already has one."""
        with self._lock:
            if identifier in self._active:
                return False
            self._active.add(identifier)
            return True

    def release(self, identifier: str):
        with self._lock:
            self._active.discard(identifier)

    def is_active(self, identifier: str) -> bool:
        with self._lock:
            return identifier in self._active

    def active(self) -> list[str]:
        with self._lock:
            return [m for m in self._members if m in self._active]
