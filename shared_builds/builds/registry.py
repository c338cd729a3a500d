"""Build registry.

Tracks one build process per build definition for the lifetime of the
owning process. Entries are created on first resolve and never replaced;
deleting a build removes its cluster resources but keeps the entry so the
same handle is reused when the build is deployed again.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from shared_builds.errors import UnknownDefinitionError

if TYPE_CHECKING:
    from shared_builds.builds.definition import BuildDefinition
    from shared_builds.builds.process import BuildProcess, BuildProcessFactory

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    process: BuildProcess
    lock: threading.Lock = field(default_factory=threading.Lock)


class BuildRegistry:
    """Maps build definitions to their tracked build processes.

    Args:
        factory: Creates the build process for a definition.
    """

    def __init__(self, factory: BuildProcessFactory) -> None:
        self._factory = factory
        self._entries: dict[BuildDefinition, _Entry] = {}
        self._lock = threading.Lock()

    def resolve(self, definition: BuildDefinition) -> BuildProcess:
        """Return the process tracked for a definition, creating it if absent.

        The lookup and insert happen in one critical section, so concurrent
        callers never construct two processes for the same definition.
        Factory errors propagate and leave the registry unchanged.
        """
        with self._lock:
            entry = self._entries.get(definition)
            if entry is None:
                entry = _Entry(self._factory(definition))
                self._entries[definition] = entry
                logger.debug("Tracking build process for %s", definition.name)
            return entry.process

    def _entry(self, definition: BuildDefinition) -> _Entry:
        with self._lock:
            entry = self._entries.get(definition)
        if entry is None:
            raise UnknownDefinitionError(definition)
        return entry

    def lookup(self, definition: BuildDefinition) -> BuildProcess:
        """Return the process for a resolved definition.

        Raises:
            UnknownDefinitionError: If the definition was never resolved.
        """
        return self._entry(definition).process

    def lock_for(self, definition: BuildDefinition) -> threading.Lock:
        """Return the lock serializing reconciliation of a definition.

        Raises:
            UnknownDefinitionError: If the definition was never resolved.
        """
        return self._entry(definition).lock

    def definitions(self) -> list[BuildDefinition]:
        with self._lock:
            return list(self._entries)

    def __contains__(self, definition: object) -> bool:
        with self._lock:
            return definition in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["BuildRegistry"]
