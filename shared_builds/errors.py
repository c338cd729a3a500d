"""Error definitions for shared builds.

Every exception carries a stable ``code`` attribute so callers can
handle failures programmatically without matching on messages.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shared_builds.builds.definition import BuildDefinition

UNKNOWN_DEFINITION = "unknown_definition"
CLUSTER_ERROR = "cluster_error"
BUILD_TIMEOUT = "build_timeout"
BUILD_FAILED = "build_failed"


class SharedBuildsError(Exception):
    """Base error for shared build operations."""

    def __init__(self, message: str, code: str = "shared_builds_error") -> None:
        super().__init__(message)
        self.code = code


class UnknownDefinitionError(SharedBuildsError):
    """Raised when a definition is queried before it was resolved."""

    def __init__(self, definition: BuildDefinition) -> None:
        super().__init__(
            f"Build definition was never deployed: {definition.name}",
            code=UNKNOWN_DEFINITION,
        )
        self.definition = definition


class ClusterError(SharedBuildsError):
    """Raised when the cluster rejects or fails a build operation."""

    def __init__(
        self, message: str, build_name: str | None = None, code: str = CLUSTER_ERROR
    ) -> None:
        super().__init__(message, code=code)
        self.build_name = build_name


class BuildTimeoutError(SharedBuildsError, TimeoutError):
    """Raised when a build does not finish within the allotted time."""

    def __init__(self, build_name: str, timeout: float) -> None:
        super().__init__(
            f"Build {build_name} did not finish within {timeout:g} minute(s)",
            code=BUILD_TIMEOUT,
        )
        self.build_name = build_name
        self.timeout = timeout


class BuildFailedError(SharedBuildsError):
    """Raised when a build reaches a terminal failure state."""

    def __init__(self, build_name: str, phase: str) -> None:
        super().__init__(f"Build {build_name} ended in phase {phase}", code=BUILD_FAILED)
        self.build_name = build_name
        self.phase = phase


__all__ = [
    "BUILD_FAILED",
    "BUILD_TIMEOUT",
    "CLUSTER_ERROR",
    "UNKNOWN_DEFINITION",
    "BuildFailedError",
    "BuildTimeoutError",
    "ClusterError",
    "SharedBuildsError",
    "UnknownDefinitionError",
]
