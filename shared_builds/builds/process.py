"""Build process interface.

A build process is the live handle to one definition's build resources
in the cluster. The registry owns process handles; the build manager
only reads their status and issues commands through them.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from shared_builds.builds.definition import BuildDefinition
    from shared_builds.types import BuildStatus


@runtime_checkable
class BuildProcess(Protocol):
    """Handle to the cluster-side build of a single definition."""

    @property
    def name(self) -> str:
        """Human-readable build name."""
        ...

    def status(self) -> BuildStatus:
        """Observe the current build status."""
        ...

    def create(self) -> None:
        """Create the build resources and start a build.

        Raises:
            ClusterError: If the cluster rejects the request.
        """
        ...

    def delete(self) -> None:
        """Delete the build resources; a no-op when nothing exists.

        Raises:
            ClusterError: If the cluster rejects the request.
        """
        ...

    def update(self) -> None:
        """Apply the current source to the existing build and rebuild.

        Raises:
            ClusterError: If the cluster rejects the request.
        """
        ...

    def await_completion(self, timeout: float | None = None) -> None:
        """Block until the build reaches a terminal state.

        Args:
            timeout: Maximum wait in minutes (None = process default).

        Raises:
            BuildTimeoutError: If the build is still running at the deadline.
            BuildFailedError: If the build ends in a failure state.
            ClusterError: If the build status cannot be read.
        """
        ...


BuildProcessFactory = Callable[["BuildDefinition"], BuildProcess]


__all__ = ["BuildProcess", "BuildProcessFactory"]
