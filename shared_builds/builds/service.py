"""Build service module.

This module provides the high-level shared build API:
- deploy_build(): reconcile one build and optionally wait for it
- deploy_builds(): reconcile many builds without waiting
- Status, wait and delete operations on deployed builds

Reconciliation reads the build status and picks one action, in priority
order:
1. Force rebuild, or a missing/stale/broken build: delete, then create.
2. Source changed: update in place.
3. Otherwise: nothing.

Failures from the build process are never caught or retried here.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from shared_builds.builds.cluster import ClusterBuildProcessFactory
from shared_builds.builds.registry import BuildRegistry
from shared_builds.config import get_settings
from shared_builds.types import REBUILD_STATUSES, BuildAction, BuildStatus

if TYPE_CHECKING:
    from shared_builds.builds.cluster import ClusterClient
    from shared_builds.builds.definition import BuildDefinition
    from shared_builds.builds.process import BuildProcess
    from shared_builds.config import Settings

logger = logging.getLogger(__name__)


def decide_action(status: BuildStatus, force_rebuild: bool = False) -> BuildAction:
    """Choose the action that converges a build with the given status.

    Args:
        status: Observed build status.
        force_rebuild: Recreate regardless of status.

    Returns:
        The action to take.
    """
    if force_rebuild or status in REBUILD_STATUSES:
        return BuildAction.RECREATE
    if status == BuildStatus.SOURCE_CHANGE:
        return BuildAction.UPDATE
    return BuildAction.NONE


class BuildManager:
    """Deploys shared builds and keeps them current.

    One manager is created at startup and passed to every caller; it owns
    the registry of tracked build processes.

    Args:
        registry: Registry of tracked build processes.
        force_rebuild: Recreate every build on deploy.
    """

    def __init__(self, registry: BuildRegistry, force_rebuild: bool = False) -> None:
        self.registry = registry
        self.force_rebuild = force_rebuild

    def _reconcile(self, process: BuildProcess) -> BuildAction:
        status = process.status()
        action = decide_action(status, self.force_rebuild)

        if action == BuildAction.RECREATE:
            process.delete()
            process.create()
            logger.info(
                "Building %s, reason: %s, force rebuild: %s",
                process.name,
                status.value,
                self.force_rebuild,
            )
        elif action == BuildAction.UPDATE:
            process.update()
            logger.info(
                "Updating %s, reason: %s, force rebuild: %s",
                process.name,
                status.value,
                self.force_rebuild,
            )
        else:
            logger.info(
                "Build %s present, status: %s, force rebuild: %s",
                process.name,
                status.value,
                self.force_rebuild,
            )
        return action

    def deploy_build(
        self,
        definition: BuildDefinition,
        wait: bool = True,
        timeout: float | None = None,
    ) -> BuildAction:
        """Deploy a build if needed and optionally wait for it.

        Reconciliation of the same definition is serialized; waiting
        happens outside that lock.

        Args:
            definition: Build to deploy.
            wait: Block until the build reaches a terminal state.
            timeout: Wait timeout in minutes (None = process default).

        Returns:
            The action taken.

        Raises:
            ClusterError: If a delete, create or update fails.
            BuildTimeoutError: If waiting exceeds the timeout.
            BuildFailedError: If the build fails while waiting.
        """
        process = self.registry.resolve(definition)
        with self.registry.lock_for(definition):
            action = self._reconcile(process)

        if wait:
            process.await_completion(timeout)
        return action

    def deploy_builds(
        self, definitions: Iterable[BuildDefinition]
    ) -> dict[BuildDefinition, BuildAction]:
        """Deploy several builds without waiting for any of them.

        Use wait_for_build_completion() per definition to synchronize.

        Returns:
            Mapping of each definition to the action taken.
        """
        return {
            definition: self.deploy_build(definition, wait=False)
            for definition in definitions
        }

    def wait_for_build_completion(
        self, definition: BuildDefinition, timeout: float | None = None
    ) -> None:
        """Block until a deployed build reaches a terminal state.

        Args:
            definition: Previously deployed build.
            timeout: Wait timeout in minutes (None = process default).

        Raises:
            UnknownDefinitionError: If the build was never deployed.
            BuildTimeoutError: If the timeout passes first.
            BuildFailedError: If the build fails.
        """
        self.registry.lookup(definition).await_completion(timeout)

    def delete_build(self, definition: BuildDefinition) -> None:
        """Delete a deployed build's resources from the build namespace.

        Raises:
            UnknownDefinitionError: If the build was never deployed.
        """
        process = self.registry.lookup(definition)
        process.delete()
        logger.info("Deleted build %s", process.name)

    def get_build_status(self, definition: BuildDefinition) -> BuildStatus:
        """Return the current status of a deployed build.

        Raises:
            UnknownDefinitionError: If the build was never deployed.
        """
        return self.registry.lookup(definition).status()


def create_manager(
    client: ClusterClient, settings: Settings | None = None
) -> BuildManager:
    """Create a build manager backed by a cluster client.

    Args:
        client: Cluster client used by every build process.
        settings: Application settings.

    Returns:
        BuildManager with an empty registry.
    """
    if settings is None:
        settings = get_settings()

    factory = ClusterBuildProcessFactory(client, settings)
    logger.debug(
        "Creating build manager for namespace %s (force rebuild: %s)",
        settings.build_namespace,
        settings.force_rebuild,
    )
    return BuildManager(BuildRegistry(factory), force_rebuild=settings.force_rebuild)


__all__ = ["BuildManager", "create_manager", "decide_action"]
