"""Cluster-backed build process.

This module handles:
- The client interface needed from a cluster API library
- Mapping raw build config and build observations to BuildStatus
- Creating, updating and deleting build resources
- Polling a build until it reaches a terminal phase

The mapping is total: any phase not recognized here maps to ERROR, so an
unexpected cluster state always leads to a rebuild.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Protocol

from shared_builds.errors import BuildFailedError, BuildTimeoutError, ClusterError
from shared_builds.types import BuildStatus, BuildStrategy

if TYPE_CHECKING:
    from shared_builds.builds.definition import BuildDefinition
    from shared_builds.config import Settings

logger = logging.getLogger(__name__)

# Annotation recording the definition fingerprint on the build config
FINGERPRINT_ANNOTATION = "shared-builds/source-fingerprint"

PHASE_NEW = "New"
PHASE_PENDING = "Pending"
PHASE_RUNNING = "Running"
PHASE_COMPLETE = "Complete"
PHASE_FAILED = "Failed"
PHASE_ERROR = "Error"
PHASE_CANCELLED = "Cancelled"

ACTIVE_PHASES = frozenset({PHASE_NEW, PHASE_PENDING, PHASE_RUNNING})
FAILURE_PHASES = frozenset({PHASE_FAILED, PHASE_ERROR, PHASE_CANCELLED})


@dataclass(frozen=True)
class BuildConfigInfo:
    """Observed build configuration.

    Attributes:
        name: Build config name.
        fingerprint: Source fingerprint recorded when the config was applied.
    """

    name: str
    fingerprint: str | None = None


@dataclass(frozen=True)
class BuildInfo:
    """Observed build run.

    Attributes:
        name: Build run name.
        phase: Cluster-reported phase (e.g. "Running", "Complete").
        image_created_at: Creation time of the pushed image, if any.
    """

    name: str
    phase: str
    image_created_at: datetime | None = None


class ClusterClient(Protocol):
    """Operations required from the cluster API for shared builds."""

    def get_build_config(self, namespace: str, name: str) -> BuildConfigInfo | None:
        ...

    def get_latest_build(self, namespace: str, name: str) -> BuildInfo | None:
        ...

    def source_exists(self, git_url: str, git_ref: str) -> bool:
        ...

    def apply_build_config(
        self, namespace: str, name: str, spec: dict[str, Any]
    ) -> None:
        ...

    def start_build(
        self, namespace: str, name: str, from_dir: str | None = None
    ) -> str:
        ...

    def delete_build_resources(self, namespace: str, name: str) -> None:
        ...


@contextmanager
def cluster_call(build_name: str, operation: str) -> Iterator[None]:
    """Translate client failures into ClusterError.

    Errors already raised as ClusterError pass through untouched.
    """
    try:
        yield
    except ClusterError:
        raise
    except Exception as e:
        raise ClusterError(
            f"Failed to {operation} build {build_name}: {e}",
            build_name=build_name,
        ) from e


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClusterBuildProcess:
    """Build process backed by a cluster client.

    Args:
        definition: Definition this process builds.
        client: Cluster client.
        namespace: Namespace holding the build resources.
        default_timeout: Wait timeout used when none is given (minutes).
        poll_interval: Seconds between status polls while waiting.
        max_image_age: Age after which a completed image is stale.
        clock: Returns the current UTC time.
        sleep: Sleeps for the given number of seconds.
        monotonic: Returns seconds from a monotonic clock, paired with sleep.
    """

    def __init__(
        self,
        definition: BuildDefinition,
        client: ClusterClient,
        namespace: str,
        default_timeout: float = 30,
        poll_interval: float = 5.0,
        max_image_age: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.definition = definition
        self.client = client
        self.namespace = namespace
        self.default_timeout = default_timeout
        self.poll_interval = poll_interval
        self.max_image_age = max_image_age
        self._clock = clock
        self._sleep = sleep
        self._monotonic = monotonic

    @property
    def name(self) -> str:
        return self.definition.name

    def __repr__(self) -> str:
        return f"ClusterBuildProcess(name={self.name!r}, namespace={self.namespace!r})"

    def status(self) -> BuildStatus:
        """Derive the build status from the cluster state."""
        with cluster_call(self.name, "read status of"):
            config = self.client.get_build_config(self.namespace, self.name)
            if config is None:
                return BuildStatus.NOT_DEPLOYED

            if not self.client.source_exists(
                self.definition.git_url, self.definition.git_ref
            ):
                return BuildStatus.GIT_REPO_GONE

            build = self.client.get_latest_build(self.namespace, self.name)

        if build is None:
            return BuildStatus.NOT_DEPLOYED
        return self._classify(config, build)

    def _classify(self, config: BuildConfigInfo, build: BuildInfo) -> BuildStatus:
        if build.phase == PHASE_FAILED:
            return BuildStatus.FAILED
        if build.phase in FAILURE_PHASES:
            return BuildStatus.ERROR
        if build.phase != PHASE_COMPLETE and build.phase not in ACTIVE_PHASES:
            logger.warning(
                "Build %s reported unknown phase %r", self.name, build.phase
            )
            return BuildStatus.ERROR

        if build.phase == PHASE_COMPLETE and self._image_is_stale(build):
            return BuildStatus.OLD_IMAGE
        if config.fingerprint != self.definition.source_fingerprint():
            return BuildStatus.SOURCE_CHANGE
        if build.phase == PHASE_COMPLETE:
            return BuildStatus.COMPLETE
        return BuildStatus.RUNNING

    def _image_is_stale(self, build: BuildInfo) -> bool:
        created_at = build.image_created_at
        if created_at is None:
            return True
        # Naive timestamps from the client are UTC
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return self._clock() - created_at > self.max_image_age

    def build_config_spec(self) -> dict[str, Any]:
        """Compose the build config applied to the cluster."""
        definition = self.definition
        source: dict[str, Any]
        if definition.strategy == BuildStrategy.BINARY:
            source = {"type": "Binary"}
        else:
            source = {
                "type": "Git",
                "git": {"uri": definition.git_url, "ref": definition.git_ref},
            }
            if definition.context_dir:
                source["contextDir"] = definition.context_dir

        return {
            "metadata": {
                "name": definition.name,
                "annotations": {
                    FINGERPRINT_ANNOTATION: definition.source_fingerprint()
                },
            },
            "spec": {
                "source": source,
                "strategy": {
                    "type": "Source",
                    "sourceStrategy": {
                        "from": {
                            "kind": "DockerImage",
                            "name": definition.builder_image,
                        },
                        "env": [
                            {"name": k, "value": v} for k, v in definition.env
                        ],
                    },
                },
                "output": {
                    "to": {"kind": "ImageStreamTag", "name": f"{definition.name}:latest"}
                },
            },
        }

    def _apply_and_start(self, operation: str) -> None:
        from_dir = None
        if self.definition.strategy == BuildStrategy.BINARY:
            from_dir = self.definition.context_dir or "."

        with cluster_call(self.name, operation):
            self.client.apply_build_config(
                self.namespace, self.name, self.build_config_spec()
            )
            run = self.client.start_build(self.namespace, self.name, from_dir=from_dir)
        logger.debug("Started build run %s for %s", run, self.name)

    def create(self) -> None:
        self._apply_and_start("create")

    def update(self) -> None:
        self._apply_and_start("update")

    def delete(self) -> None:
        with cluster_call(self.name, "delete"):
            self.client.delete_build_resources(self.namespace, self.name)
        logger.debug("Deleted build resources of %s", self.name)

    def await_completion(self, timeout: float | None = None) -> None:
        """Poll the latest build run until it reaches a terminal phase.

        Args:
            timeout: Maximum wait in minutes (None = default_timeout).

        Raises:
            BuildTimeoutError: If the deadline passes first.
            BuildFailedError: If the run ends in Failed, Error or Cancelled.
            ClusterError: If the run cannot be read, or the build config is gone.
        """
        if timeout is None:
            timeout = self.default_timeout

        deadline = self._monotonic() + timeout * 60
        while True:
            with cluster_call(self.name, "poll"):
                build = self.client.get_latest_build(self.namespace, self.name)
                if build is None and (
                    self.client.get_build_config(self.namespace, self.name) is None
                ):
                    raise ClusterError(
                        f"Build {self.name} is not deployed, nothing to wait for",
                        build_name=self.name,
                    )

            phase = build.phase if build is not None else None
            if phase == PHASE_COMPLETE:
                logger.info("Build %s completed", self.name)
                return
            if phase in FAILURE_PHASES:
                raise BuildFailedError(self.name, phase)

            remaining = deadline - self._monotonic()
            if remaining <= 0:
                raise BuildTimeoutError(self.name, timeout)
            self._sleep(min(self.poll_interval, remaining))


class ClusterBuildProcessFactory:
    """Create cluster build processes bound to configured settings.

    The binary build toggle applies to every definition passing through
    the factory.
    """

    def __init__(self, client: ClusterClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    def __call__(self, definition: BuildDefinition) -> ClusterBuildProcess:
        if self.settings.binary_build:
            definition = definition.with_strategy(BuildStrategy.BINARY)
        return ClusterBuildProcess(
            definition,
            self.client,
            namespace=self.settings.build_namespace,
            default_timeout=self.settings.build_timeout,
            poll_interval=self.settings.poll_interval,
            max_image_age=timedelta(days=self.settings.max_image_age_days),
        )


__all__ = [
    "FINGERPRINT_ANNOTATION",
    "BuildConfigInfo",
    "BuildInfo",
    "ClusterBuildProcess",
    "ClusterBuildProcessFactory",
    "ClusterClient",
    "cluster_call",
]
