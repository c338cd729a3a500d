"""Shared type definitions for shared_builds.

This module contains the enums shared across subpackages to avoid
circular imports.
"""

from enum import Enum


class BuildStatus(str, Enum):
    """Observed status of a shared build in the cluster."""

    NOT_DEPLOYED = "not_deployed"
    OLD_IMAGE = "old_image"
    GIT_REPO_GONE = "git_repo_gone"
    ERROR = "error"
    FAILED = "failed"
    SOURCE_CHANGE = "source_change"
    RUNNING = "running"
    COMPLETE = "complete"


class BuildAction(str, Enum):
    """Action taken by reconciliation for a single build."""

    RECREATE = "recreate"
    UPDATE = "update"
    NONE = "none"


class BuildStrategy(str, Enum):
    """How the build obtains its source."""

    SOURCE = "source"
    BINARY = "binary"


# Statuses that require the build to be deleted and created again
REBUILD_STATUSES = frozenset(
    {
        BuildStatus.NOT_DEPLOYED,
        BuildStatus.OLD_IMAGE,
        BuildStatus.GIT_REPO_GONE,
        BuildStatus.ERROR,
        BuildStatus.FAILED,
    }
)

STEADY_STATUSES = frozenset({BuildStatus.RUNNING, BuildStatus.COMPLETE})


__all__ = [
    "REBUILD_STATUSES",
    "STEADY_STATUSES",
    "BuildAction",
    "BuildStatus",
    "BuildStrategy",
]
