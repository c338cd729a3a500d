"""Build lifecycle module.

This module handles:
- Build definitions and source fingerprints
- Loading definitions from YAML/JSON files
- The build process interface and a cluster-backed implementation
- The build registry (one tracked process per definition)
- Reconciliation of builds against their observed status
"""

from shared_builds.builds.definition import BuildDefinition
from shared_builds.builds.registry import BuildRegistry
from shared_builds.builds.service import BuildManager, create_manager, decide_action

__all__ = [
    "BuildDefinition",
    "BuildManager",
    "BuildRegistry",
    "create_manager",
    "decide_action",
]
