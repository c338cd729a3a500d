"""Shared Builds - centralized management of ephemeral image builds.

This package keeps container image builds shared across concurrent test
runs: each build definition is deployed at most once per process, updated
when its source changes, and recreated when its image is stale or broken.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
