"""Build definitions.

A build definition describes what image to build and from which source.
Definitions are frozen pydantic models: equal field values mean the same
definition, which lets them key the build registry.
"""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared_builds.types import BuildStrategy

# Cluster resource names must be valid DNS labels
BUILD_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

# Bump when the fingerprint input format changes
FINGERPRINT_SCHEMA_VERSION = "1"


class BuildDefinition(BaseModel):
    """Immutable description of a shared image build.

    Attributes:
        name: Build name used for the cluster resources.
        git_url: Source repository URL.
        git_ref: Branch, tag or commit to build from.
        context_dir: Optional sub-directory of the repository.
        builder_image: Builder image that produces the application image.
        strategy: Source build or binary build.
        env: Build environment, stored as sorted (name, value) pairs.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(max_length=63, description="Build name")
    git_url: str = Field(min_length=1, description="Source repository URL")
    git_ref: str = Field(default="master", min_length=1, description="Git ref")
    context_dir: str | None = Field(default=None, description="Context directory")
    builder_image: str = Field(min_length=1, description="Builder image")
    strategy: BuildStrategy = Field(default=BuildStrategy.SOURCE)
    env: tuple[tuple[str, str], ...] = Field(default=(), description="Build env")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name is a DNS label."""
        if not BUILD_NAME_PATTERN.match(v):
            raise ValueError(
                f"name must be lowercase alphanumerics and '-', got '{v}'"
            )
        return v

    @field_validator("env", mode="before")
    @classmethod
    def normalize_env(cls, v: Any) -> Any:
        """Accept a mapping and normalize it to sorted pairs."""
        if v is None:
            return ()
        if isinstance(v, dict):
            return tuple(sorted((str(k), str(val)) for k, val in v.items()))
        if isinstance(v, (list, tuple)):
            return tuple(sorted(tuple(pair) for pair in v))
        return v

    @property
    def env_dict(self) -> dict[str, str]:
        """Build environment as a dictionary."""
        return dict(self.env)

    def with_strategy(self, strategy: BuildStrategy) -> BuildDefinition:
        """Return a copy of this definition using another strategy."""
        if strategy == self.strategy:
            return self
        return self.model_copy(update={"strategy": strategy})

    def source_fingerprint(self) -> str:
        """Compute a deterministic hash over the inputs that affect the image.

        The build name is excluded: renaming a build does not change what
        it produces.

        Returns:
            Fingerprint in the form "sha256:<hex>".
        """
        inputs = {
            "schema_version": FINGERPRINT_SCHEMA_VERSION,
            "git_url": self.git_url,
            "git_ref": self.git_ref,
            "context_dir": self.context_dir,
            "builder_image": self.builder_image,
            "strategy": self.strategy.value,
            "env": [list(pair) for pair in self.env],
        }
        canonical = json.dumps(inputs, sort_keys=True, separators=(",", ":"))
        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return f"sha256:{digest}"


__all__ = ["BUILD_NAME_PATTERN", "BuildDefinition"]
