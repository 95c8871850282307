# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Data structures describing downloadable runner artifacts."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final

from selfprof.platform import HostPlatform

from .versioning import SemanticVersion

NUGET_V2_URL: Final[str] = "https://www.nuget.org/api/v2"
NUGET_V3_URL: Final[str] = "https://api.nuget.org/v3/index.json"


class RegistryApi(str, Enum):
    """Enumerate the package registry protocols understood by the resolver."""

    V2 = "v2"
    V3 = "v3"

    @property
    def default_url(self) -> str:
        """Return the public registry endpoint for this protocol."""

        return NUGET_V2_URL if self is RegistryApi.V2 else NUGET_V3_URL


class DownloadState(str, Enum):
    """Enumerate the lifecycle states of a :class:`DownloadTask`."""

    NOT_STARTED = "not-started"
    RUNNING = "running"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ToolArtifact:
    """Identify a runner distributed as a versioned registry package.

    Attributes:
        name: Logical tool name, also the cache folder name (``dotMemory``).
        required_version: Pinned version; only ``major.minor`` is significant.
        package_base: Registry package id before runtime qualification.
        runner_name: Runner executable name on Unix-like hosts.
        windows_runner_name: Runner executable name on Windows.
        presentable_name: Human readable name used in diagnostics.
        estimated_size: Package size in bytes used when the server omits it.
    """

    name: str
    required_version: SemanticVersion
    package_base: str
    runner_name: str
    windows_runner_name: str
    presentable_name: str
    estimated_size: int

    def package_id(self, runtime_id: str) -> str:
        """Return the registry package id qualified for ``runtime_id``."""

        return f"{self.package_base}.{runtime_id}"

    def runner_file_name(self, platform: HostPlatform) -> str:
        """Return the runner executable name used on ``platform``."""

        return self.windows_runner_name if platform is HostPlatform.WINDOWS else self.runner_name


@dataclass(frozen=True, slots=True)
class ResolvedPackage:
    """Describe the concrete package version chosen by a registry."""

    package_id: str
    version: str
    url: str


__all__ = [
    "NUGET_V2_URL",
    "NUGET_V3_URL",
    "DownloadState",
    "RegistryApi",
    "ResolvedPackage",
    "ToolArtifact",
]
