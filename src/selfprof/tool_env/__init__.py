# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Runner artifact cache, registry client, and resolver."""

from __future__ import annotations

from .layout import CACHE_DIR_ENV, READY_MARKER, ArtifactLayout, default_cache_root
from .models import DownloadState, RegistryApi, ResolvedPackage, ToolArtifact
from .progress import CallbackProgress, CancellationToken, NullProgress, Progress, SubProgress
from .registry import NuGetRegistry, PackageSource, PackageStream
from .resolver import ArtifactResolver, DownloadTask
from .versioning import SemanticVersion, select_latest

__all__ = [
    "CACHE_DIR_ENV",
    "READY_MARKER",
    "ArtifactLayout",
    "ArtifactResolver",
    "CallbackProgress",
    "CancellationToken",
    "DownloadState",
    "DownloadTask",
    "NuGetRegistry",
    "NullProgress",
    "PackageSource",
    "PackageStream",
    "Progress",
    "RegistryApi",
    "ResolvedPackage",
    "SemanticVersion",
    "SubProgress",
    "ToolArtifact",
    "default_cache_root",
    "select_latest",
]
