# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Attach JetBrains console profilers to the running process."""

from __future__ import annotations

from importlib import metadata

from selfprof.config import MemoryConfig, PerformanceConfig
from selfprof.profilers import (
    MemoryProfiler,
    PerformanceProfiler,
    default_memory_profiler,
    default_performance_profiler,
)

__all__ = [
    "MemoryConfig",
    "MemoryProfiler",
    "PerformanceConfig",
    "PerformanceProfiler",
    "__version__",
    "default_memory_profiler",
    "default_performance_profiler",
]

try:
    __version__ = metadata.version("selfprof")
except metadata.PackageNotFoundError:  # pragma: no cover - local development fallback
    __version__ = "0.0.0"
