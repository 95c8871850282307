# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Public profiler facades."""

from __future__ import annotations

from .base import ProfilerFacade, ToolTraits, process_name
from .memory import DOT_MEMORY, MemoryProfiler, default_memory_profiler, default_workspace_file
from .performance import DOT_TRACE, PerformanceProfiler, default_performance_profiler
from .snapshots import CollectedSnapshotIndex, snapshot_files, snapshot_path

__all__ = [
    "DOT_MEMORY",
    "DOT_TRACE",
    "CollectedSnapshotIndex",
    "MemoryProfiler",
    "PerformanceProfiler",
    "ProfilerFacade",
    "ToolTraits",
    "default_memory_profiler",
    "default_performance_profiler",
    "default_workspace_file",
    "process_name",
    "snapshot_files",
    "snapshot_path",
]
