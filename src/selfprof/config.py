# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Builder-style configuration models for the profiler facades.

Every builder method validates its input against options already set and
returns the model itself, so calls can be chained::

    config = MemoryConfig().save_to_dir(Path("/tmp")).use_log_level_verbose()
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Final, Self

from pydantic import BaseModel, ConfigDict, Field

from selfprof.errors import ConfigurationError
from selfprof.session import ApiMode, SaveWaitPolicy

DEFAULT_TIMEOUT: Final[float] = 30.0


class LogLevel(str, Enum):
    """Enumerate runner log levels accepted by ``--log-level``."""

    TRACE = "Trace"
    VERBOSE = "Verbose"


class CommonConfig(BaseModel):
    """Options shared by every profiler kind.

    Attributes:
        pid: Process to profile; defaults to the current process.
        api_mode: How the control channel is chosen at attach time.
        log_file: Runner log file, when logging is requested.
        other_arguments: Extra arguments appended to the runner command line.
        timeout: Seconds to wait for connect and detach; ``None`` or a
            negative value waits forever.
        save_wait: When saves block for the runner's confirmation.
    """

    model_config = ConfigDict(validate_assignment=True)

    pid: int = Field(default_factory=os.getpid)
    api_mode: ApiMode = ApiMode.AUTO
    log_file: Path | None = None
    other_arguments: list[str] = Field(default_factory=list)
    timeout: float | None = DEFAULT_TIMEOUT
    save_wait: SaveWaitPolicy = SaveWaitPolicy.COMMAND_ONLY

    def profile_process(self, pid: int) -> Self:
        """Profile process ``pid`` instead of the current process."""

        self.pid = pid
        return self

    def use_api(self) -> Self:
        """Require the in-process profiler API.

        Raises:
            ConfigurationError: If :meth:`do_not_use_api` was already called.
        """

        if self.api_mode is ApiMode.FORBID:
            raise ConfigurationError("use_api() and do_not_use_api() are mutually exclusive")
        self.api_mode = ApiMode.FORCE
        return self

    def do_not_use_api(self) -> Self:
        """Always drive the runner through service commands.

        Raises:
            ConfigurationError: If :meth:`use_api` was already called.
        """

        if self.api_mode is ApiMode.FORCE:
            raise ConfigurationError("use_api() and do_not_use_api() are mutually exclusive")
        self.api_mode = ApiMode.FORBID
        return self

    def write_log_to(self, path: Path) -> Self:
        self.log_file = path
        return self

    def with_timeout(self, seconds: float | None) -> Self:
        self.timeout = seconds
        return self

    def with_save_wait(self, policy: SaveWaitPolicy) -> Self:
        self.save_wait = policy
        return self

    def with_other_arguments(self, *arguments: str) -> Self:
        self.other_arguments = [*self.other_arguments, *arguments]
        return self


class MemoryConfig(CommonConfig):
    """Options for memory snapshotting."""

    workspace_file: Path | None = None
    workspace_dir: Path | None = None
    overwrite: bool = False
    open_in_dotmemory: bool = False
    log_level: LogLevel | None = None

    def save_to_file(self, path: Path, overwrite: bool = False) -> Self:
        """Write the workspace to ``path``.

        Raises:
            ConfigurationError: If :meth:`save_to_dir` was already called.
        """

        if self.workspace_dir is not None:
            raise ConfigurationError("save_to_file() and save_to_dir() are mutually exclusive")
        self.workspace_file = path
        self.overwrite = overwrite
        return self

    def save_to_dir(self, path: Path) -> Self:
        """Write an automatically named workspace into ``path``.

        Raises:
            ConfigurationError: If :meth:`save_to_file` was already called.
        """

        if self.workspace_file is not None:
            raise ConfigurationError("save_to_file() and save_to_dir() are mutually exclusive")
        self.workspace_dir = path
        return self

    def open_dotmemory(self) -> Self:
        """Open the saved workspace in the dotMemory UI."""

        self.open_in_dotmemory = True
        return self

    def use_log_level_trace(self) -> Self:
        self.log_level = LogLevel.TRACE
        return self

    def use_log_level_verbose(self) -> Self:
        self.log_level = LogLevel.VERBOSE
        return self


class PerformanceConfig(CommonConfig):
    """Options for performance data collection."""

    snapshot_file: Path | None = None
    snapshot_dir: Path | None = None
    overwrite: bool = False

    def save_to_file(self, path: Path, overwrite: bool = False) -> Self:
        """Save snapshots to ``path``.

        Raises:
            ConfigurationError: If ``path`` is an existing directory or
                :meth:`save_to_dir` was already called.
        """

        if self.snapshot_dir is not None:
            raise ConfigurationError("save_to_file() and save_to_dir() are mutually exclusive")
        if path.is_dir():
            raise ConfigurationError(f"Snapshot file path {path} is an existing directory")
        self.snapshot_file = path
        self.overwrite = overwrite
        return self

    def save_to_dir(self, path: Path) -> Self:
        """Save automatically named snapshots into the existing directory ``path``.

        Raises:
            ConfigurationError: If ``path`` is not a directory or
                :meth:`save_to_file` was already called.
        """

        if self.snapshot_file is not None:
            raise ConfigurationError("save_to_file() and save_to_dir() are mutually exclusive")
        if not path.is_dir():
            raise ConfigurationError(f"Snapshot directory {path} does not exist")
        self.snapshot_dir = path
        return self


__all__ = ["DEFAULT_TIMEOUT", "CommonConfig", "LogLevel", "MemoryConfig", "PerformanceConfig"]
