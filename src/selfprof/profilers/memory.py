# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Memory snapshotting facade driving the dotMemory console profiler.

Typical use::

    profiler = MemoryProfiler()
    profiler.ensure_ready().result()
    profiler.attach(MemoryConfig().save_to_dir(Path("/tmp")))
    profiler.get_snapshot("before")
    workspace = profiler.detach()
"""

from __future__ import annotations

import logging
import tempfile
from datetime import datetime
from functools import cache
from pathlib import Path
from typing import Final

from selfprof.config import MemoryConfig
from selfprof.errors import NotActiveError
from selfprof.process import ProfilerProcess
from selfprof.session import ApiBinder, ApiMethods, SessionManager, SessionProtocol, ToolCommands, bind_clr_api
from selfprof.tool_env import ArtifactResolver, SemanticVersion, ToolArtifact

from .base import ProfilerFacade, ToolTraits, process_name
from .snapshots import CollectedSnapshotIndex, snapshot_path

LOGGER = logging.getLogger(__name__)

PRESENTABLE_NAME: Final[str] = "dotMemory console profiler"
WORKSPACE_SUFFIX: Final[str] = ".dmw"

DOT_MEMORY: Final[ToolTraits] = ToolTraits(
    artifact=ToolArtifact(
        name="dotMemory",
        required_version=SemanticVersion.parse("2025.1"),
        package_base="JetBrains.dotMemory.Console",
        runner_name="dotmemory",
        windows_runner_name="dotMemory.exe",
        presentable_name=PRESENTABLE_NAME,
        estimated_size=20 * 1024 * 1024,
    ),
    protocol=SessionProtocol(
        prefix="##dotMemory",
        presentable_name=PRESENTABLE_NAME,
        commands=ToolCommands(save="get-snapshot", detach="disconnect"),
        api_methods=ApiMethods(type_name="JetBrains.Profiler.Api.MemoryProfiler", save="GetSnapshot"),
    ),
)


def default_workspace_file(config: MemoryConfig, *, now: datetime | None = None) -> Path:
    """Return the workspace path for ``config``.

    An explicit ``save_to_file`` path wins; otherwise the file is named
    ``<process>.<YYYY-MM-DDTHH-MM-SS.fff>.dmw`` inside the configured
    directory or the system temporary directory.
    """

    if config.workspace_file is not None:
        return config.workspace_file
    moment = now or datetime.now()
    stamp = f"{moment:%Y-%m-%dT%H-%M-%S}.{moment.microsecond // 1000:03d}"
    directory = config.workspace_dir or Path(tempfile.gettempdir())
    return directory / f"{process_name(config.pid)}.{stamp}{WORKSPACE_SUFFIX}"


def build_arguments(command: str, config: MemoryConfig, workspace: Path, *, use_api: bool) -> list[str]:
    """Return the dotMemory command line for ``command`` (``attach`` or ``get-snapshot``).

    A one-shot ``get-snapshot`` takes neither ``--use-api`` nor a service
    input; an attached session gets one of the two.
    """

    arguments: list[str] = []
    if config.log_level is not None:
        arguments.append(f"--log-level={config.log_level.value}")
    if config.log_file is not None:
        arguments.append(f"--log-file={config.log_file}")
    arguments += [command, str(config.pid), f"-f={workspace}"]
    if config.overwrite:
        arguments.append("--overwrite")
    if config.open_in_dotmemory:
        arguments.append("--open-dotmemory")
    if command != "get-snapshot":
        arguments.append("--use-api" if use_api else "--service-input=stdin")
    arguments += config.other_arguments
    return arguments


class MemoryProfiler(ProfilerFacade):
    """Take memory snapshots of a process through dotMemory."""

    traits = DOT_MEMORY

    def __init__(
        self,
        *,
        resolver: ArtifactResolver | None = None,
        manager: SessionManager | None = None,
        binder: ApiBinder = bind_clr_api,
    ) -> None:
        super().__init__(resolver=resolver, manager=manager, binder=binder)
        self._workspace: Path | None = None
        self._snapshots: CollectedSnapshotIndex | None = None

    def get_snapshot_once(self, config: MemoryConfig | None = None) -> Path:
        """Take a single snapshot without attaching and return the workspace path.

        Raises:
            AlreadyActiveError: If a session is attached.
            NotReadyError: If the runner has not been resolved.
            ProcessTimeoutError: If the runner does not finish in time.
            NonZeroExitError: If the runner fails.
        """

        config = config or MemoryConfig()
        with self.manager.lock:
            self.manager.ensure_inactive()
            runner = self.resolver.runner_path()
            workspace = default_workspace_file(config)
            transport = ProfilerProcess.start(
                runner,
                build_arguments("get-snapshot", config, workspace, use_api=False),
                prefix=self.traits.protocol.prefix,
                presentable_name=PRESENTABLE_NAME,
            )
            try:
                transport.await_finished(config.timeout)
            except BaseException:
                transport.terminate()
                raise
            LOGGER.info("Saved workspace %s", workspace)
            return workspace

    def attach(self, config: MemoryConfig | None = None) -> None:
        """Attach dotMemory to the configured process.

        Raises:
            AlreadyActiveError: If a session is already attached.
            ApiUnavailableError: If the API is required but cannot be bound.
            NotReadyError: If the runner has not been resolved.
        """

        config = config or MemoryConfig()
        with self.manager.lock:
            self.manager.ensure_inactive()
            workspace = default_workspace_file(config)
            snapshots = CollectedSnapshotIndex()
            self._attach(
                config,
                lambda use_api: build_arguments("attach", config, workspace, use_api=use_api),
                processor=snapshots.process,
            )
            self._workspace = workspace
            self._snapshots = snapshots

    def get_snapshot(self, name: str | None = None) -> Path:
        """Take a snapshot in the attached session.

        Returns:
            Path: The file reported by the runner, or the workspace when the
            save was not awaited.

        Raises:
            NotActiveError: If no session is attached.
            SnapshotFailedError: If the runner reports a failed snapshot.
        """

        with self.manager.lock:
            message = self.manager.run(lambda session: session.save(name))
            saved = snapshot_path(message) if message is not None else None
            return saved or self._require_workspace()

    def detach(self) -> Path:
        """Detach dotMemory and return the workspace path.

        The session slot is released even when detaching fails.
        """

        with self.manager.lock:
            self.manager.detach()
            return self._require_workspace()

    def collected_snapshots(self) -> list[Path]:
        """Return the snapshot files reported by the runner so far."""

        with self.manager.lock:
            if self._snapshots is None:
                raise NotActiveError("The profiling session was never initiated: forgot to call attach()?")
            return self._snapshots.index_files()

    def _require_workspace(self) -> Path:
        if self._workspace is None:
            raise NotActiveError("The profiling session was never initiated: forgot to call attach()?")
        return self._workspace


@cache
def default_memory_profiler() -> MemoryProfiler:
    """Return the process-wide :class:`MemoryProfiler`."""

    return MemoryProfiler()


__all__ = [
    "DOT_MEMORY",
    "MemoryProfiler",
    "build_arguments",
    "default_memory_profiler",
    "default_workspace_file",
]
