# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Performance data collection facade driving the dotTrace console profiler."""

from __future__ import annotations

import logging
from functools import cache
from pathlib import Path
from typing import Final

from selfprof.config import PerformanceConfig
from selfprof.errors import NotActiveError
from selfprof.session import ApiBinder, ApiMethods, SessionManager, SessionProtocol, ToolCommands, bind_clr_api
from selfprof.tool_env import ArtifactResolver, SemanticVersion, ToolArtifact

from .base import ProfilerFacade, ToolTraits
from .snapshots import CollectedSnapshotIndex, snapshot_path

LOGGER = logging.getLogger(__name__)

PRESENTABLE_NAME: Final[str] = "dotTrace console profiler"

DOT_TRACE: Final[ToolTraits] = ToolTraits(
    artifact=ToolArtifact(
        name="dotTrace",
        required_version=SemanticVersion.parse("2025.1"),
        package_base="JetBrains.dotTrace.CommandLineTools",
        runner_name="dotTrace.sh",
        windows_runner_name="ConsoleProfiler.exe",
        presentable_name=PRESENTABLE_NAME,
        estimated_size=30 * 1024 * 1024,
    ),
    protocol=SessionProtocol(
        prefix="##dotTrace",
        presentable_name=PRESENTABLE_NAME,
        commands=ToolCommands(
            save="get-snapshot",
            detach="disconnect",
            start="start",
            stop="stop",
            drop="drop",
        ),
        api_methods=ApiMethods(
            type_name="JetBrains.Profiler.Api.MeasureProfiler",
            save="SaveData",
            start="StartCollectingData",
            stop="StopCollectingData",
            drop="DropData",
        ),
    ),
)

_NEVER_ATTACHED: Final[str] = "The profiling session was never initiated: forgot to call attach()?"


def build_arguments(config: PerformanceConfig, *, use_api: bool) -> list[str]:
    """Return the dotTrace ``attach`` command line for ``config``."""

    arguments = [
        "attach",
        str(config.pid),
        "--service-input=stdin",
        "--service-output=On",
        "--collect-data-from-start=Off",
    ]
    if use_api:
        arguments.append("--use-api")
    if config.log_file is not None:
        arguments += [f"--log-file={config.log_file}", "--debug-logging"]
    if config.overwrite:
        arguments.append("--overwrite")
    save_to = config.snapshot_file or config.snapshot_dir
    if save_to is not None:
        arguments.append(f"--save-to={save_to}")
    arguments += config.other_arguments
    return arguments


class PerformanceProfiler(ProfilerFacade):
    """Collect timeline and sampling data of a process through dotTrace.

    Snapshot index files announced by the runner are recorded for the
    lifetime of the facade, so they can be listed and archived after
    :meth:`detach`.
    """

    traits = DOT_TRACE

    def __init__(
        self,
        *,
        resolver: ArtifactResolver | None = None,
        manager: SessionManager | None = None,
        binder: ApiBinder = bind_clr_api,
    ) -> None:
        super().__init__(resolver=resolver, manager=manager, binder=binder)
        self._snapshots: CollectedSnapshotIndex | None = None

    def attach(self, config: PerformanceConfig | None = None) -> None:
        """Attach dotTrace to the configured process without collecting yet.

        Raises:
            AlreadyActiveError: If a session is already attached.
            ApiUnavailableError: If the API is required but cannot be bound.
            NotReadyError: If the runner has not been resolved.
        """

        config = config or PerformanceConfig()
        with self.manager.lock:
            self.manager.ensure_inactive()
            snapshots = self._snapshots or CollectedSnapshotIndex()
            self._attach(
                config,
                lambda use_api: build_arguments(config, use_api=use_api),
                processor=snapshots.process,
            )
            self._snapshots = snapshots

    def start_collecting_data(self) -> None:
        self.manager.run(lambda session: session.start())

    def stop_collecting_data(self) -> None:
        self.manager.run(lambda session: session.stop())

    def save_data(self, name: str | None = None) -> Path | None:
        """Save the collected data as a snapshot.

        Returns:
            Path | None: The index file announced by the runner, or ``None``
            when the save was not awaited.
        """

        with self.manager.lock:
            message = self.manager.run(lambda session: session.save(name))
            return snapshot_path(message) if message is not None else None

    def drop_data(self) -> None:
        self.manager.run(lambda session: session.drop())

    def detach(self) -> tuple[Path, ...]:
        """Detach dotTrace and return every index file collected so far."""

        with self.manager.lock:
            self.manager.detach()
            return tuple(self._require_snapshots().index_files())

    def list_collected_index_files(self) -> list[Path]:
        """Return collected snapshot index files not removed by archiving.

        Raises:
            NotActiveError: If :meth:`attach` was never called.
        """

        with self.manager.lock:
            return self._require_snapshots().index_files()

    def list_collected_snapshot_files(self) -> list[Path]:
        """Return every file belonging to the collected index files."""

        with self.manager.lock:
            return self._require_snapshots().snapshot_files()

    def archive_collected(self, delete_source: bool = False) -> Path | None:
        """Zip the snapshots collected since the previous archive.

        Args:
            delete_source: Delete the packed files and drop them from the listings.

        Returns:
            Path | None: The archive, or ``None`` when nothing new was collected.

        Raises:
            NotActiveError: If :meth:`attach` was never called.
        """

        with self.manager.lock:
            return self._require_snapshots().archive(delete_source)

    def _require_snapshots(self) -> CollectedSnapshotIndex:
        if self._snapshots is None:
            raise NotActiveError(_NEVER_ATTACHED)
        return self._snapshots


@cache
def default_performance_profiler() -> PerformanceProfiler:
    """Return the process-wide :class:`PerformanceProfiler`."""

    return PerformanceProfiler()


__all__ = ["DOT_TRACE", "PerformanceProfiler", "build_arguments", "default_performance_profiler"]
