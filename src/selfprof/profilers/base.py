# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Shared plumbing for the profiler facades."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar

from selfprof.config import CommonConfig
from selfprof.errors import ApiUnavailableError
from selfprof.process import MessageProcessor
from selfprof.session import (
    ApiBinder,
    ApiMode,
    ProfilingSession,
    SessionManager,
    SessionProtocol,
    bind_clr_api,
    select_api,
)
from selfprof.tool_env import (
    ArtifactResolver,
    CancellationToken,
    DownloadTask,
    Progress,
    RegistryApi,
    ToolArtifact,
)

LOGGER = logging.getLogger(__name__)

ArgumentBuilder = Callable[[bool], Sequence[str]]


@dataclass(frozen=True, slots=True)
class ToolTraits:
    """Bundle the artifact and protocol description of one runner."""

    artifact: ToolArtifact
    protocol: SessionProtocol


class ProfilerFacade:
    """Base class owning a runner resolver and a session slot.

    Each facade instance owns independent resolver, session, and lock state.
    """

    traits: ClassVar[ToolTraits]

    def __init__(
        self,
        *,
        resolver: ArtifactResolver | None = None,
        manager: SessionManager | None = None,
        binder: ApiBinder = bind_clr_api,
    ) -> None:
        """Initialise the facade.

        Args:
            resolver: Runner resolver; defaults to one for :attr:`traits`.
            manager: Session slot; defaults to a private manager.
            binder: Callable binding the in-process profiler API.
        """

        self.resolver = resolver or ArtifactResolver(self.traits.artifact)
        self.manager = manager or SessionManager()
        self._binder = binder

    @property
    def attached(self) -> bool:
        return self.manager.active

    def ensure_ready(
        self,
        *,
        progress: Progress | None = None,
        registry_url: str | None = None,
        registry_api: RegistryApi = RegistryApi.V3,
        download_to: Path | None = None,
        cancellation: CancellationToken | None = None,
    ) -> DownloadTask:
        """Locate the runner or start downloading it; see :meth:`ArtifactResolver.ensure_ready`."""

        return self.resolver.ensure_ready(
            progress=progress,
            registry_url=registry_url,
            registry_api=registry_api,
            download_to=download_to,
            cancellation=cancellation,
        )

    def _attach(
        self,
        config: CommonConfig,
        build_arguments: ArgumentBuilder,
        *,
        processor: MessageProcessor | None = None,
    ) -> ProfilingSession:
        def launch() -> ProfilingSession:
            runner = self.resolver.runner_path()
            api = select_api(_api_mode_for(config), self.traits.protocol.api_methods, self._binder)
            arguments = list(build_arguments(api is not None))
            LOGGER.info("%s: runner = %s, arguments = %s", self.traits.artifact.name, runner, arguments)
            return ProfilingSession.attach(
                runner,
                arguments,
                self.traits.protocol,
                api=api,
                timeout=config.timeout,
                save_wait=config.save_wait,
                processor=processor,
            )

        return self.manager.attach(launch)


def _api_mode_for(config: CommonConfig) -> ApiMode:
    # The in-process API only controls the current process.
    if config.pid == os.getpid():
        return config.api_mode
    if config.api_mode is ApiMode.FORCE:
        raise ApiUnavailableError(f"The profiler API cannot control another process (pid {config.pid})")
    return ApiMode.FORBID


def process_name(pid: int) -> str:
    """Return a short name for process ``pid`` used in default file names."""

    if pid == os.getpid():
        return Path(sys.argv[0]).stem or "python"
    comm = Path("/proc") / str(pid) / "comm"
    try:
        return comm.read_text(encoding="utf-8").strip() or f"process-{pid}"
    except OSError:
        return f"process-{pid}"


__all__ = ["ArgumentBuilder", "ProfilerFacade", "ToolTraits", "process_name"]
