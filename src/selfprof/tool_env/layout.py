# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Filesystem layout of the runner artifact cache.

Runners live under ``<root>/<tool>/<version>/<runtime-id>/<runner>``. A
``.ready`` marker in the version directory is written only after a package
was completely unpacked, so an interrupted download is never mistaken for a
usable runner.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .versioning import SemanticVersion, select_latest

LOGGER = logging.getLogger(__name__)

CACHE_DIR_ENV: Final[str] = "SELFPROF_CACHE_DIR"
CACHE_DIR_NAME: Final[str] = "selfprof"
READY_MARKER: Final[str] = ".ready"


def default_cache_root() -> Path:
    """Return the per-user cache root for downloaded runners.

    ``SELFPROF_CACHE_DIR`` wins when set; otherwise the OS-specific user cache
    directory is used.
    """

    override = os.environ.get(CACHE_DIR_ENV)
    if override:
        return Path(override).expanduser()
    if sys.platform.startswith("win"):
        local = os.environ.get("LOCALAPPDATA")
        base = Path(local) if local else Path.home() / "AppData" / "Local"
        return base / CACHE_DIR_NAME
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / CACHE_DIR_NAME
    xdg = os.environ.get("XDG_CACHE_HOME")
    base = Path(xdg) if xdg else Path.home() / ".cache"
    return base / CACHE_DIR_NAME


@dataclass(frozen=True, slots=True)
class ArtifactLayout:
    """Resolve cache paths for one tool beneath ``root``.

    Attributes:
        root: Download root shared by every tool.
        tool: Logical tool name used as the first path component.
    """

    root: Path
    tool: str

    @property
    def tool_dir(self) -> Path:
        return self.root / self.tool

    def version_dir(self, version: str) -> Path:
        return self.tool_dir / version

    def ready_marker(self, version: str) -> Path:
        return self.version_dir(version) / READY_MARKER

    def runner_dir(self, version: str, runtime_id: str) -> Path:
        return self.version_dir(version) / runtime_id

    def runner_path(self, version: str, runtime_id: str, runner: str) -> Path:
        return self.runner_dir(version, runtime_id) / runner

    def package_path(self, version: str, package_id: str) -> Path:
        return self.version_dir(version) / f"{package_id}.{version}.nupkg"

    def is_ready(self, version: str, runtime_id: str, runner: str) -> bool:
        """Return ``True`` when ``version`` is marked ready and holds the runner."""

        return self.ready_marker(version).is_file() and self.runner_path(version, runtime_id, runner).is_file()

    def find_ready_runner(self, pin: SemanticVersion, runtime_id: str, runner: str) -> Path | None:
        """Return the runner of the newest ready version matching ``pin``.

        Args:
            pin: Required version; only ``major.minor`` is compared.
            runtime_id: Runtime identifier subfolder.
            runner: Runner executable name.

        Returns:
            Path | None: Runner path, or ``None`` when no ready version matches.
        """

        if not self.tool_dir.is_dir():
            LOGGER.debug("No cached versions under %s", self.tool_dir)
            return None
        ready = [
            entry.name
            for entry in self.tool_dir.iterdir()
            if entry.is_dir() and self.is_ready(entry.name, runtime_id, runner)
        ]
        LOGGER.debug("Ready cached versions under %s: %s", self.tool_dir, ready)
        latest = select_latest(ready, pin)
        if latest is None:
            return None
        return self.runner_path(latest, runtime_id, runner)


__all__ = ["CACHE_DIR_ENV", "READY_MARKER", "ArtifactLayout", "default_cache_root"]
