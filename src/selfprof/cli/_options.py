# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared Typer option declarations for the selfprof CLI."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated

import typer

from selfprof.tool_env import RegistryApi


class ToolKind(str, Enum):
    """Enumerate the runners the CLI can fetch."""

    MEMORY = "memory"
    PERFORMANCE = "performance"


TOOL_ARGUMENT = Annotated[ToolKind, typer.Argument(help="Runner to fetch.")]
PID_OPTION = Annotated[int, typer.Option("--pid", "-p", help="Process to profile.")]
OUTPUT_DIR_OPTION = Annotated[
    Path | None,
    typer.Option("--output-dir", "-o", help="Directory receiving snapshots."),
]
DOWNLOAD_TO_OPTION = Annotated[
    Path | None,
    typer.Option("--download-to", help="Runner cache root; the only location probed when given."),
]
REGISTRY_URL_OPTION = Annotated[
    str | None,
    typer.Option("--registry-url", help="Package registry endpoint."),
]
REGISTRY_API_OPTION = Annotated[
    RegistryApi,
    typer.Option("--registry-api", help="Package registry protocol."),
]
TIMEOUT_OPTION = Annotated[
    float,
    typer.Option("--timeout", help="Seconds to wait for the runner; negative waits forever."),
]
SECONDS_OPTION = Annotated[float, typer.Option("--seconds", "-s", help="Seconds to collect data.")]
ARCHIVE_OPTION = Annotated[
    bool,
    typer.Option("--archive/--no-archive", help="Zip collected snapshots after detaching."),
]
EMOJI_OPTION = Annotated[
    bool,
    typer.Option("--emoji/--no-emoji", help="Toggle emoji in CLI output."),
]
VERBOSE_OPTION = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Log runner traffic and probe locations."),
]

__all__ = [
    "ARCHIVE_OPTION",
    "DOWNLOAD_TO_OPTION",
    "EMOJI_OPTION",
    "OUTPUT_DIR_OPTION",
    "PID_OPTION",
    "REGISTRY_API_OPTION",
    "REGISTRY_URL_OPTION",
    "SECONDS_OPTION",
    "TIMEOUT_OPTION",
    "TOOL_ARGUMENT",
    "VERBOSE_OPTION",
    "ToolKind",
]
