# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""CLI application entry point for fetching runners and profiling processes."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from selfprof.config import MemoryConfig, PerformanceConfig
from selfprof.console import detect_tty, get_console_manager
from selfprof.errors import SelfProfError
from selfprof.logging import fail, info, ok, section, warn
from selfprof.platform import detect_host
from selfprof.profilers import DOT_MEMORY, DOT_TRACE, MemoryProfiler, PerformanceProfiler
from selfprof.tool_env import ArtifactResolver, CallbackProgress, DownloadTask, RegistryApi

from ._options import (
    ARCHIVE_OPTION,
    DOWNLOAD_TO_OPTION,
    EMOJI_OPTION,
    OUTPUT_DIR_OPTION,
    PID_OPTION,
    REGISTRY_API_OPTION,
    REGISTRY_URL_OPTION,
    SECONDS_OPTION,
    TIMEOUT_OPTION,
    TOOL_ARGUMENT,
    VERBOSE_OPTION,
    ToolKind,
)

app = typer.Typer(help="Profile running .NET processes with JetBrains console runners.", no_args_is_help=True)


@app.callback()
def main(verbose: VERBOSE_OPTION = False) -> None:
    """Configure diagnostics shared by every command."""

    console = get_console_manager().diagnostics()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@app.command("platform")
def platform_command(emoji: EMOJI_OPTION = True) -> None:
    """Print the detected operating system, architecture, and runtime identifier."""

    with _fail_on_error(emoji):
        host = detect_host()
        runtime_id = host.runtime_identifier
    info(f"platform: {host.platform.value}", use_emoji=emoji)
    info(f"architecture: {host.architecture.value}", use_emoji=emoji)
    info(f"libc: {host.libc.value if host.libc is not None else '-'}", use_emoji=emoji)
    ok(f"runtime identifier: {runtime_id}", use_emoji=emoji)


@app.command("fetch")
def fetch_command(
    tool: TOOL_ARGUMENT,
    download_to: DOWNLOAD_TO_OPTION = None,
    registry_url: REGISTRY_URL_OPTION = None,
    registry_api: REGISTRY_API_OPTION = RegistryApi.V3,
    emoji: EMOJI_OPTION = True,
) -> None:
    """Make sure a runner is cached, downloading it when necessary."""

    traits = DOT_MEMORY if tool is ToolKind.MEMORY else DOT_TRACE
    resolver = ArtifactResolver(traits.artifact)
    with _fail_on_error(emoji):
        runner = _await_download(
            traits.artifact.presentable_name,
            lambda progress: resolver.ensure_ready(
                progress=progress,
                registry_url=registry_url,
                registry_api=registry_api,
                download_to=download_to,
            ),
        )
    ok(f"{traits.artifact.presentable_name} is ready at {runner}", use_emoji=emoji)


@app.command("snapshot")
def snapshot_command(
    pid: PID_OPTION,
    output_dir: OUTPUT_DIR_OPTION = None,
    download_to: DOWNLOAD_TO_OPTION = None,
    timeout: TIMEOUT_OPTION = 30.0,
    emoji: EMOJI_OPTION = True,
) -> None:
    """Take one memory snapshot of another process."""

    profiler = MemoryProfiler()
    config = MemoryConfig().profile_process(pid).with_timeout(timeout)
    if output_dir is not None:
        config.save_to_dir(output_dir)
    with _fail_on_error(emoji):
        _await_download(
            DOT_MEMORY.artifact.presentable_name,
            lambda progress: profiler.ensure_ready(progress=progress, download_to=download_to),
        )
        workspace = profiler.get_snapshot_once(config)
    ok(f"Workspace saved to {workspace}", use_emoji=emoji)


@app.command("trace")
def trace_command(
    pid: PID_OPTION,
    seconds: SECONDS_OPTION = 5.0,
    output_dir: OUTPUT_DIR_OPTION = None,
    download_to: DOWNLOAD_TO_OPTION = None,
    timeout: TIMEOUT_OPTION = 30.0,
    archive: ARCHIVE_OPTION = False,
    emoji: EMOJI_OPTION = True,
) -> None:
    """Collect performance data of another process for a fixed period."""

    profiler = PerformanceProfiler()
    with _fail_on_error(emoji):
        config = PerformanceConfig().profile_process(pid).with_timeout(timeout)
        if output_dir is not None:
            config.save_to_dir(output_dir)
        _await_download(
            DOT_TRACE.artifact.presentable_name,
            lambda progress: profiler.ensure_ready(progress=progress, download_to=download_to),
        )
        section(f"Tracing process {pid}", use_color=detect_tty())
        profiler.attach(config)
        try:
            profiler.start_collecting_data()
            time.sleep(seconds)
            profiler.save_data()
        finally:
            index_files = profiler.detach()
        for index_file in index_files:
            info(f"snapshot: {index_file}", use_emoji=emoji)
        if not index_files:
            warn("The runner reported no snapshots", use_emoji=emoji)
        if archive:
            packed = profiler.archive_collected(delete_source=True)
            if packed is not None:
                ok(f"Snapshots packed into {packed}", use_emoji=emoji)


def _await_download(title: str, start: Callable[[CallbackProgress], DownloadTask]) -> Path:
    """Run ``start`` with a rich progress bar and block until the runner is available."""

    console = get_console_manager().diagnostics()
    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task(title, total=100)
        task = start(CallbackProgress(lambda percent: progress.update(task_id, completed=percent)))
        return task.result()


@contextmanager
def _fail_on_error(use_emoji: bool) -> Iterator[None]:
    try:
        yield
    except SelfProfError as exc:
        fail(str(exc), use_emoji=use_emoji)
        raise typer.Exit(code=1) from exc


__all__ = ["app"]
