# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""End-to-end tests of the profiler facades against fake console runners."""

from __future__ import annotations

import os
import zipfile
from datetime import datetime
from pathlib import Path

import pytest

from selfprof.config import MemoryConfig, PerformanceConfig
from selfprof.errors import (
    AlreadyActiveError,
    ApiUnavailableError,
    NonZeroExitError,
    NotActiveError,
    NotReadyError,
    SnapshotFailedError,
)
from selfprof.platform import HostInfo
from selfprof.profilers import DOT_MEMORY, DOT_TRACE, MemoryProfiler, PerformanceProfiler, default_workspace_file
from selfprof.profilers.memory import build_arguments as memory_arguments
from selfprof.profilers.performance import build_arguments as trace_arguments
from selfprof.session import ApiHandle
from selfprof.tool_env import ArtifactResolver


def no_api(methods):
    return None


def read_lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").splitlines() if path.exists() else []


@pytest.fixture
def memory_runner(fake_tool, tmp_path: Path) -> Path:
    return fake_tool(DOT_MEMORY.protocol.prefix, name="dotmemory", directory=tmp_path / "runners")


@pytest.fixture
def trace_runner(fake_tool, tmp_path: Path) -> Path:
    return fake_tool(DOT_TRACE.protocol.prefix, name="dotTrace.sh", directory=tmp_path / "runners")


def memory_profiler(runner: Path, linux_host: HostInfo, binder=no_api) -> MemoryProfiler:
    profiler = MemoryProfiler(resolver=ArtifactResolver(DOT_MEMORY.artifact, host=linux_host), binder=binder)
    profiler.ensure_ready(download_to=runner.parent).result(10)
    return profiler


def trace_profiler(runner: Path, linux_host: HostInfo, binder=no_api) -> PerformanceProfiler:
    profiler = PerformanceProfiler(resolver=ArtifactResolver(DOT_TRACE.artifact, host=linux_host), binder=binder)
    profiler.ensure_ready(download_to=runner.parent).result(10)
    return profiler


def test_memory_snapshot_falls_back_to_commands(memory_runner: Path, linux_host: HostInfo, tmp_path: Path) -> None:
    profiler = memory_profiler(memory_runner, linux_host)

    profiler.attach(MemoryConfig().save_to_dir(tmp_path))
    snapshot = profiler.get_snapshot("first")
    workspace = profiler.detach()

    assert snapshot == workspace
    assert workspace.parent == tmp_path
    assert workspace.suffix == ".dmw"
    assert workspace.is_file()
    assert profiler.collected_snapshots() == [workspace]
    assert not profiler.attached
    arguments = read_lines(Path(f"{memory_runner}.args"))
    assert arguments[:2] == ["attach", str(MemoryConfig().pid)]
    assert "--service-input=stdin" in arguments
    assert "--use-api" not in arguments
    assert read_lines(Path(f"{memory_runner}.commands")) == [
        '##dotMemory["get-snapshot",{name:"first"}]',
        '##dotMemory["disconnect"]',
    ]


def test_memory_snapshot_through_api(memory_runner: Path, linux_host: HostInfo, tmp_path: Path) -> None:
    names: list[str | None] = []
    workspace_file = tmp_path / "api.dmw"

    def binder(methods):
        assert methods.type_name == "JetBrains.Profiler.Api.MemoryProfiler"
        return ApiHandle(
            get_features=lambda: 0x1,
            detach=lambda: Path(f"{memory_runner}.detach").touch(),
            save_data=names.append,
        )

    profiler = memory_profiler(memory_runner, linux_host, binder)
    profiler.attach(MemoryConfig().save_to_file(workspace_file))

    assert profiler.get_snapshot("from-api") == workspace_file
    assert profiler.detach() == workspace_file
    assert names == ["from-api"]
    assert "--use-api" in read_lines(Path(f"{memory_runner}.args"))
    assert not Path(f"{memory_runner}.commands").exists()


def test_forced_api_without_binding_fails(memory_runner: Path, linux_host: HostInfo) -> None:
    profiler = memory_profiler(memory_runner, linux_host)

    with pytest.raises(ApiUnavailableError):
        profiler.attach(MemoryConfig().use_api())

    assert not profiler.attached
    assert not Path(f"{memory_runner}.args").exists()


def test_one_shot_snapshot(memory_runner: Path, linux_host: HostInfo, tmp_path: Path) -> None:
    profiler = memory_profiler(memory_runner, linux_host)
    target = tmp_path / "once.dmw"

    assert profiler.get_snapshot_once(MemoryConfig().save_to_file(target, overwrite=True)) == target

    assert target.is_file()
    arguments = read_lines(Path(f"{memory_runner}.args"))
    assert arguments == ["get-snapshot", str(MemoryConfig().pid), f"-f={target}", "--overwrite"]


def test_one_shot_is_rejected_while_attached(memory_runner: Path, linux_host: HostInfo, tmp_path: Path) -> None:
    profiler = memory_profiler(memory_runner, linux_host)
    profiler.attach(MemoryConfig().save_to_dir(tmp_path))
    try:
        with pytest.raises(AlreadyActiveError):
            profiler.get_snapshot_once()
        with pytest.raises(AlreadyActiveError):
            profiler.attach()
    finally:
        profiler.detach()


def test_snapshot_error_is_reported(memory_runner: Path, linux_host: HostInfo, tmp_path: Path) -> None:
    profiler = memory_profiler(memory_runner, linux_host)
    profiler.attach(MemoryConfig().save_to_dir(tmp_path).with_other_arguments("--fail-snapshot"))
    try:
        with pytest.raises(SnapshotFailedError, match="target is gone"):
            profiler.get_snapshot()
    finally:
        profiler.detach()


def test_failed_detach_releases_session(memory_runner: Path, linux_host: HostInfo, tmp_path: Path) -> None:
    profiler = memory_profiler(memory_runner, linux_host)
    profiler.attach(MemoryConfig().save_to_dir(tmp_path).with_other_arguments("--exit-code=3"))

    with pytest.raises(NonZeroExitError):
        profiler.detach()

    assert not profiler.attached
    with pytest.raises(NotActiveError):
        profiler.get_snapshot()


def test_attach_requires_ready_runner(linux_host: HostInfo) -> None:
    profiler = MemoryProfiler(resolver=ArtifactResolver(DOT_MEMORY.artifact, host=linux_host), binder=no_api)

    with pytest.raises(NotReadyError):
        profiler.attach()
    assert not profiler.attached


def test_default_workspace_name(tmp_path: Path) -> None:
    config = MemoryConfig().save_to_dir(tmp_path).profile_process(1)
    moment = datetime(2025, 3, 4, 5, 6, 7, 891000)

    path = default_workspace_file(config, now=moment)

    assert path.parent == tmp_path
    assert path.name.endswith(".2025-03-04T05-06-07.891.dmw")


def test_memory_arguments_carry_logging_options(tmp_path: Path) -> None:
    config = (
        MemoryConfig()
        .profile_process(7)
        .use_log_level_trace()
        .write_log_to(tmp_path / "runner.log")
        .open_dotmemory()
        .with_other_arguments("--extra")
    )

    assert memory_arguments("attach", config, tmp_path / "w.dmw", use_api=False) == [
        "--log-level=Trace",
        f"--log-file={tmp_path / 'runner.log'}",
        "attach",
        "7",
        f"-f={tmp_path / 'w.dmw'}",
        "--open-dotmemory",
        "--service-input=stdin",
        "--extra",
    ]


def test_trace_arguments(tmp_path: Path) -> None:
    config = PerformanceConfig().profile_process(9).save_to_dir(tmp_path).write_log_to(tmp_path / "t.log")

    assert trace_arguments(config, use_api=True) == [
        "attach",
        "9",
        "--service-input=stdin",
        "--service-output=On",
        "--collect-data-from-start=Off",
        "--use-api",
        f"--log-file={tmp_path / 't.log'}",
        "--debug-logging",
        f"--save-to={tmp_path}",
    ]


def test_trace_collects_and_archives_snapshots(trace_runner: Path, linux_host: HostInfo, tmp_path: Path) -> None:
    output = tmp_path / "snapshots"
    output.mkdir()
    profiler = trace_profiler(trace_runner, linux_host)

    profiler.attach(PerformanceConfig().save_to_dir(output))
    profiler.start_collecting_data()
    first = profiler.save_data()
    profiler.start_collecting_data()
    profiler.stop_collecting_data()
    second = profiler.save_data("second")
    index_files = profiler.detach()

    assert first == output / "snapshot1.dtp"
    assert second == output / "snapshot2.dtp"
    assert index_files == (first, second)
    assert profiler.list_collected_index_files() == [first, second]
    assert profiler.list_collected_snapshot_files() == [
        first,
        output / "snapshot1.dtp.0000",
        second,
        output / "snapshot2.dtp.0000",
    ]
    commands = read_lines(Path(f"{trace_runner}.commands"))
    assert commands[0] == '##dotTrace["start"]'
    assert '##dotTrace["stop"]' in commands

    archive = profiler.archive_collected(delete_source=True)

    assert archive is not None
    with zipfile.ZipFile(archive) as packed:
        assert sorted(packed.namelist()) == ["snapshot1.dtp", "snapshot1.dtp.0000", "snapshot2.dtp", "snapshot2.dtp.0000"]
    assert profiler.list_collected_index_files() == []
    assert not first.exists()
    assert profiler.archive_collected(delete_source=True) is None


def test_trace_listing_requires_attach() -> None:
    profiler = PerformanceProfiler(binder=no_api)

    with pytest.raises(NotActiveError):
        profiler.list_collected_index_files()
    with pytest.raises(NotActiveError):
        profiler.archive_collected()


def test_unawaited_trace_save_returns_none(trace_runner: Path, linux_host: HostInfo, tmp_path: Path) -> None:
    output = tmp_path / "snapshots"
    output.mkdir()
    names: list[str | None] = []

    def binder(methods):
        return ApiHandle(
            get_features=lambda: 0x1,
            detach=lambda: Path(f"{trace_runner}.detach").touch(),
            save_data=names.append,
        )

    profiler = trace_profiler(trace_runner, linux_host, binder)
    profiler.attach(PerformanceConfig().save_to_dir(output).do_not_use_api())
    earlier = profiler.save_data()
    profiler.detach()

    profiler.attach(PerformanceConfig().save_to_dir(output))
    try:
        assert profiler.save_data("new") is None
    finally:
        profiler.detach()

    assert earlier == output / "snapshot1.dtp"
    assert names == ["new"]
    assert profiler.list_collected_index_files() == [earlier]


def test_other_process_is_profiled_through_commands(memory_runner: Path, linux_host: HostInfo, tmp_path: Path) -> None:
    bound: list[str] = []

    def binder(methods):
        bound.append(methods.type_name)
        return ApiHandle(get_features=lambda: 0x1, detach=lambda: None, save_data=lambda name: None)

    profiler = memory_profiler(memory_runner, linux_host, binder)
    profiler.attach(MemoryConfig().save_to_dir(tmp_path).profile_process(os.getpid() + 1))
    try:
        assert profiler.get_snapshot("other").is_file()
    finally:
        profiler.detach()

    assert bound == []
    arguments = read_lines(Path(f"{memory_runner}.args"))
    assert "--use-api" not in arguments
    assert "--service-input=stdin" in arguments


def test_forced_api_rejects_other_process(memory_runner: Path, linux_host: HostInfo) -> None:
    profiler = memory_profiler(memory_runner, linux_host, lambda methods: pytest.fail("API must not be bound"))

    with pytest.raises(ApiUnavailableError, match="another process"):
        profiler.attach(MemoryConfig().profile_process(os.getpid() + 1).use_api())

    assert not profiler.attached
    assert not Path(f"{memory_runner}.args").exists()
