# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""CLI tests for the selfprof command."""

from __future__ import annotations

import importlib
from pathlib import Path

from typer.testing import CliRunner

from selfprof.cli.app import app
from selfprof.errors import PlatformUnsupportedError, SnapshotFailedError
from selfprof.platform import HostInfo
from selfprof.profilers import DOT_MEMORY, DOT_TRACE, PerformanceProfiler

CLI_MODULE = importlib.import_module("selfprof.cli.app")


def test_platform_prints_runtime_identifier(monkeypatch, linux_host: HostInfo) -> None:
    monkeypatch.setattr(CLI_MODULE, "detect_host", lambda: linux_host)

    result = CliRunner().invoke(app, ["platform", "--no-emoji"])

    assert result.exit_code == 0
    assert "runtime identifier: linux-x64" in result.stdout
    assert "libc: glibc" in result.stdout


def test_platform_failure_exits_with_error(monkeypatch) -> None:
    def unsupported() -> HostInfo:
        raise PlatformUnsupportedError("Unsupported platform plan9")

    monkeypatch.setattr(CLI_MODULE, "detect_host", unsupported)

    result = CliRunner().invoke(app, ["platform", "--no-emoji"])

    assert result.exit_code == 1
    assert "Unsupported platform plan9" in result.stdout


def test_snapshot_takes_one_shot_workspace(monkeypatch, fake_tool, linux_host: HostInfo, tmp_path: Path) -> None:
    runners = tmp_path / "runners"
    fake_tool(DOT_MEMORY.protocol.prefix, name="dotmemory", directory=runners)
    output = tmp_path / "out"
    output.mkdir()
    monkeypatch.setattr("selfprof.tool_env.resolver.detect_host", lambda: linux_host)

    result = CliRunner().invoke(
        app,
        ["snapshot", "--pid", "4321", "--output-dir", str(output), "--download-to", str(runners), "--no-emoji"],
    )

    assert result.exit_code == 0, result.stdout
    assert "Workspace saved to" in result.stdout
    workspaces = list(output.glob("*.dmw"))
    assert len(workspaces) == 1
    arguments = (runners / "dotmemory.args").read_text(encoding="utf-8").splitlines()
    assert arguments[:2] == ["get-snapshot", "4321"]


def test_trace_detaches_when_collection_fails(monkeypatch, fake_tool, linux_host: HostInfo, tmp_path: Path) -> None:
    runners = tmp_path / "runners"
    runner = fake_tool(DOT_TRACE.protocol.prefix, name="dotTrace.sh", directory=runners)
    monkeypatch.setattr("selfprof.tool_env.resolver.detect_host", lambda: linux_host)

    def failing_save(self, name=None):
        raise SnapshotFailedError("The runner failed to save a snapshot")

    monkeypatch.setattr(PerformanceProfiler, "save_data", failing_save)

    result = CliRunner().invoke(
        app,
        ["trace", "--pid", "4321", "--seconds", "0", "--download-to", str(runners), "--no-emoji"],
    )

    assert result.exit_code == 1
    assert "failed to save a snapshot" in result.stdout
    commands = Path(f"{runner}.commands").read_text(encoding="utf-8").splitlines()
    assert commands == ['##dotTrace["start"]', '##dotTrace["disconnect"]']
