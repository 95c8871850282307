# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared pytest fixtures."""

from __future__ import annotations

import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from selfprof.platform import Architecture, HostInfo, HostPlatform, LibC

RunnerFactory = Callable[..., Path]


@pytest.fixture
def runner_script(tmp_path: Path) -> RunnerFactory:
    """Return a factory writing executable fake runners driven by this interpreter."""

    if sys.platform.startswith("win"):
        pytest.skip("fake runners rely on shebang execution")

    def write(body: str, *, name: str = "runner", directory: Path | None = None) -> Path:
        target_dir = directory or tmp_path
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        path.write_text(f"#!{sys.executable}\n{textwrap.dedent(body)}", encoding="utf-8")
        path.chmod(0o755)
        return path

    return write


@pytest.fixture
def linux_host() -> HostInfo:
    """Return a glibc x64 host description independent of the test machine."""

    return HostInfo(platform=HostPlatform.LINUX, architecture=Architecture.X64, libc=LibC.GLIBC)


FAKE_TOOL = """
import os
import sys
import time

PREFIX = {prefix!r}
args = sys.argv[1:]
with open(__file__ + ".args", "w", encoding="utf-8") as handle:
    handle.write("\\n".join(args))


def option(name):
    return next((arg[len(name):] for arg in args if arg.startswith(name)), None)


def emit(command, filename=None):
    if filename is None:
        print(PREFIX + '["' + command + '"]', flush=True)
    else:
        print(PREFIX + '["' + command + '",{{"filename":"' + filename + '"}}]', flush=True)


workspace = option("-f=")
if "get-snapshot" in args:
    open(workspace, "w").close()
    sys.exit(0)

emit("connected")
if "--use-api" in args:
    while not os.path.exists(__file__ + ".detach"):
        time.sleep(0.02)
    sys.exit(0)

count = 0
output_dir = option("--save-to=") or os.path.dirname(__file__)
for line in sys.stdin:
    with open(__file__ + ".commands", "a", encoding="utf-8") as handle:
        handle.write(line)
    if '"get-snapshot"' in line:
        if "--fail-snapshot" in args:
            print(PREFIX + '["get-snapshot-error",{{"reason":"target is gone"}}]', flush=True)
            continue
        count += 1
        target = workspace or os.path.join(output_dir, "snapshot%d.dtp" % count)
        open(target, "w").close()
        if workspace is None:
            open(target + ".0000", "w").close()
        emit("snapshot-saved", target)
    elif '"disconnect"' in line:
        sys.exit(int(option("--exit-code=") or 0))
"""


@pytest.fixture
def fake_tool(runner_script: RunnerFactory) -> RunnerFactory:
    """Return a factory writing a runner that imitates the console profilers' protocol.

    The runner records its arguments in ``<runner>.args`` and each received
    command in ``<runner>.commands``. With ``--use-api`` it exits once
    ``<runner>.detach`` exists.
    """

    def write(prefix: str, *, name: str, directory: Path | None = None) -> Path:
        return runner_script(FAKE_TOOL.format(prefix=prefix), name=name, directory=directory)

    return write
