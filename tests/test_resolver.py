# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tests for runner discovery, download coalescing, and unpacking."""

from __future__ import annotations

import io
import os
import threading
import zipfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import pytest

from selfprof.errors import DownloadCancelledError, DownloadFailedError, NotReadyError, PackageMalformedError
from selfprof.platform import HostInfo
from selfprof.profilers import DOT_MEMORY
from selfprof.tool_env import (
    READY_MARKER,
    ArtifactResolver,
    CallbackProgress,
    CancellationToken,
    DownloadState,
    PackageStream,
    ResolvedPackage,
    SemanticVersion,
)

VERSION = "2025.1.3"


def build_package(entries: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, payload in entries.items():
            archive.writestr(name, payload)
    return buffer.getvalue()


RUNNER_PACKAGE = build_package(
    {
        "tools/dotmemory": b"#!/bin/sh\nexit 0\n",
        "Tools/lib/JetBrains.Common.dll": b"\0" * 300,
        "readme.txt": b"not a tool",
    },
)


class FakeSource:
    """In-memory package source that can hold a download open until released."""

    def __init__(self, payload: bytes = RUNNER_PACKAGE, *, gated: bool = False) -> None:
        self.payload = payload
        self.resolve_calls = 0
        self.opened = threading.Event()
        self.gate = threading.Event()
        if not gated:
            self.gate.set()

    def resolve(self, package_id: str, pin: SemanticVersion) -> ResolvedPackage:
        self.resolve_calls += 1
        assert pin.major_minor == (2025, 1)
        return ResolvedPackage(package_id=package_id, version=VERSION, url=f"memory://{package_id}")

    @contextmanager
    def open(self, package: ResolvedPackage) -> Iterator[PackageStream]:
        self.opened.set()
        assert self.gate.wait(10)
        chunks = [self.payload[offset : offset + 64] for offset in range(0, len(self.payload), 64)]
        yield PackageStream(length=len(self.payload), chunks=iter(chunks))


def make_resolver(linux_host: HostInfo, source: FakeSource) -> ArtifactResolver:
    return ArtifactResolver(DOT_MEMORY.artifact, host=linux_host, source=source)


def test_download_unpacks_tools_and_marks_ready(tmp_path: Path, linux_host: HostInfo) -> None:
    reports: list[float] = []
    resolver = make_resolver(linux_host, FakeSource())

    runner = resolver.ensure_ready(download_to=tmp_path, progress=CallbackProgress(reports.append)).result(10)

    version_dir = tmp_path / "dotMemory" / VERSION
    assert runner == version_dir / "linux-x64" / "dotmemory"
    assert os.access(runner, os.X_OK)
    assert (version_dir / "linux-x64" / "lib" / "JetBrains.Common.dll").is_file()
    assert not (version_dir / "linux-x64" / "readme.txt").exists()
    assert (version_dir / READY_MARKER).is_file()
    assert not list(version_dir.glob("*.nupkg"))
    assert reports[-1] == 100.0
    assert max(reports) == pytest.approx(100.0)
    assert resolver.state is DownloadState.READY
    assert resolver.runner_path() == runner


def test_concurrent_calls_share_one_download(tmp_path: Path, linux_host: HostInfo) -> None:
    source = FakeSource(gated=True)
    resolver = make_resolver(linux_host, source)

    first = resolver.ensure_ready(download_to=tmp_path)
    assert source.opened.wait(10)
    second = resolver.ensure_ready(download_to=tmp_path)

    assert first is second
    assert resolver.state is DownloadState.RUNNING
    with pytest.raises(NotReadyError):
        resolver.verify_ready()

    source.gate.set()
    assert first.result(10) == second.result(10)
    assert source.resolve_calls == 1


def test_cached_runner_skips_the_registry(tmp_path: Path, linux_host: HostInfo) -> None:
    make_resolver(linux_host, FakeSource()).ensure_ready(download_to=tmp_path).result(10)
    source = FakeSource()

    task = make_resolver(linux_host, source).ensure_ready(download_to=tmp_path)

    assert task.done()
    assert task.result() == tmp_path / "dotMemory" / VERSION / "linux-x64" / "dotmemory"
    assert source.resolve_calls == 0


def test_version_without_ready_marker_is_downloaded_again(tmp_path: Path, linux_host: HostInfo) -> None:
    runner = tmp_path / "dotMemory" / VERSION / "linux-x64" / "dotmemory"
    runner.parent.mkdir(parents=True)
    runner.write_bytes(b"partial")
    source = FakeSource()

    make_resolver(linux_host, source).ensure_ready(download_to=tmp_path).result(10)

    assert source.resolve_calls == 1
    assert runner.read_bytes().startswith(b"#!/bin/sh")


def test_runner_next_to_hint_is_used_directly(tmp_path: Path, linux_host: HostInfo) -> None:
    runner = tmp_path / "dotmemory"
    runner.write_bytes(b"")
    source = FakeSource()

    task = make_resolver(linux_host, source).ensure_ready(download_to=tmp_path)

    assert task.result() == runner
    assert source.resolve_calls == 0


def test_cancelled_download_can_be_retried(tmp_path: Path, linux_host: HostInfo) -> None:
    source = FakeSource(gated=True)
    resolver = make_resolver(linux_host, source)
    token = CancellationToken()

    cancelled = resolver.ensure_ready(download_to=tmp_path, cancellation=token)
    assert source.opened.wait(10)
    token.cancel()
    source.gate.set()

    with pytest.raises(DownloadCancelledError):
        cancelled.result(10)
    assert resolver.state is DownloadState.FAILED
    with pytest.raises(DownloadCancelledError):
        resolver.verify_ready()

    retried = resolver.ensure_ready(download_to=tmp_path)
    assert retried is not cancelled
    assert retried.result(10).is_file()


@pytest.mark.parametrize(
    ("payload", "message"),
    [
        (build_package({"content/readme.txt": b"x"}), "tools/"),
        (build_package({"tools/other": b"x"}), "does not contain"),
        (b"this is not a zip archive", "not a valid archive"),
    ],
)
def test_malformed_packages_are_rejected(tmp_path: Path, linux_host: HostInfo, payload: bytes, message: str) -> None:
    resolver = make_resolver(linux_host, FakeSource(payload))

    with pytest.raises(PackageMalformedError, match=message):
        resolver.ensure_ready(download_to=tmp_path).result(10)

    assert not list((tmp_path / "dotMemory" / VERSION).glob("*.nupkg"))
    assert not (tmp_path / "dotMemory" / VERSION / READY_MARKER).exists()


def test_unwritable_destination_fails_download(tmp_path: Path, linux_host: HostInfo) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")

    with pytest.raises(DownloadFailedError) as excinfo:
        make_resolver(linux_host, FakeSource()).ensure_ready(download_to=blocker).result(10)

    assert excinfo.value.url == str(blocker)


def test_runner_path_requires_ensure_ready(linux_host: HostInfo) -> None:
    with pytest.raises(NotReadyError, match="call ensure_ready"):
        make_resolver(linux_host, FakeSource()).runner_path()
