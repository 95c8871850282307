# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Locate or download the console runner for a :class:`ToolArtifact`."""

from __future__ import annotations

import logging
import stat
import sys
import threading
import zipfile
from collections.abc import Iterable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import BinaryIO, Final

from selfprof.errors import (
    DownloadCancelledError,
    DownloadFailedError,
    NotReadyError,
    PackageMalformedError,
)
from selfprof.platform import HostInfo, HostPlatform, detect_host

from .layout import ArtifactLayout, default_cache_root
from .models import DownloadState, RegistryApi, ResolvedPackage, ToolArtifact
from .progress import CancellationToken, NullProgress, Progress, SubProgress
from .registry import CHUNK_SIZE, NuGetRegistry, PackageSource

LOGGER = logging.getLogger(__name__)

DOWNLOAD_WEIGHT: Final[float] = 0.8
UNPACK_WEIGHT: Final[float] = 1.0 - DOWNLOAD_WEIGHT
READY_POLL_SECONDS: Final[float] = 0.04
TOOLS_PREFIX: Final[str] = "tools/"
_CANCELLATION_DEPTH: Final[int] = 5


class DownloadTask:
    """Handle on an in-flight or completed runner resolution."""

    def __init__(self, future: Future[Path]) -> None:
        self._future = future

    @classmethod
    def completed(cls, runner: Path) -> DownloadTask:
        """Return a task that already resolved to ``runner``."""

        future: Future[Path] = Future()
        future.set_result(runner)
        return cls(future)

    @property
    def state(self) -> DownloadState:
        if self._future.done():
            return DownloadState.FAILED if self._future.exception() is not None else DownloadState.READY
        if self._future.running():
            return DownloadState.RUNNING
        return DownloadState.NOT_STARTED

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> Path:
        """Block until the runner is available and return its path.

        Args:
            timeout: Seconds to wait, or ``None`` to wait indefinitely.

        Returns:
            Path: Location of the runner executable.

        Raises:
            TimeoutError: If the task did not finish within ``timeout``.
        """

        return self._future.result(timeout)

    def exception(self, timeout: float | None = None) -> BaseException | None:
        return self._future.exception(timeout)


class ArtifactResolver:
    """Resolve a runner executable, downloading it at most once at a time.

    ``ensure_ready`` coalesces concurrent calls onto the in-flight
    :class:`DownloadTask`; a failed or cancelled task is replaced by a fresh
    one on the next call.
    """

    def __init__(
        self,
        artifact: ToolArtifact,
        *,
        host: HostInfo | None = None,
        source: PackageSource | None = None,
    ) -> None:
        """Initialise the resolver.

        Args:
            artifact: Runner package description.
            host: Host characteristics; detected lazily when omitted.
            source: Package source overriding the NuGet registry client.
        """

        self.artifact = artifact
        self._host = host
        self._source = source
        self._lock = threading.Lock()
        self._task: DownloadTask | None = None
        self._download_to: Path | None = None

    @property
    def state(self) -> DownloadState:
        with self._lock:
            return DownloadState.NOT_STARTED if self._task is None else self._task.state

    def ensure_ready(
        self,
        *,
        progress: Progress | None = None,
        registry_url: str | None = None,
        registry_api: RegistryApi = RegistryApi.V3,
        download_to: Path | None = None,
        cancellation: CancellationToken | None = None,
    ) -> DownloadTask:
        """Return a task resolving to the runner, starting a download if needed.

        Args:
            progress: Sink receiving absolute percentages of the download.
            registry_url: Registry endpoint; defaults to nuget.org for ``registry_api``.
            registry_api: Registry protocol to speak.
            download_to: Download root; when given it is the only location probed.
            cancellation: Token that aborts the download when cancelled.

        Returns:
            DownloadTask: Completed task when a runner is already cached,
            otherwise the running download.
        """

        with self._lock:
            if self._task is not None and not self._task.done():
                LOGGER.debug("%s download already running", self.artifact.name)
                return self._task

            self._task = None
            self._download_to = download_to
            host = self._host or detect_host()

            existing = self._probe(host, download_to)
            if existing is not None:
                LOGGER.debug("%s runner found at %s, no download needed", self.artifact.name, existing)
                self._task = DownloadTask.completed(existing)
                return self._task

            source = self._source or NuGetRegistry(registry_api, registry_url)
            root = download_to or default_cache_root()
            future: Future[Path] = Future()
            self._task = DownloadTask(future)
            worker = threading.Thread(
                target=self._run,
                args=(future, source, root, host, progress or NullProgress(), cancellation or CancellationToken()),
                name=f"selfprof-download-{self.artifact.name}",
                daemon=True,
            )
            LOGGER.debug("%s runner not found, starting download", self.artifact.name)
            worker.start()
            return self._task

    def verify_ready(self) -> None:
        """Raise unless a completed resolution exists for this resolver.

        Raises:
            NotReadyError: If ``ensure_ready`` was never called or is still running.
        """

        self._completed_task()

    def runner_path(self) -> Path:
        """Return the resolved runner path.

        Raises:
            NotReadyError: If no completed resolution exists or the runner vanished.
        """

        runner = self._completed_task().result()
        if not runner.is_file():
            raise NotReadyError(f"The {self.artifact.presentable_name} was not found at {runner}")
        return runner

    def _completed_task(self) -> DownloadTask:
        with self._lock:
            task = self._task
        if task is None:
            raise NotReadyError(f"The {self.artifact.presentable_name} isn't ready, call ensure_ready() first.")
        try:
            task.result(READY_POLL_SECONDS)
        except FutureTimeoutError as exc:
            raise NotReadyError(
                f"The {self.artifact.presentable_name} isn't ready yet, wait for ensure_ready() to complete.",
            ) from exc
        return task

    def _probe(self, host: HostInfo, hint: Path | None) -> Path | None:
        runner = self.artifact.runner_file_name(host.platform)
        runtime_id = host.runtime_identifier
        if hint is not None:
            roots = [hint]
            direct = hint / runner
        else:
            roots = [default_cache_root()]
            nearby = _nearby_directory()
            direct = nearby / runner if nearby is not None else None
        if direct is not None:
            LOGGER.debug("Looking for %s at %s", runner, direct)
            if direct.is_file():
                return direct
        for root in roots:
            LOGGER.debug("Looking for the latest %s under %s", self.artifact.name, root)
            found = ArtifactLayout(root, self.artifact.name).find_ready_runner(
                self.artifact.required_version,
                runtime_id,
                runner,
            )
            if found is not None:
                return found
        return None

    def _run(
        self,
        future: Future[Path],
        source: PackageSource,
        root: Path,
        host: HostInfo,
        progress: Progress,
        token: CancellationToken,
    ) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            runner = self._download(source, root, host, progress, token)
        except Exception as exc:
            LOGGER.debug("%s download failed: %s", self.artifact.name, exc)
            future.set_exception(exc)
        else:
            future.set_result(runner)

    def _download(
        self,
        source: PackageSource,
        root: Path,
        host: HostInfo,
        progress: Progress,
        token: CancellationToken,
    ) -> Path:
        runtime_id = host.runtime_identifier
        runner_name = self.artifact.runner_file_name(host.platform)
        package_id = self.artifact.package_id(runtime_id)
        layout = ArtifactLayout(root, self.artifact.name)
        LOGGER.info("Resolving %s into %s", package_id, root)
        try:
            token.raise_if_cancelled()
            root.mkdir(parents=True, exist_ok=True)
            package = source.resolve(package_id, self.artifact.required_version)
            runner = layout.runner_path(package.version, runtime_id, runner_name)
            if layout.is_ready(package.version, runtime_id, runner_name):
                LOGGER.debug("Package version %s already downloaded", package.version)
                return runner

            layout.version_dir(package.version).mkdir(parents=True, exist_ok=True)
            archive = layout.package_path(package.version, package_id)
            try:
                self._fetch(source, package, archive, SubProgress(progress, 0.0, DOWNLOAD_WEIGHT), token)
                _unpack(
                    archive,
                    layout.runner_dir(package.version, runtime_id),
                    SubProgress(progress, DOWNLOAD_WEIGHT * 100.0, UNPACK_WEIGHT),
                    token,
                    make_executable=host.platform is not HostPlatform.WINDOWS,
                )
            finally:
                archive.unlink(missing_ok=True)

            if not runner.is_file():
                raise PackageMalformedError(f"Package {package_id} {package.version} does not contain {runner_name}")
            layout.ready_marker(package.version).touch()
            LOGGER.debug("%s %s ready at %s", self.artifact.name, package.version, runner)
            progress.report(100.0)
            return runner
        except (DownloadFailedError, OSError) as exc:
            if token.cancelled or _is_cancellation(exc):
                raise DownloadCancelledError(
                    "Failed to download runner package. Operation was cancelled.",
                ) from exc
            if isinstance(exc, OSError):
                raise DownloadFailedError(
                    "Failed to save/unpack runner package. Please check the path and available disk space.",
                    url=str(root),
                ) from exc
            raise

    def _fetch(
        self,
        source: PackageSource,
        package: ResolvedPackage,
        archive: Path,
        progress: Progress,
        token: CancellationToken,
    ) -> None:
        with source.open(package) as stream, archive.open("wb") as output:
            _copy(stream.chunks, output, stream.length or self.artifact.estimated_size, progress, token)


def _unpack(
    archive: Path,
    destination: Path,
    progress: Progress,
    token: CancellationToken,
    *,
    make_executable: bool,
) -> None:
    try:
        with zipfile.ZipFile(archive) as package:
            entries = [
                info
                for info in package.infolist()
                if info.filename.lower().startswith(TOOLS_PREFIX) and not info.is_dir()
            ]
            if not entries:
                raise PackageMalformedError("Unable to find the tools/ folder inside the package")
            total = sum(info.file_size for info in entries) or 1
            LOGGER.debug("Unpacking %d entries of %d bytes into %s", len(entries), total, destination)

            root = destination.resolve()
            unpacked = 0
            for info in entries:
                target = destination / info.filename[len(TOOLS_PREFIX) :]
                if not target.resolve().is_relative_to(root):
                    raise PackageMalformedError(f"Package entry escapes the tools/ folder: {info.filename}")
                target.parent.mkdir(parents=True, exist_ok=True)
                entry_progress = SubProgress(progress, 100.0 * unpacked / total, info.file_size / total)
                with package.open(info) as source, target.open("wb") as output:
                    LOGGER.debug("  %s -> %s", info.filename, target)
                    _copy(iter(lambda: source.read(CHUNK_SIZE), b""), output, info.file_size, entry_progress, token)
                if make_executable:
                    target.chmod(target.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
                unpacked += info.file_size
    except zipfile.BadZipFile as exc:
        raise PackageMalformedError(f"Downloaded package {archive.name} is not a valid archive") from exc


def _copy(
    chunks: Iterable[bytes],
    output: BinaryIO,
    estimated_length: int,
    progress: Progress,
    token: CancellationToken,
) -> None:
    copied = 0
    for chunk in chunks:
        if not chunk:
            continue
        output.write(chunk)
        copied += len(chunk)
        progress.report(copied * 100.0 / estimated_length if copied < estimated_length else 100.0)
        token.raise_if_cancelled()


def _is_cancellation(exc: BaseException) -> bool:
    current: BaseException | None = exc
    for _ in range(_CANCELLATION_DEPTH):
        if current is None:
            return False
        if isinstance(current, DownloadCancelledError):
            return True
        current = current.__cause__ or current.__context__
    return False


def _nearby_directory() -> Path | None:
    main = sys.modules.get("__main__")
    location = getattr(main, "__file__", None)
    return Path(location).resolve().parent if location else None


__all__ = ["DOWNLOAD_WEIGHT", "ArtifactResolver", "DownloadTask"]
