# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Exception hierarchy shared by the resolver, transport, and session layers."""

from __future__ import annotations

from collections.abc import Sequence


class SelfProfError(RuntimeError):
    """Base class for every error raised by :mod:`selfprof`."""


class ConfigurationError(SelfProfError, ValueError):
    """Raised when a configuration builder receives conflicting options."""


class NotReadyError(SelfProfError):
    """Raised when the console runner has not been resolved yet."""


class ApiUnavailableError(SelfProfError):
    """Raised when the in-process profiler API was requested but cannot be bound."""


class AlreadyActiveError(SelfProfError):
    """Raised when attaching while another profiling session is still active."""


class NotActiveError(SelfProfError):
    """Raised when operating on a facade that has no active profiling session."""


class InvalidStateError(SelfProfError):
    """Raised when an operation conflicts with the session's control mode or state."""


class LaunchFailedError(SelfProfError):
    """Raised when the operating system refuses to start the console runner."""


class PlatformUnsupportedError(SelfProfError):
    """Raised when the host OS, architecture, or libc flavour is not recognised."""


class DownloadFailedError(SelfProfError):
    """Raised when the registry or network fails while fetching the runner package."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        """Initialise the error with the URL that was being fetched.

        Args:
            message: Human-readable description of the failure.
            url: Registry or package URL involved in the failure, when known.
        """

        full_message = f"{message}\n[{url}]" if url else message
        super().__init__(full_message)
        self.url = url


class PackageMalformedError(SelfProfError):
    """Raised when a downloaded package lacks the expected ``tools/`` layout."""


class DownloadCancelledError(SelfProfError):
    """Raised when a download is cancelled through its cancellation token."""


class SnapshotFailedError(SelfProfError):
    """Raised when the console runner reports that a snapshot could not be saved."""


class ProfilerProcessError(SelfProfError):
    """Base class for failures that carry the runner's captured output streams."""

    def __init__(self, caption: str, *, stdout: Sequence[str], stderr: Sequence[str]) -> None:
        """Initialise the error with the accumulated standard streams.

        Args:
            caption: Short description of what went wrong.
            stdout: Lines captured from the runner's standard output.
            stderr: Lines captured from the runner's standard error.
        """

        self.caption = caption
        self.stdout = tuple(stdout)
        self.stderr = tuple(stderr)
        super().__init__(_format_diagnostics(caption, self.stdout, self.stderr))


class ProcessTimeoutError(ProfilerProcessError):
    """Raised when the runner does not respond or exit within the allotted time."""


class UnexpectedExitError(ProfilerProcessError):
    """Raised when the runner exits while a response was still expected."""


class NonZeroExitError(ProfilerProcessError):
    """Raised when the runner exits with a failure status."""

    def __init__(
        self,
        caption: str,
        *,
        returncode: int,
        stdout: Sequence[str],
        stderr: Sequence[str],
    ) -> None:
        """Initialise the error with the runner's exit status.

        Args:
            caption: Short description of what went wrong.
            returncode: Exit status reported by the runner.
            stdout: Lines captured from the runner's standard output.
            stderr: Lines captured from the runner's standard error.
        """

        self.returncode = returncode
        super().__init__(caption, stdout=stdout, stderr=stderr)


def _format_diagnostics(caption: str, stdout: Sequence[str], stderr: Sequence[str]) -> str:
    lines = [caption, "*** Standard Error ***", *stderr, "", "*** Standard Output ***", *stdout]
    return "\n".join(lines)


__all__ = [
    "AlreadyActiveError",
    "ApiUnavailableError",
    "ConfigurationError",
    "DownloadCancelledError",
    "DownloadFailedError",
    "InvalidStateError",
    "LaunchFailedError",
    "NonZeroExitError",
    "NotActiveError",
    "NotReadyError",
    "PackageMalformedError",
    "PlatformUnsupportedError",
    "ProcessTimeoutError",
    "ProfilerProcessError",
    "SelfProfError",
    "SnapshotFailedError",
    "UnexpectedExitError",
]
