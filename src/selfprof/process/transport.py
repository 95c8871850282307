# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Own one runner process and speak the tagged line protocol with it.

Two daemon threads drain the runner's stdout and stderr into append-only line
buffers for the whole lifetime of the process. Each stdout line is handed to
the optional message processor before it becomes visible to waiters, so a
waiter that observes a response can rely on the processor having run.
Waiting primitives poll the buffers every :data:`POLL_INTERVAL` seconds.
"""

from __future__ import annotations

import logging
import re
import subprocess
import threading
import time
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from pathlib import Path
from typing import IO, Final, TypeVar

from selfprof.errors import (
    InvalidStateError,
    LaunchFailedError,
    NonZeroExitError,
    ProcessTimeoutError,
    ProfilerProcessError,
    UnexpectedExitError,
)

from .process_utils import normalize_command
from .protocol import ServiceMessage, command_pattern, format_service_message, parse_service_message

LOGGER = logging.getLogger(__name__)

POLL_INTERVAL: Final[float] = 0.04
READER_JOIN_TIMEOUT: Final[float] = 2.0
CONNECTED_COMMAND: Final[str] = "connected"

MessageProcessor = Callable[[ServiceMessage], None]
ReadinessProbe = Callable[[], bool]
_ErrorT = TypeVar("_ErrorT", bound=ProfilerProcessError)


class LineBuffer:
    """Append-only, thread-safe list of lines read from one stream."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self._lines: list[str] = []

    def append(self, line: str) -> None:
        with self.lock:
            self._lines.append(line)

    def snapshot(self) -> tuple[str, ...]:
        with self.lock:
            return tuple(self._lines)

    def __len__(self) -> int:
        with self.lock:
            return len(self._lines)

    def line_at(self, index: int) -> str:
        """Return line ``index``; callers must hold :attr:`lock`."""

        return self._lines[index]

    def unlocked_len(self) -> int:
        """Return the line count; callers must hold :attr:`lock`."""

        return len(self._lines)


class ProfilerProcess:
    """Runner process driven through its standard streams."""

    def __init__(
        self,
        popen: subprocess.Popen[str],
        *,
        prefix: str,
        presentable_name: str,
        readiness: ReadinessProbe | None = None,
        processor: MessageProcessor | None = None,
    ) -> None:
        """Wrap an already started ``popen`` and begin draining its output.

        Prefer :meth:`start`, which also launches the process.

        Args:
            popen: Process created with text-mode pipes for all three streams.
            prefix: Tag that introduces every service message (``##dotMemory``).
            presentable_name: Human readable runner name used in diagnostics.
            readiness: Probe of the in-process API; its presence marks the
                session as API-controlled.
            processor: Callback receiving each service message seen on stdout.

        Raises:
            InvalidStateError: If any standard stream of ``popen`` is not a pipe.
        """

        if popen.stdin is None or popen.stdout is None or popen.stderr is None:
            raise InvalidStateError(f"The {presentable_name} must be started with pipes for all standard streams")
        self.prefix = prefix
        self.presentable_name = presentable_name
        self._popen = popen
        self._stdin = popen.stdin
        self._readiness = readiness
        self._processor = processor
        self._stdout = LineBuffer()
        self._stderr = LineBuffer()
        self._cursor = 0
        self._stdin_lock = threading.Lock()
        self._readers = (
            threading.Thread(target=self._drain_stdout, args=(popen.stdout,), name=f"{prefix}-stdout", daemon=True),
            threading.Thread(target=self._drain_stderr, args=(popen.stderr,), name=f"{prefix}-stderr", daemon=True),
        )
        for reader in self._readers:
            reader.start()

    @classmethod
    def start(
        cls,
        executable: str | Path,
        arguments: Sequence[str],
        *,
        prefix: str,
        presentable_name: str,
        readiness: ReadinessProbe | None = None,
        processor: MessageProcessor | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ProfilerProcess:
        """Launch ``executable`` with redirected streams.

        Raises:
            LaunchFailedError: If the operating system refuses to start the runner.
        """

        try:
            command = normalize_command(executable, arguments)
            LOGGER.info("Starting %s: %s", presentable_name, subprocess.list2cmdline(command))
            # Arguments are passed as a list; no shell is involved.
            popen = subprocess.Popen(  # nosec B603
                command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                env=dict(env) if env is not None else None,
                creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
            )
        except (OSError, ValueError) as exc:
            raise LaunchFailedError(f"Unable to start {presentable_name}: {exc}") from exc
        return cls(popen, prefix=prefix, presentable_name=presentable_name, readiness=readiness, processor=processor)

    @property
    def pid(self) -> int:
        return self._popen.pid

    @property
    def api_controlled(self) -> bool:
        """Return ``True`` when the in-process API drives this session."""

        return self._readiness is not None

    @property
    def returncode(self) -> int | None:
        return self._popen.poll()

    @property
    def stdout_lines(self) -> tuple[str, ...]:
        return self._stdout.snapshot()

    @property
    def stderr_lines(self) -> tuple[str, ...]:
        return self._stderr.snapshot()

    def has_exited(self) -> bool:
        return self._popen.poll() is not None

    def await_response(self, commands: str | Iterable[str], timeout: float | None) -> ServiceMessage:
        """Wait for the next unconsumed service message naming one of ``commands``.

        Args:
            commands: Command name or names to wait for, matched case-insensitively.
            timeout: Seconds to wait; ``None`` or a negative value waits until
                the runner exits.

        Returns:
            ServiceMessage: The matched message. Later waits only scan lines
            that follow it.

        Raises:
            UnexpectedExitError: If the runner exits before a match appears.
            ProcessTimeoutError: If ``timeout`` elapses first.
        """

        names = (commands,) if isinstance(commands, str) else tuple(commands)
        message = self._wait_for(command_pattern(self.prefix, names), _deadline(timeout))
        if message is not None:
            return message
        if self.has_exited():
            raise self._error(UnexpectedExitError, f"{self.presentable_name} has exited unexpectedly. See details below.")
        raise self._error(
            ProcessTimeoutError,
            f"The command {'|'.join(names)} for {self.presentable_name} has not finished in the given time ({timeout} s).",
        )

    def send(self, command: str, *arguments: tuple[str, str | None]) -> None:
        """Write a service message to the runner's standard input.

        Raises:
            InvalidStateError: If the session is controlled through the in-process API.
            UnexpectedExitError: If the runner's standard input is closed.
        """

        if self.api_controlled:
            raise InvalidStateError("It is not possible to send commands if the profiler API is used")
        message = format_service_message(self.prefix, command, arguments)
        LOGGER.debug("[%s] <- %s", self.prefix, message)
        with self._stdin_lock:
            try:
                self._stdin.write(message + "\n")
                self._stdin.flush()
            except (BrokenPipeError, ValueError, OSError) as exc:
                raise self._error(
                    UnexpectedExitError,
                    f"Unable to send {command} to {self.presentable_name}. See details below.",
                ) from exc

    def await_connected(self, timeout: float | None) -> None:
        """Wait for the ``connected`` message and, when API-controlled, for readiness.

        Both phases share one deadline, so a runner that connects quickly but
        whose in-process API never becomes ready fails after ``timeout``.

        Raises:
            ProcessTimeoutError: If either phase does not complete in time.
            UnexpectedExitError: If the runner exits before becoming ready.
        """

        deadline = _deadline(timeout)
        message = self._wait_for(command_pattern(self.prefix, (CONNECTED_COMMAND,)), deadline)
        if message is None:
            if self.has_exited():
                raise self._error(
                    UnexpectedExitError,
                    f"The {self.presentable_name} has exited unexpectedly. See details below.",
                )
            raise self._error(ProcessTimeoutError, f"The {self.presentable_name} was not connected. See details below.")
        LOGGER.debug("%s connected", self.presentable_name)

        if self._readiness is None:
            return
        while not self._readiness():
            if self.has_exited():
                raise self._error(
                    UnexpectedExitError,
                    f"The {self.presentable_name} has exited unexpectedly. See details below.",
                )
            if _expired(deadline):
                raise self._error(
                    ProcessTimeoutError,
                    "The profiler API did not become ready in the given time. See details below.",
                )
            time.sleep(POLL_INTERVAL)

    def await_finished(self, timeout: float | None) -> int:
        """Wait for the runner to exit and check its status.

        Returns:
            int: The runner's exit status (always ``0``).

        Raises:
            ProcessTimeoutError: If the runner is still running after ``timeout``.
            NonZeroExitError: If the runner exits with a failure status.
        """

        try:
            returncode = self._popen.wait(None if timeout is None or timeout < 0 else timeout)
        except subprocess.TimeoutExpired as exc:
            raise self._error(
                ProcessTimeoutError,
                f"The {self.presentable_name} has not finished in given time. See details below.",
            ) from exc
        self._join_readers()
        LOGGER.debug("%s exited with status %s", self.presentable_name, returncode)
        if returncode != 0:
            raise NonZeroExitError(
                f"The {self.presentable_name} has failed. See details below.",
                returncode=returncode,
                stdout=self.stdout_lines,
                stderr=self.stderr_lines,
            )
        return returncode

    def terminate(self) -> None:
        """Kill the runner if it is still alive and reap it."""

        if self._popen.poll() is None:
            LOGGER.info("Killing %s (pid %s)", self.presentable_name, self._popen.pid)
            self._popen.kill()
        self._popen.wait()
        self._join_readers()

    def close_input(self) -> None:
        """Close the runner's standard input."""

        if not self._stdin.closed:
            with self._stdin_lock:
                try:
                    self._stdin.close()
                except OSError as exc:
                    LOGGER.debug("Closing stdin of %s failed: %s", self.presentable_name, exc)

    def _wait_for(self, pattern: re.Pattern[str], deadline: float | None) -> ServiceMessage | None:
        position = self._cursor
        while True:
            position, message = self._scan(pattern, position)
            if message is not None:
                return message
            if self.has_exited():
                # Lines written right before exit may still be in flight.
                self._join_readers()
                return self._scan(pattern, position)[1]
            if _expired(deadline):
                return None
            time.sleep(POLL_INTERVAL)

    def _scan(self, pattern: re.Pattern[str], position: int) -> tuple[int, ServiceMessage | None]:
        with self._stdout.lock:
            position = max(position, self._cursor)
            while position < self._stdout.unlocked_len():
                line = self._stdout.line_at(position)
                position += 1
                match = pattern.search(line)
                if match is not None:
                    self._cursor = position
                    message = ServiceMessage(
                        command=match.group("command").lower(),
                        arguments=match.group("arguments") or "",
                    )
                    return position, message
        return position, None

    def _drain_stdout(self, stream: IO[str]) -> None:
        for line in _lines(stream):
            LOGGER.debug("[%s] %s", self.prefix, line)
            if self._processor is not None:
                message = parse_service_message(self.prefix, line)
                if message is not None:
                    try:
                        self._processor(message)
                    except Exception:
                        LOGGER.exception("Processing %r from %s failed", line, self.presentable_name)
            self._stdout.append(line)

    def _drain_stderr(self, stream: IO[str]) -> None:
        for line in _lines(stream):
            LOGGER.debug("[%s:stderr] %s", self.prefix, line)
            self._stderr.append(line)

    def _join_readers(self) -> None:
        current = threading.current_thread()
        for reader in self._readers:
            if reader is not current:
                reader.join(READER_JOIN_TIMEOUT)

    def _error(self, error_type: type[_ErrorT], caption: str) -> _ErrorT:
        return error_type(caption, stdout=self.stdout_lines, stderr=self.stderr_lines)


def _lines(stream: IO[str]) -> Iterator[str]:
    try:
        for raw in stream:
            yield raw.rstrip("\r\n")
    except ValueError:
        # Stream closed underneath the reader.
        return
    finally:
        stream.close()


def _deadline(timeout: float | None) -> float | None:
    if timeout is None or timeout < 0:
        return None
    return time.monotonic() + timeout


def _expired(deadline: float | None) -> bool:
    return deadline is not None and time.monotonic() > deadline


__all__ = ["CONNECTED_COMMAND", "POLL_INTERVAL", "LineBuffer", "MessageProcessor", "ProfilerProcess", "ReadinessProbe"]
