# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""One attach-to-detach engagement with a runner process."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from selfprof.errors import InvalidStateError, SnapshotFailedError
from selfprof.process import MessageProcessor, ProfilerProcess, ServiceMessage

from .control import ApiControl, ApiHandle, ApiMethods, CommandControl, ProfilerControl, ToolCommands
from .state import ACTIVE_STATES, SaveWaitPolicy, SessionState

LOGGER = logging.getLogger(__name__)

SNAPSHOT_SAVED: Final[str] = "snapshot-saved"
SNAPSHOT_ERROR: Final[str] = "get-snapshot-error"


@dataclass(frozen=True, slots=True)
class SessionProtocol:
    """Describe how to talk to one kind of runner.

    Attributes:
        prefix: Service message tag (``##dotMemory``).
        presentable_name: Human readable runner name.
        commands: Commands used when driving the runner through stdin.
        api_methods: In-process API type and method names.
    """

    prefix: str
    presentable_name: str
    commands: ToolCommands
    api_methods: ApiMethods


class ProfilingSession:
    """Drive an attached runner through the control channel chosen at attach."""

    def __init__(
        self,
        transport: ProfilerProcess,
        control: ProfilerControl,
        *,
        timeout: float | None,
        save_wait: SaveWaitPolicy = SaveWaitPolicy.COMMAND_ONLY,
    ) -> None:
        self.transport = transport
        self.control = control
        self._timeout = timeout
        self._save_wait = save_wait
        self._state = SessionState.CONNECTED

    @classmethod
    def attach(
        cls,
        runner: Path,
        arguments: Sequence[str],
        protocol: SessionProtocol,
        *,
        api: ApiHandle | None,
        timeout: float | None,
        save_wait: SaveWaitPolicy = SaveWaitPolicy.COMMAND_ONLY,
        processor: MessageProcessor | None = None,
    ) -> ProfilingSession:
        """Start ``runner`` and wait until it reports being connected.

        Args:
            runner: Runner executable.
            arguments: Runner command-line arguments.
            protocol: Message prefix and command vocabulary of the runner.
            api: Bound in-process API, or ``None`` to drive the runner with commands.
            timeout: Seconds allowed for connecting and for detaching.
            save_wait: When saves block for the runner's confirmation.
            processor: Callback receiving every service message on stdout.

        Returns:
            ProfilingSession: Session in the ``CONNECTED`` state.

        Raises:
            LaunchFailedError: If the runner cannot be started.
            ProcessTimeoutError: If the runner does not connect in time.
            UnexpectedExitError: If the runner exits while connecting.
        """

        api_control = ApiControl(api) if api is not None else None
        transport = ProfilerProcess.start(
            runner,
            arguments,
            prefix=protocol.prefix,
            presentable_name=protocol.presentable_name,
            readiness=api_control.is_ready if api_control is not None else None,
            processor=processor,
        )
        try:
            transport.await_connected(timeout)
        except BaseException:
            transport.terminate()
            raise
        control: ProfilerControl = api_control or CommandControl(transport, protocol.commands)
        LOGGER.info("%s attached (pid %s)", protocol.presentable_name, transport.pid)
        return cls(transport, control, timeout=timeout, save_wait=save_wait)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def uses_api(self) -> bool:
        return self.control.uses_api

    def start(self) -> None:
        """Start collecting data; a no-op transition when already collecting."""

        self._require_active()
        self.control.start()
        self._state = SessionState.COLLECTING

    def stop(self) -> None:
        """Stop collecting data without saving it."""

        self._require_active()
        self.control.stop()
        self._state = SessionState.STOPPED

    def save(self, name: str | None = None) -> ServiceMessage | None:
        """Save collected data, waiting for the runner's confirmation when required.

        Args:
            name: Optional snapshot name.

        Returns:
            ServiceMessage | None: The ``snapshot-saved`` message when the save
            was awaited, otherwise ``None``.

        Raises:
            SnapshotFailedError: If the runner answers ``get-snapshot-error``.
        """

        self._require_active()
        self.control.save_data(name)
        self._state = SessionState.STOPPED
        if not self._awaits_save():
            return None
        # Snapshots may take arbitrarily long; the wait is bounded by runner exit.
        message = self.transport.await_response((SNAPSHOT_SAVED, SNAPSHOT_ERROR), None)
        if message.command == SNAPSHOT_ERROR:
            raise SnapshotFailedError(
                f"The {self.transport.presentable_name} failed to save a snapshot: {message.arguments}",
            )
        return message

    def drop(self) -> None:
        """Discard collected data."""

        self._require_active()
        self.control.drop_data()
        self._state = SessionState.STOPPED

    def detach(self) -> None:
        """Disengage the runner, wait for it to exit, and check its status.

        The session is ``FINISHED`` afterwards even when a step fails; on
        failure the runner is killed before the error propagates.

        Raises:
            ProcessTimeoutError: If the runner does not exit in time.
            NonZeroExitError: If the runner exits with a failure status.
        """

        self._require_active()
        try:
            self.control.detach()
            self.transport.await_finished(self._timeout)
        except BaseException:
            self.transport.terminate()
            raise
        finally:
            self._state = SessionState.FINISHED
            self.transport.close_input()
        LOGGER.info("%s detached", self.transport.presentable_name)

    def _awaits_save(self) -> bool:
        if self._save_wait is SaveWaitPolicy.ALWAYS:
            return True
        if self._save_wait is SaveWaitPolicy.NEVER:
            return False
        return not self.control.uses_api

    def _require_active(self) -> None:
        if self._state not in ACTIVE_STATES:
            raise InvalidStateError(f"The profiling session is {self._state.value}")


__all__ = ["SNAPSHOT_ERROR", "SNAPSHOT_SAVED", "ProfilingSession", "SessionProtocol"]
