# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Serialise access to the single active session of a profiler facade."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TypeVar

from selfprof.errors import AlreadyActiveError, NotActiveError

from .session import ProfilingSession

LOGGER = logging.getLogger(__name__)

_ResultT = TypeVar("_ResultT")


class SessionManager:
    """Hold at most one :class:`ProfilingSession` behind a mutex.

    The lock is taken for each individual transition and released between
    calls, so a long collection does not block callers that only inspect
    results.
    """

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self._session: ProfilingSession | None = None

    @property
    def session(self) -> ProfilingSession | None:
        with self.lock:
            return self._session

    @property
    def active(self) -> bool:
        with self.lock:
            return self._session is not None

    def ensure_inactive(self) -> None:
        """Raise :class:`AlreadyActiveError` while a session is attached."""

        with self.lock:
            if self._session is not None:
                raise AlreadyActiveError("The profiling session is active still: forgot to call detach()?")

    def attach(self, factory: Callable[[], ProfilingSession]) -> ProfilingSession:
        """Create and register a session unless one is already active.

        Args:
            factory: Callable that launches the runner and waits for it to connect.

        Returns:
            ProfilingSession: The registered session.

        Raises:
            AlreadyActiveError: If a session is already attached.
        """

        with self.lock:
            self.ensure_inactive()
            self._session = factory()
            return self._session

    def run(self, operation: Callable[[ProfilingSession], _ResultT]) -> _ResultT:
        """Apply ``operation`` to the active session under the lock.

        Raises:
            NotActiveError: If no session is attached.
        """

        with self.lock:
            return operation(self._require())

    def detach(self, finish: Callable[[ProfilingSession], _ResultT] | None = None) -> ProfilingSession:
        """Detach the active session and always release the slot.

        Args:
            finish: Optional callback run with the session after a successful
                detach, still under the lock.

        Returns:
            ProfilingSession: The session that was detached.

        Raises:
            NotActiveError: If no session is attached.
        """

        with self.lock:
            session = self._require()
            try:
                session.detach()
                if finish is not None:
                    finish(session)
            finally:
                self._session = None
                LOGGER.debug("Session slot released")
            return session

    def _require(self) -> ProfilingSession:
        if self._session is None:
            raise NotActiveError("The profiling session isn't active: forgot to call attach()?")
        return self._session


__all__ = ["SessionManager"]
