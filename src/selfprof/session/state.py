# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Lifecycle states of a profiling session."""

from __future__ import annotations

from enum import Enum
from typing import Final


class SessionState(str, Enum):
    """Enumerate the states a :class:`ProfilingSession` moves through."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    COLLECTING = "collecting"
    STOPPED = "stopped"
    FINISHED = "finished"


class SaveWaitPolicy(str, Enum):
    """Enumerate when a save blocks until the runner confirms the snapshot."""

    COMMAND_ONLY = "command-only"
    ALWAYS = "always"
    NEVER = "never"


ACTIVE_STATES: Final[frozenset[SessionState]] = frozenset(
    {SessionState.CONNECTED, SessionState.COLLECTING, SessionState.STOPPED},
)

__all__ = ["ACTIVE_STATES", "SaveWaitPolicy", "SessionState"]
