# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Session state machine, control channels, and the session manager."""

from __future__ import annotations

from .control import (
    READY_FLAG,
    ApiBinder,
    ApiControl,
    ApiHandle,
    ApiMethods,
    ApiMode,
    CommandControl,
    ProfilerControl,
    ToolCommands,
    bind_clr_api,
    select_api,
)
from .manager import SessionManager
from .session import SNAPSHOT_ERROR, SNAPSHOT_SAVED, ProfilingSession, SessionProtocol
from .state import ACTIVE_STATES, SaveWaitPolicy, SessionState

__all__ = [
    "ACTIVE_STATES",
    "READY_FLAG",
    "SNAPSHOT_ERROR",
    "SNAPSHOT_SAVED",
    "ApiBinder",
    "ApiControl",
    "ApiHandle",
    "ApiMethods",
    "ApiMode",
    "CommandControl",
    "ProfilerControl",
    "ProfilingSession",
    "SaveWaitPolicy",
    "SessionManager",
    "SessionProtocol",
    "SessionState",
    "ToolCommands",
    "bind_clr_api",
    "select_api",
]
