# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Runner process transport and tagged service-message protocol."""

from __future__ import annotations

from .protocol import ServiceMessage, command_pattern, format_service_message, parse_service_message
from .transport import CONNECTED_COMMAND, POLL_INTERVAL, MessageProcessor, ProfilerProcess, ReadinessProbe

__all__ = [
    "CONNECTED_COMMAND",
    "POLL_INTERVAL",
    "MessageProcessor",
    "ProfilerProcess",
    "ReadinessProbe",
    "ServiceMessage",
    "command_pattern",
    "format_service_message",
    "parse_service_message",
]
