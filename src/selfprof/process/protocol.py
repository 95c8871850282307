# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Tagged service-message codec spoken over the runner's standard streams.

A message is a single line shaped like ``##dotMemory["command"]`` or
``##dotMemory["command",{key:"value",other:null}]``. Parsing and formatting
are pure functions so they can be exercised without a live process.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from functools import cache
from typing import Final

ANY_COMMAND: Final[str] = r"[a-zA-Z-]*"
QUOTE_PLACEHOLDER: Final[str] = "`"


@dataclass(frozen=True, slots=True)
class ServiceMessage:
    """Represent one decoded tagged message.

    Attributes:
        command: Command name, lower-cased.
        arguments: Raw text between the argument braces, empty when absent.
    """

    command: str
    arguments: str = ""


@cache
def message_pattern(prefix: str, command: str = ANY_COMMAND) -> re.Pattern[str]:
    """Return the compiled case-insensitive pattern for ``command`` lines.

    Args:
        prefix: Per-tool tag such as ``##dotMemory``.
        command: Regular expression matching the command name. Literal command
            names are escaped by :func:`command_pattern`.

    Returns:
        re.Pattern[str]: Pattern capturing ``command`` and ``arguments`` groups.
    """

    return re.compile(
        rf'{re.escape(prefix)}\["(?P<command>{command})"(?:,\s*\{{(?P<arguments>.*)\}})?\]',
        re.IGNORECASE,
    )


def command_pattern(prefix: str, commands: Iterable[str]) -> re.Pattern[str]:
    """Return a pattern matching any of the literal ``commands``."""

    alternatives = "|".join(re.escape(command) for command in commands)
    return message_pattern(prefix, f"(?:{alternatives})")


def parse_service_message(prefix: str, line: str) -> ServiceMessage | None:
    """Decode ``line`` into a :class:`ServiceMessage` when it carries ``prefix``.

    Args:
        prefix: Per-tool tag the line must contain.
        line: Raw line read from the runner's standard output.

    Returns:
        ServiceMessage | None: Decoded message, or ``None`` for ordinary output.
    """

    match = message_pattern(prefix).search(line)
    if match is None:
        return None
    return ServiceMessage(command=match.group("command").lower(), arguments=match.group("arguments") or "")


def format_service_message(prefix: str, command: str, arguments: Iterable[tuple[str, str | None]] = ()) -> str:
    """Render a command line for the runner's standard input.

    Values are double-quoted with embedded ``"`` replaced by a backtick;
    ``None`` renders as ``null``.

    Args:
        prefix: Per-tool tag.
        command: Command name.
        arguments: Ordered ``(key, value)`` pairs.

    Returns:
        str: Message text without a trailing newline.
    """

    rendered = [f"{key}:{_quote(value)}" for key, value in arguments]
    if not rendered:
        return f'{prefix}["{command}"]'
    return f'{prefix}["{command}",{{{",".join(rendered)}}}]'


def _quote(value: str | None) -> str:
    if value is None:
        return "null"
    return '"' + value.replace('"', QUOTE_PLACEHOLDER) + '"'


__all__ = [
    "ServiceMessage",
    "command_pattern",
    "format_service_message",
    "message_pattern",
    "parse_service_message",
]
