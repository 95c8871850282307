# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""User-facing output helpers with optional colour and emoji support."""

from __future__ import annotations

from rich.rule import Rule
from rich.text import Text

from selfprof.console import detect_tty, get_console_manager


def emoji(symbol: str, enable: bool) -> str:
    """Return ``symbol`` when emoji output is enabled, otherwise an empty string."""

    return symbol if enable else ""


def _print_line(msg: str, *, style: str | None, use_emoji: bool, use_color: bool | None = None) -> None:
    color_enabled = detect_tty() if use_color is None else use_color
    console = get_console_manager().get(color=color_enabled, emoji=use_emoji)
    text = Text(msg)
    if style and color_enabled:
        text.stylize(style)
    console.print(text)


def section(title: str, *, use_color: bool) -> None:
    """Render a section header to delineate console output blocks.

    Args:
        title: Section title displayed to the user.
        use_color: Flag indicating whether ANSI colour support is desired.
    """

    console = get_console_manager().get(color=use_color, emoji=True)
    if use_color:
        console.print()
        console.print(Rule(title))
    else:
        console.print(f"\n--- {title} ---")


def info(msg: str, *, use_emoji: bool, use_color: bool | None = None) -> None:
    """Emit an informational message."""

    _print_line(f"{emoji('ℹ️ ', use_emoji)}{msg}", style="cyan", use_emoji=use_emoji, use_color=use_color)


def ok(msg: str, *, use_emoji: bool, use_color: bool | None = None) -> None:
    """Emit a success message."""

    _print_line(f"{emoji('✅ ', use_emoji)}{msg}", style="green", use_emoji=use_emoji, use_color=use_color)


def warn(msg: str, *, use_emoji: bool, use_color: bool | None = None) -> None:
    """Emit a warning message."""

    _print_line(f"{emoji('⚠️ ', use_emoji)}{msg}", style="yellow", use_emoji=use_emoji, use_color=use_color)


def fail(msg: str, *, use_emoji: bool, use_color: bool | None = None) -> None:
    """Emit an error message.

    Args:
        msg: Message text to display.
        use_emoji: Flag indicating whether emoji output is desired.
        use_color: Optional explicit colour flag overriding TTY detection.
    """

    _print_line(f"{emoji('❌ ', use_emoji)}{msg}", style="red", use_emoji=use_emoji, use_color=use_color)


__all__ = ["emoji", "fail", "info", "ok", "section", "warn"]
