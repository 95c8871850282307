# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Rich consoles shared by the selfprof command line.

Command results go to standard output. Log records and download progress go
to a separate standard error console so they never mix with results that
callers may parse.
"""

from __future__ import annotations

import sys
import threading
from dataclasses import dataclass
from functools import cache

from rich.console import Console


@dataclass(frozen=True, slots=True)
class ConsoleStyle:
    """Presentation flags identifying one managed console."""

    color: bool
    emoji: bool
    stderr: bool
    terminal: bool


def detect_tty(*, stderr: bool = False) -> bool:
    """Return ``True`` when standard output (or ``stderr``) is a terminal."""

    stream = sys.stderr if stderr else sys.stdout
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False


class RichConsoleManager:
    """Hand out one cached Rich :class:`Console` per :class:`ConsoleStyle`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._consoles: dict[ConsoleStyle, Console] = {}

    def get(self, *, color: bool, emoji: bool, stderr: bool = False) -> Console:
        """Return the console for the requested flags.

        Colour is only honoured when the target stream is a terminal.

        Args:
            color: ``True`` when ANSI colour output is wanted.
            emoji: ``True`` when Rich should render emoji codes.
            stderr: ``True`` to write to standard error instead of standard output.

        Returns:
            Console: Console writing to the stream current at print time.
        """

        terminal = detect_tty(stderr=stderr)
        style = ConsoleStyle(color=color and terminal, emoji=emoji, stderr=stderr, terminal=terminal)
        with self._lock:
            console = self._consoles.get(style)
            if console is None:
                console = Console(
                    stderr=style.stderr,
                    color_system="auto" if style.color else None,
                    force_terminal=style.terminal,
                    no_color=not style.color,
                    emoji=style.emoji,
                    highlight=False,
                    soft_wrap=True,
                )
                self._consoles[style] = console
            return console

    def diagnostics(self) -> Console:
        """Return the standard error console used for logging and progress bars."""

        return self.get(color=True, emoji=False, stderr=True)


@cache
def get_console_manager() -> RichConsoleManager:
    """Return the process-wide :class:`RichConsoleManager` instance."""

    return RichConsoleManager()


__all__ = ["ConsoleStyle", "RichConsoleManager", "detect_tty", "get_console_manager"]
