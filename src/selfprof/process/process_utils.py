# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Helpers for preparing runner command lines."""

from __future__ import annotations

import shutil
from collections.abc import Sequence
from pathlib import Path


def normalize_command(executable: str | Path, arguments: Sequence[str]) -> list[str]:
    """Return ``[executable, *arguments]`` with the executable resolved.

    Absolute and relative paths that exist are used as-is; bare names are
    looked up on ``PATH``.

    Raises:
        FileNotFoundError: If the executable cannot be located.
    """

    head = Path(executable)
    if head.is_absolute() or head.exists():
        return [str(head), *arguments]
    resolved = shutil.which(str(executable))
    if resolved is None:
        raise FileNotFoundError(f"Executable '{executable}' was not found on PATH")
    return [resolved, *arguments]


__all__ = ["normalize_command"]
