# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Progress reporting and cancellation primitives for runner downloads."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from selfprof.errors import DownloadCancelledError


@runtime_checkable
class Progress(Protocol):
    """Receive absolute completion percentages in the ``0..100`` range."""

    def report(self, percent: float) -> None:
        """Record that the operation reached ``percent`` completion."""


class NullProgress:
    """Progress sink that discards every report."""

    def report(self, percent: float) -> None:
        del percent


class CallbackProgress:
    """Adapt a plain callable to the :class:`Progress` protocol."""

    def __init__(self, callback: Callable[[float], None]) -> None:
        self._callback = callback

    def report(self, percent: float) -> None:
        self._callback(percent)


class SubProgress:
    """Map a child operation's ``0..100`` range onto a slice of its parent.

    A report of ``percent`` is forwarded as ``offset + percent * weight``, so a
    download weighted ``0.8`` followed by extraction at offset ``80`` with
    weight ``0.2`` covers the parent's full range.
    """

    def __init__(self, parent: Progress, offset: float, weight: float) -> None:
        self._parent = parent
        self._offset = offset
        self._weight = weight

    def report(self, percent: float) -> None:
        self._parent.report(self._offset + percent * self._weight)


class CancellationToken:
    """Thread-safe cancellation flag shared between a caller and a download."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation of the operations observing this token."""

        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Return ``True`` once :meth:`cancel` has been called."""

        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`DownloadCancelledError` when cancellation was requested."""

        if self._event.is_set():
            raise DownloadCancelledError("Failed to download runner package. Operation was cancelled.")


__all__ = ["CallbackProgress", "CancellationToken", "NullProgress", "Progress", "SubProgress"]
