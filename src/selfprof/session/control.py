# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Control channels that drive an attached runner.

A session is driven either through the profiler API loaded into the profiled
process (:class:`ApiControl`) or by writing service messages to the runner's
standard input (:class:`CommandControl`). The channel is chosen once at
attach time and never changes for the lifetime of the session.
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Final, Protocol, TypeVar

from selfprof.errors import ApiUnavailableError, InvalidStateError
from selfprof.process import ProfilerProcess

LOGGER = logging.getLogger(__name__)

API_ASSEMBLY: Final[str] = "JetBrains.Profiler.Api"
READY_FLAG: Final[int] = 0x1

_T = TypeVar("_T")


class ApiMode(str, Enum):
    """Enumerate how the control channel is chosen at attach time."""

    AUTO = "auto"
    FORCE = "force"
    FORBID = "forbid"


class ProfilerControl(Protocol):
    """Capabilities shared by both control channels."""

    @property
    def uses_api(self) -> bool: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def save_data(self, name: str | None) -> None: ...

    def drop_data(self) -> None: ...

    def detach(self) -> None: ...

    def is_ready(self) -> bool: ...


@dataclass(frozen=True, slots=True)
class ApiMethods:
    """Name the in-process API type and the methods a profiler kind needs.

    Attributes:
        type_name: Fully qualified API type (``JetBrains.Profiler.Api.MemoryProfiler``).
        save: Method taking a snapshot name.
        detach: Method detaching the profiler.
        get_features: Method returning the feature bit mask.
        start: Method starting data collection, when supported.
        stop: Method stopping data collection, when supported.
        drop: Method discarding collected data, when supported.
    """

    type_name: str
    save: str
    detach: str = "Detach"
    get_features: str = "GetFeatures"
    start: str | None = None
    stop: str | None = None
    drop: str | None = None


@dataclass(frozen=True, slots=True)
class ApiHandle:
    """Callables bound to the in-process profiler API."""

    get_features: Callable[[], int]
    detach: Callable[[], None]
    save_data: Callable[[str | None], None]
    start: Callable[[], None] | None = None
    stop: Callable[[], None] | None = None
    drop_data: Callable[[], None] | None = None


ApiBinder = Callable[[ApiMethods], ApiHandle | None]


def bind_clr_api(methods: ApiMethods) -> ApiHandle | None:
    """Bind ``methods`` through pythonnet when the API assembly can be loaded.

    Returns:
        ApiHandle | None: Bound callables, or ``None`` when the runtime, the
        assembly, the type, or one of the required methods is unavailable.
    """

    try:
        clr = importlib.import_module("clr")
        clr.AddReference(API_ASSEMBLY)
        namespace, _, type_name = methods.type_name.rpartition(".")
        profiler = getattr(importlib.import_module(namespace), type_name)
        return ApiHandle(
            get_features=lambda: int(getattr(profiler, methods.get_features)()),
            detach=getattr(profiler, methods.detach),
            save_data=getattr(profiler, methods.save),
            start=getattr(profiler, methods.start) if methods.start else None,
            stop=getattr(profiler, methods.stop) if methods.stop else None,
            drop_data=getattr(profiler, methods.drop) if methods.drop else None,
        )
    except Exception as exc:  # pragma: no cover - pythonnet raises CLR exception types
        LOGGER.info("Unable to bind %s from `%s`: %s", methods.type_name, API_ASSEMBLY, exc)
        return None


def select_api(mode: ApiMode, methods: ApiMethods, binder: ApiBinder) -> ApiHandle | None:
    """Bind the in-process API according to ``mode``.

    Args:
        mode: ``FORCE`` requires the API, ``FORBID`` never binds it, and
            ``AUTO`` binds it when available.
        methods: API type and method names for the profiler kind.
        binder: Callable performing the actual binding.

    Returns:
        ApiHandle | None: Bound API, or ``None`` to drive the runner with commands.

    Raises:
        ApiUnavailableError: If ``mode`` is ``FORCE`` and binding fails.
    """

    if mode is ApiMode.FORBID:
        return None
    handle = binder(methods)
    if handle is None and mode is ApiMode.FORCE:
        raise ApiUnavailableError(f"The profiler API `{methods.type_name}` is not available in this process")
    LOGGER.info("Controlling the runner through %s", "the profiler API" if handle else "service commands")
    return handle


class ApiControl:
    """Drive the session through the in-process profiler API."""

    uses_api = True

    def __init__(self, handle: ApiHandle) -> None:
        self._handle = handle

    def start(self) -> None:
        _require(self._handle.start, "start")()

    def stop(self) -> None:
        _require(self._handle.stop, "stop")()

    def save_data(self, name: str | None) -> None:
        self._handle.save_data(name)

    def drop_data(self) -> None:
        _require(self._handle.drop_data, "drop")()

    def detach(self) -> None:
        self._handle.detach()

    def is_ready(self) -> bool:
        return self._handle.get_features() & READY_FLAG == READY_FLAG


@dataclass(frozen=True, slots=True)
class ToolCommands:
    """Service command names understood by a runner on its standard input."""

    save: str
    detach: str
    start: str | None = None
    stop: str | None = None
    drop: str | None = None
    name_key: str = "name"


class CommandControl:
    """Drive the session by sending service messages to the runner."""

    uses_api = False

    def __init__(self, transport: ProfilerProcess, commands: ToolCommands) -> None:
        self._transport = transport
        self._commands = commands

    def start(self) -> None:
        self._transport.send(_require(self._commands.start, "start"))

    def stop(self) -> None:
        self._transport.send(_require(self._commands.stop, "stop"))

    def save_data(self, name: str | None) -> None:
        self._transport.send(self._commands.save, (self._commands.name_key, name))

    def drop_data(self) -> None:
        self._transport.send(_require(self._commands.drop, "drop"))

    def detach(self) -> None:
        self._transport.send(self._commands.detach)

    def is_ready(self) -> bool:
        return True


def _require(value: _T | None, operation: str) -> _T:
    if value is None:
        raise InvalidStateError(f"The {operation} operation is not supported by this profiler")
    return value


__all__ = [
    "API_ASSEMBLY",
    "READY_FLAG",
    "ApiBinder",
    "ApiControl",
    "ApiHandle",
    "ApiMethods",
    "ApiMode",
    "CommandControl",
    "ProfilerControl",
    "ToolCommands",
    "bind_clr_api",
    "select_api",
]
