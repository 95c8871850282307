# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Host detection used to pick runner package identifiers and executable names.

The operating system comes straight from :data:`sys.platform`. On Linux the
architecture and the libc flavour are read from the ELF header of the running
interpreter (``/proc/self/exe``) instead of shelling out to ``ldd`` or
``uname``. Every probe is memoised for the lifetime of the process.
"""

from __future__ import annotations

import logging
import platform as _stdlib_platform
import sys
from dataclasses import dataclass
from enum import Enum
from functools import cache
from pathlib import Path, PurePosixPath
from typing import Final

from selfprof.errors import PlatformUnsupportedError

from .elf import ElfClass, ElfFormatError, ElfInfo, ElfMachine, ElfOsAbi, ElfType, read_elf_file

LOGGER = logging.getLogger(__name__)

SELF_EXECUTABLE: Final[Path] = Path("/proc/self/exe")

_MACHINE_ALIASES: Final[dict[str, str]] = {
    "amd64": "x64",
    "x86_64": "x64",
    "x64": "x64",
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
    "arm64": "arm64",
    "aarch64": "arm64",
    "armv7l": "arm",
    "armv8l": "arm",
    "arm": "arm",
}


class HostPlatform(str, Enum):
    """Enumerate the operating system families supported by the runners."""

    WINDOWS = "windows"
    LINUX = "linux"
    MACOS = "macos"


class Architecture(str, Enum):
    """Enumerate CPU architectures."""

    X86 = "x86"
    X64 = "x64"
    ARM = "arm"
    ARM64 = "arm64"


class LibC(str, Enum):
    """Enumerate Linux C runtime flavours."""

    GLIBC = "glibc"
    MUSL = "musl"


_ELF_ARCHITECTURES: Final[dict[tuple[int, int], Architecture]] = {
    (ElfClass.ELFCLASS32, ElfMachine.EM_386): Architecture.X86,
    (ElfClass.ELFCLASS32, ElfMachine.EM_ARM): Architecture.ARM,
    (ElfClass.ELFCLASS64, ElfMachine.EM_X86_64): Architecture.X64,
    (ElfClass.ELFCLASS64, ElfMachine.EM_AARCH64): Architecture.ARM64,
}

# Architectures for which runner packages are published, per OS family.
_PUBLISHED_ARCHITECTURES: Final[dict[HostPlatform, frozenset[Architecture]]] = {
    HostPlatform.WINDOWS: frozenset({Architecture.X86, Architecture.X64, Architecture.ARM64}),
    HostPlatform.MACOS: frozenset({Architecture.X64, Architecture.ARM64}),
    HostPlatform.LINUX: frozenset({Architecture.X64, Architecture.ARM, Architecture.ARM64}),
}


@dataclass(frozen=True, slots=True)
class HostInfo:
    """Snapshot of the detected host characteristics."""

    platform: HostPlatform
    architecture: Architecture
    libc: LibC | None

    @property
    def runtime_identifier(self) -> str:
        """Return the runtime identifier used to qualify runner packages."""

        return runtime_identifier(self.platform, self.architecture, self.libc)


def classify_elf(info: ElfInfo) -> tuple[Architecture, LibC]:
    """Return the architecture and libc flavour described by ``info``.

    Args:
        info: Header fields decoded from the running executable.

    Returns:
        tuple[Architecture, LibC]: Detected architecture and C runtime.

    Raises:
        PlatformUnsupportedError: If the header does not describe a supported
            Linux executable.
    """

    if info.os_abi not in (ElfOsAbi.ELFOSABI_NONE, ElfOsAbi.ELFOSABI_LINUX):
        raise PlatformUnsupportedError(f"Unsupported ELF OS ABI {info.os_abi}")
    if info.type not in (ElfType.ET_EXEC, ElfType.ET_DYN):
        raise PlatformUnsupportedError(f"Unsupported ELF type {info.type}")

    architecture = _ELF_ARCHITECTURES.get((info.elf_class, info.machine))
    if architecture is None:
        raise PlatformUnsupportedError(
            f"Unsupported ELF machine {info.machine} for class {info.elf_class}",
        )

    if info.interpreter is None:
        raise PlatformUnsupportedError("Executable has no program interpreter")
    return architecture, libc_from_interpreter(info.interpreter)


def libc_from_interpreter(interpreter: str) -> LibC:
    """Classify the dynamic linker path ``interpreter`` as glibc or musl.

    ``ld-linux-*`` names glibc and ``ld-musl-*`` names musl. Generic loader
    names such as ``ld.so`` fall back to the multiarch triple of the parent
    directory (``x86_64-linux-gnu`` or ``x86_64-linux-musl``).

    Args:
        interpreter: Absolute path stored in the ``PT_INTERP`` segment.

    Returns:
        LibC: Detected C runtime flavour.

    Raises:
        PlatformUnsupportedError: If the loader name is not recognised.
    """

    path = PurePosixPath(interpreter)
    name = path.name
    if name.startswith(("ld-linux-", "ld-linux.")):
        return LibC.GLIBC
    if name.startswith(("ld-musl-", "ld-musl.")):
        return LibC.MUSL
    if name.startswith(("ld-", "ld.")):
        triple = path.parent.name
        if "-linux-gnu" in triple:
            return LibC.GLIBC
        if "-linux-musl" in triple:
            return LibC.MUSL
    raise PlatformUnsupportedError(f"Unknown program interpreter {interpreter}")


@cache
def detect_platform() -> HostPlatform:
    """Return the operating system family of the running interpreter."""

    if sys.platform.startswith(("win32", "cygwin")):
        return HostPlatform.WINDOWS
    if sys.platform == "darwin":
        return HostPlatform.MACOS
    if sys.platform.startswith("linux"):
        return HostPlatform.LINUX
    raise PlatformUnsupportedError(f"Unsupported platform {sys.platform}")


@cache
def _linux_self_classification() -> tuple[Architecture, LibC]:
    try:
        info = read_elf_file(SELF_EXECUTABLE)
    except (OSError, ElfFormatError) as exc:
        raise PlatformUnsupportedError(f"Unable to read {SELF_EXECUTABLE}: {exc}") from exc
    LOGGER.debug("ELF header of %s: %s", SELF_EXECUTABLE, info)
    return classify_elf(info)


@cache
def detect_architecture() -> Architecture:
    """Return the CPU architecture the interpreter was built for."""

    if detect_platform() is HostPlatform.LINUX:
        return _linux_self_classification()[0]
    machine = _stdlib_platform.machine().lower()
    alias = _MACHINE_ALIASES.get(machine)
    if alias is None:
        raise PlatformUnsupportedError(f"Unsupported architecture {machine!r}")
    return Architecture(alias)


@cache
def detect_libc() -> LibC | None:
    """Return the C runtime flavour on Linux, ``None`` on other platforms."""

    if detect_platform() is not HostPlatform.LINUX:
        return None
    return _linux_self_classification()[1]


@cache
def detect_host() -> HostInfo:
    """Return the memoised :class:`HostInfo` for the running process."""

    host = HostInfo(platform=detect_platform(), architecture=detect_architecture(), libc=detect_libc())
    LOGGER.debug("Detected host %s", host)
    return host


def runtime_identifier(
    platform: HostPlatform,
    architecture: Architecture,
    libc: LibC | None = None,
) -> str:
    """Return the runtime identifier (``linux-musl-x64`` etc.) for a host triple.

    Raises:
        PlatformUnsupportedError: If no runner is published for the combination.
    """

    published = _PUBLISHED_ARCHITECTURES[platform]
    if architecture in published:
        if platform is HostPlatform.WINDOWS:
            return f"win-{architecture.value}"
        if platform is HostPlatform.MACOS:
            return f"osx-{architecture.value}"
        if libc is LibC.MUSL:
            return f"linux-musl-{architecture.value}"
        if libc is LibC.GLIBC:
            return f"linux-{architecture.value}"
        raise PlatformUnsupportedError("Linux runtime identifier requires a libc flavour")
    raise PlatformUnsupportedError(f"Unsupported architecture {architecture.value} on {platform.value}")


def is_windows() -> bool:
    """Return ``True`` when running on Windows."""

    return detect_platform() is HostPlatform.WINDOWS


__all__ = [
    "Architecture",
    "HostInfo",
    "HostPlatform",
    "LibC",
    "classify_elf",
    "detect_architecture",
    "detect_host",
    "detect_libc",
    "detect_platform",
    "is_windows",
    "libc_from_interpreter",
    "runtime_identifier",
]
