# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Host platform, architecture, and libc detection."""

from __future__ import annotations

from .elf import ElfFormatError, ElfInfo, parse_elf_header, read_elf_file
from .probe import (
    Architecture,
    HostInfo,
    HostPlatform,
    LibC,
    classify_elf,
    detect_architecture,
    detect_host,
    detect_libc,
    detect_platform,
    is_windows,
    libc_from_interpreter,
    runtime_identifier,
)

__all__ = [
    "Architecture",
    "ElfFormatError",
    "ElfInfo",
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
    "parse_elf_header",
    "read_elf_file",
    "runtime_identifier",
]
