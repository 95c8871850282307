# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Minimal ELF header reader used to identify the running interpreter binary.

Only the fields required for host detection are decoded: the identification
bytes, ``e_type``/``e_machine``/``e_flags`` and the ``PT_INTERP`` program
header that names the dynamic linker. The parser works on any bytes-like
buffer, including a read-only :class:`mmap.mmap`, and never touches the
filesystem itself.
"""

from __future__ import annotations

import mmap
import struct
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Final

ELF_MAGIC: Final[bytes] = b"\x7fELF"
EV_CURRENT: Final[int] = 1
PT_INTERP: Final[int] = 3

_EI_CLASS: Final[int] = 4
_EI_DATA: Final[int] = 5
_EI_VERSION: Final[int] = 6
_EI_OSABI: Final[int] = 7
_EI_ABIVERSION: Final[int] = 8
_EI_NIDENT: Final[int] = 16

# e_ident is consumed separately; these cover e_type through e_shstrndx.
_EHDR32_TAIL: Final[str] = "HHIIIIIHHHHHH"
_EHDR64_TAIL: Final[str] = "HHIQQQIHHHHHH"
_PHDR32: Final[str] = "IIIIIIII"
_PHDR64: Final[str] = "IIQQQQQQ"


class ElfFormatError(ValueError):
    """Raised when a buffer does not contain a well-formed ELF header."""


class ElfClass(IntEnum):
    """Enumerate ELF file classes (``e_ident[EI_CLASS]``)."""

    ELFCLASS32 = 1
    ELFCLASS64 = 2


class ElfData(IntEnum):
    """Enumerate ELF data encodings (``e_ident[EI_DATA]``)."""

    ELFDATA2LSB = 1
    ELFDATA2MSB = 2


class ElfOsAbi(IntEnum):
    """Enumerate the OS ABI identifiers accepted for Linux executables."""

    ELFOSABI_NONE = 0
    ELFOSABI_LINUX = 3


class ElfType(IntEnum):
    """Enumerate the object file types relevant for executables."""

    ET_EXEC = 2
    ET_DYN = 3


class ElfMachine(IntEnum):
    """Enumerate the machine identifiers understood by the host probe."""

    EM_386 = 3
    EM_ARM = 40
    EM_X86_64 = 62
    EM_AARCH64 = 183


@dataclass(frozen=True, slots=True)
class ElfInfo:
    """Describe the identifying fields decoded from an ELF header.

    Attributes:
        elf_class: Raw ``EI_CLASS`` value.
        data: Raw ``EI_DATA`` value.
        os_abi: Raw ``EI_OSABI`` value.
        os_abi_version: Raw ``EI_ABIVERSION`` value.
        type: Raw ``e_type`` value.
        machine: Raw ``e_machine`` value.
        flags: Raw ``e_flags`` value.
        interpreter: Program interpreter path from ``PT_INTERP``, if present.
    """

    elf_class: int
    data: int
    os_abi: int
    os_abi_version: int
    type: int
    machine: int
    flags: int
    interpreter: str | None


def parse_elf_header(buffer: bytes | bytearray | memoryview | mmap.mmap) -> ElfInfo:
    """Decode the identifying fields of the ELF image stored in ``buffer``.

    Args:
        buffer: Bytes-like view over the beginning (or the whole) of an ELF file.

    Returns:
        ElfInfo: Decoded header fields and interpreter path.

    Raises:
        ElfFormatError: If the buffer is truncated or inconsistent.
    """

    size = len(buffer)
    if size < _EI_NIDENT:
        raise ElfFormatError("Too short ELF identification")
    ident = bytes(buffer[:_EI_NIDENT])
    if ident[:4] != ELF_MAGIC:
        raise ElfFormatError("Invalid ELF magics")
    if ident[_EI_VERSION] != EV_CURRENT:
        raise ElfFormatError("Inconsistent ELF version")

    data = ident[_EI_DATA]
    if data == ElfData.ELFDATA2LSB:
        order = "<"
    elif data == ElfData.ELFDATA2MSB:
        order = ">"
    else:
        raise ElfFormatError("Inconsistent ELF data")

    elf_class = ident[_EI_CLASS]
    if elf_class == ElfClass.ELFCLASS32:
        header_format, phdr_format, label = order + _EHDR32_TAIL, order + _PHDR32, "ELF32"
    elif elf_class == ElfClass.ELFCLASS64:
        header_format, phdr_format, label = order + _EHDR64_TAIL, order + _PHDR64, "ELF64"
    else:
        raise ElfFormatError("Unknown ELF class")

    if _EI_NIDENT + struct.calcsize(header_format) > size:
        raise ElfFormatError(f"Too short {label} header")
    (
        e_type,
        e_machine,
        e_version,
        _e_entry,
        e_phoff,
        _e_shoff,
        e_flags,
        _e_ehsize,
        e_phentsize,
        e_phnum,
        _e_shentsize,
        _e_shnum,
        _e_shstrndx,
    ) = struct.unpack_from(header_format, buffer, _EI_NIDENT)

    if e_version != EV_CURRENT:
        raise ElfFormatError(f"Invalid version of {label} program header")
    phdr_size = struct.calcsize(phdr_format)
    if e_phentsize != phdr_size:
        raise ElfFormatError(f"Invalid size of {label} program header")
    if e_phoff + e_phnum * phdr_size > size:
        raise ElfFormatError(f"Too short {label} program header table")

    interpreter = _find_interpreter(
        buffer,
        phdr_format=phdr_format,
        table_offset=e_phoff,
        count=e_phnum,
        is_64=elf_class == ElfClass.ELFCLASS64,
        label=label,
    )
    return ElfInfo(
        elf_class=elf_class,
        data=data,
        os_abi=ident[_EI_OSABI],
        os_abi_version=ident[_EI_ABIVERSION],
        type=e_type,
        machine=e_machine,
        flags=e_flags,
        interpreter=interpreter,
    )


def read_elf_file(path: Path) -> ElfInfo:
    """Memory-map ``path`` read-only and decode its ELF header.

    Args:
        path: Executable image to inspect (typically ``/proc/self/exe``).

    Returns:
        ElfInfo: Decoded header fields.
    """

    with path.open("rb") as handle, mmap.mmap(handle.fileno(), 0, access=mmap.ACCESS_READ) as mapped:
        return parse_elf_header(mapped)


def _find_interpreter(
    buffer: bytes | bytearray | memoryview | mmap.mmap,
    *,
    phdr_format: str,
    table_offset: int,
    count: int,
    is_64: bool,
    label: str,
) -> str | None:
    phdr_size = struct.calcsize(phdr_format)
    size = len(buffer)
    for index in range(count):
        fields = struct.unpack_from(phdr_format, buffer, table_offset + index * phdr_size)
        if fields[0] != PT_INTERP:
            continue
        # ELF64 puts p_flags second; ELF32 puts it after p_memsz.
        offset, filesz = (fields[2], fields[5]) if is_64 else (fields[1], fields[4])
        if offset + filesz > size:
            raise ElfFormatError(f"Too short {label} interpreter section")
        raw = bytes(buffer[offset : offset + filesz])
        if not raw or raw.find(b"\0") != filesz - 1:
            raise ElfFormatError(f"Invalid size of {label} interpreter section")
        return raw[:-1].decode("latin-1")
    return None


__all__ = [
    "ElfClass",
    "ElfData",
    "ElfFormatError",
    "ElfInfo",
    "ElfMachine",
    "ElfOsAbi",
    "ElfType",
    "parse_elf_header",
    "read_elf_file",
]
