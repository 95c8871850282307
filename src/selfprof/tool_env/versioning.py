# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Semantic version parsing and ``major.minor`` pinned selection."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from functools import total_ordering
from typing import Final

from packaging.version import InvalidVersion, Version

_NUMERIC_PATTERN: Final[re.Pattern[str]] = re.compile(r"\d+(?:\.\d+){1,3}")


@total_ordering
@dataclass(frozen=True, slots=True, eq=False)
class SemanticVersion:
    """Represent a runner package version such as ``2025.1.3-rc1+b42``.

    Ordering compares the numeric release first. On a tie a version without a
    prerelease tag ranks above any prerelease, prerelease tags compare
    ordinally, and build metadata is the final ordinal tie-break.
    """

    release: tuple[int, ...]
    prerelease: str | None = None
    build: str | None = None
    text: str = field(default="", compare=False)

    @classmethod
    def parse(cls, value: str) -> SemanticVersion:
        """Parse ``value`` into a :class:`SemanticVersion`.

        Args:
            value: Version text, optionally carrying ``-prerelease`` and ``+build``.

        Returns:
            SemanticVersion: Parsed version retaining the original text.

        Raises:
            ValueError: If the numeric part is not a dotted version of 2-4 parts.
        """

        remainder = value.strip()
        build: str | None = None
        prerelease: str | None = None
        if "+" in remainder:
            remainder, build = remainder.rsplit("+", 1)
        if "-" in remainder:
            remainder, prerelease = remainder.rsplit("-", 1)
        if not _NUMERIC_PATTERN.fullmatch(remainder):
            raise ValueError(f"Invalid version {value!r}")
        try:
            release = Version(remainder).release
        except InvalidVersion as exc:
            raise ValueError(f"Invalid version {value!r}") from exc
        return cls(release=tuple(release), prerelease=prerelease or None, build=build or None, text=value)

    @classmethod
    def try_parse(cls, value: str | None) -> SemanticVersion | None:
        """Return the parsed version or ``None`` when ``value`` is not a version."""

        if not value:
            return None
        try:
            return cls.parse(value)
        except ValueError:
            return None

    @property
    def major_minor(self) -> tuple[int, int]:
        """Return the ``(major, minor)`` pair used for pin matching."""

        minor = self.release[1] if len(self.release) > 1 else 0
        return self.release[0], minor

    def _sort_key(self) -> tuple[tuple[int, ...], bool, str, str]:
        return (self.release, self.prerelease is None, self.prerelease or "", self.build or "")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._sort_key() == other._sort_key()

    def __lt__(self, other: SemanticVersion) -> bool:
        if not isinstance(other, SemanticVersion):
            return NotImplemented
        return self._sort_key() < other._sort_key()

    def __hash__(self) -> int:
        return hash(self._sort_key())

    def __str__(self) -> str:
        if self.text:
            return self.text
        rendered = ".".join(str(part) for part in self.release)
        if self.prerelease:
            rendered += f"-{self.prerelease}"
        if self.build:
            rendered += f"+{self.build}"
        return rendered


def select_latest(candidates: Iterable[str], pin: SemanticVersion) -> str | None:
    """Return the newest candidate whose ``major.minor`` equals ``pin``.

    Unparseable candidates are ignored. The original candidate text is
    returned so callers can map it back to a directory or registry entry.

    Args:
        candidates: Version strings (cache folder names or registry versions).
        pin: Required version; only its ``major.minor`` is significant.

    Returns:
        str | None: Matching candidate text, or ``None`` when nothing matches.
    """

    latest: SemanticVersion | None = None
    latest_text: str | None = None
    for candidate in candidates:
        parsed = SemanticVersion.try_parse(candidate)
        if parsed is None or parsed.major_minor != pin.major_minor:
            continue
        if latest is None or latest <= parsed:
            latest, latest_text = parsed, candidate
    return latest_text


__all__ = ["SemanticVersion", "select_latest"]
