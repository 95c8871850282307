# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Bookkeeping of snapshot files announced by a runner, and zip packaging."""

from __future__ import annotations

import glob
import logging
import re
import threading
import zipfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

from selfprof.process import ServiceMessage
from selfprof.session import SNAPSHOT_SAVED

LOGGER = logging.getLogger(__name__)

ARCHIVE_NAME_ATTEMPTS: Final[int] = 10
_FILENAME_PATTERN: Final[re.Pattern[str]] = re.compile(r'"filename"\s*:\s*"(.*)"')
_ESCAPE_PATTERN: Final[re.Pattern[str]] = re.compile(r"\\(.)")
_ESCAPES: Final[dict[str, str]] = {"n": "\n", "r": "\r", "t": "\t"}


def snapshot_path(message: ServiceMessage) -> Path | None:
    """Return the ``filename`` carried by a ``snapshot-saved`` message."""

    if message.command != SNAPSHOT_SAVED:
        return None
    match = _FILENAME_PATTERN.search(message.arguments)
    if match is None:
        return None
    return Path(_ESCAPE_PATTERN.sub(lambda escape: _ESCAPES.get(escape.group(1), escape.group(1)), match.group(1)))


def snapshot_files(index_file: Path) -> list[Path]:
    """Return ``index_file`` followed by its ``<index-name>.*`` sibling files."""

    siblings = sorted(index_file.parent.glob(f"{glob.escape(index_file.name)}.*"))
    files = [index_file] if index_file.is_file() else []
    return files + [sibling for sibling in siblings if sibling.is_file()]


class CollectedSnapshotIndex:
    """Append-only record of index files reported by ``snapshot-saved``.

    :meth:`process` is installed as the transport's message processor, so
    entries appear in the order the runner announced them. Archiving records
    how many entries were packed and, when sources are deleted, hides those
    entries from the listings without removing them.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[Path] = []
        self._deleted: set[Path] = set()
        self._packed_count = 0

    def process(self, message: ServiceMessage) -> None:
        path = snapshot_path(message)
        if path is None:
            return
        with self._lock:
            self._entries.append(path)
        LOGGER.debug("Collected snapshot index %s", path)

    @property
    def last(self) -> Path | None:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def entries(self) -> tuple[Path, ...]:
        """Return every recorded entry, including packed and deleted ones."""

        with self._lock:
            return tuple(self._entries)

    def index_files(self) -> list[Path]:
        """Return recorded index files that were not deleted by archiving."""

        with self._lock:
            return [entry for entry in self._entries if entry not in self._deleted]

    def snapshot_files(self) -> list[Path]:
        """Return every file belonging to the listed index files."""

        return [path for index_file in self.index_files() for path in snapshot_files(index_file)]

    def archive(self, delete_source: bool) -> Path | None:
        """Pack the files of entries not yet archived into one zip.

        Args:
            delete_source: Delete the packed files and hide their entries.

        Returns:
            Path | None: The created archive, or ``None`` when nothing new was
            collected since the previous archive.
        """

        with self._lock:
            pending = self._entries[self._packed_count :]
            if not pending:
                return None
            first = pending[0]
            target = _unique_archive_path(first.parent, first.stem)
            packed: list[Path] = []
            with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for index_file in pending:
                    for path in snapshot_files(index_file):
                        archive.write(path, arcname=path.name)
                        packed.append(path)
            LOGGER.info("Packed %d snapshot files into %s", len(packed), target)

            if delete_source:
                for path in packed:
                    try:
                        path.unlink(missing_ok=True)
                    except OSError as exc:
                        LOGGER.warning("Unable to delete packed snapshot file %s: %s", path, exc)
                self._deleted.update(pending)
            self._packed_count = len(self._entries)
            return target


def _unique_archive_path(directory: Path, stem: str) -> Path:
    for _ in range(ARCHIVE_NAME_ATTEMPTS):
        stamp = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S.%fZ")
        candidate = directory / f"{stem}-{stamp}.zip"
        if not candidate.exists():
            return candidate
    raise FileExistsError(f"Unable to create the archive file in {directory}")


__all__ = ["CollectedSnapshotIndex", "snapshot_files", "snapshot_path"]
