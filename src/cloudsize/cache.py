"""Persistent per-folder size cache for cloudsize."""

import logging
import os
import re
from pathlib import Path
from typing import Union

from cloudsize.models import CacheEntry

logger = logging.getLogger(__name__)

CACHE_HEADER = (
    "# Cache for cloudsize\n"
    "# Format: remote|folder|bytes\n"
    "# Safe to delete; it will be recreated.\n"
)

_BYTES_RE = re.compile(r"^[0-9]+$")
# Characters that cannot be stored in a remote or folder field
_RESERVED_CHARS = ("|", "\n", "\r")


def parse_cache_line(line: str) -> CacheEntry | None:
    """
    Parse one `remote|folder|bytes` line.

    Returns None for blank lines, comments and malformed lines.
    """
    if not line or line.lstrip().startswith("#"):
        return None

    fields = line.split("|", 2)
    if len(fields) < 3:
        return None

    remote, folder, size = fields
    if not remote or not folder or not _BYTES_RE.match(size):
        return None

    return CacheEntry(remote=remote, folder=folder, size_bytes=int(size))


def _valid_size(size_bytes: Union[int, str]) -> int | None:
    if isinstance(size_bytes, bool):
        return None
    if isinstance(size_bytes, int):
        return size_bytes if size_bytes >= 0 else None
    if isinstance(size_bytes, str) and _BYTES_RE.match(size_bytes):
        return int(size_bytes)
    return None


def _storable(name: str) -> bool:
    return bool(name) and not any(ch in name for ch in _RESERVED_CHARS)


class SizeCache:
    """
    Ordered (remote, folder) -> bytes store backed by a flat text file.

    Every mutation rewrites the whole file through a sibling temp file and
    os.replace, so an interrupted save leaves the previous file intact. The
    in-memory entries only change once the file has been written.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.entries: list[CacheEntry] = []

    def load(self) -> list[CacheEntry]:
        """Read the cache file, skipping malformed lines."""
        self.entries = []
        if not self.path.is_file():
            return self.entries

        skipped = 0
        for raw in self.path.read_bytes().splitlines():
            try:
                line = raw.decode("utf-8")
            except UnicodeDecodeError:
                skipped += 1
                continue
            entry = parse_cache_line(line)
            if entry is None:
                if line.strip() and not line.lstrip().startswith("#"):
                    skipped += 1
                continue
            self.entries.append(entry)

        if skipped:
            logger.debug("Skipped %d malformed line(s) in %s", skipped, self.path)
        logger.debug("Loaded %d cached size(s) from %s", len(self.entries), self.path)
        return self.entries

    def _index(self, remote: str, folder: str) -> int:
        for i, entry in enumerate(self.entries):
            if entry.remote == remote and entry.folder == folder:
                return i
        return -1

    def lookup(self, remote: str, folder: str) -> int | None:
        """Cached byte count for a folder, or None."""
        idx = self._index(remote, folder)
        if idx < 0:
            return None
        return self.entries[idx].size_bytes

    def entries_for(self, remote: str) -> list[CacheEntry]:
        """All entries for one remote, in stored order."""
        return [e for e in self.entries if e.remote == remote]

    def upsert(self, remote: str, folder: str, size_bytes: Union[int, str]) -> bool:
        """
        Insert or overwrite the size for a folder and persist.

        Args:
            remote: Remote name
            folder: Folder name
            size_bytes: Non-negative integer, or a string of digits

        Returns:
            False (and no change) if size_bytes is not a valid byte count, or
            if remote or folder cannot be stored in the file format

        Raises:
            OSError: if the file cannot be written; the cache is left unchanged
        """
        size = _valid_size(size_bytes)
        if size is None:
            logger.debug("Rejected size %r for %s:%s", size_bytes, remote, folder)
            return False
        if not _storable(remote) or not _storable(folder):
            logger.debug("Rejected unstorable key %r:%r", remote, folder)
            return False

        entry = CacheEntry(remote=remote, folder=folder, size_bytes=size)
        entries = list(self.entries)
        idx = self._index(remote, folder)
        if idx >= 0:
            entries[idx] = entry
        else:
            entries.append(entry)
        self.save(entries)
        return True

    def clear(self, remote: str) -> int:
        """Remove all entries for a remote. Returns the number removed."""
        kept = [e for e in self.entries if e.remote != remote]
        removed = len(self.entries) - len(kept)
        self.save(kept)
        return removed

    def clear_all(self) -> None:
        """Remove every entry."""
        self.save([])

    def save(self, entries: list[CacheEntry] | None = None) -> None:
        """
        Atomically rewrite the cache file.

        Args:
            entries: New contents; the current entries when omitted. They
                replace the in-memory entries only after a successful write.
        """
        if entries is None:
            entries = self.entries
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")

        content = CACHE_HEADER + "".join(f"{e.to_line()}\n" for e in entries)
        try:
            with open(tmp_path, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
            os.replace(tmp_path, self.path)
        finally:
            tmp_path.unlink(missing_ok=True)
        self.entries = list(entries)
        logger.debug("Saved %d cached size(s) to %s", len(entries), self.path)
