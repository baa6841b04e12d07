"""Markdown history log of size runs, newest entry first."""

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, TextIO

from cloudsize.models import HistoryEntry
from cloudsize.parser import strip_ansi

logger = logging.getLogger(__name__)


class HistoryWriter:
    """
    Records a colorless transcript of each run.

    Lines go to a scratch file next to the history file while a run is in
    progress. end_entry() prepends the scratch content to the history file via
    a temp file and os.replace. Any failure disables the writer for the current
    entry and is reported once through the warn callback.
    """

    def __init__(
        self,
        path: Path,
        warn: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.path = Path(path)
        self.warn = warn
        self.entry: Optional[HistoryEntry] = None
        self._scratch: Optional[TextIO] = None
        self._scratch_path: Optional[Path] = None
        self._warned = False

    @property
    def active(self) -> bool:
        """Whether lines are currently being recorded."""
        return self._scratch is not None

    def _disable(self, error: OSError) -> None:
        logger.debug("History disabled: %s", error)
        self._close_scratch()
        if not self._warned:
            self._warned = True
            message = f"Unable to write history log: {self.path}"
            if self.warn:
                self.warn(message)
            else:
                logger.warning(message)

    def _close_scratch(self) -> None:
        if self._scratch is not None:
            try:
                self._scratch.close()
            except OSError as e:
                logger.debug("Closing history scratch failed: %s", e)
        self._scratch = None
        if self._scratch_path is not None:
            self._scratch_path.unlink(missing_ok=True)
        self._scratch_path = None

    def start_entry(self, remote: str, folder: str, command_display: str) -> bool:
        """
        Open a new entry and write its header.

        Returns:
            True if the entry is being recorded
        """
        if self.active:
            self.end_entry()

        self.entry = HistoryEntry(remote=remote, folder=folder, command=command_display)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, name = tempfile.mkstemp(
                prefix=".cloudsize-history.", suffix=".md", dir=self.path.parent
            )
            self._scratch_path = Path(name)
            self._scratch = os.fdopen(fd, "w", encoding="utf-8", newline="\n")
            self._scratch.write(self.entry.header())
            self._scratch.flush()
        except OSError as e:
            self._disable(e)
            return False
        return True

    def write_line(self, text: str) -> None:
        """Append a line, without carriage returns or ANSI codes."""
        if self._scratch is None or self.entry is None:
            return
        line = strip_ansi(text.replace("\r", ""))
        try:
            self._scratch.write(f"{line}\n")
        except OSError as e:
            self._disable(e)
            return
        self.entry.body_lines.append(line)

    def end_entry(self) -> bool:
        """
        Close the entry and prepend it to the history file.

        Returns:
            True if the history file was updated
        """
        if self._scratch is None or self._scratch_path is None:
            self._close_scratch()
            self.entry = None
            return False

        updated = False
        tmp_out: Optional[Path] = None
        try:
            self._scratch.write(HistoryEntry.footer())
            self._scratch.close()
            # Existing content is copied as raw bytes, whatever its encoding
            entry_bytes = self._scratch_path.read_bytes()
            existing = self.path.read_bytes() if self.path.is_file() else b""

            fd, name = tempfile.mkstemp(
                prefix=".cloudsize-history-out.", suffix=".md", dir=self.path.parent
            )
            tmp_out = Path(name)
            with os.fdopen(fd, "wb") as out:
                out.write(entry_bytes + existing)
            os.replace(tmp_out, self.path)
            tmp_out = None
            updated = True
        except OSError as e:
            logger.warning("Could not update history log %s: %s", self.path, e)
        finally:
            if tmp_out is not None:
                tmp_out.unlink(missing_ok=True)
            self._close_scratch()
            self.entry = None
        return updated

    @contextmanager
    def recording(self, remote: str, folder: str, command_display: str) -> Iterator["HistoryWriter"]:
        """Context manager that always finalizes the entry."""
        self.start_entry(remote, folder, command_display)
        try:
            yield self
        finally:
            self.end_entry()
