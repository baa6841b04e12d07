"""Parsing of live `rclone size --progress` output."""

import re
from typing import Callable, Optional

from cloudsize.models import ProgressEvent, SizeSummary

# =============================================================================
# Patterns
# =============================================================================

ANSI_RE = re.compile(r"\x1B\[[0-9;?]*[A-Za-z]")
LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

LISTED_RE = re.compile(r"Listed\s+([0-9][0-9,]*)")
ELAPSED_LABEL = "Elapsed time:"
TRANSFERRED_LABEL = "Transferred:"
TOTAL_SIZE_LABEL = "Total size:"
TOTAL_OBJECTS_LABEL = "Total objects:"

SIZE_BYTES_RE = re.compile(r"\(([0-9]+)\s+Bytes?\)")
SIZE_HUMAN_RE = re.compile(r"^Total size:\s*([^()]+)")
OBJECTS_COUNT_RE = re.compile(r"\(([0-9]+)\)")
OBJECTS_HUMAN_RE = re.compile(r"^Total objects:\s*([^()]*?)\s*\([0-9]+\)")
OBJECTS_PLAIN_RE = re.compile(r"^Total objects:\s*([0-9]+)")


# =============================================================================
# Helpers
# =============================================================================


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences."""
    return ANSI_RE.sub("", text)


def format_integer_with_commas(value: str | int) -> str:
    """Format an integer (or the digits of a string) with thousands separators."""
    digits = "".join(ch for ch in str(value) if ch.isdigit())
    if not digits:
        return ""
    return f"{int(digits):,}"


def extract_elapsed(line: str) -> str | None:
    """Elapsed time text following 'Elapsed time:', up to 'Transferred:'."""
    idx = line.find(ELAPSED_LABEL)
    if idx < 0:
        return None
    value = line[idx + len(ELAPSED_LABEL):]
    value = value.split(TRANSFERRED_LABEL, 1)[0].strip()
    return value or None


def extract_size_bytes(total_line: str) -> int | None:
    """Byte count from a line like 'Total size: 1.17 TiB (1286543219876 Byte)'."""
    match = SIZE_BYTES_RE.search(total_line)
    return int(match.group(1)) if match else None


def extract_size_human(total_line: str) -> str | None:
    """Human-readable size between 'Total size:' and the opening parenthesis."""
    match = SIZE_HUMAN_RE.match(total_line)
    if not match:
        return None
    human = match.group(1).strip()
    return human or None


def format_objects_line(line: str) -> str:
    """
    Normalize a 'Total objects:' line.

    'Total objects: 45,231 (45231)' becomes 'Total objects: 45,231 (45,231)'.
    Lines in an unknown shape are returned unchanged.
    """
    match = OBJECTS_COUNT_RE.search(line)
    if match:
        count = format_integer_with_commas(match.group(1))
        human_match = OBJECTS_HUMAN_RE.match(line)
        human = human_match.group(1).strip() if human_match else ""
        if human:
            return f"{TOTAL_OBJECTS_LABEL} {human} ({count})"
        return f"{TOTAL_OBJECTS_LABEL} {count}"

    match = OBJECTS_PLAIN_RE.match(line)
    if match:
        return f"{TOTAL_OBJECTS_LABEL} {format_integer_with_commas(match.group(1))}"

    return line


# =============================================================================
# Stream parser
# =============================================================================


class OutputParser:
    """
    Line classifier for the combined stdout/stderr of `rclone size`.

    rclone redraws its progress line with carriage returns, so `\\r` is a line
    terminator here just like `\\n`. Repeated summary lines follow a
    last-match-wins rule.
    """

    def __init__(self) -> None:
        self.listed_count = 0
        self.elapsed = "0.0s"
        self.elapsed_seen: Optional[str] = None
        self.total_line: Optional[str] = None
        self.objects_line: Optional[str] = None
        self._last_status: Optional[str] = None
        self._buffer = ""
        self._pending_cr = False

    # -------------------------------------------------------------------------
    # Tokenizing
    # -------------------------------------------------------------------------

    def feed(self, chunk: str) -> list[str]:
        """Add raw text; return the lines it completes."""
        if self._pending_cr and chunk.startswith("\n"):
            chunk = chunk[1:]
        self._pending_cr = False
        if not chunk:
            return []

        parts = LINE_BREAK_RE.split(self._buffer + chunk)
        self._buffer = parts.pop()
        if chunk.endswith("\r"):
            self._pending_cr = True
        return parts

    def flush(self) -> list[str]:
        """Return the trailing partial line, if any."""
        rest, self._buffer = self._buffer, ""
        self._pending_cr = False
        return [rest] if rest else []

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    @property
    def progress(self) -> ProgressEvent:
        """Current progress state."""
        return ProgressEvent(listed_count=self.listed_count, elapsed=self.elapsed)

    def process_line(self, line: str) -> ProgressEvent | None:
        """
        Classify one line and update state.

        Returns a ProgressEvent only when the rendered status changed.
        """
        line = strip_ansi(line)

        match = LISTED_RE.search(line)
        if match:
            self.listed_count = int(match.group(1).replace(",", ""))

        if ELAPSED_LABEL in line:
            elapsed = extract_elapsed(line)
            if elapsed:
                self.elapsed = elapsed
                self.elapsed_seen = elapsed

        if line.startswith(TOTAL_SIZE_LABEL):
            self.total_line = line
        if line.startswith(TOTAL_OBJECTS_LABEL):
            self.objects_line = line

        event = self.progress
        if event.status == self._last_status:
            return None
        self._last_status = event.status
        return event

    def consume(
        self,
        chunk: str,
        on_line: Callable[[str], None] | None = None,
    ) -> list[ProgressEvent]:
        """
        Feed a chunk and process every line it completes.

        Args:
            chunk: Raw subprocess output
            on_line: Optional callback(line) called for each line, ANSI stripped

        Returns:
            ProgressEvents for lines that changed the status
        """
        return self._process(self.feed(chunk), on_line)

    def close(self, on_line: Callable[[str], None] | None = None) -> list[ProgressEvent]:
        """Process the trailing partial line at end of stream."""
        return self._process(self.flush(), on_line)

    def _process(
        self,
        lines: list[str],
        on_line: Callable[[str], None] | None,
    ) -> list[ProgressEvent]:
        events = []
        for line in lines:
            if on_line:
                on_line(strip_ansi(line))
            event = self.process_line(line)
            if event:
                events.append(event)
        return events

    # -------------------------------------------------------------------------
    # Final extraction
    # -------------------------------------------------------------------------

    def finish(self) -> SizeSummary:
        """Extract the final totals from the last matching summary lines."""
        summary = SizeSummary(elapsed=self.elapsed_seen)
        if self.total_line:
            summary.total_line = self.total_line
            summary.size_bytes = extract_size_bytes(self.total_line)
            summary.size_human = extract_size_human(self.total_line)
        if self.objects_line:
            summary.objects_line = format_objects_line(self.objects_line)
        return summary
