"""Data models for cloudsize."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class FastListMode(str, Enum):
    """Policy for injecting rclone's --fast-list flag."""

    AUTO = "auto"  # Only for backends known to benefit (Google Drive)
    ON = "on"  # Always inject
    OFF = "off"  # Never inject, strip it from extra args


class CacheEntry(BaseModel):
    """Cached size of one top-level folder on a remote."""

    remote: str = Field(..., description="rclone remote name (without the trailing colon)")
    folder: str = Field(..., description="Top-level folder name")
    size_bytes: int = Field(..., ge=0, description="Total size in bytes")

    @property
    def key(self) -> tuple[str, str]:
        """Identity of the entry."""
        return (self.remote, self.folder)

    def to_line(self) -> str:
        """Render as a cache file line."""
        return f"{self.remote}|{self.folder}|{self.size_bytes}"


class ProgressEvent(BaseModel):
    """Live progress reported while rclone is listing objects."""

    listed_count: int = Field(0, ge=0, description="Objects listed so far")
    elapsed: str = Field("0.0s", description="Elapsed time as reported by rclone")

    @property
    def listed_display(self) -> str:
        """Listed count with thousands separators."""
        return f"{self.listed_count:,}"

    @property
    def status(self) -> str:
        """Single-line status text."""
        return f"Listed objects: {self.listed_display} | Elapsed time: {self.elapsed}"


class SizeSummary(BaseModel):
    """Final totals extracted from the rclone output."""

    total_line: Optional[str] = Field(None, description="Last 'Total size:' line seen")
    size_bytes: Optional[int] = Field(None, description="Byte total from the size line")
    size_human: Optional[str] = Field(None, description="rclone's own human-readable size")
    objects_line: Optional[str] = Field(None, description="Formatted 'Total objects:' line")
    elapsed: Optional[str] = Field(None, description="Last elapsed time reported by rclone")


class RunResult(BaseModel):
    """Outcome of a single `rclone size` invocation."""

    target: str = Field(..., description="remote:folder that was measured")
    command_display: str = Field(..., description="Shell-quoted command line")
    size_bytes: Optional[int] = Field(None, description="Parsed byte total, if any")
    size_human: Optional[str] = Field(None, description="rclone's human-readable size")
    total_time: str = Field("", description="Elapsed time display")
    objects_line: Optional[str] = Field(None, description="Formatted objects line")
    return_code: Optional[int] = Field(None, description="Subprocess exit code")
    success: bool = Field(False, description="Whether rclone exited cleanly")

    @property
    def has_size(self) -> bool:
        """Whether a usable byte total was parsed."""
        return self.success and self.size_bytes is not None


class HistoryEntry(BaseModel):
    """One run recorded in the Markdown history log."""

    timestamp: datetime = Field(default_factory=datetime.now)
    remote: str
    folder: str
    command: str
    body_lines: list[str] = Field(default_factory=list)

    @property
    def timestamp_display(self) -> str:
        """Timestamp like '2026-02-08 3:07 PM'."""
        hour = self.timestamp.hour % 12 or 12
        return f"{self.timestamp:%Y-%m-%d} {hour}:{self.timestamp:%M %p}"

    def header(self) -> str:
        """Markdown block opening, up to and including the code fence."""
        return (
            "\n---\n\n"
            f"## {self.timestamp_display}\n\n"
            f"- Remote: {self.remote}\n"
            f"- Folder: {self.folder}\n"
            f"- Command: `{self.command}`\n\n"
            "```\n"
        )

    @staticmethod
    def footer() -> str:
        """Markdown block closing."""
        return "```\n\n---\n"

    def render(self) -> str:
        """Full Markdown block."""
        body = "".join(f"{line}\n" for line in self.body_lines)
        return self.header() + body + self.footer()
