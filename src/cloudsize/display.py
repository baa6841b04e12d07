"""Rich terminal display for cloudsize."""

from typing import Optional, Protocol

from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from cloudsize.models import CacheEntry, ProgressEvent, RunResult
from cloudsize.parser import format_integer_with_commas

console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)

STATUS_WIDTH = 96
SIZE_UNITS = ["B", "KB", "MB", "GB", "TB", "PB"]


class LineSink(Protocol):
    def write_line(self, text: str) -> None: ...


def _mirror(history: Optional[LineSink], text: str) -> None:
    if history is not None:
        history.write_line(text)


def show_info(message: str, history: Optional[LineSink] = None) -> None:
    """Informational message on stderr."""
    text = f"ℹ  {message}"
    err_console.print(text, markup=False)
    _mirror(history, text)


def show_ok(message: str, history: Optional[LineSink] = None) -> None:
    """Success message on stderr."""
    text = f"✓ {message}"
    err_console.print(Text.assemble(("✓", "green"), f" {message}"))
    _mirror(history, text)


def show_warning(message: str, history: Optional[LineSink] = None) -> None:
    """Warning on stderr."""
    text = f"⚠  WARNING: {message}"
    err_console.print(Text(text, style="yellow"))
    _mirror(history, text)


def show_error(message: str, history: Optional[LineSink] = None) -> None:
    """Error on stderr."""
    text = f"✗ ERROR: {message}"
    err_console.print(Text(text, style="red"))
    _mirror(history, text)


def format_size(size_bytes: int) -> str:
    """Format bytes with decimal units and two decimals, e.g. '1.29 TB'."""
    size = float(size_bytes)
    idx = 0
    while size >= 1000 and idx < len(SIZE_UNITS) - 1:
        size /= 1000
        idx += 1
    return f"{size:.2f} {SIZE_UNITS[idx]}"


def render_status(event: ProgressEvent) -> Text:
    """Styled single-line status for a progress event."""
    text = Text()
    text.append(f"Listed objects: {event.listed_display}", style="cyan")
    text.append(" | ")
    text.append("Elapsed time:", style="cyan")
    text.append(f" {event.elapsed}")
    text.pad_right(max(0, STATUS_WIDTH - len(text)))
    return text


class StatusLine:
    """
    A single status line redrawn in place while rclone runs.

    Use as a context manager; update() replaces the line.
    """

    def __init__(self, out: Optional[Console] = None) -> None:
        self.console = out or console
        self._live = Live(
            Text(""),
            console=self.console,
            auto_refresh=False,
            transient=False,
        )

    def __enter__(self) -> "StatusLine":
        self._live.start()
        return self

    def __exit__(self, *exc) -> None:
        self._live.stop()

    def update(self, event: ProgressEvent) -> None:
        """Redraw the line for a new event."""
        self._live.update(render_status(event), refresh=True)


def show_run_header(target: str, command_display: str, history: Optional[LineSink] = None) -> None:
    """Print what is about to run."""
    console.print()
    console.print(
        "[bold blue]Running rclone to get the total size of all files "
        "within the selected cloud drive folder[/bold blue]"
    )
    _mirror(history, "Running rclone to get the total size of all files within the selected cloud drive folder")
    console.print(Text.assemble(("Sizing:", "bold cyan"), f" {target}"))
    _mirror(history, f"Sizing: {target}")
    console.print(Text.assemble(("Command:", "bold cyan"), f" {command_display}"))
    console.print()
    _mirror(history, f"Command: {command_display}")
    _mirror(history, "")


def show_run_summary(result: RunResult, history: Optional[LineSink] = None) -> None:
    """Print the totals block after a successful run."""
    console.print()
    if result.size_bytes is not None:
        line = f"Total size: {format_size(result.size_bytes)} ({format_integer_with_commas(result.size_bytes)} bytes)"
        console.print(Text(line, style="bold"))
        _mirror(history, line)
        if result.size_human:
            line = f"Total size reported by rclone: {result.size_human}"
            console.print(line, markup=False)
            _mirror(history, line)
        if result.objects_line:
            console.print(result.objects_line, markup=False)
            _mirror(history, result.objects_line)
    else:
        show_warning("Total size not found in output.", history)

    line = f"Total time: {result.total_time}"
    console.print(line, markup=False)
    _mirror(history, line)
    console.print()


def show_cache_table(entries: list[CacheEntry], title: str = "Cached Folder Sizes") -> None:
    """Display cached sizes."""
    if not entries:
        console.print("[yellow]No cached sizes.[/yellow]")
        return

    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Remote")
    table.add_column("Folder")
    table.add_column("Size", justify="right")
    table.add_column("Bytes", justify="right")

    for entry in sorted(entries, key=lambda e: (e.remote, -e.size_bytes)):
        table.add_row(
            entry.remote,
            entry.folder,
            format_size(entry.size_bytes),
            format_integer_with_commas(entry.size_bytes),
        )

    console.print(table)
    console.print(
        f"[bold]Total: {format_size(sum(e.size_bytes for e in entries))}[/bold]"
    )


def clear_screen() -> None:
    """Clear the terminal."""
    console.clear()


def pause(message: str = "Press Enter to continue...") -> None:
    """Pause for user to read output."""
    console.input(f"[dim]{message}[/dim]")
