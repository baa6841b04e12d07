"""Interactive remote/folder menus."""

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Protocol

from rich.console import Console

from cloudsize import display
from cloudsize.cache import SizeCache
from cloudsize.config import Settings
from cloudsize.display import format_size, show_ok, show_warning
from cloudsize.history import HistoryWriter
from cloudsize.models import RunResult
from cloudsize.parser import strip_ansi
from cloudsize.rclone import list_remotes, list_top_level_folders
from cloudsize.runner import SizeRunner

logger = logging.getLogger(__name__)

ACTION_RETURN = "Return to remote list"
ACTION_SIZE_ALL = "Get size for all folders"
ACTION_CLEAR = "Clear size data for displayed remotes/folders"
ACTION_SORT_SIZE = "Sort by size (desc)"
ACTION_SORT_NAME = "Sort by name"
ACTION_QUIT = "Quit"

ANSI_BOLD = "\033[1m"
ANSI_RESET = "\033[0m"


# =============================================================================
# Selectors
# =============================================================================


class Selector(Protocol):
    """Picks one option from a list."""

    name: str
    supports_ansi: bool

    def select(self, prompt: str, options: list[str]) -> Optional[int]:
        """Return the index of the chosen option, or None if cancelled."""
        ...


def _split_prompt(prompt: str) -> tuple[str, str]:
    header, _, body = prompt.partition("\n")
    body = body.partition("\n")[0]
    return header, body or header


def _numbered(options: list[str]) -> list[str]:
    return [f"{i:2d}) {label}" for i, label in enumerate(options, 1)]


def _match_choice(output: str, lines: list[str]) -> Optional[int]:
    chosen = strip_ansi(output.strip("\n"))
    for i, line in enumerate(lines):
        if strip_ansi(line) == chosen:
            return i
    return None


def _terminal_height() -> int:
    return shutil.get_terminal_size((80, 24)).lines


class FzfSelector:
    """Menu via fzf."""

    name = "fzf"
    supports_ansi = True

    def select(self, prompt: str, options: list[str]) -> Optional[int]:
        if not options:
            return None
        header, body = _split_prompt(prompt)
        lines = _numbered(options)
        height = min(len(lines) + 3, _terminal_height() - 1)
        height = max(height, 5)

        result = subprocess.run(
            [
                "fzf",
                "--ansi",
                "--border=rounded",
                f"--header={header}  |  using: fzf",
                f"--prompt={body} ",
                "--layout=reverse-list",
                f"--height={height}",
                "--cycle",
            ],
            input="\n".join(lines) + "\n",
            stdout=subprocess.PIPE,
            text=True,
        )
        if result.returncode != 0:
            return None
        return _match_choice(result.stdout, lines)


class GumSelector:
    """Menu via gum choose."""

    name = "gum"
    supports_ansi = False

    def select(self, prompt: str, options: list[str]) -> Optional[int]:
        if not options:
            return None
        header, _ = _split_prompt(prompt)
        lines = [strip_ansi(line) for line in _numbered(options)]
        height = min(max(_terminal_height() - 4, 5), len(lines))

        result = subprocess.run(
            [
                "gum",
                "choose",
                f"--header={header}  |  using: gum",
                f"--height={height}",
                "--cursor=>",
            ],
            input="\n".join(lines) + "\n",
            stdout=subprocess.PIPE,
            text=True,
        )
        if result.returncode != 0:
            return None
        return _match_choice(result.stdout, lines)


@dataclass
class PromptSelector:
    """Numbered list with a typed choice; 0 cancels."""

    console: Console = field(default_factory=lambda: display.console)
    name: str = "select"
    supports_ansi: bool = False

    def select(self, prompt: str, options: list[str]) -> Optional[int]:
        if not options:
            return None
        header, body = _split_prompt(prompt)
        self.console.print(f"[bold]{header}[/bold]", highlight=False)
        if body != header:
            self.console.print(body, markup=False)
        self.console.print()
        for line in _numbered(options):
            self.console.print(strip_ansi(line), markup=False)

        while True:
            try:
                choice = self.console.input("\n[bold cyan]Select:[/bold cyan] ").strip()
            except EOFError:
                return None
            if not choice:
                continue
            try:
                num = int(choice)
            except ValueError:
                self.console.print("[yellow]Please enter a number[/yellow]")
                continue
            if num == 0:
                return None
            if 1 <= num <= len(options):
                return num - 1
            self.console.print(f"[yellow]Please enter 0-{len(options)}[/yellow]")


def choose_selector(settings: Settings) -> Selector:
    """Pick the best available menu backend once at startup."""
    if not settings.no_fzf and shutil.which("fzf"):
        selector: Selector = FzfSelector()
    elif not settings.no_gum and shutil.which("gum"):
        selector = GumSelector()
    else:
        selector = PromptSelector()
    logger.debug("Menu backend: %s", selector.name)
    return selector


# =============================================================================
# Session
# =============================================================================


class MenuState(Enum):
    """States for the menu state machine."""

    REMOTES = auto()
    FOLDERS = auto()


def folder_label(name: str, size_bytes: Optional[int], width: int) -> str:
    """Folder menu line, with the cached size in brackets when known."""
    if size_bytes is None:
        return name
    return f"{name[:width]:<{width}}  [{format_size(size_bytes)}]"


@dataclass
class MenuSession:
    """Remote and folder browsing loop."""

    settings: Settings
    cache: SizeCache
    runner: SizeRunner
    selector: Selector
    console: Console = field(default_factory=lambda: display.console)
    state: MenuState = MenuState.REMOTES
    remote: Optional[str] = None
    sort_by_size: bool = True

    def __post_init__(self):
        """Initialize the session."""
        self.sort_by_size = self.settings.sort_by_size

    def run(self) -> None:
        """Main menu loop."""
        while True:
            try:
                if not self._handle_state():
                    break
            except KeyboardInterrupt:
                self.console.print("\n[dim]Goodbye![/dim]")
                break

    def _handle_state(self) -> bool:
        """Handle current state, return False to exit."""
        if self.state == MenuState.FOLDERS and self.remote:
            return self._folder_menu()
        return self._remote_menu()

    def _action(self, label: str) -> str:
        if self.settings.menu_color and self.selector.supports_ansi:
            return f"{ANSI_BOLD}{label}{ANSI_RESET}"
        return label

    def _pause(self) -> None:
        display.pause()

    # ─────────────────────────────────────────────────────────────────────────
    # Remote Menu
    # ─────────────────────────────────────────────────────────────────────────

    def _remote_menu(self) -> bool:
        remotes = list_remotes(self.settings.rclone_binary)
        display.clear_screen()

        if not remotes:
            self.console.print("No rclone remotes found.\n")
            self._pause()
            return False

        options = [*remotes, self._action(ACTION_CLEAR), self._action(ACTION_QUIT)]
        choice = self.selector.select(
            f"rclone folder sizes\nSelect a remote  (UI: {self.selector.name})", options
        )

        if choice is None or choice == len(remotes) + 1:
            return False

        if choice < len(remotes):
            self.remote = remotes[choice]
            self.state = MenuState.FOLDERS
            return True

        if clear_sizes(self.cache) is not None:
            self.console.print("\nCleared cached size data for all remotes.\n")
        self._pause()
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Folder Menu
    # ─────────────────────────────────────────────────────────────────────────

    def display_folders(self, remote: str, folders: list[str]) -> list[str]:
        """Folders in menu order."""
        if not self.sort_by_size:
            return list(folders)

        def cached(folder: str) -> int:
            size = self.cache.lookup(remote, folder)
            return -1 if size is None else size

        return sorted(folders, key=cached, reverse=True)

    def folder_options(self, remote: str, folders: list[str]) -> list[str]:
        """Menu lines for the given folders, in the given order."""
        width = min(max((len(f) for f in folders), default=0), self.settings.size_align_max_len)
        return [folder_label(f, self.cache.lookup(remote, f), width) for f in folders]

    def _folder_menu(self) -> bool:
        remote = self.remote
        folders = list_top_level_folders(remote, self.settings.rclone_binary)
        display.clear_screen()

        if not folders:
            self.console.print(f"No top-level folders found on {remote}:\n", markup=False)
            self._pause()
            self.state = MenuState.REMOTES
            return True

        ordered = self.display_folders(remote, folders)
        sort_label = ACTION_SORT_NAME if self.sort_by_size else ACTION_SORT_SIZE
        options = [
            self._action(ACTION_RETURN),
            self._action(sort_label),
            *self.folder_options(remote, ordered),
            self._action(ACTION_SIZE_ALL),
            self._action(ACTION_CLEAR),
        ]
        first_folder = 2
        size_all_index = first_folder + len(ordered)
        clear_index = size_all_index + 1

        choice = self.selector.select(f"[REMOTE: {remote}]\nChoose a top-level folder", options)

        if choice is None or choice == 0:
            self.state = MenuState.REMOTES
        elif choice == 1:
            self.sort_by_size = not self.sort_by_size
        elif choice == size_all_index:
            self.size_all_unsized(remote, folders)
        elif choice == clear_index:
            removed = clear_sizes(self.cache, remote)
            if removed is not None:
                noun = "entry" if removed == 1 else "entries"
                self.console.print(
                    f"\nCleared {removed} cached size {noun} for remote {remote}.\n", markup=False
                )
            self._pause()
        elif first_folder <= choice < size_all_index:
            self.measure(remote, ordered[choice - first_folder])
            self._pause()
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Measuring
    # ─────────────────────────────────────────────────────────────────────────

    def measure(self, remote: str, folder: str) -> RunResult:
        """Run rclone size and cache the total if one was parsed."""
        result = self.runner.run(
            remote,
            folder,
            self.settings.rclone_size_args,
            self.settings.fast_list_mode,
        )
        if result.has_size:
            record_size(self.cache, remote, folder, result.size_bytes)
        return result

    def size_all_unsized(self, remote: str, folders: list[str]) -> int:
        """Measure every folder without a cached size. Returns how many ran."""
        unsized = [f for f in folders if self.cache.lookup(remote, f) is None]
        if not unsized:
            self.console.print("\nAll displayed folders already have size data.\n")
            self._pause()
            return 0

        total = len(unsized)
        for i, folder in enumerate(unsized, 1):
            self.console.print(f"\n[{i}/{total}] {folder}", markup=False)
            self.measure(remote, folder)

        self.console.print(f"\nFinished sizing {total} folder(s).\n")
        self._pause()
        return total


def record_size(cache: SizeCache, remote: str, folder: str, size_bytes: int) -> bool:
    """Store a measured size, downgrading write errors to a warning."""
    try:
        stored = cache.upsert(remote, folder, size_bytes)
    except OSError as e:
        show_warning(f"Could not save size cache {cache.path}: {e}")
        return False
    if stored:
        show_ok(f"Cached size for {remote}:{folder}")
    else:
        show_warning(f"Size for {remote}:{folder} cannot be stored in the size cache")
    return stored


def clear_sizes(cache: SizeCache, remote: Optional[str] = None) -> Optional[int]:
    """
    Forget cached sizes for one remote, or for all remotes when remote is None.

    Returns:
        Number of entries removed, or None if the cache could not be saved
    """
    try:
        if remote is None:
            removed = len(cache.entries)
            cache.clear_all()
            return removed
        return cache.clear(remote)
    except OSError as e:
        show_warning(f"Could not save size cache {cache.path}: {e}")
        return None


def start_menu(settings: Settings, cache: SizeCache, selector: Optional[Selector] = None) -> None:
    """Start the interactive interface.

    Args:
        settings: Resolved settings
        cache: Loaded size cache
        selector: Menu backend; chosen automatically when omitted
    """
    history = HistoryWriter(settings.history_file, warn=show_warning)
    runner = SizeRunner(history, rclone=settings.rclone_binary)
    session = MenuSession(
        settings=settings,
        cache=cache,
        runner=runner,
        selector=selector or choose_selector(settings),
    )
    session.run()
