"""CLI interface for cloudsize."""

import logging
from functools import partial
from typing import Optional

import click
import typer
from rich.logging import RichHandler
from typer.core import TyperGroup

from cloudsize import __version__
from cloudsize.cache import SizeCache
from cloudsize.config import Settings
from cloudsize.display import console, err_console, show_cache_table, show_error, show_warning
from cloudsize.history import HistoryWriter
from cloudsize.menu import clear_sizes, record_size, start_menu
from cloudsize.rclone import (
    RcloneNotFoundError,
    list_remotes,
    require_rclone,
    resolve_backend,
    resolve_remote_type,
)
from cloudsize.runner import SizeRunner

DEFAULT_COMMAND = "menu"


class DefaultMenuGroup(TyperGroup):
    """
    Root group that sends unrecognized leading arguments to the menu.

    `cloudsize --fast-list`, `cloudsize -- --tpslimit 10` and
    `cloudsize --tpslimit 10` all run `cloudsize menu ...`.
    """

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        root_options = set()
        for param in self.get_params(ctx):
            root_options.update(param.opts)
            root_options.update(param.secondary_opts)

        args = list(args)
        i = 0
        while i < len(args) and args[i] in root_options:
            i += 1
        if i < len(args) and args[i] not in self.commands:
            args.insert(i, DEFAULT_COMMAND)
        return super().parse_args(ctx, args)


# Create Typer app
app = typer.Typer(
    name="cloudsize",
    help="Interactive rclone folder size checker - read-only, cached, logged",
    add_completion=False,
    cls=DefaultMenuGroup,
)

PASSTHROUGH = {"allow_extra_args": True, "ignore_unknown_options": True}

FastListOption = typer.Option(
    None,
    "--fast-list/--no-fast-list",
    help="Force --fast-list on, or disable it and strip it from extra args.",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"cloudsize version {__version__}")
        raise typer.Exit()


def setup_logging(verbose: bool) -> None:
    """Send diagnostics to stderr through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def load_settings(fast_list: Optional[bool] = None, extra_args: Optional[list[str]] = None) -> Settings:
    """Environment settings with command-line overrides applied."""
    return Settings.from_env().with_overrides(fast_list=fast_list, extra_args=extra_args)


def load_cache(settings: Settings) -> SizeCache:
    """Open and load the size cache."""
    cache = SizeCache(settings.size_data_file)
    cache.load()
    return cache


def ensure_rclone(settings: Settings) -> None:
    """Exit early when rclone is unavailable."""
    try:
        require_rclone(settings.rclone_binary)
    except RcloneNotFoundError as e:
        show_error(str(e))
        raise typer.Exit(1)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging."),
) -> None:
    """cloudsize - browse rclone remotes and measure folder sizes."""
    setup_logging(verbose)
    # If no command specified, launch menu
    if ctx.invoked_subcommand is None:
        ctx.invoke(menu, ctx=ctx, fast_list=None)


@app.command(context_settings=PASSTHROUGH)
def menu(
    ctx: typer.Context,
    fast_list: Optional[bool] = FastListOption,
) -> None:
    """Interactive remote and folder browser (default).

    Anything after `--`, and any unknown option, is passed to `rclone size`.
    """
    settings = load_settings(fast_list, list(ctx.args))
    ensure_rclone(settings)
    start_menu(settings, load_cache(settings))


@app.command(context_settings=PASSTHROUGH)
def size(
    ctx: typer.Context,
    remote: str = typer.Argument(..., help="rclone remote name (without ':')"),
    folder: str = typer.Argument(..., help="Top-level folder to measure"),
    fast_list: Optional[bool] = FastListOption,
) -> None:
    """Measure one folder and cache the result."""
    settings = load_settings(fast_list, list(ctx.args))
    ensure_rclone(settings)
    cache = load_cache(settings)
    remote = remote.removesuffix(":")

    history = HistoryWriter(settings.history_file, warn=show_warning)
    runner = SizeRunner(history, rclone=settings.rclone_binary)
    result = runner.run(remote, folder, settings.rclone_size_args, settings.fast_list_mode)

    if not result.success:
        raise typer.Exit(1)
    if result.size_bytes is not None:
        record_size(cache, remote, folder, result.size_bytes)


@app.command(name="cache")
def show_cache(
    remote: Optional[str] = typer.Argument(None, help="Only show this remote"),
) -> None:
    """Show cached folder sizes."""
    cache = load_cache(load_settings())
    entries = cache.entries_for(remote) if remote else cache.entries
    show_cache_table(entries)


@app.command()
def clear(
    remote: Optional[str] = typer.Argument(None, help="Remote whose sizes to forget"),
    all_remotes: bool = typer.Option(False, "--all", help="Forget every cached size"),
) -> None:
    """Clear cached sizes for a remote, or for all remotes."""
    if not remote and not all_remotes:
        console.print("[red]Error: Specify a remote or --all[/red]")
        raise typer.Exit(1)

    cache = load_cache(load_settings())
    removed = clear_sizes(cache, None if all_remotes else remote)
    if removed is None:
        raise typer.Exit(1)
    if all_remotes:
        console.print("Cleared cached size data for all remotes.")
        return

    noun = "entry" if removed == 1 else "entries"
    console.print(f"Cleared {removed} cached size {noun} for remote {remote}.", markup=False)


@app.command()
def remotes() -> None:
    """List configured remotes and their backend types."""
    settings = load_settings()
    ensure_rclone(settings)

    names = list_remotes(settings.rclone_binary)
    if not names:
        console.print("[yellow]No rclone remotes found.[/yellow]")
        return

    console.print("[bold]Remotes[/bold]\n")
    for name in names:
        backend_type = resolve_remote_type(
            name, resolve=partial(resolve_backend, binary=settings.rclone_binary)
        )
        backend_type = backend_type or "unknown"
        console.print(f"  • [bold]{name}[/bold] [dim]({backend_type})[/dim]")


if __name__ == "__main__":
    app()
