"""Thin wrappers around the rclone commands cloudsize relies on."""

import logging
import shutil
import subprocess
from typing import Callable

logger = logging.getLogger(__name__)

# Backend types that point at another remote instead of storing data
INDIRECT_TYPES = {"alias", "crypt"}
MAX_RESOLVE_DEPTH = 5


class RcloneNotFoundError(RuntimeError):
    """rclone is not installed or not on PATH."""


def require_rclone(binary: str = "rclone") -> str:
    """
    Locate the rclone executable.

    Returns:
        Full path to rclone

    Raises:
        RcloneNotFoundError: if it cannot be found
    """
    path = shutil.which(binary)
    if not path:
        raise RcloneNotFoundError(f"{binary} not found in PATH.")
    logger.debug("Using rclone at %s", path)
    return path


def _run(args: list[str]) -> str | None:
    """Run an rclone command and return stdout, or None on failure."""
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
        )
    except OSError as e:
        logger.debug("Could not run %s: %s", args, e)
        return None
    if result.returncode != 0:
        logger.debug("%s exited with %d: %s", args, result.returncode, result.stderr.strip())
        return None
    return result.stdout


def list_remotes(binary: str = "rclone") -> list[str]:
    """Configured remote names, sorted, without the trailing colon."""
    output = _run([binary, "listremotes"])
    if not output:
        return []
    remotes = [line.strip().removesuffix(":") for line in output.splitlines()]
    return sorted(r for r in remotes if r)


def list_top_level_folders(remote: str, binary: str = "rclone") -> list[str]:
    """Top-level folder names of a remote."""
    output = _run([binary, "lsf", "--dirs-only", "--max-depth", "1", f"{remote}:"])
    if not output:
        return []
    folders = [line.rstrip("\r").removesuffix("/") for line in output.splitlines()]
    return [f for f in folders if f]


def parse_config_show(text: str) -> tuple[str, str]:
    """
    Pull `type` and `remote` out of `rclone config show <name>` output.

    Returns:
        Tuple of (backend_type, remote_reference); empty strings if absent
    """
    backend_type = ""
    remote_ref = ""
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if key == "type" and not backend_type:
            backend_type = value.strip()
        elif key == "remote" and not remote_ref:
            remote_ref = value.strip()
    return backend_type, remote_ref


def resolve_backend(name: str, binary: str = "rclone") -> tuple[str, str]:
    """Backend type and indirection target of a single remote."""
    output = _run([binary, "config", "show", name])
    if not output:
        return "", ""
    return parse_config_show(output)


def resolve_remote_type(
    name: str,
    resolve: Callable[[str], tuple[str, str]] = resolve_backend,
    max_depth: int = MAX_RESOLVE_DEPTH,
) -> str:
    """
    Find the concrete backend type behind a remote.

    Follows alias/crypt remotes through their `remote = other:path` setting
    for at most max_depth hops.

    Returns:
        Backend type such as "drive" or "onedrive", or "" if unknown
    """
    depth = 0
    while name and depth < max_depth:
        backend_type, remote_ref = resolve(name)
        if not backend_type:
            return ""

        if backend_type in INDIRECT_TYPES and remote_ref:
            name = remote_ref.split(":", 1)[0]
            depth += 1
            continue

        return backend_type

    logger.debug("Gave up resolving backend type after %d hop(s)", depth)
    return ""
