"""Configuration for cloudsize, read from environment variables."""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from cloudsize.models import FastListMode

logger = logging.getLogger(__name__)

DEFAULT_SIZE_DATA_FILE = "cloudsize-data.txt"
DEFAULT_HISTORY_FILE = "cloudsize-history.md"


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip() == "1"


def _int(value: Optional[str], default: int) -> int:
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer value %r, using %d", value, default)
        return default


def parse_fast_list_mode(value: Optional[str]) -> FastListMode:
    """Parse a fast-list policy, falling back to auto on bad input."""
    if not value:
        return FastListMode.AUTO
    try:
        return FastListMode(value.strip().lower())
    except ValueError:
        logger.warning("Unknown FAST_LIST_MODE %r, using 'auto'", value)
        return FastListMode.AUTO


class Settings(BaseModel):
    """Resolved runtime settings."""

    size_data_file: Path = Field(
        default_factory=lambda: Path.cwd() / DEFAULT_SIZE_DATA_FILE,
        description="Cache file with folder sizes",
    )
    history_file: Path = Field(
        default_factory=lambda: Path.cwd() / DEFAULT_HISTORY_FILE,
        description="Markdown history log",
    )
    rclone_size_args: list[str] = Field(
        default_factory=list, description="Extra args appended to `rclone size`"
    )
    fast_list_mode: FastListMode = FastListMode.AUTO
    rclone_binary: str = "rclone"
    no_fzf: bool = Field(False, description="Never use fzf for menus")
    no_gum: bool = Field(False, description="Never use gum for menus")
    menu_color: bool = Field(True, description="Highlight action items in fzf menus")
    sort_by_size: bool = Field(True, description="Sort folders by cached size by default")
    size_align_max_len: int = Field(20, ge=1, description="Max folder name width in menus")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables."""
        env = os.environ if environ is None else environ

        values: dict = {
            "rclone_size_args": env.get("RCLONE_SIZE_ARGS", "").split(),
            "fast_list_mode": parse_fast_list_mode(env.get("FAST_LIST_MODE")),
            "rclone_binary": env.get("RCLONE_BINARY") or "rclone",
            "no_fzf": _flag(env.get("DEBUG_UI_NO_FZF"), False),
            "no_gum": _flag(env.get("DEBUG_UI_NO_GUM"), False),
            "menu_color": _flag(env.get("MENU_COLOR"), True),
            "sort_by_size": _flag(env.get("SORT_BY_SIZE_DEFAULT"), True),
            "size_align_max_len": max(1, _int(env.get("SIZE_ALIGN_MAX_LEN"), 20)),
        }
        if env.get("SIZE_DATA_FILE"):
            values["size_data_file"] = Path(env["SIZE_DATA_FILE"]).expanduser()
        if env.get("HISTORY_FILE"):
            values["history_file"] = Path(env["HISTORY_FILE"]).expanduser()

        settings = cls(**values)
        logger.debug("Loaded settings: %s", settings)
        return settings

    def with_overrides(
        self,
        fast_list: Optional[bool] = None,
        extra_args: Optional[list[str]] = None,
    ) -> "Settings":
        """Apply command-line overrides on top of the environment."""
        update: dict = {}
        if fast_list is not None:
            update["fast_list_mode"] = FastListMode.ON if fast_list else FastListMode.OFF
        if extra_args:
            update["rclone_size_args"] = [*self.rclone_size_args, *extra_args]
        return self.model_copy(update=update)
