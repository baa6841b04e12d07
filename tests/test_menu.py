"""Tests for the interactive menus."""

from io import StringIO
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console

from cloudsize.cache import SizeCache
from cloudsize.config import Settings
from cloudsize.menu import (
    FzfSelector,
    GumSelector,
    MenuSession,
    MenuState,
    PromptSelector,
    choose_selector,
    clear_sizes,
    folder_label,
    record_size,
)
from cloudsize.models import FastListMode, RunResult


class ScriptedSelector:
    """Selector that replays a list of choices."""

    name = "scripted"
    supports_ansi = False

    def __init__(self, choices):
        self.choices = list(choices)
        self.prompts = []
        self.options = []

    def select(self, prompt, options):
        self.prompts.append(prompt)
        self.options.append(list(options))
        choice = self.choices.pop(0)
        if isinstance(choice, BaseException):
            raise choice
        return choice


def sized(size_bytes=None, success=True):
    return RunResult(
        target="gdrive:x",
        command_display="rclone size gdrive:x",
        size_bytes=size_bytes,
        success=success,
    )


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        size_data_file=tmp_path / "data.txt",
        history_file=tmp_path / "history.md",
        rclone_size_args=["--checkers", "4"],
        fast_list_mode=FastListMode.AUTO,
    )


@pytest.fixture
def cache(settings: Settings) -> SizeCache:
    return SizeCache(settings.size_data_file)


@pytest.fixture(autouse=True)
def quiet_terminal():
    with patch("cloudsize.display.pause"), patch("cloudsize.display.clear_screen"):
        yield


def make_session(settings, cache, choices=(), runner=None):
    return MenuSession(
        settings=settings,
        cache=cache,
        runner=runner or MagicMock(),
        selector=ScriptedSelector(choices),
        console=Console(file=StringIO(), width=120),
    )


class TestFolderLabel:
    def test_unsized_is_plain(self):
        assert folder_label("Photos", None, 10) == "Photos"

    def test_sized_is_aligned(self):
        assert folder_label("Photos", 1290000000000, 10) == "Photos      [1.29 TB]"

    def test_long_name_truncated(self):
        assert folder_label("VeryLongFolderName", 5, 4) == "Very  [5.00 B]"


class TestDisplayFolders:
    def test_sorted_by_size_desc(self, settings, cache):
        cache.upsert("gdrive", "small", 10)
        cache.upsert("gdrive", "big", 1000)
        session = make_session(settings, cache)

        ordered = session.display_folders("gdrive", ["a", "small", "b", "big"])
        assert ordered == ["big", "small", "a", "b"]

    def test_name_order_when_toggled(self, settings, cache):
        cache.upsert("gdrive", "big", 1000)
        session = make_session(settings, cache)
        session.sort_by_size = False

        assert session.display_folders("gdrive", ["a", "big"]) == ["a", "big"]

    def test_sort_default_from_settings(self, settings, cache):
        session = make_session(settings.model_copy(update={"sort_by_size": False}), cache)
        assert session.sort_by_size is False

    def test_options_use_shared_width(self, settings, cache):
        cache.upsert("gdrive", "Photos", 2000)
        session = make_session(settings, cache)
        options = session.folder_options("gdrive", ["Photos", "Docs2024"])
        assert options == ["Photos    [2.00 KB]", "Docs2024"]


class TestMeasure:
    def test_success_is_cached(self, settings, cache):
        runner = MagicMock()
        runner.run.return_value = sized(4096)
        session = make_session(settings, cache, runner=runner)

        session.measure("gdrive", "Photos")

        runner.run.assert_called_once_with(
            "gdrive", "Photos", ["--checkers", "4"], FastListMode.AUTO
        )
        assert cache.lookup("gdrive", "Photos") == 4096

    def test_failure_leaves_cache(self, settings, cache):
        cache.upsert("gdrive", "Photos", 1)
        runner = MagicMock()
        runner.run.return_value = sized(None, success=False)
        session = make_session(settings, cache, runner=runner)

        session.measure("gdrive", "Photos")
        assert cache.lookup("gdrive", "Photos") == 1

    def test_missing_total_leaves_cache(self, settings, cache):
        runner = MagicMock()
        runner.run.return_value = sized(None)
        session = make_session(settings, cache, runner=runner)

        session.measure("gdrive", "Photos")
        assert cache.lookup("gdrive", "Photos") is None


class TestSizeAll:
    def test_only_unsized_folders(self, settings, cache):
        cache.upsert("gdrive", "done", 5)
        runner = MagicMock()
        runner.run.return_value = sized(7)
        session = make_session(settings, cache, runner=runner)

        assert session.size_all_unsized("gdrive", ["done", "a", "b"]) == 2
        assert [c.args[1] for c in runner.run.call_args_list] == ["a", "b"]
        assert cache.lookup("gdrive", "a") == 7
        assert "Finished sizing 2 folder(s)." in session.console.file.getvalue()

    def test_nothing_to_do(self, settings, cache):
        cache.upsert("gdrive", "done", 5)
        runner = MagicMock()
        session = make_session(settings, cache, runner=runner)

        assert session.size_all_unsized("gdrive", ["done"]) == 0
        runner.run.assert_not_called()
        assert "already have size data" in session.console.file.getvalue()


@patch("cloudsize.menu.show_warning")
class TestCacheHelpers:
    def test_record_unstorable_folder(self, mock_warn, cache):
        assert record_size(cache, "gdrive", "a|b", 10) is False
        assert cache.entries == []
        assert "cannot be stored" in mock_warn.call_args[0][0]

    def test_record_save_failure(self, mock_warn, cache):
        with patch("cloudsize.cache.os.replace", side_effect=OSError("read-only")):
            assert record_size(cache, "gdrive", "Photos", 10) is False
        assert cache.lookup("gdrive", "Photos") is None
        mock_warn.assert_called_once()

    def test_clear_counts(self, mock_warn, cache):
        cache.upsert("gdrive", "a", 1)
        cache.upsert("gdrive", "b", 2)
        cache.upsert("b2", "c", 3)

        assert clear_sizes(cache, "gdrive") == 2
        assert clear_sizes(cache) == 1
        assert cache.entries == []
        mock_warn.assert_not_called()

    def test_clear_save_failure(self, mock_warn, cache):
        cache.upsert("gdrive", "a", 1)

        with patch("cloudsize.cache.os.replace", side_effect=OSError("read-only")):
            assert clear_sizes(cache, "gdrive") is None
            assert clear_sizes(cache) is None

        assert cache.lookup("gdrive", "a") == 1
        assert "Could not save size cache" in mock_warn.call_args[0][0]
        assert [p.name for p in cache.path.parent.iterdir() if p.name.endswith(".tmp")] == []


@patch("cloudsize.menu.list_top_level_folders")
@patch("cloudsize.menu.list_remotes")
class TestSession:
    def test_quit_from_remote_menu(self, mock_remotes, mock_folders, settings, cache):
        mock_remotes.return_value = ["b2", "gdrive"]
        session = make_session(settings, cache, choices=[3])
        session.run()

        options = session.selector.options[0]
        assert options == ["b2", "gdrive", "Clear size data for displayed remotes/folders", "Quit"]
        mock_folders.assert_not_called()

    def test_cancel_exits(self, mock_remotes, mock_folders, settings, cache):
        mock_remotes.return_value = ["gdrive"]
        session = make_session(settings, cache, choices=[None])
        session.run()
        assert len(session.selector.prompts) == 1

    def test_no_remotes(self, mock_remotes, mock_folders, settings, cache):
        mock_remotes.return_value = []
        session = make_session(settings, cache)
        session.run()
        assert "No rclone remotes found." in session.console.file.getvalue()

    def test_clear_all_from_remote_menu(self, mock_remotes, mock_folders, settings, cache):
        cache.upsert("gdrive", "Photos", 1)
        cache.upsert("b2", "x", 2)
        mock_remotes.return_value = ["gdrive"]
        session = make_session(settings, cache, choices=[1, 2])
        session.run()

        assert cache.entries == []
        assert "Cleared cached size data for all remotes." in session.console.file.getvalue()

    def test_clear_all_save_failure_keeps_menu_running(
        self, mock_remotes, mock_folders, settings, cache
    ):
        cache.upsert("gdrive", "Photos", 1)
        mock_remotes.return_value = ["gdrive"]
        session = make_session(settings, cache, choices=[1, 2])

        with patch("cloudsize.cache.os.replace", side_effect=OSError("read-only")), patch(
            "cloudsize.menu.show_warning"
        ) as mock_warn:
            session.run()

        assert cache.lookup("gdrive", "Photos") == 1
        assert "Cleared" not in session.console.file.getvalue()
        assert "Could not save size cache" in mock_warn.call_args[0][0]
        assert len(session.selector.prompts) == 2

    def test_measure_folder_then_return(self, mock_remotes, mock_folders, settings, cache):
        mock_remotes.return_value = ["b2", "gdrive"]
        mock_folders.return_value = ["Photos", "Docs"]
        runner = MagicMock()
        runner.run.return_value = sized(2048)
        session = make_session(settings, cache, choices=[1, 2, 0, None], runner=runner)

        session.run()

        mock_folders.assert_called_with("gdrive", "rclone")
        folder_options = session.selector.options[1]
        assert folder_options[0] == "Return to remote list"
        assert folder_options[1] == "Sort by name"
        assert folder_options[-2:] == [
            "Get size for all folders",
            "Clear size data for displayed remotes/folders",
        ]
        assert cache.lookup("gdrive", "Photos") == 2048
        assert session.state == MenuState.REMOTES

    def test_sized_folder_listed_first(self, mock_remotes, mock_folders, settings, cache):
        cache.upsert("gdrive", "Docs", 10)
        mock_remotes.return_value = ["gdrive"]
        mock_folders.return_value = ["Photos", "Docs"]
        session = make_session(settings, cache, choices=[0, 1, 0, None])

        session.run()

        assert session.selector.options[1][2:4] == ["Docs    [10.00 B]", "Photos"]
        # after toggling, name order and the other label
        assert session.selector.options[2][1] == "Sort by size (desc)"
        assert session.selector.options[2][2:4] == ["Photos", "Docs    [10.00 B]"]

    def test_clear_remote_from_folder_menu(self, mock_remotes, mock_folders, settings, cache):
        cache.upsert("gdrive", "Photos", 1)
        cache.upsert("gdrive", "Docs", 2)
        cache.upsert("b2", "x", 3)
        mock_remotes.return_value = ["gdrive"]
        mock_folders.return_value = ["Photos", "Docs"]
        # return, sort, Docs, Photos, size-all, clear
        session = make_session(settings, cache, choices=[0, 5, 0, None])

        session.run()

        assert cache.entries_for("gdrive") == []
        assert cache.lookup("b2", "x") == 3
        assert "Cleared 2 cached size entries for remote gdrive." in session.console.file.getvalue()

    def test_sort_toggle_labels(self, mock_remotes, mock_folders, settings, cache):
        mock_remotes.return_value = ["gdrive"]
        mock_folders.return_value = ["Photos"]
        session = make_session(settings, cache, choices=[0, 1, 1, 0, None])

        session.run()

        labels = [options[1] for options in session.selector.options[1:4]]
        assert labels == ["Sort by name", "Sort by size (desc)", "Sort by name"]

    def test_no_folders_goes_back(self, mock_remotes, mock_folders, settings, cache):
        mock_remotes.return_value = ["gdrive"]
        mock_folders.return_value = []
        session = make_session(settings, cache, choices=[0, None])

        session.run()

        assert "No top-level folders found on gdrive:" in session.console.file.getvalue()
        assert len(session.selector.prompts) == 2

    def test_ctrl_c_says_goodbye(self, mock_remotes, mock_folders, settings, cache):
        mock_remotes.return_value = ["gdrive"]
        session = make_session(settings, cache, choices=[KeyboardInterrupt()])
        session.run()
        assert "Goodbye" in session.console.file.getvalue()


class TestPromptSelector:
    def make(self):
        return PromptSelector(console=Console(file=StringIO(), width=120))

    def test_valid_choice(self):
        selector = self.make()
        with patch.object(selector.console, "input", side_effect=["x", "9", "", "2"]):
            assert selector.select("Title\nPick one", ["a", "b", "c"]) == 1
        output = selector.console.file.getvalue()
        assert " 1) a" in output
        assert "Please enter a number" in output
        assert "Please enter 0-3" in output

    def test_zero_cancels(self):
        selector = self.make()
        with patch.object(selector.console, "input", return_value="0"):
            assert selector.select("Title", ["a"]) is None

    def test_eof_cancels(self):
        selector = self.make()
        with patch.object(selector.console, "input", side_effect=EOFError):
            assert selector.select("Title", ["a"]) is None

    def test_ansi_removed_from_labels(self):
        selector = self.make()
        with patch.object(selector.console, "input", return_value="1"):
            selector.select("Title", ["\033[1mQuit\033[0m"])
        assert "\x1b" not in selector.console.file.getvalue()


class TestExternalSelectors:
    @patch("cloudsize.menu.subprocess.run")
    def test_fzf_maps_line_to_index(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout=" 2) gdrive\n")
        assert FzfSelector().select("Title\nSelect", ["b2", "gdrive"]) == 1
        cmd = mock_run.call_args[0][0]
        assert cmd[0] == "fzf"
        assert "--ansi" in cmd
        assert mock_run.call_args[1]["input"] == " 1) b2\n 2) gdrive\n"

    @patch("cloudsize.menu.subprocess.run")
    def test_fzf_escape_cancels(self, mock_run):
        mock_run.return_value = MagicMock(returncode=130, stdout="")
        assert FzfSelector().select("Title", ["a"]) is None

    @patch("cloudsize.menu.subprocess.run")
    def test_gum_strips_ansi(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout=" 1) Quit\n")
        assert GumSelector().select("Title", ["\033[1mQuit\033[0m"]) == 0
        assert "\x1b" not in mock_run.call_args[1]["input"]


class TestChooseSelector:
    @patch("cloudsize.menu.shutil.which")
    def test_prefers_fzf(self, mock_which):
        mock_which.side_effect = lambda name: f"/usr/bin/{name}"
        assert choose_selector(Settings()).name == "fzf"

    @patch("cloudsize.menu.shutil.which")
    def test_gum_when_fzf_disabled(self, mock_which):
        mock_which.side_effect = lambda name: f"/usr/bin/{name}"
        assert choose_selector(Settings(no_fzf=True)).name == "gum"

    @patch("cloudsize.menu.shutil.which")
    def test_prompt_fallback(self, mock_which):
        mock_which.return_value = None
        assert isinstance(choose_selector(Settings()), PromptSelector)

    @patch("cloudsize.menu.shutil.which")
    def test_both_disabled(self, mock_which):
        mock_which.side_effect = lambda name: f"/usr/bin/{name}"
        assert choose_selector(Settings(no_fzf=True, no_gum=True)).name == "select"
