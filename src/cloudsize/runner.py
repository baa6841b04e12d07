"""Running `rclone size` and turning its output into a RunResult."""

import codecs
import logging
import shlex
import subprocess
import time
from functools import partial
from typing import Callable, Optional

from cloudsize.display import StatusLine, show_error, show_info, show_run_header, show_run_summary
from cloudsize.history import HistoryWriter
from cloudsize.models import FastListMode, RunResult
from cloudsize.parser import OutputParser
from cloudsize.rclone import resolve_backend, resolve_remote_type

logger = logging.getLogger(__name__)

FAST_LIST_FLAG = "--fast-list"
ONEDRIVE_DELTA_FLAG = "--onedrive-delta"

# Backend that gets --fast-list in auto mode
FAST_LIST_BACKEND = "drive"
# Backend that gets --onedrive-delta whenever fast listing is on
DELTA_BACKEND = "onedrive"

READ_CHUNK_SIZE = 4096


def build_size_command(
    remote: str,
    folder: str,
    extra_args: list[str],
    fast_list_mode: FastListMode,
    remote_type: str = "",
    rclone: str = "rclone",
) -> list[str]:
    """
    Assemble the `rclone size` command line.

    Args:
        remote: Remote name
        folder: Top-level folder
        extra_args: User args (environment first, then command line)
        fast_list_mode: Fast-list policy
        remote_type: Resolved backend type ("" if unknown)
        rclone: rclone executable

    Returns:
        Argument list ready for subprocess
    """
    args = list(extra_args)
    if fast_list_mode == FastListMode.OFF:
        args = [a for a in args if a != FAST_LIST_FLAG]

    if fast_list_mode == FastListMode.ON:
        inject = True
    elif fast_list_mode == FastListMode.AUTO:
        inject = remote_type == FAST_LIST_BACKEND
    else:
        inject = False

    cmd = [rclone, "size", f"{remote}:{folder}", "--progress", "--stats", "1s", *args]
    if inject and FAST_LIST_FLAG not in args:
        cmd.append(FAST_LIST_FLAG)

    fast_list_enabled = FAST_LIST_FLAG in cmd
    if remote_type == DELTA_BACKEND and fast_list_enabled and ONEDRIVE_DELTA_FLAG not in cmd:
        cmd.append(ONEDRIVE_DELTA_FLAG)

    return cmd


class SizeRunner:
    """
    Runs one measurement at a time and reports it to the terminal and history.

    The runner never writes the cache; callers decide what to do with
    RunResult.size_bytes.
    """

    def __init__(
        self,
        history: HistoryWriter,
        rclone: str = "rclone",
        resolve_type: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.history = history
        self.rclone = rclone
        self.resolve_type = resolve_type or partial(
            resolve_remote_type, resolve=partial(resolve_backend, binary=rclone)
        )

    def run(
        self,
        remote: str,
        folder: str,
        extra_args: list[str],
        fast_list_mode: FastListMode = FastListMode.AUTO,
    ) -> RunResult:
        """
        Measure remote:folder with `rclone size`.

        Args:
            remote: Remote name
            folder: Top-level folder
            extra_args: Extra args for rclone size
            fast_list_mode: Fast-list policy

        Returns:
            RunResult; size_bytes is None on failure or when no total was printed
        """
        target = f"{remote}:{folder}"
        remote_type = self.resolve_type(remote)
        cmd = build_size_command(
            remote, folder, extra_args, fast_list_mode, remote_type, rclone=self.rclone
        )
        command_display = shlex.join(cmd)
        logger.debug("Backend type for %s: %r", remote, remote_type)

        result = RunResult(target=target, command_display=command_display)

        with self.history.recording(remote, folder, command_display):
            show_run_header(target, command_display, self.history)
            if FAST_LIST_FLAG in cmd and FAST_LIST_FLAG not in extra_args:
                show_info(f"Added {FAST_LIST_FLAG} ({fast_list_mode.value} mode)", self.history)
            parser = OutputParser()
            started = time.monotonic()
            try:
                result.return_code = self._execute(cmd, parser)
            except OSError as e:
                logger.debug("Failed to start %s: %s", cmd, e)
                show_error(f"Could not start rclone: {e}", self.history)
                show_error(f"rclone size failed for {target}.", self.history)
                return result
            except KeyboardInterrupt:
                self.history.write_line("Run interrupted.")
                raise

            if result.return_code != 0:
                show_error(f"rclone size failed for {target}.", self.history)
                return result

            summary = parser.finish()
            result.success = True
            result.size_bytes = summary.size_bytes
            result.size_human = summary.size_human
            result.objects_line = summary.objects_line
            if summary.elapsed:
                result.total_time = summary.elapsed
            else:
                result.total_time = f"{int(time.monotonic() - started)}s"

            show_run_summary(result, self.history)

        return result

    def _execute(self, cmd: list[str], parser: OutputParser) -> int:
        """Spawn rclone and feed its output to the parser until it exits."""
        proc = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
        )
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        write_line = self.history.write_line

        try:
            with StatusLine() as status:
                for chunk in iter(lambda: proc.stdout.read1(READ_CHUNK_SIZE), b""):
                    for event in parser.consume(decoder.decode(chunk), write_line):
                        status.update(event)
                tail = parser.consume(decoder.decode(b"", final=True), write_line)
                for event in tail + parser.close(write_line):
                    status.update(event)
            return proc.wait()
        except KeyboardInterrupt:
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
            raise
        finally:
            if proc.stdout is not None:
                proc.stdout.close()


def run_measurement(
    remote: str,
    folder: str,
    extra_args: list[str],
    fast_list_mode: FastListMode,
    history: HistoryWriter,
    rclone: str = "rclone",
) -> RunResult:
    """Measure one folder with a fresh SizeRunner."""
    return SizeRunner(history, rclone=rclone).run(remote, folder, extra_args, fast_list_mode)
