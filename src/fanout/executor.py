# executor.py
from __future__ import annotations

import errno
import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .errors import JobExecutionFailure
from .model import Command

# Exit codes a POSIX shell reports for spawn failures
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127


@dataclass(frozen=True)
class ProcessResult:
    stdout: bytes
    stderr: bytes
    exit_code: int
    signal: Optional[int] = None
    timed_out: bool = False


def run_command(
    command: Command,
    *,
    cwd: str | Path | None = None,
    timeout: float | None = None,
    on_spawn: Optional[Callable[[subprocess.Popen], None]] = None,
) -> ProcessResult:
    """
    Run one command as an OS process and capture its output.

    The process leads its own session, so signal_group() reaches anything
    it forks as well.

    Args:
        command: Command to run (argv, or a shell script when command.shell)
        cwd: Optional working directory
        timeout: Seconds before the process is killed (None = no limit)
        on_spawn: Called with the live process handle right after spawning,
                  so the caller can terminate it later

    Returns:
        ProcessResult with captured stdout/stderr bytes and the exit code.
        A process killed by a signal reports exit_code=-signal and signal set.

    Raises:
        JobExecutionFailure: the process could not be spawned at all.
    """
    try:
        proc = subprocess.Popen(
            command.argv[0] if command.shell else list(command.argv),
            shell=command.shell,
            cwd=str(cwd) if cwd is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        code = EXIT_NOT_FOUND if e.errno == errno.ENOENT else EXIT_NOT_EXECUTABLE
        raise JobExecutionFailure(
            index=0,
            command=str(command),
            exit_code=code,
            reason=f"cannot start {command.program!r}: {e.strerror or e}",
        ) from e

    if on_spawn is not None:
        on_spawn(proc)

    timed_out = False
    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        timed_out = True
        signal_group(proc, signal.SIGKILL)
        stdout, stderr = proc.communicate()

    code = proc.returncode
    return ProcessResult(
        stdout=stdout or b"",
        stderr=stderr or b"",
        exit_code=code,
        signal=-code if code < 0 else None,
        timed_out=timed_out,
    )


def signal_group(proc: subprocess.Popen, sig: int) -> None:
    """Send `sig` to the process group led by `proc`."""
    if proc.returncode is not None:
        # reaped; its pid may already belong to someone else
        return
    try:
        os.killpg(proc.pid, sig)
    except ProcessLookupError:
        pass
