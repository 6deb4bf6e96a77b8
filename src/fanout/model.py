# model.py
from __future__ import annotations

import shlex
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .errors import FanoutError

ArgumentSequence = tuple[str, ...]


@dataclass(frozen=True)
class JobSpec:
    """One combination of arguments, numbered in expansion order (1-based)."""
    index: int
    args: tuple[str, ...]

    @property
    def arity(self) -> int:
        return len(self.args)


@dataclass(frozen=True)
class Command:
    """A fully substituted command line, ready to execute."""
    argv: tuple[str, ...]
    shell: bool = False

    @property
    def program(self) -> str:
        return self.argv[0]

    def __str__(self) -> str:
        if self.shell:
            return self.argv[0]
        return shlex.join(self.argv)


class JobState(str, Enum):
    PENDING = "pending"
    DISPATCHED = "dispatched"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED)


@dataclass
class Job:
    """
    Runtime record of one dispatched command.

    The coordinator creates it and moves it to DISPATCHED; from then on only
    the worker running it mutates the record.
    """
    spec: JobSpec
    command: Command
    slot: int = 0
    state: JobState = JobState.PENDING

    process: Optional[subprocess.Popen] = field(default=None, repr=False)
    stdout: bytes = b""
    stderr: bytes = b""
    exit_code: Optional[int] = None
    signal: Optional[int] = None
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    error: Optional[FanoutError] = None

    @property
    def index(self) -> int:
        return self.spec.index

    @property
    def args(self) -> tuple[str, ...]:
        return self.spec.args

    @property
    def runtime(self) -> float:
        if self.started_at is None or self.ended_at is None:
            return 0.0
        return self.ended_at - self.started_at

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def ok(self) -> bool:
        return self.state == JobState.SUCCEEDED


@dataclass
class RunSummary:
    """Outcome of a whole run: every Job that reached a terminal state."""
    jobs: list[Job]
    total: int
    cancelled: bool = False
    peak_active: int = 0

    @property
    def succeeded(self) -> list[Job]:
        return [j for j in self.jobs if j.state == JobState.SUCCEEDED]

    @property
    def failed(self) -> list[Job]:
        return [j for j in self.jobs if j.state == JobState.FAILED]

    @property
    def cancelled_jobs(self) -> list[Job]:
        return [j for j in self.jobs if j.state == JobState.CANCELLED]

    @property
    def not_started(self) -> int:
        return self.total - len(self.jobs)

    @property
    def exit_code(self) -> int:
        # 130 mirrors the shell convention for SIGINT
        if self.cancelled:
            return 130
        if self.failed:
            return 1
        return 0
