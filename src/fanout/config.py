# config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .errors import ConfigError
from .expand import CombineMode
from .sources import Source

# Environment defaults (click reads these through `envvar=`)
ENV_JOBS = "FANOUT_JOBS"
ENV_SHELL = "FANOUT_SHELL"

DEFAULT_JOBS = "100%"
DEFAULT_KILL_AFTER = 5.0


def available_cpus() -> int:
    """Number of processing units this process may run on."""
    if hasattr(os, "sched_getaffinity"):
        try:
            return max(1, len(os.sched_getaffinity(0)))
        except OSError:
            pass
    return os.cpu_count() or 1


def parse_jobs(value: str | int | None, total: int | None = None) -> int:
    """
    Resolve a --jobs value to a concurrency limit.

      "8"    -> 8
      "+2"   -> cpus + 2
      "-1"   -> cpus - 1
      "50%"  -> half the cpus
      "0"    -> one slot per job (total), i.e. run everything at once

    The result is always at least 1.

    Raises:
        ConfigError: the value is not one of the forms above.
    """
    if value is None:
        value = DEFAULT_JOBS
    text = str(value).strip()
    cpus = available_cpus()

    try:
        if text.endswith("%"):
            limit = int(cpus * float(text[:-1]) / 100)
        elif text.startswith(("+", "-")):
            limit = cpus + int(text)
        else:
            limit = int(text)
            if limit < 0:
                raise ValueError(text)
            if limit == 0:
                limit = total if total else cpus
    except (ValueError, OverflowError):
        raise ConfigError(
            option="--jobs",
            value=text,
            message="expected N, +N, -N, N% or 0",
        ) from None

    return max(1, limit)


@dataclass
class RunConfig:
    """Everything the pipeline needs, already parsed from the command line."""
    template: List[str]
    sources: List[Source] = field(default_factory=list)
    jobs: Optional[str] = None
    mode: CombineMode = CombineMode.CARTESIAN
    keep_order: bool = False
    tag: bool = False
    shell: bool = False
    delimiter: str = "\n"
    timeout: Optional[float] = None
    fail_fast: bool = False
    joblog: Optional[Path] = None
    workdir: Optional[Path] = None
    verbose: bool = False
    dry_run: bool = False
    kill_after: float = DEFAULT_KILL_AFTER

    def __post_init__(self) -> None:
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError(option="--timeout", value=str(self.timeout), message="must be positive")
        if self.workdir is not None and not Path(self.workdir).is_dir():
            raise ConfigError(option="--workdir", value=str(self.workdir), message="not a directory")
