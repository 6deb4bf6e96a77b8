# joblog.py
from __future__ import annotations

import threading
from pathlib import Path
from typing import IO, Optional

from .errors import ConfigError
from .model import Job

# Seq Host Starttime JobRuntime Send Receive Exitval Signal Command
COLUMNS = (
    "Seq",
    "Host",
    "Starttime",
    "JobRuntime",
    "Send",
    "Receive",
    "Exitval",
    "Signal",
    "Command",
)
LOCAL_HOST = ":"


def format_row(job: Job) -> str:
    exitval = job.exit_code if job.exit_code is not None and job.exit_code >= 0 else 0
    fields = [
        str(job.index),
        LOCAL_HOST,
        f"{job.started_at or 0.0:.3f}",
        f"{job.runtime:.3f}",
        "0",
        str(len(job.stdout)),
        str(exitval),
        str(job.signal or 0),
        str(job.command),
    ]
    return "\t".join(fields)


class JobLog:
    """Tab-separated record of every finished job, written in completion order."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._fh: Optional[IO[str]] = None
        self._lock = threading.Lock()

    def __enter__(self) -> "JobLog":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def open(self) -> None:
        """
        Raises:
            ConfigError: the log file cannot be created.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._fh = self.path.open("w", encoding="utf-8")
        except OSError as e:
            raise ConfigError(option="--joblog", value=str(self.path), message=e.strerror or str(e)) from e
        self._fh.write("\t".join(COLUMNS) + "\n")
        self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def record(self, job: Job) -> None:
        if self._fh is None:
            raise RuntimeError("job log is not open")
        with self._lock:
            self._fh.write(format_row(job) + "\n")
            self._fh.flush()
