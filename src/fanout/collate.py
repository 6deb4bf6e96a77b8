# collate.py
from __future__ import annotations

import threading
from typing import BinaryIO, Dict

from .model import Job


class OutputCollator:
    """
    Emits each finished Job's captured output as one contiguous block.

    Completion order (default): a Job is written as soon as it is added.
    Keep-order: Jobs are held until every lower index has been written, so a
    fast job may wait behind a slow one.
    """

    def __init__(
        self,
        stdout: BinaryIO,
        stderr: BinaryIO,
        *,
        keep_order: bool = False,
        tag: bool = False,
        first_index: int = 1,
    ):
        self.stdout = stdout
        self.stderr = stderr
        self.keep_order = keep_order
        self.tag = tag

        self._lock = threading.Lock()
        self._held: Dict[int, Job] = {}
        self._next_index = first_index
        self.emitted = 0

    def add(self, job: Job) -> None:
        """Accept a Job in a terminal state."""
        if not job.is_terminal:
            raise ValueError(f"job {job.index} is not finished (state={job.state.value})")

        with self._lock:
            if not self.keep_order:
                self._emit(job)
                return

            self._held[job.index] = job
            while self._next_index in self._held:
                self._emit(self._held.pop(self._next_index))
                self._next_index += 1

    def flush(self) -> None:
        """Emit every held Job in index order, skipping gaps left by jobs that never ran."""
        with self._lock:
            for index in sorted(self._held):
                self._emit(self._held.pop(index))
                self._next_index = index + 1

    @property
    def pending(self) -> int:
        return len(self._held)

    def _emit(self, job: Job) -> None:
        if job.stdout:
            self.stdout.write(self._format(job, job.stdout))
            self.stdout.flush()
        if job.stderr:
            self.stderr.write(self._format(job, job.stderr))
            self.stderr.flush()
        self.emitted += 1

    def _format(self, job: Job, data: bytes) -> bytes:
        if not self.tag:
            return data
        prefix = ("\t".join(job.args) + "\t").encode()
        lines = data.splitlines(keepends=True)
        return b"".join(prefix + line for line in lines)
