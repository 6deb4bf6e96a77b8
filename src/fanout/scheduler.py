# scheduler.py
from __future__ import annotations

import signal
import subprocess
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed, wait
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .config import DEFAULT_KILL_AFTER, available_cpus
from .errors import Cancelled, JobExecutionFailure
from .executor import ProcessResult, run_command, signal_group
from .model import Command, Job, JobSpec, JobState, RunSummary

ExecuteFn = Callable[..., ProcessResult]
JobCallback = Callable[[Job], None]


class Scheduler:
    """
    Bounded-concurrency coordinator.

    One coordinator (the thread calling run()) owns the pending iterator,
    the free-slot list and the in-flight map. Workers only touch the Job
    they were handed. The coordinator blocks when every slot is busy and
    wakes on any Job's terminal transition.

      Pending -> Dispatched -> Running -> Succeeded | Failed | Cancelled
    """

    def __init__(
        self,
        concurrency_limit: int | None = None,
        *,
        execute: ExecuteFn = run_command,
        cwd: str | Path | None = None,
        timeout: float | None = None,
        fail_fast: bool = False,
        kill_after: float = DEFAULT_KILL_AFTER,
        on_dispatch: Optional[JobCallback] = None,
        on_finish: Optional[JobCallback] = None,
    ):
        if concurrency_limit is None:
            concurrency_limit = available_cpus()
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")

        self.limit = concurrency_limit
        self.cwd = cwd
        self.timeout = timeout
        self.fail_fast = fail_fast
        self.kill_after = kill_after
        self.on_dispatch = on_dispatch
        self.on_finish = on_finish
        self._execute = execute

        self._cancel = threading.Event()
        self._lock = threading.Lock()  # guards _running and process handles
        self._running: Dict[int, Job] = {}
        self._failed = False

        self.active = 0
        self.peak_active = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Stop dispatching and ask every running process to terminate. Thread-safe."""
        self._cancel.set()
        for proc in self._live_processes():
            _signal(proc, kill=False)

    def run(
        self,
        items: Iterable[Tuple[JobSpec, Command]],
        total: int | None = None,
    ) -> RunSummary:
        """
        Dispatch (JobSpec, Command) pairs in order and wait for all of them.

        Returns a RunSummary whose jobs are ordered by index. Per-job failures
        are recorded on the Jobs; nothing raised by a job escapes this call.
        """
        if total is None and hasattr(items, "__len__"):
            total = len(items)  # type: ignore[arg-type]

        pending = iter(items)
        exhausted = False
        free_slots: List[int] = list(range(self.limit, 0, -1))
        in_flight: Dict[Future, Job] = {}
        finished: List[Job] = []

        with ThreadPoolExecutor(max_workers=self.limit, thread_name_prefix="fanout-slot") as pool:
            try:
                while True:
                    # fill every free slot
                    while free_slots and not exhausted and not self._halted():
                        item = next(pending, None)
                        if item is None:
                            exhausted = True
                            break
                        spec, command = item
                        job = Job(spec=spec, command=command, slot=free_slots.pop())
                        self._dispatch(pool, job, in_flight)

                    if not in_flight or self.cancelled:
                        break

                    # wait for one completion, then loop to refill the freed slot
                    fut = next(as_completed(list(in_flight.keys())))
                    self._complete(fut, in_flight, free_slots, finished)
            except KeyboardInterrupt:
                self.cancel()

            self._drain(in_flight, free_slots, finished)

        finished.sort(key=lambda j: j.index)
        return RunSummary(
            jobs=finished,
            total=total if total is not None else len(finished),
            cancelled=self.cancelled,
            peak_active=self.peak_active,
        )

    # ------------------------------------------------------------------
    # Coordinator side
    # ------------------------------------------------------------------

    def _halted(self) -> bool:
        return self.cancelled or (self.fail_fast and self._failed)

    def _dispatch(self, pool: ThreadPoolExecutor, job: Job, in_flight: Dict[Future, Job]) -> None:
        job.state = JobState.DISPATCHED
        if self.on_dispatch is not None:
            self.on_dispatch(job)

        with self._lock:
            self._running[job.index] = job
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)

        in_flight[pool.submit(self._run_job, job)] = job

    def _complete(
        self,
        fut: Future,
        in_flight: Dict[Future, Job],
        free_slots: List[int],
        finished: List[Job],
    ) -> None:
        job = in_flight[fut]
        try:
            try:
                fut.result()
            except Exception as e:
                # execute() blew up in an unexpected way; isolate it to this job
                job.state = JobState.FAILED
                job.ended_at = job.ended_at or time.time()
                job.error = JobExecutionFailure(
                    index=job.index,
                    command=str(job.command),
                    exit_code=None,
                    reason=f"{type(e).__name__}: {e}",
                )

            if job.state == JobState.FAILED:
                self._failed = True
            if self.on_finish is not None:
                self.on_finish(job)
        finally:
            # the job is accounted for even if on_finish is interrupted
            del in_flight[fut]
            with self._lock:
                self._running.pop(job.index, None)
            self.active -= 1
            free_slots.append(job.slot)
            finished.append(job)

    def _drain(self, in_flight: Dict[Future, Job], free_slots: List[int], finished: List[Job]) -> None:
        """Wait for every in-flight job, escalating to SIGKILL after a grace period."""
        if not in_flight:
            return
        if self.cancelled:
            _done, not_done = wait(list(in_flight.keys()), timeout=self.kill_after)
            if not_done:
                for proc in self._live_processes():
                    _signal(proc, kill=True)
        for fut in as_completed(list(in_flight.keys())):
            self._complete(fut, in_flight, free_slots, finished)

    def _live_processes(self) -> List[subprocess.Popen]:
        with self._lock:
            return [j.process for j in self._running.values() if j.process is not None]

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _attach(self, job: Job, proc: subprocess.Popen) -> None:
        with self._lock:
            job.process = proc
            cancelled = self.cancelled
        if cancelled:
            _signal(proc, kill=False)

    def _run_job(self, job: Job) -> Job:
        job.state = JobState.RUNNING
        job.started_at = time.time()

        try:
            result = self._execute(
                job.command,
                cwd=self.cwd,
                timeout=self.timeout,
                on_spawn=lambda proc: self._attach(job, proc),
            )
        except JobExecutionFailure as e:
            job.ended_at = time.time()
            job.exit_code = e.exit_code
            job.stderr = f"fanout: {e.reason}\n".encode()
            job.error = replace(e, index=job.index)
            job.state = JobState.FAILED
            return job
        finally:
            with self._lock:
                job.process = None

        job.ended_at = time.time()
        job.stdout = result.stdout
        job.stderr = result.stderr
        job.exit_code = result.exit_code
        job.signal = result.signal

        if result.exit_code == 0 and not result.timed_out:
            job.state = JobState.SUCCEEDED
        elif self.cancelled and result.signal is not None and not result.timed_out:
            job.state = JobState.CANCELLED
            job.error = Cancelled(index=job.index, command=str(job.command))
        else:
            job.state = JobState.FAILED
            job.error = JobExecutionFailure(
                index=job.index,
                command=str(job.command),
                exit_code=result.exit_code,
                reason=_failure_reason(result, self.timeout),
            )
        return job


def _failure_reason(result: ProcessResult, timeout: float | None) -> str:
    if result.timed_out:
        return f"timed out after {timeout:g}s"
    if result.signal is not None:
        return f"killed by signal {result.signal}"
    return f"exited with status {result.exit_code}"


def _signal(proc: subprocess.Popen, *, kill: bool) -> None:
    signal_group(proc, signal.SIGKILL if kill else signal.SIGTERM)
