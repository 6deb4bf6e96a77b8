"""Console output formatting utilities for fanout.

Job output owns stdout; everything the tool itself says goes to stderr.
"""

from __future__ import annotations

import sys
from typing import Optional

from ..model import Job, JobState, RunSummary


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def _err(self, message: str = "") -> None:
        print(message, file=sys.stderr)

    def print_run_started(self, command: str, job_count: int, jobs: int, mode: str) -> None:
        """Print run start information (debug only, stdout is reserved for jobs)."""
        if not self.debug:
            return
        self._err("\nRUN STARTED")
        self._err(f"Command: {command}")
        self._err(f"Jobs: {job_count}")
        self._err(f"Concurrency: {jobs}")
        self._err(f"Mode: {mode}")
        self._err()

    def print_dispatch(self, job: Job) -> None:
        """Echo the built command of a dispatched job."""
        self._err(str(job.command))

    def print_plan(self, index: int, command: str) -> None:
        """Print one planned job (plan / --dry-run)."""
        print(f"{index}\t{command}")

    def print_job_failure(self, job: Job) -> None:
        """Print a one-line failure notice for a finished job."""
        if job.state == JobState.CANCELLED:
            self._err(f"JOB CANCELLED: #{job.index} {job.command}")
            return
        reason = str(job.error).split("\n")[-1] if job.error else f"exit code {job.exit_code}"
        self._err(f"JOB FAILED: #{job.index} ({reason}) {job.command}")

    def print_results(self, summary: RunSummary) -> None:
        """Print final results summary."""
        failed = summary.failed
        cancelled = summary.cancelled_jobs
        if not (failed or cancelled or summary.cancelled or self.debug):
            return
        self._err("\n" + "=" * 40)
        self._err("RESULTS")
        self._err("=" * 40)
        self._err(f"  succeeded:   {len(summary.succeeded)}")
        self._err(f"  failed:      {len(failed)}")
        self._err(f"  cancelled:   {len(cancelled)}")
        self._err(f"  not started: {summary.not_started}")
        if self.debug:
            self._err(f"  peak concurrency: {summary.peak_active}")
        for job in failed:
            self._err(f"  #{job.index}: FAILED (exit={job.exit_code}) {job.command}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        self._err(f"\nERROR: {title}")
        self._err(f"{message}")
        if details:
            for detail in details:
                self._err(f"  {detail}")
        if suggestion:
            self._err(f"\n{suggestion}")

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._err(f"Error: {exc}")

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._err(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._err(f"[DEBUG] {message}")


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
