# runner.py
from __future__ import annotations

import sys
from contextlib import ExitStack
from dataclasses import dataclass
from typing import BinaryIO, Iterator, Optional, Tuple

from .collate import OutputCollator
from .config import RunConfig, parse_jobs
from .expand import JobSet, expand
from .joblog import JobLog
from .model import ArgumentSequence, Command, Job, JobSpec, RunSummary
from .scheduler import ExecuteFn, JobCallback, Scheduler
from .executor import run_command
from .sources import StdinSource, read_sources
from .template import CommandTemplate

# sources -> expand -> template -> scheduler -> collator


@dataclass
class Plan:
    """A validated run: nothing in here can fail before dispatch any more."""
    sequences: list[ArgumentSequence]
    job_set: JobSet
    template: CommandTemplate

    def __len__(self) -> int:
        return len(self.job_set)

    def commands(self) -> Iterator[Tuple[JobSpec, Command]]:
        for spec in self.job_set:
            yield spec, self.template.build(spec)


# ----------------------------------------------------------------------
# Validation (everything that must fail before any process is spawned)
# ----------------------------------------------------------------------

def prepare(config: RunConfig) -> Plan:
    """
    Read sources, expand them and check the template against the job arity.

    Raises:
        SourceUnavailable, LengthMismatch, UnknownPlaceholder,
        PlaceholderOutOfRange, ConfigError
    """
    template = CommandTemplate.parse(config.template, shell=config.shell)

    sources = list(config.sources) or [StdinSource()]
    sequences = read_sources(sources, delimiter=config.delimiter)

    job_set = expand(sequences, config.mode)
    template.check_arity(job_set.arity)

    parse_jobs(config.jobs, total=len(job_set))
    return Plan(sequences=sequences, job_set=job_set, template=template)


# ----------------------------------------------------------------------
# Execution
# ----------------------------------------------------------------------

def run_plan(
    plan: Plan,
    config: RunConfig,
    *,
    stdout: Optional[BinaryIO] = None,
    stderr: Optional[BinaryIO] = None,
    on_dispatch: Optional[JobCallback] = None,
    on_finish: Optional[JobCallback] = None,
    execute: ExecuteFn = run_command,
) -> RunSummary:
    stdout = stdout if stdout is not None else sys.stdout.buffer
    stderr = stderr if stderr is not None else sys.stderr.buffer

    collator = OutputCollator(stdout, stderr, keep_order=config.keep_order, tag=config.tag)

    with ExitStack() as stack:
        joblog = stack.enter_context(JobLog(config.joblog)) if config.joblog else None

        def finished(job: Job) -> None:
            collator.add(job)
            if joblog is not None:
                joblog.record(job)
            if on_finish is not None:
                on_finish(job)

        scheduler = Scheduler(
            parse_jobs(config.jobs, total=len(plan)),
            execute=execute,
            cwd=config.workdir,
            timeout=config.timeout,
            fail_fast=config.fail_fast,
            kill_after=config.kill_after,
            on_dispatch=on_dispatch,
            on_finish=finished,
        )
        try:
            summary = scheduler.run(plan.commands(), total=len(plan))
        finally:
            collator.flush()

    return summary


def run_parallel(config: RunConfig, **kwargs) -> RunSummary:
    """Validate and run in one go. See run_plan() for keyword arguments."""
    return run_plan(prepare(config), config, **kwargs)
