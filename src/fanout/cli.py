# cli.py
from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterable, List, Tuple

import click

from fanout import __version__
from fanout.config import ENV_JOBS, ENV_SHELL, RunConfig, parse_jobs
from fanout.errors import PRE_DISPATCH_ERRORS, FanoutError
from fanout.expand import CombineMode
from fanout.model import Job, JobState
from fanout.runner import Plan, prepare, run_plan
from fanout.sources import FileSource, LiteralSource, Source, decode_delimiter
from fanout.ui.console import Console, get_console, set_console

LITERAL_SEPARATOR = ":::"
FILE_SEPARATOR = "::::"

EXIT_INVALID = 2
EXIT_INTERRUPTED = 130

SUGGESTIONS = {
    "SourceUnavailable": "Check the file path given after :::: or -a/--arg-file.",
    "LengthMismatch": "Give every source the same number of records, or drop --link for all combinations.",
    "UnknownPlaceholder": "Valid placeholders: {} {N} {.} {/} {//} {/.} {#} (e.g. {2/.}).",
    "PlaceholderOutOfRange": "Placeholders are 1-based and must not exceed the number of ::: / :::: sources.",
}


def split_command_line(words: Iterable[str]) -> Tuple[List[str], List[Source]]:
    """
    Split `COMMAND... ::: a b ::: 1 2 :::: file` into the command template
    and its argument sources.

    Each ::: starts one literal source; every file after :::: is its own source.
    """
    template: List[str] = []
    sources: List[Source] = []
    mode = None
    literal: List[str] = []

    def close_literal() -> None:
        if mode == LITERAL_SEPARATOR:
            sources.append(LiteralSource(tuple(literal)))

    for word in words:
        if word in (LITERAL_SEPARATOR, FILE_SEPARATOR):
            close_literal()
            mode = word
            literal = []
            continue
        if mode is None:
            template.append(word)
        elif mode == LITERAL_SEPARATOR:
            literal.append(word)
        else:
            sources.append(FileSource(word))
    close_literal()

    return template, sources


def build_config(
    words: Tuple[str, ...],
    *,
    jobs: str | None = None,
    link: bool = False,
    keep_order: bool = False,
    tag: bool = False,
    arg_files: Tuple[str, ...] = (),
    delimiter: str | None = None,
    null: bool = False,
    shell: bool = False,
    timeout: float | None = None,
    halt_on_error: bool = False,
    joblog: str | None = None,
    workdir: str | None = None,
    verbose: bool = False,
    dry_run: bool = False,
) -> RunConfig:
    template, sources = split_command_line(words)
    sources = [FileSource(p) for p in arg_files] + sources

    if null:
        record_delimiter = "\0"
    elif delimiter is not None:
        record_delimiter = decode_delimiter(delimiter)
    else:
        record_delimiter = "\n"

    return RunConfig(
        template=template,
        sources=sources,
        jobs=jobs,
        mode=CombineMode.LINKED if link else CombineMode.CARTESIAN,
        keep_order=keep_order,
        tag=tag,
        shell=shell,
        delimiter=record_delimiter,
        timeout=timeout,
        fail_fast=halt_on_error,
        joblog=Path(joblog) if joblog else None,
        workdir=Path(workdir) if workdir else None,
        verbose=verbose,
        dry_run=dry_run,
    )


def _exit_invalid(e: FanoutError) -> None:
    get_console().print_error(
        e.kind.capitalize(),
        str(e),
        suggestion=SUGGESTIONS.get(type(e).__name__),
    )
    sys.exit(EXIT_INVALID)


def _prepare_or_exit(**kwargs) -> Tuple[RunConfig, Plan]:
    """Validate the whole request before anything runs; exit 2 on a malformed one."""
    console = get_console()
    try:
        config = build_config(**kwargs)
        plan = prepare(config)
    except PRE_DISPATCH_ERRORS as e:
        _exit_invalid(e)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)

    lengths = ", ".join(str(len(s)) for s in plan.sequences)
    console.print_debug(f"{len(plan.sequences)} source(s) of length [{lengths}], {len(plan)} job(s)")
    return config, plan


def _print_plan(plan: Plan) -> None:
    console = get_console()
    for spec, command in plan.commands():
        console.print_plan(spec.index, str(command))


def job_options(f):
    """Options shared by `run` and `plan`."""
    decorators = [
        click.argument("words", nargs=-1, required=True, type=click.UNPROCESSED),
        click.option("-j", "--jobs", default=None, envvar=ENV_JOBS,
                     help="Concurrency limit: N, +N, -N, N% of CPUs, or 0 for all at once [default: 100%]"),
        click.option("--link/--no-link", default=False,
                     help="Pair sources positionally instead of forming every combination"),
        click.option("-k", "--keep-order", is_flag=True, default=False,
                     help="Print output in input order instead of completion order"),
        click.option("--tag", is_flag=True, default=False,
                     help="Prefix each output line with the job's arguments"),
        click.option("-a", "--arg-file", "arg_files", multiple=True, metavar="FILE",
                     help="Read arguments from FILE (repeatable, like ::::)"),
        click.option("-d", "--delimiter", default=None,
                     help="Record delimiter for file/stdin sources (escapes like \\t allowed)"),
        click.option("-0", "--null", is_flag=True, default=False,
                     help="Records are NUL-terminated"),
        click.option("--shell/--no-shell", default=False, envvar=ENV_SHELL,
                     help="Run each command through /bin/sh -c with quoted substitutions"),
        click.option("--timeout", type=float, default=None,
                     help="Kill a job after this many seconds"),
        click.option("--halt-on-error/--no-halt-on-error", default=False,
                     help="Stop starting new jobs after the first failure"),
        click.option("--joblog", default=None, metavar="FILE",
                     help="Write a tab-separated log of finished jobs to FILE"),
        click.option("--workdir", default=None, help="Working directory for every job"),
        click.option("-v", "--verbose", is_flag=True, default=False,
                     help="Print each command to stderr before it runs"),
    ]
    for decorator in reversed(decorators):
        f = decorator(f)
    return f


COMMAND_SETTINGS = {"allow_interspersed_args": False}


@click.group()
@click.version_option(__version__, prog_name="fanout")
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """fanout: run a command once per argument combination, in parallel."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command(context_settings=COMMAND_SETTINGS)
@job_options
@click.option("--dry-run", is_flag=True, default=False, help="Print the commands without running them")
@click.pass_context
def run(ctx, words, dry_run, **options):
    """
    Run COMMAND for every argument combination.

    \b
      fanout run echo {1}-{2} ::: A B C ::: 1 2 3
      fanout run --link echo {1}-{2} ::: A B C ::: 1 2 3
      fanout run -j 2 sleep ::: 2 2 2
      ls *.txt | fanout run gzip
    """
    console = get_console()
    config, plan = _prepare_or_exit(words=words, dry_run=dry_run, **options)

    if dry_run:
        _print_plan(plan)
        return

    limit = parse_jobs(config.jobs, total=len(plan))
    console.print_run_started(
        command=" ".join(config.template),
        job_count=len(plan),
        jobs=limit,
        mode=config.mode.value,
    )

    def finished(job: Job) -> None:
        if job.state != JobState.SUCCEEDED and (config.verbose or console.debug):
            console.print_job_failure(job)

    try:
        summary = run_plan(
            plan,
            config,
            stdout=click.get_binary_stream("stdout"),
            stderr=click.get_binary_stream("stderr"),
            on_dispatch=console.print_dispatch if config.verbose else None,
            on_finish=finished,
        )
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(EXIT_INTERRUPTED)
    except PRE_DISPATCH_ERRORS as e:
        # e.g. an unwritable --joblog, found before any job starts
        _exit_invalid(e)
    except FanoutError as e:
        console.print_exception(e)
        sys.exit(1)

    console.print_results(summary)
    if summary.cancelled:
        console.print_info("\nInterrupted by user")
    sys.exit(summary.exit_code)


@cli.command(context_settings=COMMAND_SETTINGS)
@job_options
@click.pass_context
def plan(ctx, words, **options):
    """Print the numbered commands a run would execute, without running them."""
    _config, validated = _prepare_or_exit(words=words, **options)
    _print_plan(validated)


if __name__ == "__main__":
    cli()
