from __future__ import annotations

import io

import pytest

from fanout.config import RunConfig
from fanout.errors import LengthMismatch, PlaceholderOutOfRange, SourceUnavailable, UnknownPlaceholder
from fanout.expand import CombineMode
from fanout.model import JobState
from fanout.runner import prepare, run_parallel
from fanout.sources import FileSource, LiteralSource

from conftest import FakeExecutor

ABC = LiteralSource(("A", "B", "C"))
NUMS = LiteralSource(("1", "2", "3"))


def run(config, fake):
    out, err = io.BytesIO(), io.BytesIO()
    summary = run_parallel(config, stdout=out, stderr=err, execute=fake)
    return summary, out.getvalue(), err.getvalue()


def test_prepare_builds_cartesian_plan():
    plan = prepare(RunConfig(template=["cmd", "{2}", "{1}"], sources=[ABC, NUMS]))
    assert len(plan) == 9
    commands = [str(c) for _, c in plan.commands()]
    assert commands[:4] == ["cmd 1 A", "cmd 2 A", "cmd 3 A", "cmd 1 B"]
    assert commands[-1] == "cmd 3 C"


def test_prepare_builds_linked_plan():
    plan = prepare(RunConfig(template=["cmd"], sources=[ABC, NUMS], mode=CombineMode.LINKED))
    assert [str(c) for _, c in plan.commands()] == ["cmd A 1", "cmd B 2", "cmd C 3"]


@pytest.mark.parametrize(
    "config, error",
    [
        (RunConfig(template=["cmd"], sources=[ABC, LiteralSource(("1",))], mode=CombineMode.LINKED), LengthMismatch),
        (RunConfig(template=["cmd", "{3}"], sources=[ABC, NUMS]), PlaceholderOutOfRange),
        (RunConfig(template=["cmd", "{bad}"], sources=[ABC]), UnknownPlaceholder),
        (RunConfig(template=["cmd"], sources=[ABC, FileSource("/nonexistent/fanout/args")]), SourceUnavailable),
    ],
)
def test_malformed_requests_fail_before_any_dispatch(config, error):
    fake = FakeExecutor()
    with pytest.raises(error):
        run(config, fake)
    assert fake.calls == []


def test_run_keep_order_output():
    fake = FakeExecutor(delays={"1": 0.2, "2": 0.1, "3": 0.0})
    config = RunConfig(template=["echo"], sources=[NUMS], jobs="3", keep_order=True)
    summary, out, _ = run(config, fake)
    assert out == b"echo 1\necho 2\necho 3\n"
    assert summary.exit_code == 0
    assert summary.total == 3


def test_run_completion_order_output():
    fake = FakeExecutor(delays={"1": 0.3, "2": 0.15, "3": 0.0})
    config = RunConfig(template=["echo"], sources=[NUMS], jobs="3")
    _, out, _ = run(config, fake)
    assert out == b"echo 3\necho 2\necho 1\n"


def test_run_records_failures_and_writes_joblog(tmp_path):
    fake = FakeExecutor(fail={"2"})
    log = tmp_path / "jobs.tsv"
    config = RunConfig(template=["echo"], sources=[NUMS], jobs="2", joblog=log)
    summary, _, _ = run(config, fake)

    assert [j.index for j in summary.failed] == [2]
    assert summary.exit_code == 1
    rows = log.read_text().splitlines()[1:]
    assert sorted(r.split("\t")[0] for r in rows) == ["1", "2", "3"]


def test_run_with_real_processes_and_tag():
    config = RunConfig(template=["echo", "{1}-{2}"], sources=[ABC, NUMS], mode=CombineMode.LINKED,
                       keep_order=True, tag=True)
    out, err = io.BytesIO(), io.BytesIO()
    summary = run_parallel(config, stdout=out, stderr=err)
    assert summary.exit_code == 0
    assert [j.state for j in summary.jobs] == [JobState.SUCCEEDED] * 3
    assert out.getvalue() == b"A\t1\tA-1\nB\t2\tB-2\nC\t3\tC-3\n"


def test_stdin_is_the_default_source(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO("x\ny\n"))
    plan = prepare(RunConfig(template=["echo"]))
    assert [str(c) for _, c in plan.commands()] == ["echo x", "echo y"]
