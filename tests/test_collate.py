from __future__ import annotations

import io
import threading

import pytest

from fanout.collate import OutputCollator
from fanout.model import Command, Job, JobSpec, JobState


def finished_job(index, stdout=b"", stderr=b"", args=None, state=JobState.SUCCEEDED):
    args = args if args is not None else (str(index),)
    return Job(
        spec=JobSpec(index, tuple(args)),
        command=Command(argv=("echo", *args)),
        state=state,
        stdout=stdout,
        stderr=stderr,
    )


@pytest.fixture
def streams():
    return io.BytesIO(), io.BytesIO()


def test_completion_order_emits_immediately(streams):
    out, err = streams
    collator = OutputCollator(out, err)
    collator.add(finished_job(3, b"three\n"))
    assert out.getvalue() == b"three\n"
    collator.add(finished_job(1, b"one\n"))
    assert out.getvalue() == b"three\none\n"


def test_keep_order_holds_later_jobs(streams):
    out, err = streams
    collator = OutputCollator(out, err, keep_order=True)

    collator.add(finished_job(3, b"three\n"))
    collator.add(finished_job(2, b"two\n"))
    assert out.getvalue() == b""
    assert collator.pending == 2

    collator.add(finished_job(1, b"one\n"))
    assert out.getvalue() == b"one\ntwo\nthree\n"
    assert collator.pending == 0


def test_flush_emits_held_jobs_across_gaps(streams):
    out, err = streams
    collator = OutputCollator(out, err, keep_order=True)
    collator.add(finished_job(4, b"four\n"))
    collator.add(finished_job(2, b"two\n"))
    collator.flush()
    assert out.getvalue() == b"two\nfour\n"


def test_stdout_and_stderr_go_to_their_streams(streams):
    out, err = streams
    collator = OutputCollator(out, err)
    collator.add(finished_job(1, b"out\n", b"err\n", state=JobState.FAILED))
    assert out.getvalue() == b"out\n"
    assert err.getvalue() == b"err\n"


def test_tag_prefixes_every_line(streams):
    out, err = streams
    collator = OutputCollator(out, err, tag=True)
    collator.add(finished_job(1, b"x\ny\n", args=("A", "1")))
    collator.add(finished_job(2, b"no newline", args=("B", "2")))
    assert out.getvalue() == b"A\t1\tx\nA\t1\ty\nB\t2\tno newline"


def test_unfinished_job_is_rejected(streams):
    out, err = streams
    with pytest.raises(ValueError):
        OutputCollator(out, err).add(finished_job(1, state=JobState.RUNNING))


def test_concurrent_blocks_never_interleave(streams):
    out, err = streams
    collator = OutputCollator(out, err)
    jobs = [
        finished_job(i, b"".join(f"job{i} line{k}\n".encode() for k in range(200)))
        for i in range(1, 17)
    ]

    threads = [threading.Thread(target=collator.add, args=(job,)) for job in jobs]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    lines = out.getvalue().decode().splitlines()
    assert len(lines) == 16 * 200
    owners = [line.split()[0] for line in lines]
    # each job's lines form one contiguous run
    runs = [owners[0]] + [b for a, b in zip(owners, owners[1:]) if a != b]
    assert sorted(runs) == sorted(f"job{i}" for i in range(1, 17))
    assert collator.emitted == 16
