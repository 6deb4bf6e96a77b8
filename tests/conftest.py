from __future__ import annotations

import sys
import threading
import time

import pytest

from fanout.executor import ProcessResult
from fanout.model import Command, JobSpec

PYTHON = sys.executable


def py(code: str, *args: str) -> Command:
    """A Command running a short Python snippet."""
    return Command(argv=(PYTHON, "-c", code, *args))


def items(n: int, program: str = "job"):
    return [(JobSpec(index=i, args=(str(i),)), Command(argv=(program, str(i)))) for i in range(1, n + 1)]


class FakeExecutor:
    """Stands in for run_command: sleeps, records concurrency, echoes argv."""

    def __init__(self, delay: float = 0.05, delays: dict | None = None, fail: set | None = None):
        self.delay = delay
        self.delays = delays or {}
        self.fail = fail or set()
        self.lock = threading.Lock()
        self.current = 0
        self.peak = 0
        self.calls: list[Command] = []

    def __call__(self, command, *, cwd=None, timeout=None, on_spawn=None):
        with self.lock:
            self.calls.append(command)
            self.current += 1
            self.peak = max(self.peak, self.current)
        time.sleep(self.delays.get(command.argv[-1], self.delay))
        with self.lock:
            self.current -= 1
        code = 1 if command.argv[-1] in self.fail else 0
        return ProcessResult(stdout=(" ".join(command.argv) + "\n").encode(), stderr=b"", exit_code=code)


@pytest.fixture
def fake():
    return FakeExecutor()
