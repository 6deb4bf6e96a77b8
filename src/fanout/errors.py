# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


class FanoutError(Exception):
    """Base class for every error raised by fanout."""

    kind = "error"


# ----------------------------------------------------------------------
# Pre-dispatch errors (fatal, raised before any process is spawned)
# ----------------------------------------------------------------------

@dataclass
class SourceUnavailable(FanoutError):
    source: str
    reason: str

    kind = "source unavailable"

    def __str__(self) -> str:
        return f"cannot read argument source {self.source}: {self.reason}"


@dataclass
class LengthMismatch(FanoutError):
    lengths: list[int]

    kind = "length mismatch"

    def __str__(self) -> str:
        shown = ", ".join(str(n) for n in self.lengths)
        return f"linked sources must have equal lengths, got [{shown}]"


@dataclass
class UnknownPlaceholder(FanoutError):
    token: str
    placeholder: str

    kind = "unknown placeholder"

    def __str__(self) -> str:
        return f"unknown placeholder {self.placeholder} in {self.token!r}"


@dataclass
class PlaceholderOutOfRange(FanoutError):
    placeholder: str
    arity: int

    kind = "placeholder out of range"

    def __str__(self) -> str:
        return (
            f"placeholder {self.placeholder} refers past the end of the "
            f"argument tuple (jobs have {self.arity} argument(s))"
        )


@dataclass
class ConfigError(FanoutError):
    option: str
    value: str
    message: str

    kind = "invalid option"

    def __str__(self) -> str:
        return f"{self.option}={self.value!r}: {self.message}"


# ----------------------------------------------------------------------
# Per-job errors (recorded on the Job, never raised past the scheduler)
# ----------------------------------------------------------------------

@dataclass
class JobExecutionFailure(FanoutError):
    index: int
    command: str
    exit_code: Optional[int]
    reason: str = ""
    details: dict = field(default_factory=dict)

    kind = "job failed"

    def __str__(self) -> str:
        lines = [f"job {self.index} failed (exit={self.exit_code}): {self.command}"]
        if self.reason:
            lines.append(self.reason)
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class Cancelled(FanoutError):
    index: int
    command: str

    kind = "cancelled"

    def __str__(self) -> str:
        return f"job {self.index} cancelled: {self.command}"


PRE_DISPATCH_ERRORS = (
    SourceUnavailable,
    LengthMismatch,
    UnknownPlaceholder,
    PlaceholderOutOfRange,
    ConfigError,
)
