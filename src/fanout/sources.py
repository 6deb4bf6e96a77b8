# sources.py
from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterable, Iterator, List, Optional, Union

from .errors import ConfigError, SourceUnavailable
from .model import ArgumentSequence

# ----------------------------------------------------------------------
# Source descriptors
# ----------------------------------------------------------------------
# :::  a b c      -> LiteralSource(("a", "b", "c"))
# :::: args.txt   -> FileSource("args.txt")    ("-" reads stdin)
# (no source)     -> StdinSource()
# ----------------------------------------------------------------------

READ_CHUNK = 64 * 1024


@dataclass(frozen=True)
class LiteralSource:
    tokens: tuple[str, ...]

    def describe(self) -> str:
        return "::: " + " ".join(self.tokens)


@dataclass(frozen=True)
class FileSource:
    path: str

    @property
    def is_stdin(self) -> bool:
        return self.path == "-"

    def describe(self) -> str:
        return "<stdin>" if self.is_stdin else self.path


@dataclass(frozen=True)
class StdinSource:
    stream: Optional[IO[str]] = None

    def describe(self) -> str:
        return "<stdin>"


Source = Union[LiteralSource, FileSource, StdinSource]


def decode_delimiter(value: str) -> str:
    """Turn a user-supplied delimiter such as '\\t' or '\\0' into the real character."""
    if not value:
        raise ConfigError(option="--delimiter", value=value, message="must not be empty")
    if value.startswith("\\") and len(value) > 1:
        try:
            decoded = value.encode("ascii", "backslashreplace").decode("unicode_escape")
        except UnicodeDecodeError as e:
            raise ConfigError(option="--delimiter", value=value, message=f"bad escape ({e.reason})") from None
        if not decoded:
            raise ConfigError(option="--delimiter", value=value, message="must not be empty")
        return decoded
    return value


def split_records(stream: IO[str], delimiter: str = "\n") -> Iterator[str]:
    """
    Lazily split a text stream into records.

    The trailing delimiter is trimmed from each record; a final record with
    no trailing delimiter is still yielded, a trailing delimiter does not
    produce an empty extra record. For newline-delimited input a trailing
    carriage return is trimmed as well.
    """
    pending = ""
    for chunk in iter(lambda: stream.read(READ_CHUNK), ""):
        pending += chunk
        *complete, pending = pending.split(delimiter)
        for record in complete:
            yield _trim(record, delimiter)
    if pending:
        yield _trim(pending, delimiter)


def _trim(record: str, delimiter: str) -> str:
    if delimiter == "\n" and record.endswith("\r"):
        return record[:-1]
    return record


def iter_records(source: Source, delimiter: str = "\n") -> Iterator[str]:
    """Yield the records of one source, one per line/token."""
    if isinstance(source, LiteralSource):
        yield from source.tokens
        return

    if isinstance(source, StdinSource) or (isinstance(source, FileSource) and source.is_stdin):
        stream = getattr(source, "stream", None) or sys.stdin
        yield from split_records(stream, delimiter)
        return

    if isinstance(source, FileSource):
        path = Path(source.path).expanduser()
        try:
            fh = path.open("r", encoding="utf-8", newline="")
        except OSError as e:
            raise SourceUnavailable(source=source.path, reason=e.strerror or str(e)) from e
        with fh:
            yield from split_records(fh, delimiter)
        return

    raise TypeError(f"unsupported argument source: {source!r}")


def read_sources(sources: Iterable[Source], delimiter: str = "\n") -> List[ArgumentSequence]:
    """
    Fully materialize every source, independently and in order.

    Raises:
        SourceUnavailable: a file source cannot be opened or read.
    """
    sequences: List[ArgumentSequence] = []
    for source in sources:
        try:
            sequences.append(tuple(iter_records(source, delimiter)))
        except UnicodeDecodeError as e:
            raise SourceUnavailable(source=source.describe(), reason=str(e)) from e
    return sequences
