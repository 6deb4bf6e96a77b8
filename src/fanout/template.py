# template.py
from __future__ import annotations

import posixpath
import re
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .errors import ConfigError, PlaceholderOutOfRange, UnknownPlaceholder
from .model import Command, JobSpec

# ---------------------------------------------------------------------
# Placeholder grammar
# ---------------------------------------------------------------------
#   {}      all arguments            {N}     argument N (1-based)
#   {.}     without extension        {N.}
#   {/}     basename                 {N/}
#   {//}    dirname                  {N//}
#   {/.}    basename w/o extension   {N/.}
#   {#}     job sequence number
# ---------------------------------------------------------------------

_BRACED = re.compile(r"\{([^{}]*)\}")
_PLACEHOLDER = re.compile(r"^(?P<position>[0-9]*)(?P<transform>|\.|/|//|/\.)$")


class Transform(str, Enum):
    NONE = ""
    NO_EXT = "."
    BASENAME = "/"
    DIRNAME = "//"
    BASENAME_NO_EXT = "/."

    def apply(self, value: str) -> str:
        if self is Transform.NONE:
            return value
        if self is Transform.NO_EXT:
            return posixpath.splitext(value)[0]
        if self is Transform.BASENAME:
            return value.rsplit("/", 1)[-1]
        if self is Transform.DIRNAME:
            return posixpath.dirname(value) or "."
        if self is Transform.BASENAME_NO_EXT:
            return posixpath.splitext(value.rsplit("/", 1)[-1])[0]
        raise ValueError(f"unhandled transform: {self!r}")


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Placeholder:
    position: Optional[int]  # None = every argument
    transform: Transform = Transform.NONE

    @property
    def source(self) -> str:
        pos = "" if self.position is None else str(self.position)
        return "{" + pos + self.transform.value + "}"


@dataclass(frozen=True)
class SequenceNumber:
    source: str = "{#}"


Segment = Union[Literal, Placeholder, SequenceNumber]
Token = Tuple[Segment, ...]


def parse_token(token: str, *, shell: bool = False) -> Token:
    """
    Split one template token into literal and placeholder segments.

    In shell mode a brace group right after `$` (`${HOME}`) is shell
    parameter syntax and stays literal.
    """
    segments: List[Segment] = []
    pos = 0
    for m in _BRACED.finditer(token):
        if shell and token[m.start() - 1:m.start()] == "$":
            continue
        if m.start() > pos:
            segments.append(Literal(token[pos:m.start()]))
        segments.append(_parse_placeholder(token, m.group(0), m.group(1)))
        pos = m.end()
    if pos < len(token) or not segments:
        segments.append(Literal(token[pos:]))
    return tuple(segments)


def _parse_placeholder(token: str, raw: str, inner: str) -> Segment:
    if inner == "#":
        return SequenceNumber()
    m = _PLACEHOLDER.match(inner)
    if not m:
        raise UnknownPlaceholder(token=token, placeholder=raw)
    position = int(m.group("position")) if m.group("position") else None
    if position == 0:
        raise UnknownPlaceholder(token=token, placeholder=raw)
    return Placeholder(position=position, transform=Transform(m.group("transform")))


class CommandTemplate:
    """
    A parsed command template.

    Tokens are parsed once into literal/placeholder segments; build() only
    resolves segments against a JobSpec, it never rescans strings.
    """

    def __init__(self, tokens: Sequence[Token], *, shell: bool = False, raw: Sequence[str] = ()):
        self.tokens: Tuple[Token, ...] = tuple(tokens)
        self.shell = shell
        self.raw = tuple(raw)

    @classmethod
    def parse(cls, tokens: Iterable[str], *, shell: bool = False) -> "CommandTemplate":
        raw = list(tokens)
        if not raw or not raw[0]:
            raise ConfigError(option="command", value=" ".join(raw), message="no command given")
        return cls([parse_token(t, shell=shell) for t in raw], shell=shell, raw=raw)

    # ---- introspection ----

    def placeholders(self) -> List[Placeholder]:
        return [seg for tok in self.tokens for seg in tok if isinstance(seg, Placeholder)]

    @property
    def appends_args(self) -> bool:
        """True when no argument placeholder is present and arguments get appended."""
        return not self.placeholders()

    def check_arity(self, arity: int) -> None:
        """
        Raises:
            PlaceholderOutOfRange: a positional placeholder exceeds `arity`.
        """
        for ph in self.placeholders():
            if ph.position is not None and ph.position > arity:
                raise PlaceholderOutOfRange(placeholder=ph.source, arity=arity)

    # ---- building ----

    def build(self, spec: JobSpec) -> Command:
        self.check_arity(spec.arity)

        if self.shell:
            words = [self._render_shell(tok, spec) for tok in self.tokens]
            if self.appends_args:
                words.extend(shlex.quote(a) for a in spec.args)
            return Command(argv=(" ".join(words),), shell=True)

        argv: List[str] = []
        for tok in self.tokens:
            argv.extend(self._render_argv(tok, spec))
        if self.appends_args:
            argv.extend(spec.args)
        return Command(argv=tuple(argv), shell=False)

    def _render_argv(self, token: Token, spec: JobSpec) -> List[str]:
        # a bare {} (or {.} etc.) expands to one argv entry per argument
        if len(token) == 1 and isinstance(token[0], Placeholder) and token[0].position is None:
            return [token[0].transform.apply(a) for a in spec.args]
        return ["".join(self._resolve(seg, spec, quote=False) for seg in token)]

    def _render_shell(self, token: Token, spec: JobSpec) -> str:
        return "".join(self._resolve(seg, spec, quote=True) for seg in token)

    def _resolve(self, segment: Segment, spec: JobSpec, *, quote: bool) -> str:
        if isinstance(segment, Literal):
            return segment.text

        if isinstance(segment, SequenceNumber):
            return str(spec.index)

        if isinstance(segment, Placeholder):
            if segment.position is None:
                values = [segment.transform.apply(a) for a in spec.args]
            else:
                values = [segment.transform.apply(spec.args[segment.position - 1])]
            if quote:
                return " ".join(shlex.quote(v) for v in values)
            return " ".join(values)

        raise TypeError(f"unknown template segment: {segment!r}")

    def __str__(self) -> str:
        return " ".join(self.raw)

    def __repr__(self) -> str:
        return f"CommandTemplate({list(self.raw)!r}, shell={self.shell})"
