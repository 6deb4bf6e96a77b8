# expand.py
from __future__ import annotations

import itertools
import math
from enum import Enum
from typing import Iterator, List, Sequence

from .errors import LengthMismatch
from .model import ArgumentSequence, JobSpec


class CombineMode(str, Enum):
    CARTESIAN = "cartesian"
    LINKED = "linked"


class JobSet:
    """
    The ordered, restartable set of JobSpecs produced from N argument sequences.

    Cartesian:  [A B] x [1 2] -> (A,1) (A,2) (B,1) (B,2)   (last varies fastest)
    Linked:     [A B] + [1 2] -> (A,1) (B,2)

    Iterating is lazy and can be repeated; every pass yields the same
    JobSpecs with the same indices (starting at 1).
    """

    def __init__(self, sequences: Sequence[ArgumentSequence], mode: CombineMode):
        self.sequences: List[ArgumentSequence] = [tuple(s) for s in sequences]
        self.mode = CombineMode(mode)

        if self.mode == CombineMode.LINKED:
            lengths = [len(s) for s in self.sequences]
            if len(set(lengths)) > 1:
                raise LengthMismatch(lengths=lengths)

    @property
    def arity(self) -> int:
        return len(self.sequences)

    def __len__(self) -> int:
        if not self.sequences:
            return 0
        if self.mode == CombineMode.LINKED:
            return len(self.sequences[0])
        return math.prod(len(s) for s in self.sequences)

    def _tuples(self) -> Iterator[tuple[str, ...]]:
        if not self.sequences:
            return iter(())
        if self.mode == CombineMode.LINKED:
            return zip(*self.sequences)
        return itertools.product(*self.sequences)

    def __iter__(self) -> Iterator[JobSpec]:
        for index, args in enumerate(self._tuples(), start=1):
            yield JobSpec(index=index, args=tuple(args))

    def __repr__(self) -> str:
        return f"JobSet(mode={self.mode.value}, arity={self.arity}, jobs={len(self)})"


def expand(sequences: Sequence[ArgumentSequence], mode: CombineMode = CombineMode.CARTESIAN) -> JobSet:
    """
    Expand argument sequences into a JobSet.

    Raises:
        LengthMismatch: linked mode with sequences of unequal length.
    """
    return JobSet(sequences, mode)
