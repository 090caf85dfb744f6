"""Closed integer intervals observed across several runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Interval:
    """Observed range ``[lo, hi]`` of a count or a cycle delta."""

    lo: int
    hi: int

    def __post_init__(self) -> None:
        if self.lo > self.hi:
            raise ValueError(f"empty interval [{self.lo}, {self.hi}]")

    @classmethod
    def const(cls, n: int) -> "Interval":
        return cls(n, n)

    @property
    def max(self) -> int:
        return self.hi

    @property
    def min(self) -> int:
        return self.lo

    def merge(self, value: Union[int, "Interval"]) -> "Interval":
        """Smallest interval containing ``self`` and *value*."""
        if isinstance(value, Interval):
            lo, hi = value.lo, value.hi
        else:
            lo = hi = value
        if lo >= self.lo and hi <= self.hi:
            return self
        return Interval(min(self.lo, lo), max(self.hi, hi))

    def to_list(self):
        return [self.lo, self.hi]

    def __str__(self) -> str:
        return f"[{self.lo}, {self.hi}]"


def merge_ranges(value: Union[int, Interval], interval: Optional[Interval]) -> Interval:
    """``merge(n, [lo, hi]) = [min(lo, n), max(hi, n)]``; ``None`` seeds ``[n, n]``."""
    if interval is None:
        if isinstance(value, Interval):
            return value
        return Interval.const(value)
    return interval.merge(value)
