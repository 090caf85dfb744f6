"""
tracefacts.frequency
====================

Accumulates execution frequencies over several runs of a scope.

A *run* is one activation of a scope (one call of a recorded function, or
one execution of the analysis entry).  During a run counts are tallied in
an owned :class:`_Run`; :meth:`FrequencyRecord.stop` folds the tally into
the cross-run intervals and drops it.  Intervals only ever widen:

* the first run seeds every tallied program point with ``[n, n]``;
* later runs widen the interval of every tallied point by its count, and
  widen every point *not* tallied in this run by ``0``;
* loop bounds take one sample per completed loop execution;
* call targets are a plain union over all runs.
"""

from __future__ import annotations

import logging
import sys
from typing import Dict, Hashable, Optional, Set, TextIO

from .errors import RecorderStateError
from .intervals import Interval, merge_ranges

_log = logging.getLogger(__name__)


class _Run:
    """Tallies of the run in progress."""

    __slots__ = ("start_cycles", "blocks", "loops")

    def __init__(self, start_cycles: int) -> None:
        self.start_cycles = start_cycles
        self.blocks: Dict[Hashable, int] = {}
        self.loops: Dict[Hashable, int] = {}


class FrequencyRecord:
    """Per-recorder block frequencies, loop bounds, call targets and cycles."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.runs = 0
        self.cycles: Optional[Interval] = None
        self.blockfreqs: Optional[Dict[Hashable, Interval]] = None
        self.loopbounds: Dict[Hashable, Interval] = {}
        self.calltargets: Dict[Hashable, Set] = {}
        self._current: Optional[_Run] = None

    @property
    def running(self) -> bool:
        return self._current is not None

    def start(self, cycles: int) -> None:
        self.runs += 1
        self._current = _Run(cycles)

    def init_block(self, pp: Hashable) -> None:
        if self._current is not None:
            self._current.blocks.setdefault(pp, 0)

    def increment_block(self, pp: Hashable) -> None:
        if self._current is not None:
            blocks = self._current.blocks
            blocks[pp] = blocks.get(pp, 0) + 1

    def start_loop(self, hpp: Hashable) -> None:
        if self._current is not None:
            self._current.loops[hpp] = 1

    def increment_loop(self, hpp: Hashable) -> None:
        if self._current is not None and hpp in self._current.loops:
            self._current.loops[hpp] += 1

    def stop_loop(self, hpp: Hashable) -> None:
        if self._current is None:
            return
        count = self._current.loops.pop(hpp, None)
        if count is not None:
            self.loopbounds[hpp] = merge_ranges(count, self.loopbounds.get(hpp))

    def call(self, callsite: Hashable, callee) -> None:
        if self._current is not None and callsite is not None:
            self.calltargets.setdefault(callsite, set()).add(callee)

    def stop(self, cycles: int) -> None:
        run = self._current
        if run is None:
            raise RecorderStateError(f"Recorder: stop without start: {self.name}")
        self.cycles = merge_ranges(cycles - run.start_cycles, self.cycles)
        if self.blockfreqs is None:
            self.blockfreqs = {pp: Interval.const(n) for pp, n in run.blocks.items()}
        else:
            freqs = self.blockfreqs
            for pp, count in run.blocks.items():
                if pp in freqs:
                    freqs[pp] = freqs[pp].merge(count)
                else:
                    freqs[pp] = Interval(0, count)
            for pp in freqs:
                if pp not in run.blocks:
                    freqs[pp] = freqs[pp].merge(0)
        _log.debug("%s: run %d took %d cycles", self.name, self.runs, cycles - run.start_cycles)
        self._current = None

    # ----- reporting --------------------------------------------------------

    def dump(self, io: Optional[TextIO] = None, header: Optional[str] = None) -> None:
        io = io if io is not None else sys.stdout
        if self.blockfreqs is None:
            io.write("No records\n")
            return
        io.write("---\n")
        if header:
            io.write(header + "\n")
        io.write(f"  runs: {self.runs}\n")
        io.write(f"  cycles: {self.cycles}\n")
        for pp in sorted(self.blockfreqs, key=str):
            io.write(f"  {str(pp).ljust(15)} \\in {self.blockfreqs[pp]}\n")
        for site, receivers in self.calltargets.items():
            io.write(f"  {site} calls {', '.join(sorted(str(r) for r in receivers))}\n")
        for loop, bound in self.loopbounds.items():
            io.write(f"  Loop {loop} in {bound}\n")

    def __str__(self) -> str:
        return f"FrequencyRecord{{ name = {self.name} }}"
