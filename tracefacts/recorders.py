"""
tracefacts.recorders
====================

Context-scoped recording of replay events.

:class:`RecorderScheduler` subscribes to the replay and is idle until the
analysis entry function is called.  While running it keeps its own call
stack and, on every function entry, activates one :class:`ScopeRecorder`
per function-scope specification, keyed by ``(scope, spec index, function,
bounded call string)``.  Global specifications get one recorder per
analysis-entry execution key.  Recorders are created on first use and kept
forever; re-activation starts a new run on the same accumulator, so the
results describe every activation of the scope seen in the trace.

A scope recorder forwards events into its :class:`FrequencyRecord` only
while its own nested call depth is within the spec's call-depth limit
(virtual inlining).  It deactivates itself when its scope returns.
"""

from __future__ import annotations

import logging
import sys
from typing import Dict, Hashable, List, Optional, Sequence, Set, TextIO, Tuple

from .callstring import CallString, ContextRef, bounded_suffix, format_callstring
from .events import TraceObserver
from .frequency import FrequencyRecord
from .program_model import Block, Function, Instruction
from .recorder_spec import RecorderSpec, RecorderSpecItem, Scope

_log = logging.getLogger(__name__)

RecorderKey = Tuple[Scope, int, Function, Optional[CallString]]


class RecorderScheduler(TraceObserver):
    """Creates, activates and deactivates scope recorders."""

    def __init__(self, recorder_specs: Sequence[RecorderSpecItem], analysis_entry: Function) -> None:
        self.start = analysis_entry
        self.runs = 0
        self.executed_blocks: Dict[Function, Set[Block]] = {}
        self.global_specs: List[RecorderSpec] = []
        self.function_specs: List[Tuple[int, RecorderSpec]] = []
        for item in recorder_specs:
            if item.scope is Scope.GLOBAL:
                self.global_specs.append(item.spec)
            else:
                self.function_specs.append((item.scope_context, item.spec))
        self.running = False
        self.callstack: List[Optional[Instruction]] = []
        self._recorder_map: Dict[RecorderKey, ScopeRecorder] = {}
        self._active: Dict[int, ScopeRecorder] = {}

    @property
    def recorders(self) -> List["ScopeRecorder"]:
        return list(self._recorder_map.values())

    def global_recorders(self) -> List["ScopeRecorder"]:
        return [r for r in self.recorders if r.is_global]

    def function_recorders(self) -> List["ScopeRecorder"]:
        return [r for r in self.recorders if not r.is_global]

    @property
    def active_recorders(self) -> List["ScopeRecorder"]:
        return list(self._active.values())

    # ----- activation -------------------------------------------------------

    def activate(self, scope: Scope, spec_index: int, function: Function,
                 context: Optional[CallString], spec: RecorderSpec, cycles: int) -> "ScopeRecorder":
        key = (scope, spec_index, function, context)
        recorder = self._recorder_map.get(key)
        if recorder is None:
            recorder = ScopeRecorder(self, len(self._recorder_map), function, context, spec)
            self._recorder_map[key] = recorder
            _log.debug("Created %s", recorder)
        if recorder.rid not in self._active:
            self._active[recorder.rid] = recorder
            recorder.start(function, cycles)
        return recorder

    def deactivate(self, recorder: "ScopeRecorder") -> None:
        self._active.pop(recorder.rid, None)

    # ----- events -----------------------------------------------------------

    def function(self, callee, callsite, cycles):
        if self.running:
            self.callstack.append(callsite)
            for recorder in self.active_recorders:
                recorder.function(callee, callsite, cycles)
        elif callee is self.start:
            self.running = True
            self.runs += 1
            self._active = {}
            self.callstack = []
            for ix, spec in enumerate(self.global_specs):
                self.activate(Scope.GLOBAL, ix, callee, None, spec, cycles)
        if self.running:
            for ix, (scope_context, spec) in enumerate(self.function_specs):
                context = bounded_suffix(self.callstack, scope_context)
                self.activate(Scope.FUNCTION, ix, callee, context, spec, cycles)

    def ret(self, rsite, csite, cycles):
        if not self.running:
            return
        for recorder in self.active_recorders:
            recorder.ret(rsite, csite, cycles)
        if self.callstack:
            self.callstack.pop()
        else:
            self.running = False

    def block(self, block, cycles):
        if not self.running:
            return
        self.executed_blocks.setdefault(block.function, set()).add(block)
        for recorder in self.active_recorders:
            recorder.block(block, cycles)

    def loopenter(self, header, cycles):
        if self.running:
            for recorder in self.active_recorders:
                recorder.loopenter(header, cycles)

    def loopcont(self, header, cycles):
        if self.running:
            for recorder in self.active_recorders:
                recorder.loopcont(header, cycles)

    def loopexit(self, header, cycles):
        if self.running:
            for recorder in self.active_recorders:
                recorder.loopexit(header, cycles)

    def eof(self):
        if self.running:
            _log.warning("Trace ended inside %s; its last run is incomplete", self.start)

    def dump(self, io: Optional[TextIO] = None) -> None:
        io = io if io is not None else sys.stdout
        for recorder in self.recorders:
            recorder.dump(io)


class ScopeRecorder(TraceObserver):
    """Records one function (or the analysis entry, globally) in one context."""

    def __init__(self, scheduler: RecorderScheduler, rid: int, function: Function,
                 context: Optional[CallString], spec: RecorderSpec) -> None:
        self.scheduler = scheduler
        self.rid = rid
        self.function_scope = function
        self.context = context
        self.spec = spec
        self.calllimit = spec.calllimit
        self.callstring_length = spec.entity_context
        self.report_block_frequencies = spec.block_frequencies
        self.record_block_frequencies = spec.block_frequencies or spec.infeasible_blocks
        self.record_calltargets = spec.call_targets
        self.record_loopheaders = spec.loop_bounds
        self.callstack: List[Optional[Instruction]] = []
        ctx = "global" if context is None else format_callstring(context)
        self.results = FrequencyRecord(f"ScopeRecorder_{rid}({function}, {ctx})")

    @property
    def is_global(self) -> bool:
        return self.context is None

    @property
    def scope_type(self) -> str:
        return "global" if self.is_global else "function"

    @property
    def scope(self) -> Hashable:
        if self.context is None:
            return self.function_scope
        return ContextRef(self.function_scope, self.context)

    def active(self) -> bool:
        if self.calllimit is None:
            return True
        return len(self.callstack) <= self.calllimit

    def in_context(self, entity) -> ContextRef:
        return ContextRef(entity, bounded_suffix(self.callstack, self.callstring_length))

    # ----- events -----------------------------------------------------------

    def start(self, function: Function, cycles: int) -> None:
        self.results.start(cycles)
        self.callstack = []
        for block in function.blocks:
            self.results.init_block(self.in_context(block))

    def function(self, callee, callsite, cycles):
        if self.record_calltargets and self.active():
            self.results.call(self.in_context(callsite), callee)
        self.callstack.append(callsite)
        if self.active():
            for block in callee.blocks:
                self.results.init_block(self.in_context(block))

    def block(self, block, cycles):
        if self.record_block_frequencies and self.active():
            self.results.increment_block(self.in_context(block))

    def loopenter(self, header, cycles):
        if self.record_loopheaders and self.active():
            self.results.start_loop(self.in_context(header))

    def loopcont(self, header, cycles):
        if self.record_loopheaders and self.active():
            self.results.increment_loop(self.in_context(header))

    def loopexit(self, header, cycles):
        if self.record_loopheaders and self.active():
            self.results.stop_loop(self.in_context(header))

    def ret(self, rsite, csite, cycles):
        if self.callstack:
            self.callstack.pop()
        else:
            self.results.stop(cycles)
            self.scheduler.deactivate(self)

    # ----- reporting --------------------------------------------------------

    def dump(self, io: Optional[TextIO] = None) -> None:
        header = f"Observations for {self}\n  function: {self.function_scope}"
        if self.context:
            header += f"\n  context: {format_callstring(self.context)}"
        self.results.dump(io, header)

    def __str__(self) -> str:
        return self.results.name

    def __repr__(self) -> str:
        return f"ScopeRecorder(rid={self.rid}, {self.function_scope}, {self.scope_type})"
