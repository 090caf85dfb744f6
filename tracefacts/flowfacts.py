"""
tracefacts.flowfacts
====================

Turns recorder results into flow facts for the WCET analysis.

Fact kinds
----------
``TimingEntry``
    Maximal observed execution time of a global scope.
``FlowFact`` with ``kind == "block-frequency"``
    Observed frequency interval of a block (or ``[0, 0]`` for infeasible
    blocks, or the iteration bound of a loop header in its loop scope).
``FlowFact`` with ``kind == "call-targets"``
    Callees observed at an indirect call site.

Every fact carries the classification tag ``<entity>-<scope type>`` (e.g.
``block-global``, ``loop-function``) and the context
``{"level": "machinecode", "origin": "trace"}``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple

from .callstring import ContextRef
from .intervals import Interval
from .program_model import Block, Function, Instruction
from .recorders import RecorderScheduler, ScopeRecorder

_log = logging.getLogger(__name__)

FACT_CONTEXT: Dict[str, str] = {"level": "machinecode", "origin": "trace"}


@dataclass
class TimingEntry:
    scope: Hashable
    cycles: int
    context: Dict[str, str] = field(default_factory=lambda: dict(FACT_CONTEXT))

    def to_document(self) -> Dict[str, Any]:
        doc = {"scope": entity_ref(self.scope), "cycles": self.cycles}
        doc.update(self.context)
        return doc


@dataclass
class FlowFact:
    scope: Hashable
    kind: str
    entity: Hashable
    classification: str
    frequency: Optional[Interval] = None
    receivers: Tuple[Function, ...] = ()
    context: Dict[str, str] = field(default_factory=lambda: dict(FACT_CONTEXT))

    @classmethod
    def block_frequency(cls, scope, block, frequency: Interval, classification: str) -> "FlowFact":
        return cls(scope, "block-frequency", block, classification, frequency=frequency)

    @classmethod
    def calltargets(cls, scope, callsite, receivers: Iterable[Function], classification: str) -> "FlowFact":
        ordered = tuple(sorted(receivers, key=lambda f: f.name))
        return cls(scope, "call-targets", callsite, classification, receivers=ordered)

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "scope": entity_ref(self.scope),
            "kind": self.kind,
            "program-point": entity_ref(self.entity),
            "classification": self.classification,
        }
        if self.frequency is not None:
            doc["frequency"] = self.frequency.to_list()
        if self.kind == "call-targets":
            doc["callees"] = [f.label for f in self.receivers]
        doc.update(self.context)
        return doc

    def __str__(self) -> str:
        value = self.frequency if self.frequency is not None else \
            "{" + ", ".join(str(f) for f in self.receivers) + "}"
        return f"FlowFact[{self.classification}] {self.scope}: {self.entity} \\in {value}"


@dataclass(frozen=True)
class LoopScope:
    """The scope of a loop bound: one iteration count per loop execution."""

    header: ContextRef

    def __str__(self) -> str:
        return f"loop({self.header})"


def entity_ref(entity: Any) -> Dict[str, Any]:
    """Document reference of a model entity, a context ref or a loop scope."""
    if isinstance(entity, LoopScope):
        ref = entity_ref(entity.header)
        ref["loop"] = ref.pop("block")
        return ref
    if isinstance(entity, ContextRef):
        ref = entity_ref(entity.entity)
        if entity.context:
            ref["context"] = [entity_ref(site) for site in entity.context]
        return ref
    if isinstance(entity, Instruction):
        return {"function": entity.function.label, "block": entity.block.name,
                "instruction": entity.index}
    if isinstance(entity, Block):
        return {"function": entity.function.label, "block": entity.name}
    if isinstance(entity, Function):
        return {"function": entity.label}
    return {"ref": str(entity)}


class FlowFactExporter:
    """Collects timing entries and flow facts from a finished scheduler."""

    def __init__(self, scheduler: RecorderScheduler) -> None:
        self.scheduler = scheduler
        self.timing: List[TimingEntry] = []
        self.flowfacts: List[FlowFact] = []

    def export(self) -> "FlowFactExporter":
        for recorder in self.scheduler.recorders:
            self._export_recorder(recorder)
        _log.info("Exported %d flow facts and %d timing entries",
                  len(self.flowfacts), len(self.timing))
        return self

    def _export_recorder(self, recorder: ScopeRecorder) -> None:
        results = recorder.results
        if results.blockfreqs is None:
            _log.debug("%s never completed a run", recorder)
            return
        stype = recorder.scope_type
        scope = recorder.scope
        spec = recorder.spec

        if recorder.is_global and results.cycles is not None:
            self.timing.append(TimingEntry(scope, results.cycles.max))

        if spec.block_frequencies:
            for pp, freq in results.blockfreqs.items():
                self.flowfacts.append(FlowFact.block_frequency(scope, pp, freq, f"block-{stype}"))

        if spec.infeasible_blocks:
            for pp, freq in results.blockfreqs.items():
                if freq.hi == 0:
                    self.flowfacts.append(
                        FlowFact.block_frequency(scope, pp, Interval(0, 0), f"infeasible-{stype}"))

        if spec.call_targets:
            for cs, receivers in results.calltargets.items():
                if not cs.entity.is_indirect_call:
                    continue
                self.flowfacts.append(FlowFact.calltargets(scope, cs, receivers, f"calltargets-{stype}"))

        if spec.loop_bounds:
            for hpp, bound in results.loopbounds.items():
                self.flowfacts.append(
                    FlowFact.block_frequency(LoopScope(hpp), hpp, bound, f"loop-{stype}"))
            for pp in results.blockfreqs:
                if pp.entity.loopheader and pp not in results.loopbounds:
                    _log.warning("Loop %s not executed by trace", pp)
                    self.flowfacts.append(
                        FlowFact.block_frequency(LoopScope(pp), pp, Interval(0, 0), f"loop-{stype}"))

    def add_to_document(self, document: Dict[str, Any]) -> Dict[str, Any]:
        document.setdefault("timing", []).extend(t.to_document() for t in self.timing)
        document.setdefault("flowfacts", []).extend(f.to_document() for f in self.flowfacts)
        return document
