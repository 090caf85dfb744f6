"""Correlates block events with source/machine relation graphs.

The recorder walks the relation graph of the current function in lockstep
with the trace.  Every visited block must match exactly one successor of
the current relation-graph node.  Progress nodes are appended to
:attr:`ProgressTraceRecorder.trace`; the nodes passed since the previous
progress node are kept in :attr:`ProgressTraceRecorder.internal_preds`.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .errors import RelationGraphError
from .events import TraceObserver
from .program_model import ProgramModel, RelationGraph, RelationNode

_log = logging.getLogger(__name__)


class ProgressTraceRecorder(TraceObserver):

    def __init__(self, model: ProgramModel, is_machine_code: bool = True) -> None:
        self.model = model
        self.level = "dst" if is_machine_code else "src"
        self.trace: List[RelationNode] = []
        self.internal_preds: List[List[RelationNode]] = []
        self._pred_list: List[RelationNode] = []
        self._callstack: List[Optional[RelationNode]] = []
        self._rg: Optional[RelationGraph] = None
        self._node: Optional[RelationNode] = None

    def function(self, callee, callsite, cycles):
        self._rg = self.model.relation_graph(callee.name, self.level)
        if self._rg is None:
            _log.debug("No %s relation graph for %s; skipping its blocks", self.level, callee)
        self._callstack.append(self._node)
        self._node = None

    def block(self, block, cycles):
        if self._rg is None:
            return
        if self._node is None:
            first = self._rg.entry
            if first.type != "entry":
                raise RelationGraphError(f"First node of {self._rg} is not an entry node: {first}")
            if first.get_block(self.level) != block.name:
                raise RelationGraphError(
                    f"Relation graph {self._rg} does not start at {block} "
                    f"(entry node block: {first.get_block(self.level)})")
            self._node = first
            return
        succs = self._node.successors_matching(block, self.level)
        if len(succs) != 1:
            raise RelationGraphError(
                f"progress trace: no (unique) successor (but {len(succs)}) at {self._node}, "
                f"following {self._node.get_block(self.level)}->{block} (level {self.level})")
        succ = succs[0]
        if succ.type == "progress":
            self.trace.append(succ)
            self.internal_preds.append(self._pred_list)
            self._pred_list = []
        else:
            self._pred_list.append(succ)
        self._node = succ

    def ret(self, rsite, csite, cycles):
        if csite is None:
            return
        self._rg = self.model.relation_graph(csite.function.name, self.level)
        self._node = self._callstack.pop()
