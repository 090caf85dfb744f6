# tests/conftest.py
"""
Shared fixtures: small program documents and the traces they produce.

The reference program (one call delay slot, one return delay slot)::

    main/entry  0x100 nop, 0x104 nop                        -> loop
    main/loop   0x110 nop, 0x114 call foo, 0x118 (slot),
                0x11c br                                    -> loop, exit
    main/exit   0x120 nop, 0x124 ret, 0x128 (slot)
    foo/0       0x200 nop, 0x204 ret, 0x208 (slot)

``main/loop`` is a loop header calling ``foo`` once per iteration.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

from tracefacts.program_model import ProgramModel

PRELUDE = (0x50, 0x54)
EXIT_PC = 0x300


def ins(address: int, **extra: Any) -> Dict[str, Any]:
    doc: Dict[str, Any] = {"address": hex(address)}
    doc.update(extra)
    return doc


def block(name: str, instructions: Sequence[Dict[str, Any]], successors: Sequence[str] = (),
          loops: Sequence[str] = (), **extra: Any) -> Dict[str, Any]:
    doc = {
        "name": name,
        "instructions": [dict(i, index=ix) for ix, i in enumerate(instructions)],
        "successors": list(successors),
        "loops": list(loops),
    }
    doc.update(extra)
    return doc


def function(name: str, blocks: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    return {"name": name, "label": name, "blocks": list(blocks)}


def program(functions: Sequence[Dict[str, Any]], call_delay_slots: int = 1,
            return_delay_slots: int = 1, relation_graphs: Optional[List[Dict[str, Any]]] = None
            ) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "arch": {"name": "test", "call-delay-slots": call_delay_slots,
                 "return-delay-slots": return_delay_slots},
        "machine-functions": list(functions),
    }
    if relation_graphs is not None:
        doc["relation-graphs"] = relation_graphs
    return doc


def loop_program_document(indirect: bool = False) -> Dict[str, Any]:
    callees = ["__any__", "foo"] if indirect else ["foo"]
    main = function("main", [
        block("entry", [ins(0x100), ins(0x104)], ["loop"]),
        block("loop", [ins(0x110), ins(0x114, callees=callees), ins(0x118), ins(0x11c)],
              ["loop", "exit"], ["loop"]),
        block("exit", [ins(0x120), ins(0x124, **{"branch-type": "return"}), ins(0x128)]),
    ])
    foo = function("foo", [
        block("0", [ins(0x200), ins(0x204, **{"branch-type": "return"}), ins(0x208)]),
    ])
    return program([main, foo])


def loop_program_pcs(iterations: int = 3, prelude: Iterable[int] = PRELUDE) -> List[int]:
    pcs = list(prelude)
    pcs += [0x100, 0x104]
    for _ in range(iterations):
        pcs += [0x110, 0x114, 0x118, 0x200, 0x204, 0x208, 0x11c]
    pcs += [0x120, 0x124, 0x128, EXIT_PC]
    return pcs


def as_trace(pcs: Iterable[int]) -> List[Tuple[int, int]]:
    """One cycle per record."""
    return [(pc, cycle) for cycle, pc in enumerate(pcs)]


def loop_program_trace(iterations: int = 3) -> List[Tuple[int, int]]:
    return as_trace(loop_program_pcs(iterations))


def write_trace(path, trace: Iterable[Tuple[int, int]]) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        for pc, cycles in trace:
            fh.write(f"{pc:x} {cycles}\n")


class EventLog:
    """Observer remembering every event as ``(name, *str(args))``."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, ...]] = []

    def _add(self, name, *args):
        self.events.append((name,) + tuple("-" if a is None else str(a) for a in args))

    def function(self, callee, callsite, cycles):
        self._add("function", callee, callsite)

    def block(self, block, cycles):
        self._add("block", block)

    def ret(self, rsite, csite, cycles):
        self._add("ret", rsite, csite)

    def loopenter(self, header, cycles):
        self._add("loopenter", header)

    def loopcont(self, header, cycles):
        self._add("loopcont", header)

    def loopexit(self, header, cycles):
        self._add("loopexit", header)

    def eof(self):
        self._add("eof")

    def names(self) -> List[str]:
        return [e[0] for e in self.events]


@pytest.fixture
def loop_document() -> Dict[str, Any]:
    return copy.deepcopy(loop_program_document())


@pytest.fixture
def loop_model(loop_document) -> ProgramModel:
    return ProgramModel.from_document(loop_document)
