"""
tracefacts.program_model
========================

Read-only view of the machine-code program a trace was recorded from.

The model is built once from a program document (a JSON file with
``arch``, ``machine-functions`` and optionally ``relation-graphs``
sections) and never changes afterwards.  All cross references
(instruction → block, block → function, block → successors, instruction →
next instruction) point into this one set of objects, so model objects can
be used directly as dictionary keys.

Document shape
--------------
::

    {
      "arch": {"name": "patmos", "call-delay-slots": 3, "return-delay-slots": 3},
      "machine-functions": [
        {"name": "main", "label": "main",
         "blocks": [
           {"name": "0", "successors": ["1"], "loops": [],
            "instructions": [
              {"index": 0, "address": "0x1000"},
              {"index": 1, "address": "0x1004", "callees": ["foo"]},
              {"index": 2, "address": "0x1008", "branch-type": "return"}
            ]}
         ]}
      ],
      "relation-graphs": [...]
    }

Addresses may be integers or ``0x``-prefixed strings.  ``loops`` lists the
names of the enclosing loop headers, innermost first.

Public API
----------
    Instruction, Block, Function   - the static program structure
    Architecture                   - delay-slot constants
    RelationNode, RelationGraph    - source/machine relation graphs
    ProgramModel                   - the whole program; ``load``/``from_document``
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from .errors import ProgramModelError

_log = logging.getLogger(__name__)

ANY_CALLEE = "__any__"


def _coerce_address(value: Any, what: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ProgramModelError(f"{what}: address must be an integer, got boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text, 16 if text.lower().startswith("0x") else 10)
        except ValueError:
            pass
    raise ProgramModelError(f"{what}: bad address {value!r}")


# ---------------------------------------------------------------------------
# Architecture
# ---------------------------------------------------------------------------

class Architecture:
    """Target constants the replay needs."""

    __slots__ = ("name", "call_delay_slots", "return_delay_slots")

    def __init__(self, name: str = "generic", call_delay_slots: int = 0,
                 return_delay_slots: int = 0) -> None:
        self.name = name
        self.call_delay_slots = call_delay_slots
        self.return_delay_slots = return_delay_slots

    @classmethod
    def from_document(cls, data: Optional[Mapping[str, Any]]) -> "Architecture":
        data = data or {}
        return cls(
            name=str(data.get("name", "generic")),
            call_delay_slots=int(data.get("call-delay-slots", 0)),
            return_delay_slots=int(data.get("return-delay-slots", 0)),
        )

    def __repr__(self) -> str:
        return (f"Architecture({self.name!r}, call_delay_slots={self.call_delay_slots}, "
                f"return_delay_slots={self.return_delay_slots})")


# ---------------------------------------------------------------------------
# Instruction / Block / Function
# ---------------------------------------------------------------------------

class Instruction:
    """A machine instruction.

    Attributes
    ----------
    index : int
        Position inside the block.
    address : int or None
    block : Block
    returns : bool
        ``True`` for return instructions.
    callees : list[str]
        Labels of the possible callees; empty for non-call instructions.
        ``__any__`` marks an indirect call.
    next : Instruction or None
        The instruction executed next when no control transfer happens
        (following the function layout across block boundaries).
    """

    __slots__ = ("index", "address", "block", "returns", "callees", "next")

    def __init__(self, index: int, address: Optional[int], block: "Block", *,
                 returns: bool = False, callees: Sequence[str] = ()) -> None:
        self.index = index
        self.address = address
        self.block = block
        self.returns = returns
        self.callees: List[str] = list(callees)
        self.next: Optional[Instruction] = None

    @property
    def function(self) -> "Function":
        return self.block.function

    @property
    def is_call(self) -> bool:
        return bool(self.callees)

    @property
    def is_indirect_call(self) -> bool:
        return ANY_CALLEE in self.callees

    def __repr__(self) -> str:
        return f"Instruction({self})"

    def __str__(self) -> str:
        return f"{self.block}/{self.index}"


class Block:
    """A basic block of a machine function.

    ``instructions`` may be empty (label-only blocks emitted by some
    compilers at ``-O0``); such a block has no address of its own and is
    replayed from the non-empty block it precedes.
    """

    __slots__ = ("name", "index", "function", "instructions", "successors",
                 "predecessors", "loops", "_address")

    def __init__(self, name: str, index: int, function: "Function") -> None:
        self.name = name
        self.index = index
        self.function = function
        self.instructions: List[Instruction] = []
        self.successors: List[Block] = []
        self.predecessors: List[Block] = []
        self.loops: List[Block] = []
        self._address: Optional[int] = None

    @property
    def address(self) -> Optional[int]:
        if self.instructions:
            return self.instructions[0].address
        return self._address

    @property
    def empty(self) -> bool:
        return not self.instructions

    @property
    def loopnest(self) -> int:
        return len(self.loops)

    @property
    def loopheader(self) -> bool:
        return bool(self.loops) and self.loops[0] is self

    def __repr__(self) -> str:
        return f"Block({self})"

    def __str__(self) -> str:
        return f"{self.function.name}/{self.name}"


class Function:
    """A machine function: an ordered list of blocks, entry block first."""

    __slots__ = ("name", "label", "blocks", "_by_name")

    def __init__(self, name: str, label: Optional[str] = None) -> None:
        self.name = name
        self.label = label or name
        self.blocks: List[Block] = []
        self._by_name: Dict[str, Block] = {}

    @property
    def address(self) -> Optional[int]:
        return self.blocks[0].address if self.blocks else None

    @property
    def loops(self) -> List[Block]:
        """Loop header blocks of this function."""
        return [b for b in self.blocks if b.loopheader]

    def block(self, name: str) -> Block:
        try:
            return self._by_name[name]
        except KeyError:
            raise ProgramModelError(f"function {self.name}: no block named {name!r}") from None

    def __repr__(self) -> str:
        return f"Function({self.name!r})"

    def __str__(self) -> str:
        return self.name


# ---------------------------------------------------------------------------
# Relation graphs
# ---------------------------------------------------------------------------

LEVELS = ("src", "dst")


class RelationNode:
    """A node of a source/machine relation graph.

    ``type`` is one of ``entry``, ``exit``, ``progress``, ``src`` or ``dst``.
    Blocks are referenced by name, per level.
    """

    __slots__ = ("name", "type", "blocks", "successors")

    def __init__(self, name: str, node_type: str, blocks: Mapping[str, Optional[str]]) -> None:
        self.name = name
        self.type = node_type
        self.blocks: Dict[str, Optional[str]] = dict(blocks)
        self.successors: Dict[str, List[RelationNode]] = {level: [] for level in LEVELS}

    def get_block(self, level: str) -> Optional[str]:
        return self.blocks.get(level)

    def successors_matching(self, block: Block, level: str) -> List["RelationNode"]:
        return [s for s in self.successors[level] if s.get_block(level) == block.name]

    def __repr__(self) -> str:
        return f"RelationNode({self.name!r}, {self.type})"


class RelationGraph:
    """Relation graph between one source function and one machine function."""

    def __init__(self, src_function: str, dst_function: str, nodes: List[RelationNode]) -> None:
        self.functions = {"src": src_function, "dst": dst_function}
        self.nodes = nodes

    @property
    def entry(self) -> RelationNode:
        return self.nodes[0]

    def __repr__(self) -> str:
        return f"RelationGraph({self.functions['src']!r} -> {self.functions['dst']!r})"


# ---------------------------------------------------------------------------
# ProgramModel
# ---------------------------------------------------------------------------

class ProgramModel:
    """All machine functions of a program plus architecture constants."""

    def __init__(self, functions: List[Function], arch: Architecture,
                 relation_graphs: Optional[List[RelationGraph]] = None,
                 document: Optional[Dict[str, Any]] = None) -> None:
        self.functions = functions
        self.arch = arch
        self.relation_graphs = relation_graphs or []
        self.document: Dict[str, Any] = document if document is not None else {}
        self._by_label: Dict[str, Function] = {}
        for fun in functions:
            self._by_label.setdefault(fun.name, fun)
            self._by_label[fun.label] = fun

    def by_label(self, label: str) -> Function:
        try:
            return self._by_label[label]
        except KeyError:
            raise ProgramModelError(f"no machine function labelled {label!r}") from None

    def relation_graph(self, function_name: str, level: str) -> Optional[RelationGraph]:
        for rg in self.relation_graphs:
            if rg.functions.get(level) == function_name:
                return rg
        return None

    def __iter__(self) -> Iterator[Function]:
        return iter(self.functions)

    # ----- construction -----------------------------------------------------

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ProgramModel":
        p = Path(path)
        try:
            document = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ProgramModelError(f"cannot read program document {p}: {exc}") from exc
        return cls.from_document(document)

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "ProgramModel":
        if not isinstance(document, dict):
            raise ProgramModelError("program document must be a JSON object")
        arch = Architecture.from_document(document.get("arch"))
        functions = [_build_function(fdoc) for fdoc in document.get("machine-functions", [])]
        graphs = [_build_relation_graph(rdoc) for rdoc in document.get("relation-graphs", [])]
        _log.debug("Loaded %d machine functions, %d relation graphs",
                   len(functions), len(graphs))
        return cls(functions, arch, graphs, document)


def _build_function(fdoc: Mapping[str, Any]) -> Function:
    name = str(fdoc.get("name", ""))
    if not name:
        raise ProgramModelError("machine function without name")
    fun = Function(name, fdoc.get("label"))
    bdocs = fdoc.get("blocks", [])
    if not bdocs:
        raise ProgramModelError(f"function {name} has no blocks")

    for bix, bdoc in enumerate(bdocs):
        block = Block(str(bdoc.get("name", bix)), bix, fun)
        if block.name in fun._by_name:
            raise ProgramModelError(f"function {name}: duplicate block {block.name!r}")
        block._address = _coerce_address(bdoc.get("address"), f"block {name}/{block.name}")
        for iix, idoc in enumerate(bdoc.get("instructions", [])):
            block.instructions.append(Instruction(
                int(idoc.get("index", iix)),
                _coerce_address(idoc.get("address"), f"instruction {block}/{iix}"),
                block,
                returns=idoc.get("branch-type") == "return",
                callees=[str(c) for c in idoc.get("callees", [])],
            ))
        fun.blocks.append(block)
        fun._by_name[block.name] = block

    for block, bdoc in zip(fun.blocks, bdocs):
        for succ_name in bdoc.get("successors", []):
            succ = fun.block(str(succ_name))
            block.successors.append(succ)
            succ.predecessors.append(block)
        block.loops = [fun.block(str(h)) for h in bdoc.get("loops", [])]

    # layout order: chain instructions, give empty blocks the address of the
    # non-empty block they precede
    following: Optional[Block] = None
    next_ins: Optional[Instruction] = None
    for block in reversed(fun.blocks):
        if block.empty:
            if block._address is None and following is not None:
                block._address = following.address
            continue
        for ins in reversed(block.instructions):
            ins.next = next_ins
            next_ins = ins
        following = block
    return fun


def _build_relation_graph(rdoc: Mapping[str, Any]) -> RelationGraph:
    src = str((rdoc.get("src") or {}).get("function", ""))
    dst = str((rdoc.get("dst") or {}).get("function", ""))
    nodes: List[RelationNode] = []
    by_name: Dict[str, RelationNode] = {}
    for ndoc in rdoc.get("nodes", []):
        node = RelationNode(
            str(ndoc.get("name")),
            str(ndoc.get("type", "progress")),
            {level: ndoc.get(f"{level}-block") for level in LEVELS},
        )
        nodes.append(node)
        by_name[node.name] = node
    for node, ndoc in zip(nodes, rdoc.get("nodes", [])):
        for level in LEVELS:
            for succ in ndoc.get(f"{level}-successors", []):
                try:
                    node.successors[level].append(by_name[str(succ)])
                except KeyError:
                    raise ProgramModelError(
                        f"relation graph {src}/{dst}: unknown node {succ!r}") from None
    if not nodes:
        raise ProgramModelError(f"relation graph {src}/{dst} has no nodes")
    return RelationGraph(src, dst, nodes)
