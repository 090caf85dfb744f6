"""
tracefacts.watchpoints
======================

Static map from instruction addresses to the replay events they trigger.

Three roles exist: the first instruction of a block (``block_start``), a
call instruction (``call_instr``) and a return instruction
(``return_instr``).  One instruction may carry several roles; a block
opening with a call or a return is common.  A role requested twice for one
address, or two different instructions at one address, would make the
trace ambiguous and aborts construction.  Blocks without instructions get
no watchpoint, they are remembered in ``empty_blocks`` under the address
of the block they precede and replayed from there.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Set, Tuple

from .errors import WatchpointConflictError
from .program_model import Block, Instruction, ProgramModel

_log = logging.getLogger(__name__)


class WatchpointTable:
    """Watchpoints of every machine function of a program."""

    __slots__ = ("watched", "block_start", "call_instr", "return_instr",
                 "empty_blocks", "_roles", "_owners")

    def __init__(self) -> None:
        # membership test on the replay hot path
        self.watched: Set[int] = set()
        self.block_start: Dict[int, Block] = {}
        self.call_instr: Dict[int, Instruction] = {}
        self.return_instr: Dict[int, Instruction] = {}
        self.empty_blocks: Dict[int, List[Block]] = {}
        self._roles: Dict[int, List[str]] = {}
        self._owners: Dict[int, Instruction] = {}

    @classmethod
    def build(cls, model: ProgramModel) -> "WatchpointTable":
        table = cls()
        for fun in model.functions:
            for block in fun.blocks:
                if block.empty:
                    if block.address is None:
                        _log.warning("No address for empty block %s", block)
                        continue
                    table.empty_blocks.setdefault(block.address, []).append(block)
                    continue
                table.add(table.block_start, "block-start", block.address, block)
                for ins in block.instructions:
                    if ins.returns:
                        table.add(table.return_instr, "return-instruction", ins.address, ins)
                    if ins.callees:
                        table.add(table.call_instr, "call-instruction", ins.address, ins)
        _log.debug("Watchpoints: %d blocks, %d calls, %d returns, %d empty-block groups",
                   len(table.block_start), len(table.call_instr),
                   len(table.return_instr), len(table.empty_blocks))
        return table

    def add(self, role_map: Dict[int, Any], role: str, address: Optional[int], data: Any) -> None:
        if address is None:
            _log.warning("No address for %s %r", role, data)
            return
        if address in role_map:
            raise WatchpointConflictError(
                f"Duplicate watchpoint at address 0x{address:x}: {role} {data} "
                f"but already set to {role_map[address]}"
            )
        instruction = data.instructions[0] if isinstance(data, Block) else data
        owner = self._owners.setdefault(address, instruction)
        if owner is not instruction:
            raise WatchpointConflictError(
                f"Duplicate watchpoint at address 0x{address:x}: {role} {data} "
                f"but the address belongs to {owner}"
            )
        self.watched.add(address)
        self._roles.setdefault(address, []).append(role)
        role_map[address] = data

    def roles(self, address: int) -> Tuple[str, ...]:
        return tuple(self._roles.get(address, ()))

    def __contains__(self, address: int) -> bool:
        return address in self.watched

    def __len__(self) -> int:
        return len(self.watched)
