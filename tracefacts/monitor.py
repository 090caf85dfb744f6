"""
tracefacts.monitor
==================

Replays a machine trace against the program model and publishes structured
events (see :mod:`tracefacts.events`).

A trace is any iterable of ``(address, cycles)`` pairs.  Nothing happens
until the first instruction of the trace entry function shows up; from then
on every record counts as one executed instruction, and records whose
address carries a watchpoint drive the call/loop state machine.

Calls and returns only take effect after their delay slots.  A call is
confirmed when the callee's entry block is reached exactly
``call_delay_slots + 1`` instructions after the call instruction.  A return
is decided ``return_delay_slots + 1`` instructions after the return
instruction by a :class:`ReturnPredicate`; the default
:class:`FallthroughReturnHeuristic` treats a return as not taken
(predicated off) when execution simply continues at the fall-through
instruction.  This misjudges a recursive call that returns to the
instruction right after the call, which is accepted.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol, Tuple

from .errors import BlockMismatchError, CallStackError, DelaySlotMismatchError, EmptyBlockChainError
from .events import EventBus, TraceObserver
from .program_model import Architecture, Block, Function, Instruction, ProgramModel
from .watchpoints import WatchpointTable

_log = logging.getLogger(__name__)

TraceRecord = Tuple[int, int]


# ---------------------------------------------------------------------------
# Return predicates
# ---------------------------------------------------------------------------

class ReturnPredicate(Protocol):
    """Decides whether a pending return was actually executed."""

    def is_taken(self, instruction: Instruction, address: int, arch: Architecture) -> bool:
        ...


class FallthroughReturnHeuristic:
    """A return is not taken if execution reached its fall-through address."""

    def fallthrough(self, instruction: Instruction, arch: Architecture) -> Optional[Instruction]:
        ins: Optional[Instruction] = instruction
        for _ in range(arch.return_delay_slots + 1):
            ins = ins.next
            if ins is None:
                break
        return ins

    def is_taken(self, instruction: Instruction, address: int, arch: Architecture) -> bool:
        fallthrough = self.fallthrough(instruction, arch)
        return fallthrough is None or fallthrough.address != address


# ---------------------------------------------------------------------------
# Monitors
# ---------------------------------------------------------------------------

class TraceMonitor:
    """Owns the event bus; subclasses implement :meth:`run`."""

    def __init__(self) -> None:
        self.bus = EventBus()

    @property
    def observers(self) -> List[TraceObserver]:
        return self.bus.observers

    def subscribe(self, observer: TraceObserver) -> int:
        return self.bus.subscribe(observer)

    def publish(self, event: str, *args) -> None:
        self.bus.publish(event, *args)

    def run(self) -> None:
        raise NotImplementedError


class MachineTraceMonitor(TraceMonitor):
    """Generates ``function``, ``block``, ``ret``, ``loop*`` and ``eof`` events."""

    def __init__(
        self,
        model: ProgramModel,
        trace: Iterable[TraceRecord],
        trace_entry: str = "main",
        *,
        watchpoints: Optional[WatchpointTable] = None,
        return_predicate: Optional[ReturnPredicate] = None,
    ) -> None:
        super().__init__()
        self.model = model
        self.arch = model.arch
        self.trace = trace
        self.program_entry: Function = model.by_label(trace_entry)
        self.start_address = self.program_entry.address
        self.watchpoints = watchpoints if watchpoints is not None else WatchpointTable.build(model)
        self.return_predicate: ReturnPredicate = return_predicate or FallthroughReturnHeuristic()

        self.executed_instructions = 0
        self.cycles = 0
        self.callstack: List[Instruction] = []
        self.loopstack: List[Block] = []
        self.current_function: Optional[Function] = None
        self.last_block: Optional[Block] = None

    def run(self) -> None:
        self.executed_instructions = 0
        self.callstack = []
        self.loopstack = []
        self.current_function = None
        self.last_block = None

        wp = self.watchpoints
        watched = wp.watched
        block_start, call_instr, return_instr = wp.block_start, wp.call_instr, wp.return_instr
        start = self.start_address
        return_offset = self.arch.return_delay_slots + 1
        pending_call: Optional[Tuple[Instruction, int]] = None
        pending_return: Optional[Tuple[Instruction, int]] = None
        started = False

        for pc, cycles in self.trace:
            if not started:
                if pc != start:
                    continue
                started = True

            self.executed_instructions += 1
            if pending_return is None and pc not in watched:
                continue
            self.cycles = cycles

            if pending_return is not None and \
                    pending_return[1] + return_offset == self.executed_instructions:
                rins = pending_return[0]
                pending_return = None
                if self.return_predicate.is_taken(rins, pc, self.arch):
                    if not self._handle_return(rins):
                        break
                else:
                    _log.debug("Predicated return at %s (continuing at 0x%x)", rins, pc)

            block = block_start.get(pc)
            if block is not None:
                fun = block.function
                if block.address == fun.address:
                    if pending_call is not None:
                        self._handle_call(*pending_call)
                        pending_call = None
                    elif fun is not self.program_entry:
                        raise CallStackError(
                            f"Empty call history at function entry, but not program entry "
                            f"({fun}, {self.program_entry})")
                    self.current_function = fun
                    self.loopstack = []
                    self.publish("function", fun, self.callstack[-1] if self.callstack else None, cycles)

                self._exit_loops_downto(block.loopnest)
                self._handle_loopheader(block)

                if self.current_function is not fun:
                    raise BlockMismatchError(
                        f"Current function does not match block: {self.current_function} != {block}")
                empties = wp.empty_blocks.get(pc)
                if empties:
                    self._replay_empty_blocks(empties)
                self.publish("block", block, cycles)
                self.last_block = block

            # a block may open with a call or a return
            ins = call_instr.get(pc)
            if ins is not None:
                if ins.function is not self.current_function:
                    raise BlockMismatchError(
                        f"Call instruction {ins} does not match current function {self.current_function}")
                pending_call = (ins, self.executed_instructions)

            ins = return_instr.get(pc)
            if ins is not None:
                pending_return = (ins, self.executed_instructions)

        self.publish("eof")

    # ----- state transitions ------------------------------------------------

    def _handle_call(self, callsite: Instruction, call_index: int) -> None:
        expected = call_index + 1 + self.arch.call_delay_slots
        if expected != self.executed_instructions:
            raise DelaySlotMismatchError(
                f"No call instruction before function entry ({callsite}: "
                f"{expected} != {self.executed_instructions})")
        self.last_block = None
        self.callstack.append(callsite)

    def _handle_return(self, rsite: Instruction) -> bool:
        """Commit a return; ``False`` once the program entry has returned."""
        at_program_exit = rsite.function is self.program_entry and not self.callstack
        if not self.callstack and not at_program_exit:
            raise CallStackError(f"Callstack empty at return from {rsite} (inconsistent callstack)")
        self._exit_loops_downto(0)
        self.publish("ret", rsite, self.callstack[-1] if self.callstack else None, self.cycles)
        if at_program_exit:
            return False
        callsite = self.callstack.pop()
        self.last_block = callsite.block
        self.loopstack = list(reversed(callsite.block.loops))
        self.current_function = callsite.function
        return True

    def _handle_loopheader(self, block: Block) -> None:
        if not block.loopheader:
            return
        if block.loopnest == len(self.loopstack) and self.loopstack[-1] is not block:
            self.publish("loopexit", self.loopstack.pop(), self.cycles)
        if block.loopnest == len(self.loopstack):
            self.publish("loopcont", block, self.cycles)
        else:
            self.loopstack.append(block)
            self.publish("loopenter", block, self.cycles)

    def _exit_loops_downto(self, nest: int) -> None:
        while nest < len(self.loopstack):
            self.publish("loopexit", self.loopstack.pop(), self.cycles)

    def _replay_empty_blocks(self, candidates: List[Block]) -> None:
        # an empty block is only replayed if it is a successor of the last block
        for b0 in candidates:
            if self.last_block is not None and b0 not in self.last_block.successors:
                continue
            while b0.empty:
                _log.debug("Publishing empty block %s (<- %s)", b0, self.last_block)
                self.publish("block", b0, self.cycles)
                if len(b0.successors) != 1:
                    raise EmptyBlockChainError(
                        f"Empty block {b0} must have exactly one successor, "
                        f"has {len(b0.successors)}")
                self.last_block = b0
                b0 = b0.successors[0]
            break
