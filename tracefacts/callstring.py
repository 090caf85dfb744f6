"""Bounded call strings used as recording contexts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Hashable, Sequence, Tuple

CallString = Tuple[Any, ...]

EMPTY_CALLSTRING: CallString = ()


def bounded_suffix(stack: Sequence[Any], length: int) -> CallString:
    """Return the innermost *length* entries of *stack* as a call string.

    ``length == 0`` yields the empty (context-insensitive) call string.
    """
    if length <= 0 or not stack:
        return EMPTY_CALLSTRING
    return tuple(stack[-length:])


def format_callstring(callstring: CallString) -> str:
    if not callstring:
        return "[]"
    return "[" + ", ".join(str(site) for site in callstring) + "]"


@dataclass(frozen=True)
class ContextRef:
    """A program entity (block, call site, loop header, function) in a context."""

    entity: Hashable
    context: CallString = EMPTY_CALLSTRING

    def __str__(self) -> str:
        if not self.context:
            return str(self.entity)
        return f"{self.entity}@{format_callstring(self.context)}"
