"""
tracefacts.recorder_spec
========================

Parser for recorder specifications, e.g. ``g:blc,f:b/1:2``.

Each comma-separated item selects a scope and the entities recorded in it::

    spec              := <item> (',' <item>)*
    item              := <scope> ':' <entities> [ ':' <integer> ]
    scope             := 'g'                        (analysis entry, global)
                       | 'f' [ '/' <integer> ]      (every function, scope callstring)
    entities          := <entity-type>+ [ '/' <integer> ]   (entity callstring)
    entity-type       := 'b' block frequencies | 'i' infeasible blocks
                       | 'l' loop bounds       | 'c' call targets

The trailing integer is the call-depth limit of function scopes (virtual
inlining threshold); it doubles as the entity callstring length when the
entities carry none.  For the global scope it only sets the callstring
length.  Without it, function scopes are limited to their entity callstring
length and the global scope is unlimited.

Parsing is done with a Parsimonious PEG; every item is parsed on its own so
errors can name the offending fragment.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Optional

from parsimonious.exceptions import ParseError, VisitationError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from .errors import RecorderSpecError

_log = logging.getLogger(__name__)


RECORDER_SPEC_GRAMMAR = Grammar(r'''
    item            = scope ":" entities calllimit?

    scope           = global_scope / function_scope
    global_scope    = "g"
    function_scope  = "f" context?

    entities        = entity_types context?
    entity_types    = ~"[blic]+"

    context         = "/" integer
    calllimit       = ":" integer
    integer         = ~"[0-9]+"
''')


class Scope(enum.Enum):
    GLOBAL = "global"
    FUNCTION = "function"


class EntityType(enum.Enum):
    BLOCK_FREQUENCIES = "b"
    INFEASIBLE_BLOCKS = "i"
    LOOP_BOUNDS = "l"
    CALL_TARGETS = "c"


@dataclass(frozen=True)
class RecorderSpec:
    """What a scope recorder records and how precisely."""

    entity_types: FrozenSet[EntityType]
    entity_context: int = 0
    calllimit: Optional[int] = None

    @property
    def block_frequencies(self) -> bool:
        return EntityType.BLOCK_FREQUENCIES in self.entity_types

    @property
    def infeasible_blocks(self) -> bool:
        return EntityType.INFEASIBLE_BLOCKS in self.entity_types

    @property
    def loop_bounds(self) -> bool:
        return EntityType.LOOP_BOUNDS in self.entity_types

    @property
    def call_targets(self) -> bool:
        return EntityType.CALL_TARGETS in self.entity_types


@dataclass(frozen=True)
class RecorderSpecItem:
    scope: Scope
    scope_context: int
    spec: RecorderSpec


class _SpecBuilder(NodeVisitor):
    """Parse tree of one item → :class:`RecorderSpecItem`."""

    def __init__(self, default_callstring_length: int) -> None:
        self.default = default_callstring_length

    def generic_visit(self, node, visited_children):
        return visited_children or node

    @staticmethod
    def _optional(value):
        if isinstance(value, list) and value:
            return value[0]
        return None

    def visit_item(self, node, visited_children):
        (scope, scope_ctx), _, (etypes, ectx), limit = visited_children
        limit = self._optional(limit)
        if ectx is None:
            ectx = limit if limit is not None else self.default
        if scope is Scope.FUNCTION:
            calllimit: Optional[int] = limit if limit is not None else ectx
        else:
            calllimit = None
        return RecorderSpecItem(
            scope=scope,
            scope_context=scope_ctx if scope_ctx is not None else self.default,
            spec=RecorderSpec(frozenset(etypes), ectx, calllimit),
        )

    def visit_scope(self, node, visited_children):
        return visited_children[0]

    def visit_global_scope(self, node, visited_children):
        return Scope.GLOBAL, None

    def visit_function_scope(self, node, visited_children):
        _, ctx = visited_children
        return Scope.FUNCTION, self._optional(ctx)

    def visit_entities(self, node, visited_children):
        etypes, ctx = visited_children
        return etypes, self._optional(ctx)

    def visit_entity_types(self, node, visited_children):
        return [EntityType(ch) for ch in node.text]

    def visit_context(self, node, visited_children):
        return visited_children[1]

    def visit_calllimit(self, node, visited_children):
        return visited_children[1]

    def visit_integer(self, node, visited_children):
        return int(node.text)


def parse_recorder_spec_item(text: str, default_callstring_length: int = 0) -> RecorderSpecItem:
    fragment = text.strip()
    try:
        tree: Node = RECORDER_SPEC_GRAMMAR.parse(fragment)
        return _SpecBuilder(default_callstring_length).visit(tree)
    except ParseError as exc:
        raise RecorderSpecError(
            f"Bad recorder specification '{fragment}' (at column {exc.column()})", fragment
        ) from exc
    except VisitationError as exc:
        raise RecorderSpecError(f"Bad recorder specification '{fragment}': {exc}", fragment) from exc


def parse_recorder_specs(text: str, default_callstring_length: int = 0) -> List[RecorderSpecItem]:
    """Parse a comma separated list of recorder specifications."""
    if not text.strip():
        raise RecorderSpecError("Empty recorder specification", text)
    items = [parse_recorder_spec_item(part, default_callstring_length) for part in text.split(",")]
    _log.debug("Recorder specifications: %s", items)
    return items


def recorder_spec_help() -> str:
    return "\n".join([
        "spec              := <spec-item>,...",
        "spec-item         := <scope-selection> ':' <entity-selection> [ ':' <calldepth-limit> ]",
        "scope-selection   :=   'g' (=analysis-entry-scope)",
        "                     | 'f'['/' <callstring-length>] (=function-scopes)",
        "entity-selection  := <entity-type>+ [ '/' <callstring-length> ]",
        "entity-type       :=   'b' (=block frequencies)",
        "                     | 'i' (=infeasible blocks)",
        "                     | 'l' (=loop bounds)",
        "                     | 'c' (=indirect call targets)",
        "callstring-length := <integer>",
        "calldepth-limit   := <integer>",
        "",
        "Example: g:lc:1  ==> loop bounds and call targets in global scope using callstring length 1",
        "         g:b:0   ==> block frequencies in global scope (context insensitive)",
        "         f:b/0:1 ==> local block frequencies for every executed function, "
        "virtual inlining threshold 1",
    ])
