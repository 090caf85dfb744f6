# tests/test_recorder_spec.py
"""
Tests for the recorder specification parser.
"""

import pytest

from tracefacts.errors import RecorderSpecError
from tracefacts.recorder_spec import (
    EntityType,
    Scope,
    parse_recorder_spec_item,
    parse_recorder_specs,
    recorder_spec_help,
)


class TestParseItem:

    def test_global_blocks_context_insensitive(self):
        item = parse_recorder_spec_item("g:b:0")
        assert item.scope is Scope.GLOBAL
        assert item.spec.entity_types == frozenset({EntityType.BLOCK_FREQUENCIES})
        assert item.spec.entity_context == 0
        assert item.spec.calllimit is None

    def test_function_loops_and_calls(self):
        item = parse_recorder_spec_item("f:lc:1")
        assert item.scope is Scope.FUNCTION
        assert item.spec.loop_bounds
        assert item.spec.call_targets
        assert not item.spec.block_frequencies
        assert item.spec.entity_context == 1
        assert item.spec.calllimit == 1

    def test_explicit_entity_context_and_limit(self):
        item = parse_recorder_spec_item("f:b/0:1")
        assert item.spec.entity_context == 0
        assert item.spec.calllimit == 1

    def test_function_scope_context(self):
        item = parse_recorder_spec_item("f/2:i")
        assert item.scope_context == 2
        assert item.spec.infeasible_blocks

    def test_defaults(self):
        item = parse_recorder_spec_item("f:b", default_callstring_length=3)
        assert item.scope_context == 3
        assert item.spec.entity_context == 3
        assert item.spec.calllimit == 3

        glob = parse_recorder_spec_item("g:blc")
        assert glob.spec.entity_context == 0
        assert glob.spec.calllimit is None

    @pytest.mark.parametrize("text", ["x:b", "g:", "g:bx", "g:b:", "f/:b", ""])
    def test_malformed(self, text):
        with pytest.raises(RecorderSpecError):
            parse_recorder_spec_item(text)


class TestParseList:

    def test_default_configuration(self):
        items = parse_recorder_specs("g:blc,f:b")
        assert [i.scope for i in items] == [Scope.GLOBAL, Scope.FUNCTION]

    def test_error_names_fragment(self):
        with pytest.raises(RecorderSpecError) as excinfo:
            parse_recorder_specs("g:b,q:l")
        assert excinfo.value.fragment == "q:l"
        assert "TF-1002" in str(excinfo.value)

    def test_empty(self):
        with pytest.raises(RecorderSpecError):
            parse_recorder_specs("  ")

    def test_help_mentions_entity_types(self):
        text = recorder_spec_help()
        for word in ("block frequencies", "infeasible", "loop bounds", "call targets"):
            assert word in text
