"""
Tests for the block registry and the built-in catalog.
"""

import pytest
from sketch_editor_core.block_registry import BlockRegistry, create_default_registry
from sketch_editor_core.block_catalog import BUILTIN_BLOCK_TYPES
from sketch_editor_core.arduino_handlers import ARDUINO_HANDLERS
from sketch_editor_core.exceptions import UnknownType
from sketch_editor_core.models import BlockType, BlockShape, ENTRY_POINT_TYPE


class TestBlockRegistry:
    """Test cases for BlockRegistry."""

    def test_register_and_describe(self):
        registry = BlockRegistry()
        block_type = BlockType(type_id="custom", shape=BlockShape.STATEMENT)
        assert registry.register(block_type) is True
        assert registry.describe("custom") is block_type
        assert "custom" in registry
        assert len(registry) == 1

    def test_register_is_idempotent(self):
        """Re-registering an id keeps the first description."""
        registry = BlockRegistry()
        first = BlockType(type_id="custom", shape=BlockShape.STATEMENT)
        second = BlockType(type_id="custom", shape=BlockShape.EXPRESSION)
        registry.register(first)
        assert registry.register(second) is False
        assert registry.describe("custom") is first
        assert registry.register(second, replace=True) is True
        assert registry.describe("custom") is second

    def test_describe_unknown(self):
        with pytest.raises(UnknownType) as excinfo:
            BlockRegistry().describe("missing")
        assert excinfo.value.type_id == "missing"

    def test_unregister(self):
        registry = create_default_registry()
        assert registry.unregister("arduino_delay") is True
        assert registry.unregister("arduino_delay") is False
        assert not registry.has("arduino_delay")


class TestBuiltinCatalog:
    """Test cases for the built-in Arduino catalog."""

    def test_default_registry_has_every_builtin(self):
        registry = create_default_registry()
        assert sorted(registry.type_ids()) == sorted(t.type_id for t in BUILTIN_BLOCK_TYPES)

    def test_every_builtin_has_a_handler(self):
        for block_type in BUILTIN_BLOCK_TYPES:
            assert block_type.type_id in ARDUINO_HANDLERS

    def test_entry_point_is_protected(self):
        entry = create_default_registry().describe(ENTRY_POINT_TYPE)
        assert entry.deletable is False
        assert entry.chainable is False
        assert [s.name for s in entry.statement_sockets()] == ["SETUP", "LOOP"]

    def test_component_blocks_are_not_base(self):
        registry = create_default_registry()
        assert not registry.describe("arduino_digital_write").is_base
        assert registry.describe("arduino_digital_write").capabilities == frozenset({"led"})
        assert registry.describe("arduino_delay").is_base
