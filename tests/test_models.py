"""
Unit tests for core data models.
"""

import pytest
from hypothesis import given, strategies as st
from sketch_editor_core.models import (
    Block, BlockType, BlockShape, FieldKind, FieldSpec, ValueSocket, StatementSocket,
    Workspace, ValidationError, ComponentKind, ComponentInstance, ComponentSelection,
    create_empty_workspace, ENTRY_POINT_TYPE
)


class TestFieldSpec:
    """Test cases for FieldSpec validation."""

    def test_number_in_range(self):
        spec = FieldSpec(kind=FieldKind.NUMBER, default=13, minimum=0, maximum=53)
        assert spec.validate_value(7) == 7

    def test_number_string_is_normalised(self):
        """Numeric strings from the surface become numbers."""
        spec = FieldSpec(kind=FieldKind.NUMBER, default=0)
        assert spec.validate_value("42") == 42
        assert spec.validate_value("2.5") == 2.5

    def test_number_out_of_range(self):
        spec = FieldSpec(kind=FieldKind.NUMBER, default=1, minimum=1)
        with pytest.raises(ValidationError):
            spec.validate_value(0)

    def test_number_rejects_bool(self):
        spec = FieldSpec(kind=FieldKind.NUMBER, default=0)
        with pytest.raises(ValidationError):
            spec.validate_value(True)

    @pytest.mark.parametrize("value", ["nan", "inf", "-inf", float("nan"), float("inf")])
    def test_number_rejects_non_finite(self, value):
        spec = FieldSpec(kind=FieldKind.NUMBER, default=1, minimum=1)
        with pytest.raises(ValidationError):
            spec.validate_value(value)

    def test_dropdown_values(self):
        spec = FieldSpec(kind=FieldKind.DROPDOWN, default="HIGH",
                         options=(("ON", "HIGH"), ("OFF", "LOW")))
        assert spec.option_values() == ["HIGH", "LOW"]
        assert spec.validate_value("LOW") == "LOW"
        with pytest.raises(ValidationError):
            spec.validate_value("ON")

    def test_variable_must_not_be_empty(self):
        spec = FieldSpec(kind=FieldKind.VARIABLE, default="item")
        with pytest.raises(ValidationError):
            spec.validate_value("")

    @given(st.integers(min_value=0, max_value=53))
    def test_number_accepts_whole_range(self, value):
        spec = FieldSpec(kind=FieldKind.NUMBER, default=13, minimum=0, maximum=53)
        assert spec.validate_value(value) == value


class TestBlockType:
    """Test cases for BlockType."""

    def make_type(self):
        return BlockType(
            type_id="test_block",
            shape=BlockShape.STATEMENT,
            sockets=[ValueSocket("VALUE", check=("Number",)), StatementSocket("DO")],
            fields={"PIN": FieldSpec(kind=FieldKind.NUMBER, default=13)},
        )

    def test_sockets(self):
        block_type = self.make_type()
        assert block_type.is_statement
        assert block_type.is_base
        assert block_type.get_socket("DO").is_statement
        assert [s.name for s in block_type.value_sockets()] == ["VALUE"]
        assert [s.name for s in block_type.statement_sockets()] == ["DO"]
        assert block_type.get_socket("MISSING") is None

    def test_validate_fields_fills_defaults(self):
        assert self.make_type().validate_fields({}) == {"PIN": 13}

    def test_validate_fields_missing_without_defaults(self):
        with pytest.raises(ValidationError):
            self.make_type().validate_fields({}, fill_defaults=False)

    def test_validate_fields_unknown_name(self):
        with pytest.raises(ValidationError):
            self.make_type().validate_fields({"NOPE": 1})

    def test_value_socket_accepts(self):
        socket = ValueSocket("A", check=("Number",))
        assert socket.accepts("Number")
        assert socket.accepts(None)
        assert not socket.accepts("String")
        assert ValueSocket("B").accepts("String")


class TestBlock:
    """Test cases for Block traversal."""

    def test_chain_iteration(self):
        first = Block(type="a", id="1")
        first.next = Block(type="a", id="2")
        first.next.next = Block(type="a", id="3")
        assert [b.id for b in first.iter_chain()] == ["1", "2", "3"]
        assert first.last_in_chain().id == "3"

    def test_subtree_visits_inputs_before_next(self):
        root = Block(type="a", id="root")
        root.inputs["X"] = Block(type="b", id="child")
        root.next = Block(type="a", id="after")
        assert [b.id for b in root.iter_subtree()] == ["root", "child", "after"]

    def test_long_chain_does_not_recurse(self):
        first = Block(type="a", id="0")
        last = first
        for i in range(1, 5000):
            last.next = Block(type="a", id=str(i))
            last = last.next
        assert sum(1 for _ in first.iter_subtree()) == 5000


class TestWorkspace:
    """Test cases for Workspace."""

    def test_empty_workspace(self):
        workspace = create_empty_workspace("entry")
        entry = workspace.entry_point
        assert entry.id == "entry"
        assert entry.type == ENTRY_POINT_TYPE
        assert entry.deletable is False
        assert entry.inputs == {"SETUP": None, "LOOP": None}

    def test_entry_point_stays_first(self):
        workspace = Workspace()
        workspace.add_top_block(Block(type="text", id="loose"))
        workspace.add_top_block(Block(type=ENTRY_POINT_TYPE, id="entry"))
        assert workspace.top_blocks[0].id == "entry"

    def test_find_parent(self):
        workspace = create_empty_workspace("entry")
        child = Block(type="arduino_delay", id="d1")
        workspace.entry_point.inputs["SETUP"] = child
        child.next = Block(type="arduino_delay", id="d2")
        assert workspace.find_parent(child) == (workspace.entry_point, "SETUP")
        assert workspace.find_parent(child.next) == (child, None)
        assert workspace.find_parent(workspace.entry_point) is None

    def test_variables(self):
        workspace = Workspace()
        assert workspace.add_variable("x") is True
        assert workspace.add_variable("x") is False
        assert workspace.remove_variable("x") is True
        assert workspace.remove_variable("x") is False

    def test_validate_detects_shared_block(self):
        workspace = create_empty_workspace()
        shared = Block(type="arduino_delay")
        workspace.entry_point.inputs["SETUP"] = shared
        workspace.entry_point.inputs["LOOP"] = shared
        assert workspace.validate()


class TestComponentSelection:
    """Test cases for ComponentSelection."""

    def test_lookup(self):
        led = ComponentInstance(id="led-1", kind=ComponentKind.LED)
        imu = ComponentInstance(id="imu-1", kind=ComponentKind.IMU)
        selection = ComponentSelection([led, imu])
        assert len(selection) == 2
        assert selection.kinds() == frozenset({ComponentKind.LED, ComponentKind.IMU})
        assert selection.find("imu-1") is imu
        assert selection.find("nope") is None
        assert selection.of_kind(ComponentKind.LED) == [led]
