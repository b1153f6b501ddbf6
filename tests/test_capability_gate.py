"""
Tests for the capability gate and component manager.
"""

import pytest
from hypothesis import given, strategies as st

from sketch_editor_core.block_registry import create_default_registry
from sketch_editor_core.capability_gate import CapabilityGate, COMPONENT_CATALOG
from sketch_editor_core.component_manager import ComponentManager
from sketch_editor_core.exceptions import (
    CapabilityViolation, ExclusiveComponentError, UnknownType
)
from sketch_editor_core.models import (
    Block, ComponentInstance, ComponentKind, create_empty_workspace
)


REGISTRY = create_default_registry()


class TestCapabilityGate:
    """Test cases for CapabilityGate."""

    def test_base_set(self):
        gate = CapabilityGate(REGISTRY)
        allowed = gate.allowed_types([])
        assert "controls_setup" in allowed
        assert "arduino_delay" in allowed
        assert "arduino_led_builtin" in allowed
        assert "arduino_digital_write" not in allowed
        assert "arduino_temperature_read" not in allowed

    def test_component_unlocks_blocks(self):
        gate = CapabilityGate(REGISTRY)
        allowed = gate.allowed_types([ComponentKind.LED])
        assert {"arduino_pin_mode", "arduino_digital_write", "arduino_analog_write"} <= allowed
        assert "arduino_digital_read" not in allowed

    def test_shared_unlock(self):
        """A type unlocked by several kinds needs only one of them."""
        gate = CapabilityGate(REGISTRY)
        assert gate.is_allowed("arduino_sensor_begin", [ComponentKind.MICROPHONE])
        assert gate.is_allowed("arduino_sensor_begin", [ComponentKind.TEMPERATURE])
        assert not gate.is_allowed("arduino_sensor_begin", [ComponentKind.IMU])

    @given(st.lists(st.sampled_from([ComponentKind.LED, ComponentKind.BUTTON]), max_size=6))
    def test_order_and_multiplicity_do_not_matter(self, kinds):
        gate = CapabilityGate(REGISTRY)
        expected = gate.allowed_types(set(kinds))
        assert gate.allowed_types(kinds) == expected
        assert gate.allowed_types(list(reversed(kinds))) == expected
        assert gate.allowed_types(kinds + kinds) == expected

    def test_check_placeable(self):
        gate = CapabilityGate(REGISTRY)
        gate.check_placeable("arduino_delay", [])
        with pytest.raises(CapabilityViolation) as excinfo:
            gate.check_placeable("arduino_imu_read", [])
        assert excinfo.value.required == ["imu"]
        with pytest.raises(UnknownType):
            gate.check_placeable("no_such_block", [])

    def test_find_violations_reports_placed_blocks(self):
        gate = CapabilityGate(REGISTRY)
        workspace = create_empty_workspace()
        workspace.entry_point.inputs["LOOP"] = Block(type="arduino_digital_write", id="w1")
        assert gate.find_violations(workspace, [ComponentKind.LED]) == []
        violations = gate.find_violations(workspace, [])
        assert len(violations) == 1
        assert violations[0].details["block_id"] == "w1"

    def test_refresh_notifies_only_on_change(self):
        gate = CapabilityGate(REGISTRY)
        calls = []
        gate.subscribe(calls.append)
        assert gate.refresh([]) is True
        assert gate.refresh([]) is False
        assert gate.refresh([ComponentKind.LED]) is True
        assert gate.refresh([ComponentKind.LED, ComponentKind.LED]) is False
        assert len(calls) == 2
        assert gate.current_allowed == calls[-1]


class TestComponentManager:
    """Test cases for ComponentManager."""

    def test_add_and_remove(self):
        manager = ComponentManager(CapabilityGate(REGISTRY))
        led = manager.add_component(ComponentKind.LED)
        assert led.id.startswith("led-")
        assert led.name == COMPONENT_CATALOG[ComponentKind.LED].name
        assert "arduino_digital_write" in manager.get_available_blocks()
        assert manager.remove_component(led.id) is True
        assert manager.remove_component(led.id) is False
        assert "arduino_digital_write" not in manager.get_available_blocks()

    def test_non_exclusive_kind_can_repeat(self):
        manager = ComponentManager(CapabilityGate(REGISTRY))
        manager.add_component(ComponentKind.LED)
        manager.add_component(ComponentKind.LED)
        assert len(manager.get_components()) == 2

    def test_exclusive_kind_rejected(self):
        manager = ComponentManager(CapabilityGate(REGISTRY))
        first = manager.add_component(ComponentKind.IMU)
        with pytest.raises(ExclusiveComponentError) as excinfo:
            manager.add_component(ComponentKind.IMU)
        assert excinfo.value.existing_id == first.id

    def test_duplicate_id_returns_existing(self):
        manager = ComponentManager(CapabilityGate(REGISTRY))
        first = manager.add_component(ComponentKind.BUTTON, component_id="b1")
        assert manager.add_component(ComponentKind.BUTTON, component_id="b1") is first
        assert len(manager.get_components()) == 1

    def test_replace_components_is_all_or_nothing(self):
        manager = ComponentManager(CapabilityGate(REGISTRY))
        manager.add_component(ComponentKind.LED, component_id="led-1")
        bad = [
            ComponentInstance("m1", ComponentKind.MICROPHONE),
            ComponentInstance("m2", ComponentKind.MICROPHONE),
        ]
        with pytest.raises(ExclusiveComponentError):
            manager.replace_components(bad)
        assert [c.id for c in manager.get_components()] == ["led-1"]

        manager.replace_components([ComponentInstance("imu-1", ComponentKind.IMU, "IMU")])
        assert [c.id for c in manager.get_components()] == ["imu-1"]
        assert manager.gate.is_allowed("arduino_imu_read", manager.selection)

    def test_stage_components_leaves_selection_alone(self):
        manager = ComponentManager(CapabilityGate(REGISTRY))
        manager.add_component(ComponentKind.LED, component_id="led-1")
        staged = manager.stage_components([ComponentInstance("b1", ComponentKind.BUTTON)])
        assert [c.id for c in manager.get_components()] == ["led-1"]
        manager.use_selection(staged)
        assert [c.id for c in manager.get_components()] == ["b1"]
        assert manager.gate.is_allowed("arduino_digital_read", manager.selection)
