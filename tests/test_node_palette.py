"""
Tests for the block palette.
"""

from sketch_editor_core.block_registry import create_default_registry
from sketch_editor_core.capability_gate import CapabilityGate
from sketch_editor_core.models import ComponentInstance, ComponentKind, ComponentSelection
from sketch_editor_core.node_palette import NodePalette


REGISTRY = create_default_registry()


def build(selection, variables=()):
    gate = CapabilityGate(REGISTRY)
    return NodePalette(REGISTRY).build(gate.allowed_types(selection), selection, variables)


class TestNodePalette:
    """Test cases for NodePalette."""

    def test_base_palette(self):
        names = [category.name for category in build([])]
        assert names == ["Arduino Basics", "Digital I/O", "Analog I/O", "Values", "Logic", "Control", "Variables"]

    def test_basics_first(self):
        basics = build([])[0]
        assert basics.type_ids() == [
            "controls_setup", "arduino_delay", "arduino_serial_begin", "arduino_serial_print"
        ]

    def test_component_category_per_kind(self):
        selection = ComponentSelection([
            ComponentInstance("led-1", ComponentKind.LED, "LED"),
            ComponentInstance("led-2", ComponentKind.LED, "LED"),
            ComponentInstance("imu-1", ComponentKind.IMU, "Motion Sensor"),
        ])
        categories = build(selection)
        names = [category.name for category in categories]
        assert names[:4] == ["Arduino Basics", "LED", "Motion Sensor", "Digital I/O"]
        led = categories[1]
        assert led.type_ids() == ["arduino_pin_mode", "arduino_digital_write", "arduino_analog_write"]
        assert categories[2].type_ids() == ["arduino_imu_read", "arduino_imu_begin"]

    def test_digital_io_restricted_to_allowed(self):
        categories = build([ComponentKind.BUTTON])
        digital = next(c for c in categories if c.name == "Digital I/O")
        assert digital.type_ids() == ["arduino_pin_mode", "arduino_digital_read", "arduino_led_builtin"]

    def test_variables_category(self):
        variables = build([], variables=["speed"])[-1]
        assert variables.custom == "VARIABLE"
        assert [entry.to_dict() for entry in variables.entries] == [
            {'type': 'variables_set', 'fields': {'VAR': 'speed'}},
            {'type': 'variables_get', 'fields': {'VAR': 'speed'}},
        ]

    def test_to_dict(self):
        gate = CapabilityGate(REGISTRY)
        data = NodePalette(REGISTRY).to_dict(gate.allowed_types([]))
        values = next(c for c in data if c['name'] == 'Values')
        assert {'type': 'math_number', 'fields': {'NUM': 123}} in values['blocks']
        assert values['colour']
