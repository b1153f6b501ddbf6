"""
Node Palette — the toolbox model offered to the editing surface.

The palette lists the block types that may be placed, grouped into categories.
It is rebuilt whenever the capability gate reports a new allowed set. Drawing
the toolbox is left to the editing surface; this module only decides what it
contains.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from .block_registry import BlockRegistry
from .capability_gate import COMPONENT_CATALOG, COMPONENT_COLOURS, SelectionLike
from .models import ComponentInstance, ComponentKind, ComponentSelection, ENTRY_POINT_TYPE


class PaletteEntry:
    """One placeable block, optionally with preset field values."""

    def __init__(self, type_id: str, fields: Optional[Dict[str, Any]] = None):
        self.type_id = type_id
        self.fields = fields or {}

    def to_dict(self) -> Dict[str, Any]:
        data = {'type': self.type_id}
        if self.fields:
            data['fields'] = dict(self.fields)
        return data


class Category:
    """Represents a category of placeable blocks."""

    def __init__(self, name: str, colour: str = "", custom: Optional[str] = None):
        self.name = name
        self.colour = colour
        self.custom = custom  # dynamic category filled by the surface (e.g. VARIABLE)
        self.entries: List[PaletteEntry] = []

    def add_entry(self, entry: PaletteEntry):
        self.entries.append(entry)

    def type_ids(self) -> List[str]:
        return [entry.type_id for entry in self.entries]

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'name': self.name,
            'colour': self.colour,
            'blocks': [entry.to_dict() for entry in self.entries],
        }
        if self.custom:
            data['custom'] = self.custom
        return data


BASICS = ("Arduino Basics", "#3b82f6",
          [ENTRY_POINT_TYPE, "arduino_delay", "arduino_serial_begin", "arduino_serial_print"])
DIGITAL_IO = ("Digital I/O", "#10b981",
              ["arduino_pin_mode", "arduino_digital_write", "arduino_digital_read",
               "arduino_led_builtin"])
ANALOG_IO = ("Analog I/O", "#f59e0b", ["arduino_analog_read", "arduino_analog_write"])
VALUES = ("Values", "#84cc16", ["text", "math_number", "math_arithmetic"])
LOGIC = ("Logic", "#06b6d4", ["logic_compare", "logic_operation", "logic_negate", "logic_boolean"])
CONTROL = ("Control", "#8b5cf6", ["controls_if", "controls_repeat_ext", "controls_whileUntil"])

PRESET_FIELDS = {
    "text": {"TEXT": "hello"},
    "math_number": {"NUM": 123},
}


class NodePalette:
    """Builds palette categories from an allowed block set."""

    def __init__(self, registry: BlockRegistry):
        self.registry = registry

    def build(self, allowed: Iterable[str], selection: SelectionLike = (),
              variables: Sequence[str] = ()) -> List[Category]:
        """Return the ordered categories for the given allowed types."""
        allowed = set(allowed)
        instances = self._instances(selection)
        categories = [self._static_category(BASICS, allowed)]

        seen_kinds = set()
        for instance in instances:
            if instance.kind in seen_kinds:
                continue
            seen_kinds.add(instance.kind)
            categories.append(self._component_category(instance, allowed))

        for spec in (DIGITAL_IO, ANALOG_IO, VALUES, LOGIC, CONTROL):
            category = self._static_category(spec, allowed)
            if category.entries:
                categories.append(category)

        categories.append(self._variables_category(variables, allowed))
        return categories

    def to_dict(self, allowed: Iterable[str], selection: SelectionLike = (),
                variables: Sequence[str] = ()) -> List[Dict[str, Any]]:
        return [category.to_dict() for category in self.build(allowed, selection, variables)]

    def _static_category(self, spec, allowed) -> Category:
        name, colour, type_ids = spec
        category = Category(name, colour)
        for type_id in type_ids:
            if type_id in allowed and self.registry.has(type_id):
                category.add_entry(PaletteEntry(type_id, PRESET_FIELDS.get(type_id)))
        return category

    def _component_category(self, instance: ComponentInstance, allowed) -> Category:
        descriptor = COMPONENT_CATALOG[instance.kind]
        category = Category(descriptor.name, COMPONENT_COLOURS.get(descriptor.category, "#6b7280"))
        for block_type in self.registry.get_all():
            if instance.kind.value in block_type.capabilities and block_type.type_id in allowed:
                category.add_entry(PaletteEntry(block_type.type_id))
        return category

    def _variables_category(self, variables: Sequence[str], allowed) -> Category:
        category = Category("Variables", "#f97316", custom="VARIABLE")
        for name in variables:
            if "variables_set" in allowed:
                category.add_entry(PaletteEntry("variables_set", {"VAR": name}))
            if "variables_get" in allowed:
                category.add_entry(PaletteEntry("variables_get", {"VAR": name}))
        return category

    @staticmethod
    def _instances(selection: SelectionLike) -> List[ComponentInstance]:
        if isinstance(selection, ComponentSelection):
            return list(selection.instances)
        instances = []
        for item in selection:
            if isinstance(item, ComponentInstance):
                instances.append(item)
            else:
                kind = ComponentKind(item)
                instances.append(ComponentInstance(id=kind.value, kind=kind))
        return instances
