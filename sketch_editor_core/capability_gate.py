"""
Capability Gate — maps a component selection to the block types that may be placed.

The allowed set is the always-on base set (the entry point and every block type
unlocked by ``base``) plus every block type unlocked by a component kind present
in the selection. Only the *set* of kinds matters: instance count and order
never change the result.

The gate never mutates the workspace. When the allowed set changes it notifies
its subscribers so the palette can be rebuilt; blocks already placed whose type
is no longer allowed are left in place and can be reported with
:meth:`CapabilityGate.find_violations`.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Union

from .block_registry import BlockRegistry
from .exceptions import CapabilityViolation
from .models import (
    ComponentKind, ComponentInstance, ComponentSelection, Workspace, ENTRY_POINT_TYPE
)


@dataclass(frozen=True)
class ComponentDescriptor:
    """Static description of a supported component kind."""
    kind: ComponentKind
    name: str
    category: str  # 'sensor' | 'actuator' | 'input'
    description: str
    exclusive: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            'kind': self.kind.value,
            'name': self.name,
            'category': self.category,
            'description': self.description,
            'exclusive': self.exclusive,
        }


# On-board sensors exist once per board; LEDs and buttons can be wired to many pins.
COMPONENT_CATALOG: Dict[ComponentKind, ComponentDescriptor] = {
    ComponentKind.LED: ComponentDescriptor(
        ComponentKind.LED, 'LED', 'actuator', 'Light Emitting Diode'),
    ComponentKind.BUTTON: ComponentDescriptor(
        ComponentKind.BUTTON, 'Button', 'input', 'Push Button'),
    ComponentKind.TEMPERATURE: ComponentDescriptor(
        ComponentKind.TEMPERATURE, 'Temperature Sensor', 'sensor', 'HTS221 Temperature',
        exclusive=True),
    ComponentKind.HUMIDITY: ComponentDescriptor(
        ComponentKind.HUMIDITY, 'Humidity Sensor', 'sensor', 'HTS221 Humidity',
        exclusive=True),
    ComponentKind.IMU: ComponentDescriptor(
        ComponentKind.IMU, 'Motion Sensor', 'sensor', 'IMU Accelerometer',
        exclusive=True),
    ComponentKind.MICROPHONE: ComponentDescriptor(
        ComponentKind.MICROPHONE, 'Microphone', 'sensor', 'MP34DT05 Microphone',
        exclusive=True),
}

COMPONENT_COLOURS = {
    'sensor': '#10b981',
    'actuator': '#f59e0b',
    'input': '#3b82f6',
}

SelectionLike = Union[ComponentSelection, Iterable[Union[ComponentInstance, ComponentKind]]]


def selection_kinds(selection: SelectionLike) -> FrozenSet[ComponentKind]:
    """Reduce a selection (instances or bare kinds) to the set of kinds present."""
    if isinstance(selection, ComponentSelection):
        return selection.kinds()
    kinds = set()
    for item in selection:
        kinds.add(item.kind if isinstance(item, ComponentInstance) else ComponentKind(item))
    return frozenset(kinds)


class CapabilityGate:
    """Derives the legal block-type set from the selected components."""

    def __init__(self, registry: BlockRegistry):
        self.logger = logging.getLogger(__name__)
        self.registry = registry
        self._current: Optional[FrozenSet[str]] = None
        self._subscribers: List[Callable[[FrozenSet[str]], None]] = []

    def base_types(self) -> FrozenSet[str]:
        """Block types that are always available."""
        allowed = {block_type.type_id for block_type in self.registry.get_all() if block_type.is_base}
        allowed.add(ENTRY_POINT_TYPE)
        return frozenset(allowed)

    def allowed_types(self, selection: SelectionLike) -> FrozenSet[str]:
        """Return the ids of every block type legal under the given selection."""
        keys = {kind.value for kind in selection_kinds(selection)}
        allowed = set(self.base_types())
        for block_type in self.registry.get_all():
            if block_type.capabilities & keys:
                allowed.add(block_type.type_id)
        return frozenset(allowed)

    def is_allowed(self, type_id: str, selection: SelectionLike) -> bool:
        return type_id in self.allowed_types(selection)

    def check_placeable(self, type_id: str, selection: SelectionLike):
        """Raise if a block of this type may not be placed.

        Raises:
            UnknownType: if the type is not registered.
            CapabilityViolation: if no selected component unlocks the type.
        """
        block_type = self.registry.describe(type_id)
        if not self.is_allowed(type_id, selection):
            raise CapabilityViolation(type_id, list(block_type.capabilities))

    def find_violations(self, workspace: Workspace,
                        selection: SelectionLike) -> List[CapabilityViolation]:
        """Report placed blocks whose type the selection no longer allows.

        Unknown types are skipped here; the generator reports them.
        """
        allowed = self.allowed_types(selection)
        violations = []
        for block in workspace.all_blocks():
            if block.type in allowed or not self.registry.has(block.type):
                continue
            violation = CapabilityViolation(
                block.type, list(self.registry.describe(block.type).capabilities)
            )
            violation.details['block_id'] = block.id
            violations.append(violation)
        return violations

    # ------------------------------------------------------------------
    # Palette refresh notifications
    # ------------------------------------------------------------------

    @property
    def current_allowed(self) -> FrozenSet[str]:
        """The allowed set computed by the last :meth:`refresh`."""
        if self._current is None:
            return self.base_types()
        return self._current

    def subscribe(self, callback: Callable[[FrozenSet[str]], None]):
        """Register a palette-refresh callback."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[FrozenSet[str]], None]) -> bool:
        if callback in self._subscribers:
            self._subscribers.remove(callback)
            return True
        return False

    def refresh(self, selection: SelectionLike) -> bool:
        """Recompute the allowed set and notify subscribers if it changed."""
        allowed = self.allowed_types(selection)
        if allowed == self._current:
            return False
        self._current = allowed
        self.logger.info("Allowed block types changed: %d types", len(allowed))
        for callback in list(self._subscribers):
            callback(allowed)
        return True
