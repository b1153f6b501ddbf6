"""
Component Manager — edits the component selection and keeps the gate in sync.
"""

import logging
import uuid
from typing import Optional, List

from .capability_gate import CapabilityGate, COMPONENT_CATALOG
from .exceptions import ExclusiveComponentError
from .models import ComponentKind, ComponentInstance, ComponentSelection


def _admit(selection: ComponentSelection, kind: ComponentKind, name: str = "",
           component_id: Optional[str] = None) -> ComponentInstance:
    """Append a component to a selection unless it is already there."""
    kind = ComponentKind(kind)
    if component_id is not None:
        existing = selection.find(component_id)
        if existing is not None:
            return existing

    descriptor = COMPONENT_CATALOG[kind]
    if descriptor.exclusive:
        already = selection.of_kind(kind)
        if already:
            raise ExclusiveComponentError(kind.value, already[0].id)

    instance = ComponentInstance(
        id=component_id or f"{kind.value}-{uuid.uuid4().hex[:8]}",
        kind=kind,
        name=name or descriptor.name,
    )
    selection.instances.append(instance)
    return instance


class ComponentManager:
    """Owns the ordered component selection.

    Exclusivity of on-board components is enforced here, at selection time.
    Every change triggers :meth:`CapabilityGate.refresh`, which notifies the
    palette only when the allowed block set really changes.
    """

    def __init__(self, gate: CapabilityGate, selection: Optional[ComponentSelection] = None):
        self.logger = logging.getLogger(__name__)
        self.gate = gate
        self.selection = selection or ComponentSelection()
        self.gate.refresh(self.selection)

    def add_component(self, kind: ComponentKind, name: str = "",
                      component_id: Optional[str] = None) -> ComponentInstance:
        """Select a component.

        Adding an id that is already selected returns the existing instance.

        Raises:
            ExclusiveComponentError: if an exclusive kind is already selected.
        """
        before = len(self.selection)
        instance = _admit(self.selection, kind, name, component_id)
        if len(self.selection) != before:
            self.logger.info("Selected component %s (%s)", instance.id, instance.kind.value)
            self.gate.refresh(self.selection)
        return instance

    def remove_component(self, component_id: str) -> bool:
        """Deselect a component. Placed blocks are never removed."""
        instance = self.selection.find(component_id)
        if instance is None:
            return False
        self.selection.instances.remove(instance)
        self.logger.info("Deselected component %s", component_id)
        self.gate.refresh(self.selection)
        return True

    def clear_components(self):
        self.selection.instances.clear()
        self.gate.refresh(self.selection)

    def stage_components(self, instances: List[ComponentInstance]) -> ComponentSelection:
        """Build a selection from saved instances without touching the current one.

        Raises:
            ExclusiveComponentError: if the instances break exclusivity.
        """
        staged = ComponentSelection()
        for instance in instances:
            _admit(staged, instance.kind, instance.name, instance.id)
        return staged

    def use_selection(self, selection: ComponentSelection):
        """Install a selection returned by :meth:`stage_components`."""
        self.selection = selection
        self.logger.info("Replaced component selection (%d components)", len(selection))
        self.gate.refresh(self.selection)

    def replace_components(self, instances: List[ComponentInstance]):
        """Swap in a whole selection, e.g. from a saved project.

        The current selection is kept if the new one breaks exclusivity.
        """
        self.use_selection(self.stage_components(instances))

    def get_components(self) -> List[ComponentInstance]:
        return list(self.selection.instances)

    def get_available_blocks(self) -> List[str]:
        return sorted(self.gate.allowed_types(self.selection))
