"""
Canvas class for block workspace management.

This module provides the Canvas class which owns the workspace graph and
applies every edit the editing surface can make: placing, connecting,
detaching and deleting blocks, editing fields and variables, clearing and
loading. Each successful edit is reported to the regeneration scheduler.
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from .arduino_handlers import is_valid_identifier
from .block_registry import BlockRegistry, create_default_registry
from .capability_gate import CapabilityGate
from .code_generator import CodeGenerator, GenerationResult
from .component_manager import ComponentManager
from .exceptions import (
    CapabilityViolation, ConnectionRejected, MalformedDocument, ProtectedBlockError
)
from .models import (
    Block, BlockType, FieldKind, ValidationError, Workspace,
    create_empty_workspace, ENTRY_POINT_TYPE
)
from .persistence import LoadResult, deserialize, loads, serialize
from .scheduler import MutationEvent, MutationKind, RegenerationScheduler
from .settings import EditorSettings


class Canvas:
    """Manages the workspace graph for placing and connecting blocks."""

    def __init__(self, registry: BlockRegistry, components: ComponentManager,
                 generator: Optional[CodeGenerator] = None,
                 scheduler: Optional[RegenerationScheduler] = None,
                 workspace: Optional[Workspace] = None):
        self.logger = logging.getLogger(__name__)
        self.registry = registry
        self.components = components
        self.gate: CapabilityGate = components.gate
        self.generator = generator or CodeGenerator(registry)
        self.scheduler = scheduler
        self.workspace = workspace or create_empty_workspace()
        self._lock = threading.RLock()

        # Event callbacks
        self.on_model_changed: Optional[Callable[[MutationEvent], None]] = None

    @classmethod
    def create_default(cls, settings: Optional[EditorSettings] = None,
                       timer_factory: Optional[Callable[..., Any]] = None) -> 'Canvas':
        """Wire a canvas with the built-in catalog, a generator and a scheduler."""
        settings = settings or EditorSettings()
        registry = create_default_registry()
        components = ComponentManager(CapabilityGate(registry))
        canvas = cls(registry, components, CodeGenerator(registry, indent=settings.indent))
        kwargs = {'timer_factory': timer_factory} if timer_factory is not None else {}
        canvas.scheduler = RegenerationScheduler(
            canvas.generate, window=settings.debounce_seconds, **kwargs
        )
        return canvas

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def generate(self) -> GenerationResult:
        """Compile the workspace as it is right now."""
        with self._lock:
            return self.generator.generate(self.workspace)

    def find_violations(self) -> List[CapabilityViolation]:
        with self._lock:
            return self.gate.find_violations(self.workspace, self.components.selection)

    def get_state(self) -> Dict[str, Any]:
        """Get the workspace document plus selection info for the surface."""
        with self._lock:
            return {
                'workspace': serialize(self.workspace),
                'components': [
                    {'id': c.id, 'kind': c.kind.value, 'name': c.name}
                    for c in self.components.get_components()
                ],
                'violations': [v.details for v in self.find_violations()],
            }

    # ------------------------------------------------------------------
    # Block edits
    # ------------------------------------------------------------------

    def create_block(self, type_id: str, fields: Optional[Dict[str, Any]] = None,
                     block_id: Optional[str] = None, with_shadows: bool = True) -> Block:
        """Place a new root block.

        Undeclared variable names in VARIABLE fields are declared on the fly.

        Raises:
            UnknownType: if the type is not registered.
            CapabilityViolation: if the selection does not unlock the type.
            ValidationError: for bad field values, a taken id or a second entry point.
        """
        with self._lock:
            self.gate.check_placeable(type_id, self.components.selection)
            block_type = self.registry.describe(type_id)
            if type_id == ENTRY_POINT_TYPE and self.workspace.entry_point is not None:
                raise ValidationError("The workspace already has a setup/loop block")
            if block_id is not None and self.workspace.find_block(block_id) is not None:
                raise ValidationError(f"Block id '{block_id}' is already in use")

            values = block_type.validate_fields(fields or {})
            new_variables = self._undeclared_variables(block_type, values)

            block = self._build_block(block_type, values, block_id)
            if with_shadows:
                self._fill_shadows(block, block_type)

            for name in new_variables:
                self.workspace.add_variable(name)
            self.workspace.add_top_block(block)

        for name in new_variables:
            self._notify(MutationKind.VAR_CREATE, detail=name)
        self._notify(MutationKind.BLOCK_CREATE, block.id, type_id)
        return block

    def connect(self, block_id: str, parent_id: str, socket: Optional[str] = None):
        """Attach a block (and any chain hanging off it) to a parent.

        ``socket`` names a parent socket; None means the parent's ``next``.
        A displaced expression is bumped to the top level, a displaced
        statement chain is re-attached after the moved chain.

        Raises:
            ConnectionRejected: if the shapes do not fit or a cycle would form.
        """
        with self._lock:
            block = self._lookup(block_id)
            parent = self._lookup(parent_id)
            if any(candidate is parent for candidate in block.iter_subtree()):
                raise ConnectionRejected(
                    "Cannot connect a block into its own subtree",
                    {'block_id': block_id, 'parent_id': parent_id}
                )
            block_type = self.registry.describe(block.type)
            parent_type = self.registry.describe(parent.type)
            target = self._check_target(block_type, parent_type, socket)

            self._unlink(block)
            if target == 'next':
                displaced = parent.next
                parent.next = block
                block.last_in_chain().next = displaced
            elif target == 'statement':
                displaced = parent.inputs.get(socket)
                parent.inputs[socket] = block
                block.last_in_chain().next = displaced
            else:
                displaced = parent.inputs.get(socket)
                parent.inputs[socket] = block
                if displaced is not None:
                    self.workspace.add_top_block(displaced)

        self._notify(MutationKind.BLOCK_MOVE, block_id, {'parent_id': parent_id, 'socket': socket})

    def detach(self, block_id: str) -> bool:
        """Move a block (with its successors) to the top level."""
        with self._lock:
            block = self._lookup(block_id)
            if self.workspace.is_top_block(block):
                return False
            self._unlink(block)
            self.workspace.add_top_block(block)
        self._notify(MutationKind.BLOCK_MOVE, block_id)
        return True

    def delete_block(self, block_id: str) -> List[str]:
        """Delete a block and everything nested in it.

        The blocks that followed it close the gap. Returns the removed ids.

        Raises:
            ProtectedBlockError: if the block is not deletable.
        """
        with self._lock:
            removed = self._delete(self._lookup(block_id))
        self._notify(MutationKind.BLOCK_DELETE, block_id, removed)
        return removed

    def set_field(self, block_id: str, name: str, value: Any) -> Any:
        """Change one field value; returns the normalised value."""
        with self._lock:
            block = self._lookup(block_id)
            block_type = self.registry.describe(block.type)
            spec = block_type.fields.get(name)
            if spec is None:
                raise ValidationError(f"Block type '{block.type}' has no field '{name}'")
            value = spec.validate_value(value)
            if spec.kind == FieldKind.VARIABLE and value not in self.workspace.variables:
                raise ValidationError(f"Variable '{value}' is not declared")
            block.fields[name] = value
        self._notify(MutationKind.BLOCK_CHANGE, block_id, {'field': name, 'value': value})
        return value

    # ------------------------------------------------------------------
    # Variables
    # ------------------------------------------------------------------

    def create_variable(self, name: str) -> bool:
        """Declare a variable. Returns False if it already exists."""
        if not is_valid_identifier(name):
            raise ValidationError(f"'{name}' is not a valid variable name")
        with self._lock:
            added = self.workspace.add_variable(name)
        if added:
            self._notify(MutationKind.VAR_CREATE, detail=name)
        return added

    def delete_variable(self, name: str) -> bool:
        """Remove a variable together with every block that uses it."""
        with self._lock:
            if name not in self.workspace.variables:
                return False
            for block in self._blocks_using(name):
                # An earlier deletion may already have taken this block along
                if self.workspace.find_block(block.id) is block:
                    self._delete(block)
            self.workspace.remove_variable(name)
        self._notify(MutationKind.VAR_DELETE, detail=name)
        return True

    # ------------------------------------------------------------------
    # Whole-workspace operations
    # ------------------------------------------------------------------

    def clear(self):
        """Reset to the empty graph. The component selection is kept."""
        with self._lock:
            self.workspace = create_empty_workspace()
        self._notify(MutationKind.WORKSPACE_CLEAR)

    def save(self) -> Dict[str, Any]:
        with self._lock:
            return serialize(self.workspace)

    def load(self, document: Any) -> LoadResult:
        """Replace the workspace with a saved document, or leave it untouched."""
        try:
            workspace = deserialize(document, self.registry)
        except MalformedDocument as e:
            self.logger.warning("Rejected workspace document: %s", e)
            return LoadResult(error=e)
        return self._swap(workspace)

    def load_text(self, text: str) -> LoadResult:
        try:
            workspace = loads(text, self.registry)
        except MalformedDocument as e:
            self.logger.warning("Rejected workspace document: %s", e)
            return LoadResult(error=e)
        return self._swap(workspace)

    def _swap(self, workspace: Workspace) -> LoadResult:
        with self._lock:
            self.workspace = workspace
        self.logger.info("Loaded workspace with %d blocks", workspace.block_count())
        self._notify(MutationKind.WORKSPACE_LOAD)
        return LoadResult(workspace=workspace)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lookup(self, block_id: str) -> Block:
        block = self.workspace.find_block(block_id)
        if block is None:
            raise ConnectionRejected(f"No block with id '{block_id}'", {'block_id': block_id})
        return block

    def _build_block(self, block_type: BlockType, values: Dict[str, Any],
                     block_id: Optional[str]) -> Block:
        block = Block(type=block_type.type_id, fields=values, deletable=block_type.deletable)
        if block_id is not None:
            block.id = block_id
        for socket in block_type.sockets:
            block.inputs[socket.name] = None
        return block

    def _fill_shadows(self, block: Block, block_type: BlockType):
        for socket in block_type.value_sockets():
            if socket.shadow is None or not self.registry.has(socket.shadow.type):
                continue
            shadow_type = self.registry.describe(socket.shadow.type)
            values = shadow_type.validate_fields(dict(socket.shadow.fields))
            block.inputs[socket.name] = self._build_block(shadow_type, values, None)

    def _undeclared_variables(self, block_type: BlockType, values: Dict[str, Any]) -> List[str]:
        names = []
        for name, spec in block_type.fields.items():
            if spec.kind != FieldKind.VARIABLE:
                continue
            value = values[name]
            if not is_valid_identifier(value):
                raise ValidationError(f"'{value}' is not a valid variable name")
            if value not in self.workspace.variables and value not in names:
                names.append(value)
        return names

    def _check_target(self, block_type: BlockType, parent_type: BlockType,
                      socket: Optional[str]) -> str:
        if socket is None:
            if not (parent_type.is_statement and parent_type.chainable):
                raise ConnectionRejected(f"'{parent_type.type_id}' has no next connection")
            if not (block_type.is_statement and block_type.chainable):
                raise ConnectionRejected(f"'{block_type.type_id}' cannot follow another block")
            return 'next'

        target = parent_type.get_socket(socket)
        if target is None:
            raise ConnectionRejected(f"'{parent_type.type_id}' has no socket '{socket}'")
        if target.is_statement:
            if not (block_type.is_statement and block_type.chainable):
                raise ConnectionRejected(f"Socket '{socket}' only takes statement blocks")
            return 'statement'
        if block_type.is_statement:
            raise ConnectionRejected(f"Socket '{socket}' only takes expression blocks")
        if not target.accepts(block_type.output):
            raise ConnectionRejected(
                f"Socket '{socket}' does not accept '{block_type.output}' values"
            )
        return 'value'

    def _unlink(self, block: Block):
        """Cut a block (keeping its successors) out of its current position."""
        if self.workspace.remove_top_block(block):
            return
        parent, socket = self.workspace.find_parent(block)
        if socket is None:
            parent.next = None
        else:
            parent.inputs[socket] = None

    def _delete(self, block: Block) -> List[str]:
        if not block.deletable:
            raise ProtectedBlockError(block.id)
        successor = block.next
        block.next = None

        if self.workspace.is_top_block(block):
            index = next(i for i, root in enumerate(self.workspace.top_blocks) if root is block)
            if successor is not None:
                self.workspace.top_blocks[index] = successor
            else:
                del self.workspace.top_blocks[index]
        else:
            parent, socket = self.workspace.find_parent(block)
            if socket is None:
                parent.next = successor
            else:
                parent.inputs[socket] = successor

        removed = [b.id for b in block.iter_subtree()]
        self.logger.debug("Deleted %d block(s) starting at %s", len(removed), block.id)
        return removed

    def _blocks_using(self, variable: str) -> List[Block]:
        using = []
        for block in self.workspace.all_blocks():
            if not self.registry.has(block.type):
                continue
            specs = self.registry.describe(block.type).fields
            if any(spec.kind == FieldKind.VARIABLE and block.fields.get(name) == variable
                   for name, spec in specs.items()):
                using.append(block)
        return using

    def _notify(self, kind: MutationKind, block_id: Optional[str] = None, detail: Any = None):
        event = MutationEvent(kind, block_id, detail)
        if self.scheduler is not None:
            self.scheduler.notify(event)
        if self.on_model_changed:
            self.on_model_changed(event)

