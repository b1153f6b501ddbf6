"""
Core data models for the Sketch Editor.

This module defines the fundamental data structures of the block compiler:
block types and their sockets/fields, placed blocks, the workspace forest and
the hardware component selection that drives capability gating.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Any, Tuple, Optional, FrozenSet, Iterator, Union
from enum import Enum
import math
import uuid


BASE_CAPABILITY = "base"
ENTRY_POINT_TYPE = "controls_setup"


class ValidationError(Exception):
    """Exception raised when a block, field value or workspace fails validation."""
    pass


class BlockShape(Enum):
    """Semantic shape of a block type."""
    STATEMENT = "statement"
    EXPRESSION = "expression"


class FieldKind(Enum):
    """Kinds of editable literal parameters a block can carry."""
    NUMBER = "number"
    DROPDOWN = "dropdown"
    TEXT = "text"
    VARIABLE = "variable"


@dataclass(frozen=True)
class FieldSpec:
    """Declares one editable field of a block type and its valid domain."""
    kind: FieldKind
    default: Any
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    options: Tuple[Tuple[str, str], ...] = ()  # (label, value) pairs for dropdowns

    def option_values(self) -> List[str]:
        return [value for _label, value in self.options]

    def validate_value(self, value: Any) -> Any:
        """Validate a value against this field's domain and return it normalised.

        Raises:
            ValidationError: if the value is outside the declared domain.
        """
        if self.kind == FieldKind.NUMBER:
            if isinstance(value, bool):
                raise ValidationError(f"Expected a number, got {value!r}")
            if isinstance(value, str):
                try:
                    number = float(value)
                except ValueError:
                    raise ValidationError(f"Expected a number, got {value!r}")
                value = int(number) if number.is_integer() else number
            if not isinstance(value, (int, float)):
                raise ValidationError(f"Expected a number, got {value!r}")
            if isinstance(value, float) and not math.isfinite(value):
                raise ValidationError(f"Expected a finite number, got {value!r}")
            if self.minimum is not None and value < self.minimum:
                raise ValidationError(f"Value {value} is below the minimum {self.minimum}")
            if self.maximum is not None and value > self.maximum:
                raise ValidationError(f"Value {value} is above the maximum {self.maximum}")
            return value

        if self.kind == FieldKind.DROPDOWN:
            if value not in self.option_values():
                raise ValidationError(
                    f"Value {value!r} is not one of {', '.join(self.option_values())}"
                )
            return value

        # TEXT and VARIABLE fields hold plain strings
        if not isinstance(value, str):
            raise ValidationError(f"Expected text, got {value!r}")
        if self.kind == FieldKind.VARIABLE and not value:
            raise ValidationError("Variable name must not be empty")
        return value


@dataclass(frozen=True)
class ShadowSpec:
    """Default child expression pre-filled into a value socket from the palette."""
    type: str
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ValueSocket:
    """A typed slot accepting a single expression block."""
    name: str
    check: Tuple[str, ...] = ()
    default_literal: str = "0"
    shadow: Optional[ShadowSpec] = None

    is_statement = False

    def accepts(self, output_type: Optional[str]) -> bool:
        """Check whether an expression with the given output type fits this socket."""
        if not self.check or output_type is None:
            return True
        return output_type in self.check


@dataclass(frozen=True)
class StatementSocket:
    """A slot holding a nested chain of statement blocks."""
    name: str

    is_statement = True


Socket = Union[ValueSocket, StatementSocket]


@dataclass
class BlockType:
    """A registry entry describing the semantic shape of one kind of block."""
    type_id: str
    shape: BlockShape
    sockets: List[Socket] = field(default_factory=list)
    fields: Dict[str, FieldSpec] = field(default_factory=dict)
    capabilities: FrozenSet[str] = frozenset({BASE_CAPABILITY})
    output: Optional[str] = None  # type tag produced by an expression block
    deletable: bool = True
    chainable: bool = True  # statement blocks that take previous/next links
    category: str = ""
    colour: str = ""
    tooltip: str = ""

    @property
    def is_statement(self) -> bool:
        return self.shape == BlockShape.STATEMENT

    @property
    def is_base(self) -> bool:
        return BASE_CAPABILITY in self.capabilities

    def get_socket(self, name: str) -> Optional[Socket]:
        """Get a socket by name."""
        for socket in self.sockets:
            if socket.name == name:
                return socket
        return None

    def value_sockets(self) -> List[ValueSocket]:
        return [s for s in self.sockets if not s.is_statement]

    def statement_sockets(self) -> List[StatementSocket]:
        return [s for s in self.sockets if s.is_statement]

    def default_fields(self) -> Dict[str, Any]:
        return {name: spec.default for name, spec in self.fields.items()}

    def validate_fields(self, values: Dict[str, Any], fill_defaults: bool = True) -> Dict[str, Any]:
        """Validate a field-value mapping and return the normalised mapping.

        Unknown field names are rejected. Missing fields are filled with their
        defaults when ``fill_defaults`` is set, otherwise they are an error.
        """
        unknown = set(values) - set(self.fields)
        if unknown:
            raise ValidationError(
                f"Unknown field(s) for '{self.type_id}': {', '.join(sorted(unknown))}"
            )

        result = {}
        for name, spec in self.fields.items():
            if name in values:
                try:
                    result[name] = spec.validate_value(values[name])
                except ValidationError as e:
                    raise ValidationError(f"Field '{name}' of '{self.type_id}': {e}")
            elif fill_defaults:
                result[name] = spec.default
            else:
                raise ValidationError(f"Missing field '{name}' for '{self.type_id}'")
        return result


@dataclass
class Block:
    """A node of the program graph.

    A block exclusively owns the subtrees connected to its sockets and the
    chain that follows it through ``next``.
    """
    type: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    fields: Dict[str, Any] = field(default_factory=dict)
    inputs: Dict[str, Optional['Block']] = field(default_factory=dict)
    next: Optional['Block'] = None
    deletable: bool = True

    def get_input(self, name: str) -> Optional['Block']:
        return self.inputs.get(name)

    def iter_chain(self) -> Iterator['Block']:
        """Yield this block and every block linked after it."""
        block = self
        while block is not None:
            yield block
            block = block.next

    def last_in_chain(self) -> 'Block':
        last = self
        while last.next is not None:
            last = last.next
        return last

    def iter_subtree(self) -> Iterator['Block']:
        """Yield every block reachable from this one (sockets and ``next``)."""
        stack = [self]
        while stack:
            block = stack.pop()
            yield block
            if block.next is not None:
                stack.append(block.next)
            for child in reversed(list(block.inputs.values())):
                if child is not None:
                    stack.append(child)


@dataclass
class Workspace:
    """The program graph: a forest of root blocks plus the variable symbol table."""
    top_blocks: List[Block] = field(default_factory=list)
    variables: List[str] = field(default_factory=list)

    @property
    def entry_point(self) -> Optional[Block]:
        """The protected setup/loop root, if present."""
        for block in self.top_blocks:
            if block.type == ENTRY_POINT_TYPE:
                return block
        return None

    def add_top_block(self, block: Block):
        """Add a root block. The entry point always stays first."""
        if block.type == ENTRY_POINT_TYPE:
            self.top_blocks.insert(0, block)
        else:
            self.top_blocks.append(block)

    def remove_top_block(self, block: Block) -> bool:
        for index, candidate in enumerate(self.top_blocks):
            if candidate is block:
                del self.top_blocks[index]
                return True
        return False

    def all_blocks(self) -> Iterator[Block]:
        for root in self.top_blocks:
            yield from root.iter_subtree()

    def find_block(self, block_id: str) -> Optional[Block]:
        for block in self.all_blocks():
            if block.id == block_id:
                return block
        return None

    def find_parent(self, block: Block) -> Optional[Tuple[Block, Optional[str]]]:
        """Return ``(parent, socket_name)`` for a block, or None for a root.

        ``socket_name`` is None when the block hangs off the parent's ``next``.
        """
        for candidate in self.all_blocks():
            if candidate.next is block:
                return candidate, None
            for name, child in candidate.inputs.items():
                if child is block:
                    return candidate, name
        return None

    def is_top_block(self, block: Block) -> bool:
        return any(root is block for root in self.top_blocks)

    def add_variable(self, name: str) -> bool:
        """Add a variable name. Returns False if it already exists."""
        if name in self.variables:
            return False
        self.variables.append(name)
        return True

    def remove_variable(self, name: str) -> bool:
        if name not in self.variables:
            return False
        self.variables.remove(name)
        return True

    def block_count(self) -> int:
        return sum(1 for _ in self.all_blocks())

    def validate(self) -> List[ValidationError]:
        """Check the forest invariants and return any errors."""
        errors = []
        seen_ids = set()
        seen_objects = set()
        for block in self.all_blocks():
            if id(block) in seen_objects:
                errors.append(ValidationError(f"Block '{block.id}' has more than one parent"))
                continue
            seen_objects.add(id(block))
            if block.id in seen_ids:
                errors.append(ValidationError(f"Duplicate block id '{block.id}'"))
            seen_ids.add(block.id)
        if len(set(self.variables)) != len(self.variables):
            errors.append(ValidationError("Duplicate variable names found"))
        return errors


def create_empty_workspace(entry_id: Optional[str] = None) -> Workspace:
    """Build the empty graph: just the protected setup/loop entry point."""
    entry = Block(
        type=ENTRY_POINT_TYPE,
        id=entry_id or str(uuid.uuid4()),
        inputs={'SETUP': None, 'LOOP': None},
        deletable=False,
    )
    return Workspace(top_blocks=[entry])


class ComponentKind(Enum):
    """Hardware/feature components supported by the board."""
    LED = "led"
    BUTTON = "button"
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    IMU = "imu"
    MICROPHONE = "microphone"


@dataclass(frozen=True)
class ComponentInstance:
    """One selected component."""
    id: str
    kind: ComponentKind
    name: str = ""


@dataclass
class ComponentSelection:
    """Ordered sequence of selected component instances."""
    instances: List[ComponentInstance] = field(default_factory=list)

    def __iter__(self) -> Iterator[ComponentInstance]:
        return iter(self.instances)

    def __len__(self) -> int:
        return len(self.instances)

    def kinds(self) -> FrozenSet[ComponentKind]:
        return frozenset(instance.kind for instance in self.instances)

    def find(self, component_id: str) -> Optional[ComponentInstance]:
        for instance in self.instances:
            if instance.id == component_id:
                return instance
        return None

    def of_kind(self, kind: ComponentKind) -> List[ComponentInstance]:
        return [instance for instance in self.instances if instance.kind == kind]
