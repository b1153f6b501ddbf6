"""
Code Generator for producing Arduino sketches from block workspaces.

The generator owns a dispatch table from block type to handler. A generation
run walks the workspace starting at the entry point, asks each statement
handler for the text of its single statement and appends the text of the
following chain itself, so no handler ever deals with ``next``. Expression
handlers return a ``(code, order)`` pair and the caller decides whether the
child needs parentheses.

Global scaffolding (``#include`` lines, helper functions, ``pinMode`` calls)
is contributed through a :class:`DefinitionsTable` that lives inside a
:class:`GenerationContext` created fresh for every run, so nothing leaks
between runs.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .block_registry import BlockRegistry
from .exceptions import HandlerFailure, SketchEditorError, UnknownType
from .models import Block, BlockType, Workspace, ENTRY_POINT_TYPE


ERROR_PLACEHOLDER = "// Error generating code"
EMPTY_PLACEHOLDER = "// No blocks to generate code"


class Order(IntEnum):
    """C++ operator precedence, tightest binding first."""
    ATOMIC = 0
    UNARY_POSTFIX = 1   # expr++ expr-- () [] .
    UNARY_PREFIX = 2    # -expr !expr ~expr ++expr --expr
    MULTIPLICATIVE = 3  # * / %
    ADDITIVE = 4        # + -
    SHIFT = 5           # << >>
    RELATIONAL = 6      # < <= > >=
    EQUALITY = 7        # == !=
    BITWISE_AND = 8
    BITWISE_XOR = 9
    BITWISE_OR = 10
    LOGICAL_AND = 11
    LOGICAL_OR = 12
    CONDITIONAL = 13    # expr ? expr : expr
    ASSIGNMENT = 14
    NONE = 99


class GeneratorState(Enum):
    """Lifecycle of the code generator."""
    IDLE = "idle"
    GENERATING = "generating"
    SUCCESS = "success"
    FAILED = "failed"


class DefinitionSection(Enum):
    """Where a definition is emitted in the assembled sketch."""
    GLOBAL = "global"  # before setup()
    SETUP = "setup"    # first lines of the setup() body


@dataclass
class Definition:
    key: str
    text: str
    section: DefinitionSection = DefinitionSection.GLOBAL


class DefinitionsTable:
    """Keyed store of idempotent declarations contributed by handlers.

    Writing an existing key overwrites its text but keeps its original
    position, so any number of blocks can ask for the same ``#include``
    and it appears once.
    """

    def __init__(self):
        self._entries: Dict[str, Definition] = {}

    def add(self, key: str, text: str, section: DefinitionSection = DefinitionSection.GLOBAL):
        self._entries[key] = Definition(key, text, section)

    def get(self, key: str) -> Optional[Definition]:
        return self._entries.get(key)

    def clear(self):
        self._entries.clear()

    def keys(self) -> List[str]:
        return list(self._entries)

    def values(self, section: Optional[DefinitionSection] = None) -> List[str]:
        return [
            entry.text for entry in self._entries.values()
            if section is None or entry.section == section
        ]

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class GenerationContext:
    """Run-scoped state threaded through one generation pass."""

    def __init__(self, generator: 'CodeGenerator', workspace: Workspace):
        self.generator = generator
        self.workspace = workspace
        self.definitions = DefinitionsTable()
        self.warnings: List[str] = []
        self._visited: set = set()
        self._names: Dict[str, int] = {}
        self._taken: set = set(workspace.variables)

    @property
    def indent(self) -> str:
        return self.generator.indent

    def add_definition(self, key: str, text: str,
                       section: DefinitionSection = DefinitionSection.GLOBAL):
        self.definitions.add(key, text, section)

    def unique_name(self, base: str) -> str:
        """Return a C identifier not yet taken in this run (``i``, ``i2``, ...).

        Workspace variables are taken from the start, so generated names never
        shadow them.
        """
        count = self._names.get(base, 0)
        while True:
            count += 1
            name = base if count == 1 else f"{base}{count}"
            if name not in self._taken:
                break
        self._names[base] = count
        self._taken.add(name)
        return name

    def describe(self, block: Block) -> BlockType:
        return self.generator.registry.describe(block.type)

    def statement_to_code(self, block: Block, socket_name: str) -> str:
        """Compile the chain plugged into a statement socket, indented one level."""
        return self.generator.statement_to_code(self, block, socket_name)

    def value_to_code(self, block: Block, socket_name: str, outer_order: int) -> str:
        """Compile the expression plugged into a value socket."""
        return self.generator.value_to_code(self, block, socket_name, outer_order)

    def mark_visited(self, block: Block):
        if id(block) in self._visited:
            raise HandlerFailure(
                f"Block '{block.id}' is reachable more than once", block.id, block.type
            )
        self._visited.add(id(block))


class StatementHandler(ABC):
    """Generates the text of a single statement block."""

    @abstractmethod
    def generate(self, block: Block, ctx: GenerationContext) -> str:
        """Return this block's statement text, including its trailing newline."""
        pass


class ExpressionHandler(ABC):
    """Generates the text of an expression block."""

    @abstractmethod
    def generate(self, block: Block, ctx: GenerationContext) -> Tuple[str, int]:
        """Return ``(code, order)`` where ``order`` is the code's precedence."""
        pass


class FunctionStatementHandler(StatementHandler):
    """Adapts a plain function to the statement handler interface."""

    def __init__(self, func: Callable[[Block, GenerationContext], str]):
        self.func = func

    def generate(self, block: Block, ctx: GenerationContext) -> str:
        return self.func(block, ctx)


class FunctionExpressionHandler(ExpressionHandler):
    """Adapts a plain function to the expression handler interface."""

    def __init__(self, func: Callable[[Block, GenerationContext], Tuple[str, int]]):
        self.func = func

    def generate(self, block: Block, ctx: GenerationContext) -> Tuple[str, int]:
        return self.func(block, ctx)


Handler = Union[StatementHandler, ExpressionHandler]


@dataclass
class Diagnostic:
    """Why a generation run failed."""
    kind: str  # 'UnknownType' | 'HandlerFailure'
    message: str
    block_id: Optional[str] = None
    type_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'message': self.message,
            'block_id': self.block_id,
            'type_id': self.type_id,
        }


@dataclass
class GenerationResult:
    """Outcome of one generation run: either ``text`` or ``error``."""
    text: Optional[str] = None
    error: Optional[Diagnostic] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def display_text(self) -> str:
        """The text shown in place of code: the sketch, or a one-line diagnostic."""
        return self.text if self.success else ERROR_PLACEHOLDER

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'code': self.display_text,
            'error': self.error.to_dict() if self.error else None,
            'warnings': list(self.warnings),
        }


def prefix_lines(text: str, prefix: str) -> str:
    """Indent every non-empty line of ``text``."""
    return ''.join(
        prefix + line if line.strip() else line
        for line in text.splitlines(keepends=True)
    )


class CodeGenerator:
    """Compiles a workspace into Arduino source text."""

    def __init__(self, registry: BlockRegistry,
                 handlers: Optional[Dict[str, Handler]] = None,
                 indent: str = "  "):
        self.logger = logging.getLogger(__name__)
        self.registry = registry
        self.indent = indent
        self.state = GeneratorState.IDLE
        self.last_outcome: Optional[GeneratorState] = None
        self._handlers: Dict[str, Handler] = {}

        if handlers is None:
            from .arduino_handlers import ARDUINO_HANDLERS
            handlers = ARDUINO_HANDLERS
        for type_id, handler in handlers.items():
            self.register_handler(type_id, handler)

    def register_handler(self, type_id: str, handler: Handler):
        """Bind a handler to a block type, replacing any previous binding."""
        if not isinstance(handler, (StatementHandler, ExpressionHandler)):
            raise TypeError(f"Handler for '{type_id}' must be a StatementHandler or ExpressionHandler")
        self._handlers[type_id] = handler

    def has_handler(self, type_id: str) -> bool:
        return type_id in self._handlers

    def generate(self, workspace: Workspace) -> GenerationResult:
        """Compile a workspace. Never raises: failures become a diagnostic."""
        self._set_state(GeneratorState.GENERATING)
        ctx = GenerationContext(self, workspace)
        try:
            text = self._workspace_to_code(ctx)
            result = GenerationResult(text=text, warnings=ctx.warnings)
            outcome = GeneratorState.SUCCESS
        except UnknownType as e:
            self.logger.warning("Generation failed: %s", e)
            result = GenerationResult(error=Diagnostic(
                kind='UnknownType', message=str(e),
                block_id=e.details.get('block_id'), type_id=e.type_id,
            ))
            outcome = GeneratorState.FAILED
        except HandlerFailure as e:
            self.logger.warning("Generation failed: %s", e)
            result = GenerationResult(error=Diagnostic(
                kind='HandlerFailure', message=str(e),
                block_id=e.block_id, type_id=e.type_id,
            ))
            outcome = GeneratorState.FAILED
        except (SketchEditorError, RecursionError) as e:
            self.logger.exception("Generation failed")
            result = GenerationResult(error=Diagnostic(kind='HandlerFailure', message=str(e)))
            outcome = GeneratorState.FAILED

        self._set_state(outcome)
        self.last_outcome = outcome
        self._set_state(GeneratorState.IDLE)
        return result

    def _set_state(self, state: GeneratorState):
        self.logger.debug("Generator state %s -> %s", self.state.value, state.value)
        self.state = state

    def _workspace_to_code(self, ctx: GenerationContext) -> str:
        entry = ctx.workspace.entry_point
        roots = [root for root in ctx.workspace.top_blocks if root is not entry]
        if entry is not None:
            roots.insert(0, entry)

        program = None
        for root in roots:
            code = self.root_to_code(ctx, root)
            if root is entry:
                program = code
            else:
                ctx.warnings.append(f"Block '{root.id}' is not attached to setup/loop and was ignored")

        if program is None:
            return EMPTY_PLACEHOLDER
        return program

    def root_to_code(self, ctx: GenerationContext, root: Block) -> str:
        """Compile one root: a statement chain, or a loose expression."""
        block_type = self._describe(root)
        if block_type.is_statement:
            return self.chain_to_code(ctx, root)
        code, _order = self.expression_to_code(ctx, root)
        return code

    def chain_to_code(self, ctx: GenerationContext, first: Block) -> str:
        """Compile a statement chain: each block's own text followed by its successors'."""
        parts = []
        for block in first.iter_chain():
            parts.append(self.statement_block_to_code(ctx, block))
        return ''.join(parts)

    def statement_block_to_code(self, ctx: GenerationContext, block: Block) -> str:
        """Run the handler of a single statement block (not its successors)."""
        block_type = self._describe(block)
        if not block_type.is_statement:
            raise HandlerFailure(
                f"Expression block '{block.id}' cannot be used as a statement", block.id, block.type
            )
        ctx.mark_visited(block)
        handler = self._handler_for(block)
        code = self._invoke(handler, block, ctx)
        if not isinstance(code, str):
            raise HandlerFailure(
                f"Handler for '{block.type}' returned {type(code).__name__}, expected text",
                block.id, block.type,
            )
        return code

    def expression_to_code(self, ctx: GenerationContext, block: Block) -> Tuple[str, int]:
        block_type = self._describe(block)
        if block_type.is_statement:
            raise HandlerFailure(
                f"Statement block '{block.id}' cannot be used as a value", block.id, block.type
            )
        ctx.mark_visited(block)
        handler = self._handler_for(block)
        result = self._invoke(handler, block, ctx)
        if not (isinstance(result, tuple) and len(result) == 2 and isinstance(result[0], str)):
            raise HandlerFailure(
                f"Handler for '{block.type}' must return a (code, order) pair",
                block.id, block.type,
            )
        return result

    def statement_to_code(self, ctx: GenerationContext, block: Block, socket_name: str) -> str:
        self._socket(block, socket_name, statement=True)
        child = block.inputs.get(socket_name)
        if child is None:
            return ''
        return prefix_lines(self.chain_to_code(ctx, child), self.indent)

    def value_to_code(self, ctx: GenerationContext, block: Block,
                      socket_name: str, outer_order: int) -> str:
        socket = self._socket(block, socket_name, statement=False)
        child = block.inputs.get(socket_name)
        if child is None:
            return socket.default_literal

        code, inner_order = self.expression_to_code(ctx, child)
        if not code:
            return socket.default_literal
        if inner_order >= outer_order and not (
            inner_order == outer_order and outer_order in (Order.ATOMIC, Order.NONE)
        ):
            code = f"({code})"
        return code

    def _describe(self, block: Block) -> BlockType:
        try:
            return self.registry.describe(block.type)
        except UnknownType as e:
            e.details['block_id'] = block.id
            raise

    def _handler_for(self, block: Block) -> Handler:
        handler = self._handlers.get(block.type)
        if handler is None:
            raise HandlerFailure(
                f"No code generator for block type '{block.type}'", block.id, block.type
            )
        return handler

    def _socket(self, block: Block, socket_name: str, statement: bool):
        socket = self._describe(block).get_socket(socket_name)
        if socket is None or socket.is_statement != statement:
            kind = "statement" if statement else "value"
            raise HandlerFailure(
                f"Block type '{block.type}' has no {kind} socket '{socket_name}'",
                block.id, block.type,
            )
        return socket

    def _invoke(self, handler: Handler, block: Block, ctx: GenerationContext):
        try:
            return handler.generate(block, ctx)
        except SketchEditorError:
            # Failures of nested blocks keep their own identity
            raise
        except Exception as e:
            raise HandlerFailure(
                f"Code generation failed for block '{block.id}' ({block.type}): {e}",
                block.id, block.type, cause=e,
            ) from e
