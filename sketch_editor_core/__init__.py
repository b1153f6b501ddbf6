"""
Sketch Editor Core - block-graph compiler for Arduino sketches.

This package turns a workspace of connected blocks into Arduino C++ source,
gates which blocks may be placed by the selected hardware components, persists
workspaces and regenerates code after edits.
"""

__version__ = "0.1.0"
__author__ = "Sketch Editor Development Team"

from .exceptions import (
    SketchEditorError, UnknownType, HandlerFailure, MalformedDocument,
    CapabilityViolation, ExclusiveComponentError, ProtectedBlockError, ConnectionRejected
)
from .models import (
    Block, BlockType, BlockShape, FieldKind, FieldSpec, ValueSocket, StatementSocket,
    ShadowSpec, Workspace, ValidationError, ComponentKind, ComponentInstance,
    ComponentSelection, create_empty_workspace
)
from .block_registry import BlockRegistry, create_default_registry
from .capability_gate import CapabilityGate, COMPONENT_CATALOG
from .component_manager import ComponentManager
from .code_generator import (
    CodeGenerator, GenerationContext, GenerationResult, Order,
    StatementHandler, ExpressionHandler, DefinitionsTable
)
from .persistence import serialize, deserialize, dumps, loads, LoadResult
from .scheduler import RegenerationScheduler, MutationEvent, MutationKind
from .node_palette import NodePalette
from .canvas import Canvas
from .settings import EditorSettings

__all__ = [
    "SketchEditorError", "UnknownType", "HandlerFailure", "MalformedDocument",
    "CapabilityViolation", "ExclusiveComponentError", "ProtectedBlockError",
    "ConnectionRejected",
    "Block", "BlockType", "BlockShape", "FieldKind", "FieldSpec", "ValueSocket",
    "StatementSocket", "ShadowSpec", "Workspace", "ValidationError",
    "ComponentKind", "ComponentInstance", "ComponentSelection", "create_empty_workspace",
    "BlockRegistry", "create_default_registry",
    "CapabilityGate", "COMPONENT_CATALOG", "ComponentManager",
    "CodeGenerator", "GenerationContext", "GenerationResult", "Order",
    "StatementHandler", "ExpressionHandler", "DefinitionsTable",
    "serialize", "deserialize", "dumps", "loads", "LoadResult",
    "RegenerationScheduler", "MutationEvent", "MutationKind",
    "NodePalette", "Canvas", "EditorSettings",
]
