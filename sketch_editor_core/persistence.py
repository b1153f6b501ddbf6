"""
Graph Persistence — save and restore a workspace.

A workspace is saved as a versioned document: a flat list of block records
keyed by their stable ids, in tree order, plus the ordered root ids and the
variable names. Children and ``next`` links are stored as id references so a
loader can detect dangling references, blocks with two parents and cycles.

Loading is all-or-nothing: :func:`deserialize` validates the whole document
before it builds a single block, and callers swap their current workspace only
once it returns.
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .block_registry import BlockRegistry
from .exceptions import MalformedDocument, UnknownType
from .models import (
    Block, BlockType, FieldKind, ValidationError, Workspace, ENTRY_POINT_TYPE
)

logger = logging.getLogger(__name__)

DOCUMENT_FORMAT = "sketch-editor-workspace"
DOCUMENT_VERSION = 1
SUPPORTED_VERSIONS = (1,)


# ─────────────────────────────────────────────────────────────────────────
# Serialize
# ─────────────────────────────────────────────────────────────────────────

def serialize(workspace: Workspace) -> Dict[str, Any]:
    """Convert a workspace to a JSON-safe document."""
    records = []
    for block in workspace.all_blocks():
        records.append({
            'id': block.id,
            'type': block.type,
            'fields': dict(block.fields),
            'inputs': {
                name: (child.id if child is not None else None)
                for name, child in block.inputs.items()
            },
            'next': block.next.id if block.next is not None else None,
            'deletable': block.deletable,
        })
    return {
        'format': DOCUMENT_FORMAT,
        'version': DOCUMENT_VERSION,
        'variables': list(workspace.variables),
        'top_blocks': [block.id for block in workspace.top_blocks],
        'blocks': records,
    }


def dumps(workspace: Workspace, indent: Optional[int] = 2) -> str:
    return json.dumps(serialize(workspace), indent=indent)


def save_to_file(workspace: Workspace, path: str):
    """Write a workspace document to a temp file, then atomically rename."""
    tmp_path = path + '.tmp'
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    with open(tmp_path, 'w', encoding='utf-8') as f:
        json.dump(serialize(workspace), f, indent=2)
    os.replace(tmp_path, path)
    logger.debug("Saved workspace to %s", path)


# ─────────────────────────────────────────────────────────────────────────
# Deserialize
# ─────────────────────────────────────────────────────────────────────────

def deserialize(document: Any, registry: BlockRegistry) -> Workspace:
    """Rebuild a workspace from a document.

    Raises:
        MalformedDocument: if the document is structurally invalid. When the
            cause is an unregistered block type the exception is chained from
            :class:`UnknownType`.
    """
    if not isinstance(document, dict):
        raise MalformedDocument("document must be an object")
    if document.get('format') != DOCUMENT_FORMAT:
        raise MalformedDocument(f"unrecognised format {document.get('format')!r}")
    version = document.get('version')
    if version not in SUPPORTED_VERSIONS:
        raise MalformedDocument(f"unsupported version {version!r}")

    variables = _read_variables(document.get('variables', []))
    records = document.get('blocks')
    top_ids = document.get('top_blocks')
    if not isinstance(records, list):
        raise MalformedDocument("'blocks' must be a list")
    if not isinstance(top_ids, list):
        raise MalformedDocument("'top_blocks' must be a list")

    by_id: Dict[str, Dict[str, Any]] = {}
    types: Dict[str, BlockType] = {}
    for record in records:
        block_id, block_type = _check_record(record, registry, variables)
        if block_id in by_id:
            raise MalformedDocument("duplicate block id", block_id)
        by_id[block_id] = record
        types[block_id] = block_type

    parents = _check_links(by_id, types)
    _check_roots(top_ids, by_id, types, parents)

    # Everything validated: build the blocks
    blocks = {
        block_id: Block(
            type=record['type'],
            id=block_id,
            fields=types[block_id].validate_fields(record.get('fields', {}), fill_defaults=False),
            deletable=record.get('deletable', types[block_id].deletable),
        )
        for block_id, record in by_id.items()
    }
    for block_id, record in by_id.items():
        block = blocks[block_id]
        for name, child_id in record.get('inputs', {}).items():
            block.inputs[name] = blocks[child_id] if child_id is not None else None
        if record.get('next') is not None:
            block.next = blocks[record['next']]

    return Workspace(
        top_blocks=[blocks[block_id] for block_id in top_ids],
        variables=variables,
    )


def loads(text: str, registry: BlockRegistry) -> Workspace:
    try:
        document = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedDocument(f"invalid JSON: {e}")
    return deserialize(document, registry)


def load_from_file(path: str, registry: BlockRegistry) -> Workspace:
    with open(path, 'r', encoding='utf-8') as f:
        text = f.read()
    return loads(text, registry)


def _read_variables(variables: Any) -> List[str]:
    if not isinstance(variables, list) or not all(isinstance(v, str) and v for v in variables):
        raise MalformedDocument("'variables' must be a list of names")
    if len(set(variables)) != len(variables):
        raise MalformedDocument("duplicate variable names")
    return list(variables)


def _check_record(record: Any, registry: BlockRegistry, variables: List[str]):
    if not isinstance(record, dict):
        raise MalformedDocument("block record must be an object")
    block_id = record.get('id')
    if not isinstance(block_id, str) or not block_id:
        raise MalformedDocument("block record without an id")

    if not isinstance(record.get('type'), str):
        raise MalformedDocument("block record without a type", block_id)
    try:
        block_type = registry.describe(record['type'])
    except UnknownType as e:
        raise MalformedDocument(
            f"unknown block type {record.get('type')!r}", block_id, {'type_id': record.get('type')}
        ) from e

    fields = record.get('fields', {})
    if not isinstance(fields, dict):
        raise MalformedDocument("'fields' must be an object", block_id)
    try:
        block_type.validate_fields(fields, fill_defaults=False)
    except ValidationError as e:
        raise MalformedDocument(str(e), block_id) from e
    for name, spec in block_type.fields.items():
        if spec.kind == FieldKind.VARIABLE and fields[name] not in variables:
            raise MalformedDocument(f"undeclared variable {fields[name]!r}", block_id)

    if not isinstance(record.get('inputs', {}), dict):
        raise MalformedDocument("'inputs' must be an object", block_id)
    if not isinstance(record.get('deletable', True), bool):
        raise MalformedDocument("'deletable' must be a boolean", block_id)
    if record.get('deletable') is True and not block_type.deletable:
        raise MalformedDocument(f"blocks of type {block_type.type_id!r} cannot be deletable", block_id)
    return block_id, block_type


def _check_links(by_id: Dict[str, Dict[str, Any]], types: Dict[str, BlockType]) -> Dict[str, str]:
    """Validate every child/next reference; return child id -> parent id."""
    parents: Dict[str, str] = {}

    def claim(child_id: Any, parent_id: str):
        if not isinstance(child_id, str) or child_id not in by_id:
            raise MalformedDocument(f"reference to nonexistent block {child_id!r}", parent_id)
        if child_id in parents:
            raise MalformedDocument("block has more than one parent", child_id)
        parents[child_id] = parent_id

    for block_id, record in by_id.items():
        block_type = types[block_id]
        for name, child_id in record.get('inputs', {}).items():
            socket = block_type.get_socket(name)
            if socket is None:
                raise MalformedDocument(f"unknown socket {name!r}", block_id)
            if child_id is None:
                continue
            claim(child_id, block_id)
            child_type = types[child_id]
            if socket.is_statement:
                if not (child_type.is_statement and child_type.chainable):
                    raise MalformedDocument(f"socket {name!r} needs a statement block", block_id)
            elif child_type.is_statement or not socket.accepts(child_type.output):
                raise MalformedDocument(f"socket {name!r} rejects {child_type.type_id!r}", block_id)

        next_id = record.get('next')
        if next_id is not None:
            if not (block_type.is_statement and block_type.chainable):
                raise MalformedDocument("block cannot have a next block", block_id)
            claim(next_id, block_id)
            next_type = types[next_id]
            if not (next_type.is_statement and next_type.chainable):
                raise MalformedDocument("next block must be a statement", block_id)
    return parents


def _check_roots(top_ids: List[Any], by_id: Dict[str, Dict[str, Any]],
                 types: Dict[str, BlockType], parents: Dict[str, str]):
    """Roots must be parentless; every block must be reachable from a root."""
    if not all(isinstance(root_id, str) for root_id in top_ids):
        raise MalformedDocument("root ids must be strings")
    if len(set(top_ids)) != len(top_ids):
        raise MalformedDocument("duplicate root ids")
    for root_id in top_ids:
        if root_id not in by_id:
            raise MalformedDocument(f"root references nonexistent block {root_id!r}")
        if root_id in parents:
            raise MalformedDocument("root block also has a parent", root_id)

    entry_points = [block_id for block_id, t in types.items() if t.type_id == ENTRY_POINT_TYPE]
    if len(entry_points) > 1:
        raise MalformedDocument("more than one entry point")
    if entry_points and entry_points[0] in parents:
        raise MalformedDocument("entry point must be a root", entry_points[0])

    # Reachability also rules out cycles, since every block has one parent
    reached = set()
    stack = list(top_ids)
    while stack:
        block_id = stack.pop()
        if block_id in reached:
            raise MalformedDocument("cycle detected", block_id)
        reached.add(block_id)
        record = by_id[block_id]
        stack.extend(child for child in record.get('inputs', {}).values() if child is not None)
        if record.get('next') is not None:
            stack.append(record['next'])
    unreachable = set(by_id) - reached
    if unreachable:
        raise MalformedDocument("blocks not reachable from any root", sorted(unreachable)[0])


@dataclass
class LoadResult:
    """Outcome of a load at the operation boundary."""
    workspace: Optional[Workspace] = None
    error: Optional[MalformedDocument] = None

    @property
    def success(self) -> bool:
        return self.error is None
