"""
Block Registry — static catalog of block types.

The registry maps a type id to its :class:`BlockType` description. Registration
is idempotent because the hosting editor surface may re-initialise at any time:
registering an id that already exists is a no-op unless ``replace`` is given.
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional

from .models import BlockType
from .exceptions import UnknownType


class BlockRegistry:
    """Read-mostly catalog of block types keyed by type id."""

    def __init__(self, block_types: Optional[Iterable[BlockType]] = None):
        self.logger = logging.getLogger(__name__)
        self._types: Dict[str, BlockType] = {}
        self._lock = threading.Lock()
        if block_types:
            self.register_all(block_types)

    def register(self, block_type: BlockType, replace: bool = False) -> bool:
        """Register a block type.

        Returns True if the registry changed, False if the id was already
        registered and ``replace`` was not requested.
        """
        with self._lock:
            if block_type.type_id in self._types and not replace:
                return False
            self._types[block_type.type_id] = block_type
        self.logger.debug("Registered block type %s", block_type.type_id)
        return True

    def register_all(self, block_types: Iterable[BlockType], replace: bool = False) -> int:
        """Register several block types; returns how many were added or replaced."""
        return sum(1 for block_type in block_types if self.register(block_type, replace=replace))

    def unregister(self, type_id: str) -> bool:
        with self._lock:
            return self._types.pop(type_id, None) is not None

    def describe(self, type_id: str) -> BlockType:
        """Return the description of a block type.

        Raises:
            UnknownType: if the type was never registered.
        """
        block_type = self._types.get(type_id)
        if block_type is None:
            raise UnknownType(type_id)
        return block_type

    def has(self, type_id: str) -> bool:
        return type_id in self._types

    def __contains__(self, type_id: str) -> bool:
        return self.has(type_id)

    def __len__(self) -> int:
        return len(self._types)

    def type_ids(self) -> List[str]:
        return list(self._types)

    def get_all(self) -> List[BlockType]:
        return list(self._types.values())


def create_default_registry() -> BlockRegistry:
    """Create a registry populated with the built-in Arduino block catalog."""
    from .block_catalog import BUILTIN_BLOCK_TYPES
    return BlockRegistry(BUILTIN_BLOCK_TYPES)
