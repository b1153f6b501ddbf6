"""
Exceptions raised by the Sketch Editor core.

Every error carries an optional ``details`` dict so that the web layer can
surface structured information to the editing surface.
"""

from typing import Optional, Any, Dict


class SketchEditorError(Exception):
    """Base exception for all Sketch Editor errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class UnknownType(SketchEditorError):
    """Raised when a block type was never registered."""

    def __init__(self, type_id: str):
        super().__init__(f"Unknown block type: {type_id}", {'type_id': type_id})
        self.type_id = type_id


class HandlerFailure(SketchEditorError):
    """Raised when a block's code-generation handler fails."""

    def __init__(self, message: str, block_id: str, type_id: str,
                 cause: Optional[BaseException] = None):
        super().__init__(message, {'block_id': block_id, 'type_id': type_id})
        self.block_id = block_id
        self.type_id = type_id
        self.cause = cause


class MalformedDocument(SketchEditorError):
    """Raised when a persisted workspace document is structurally invalid."""

    def __init__(self, reason: str, block_id: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if block_id is not None:
            details['block_id'] = block_id
        super().__init__(f"Malformed document: {reason}", details)
        self.reason = reason
        self.block_id = block_id


class CapabilityViolation(SketchEditorError):
    """Raised when a block type is not allowed by the current component selection."""

    def __init__(self, type_id: str, required: Optional[list] = None):
        required = sorted(required or [])
        super().__init__(
            f"Block type '{type_id}' requires one of the components: {', '.join(required) or 'none'}",
            {'type_id': type_id, 'required': required}
        )
        self.type_id = type_id
        self.required = required


class ExclusiveComponentError(SketchEditorError):
    """Raised when a second instance of an exclusive component kind is selected."""

    def __init__(self, kind: str, existing_id: str):
        super().__init__(
            f"Only one '{kind}' component may be selected (already selected: {existing_id})",
            {'kind': kind, 'existing_id': existing_id}
        )
        self.kind = kind
        self.existing_id = existing_id


class ProtectedBlockError(SketchEditorError):
    """Raised when a graph edit tries to remove a non-deletable block."""

    def __init__(self, block_id: str):
        super().__init__(f"Block '{block_id}' cannot be deleted", {'block_id': block_id})
        self.block_id = block_id


class ConnectionRejected(SketchEditorError):
    """Raised when two blocks cannot be connected."""
    pass
