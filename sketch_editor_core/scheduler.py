"""
Regeneration Scheduler — debounced recompilation on graph mutations.

Every graph mutation calls :meth:`RegenerationScheduler.notify`. Notifications
arriving within the debounce window are coalesced: each one restarts the
window, and when it finally elapses a single generation runs against the
workspace as it is *then*, not as it was at any individual event.

The scheduler is level-triggered: it remembers only that something changed,
never a queue of changes.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Union

from .code_generator import GenerationResult


class MutationKind(Enum):
    """Graph mutation events emitted by the editing surface."""
    BLOCK_CREATE = "block_create"
    BLOCK_MOVE = "block_move"
    BLOCK_DELETE = "block_delete"
    BLOCK_CHANGE = "block_change"
    VAR_CREATE = "var_create"
    VAR_DELETE = "var_delete"
    WORKSPACE_CLEAR = "workspace_clear"
    WORKSPACE_LOAD = "workspace_load"


@dataclass(frozen=True)
class MutationEvent:
    """One mutation, with enough identity for the surface to update its view."""
    kind: MutationKind
    block_id: Optional[str] = None
    detail: Optional[Any] = None


class RegenerationScheduler:
    """Coalesces bursts of mutation events into single generation runs."""

    DEFAULT_WINDOW = 0.1   # debounce window in seconds

    def __init__(self, generate: Callable[[], GenerationResult],
                 window: Optional[float] = None,
                 timer_factory: Callable[..., Any] = threading.Timer):
        self.logger = logging.getLogger(__name__)
        self._generate = generate
        self.window = self.DEFAULT_WINDOW if window is None else window
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._timer = None
        self._token = 0
        self._subscribers: List[Callable[[GenerationResult], None]] = []
        self.pending_events = 0
        self.generation_count = 0
        self.last_event: Optional[MutationEvent] = None
        self.last_result: Optional[GenerationResult] = None

    def subscribe(self, callback: Callable[[GenerationResult], None]):
        """Register a callback receiving every generation result."""
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[GenerationResult], None]) -> bool:
        if callback in self._subscribers:
            self._subscribers.remove(callback)
            return True
        return False

    @property
    def is_pending(self) -> bool:
        return self.pending_events > 0

    def notify(self, event: Union[MutationEvent, MutationKind, str]):
        """Record a mutation and (re)start the debounce window."""
        if not isinstance(event, MutationEvent):
            event = MutationEvent(MutationKind(event))
        with self._lock:
            self.pending_events += 1
            self.last_event = event
            # A new event supersedes the pending timer rather than stacking runs
            if self._timer is not None:
                self._timer.cancel()
            self._token += 1
            self._timer = self._timer_factory(self.window, self._fire, args=(self._token,))
            self._timer.daemon = True
            self._timer.start()

    def flush(self) -> Optional[GenerationResult]:
        """Run a pending generation immediately. Returns None if nothing was pending."""
        with self._lock:
            if not self._take_pending():
                return None
        return self._run()

    def cancel(self):
        """Drop a pending generation without running it."""
        with self._lock:
            self._take_pending()

    def _take_pending(self) -> bool:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._token += 1
        had_pending = self.pending_events > 0
        self.pending_events = 0
        return had_pending

    def _fire(self, token: int):
        """Timer callback: generate if this timer is still the current one."""
        with self._lock:
            if token != self._token or self.pending_events == 0:
                return
            self._timer = None
            self.pending_events = 0
        self._run()

    def _run(self) -> GenerationResult:
        with self._run_lock:
            result = self._generate()
            self.generation_count += 1
            self.last_result = result
        self.logger.debug("Generation #%d finished (success=%s)",
                          self.generation_count, result.success)
        for callback in list(self._subscribers):
            try:
                callback(result)
            except Exception:
                self.logger.exception("Generation result subscriber failed")
        return result
