"""
Reactive State Store.

Path-addressable state tree with pub/sub and bounded undo/redo. The query
orchestrator publishes progress into it and the UI subscribes to paths.

Notification rules:
    - A write to ``a.b.c`` notifies subscribers of ``a.b.c``, then ``a.b``,
      then ``a``, then global ``''`` subscribers (who get the whole tree).
    - A batch notifies each distinct subscribed path once.
    - undo, redo and reset notify every subscriber.

Exports:
    ReactiveStore: The store
    HistoryEntry: One undo snapshot
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from geoagent.config.defaults import StoreDefaults
from geoagent.util_logger import LoggerFactory, ComponentType

from .tree import default_tree, get_in, set_in, split_path

logger = LoggerFactory.create_logger(ComponentType.STORE, "ReactiveStore")

Subscriber = Callable[[Any], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class HistoryEntry:
    """A whole-tree snapshot; cheap because the tree is persistent."""
    snapshot: Dict[str, Any]
    description: str
    timestamp: datetime = field(default_factory=_utc_now)


class ReactiveStore:
    """
    State tree with path subscriptions and bounded undo/redo.

    History is a list of snapshots plus a cursor. ``entries[:cursor]`` are
    states undo can return to; ``entries[cursor:]`` are states redo can
    return to. Undo and redo swap the live tree with the entry they land
    on, so every entry always holds a state that is not currently live.

    Values returned by ``get_state`` are shared with history snapshots and
    must be treated as read-only; the store itself never mutates a node
    after creating it.
    """

    def __init__(self, max_history: int = StoreDefaults.MAX_HISTORY,
                 initial_state: Optional[Dict[str, Any]] = None):
        if max_history < 1:
            raise ValueError(f"max_history must be >= 1, got {max_history}")
        self.max_history = max_history
        self._state: Dict[str, Any] = set_in({}, "", initial_state) if initial_state else default_tree()
        self._history: List[HistoryEntry] = []
        self._cursor = 0
        self._subscribers: Dict[str, List[Subscriber]] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_state(self, path: Optional[str] = None) -> Any:
        """Full tree, or the value at ``path`` (None when missing)."""
        if not path:
            return self._state
        return get_in(self._state, path)

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._history)

    def get_history(self) -> Dict[str, Any]:
        """Descriptions and timestamps of history entries plus cursor flags."""
        return {
            "entries": [
                {"description": e.description, "timestamp": e.timestamp.isoformat()}
                for e in self._history
            ],
            "current_index": self._cursor,
            "can_undo": self.can_undo,
            "can_redo": self.can_redo,
        }

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_state(self, path: str, value: Any, description: str = "") -> None:
        """Write one path as one undoable step and notify it and its ancestors."""
        self._record(description or f"set {path}")
        self._state = set_in(self._state, path, value)
        logger.debug(f"set_state {path!r}")
        self._notify_paths([path])

    def batch_update(self, updates: Dict[str, Any], description: str = "") -> None:
        """
        Write several paths as one undoable step.

        Each distinct subscribed path (touched paths, their ancestors and
        global) is notified once after all writes are applied.
        """
        if not updates:
            return
        self._record(description or f"batch {', '.join(updates)}")
        state = self._state
        for path, value in updates.items():
            state = set_in(state, path, value)
        self._state = state
        logger.debug(f"batch_update {list(updates)}")
        self._notify_paths(list(updates))

    def undo(self) -> bool:
        """Step back one entry; False when there is nothing to undo."""
        if not self.can_undo:
            return False
        index = self._cursor - 1
        target = self._history[index]
        self._history[index] = HistoryEntry(self._state, target.description, target.timestamp)
        self._state = target.snapshot
        self._cursor = index
        logger.debug(f"undo -> {target.description!r}")
        self._notify_all()
        return True

    def redo(self) -> bool:
        """Step forward one entry; False when there is nothing to redo."""
        if not self.can_redo:
            return False
        index = self._cursor
        target = self._history[index]
        self._history[index] = HistoryEntry(self._state, target.description, target.timestamp)
        self._state = target.snapshot
        self._cursor = index + 1
        logger.debug(f"redo -> {target.description!r}")
        self._notify_all()
        return True

    def reset(self) -> None:
        """Drop history and restore the default tree."""
        self._history = []
        self._cursor = 0
        self._state = default_tree()
        logger.info("Store reset to default state")
        self._notify_all()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, path: str, callback: Subscriber) -> Callable[[], None]:
        """
        Call ``callback(value)`` whenever ``path`` or a descendant changes.

        Returns:
            A function that removes this subscription (idempotent)
        """
        callbacks = self._subscribers.setdefault(path, [])
        callbacks.append(callback)
        active = True

        def unsubscribe() -> None:
            nonlocal active
            if not active:
                return
            active = False
            registered = self._subscribers.get(path, [])
            if callback in registered:
                registered.remove(callback)
            if not registered:
                self._subscribers.pop(path, None)

        return unsubscribe

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record(self, description: str) -> None:
        del self._history[self._cursor:]
        self._history.append(HistoryEntry(self._state, description))
        if len(self._history) > self.max_history:
            self._history.pop(0)
        self._cursor = len(self._history)

    def _affected_paths(self, paths: List[str]) -> List[str]:
        ordered: List[str] = []
        for path in paths:
            keys = split_path(path)
            for depth in range(len(keys), 0, -1):
                candidate = ".".join(keys[:depth])
                if candidate in self._subscribers and candidate not in ordered:
                    ordered.append(candidate)
        if "" in self._subscribers:
            ordered.append("")
        return ordered

    def _notify_paths(self, paths: List[str]) -> None:
        if "" in paths:
            # whole tree replaced
            self._notify_all()
            return
        for path in self._affected_paths(paths):
            self._deliver(path)

    def _notify_all(self) -> None:
        for path in list(self._subscribers):
            self._deliver(path)

    def _deliver(self, path: str) -> None:
        value = self.get_state(path)
        for callback in list(self._subscribers.get(path, [])):
            try:
                callback(value)
            except Exception:
                logger.exception(f"Subscriber for {path!r} raised; continuing")
