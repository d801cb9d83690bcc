"""
Reactive state store.

Exports:
    ReactiveStore: Path pub/sub with bounded undo/redo
    HistoryEntry: One undo snapshot
    default_tree: Initial state namespaces
"""

from .reactive_store import ReactiveStore, HistoryEntry
from .tree import default_tree, get_in, set_in

__all__ = ['ReactiveStore', 'HistoryEntry', 'default_tree', 'get_in', 'set_in']
