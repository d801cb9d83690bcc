"""
Persistent State Tree.

Nested dicts used as immutable values. ``set_in`` never mutates: it copies
the nodes on the path from the root and shares every other subtree with
the previous version, so keeping an old root is a complete point-in-time
snapshot at the cost of one reference.

Exports:
    split_path: Dot path to key tuple
    get_in: Read a value by path, never raising
    set_in: New root with one path replaced
    default_tree: Initial state namespaces
"""

import copy
from collections.abc import Mapping
from typing import Any, Dict, Tuple

from geoagent.config.defaults import StoreDefaults


def split_path(path: str) -> Tuple[str, ...]:
    """'map.center' -> ('map', 'center'); '' -> ()."""
    if not path:
        return ()
    return tuple(path.split("."))


def get_in(tree: Any, path: str) -> Any:
    """Value at a dot path, or None when any segment is missing."""
    node = tree
    for key in split_path(path):
        if not isinstance(node, Mapping) or key not in node:
            return None
        node = node[key]
    return node


def set_in(tree: Dict[str, Any], path: str, value: Any) -> Dict[str, Any]:
    """
    Return a new root with ``value`` at ``path``.

    Missing intermediate nodes are created; a non-mapping intermediate is
    replaced by a new mapping. The value is deep-copied so later caller
    mutation cannot reach stored snapshots. An empty path replaces the
    whole tree.
    """
    keys = split_path(path)
    value = copy.deepcopy(value)
    if not keys:
        return value if isinstance(value, dict) else {}
    return _assoc(tree, keys, value)


def _assoc(node: Any, keys: Tuple[str, ...], value: Any) -> Dict[str, Any]:
    new_node = dict(node) if isinstance(node, Mapping) else {}
    head, rest = keys[0], keys[1:]
    if rest:
        new_node[head] = _assoc(new_node.get(head), rest, value)
    else:
        new_node[head] = value
    return new_node


def default_tree() -> Dict[str, Any]:
    """Fresh initial state for every namespace the UI and pipeline use."""
    return {
        "map": {
            "center": list(StoreDefaults.DEFAULT_CENTER),
            "zoom": StoreDefaults.DEFAULT_ZOOM,
            "bounds": None,
        },
        "layers": {
            "workspace": [],
            "raster": [],
            "system": [],
        },
        "selection": {
            "ids": [],
            "geometryTypes": [],
            "bounds": None,
        },
        "ui": {
            "activeTab": "layers",
            "activePanel": None,
            "loading": False,
            "modal": None,
            "sidebarCollapsed": False,
            "notification": None,
        },
        "tools": {
            "activeTool": None,
            "config": {},
            "lastUsed": [],
        },
        "data": {
            "currentTable": None,
            "catalogs": [],
            "styles": [],
            "importHistory": [],
            "searchHistory": [],
            "queryHistory": [],
            "currentQuery": None,
            "executionSteps": [],
        },
    }
