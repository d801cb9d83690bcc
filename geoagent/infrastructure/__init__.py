"""
Infrastructure - host table access.

Exports:
    IRecordStore: Abstract record store
    QueueFields: Queue table column names
    GristRecordStore: Grist REST API implementation
    InMemoryRecordStore: Dict-backed implementation
"""

from .interface_repository import IRecordStore, QueueFields
from .grist_store import GristRecordStore
from .memory_store import InMemoryRecordStore

__all__ = ['IRecordStore', 'QueueFields', 'GristRecordStore', 'InMemoryRecordStore']
