"""Persistence: connection pool, migrations and record stores"""
from .database import Database
from .memory_store import InMemoryRecordStore
from .record_store import FieldFilter, PostgresRecordStore, RecordStore, Write

__all__ = [
    'Database',
    'FieldFilter',
    'InMemoryRecordStore',
    'PostgresRecordStore',
    'RecordStore',
    'Write',
]
