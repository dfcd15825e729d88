"""Storage layer for inventory records, decisions and policy state.

Usage:
    from risk_tiering.storage import FileRecordStore

    store = FileRecordStore(Path("output"))
    record = store.find_record("INV-001")
    for record in store.list_records(ACTIVE_RECORDS):
        ...
    with store.transaction():
        store.save_policy(policy)
        store.set_active_configuration(active)
"""

from .filesystem import FileRecordStore
from .memory import MemoryRecordStore
from .protocol import ACTIVE_RECORDS, RecordFilter, RecordStore

__all__ = [
    "ACTIVE_RECORDS",
    "FileRecordStore",
    "MemoryRecordStore",
    "RecordFilter",
    "RecordStore",
]
