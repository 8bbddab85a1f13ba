from .database import RecordStoreError, SQLiteRecordDB
from .event_store import EventTooLargeError
from .service import RecordService

__all__ = [
    "EventTooLargeError",
    "RecordService",
    "RecordStoreError",
    "SQLiteRecordDB",
]
