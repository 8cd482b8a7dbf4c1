"""
Kernel Data Models

SQLAlchemy models for the key/value document store and the audit log.
"""

from history_engine.kernel.models.base import Base, TimestampMixin, generate_uuid
from history_engine.kernel.models.event_log import EventLog, EventType
from history_engine.kernel.models.storage_entry import StorageEntry

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    # Storage
    "StorageEntry",
    # Event Log
    "EventLog",
    "EventType",
]
