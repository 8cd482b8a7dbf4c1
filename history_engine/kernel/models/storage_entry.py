"""
Namespaced key/value rows.

Progress records, in-progress quiz state and pending purchases are stored as
JSON documents under keys such as ``history_progress:{user_id}:{event_id}``.
The value is kept as raw text so a corrupt document can be detected and
discarded at the storage boundary instead of failing at load time.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from history_engine.kernel.models.base import Base, TimestampMixin


class StorageEntry(Base, TimestampMixin):
    """One JSON document under a namespaced key."""

    __tablename__ = "storage_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<StorageEntry {self.key}>"
