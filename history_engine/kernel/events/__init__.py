"""
Append-only audit logging.
"""

from history_engine.kernel.events.event_store import EventStore

__all__ = ["EventStore"]
