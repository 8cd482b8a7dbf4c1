"""
Event Store service for append-only audit logging.

Progress changes made by the quiz and purchase flows are logged here in the
same session, so the audit entry commits together with the change.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from history_engine.kernel.models.event_log import EventLog, EventType


class EventStore:
    """
    Service for managing the immutable event log.

    Usage:
        event_store = EventStore(session)
        await event_store.log(
            event_type=EventType.QUIZ_FAILED,
            user_id=user_id,
            history_event_id=event_id,
            payload={"score": 40, "failed_attempts": 2},
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        event_type: EventType,
        user_id: str,
        history_event_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> EventLog:
        """
        Log an event to the immutable audit log.

        Args:
            event_type: The type of event
            user_id: The learner the event concerns
            history_event_id: The dossier the event concerns, if any
            payload: Additional event data

        Returns:
            The created EventLog record
        """
        if payload:
            payload = self._serialize_payload(payload)

        event = EventLog(
            event_type=event_type.value,
            user_id=user_id,
            history_event_id=history_event_id,
            payload=payload or {},
        )

        self.session.add(event)
        # Caller's session commits with the progress change
        return event

    async def get_history(
        self,
        user_id: str,
        history_event_id: Optional[str] = None,
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
    ) -> List[EventLog]:
        """
        Get audit entries for a learner, newest first.

        Args:
            user_id: The learner
            history_event_id: Restrict to one dossier
            event_types: Optional filter for specific event types
            limit: Maximum number of events to return
        """
        conditions = [EventLog.user_id == user_id]
        if history_event_id is not None:
            conditions.append(EventLog.history_event_id == history_event_id)
        query = select(EventLog).where(and_(*conditions))

        if event_types:
            query = query.where(EventLog.event_type.in_([t.value for t in event_types]))

        query = query.order_by(desc(EventLog.created_at)).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count_events(
        self,
        user_id: Optional[str] = None,
        event_type: Optional[EventType] = None,
        since: Optional[datetime] = None,
    ) -> int:
        """Count events matching the given criteria."""
        query = select(func.count(EventLog.id))

        if user_id:
            query = query.where(EventLog.user_id == user_id)
        if event_type:
            query = query.where(EventLog.event_type == event_type.value)
        if since:
            query = query.where(EventLog.created_at >= since)

        result = await self.session.execute(query)
        return result.scalar() or 0

    def _serialize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Convert payload values to JSON-serializable types."""
        result = {}
        for key, value in payload.items():
            if isinstance(value, uuid.UUID):
                result[key] = str(value)
            elif isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, dict):
                result[key] = self._serialize_payload(value)
            elif isinstance(value, list):
                result[key] = [
                    self._serialize_payload(v) if isinstance(v, dict)
                    else v.isoformat() if isinstance(v, datetime)
                    else v
                    for v in value
                ]
            else:
                result[key] = value
        return result
