"""
Progress Store - keyed persistent record of a learner's interaction with one event.

Records live as JSON documents under ``history_progress:{user_id}:{event_id}``;
the in-progress quiz snapshot for the same pair lives under
``quiz_attempt:{user_id}:{event_id}``. A missing or corrupt document always
resolves to a fresh default record.
"""

import asyncio
import json
import weakref
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from history_engine.engines.quiz.clock import Clock, SystemClock
from history_engine.engines.quiz.models import (
    AttemptRecord,
    PersistedQuizState,
    ProgressRecord,
    ProgressUpdate,
)
from history_engine.kernel.storage.backends import KeyValueBackend
from history_engine.logging_config import get_logger

logger = get_logger(__name__)

PROGRESS_PREFIX = "history_progress:"
QUIZ_STATE_PREFIX = "quiz_attempt:"


def progress_key(user_id: str, event_id: str) -> str:
    return f"{PROGRESS_PREFIX}{user_id}:{event_id}"


def quiz_state_key(user_id: str, event_id: str) -> str:
    return f"{QUIZ_STATE_PREFIX}{user_id}:{event_id}"


class ProgressStore:
    """
    Reads and writes ProgressRecords through a key/value backend.

    The store never raises for absent or corrupt data. The only errors it
    raises are ValueErrors for calls that would break a record invariant
    (a lock that is not in the future, a non-positive grant, a non-monotonic
    attempt number).
    """

    READ_GATE_RATIO = 0.8

    # One lock per storage key, shared by every store in the process
    _key_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def __init__(
        self,
        backend: KeyValueBackend,
        clock: Optional[Clock] = None,
        read_gate_ratio: float = READ_GATE_RATIO,
        reset_budget_on_lock: bool = True,
    ):
        self.backend = backend
        self.clock = clock or SystemClock()
        self.read_gate_ratio = read_gate_ratio
        self.reset_budget_on_lock = reset_budget_on_lock

    def key_lock(self, user_id: str, event_id: str) -> asyncio.Lock:
        """Lock serializing read-modify-write sequences on one record."""
        return self._lock_for(progress_key(user_id, event_id))

    @asynccontextmanager
    async def transaction(self, user_id: str, event_id: str) -> AsyncIterator[None]:
        """
        Hold the record's key lock until the writes made under it are committed.

        The next holder of the lock always reads committed state. On an error
        nothing is committed and the caller's session rolls back.
        """
        async with self.key_lock(user_id, event_id):
            yield
            await self.backend.commit()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._key_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._key_locks[key] = lock
        return lock

    async def get(self, user_id: str, event_id: str, *, for_update: bool = False) -> ProgressRecord:
        """Return the stored record, or a fresh default when absent or unreadable."""
        key = progress_key(user_id, event_id)
        raw = await self.backend.read(key, for_update=for_update)
        if not raw:
            return ProgressRecord(event_id=event_id)
        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError(f"expected an object, got {type(data).__name__}")
            data["event_id"] = event_id
            return ProgressRecord.model_validate(data)
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.warning(
                "Discarding malformed progress record",
                extra={"key": key, "error": str(e)},
            )
            return ProgressRecord(event_id=event_id)

    async def get_many(self, user_id: str, event_ids: List[str]) -> Dict[str, ProgressRecord]:
        return {event_id: await self.get(user_id, event_id) for event_id in event_ids}

    async def save(self, user_id: str, record: ProgressRecord) -> ProgressRecord:
        await self.backend.write(progress_key(user_id, record.event_id), record.model_dump_json())
        return record

    async def update(
        self,
        user_id: str,
        event_id: str,
        partial: Union[ProgressUpdate, Mapping[str, Any]],
    ) -> ProgressRecord:
        """
        Merge ``partial`` into the current record.

        read_ratio never decreases. The first time the merged ratio reaches the
        read gate, completed_at is stamped with the clock unless the caller
        supplied one.
        """
        if not isinstance(partial, ProgressUpdate):
            partial = ProgressUpdate.model_validate(dict(partial))
        changes = partial.model_dump(exclude_unset=True)

        current = await self.get(user_id, event_id)
        requested_ratio = changes.pop("read_ratio", None)
        if requested_ratio is None:
            requested_ratio = current.read_ratio
        changes = {k: v for k, v in changes.items() if v is not None}

        merged = current.model_copy(
            update={
                **changes,
                "read_ratio": max(current.read_ratio, requested_ratio),
            }
        )
        if merged.read_ratio >= self.read_gate_ratio and merged.completed_at is None:
            merged.completed_at = self.clock.now()
        return await self.save(user_id, merged)

    async def append_attempt(self, user_id: str, event_id: str, attempt: AttemptRecord) -> ProgressRecord:
        """Append an attempt and refresh the running maxima."""
        current = await self.get(user_id, event_id)
        if current.attempts and attempt.attempt_number <= current.attempts[-1].attempt_number:
            raise ValueError(
                f"attempt_number {attempt.attempt_number} must follow "
                f"{current.attempts[-1].attempt_number}"
            )
        merged = current.model_copy(
            update={
                "attempts": [*current.attempts, attempt],
                "best_score": max(current.best_score or 0, attempt.score),
                "best_stars": max(current.best_stars or 0, attempt.stars),
                "last_attempt_at": attempt.attempted_at,
            }
        )
        return await self.save(user_id, merged)

    async def grant_extra_attempts(self, user_id: str, event_id: str, count: int) -> ProgressRecord:
        """Add purchased attempt credits and clear any lock."""
        if count < 1:
            raise ValueError(f"count must be positive, got {count}")
        current = await self.get(user_id, event_id)
        merged = current.model_copy(
            update={
                "extra_attempts": current.extra_attempts + count,
                "locked_until": None,
            }
        )
        return await self.save(user_id, merged)

    async def set_lock(self, user_id: str, event_id: str, until: Optional[datetime]) -> ProgressRecord:
        """
        Set or clear locked_until.

        Setting a real lock resets failed_attempts, and extra_attempts too when
        reset_budget_on_lock is enabled.
        """
        if until is not None and until <= self.clock.now():
            raise ValueError(f"lock must end in the future, got {until.isoformat()}")
        current = await self.get(user_id, event_id)
        update: Dict[str, Any] = {"locked_until": until}
        if until is not None:
            update["failed_attempts"] = 0
            if self.reset_budget_on_lock:
                update["extra_attempts"] = 0
        return await self.save(user_id, current.model_copy(update=update))

    async def get_quiz_state(
        self, user_id: str, event_id: str, *, for_update: bool = False
    ) -> Optional[PersistedQuizState]:
        """Return the in-progress quiz snapshot; a corrupt snapshot is discarded."""
        key = quiz_state_key(user_id, event_id)
        raw = await self.backend.read(key, for_update=for_update)
        if not raw:
            return None
        try:
            return PersistedQuizState.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding unreadable quiz state", extra={"key": key, "error": str(e)})
            await self.backend.write(key, None)
            return None

    async def save_quiz_state(self, user_id: str, state: PersistedQuizState) -> None:
        await self.backend.write(quiz_state_key(user_id, state.event_id), state.model_dump_json())

    async def clear_quiz_state(self, user_id: str, event_id: str) -> None:
        await self.backend.write(quiz_state_key(user_id, event_id), None)
