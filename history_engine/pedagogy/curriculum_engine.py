"""
Curriculum engine - eras (phases), their history events, and the per-learner timeline.

Events inside a phase are ordered chronologically by (year, month); that order
is the sequence the Unlock Policy walks.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from history_engine.engines.quiz.progress_store import ProgressStore
from history_engine.engines.quiz.unlock_policy import UnlockPolicy, best_scores
from history_engine.logging_config import get_logger

logger = get_logger(__name__)


class HistoryEvent(BaseModel):
    """A dated history event (dossier) inside an era."""

    id: str
    era_id: str
    year: int
    month: Optional[int] = Field(default=None, ge=1, le=12)
    title: str
    summary: str = ""


class Phase(BaseModel):
    """A curriculum era."""

    id: str
    title: str
    description: str = ""


class TimelineEntry(BaseModel):
    """One event on a learner's phase timeline."""

    event: HistoryEvent
    accessible: bool
    passed: bool
    read_ratio: float
    completed_at: Optional[datetime] = None
    best_score: Optional[int] = None
    best_stars: Optional[int] = None
    locked_until: Optional[datetime] = None


def chronological_key(event: HistoryEvent):
    # Undated months sort first within their year
    return (event.year, event.month or 0)


class CurriculumEngine:
    """
    Phase/event catalog loaded from a JSON file.

    File layout::

        {"phases": [{"id": "ancient", "title": "..."}],
         "events": [{"id": "...", "era_id": "ancient", "year": -490, "title": "..."}]}

    Events may also be nested under their phase as ``"events": [...]``; the
    era_id is then taken from the phase.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._phases: Dict[str, Phase] = {}
        self._events: Dict[str, HistoryEvent] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            logger.warning("Curriculum file missing", extra={"path": str(self.path)})
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Curriculum unreadable", extra={"path": str(self.path), "error": str(e)})
            return
        if not isinstance(data, dict):
            return

        raw_events = [e for e in data.get("events", []) if isinstance(e, dict)]
        for raw_phase in data.get("phases", []):
            if not isinstance(raw_phase, dict):
                continue
            nested = raw_phase.get("events", [])
            try:
                phase = Phase.model_validate({k: v for k, v in raw_phase.items() if k != "events"})
            except ValidationError as e:
                logger.warning("Skipping invalid phase", extra={"phase_id": str(raw_phase.get("id")), "error": str(e)})
                continue
            self._phases[phase.id] = phase
            raw_events.extend({"era_id": phase.id, **e} for e in nested if isinstance(e, dict))

        for raw in raw_events:
            if "eraId" in raw and "era_id" not in raw:
                raw = {**raw, "era_id": raw["eraId"]}
            try:
                event = HistoryEvent.model_validate(raw)
            except ValidationError as e:
                logger.warning("Skipping invalid history event", extra={"event_id": str(raw.get("id")), "error": str(e)})
                continue
            self._events[event.id] = event

    def phases(self) -> List[Phase]:
        return list(self._phases.values())

    def get_phase(self, phase_id: str) -> Optional[Phase]:
        return self._phases.get(phase_id)

    def get_event(self, event_id: str) -> Optional[HistoryEvent]:
        return self._events.get(event_id)

    def phase_of(self, event_id: str) -> Optional[str]:
        event = self._events.get(event_id)
        return event.era_id if event else None

    def ordered_events(self, phase_id: str) -> List[HistoryEvent]:
        """Events of a phase in chronological order."""
        return sorted(
            (e for e in self._events.values() if e.era_id == phase_id),
            key=chronological_key,
        )

    def ordered_event_ids(self, phase_id: str) -> List[str]:
        return [e.id for e in self.ordered_events(phase_id)]

    async def timeline(
        self,
        store: ProgressStore,
        unlock: UnlockPolicy,
        user_id: str,
        phase_id: str,
    ) -> Optional[List[TimelineEntry]]:
        """Phase events with fresh progress and accessibility; None for an unknown phase."""
        if phase_id not in self._phases:
            return None
        events = self.ordered_events(phase_id)
        ordered_ids = [e.id for e in events]
        progress = await store.get_many(user_id, ordered_ids)
        scores = best_scores(progress)
        accessible = unlock.accessible_map(ordered_ids, scores)
        now = store.clock.now()
        return [
            TimelineEntry(
                event=event,
                accessible=accessible[event.id],
                passed=unlock.passed(scores.get(event.id)),
                read_ratio=progress[event.id].read_ratio,
                completed_at=progress[event.id].completed_at,
                best_score=progress[event.id].best_score,
                best_stars=progress[event.id].best_stars,
                locked_until=progress[event.id].locked_until if progress[event.id].is_locked(now) else None,
            )
            for event in events
        ]
