"""
Unlock Policy - which events of an ordered curriculum phase are accessible.

The first event is always open; every later event opens once the event before
it has a best score at or above the passing score. Nothing is cached: callers
pass the current best scores on every call.
"""

from typing import Dict, Mapping, Optional, Sequence

from history_engine.engines.quiz.models import ProgressRecord


def best_scores(progress: Mapping[str, ProgressRecord]) -> Dict[str, Optional[int]]:
    """Map event id to best score from progress records."""
    return {event_id: record.best_score for event_id, record in progress.items()}


class UnlockPolicy:
    """Sequencing rules over an ordered list of event ids."""

    PASSING_SCORE = 70

    def __init__(self, passing_score: int = PASSING_SCORE):
        self.passing_score = passing_score

    def passed(self, best_score: Optional[int]) -> bool:
        return (best_score or 0) >= self.passing_score

    def passed_map(
        self,
        ordered_ids: Sequence[str],
        scores: Mapping[str, Optional[int]],
    ) -> Dict[str, bool]:
        return {event_id: self.passed(scores.get(event_id)) for event_id in ordered_ids}

    def accessible_map(
        self,
        ordered_ids: Sequence[str],
        scores: Mapping[str, Optional[int]],
    ) -> Dict[str, bool]:
        accessible: Dict[str, bool] = {}
        for index, event_id in enumerate(ordered_ids):
            if index == 0:
                accessible[event_id] = True
            else:
                accessible[event_id] = self.passed(scores.get(ordered_ids[index - 1]))
        return accessible

    def is_accessible(
        self,
        event_id: str,
        ordered_ids: Sequence[str],
        scores: Mapping[str, Optional[int]],
    ) -> bool:
        return self.accessible_map(ordered_ids, scores).get(event_id, False)

    @staticmethod
    def next_event_after(event_id: str, ordered_ids: Sequence[str]) -> Optional[str]:
        try:
            index = list(ordered_ids).index(event_id)
        except ValueError:
            return None
        return ordered_ids[index + 1] if index + 1 < len(ordered_ids) else None

    def auto_advance_target(self, event_id: str, score: int, ordered_ids: Sequence[str]) -> Optional[str]:
        """Event to move to after an attempt: the next one, only when this score passes."""
        if not self.passed(score):
            return None
        return self.next_event_after(event_id, ordered_ids)

    def fallback_event(
        self,
        requested: Optional[str],
        ordered_ids: Sequence[str],
        scores: Mapping[str, Optional[int]],
    ) -> Optional[str]:
        """The requested event if accessible, else the first accessible one."""
        if not ordered_ids:
            return None
        accessible = self.accessible_map(ordered_ids, scores)
        if requested is not None and accessible.get(requested):
            return requested
        return next((e for e in ordered_ids if accessible[e]), ordered_ids[0])
