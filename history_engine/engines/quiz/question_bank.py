"""
Question Bank - per-event question pools and randomized sampling for one attempt.
Questions are loaded from a JSON file; malformed entries are skipped.
"""

import json
import random
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from history_engine.engines.quiz.models import QuizQuestion
from history_engine.logging_config import get_logger

logger = get_logger(__name__)

# Content exported from the web client uses camelCase keys
_FIELD_ALIASES = {
    "eventId": "event_id",
    "subEventId": "sub_event_id",
    "answerIndex": "answer_index",
    "timePerQuestion": "time_per_question_ms",
}


class QuestionBank:
    """
    Quiz bank selector.

    The JSON file holds either a list of question objects (each naming its
    event_id) or an object mapping event ids to lists of questions.
    """

    BASE_QUESTION_COUNT = 5
    BONUS_QUESTION_MAX = 5

    def __init__(
        self,
        path: Path,
        rng: Optional[random.Random] = None,
        base_count: int = BASE_QUESTION_COUNT,
        bonus_max: int = BONUS_QUESTION_MAX,
    ):
        self.path = Path(path)
        self.rng = rng or random.Random()
        self.base_count = base_count
        self.bonus_max = bonus_max

    def _load_raw(self) -> List[Dict[str, Any]]:
        """Read question dicts from the bank file; missing or unreadable file yields []."""
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Quiz bank unreadable", extra={"path": str(self.path), "error": str(e)})
            return []
        if isinstance(data, list):
            return [d for d in data if isinstance(d, dict)]
        if isinstance(data, dict):
            rows = []
            for event_id, questions in data.items():
                if not isinstance(questions, list):
                    continue
                for d in questions:
                    if isinstance(d, dict):
                        rows.append({"event_id": event_id, **d})
            return rows
        return []

    @staticmethod
    def _parse_question_dict(d: Dict[str, Any]) -> Optional[QuizQuestion]:
        """Convert a JSON dict to QuizQuestion; returns None if invalid."""
        normalized = {_FIELD_ALIASES.get(k, k): v for k, v in d.items()}
        try:
            return QuizQuestion.model_validate(normalized)
        except ValidationError as e:
            logger.warning(
                "Skipping invalid quiz question",
                extra={"question_id": str(d.get("id")), "error": str(e)},
            )
            return None

    def fetch_bank(self, event_id: str) -> List[QuizQuestion]:
        """Full question pool for an event. Empty means no quiz is configured."""
        questions = []
        for d in self._load_raw():
            if d.get("event_id", d.get("eventId")) != event_id:
                continue
            q = self._parse_question_dict(d)
            if q:
                questions.append(q)
        return questions

    def desired_question_count(self) -> int:
        """Base count plus a uniform bonus, drawn per launch."""
        return self.base_count + self.rng.randint(0, self.bonus_max)

    def sample(self, bank: Sequence[QuizQuestion], desired_count: int) -> List[QuizQuestion]:
        """
        Pick min(desired_count, len(bank)) distinct questions in random order.

        The bank is copied to an immutable snapshot first, so later edits to
        the caller's list cannot leak into the sampled set.
        """
        snapshot: Tuple[QuizQuestion, ...] = tuple(bank)
        count = max(0, min(desired_count, len(snapshot)))
        return self.rng.sample(snapshot, count)

    def pick_for_launch(self, event_id: str) -> List[QuizQuestion]:
        """Questions for a new attempt at event_id."""
        return self.sample(self.fetch_bank(event_id), self.desired_question_count())
