"""
Grader - converts a raw quiz outcome into a percentage score and a star rating.
"""

import math
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel

from history_engine.engines.quiz.models import QuizSummary


class Grade(BaseModel):
    """Score (0-100) and star count for one attempt."""

    score: int
    stars: int


class Grader:
    """
    Grading policy.

    Stars follow a staircase over the score: the tier table is a list of
    (min_score, stars) pairs sorted by min_score, and a score earns the stars
    of the highest tier whose min_score it reaches.
    """

    PASSING_SCORE = 70
    DEFAULT_STAR_TIERS: List[Tuple[int, int]] = [(0, 0), (40, 3), (60, 6), (80, 8), (100, 12)]

    def __init__(
        self,
        star_tiers: Optional[Iterable[Tuple[int, int]]] = None,
        passing_score: int = PASSING_SCORE,
    ):
        tiers = [tuple(t) for t in (star_tiers if star_tiers is not None else self.DEFAULT_STAR_TIERS)]
        self._validate_tiers(tiers)
        self.star_tiers: List[Tuple[int, int]] = tiers
        self.passing_score = passing_score

    @staticmethod
    def _validate_tiers(tiers: List[Tuple[int, int]]) -> None:
        if not tiers:
            raise ValueError("star tier table must not be empty")
        if tiers[0][0] != 0:
            raise ValueError("first star tier must start at score 0")
        for (prev_score, prev_stars), (score, stars) in zip(tiers, tiers[1:]):
            if score <= prev_score or stars < prev_stars:
                raise ValueError(f"star tiers must be increasing, got {tiers}")

    @property
    def max_stars(self) -> int:
        return self.star_tiers[-1][1]

    @staticmethod
    def score(correct: int, total: int) -> int:
        """Percentage rounded half up; an empty quiz scores 0."""
        if total <= 0:
            return 0
        return int(math.floor(100 * correct / total + 0.5))

    def stars_for(self, score: int) -> int:
        stars = 0
        for min_score, tier_stars in self.star_tiers:
            if score >= min_score:
                stars = tier_stars
            else:
                break
        return stars

    def grade(self, correct: int, total: int, attempt_number: int) -> Grade:
        """
        Grade an attempt.

        attempt_number is part of the signature for attempt-dependent variants;
        the current policy does not use it.
        """
        score = self.score(correct, total)
        return Grade(score=score, stars=self.stars_for(score))

    def grade_summary(self, summary: QuizSummary, attempt_number: int) -> Grade:
        return self.grade(summary.correct, summary.total, attempt_number)

    def passed(self, score: int) -> bool:
        return score >= self.passing_score
