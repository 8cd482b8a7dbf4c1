"""Curriculum catalog."""

from history_engine.pedagogy.curriculum_engine import (
    CurriculumEngine,
    HistoryEvent,
    Phase,
    TimelineEntry,
)

__all__ = ["CurriculumEngine", "HistoryEvent", "Phase", "TimelineEntry"]
