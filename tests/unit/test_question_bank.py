"""Unit tests for QuestionBank: loading, validation and sampling."""

import json
import random

import pytest

from history_engine.engines.quiz.question_bank import QuestionBank
from tests.conftest import EVENT_ID, make_question, write_bank


class TestLoading:
    def test_fetch_bank_by_event(self, bank: QuestionBank):
        questions = bank.fetch_bank(EVENT_ID)
        assert len(questions) == 5
        assert all(q.event_id == EVENT_ID for q in questions)
        assert questions[0].answer_index == 0

    def test_unknown_event_has_empty_bank(self, bank: QuestionBank):
        assert bank.fetch_bank("nowhere") == []

    def test_missing_file_is_empty(self, tmp_path):
        assert QuestionBank(tmp_path / "absent.json").fetch_bank(EVENT_ID) == []

    def test_list_layout_and_invalid_entries_skipped(self, tmp_path):
        path = tmp_path / "bank.json"
        path.write_text(
            json.dumps(
                [
                    {"id": "ok", "eventId": EVENT_ID, "prompt": "?", "options": ["a", "b"], "answerIndex": 1},
                    {"id": "bad-index", "eventId": EVENT_ID, "prompt": "?", "options": ["a", "b"], "answerIndex": 5},
                    {"id": "one-option", "eventId": EVENT_ID, "prompt": "?", "options": ["a"], "answerIndex": 0},
                    {"id": "other", "eventId": "elsewhere", "prompt": "?", "options": ["a", "b"], "answerIndex": 0},
                ]
            ),
            encoding="utf-8",
        )
        questions = QuestionBank(path).fetch_bank(EVENT_ID)
        assert [q.id for q in questions] == ["ok"]

    def test_unreadable_file_is_empty(self, tmp_path):
        path = tmp_path / "bank.json"
        path.write_text("[{", encoding="utf-8")
        assert QuestionBank(path).fetch_bank(EVENT_ID) == []


class TestSampling:
    def test_sample_larger_than_bank_returns_whole_bank(self):
        bank = [make_question(f"q{i}") for i in range(4)]
        picked = QuestionBank("unused.json", rng=random.Random(1)).sample(bank, 10)
        assert len(picked) == 4
        assert len({q.id for q in picked}) == 4

    def test_sample_has_no_duplicates(self):
        bank = [make_question(f"q{i}") for i in range(20)]
        picked = QuestionBank("unused.json", rng=random.Random(3)).sample(bank, 8)
        assert len(picked) == 8
        assert len({q.id for q in picked}) == 8

    def test_sample_is_isolated_from_later_bank_edits(self):
        bank = [make_question(f"q{i}") for i in range(3)]
        picked = QuestionBank("unused.json", rng=random.Random(5)).sample(bank, 3)
        bank.clear()
        assert len(picked) == 3

    @pytest.mark.parametrize("seed", range(10))
    def test_desired_count_within_bonus_range(self, seed):
        selector = QuestionBank("unused.json", rng=random.Random(seed), base_count=5, bonus_max=5)
        assert 5 <= selector.desired_question_count() <= 10

    def test_pick_for_launch_caps_at_bank_size(self, tmp_path):
        path = write_bank(tmp_path / "bank.json", EVENT_ID, 3)
        selector = QuestionBank(path, rng=random.Random(2), base_count=5, bonus_max=5)
        assert len(selector.pick_for_launch(EVENT_ID)) == 3
