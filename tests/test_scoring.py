"""Tests for score arithmetic: percentages, letter grades and report-card aggregation."""

import pytest

from exam_portal.services.scoring import (
    ScoredResult,
    aggregate,
    answer_score,
    auto_mark,
    is_pass,
    letter_grade,
    percentage,
    submission_max_score,
    submission_total,
)


class TestLetterGrade:
    @pytest.mark.parametrize(
        "pct, expected",
        [(100, "A"), (90, "A"), (89, "B"), (80, "B"), (79, "C"), (70, "C"), (69, "D"), (60, "D"), (59, "F"), (0, "F")],
    )
    def test_boundaries(self, pct, expected):
        assert letter_grade(pct) == expected

    def test_pass_threshold(self):
        assert is_pass(60) is True
        assert is_pass(59) is False


class TestPercentage:
    def test_zero_max_score_is_zero_percent(self):
        assert percentage(0, 0) == 0
        assert percentage(5, 0) == 0

    def test_rounds_half_up(self):
        # 7/8 = 87.5%
        assert percentage(7, 8) == 88
        # 1/40 = 2.5%
        assert percentage(1, 40) == 3

    def test_fractional_marks(self):
        assert percentage(4.5, 6) == 75


class TestSubmissionTotals:
    def test_total_clamps_each_answer(self):
        assert answer_score(12, 10) == 10
        assert answer_score(-3, 10) == 0
        assert answer_score(None, 10) == 0
        assert submission_total([(5, 6), (4, 4), (None, 2)]) == 9

    def test_max_score_is_sum_of_question_marks(self):
        assert submission_max_score([6, 4]) == 10
        assert submission_max_score([]) == 0


class TestAggregate:
    def test_weighted_sum_for_equal_maxima(self):
        result = aggregate(
            [ScoredResult(10, 10, "Mathematics"), ScoredResult(5, 10, "English")]
        )
        assert result.percentage == 75
        assert result.grade == "C"
        assert result.subject_count == 2

    def test_weighted_sum_is_not_mean_of_percentages(self):
        # Mean of 100% and 25% would be 62.5; the weighted sum is 15/30
        result = aggregate(
            [ScoredResult(10, 10, "Mathematics"), ScoredResult(5, 20, "Mathematics")]
        )
        assert result.percentage == 50
        assert result.grade == "F"
        assert result.passed is False
        assert result.subject_count == 1
        assert result.exam_count == 2

    def test_empty_aggregate_has_no_grade(self):
        result = aggregate([])
        assert result.percentage == 0
        assert result.grade is None
        assert result.passed is None
        assert result.subject_count == 0


class TestAutoMark:
    def test_multiple_choice_is_case_and_space_insensitive(self):
        assert auto_mark("multiple_choice", "Paris", " paris ") is True
        assert auto_mark("multiple_choice", "Paris", "Lyon") is False
        assert auto_mark("multiple_choice", "Paris", None) is False

    def test_free_text_is_undecided(self):
        assert auto_mark("free_text", None, "anything") is None
