"""Tests for the atomic grading pass."""

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from conftest import answer_ids
from exam_portal.errors import AuthorizationError, NotFoundError, ValidationError
from exam_portal.models import Answer, Question, Submission
from exam_portal.services import submission_service
from exam_portal.services.submission_service import grade_submission, start_submission


def _grades(session, submission_id, exam, free_text_marks, mcq_marks, **extra):
    ids = answer_ids(session, submission_id)
    return [
        {"answer_id": ids[exam["free_text_id"]], "marks_awarded": free_text_marks, **extra},
        {"answer_id": ids[exam["mcq_id"]], "marks_awarded": mcq_marks},
    ]


def _answers(session, submission_id):
    session.expire_all()
    return session.exec(select(Answer).where(Answer.submission_id == submission_id)).all()


class TestGradeSubmission:
    def test_marks_within_question_range(self, session, teacher, submitted, algebra_exam):
        graded = grade_submission(session, teacher, submitted, _grades(session, submitted, algebra_exam, 5, 4))
        assert graded.is_graded is True
        assert graded.total_score == 9
        assert graded.graded_by == teacher.user_id

        for answer in _answers(session, submitted):
            question = session.get(Question, answer.question_id)
            assert 0 <= answer.marks_awarded <= question.marks

    def test_regrade_recomputes_total(self, session, teacher, submitted, algebra_exam):
        grade_submission(session, teacher, submitted, _grades(session, submitted, algebra_exam, 5, 4))
        ids = answer_ids(session, submitted)
        regraded = grade_submission(
            session, teacher, submitted, [{"answer_id": ids[algebra_exam["free_text_id"]], "marks_awarded": 2}]
        )

        assert regraded.is_graded is True
        assert regraded.total_score == 6
        assert regraded.total_score == sum(a.marks_awarded for a in _answers(session, submitted))

    def test_regrade_overwrites_feedback(self, session, teacher, submitted, algebra_exam):
        grade_submission(
            session, teacher, submitted, _grades(session, submitted, algebra_exam, 5, 4, feedback="Nice")
        )
        grade_submission(session, teacher, submitted, _grades(session, submitted, algebra_exam, 5, 4))
        free_text = next(a for a in _answers(session, submitted) if a.question_id == algebra_exam["free_text_id"])
        assert free_text.feedback is None

    def test_feedback_is_sanitized(self, session, teacher, submitted, algebra_exam):
        grade_submission(
            session,
            teacher,
            submitted,
            _grades(session, submitted, algebra_exam, 5, 4, feedback="<script>x</script><b>Well done</b>"),
        )
        free_text = next(a for a in _answers(session, submitted) if a.question_id == algebra_exam["free_text_id"])
        assert "<" not in free_text.feedback
        assert "Well done" in free_text.feedback

    def test_multiple_choice_correctness_derived(self, session, teacher, submitted, algebra_exam):
        grade_submission(session, teacher, submitted, _grades(session, submitted, algebra_exam, 5, 4))
        by_question = {a.question_id: a for a in _answers(session, submitted)}
        assert by_question[algebra_exam["mcq_id"]].is_correct is True
        assert by_question[algebra_exam["free_text_id"]].is_correct is None

    def test_explicit_is_correct_wins(self, session, teacher, submitted, algebra_exam):
        ids = answer_ids(session, submitted)
        grade_submission(
            session,
            teacher,
            submitted,
            [
                {"answer_id": ids[algebra_exam["free_text_id"]], "marks_awarded": 6, "is_correct": True},
                {"answer_id": ids[algebra_exam["mcq_id"]], "marks_awarded": 0, "is_correct": False},
            ],
        )
        by_question = {a.question_id: a for a in _answers(session, submitted)}
        assert by_question[algebra_exam["free_text_id"]].is_correct is True
        assert by_question[algebra_exam["mcq_id"]].is_correct is False

    def test_ungraded_answers_count_as_zero(self, session, teacher, submitted, algebra_exam):
        ids = answer_ids(session, submitted)
        graded = grade_submission(
            session, teacher, submitted, [{"answer_id": ids[algebra_exam["free_text_id"]], "marks_awarded": 3}]
        )
        assert graded.total_score == 3
        assert all(a.marks_awarded is not None for a in _answers(session, submitted))

    def test_admin_can_grade(self, session, admin, submitted, algebra_exam):
        graded = grade_submission(session, admin, submitted, _grades(session, submitted, algebra_exam, 1, 0))
        assert graded.total_score == 1


class TestGradingRejections:
    def test_student_cannot_grade(self, session, student, submitted, algebra_exam):
        with pytest.raises(AuthorizationError):
            grade_submission(session, student, submitted, _grades(session, submitted, algebra_exam, 6, 4))

    @pytest.mark.parametrize("bad_marks", [-1, 7, float("nan"), float("inf")])
    def test_out_of_range_marks_write_nothing(self, session, teacher, submitted, algebra_exam, bad_marks):
        with pytest.raises(ValidationError):
            grade_submission(session, teacher, submitted, _grades(session, submitted, algebra_exam, bad_marks, 4))

        submission = session.get(Submission, submitted)
        assert submission.is_graded is False
        assert all(a.marks_awarded is None for a in _answers(session, submitted))

    def test_answer_from_other_submission(self, session, teacher, other_student, submitted, algebra_exam):
        other = start_submission(session, other_student, algebra_exam["exam_id"])
        foreign = answer_ids(session, other.id)[algebra_exam["mcq_id"]]
        with pytest.raises(ValidationError):
            grade_submission(session, teacher, submitted, [{"answer_id": foreign, "marks_awarded": 1}])

    def test_duplicate_answer_entries(self, session, teacher, submitted, algebra_exam):
        ids = answer_ids(session, submitted)
        entry = {"answer_id": ids[algebra_exam["mcq_id"]], "marks_awarded": 1}
        with pytest.raises(ValidationError):
            grade_submission(session, teacher, submitted, [entry, dict(entry)])

    def test_in_progress_cannot_be_graded(self, session, teacher, other_student, algebra_exam):
        in_progress = start_submission(session, other_student, algebra_exam["exam_id"])
        with pytest.raises(NotFoundError):
            grade_submission(session, teacher, in_progress.id, [])


class TestGradingAtomicity:
    def _fail_on_second_write(self, monkeypatch):
        original = submission_service._apply_grade
        calls = {"n": 0}

        def flaky(answer, question, grade):
            calls["n"] += 1
            if calls["n"] == 2:
                raise OperationalError("UPDATE answer", {}, Exception("write rejected"))
            original(answer, question, grade)

        monkeypatch.setattr(submission_service, "_apply_grade", flaky)

    def test_failed_first_pass_leaves_submission_ungraded(
        self, session, teacher, submitted, algebra_exam, monkeypatch
    ):
        self._fail_on_second_write(monkeypatch)
        with pytest.raises(OperationalError):
            grade_submission(session, teacher, submitted, _grades(session, submitted, algebra_exam, 5, 4))

        session.expire_all()
        submission = session.get(Submission, submitted)
        assert submission.is_graded is False
        assert submission.total_score == 0
        assert all(a.marks_awarded is None for a in _answers(session, submitted))

    def test_failed_regrade_keeps_previous_grades(self, session, teacher, submitted, algebra_exam, monkeypatch):
        grade_submission(session, teacher, submitted, _grades(session, submitted, algebra_exam, 5, 4))

        self._fail_on_second_write(monkeypatch)
        with pytest.raises(OperationalError):
            grade_submission(session, teacher, submitted, _grades(session, submitted, algebra_exam, 1, 0))

        session.expire_all()
        submission = session.get(Submission, submitted)
        assert submission.is_graded is True
        assert submission.total_score == 9
        assert sorted(a.marks_awarded for a in _answers(session, submitted)) == [4, 5]
