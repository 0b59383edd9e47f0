"""Submission lifecycle: start, answer, submit, grade and publish.

A submission moves through three states:

* started   - ``submitted_at`` is None; only the owning student may save answers
* submitted - ``submitted_at`` is set; answers are frozen and graders can see it
* graded    - ``is_graded`` is True and ``total_score`` matches the answers

Publishing is a gate on the exam, not a submission state: it only controls
whether the student can see their graded scores.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from exam_portal.errors import AuthorizationError, NotFoundError, ValidationError
from exam_portal.models import Answer, Exam, Profile, Question, Submission
from exam_portal.roles import Role, is_elevated
from exam_portal.services import scoring
from exam_portal.services.policy import Action, Principal, Resource, enforce
from exam_portal.utils import sanitize_feedback, validate_marks

logger = logging.getLogger(__name__)


def _load_submission(session: Session, principal: Principal, submission_id: int, action: Action) -> Submission:
    """Fetch a submission and check ``action`` against its owner.

    Callers without an elevated role get the same AuthorizationError for a
    missing submission as for someone else's, so ids cannot be probed.
    """
    submission = session.get(Submission, submission_id)
    if submission is None:
        if is_elevated(principal.role):
            raise NotFoundError("Submission", submission_id)
        raise AuthorizationError()
    enforce(principal, action, Resource("submission", owner_id=submission.student_id))
    return submission


def _exam_questions(session: Session, exam_id: int) -> List[Question]:
    return session.exec(select(Question).where(Question.exam_id == exam_id).order_by(Question.id)).all()


def _submission_answers(session: Session, submission_id: int) -> List[Answer]:
    return session.exec(select(Answer).where(Answer.submission_id == submission_id).order_by(Answer.id)).all()


def _save_answer_texts(session: Session, submission: Submission, answers: List[dict]) -> None:
    """Upsert answer text by question for an in-progress submission."""
    question_ids = {q.id for q in _exam_questions(session, submission.exam_id)}
    existing = {a.question_id: a for a in _submission_answers(session, submission.id)}

    for a in answers:
        qid = a.get("question_id")
        if qid not in question_ids:
            raise ValidationError(
                f"Question {qid} does not belong to exam {submission.exam_id}",
                field="question_id",
            )
        answer = existing.get(qid)
        if answer is None:
            answer = Answer(submission_id=submission.id, question_id=qid)
            existing[qid] = answer
        answer.answer_text = a.get("answer_text")
        session.add(answer)


def start_submission(session: Session, principal: Principal, exam_id: int) -> Submission:
    """Begin (or resume) the principal's attempt at an exam."""
    if principal.role != Role.STUDENT.value:
        raise AuthorizationError()
    enforce(principal, Action.ANSWER_SUBMISSION, Resource("submission", owner_id=principal.user_id))

    exam = session.get(Exam, exam_id)
    if exam is None:
        raise NotFoundError("Exam", exam_id)

    stmt = select(Submission).where(
        (Submission.exam_id == exam_id) & (Submission.student_id == principal.user_id)
    )
    existing = session.exec(stmt).first()
    if existing:
        return existing

    submission = Submission(exam_id=exam_id, student_id=principal.user_id, started_at=datetime.utcnow())
    session.add(submission)
    try:
        session.flush()
        for q in _exam_questions(session, exam_id):
            session.add(Answer(submission_id=submission.id, question_id=q.id))
        session.commit()
    except IntegrityError:
        # A concurrent start for the same student and exam won the insert
        session.rollback()
        return session.exec(stmt).one()

    session.refresh(submission)
    logger.info("Student %s started exam %s (submission %s)", principal.user_id, exam_id, submission.id)
    return submission


def save_answers(session: Session, principal: Principal, submission_id: int, answers: List[dict]) -> Submission:
    """Save in-progress answers without submitting."""
    submission = _load_submission(session, principal, submission_id, Action.ANSWER_SUBMISSION)
    if submission.submitted_at is not None:
        raise ValidationError("Submission has already been submitted; answers are frozen")

    _save_answer_texts(session, submission, answers)
    session.commit()
    session.refresh(submission)
    return submission


def submit_submission(
    session: Session,
    principal: Principal,
    submission_id: int,
    answers: Optional[List[dict]] = None,
) -> Submission:
    """Finalize an attempt: store the last answers, freeze them and fix max_score.

    Submitting an already submitted attempt returns it unchanged.
    """
    submission = _load_submission(session, principal, submission_id, Action.ANSWER_SUBMISSION)
    if submission.submitted_at is not None:
        return submission

    if answers:
        _save_answer_texts(session, submission, answers)
        session.flush()

    marks_by_question = {q.id: q.marks for q in _exam_questions(session, submission.exam_id)}
    submission.max_score = scoring.submission_max_score(
        marks_by_question[a.question_id] for a in _submission_answers(session, submission.id)
    )
    submission.submitted_at = datetime.utcnow()
    submission.is_graded = False
    submission.total_score = 0
    session.add(submission)
    session.commit()
    session.refresh(submission)
    logger.info("Submission %s submitted (max score %s)", submission.id, submission.max_score)
    return submission


def _answer_view(answer: Answer, question: Question, reveal_scores: bool, grader: bool) -> dict:
    view = {
        "answer_id": answer.id,
        "question_id": question.id,
        "question_text": question.text,
        "question_type": question.question_type,
        "options": question.options,
        "max_marks": question.marks,
        "answer_text": answer.answer_text,
    }
    if reveal_scores:
        view.update(
            {
                "marks_awarded": answer.marks_awarded,
                "is_correct": answer.is_correct,
                "feedback": answer.feedback,
                "correct_answer": question.correct_answer,
            }
        )
    if grader:
        view["suggested_is_correct"] = scoring.auto_mark(
            question.question_type, question.correct_answer, answer.answer_text
        )
    return view


def get_submission(session: Session, principal: Principal, submission_id: int) -> dict:
    """A submission with its answers, shaped for the requester.

    Graders see everything for submitted attempts; in-progress attempts do not
    exist for them. Students see their own scores only once the submission is
    graded and the exam's results are published.
    """
    submission = _load_submission(session, principal, submission_id, Action.READ_SUBMISSION)
    is_owner = submission.student_id == principal.user_id
    grader = is_elevated(principal.role) and not is_owner
    if grader and submission.submitted_at is None:
        raise NotFoundError("Submission", submission_id)

    exam = session.get(Exam, submission.exam_id)
    reveal = grader or (submission.is_graded and exam.results_published)

    questions = {q.id: q for q in _exam_questions(session, submission.exam_id)}
    answers = _submission_answers(session, submission.id)
    student = session.exec(select(Profile).where(Profile.user_id == submission.student_id)).first()

    detail = {
        "id": submission.id,
        "exam_id": exam.id,
        "exam_title": exam.title,
        "subject": exam.subject,
        "student_id": submission.student_id,
        "student_name": student.full_name if student else None,
        "started_at": submission.started_at,
        "submitted_at": submission.submitted_at,
        "max_score": submission.max_score,
        "status": "pending",
        "answers": [_answer_view(a, questions[a.question_id], reveal, grader) for a in answers],
    }
    if submission.submitted_at is None:
        detail["status"] = "in_progress"
    if reveal:
        pct = scoring.percentage(submission.total_score, submission.max_score)
        detail.update(
            {
                "status": "graded" if submission.is_graded else "submitted",
                "is_graded": submission.is_graded,
                "total_score": submission.total_score,
                "percentage": pct,
                "grade": scoring.letter_grade(pct) if submission.is_graded else None,
            }
        )
    return detail


def _apply_grade(answer: Answer, question: Question, grade: dict) -> None:
    """Overwrite one answer's grading fields with what the grader sent."""
    answer.marks_awarded = grade["marks_awarded"]
    is_correct = grade.get("is_correct")
    if is_correct is None:
        is_correct = scoring.auto_mark(question.question_type, question.correct_answer, answer.answer_text)
    answer.is_correct = is_correct
    answer.feedback = grade.get("feedback")


def grade_submission(session: Session, principal: Principal, submission_id: int, grades: List[dict]) -> Submission:
    """Grade a submitted attempt in a single transaction.

    Every entry is validated before anything is written. The answer updates,
    the recomputed ``total_score`` and ``is_graded`` are then committed
    together; if any write fails the transaction is rolled back and the
    submission keeps its previous state. Re-grading repeats the same pass.

    Answers missing from ``grades`` keep their previous marks, or get 0 if
    they were never graded.

    Args:
        session: Database session
        principal: The grader
        submission_id: ID of the submission to grade
        grades: Dicts with answer_id, marks_awarded and optional is_correct/feedback

    Raises:
        AuthorizationError: If the principal cannot grade
        NotFoundError: If the submission does not exist or is still in progress
        ValidationError: If any entry is malformed or out of range
    """
    enforce(principal, Action.GRADE_SUBMISSION, Resource("submission"))

    stmt = select(Submission).where(Submission.id == submission_id).with_for_update()
    submission = session.exec(stmt).first()
    if submission is None or submission.submitted_at is None:
        raise NotFoundError("Submission", submission_id)

    answers = {a.id: a for a in _submission_answers(session, submission.id)}
    questions = {q.id: q for q in _exam_questions(session, submission.exam_id)}

    prepared = []
    seen_ids = set()
    for g in grades:
        answer_id = g.get("answer_id")
        if answer_id in seen_ids:
            raise ValidationError(f"Answer {answer_id} graded more than once", field="answer_id")
        answer = answers.get(answer_id)
        if answer is None:
            raise ValidationError(
                f"Answer {answer_id} does not belong to submission {submission_id}",
                field="answer_id",
            )
        seen_ids.add(answer_id)
        question = questions[answer.question_id]
        validate_marks(g.get("marks_awarded"), question.marks, answer_id)
        feedback = g.get("feedback")
        prepared.append(
            {
                "answer_id": answer_id,
                "marks_awarded": g["marks_awarded"],
                "is_correct": g.get("is_correct"),
                "feedback": sanitize_feedback(feedback) if feedback else None,
            }
        )

    try:
        for p in prepared:
            answer = answers[p["answer_id"]]
            _apply_grade(answer, questions[answer.question_id], p)
            session.add(answer)
        for answer in answers.values():
            if answer.id not in seen_ids and answer.marks_awarded is None:
                _apply_grade(answer, questions[answer.question_id], {"marks_awarded": 0})
                session.add(answer)

        submission.total_score = scoring.submission_total(
            (a.marks_awarded, questions[a.question_id].marks) for a in answers.values()
        )
        submission.is_graded = True
        submission.graded_at = datetime.utcnow()
        submission.graded_by = principal.user_id
        session.add(submission)
        session.commit()
    except Exception:
        session.rollback()
        logger.error("Grading pass for submission %s failed; nothing was written", submission_id)
        raise

    session.refresh(submission)
    logger.info(
        "Submission %s graded by %s: %s/%s",
        submission.id,
        principal.user_id,
        submission.total_score,
        submission.max_score,
    )
    return submission


def set_results_published(session: Session, principal: Principal, exam_id: int, published: bool = True) -> Exam:
    """Open the publish gate for an exam's results.

    Publishing is one-way: once results are visible they cannot be hidden
    again.
    """
    enforce(principal, Action.PUBLISH_RESULTS, Resource("exam"))
    exam = session.get(Exam, exam_id)
    if exam is None:
        raise NotFoundError("Exam", exam_id)

    if exam.results_published and not published:
        raise ValidationError("Results are already published and cannot be withdrawn", field="published")
    if published and not exam.results_published:
        exam.results_published = True
        exam.updated_at = datetime.utcnow()
        session.add(exam)
        session.commit()
        session.refresh(exam)
        logger.info("Results for exam %s published by %s", exam_id, principal.user_id)
    return exam
