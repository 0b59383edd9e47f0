"""Student-facing result lists and report cards."""

from typing import Optional

from sqlmodel import Session, select

from exam_portal.errors import NotFoundError
from exam_portal.models import Exam, Profile, Submission
from exam_portal.services import scoring
from exam_portal.services.policy import Action, Principal, Resource, enforce


def _scored_row(submission: Submission) -> dict:
    pct = scoring.percentage(submission.total_score, submission.max_score)
    return {
        "total_score": submission.total_score,
        "max_score": submission.max_score,
        "percentage": pct,
        "grade": scoring.letter_grade(pct),
        "passed": scoring.is_pass(pct),
    }


def list_results(session: Session, principal: Principal, student_id: Optional[int] = None) -> list[dict]:
    """Every submitted attempt of a student, newest first.

    Scores are shown only when the attempt is graded and its exam's results
    are published; anything else is reported as ``pending``.
    """
    student_id = student_id if student_id is not None else principal.user_id
    enforce(principal, Action.READ_RESULTS, Resource("results", owner_id=student_id))

    rows = session.exec(
        select(Submission, Exam)
        .join(Exam, Exam.id == Submission.exam_id)
        .where((Submission.student_id == student_id) & (Submission.submitted_at.is_not(None)))
        .order_by(Submission.submitted_at.desc())
    ).all()

    results = []
    for submission, exam in rows:
        row = {
            "submission_id": submission.id,
            "exam_id": exam.id,
            "exam_title": exam.title,
            "subject": exam.subject,
            "exam_type": exam.exam_type,
            "submitted_at": submission.submitted_at,
            "status": "pending",
        }
        if submission.is_graded and exam.results_published:
            row["status"] = "published"
            row.update(_scored_row(submission))
        results.append(row)
    return results


def get_report_card(session: Session, principal: Principal, student_id: Optional[int] = None) -> dict:
    """Profile, aggregate and per-exam rows over graded, published results only."""
    student_id = student_id if student_id is not None else principal.user_id
    enforce(principal, Action.READ_RESULTS, Resource("results", owner_id=student_id))

    profile = session.exec(select(Profile).where(Profile.user_id == student_id)).first()
    if profile is None:
        raise NotFoundError("Profile", student_id)

    rows = session.exec(
        select(Submission, Exam)
        .join(Exam, Exam.id == Submission.exam_id)
        .where(
            (Submission.student_id == student_id)
            & (Submission.is_graded == True)  # noqa: E712
            & (Exam.results_published == True)  # noqa: E712
        )
        .order_by(Submission.submitted_at.desc())
    ).all()

    result_rows = []
    for submission, exam in rows:
        row = {
            "submission_id": submission.id,
            "exam_title": exam.title,
            "subject": exam.subject,
            "exam_type": exam.exam_type,
            "submitted_at": submission.submitted_at,
        }
        row.update(_scored_row(submission))
        result_rows.append(row)

    summary = scoring.aggregate(
        [
            scoring.ScoredResult(total_score=s.total_score, max_score=s.max_score, subject=e.subject)
            for s, e in rows
        ]
    )
    return {
        "profile": {
            "user_id": profile.user_id,
            "full_name": profile.full_name,
            "email": profile.email,
            "student_number": profile.student_number,
            "class_name": profile.class_name,
        },
        "aggregate": {
            "total_obtained": summary.total_obtained,
            "total_max": summary.total_max,
            "percentage": summary.percentage,
            "grade": summary.grade,
            "passed": summary.passed,
            "exam_count": summary.exam_count,
            "subject_count": summary.subject_count,
        },
        "results": result_rows,
    }
