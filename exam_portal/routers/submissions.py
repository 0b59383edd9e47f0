"""Exam attempts and grading endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from exam_portal.database import get_session
from exam_portal.deps import require_login
from exam_portal.models import Submission
from exam_portal.services.policy import Principal
from exam_portal.services.submission_service import (
    get_submission,
    grade_submission,
    save_answers,
    set_results_published,
    start_submission,
    submit_submission,
)

router = APIRouter()


class AnswerIn(BaseModel):
    question_id: int
    answer_text: Optional[str] = Field(default=None, max_length=50000)


class AnswersPayload(BaseModel):
    answers: List[AnswerIn]


class SubmitPayload(BaseModel):
    answers: Optional[List[AnswerIn]] = None


class GradeIn(BaseModel):
    answer_id: int
    marks_awarded: float
    is_correct: Optional[bool] = None
    feedback: Optional[str] = Field(default=None, max_length=5000)


class GradePayload(BaseModel):
    grades: List[GradeIn]


class PublishPayload(BaseModel):
    published: bool = True


def _submission_out(submission: Submission) -> dict:
    return {
        "id": submission.id,
        "exam_id": submission.exam_id,
        "student_id": submission.student_id,
        "started_at": submission.started_at,
        "submitted_at": submission.submitted_at,
        "total_score": submission.total_score,
        "max_score": submission.max_score,
        "is_graded": submission.is_graded,
    }


@router.post("/exams/{exam_id}/start")
def api_start(
    exam_id: int,
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    submission = start_submission(session, principal, exam_id)
    return {
        "submission_id": submission.id,
        "exam_id": submission.exam_id,
        "started_at": submission.started_at,
        "submitted_at": submission.submitted_at,
    }


@router.post("/exams/{exam_id}/publish")
def api_publish(
    exam_id: int,
    payload: Optional[PublishPayload] = Body(None),
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    exam = set_results_published(session, principal, exam_id, payload.published if payload else True)
    return {"exam_id": exam.id, "results_published": exam.results_published}


@router.put("/submissions/{submission_id}/answers")
def api_save_answers(
    submission_id: int,
    payload: AnswersPayload = Body(...),
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    submission = save_answers(session, principal, submission_id, [a.model_dump() for a in payload.answers])
    return {"status": "saved", "submission_id": submission.id}


@router.post("/submissions/{submission_id}/submit")
def api_submit(
    submission_id: int,
    payload: Optional[SubmitPayload] = Body(None),
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    answers = [a.model_dump() for a in payload.answers] if payload and payload.answers else None
    submission = submit_submission(session, principal, submission_id, answers)
    return _submission_out(submission)


@router.get("/submissions/{submission_id}")
def api_get_submission(
    submission_id: int,
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    return get_submission(session, principal, submission_id)


@router.post("/submissions/{submission_id}/grade")
def api_grade(
    submission_id: int,
    payload: GradePayload = Body(...),
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    submission = grade_submission(session, principal, submission_id, [g.model_dump() for g in payload.grades])
    return _submission_out(submission)
