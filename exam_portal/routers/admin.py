"""Admin routes for role grants and the exam catalog."""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel, Field
from sqlmodel import Session

from exam_portal.database import get_session
from exam_portal.deps import require_login
from exam_portal.services import catalog_service
from exam_portal.services.identity_service import grant_role
from exam_portal.services.policy import Principal

router = APIRouter()


class GrantRoleIn(BaseModel):
    user_id: int
    role: str


class NameIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class ExamIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    subject: str = Field(min_length=1, max_length=100)
    exam_type: str = "Exam"
    class_id: Optional[int] = None


class QuestionIn(BaseModel):
    text: str = Field(min_length=1, max_length=5000)
    marks: int = Field(ge=1, le=1000)
    question_type: str = "free_text"
    correct_answer: Optional[str] = None
    options: Optional[List[str]] = None


@router.post("/roles")
def api_grant_role(
    payload: GrantRoleIn = Body(...),
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    effective = grant_role(session, principal, payload.user_id, payload.role)
    return {"user_id": payload.user_id, "granted": payload.role, "effective_role": effective}


@router.post("/classes", status_code=status.HTTP_201_CREATED)
def api_create_class(
    payload: NameIn = Body(...),
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    row = catalog_service.create_class(session, principal, payload.name)
    return {"id": row.id, "name": row.name}


@router.post("/subjects", status_code=status.HTTP_201_CREATED)
def api_create_subject(
    payload: NameIn = Body(...),
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    row = catalog_service.create_subject(session, principal, payload.name)
    return {"id": row.id, "name": row.name}


@router.post("/exams", status_code=status.HTTP_201_CREATED)
def api_create_exam(
    payload: ExamIn = Body(...),
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    exam = catalog_service.create_exam(
        session,
        principal,
        title=payload.title,
        subject=payload.subject,
        exam_type=payload.exam_type,
        class_id=payload.class_id,
    )
    return {
        "exam_id": exam.id,
        "title": exam.title,
        "subject": exam.subject,
        "exam_type": exam.exam_type,
        "class_id": exam.class_id,
        "max_score": exam.max_score,
        "results_published": exam.results_published,
    }


@router.post("/exams/{exam_id}/questions", status_code=status.HTTP_201_CREATED)
def api_add_question(
    exam_id: int,
    payload: QuestionIn = Body(...),
    session: Session = Depends(get_session),
    principal: Principal = Depends(require_login),
):
    q = catalog_service.add_question(
        session,
        principal,
        exam_id=exam_id,
        text=payload.text,
        marks=payload.marks,
        question_type=payload.question_type,
        correct_answer=payload.correct_answer,
        options=payload.options,
    )
    return {
        "question_id": q.id,
        "exam_id": q.exam_id,
        "question_type": q.question_type,
        "marks": q.marks,
    }
