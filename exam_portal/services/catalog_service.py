"""Admin-managed catalog: classes, subjects, exams and their questions."""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from exam_portal.errors import NotFoundError, ValidationError
from exam_portal.models import Exam, Question, SchoolClass, Subject, Submission
from exam_portal.services.policy import Action, Principal, Resource, enforce
from exam_portal.utils import sanitize_name

logger = logging.getLogger(__name__)

EXAM_TYPES = ("Exam", "C.A Test", "Quiz")
QUESTION_TYPES = ("multiple_choice", "free_text")


def _create_named(session: Session, principal: Principal, model, name: str):
    enforce(principal, Action.MANAGE_CATALOG, Resource("catalog"))
    cleaned = sanitize_name(name)
    if not cleaned:
        raise ValidationError("Name cannot be empty", field="name")

    row = model(name=cleaned)
    session.add(row)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise ValidationError(f"{cleaned!r} already exists", field="name")
    session.refresh(row)
    return row


def create_class(session: Session, principal: Principal, name: str) -> SchoolClass:
    return _create_named(session, principal, SchoolClass, name)


def create_subject(session: Session, principal: Principal, name: str) -> Subject:
    return _create_named(session, principal, Subject, name)


def create_exam(
    session: Session,
    principal: Principal,
    title: str,
    subject: str,
    exam_type: str = "Exam",
    class_id: Optional[int] = None,
) -> Exam:
    enforce(principal, Action.MANAGE_CATALOG, Resource("catalog"))
    if exam_type not in EXAM_TYPES:
        raise ValidationError(f"exam_type must be one of {', '.join(EXAM_TYPES)}", field="exam_type")
    if class_id is not None and session.get(SchoolClass, class_id) is None:
        raise NotFoundError("Class", class_id)

    title_clean = sanitize_name(title)
    subject_clean = sanitize_name(subject)
    if not title_clean or not subject_clean:
        raise ValidationError("Title and subject are required", field="title")

    exam = Exam(
        title=title_clean,
        subject=subject_clean,
        exam_type=exam_type,
        class_id=class_id,
        created_by=principal.user_id,
    )
    session.add(exam)
    session.commit()
    session.refresh(exam)
    logger.info("Exam %s (%s) created by %s", exam.id, exam.title, principal.user_id)
    return exam


def add_question(
    session: Session,
    principal: Principal,
    exam_id: int,
    text: str,
    marks: int,
    question_type: str = "free_text",
    correct_answer: Optional[str] = None,
    options: Optional[List[str]] = None,
) -> Question:
    """Add a question and grow the exam's max_score by its marks.

    Questions are fixed once any student has started the exam, so every
    attempt is scored against the same set.
    """
    enforce(principal, Action.MANAGE_CATALOG, Resource("catalog"))
    exam = session.get(Exam, exam_id)
    if not exam:
        raise NotFoundError("Exam", exam_id)

    if session.exec(select(Submission).where(Submission.exam_id == exam_id)).first():
        raise ValidationError("Exam already has attempts; its questions can no longer change")
    if question_type not in QUESTION_TYPES:
        raise ValidationError(f"question_type must be one of {', '.join(QUESTION_TYPES)}", field="question_type")
    if marks < 1:
        raise ValidationError("marks must be at least 1", field="marks")
    if not text or not text.strip():
        raise ValidationError("Question text cannot be empty", field="text")
    if question_type == "multiple_choice":
        if not options or correct_answer is None:
            raise ValidationError("Multiple-choice questions need options and a correct answer", field="options")
        if correct_answer not in options:
            raise ValidationError("correct_answer must be one of the options", field="correct_answer")

    q = Question(
        exam_id=exam_id,
        text=text.strip(),
        question_type=question_type,
        correct_answer=correct_answer,
        options=options,
        marks=marks,
    )
    exam.max_score += marks
    exam.updated_at = datetime.utcnow()
    session.add(q)
    session.add(exam)
    session.commit()
    session.refresh(q)
    return q
