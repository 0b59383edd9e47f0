"""SQLModel models for the exam portal grading core."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    """Login account. ``User.id`` is the user_id every other table refers to."""

    __table_args__ = (UniqueConstraint("email", name="uq_user_email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str
    password_hash: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Profile(SQLModel, table=True):
    """Identity profile, one row per user (upserted on account activity)."""

    __table_args__ = (UniqueConstraint("user_id", name="uq_profile_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id")
    full_name: str
    email: str
    # Student-only fields
    student_number: Optional[str] = None
    class_name: Optional[str] = None
    # Set while the identity claim is known to lag the role table
    claim_stale: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class UserRole(SQLModel, table=True):
    """Authoritative role table. Rows are only ever added, never removed."""

    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_role"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    role: str  # "student", "teacher", "admin"
    granted_by: Optional[int] = Field(default=None, foreign_key="user.id")
    granted_at: datetime = Field(default_factory=datetime.utcnow)


class IdentityClaim(SQLModel, table=True):
    """Denormalized effective role, copied into the session at login."""

    user_id: int = Field(foreign_key="user.id", primary_key=True)
    role: str
    synced_at: datetime = Field(default_factory=datetime.utcnow)


class SchoolClass(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("name", name="uq_class_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Subject(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("name", name="uq_subject_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Exam(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    subject: str
    exam_type: str = Field(default="Exam")  # "Exam", "C.A Test", "Quiz"
    class_id: Optional[int] = Field(default=None, foreign_key="schoolclass.id")
    # Sum of the exam's question marks
    max_score: int = Field(default=0)
    results_published: bool = Field(default=False)
    created_by: Optional[int] = Field(default=None, foreign_key="user.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Question(SQLModel, table=True):
    """Read-only to grading; marks is the maximum a single answer can earn."""

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    text: str
    question_type: str = Field(default="free_text")  # "multiple_choice" | "free_text"
    correct_answer: Optional[str] = None
    options: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    marks: int = Field(default=1)


class Submission(SQLModel, table=True):
    """One attempt by a student at an exam.

    started -> submitted (submitted_at set) -> graded (is_graded, total_score).
    """

    __table_args__ = (
        UniqueConstraint("exam_id", "student_id", name="uq_submission_exam_student"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    exam_id: int = Field(foreign_key="exam.id", index=True)
    student_id: int = Field(foreign_key="user.id", index=True)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    submitted_at: Optional[datetime] = None
    total_score: float = Field(default=0)
    max_score: int = Field(default=0)
    is_graded: bool = Field(default=False)
    graded_at: Optional[datetime] = None
    graded_by: Optional[int] = Field(default=None, foreign_key="user.id")


class Answer(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("submission_id", "question_id", name="uq_answer_submission_question"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    submission_id: int = Field(foreign_key="submission.id", index=True)
    question_id: int = Field(foreign_key="question.id")
    answer_text: Optional[str] = None
    is_correct: Optional[bool] = None
    marks_awarded: Optional[float] = None
    feedback: Optional[str] = None
