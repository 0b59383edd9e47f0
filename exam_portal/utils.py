"""Utility functions for sanitization and validation."""

import math
import re

import bleach

from exam_portal.errors import ValidationError


def sanitize_feedback(text: str) -> str:
    """Sanitize grader feedback text.

    Allows basic text but removes any HTML/script content.
    """
    sanitized = bleach.clean(text, tags=[], strip=True)
    return sanitized.strip()


def sanitize_name(text: str) -> str:
    return bleach.clean(text, tags=[], strip=True).strip()


def validate_marks(marks: float, max_marks: int, answer_id: int | None = None) -> bool:
    """Validate that marks_awarded is within acceptable range.

    Raises:
        ValidationError: If marks fall outside ``[0, max_marks]``
    """
    if marks is None:
        raise ValidationError(f"Answer {answer_id}: marks_awarded is required", field="marks_awarded")
    if not math.isfinite(marks):
        raise ValidationError(f"Answer {answer_id}: marks must be a finite number", field="marks_awarded")
    if marks < 0 or marks > max_marks:
        raise ValidationError(
            f"Answer {answer_id}: marks {marks} out of range [0, {max_marks}]",
            field="marks_awarded",
        )
    return True


EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def normalize_email(email: str) -> str:
    """Lower-case and check the basic shape of an email address."""
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Please enter a valid email address", field="email")
    return email
