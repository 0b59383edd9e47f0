"""Grading, scoring and role authorization core of the exam portal."""

from .main import app  # noqa: F401
