"""Utility functions for time handling, sanitization and validation."""

from datetime import datetime, timezone

import bleach

from .errors import ValidationError


def utcnow() -> datetime:
    """Current time as naive UTC, the representation stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalise an aware datetime to naive UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def sanitize_question_text(text: str) -> str:
    """Sanitize question prompt text to prevent XSS attacks.

    Allows basic formatting tags but removes script/dangerous content.
    """
    allowed_tags = ['b', 'i', 'u', 'em', 'strong', 'p', 'br', 'code', 'pre', 'ul', 'ol', 'li']
    allowed_attributes = {}

    sanitized = bleach.clean(text, tags=allowed_tags, attributes=allowed_attributes, strip=True)
    return sanitized.strip()


def sanitize_feedback(text: str) -> str:
    """Sanitize grader feedback text.

    For feedback, we strip all HTML to plain text.
    """
    sanitized = bleach.clean(text, tags=[], strip=True)
    return sanitized.strip()


def normalize_answer(text: str) -> str:
    """Case-insensitive, whitespace-trimmed form used for text comparisons."""
    return text.strip().lower()


def validate_marks(marks: int, max_marks: int) -> bool:
    """Validate that awarded points are within [0, max_marks].

    Raises:
        ValidationError: If marks exceed valid range
    """
    if marks < 0 or marks > max_marks:
        raise ValidationError(f"Marks {marks} out of range [0, {max_marks}]")

    return True
