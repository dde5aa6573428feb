"""
Input validation rules for accounts, books and paging.

Each validator returns every violated rule rather than stopping at the
first one; ``ensure_valid`` turns a non-empty result into ValidationFailed.
"""

import re
from typing import List, Optional

from utilities.errors import Rule, ValidationFailed, Violation

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
PASSWORD_MIN_LENGTH = 8
TITLE_MAX_LENGTH = 100
AUTHOR_MAX_LENGTH = 50
GENRE_MAX_LENGTH = 30
MAX_PAGE_SIZE = 100


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def validate_username(username: Optional[str]) -> List[Violation]:
    if _blank(username):
        return [Violation(Rule.USERNAME_REQUIRED, "Username is required")]

    trimmed = username.strip()
    if len(trimmed) < USERNAME_MIN_LENGTH:
        return [Violation(Rule.USERNAME_TOO_SHORT, f"Username must be at least {USERNAME_MIN_LENGTH} characters")]
    if len(trimmed) > USERNAME_MAX_LENGTH:
        return [Violation(Rule.USERNAME_TOO_LONG, f"Username cannot exceed {USERNAME_MAX_LENGTH} characters")]
    if not USERNAME_PATTERN.fullmatch(username):
        return [Violation(Rule.USERNAME_CHARSET, "Username can only contain letters, numbers, and underscores")]
    return []


def validate_email(email: Optional[str]) -> List[Violation]:
    if _blank(email):
        return [Violation(Rule.EMAIL_REQUIRED, "Email is required")]
    if not EMAIL_PATTERN.match(email.strip()):
        return [Violation(Rule.EMAIL_FORMAT, "Email format is invalid")]
    return []


def validate_password(password: Optional[str], required: bool = True) -> List[Violation]:
    """
    Check password strength.

    Args:
        password: Plaintext password
        required: If False, an empty password means "unchanged" and passes
    """
    if not password:
        if required:
            return [Violation(Rule.PASSWORD_REQUIRED, "Password is required")]
        return []

    violations = []
    if len(password) < PASSWORD_MIN_LENGTH:
        violations.append(
            Violation(Rule.PASSWORD_TOO_SHORT, f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
        )
    if not re.search(r"[A-Za-z]", password):
        violations.append(Violation(Rule.PASSWORD_NEEDS_LETTER, "Password must contain at least one letter"))
    if not re.search(r"[0-9]", password):
        violations.append(Violation(Rule.PASSWORD_NEEDS_DIGIT, "Password must contain at least one number"))
    return violations


def validate_registration(username: Optional[str], email: Optional[str], password: Optional[str]) -> List[Violation]:
    return validate_username(username) + validate_email(email) + validate_password(password)


def validate_profile_update(username: Optional[str], email: Optional[str]) -> List[Violation]:
    return validate_username(username) + validate_email(email)


def validate_book(title: Optional[str], author: Optional[str], genre: Optional[str] = None) -> List[Violation]:
    violations = []

    if _blank(title):
        violations.append(Violation(Rule.TITLE_REQUIRED, "Title is required"))
    elif len(title.strip()) > TITLE_MAX_LENGTH:
        violations.append(Violation(Rule.TITLE_TOO_LONG, f"Title cannot exceed {TITLE_MAX_LENGTH} characters"))

    if _blank(author):
        violations.append(Violation(Rule.AUTHOR_REQUIRED, "Author is required"))
    elif len(author.strip()) > AUTHOR_MAX_LENGTH:
        violations.append(Violation(Rule.AUTHOR_TOO_LONG, f"Author name cannot exceed {AUTHOR_MAX_LENGTH} characters"))

    if genre is not None and len(genre.strip()) > GENRE_MAX_LENGTH:
        violations.append(Violation(Rule.GENRE_TOO_LONG, f"Genre cannot exceed {GENRE_MAX_LENGTH} characters"))

    return violations


def validate_pagination(page: int, size: int) -> List[Violation]:
    violations = []
    if page < 0:
        violations.append(Violation(Rule.PAGE_NEGATIVE, "Page number cannot be negative"))
    if size < 1:
        violations.append(Violation(Rule.PAGE_SIZE_TOO_SMALL, "Page size must be at least 1"))
    elif size > MAX_PAGE_SIZE:
        violations.append(Violation(Rule.PAGE_SIZE_TOO_LARGE, f"Page size cannot exceed {MAX_PAGE_SIZE}"))
    return violations


def ensure_valid(violations: List[Violation]) -> None:
    """Raise ValidationFailed carrying every violation, if there are any."""
    if violations:
        raise ValidationFailed(violations)
