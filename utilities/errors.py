"""
Error taxonomy shared by the storage layer and the library services.

Every error carries a ``rule`` naming the check that fired so callers can
branch on the kind of failure without inspecting message text.
"""

from enum import Enum
from typing import Iterable, List, NamedTuple, Optional


class Rule(str, Enum):
    """Identifiers for every rule that can refuse an operation."""
    # Lookups
    USER_NOT_FOUND = "user_not_found"
    BOOK_NOT_FOUND = "book_not_found"
    RENTAL_NOT_FOUND = "rental_not_found"

    # Validation
    USERNAME_REQUIRED = "username_required"
    USERNAME_TOO_SHORT = "username_too_short"
    USERNAME_TOO_LONG = "username_too_long"
    USERNAME_CHARSET = "username_charset"
    EMAIL_REQUIRED = "email_required"
    EMAIL_FORMAT = "email_format"
    PASSWORD_REQUIRED = "password_required"
    PASSWORD_TOO_SHORT = "password_too_short"
    PASSWORD_NEEDS_LETTER = "password_needs_letter"
    PASSWORD_NEEDS_DIGIT = "password_needs_digit"
    TITLE_REQUIRED = "title_required"
    TITLE_TOO_LONG = "title_too_long"
    AUTHOR_REQUIRED = "author_required"
    AUTHOR_TOO_LONG = "author_too_long"
    GENRE_TOO_LONG = "genre_too_long"
    PAGE_NEGATIVE = "page_negative"
    PAGE_SIZE_TOO_SMALL = "page_size_too_small"
    PAGE_SIZE_TOO_LARGE = "page_size_too_large"

    # Uniqueness
    DUPLICATE_TITLE_AUTHOR = "duplicate_title_author"
    USERNAME_TAKEN = "username_taken"
    EMAIL_TAKEN = "email_taken"

    # Rental state machine
    BOOK_NOT_AVAILABLE = "book_not_available"
    RENTAL_LIMIT_REACHED = "rental_limit_reached"
    RENTAL_NOT_ACTIVE = "rental_not_active"
    NOT_RENTAL_OWNER = "not_rental_owner"

    # Deletion and role guards
    BOOK_RENTED = "book_rented"
    PROTECTED_ACCOUNT = "protected_account"
    ACTIVE_RENTALS = "active_rentals"

    # Storage
    DOCUMENT_WRITE_FAILED = "document_write_failed"
    DOCUMENT_INIT_FAILED = "document_init_failed"
    STALE_WRITE = "stale_write"


class Violation(NamedTuple):
    """A single failed validation rule."""
    rule: Rule
    message: str


class LibraryError(Exception):
    """Base class for every error raised by the library core."""

    default_rule: Optional[Rule] = None

    def __init__(self, message: str, rule: Optional[Rule] = None):
        super().__init__(message)
        self.message = message
        self.rule = rule or self.default_rule

    def to_dict(self) -> dict:
        """Serializable form for the outer layers."""
        return {
            "error": type(self).__name__,
            "rule": self.rule.value if self.rule else None,
            "message": self.message,
        }


class NotFound(LibraryError):
    """A referenced user, book or rental does not exist."""


class ValidationFailed(LibraryError):
    """Input broke one or more validation rules; all of them are listed."""

    def __init__(self, violations: Iterable[Violation]):
        self.violations: List[Violation] = list(violations)
        message = "Validation failed: " + ", ".join(v.message for v in self.violations)
        rule = self.violations[0].rule if self.violations else None
        super().__init__(message, rule)

    @property
    def rules(self) -> List[Rule]:
        return [v.rule for v in self.violations]

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["violations"] = [
            {"rule": v.rule.value, "message": v.message} for v in self.violations
        ]
        return data


class DuplicateCatalogEntry(LibraryError):
    default_rule = Rule.DUPLICATE_TITLE_AUTHOR


class DuplicateAccount(LibraryError):
    """Username or email is already registered."""


class BookUnavailable(LibraryError):
    default_rule = Rule.BOOK_NOT_AVAILABLE


class RentalLimitExceeded(LibraryError):
    default_rule = Rule.RENTAL_LIMIT_REACHED


class ConflictingState(LibraryError):
    """The operation is not allowed in the record's current state."""


class Forbidden(LibraryError):
    default_rule = Rule.NOT_RENTAL_OWNER


class StorageFailure(LibraryError):
    """A document could not be written, even after the retry."""
    default_rule = Rule.DOCUMENT_WRITE_FAILED


class WriteConflict(LibraryError):
    """The document changed since it was read (optimistic mode)."""
    default_rule = Rule.STALE_WRITE
