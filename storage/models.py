"""
Pydantic models for the library's stored records.
Field aliases are the on-disk JSON names and must stay stable.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class BookStatus(str, Enum):
    """Enum for book availability."""
    AVAILABLE = "AVAILABLE"
    RENTED = "RENTED"


class RentalStatus(str, Enum):
    """Enum for rental lifecycle. CLOSED is terminal."""
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class UserRole(str, Enum):
    """Enum for account roles."""
    USER = "USER"
    ADMIN = "ADMIN"


def generate_id() -> str:
    """Generate a fresh opaque record id."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Record(BaseModel):
    """
    Base for every stored record.
    Unknown fields are ignored and attributes may be set by name or alias.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        validate_assignment=True,
    )

    id: str = Field(..., min_length=1, description="Opaque, immutable record id")

    def to_document(self) -> Dict[str, Any]:
        """JSON-ready dict using the on-disk field names."""
        return self.model_dump(mode="json", by_alias=True)


class Book(Record):
    """A catalog entry."""
    title: str = Field(..., description="Book title")
    author: str = Field(..., description="Book author")
    genre: Optional[str] = Field(default=None, description="Optional genre")
    status: BookStatus = Field(default=BookStatus.AVAILABLE)

    @property
    def is_available(self) -> bool:
        return self.status == BookStatus.AVAILABLE


class Rental(Record):
    """
    One book lent to one user.
    Created ACTIVE by a rent, closed exactly once by a return, never deleted.
    """
    user_id: str = Field(..., alias="userId")
    book_id: str = Field(..., alias="bookId")
    rent_date: datetime = Field(default_factory=utc_now, alias="rentDate")
    status: RentalStatus = Field(default=RentalStatus.ACTIVE)
    return_date: Optional[datetime] = Field(default=None, alias="returnDate")

    @property
    def is_active(self) -> bool:
        return self.status == RentalStatus.ACTIVE

    def close(self, returned_at: datetime) -> None:
        """Move the rental to its terminal state."""
        self.status = RentalStatus.CLOSED
        self.return_date = returned_at


class User(Record):
    """A library account. Only a one-way password hash is stored."""
    username: str = Field(...)
    password_hash: str = Field(..., alias="passwordHash")
    email: str = Field(...)
    role: UserRole = Field(default=UserRole.USER)
    is_protected: bool = Field(default=False, alias="protected")
    must_change_password: bool = Field(default=False, alias="mustChangePassword")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
