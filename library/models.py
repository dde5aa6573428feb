"""
Models for service-level results.

This module defines Pydantic models for:
- Paged listings
- Catalog import summaries
- Reconciliation discrepancies and reports
"""

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, List, Optional, Sequence, TypeVar
from pydantic import BaseModel, Field

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20


class Page(BaseModel, Generic[T]):
    """One 0-based page of a listing."""
    content: List[T] = Field(default_factory=list)
    page: int = Field(default=0, ge=0)
    size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)
    total: int = Field(default=0, ge=0)
    total_pages: int = Field(default=0, ge=0)
    has_next: bool = Field(default=False)
    has_previous: bool = Field(default=False)

    @classmethod
    def slice(cls, items: Sequence[T], page: int, size: int) -> "Page[T]":
        """Cut one page out of a full listing."""
        total = len(items)
        total_pages = math.ceil(total / size)
        start = page * size
        return cls(
            content=list(items[start:start + size]),
            page=page,
            size=size,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages - 1,
            has_previous=page > 0,
        )


class ImportSummary(BaseModel):
    """Outcome of an append-only catalog import."""
    added: int = Field(default=0, ge=0)
    skipped: int = Field(default=0, ge=0, description="Rows skipped as duplicates")
    errors: List[str] = Field(default_factory=list, description="Rows rejected, by 1-based row number")


class DiscrepancyKind(str, Enum):
    """Kinds of book/rental inconsistency."""
    ORPHANED_RENTED_BOOK = "orphaned_rented_book"
    UNMARKED_RENTED_BOOK = "unmarked_rented_book"
    DUPLICATE_ACTIVE_RENTAL = "duplicate_active_rental"
    DANGLING_RENTAL = "dangling_rental"


class Discrepancy(BaseModel):
    """One inconsistency found by the reconciler."""
    kind: DiscrepancyKind = Field(..., description="What is inconsistent")
    book_id: Optional[str] = Field(default=None)
    rental_ids: List[str] = Field(default_factory=list)
    repaired: bool = Field(default=False)
    detail: str = Field(..., description="Human-readable summary")


class ReconciliationReport(BaseModel):
    """Result of one reconciliation pass."""
    run_id: str = Field(..., description="Unique reconciliation run identifier")
    run_timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    repair: bool = Field(default=True, description="Whether repairs were applied")
    books_checked: int = Field(default=0)
    rentals_checked: int = Field(default=0)
    discrepancies: List[Discrepancy] = Field(default_factory=list)
    duration_seconds: float = Field(default=0.0)
    success: bool = Field(default=True)
    errors: List[str] = Field(default_factory=list)

    @property
    def repaired_count(self) -> int:
        return sum(1 for d in self.discrepancies if d.repaired)

    @property
    def is_consistent(self) -> bool:
        return not self.discrepancies

    def of_kind(self, kind: DiscrepancyKind) -> List[Discrepancy]:
        return [d for d in self.discrepancies if d.kind == kind]
