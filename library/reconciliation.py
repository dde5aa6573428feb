"""
Book/rental consistency checks.

A book should be RENTED exactly when it has one ACTIVE rental. A failed
rent or return can break that across the two documents; the reconciler
finds those breaks and repairs the ones with an unambiguous fix.
"""

import contextlib
import time
import uuid
from collections import defaultdict
from typing import ContextManager, Dict, List, Optional

import structlog

from .models import Discrepancy, DiscrepancyKind, ReconciliationReport
from storage.models import Book, BookStatus, Rental
from storage.repositories import CatalogRepository, RentalLedger
from utilities.errors import LibraryError
from utilities.logger import LibraryLogger

logger = structlog.get_logger(__name__)


class Reconciler:
    """Compares book status against active rentals and repairs drift."""

    def __init__(
        self,
        books: CatalogRepository,
        rentals: RentalLedger,
        coordination_lock: Optional[ContextManager] = None,
    ):
        self.books = books
        self.rentals = rentals
        self._coordination = coordination_lock or contextlib.nullcontext()
        self.library_logger = LibraryLogger("reconciler")
        self.logger = logger.bind(component="reconciler")

    def reconcile(self, repair: bool = True) -> ReconciliationReport:
        """
        Scan both documents and report every discrepancy.

        Orphaned and unmarked books are repaired when ``repair`` is True.
        Duplicate active rentals and rentals of deleted books need a human
        decision and are only reported.

        Args:
            repair: Apply the book status repairs

        Returns:
            ReconciliationReport listing what was found and fixed
        """
        run_id = str(uuid.uuid4())
        start_time = time.time()
        report = ReconciliationReport(run_id=run_id, repair=repair)

        self.logger.info("Starting reconciliation", run_id=run_id, repair=repair)

        with self._coordination:
            books = self.books.find_all()
            rentals = self.rentals.find_all()
            report.books_checked = len(books)
            report.rentals_checked = len(rentals)

            active_by_book: Dict[str, List[Rental]] = defaultdict(list)
            for rental in rentals:
                if rental.is_active:
                    active_by_book[rental.book_id].append(rental)

            for book in books:
                discrepancy = self._check_book(book, active_by_book.get(book.id, []))
                if discrepancy is None:
                    continue
                if repair and discrepancy.kind in (
                    DiscrepancyKind.ORPHANED_RENTED_BOOK, DiscrepancyKind.UNMARKED_RENTED_BOOK
                ):
                    self._repair(book, discrepancy, report)
                report.discrepancies.append(discrepancy)

            known_books = {book.id for book in books}
            for book_id, active in active_by_book.items():
                if book_id not in known_books:
                    report.discrepancies.append(Discrepancy(
                        kind=DiscrepancyKind.DANGLING_RENTAL,
                        book_id=book_id,
                        rental_ids=[rental.id for rental in active],
                        detail=f"{len(active)} active rental(s) reference a missing book",
                    ))

        for discrepancy in report.discrepancies:
            self.library_logger.log_discrepancy(
                discrepancy.kind.value,
                discrepancy.book_id,
                discrepancy.repaired,
                rental_ids=discrepancy.rental_ids
            )

        report.duration_seconds = time.time() - start_time
        self.logger.info(
            "Reconciliation completed",
            run_id=run_id,
            discrepancies=len(report.discrepancies),
            repaired=report.repaired_count,
            success=report.success,
            duration=report.duration_seconds
        )
        return report

    def _check_book(self, book: Book, active: List[Rental]) -> Optional[Discrepancy]:
        rental_ids = [rental.id for rental in active]

        if len(active) > 1:
            return Discrepancy(
                kind=DiscrepancyKind.DUPLICATE_ACTIVE_RENTAL,
                book_id=book.id,
                rental_ids=rental_ids,
                detail=f"Book has {len(active)} active rentals",
            )
        if book.status == BookStatus.RENTED and not active:
            return Discrepancy(
                kind=DiscrepancyKind.ORPHANED_RENTED_BOOK,
                book_id=book.id,
                detail="Book is RENTED but has no active rental",
            )
        if book.status == BookStatus.AVAILABLE and active:
            return Discrepancy(
                kind=DiscrepancyKind.UNMARKED_RENTED_BOOK,
                book_id=book.id,
                rental_ids=rental_ids,
                detail="Book is AVAILABLE but has an active rental",
            )
        return None

    def _repair(self, book: Book, discrepancy: Discrepancy, report: ReconciliationReport) -> None:
        if discrepancy.kind == DiscrepancyKind.ORPHANED_RENTED_BOOK:
            book.status = BookStatus.AVAILABLE
        else:
            book.status = BookStatus.RENTED

        try:
            self.books.save(book)
            discrepancy.repaired = True
        except LibraryError as e:
            report.success = False
            report.errors.append(f"Failed to repair book {book.id}: {e.message}")
            self.logger.error("Repair failed", book_id=book.id, error=str(e))
