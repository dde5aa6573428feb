"""
Rental state machine over the books and rentals documents.

A rent writes two documents: the book is marked RENTED first, then the
rental is recorded. If the rental write fails the book write is undone.
If the undo fails too, the book stays RENTED with no active rental until
the reconciler repairs it.
"""

import contextlib
from datetime import datetime
from typing import Callable, ContextManager, List, Optional

import structlog

from storage.models import Book, BookStatus, Rental, RentalStatus, generate_id, utc_now
from storage.repositories import AccountRepository, CatalogRepository, RentalLedger
from utilities.errors import (
    BookUnavailable,
    ConflictingState,
    Forbidden,
    LibraryError,
    NotFound,
    RentalLimitExceeded,
    Rule,
)
from utilities.logger import LibraryLogger

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ACTIVE_RENTALS = 5


class RentalCoordinator:
    """Rents and returns books, keeping book status in step with active rentals."""

    def __init__(
        self,
        books: CatalogRepository,
        rentals: RentalLedger,
        accounts: AccountRepository,
        coordination_lock: Optional[ContextManager] = None,
        max_active_rentals: int = DEFAULT_MAX_ACTIVE_RENTALS,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the coordinator.

        Args:
            books: Books repository
            rentals: Rentals repository
            accounts: Users repository, for resolving renters
            coordination_lock: Serializes every book/rental mutation
            max_active_rentals: Cap on a user's concurrent ACTIVE rentals
            clock: Time source for rent and return dates
        """
        self.books = books
        self.rentals = rentals
        self.accounts = accounts
        self._coordination = coordination_lock or contextlib.nullcontext()
        self.max_active_rentals = max_active_rentals
        self._clock = clock
        self.library_logger = LibraryLogger("rental_coordinator")

    def _refuse(self, operation: str, error: LibraryError, **details) -> LibraryError:
        self.library_logger.log_rule_refused(operation, error.rule.value, **details)
        return error

    def rent_book(self, user_id: str, book_id: str) -> Rental:
        """
        Rent an available book to a user.

        Raises:
            NotFound: Unknown user or book
            BookUnavailable: The book is already rented
            RentalLimitExceeded: The user is at the active rental cap
            StorageFailure: A document write failed (the book write is undone)
        """
        with self._coordination:
            if self.accounts.find_by_id(user_id) is None:
                raise self._refuse(
                    "rent_book", NotFound(f"User not found: {user_id}", Rule.USER_NOT_FOUND), user_id=user_id
                )

            book = self.books.find_by_id(book_id)
            if book is None:
                raise self._refuse(
                    "rent_book", NotFound(f"Book not found: {book_id}", Rule.BOOK_NOT_FOUND), book_id=book_id
                )

            if book.status != BookStatus.AVAILABLE:
                raise self._refuse(
                    "rent_book", BookUnavailable("Book is not available for rental"), book_id=book_id
                )

            active = self.rentals.find_active_by_user_id(user_id)
            if len(active) >= self.max_active_rentals:
                raise self._refuse(
                    "rent_book",
                    RentalLimitExceeded(f"Maximum {self.max_active_rentals} books can be rented at once"),
                    user_id=user_id,
                    active_rentals=len(active)
                )

            rental = Rental(
                id=generate_id(),
                user_id=user_id,
                book_id=book_id,
                rent_date=self._clock(),
                status=RentalStatus.ACTIVE,
            )

            book.status = BookStatus.RENTED
            self.books.save(book)
            try:
                self.rentals.save(rental)
            except Exception as e:
                self._compensate(book, e)
                raise

        self.library_logger.log_book_rented(rental.id, user_id, book_id)
        return rental

    def _compensate(self, book: Book, cause: Exception) -> None:
        """Put a book back to AVAILABLE after its rental failed to persist."""
        book.status = BookStatus.AVAILABLE
        try:
            self.books.save(book)
        except LibraryError as e:
            self.library_logger.log_compensation(book.id, success=False, error=f"{cause}; undo failed: {e}")
            return
        self.library_logger.log_compensation(book.id, success=True, error=str(cause))

    def return_book(self, rental_id: str, user_id: str) -> Rental:
        """
        Close a user's active rental and make the book available again.

        Raises:
            NotFound: Unknown rental
            Forbidden: The rental belongs to another user
            ConflictingState: The rental is already closed
        """
        with self._coordination:
            rental = self.rentals.find_by_id(rental_id)
            if rental is None:
                raise self._refuse(
                    "return_book",
                    NotFound(f"Rental not found: {rental_id}", Rule.RENTAL_NOT_FOUND),
                    rental_id=rental_id
                )

            if rental.user_id != user_id:
                raise self._refuse(
                    "return_book",
                    Forbidden("You can only return books you have rented"),
                    rental_id=rental_id,
                    user_id=user_id
                )

            if not rental.is_active:
                raise self._refuse(
                    "return_book",
                    ConflictingState("Book has already been returned", Rule.RENTAL_NOT_ACTIVE),
                    rental_id=rental_id
                )

            rental.close(self._clock())
            self.rentals.save(rental)

            book = self.books.find_by_id(rental.book_id)
            book_restored = book is not None
            if book is not None:
                book.status = BookStatus.AVAILABLE
                self.books.save(book)

        self.library_logger.log_book_returned(rental.id, user_id, rental.book_id, book_restored)
        return rental

    def find_rental(self, rental_id: str) -> Optional[Rental]:
        return self.rentals.find_by_id(rental_id)

    def get_user_active_rentals(self, user_id: str) -> List[Rental]:
        return self.rentals.find_active_by_user_id(user_id)

    def get_user_rental_history(self, user_id: str) -> List[Rental]:
        """Every rental of a user, active and closed, in stored order."""
        return self.rentals.find_by_user_id(user_id)

    def get_all_active_rentals(self) -> List[Rental]:
        return self.rentals.find_active()

    def count_active_rentals(self, user_id: str) -> int:
        return len(self.get_user_active_rentals(user_id))
