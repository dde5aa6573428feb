"""
Catalog management: add, update, delete, search, paging, import and export.
"""

import contextlib
import json
from typing import Any, ContextManager, Iterable, List, Mapping, Optional

import structlog

from .models import DEFAULT_PAGE_SIZE, ImportSummary, Page
from .validation import ensure_valid, validate_book, validate_pagination
from storage.models import Book, BookStatus, generate_id
from storage.repositories import CatalogRepository
from utilities.errors import ConflictingState, DuplicateCatalogEntry, NotFound, Rule, ValidationFailed

logger = structlog.get_logger(__name__)


def _clean(value: Optional[str]) -> Optional[str]:
    return value.strip() if value is not None else None


class InventoryService:
    """
    Book catalog operations.

    Mutations that depend on a book's rental status run under the
    coordination lock shared with the rental coordinator.
    """

    def __init__(self, catalog: CatalogRepository, coordination_lock: Optional[ContextManager] = None):
        """
        Initialize the inventory service.

        Args:
            catalog: Books repository
            coordination_lock: Lock shared with the rental coordinator
        """
        self.catalog = catalog
        self._coordination = coordination_lock or contextlib.nullcontext()
        self.logger = logger.bind(component="inventory_service")

    def add_book(self, title: str, author: str, genre: Optional[str] = None) -> Book:
        """
        Add a new AVAILABLE book to the catalog.

        Raises:
            ValidationFailed: Title, author or genre broke a rule
            DuplicateCatalogEntry: A book with the same title and author exists
        """
        ensure_valid(validate_book(title, author, genre))

        with self._coordination:
            if self.catalog.exists_by_title_and_author(title, author):
                raise DuplicateCatalogEntry(f"Book '{title.strip()}' by {author.strip()} already exists")

            book = Book(
                id=generate_id(),
                title=title.strip(),
                author=author.strip(),
                genre=_clean(genre),
                status=BookStatus.AVAILABLE,
            )
            self.catalog.save(book)

        self.logger.info("Book added", book_id=book.id, title=book.title, author=book.author)
        return book

    def update_book(self, book_id: str, title: str, author: str, genre: Optional[str] = None) -> Book:
        """Rewrite a book's descriptive fields; id and status are kept."""
        ensure_valid(validate_book(title, author, genre))

        with self._coordination:
            book = self.get_book(book_id)

            clash = self.catalog.find_by_title_and_author(title, author)
            if clash is not None and clash.id != book.id:
                raise DuplicateCatalogEntry(f"Book '{title.strip()}' by {author.strip()} already exists")

            book.title = title.strip()
            book.author = author.strip()
            book.genre = _clean(genre)
            self.catalog.save(book)

        self.logger.info("Book updated", book_id=book.id)
        return book

    def delete_book(self, book_id: str) -> None:
        """
        Remove a book from the catalog.

        Raises:
            NotFound: No such book
            ConflictingState: The book is currently rented
        """
        with self._coordination:
            book = self.get_book(book_id)
            if book.status == BookStatus.RENTED:
                raise ConflictingState(
                    "Cannot delete rented book. Book must be returned first.", Rule.BOOK_RENTED
                )
            self.catalog.delete(book_id)

        self.logger.info("Book deleted", book_id=book_id)

    def find_book(self, book_id: str) -> Optional[Book]:
        return self.catalog.find_by_id(book_id)

    def get_book(self, book_id: str) -> Book:
        book = self.catalog.find_by_id(book_id)
        if book is None:
            raise NotFound(f"Book not found: {book_id}", Rule.BOOK_NOT_FOUND)
        return book

    def get_all_books(self) -> List[Book]:
        return self.catalog.find_all()

    def get_available_books(self) -> List[Book]:
        return self.catalog.find_by_status(BookStatus.AVAILABLE)

    def search_by_title(self, fragment: str) -> List[Book]:
        return self.catalog.find_by_title_containing(fragment)

    def search_by_author(self, fragment: str) -> List[Book]:
        return self.catalog.find_by_author_containing(fragment)

    def browse_catalog(
        self,
        title: Optional[str] = None,
        author: Optional[str] = None,
        page: int = 0,
        size: int = DEFAULT_PAGE_SIZE,
    ) -> Page[Book]:
        """
        Search and page through the catalog.

        A title filter takes precedence over an author filter. Results are
        ordered by id so pages are stable between calls.
        """
        ensure_valid(validate_pagination(page, size))

        if title and title.strip():
            books = self.search_by_title(title)
        elif author and author.strip():
            books = self.search_by_author(author)
        else:
            books = self.get_all_books()

        books.sort(key=lambda book: book.id)
        return Page[Book].slice(books, page, size)

    def export_catalog(self) -> str:
        """Full catalog as JSON text in the stored field layout."""
        books = self.get_all_books()
        self.logger.info("Catalog exported", count=len(books))
        return json.dumps([book.to_document() for book in books], ensure_ascii=False, indent=2)

    def import_catalog(self, records: Iterable[Mapping[str, Any]]) -> ImportSummary:
        """
        Append books from decoded import rows.

        Rows that duplicate an existing book are skipped; rows that fail
        validation are reported by 1-based row number. Nothing existing is
        modified.
        """
        summary = ImportSummary()

        for row_number, row in enumerate(records, start=1):
            if not isinstance(row, Mapping):
                summary.errors.append(f"Row {row_number}: Not a book object")
                continue

            title = row.get("title")
            author = row.get("author")
            genre = row.get("genre")

            if not isinstance(title, str) or not title.strip():
                summary.errors.append(f"Row {row_number}: Missing title field")
                continue
            if not isinstance(author, str) or not author.strip():
                summary.errors.append(f"Row {row_number}: Missing author field")
                continue
            if genre is not None and not isinstance(genre, str):
                genre = str(genre)

            try:
                self.add_book(title, author, genre)
                summary.added += 1
            except DuplicateCatalogEntry:
                summary.skipped += 1
            except ValidationFailed as e:
                summary.errors.append(f"Row {row_number}: {e.message}")

        self.logger.info(
            "Catalog import completed",
            added=summary.added,
            skipped=summary.skipped,
            errors=len(summary.errors)
        )
        return summary
