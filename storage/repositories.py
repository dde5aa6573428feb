"""
Repository facades over one EntityStore and the shared record cache.

Reads go through the cache; every write is a whole-collection
read-modify-write cycle that evicts the cache key before returning.
How that cycle is guarded depends on the configured ConcurrencyMode:

- LOCKED: the document mutex is held for the whole cycle.
- OPTIMISTIC: the write carries the version it read and is retried when stale.
- UNSAFE: no guard; concurrent cycles race and the last write wins.
"""

from typing import Callable, Generic, List, Optional, TypeVar

import structlog

from .cache import CollectionCache
from .entity_store import EntityStore
from .models import Book, BookStatus, Record, Rental, RentalStatus, User
from utilities.config import ConcurrencyMode
from utilities.errors import WriteConflict

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=Record)


def normalize(value: Optional[str]) -> str:
    """Trim and lower-case a string for comparisons."""
    return (value or "").strip().lower()


class Repository(Generic[T]):
    """Typed find/save/delete over one document."""

    def __init__(
        self,
        store: EntityStore[T],
        cache: CollectionCache,
        mode: ConcurrencyMode = ConcurrencyMode.LOCKED,
        max_write_attempts: int = 3,
    ):
        """
        Initialize the repository.

        Args:
            store: Store for the collection's document
            cache: Cache shared with the other repositories
            mode: How write cycles are guarded
            max_write_attempts: Attempts per cycle in optimistic mode
        """
        self.store = store
        self.cache = cache
        self.mode = ConcurrencyMode(mode)
        self.max_write_attempts = max_write_attempts
        self.logger = logger.bind(component=type(self).__name__, document=store.path.name)

    @property
    def key(self) -> str:
        return self.store.key

    def find_all(self) -> List[T]:
        """Cached collection, or a fresh decode of the document."""
        cached = self.cache.get(self.key)
        if cached is not None:
            return cached

        generation = self.cache.generation(self.key)
        items = self.store.read_all()
        self.cache.put(self.key, items, generation=generation)
        return items

    def find_by_id(self, record_id: str) -> Optional[T]:
        return next((item for item in self.find_all() if item.id == record_id), None)

    def count(self) -> int:
        return len(self.find_all())

    def save(self, item: T) -> T:
        """Insert or replace a record; the saved record moves to the end of the collection."""
        def apply(items: List[T]) -> List[T]:
            kept = [existing for existing in items if existing.id != item.id]
            kept.append(item.model_copy(deep=True))
            return kept

        self._write_cycle(apply)
        return item

    def delete(self, record_id: str) -> bool:
        """Remove a record by id. Returns True if one was removed."""
        removed = False

        def apply(items: List[T]) -> List[T]:
            nonlocal removed
            kept = [existing for existing in items if existing.id != record_id]
            removed = len(kept) != len(items)
            return kept

        self._write_cycle(apply)
        return removed

    def _write_cycle(self, apply: Callable[[List[T]], List[T]]) -> None:
        try:
            if self.mode == ConcurrencyMode.UNSAFE:
                self.store.write_all(apply(self.find_all()))
            elif self.mode == ConcurrencyMode.OPTIMISTIC:
                self._optimistic_cycle(apply)
            else:
                with self.store.guard.lock:
                    items, _ = self.store.read_versioned()
                    self.store.write_all(apply(items))
        finally:
            self.cache.evict(self.key)

    def _optimistic_cycle(self, apply: Callable[[List[T]], List[T]]) -> None:
        for attempt in range(1, self.max_write_attempts + 1):
            items, version = self.store.read_versioned()
            try:
                self.store.write_all(apply(items), expected_version=version)
                return
            except WriteConflict:
                if attempt >= self.max_write_attempts:
                    self.logger.warning("Giving up on stale write", attempts=attempt)
                    raise
                self.logger.info("Retrying stale write", attempt=attempt)


class CatalogRepository(Repository[Book]):
    """Books document."""

    def find_by_title_containing(self, fragment: str) -> List[Book]:
        needle = normalize(fragment)
        return [book for book in self.find_all() if needle in normalize(book.title)]

    def find_by_author_containing(self, fragment: str) -> List[Book]:
        needle = normalize(fragment)
        return [book for book in self.find_all() if needle in normalize(book.author)]

    def find_by_title_and_author(self, title: str, author: str) -> Optional[Book]:
        wanted = (normalize(title), normalize(author))
        return next(
            (book for book in self.find_all() if (normalize(book.title), normalize(book.author)) == wanted),
            None
        )

    def exists_by_title_and_author(self, title: str, author: str) -> bool:
        return self.find_by_title_and_author(title, author) is not None

    def find_by_status(self, status: BookStatus) -> List[Book]:
        return [book for book in self.find_all() if book.status == status]


class AccountRepository(Repository[User]):
    """Users document."""

    def find_by_username(self, username: str) -> Optional[User]:
        wanted = normalize(username)
        return next((user for user in self.find_all() if normalize(user.username) == wanted), None)

    def find_by_email(self, email: str) -> Optional[User]:
        wanted = normalize(email)
        return next((user for user in self.find_all() if normalize(user.email) == wanted), None)

    def exists_by_username(self, username: str) -> bool:
        return self.find_by_username(username) is not None

    def exists_by_email(self, email: str) -> bool:
        return self.find_by_email(email) is not None


class RentalLedger(Repository[Rental]):
    """Rentals document. Rentals are closed, never deleted, by the services."""

    def find_by_user_id(self, user_id: str) -> List[Rental]:
        return [rental for rental in self.find_all() if rental.user_id == user_id]

    def find_by_book_id(self, book_id: str) -> List[Rental]:
        return [rental for rental in self.find_all() if rental.book_id == book_id]

    def find_active(self) -> List[Rental]:
        return [rental for rental in self.find_all() if rental.status == RentalStatus.ACTIVE]

    def find_active_by_user_id(self, user_id: str) -> List[Rental]:
        return [rental for rental in self.find_by_user_id(user_id) if rental.is_active]

    def find_active_by_book_id(self, book_id: str) -> List[Rental]:
        return [rental for rental in self.find_by_book_id(book_id) if rental.is_active]
