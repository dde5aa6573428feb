"""
Pytest configuration and shared fixtures.
"""

import logging
from datetime import datetime, timedelta, timezone

import pytest
import structlog

from library.factory import create_library
from storage.cache import RecordCache
from storage.entity_store import EntityStore
from storage.models import Book, Rental, User
from storage.repositories import AccountRepository, CatalogRepository, RentalLedger
from utilities.config import ConcurrencyMode, LibraryConfig

# Cheap hash so account tests do not pay for scrypt on every register
FAST_HASH_METHOD = "pbkdf2:sha256:1000"

VALID_PASSWORD = "secret123"


class FakeClock:
    """Deterministic clock that advances one minute per call."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        current = self.now
        self.now = self.now + timedelta(minutes=1)
        return current


class ManualTimer:
    """Monotonic time source that only moves when told to."""

    def __init__(self):
        self.value = 1000.0

    def __call__(self):
        return self.value

    def advance(self, seconds):
        self.value += seconds


@pytest.fixture
def data_dir(tmp_path):
    """Per-test data directory."""
    return tmp_path / "data"


def make_config(data_dir, **overrides):
    settings = dict(
        data_dir=str(data_dir),
        cache_enabled=True,
        cache_ttl_seconds=300,
        max_active_rentals=5,
        password_hash_method=FAST_HASH_METHOD,
        concurrency_mode=ConcurrencyMode.LOCKED,
        write_retry_delay=0,
        reconcile_on_startup=True,
        reconciliation_interval_minutes=60,
    )
    settings.update(overrides)
    return LibraryConfig(_env_file=None, **settings)


@pytest.fixture
def library_config(data_dir):
    """Configuration pointing at the per-test data directory."""
    return make_config(data_dir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def library(library_config, clock):
    """Fully wired library over empty documents."""
    services = create_library(library_config, clock=clock)
    yield services
    services.stop()


@pytest.fixture
def record_cache():
    return RecordCache(ttl_seconds=300)


@pytest.fixture
def books_store(data_dir):
    return EntityStore(data_dir / "books.json", Book, retry_delay=0)


@pytest.fixture
def users_store(data_dir):
    return EntityStore(data_dir / "users.json", User, retry_delay=0)


@pytest.fixture
def rentals_store(data_dir):
    return EntityStore(data_dir / "rentals.json", Rental, retry_delay=0)


@pytest.fixture
def catalog(books_store, record_cache):
    return CatalogRepository(books_store, record_cache)


@pytest.fixture
def accounts(users_store, record_cache):
    return AccountRepository(users_store, record_cache)


@pytest.fixture
def ledger(rentals_store, record_cache):
    return RentalLedger(rentals_store, record_cache)


@pytest.fixture
def sample_book_data():
    """Sample book records for testing."""
    return [
        Book(id="b1", title="Dune", author="Frank Herbert", genre="Sci-Fi"),
        Book(id="b2", title="Emma", author="Jane Austen", genre="Classic"),
        Book(id="b3", title="Neuromancer", author="William Gibson"),
    ]


@pytest.fixture
def member(library):
    """A registered USER account."""
    return library.account_service.register("bob", "bob@example.com", VALID_PASSWORD)


@pytest.fixture
def dune(library):
    """An AVAILABLE catalog entry."""
    return library.inventory.add_book("Dune", "Frank Herbert", "Sci-Fi")


@pytest.fixture
def config_factory(data_dir):
    """Build a configuration over the per-test data directory with overrides."""
    def factory(**overrides):
        return make_config(data_dir, **overrides)
    return factory


@pytest.fixture
def timer():
    return ManualTimer()


@pytest.fixture
def restore_logging():
    """Undo global logging configuration made by a test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
    structlog.reset_defaults()
