"""
Wiring of stores, cache, repositories and services from configuration.
"""

import contextlib
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, ContextManager, Optional

from .account_service import AccountService
from .inventory_service import InventoryService
from .reconciliation import Reconciler
from .reconciliation_scheduler import ReconciliationScheduler
from .rental_coordinator import RentalCoordinator
from storage.cache import CollectionCache, NullCache, RecordCache
from storage.entity_store import EntityStore
from storage.models import Book, Rental, User, utc_now
from storage.repositories import AccountRepository, CatalogRepository, RentalLedger
from utilities.config import ConcurrencyMode, LibraryConfig, config as default_config
from utilities.logger import get_logger, setup_logging

logger = get_logger(__name__)


@dataclass
class LibraryServices:
    """Every component of one library instance, sharing one cache and one coordination lock."""
    config: LibraryConfig
    cache: CollectionCache
    catalog: CatalogRepository
    accounts: AccountRepository
    ledger: RentalLedger
    inventory: InventoryService
    rentals: RentalCoordinator
    account_service: AccountService
    reconciler: Reconciler
    scheduler: ReconciliationScheduler

    def start(self) -> None:
        """Start background reconciliation (with its startup pass, if enabled)."""
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()


def create_coordination_lock(mode: ConcurrencyMode) -> ContextManager:
    """One lock for all book/rental mutations; none at all in unsafe mode."""
    if ConcurrencyMode(mode) == ConcurrencyMode.UNSAFE:
        return contextlib.nullcontext()
    return threading.RLock()


def create_cache(settings: LibraryConfig) -> CollectionCache:
    if settings.cache_enabled:
        return RecordCache(ttl_seconds=settings.cache_ttl_seconds)
    return NullCache()


def create_library(
    settings: Optional[LibraryConfig] = None,
    cache: Optional[CollectionCache] = None,
    clock: Callable[[], datetime] = utc_now,
) -> LibraryServices:
    """
    Build a fully wired library.

    Args:
        settings: Configuration, the global config if not given
        cache: Cache to share between repositories, built from settings if not given
        clock: Time source for rental dates

    Returns:
        LibraryServices container
    """
    settings = settings or default_config
    cache = cache if cache is not None else create_cache(settings)
    mode = settings.concurrency_mode

    def repository(repository_class, path, model):
        store = EntityStore(path, model, retry_delay=settings.write_retry_delay)
        return repository_class(store, cache, mode=mode, max_write_attempts=settings.max_write_attempts)

    catalog = repository(CatalogRepository, settings.get_books_path(), Book)
    accounts = repository(AccountRepository, settings.get_users_path(), User)
    ledger = repository(RentalLedger, settings.get_rentals_path(), Rental)

    coordination_lock = create_coordination_lock(mode)

    inventory = InventoryService(catalog, coordination_lock=coordination_lock)
    rentals = RentalCoordinator(
        catalog,
        ledger,
        accounts,
        coordination_lock=coordination_lock,
        max_active_rentals=settings.max_active_rentals,
        clock=clock,
    )
    account_service = AccountService(
        accounts,
        ledger,
        coordination_lock=coordination_lock,
        hash_method=settings.password_hash_method,
    )
    reconciler = Reconciler(catalog, ledger, coordination_lock=coordination_lock)
    scheduler = ReconciliationScheduler(
        reconciler,
        interval_minutes=settings.reconciliation_interval_minutes,
        run_on_startup=settings.reconcile_on_startup,
    )

    logger.info(
        "Library initialized",
        data_dir=settings.data_dir,
        concurrency_mode=ConcurrencyMode(mode).value,
        cache_enabled=not isinstance(cache, NullCache),
        max_active_rentals=settings.max_active_rentals
    )

    return LibraryServices(
        config=settings,
        cache=cache,
        catalog=catalog,
        accounts=accounts,
        ledger=ledger,
        inventory=inventory,
        rentals=rentals,
        account_service=account_service,
        reconciler=reconciler,
        scheduler=scheduler,
    )


def bootstrap(settings: Optional[LibraryConfig] = None) -> LibraryServices:
    """
    Configure logging, build the library and start background reconciliation.

    Args:
        settings: Configuration, the global config if not given

    Returns:
        Started LibraryServices; call stop() on shutdown
    """
    settings = settings or default_config
    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        log_file=settings.get_log_file_path(),
        debug=settings.debug
    )

    services = create_library(settings)
    services.start()
    logger.info("Library started", concurrency_mode=ConcurrencyMode(settings.concurrency_mode).value)
    return services
