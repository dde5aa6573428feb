"""
Test cases for the reconciler and its background scheduler.
"""

from unittest.mock import Mock, patch

import pytest

from library.models import DiscrepancyKind, ReconciliationReport
from library.reconciliation_scheduler import JOB_ID, ReconciliationScheduler
from storage.models import Book, BookStatus, Rental, RentalStatus
from utilities.errors import StorageFailure


@pytest.fixture
def seeded(library):
    """Books and rentals with one discrepancy of every kind."""
    library.catalog.save(Book(id="ok-rented", title="Fine", author="A", status=BookStatus.RENTED))
    library.catalog.save(Book(id="ok-free", title="Free", author="A"))
    library.catalog.save(Book(id="orphan", title="Orphan", author="A", status=BookStatus.RENTED))
    library.catalog.save(Book(id="unmarked", title="Unmarked", author="A"))
    library.catalog.save(Book(id="double", title="Double", author="A", status=BookStatus.RENTED))

    library.ledger.save(Rental(id="r1", user_id="u1", book_id="ok-rented"))
    library.ledger.save(Rental(id="r2", user_id="u1", book_id="unmarked"))
    library.ledger.save(Rental(id="r3", user_id="u1", book_id="double"))
    library.ledger.save(Rental(id="r4", user_id="u2", book_id="double"))
    library.ledger.save(Rental(id="r5", user_id="u2", book_id="deleted-book"))
    library.ledger.save(Rental(id="r6", user_id="u2", book_id="orphan", status=RentalStatus.CLOSED))
    return library


class TestReconciler:
    """Test cases for finding and repairing discrepancies."""

    def test_consistent_library(self, library, member, dune):
        library.rentals.rent_book(member.id, dune.id)

        report = library.reconciler.reconcile()

        assert report.is_consistent
        assert report.books_checked == 1
        assert report.rentals_checked == 1
        assert report.success

    def test_finds_every_kind(self, seeded):
        report = seeded.reconciler.reconcile(repair=False)

        assert [d.book_id for d in report.of_kind(DiscrepancyKind.ORPHANED_RENTED_BOOK)] == ["orphan"]
        assert [d.book_id for d in report.of_kind(DiscrepancyKind.UNMARKED_RENTED_BOOK)] == ["unmarked"]
        duplicate = report.of_kind(DiscrepancyKind.DUPLICATE_ACTIVE_RENTAL)
        assert [d.book_id for d in duplicate] == ["double"]
        assert duplicate[0].rental_ids == ["r3", "r4"]
        dangling = report.of_kind(DiscrepancyKind.DANGLING_RENTAL)
        assert [d.book_id for d in dangling] == ["deleted-book"]
        assert len(report.discrepancies) == 4

    def test_report_only_changes_nothing(self, seeded):
        report = seeded.reconciler.reconcile(repair=False)

        assert report.repaired_count == 0
        assert seeded.catalog.find_by_id("orphan").status == BookStatus.RENTED
        assert seeded.catalog.find_by_id("unmarked").status == BookStatus.AVAILABLE

    def test_repairs_status_drift_only(self, seeded):
        report = seeded.reconciler.reconcile()

        assert report.repaired_count == 2
        assert seeded.catalog.find_by_id("orphan").status == BookStatus.AVAILABLE
        assert seeded.catalog.find_by_id("unmarked").status == BookStatus.RENTED
        assert not report.of_kind(DiscrepancyKind.DUPLICATE_ACTIVE_RENTAL)[0].repaired
        assert not report.of_kind(DiscrepancyKind.DANGLING_RENTAL)[0].repaired

        again = seeded.reconciler.reconcile()
        assert {d.kind for d in again.discrepancies} == {
            DiscrepancyKind.DUPLICATE_ACTIVE_RENTAL, DiscrepancyKind.DANGLING_RENTAL
        }

    def test_failed_repair_reported(self, seeded):
        with patch.object(seeded.catalog, "save", side_effect=StorageFailure("disk full")):
            report = seeded.reconciler.reconcile()

        assert not report.success
        assert len(report.errors) == 2
        assert report.repaired_count == 0


class TestReconciliationScheduler:
    """Test cases for scheduling reconciliation passes."""

    def test_run_now_keeps_last_report(self, library):
        scheduler = ReconciliationScheduler(library.reconciler)

        report = scheduler.run_now()

        assert scheduler.last_report is report
        assert scheduler.status()["last_run"]["run_id"] == report.run_id
        assert scheduler.status()["running"] is False

    def test_start_runs_startup_pass_and_schedules_job(self, library):
        scheduler = ReconciliationScheduler(library.reconciler, interval_minutes=15, run_on_startup=True)

        try:
            scheduler.start()

            assert scheduler.running
            assert scheduler.last_report is not None
            assert scheduler.scheduler.get_job(JOB_ID) is not None
            status = scheduler.status()
            assert status["interval_minutes"] == 15
            assert status["next_run_time"] is not None
        finally:
            scheduler.stop()

        assert not scheduler.running

    def test_start_without_startup_pass(self, library):
        reconciler = Mock()
        scheduler = ReconciliationScheduler(reconciler, run_on_startup=False)

        try:
            scheduler.start()
            reconciler.reconcile.assert_not_called()
        finally:
            scheduler.stop()

    def test_job_summary(self, library):
        scheduler = ReconciliationScheduler(library.reconciler)

        summary = scheduler._reconciliation_job()

        assert set(summary) == {"duration", "discrepancies", "repaired"}
        assert isinstance(scheduler.last_report, ReconciliationReport)

    def test_library_start_and_stop(self, library):
        library.start()
        assert library.scheduler.running
        library.stop()
        assert not library.scheduler.running
