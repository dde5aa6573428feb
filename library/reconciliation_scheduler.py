"""
Background scheduling of reconciliation passes.

This module provides:
- Interval scheduling with APScheduler
- An optional pass at startup
- Job outcome logging through scheduler event listeners
"""

from typing import Any, Dict, Optional

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .models import ReconciliationReport
from .reconciliation import Reconciler

logger = structlog.get_logger(__name__)

JOB_ID = "ledger_reconciliation"


class ReconciliationScheduler:
    """Runs the reconciler periodically on a background thread."""

    def __init__(
        self,
        reconciler: Reconciler,
        interval_minutes: int = 60,
        run_on_startup: bool = True,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        """
        Initialize the reconciliation scheduler.

        Args:
            reconciler: Reconciler to run
            interval_minutes: Minutes between passes
            run_on_startup: Run one pass synchronously in start()
            scheduler: APScheduler instance, created if not given
        """
        self.reconciler = reconciler
        self.interval_minutes = interval_minutes
        self.run_on_startup = run_on_startup
        self.scheduler = scheduler or BackgroundScheduler(timezone="UTC")
        self.last_report: Optional[ReconciliationReport] = None
        self.logger = logger.bind(component="reconciliation_scheduler")

        self._setup_scheduler_listeners()

    def _setup_scheduler_listeners(self) -> None:
        """Setup scheduler event listeners."""
        def job_executed_listener(event):
            retval = event.retval or {}
            self.logger.info(
                "Job executed successfully",
                job_id=event.job_id,
                duration=retval.get('duration', 0),
                discrepancies=retval.get('discrepancies', 0)
            )

        def job_error_listener(event):
            self.logger.error(
                "Job execution failed",
                job_id=event.job_id,
                error=str(event.exception)
            )

        self.scheduler.add_listener(job_executed_listener, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def start(self) -> None:
        """Run the startup pass if enabled, then schedule the interval job."""
        self.logger.info(
            "Starting reconciliation scheduler",
            interval_minutes=self.interval_minutes,
            run_on_startup=self.run_on_startup
        )

        if self.run_on_startup:
            self.run_now()

        self.scheduler.add_job(
            func=self._reconciliation_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name='Ledger Reconciliation',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.start()

        self.logger.info("Reconciliation scheduler started")

    def stop(self) -> None:
        """Stop the scheduler, waiting for a running pass to finish."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)
        self.logger.info("Reconciliation scheduler stopped")

    def run_now(self, repair: bool = True) -> ReconciliationReport:
        """Run one pass synchronously and remember its report."""
        report = self.reconciler.reconcile(repair=repair)
        self.last_report = report
        return report

    def _reconciliation_job(self) -> Dict[str, Any]:
        report = self.run_now()
        return {
            'duration': report.duration_seconds,
            'discrepancies': len(report.discrepancies),
            'repaired': report.repaired_count,
        }

    def status(self) -> Dict[str, Any]:
        """Scheduler state and a summary of the last pass."""
        job = self.scheduler.get_job(JOB_ID) if self.scheduler.running else None
        next_run = getattr(job, 'next_run_time', None) if job else None

        last_run = None
        if self.last_report is not None:
            last_run = {
                'run_id': self.last_report.run_id,
                'run_timestamp': self.last_report.run_timestamp.isoformat(),
                'discrepancies': len(self.last_report.discrepancies),
                'repaired': self.last_report.repaired_count,
                'success': self.last_report.success,
            }

        return {
            'running': self.scheduler.running,
            'interval_minutes': self.interval_minutes,
            'next_run_time': next_run.isoformat() if next_run else None,
            'last_run': last_run,
        }
