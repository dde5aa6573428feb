"""
Logging system using structlog.
Provides structured logging with different output formats and levels.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union
import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    log_file: Optional[Union[str, Path]] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging with configurable output formats.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path
        debug: Enable debug mode for call-site information
    """

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(logging.Formatter('%(message)s'))
        logging.getLogger().addHandler(file_handler)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class LibraryLogger:
    """
    Specialized logger for rental and storage events with context management.
    """

    def __init__(self, name: str = "library"):
        self.logger = structlog.get_logger(name)
        self.context = {}

    def bind_context(self, **kwargs) -> 'LibraryLogger':
        """
        Bind context variables to the logger.

        Args:
            **kwargs: Context variables to bind

        Returns:
            Self for method chaining
        """
        self.context.update(kwargs)
        return self

    def clear_context(self) -> 'LibraryLogger':
        """Clear all context variables."""
        self.context.clear()
        return self

    def log_book_rented(self, rental_id: str, user_id: str, book_id: str) -> None:
        """Log a completed rental."""
        self.logger.info(
            "Book rented",
            rental_id=rental_id,
            user_id=user_id,
            book_id=book_id,
            **self.context
        )

    def log_book_returned(self, rental_id: str, user_id: str, book_id: str, book_restored: bool) -> None:
        """Log a completed return."""
        level = "info" if book_restored else "warning"
        getattr(self.logger, level)(
            "Book returned",
            rental_id=rental_id,
            user_id=user_id,
            book_id=book_id,
            book_restored=book_restored,
            **self.context
        )

    def log_rule_refused(self, operation: str, rule: str, **details) -> None:
        """Log a business rule refusal."""
        self.logger.info(
            "Operation refused",
            operation=operation,
            rule=rule,
            **details,
            **self.context
        )

    def log_compensation(self, book_id: str, success: bool, error: Optional[str] = None) -> None:
        """Log the outcome of undoing a half-finished rental."""
        if success:
            self.logger.warning(
                "Rental write failed, book status restored",
                book_id=book_id,
                error=error,
                **self.context
            )
        else:
            self.logger.error(
                "Rental write failed and book status could not be restored; "
                "book left RENTED without an active rental until reconciliation",
                book_id=book_id,
                error=error,
                **self.context
            )

    def log_write_retry(self, path: str, attempt: int, delay: float, error: str) -> None:
        """Log a document replace retry."""
        self.logger.warning(
            "Retrying document replace",
            path=path,
            attempt=attempt,
            delay_seconds=delay,
            error=error,
            **self.context
        )

    def log_discrepancy(self, kind: str, book_id: Optional[str], repaired: bool, **details) -> None:
        """Log a detected book/rental inconsistency."""
        level = "warning" if repaired else "error"
        getattr(self.logger, level)(
            "Ledger discrepancy",
            kind=kind,
            book_id=book_id,
            repaired=repaired,
            **details,
            **self.context
        )
