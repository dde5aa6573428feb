"""
Configuration management using environment variables.
Handles document locations, cache, rental and concurrency settings with validation and defaults.
"""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class ConcurrencyMode(str, Enum):
    """How repository read-modify-write cycles are guarded."""
    LOCKED = "locked"
    OPTIMISTIC = "optimistic"
    UNSAFE = "unsafe"


class LibraryConfig(BaseSettings):
    """
    Configuration class for the library core.
    Uses pydantic BaseSettings for environment variable management.
    """

    # Document locations
    data_dir: str = Field(default="data", description="Directory holding the JSON documents")
    books_file: str = Field(default="books.json")
    users_file: str = Field(default="users.json")
    rentals_file: str = Field(default="rentals.json")

    # Cache Configuration
    cache_enabled: bool = Field(default=True)
    cache_ttl_seconds: int = Field(default=300)

    # Rental rules
    max_active_rentals: int = Field(default=5)

    # Accounts
    password_hash_method: str = Field(default="scrypt", description="werkzeug hash method")

    # Storage Configuration
    concurrency_mode: ConcurrencyMode = Field(default=ConcurrencyMode.LOCKED)
    max_write_attempts: int = Field(default=3)
    write_retry_delay: float = Field(default=0.05)

    # Reconciliation
    reconcile_on_startup: bool = Field(default=True)
    reconciliation_interval_minutes: int = Field(default=60)

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")
    log_file: Optional[str] = Field(default=None)

    # Development/Testing
    debug: bool = Field(default=False)

    @field_validator('cache_ttl_seconds')
    @classmethod
    def validate_cache_ttl(cls, v):
        """Ensure cache TTL is reasonable."""
        if v < 1 or v > 86400:
            raise ValueError('cache_ttl_seconds must be between 1 and 86400')
        return v

    @field_validator('max_active_rentals')
    @classmethod
    def validate_max_active_rentals(cls, v):
        """Ensure the rental cap allows at least one rental."""
        if v < 1:
            raise ValueError('max_active_rentals must be at least 1')
        return v

    @field_validator('max_write_attempts')
    @classmethod
    def validate_write_attempts(cls, v):
        """Ensure write attempts is reasonable."""
        if v < 1 or v > 10:
            raise ValueError('max_write_attempts must be between 1 and 10')
        return v

    @field_validator('write_retry_delay')
    @classmethod
    def validate_retry_delay(cls, v):
        """Ensure retry delay is reasonable."""
        if v < 0 or v > 5:
            raise ValueError('write_retry_delay must be between 0 and 5 seconds')
        return v

    @field_validator('reconciliation_interval_minutes')
    @classmethod
    def validate_reconciliation_interval(cls, v):
        """Ensure the reconciliation interval is reasonable."""
        if v < 1 or v > 1440:
            raise ValueError('reconciliation_interval_minutes must be between 1 and 1440')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @field_validator('log_format')
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "LIBRARY_",
        "case_sensitive": False,
        "extra": "ignore",  # Ignore extra fields from .env
    }

    def _document_path(self, file_name: str) -> Path:
        path = Path(file_name)
        if path.is_absolute():
            return path
        return Path(self.data_dir) / path

    def get_books_path(self) -> Path:
        """Get the books document path."""
        return self._document_path(self.books_file)

    def get_users_path(self) -> Path:
        """Get the users document path."""
        return self._document_path(self.users_file)

    def get_rentals_path(self) -> Path:
        """Get the rentals document path."""
        return self._document_path(self.rentals_file)

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None


# Global configuration instance
config = LibraryConfig()
