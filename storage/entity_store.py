"""
JSON document storage for one record collection per file.
Handles document creation, fail-soft decoding and atomic whole-document replace.
"""

import json
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

import structlog
from pydantic import ValidationError

from .models import Record
from utilities.errors import Rule, StorageFailure, WriteConflict
from utilities.logger import LibraryLogger

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=Record)


class DocumentGuard:
    """Mutex and write counter shared by every store opened on the same file."""

    def __init__(self):
        self.lock = threading.RLock()
        self.version = 0


_guards: Dict[str, DocumentGuard] = {}
_guards_lock = threading.Lock()


def document_guard(path: Path) -> DocumentGuard:
    """Return the process-wide guard for a document path."""
    key = str(Path(path).resolve())
    with _guards_lock:
        guard = _guards.get(key)
        if guard is None:
            guard = DocumentGuard()
            _guards[key] = guard
        return guard


class EntityStore(Generic[T]):
    """
    Persists one ordered collection of records as a single JSON array.
    Reads never raise; writes replace the whole document or raise StorageFailure.
    """

    def __init__(
        self,
        path: Path,
        model: Type[T],
        retry_delay: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the store and make sure the document exists.

        Args:
            path: Location of the JSON document
            model: Record class the entries decode to
            retry_delay: Seconds to wait before the single replace retry
            sleep: Sleep function, injectable for tests
        """
        self.path = Path(path)
        self.model = model
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.key = str(self.path.resolve())
        self.guard = document_guard(self.path)
        self.library_logger = LibraryLogger("entity_store").bind_context(document=str(self.path))
        self._ensure_document()

    def _ensure_document(self) -> None:
        """Create the parent directory and an empty collection on first use."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.guard.lock:
                if not self.path.exists():
                    self._replace([])
                    logger.info("Created empty document", path=str(self.path))
        except (OSError, StorageFailure) as e:
            logger.error("Failed to create document", path=str(self.path), error=str(e))
            raise StorageFailure(
                f"Failed to create document: {self.path}", Rule.DOCUMENT_INIT_FAILED
            ) from e

    def read_all(self) -> List[T]:
        """
        Decode the full collection in stored order.

        Missing, empty or malformed documents decode to an empty list.
        Entries that do not validate are skipped.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning("Document missing, reading as empty", path=str(self.path))
            return []
        except OSError as e:
            logger.warning("Failed to read document, reading as empty", path=str(self.path), error=str(e))
            return []
        except UnicodeDecodeError as e:
            logger.warning("Document is not valid UTF-8, reading as empty", path=str(self.path), error=str(e))
            return []

        if not raw.strip():
            logger.warning("Document empty, reading as empty", path=str(self.path))
            return []

        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, RecursionError) as e:
            logger.warning("Malformed document, reading as empty", path=str(self.path), error=str(e))
            return []

        if not isinstance(data, list):
            logger.warning(
                "Document is not a collection, reading as empty",
                path=str(self.path),
                found=type(data).__name__
            )
            return []

        items: List[T] = []
        for index, entry in enumerate(data):
            try:
                items.append(self.model.model_validate(entry))
            except ValidationError as e:
                logger.warning(
                    "Skipping invalid record",
                    path=str(self.path),
                    index=index,
                    error=str(e)
                )
        return items

    def read_versioned(self) -> Tuple[List[T], int]:
        """Read the collection together with the version it was read at."""
        with self.guard.lock:
            return self.read_all(), self.guard.version

    @property
    def version(self) -> int:
        return self.guard.version

    def write_all(self, items: Sequence[T], expected_version: Optional[int] = None) -> int:
        """
        Replace the document with the given collection.

        Args:
            items: Complete collection to persist
            expected_version: If given, the write is refused unless the
                document is still at this version

        Returns:
            The document version after the write

        Raises:
            WriteConflict: The document changed since expected_version
            StorageFailure: The document could not be replaced
        """
        payload = [item.to_document() for item in items]

        with self.guard.lock:
            if expected_version is not None and expected_version != self.guard.version:
                logger.info(
                    "Rejected stale write",
                    path=str(self.path),
                    expected_version=expected_version,
                    current_version=self.guard.version
                )
                raise WriteConflict(
                    f"Document {self.path.name} changed since version {expected_version}"
                )

            self._replace(payload)
            self.guard.version += 1
            logger.debug(
                "Document written",
                path=str(self.path),
                count=len(payload),
                version=self.guard.version
            )
            return self.guard.version

    def _replace(self, payload: List[Dict[str, Any]]) -> None:
        """Write to a side file and rename it over the document, retrying the rename once."""
        tmp_path: Optional[Path] = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())

            try:
                os.replace(tmp_path, self.path)
            except OSError as e:
                self.library_logger.log_write_retry(str(self.path), 1, self.retry_delay, str(e))
                self._sleep(self.retry_delay)
                os.replace(tmp_path, self.path)
            tmp_path = None

        except OSError as e:
            logger.error("Failed to write document", path=str(self.path), error=str(e))
            raise StorageFailure(f"Failed to write document: {self.path}") from e

        finally:
            if tmp_path is not None and tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError as e:
                    logger.warning("Failed to remove temporary file", path=str(tmp_path), error=str(e))
