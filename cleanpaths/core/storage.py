"""Mapping store interface with in-memory and JSON file backends."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol, runtime_checkable

from .errors import StoreUnavailable
from .models import PathMapping, utcnow

logger = logging.getLogger(__name__)

STORE_FORMAT_VERSION = 1


@runtime_checkable
class MappingStore(Protocol):
    """Durable original -> clean path cache keyed on exact string equality."""

    def find(self, original_path: str) -> Optional[str]: ...

    def upsert(self, original_path: str, clean_path: str) -> bool: ...

    def clear_all(self) -> None: ...

    def count(self) -> int: ...

    def records(self) -> list[PathMapping]: ...

    def flush(self) -> None: ...


def _upsert_record(records: Dict[str, PathMapping], original_path: str, clean_path: str) -> None:
    existing = records.get(original_path)
    if existing is None:
        records[original_path] = PathMapping(original_path=original_path, clean_path=clean_path)
        return
    existing.clean_path = clean_path
    existing.updated_at = utcnow()


class MemoryMappingStore:
    """Process-local store, mostly for tests and one-shot runs."""

    def __init__(self) -> None:
        self._records: Dict[str, PathMapping] = {}
        self._lock = threading.Lock()

    def find(self, original_path: str) -> Optional[str]:
        with self._lock:
            record = self._records.get(original_path)
            return record.clean_path if record else None

    def upsert(self, original_path: str, clean_path: str) -> bool:
        with self._lock:
            _upsert_record(self._records, original_path, clean_path)
        return True

    def clear_all(self) -> None:
        with self._lock:
            self._records.clear()

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def records(self) -> list[PathMapping]:
        with self._lock:
            return [self._records[key] for key in sorted(self._records)]

    def flush(self) -> None:
        pass


class JsonMappingStore:
    """Key-value store persisted as a single JSON document.

    The file is read on first use. Writes are kept in memory and written out
    atomically by :meth:`flush`, which also runs on its own once
    ``flush_every`` unsaved changes have piled up (0 disables that). Callers
    must flush at the end of a run for the mappings to survive a restart.
    """

    def __init__(self, path: str | Path, flush_every: int = 1000) -> None:
        self.path = Path(path)
        self.flush_every = flush_every
        self._records: Dict[str, PathMapping] | None = None
        self._unsaved = 0
        self._lock = threading.Lock()

    def find(self, original_path: str) -> Optional[str]:
        with self._lock:
            record = self._load().get(original_path)
            return record.clean_path if record else None

    def upsert(self, original_path: str, clean_path: str) -> bool:
        with self._lock:
            records = self._load()
            _upsert_record(records, original_path, clean_path)
            self._unsaved += 1
            if self.flush_every and self._unsaved >= self.flush_every:
                self._flush_locked()
        return True

    def flush(self) -> None:
        with self._lock:
            if self._records is not None and self._unsaved:
                self._flush_locked()

    def close(self) -> None:
        self.flush()

    def clear_all(self) -> None:
        with self._lock:
            self._save({})
            self._records = {}
            self._unsaved = 0

    def count(self) -> int:
        with self._lock:
            return len(self._load())

    def records(self) -> list[PathMapping]:
        with self._lock:
            records = self._load()
            return [records[key] for key in sorted(records)]

    def _flush_locked(self) -> None:
        self._save(self._records or {})
        self._unsaved = 0

    def _load(self) -> Dict[str, PathMapping]:
        if self._records is not None:
            return self._records
        if not self.path.exists():
            self._records = {}
            return self._records
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreUnavailable(f"Cannot read mapping store {self.path}: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("mappings", []), list):
            raise StoreUnavailable(f"Mapping store {self.path} is not a mapping document")
        records: Dict[str, PathMapping] = {}
        for item in data.get("mappings", []):
            if not isinstance(item, dict):
                continue
            try:
                mapping = PathMapping.from_dict(item)
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping unreadable mapping entry in %s: %r", self.path, item)
                continue
            records[mapping.original_path] = mapping
        self._records = records
        return records

    def _save(self, records: Dict[str, PathMapping]) -> None:
        payload = {
            "version": STORE_FORMAT_VERSION,
            "mappings": [records[key].to_dict() for key in sorted(records)],
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".mappings-", suffix=".json", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(payload, fh, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StoreUnavailable(f"Cannot write mapping store {self.path}: {exc}") from exc
