"""
Local Storage Implementations

DESIGN DECISION: The default backend is a single JSON file holding every
key. It is rewritten wholesale on every set, through a temporary file and
os.replace so a crash never leaves a half-written store behind.

The in-memory store has the same semantics and is what tests use.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Optional
from uuid import UUID

import structlog

from finanza.models.audit import AuditEvent
from finanza.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStoreInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class InMemoryKeyValueStore(KeyValueStoreInterface):
    """Dict-backed store. Values are deep-copied in and out."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}

    async def get(self, key: str) -> Optional[Any]:
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        # Round-trip through JSON so tests catch values a real backend would reject
        try:
            self._data[key] = json.loads(json.dumps(value))
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for {key} is not JSON-serializable: {e}")

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._data)


class LocalJsonStore(KeyValueStoreInterface):
    """
    Key/value store persisted to one JSON file.

    The file is read on every get so two app processes sharing the file
    see each other's writes (last writer wins).
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt store file {self._path}: {e}")
        except OSError as e:
            raise StorageError(f"Cannot read store file {self._path}: {e}")
        if not isinstance(data, dict):
            raise StorageError(f"Store file {self._path} does not hold a JSON object")
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp, self._path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"Cannot write store file {self._path}: {e}")

    async def get(self, key: str) -> Optional[Any]:
        return self._read_all().get(key)

    async def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    async def delete(self, key: str) -> bool:
        data = self._read_all()
        if key not in data:
            return False
        del data[key]
        self._write_all(data)
        return True


class LocalAuditStorage(AuditStorageInterface):
    """Append-only audit log in JSON-lines format."""

    def __init__(self, path: Path):
        self._path = Path(path)

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(event.model_dump_json() + "\n")
            return True
        except OSError as e:
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    def _read_events(self) -> list[AuditEvent]:
        if not self._path.exists():
            return []
        events = []
        try:
            with self._path.open(encoding="utf-8") as f:
                for line_no, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        events.append(AuditEvent.model_validate_json(line))
                    except ValueError as e:
                        logger.warning("audit_line_skipped", line=line_no, error=str(e))
        except OSError as e:
            raise StorageError(f"Cannot read audit log {self._path}: {e}")
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
        user_id: Optional[str] = None,
    ) -> list[AuditEvent]:
        events = self._read_events()
        if user_id is not None:
            events = [e for e in events if e.user_id == user_id]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
