# Overview: Durable FIFO of writes made while the record store was unreachable, and their replay.

"""
Offline queue semantics

Storage:
- The whole queue is one JSON list stored under a fixed key in a local
  key-value slot (a JSON file on disk), so it survives process restarts.
- Every mutation rewrites the full list.

Delivery:
- sync() replays operations in insertion order, one at a time.
- An operation is removed only after its dispatch succeeded; a failed one stays
  queued for the next pass. A crash between dispatch and removal redelivers,
  so delivery is at-least-once.
- Replays are made idempotent where the store allows it: insert is an
  upsert-by-id, delete of an already-missing record counts as success.
- sync() never raises; failures are counted. An unreadable queue slot syncs
  nothing, and an operation that was delivered but could not be removed is
  counted as a success and delivered again on the next pass.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable

from ..time_utils import epoch_millis
from .errors import RecordStoreError, StocklineError
from .record_store import RecordStore, SqlRecordStore

log = logging.getLogger(__name__)

QUEUE_KEY = "offline_sync_queue"

OP_INSERT = "insert"
OP_UPDATE = "update"
OP_DELETE = "delete"
OPERATION_TYPES = (OP_INSERT, OP_UPDATE, OP_DELETE)


class QueueStorageError(StocklineError):
    """The local slot holding the queue could not be read, parsed or written."""


class LocalKeyValueStore:
    """
    String slots persisted in a single JSON file.

    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so a crash never leaves a half-written file.
    """

    def __init__(self, path):
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            content = fh.read()
        return json.loads(content) if content.strip() else {}

    def _save(self, slots: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(slots, fh)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def read(self, key: str) -> str | None:
        return self._load().get(key)

    def write(self, key: str, value: str) -> None:
        slots = self._load()
        slots[key] = value
        self._save(slots)

    def remove(self, key: str) -> None:
        slots = self._load()
        if key in slots:
            del slots[key]
            self._save(slots)


@dataclass
class QueuedOperation:
    id: str
    type: str
    table: str
    data: dict = field(default_factory=dict)
    timestamp: int = 0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "QueuedOperation":
        return cls(
            id=data["id"],
            type=data["type"],
            table=data["table"],
            data=data.get("data") or {},
            timestamp=data.get("timestamp") or 0,
        )


@dataclass(frozen=True)
class SyncResult:
    success: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {"success": self.success, "failed": self.failed}


class OfflineQueue:
    def __init__(
        self,
        slots: LocalKeyValueStore,
        records: RecordStore | None = None,
        *,
        key: str = QUEUE_KEY,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        clock: Callable[[], int] = epoch_millis,
    ):
        self.slots = slots
        self.records = records if records is not None else SqlRecordStore()
        self.key = key
        self._new_id = id_factory
        self._now = clock

    def _persist(self, operations: list[QueuedOperation]) -> None:
        try:
            self.slots.write(self.key, json.dumps([op.to_dict() for op in operations]))
        except (OSError, ValueError) as exc:
            raise QueueStorageError(f"Could not write offline queue: {exc}", details={"path": str(self.slots.path)}) from exc

    def add(self, op_type: str, table: str, data: dict | None = None) -> str:
        """Append an operation and return its new id."""
        if op_type not in OPERATION_TYPES:
            raise ValueError(f"Unsupported operation type: {op_type!r}")
        if not table:
            raise ValueError("table required")

        operations = self.get_all()
        operation = QueuedOperation(
            id=self._new_id(),
            type=op_type,
            table=table,
            data=dict(data or {}),
            timestamp=self._now(),
        )
        operations.append(operation)
        self._persist(operations)
        return operation.id

    def get_all(self) -> list[QueuedOperation]:
        """Pending operations in replay order. Raises QueueStorageError if the slot is unreadable."""
        try:
            stored = self.slots.read(self.key)
            if not stored:
                return []
            return [QueuedOperation.from_dict(item) for item in json.loads(stored)]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise QueueStorageError(f"Could not read offline queue: {exc}", details={"path": str(self.slots.path)}) from exc

    def count(self) -> int:
        return len(self.get_all())

    def remove(self, operation_id: str) -> None:
        self._persist([op for op in self.get_all() if op.id != operation_id])

    def clear(self) -> None:
        try:
            self.slots.remove(self.key)
        except (OSError, ValueError) as exc:
            raise QueueStorageError(f"Could not clear offline queue: {exc}", details={"path": str(self.slots.path)}) from exc

    def _dispatch(self, operation: QueuedOperation) -> None:
        payload = dict(operation.data)

        if operation.type == OP_INSERT:
            self.records.insert(operation.table, payload, upsert=True)
            return

        record_id = payload.get("id")
        if record_id is None:
            raise RecordStoreError(f"{operation.type} operation requires data.id", details={"operation_id": operation.id})

        if operation.type == OP_UPDATE:
            self.records.update(operation.table, record_id, payload)
        elif operation.type == OP_DELETE:
            self.records.delete(operation.table, {"id": record_id})
        else:
            raise RecordStoreError(f"Unsupported operation type: {operation.type!r}", details={"operation_id": operation.id})

    def sync(self) -> SyncResult:
        """Replay every queued operation in order; return success/failure counts."""
        success = failed = 0
        try:
            operations = self.get_all()
        except QueueStorageError as exc:
            log.error("Offline queue not synced: %s", exc.message)
            return SyncResult(success, failed)

        for operation in operations:
            try:
                self._dispatch(operation)
            except Exception:
                log.exception("Failed to sync operation %s (%s %s)", operation.id, operation.type, operation.table)
                failed += 1
                continue
            try:
                self.remove(operation.id)
            except QueueStorageError as exc:
                log.error("Synced operation %s could not be removed from the queue: %s", operation.id, exc.message)
            success += 1
        return SyncResult(success, failed)


def build_offline_queue(app, records: RecordStore | None = None) -> OfflineQueue:
    """Queue configured from OFFLINE_QUEUE_PATH (relative paths live in the instance folder)."""
    path = Path(app.config.get("OFFLINE_QUEUE_PATH") or "offline_queue.json")
    if not path.is_absolute():
        path = Path(app.instance_path) / path
    return OfflineQueue(
        LocalKeyValueStore(path),
        records,
        key=app.config.get("OFFLINE_QUEUE_KEY", QUEUE_KEY),
    )


def operation_summary(operation: QueuedOperation) -> dict[str, Any]:
    return {
        "id": operation.id,
        "type": operation.type,
        "table": operation.table,
        "record_id": operation.data.get("id"),
        "timestamp": operation.timestamp,
    }
