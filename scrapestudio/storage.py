from __future__ import annotations

import json
import logging
import os
import queue
import threading
import uuid
from abc import ABC, abstractmethod
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .logging_utils import log_event

logger = logging.getLogger(__name__)


class StorageBase(ABC):
    """Persistence collaborator for scrape results and job failures.

    Payloads are opaque JSON-serializable dicts; save() assigns an `id` and a
    `timestamp` when the payload has none.
    """

    @abstractmethod
    def save(self, record: Dict[str, Any]) -> str:
        """Persist one payload and return its id."""

    @abstractmethod
    def list(self) -> List[Dict[str, Any]]:
        """Return every stored payload, oldest first."""

    @abstractmethod
    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        """Return one payload by id, or None."""

    def close(self) -> None:
        """Flush pending writes and release resources."""

    @staticmethod
    def _stamp(record: Dict[str, Any]) -> Dict[str, Any]:
        stamped = dict(record)
        stamped.setdefault("id", str(uuid.uuid4()))
        stamped.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        return stamped


class MemoryStorage(StorageBase):
    """Keeps payloads in process memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, Dict[str, Any]] = {}

    def save(self, record: Dict[str, Any]) -> str:
        stamped = self._stamp(record)
        # round-trip through json so non-serializable payloads fail at save time
        stamped = json.loads(json.dumps(stamped, ensure_ascii=False))
        with self._lock:
            self._records[stamped["id"]] = stamped
        return stamped["id"]

    def list(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [deepcopy(r) for r in self._records.values()]

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get(record_id)
            return deepcopy(record) if record is not None else None


class JsonlStorage(MemoryStorage):
    """Stores payloads as JSON Lines (.jsonl) using a background writer thread.

    Existing lines are loaded on start so list() and get() see earlier runs.
    """

    def __init__(self, path: str) -> None:
        super().__init__()
        self._path = path
        self._load_existing()
        self._queue: queue.Queue[Optional[Dict[str, Any]]] = queue.Queue()
        self._thread = threading.Thread(target=self._writer, name="jsonl-writer", daemon=True)
        self._thread.start()

    def save(self, record: Dict[str, Any]) -> str:
        record_id = super().save(record)
        self._queue.put(self.get(record_id))
        return record_id

    def flush(self) -> None:
        """Block until every queued payload has been written."""
        self._queue.join()

    def close(self) -> None:
        """Signal the writer thread to flush and stop."""
        self._queue.put(None)
        self._thread.join(timeout=5)

    def _load_existing(self) -> None:
        if not os.path.exists(self._path):
            return
        with open(self._path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except json.JSONDecodeError as exc:
                    log_event(logger, logging.WARNING, "storage_line_skipped", path=self._path, line=lineno, error=str(exc))
                    continue
                if isinstance(record, dict) and "id" in record:
                    self._records[record["id"]] = record

    def _writer(self) -> None:
        with open(self._path, "a", encoding="utf-8") as f:
            while True:
                item = self._queue.get()
                try:
                    if item is None:
                        break
                    f.write(json.dumps(item, ensure_ascii=False) + "\n")
                    f.flush()
                finally:
                    self._queue.task_done()
