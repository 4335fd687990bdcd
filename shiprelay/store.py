import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List

from .errors import PersistenceError

logger = logging.getLogger(__name__)


class PendingShipmentStore:
    """
    Shipments that have a Shiprocket shipment_id but no AWB yet.

    Backed by one indented JSON file that is rewritten in full on every
    mutation. All access goes through one re-entrant lock; transaction()
    holds it across a read-modify-write made of several calls.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self):
        with self._lock:
            yield self

    def _read(self) -> List[Dict]:
        if not os.path.exists(self.path):
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = f.read()
        except OSError as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e
        if not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise PersistenceError(f"{self.path} is not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise PersistenceError(f"{self.path} does not hold a list")
        return data

    def _write(self, records: List[Dict]):
        folder = os.path.dirname(os.path.abspath(self.path))
        tmp = None
        try:
            fd, tmp = tempfile.mkstemp(dir=folder, prefix=".pending-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
        except (OSError, TypeError) as e:
            if tmp and os.path.exists(tmp):
                os.remove(tmp)
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e

    def append(self, shipment_id, order_id) -> Dict:
        record = {
            "shipment_id": shipment_id,
            "order_id": order_id,
            "created_at": datetime.utcnow().isoformat() + "Z",
        }
        with self._lock:
            records = self._read()
            records.append(record)
            self._write(records)
        logger.info("Stored shipment %s (order %s) for AWB scheduling", shipment_id, order_id)
        return record

    def load_all(self) -> List[Dict]:
        with self._lock:
            return self._read()

    def replace_all(self, records: List[Dict]):
        with self._lock:
            self._write(list(records))
