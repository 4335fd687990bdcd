"""
SQLite side tables: processed orders (redelivery dedup) and dead letters.
"""

import json
import sqlite3
from datetime import datetime
from typing import List, Optional, Tuple


class OrderLedger:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self.init()

    def _connect(self):
        return sqlite3.connect(self.db_path)

    def init(self):
        """Create SQLite tables if they do not exist yet."""
        conn = self._connect()
        c = conn.cursor()

        # idempotency: (source, raw_id) -> Shiprocket shipment_id
        c.execute("""CREATE TABLE IF NOT EXISTS events(
            source TEXT NOT NULL,
            raw_id TEXT NOT NULL,
            shipment_id TEXT,
            created_at TEXT NOT NULL,
            PRIMARY KEY (source, raw_id)
        )""")

        # dead letters: failed orders with reasons + trimmed payload
        c.execute("""CREATE TABLE IF NOT EXISTS dead_letters(
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            source TEXT NOT NULL,
            raw_id TEXT NOT NULL,
            reason TEXT NOT NULL,
            payload_json TEXT NOT NULL,
            created_at TEXT NOT NULL
        )""")

        conn.commit()
        conn.close()

    def seen(self, source: str, raw_id: str) -> Optional[str]:
        """Shipment id already opened for this (source, raw_id), if any."""
        conn = self._connect()
        c = conn.cursor()
        c.execute("SELECT shipment_id FROM events WHERE source=? AND raw_id=?",
                  (source, raw_id))
        row = c.fetchone()
        conn.close()
        return row[0] if row else None

    def record_creation(self, source: str, raw_id: str, shipment_id):
        conn = self._connect()
        c = conn.cursor()
        c.execute("""INSERT OR REPLACE INTO events(source,raw_id,shipment_id,created_at)
                     VALUES(?,?,?,?)""",
                  (source, raw_id, str(shipment_id),
                   datetime.utcnow().isoformat() + "Z"))
        conn.commit()
        conn.close()

    def record_dead_letter(self, source: str, raw_id: str, reason: str, payload: dict):
        """
        Store a failed order with a reason and a trimmed payload
        (do NOT dump all PII here).
        """
        conn = self._connect()
        c = conn.cursor()
        c.execute("""INSERT INTO dead_letters(source,raw_id,reason,payload_json,created_at)
                     VALUES(?,?,?,?,?)""",
                  (source, raw_id, reason,
                   json.dumps(payload, ensure_ascii=False, default=str),
                   datetime.utcnow().isoformat() + "Z"))
        conn.commit()
        conn.close()

    def dead_letters(self, limit: int = 5000) -> List[Tuple]:
        conn = self._connect()
        c = conn.cursor()
        c.execute("""SELECT created_at, source, raw_id, reason, payload_json
                     FROM dead_letters
                     ORDER BY id DESC LIMIT ?""", (limit,))
        rows = c.fetchall()
        conn.close()
        return rows
