"""
Core pipeline:
- process_order: geocode -> transform -> Shiprocket create -> pending store.
- run_sweep: weekly AWB assignment for everything still pending.
"""

import logging
import sqlite3
import threading
from datetime import datetime, timedelta
from typing import Optional

import pytz

from .carrier import ShiprocketClient
from .errors import PersistenceError, RelayError, ValidationError
from .geocoder import Geocoder
from .ledger import OrderLedger
from .store import PendingShipmentStore
from .transform import transform, validate_order

logger = logging.getLogger(__name__)

SOURCE = "shopify"
PICKUP_FORMAT = "%Y-%m-%d %H:%M:%S"


def upcoming_monday_pickup(now: datetime, hour: int = 4) -> str:
    """
    Next Monday strictly after `now`'s date, at `hour`:00:00, in now's zone.
    A run on a Monday targets the following Monday.
    """
    days = (0 - now.weekday()) % 7 or 7
    monday = (now + timedelta(days=days)).replace(hour=hour, minute=0, second=0, microsecond=0)
    return monday.strftime(PICKUP_FORMAT)


def _safe_payload(order: dict) -> dict:
    """Just enough of an order to investigate a dead letter, no PII."""
    if not isinstance(order, dict):
        return {"type": type(order).__name__}
    addr = order.get("billing_address") or {}
    return {
        "id": order.get("id"),
        "created_at": order.get("created_at"),
        "financial_status": order.get("financial_status"),
        "line_items": [
            {"sku": li.get("sku"), "quantity": li.get("quantity")}
            for li in (order.get("line_items") or []) if isinstance(li, dict)
        ],
        "billing_city": addr.get("city") if isinstance(addr, dict) else None,
        "billing_zip": addr.get("zip") if isinstance(addr, dict) else None,
    }


def _entry_key(entry) -> tuple:
    if not isinstance(entry, dict):
        return ("", repr(entry))
    return (str(entry.get("shipment_id")), str(entry.get("created_at")))


class Relay:
    def __init__(self, geocoder: Geocoder, carrier: ShiprocketClient,
                 store: PendingShipmentStore, ledger: OrderLedger,
                 pickup_location: str = "Rebba",
                 default_phone: str = "7672499601",
                 dedupe_orders: bool = False,
                 business_tz: str = "Asia/Kolkata",
                 pickup_hour: int = 4):
        self.geocoder = geocoder
        self.carrier = carrier
        self.store = store
        self.ledger = ledger
        self.pickup_location = pickup_location
        self.default_phone = default_phone
        self.dedupe_orders = dedupe_orders
        self.tz = pytz.timezone(business_tz)
        self.pickup_hour = pickup_hour
        self._sweep_lock = threading.Lock()

    # ---------------------------------------------------
    # Ingestion
    # ---------------------------------------------------

    def process_order(self, order: dict) -> dict:
        """
        Run one authenticated Shopify order through the pipeline.

        Raises ValidationError / UpstreamError / PersistenceError after
        recording a dead letter; the carrier shipment is not rolled back
        when only the store write fails.
        """
        raw_id = str(order.get("id") or "") if isinstance(order, dict) else ""

        if self.dedupe_orders and raw_id:
            already = self.ledger.seen(SOURCE, raw_id)
            if already is not None:
                logger.info("Order %s already relayed as shipment %s; ignoring redelivery",
                            raw_id, already)
                return {"status": "duplicate_ignored", "shipment_id": already}

        try:
            validate_order(order)
            zip_code = str((order.get("billing_address") or {}).get("zip") or "")
            coords = self.geocoder.resolve(zip_code)
            shipment = transform(order, coords,
                                 pickup_location=self.pickup_location,
                                 default_phone=self.default_phone)
        except ValidationError as e:
            logger.warning("Rejected order %s: %s", raw_id or "?", e)
            self.ledger.record_dead_letter(SOURCE, raw_id, f"Invalid: {e}", _safe_payload(order))
            raise

        try:
            shipment_id = self.carrier.create_shipment(shipment)
        except RelayError as e:
            logger.error("Shiprocket order error for %s: %s", raw_id, e)
            self.ledger.record_dead_letter(SOURCE, raw_id,
                                           f"{type(e).__name__}: {e}", _safe_payload(order))
            raise

        try:
            self.store.append(shipment_id, order["id"])
        except PersistenceError as e:
            logger.error("Shipment %s for order %s created but not stored: %s",
                         shipment_id, raw_id, e)
            self.ledger.record_dead_letter(SOURCE, raw_id, f"PersistenceError: {e}",
                                           {"shipment_id": shipment_id, "order_id": raw_id})
            raise

        if self.dedupe_orders:
            self._remember(raw_id, shipment_id)

        return {"status": "created", "shipment_id": shipment_id,
                "payment_method": shipment.payment_method}

    def _remember(self, raw_id: str, shipment_id):
        """Record the order for redelivery dedup; the pending entry already exists."""
        try:
            self.ledger.record_creation(SOURCE, raw_id, shipment_id)
        except sqlite3.Error as e:
            logger.error("Order %s relayed as shipment %s but not recorded in ledger: %s",
                         raw_id, shipment_id, e)
            try:
                self.ledger.record_dead_letter(SOURCE, raw_id, f"LedgerError: {e}",
                                               {"shipment_id": shipment_id, "order_id": raw_id})
            except sqlite3.Error:
                logger.exception("Dead letter for order %s not written", raw_id)

    def process_order_safely(self, order: dict):
        """Background-task entry point: never lets an exception escape."""
        try:
            return self.process_order(order)
        except RelayError as e:
            logger.warning("Order processing stopped: %s", e)
        except Exception:
            logger.exception("Unexpected error while processing order")
        return None

    # ---------------------------------------------------
    # Weekly AWB sweep
    # ---------------------------------------------------

    def run_sweep(self, now: Optional[datetime] = None) -> dict:
        """
        Try AWB assignment for every pending shipment, one at a time.
        Successes leave the store; everything else stays for next week.

        The store lock is only held to snapshot and to write back, so
        webhook appends are not stuck behind carrier calls. Entries
        appended after the snapshot are carried over into the rewrite.
        """
        now = now.astimezone(self.tz) if now else datetime.now(self.tz)
        pickup_at = upcoming_monday_pickup(now, self.pickup_hour)

        with self._sweep_lock:
            logger.info("AWB sweep started (pickup %s)", pickup_at)
            pending = self.store.load_all()
            if not pending:
                logger.info("AWB sweep: nothing pending")
                return {"assigned": [], "retained": 0, "pickup": pickup_at}

            assigned, retained = [], []
            for entry in pending:
                shipment_id = entry.get("shipment_id") if isinstance(entry, dict) else None
                if not shipment_id:
                    logger.warning("AWB sweep: keeping malformed entry %r", entry)
                    retained.append(entry)
                    continue
                try:
                    awb = self.carrier.assign_awb(shipment_id, pickup_at)
                except RelayError as e:
                    logger.warning("AWB failed for %s: %s", shipment_id, e)
                    retained.append(entry)
                    continue
                except Exception:
                    logger.exception("AWB error for %s", shipment_id)
                    retained.append(entry)
                    continue
                logger.info("AWB assigned: %s for shipment %s", awb, shipment_id)
                assigned.append({"shipment_id": shipment_id, "awb_code": awb})

            with self.store.transaction():
                seen = {_entry_key(e) for e in pending}
                arrived = [e for e in self.store.load_all() if _entry_key(e) not in seen]
                self.store.replace_all(retained + arrived)

        logger.info("AWB sweep done: %d assigned, %d retained, %d arrived during sweep",
                    len(assigned), len(retained), len(arrived))
        return {"assigned": assigned, "retained": len(retained), "pickup": pickup_at}

    def run_sweep_safely(self):
        """Scheduler entry point."""
        try:
            return self.run_sweep()
        except Exception:
            logger.exception("AWB sweep failed")
        return None
