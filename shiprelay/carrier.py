import logging

import requests

from .credentials import CredentialCache
from .errors import UpstreamError
from .transform import ShipmentRequest

logger = logging.getLogger(__name__)

SHIPROCKET_BASE = "https://apiv2.shiprocket.in/v1/external"

# Shiprocket vehicle_type for scheduled pickups
VEHICLE_TYPE = 2


def _extract_awb(result) -> str:
    """awb_code sits at the top level or under response.data depending on API version."""
    if not isinstance(result, dict):
        return ""
    if result.get("awb_code"):
        return str(result["awb_code"])
    resp = result.get("response")
    data = resp.get("data") if isinstance(resp, dict) else None
    if isinstance(data, dict) and data.get("awb_code"):
        return str(data["awb_code"])
    return ""


class ShiprocketClient:
    """Thin Shiprocket API client; every call takes its token from the cache."""

    def __init__(self, credentials: CredentialCache,
                 base_url: str = SHIPROCKET_BASE, timeout: float = 30):
        self.credentials = credentials
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def headers(self) -> dict:
        """HTTP headers for Shiprocket API requests."""
        return {
            "Authorization": self.credentials.get().bearer,
            "Content-Type": "application/json",
        }

    def _post(self, path: str, body: dict):
        try:
            r = requests.post(f"{self.base_url}{path}", headers=self.headers(),
                              json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamError(f"Shiprocket {path} request failed: {e}") from e

        if r.status_code == 401:
            # Session revoked upstream; next call logs in again.
            self.credentials.invalidate()

        try:
            data = r.json()
        except ValueError as e:
            raise UpstreamError(f"Shiprocket {path} returned non-JSON (HTTP {r.status_code})") from e
        return r, data

    def create_shipment(self, shipment: ShipmentRequest):
        """Create an adhoc order; returns Shiprocket's shipment_id."""
        r, data = self._post("/orders/create/adhoc", shipment.model_dump())
        shipment_id = data.get("shipment_id") if isinstance(data, dict) else None
        if not shipment_id:
            raise UpstreamError(
                f"Shipment ID not returned from Shiprocket (HTTP {r.status_code}) "
                f"for order {shipment.order_id}"
            )
        logger.info("Shiprocket order %s -> shipment %s", shipment.order_id, shipment_id)
        return shipment_id

    def assign_awb(self, shipment_id, pickup_at: str) -> str:
        """Ask Shiprocket to assign an AWB with a future pickup; returns the awb_code."""
        body = {
            "shipment_id": shipment_id,
            "future_pickup_scheduled": pickup_at,
            "courier_id": "",
            "vehicle_type": VEHICLE_TYPE,
        }
        r, data = self._post("/courier/assign/awb", body)
        awb = _extract_awb(data)
        if not (r.ok and awb):
            raise UpstreamError(f"No AWB for shipment {shipment_id} (HTTP {r.status_code}): {data}")
        return awb
