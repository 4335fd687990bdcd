import base64
import hashlib
import hmac
from unittest.mock import MagicMock

import pytest

from shiprelay.config import Settings
from shiprelay.ledger import OrderLedger
from shiprelay.store import PendingShipmentStore

SECRET = "shpss_test_secret"


def sign(body: bytes, secret: str = SECRET) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


def fake_response(payload=None, status_code=200, json_error=False):
    """requests.Response stand-in."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 400
    if json_error:
        resp.json.side_effect = ValueError("not json")
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture
def settings(tmp_path):
    return Settings(
        shopify_secret=SECRET,
        shiprocket_email="ops@example.com",
        shiprocket_password="pw",
        internal_api_key="internal-key",
        google_maps_api_key="gmaps-key",
        pending_file=str(tmp_path / "pending-orders.json"),
        state_db=str(tmp_path / "state.db"),
    )


@pytest.fixture
def store(tmp_path):
    return PendingShipmentStore(str(tmp_path / "pending-orders.json"))


@pytest.fixture
def ledger(tmp_path):
    return OrderLedger(str(tmp_path / "state.db"))


@pytest.fixture
def sample_order():
    return {
        "id": 1001,
        "created_at": "2024-05-01T10:00:00+05:30",
        "billing_address": {"zip": "10001", "first_name": "A"},
        "line_items": [{"name": "Widget", "sku": "W1", "quantity": 1, "price": "9.99"}],
        "financial_status": "paid",
    }
