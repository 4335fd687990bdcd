"""
Shopify order JSON -> Shiprocket adhoc order payload.

Everything here is pure: same order + coordinates in, same payload out.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .geocoder import Coordinates

# Package defaults (cm / kg) and product tagging for every shipment
PACKAGE_LENGTH = 10
PACKAGE_BREADTH = 15
PACKAGE_HEIGHT = 20
PACKAGE_WEIGHT = 2.5
HSN_CODE = 441122
CATEGORY_NAME = "Food"
SHIPPING_METHOD = "HL"

DEFAULT_CUSTOMER_NAME = "Unknown"
DEFAULT_SKU = "defaultsku"
DEFAULT_TIMEZONE = "Asia/Calcutta"

# note_attributes keys the storefront's delivery-slot app writes
DELIVERY_KEYS = ("Delivery Date", "Delivery Day", "Delivery Time", "Customer TimeZone")


class OrderItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    sku: str
    units: int
    selling_price: Union[str, float]
    hsn: int = HSN_CODE
    category_name: str = CATEGORY_NAME


class ShipmentRequest(BaseModel):
    """Shiprocket /orders/create/adhoc body. Built once per order, never mutated."""
    model_config = ConfigDict(frozen=True)

    order_id: str
    order_date: Optional[str] = None
    pickup_location: str
    channel_id: str = ""
    comment: str = ""

    billing_customer_name: str
    billing_last_name: str = ""
    billing_address: str = ""
    billing_address_2: str = ""
    billing_city: str = ""
    billing_pincode: str = ""
    billing_state: str = ""
    billing_country: str = ""
    billing_email: str = ""
    billing_phone: str
    shipping_is_billing: bool = True

    order_items: List[OrderItem]
    payment_method: str
    shipping_charges: float = 0
    giftwrap_charges: float = 0
    transaction_charges: float = 0
    total_discount: float = 0
    sub_total: Union[str, float] = 0

    length: float = PACKAGE_LENGTH
    breadth: float = PACKAGE_BREADTH
    height: float = PACKAGE_HEIGHT
    weight: float = PACKAGE_WEIGHT
    shipping_method: str = SHIPPING_METHOD

    latitude: str = "0.0"
    longitude: str = "0.0"


def payment_method_for(financial_status: Optional[str]) -> str:
    return "Prepaid" if (financial_status or "").lower() == "paid" else "COD"


def delivery_comment(note_attributes) -> str:
    """
    Fold note_attributes into one human readable comment.

    - Delivery slot keys become "Delivery on <date> (<day>) at <time> [<tz>]".
    - Any other attribute is appended as "name: value".
    - No attributes -> "".
    """
    if not isinstance(note_attributes, list) or not note_attributes:
        return ""

    info = {}
    for attr in note_attributes:
        if not isinstance(attr, dict) or not attr.get("name"):
            continue
        info[str(attr["name"])] = "" if attr.get("value") is None else str(attr["value"])

    parts = []
    if any(k in info for k in DELIVERY_KEYS[:3]):
        parts.append(
            f"Delivery on {info.get('Delivery Date', '')} ({info.get('Delivery Day', '')}) "
            f"at {info.get('Delivery Time', '')} "
            f"[{info.get('Customer TimeZone') or DEFAULT_TIMEZONE}]"
        )
    for name, value in info.items():
        if name not in DELIVERY_KEYS:
            parts.append(f"{name}: {value}")
    return "; ".join(parts)


def _text(value, default: str = "") -> str:
    """Shopify sends numbers where strings are expected (numeric SKUs, zips)."""
    if value is None or value == "":
        return default
    return str(value)


def _units(li: dict) -> int:
    qty = li.get("quantity")
    if qty is None:
        return 1
    try:
        units = int(qty)
    except (TypeError, ValueError):
        raise ValidationError(f"Bad quantity {qty!r} for {li.get('sku')!r}")
    if units < 1:
        raise ValidationError(f"Quantity {qty!r} for {li.get('sku')!r} is below 1")
    return units


def _items(line_items: list) -> List[OrderItem]:
    items = []
    for li in line_items:
        if not isinstance(li, dict):
            raise ValidationError("line_items entries must be objects")
        price = li.get("price")
        items.append(OrderItem(
            name=_text(li.get("name"), _text(li.get("title"))),
            sku=_text(li.get("sku"), DEFAULT_SKU),
            units=_units(li),
            selling_price=price if isinstance(price, (int, float)) else _text(price, "0"),
        ))
    return items


def validate_order(order) -> None:
    """Reject orders we cannot ship: no id or no line items. No I/O."""
    if not isinstance(order, dict) or order.get("id") in (None, ""):
        raise ValidationError("Order has no id")
    line_items = order.get("line_items")
    if not isinstance(line_items, list) or not line_items:
        raise ValidationError(f"Order {order.get('id')} has no line items")
    for key in ("billing_address", "customer"):
        if order.get(key) is not None and not isinstance(order.get(key), dict):
            raise ValidationError(f"Order {order.get('id')}: {key} is not an object")


def transform(order: dict, coords: Coordinates,
              pickup_location: str = "Rebba",
              default_phone: str = "7672499601") -> ShipmentRequest:
    """Map raw Shopify order JSON to a ShipmentRequest."""
    validate_order(order)

    addr = order.get("billing_address") or {}
    customer = order.get("customer") or {}
    phone = customer.get("phone") or addr.get("phone") or order.get("phone") or default_phone
    subtotal = order.get("subtotal_price")

    try:
        return ShipmentRequest(
            order_id=str(order["id"]),
            order_date=_text(order.get("created_at")) or None,
            pickup_location=pickup_location,
            comment=delivery_comment(order.get("note_attributes")),
            billing_customer_name=_text(addr.get("first_name"), DEFAULT_CUSTOMER_NAME),
            billing_last_name=_text(addr.get("last_name")),
            billing_address=_text(addr.get("address1")),
            billing_address_2=_text(addr.get("address2")),
            billing_city=_text(addr.get("city")),
            billing_pincode=_text(addr.get("zip")),
            billing_state=_text(addr.get("province")),
            billing_country=_text(addr.get("country")),
            billing_email=_text(order.get("email")),
            billing_phone=str(phone),
            order_items=_items(order["line_items"]),
            payment_method=payment_method_for(_text(order.get("financial_status"))),
            sub_total=subtotal if isinstance(subtotal, (int, float)) else _text(subtotal, "0"),
            latitude=coords.latitude,
            longitude=coords.longitude,
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Order {order.get('id')} cannot be mapped: {e}") from e
