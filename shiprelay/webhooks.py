import base64
import hashlib
import hmac
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def shopify_hmac_ok(secret: str, body: bytes, header_hmac: Optional[str]) -> bool:
    """
    Verify Shopify webhook HMAC over the raw request body.

    `body` must be the bytes exactly as received; a re-serialized JSON
    object will not hash the same.
    """
    if not secret:
        # Security-first approach: reject if secret missing
        logger.warning("Shopify HMAC: no SHOPIFY_WEBHOOK_SECRET configured")
        return False
    if not header_hmac:
        return False
    calc = base64.b64encode(
        hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    )
    # bytes on both sides: compare_digest rejects non-ASCII str
    return hmac.compare_digest(calc, header_hmac.strip().encode("utf-8"))
