"""
Shopify -> Shiprocket order relay.

- Receives Shopify order webhooks (HMAC verified).
- Geocodes the billing postcode and opens a Shiprocket shipment.
- Keeps shipments without an AWB in a pending file and retries AWB
  assignment once a week.
"""

__version__ = "0.3.0"
