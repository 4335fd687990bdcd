"""Error taxonomy for the relay pipeline."""


class RelayError(Exception):
    """Base class for every failure the pipeline reports."""


class AuthError(RelayError):
    """Bad/missing webhook signature, or carrier login failed."""


class ValidationError(RelayError):
    """Order is missing fields we cannot default (id, line items)."""


class UpstreamError(RelayError):
    """Carrier or geocoder answered with something we cannot use."""


class PersistenceError(RelayError):
    """Pending-shipment file could not be read or written."""
