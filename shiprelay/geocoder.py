import logging
from dataclasses import dataclass

import requests

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"


@dataclass(frozen=True)
class Coordinates:
    latitude: str
    longitude: str


SENTINEL = Coordinates("0.0", "0.0")


class Geocoder:
    """
    Best-effort postcode -> lat/lng lookup via the Google Geocoding API.
    Never raises: anything unexpected yields SENTINEL.
    """

    def __init__(self, api_key: str, timeout: float = 10, url: str = GEOCODE_URL):
        self.api_key = api_key
        self.timeout = timeout
        self.url = url

    def resolve(self, postal_code: str) -> Coordinates:
        postal_code = (postal_code or "").strip()
        if not postal_code:
            return SENTINEL
        if not self.api_key:
            logger.warning("Geocoding skipped: GOOGLE_MAPS_API_KEY not configured")
            return SENTINEL

        try:
            r = requests.get(self.url,
                             params={"address": postal_code, "key": self.api_key},
                             timeout=self.timeout)
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Geocoding error for %s: %s", postal_code, e)
            return SENTINEL

        if not isinstance(data, dict):
            data = {}
        results = data.get("results")
        if data.get("status") != "OK" or not results:
            logger.warning("Could not fetch coordinates for %s (status=%s)",
                           postal_code, data.get("status"))
            return SENTINEL

        try:
            loc = results[0]["geometry"]["location"]
            coords = Coordinates(str(loc["lat"]), str(loc["lng"]))
        except (KeyError, TypeError, IndexError) as e:
            logger.warning("Unexpected geocode result shape for %s: %s", postal_code, e)
            return SENTINEL

        logger.info("ZIP %s -> lat: %s, lng: %s", postal_code, coords.latitude, coords.longitude)
        return coords
