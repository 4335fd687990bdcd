import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

import requests

from .errors import AuthError

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = timedelta(hours=10)


@dataclass(frozen=True)
class Credential:
    token: str
    fetched_at: datetime

    @property
    def bearer(self) -> str:
        return f"Bearer {self.token}"


class CredentialCache:
    """
    Process-wide Shiprocket bearer token.

    - get() logs in when nothing is cached or the token is older than max_age.
    - Only one login runs at a time; callers that arrive during a refresh
      wait on the lock and then reuse the fresh token.
    """

    def __init__(self, login_url: str, email: str, password: str,
                 max_age: timedelta = DEFAULT_MAX_AGE,
                 timeout: float = 30,
                 clock: Callable[[], datetime] = datetime.utcnow):
        self.login_url = login_url
        self.email = email
        self.password = password
        self.max_age = max_age
        self.timeout = timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._credential: Optional[Credential] = None

    def _is_fresh(self, cred: Optional[Credential]) -> bool:
        return bool(cred and cred.token) and \
            self._clock() - cred.fetched_at < self.max_age

    def get(self) -> Credential:
        cred = self._credential
        if self._is_fresh(cred):
            return cred
        with self._lock:
            # Another caller may have refreshed while we waited.
            cred = self._credential
            if self._is_fresh(cred):
                return cred
            return self._refresh_locked()

    def refresh(self) -> Credential:
        """Force a new login regardless of the cached token's age."""
        with self._lock:
            return self._refresh_locked()

    def invalidate(self):
        with self._lock:
            self._credential = None

    def _refresh_locked(self) -> Credential:
        try:
            r = requests.post(self.login_url,
                              json={"email": self.email, "password": self.password},
                              timeout=self.timeout)
        except requests.RequestException as e:
            raise AuthError(f"Shiprocket login request failed: {e}") from e

        try:
            data = r.json()
        except ValueError as e:
            raise AuthError(f"Shiprocket login returned non-JSON (HTTP {r.status_code})") from e

        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise AuthError(f"Shiprocket login response missing token (HTTP {r.status_code})")

        self._credential = Credential(token=str(token), fetched_at=self._clock())
        logger.info("Shiprocket token fetched")
        return self._credential
