"""Environment-driven settings (.env supported)."""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


def _required(name: str) -> str:
    value = (os.getenv(name) or "").strip()
    if not value:
        raise RuntimeError(f"Missing {name} in .env")
    return value


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


@dataclass
class Settings:
    # Secrets
    shopify_secret: str
    shiprocket_email: str
    shiprocket_password: str
    internal_api_key: str
    google_maps_api_key: str = ""

    # HTTP
    port: int = 3000
    shiprocket_base_url: str = "https://apiv2.shiprocket.in/v1/external"
    http_timeout: float = 30.0

    # State
    pending_file: str = "pending-orders.json"
    state_db: str = "state.db"
    dedupe_orders: bool = False

    # Scheduling (cron fields in BUSINESS_TZ)
    business_tz: str = "Asia/Kolkata"
    sweep_day_of_week: str = "sun"
    sweep_hour: int = 15
    sweep_minute: int = 32
    pickup_hour: int = 4
    token_max_age_hours: float = 10.0

    # Fulfillment defaults
    pickup_location: str = "Rebba"
    default_phone: str = "7672499601"

    @classmethod
    def from_env(cls) -> "Settings":
        """Load .env, then build settings. Raises RuntimeError on missing secrets."""
        load_dotenv()
        return cls(
            shopify_secret=_required("SHOPIFY_WEBHOOK_SECRET"),
            shiprocket_email=_required("SHIPROCKET_EMAIL"),
            shiprocket_password=_required("SHIPROCKET_PASSWORD"),
            internal_api_key=_required("INTERNAL_API_KEY"),
            google_maps_api_key=(os.getenv("GOOGLE_MAPS_API_KEY") or "").strip(),
            port=int(os.getenv("PORT", "3000")),
            shiprocket_base_url=(os.getenv("SHIPROCKET_BASE_URL")
                                 or cls.shiprocket_base_url).rstrip("/"),
            http_timeout=float(os.getenv("HTTP_TIMEOUT_SECONDS", "30")),
            pending_file=os.getenv("PENDING_ORDERS_FILE", cls.pending_file),
            state_db=os.getenv("STATE_DB", cls.state_db),
            dedupe_orders=_flag("DEDUPE_ORDERS"),
            business_tz=os.getenv("BUSINESS_TZ", cls.business_tz),
            sweep_day_of_week=os.getenv("SWEEP_DAY_OF_WEEK", cls.sweep_day_of_week),
            sweep_hour=int(os.getenv("SWEEP_HOUR", "15")),
            sweep_minute=int(os.getenv("SWEEP_MINUTE", "32")),
            pickup_hour=int(os.getenv("PICKUP_HOUR", "4")),
            token_max_age_hours=float(os.getenv("TOKEN_MAX_AGE_HOURS", "10")),
            pickup_location=os.getenv("PICKUP_LOCATION", cls.pickup_location),
            default_phone=os.getenv("DEFAULT_PHONE", cls.default_phone),
        )
