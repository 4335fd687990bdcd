"""
FastAPI app: Shopify webhook intake, internal endpoints, weekly AWB sweep.

Webhook policy:
- Bad or missing X-Shopify-Hmac-Sha256 -> 401, nothing else happens.
- Authenticated but body is not a JSON object -> 400.
- Otherwise 200 right away; the order is processed in a background task
  so Shopify's response-time limit never triggers a redelivery.
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

import pytz
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import PlainTextResponse

from .carrier import ShiprocketClient
from .config import Settings
from .credentials import CredentialCache
from .errors import PersistenceError
from .geocoder import Geocoder
from .ledger import OrderLedger
from .pipeline import Relay
from .store import PendingShipmentStore
from .webhooks import shopify_hmac_ok

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "awb_sweep"


def build_relay(settings: Settings) -> Relay:
    """Wire the pipeline components from settings."""
    credentials = CredentialCache(
        login_url=f"{settings.shiprocket_base_url}/auth/login",
        email=settings.shiprocket_email,
        password=settings.shiprocket_password,
        max_age=timedelta(hours=settings.token_max_age_hours),
        timeout=settings.http_timeout,
    )
    return Relay(
        geocoder=Geocoder(settings.google_maps_api_key),
        carrier=ShiprocketClient(credentials, settings.shiprocket_base_url,
                                 timeout=settings.http_timeout),
        store=PendingShipmentStore(settings.pending_file),
        ledger=OrderLedger(settings.state_db),
        pickup_location=settings.pickup_location,
        default_phone=settings.default_phone,
        dedupe_orders=settings.dedupe_orders,
        business_tz=settings.business_tz,
        pickup_hour=settings.pickup_hour,
    )


def build_scheduler(settings: Settings, relay: Relay) -> BackgroundScheduler:
    """
    One weekly cron job. max_instances=1 + coalesce keep sweeps from
    overlapping or piling up after downtime.
    """
    tz = pytz.timezone(settings.business_tz)
    sched = BackgroundScheduler(timezone=tz)
    sched.add_job(
        relay.run_sweep_safely,
        CronTrigger(day_of_week=settings.sweep_day_of_week,
                    hour=settings.sweep_hour,
                    minute=settings.sweep_minute,
                    timezone=tz),
        id=SWEEP_JOB_ID,
        max_instances=1,
        coalesce=True,
    )
    return sched


def create_app(settings: Optional[Settings] = None,
               relay: Optional[Relay] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    relay = relay or build_relay(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Runs a single APScheduler instance in this process."""
        sched = build_scheduler(settings, relay)
        logger.info(
            "Scheduling AWB sweep: %s %02d:%02d (%s)",
            settings.sweep_day_of_week, settings.sweep_hour,
            settings.sweep_minute, settings.business_tz,
        )
        sched.start()
        try:
            yield
        finally:
            sched.shutdown(wait=False)

    # Disable automatic docs in production for less attack surface
    app = FastAPI(docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.settings = settings
    app.state.relay = relay

    async def check_internal_auth(x_internal_key: Optional[str] = Header(None)):
        """Enforce INTERNAL_API_KEY header on internal routes (401 otherwise)."""
        if not settings.internal_api_key or x_internal_key != settings.internal_api_key:
            raise HTTPException(status_code=401, detail="Unauthorized")
        return True

    @app.get("/order", response_class=PlainTextResponse)
    def order_live():
        return "Order API is live"

    @app.get("/health")
    def health():
        """Public uptime check."""
        try:
            pending = len(relay.store.load_all())
        except PersistenceError:
            pending = None
        return {"ok": True, "pending": pending}

    @app.post("/webhooks/orders_create", response_class=PlainTextResponse)
    async def orders_create(request: Request, background_tasks: BackgroundTasks,
                            x_shopify_hmac_sha256: Optional[str] = Header(None)):
        """
        Shopify orders/create webhook.
        - Verifies HMAC over the raw body.
        - Acknowledges, then relays the order in the background.
        """
        body = await request.body()
        if not shopify_hmac_ok(settings.shopify_secret, body, x_shopify_hmac_sha256):
            logger.warning("Shopify signature failed (%d bytes)", len(body))
            raise HTTPException(status_code=401, detail="Shopify signature failed")

        try:
            payload = json.loads(body)
        except ValueError:
            raise HTTPException(status_code=400, detail="Body is not JSON")
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Body is not a JSON object")

        logger.info("New Shopify order received: %s", payload.get("id"))
        background_tasks.add_task(relay.process_order_safely, payload)
        return "Order received"

    # ---- Internal-only ----

    @app.get("/pending")
    def pending(_=Depends(check_internal_auth)):
        """Shipments still waiting for an AWB."""
        try:
            return {"pending": relay.store.load_all()}
        except PersistenceError as e:
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/internal/sweep")
    def sweep_now(_=Depends(check_internal_auth)):
        """Run the AWB sweep immediately (manual intervention)."""
        try:
            return relay.run_sweep()
        except PersistenceError as e:
            raise HTTPException(status_code=500, detail=str(e))

    @app.get("/deadletters.csv", response_class=PlainTextResponse)
    def deadletters_csv(_=Depends(check_internal_auth)):
        """Download recent dead letters as CSV for investigation."""
        out = ["created_at,source,raw_id,reason,payload_json"]
        for r in relay.ledger.dead_letters():
            reason = str(r[3]).replace('"', '""')
            pj = str(r[4]).replace('"', '""')
            out.append(f'{r[0]},{r[1]},{r[2]},"{reason}","{pj}"')
        return "\n".join(out)

    return app
