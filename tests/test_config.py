import pytest

from shiprelay.config import Settings

REQUIRED = {
    "SHOPIFY_WEBHOOK_SECRET": "s",
    "SHIPROCKET_EMAIL": "ops@example.com",
    "SHIPROCKET_PASSWORD": "pw",
    "INTERNAL_API_KEY": "k",
}


@pytest.fixture(autouse=True)
def no_dotenv(monkeypatch):
    monkeypatch.setattr("shiprelay.config.load_dotenv", lambda: None)


def test_defaults(monkeypatch):
    for k, v in REQUIRED.items():
        monkeypatch.setenv(k, v)
    for k in ("PORT", "DEDUPE_ORDERS", "BUSINESS_TZ", "GOOGLE_MAPS_API_KEY"):
        monkeypatch.delenv(k, raising=False)
    s = Settings.from_env()
    assert s.port == 3000
    assert s.dedupe_orders is False
    assert s.business_tz == "Asia/Kolkata"
    assert s.google_maps_api_key == ""
    assert (s.sweep_day_of_week, s.sweep_hour, s.sweep_minute) == ("sun", 15, 32)


def test_overrides(monkeypatch):
    for k, v in REQUIRED.items():
        monkeypatch.setenv(k, v)
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("DEDUPE_ORDERS", "true")
    monkeypatch.setenv("SHIPROCKET_BASE_URL", "https://sr.test/v1/external/")
    s = Settings.from_env()
    assert s.port == 8080
    assert s.dedupe_orders is True
    assert s.shiprocket_base_url == "https://sr.test/v1/external"


@pytest.mark.parametrize("missing", sorted(REQUIRED))
def test_missing_secret_fails_fast(monkeypatch, missing):
    for k, v in REQUIRED.items():
        monkeypatch.setenv(k, v)
    monkeypatch.setenv(missing, "  ")
    with pytest.raises(RuntimeError, match=missing):
        Settings.from_env()
