import threading
import time
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
import requests

from shiprelay.credentials import CredentialCache
from shiprelay.errors import AuthError
from tests.conftest import fake_response

LOGIN_URL = "https://apiv2.shiprocket.in/v1/external/auth/login"


class Clock:
    def __init__(self):
        self.now = datetime(2024, 5, 1, 8, 0, 0)

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def cache(clock):
    return CredentialCache(LOGIN_URL, "ops@example.com", "pw", clock=clock)


def test_first_get_logs_in(cache):
    with patch("shiprelay.credentials.requests.post",
               return_value=fake_response({"token": "t1"})) as post:
        cred = cache.get()
    assert cred.token == "t1"
    assert cred.bearer == "Bearer t1"
    post.assert_called_once()
    assert post.call_args.kwargs["json"] == {"email": "ops@example.com", "password": "pw"}


def test_cached_until_stale(cache, clock):
    with patch("shiprelay.credentials.requests.post",
               side_effect=[fake_response({"token": "t1"}), fake_response({"token": "t2"})]) as post:
        assert cache.get().token == "t1"
        clock.now += timedelta(hours=9, minutes=59)
        assert cache.get().token == "t1"
        clock.now += timedelta(minutes=1)
        assert cache.get().token == "t2"
    assert post.call_count == 2


def test_non_json_login_raises(cache):
    with patch("shiprelay.credentials.requests.post",
               return_value=fake_response(json_error=True, status_code=502)):
        with pytest.raises(AuthError):
            cache.refresh()


def test_missing_token_raises_and_keeps_nothing(cache):
    with patch("shiprelay.credentials.requests.post",
               return_value=fake_response({"message": "Invalid credentials"}, status_code=403)):
        with pytest.raises(AuthError):
            cache.get()
    with patch("shiprelay.credentials.requests.post",
               return_value=fake_response({"token": "t1"})) as post:
        assert cache.get().token == "t1"
    post.assert_called_once()


def test_network_error_is_auth_error(cache):
    with patch("shiprelay.credentials.requests.post",
               side_effect=requests.Timeout("slow")):
        with pytest.raises(AuthError):
            cache.get()


def test_invalidate_forces_login(cache):
    with patch("shiprelay.credentials.requests.post",
               side_effect=[fake_response({"token": "t1"}), fake_response({"token": "t2"})]):
        cache.get()
        cache.invalidate()
        assert cache.get().token == "t2"


def test_concurrent_cold_gets_share_one_login(cache):
    def slow_login(*args, **kwargs):
        time.sleep(0.1)
        return fake_response({"token": "t1"})

    results = []
    with patch("shiprelay.credentials.requests.post", side_effect=slow_login) as post:
        threads = [threading.Thread(target=lambda: results.append(cache.get().token))
                   for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

    assert post.call_count == 1
    assert results == ["t1"] * 8
