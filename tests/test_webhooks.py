import json

from shiprelay.webhooks import shopify_hmac_ok
from tests.conftest import SECRET, sign


BODY = json.dumps({"id": 1001, "line_items": []}, separators=(",", ":")).encode()


def test_valid_signature_passes():
    assert shopify_hmac_ok(SECRET, BODY, sign(BODY))


def test_single_byte_mutation_fails():
    tampered = BODY.replace(b"1001", b"1002")
    assert not shopify_hmac_ok(SECRET, tampered, sign(BODY))


def test_missing_header_fails_without_raising():
    assert shopify_hmac_ok(SECRET, BODY, None) is False
    assert shopify_hmac_ok(SECRET, BODY, "") is False


def test_wrong_secret_fails():
    assert not shopify_hmac_ok(SECRET, BODY, sign(BODY, "other"))


def test_no_secret_configured_rejects():
    assert not shopify_hmac_ok("", BODY, sign(BODY, ""))


def test_reserialized_body_does_not_verify():
    pretty = json.dumps(json.loads(BODY), indent=2).encode()
    assert not shopify_hmac_ok(SECRET, pretty, sign(BODY))


def test_non_ascii_header_is_rejected():
    assert not shopify_hmac_ok(SECRET, BODY, "sïgnature")
