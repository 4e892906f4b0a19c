"""
Tests for Linear webhook verification.

Covers the pure verifier (ordering, constant-time signature check,
replay window) and the HTTP status mapping of /webhooks/linear.
"""
import json
import time

import pytest

from portal.core.config import settings
from portal.core.errors import AuthenticationFailure, ConfigurationError, MalformedPayload
from portal.services.webhooks.linear import compute_signature, verify_linear_webhook

SECRET = "whsec-test"
NOW_MS = 1_767_225_600_000


def _body(**overrides) -> bytes:
    payload = {
        "type": "Issue",
        "action": "update",
        "data": {"id": "issue-1"},
        "webhookTimestamp": NOW_MS,
    }
    payload.update(overrides)
    return json.dumps(payload).encode()


def _verify(body: bytes, signature: str | None = None, secret: str | None = SECRET, **kwargs):
    if signature is None:
        signature = compute_signature(body, SECRET)
    return verify_linear_webhook(body, signature, secret, now_ms=NOW_MS, **kwargs)


# =============================================================================
# Verifier
# =============================================================================


def test_valid_event_is_accepted():
    payload = _verify(_body())

    assert payload["type"] == "Issue"
    assert payload["action"] == "update"


@pytest.mark.parametrize("skew_seconds,accepted", [(59, True), (-59, True), (61, False), (-61, False)])
def test_replay_window(skew_seconds, accepted):
    body = _body(webhookTimestamp=NOW_MS - skew_seconds * 1000)

    if accepted:
        assert _verify(body)["webhookTimestamp"] == NOW_MS - skew_seconds * 1000
    else:
        with pytest.raises(AuthenticationFailure, match="timestamp"):
            _verify(body)


def test_missing_secret_is_configuration_error():
    body = _body()
    with pytest.raises(ConfigurationError):
        _verify(body, secret="")
    with pytest.raises(ConfigurationError):
        _verify(body, secret=None)


def test_missing_signature_header():
    with pytest.raises(AuthenticationFailure, match="Missing signature"):
        verify_linear_webhook(_body(), None, SECRET, now_ms=NOW_MS)


def test_single_byte_change_fails_signature():
    body = _body()
    signature = compute_signature(body, SECRET)
    tampered = bytearray(body)
    tampered[10] ^= 0x01

    with pytest.raises(AuthenticationFailure, match="Invalid signature"):
        _verify(bytes(tampered), signature=signature)


def test_wrong_secret_fails_signature():
    body = _body()
    with pytest.raises(AuthenticationFailure, match="Invalid signature"):
        _verify(body, signature=compute_signature(body, "another-secret"))


@pytest.mark.parametrize("signature", ["not-hex", "abcd", ""])
def test_malformed_signature_fails(signature):
    body = _body()
    with pytest.raises(AuthenticationFailure):
        verify_linear_webhook(body, signature, SECRET, now_ms=NOW_MS)


def test_sha256_prefix_is_accepted():
    body = _body()
    signature = "sha256=" + compute_signature(body, SECRET)

    assert _verify(body, signature=signature)["type"] == "Issue"


def test_body_is_not_parsed_before_signature_check():
    # Unparseable body with a bad signature is an auth failure, not a 400
    with pytest.raises(AuthenticationFailure):
        _verify(b"{not json", signature="00" * 32)


def test_malformed_json_after_auth():
    body = b"{not json"
    with pytest.raises(MalformedPayload):
        _verify(body)


def test_non_object_payload_after_auth():
    body = b"[1, 2, 3]"
    with pytest.raises(MalformedPayload):
        _verify(body)


@pytest.mark.parametrize(
    "timestamp",
    [None, True, "1767225600000", float("inf")],
    ids=["absent", "bool", "string", "infinity"],
)
def test_bad_timestamp_types_rejected(timestamp):
    payload = {"type": "Issue", "action": "create"}
    if timestamp is not None:
        payload["webhookTimestamp"] = timestamp
    body = json.dumps(payload).encode()

    with pytest.raises(AuthenticationFailure):
        _verify(body)


# =============================================================================
# HTTP surface
# =============================================================================


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "LINEAR_WEBHOOK_SECRET", SECRET)
    return SECRET


def _fresh_body() -> bytes:
    return _body(webhookTimestamp=int(time.time() * 1000))


@pytest.mark.asyncio
async def test_route_acknowledges_verified_event(client, webhook_secret):
    body = _fresh_body()
    res = await client.post(
        "/webhooks/linear",
        content=body,
        headers={"linear-signature": compute_signature(body, SECRET)},
    )

    assert res.status_code == 200
    assert res.json() == {"received": True}


@pytest.mark.asyncio
async def test_route_rejects_bad_signature(client, webhook_secret):
    res = await client.post(
        "/webhooks/linear",
        content=_fresh_body(),
        headers={"linear-signature": "00" * 32},
    )

    assert res.status_code == 401


@pytest.mark.asyncio
async def test_route_rejects_missing_signature(client, webhook_secret):
    res = await client.post("/webhooks/linear", content=_fresh_body())

    assert res.status_code == 401


@pytest.mark.asyncio
async def test_route_rejects_stale_event(client, webhook_secret):
    body = _body(webhookTimestamp=int(time.time() * 1000) - 120_000)
    res = await client.post(
        "/webhooks/linear",
        content=body,
        headers={"linear-signature": compute_signature(body, SECRET)},
    )

    assert res.status_code == 401


@pytest.mark.asyncio
async def test_route_rejects_malformed_body_after_auth(client, webhook_secret):
    body = b"{broken"
    res = await client.post(
        "/webhooks/linear",
        content=body,
        headers={"linear-signature": compute_signature(body, SECRET)},
    )

    assert res.status_code == 400


@pytest.mark.asyncio
async def test_route_without_secret_is_server_error(client, monkeypatch):
    monkeypatch.setattr(settings, "LINEAR_WEBHOOK_SECRET", "")
    body = _fresh_body()
    res = await client.post(
        "/webhooks/linear",
        content=body,
        headers={"linear-signature": compute_signature(body, SECRET)},
    )

    assert res.status_code == 500


@pytest.mark.asyncio
async def test_route_rejects_oversized_payload(client, webhook_secret, monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_MAX_PAYLOAD_BYTES", 16)
    body = _fresh_body()
    res = await client.post(
        "/webhooks/linear",
        content=body,
        headers={"linear-signature": compute_signature(body, SECRET)},
    )

    assert res.status_code == 413
