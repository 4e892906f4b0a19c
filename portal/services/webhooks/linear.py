"""Linear webhook handler.

Verification order, each step failing closed:

1. shared secret configured (else 500)
2. ``linear-signature`` header present (else 401)
3. HMAC-SHA256 of the raw body matches, compared in constant time (else 401)
4. body parses as a JSON object (else 400)
5. ``webhookTimestamp`` within the allowed skew of server time (else 401)

The body is never parsed before step 3 succeeds. Verified events are only
logged and acknowledged.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import math
import time
from typing import Any

from fastapi import HTTPException, Request

from portal.core.config import settings
from portal.core.errors import AuthenticationFailure, ConfigurationError, MalformedPayload

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "linear-signature"
_SIGNATURE_PREFIX = "sha256="


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def _signature_matches(body: bytes, signature_header: str, secret: str) -> bool:
    provided = signature_header.strip()
    if provided.lower().startswith(_SIGNATURE_PREFIX):
        provided = provided[len(_SIGNATURE_PREFIX):]
    try:
        provided_bytes = bytes.fromhex(provided)
    except ValueError:
        return False
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    # compare_digest treats a length mismatch as plain inequality
    return hmac.compare_digest(expected, provided_bytes)


def _timestamp_is_fresh(value: Any, now_ms: float, max_skew_ms: float) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if not math.isfinite(value):
        return False
    return abs(now_ms - value) <= max_skew_ms


def verify_linear_webhook(
    body: bytes,
    signature_header: str | None,
    secret: str | None,
    *,
    now_ms: float | None = None,
    max_skew_ms: float = 60_000,
) -> dict[str, Any]:
    """Authenticate a Linear webhook and return its parsed payload.

    Pure function of its inputs; raises ConfigurationError,
    AuthenticationFailure or MalformedPayload.
    """
    if not secret:
        raise ConfigurationError("Webhook secret not configured")

    if not signature_header:
        raise AuthenticationFailure("Missing signature")

    if not _signature_matches(body, signature_header, secret):
        raise AuthenticationFailure("Invalid signature")

    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedPayload("Invalid JSON") from exc
    if not isinstance(payload, dict):
        raise MalformedPayload("Payload must be a JSON object")

    if now_ms is None:
        now_ms = time.time() * 1000
    if not _timestamp_is_fresh(payload.get("webhookTimestamp"), now_ms, max_skew_ms):
        raise AuthenticationFailure("Invalid webhook timestamp")

    return payload


async def _read_body_safe(request: Request) -> bytes:
    max_bytes = settings.WEBHOOK_MAX_PAYLOAD_BYTES
    content_length = request.headers.get("content-length")
    if content_length:
        try:
            if int(content_length) > max_bytes:
                raise HTTPException(413, "Payload too large")
        except ValueError:
            pass

    chunks: list[bytes] = []
    total = 0
    async for chunk in request.stream():
        if not chunk:
            continue
        total += len(chunk)
        if total > max_bytes:
            raise HTTPException(413, "Payload too large")
        chunks.append(chunk)
    return b"".join(chunks)


class LinearWebhookHandler:
    async def handle(self, request: Request, **kwargs):
        """
        Receive Linear webhook events.

        Security:
        - Validates linear-signature HMAC over the raw body
        - Rejects events outside the replay window
        """
        body = await _read_body_safe(request)
        try:
            payload = verify_linear_webhook(
                body,
                request.headers.get(SIGNATURE_HEADER),
                settings.LINEAR_WEBHOOK_SECRET,
                max_skew_ms=settings.WEBHOOK_MAX_SKEW_SECONDS * 1000,
            )
        except ConfigurationError:
            logger.error("LINEAR_WEBHOOK_SECRET not configured")
            raise
        except AuthenticationFailure as exc:
            logger.warning("Linear webhook rejected: %s", exc.message)
            raise
        except MalformedPayload as exc:
            logger.warning("Linear webhook payload error: %s", exc.message)
            raise

        logger.info(
            "Linear webhook received: %s - %s",
            payload.get("type", "unknown"),
            payload.get("action", "unknown"),
        )
        return {"received": True}
