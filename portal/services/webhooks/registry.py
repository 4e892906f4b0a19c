"""Webhook handler registry."""

from __future__ import annotations

from portal.services.webhooks.base import WebhookHandler
from portal.services.webhooks.linear import LinearWebhookHandler

_HANDLERS: dict[str, WebhookHandler] = {
    "linear": LinearWebhookHandler(),
}


def get_handler(name: str) -> WebhookHandler:
    handler = _HANDLERS.get(name)
    if not handler:
        raise KeyError(f"Unknown webhook handler: {name}")
    return handler
