"""Webhooks router - inbound events from Linear."""

import logging

from fastapi import APIRouter, Request

from portal.core.rate_limit import limiter, webhook_limit
from portal.services.webhooks.registry import get_handler

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/linear")
@limiter.limit(webhook_limit())
async def receive_linear_webhook(request: Request):
    """
    Receive Linear webhook events.

    Responds 200 {"received": true} once verified, 401 on a bad signature
    or stale timestamp, 400 on an unreadable body, 500 when the shared
    secret is not configured.
    """
    handler = get_handler("linear")
    return await handler.handle(request)
