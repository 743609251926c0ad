"""Webhook security utilities: signature verification and replay protection."""

import base64
import hashlib
import hmac
import logging
from typing import NamedTuple

from src.core.config import constants
from src.core.redis_client import redis_client


logger = logging.getLogger(__name__)


class WebhookSecurityResult(NamedTuple):
    """Result of webhook security validation."""

    is_valid: bool
    error_message: str | None
    http_status_code: int | None


_VALID = WebhookSecurityResult(is_valid=True, error_message=None, http_status_code=None)


def compute_signature(body: bytes, secret: str) -> str:
    """Base64 HMAC-SHA256 of the raw request body, as Todoist sends it."""
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def validate_webhook_signature(body: bytes, received_signature: str | None, secret: str | None) -> WebhookSecurityResult:
    """Validate the X-Todoist-Hmac-SHA256 header.

    Args:
        body: Raw request body
        received_signature: Signature received in request header
        secret: App client secret configured in settings

    Returns:
        WebhookSecurityResult indicating if the signature is valid
    """
    if not secret:
        # Secret not configured, skip validation
        return _VALID

    if not received_signature:
        logger.warning("Missing webhook signature")
        return WebhookSecurityResult(
            is_valid=False,
            error_message="Missing webhook signature",
            http_status_code=401,
        )

    if not hmac.compare_digest(received_signature, compute_signature(body, secret)):
        logger.warning("Invalid webhook signature")
        return WebhookSecurityResult(
            is_valid=False,
            error_message="Invalid signature",
            http_status_code=401,
        )

    return _VALID


async def validate_webhook_delivery(delivery_id: str | None) -> WebhookSecurityResult:
    """Validate a delivery hasn't been processed before (nonce check).

    Args:
        delivery_id: X-Todoist-Delivery-ID header value

    Returns:
        WebhookSecurityResult indicating if the delivery is new
    """
    if not delivery_id:
        return _VALID

    if not redis_client.is_available:
        logger.debug("Redis not available, skipping delivery deduplication")
        return _VALID

    was_set = await redis_client.set_if_not_exists(
        f"webhook:delivery:{delivery_id}",
        "1",
        ttl_seconds=constants.WEBHOOK_NONCE_TTL_SECONDS,
    )

    if not was_set:
        logger.debug("Duplicate webhook delivery: %s", delivery_id, extra={"delivery_id": delivery_id})
        return WebhookSecurityResult(
            is_valid=False,
            error_message="Duplicate webhook",
            http_status_code=200,
        )

    return _VALID


async def verify_webhook_security(
    body: bytes,
    *,
    received_signature: str | None,
    delivery_id: str | None,
    secret: str | None,
) -> WebhookSecurityResult:
    """Perform all webhook security validations.

    Returns:
        WebhookSecurityResult with validation result
    """
    signature_result = validate_webhook_signature(body, received_signature, secret)
    if not signature_result.is_valid:
        return signature_result

    return await validate_webhook_delivery(delivery_id)
