"""Tests for webhook security module."""

import base64
import hashlib
import hmac
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.interface.webhook_security import (
    compute_signature,
    validate_webhook_delivery,
    validate_webhook_signature,
    verify_webhook_security,
)


BODY = b'{"event_name": "item:completed", "event_data": {"id": "td-1"}}'
SECRET = "client-secret"


def _redis(*, available: bool = True, was_set: bool = True) -> MagicMock:
    mock = MagicMock()
    mock.is_available = available
    mock.set_if_not_exists = AsyncMock(return_value=was_set)
    return mock


@pytest.mark.unit
class TestValidateWebhookSignature:
    """Test HMAC signature validation."""

    def test_signature_matches_todoist_format(self) -> None:
        expected = base64.b64encode(hmac.new(SECRET.encode(), BODY, hashlib.sha256).digest()).decode()

        assert compute_signature(BODY, SECRET) == expected

    def test_valid_signature(self) -> None:
        result = validate_webhook_signature(BODY, compute_signature(BODY, SECRET), SECRET)

        assert result.is_valid is True
        assert result.error_message is None
        assert result.http_status_code is None

    def test_tampered_body(self) -> None:
        signature = compute_signature(BODY, SECRET)

        result = validate_webhook_signature(BODY.replace(b"td-1", b"td-2"), signature, SECRET)

        assert result.is_valid is False
        assert result.error_message == "Invalid signature"
        assert result.http_status_code == 401

    def test_missing_signature(self) -> None:
        result = validate_webhook_signature(BODY, None, SECRET)

        assert result.is_valid is False
        assert result.error_message == "Missing webhook signature"
        assert result.http_status_code == 401

    def test_no_secret_configured(self) -> None:
        assert validate_webhook_signature(BODY, None, None).is_valid is True


@pytest.mark.unit
class TestValidateWebhookDelivery:
    """Test delivery id deduplication."""

    async def test_new_delivery(self) -> None:
        with patch("src.interface.webhook_security.redis_client", _redis(was_set=True)) as mock_redis:
            result = await validate_webhook_delivery("delivery-1")

        assert result.is_valid is True
        mock_redis.set_if_not_exists.assert_awaited_once_with("webhook:delivery:delivery-1", "1", ttl_seconds=86400)

    async def test_duplicate_delivery(self) -> None:
        with patch("src.interface.webhook_security.redis_client", _redis(was_set=False)):
            result = await validate_webhook_delivery("delivery-1")

        assert result.is_valid is False
        assert result.error_message == "Duplicate webhook"
        assert result.http_status_code == 200

    async def test_redis_unavailable(self) -> None:
        with patch("src.interface.webhook_security.redis_client", _redis(available=False)) as mock_redis:
            result = await validate_webhook_delivery("delivery-1")

        assert result.is_valid is True
        mock_redis.set_if_not_exists.assert_not_awaited()

    async def test_missing_delivery_id(self) -> None:
        assert (await validate_webhook_delivery(None)).is_valid is True


@pytest.mark.unit
class TestVerifyWebhookSecurity:
    """Test the combined check."""

    async def test_signature_checked_before_delivery(self) -> None:
        with patch("src.interface.webhook_security.redis_client", _redis()) as mock_redis:
            result = await verify_webhook_security(
                BODY,
                received_signature="invalid",
                delivery_id="delivery-1",
                secret=SECRET,
            )

        assert result.http_status_code == 401
        mock_redis.set_if_not_exists.assert_not_awaited()

    async def test_all_checks_pass(self) -> None:
        with patch("src.interface.webhook_security.redis_client", _redis()):
            result = await verify_webhook_security(
                BODY,
                received_signature=compute_signature(BODY, SECRET),
                delivery_id="delivery-1",
                secret=SECRET,
            )

        assert result.is_valid is True
