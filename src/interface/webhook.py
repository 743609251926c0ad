"""Todoist webhook endpoint feeding completion and deletion events into routines."""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request

from src.core.config import settings
from src.core.errors import classify_error_with_response
from src.interface import webhook_security
from src.modules.routines import dates, service


router = APIRouter(prefix="/webhook", tags=["webhook"])
logger = logging.getLogger(__name__)

ROUTINE_EVENTS = frozenset({"item:completed", "item:deleted", "item:uncompleted"})


def _parse_triggered_at(value: Any) -> int | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Unparseable triggered_at in webhook: %s", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return dates.to_ms(parsed)


@router.post("/todoist")
async def receive_todoist_webhook(request: Request, background_tasks: BackgroundTasks) -> dict[str, str]:
    """Receive and validate Todoist webhook POST requests.

    This endpoint:
    1. Verifies the HMAC signature against the raw body
    2. Drops deliveries already seen
    3. Returns 200 OK immediately
    4. Dispatches event processing to background tasks

    Raises:
        HTTPException: If the payload is invalid or the signature check fails
    """
    body = await request.body()

    security_result = await webhook_security.verify_webhook_security(
        body,
        received_signature=request.headers.get("X-Todoist-Hmac-SHA256"),
        delivery_id=request.headers.get("X-Todoist-Delivery-ID"),
        secret=settings.todoist_webhook_secret,
    )
    if not security_result.is_valid:
        # For duplicates, return 200 so Todoist stops retrying
        if security_result.error_message == "Duplicate webhook":
            return {"status": "duplicate"}

        raise HTTPException(
            status_code=security_result.http_status_code or 400,
            detail=security_result.error_message,
        )

    try:
        payload = json.loads(body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from e

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    event_name = payload.get("event_name")
    event_data = payload.get("event_data") or {}
    if event_name not in ROUTINE_EVENTS or not event_data.get("id"):
        return {"status": "ignored"}

    background_tasks.add_task(process_webhook_event, payload)
    return {"status": "received"}


async def process_webhook_event(payload: dict[str, Any]) -> None:
    """Apply one webhook event to the linked routine task.

    Errors are logged rather than raised; Todoist has already been answered.
    """
    event_name = payload["event_name"]
    external_task_id = str(payload["event_data"]["id"])

    try:
        task = await service.handle_external_task_event(
            external_task_id,
            event_name,
            completed_date=_parse_triggered_at(payload.get("triggered_at")),
        )
    except Exception as e:
        error_response = classify_error_with_response(e)
        logger.error(
            "Failed to process %s for external task %s: %s",
            event_name,
            external_task_id,
            e,
            extra={"error_code": error_response.code, "event_name": event_name},
        )
        return

    if task is not None:
        logger.info("Applied %s to routine task %s", event_name, task.id, extra={"status": str(task.status)})
