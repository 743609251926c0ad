"""Todoist REST client for mirroring routine tasks, with retry logic."""

import asyncio
import logging
import uuid
from typing import Any

import httpx
from pydantic import BaseModel, Field

from src.core.config import constants, settings
from src.core.errors import ExternalTaskCreateError


logger = logging.getLogger(__name__)


# HTTP status code constants for error handling
HTTP_CLIENT_ERROR_START = 400
HTTP_CLIENT_ERROR_END = 500


class ExternalTaskSpec(BaseModel):
    """Payload for creating a task in Todoist."""

    content: str = Field(..., description="Task title")
    description: str | None = Field(None, description="Task description")
    due_date: str = Field(..., description="Due date as YYYY-MM-DD")
    due_datetime: str | None = Field(None, description="RFC 3339 due datetime for time-anchored routines")
    deadline_date: str | None = Field(None, description="Deadline as YYYY-MM-DD when it differs from the due date")
    priority: int = Field(default=1, ge=1, le=4)
    labels: list[str] = Field(default_factory=list)
    project_id: str | None = Field(None, description="Target project; Todoist inbox when unset")
    duration: int | None = Field(None, gt=0, description="Estimated duration in minutes")

    def to_payload(self) -> dict[str, Any]:
        """Render the JSON body Todoist expects, omitting unset fields."""
        payload: dict[str, Any] = {
            "content": self.content,
            "due_date": self.due_date,
            "priority": self.priority,
            "labels": self.labels,
        }
        if self.due_datetime:
            # Todoist accepts only one of the due_* fields
            del payload["due_date"]
            payload["due_datetime"] = self.due_datetime
        if self.description:
            payload["description"] = self.description
        if self.deadline_date:
            payload["deadline_date"] = self.deadline_date
        if self.project_id:
            payload["project_id"] = self.project_id
        if self.duration:
            payload["duration"] = self.duration
            payload["duration_unit"] = "minute"
        return payload


def _headers(*, request_id: str | None = None) -> dict[str, str]:
    token = settings.require_credential("todoist_api_token", "Todoist")
    headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
    if request_id:
        headers["X-Request-Id"] = request_id
    return headers


async def _request(
    method: str,
    path: str,
    *,
    json: dict[str, Any] | None = None,
    request_id: str | None = None,
    max_retries: int,
    retry_delay: float,
) -> httpx.Response:
    """Send a request, retrying transport errors and 5xx responses with exponential backoff.

    Returns the first response that is either successful or a client error.

    Raises:
        httpx.HTTPError: When every attempt failed
    """
    url = f"{settings.todoist_base_url}{path}"
    headers = _headers(request_id=request_id)
    last_error: httpx.HTTPError | None = None

    for attempt in range(max_retries):
        try:
            async with httpx.AsyncClient(timeout=constants.API_TIMEOUT_SECONDS) as client:
                response = await client.request(method, url, json=json, headers=headers)

            if response.is_success or HTTP_CLIENT_ERROR_START <= response.status_code < HTTP_CLIENT_ERROR_END:
                return response

            raise httpx.HTTPStatusError(
                f"Server error: {response.status_code}", request=response.request, response=response
            )
        except httpx.HTTPError as e:
            last_error = e
            logger.warning("Todoist %s %s failed (attempt %d/%d): %s", method, path, attempt + 1, max_retries, e)
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_delay * (2**attempt))

    raise last_error or httpx.HTTPError(f"Todoist {method} {path} failed")


async def create_task(
    spec: ExternalTaskSpec,
    *,
    max_retries: int = constants.EXTERNAL_MAX_RETRIES,
    retry_delay: float = constants.EXTERNAL_RETRY_DELAY_SECONDS,
) -> str:
    """Create a task in Todoist and return its id.

    Retries share one X-Request-Id so Todoist deduplicates a create that
    succeeded but whose response was lost.

    Raises:
        ExternalTaskCreateError: If the task could not be created
    """
    try:
        response = await _request(
            "POST",
            "/tasks",
            json=spec.to_payload(),
            request_id=str(uuid.uuid4()),
            max_retries=max_retries,
            retry_delay=retry_delay,
        )
    except (httpx.HTTPError, ValueError) as e:
        msg = f"Failed to create Todoist task '{spec.content}': {e}"
        raise ExternalTaskCreateError(msg) from e

    if not response.is_success:
        msg = f"Todoist rejected task '{spec.content}' ({response.status_code}): {response.text}"
        raise ExternalTaskCreateError(msg, status_code=response.status_code)

    try:
        task_id = response.json().get("id")
    except ValueError:
        task_id = None
    if not task_id:
        msg = f"Todoist response for '{spec.content}' did not include a task id"
        raise ExternalTaskCreateError(msg, status_code=response.status_code)

    logger.info("Created Todoist task %s for '%s'", task_id, spec.content)
    return str(task_id)


async def close_task(
    task_id: str,
    *,
    max_retries: int = constants.EXTERNAL_MAX_RETRIES,
    retry_delay: float = constants.EXTERNAL_RETRY_DELAY_SECONDS,
) -> bool:
    """Close (complete) a Todoist task. Never raises; returns whether Todoist accepted it."""
    try:
        response = await _request(
            "POST", f"/tasks/{task_id}/close", max_retries=max_retries, retry_delay=retry_delay
        )
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Failed to close Todoist task %s: %s", task_id, e)
        return False

    if not response.is_success:
        logger.warning("Todoist refused to close task %s (%d): %s", task_id, response.status_code, response.text)
        return False

    logger.info("Closed Todoist task %s", task_id)
    return True


async def delete_task(
    task_id: str,
    *,
    max_retries: int = constants.EXTERNAL_MAX_RETRIES,
    retry_delay: float = constants.EXTERNAL_RETRY_DELAY_SECONDS,
) -> bool:
    """Delete a Todoist task. Never raises; returns whether Todoist accepted it."""
    try:
        response = await _request("DELETE", f"/tasks/{task_id}", max_retries=max_retries, retry_delay=retry_delay)
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Failed to delete Todoist task %s: %s", task_id, e)
        return False

    if not response.is_success:
        logger.warning("Todoist refused to delete task %s (%d): %s", task_id, response.status_code, response.text)
        return False

    logger.info("Deleted Todoist task %s", task_id)
    return True
