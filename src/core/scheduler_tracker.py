"""Job execution tracking and monitoring for scheduled jobs."""

import asyncio
import json
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel

from src.core.config import constants
from src.core.redis_client import redis_client


logger = logging.getLogger(__name__)

JOB_STATE_TTL_SECONDS = 86400 * 7
DEAD_LETTER_TTL_SECONDS = 86400 * 30
CONSECUTIVE_FAILURE_THRESHOLD = 3


def _key(job_name: str, field: str) -> str:
    return f"scheduler:job:{job_name}:{field}"


class JobTracker:
    """Track job execution history and health status.

    Uses Redis when configured so several processes share state; otherwise
    keeps the same fields in memory.
    """

    def __init__(self) -> None:
        self._memory_storage: dict[str, dict[str, Any]] = {}
        self._dead_letter_queue: deque[tuple[str, str, str]] = deque(
            maxlen=constants.TRACKER_DEAD_LETTER_QUEUE_MAXLEN
        )
        self._held_locks: set[str] = set()

    def _memory(self, job_name: str) -> dict[str, Any]:
        return self._memory_storage.setdefault(job_name, {})

    async def record_job_start(self, job_name: str) -> None:
        now = datetime.now(UTC).isoformat()

        if redis_client.is_available:
            await redis_client.set(_key(job_name, "current_run"), now, ttl_seconds=3600)
        else:
            self._memory(job_name)["current_run"] = now

    async def record_job_success(self, job_name: str, result: dict[str, Any] | None = None) -> None:
        """Record successful job execution.

        Args:
            job_name: Name of the scheduled job
            result: Optional JSON-serializable summary of the run
        """
        now = datetime.now(UTC).isoformat()
        result_json = json.dumps(result, default=str) if result is not None else None

        if redis_client.is_available:
            await redis_client.set(_key(job_name, "last_success"), now, ttl_seconds=JOB_STATE_TTL_SECONDS)
            await redis_client.set(_key(job_name, "consecutive_failures"), "0", ttl_seconds=JOB_STATE_TTL_SECONDS)
            if result_json is not None:
                await redis_client.set(_key(job_name, "last_result"), result_json, ttl_seconds=JOB_STATE_TTL_SECONDS)
            await redis_client.increment(_key(job_name, "success_count"))
            await redis_client.expire(_key(job_name, "success_count"), JOB_STATE_TTL_SECONDS)
            await redis_client.delete(_key(job_name, "current_run"))
            return

        state = self._memory(job_name)
        state["last_success"] = now
        state["consecutive_failures"] = 0
        state["success_count"] = state.get("success_count", 0) + 1
        if result_json is not None:
            state["last_result"] = result_json
        state.pop("current_run", None)

    async def record_job_failure(self, job_name: str, error: str) -> int | None:
        """Record failed job execution.

        Returns:
            The number of consecutive failures including this one
        """
        now = datetime.now(UTC).isoformat()

        if redis_client.is_available:
            await redis_client.set(_key(job_name, "last_failure"), now, ttl_seconds=JOB_STATE_TTL_SECONDS)
            await redis_client.set(_key(job_name, "last_error"), error[:500], ttl_seconds=JOB_STATE_TTL_SECONDS)

            consecutive_failures = await redis_client.increment(_key(job_name, "consecutive_failures"))
            await redis_client.expire(_key(job_name, "consecutive_failures"), JOB_STATE_TTL_SECONDS)
            await redis_client.increment(_key(job_name, "failure_count"))
            await redis_client.expire(_key(job_name, "failure_count"), JOB_STATE_TTL_SECONDS)
            await redis_client.delete(_key(job_name, "current_run"))
            return consecutive_failures

        state = self._memory(job_name)
        state["last_failure"] = now
        state["last_error"] = error[:500]
        state["consecutive_failures"] = state.get("consecutive_failures", 0) + 1
        state["failure_count"] = state.get("failure_count", 0) + 1
        state.pop("current_run", None)
        return state["consecutive_failures"]

    async def get_job_status(self, job_name: str) -> dict[str, Any]:
        """Get job execution status as a flat dict."""
        fields = (
            "last_success",
            "last_failure",
            "last_error",
            "last_result",
            "consecutive_failures",
            "success_count",
            "failure_count",
            "current_run",
        )
        if redis_client.is_available:
            raw = {field: await redis_client.get(_key(job_name, field)) for field in fields}
        else:
            raw = {field: self._memory_storage.get(job_name, {}).get(field) for field in fields}

        last_result = raw["last_result"]
        return {
            "job_name": job_name,
            "last_success": raw["last_success"],
            "last_failure": raw["last_failure"],
            "last_error": raw["last_error"],
            "last_result": json.loads(last_result) if last_result else None,
            "consecutive_failures": int(raw["consecutive_failures"] or 0),
            "success_count": int(raw["success_count"] or 0),
            "failure_count": int(raw["failure_count"] or 0),
            "currently_running": raw["current_run"] is not None,
            "current_run_started": raw["current_run"],
        }

    async def add_to_dead_letter_queue(self, job_name: str, error: str, context: str) -> None:
        """Add persistently failed job to dead letter queue."""
        timestamp = datetime.now(UTC).isoformat()
        self._dead_letter_queue.append((job_name, error, context))

        logger.error(
            "Job added to dead letter queue",
            extra={"job_name": job_name, "error": error, "context": context, "timestamp": timestamp},
        )

        if redis_client.is_available:
            await redis_client.set(
                f"scheduler:dlq:{job_name}:{timestamp}",
                f"{error} | {context}",
                ttl_seconds=DEAD_LETTER_TTL_SECONDS,
            )

    def get_dead_letter_queue(self) -> list[dict[str, str]]:
        return [
            {"job_name": job_name, "error": error, "context": context}
            for job_name, error, context in self._dead_letter_queue
        ]

    async def acquire_run_lock(self, job_name: str, ttl_seconds: int = 3600) -> bool:
        """Claim the exclusive run slot for a job.

        Returns:
            True if the caller now holds the lock, False if a run is in progress
        """
        if redis_client.is_available:
            return await redis_client.set_if_not_exists(_key(job_name, "lock"), "1", ttl_seconds=ttl_seconds)

        if job_name in self._held_locks:
            return False
        self._held_locks.add(job_name)
        return True

    async def release_run_lock(self, job_name: str) -> None:
        if redis_client.is_available:
            await redis_client.delete(_key(job_name, "lock"))
        self._held_locks.discard(job_name)


# Global job tracker instance
job_tracker = JobTracker()


def _summarize(result: object) -> dict[str, Any] | None:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json")
    if isinstance(result, dict):
        return result
    return None


async def retry_job_with_backoff(
    job_func: Callable[[], Awaitable[object]],
    job_name: str,
    max_retries: int = 3,
    base_delay: float = 2.0,
) -> None:
    """Execute job with retry logic and exponential backoff.

    Args:
        job_func: Async function to execute; a returned model or dict is kept as the run summary
        job_name: Name of the job for tracking
        max_retries: Maximum number of retry attempts
        base_delay: Base delay in seconds for exponential backoff
    """
    await job_tracker.record_job_start(job_name)

    last_error = None
    for attempt in range(max_retries):
        try:
            logger.info("Executing %s (attempt %d/%d)", job_name, attempt + 1, max_retries)
            result = await job_func()
        except Exception as e:
            last_error = str(e)
            logger.error("%s failed on attempt %d/%d: %s", job_name, attempt + 1, max_retries, last_error)

            if attempt < max_retries - 1:
                delay = base_delay**attempt
                logger.info("Retrying %s in %ds", job_name, delay)
                await asyncio.sleep(delay)
            continue

        await job_tracker.record_job_success(job_name, _summarize(result))
        logger.info("%s completed successfully", job_name)
        return

    error_msg = f"Failed after {max_retries} attempts: {last_error}"
    consecutive_failures = await job_tracker.record_job_failure(job_name, error_msg)

    logger.critical(
        "%s failed after all retry attempts",
        job_name,
        extra={"error": error_msg, "consecutive_failures": consecutive_failures},
    )

    if consecutive_failures and consecutive_failures >= CONSECUTIVE_FAILURE_THRESHOLD:
        await job_tracker.add_to_dead_letter_queue(
            job_name=job_name,
            error=last_error or "Unknown error",
            context=f"Failed {consecutive_failures} consecutive times",
        )
