"""Pytest configuration and fixtures for unit tests."""

from collections.abc import Awaitable, Callable
from typing import Any

import pytest

from src.core.scheduler_tracker import job_tracker
from src.domain.create_models import RoutineCreate
from src.domain.routine import Duration, Frequency, Routine
from src.modules.routines import service
from tests.unit.mocks import MONDAY_9AM, FakeTodoist, InMemoryDBClient


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patch src.core.db_client functions with the in-memory implementation."""
    monkeypatch.setattr("src.core.db_client.create_record", in_memory_db.create_record)
    monkeypatch.setattr("src.core.db_client.get_record", in_memory_db.get_record)
    monkeypatch.setattr("src.core.db_client.update_record", in_memory_db.update_record)
    monkeypatch.setattr("src.core.db_client.delete_record", in_memory_db.delete_record)
    monkeypatch.setattr("src.core.db_client.list_records", in_memory_db.list_records)
    monkeypatch.setattr("src.core.db_client.list_all_records", in_memory_db.list_all_records)
    monkeypatch.setattr("src.core.db_client.get_first_record", in_memory_db.get_first_record)
    return in_memory_db


@pytest.fixture
def fake_todoist(monkeypatch):
    """Replace the Todoist client calls with a recording fake."""
    fake = FakeTodoist()
    monkeypatch.setattr("src.interface.todoist_client.create_task", fake.create_task)
    monkeypatch.setattr("src.interface.todoist_client.close_task", fake.close_task)
    monkeypatch.setattr("src.interface.todoist_client.delete_task", fake.delete_task)
    return fake


@pytest.fixture(autouse=True)
def reset_job_tracker():
    """Clear in-memory job tracker state between tests."""
    job_tracker._memory_storage.clear()
    job_tracker._dead_letter_queue.clear()
    job_tracker._held_locks.clear()
    yield
    job_tracker._memory_storage.clear()
    job_tracker._dead_letter_queue.clear()
    job_tracker._held_locks.clear()


@pytest.fixture
def monday_9am() -> int:
    return MONDAY_9AM


@pytest.fixture
def make_routine(patched_db) -> Callable[..., Awaitable[Routine]]:
    """Factory creating routines through the service with sensible defaults."""

    async def _make(**overrides: Any) -> Routine:
        fields: dict[str, Any] = {
            "name": "Water the plants",
            "frequency": Frequency.WEEKLY,
            "duration": Duration.FIFTEEN_MINUTES,
        }
        fields.update(overrides)
        return await service.create_routine(RoutineCreate(**fields))

    return _make

