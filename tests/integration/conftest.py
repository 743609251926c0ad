"""Pytest configuration and fixtures for integration tests against a real SQLite file."""

from collections.abc import AsyncIterator

import pytest

from src.core import db_client
from src.core.scheduler_tracker import job_tracker
from src.main import register_modules
from tests.unit.mocks import FakeTodoist


@pytest.fixture
async def sqlite_db(tmp_path, monkeypatch) -> AsyncIterator[str]:
    """Point the app at a fresh SQLite file with the routine tables created."""
    db_path = str(tmp_path / "cadence.db")
    monkeypatch.setattr("src.core.config.settings.sqlite_db_path", db_path)

    register_modules()
    await db_client.init_db()
    yield db_path
    await db_client.close_connection()


@pytest.fixture
def fake_todoist(monkeypatch) -> FakeTodoist:
    """Replace the Todoist client calls with a recording fake."""
    fake = FakeTodoist()
    monkeypatch.setattr("src.interface.todoist_client.create_task", fake.create_task)
    monkeypatch.setattr("src.interface.todoist_client.close_task", fake.close_task)
    monkeypatch.setattr("src.interface.todoist_client.delete_task", fake.delete_task)
    return fake


@pytest.fixture(autouse=True)
def reset_job_tracker():
    job_tracker._held_locks.clear()
    yield
    job_tracker._held_locks.clear()
