"""Unit tests for the routine service."""

import pytest

from src.core.db_client import RecordNotFoundError
from src.domain.create_models import RoutineCreate, RoutineTaskCreate
from src.domain.routine import Duration, Frequency, RoutineTaskStatus, TimeOfDay
from src.domain.update_models import RoutineUpdate
from src.modules.routines import dates, service
from src.modules.routines.records import ROUTINE_TASKS, get_routine, get_routine_task
from tests.unit.mocks import MONDAY_9AM


async def _add_task(db, routine_id: str, *, external_task_id: str = "PENDING", ready_date: int = MONDAY_9AM) -> str:
    payload = RoutineTaskCreate(
        routine_id=routine_id,
        ready_date=ready_date,
        due_date=ready_date,
        external_task_id=external_task_id,
    )
    record = await db.create_record(collection=ROUTINE_TASKS, data=payload.model_dump(mode="json"))
    return record["id"]


@pytest.mark.unit
class TestCreateRoutine:
    """Tests for create_routine."""

    async def test_create_routine_defaults(self, patched_db):
        routine = await service.create_routine(
            RoutineCreate(
                name="  Water the plants  ",
                frequency=Frequency.WEEKLY,
                duration=Duration.FIFTEEN_MINUTES,
                labels=["home"],
                time_of_day=TimeOfDay.MORNING,
            )
        )

        assert routine.name == "Water the plants"
        assert routine.defer is False
        assert routine.completion_rate_overall == 100
        assert routine.completion_rate_month == 100
        assert routine.labels == ["home"]
        assert routine.time_of_day == TimeOfDay.MORNING

    def test_blank_name_rejected(self):
        with pytest.raises(ValueError, match="blank"):
            RoutineCreate(name="   ", frequency=Frequency.DAILY, duration=Duration.FIVE_MINUTES)

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValueError, match="Unknown timezone"):
            RoutineCreate(
                name="Stretch",
                frequency=Frequency.DAILY,
                duration=Duration.FIVE_MINUTES,
                timezone="Mars/Olympus_Mons",
            )

    def test_ideal_day_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            RoutineCreate(name="Stretch", frequency=Frequency.WEEKLY, duration=Duration.FIVE_MINUTES, ideal_day=7)


@pytest.mark.unit
class TestUpdateRoutine:
    """Tests for update_routine."""

    async def test_only_set_fields_change(self, make_routine):
        routine = await make_routine(description="Ferns and cacti", priority=2)

        updated = await service.update_routine(routine.id, RoutineUpdate(priority=4))

        assert updated.priority == 4
        assert updated.description == "Ferns and cacti"

    async def test_explicit_none_clears_field(self, make_routine):
        routine = await make_routine(time_of_day=TimeOfDay.NIGHT)

        updated = await service.update_routine(routine.id, RoutineUpdate(time_of_day=None))

        assert updated.time_of_day is None

    async def test_empty_update_returns_routine(self, make_routine):
        routine = await make_routine()

        assert (await service.update_routine(routine.id, RoutineUpdate())).id == routine.id

    async def test_missing_routine(self, patched_db):
        with pytest.raises(RecordNotFoundError):
            await service.update_routine("404", RoutineUpdate(priority=2))


@pytest.mark.unit
class TestDeleteRoutine:
    """Tests for soft delete."""

    async def test_soft_delete_pauses_and_skips_pending(self, make_routine, patched_db):
        routine = await make_routine()
        task_id = await _add_task(patched_db, routine.id)

        deleted = await service.delete_routine(routine.id, now=MONDAY_9AM)

        assert deleted.defer is True
        assert deleted.deferral_date == MONDAY_9AM
        assert (await get_routine_task(task_id)).status == RoutineTaskStatus.SKIPPED
        assert deleted.completion_rate_overall == 0
        # Still readable after delete
        assert (await service.get_routine(routine.id)).id == routine.id

    async def test_delete_missing_routine(self, patched_db):
        with pytest.raises(RecordNotFoundError):
            await service.delete_routine("404")


@pytest.mark.unit
class TestQueries:
    """Tests for read operations."""

    async def test_list_routines_filters(self, make_routine):
        garden = await make_routine(name="Water the plants", project_id="garden")
        await make_routine(name="Clean the fridge", project_id="kitchen")
        paused = await make_routine(name="Backup photos")
        await service.defer_routine(paused.id)

        assert [r.name for r in await service.list_routines()] == [
            "Backup photos",
            "Clean the fridge",
            "Water the plants",
        ]
        assert [r.id for r in await service.list_routines(deferred=True)] == [paused.id]
        assert [r.id for r in await service.list_routines(project_id="garden")] == [garden.id]

    async def test_get_routine_tasks_by_status(self, make_routine, patched_db):
        routine = await make_routine()
        first = await _add_task(patched_db, routine.id, ready_date=dates.add_days(MONDAY_9AM, 1))
        second = await _add_task(patched_db, routine.id)
        await service.skip_routine_task(first)

        tasks = await service.get_routine_tasks(routine.id)
        pending = await service.get_routine_tasks(routine.id, status=RoutineTaskStatus.PENDING)

        assert [t.id for t in tasks] == [second, first]
        assert [t.id for t in pending] == [second]

    async def test_generation_status(self, make_routine, patched_db):
        daily = await make_routine(frequency=Frequency.DAILY)
        weekly = await make_routine(name="Laundry", frequency=Frequency.WEEKLY)
        await _add_task(patched_db, weekly.id)
        await _add_task(patched_db, daily.id)

        status = await service.get_routine_generation_status(now=MONDAY_9AM)

        assert status.routines_needing_generation == 1
        assert status.pending_tasks_count == 2

    async def test_lookup_by_external_id(self, make_routine, patched_db):
        routine = await make_routine()
        task_id = await _add_task(patched_db, routine.id)
        await service.link_routine_task(task_id, "td-42")

        found = await service.get_routine_task_by_external_id("td-42")

        assert found is not None
        assert found.id == task_id
        assert await service.get_routine_task_by_external_id("td-missing") is None
        assert await service.get_routine_task_by_external_id("PENDING") is None


@pytest.mark.unit
class TestTaskActions:
    """Tests for skip and complete."""

    async def test_skip_closes_external_task(self, make_routine, patched_db, fake_todoist):
        routine = await make_routine()
        task_id = await _add_task(patched_db, routine.id, external_task_id="td-7")

        task = await service.skip_routine_task(task_id, now=MONDAY_9AM)

        assert task.status == RoutineTaskStatus.SKIPPED
        assert fake_todoist.closed == ["td-7"]
        assert (await get_routine(routine.id)).completion_rate_overall == 0

    async def test_skip_survives_failed_close(self, make_routine, patched_db, fake_todoist):
        fake_todoist.close_result = False
        routine = await make_routine()
        task_id = await _add_task(patched_db, routine.id, external_task_id="td-7")

        task = await service.skip_routine_task(task_id)

        assert task.status == RoutineTaskStatus.SKIPPED

    async def test_skip_unlinked_task_does_not_call_todoist(self, make_routine, patched_db, fake_todoist):
        routine = await make_routine()
        task_id = await _add_task(patched_db, routine.id)

        await service.skip_routine_task(task_id)

        assert fake_todoist.closed == []

    async def test_skip_terminal_task_raises(self, make_routine, patched_db, fake_todoist):
        routine = await make_routine()
        task_id = await _add_task(patched_db, routine.id)
        await service.skip_routine_task(task_id)

        with pytest.raises(ValueError, match="Cannot"):
            await service.skip_routine_task(task_id)

    async def test_complete_advances_last_completed_date(self, make_routine, patched_db):
        routine = await make_routine()
        task_id = await _add_task(patched_db, routine.id)

        task = await service.mark_routine_task_completed(task_id, completed_date=MONDAY_9AM, now=MONDAY_9AM)

        assert task.status == RoutineTaskStatus.COMPLETED
        stored = await get_routine(routine.id)
        assert stored.last_completed_date == MONDAY_9AM
        assert stored.completion_rate_overall == 100

    async def test_older_completion_does_not_rewind_last_completed_date(self, make_routine, patched_db):
        routine = await make_routine()
        newer = await _add_task(patched_db, routine.id)
        older = await _add_task(patched_db, routine.id, ready_date=dates.add_days(MONDAY_9AM, -7))

        await service.mark_routine_task_completed(newer, completed_date=MONDAY_9AM, now=MONDAY_9AM)
        await service.mark_routine_task_completed(older, completed_date=dates.add_days(MONDAY_9AM, -6))

        assert (await get_routine(routine.id)).last_completed_date == MONDAY_9AM

    async def test_complete_closes_external_task(self, make_routine, patched_db, fake_todoist):
        routine = await make_routine()
        task_id = await _add_task(patched_db, routine.id, external_task_id="td-7")

        task = await service.mark_routine_task_completed(task_id, now=MONDAY_9AM)

        assert task.status == RoutineTaskStatus.COMPLETED
        assert fake_todoist.closed == ["td-7"]

    async def test_complete_survives_failed_close(self, make_routine, patched_db, fake_todoist):
        fake_todoist.close_result = False
        routine = await make_routine()
        task_id = await _add_task(patched_db, routine.id, external_task_id="td-7")

        task = await service.mark_routine_task_completed(task_id, now=MONDAY_9AM)

        assert task.status == RoutineTaskStatus.COMPLETED
        assert (await get_routine(routine.id)).last_completed_date == MONDAY_9AM

    async def test_completion_from_todoist_does_not_close_it_again(self, make_routine, patched_db, fake_todoist):
        routine = await make_routine()
        await _add_task(patched_db, routine.id, external_task_id="td-7")

        await service.handle_external_task_event("td-7", "item:completed", completed_date=MONDAY_9AM)

        assert fake_todoist.closed == []


@pytest.mark.unit
class TestHandleExternalTaskEvent:
    """Tests for webhook event routing."""

    async def test_completed_event(self, make_routine, patched_db):
        routine = await make_routine()
        task_id = await _add_task(patched_db, routine.id, external_task_id="td-1")

        task = await service.handle_external_task_event("td-1", "item:completed", completed_date=MONDAY_9AM)

        assert task is not None
        assert task.id == task_id
        assert task.status == RoutineTaskStatus.COMPLETED
        assert task.completed_date == MONDAY_9AM

    async def test_deleted_event_skips(self, make_routine, patched_db):
        routine = await make_routine()
        await _add_task(patched_db, routine.id, external_task_id="td-1")

        task = await service.handle_external_task_event("td-1", "item:deleted")

        assert task is not None
        assert task.status == RoutineTaskStatus.SKIPPED

    async def test_uncompleted_event_is_ignored(self, make_routine, patched_db):
        routine = await make_routine()
        task_id = await _add_task(patched_db, routine.id, external_task_id="td-1")
        await service.handle_external_task_event("td-1", "item:completed")

        assert await service.handle_external_task_event("td-1", "item:uncompleted") is None
        assert (await get_routine_task(task_id)).status == RoutineTaskStatus.COMPLETED

    async def test_unknown_external_id_is_ignored(self, patched_db):
        assert await service.handle_external_task_event("td-unknown", "item:completed") is None


@pytest.mark.unit
class TestClearAllPending:
    """Tests for clear_all_pending_routine_tasks."""

    async def test_clear(self, make_routine, patched_db, fake_todoist):
        routine = await make_routine()
        await _add_task(patched_db, routine.id, external_task_id="td-1")
        await _add_task(patched_db, routine.id)
        done = await _add_task(patched_db, routine.id, external_task_id="td-2")
        await service.mark_routine_task_completed(done)

        result = await service.clear_all_pending_routine_tasks()

        assert result.deleted == 1
        assert result.skipped == 1
        assert result.failed == 0
        assert result.routines_recalculated == 1
        assert fake_todoist.deleted == ["td-1"]
        assert [t["id"] for t in patched_db.records(ROUTINE_TASKS)] == [done]

    async def test_failed_external_delete_keeps_task(self, make_routine, patched_db, fake_todoist):
        fake_todoist.delete_result = False
        routine = await make_routine()
        task_id = await _add_task(patched_db, routine.id, external_task_id="td-1")

        result = await service.clear_all_pending_routine_tasks()

        assert result.failed == 1
        assert result.deleted == 0
        assert (await get_routine_task(task_id)).status == RoutineTaskStatus.PENDING
