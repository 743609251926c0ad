"""Routines module for recurring task generation."""

from src.core.module import ScheduledJob


class RoutinesModule:
    """Routines module for recurring personal routines.

    Provides:
    - Routine CRUD with soft delete and defer/undefer
    - Idempotent generation of routine tasks from each routine's frequency
    - Lifecycle state machine for routine tasks
    - Completion rate tracking
    - Mirroring of routine tasks into Todoist
    - The daily generation job
    """

    @property
    def name(self) -> str:
        """Module name (unique identifier)."""
        return "routines"

    @property
    def description(self) -> str:
        """Module description (human-readable)."""
        return "Recurring routines that generate dated tasks and track completion"

    def get_table_schemas(self) -> dict[str, str]:
        """Return table schemas for this module."""
        return {
            "routines": """CREATE TABLE IF NOT EXISTS routines (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        name TEXT NOT NULL,
        description TEXT,
        category TEXT,
        frequency TEXT NOT NULL CHECK (frequency IN (
            'Daily', 'Twice a Week', 'Weekly', 'Every Other Week', 'Monthly',
            'Every Other Month', 'Quarterly', 'Twice a Year', 'Yearly', 'Every Other Year'
        )),
        duration TEXT NOT NULL
            CHECK (duration IN ('5min', '15min', '30min', '45min', '1hr', '2hr', '3hr', '4hr')),
        time_of_day TEXT CHECK (time_of_day IN ('Morning', 'Day', 'Evening', 'Night')),
        ideal_day INTEGER CHECK (ideal_day BETWEEN 0 AND 6),
        project_id TEXT,
        labels TEXT NOT NULL DEFAULT '[]',
        priority INTEGER NOT NULL DEFAULT 1 CHECK (priority BETWEEN 1 AND 4),
        timezone TEXT,
        defer INTEGER NOT NULL DEFAULT 0,
        deferral_date INTEGER,
        undeferred_date INTEGER,
        last_completed_date INTEGER,
        completion_rate_overall INTEGER NOT NULL DEFAULT 100,
        completion_rate_month INTEGER NOT NULL DEFAULT 100
    )""",
            "routine_tasks": """CREATE TABLE IF NOT EXISTS routine_tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        routine_id INTEGER NOT NULL REFERENCES routines(id),
        external_task_id TEXT NOT NULL DEFAULT 'PENDING',
        ready_date INTEGER NOT NULL,
        due_date INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending'
            CHECK (status IN ('pending', 'completed', 'missed', 'skipped', 'deferred')),
        completed_date INTEGER
    )""",
        }

    def get_indexes(self) -> list[str]:
        """Return indexes for this module's tables."""
        return [
            "CREATE INDEX IF NOT EXISTS idx_routines_defer ON routines (defer)",
            "CREATE INDEX IF NOT EXISTS idx_routines_project_id ON routines (project_id)",
            "CREATE INDEX IF NOT EXISTS idx_routine_tasks_routine_id ON routine_tasks (routine_id)",
            "CREATE INDEX IF NOT EXISTS idx_routine_tasks_status ON routine_tasks (status)",
            "CREATE INDEX IF NOT EXISTS idx_routine_tasks_routine_status ON routine_tasks (routine_id, status)",
            "CREATE INDEX IF NOT EXISTS idx_routine_tasks_external_task_id ON routine_tasks (external_task_id)",
        ]

    def get_scheduled_jobs(self) -> list[ScheduledJob]:
        """Return scheduled jobs for this module."""
        import src.modules.routines.scheduler_jobs

        return src.modules.routines.scheduler_jobs.get_scheduled_jobs()
