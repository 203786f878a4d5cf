"""
Scheduled Task Registry - Single source of truth for periodic tasks.

Each periodic task is defined once here with everything any scheduling
backend needs:

    - Celery Beat (worker deployments with a broker)
    - External cron (a platform scheduler calling worker HTTP endpoints)

Usage:

    from recruitdesk.core.tasks.registry import SCHEDULED_TASKS, get_tasks_for_backend

    for task in SCHEDULED_TASKS:
        print(f"{task.name}: {task.schedule_cron}")

    celery_tasks = get_tasks_for_backend("celery")

The registry is consumed by the sync_schedules management command.
"""

from dataclasses import dataclass
from dataclasses import field
from enum import StrEnum


class Backend(StrEnum):
    """Execution backend for scheduled tasks."""

    CELERY = "celery"  # Celery Beat with DatabaseScheduler
    HTTP = "http"  # External cron calling the worker endpoints
    ALL = "all"


@dataclass(frozen=True)
class ScheduledTaskDefinition:
    """Definition of a scheduled task for any scheduling backend."""

    # Identity
    id: str  # Unique identifier, e.g., "lifecycle-sweep"
    name: str  # Human-readable name for display

    celery_task: str  # Registered Celery task name
    api_endpoint: str  # Worker endpoint for external cron

    schedule_cron: str

    # Metadata
    description: str = ""
    enabled: bool = True

    backends: tuple[Backend, ...] = field(default=(Backend.ALL,))

    @property
    def job_name(self) -> str:
        return f"recruitdesk-{self.id}"

    def supports_backend(self, backend: Backend) -> bool:
        if Backend.ALL in self.backends:
            return True
        return backend in self.backends


# =============================================================================
# SCHEDULED TASK DEFINITIONS
# =============================================================================

SCHEDULED_TASKS: tuple[ScheduledTaskDefinition, ...] = (
    ScheduledTaskDefinition(
        id="lifecycle-sweep",
        name="Subscription Lifecycle Sweep",
        celery_task="recruitdesk.run_lifecycle_sweep",
        api_endpoint="/api/v1/scheduled/lifecycle-sweep/",
        schedule_cron="5 0 * * *",  # Daily at 00:05
        description="Expire trials, billing periods and grace periods past their end",
    ),
    ScheduledTaskDefinition(
        id="reset-usage-counters",
        name="Reset Monthly Usage Counters",
        celery_task="recruitdesk.reset_usage_counters",
        api_endpoint="/api/v1/scheduled/reset-usage-counters/",
        schedule_cron="15 * * * *",  # Hourly at :15
        description="Reset job counters that crossed into a new month",
    ),
)


def get_tasks_for_backend(backend: Backend | str) -> list[ScheduledTaskDefinition]:
    if isinstance(backend, str):
        backend = Backend(backend)

    return [task for task in SCHEDULED_TASKS if task.supports_backend(backend)]


def get_task_by_id(task_id: str) -> ScheduledTaskDefinition | None:
    for task in SCHEDULED_TASKS:
        if task.id == task_id:
            return task
    return None
