"""
Tests for the scheduled task registry.
"""

from recruitdesk.core.tasks import scheduled_tasks
from recruitdesk.core.tasks.registry import SCHEDULED_TASKS
from recruitdesk.core.tasks.registry import Backend
from recruitdesk.core.tasks.registry import get_task_by_id
from recruitdesk.core.tasks.registry import get_tasks_for_backend


def test_task_ids_are_unique():
    ids = [task.id for task in SCHEDULED_TASKS]
    assert len(ids) == len(set(ids))


def test_every_task_points_at_a_registered_celery_task():
    registered = {
        scheduled_tasks.run_lifecycle_sweep.name,
        scheduled_tasks.reset_usage_counters.name,
    }
    assert {task.celery_task for task in SCHEDULED_TASKS} == registered


def test_every_task_runs_on_both_backends():
    assert get_tasks_for_backend(Backend.CELERY) == list(SCHEDULED_TASKS)
    assert get_tasks_for_backend("http") == list(SCHEDULED_TASKS)


def test_get_task_by_id():
    sweep = get_task_by_id("lifecycle-sweep")

    assert sweep.schedule_cron == "5 0 * * *"
    assert sweep.job_name == "recruitdesk-lifecycle-sweep"
    assert get_task_by_id("clear-sessions") is None
