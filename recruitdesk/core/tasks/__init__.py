"""
Scheduled task execution for RecruitDesk.

Periodic work runs one of two ways, depending on the deployment:

1. **Celery Beat**: beat triggers the Celery tasks in `scheduled_tasks`,
   which wrap management commands. Schedules live in django-celery-beat's
   tables and are written by `manage.py sync_schedules --backend=celery`.

2. **External cron**: a platform scheduler POSTs to the worker-only
   endpoints in `recruitdesk.core.api.scheduled_tasks`.

Both are driven by the single registry in `recruitdesk.core.tasks.registry`.
"""

from recruitdesk.core.tasks.scheduled_tasks import reset_usage_counters
from recruitdesk.core.tasks.scheduled_tasks import run_lifecycle_sweep

__all__ = [
    "reset_usage_counters",
    "run_lifecycle_sweep",
]
