"""
Celery tasks for scheduled lifecycle operations.

Each task wraps a Django management command, so a beat-triggered run, an
HTTP-triggered run and a manual `manage.py` run do exactly the same thing.

To run the worker:
    celery -A config worker --loglevel=info

To run the beat scheduler:
    celery -A config beat --loglevel=info \\
        --scheduler django_celery_beat.schedulers:DatabaseScheduler
"""

import logging
from datetime import UTC
from datetime import datetime
from io import StringIO

from celery import shared_task
from django.core.management import call_command
from django.db import OperationalError

logger = logging.getLogger(__name__)

# Transient failures worth retrying; used by autoretry_for.
RETRYABLE_EXCEPTIONS = (
    OperationalError,  # Database connection issues
    ConnectionError,
    TimeoutError,
)


def _run_management_command(command_name: str, *args: str) -> dict:
    """
    Run a management command and return its output.

    Exceptions propagate so Celery's autoretry_for can handle them.
    """
    out = StringIO()
    call_command(command_name, *args, stdout=out)

    return {
        "status": "completed",
        "command": command_name,
        "output": out.getvalue().strip(),
        "timestamp": datetime.now(tz=UTC).isoformat(),
    }


# Default schedules (see registry.py):
#   run_lifecycle_sweep    - Daily at 00:05
#   reset_usage_counters   - Hourly at :15


@shared_task(
    bind=True,
    name="recruitdesk.run_lifecycle_sweep",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,
    retry_backoff_max=600,
    acks_late=True,
)
def run_lifecycle_sweep(self) -> dict:
    """
    Expire subscriptions past their deadlines and reset monthly counters.

    Default schedule: Daily at 00:05
    """
    logger.info("Starting scheduled lifecycle sweep (task_id=%s)", self.request.id)
    result = _run_management_command("run_lifecycle_sweep")
    logger.info("Lifecycle sweep completed: %s", result["output"])
    return result


@shared_task(
    bind=True,
    name="recruitdesk.reset_usage_counters",
    autoretry_for=RETRYABLE_EXCEPTIONS,
    max_retries=3,
    retry_backoff=60,
    retry_backoff_max=600,
    acks_late=True,
)
def reset_usage_counters(self) -> dict:
    """
    Reset job counters that crossed into a new month.

    Cheap when nothing is due, so it runs often and the first hour of a
    month doesn't wait for the daily sweep.

    Default schedule: Hourly at :15
    """
    logger.info("Starting scheduled counter reset (task_id=%s)", self.request.id)
    result = _run_management_command("run_lifecycle_sweep", "--counters-only")
    logger.info("Counter reset completed: %s", result["output"])
    return result
