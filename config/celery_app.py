"""
Celery application configuration for RecruitDesk.

Tasks are defined with @shared_task so they also run under
CELERY_TASK_ALWAYS_EAGER in tests.

Components:
  - Worker: processes billing events and sweeps (`celery -A config worker`)
  - Beat: triggers periodic tasks (`celery -A config beat`)

Configuration:
  - Broker: Redis (CELERY_BROKER_URL)
  - Result backend: None (fire-and-forget, all state in Django models)
  - Task serialization: JSON
  - Periodic tasks: django-celery-beat with DatabaseScheduler, populated
    by `manage.py sync_schedules --backend=celery`
"""

import logging
import os

from celery import Celery

logger = logging.getLogger(__name__)

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.local")

app = Celery("recruitdesk")

# namespace='CELERY' means all celery-related configuration keys
# should have a `CELERY_` prefix.
app.config_from_object("django.conf:settings", namespace="CELERY")

# Load task modules from all registered Django apps.
app.autodiscover_tasks()
