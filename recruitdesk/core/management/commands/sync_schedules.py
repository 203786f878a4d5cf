"""
Management command to synchronize scheduled task definitions.

Reads the task registry (recruitdesk.core.tasks.registry) and writes the
schedule entries for the chosen backend.

For Celery Beat:
    Creates or updates PeriodicTask records in django_celery_beat tables.

For external cron:
    Prints the jobs (schedule and worker endpoint) to configure in the
    platform scheduler.

Usage:
    python manage.py sync_schedules --backend=celery
    python manage.py sync_schedules --backend=celery --dry-run
    python manage.py sync_schedules --backend=http --format=json
    python manage.py sync_schedules --list
"""

import json
import logging

from django.core.management.base import BaseCommand
from django.core.management.base import CommandError
from django_celery_beat.models import CrontabSchedule
from django_celery_beat.models import PeriodicTask

from recruitdesk.core.tasks.registry import SCHEDULED_TASKS
from recruitdesk.core.tasks.registry import Backend
from recruitdesk.core.tasks.registry import get_tasks_for_backend

logger = logging.getLogger(__name__)

CRON_FIELD_COUNT = 5


class Command(BaseCommand):
    """Synchronize scheduled task definitions with the execution backend."""

    help = "Sync scheduled tasks from registry to Celery Beat or external cron"

    def add_arguments(self, parser):
        parser.add_argument(
            "--backend",
            type=str,
            choices=[Backend.CELERY.value, Backend.HTTP.value],
            help="Target backend to sync schedules for",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show what would be done without making changes",
        )
        parser.add_argument(
            "--list",
            action="store_true",
            dest="list_tasks",
            help="List all registered scheduled tasks",
        )
        parser.add_argument(
            "--format",
            type=str,
            choices=["text", "json"],
            default="text",
            help="Output format (default: text)",
        )

    def handle(self, *args, **options):
        if options["list_tasks"]:
            self._list_tasks(options)
            return

        backend = options.get("backend")
        if not backend:
            raise CommandError("Please specify --backend (celery, http) or use --list")

        if backend == Backend.CELERY:
            self._sync_celery_beat(options)
        else:
            self._output_http_config(options)

    def _list_tasks(self, options):
        if options["format"] == "json":
            tasks_data = [
                {
                    "id": task.id,
                    "name": task.name,
                    "celery_task": task.celery_task,
                    "api_endpoint": task.api_endpoint,
                    "schedule_cron": task.schedule_cron,
                    "description": task.description,
                    "enabled": task.enabled,
                    "backends": [b.value for b in task.backends],
                }
                for task in SCHEDULED_TASKS
            ]
            self.stdout.write(json.dumps(tasks_data, indent=2))
            return

        self.stdout.write(
            self.style.SUCCESS(
                f"\nRegistered Scheduled Tasks ({len(SCHEDULED_TASKS)} total)\n",
            ),
        )
        for task in SCHEDULED_TASKS:
            status = "✓" if task.enabled else "✗"
            self.stdout.write(f"\n{status} {task.name} ({task.id})")
            self.stdout.write(f"  Schedule:    {task.schedule_cron}")
            self.stdout.write(f"  Celery:      {task.celery_task}")
            self.stdout.write(f"  API:         {task.api_endpoint}")
            if task.description:
                self.stdout.write(f"  Description: {task.description}")

    def _sync_celery_beat(self, options):
        """Sync schedules to Celery Beat (django_celery_beat)."""
        dry_run = options["dry_run"]
        tasks = get_tasks_for_backend(Backend.CELERY)
        self.stdout.write(
            self.style.SUCCESS(f"\nSyncing {len(tasks)} tasks to Celery Beat..."),
        )

        if dry_run:
            for task in tasks:
                self.stdout.write(
                    f"  Would create/update PeriodicTask: {task.name} "
                    f"({task.schedule_cron} -> {task.celery_task})",
                )
            return

        created_count = 0
        updated_count = 0

        for task in tasks:
            schedule, _ = CrontabSchedule.objects.get_or_create(
                **self._parse_cron(task.schedule_cron),
            )
            defaults = {
                "task": task.celery_task,
                "enabled": task.enabled,
                "crontab": schedule,
            }

            _periodic_task, created = PeriodicTask.objects.update_or_create(
                name=task.name,
                defaults=defaults,
            )
            if created:
                created_count += 1
                self.stdout.write(self.style.SUCCESS(f"    Created: {task.name}"))
            else:
                updated_count += 1
                self.stdout.write(f"    Updated: {task.name}")

        logger.info(
            "Synced Celery Beat schedules (created=%s, updated=%s)",
            created_count,
            updated_count,
        )
        self.stdout.write(
            self.style.SUCCESS(f"Done! Created: {created_count}, Updated: {updated_count}"),
        )

    def _output_http_config(self, options):
        """Print the external cron jobs to configure."""
        tasks = get_tasks_for_backend(Backend.HTTP)

        if options["format"] == "json":
            config = {
                "tasks": [
                    {
                        "job_name": task.job_name,
                        "schedule": task.schedule_cron,
                        "endpoint": task.api_endpoint,
                        "description": task.description,
                        "enabled": task.enabled,
                    }
                    for task in tasks
                ],
            }
            self.stdout.write(json.dumps(config, indent=2))
            return

        self.stdout.write(
            self.style.SUCCESS(f"\nExternal Cron Configuration ({len(tasks)} jobs)\n"),
        )
        for task in tasks:
            self.stdout.write(f"\nJob: {task.job_name}")
            self.stdout.write(f"  Schedule: {task.schedule_cron}")
            self.stdout.write(f"  Endpoint: POST {task.api_endpoint}")
            self.stdout.write(f"  Enabled:  {task.enabled}")

    def _parse_cron(self, cron_expr: str) -> dict[str, str]:
        """Split a 5-field cron expression into CrontabSchedule fields."""
        parts = cron_expr.split()
        if len(parts) != CRON_FIELD_COUNT:
            raise ValueError(f"Invalid cron expression: {cron_expr}")

        return {
            "minute": parts[0],
            "hour": parts[1],
            "day_of_month": parts[2],
            "month_of_year": parts[3],
            "day_of_week": parts[4],
        }
