"""
API endpoints for scheduled tasks triggered by an external cron.

These endpoints wrap the same management commands as the Celery tasks in
recruitdesk.core.tasks.scheduled_tasks. They exist only on worker instances
(APP_IS_WORKER); authentication is done by the platform in front of the
worker, not by the application.

    POST /api/v1/scheduled/lifecycle-sweep/
    POST /api/v1/scheduled/reset-usage-counters/
"""

import logging
from io import StringIO

from django.conf import settings
from django.core.management import call_command
from django.http import Http404
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

logger = logging.getLogger(__name__)


class ScheduledTaskBaseView(APIView):
    """
    Base class for scheduled task endpoints.

    Subclasses set `task_name` and `command_args`.
    """

    # The platform in front of the worker authenticates these calls.
    authentication_classes = []
    permission_classes = []

    task_name: str = ""
    command_args: tuple[str, ...] = ()

    def check_worker_mode(self):
        """Ensure we're running on a worker instance."""
        if not getattr(settings, "APP_IS_WORKER", False):
            raise Http404

    def post(self, request):
        self.check_worker_mode()

        logger.info("Starting scheduled %s", self.task_name)
        try:
            out = StringIO()
            call_command("run_lifecycle_sweep", *self.command_args, stdout=out)
            output = out.getvalue().strip()
        except Exception as e:
            logger.exception("Scheduled %s failed", self.task_name)
            return Response(
                {
                    "task": self.task_name,
                    "status": "failed",
                    "error": str(e),
                },
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        logger.info("Scheduled %s completed: %s", self.task_name, output)
        return Response(
            {
                "task": self.task_name,
                "status": "completed",
                "output": output,
            },
            status=status.HTTP_200_OK,
        )


class LifecycleSweepView(ScheduledTaskBaseView):
    """
    Expire lapsed subscriptions and reset monthly counters.

    URL: POST /api/v1/scheduled/lifecycle-sweep/
    Recommended schedule: Daily at 00:05
    """

    task_name = "lifecycle_sweep"


class ResetUsageCountersView(ScheduledTaskBaseView):
    """
    Reset job counters that crossed into a new month.

    URL: POST /api/v1/scheduled/reset-usage-counters/
    Recommended schedule: Hourly
    """

    task_name = "reset_usage_counters"
    command_args = ("--counters-only",)
