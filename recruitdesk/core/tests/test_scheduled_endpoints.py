"""
Tests for the worker-only scheduled task endpoints and their Celery twins.
"""

from unittest.mock import patch

from django.test import TestCase
from django.test import override_settings
from django.urls import reverse
from rest_framework.test import APIClient

from recruitdesk.billing.constants import SubscriptionStatus
from recruitdesk.billing.tests.factories import SubscriptionFactory
from recruitdesk.core.tasks import reset_usage_counters
from recruitdesk.core.tasks import run_lifecycle_sweep


class ScheduledEndpointTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.sweep_url = reverse("api:scheduled-lifecycle-sweep")
        self.reset_url = reverse("api:scheduled-reset-usage-counters")

    def test_hidden_on_web_instances(self):
        response = self.client.post(self.sweep_url)

        self.assertEqual(response.status_code, 404)

    @override_settings(APP_IS_WORKER=True)
    def test_lifecycle_sweep_runs_on_worker(self):
        # Period ended on March 26, long before the real clock
        subscription = SubscriptionFactory()

        response = self.client.post(self.sweep_url)

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data["task"], "lifecycle_sweep")
        self.assertEqual(data["status"], "completed")
        self.assertIn("Expired 1 subscription(s)", data["output"])
        subscription.refresh_from_db()
        self.assertEqual(subscription.status, SubscriptionStatus.EXPIRED)

    @override_settings(APP_IS_WORKER=True)
    def test_counter_reset_leaves_lifecycle_alone(self):
        subscription = SubscriptionFactory(jobs_created_this_month=4)

        response = self.client.post(self.reset_url)

        self.assertEqual(response.status_code, 200)
        self.assertNotIn("Expired", response.json()["output"])
        subscription.refresh_from_db()
        self.assertEqual(subscription.status, SubscriptionStatus.ACTIVE)
        self.assertEqual(subscription.jobs_created_this_month, 0)

    @override_settings(APP_IS_WORKER=True)
    def test_failure_is_reported(self):
        with patch(
            "recruitdesk.core.api.scheduled_tasks.call_command",
            side_effect=RuntimeError("database is locked"),
        ):
            response = self.client.post(self.sweep_url)

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["status"], "failed")


class ScheduledCeleryTaskTests(TestCase):
    def test_run_lifecycle_sweep_task(self):
        result = run_lifecycle_sweep.apply().get()

        self.assertEqual(result["status"], "completed")
        self.assertEqual(result["command"], "run_lifecycle_sweep")
        self.assertIn("Lifecycle sweep completed.", result["output"])

    def test_reset_usage_counters_task(self):
        SubscriptionFactory(jobs_created_this_month=2)

        result = reset_usage_counters.apply().get()

        self.assertIn("Reset 1 monthly job counter(s).", result["output"])
