"""
Management command to run one lifecycle sweep.

Expires subscriptions past their trial, billing period or grace period,
resets monthly job counters that crossed into a new month, and releases
abandoned job reservations. Safe to run while another sweep is in progress.

Usage:
    python manage.py run_lifecycle_sweep
    python manage.py run_lifecycle_sweep --counters-only
    python manage.py run_lifecycle_sweep --now 2026-03-01T00:05:00Z
"""

from django.core.management.base import BaseCommand
from django.core.management.base import CommandError
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from recruitdesk.billing.scheduler import LifecycleScheduler


class Command(BaseCommand):
    help = "Expire lapsed subscriptions and reset monthly job counters."

    def add_arguments(self, parser):
        parser.add_argument(
            "--counters-only",
            action="store_true",
            help="Only reset monthly counters and release stale reservations",
        )
        parser.add_argument(
            "--now",
            help="Run as if the current time were this ISO 8601 timestamp",
        )

    def handle(self, *args, **options):
        now = None
        if options["now"]:
            now = parse_datetime(options["now"])
            if now is None:
                raise CommandError(f"Invalid --now timestamp: {options['now']}")
            if timezone.is_naive(now):
                now = timezone.make_aware(now, timezone.get_default_timezone())

        report = LifecycleScheduler().run_once(now, counters_only=options["counters_only"])

        if not options["counters_only"]:
            self.stdout.write(
                f"Expired {report.expired_total} subscription(s): "
                f"{report.expired_trials} trial(s), "
                f"{report.expired_periods} billing period(s), "
                f"{report.expired_grace_periods} grace period(s).",
            )
        self.stdout.write(f"Reset {report.counters_reset} monthly job counter(s).")
        self.stdout.write(f"Released {report.reservations_expired} stale reservation(s).")
        if report.conflicts:
            self.stdout.write(
                self.style.WARNING(
                    f"{report.conflicts} subscription(s) kept conflicting; "
                    "the next sweep will retry them.",
                ),
            )
        else:
            self.stdout.write(self.style.SUCCESS("Lifecycle sweep completed."))
