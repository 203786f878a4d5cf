"""
Periodic lifecycle sweep.

`LifecycleScheduler.run_once(now)` expires subscriptions whose deadline has
passed, resets monthly job counters that crossed into a new month, and gives
back job reservations that were never committed or released.

Overlapping runs (two workers during a deploy, a manual run during the
scheduled one) are safe without any external lock: every write goes through
the same compare-and-swap guards the request path uses, so the loser of a
race finds nothing left to do.
"""

import logging
from dataclasses import asdict
from dataclasses import dataclass
from datetime import datetime
from datetime import timedelta

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from recruitdesk.billing import state_machine as sm
from recruitdesk.billing.constants import SubscriptionStatus
from recruitdesk.billing.exceptions import ConflictError
from recruitdesk.billing.store import EntitlementStore
from recruitdesk.billing.usage import UsageCounter
from recruitdesk.billing.usage import conflict_retry_limit

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    expired_trials: int = 0
    expired_periods: int = 0
    expired_grace_periods: int = 0
    counters_reset: int = 0
    reservations_expired: int = 0
    conflicts: int = 0
    skipped: int = 0

    @property
    def expired_total(self) -> int:
        return self.expired_trials + self.expired_periods + self.expired_grace_periods

    def as_dict(self) -> dict:
        return asdict(self)


class LifecycleScheduler:
    def __init__(
        self,
        store: EntitlementStore | None = None,
        usage: UsageCounter | None = None,
    ):
        self.store = store or EntitlementStore()
        self.usage = usage or UsageCounter(self.store)

    @property
    def batch_size(self) -> int:
        return getattr(settings, "BILLING_SWEEP_BATCH_SIZE", 500)

    @property
    def reservation_ttl(self) -> timedelta:
        return timedelta(minutes=getattr(settings, "BILLING_RESERVATION_TTL_MINUTES", 30))

    def run_once(
        self,
        now: datetime | None = None,
        *,
        counters_only: bool = False,
    ) -> SweepReport:
        """
        Run one sweep at `now`.

        Database errors propagate so the calling task can retry; a rerun
        picks up where this one stopped.
        """
        now = now or timezone.now()
        report = SweepReport()

        if not counters_only:
            query = self.store.past_deadline_query(now)
            for pk in self.store.iter_subscription_ids(query, self.batch_size):
                self._expire(pk, now, report)

        entitled = self.store.iter_subscription_ids(
            self.store.entitled_query(),
            self.batch_size,
        )
        for pk in entitled:
            subscription = self.store.get_subscription(pk)
            if self.usage.reset_if_due(subscription, now) is not None:
                report.counters_reset += 1

        report.reservations_expired = self.usage.expire_stale_reservations(
            now,
            self.reservation_ttl,
            self.batch_size,
        )

        logger.info("Lifecycle sweep at %s finished: %s", now.isoformat(), report.as_dict())
        return report

    def _expire(self, pk: int, now: datetime, report: SweepReport) -> None:
        attempts = conflict_retry_limit()
        for attempt in range(1, attempts + 1):
            try:
                with transaction.atomic():
                    subscription = self.store.get_subscription(pk)
                    snapshot = self.store.to_snapshot(subscription)
                    if snapshot.last_event_at is not None and now < snapshot.last_event_at:
                        # A newer event already decided this subscription's state
                        report.skipped += 1
                        return
                    result = sm.transition(snapshot, sm.Tick(), now)
                    if result is None:
                        return
                    old_status = subscription.status
                    self.store.apply_transition(subscription, result, now)
            except ConflictError:
                logger.debug(
                    "Expiry of subscription %s conflicted (attempt %s)",
                    pk,
                    attempt,
                )
                continue

            if old_status == SubscriptionStatus.TRIAL:
                report.expired_trials += 1
            elif old_status == SubscriptionStatus.GRACE_PERIOD:
                report.expired_grace_periods += 1
            else:
                report.expired_periods += 1
            return

        logger.warning(
            "Giving up on expiring subscription %s after %s conflicts",
            pk,
            attempts,
        )
        report.conflicts += 1
