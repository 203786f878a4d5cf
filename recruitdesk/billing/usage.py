"""
Usage counting for the two metered resources.

Job postings are counted per calendar month on the Subscription row and
handed out as two-phase reservations: `try_reserve_job_slot` increments the
counter with a single conditional UPDATE and returns a token; the caller then
commits the token alongside its own write, or releases it on failure.

Team members are not reserved. `can_add_member` compares a fresh count of
active roster rows against the plan's member limit; the roster's own unique
constraint covers double invites.

Usage:
    usage = UsageCounter()
    result = usage.try_reserve_job_slot(tenant.id)
    if isinstance(result, JobSlotGrant):
        create_job(...)
        usage.commit(result.reservation_token)
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC
from datetime import datetime

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from recruitdesk.billing import state_machine as sm
from recruitdesk.billing.constants import ReservationStatus
from recruitdesk.billing.exceptions import InvalidTransitionError
from recruitdesk.billing.exceptions import ReservationNotFoundError
from recruitdesk.billing.exceptions import SubscriptionNotFoundError
from recruitdesk.billing.exceptions import TemporarilyUnavailableError
from recruitdesk.billing.store import EntitlementStore

logger = logging.getLogger(__name__)


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class JobSlotGrant:
    reservation_token: uuid.UUID
    remaining: int | None  # None = unlimited


@dataclass(frozen=True)
class MemberSlotAvailable:
    limit: int
    current: int


@dataclass(frozen=True)
class LimitReached:
    limit: int
    current: int


@dataclass(frozen=True)
class NoActiveSubscription:
    """
    The tenant may not consume metered resources.

    `lapsed` is True when the subscription expired (or its deadline passed),
    False when it is past due, canceled, or missing altogether.
    """

    status: str | None = None
    lapsed: bool = False


# =============================================================================
# Helpers
# =============================================================================


def month_rolled_over(anchor: datetime, now: datetime) -> bool:
    """Return True if `now` is in a later UTC calendar month than `anchor`."""
    anchor = anchor.astimezone(UTC)
    now = now.astimezone(UTC)
    return (now.year, now.month) > (anchor.year, anchor.month)


def conflict_retry_limit() -> int:
    return getattr(settings, "BILLING_CONFLICT_RETRY_LIMIT", 3)


# =============================================================================
# UsageCounter
# =============================================================================


class UsageCounter:
    def __init__(self, store: EntitlementStore | None = None):
        self.store = store or EntitlementStore()

    # -------------------------------------------------------------------------
    # Monthly reset
    # -------------------------------------------------------------------------

    def reset_if_due(self, subscription, now: datetime | None = None) -> int | None:
        """
        Zero the job counter if `now` is in a new calendar month.

        The cycle is anchored on last_counter_reset_at, or on the
        subscription's creation if it was never reset. The write only matches
        the anchor this call read, so concurrent callers at the same `now`
        reset exactly once; the losers see the guard advanced and do nothing.

        Returns the new counter value (0) if this call performed the reset,
        otherwise None. `subscription` is updated in place either way.
        """
        now = now or timezone.now()
        anchor = subscription.last_counter_reset_at or subscription.created
        if not month_rolled_over(anchor, now):
            return None

        if self.store.reset_job_counter(
            subscription.pk,
            expected_reset_at=subscription.last_counter_reset_at,
            at=now,
        ):
            logger.info(
                "Reset monthly job counter for subscription %s (was %s)",
                subscription.pk,
                subscription.jobs_created_this_month,
            )
            subscription.jobs_created_this_month = 0
            subscription.last_counter_reset_at = now
            return 0

        subscription.refresh_from_db(
            fields=["jobs_created_this_month", "last_counter_reset_at"],
        )
        return None

    # -------------------------------------------------------------------------
    # Job reservations
    # -------------------------------------------------------------------------

    def try_reserve_job_slot(
        self,
        tenant_id: int,
        now: datetime | None = None,
    ) -> JobSlotGrant | LimitReached | NoActiveSubscription:
        """
        Reserve one job posting for the tenant's current cycle.

        Raises:
            TemporarilyUnavailableError: storage is unreachable, or the
                increment kept losing to lifecycle writers.
        """
        now = now or timezone.now()
        attempts = conflict_retry_limit()

        for attempt in range(1, attempts + 1):
            with self.store.guard():
                subscription = self.store.current_subscription(tenant_id)
                denial = self._denial_for(subscription, now)
                if denial is not None:
                    return denial

                self.reset_if_due(subscription, now)
                limit = subscription.plan.job_limit

                with transaction.atomic():
                    if self.store.increment_job_counter(subscription, limit):
                        fresh = self.store.get_subscription(subscription.pk)
                        reservation = self.store.create_reservation(subscription)
                        remaining = None
                        if limit is not None:
                            remaining = max(limit - fresh.jobs_created_this_month, 0)
                        logger.debug(
                            "Reserved job slot %s for tenant %s (remaining=%s)",
                            reservation.pk,
                            tenant_id,
                            remaining,
                        )
                        return JobSlotGrant(reservation.pk, remaining)

                fresh = self.store.get_subscription(subscription.pk)
                if (
                    fresh.version == subscription.version
                    and fresh.last_counter_reset_at == subscription.last_counter_reset_at
                    and limit is not None
                    and fresh.jobs_created_this_month >= limit
                ):
                    return LimitReached(limit=limit, current=fresh.jobs_created_this_month)

            logger.debug(
                "Job reservation for tenant %s raced a concurrent write (attempt %s)",
                tenant_id,
                attempt,
            )

        logger.warning(
            "Job reservation for tenant %s gave up after %s conflicts",
            tenant_id,
            attempts,
        )
        raise TemporarilyUnavailableError

    def commit(self, token, now: datetime | None = None) -> None:
        """
        Keep the slot for a reservation whose job was created.

        Committing twice is a no-op. Committing a reservation that was
        already released (or expired) raises InvalidTransitionError; the slot
        was handed back and may be in use by someone else.
        """
        now = now or timezone.now()
        with self.store.guard():
            if self.store.resolve_reservation(token, ReservationStatus.COMMITTED, now):
                return
            reservation = self.store.get_reservation(token)
            if reservation is None:
                raise ReservationNotFoundError(token)
            if reservation.status != ReservationStatus.COMMITTED:
                raise InvalidTransitionError(
                    f"Reservation {token} was already {reservation.status}.",
                    status=reservation.status,
                )

    def release(self, token, now: datetime | None = None) -> bool:
        """
        Give a reserved slot back. Returns False if it was already released.
        """
        now = now or timezone.now()
        with self.store.guard():
            released = self._give_back(token, ReservationStatus.RELEASED, now)
            if released:
                return True
            reservation = self.store.get_reservation(token)
            if reservation is None:
                raise ReservationNotFoundError(token)
            if reservation.status == ReservationStatus.COMMITTED:
                raise InvalidTransitionError(
                    f"Reservation {token} was already committed.",
                    status=reservation.status,
                )
            return False

    def expire_stale_reservations(self, now: datetime, ttl, batch_size: int) -> int:
        """Release pending reservations created before `now - ttl`."""
        cutoff = now - ttl
        expired = 0
        for token in self.store.stale_reservation_ids(cutoff, batch_size):
            if self._give_back(token, ReservationStatus.EXPIRED, now):
                expired += 1
        if expired:
            logger.info("Released %s abandoned job reservations", expired)
        return expired

    def _give_back(self, token, status: str, now: datetime) -> bool:
        with transaction.atomic():
            if not self.store.resolve_reservation(token, status, now):
                return False
            reservation = self.store.get_reservation(token)
            # A reset since the reservation already zeroed this slot
            self.store.decrement_job_counter(
                reservation.subscription_id,
                reservation.cycle_anchor,
            )
            return True

    # -------------------------------------------------------------------------
    # Members
    # -------------------------------------------------------------------------

    def check_member_slot(
        self,
        tenant_id: int,
        now: datetime | None = None,
    ) -> MemberSlotAvailable | LimitReached | NoActiveSubscription:
        now = now or timezone.now()
        with self.store.guard():
            subscription = self.store.current_subscription(tenant_id)
            denial = self._denial_for(subscription, now)
            if denial is not None:
                return denial

            limit = subscription.plan.member_limit
            current = self.store.count_active_members(tenant_id)
        if current >= limit:
            return LimitReached(limit=limit, current=current)
        return MemberSlotAvailable(limit=limit, current=current)

    def can_add_member(self, tenant_id: int, now: datetime | None = None) -> bool:
        return isinstance(self.check_member_slot(tenant_id, now), MemberSlotAvailable)

    # -------------------------------------------------------------------------
    # Summary
    # -------------------------------------------------------------------------

    def usage_summary(self, tenant_id: int, now: datetime | None = None) -> dict:
        """
        Describe the tenant's plan, lifecycle state and current usage.

        Raises:
            SubscriptionNotFoundError: the tenant never had a subscription.
        """
        now = now or timezone.now()
        with self.store.guard():
            subscription = self.store.current_subscription(tenant_id)
            if subscription is None:
                raise SubscriptionNotFoundError(tenant_id)
            members = self.store.count_active_members(tenant_id)

        plan = subscription.plan
        snapshot = self.store.to_snapshot(subscription)
        jobs_used = subscription.jobs_created_this_month
        # A reset is due but has not happened yet: nothing counts this month
        anchor = subscription.last_counter_reset_at or subscription.created
        if month_rolled_over(anchor, now):
            jobs_used = 0

        jobs_remaining = None
        if not plan.has_unlimited_jobs:
            jobs_remaining = max(plan.job_limit - jobs_used, 0)

        return {
            "tenant_id": tenant_id,
            "subscription_id": subscription.pk,
            "status": subscription.status,
            "entitled": sm.entitlement(snapshot, now) == sm.Entitlement.ENTITLED,
            "plan": {
                "code": plan.code,
                "name": plan.name,
                "is_custom": plan.is_custom,
                "features": plan.features,
            },
            "jobs": {
                "used": jobs_used,
                "limit": plan.job_limit,
                "remaining": jobs_remaining,
                "unlimited": plan.has_unlimited_jobs,
            },
            "members": {
                "active": members,
                "limit": plan.member_limit,
                "remaining": max(plan.member_limit - members, 0),
            },
            "period_start": subscription.period_start,
            "period_end": subscription.period_end,
            "trial_ends_at": subscription.trial_ends_at,
            "grace_period_ends_at": subscription.grace_period_ends_at,
            "suspension_reason": subscription.suspension_reason,
        }

    # -------------------------------------------------------------------------

    def _denial_for(self, subscription, now: datetime) -> NoActiveSubscription | None:
        if subscription is None:
            return NoActiveSubscription()
        access = sm.entitlement(self.store.to_snapshot(subscription), now)
        if access == sm.Entitlement.ENTITLED:
            return None
        return NoActiveSubscription(
            status=subscription.status,
            lapsed=access == sm.Entitlement.LAPSED,
        )
