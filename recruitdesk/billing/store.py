"""
EntitlementStore: the only place the engine touches persistent storage.

Every write to a Subscription row is a conditional UPDATE:

    lifecycle:  UPDATE ... SET version = version + 1 WHERE pk = ? AND version = ?
    increment:  UPDATE ... WHERE pk = ? AND version = ? AND anchor = ? AND jobs < limit
    reset:      UPDATE ... WHERE pk = ? AND last_counter_reset_at = ?

A write that matches no row lost to a concurrent writer. Lifecycle writers get
a ConflictError and retry from a fresh read; counter writers inspect the fresh
row themselves. Counter writes leave `version` alone, so concurrent job
reservations only ever conflict with lifecycle transitions, not each other.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from django.db import IntegrityError
from django.db import InterfaceError
from django.db import OperationalError
from django.db import transaction
from django.db.models import F
from django.db.models import Q
from django.utils import timezone

from recruitdesk.billing import notifications
from recruitdesk.billing import state_machine as sm
from recruitdesk.billing.constants import ENTITLED_STATUSES
from recruitdesk.billing.constants import LIVE_STATUSES
from recruitdesk.billing.constants import ReservationStatus
from recruitdesk.billing.constants import SubscriptionStatus
from recruitdesk.billing.exceptions import ConflictError
from recruitdesk.billing.exceptions import TemporarilyUnavailableError
from recruitdesk.billing.models import BillingEvent
from recruitdesk.billing.models import JobReservation
from recruitdesk.billing.models import Plan
from recruitdesk.billing.models import Subscription
from recruitdesk.tenants.models import TeamMember

logger = logging.getLogger(__name__)


def _anchor_filter(anchor: datetime | None) -> Q:
    if anchor is None:
        return Q(last_counter_reset_at__isnull=True)
    return Q(last_counter_reset_at=anchor)


class EntitlementStore:
    """Keyed access to plans, subscriptions, reservations and billing events."""

    # =========================================================================
    # Failure translation
    # =========================================================================

    @contextmanager
    def guard(self):
        """Translate storage outages into TemporarilyUnavailableError."""
        try:
            yield
        except (OperationalError, InterfaceError) as exc:
            logger.warning("Billing storage unavailable: %s", exc)
            raise TemporarilyUnavailableError from exc

    # =========================================================================
    # Reads
    # =========================================================================

    def get_subscription(self, pk: int) -> Subscription:
        return Subscription.objects.select_related("plan").get(pk=pk)

    def live_subscription(self, tenant_id: int) -> Subscription | None:
        return (
            Subscription.objects.select_related("plan")
            .filter(tenant_id=tenant_id, status__in=LIVE_STATUSES)
            .first()
        )

    def current_subscription(self, tenant_id: int) -> Subscription | None:
        """
        Return the tenant's live subscription, or its most recent one.

        A tenant whose last subscription expired still has a "current"
        subscription; callers look at its status to tell expired from never
        subscribed.
        """
        live = self.live_subscription(tenant_id)
        if live is not None:
            return live
        return (
            Subscription.objects.select_related("plan")
            .filter(tenant_id=tenant_id)
            .order_by("-created", "-pk")
            .first()
        )

    def get_plan(self, code: str) -> Plan:
        return Plan.objects.get(code=code)

    def count_active_members(self, tenant_id: int) -> int:
        return TeamMember.objects.filter(tenant_id=tenant_id, is_active=True).count()

    def event_exists(self, event_id: str) -> bool:
        return BillingEvent.objects.filter(event_id=event_id).exists()

    # =========================================================================
    # Snapshot mapping
    # =========================================================================

    def to_snapshot(self, subscription: Subscription) -> sm.SubscriptionSnapshot:
        status = subscription.status
        if status == SubscriptionStatus.TRIAL:
            phase = sm.Trial(
                trial_ends_at=subscription.trial_ends_at,
                period_start=subscription.period_start,
            )
        elif status == SubscriptionStatus.ACTIVE:
            phase = sm.Active(subscription.period_start, subscription.period_end)
        elif status == SubscriptionStatus.PAST_DUE:
            phase = sm.PastDue(subscription.period_start, subscription.period_end)
        elif status == SubscriptionStatus.GRACE_PERIOD:
            phase = sm.GracePeriod(
                period_start=subscription.period_start,
                period_end=subscription.period_end,
                grace_period_ends_at=subscription.grace_period_ends_at,
                grace_period_days=subscription.grace_period_days or 0,
                reason=subscription.suspension_reason,
            )
        elif status == SubscriptionStatus.CANCELED:
            phase = sm.Canceled(
                ended_at=subscription.ended_at,
                suspension_reason=subscription.suspension_reason,
            )
        else:
            phase = sm.Expired(expired_at=subscription.ended_at)

        return sm.SubscriptionSnapshot(
            phase=phase,
            trial_ends_at=subscription.trial_ends_at,
            last_event_at=subscription.last_event_at,
        )

    def columns_for(self, snapshot: sm.SubscriptionSnapshot) -> dict:
        """Return the Subscription columns a snapshot writes."""
        phase = snapshot.phase
        columns = {
            "status": phase.status,
            "trial_ends_at": snapshot.trial_ends_at,
            "last_event_at": snapshot.last_event_at,
            "grace_period_ends_at": None,
            "grace_period_days": None,
            "suspension_reason": "",
            "ended_at": None,
        }
        if isinstance(phase, sm.Trial):
            columns["period_start"] = phase.period_start
        elif isinstance(phase, (sm.Active, sm.PastDue)):
            columns["period_start"] = phase.period_start
            columns["period_end"] = phase.period_end
        elif isinstance(phase, sm.GracePeriod):
            columns.update(
                period_start=phase.period_start,
                period_end=phase.period_end,
                grace_period_ends_at=phase.grace_period_ends_at,
                grace_period_days=phase.grace_period_days,
                suspension_reason=phase.reason,
            )
        elif isinstance(phase, sm.Canceled):
            columns["ended_at"] = phase.ended_at
            columns["suspension_reason"] = phase.suspension_reason
        elif isinstance(phase, sm.Expired):
            columns["ended_at"] = phase.expired_at
        return columns

    # =========================================================================
    # Lifecycle writes
    # =========================================================================

    def apply_transition(
        self,
        subscription: Subscription,
        result: sm.Transition,
        at: datetime,
    ) -> Subscription:
        """
        Persist a state machine transition and carry out its effects.

        Must run inside a transaction so the status change, the counter reset
        and the outbox row commit together. Raises ConflictError when the row's
        version moved since `subscription` was read.
        """
        columns = self.columns_for(result.snapshot)
        updated = Subscription.objects.filter(
            pk=subscription.pk,
            version=subscription.version,
        ).update(version=F("version") + 1, modified=timezone.now(), **columns)
        if updated != 1:
            raise ConflictError(
                f"Subscription {subscription.pk} changed during {result.reason!r}.",
            )

        anchor = subscription.last_counter_reset_at
        for effect in result.effects:
            if isinstance(effect, sm.ResetCounters):
                # A late event must not move the cycle anchor backwards
                self.reset_job_counter(
                    subscription.pk,
                    expected_reset_at=anchor,
                    at=at if anchor is None else max(at, anchor),
                )
            elif isinstance(effect, sm.NotifyTenant):
                notifications.record_status_change(
                    subscription,
                    old_status=effect.old_status,
                    new_status=effect.new_status,
                    reason=effect.reason,
                    occurred_at=at,
                )

        logger.info(
            "Subscription %s for tenant %s: %s -> %s (%s)",
            subscription.pk,
            subscription.tenant_id,
            subscription.status,
            result.snapshot.status,
            result.reason,
        )
        subscription.refresh_from_db()
        return subscription

    def change_plan(self, subscription: Subscription, plan: Plan) -> Subscription:
        """Move a subscription onto another plan, guarded by version."""
        updated = Subscription.objects.filter(
            pk=subscription.pk,
            version=subscription.version,
        ).update(plan=plan, version=F("version") + 1, modified=timezone.now())
        if updated != 1:
            raise ConflictError(f"Subscription {subscription.pk} changed concurrently.")
        subscription.refresh_from_db()
        return subscription

    def create_subscription(self, **fields) -> Subscription:
        """
        Insert a new subscription row.

        Raises IntegrityError if the tenant already has a live subscription;
        the insert runs in a savepoint so the caller's transaction survives.
        """
        with transaction.atomic():
            return Subscription.objects.create(**fields)

    # =========================================================================
    # Counter writes
    # =========================================================================

    def increment_job_counter(
        self,
        subscription: Subscription,
        limit: int | None,
    ) -> bool:
        """
        Add one job to the counter if it is still below `limit`.

        Matches only the exact version and cycle anchor the caller read, so an
        increment can never land in a cycle or lifecycle state it did not see.
        """
        queryset = Subscription.objects.filter(
            _anchor_filter(subscription.last_counter_reset_at),
            pk=subscription.pk,
            version=subscription.version,
            status__in=ENTITLED_STATUSES,
        )
        if limit is not None:
            queryset = queryset.filter(jobs_created_this_month__lt=limit)
        return queryset.update(jobs_created_this_month=F("jobs_created_this_month") + 1) == 1

    def decrement_job_counter(self, subscription_id: int, cycle_anchor: datetime | None) -> bool:
        """Give one job back, unless the counter was reset since `cycle_anchor`."""
        updated = Subscription.objects.filter(
            _anchor_filter(cycle_anchor),
            pk=subscription_id,
            jobs_created_this_month__gt=0,
        ).update(jobs_created_this_month=F("jobs_created_this_month") - 1)
        return updated == 1

    def reset_job_counter(
        self,
        subscription_id: int,
        expected_reset_at: datetime | None,
        at: datetime,
    ) -> bool:
        """Zero the counter if nobody reset it since `expected_reset_at`."""
        updated = Subscription.objects.filter(
            _anchor_filter(expected_reset_at),
            pk=subscription_id,
        ).update(jobs_created_this_month=0, last_counter_reset_at=at)
        return updated == 1

    # =========================================================================
    # Reservations
    # =========================================================================

    def create_reservation(self, subscription: Subscription) -> JobReservation:
        return JobReservation.objects.create(
            subscription=subscription,
            cycle_anchor=subscription.last_counter_reset_at,
        )

    def get_reservation(self, token) -> JobReservation | None:
        return JobReservation.objects.filter(pk=token).first()

    def resolve_reservation(self, token, status: str, at: datetime) -> bool:
        """Move a pending reservation to `status`. Only one caller can win."""
        updated = JobReservation.objects.filter(
            pk=token,
            status=ReservationStatus.PENDING,
        ).update(status=status, resolved_at=at, modified=timezone.now())
        return updated == 1

    def stale_reservation_ids(self, cutoff: datetime, batch_size: int) -> list:
        return list(
            JobReservation.objects.filter(
                status=ReservationStatus.PENDING,
                created__lt=cutoff,
            )
            .order_by("created")
            .values_list("pk", flat=True)[:batch_size],
        )

    # =========================================================================
    # Billing event ledger
    # =========================================================================

    def claim_event(self, **fields) -> BillingEvent | None:
        """
        Insert the ledger row for a billing event.

        Returns None if another worker already recorded the same event_id.
        """
        try:
            with transaction.atomic():
                return BillingEvent.objects.create(**fields)
        except IntegrityError:
            return None

    def mark_event(self, event: BillingEvent, outcome: str, at: datetime) -> None:
        event.outcome = outcome
        event.processed_at = at
        event.save(update_fields=["outcome", "processed_at", "modified"])

    # =========================================================================
    # Sweep scans
    # =========================================================================

    def past_deadline_query(self, now: datetime) -> Q:
        return (
            Q(status=SubscriptionStatus.TRIAL, trial_ends_at__lt=now)
            | Q(
                status__in=[SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE],
                period_end__lt=now,
            )
            | Q(status=SubscriptionStatus.GRACE_PERIOD, grace_period_ends_at__lt=now)
        )

    def entitled_query(self) -> Q:
        return Q(status__in=ENTITLED_STATUSES)

    def iter_subscription_ids(self, query: Q, batch_size: int) -> Iterator[int]:
        """
        Yield matching subscription ids in pk order, one batch at a time.

        Keyset pagination, so rows that leave the result set mid-scan (because
        they were just expired) do not shift later batches.
        """
        last_pk = 0
        while True:
            batch = list(
                Subscription.objects.filter(query, pk__gt=last_pk)
                .order_by("pk")
                .values_list("pk", flat=True)[:batch_size],
            )
            if not batch:
                return
            yield from batch
            last_pk = batch[-1]
