"""
Tests for PaymentEventReconciler: idempotency, ordering and conflict retries.
"""

from datetime import datetime
from datetime import timedelta
from unittest.mock import patch

import pytest

from recruitdesk.billing.constants import BillingEventKind
from recruitdesk.billing.constants import BillingEventOutcome
from recruitdesk.billing.constants import SubscriptionStatus
from recruitdesk.billing.exceptions import ConflictError
from recruitdesk.billing.exceptions import SubscriptionNotFoundError
from recruitdesk.billing.exceptions import TemporarilyUnavailableError
from recruitdesk.billing.models import BillingEvent
from recruitdesk.billing.models import LifecycleNotification
from recruitdesk.billing.reconciler import NormalizedBillingEvent
from recruitdesk.billing.reconciler import PaymentEventReconciler
from recruitdesk.billing.reconciler import ReconcileOutcome
from recruitdesk.billing.scheduler import LifecycleScheduler
from recruitdesk.billing.services import start_trial
from recruitdesk.billing.store import EntitlementStore
from recruitdesk.billing.tests.factories import BASE_TIME
from recruitdesk.billing.tests.factories import SubscriptionFactory

pytestmark = pytest.mark.django_db


def day(n: int) -> datetime:
    return BASE_TIME + timedelta(days=n)


def make_event(tenant_id, kind=BillingEventKind.PAYMENT_SUCCEEDED, at=BASE_TIME, event_id=None):
    return NormalizedBillingEvent(
        event_id=event_id or f"evt_{kind}_{at.timestamp():.0f}",
        tenant_id=tenant_id,
        kind=kind,
        occurred_at=at,
    )


# =============================================================================
# End to end
# =============================================================================


def test_trial_payment_expiry_and_late_payment(catalog_plans, tenant):
    """Day 0 signup, day 3 payment, day 34 sweep, then a late day 32 notice."""
    reconciler = PaymentEventReconciler()
    subscription = start_trial(tenant, now=day(0))

    outcome = reconciler.apply(make_event(tenant.pk, at=day(3), event_id="evt_pay_day3"))

    assert outcome == ReconcileOutcome.APPLIED
    subscription.refresh_from_db()
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.period_start == day(3)
    assert subscription.period_end == day(33)
    assert subscription.last_counter_reset_at == day(3)

    report = LifecycleScheduler().run_once(now=day(34))

    assert report.expired_periods == 1
    subscription.refresh_from_db()
    assert subscription.status == SubscriptionStatus.EXPIRED
    assert subscription.ended_at == day(34)

    late = reconciler.apply(make_event(tenant.pk, at=day(32), event_id="evt_pay_day32"))

    assert late == ReconcileOutcome.STALE
    subscription.refresh_from_db()
    assert subscription.status == SubscriptionStatus.EXPIRED
    assert BillingEvent.objects.get(event_id="evt_pay_day32").outcome == BillingEventOutcome.STALE
    assert list(
        LifecycleNotification.objects.order_by("pk").values_list("old_status", "new_status"),
    ) == [("trial", "active"), ("active", "expired")]


# =============================================================================
# Idempotency and ordering
# =============================================================================


def test_duplicate_event_is_applied_once():
    subscription = SubscriptionFactory()
    event = make_event(subscription.tenant_id, BillingEventKind.PAYMENT_FAILED)
    reconciler = PaymentEventReconciler()

    first = reconciler.apply(event)
    second = reconciler.apply(event)

    assert first == ReconcileOutcome.APPLIED
    assert second == ReconcileOutcome.DUPLICATE
    assert BillingEvent.objects.filter(event_id=event.event_id).count() == 1
    subscription.refresh_from_db()
    assert subscription.status == SubscriptionStatus.PAST_DUE
    assert subscription.version == 1


def test_event_older_than_last_applied_is_stale():
    subscription = SubscriptionFactory(last_event_at=BASE_TIME)

    outcome = PaymentEventReconciler().apply(
        make_event(subscription.tenant_id, BillingEventKind.PAYMENT_FAILED, at=day(-1)),
    )

    assert outcome == ReconcileOutcome.STALE
    subscription.refresh_from_db()
    assert subscription.status == SubscriptionStatus.ACTIVE


def test_event_from_before_a_new_trial_is_stale(catalog_plans, tenant):
    """A late notice from the previous lifecycle must not touch the new trial."""
    reconciler = PaymentEventReconciler()
    SubscriptionFactory(tenant=tenant, last_event_at=day(-5))
    reconciler.apply(
        make_event(
            tenant.pk,
            BillingEventKind.SUBSCRIPTION_CANCELED,
            at=day(10),
            event_id="evt_cancel_day10",
        ),
    )
    trial = start_trial(tenant, now=day(12))

    outcome = reconciler.apply(
        make_event(
            tenant.pk,
            BillingEventKind.SUBSCRIPTION_CANCELED,
            at=day(9),
            event_id="evt_cancel_day9",
        ),
    )

    assert outcome == ReconcileOutcome.STALE
    trial.refresh_from_db()
    assert trial.status == SubscriptionStatus.TRIAL
    assert trial.last_event_at == day(12)


def test_late_trial_payment_keeps_the_counter_anchor():
    subscription = SubscriptionFactory(
        trial=True,
        last_event_at=day(-3),
        last_counter_reset_at=BASE_TIME,
        jobs_created_this_month=2,
    )

    outcome = PaymentEventReconciler().apply(
        make_event(subscription.tenant_id, at=day(-1), event_id="evt_pay_late"),
    )

    assert outcome == ReconcileOutcome.APPLIED
    subscription.refresh_from_db()
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.jobs_created_this_month == 0
    assert subscription.last_counter_reset_at == BASE_TIME


def test_event_that_does_not_apply_is_recorded_as_no_transition():
    subscription = SubscriptionFactory(trial=True)
    event = make_event(subscription.tenant_id, BillingEventKind.PAYMENT_FAILED)

    outcome = PaymentEventReconciler().apply(event)

    assert outcome == ReconcileOutcome.NO_TRANSITION
    record = BillingEvent.objects.get(event_id=event.event_id)
    assert record.outcome == BillingEventOutcome.NO_TRANSITION
    assert record.subscription_id == subscription.pk
    assert record.processed_at is not None


def test_processor_cancellation_ends_subscription():
    subscription = SubscriptionFactory()

    PaymentEventReconciler().apply(
        make_event(subscription.tenant_id, BillingEventKind.SUBSCRIPTION_CANCELED, at=day(2)),
    )

    subscription.refresh_from_db()
    assert subscription.status == SubscriptionStatus.CANCELED
    assert subscription.ended_at == day(2)
    assert subscription.last_event_at == day(2)


def test_unknown_tenant_records_nothing(tenant):
    with pytest.raises(SubscriptionNotFoundError):
        PaymentEventReconciler().apply(make_event(tenant.pk))

    assert not BillingEvent.objects.exists()


# =============================================================================
# Conflicts
# =============================================================================


def test_conflict_is_retried_from_a_fresh_read():
    subscription = SubscriptionFactory()
    real_apply = EntitlementStore.apply_transition
    calls = []

    def flaky_apply(self, *args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise ConflictError
        return real_apply(self, *args, **kwargs)

    with patch.object(EntitlementStore, "apply_transition", flaky_apply):
        outcome = PaymentEventReconciler().apply(
            make_event(subscription.tenant_id, BillingEventKind.PAYMENT_FAILED),
        )

    assert outcome == ReconcileOutcome.APPLIED
    assert len(calls) == 2
    assert BillingEvent.objects.count() == 1


def test_conflict_budget_exhausted_rolls_back_the_ledger_row():
    subscription = SubscriptionFactory()

    with (
        patch.object(EntitlementStore, "apply_transition", side_effect=ConflictError),
        pytest.raises(TemporarilyUnavailableError),
    ):
        PaymentEventReconciler().apply(
            make_event(subscription.tenant_id, BillingEventKind.PAYMENT_FAILED),
        )

    assert not BillingEvent.objects.exists()
    subscription.refresh_from_db()
    assert subscription.status == SubscriptionStatus.ACTIVE


# =============================================================================
# NormalizedBillingEvent
# =============================================================================


def test_normalized_event_parses_iso_timestamps():
    event = NormalizedBillingEvent.from_dict(
        {
            "event_id": "evt_1",
            "tenant_id": "42",
            "kind": "payment_succeeded",
            "occurred_at": "2026-03-01T12:00:00+00:00",
        },
    )

    assert event.tenant_id == 42
    assert event.occurred_at == BASE_TIME
    assert event.payload == {}
    assert NormalizedBillingEvent.from_dict(event.to_dict()) == event


@pytest.mark.parametrize(
    "overrides",
    [
        {"event_id": ""},
        {"kind": "refund_issued"},
        {"occurred_at": datetime(2026, 3, 1, 12, 0)},  # noqa: DTZ001
    ],
)
def test_normalized_event_rejects_bad_input(overrides):
    fields = {
        "event_id": "evt_1",
        "tenant_id": 1,
        "kind": "payment_succeeded",
        "occurred_at": BASE_TIME,
        **overrides,
    }

    with pytest.raises(ValueError):  # noqa: PT011
        NormalizedBillingEvent(**fields)
