"""
Tests for the subscription lifecycle state machine.

These are pure functions; no database is needed.
"""

from datetime import UTC
from datetime import datetime
from datetime import timedelta

import pytest

from recruitdesk.billing import state_machine as sm
from recruitdesk.billing.constants import BillingEventKind
from recruitdesk.billing.constants import SubscriptionStatus

DAY0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def day(n: int) -> datetime:
    return DAY0 + timedelta(days=n)


def trial_snapshot() -> sm.SubscriptionSnapshot:
    return sm.SubscriptionSnapshot(
        phase=sm.Trial(trial_ends_at=day(7), period_start=DAY0),
        trial_ends_at=day(7),
    )


def active_snapshot(start=0, end=30, last_event=None) -> sm.SubscriptionSnapshot:
    return sm.SubscriptionSnapshot(
        phase=sm.Active(period_start=day(start), period_end=day(end)),
        last_event_at=last_event,
    )


def past_due_snapshot() -> sm.SubscriptionSnapshot:
    return sm.SubscriptionSnapshot(phase=sm.PastDue(day(0), day(30)), last_event_at=day(10))


# =============================================================================
# Payments
# =============================================================================


def test_payment_activates_trial_with_fresh_period_and_counter_reset():
    result = sm.transition(trial_snapshot(), sm.PaymentSucceeded(), day(3))

    assert result is not None
    assert result.snapshot.phase == sm.Active(period_start=day(3), period_end=day(33))
    assert result.snapshot.trial_ends_at == day(7)
    assert result.snapshot.last_event_at == day(3)
    assert sm.ResetCounters() in result.effects
    assert sm.NotifyTenant("trial", "active", "payment succeeded") in result.effects


def test_payment_on_active_extends_period_without_notifying():
    result = sm.transition(active_snapshot(0, 30), sm.PaymentSucceeded(), day(29))

    assert result.snapshot.phase == sm.Active(period_start=day(29), period_end=day(60))
    assert result.effects == ()


def test_renewal_after_period_end_starts_from_event_time():
    result = sm.transition(active_snapshot(0, 30), sm.SubscriptionRenewed(), day(31))

    assert result.snapshot.phase.period_end == day(61)


@pytest.mark.parametrize(
    "snapshot",
    [
        past_due_snapshot(),
        sm.SubscriptionSnapshot(
            phase=sm.GracePeriod(day(0), day(30), day(40), 10, "card expired"),
        ),
    ],
)
def test_payment_recovers_past_due_and_grace(snapshot):
    result = sm.transition(snapshot, sm.PaymentSucceeded(), day(35))

    assert result.snapshot.phase == sm.Active(period_start=day(35), period_end=day(65))
    assert sm.ResetCounters() not in result.effects
    assert result.effects[-1].new_status == SubscriptionStatus.ACTIVE


def test_payment_failure_moves_active_to_past_due_keeping_period():
    result = sm.transition(active_snapshot(0, 30), sm.PaymentFailed(), day(30))

    assert result.snapshot.phase == sm.PastDue(day(0), day(30))


def test_payment_failure_is_ignored_outside_active():
    assert sm.transition(trial_snapshot(), sm.PaymentFailed(), day(2)) is None
    assert sm.transition(past_due_snapshot(), sm.PaymentFailed(), day(12)) is None


def test_processor_cancellation_ends_any_live_state():
    for snapshot in (trial_snapshot(), active_snapshot(), past_due_snapshot()):
        result = sm.transition(snapshot, sm.SubscriptionCanceled(), day(20))
        assert result.snapshot.phase == sm.Canceled(ended_at=day(20))


# =============================================================================
# Admin events
# =============================================================================


def test_grace_period_from_past_due_sets_end_date():
    result = sm.transition(past_due_snapshot(), sm.GrantGracePeriod(14, "customer called"), day(12))

    assert result.snapshot.phase == sm.GracePeriod(
        period_start=day(0),
        period_end=day(30),
        grace_period_ends_at=day(26),
        grace_period_days=14,
        reason="customer called",
    )


def test_grace_period_is_not_available_to_active_subscriptions():
    assert sm.transition(active_snapshot(), sm.GrantGracePeriod(14), day(5)) is None


def test_suspend_cancels_with_reason():
    result = sm.transition(active_snapshot(), sm.Suspend("chargeback"), day(5))

    assert result.snapshot.phase == sm.Canceled(ended_at=day(5), suspension_reason="chargeback")
    assert result.effects == (sm.NotifyTenant("active", "canceled", "chargeback"),)


def test_reactivate_only_applies_to_past_due_and_grace():
    assert sm.transition(active_snapshot(), sm.Reactivate(), day(5)) is None

    result = sm.transition(past_due_snapshot(), sm.Reactivate(), day(12))
    assert result.snapshot.phase == sm.Active(day(12), day(42))


# =============================================================================
# Time
# =============================================================================


@pytest.mark.parametrize(
    ("snapshot", "deadline"),
    [
        (trial_snapshot(), day(7)),
        (active_snapshot(0, 30), day(30)),
        (past_due_snapshot(), day(30)),
        (sm.SubscriptionSnapshot(phase=sm.GracePeriod(day(0), day(30), day(40), 10)), day(40)),
    ],
)
def test_tick_expires_only_after_deadline(snapshot, deadline):
    assert sm.transition(snapshot, sm.Tick(), deadline) is None

    result = sm.transition(snapshot, sm.Tick(), deadline + timedelta(seconds=1))
    assert result.snapshot.phase == sm.Expired(expired_at=deadline + timedelta(seconds=1))


def test_payment_before_sweep_wins_over_passed_deadline():
    # Trial ended on day 7 but the sweep has not run yet
    result = sm.transition(trial_snapshot(), sm.PaymentSucceeded(), day(8))

    assert result.snapshot.status == SubscriptionStatus.ACTIVE


@pytest.mark.parametrize(
    "event",
    [sm.PaymentSucceeded(), sm.SubscriptionCanceled(), sm.Suspend("x"), sm.Reactivate(), sm.Tick()],
)
def test_terminal_states_never_move(event):
    expired = sm.SubscriptionSnapshot(phase=sm.Expired(day(34)))
    canceled = sm.SubscriptionSnapshot(phase=sm.Canceled(day(34)))

    assert sm.transition(expired, event, day(40)) is None
    assert sm.transition(canceled, event, day(40)) is None


def test_last_event_at_never_moves_backwards():
    snapshot = active_snapshot(last_event=day(20))

    result = sm.transition(snapshot, sm.PaymentFailed(), day(15))

    assert result.snapshot.last_event_at == day(20)


def test_transition_is_deterministic():
    first = sm.transition(trial_snapshot(), sm.PaymentSucceeded(), day(3))
    second = sm.transition(trial_snapshot(), sm.PaymentSucceeded(), day(3))

    assert first == second


# =============================================================================
# Helpers
# =============================================================================


def test_fold_follows_scenario_to_expiry():
    events = [
        (sm.PaymentSucceeded(), day(3)),
        (sm.Tick(), day(20)),
        (sm.Tick(), day(34)),
        (sm.Tick(), day(40)),
    ]

    final = sm.fold(trial_snapshot(), events)

    assert final.phase == sm.Expired(expired_at=day(34))
    assert final.trial_ends_at == day(7)


def test_entitlement_levels():
    assert sm.entitlement(trial_snapshot(), day(1)) == sm.Entitlement.ENTITLED
    assert sm.entitlement(trial_snapshot(), day(8)) == sm.Entitlement.LAPSED
    assert sm.entitlement(past_due_snapshot(), day(12)) == sm.Entitlement.INACTIVE
    assert (
        sm.entitlement(sm.SubscriptionSnapshot(phase=sm.Expired(day(3))), day(4))
        == sm.Entitlement.LAPSED
    )


def test_event_for_kind_maps_every_billing_event_kind():
    assert isinstance(sm.event_for_kind(BillingEventKind.PAYMENT_SUCCEEDED), sm.PaymentSucceeded)
    assert isinstance(sm.event_for_kind("payment_failed"), sm.PaymentFailed)
    assert isinstance(sm.event_for_kind("subscription_canceled"), sm.SubscriptionCanceled)
    assert isinstance(sm.event_for_kind("subscription_renewed"), sm.SubscriptionRenewed)

    with pytest.raises(ValueError, match="Unknown billing event kind"):
        sm.event_for_kind("refund_issued")
