"""
Tests for EntitlementGate.

The gate is what metered actions call; it must answer with a value for every
business outcome and deny when billing storage can't be reached.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import OperationalError
from django.utils import timezone

from recruitdesk.billing.constants import MeteredResource
from recruitdesk.billing.constants import ReservationStatus
from recruitdesk.billing.gate import Allow
from recruitdesk.billing.gate import DenialReason
from recruitdesk.billing.gate import Deny
from recruitdesk.billing.gate import EntitlementGate
from recruitdesk.billing.models import JobReservation
from recruitdesk.billing.services import start_trial
from recruitdesk.billing.store import EntitlementStore
from recruitdesk.billing.tests.factories import PlanFactory
from recruitdesk.billing.tests.factories import SubscriptionFactory
from recruitdesk.tenants.tests.factories import TeamMemberFactory

pytestmark = pytest.mark.django_db


@pytest.fixture
def gate():
    return EntitlementGate()


def running_subscription(**kwargs):
    # The gate reads the clock, so the period has to cover the real now
    now = timezone.now()
    return SubscriptionFactory(
        period_start=now - timedelta(days=1),
        period_end=now + timedelta(days=29),
        last_counter_reset_at=now,
        **kwargs,
    )


def test_job_allowed_with_reservation_token(gate, tenant, catalog_plans):
    start_trial(tenant)

    decision = gate.authorize(tenant.pk, MeteredResource.JOB)

    assert isinstance(decision, Allow)
    assert decision.remaining == 4
    assert JobReservation.objects.filter(pk=decision.reservation_token).exists()


def test_commit_and_release_go_through_the_gate(gate, tenant, catalog_plans):
    start_trial(tenant)
    kept = gate.authorize(tenant.pk, "job")
    dropped = gate.authorize(tenant.pk, "job")

    gate.commit(kept.reservation_token)
    assert gate.release(dropped.reservation_token) is True

    assert JobReservation.objects.get(pk=kept.reservation_token).status == (
        ReservationStatus.COMMITTED
    )
    assert JobReservation.objects.get(pk=dropped.reservation_token).status == (
        ReservationStatus.RELEASED
    )


def test_job_denied_at_limit(gate):
    subscription = running_subscription(
        plan=PlanFactory(job_limit=3),
        jobs_created_this_month=3,
    )

    decision = gate.authorize(subscription.tenant_id, MeteredResource.JOB)

    assert decision == Deny(DenialReason.LIMIT_REACHED, limit=3, current=3)


def test_member_allowed_reports_seats_left(gate):
    subscription = running_subscription(plan=PlanFactory(member_limit=3))
    TeamMemberFactory(tenant=subscription.tenant)

    decision = gate.authorize(subscription.tenant_id, MeteredResource.MEMBER)

    assert decision == Allow(reservation_token=None, remaining=1)


def test_member_denied_at_limit(gate):
    subscription = running_subscription(plan=PlanFactory(member_limit=1))
    TeamMemberFactory(tenant=subscription.tenant)

    decision = gate.authorize(subscription.tenant_id, MeteredResource.MEMBER)

    assert decision == Deny(DenialReason.LIMIT_REACHED, limit=1, current=1)


def test_expired_subscription_is_denied_as_expired(gate):
    subscription = SubscriptionFactory(expired=True)

    assert gate.authorize(subscription.tenant_id, "job") == Deny(
        DenialReason.SUBSCRIPTION_EXPIRED,
    )


def test_past_due_and_missing_subscriptions_are_denied(gate, tenant):
    past_due = SubscriptionFactory(past_due=True)

    assert gate.authorize(past_due.tenant_id, "member") == Deny(
        DenialReason.NO_ACTIVE_SUBSCRIPTION,
    )
    assert gate.authorize(tenant.pk, "job") == Deny(DenialReason.NO_ACTIVE_SUBSCRIPTION)


def test_storage_outage_fails_closed(gate):
    subscription = running_subscription()

    with patch.object(
        EntitlementStore,
        "current_subscription",
        side_effect=OperationalError("connection refused"),
    ):
        job = gate.authorize(subscription.tenant_id, MeteredResource.JOB)
        member = gate.authorize(subscription.tenant_id, MeteredResource.MEMBER)

    assert job == Deny(DenialReason.TEMPORARILY_UNAVAILABLE)
    assert member == Deny(DenialReason.TEMPORARILY_UNAVAILABLE)


def test_unknown_resource_is_rejected(gate, tenant):
    with pytest.raises(ValueError):  # noqa: PT011
        gate.authorize(tenant.pk, "interview")
