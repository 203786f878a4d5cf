"""
Tests for the staff entitlement API.
"""

import pytest
from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework.test import APIClient

from recruitdesk.billing.constants import SubscriptionStatus
from recruitdesk.billing.tests.factories import PlanFactory
from recruitdesk.billing.tests.factories import SubscriptionFactory

pytestmark = pytest.mark.django_db


@pytest.fixture
def staff_user():
    return get_user_model().objects.create_user(
        username="billing-admin",
        password="not-used",  # noqa: S106
        is_staff=True,
    )


@pytest.fixture
def api_client(staff_user) -> APIClient:
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


def test_requires_staff(tenant):
    client = APIClient()
    user = get_user_model().objects.create_user(username="recruiter", password="x")  # noqa: S106
    client.force_authenticate(user=user)

    response = client.get(reverse("api:entitlement-detail", args=[tenant.pk]))

    assert response.status_code == 403


def test_summary(api_client):
    subscription = SubscriptionFactory(
        plan=PlanFactory(job_limit=25, member_limit=4),
        jobs_created_this_month=3,
    )

    response = api_client.get(reverse("api:entitlement-detail", args=[subscription.tenant_id]))

    assert response.status_code == 200
    data = response.json()
    assert data["subscription_id"] == subscription.pk
    assert data["status"] == "active"
    assert data["plan"]["code"] == subscription.plan_id
    assert data["jobs"]["limit"] == 25
    assert data["members"] == {"active": 0, "limit": 4, "remaining": 4}


def test_summary_for_tenant_without_subscription(api_client, tenant):
    response = api_client.get(reverse("api:entitlement-detail", args=[tenant.pk]))

    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


def test_unknown_tenant(api_client):
    response = api_client.get(reverse("api:entitlement-detail", args=[999_999]))

    assert response.status_code == 404


def test_grant_grace_period(api_client):
    subscription = SubscriptionFactory(past_due=True)

    response = api_client.post(
        reverse("api:entitlement-grace-period", args=[subscription.tenant_id]),
        {"days": 14, "reason": "Card expired"},
        format="json",
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == SubscriptionStatus.GRACE_PERIOD
    assert data["grace_period_days"] == 14
    assert data["suspension_reason"] == "Card expired"


def test_grace_period_days_are_validated(api_client):
    subscription = SubscriptionFactory(past_due=True)

    response = api_client.post(
        reverse("api:entitlement-grace-period", args=[subscription.tenant_id]),
        {"days": 120},
        format="json",
    )

    assert response.status_code == 400
    assert "days" in response.json()


def test_grace_period_for_active_tenant_conflicts(api_client):
    subscription = SubscriptionFactory()

    response = api_client.post(
        reverse("api:entitlement-grace-period", args=[subscription.tenant_id]),
        {"days": 14},
        format="json",
    )

    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"


def test_suspend(api_client):
    subscription = SubscriptionFactory()

    response = api_client.post(
        reverse("api:entitlement-suspend", args=[subscription.tenant_id]),
        {"reason": "Chargeback"},
        format="json",
    )

    assert response.status_code == 200
    assert response.json()["status"] == SubscriptionStatus.CANCELED
    assert response.json()["suspension_reason"] == "Chargeback"


def test_suspend_requires_reason(api_client):
    subscription = SubscriptionFactory()

    response = api_client.post(
        reverse("api:entitlement-suspend", args=[subscription.tenant_id]),
        {"reason": ""},
        format="json",
    )

    assert response.status_code == 400


def test_reactivate_expired_tenant(api_client):
    old = SubscriptionFactory(expired=True)

    response = api_client.post(reverse("api:entitlement-reactivate", args=[old.tenant_id]))

    assert response.status_code == 200
    data = response.json()
    assert data["id"] != old.pk
    assert data["status"] == SubscriptionStatus.ACTIVE


def test_custom_plan(api_client):
    subscription = SubscriptionFactory()

    response = api_client.post(
        reverse("api:entitlement-custom-plan", args=[subscription.tenant_id]),
        {"name": "Acme Enterprise", "job_limit": None, "member_limit": 50},
        format="json",
    )

    assert response.status_code == 200
    plan = response.json()["plan"]
    assert plan["is_custom"] is True
    assert plan["job_limit"] is None
    assert plan["member_limit"] == 50
