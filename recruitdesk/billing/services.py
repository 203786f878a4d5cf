"""
Subscription lifecycle operations for signup and admin tooling.

These are explicit state machine events (grace periods, suspensions,
reactivations) plus the two ways a subscription row comes into existence:
signup (a trial) and custom plan activation. None of them are metered checks.

Usage:
    start_trial(tenant)
    grant_grace_period(tenant.id, days=14, reason="Card expired, customer called")
    suspend(tenant.id, reason="Chargeback")
    reactivate(tenant.id)
    apply_custom_plan(tenant.id, CustomPlanFields(name="Acme", job_limit=200, member_limit=50))
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta

from django.db import IntegrityError
from django.db import transaction
from django.utils import timezone

from recruitdesk.billing import notifications
from recruitdesk.billing import state_machine as sm
from recruitdesk.billing.constants import BILLING_CYCLE_DAYS
from recruitdesk.billing.constants import MAX_GRACE_PERIOD_DAYS
from recruitdesk.billing.constants import MIN_GRACE_PERIOD_DAYS
from recruitdesk.billing.constants import TRIAL_DURATION_DAYS
from recruitdesk.billing.constants import PlanCode
from recruitdesk.billing.constants import SubscriptionStatus
from recruitdesk.billing.exceptions import ActiveSubscriptionExistsError
from recruitdesk.billing.exceptions import BillingError
from recruitdesk.billing.exceptions import ConflictError
from recruitdesk.billing.exceptions import InvalidTransitionError
from recruitdesk.billing.exceptions import SubscriptionNotFoundError
from recruitdesk.billing.exceptions import TemporarilyUnavailableError
from recruitdesk.billing.models import Plan
from recruitdesk.billing.models import Subscription
from recruitdesk.billing.store import EntitlementStore
from recruitdesk.billing.usage import conflict_retry_limit
from recruitdesk.tenants.models import Tenant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomPlanFields:
    name: str
    job_limit: int | None
    member_limit: int
    monthly_price_cents: int = 0
    description: str = ""
    features: list[str] = field(default_factory=list)

    def validate(self) -> None:
        if not self.name.strip():
            raise BillingError("Custom plan name is required.", code="invalid_request")
        if self.job_limit is not None and self.job_limit < 0:
            raise BillingError("Job limit must be zero or more.", code="invalid_request")
        if self.member_limit < 1:
            raise BillingError("Member limit must be at least 1.", code="invalid_request")
        if self.monthly_price_cents < 0:
            raise BillingError("Price must be zero or more.", code="invalid_request")


# =============================================================================
# Subscription creation
# =============================================================================


def start_trial(
    tenant: Tenant,
    plan: Plan | None = None,
    now: datetime | None = None,
) -> Subscription:
    """
    Create the trial subscription for a newly signed-up tenant.

    Raises:
        ActiveSubscriptionExistsError: the tenant already has a live subscription.
    """
    now = now or timezone.now()
    store = EntitlementStore()
    plan = plan or store.get_plan(PlanCode.FREE)
    trial_ends_at = now + timedelta(days=TRIAL_DURATION_DAYS)

    if store.live_subscription(tenant.pk) is not None:
        raise ActiveSubscriptionExistsError(tenant.pk)

    try:
        subscription = store.create_subscription(
            tenant=tenant,
            plan=plan,
            status=SubscriptionStatus.TRIAL,
            period_start=now,
            period_end=trial_ends_at,
            trial_ends_at=trial_ends_at,
            last_counter_reset_at=now,
            last_event_at=now,
        )
    except IntegrityError as exc:
        raise ActiveSubscriptionExistsError(tenant.pk) from exc

    logger.info(
        "Started %s-day trial for tenant %s on plan %s",
        TRIAL_DURATION_DAYS,
        tenant.pk,
        plan.code,
    )
    return subscription


def _start_active(
    store: EntitlementStore,
    tenant_id: int,
    plan: Plan,
    now: datetime,
    *,
    previous: Subscription | None = None,
    reason: str,
) -> Subscription:
    """Create a new active subscription, e.g. when a tenant resubscribes."""
    try:
        subscription = store.create_subscription(
            tenant_id=tenant_id,
            plan=plan,
            status=SubscriptionStatus.ACTIVE,
            period_start=now,
            period_end=now + timedelta(days=BILLING_CYCLE_DAYS),
            last_counter_reset_at=now,
            last_event_at=now,
            external_customer_ref=previous.external_customer_ref if previous else "",
        )
    except IntegrityError as exc:
        raise ActiveSubscriptionExistsError(tenant_id) from exc

    if previous is not None:
        notifications.record_status_change(
            subscription,
            old_status=previous.status,
            new_status=SubscriptionStatus.ACTIVE,
            reason=reason,
            occurred_at=now,
        )
    logger.info(
        "Created active subscription %s for tenant %s on plan %s (%s)",
        subscription.pk,
        tenant_id,
        plan.code,
        reason,
    )
    return subscription


# =============================================================================
# Admin lifecycle events
# =============================================================================


def _admin_transition(tenant_id: int, event: sm.Event, now: datetime | None) -> Subscription:
    now = now or timezone.now()
    store = EntitlementStore()
    attempts = conflict_retry_limit()

    for _attempt in range(attempts):
        try:
            with store.guard(), transaction.atomic():
                subscription = store.live_subscription(tenant_id)
                if subscription is None:
                    raise SubscriptionNotFoundError(tenant_id)
                snapshot = store.to_snapshot(subscription)
                result = sm.transition(snapshot, event, now)
                if result is None:
                    raise InvalidTransitionError(
                        f"Cannot {event.label} a subscription that is "
                        f"{subscription.get_status_display().lower()}.",
                        status=subscription.status,
                    )
                return store.apply_transition(subscription, result, now)
        except ConflictError:
            logger.info("Admin %s for tenant %s conflicted; retrying", event.label, tenant_id)

    raise TemporarilyUnavailableError


def grant_grace_period(
    tenant_id: int,
    days: int,
    reason: str = "",
    now: datetime | None = None,
) -> Subscription:
    """Give a past-due tenant `days` more days of access."""
    if not MIN_GRACE_PERIOD_DAYS <= days <= MAX_GRACE_PERIOD_DAYS:
        raise BillingError(
            f"Grace period must be between {MIN_GRACE_PERIOD_DAYS} and "
            f"{MAX_GRACE_PERIOD_DAYS} days.",
            code="invalid_request",
        )
    return _admin_transition(
        tenant_id,
        sm.GrantGracePeriod(days=days, reason=reason.strip()),
        now,
    )


def suspend(tenant_id: int, reason: str, now: datetime | None = None) -> Subscription:
    """Cancel a tenant's live subscription on admin decision."""
    if not reason or not reason.strip():
        raise BillingError("A suspension reason is required.", code="invalid_request")
    return _admin_transition(tenant_id, sm.Suspend(reason=reason.strip()), now)


def reactivate(tenant_id: int, now: datetime | None = None) -> Subscription:
    """
    Put a tenant back on an active subscription.

    A past-due or grace-period subscription becomes active with a fresh
    billing period. A tenant whose latest subscription is canceled or expired
    is resubscribed: a new active row on the same plan, the old one kept for
    history.
    """
    now = now or timezone.now()
    store = EntitlementStore()

    with store.guard():
        current = store.current_subscription(tenant_id)
    if current is None:
        raise SubscriptionNotFoundError(tenant_id)

    if current.is_live:
        return _admin_transition(tenant_id, sm.Reactivate(), now)

    with store.guard(), transaction.atomic():
        return _start_active(
            store,
            tenant_id,
            current.plan,
            now,
            previous=current,
            reason="resubscribed",
        )


def custom_plan_code(tenant: Tenant) -> str:
    """Unique code for a tenant's custom plan, cut to fit Plan.code."""
    suffix = f"-{uuid.uuid4().hex[:8]}"
    max_length = Plan._meta.get_field("code").max_length
    prefix = f"custom-{tenant.slug or tenant.pk}"
    return prefix[: max_length - len(suffix)].rstrip("-") + suffix


def apply_custom_plan(
    tenant_id: int,
    fields: CustomPlanFields,
    now: datetime | None = None,
) -> Subscription:
    """
    Create a plan just for this tenant and put the tenant on it.

    Plans are immutable, so every call makes a new Plan row. A live
    subscription keeps its status and counters and only changes plan; a tenant
    without one gets a new active subscription.
    """
    fields.validate()
    now = now or timezone.now()
    store = EntitlementStore()
    tenant = Tenant.objects.get(pk=tenant_id)

    attempts = conflict_retry_limit()
    for _attempt in range(attempts):
        try:
            with store.guard(), transaction.atomic():
                plan = Plan.objects.create(
                    code=custom_plan_code(tenant),
                    name=fields.name.strip(),
                    description=fields.description,
                    monthly_price_cents=fields.monthly_price_cents,
                    job_limit=fields.job_limit,
                    member_limit=fields.member_limit,
                    features=list(fields.features),
                    is_custom=True,
                    custom_owner=tenant,
                    is_active=False,
                )
                live = store.live_subscription(tenant_id)
                if live is None:
                    previous = store.current_subscription(tenant_id)
                    return _start_active(
                        store,
                        tenant_id,
                        plan,
                        now,
                        previous=previous,
                        reason=f"custom plan {plan.name}",
                    )

                subscription = store.change_plan(live, plan)
                logger.info(
                    "Moved subscription %s for tenant %s to custom plan %s",
                    subscription.pk,
                    tenant_id,
                    plan.code,
                )
                return subscription
        except ConflictError:
            logger.info("Custom plan for tenant %s conflicted; retrying", tenant_id)

    raise TemporarilyUnavailableError
