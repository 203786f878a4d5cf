"""
Billing models for the entitlement engine.

Key design decisions:
- Plan is an immutable catalog row; custom plans are new rows owned by a tenant
- Subscription is N:1 with Tenant over time, but at most one is live
- The monthly job counter lives on the Subscription row so a single
  conditional UPDATE can check the limit and increment it
- BillingEvent rows are never deleted; they double as the dedup ledger
- JobReservation is the token handed back to metered callers
- LifecycleNotification is an outbox for the notification subsystem

Relationship: Tenant ──1:N── Subscription ──N:1── Plan
"""

import uuid

from django.db import models
from django.db.models import Q
from model_utils.models import TimeStampedModel

from recruitdesk.billing.constants import BillingEventKind
from recruitdesk.billing.constants import BillingEventOutcome
from recruitdesk.billing.constants import ReservationStatus
from recruitdesk.billing.constants import SubscriptionStatus

# Kept as an ordered list so the partial unique constraint is stable in migrations
LIVE_STATUS_VALUES = [
    SubscriptionStatus.TRIAL,
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.PAST_DUE,
    SubscriptionStatus.GRACE_PERIOD,
]


class Plan(models.Model):
    """
    Catalog entry with the limits for the two metered resources.

    Plans are read-only to the engine. Admin tooling creates them; a custom
    plan for one tenant is a new row with is_custom=True and custom_owner set.

    Usage:
        subscription.plan.job_limit     # None = unlimited
        subscription.plan.member_limit
    """

    code = models.CharField(
        max_length=64,
        primary_key=True,
        help_text="Unique plan identifier, also used as PK.",
    )
    name = models.CharField(max_length=100, help_text="Display name for the plan.")
    description = models.TextField(blank=True)

    monthly_price_cents = models.IntegerField(
        default=0,
        help_text="Monthly price in cents, for display only.",
    )

    # Limits
    job_limit = models.IntegerField(
        null=True,
        blank=True,
        help_text="Job postings per calendar month. Null = unlimited.",
    )
    member_limit = models.PositiveIntegerField(
        default=1,
        help_text="Maximum active team members.",
    )
    features = models.JSONField(default=list, blank=True)

    # Tenant-specific plans
    is_custom = models.BooleanField(default=False)
    custom_owner = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="custom_plans",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether the plan is offered in the public catalog.",
    )
    display_order = models.IntegerField(default=0)

    class Meta:
        ordering = ["display_order"]
        constraints = [
            models.CheckConstraint(
                condition=Q(job_limit__isnull=True) | Q(job_limit__gte=0),
                name="ck_billing_plan_job_limit_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(member_limit__gte=1),
                name="ck_billing_plan_member_limit_positive",
            ),
        ]

    def __str__(self) -> str:
        return self.name

    @property
    def has_unlimited_jobs(self) -> bool:
        return self.job_limit is None


class Subscription(TimeStampedModel):
    """
    A tenant's subscription to a plan.

    Only the reconciler, the scheduler and the admin operations change the
    lifecycle fields, and always through EntitlementStore.apply_transition,
    which compares and bumps `version`. The counter fields are written by
    UsageCounter through their own guarded updates and leave `version` alone.

    Terminal rows (canceled, expired) are kept for history.
    """

    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )
    plan = models.ForeignKey(
        Plan,
        on_delete=models.PROTECT,  # Never delete a plan with subscriptions
        related_name="subscriptions",
    )
    status = models.CharField(
        max_length=20,
        choices=SubscriptionStatus.choices,
        default=SubscriptionStatus.TRIAL,
    )

    # Billing period
    period_start = models.DateTimeField(null=True, blank=True)
    period_end = models.DateTimeField(null=True, blank=True)

    # Kept after the trial ends, for audit
    trial_ends_at = models.DateTimeField(null=True, blank=True)

    # Set iff status is GRACE_PERIOD
    grace_period_ends_at = models.DateTimeField(null=True, blank=True)
    grace_period_days = models.PositiveSmallIntegerField(null=True, blank=True)

    suspension_reason = models.TextField(blank=True)
    ended_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the subscription was canceled or expired.",
    )

    # Payment processor references
    external_customer_ref = models.CharField(max_length=255, blank=True)
    external_subscription_ref = models.CharField(max_length=255, blank=True)

    # Usage counter
    jobs_created_this_month = models.PositiveIntegerField(default=0)
    last_counter_reset_at = models.DateTimeField(null=True, blank=True)

    # Concurrency and ordering guards
    last_event_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Timestamp of the last applied lifecycle event.",
    )
    version = models.PositiveIntegerField(default=0)

    class Meta:
        get_latest_by = "created"
        indexes = [
            models.Index(
                fields=["tenant", "status"],
                name="billing_sub_tenant_status_idx",
            ),
            models.Index(fields=["status"], name="billing_sub_status_idx"),
            models.Index(
                fields=["external_customer_ref"],
                name="billing_sub_ext_customer_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant"],
                condition=Q(status__in=LIVE_STATUS_VALUES),
                name="uq_billing_one_live_subscription_per_tenant",
            ),
            models.CheckConstraint(
                condition=(
                    Q(status=SubscriptionStatus.GRACE_PERIOD)
                    & Q(grace_period_ends_at__isnull=False)
                )
                | (
                    ~Q(status=SubscriptionStatus.GRACE_PERIOD)
                    & Q(grace_period_ends_at__isnull=True)
                ),
                name="ck_billing_grace_end_iff_grace_status",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.tenant.name} - {self.plan.name} ({self.status})"

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUS_VALUES


class BillingEvent(TimeStampedModel):
    """
    A normalized fact from the payment processor.

    The unique event_id is the dedup key: a row existing for an id means the
    event was already handled. Rows are never deleted.
    """

    event_id = models.CharField(max_length=255, unique=True)
    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        related_name="billing_events",
    )
    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="billing_events",
    )
    kind = models.CharField(max_length=32, choices=BillingEventKind.choices)
    occurred_at = models.DateTimeField()
    payload = models.JSONField(default=dict, blank=True)

    outcome = models.CharField(
        max_length=20,
        choices=BillingEventOutcome.choices,
        blank=True,
    )
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(
                fields=["tenant", "occurred_at"],
                name="billing_event_tenant_time_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.event_id} ({self.kind})"


class JobReservation(TimeStampedModel):
    """
    One provisional job slot handed out by the entitlement gate.

    The counter is incremented when the reservation is taken; committing
    keeps it, releasing gives it back. cycle_anchor records the counter's
    last reset at reservation time so a release after a reset does not
    decrement the new cycle.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.PROTECT,
        related_name="job_reservations",
    )
    status = models.CharField(
        max_length=20,
        choices=ReservationStatus.choices,
        default=ReservationStatus.PENDING,
    )
    cycle_anchor = models.DateTimeField(null=True, blank=True)
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(
                fields=["status", "created"],
                name="billing_resv_status_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"JobReservation({str(self.id)[:8]}... {self.status})"


class LifecycleNotification(TimeStampedModel):
    """
    Outbox row for a subscription status change.

    Written in the same transaction as the transition; the notification
    subsystem picks up rows with dispatched_at unset.
    """

    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        related_name="lifecycle_notifications",
    )
    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.PROTECT,
        related_name="notifications",
    )
    old_status = models.CharField(max_length=20, choices=SubscriptionStatus.choices)
    new_status = models.CharField(max_length=20, choices=SubscriptionStatus.choices)
    reason = models.TextField(blank=True)
    occurred_at = models.DateTimeField()
    dispatched_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created"]
        indexes = [
            models.Index(
                fields=["dispatched_at"],
                name="billing_notif_dispatched_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.tenant.name}: {self.old_status} → {self.new_status}"
