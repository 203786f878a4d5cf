"""
Billing constants for the entitlement engine.

These enums define the plan codes, the six subscription lifecycle states,
and the kinds of billing events and reservations the engine records.

Typical flow for self-serve tenants:
    TRIAL → ACTIVE (payment succeeded)
    TRIAL → EXPIRED (trial ended without payment)
    ACTIVE → PAST_DUE (payment failed) → GRACE_PERIOD (admin) → EXPIRED
    ACTIVE → CANCELED (processor cancellation or admin suspension)

CANCELED and EXPIRED are terminal: a tenant that comes back gets a new
Subscription row.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class PlanCode(models.TextChoices):
    """Codes of the catalog plans. Custom plans get generated codes."""

    FREE = "free", _("Free Trial")
    BRONZE = "bronze", _("Bronze")
    SILVER = "silver", _("Silver")
    GOLD = "gold", _("Gold")
    ENTERPRISE = "enterprise", _("Enterprise")


class SubscriptionStatus(models.TextChoices):
    TRIAL = "trial", _("Trial")
    ACTIVE = "active", _("Active")
    PAST_DUE = "past_due", _("Past Due")
    GRACE_PERIOD = "grace_period", _("Grace Period")
    CANCELED = "canceled", _("Canceled")
    EXPIRED = "expired", _("Expired")


# At most one subscription per tenant may be in one of these.
LIVE_STATUSES = frozenset(
    {
        SubscriptionStatus.TRIAL,
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.GRACE_PERIOD,
    },
)

# Statuses that may consume metered resources (and get monthly resets).
ENTITLED_STATUSES = frozenset(
    {
        SubscriptionStatus.TRIAL,
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.GRACE_PERIOD,
    },
)


class BillingEventKind(models.TextChoices):
    """Normalized billing event kinds handed over by the webhook adapter."""

    PAYMENT_SUCCEEDED = "payment_succeeded", _("Payment succeeded")
    PAYMENT_FAILED = "payment_failed", _("Payment failed")
    SUBSCRIPTION_CANCELED = "subscription_canceled", _("Subscription canceled")
    SUBSCRIPTION_RENEWED = "subscription_renewed", _("Subscription renewed")


class BillingEventOutcome(models.TextChoices):
    """What the reconciler did with a billing event."""

    APPLIED = "applied", _("Applied")
    NO_TRANSITION = "no_transition", _("No transition")
    DUPLICATE = "duplicate", _("Duplicate")
    STALE = "stale", _("Stale")


class ReservationStatus(models.TextChoices):
    PENDING = "pending", _("Pending")
    COMMITTED = "committed", _("Committed")
    RELEASED = "released", _("Released")
    # Released by the scheduler after the TTL ran out
    EXPIRED = "expired", _("Expired")


class MeteredResource(models.TextChoices):
    JOB = "job", _("Job posting")
    MEMBER = "member", _("Team member")


# Trial duration in days
TRIAL_DURATION_DAYS = 7

# Length of a paid billing period in days
BILLING_CYCLE_DAYS = 30

# Bounds accepted for an admin-granted grace period
MIN_GRACE_PERIOD_DAYS = 1
MAX_GRACE_PERIOD_DAYS = 90
