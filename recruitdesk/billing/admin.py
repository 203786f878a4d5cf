"""
Django admin configuration for billing models.

Lifecycle fields on Subscription are read-only here: status changes must go
through the state machine (services, reconciler, scheduler) so the version
guard and the notification outbox stay consistent. The admin API is the
place to grant grace periods, suspend or reactivate.
"""

from django.contrib import admin

from recruitdesk.billing.models import BillingEvent
from recruitdesk.billing.models import JobReservation
from recruitdesk.billing.models import LifecycleNotification
from recruitdesk.billing.models import Plan
from recruitdesk.billing.models import Subscription


@admin.register(Plan)
class PlanAdmin(admin.ModelAdmin):
    """Admin for catalog and custom plans."""

    list_display = [
        "code",
        "name",
        "monthly_price_cents",
        "job_limit",
        "member_limit",
        "is_custom",
        "is_active",
        "display_order",
    ]
    list_filter = ["is_custom", "is_active"]
    ordering = ["display_order"]
    search_fields = ["code", "name"]
    raw_id_fields = ["custom_owner"]

    fieldsets = [
        (None, {"fields": ["code", "name", "description"]}),
        (
            "Limits",
            {
                "fields": ["job_limit", "member_limit", "features"],
                "description": "Leave job limit empty for unlimited job postings.",
            },
        ),
        ("Custom plan", {"fields": ["is_custom", "custom_owner"]}),
        ("Pricing & Display", {"fields": ["monthly_price_cents", "is_active", "display_order"]}),
    ]

    def get_readonly_fields(self, request, obj=None):
        # Plans are immutable once subscriptions point at them
        if obj is not None and obj.subscriptions.exists():
            return ["code", "job_limit", "member_limit", "is_custom", "custom_owner"]
        return []


@admin.register(Subscription)
class SubscriptionAdmin(admin.ModelAdmin):
    """Admin for tenant subscriptions."""

    list_display = [
        "tenant",
        "plan",
        "status",
        "period_end",
        "trial_ends_at",
        "grace_period_ends_at",
        "jobs_created_this_month",
    ]
    list_filter = ["status", "plan"]
    search_fields = ["tenant__name", "external_customer_ref", "external_subscription_ref"]
    raw_id_fields = ["tenant", "plan"]
    readonly_fields = [
        "status",
        "period_start",
        "period_end",
        "trial_ends_at",
        "grace_period_ends_at",
        "grace_period_days",
        "suspension_reason",
        "ended_at",
        "jobs_created_this_month",
        "last_counter_reset_at",
        "last_event_at",
        "version",
        "created",
        "modified",
    ]

    fieldsets = [
        (None, {"fields": ["tenant", "plan", "status"]}),
        ("Billing Period", {"fields": ["period_start", "period_end", "trial_ends_at"]}),
        (
            "Grace & Suspension",
            {"fields": ["grace_period_ends_at", "grace_period_days", "suspension_reason", "ended_at"]},
        ),
        (
            "Payment Processor",
            {"fields": ["external_customer_ref", "external_subscription_ref"]},
        ),
        (
            "Usage",
            {"fields": ["jobs_created_this_month", "last_counter_reset_at"]},
        ),
        (
            "Concurrency",
            {"fields": ["last_event_at", "version"], "classes": ["collapse"]},
        ),
        ("Timestamps", {"fields": ["created", "modified"]}),
    ]


@admin.register(BillingEvent)
class BillingEventAdmin(admin.ModelAdmin):
    """Admin for the billing event ledger."""

    list_display = ["event_id", "tenant", "kind", "occurred_at", "outcome", "processed_at"]
    list_filter = ["kind", "outcome"]
    search_fields = ["event_id", "tenant__name"]
    raw_id_fields = ["tenant", "subscription"]
    readonly_fields = [
        "event_id",
        "tenant",
        "subscription",
        "kind",
        "occurred_at",
        "payload",
        "outcome",
        "processed_at",
        "created",
        "modified",
    ]

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(JobReservation)
class JobReservationAdmin(admin.ModelAdmin):
    list_display = ["id", "subscription", "status", "created", "resolved_at"]
    list_filter = ["status"]
    raw_id_fields = ["subscription"]
    readonly_fields = ["created", "modified"]


@admin.register(LifecycleNotification)
class LifecycleNotificationAdmin(admin.ModelAdmin):
    list_display = ["tenant", "old_status", "new_status", "occurred_at", "dispatched_at"]
    list_filter = ["new_status"]
    search_fields = ["tenant__name", "reason"]
    raw_id_fields = ["tenant", "subscription"]
    readonly_fields = ["created", "modified"]
