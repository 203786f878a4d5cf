import uuid

import django.db.models.deletion
import django.utils.timezone
import model_utils.fields
from django.db import migrations, models

SUBSCRIPTION_STATUS_CHOICES = [
    ("trial", "Trial"),
    ("active", "Active"),
    ("past_due", "Past Due"),
    ("grace_period", "Grace Period"),
    ("canceled", "Canceled"),
    ("expired", "Expired"),
]


def _timestamps():
    return [
        (
            "created",
            model_utils.fields.AutoCreatedField(
                default=django.utils.timezone.now,
                editable=False,
                verbose_name="created",
            ),
        ),
        (
            "modified",
            model_utils.fields.AutoLastModifiedField(
                default=django.utils.timezone.now,
                editable=False,
                verbose_name="modified",
            ),
        ),
    ]


def _big_auto_id():
    return (
        "id",
        models.BigAutoField(
            auto_created=True,
            primary_key=True,
            serialize=False,
            verbose_name="ID",
        ),
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("tenants", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Plan",
            fields=[
                (
                    "code",
                    models.CharField(
                        help_text="Unique plan identifier, also used as PK.",
                        max_length=64,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "name",
                    models.CharField(
                        help_text="Display name for the plan.",
                        max_length=100,
                    ),
                ),
                ("description", models.TextField(blank=True)),
                (
                    "monthly_price_cents",
                    models.IntegerField(
                        default=0,
                        help_text="Monthly price in cents, for display only.",
                    ),
                ),
                (
                    "job_limit",
                    models.IntegerField(
                        blank=True,
                        help_text="Job postings per calendar month. Null = unlimited.",
                        null=True,
                    ),
                ),
                (
                    "member_limit",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Maximum active team members.",
                    ),
                ),
                ("features", models.JSONField(blank=True, default=list)),
                ("is_custom", models.BooleanField(default=False)),
                (
                    "is_active",
                    models.BooleanField(
                        default=True,
                        help_text="Whether the plan is offered in the public catalog.",
                    ),
                ),
                ("display_order", models.IntegerField(default=0)),
                (
                    "custom_owner",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="custom_plans",
                        to="tenants.tenant",
                    ),
                ),
            ],
            options={
                "ordering": ["display_order"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("job_limit__isnull", True),
                            ("job_limit__gte", 0),
                            _connector="OR",
                        ),
                        name="ck_billing_plan_job_limit_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("member_limit__gte", 1)),
                        name="ck_billing_plan_member_limit_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                _big_auto_id(),
                *_timestamps(),
                (
                    "status",
                    models.CharField(
                        choices=SUBSCRIPTION_STATUS_CHOICES,
                        default="trial",
                        max_length=20,
                    ),
                ),
                ("period_start", models.DateTimeField(blank=True, null=True)),
                ("period_end", models.DateTimeField(blank=True, null=True)),
                ("trial_ends_at", models.DateTimeField(blank=True, null=True)),
                (
                    "grace_period_ends_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                (
                    "grace_period_days",
                    models.PositiveSmallIntegerField(blank=True, null=True),
                ),
                ("suspension_reason", models.TextField(blank=True)),
                (
                    "ended_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the subscription was canceled or expired.",
                        null=True,
                    ),
                ),
                (
                    "external_customer_ref",
                    models.CharField(blank=True, max_length=255),
                ),
                (
                    "external_subscription_ref",
                    models.CharField(blank=True, max_length=255),
                ),
                ("jobs_created_this_month", models.PositiveIntegerField(default=0)),
                (
                    "last_counter_reset_at",
                    models.DateTimeField(blank=True, null=True),
                ),
                (
                    "last_event_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Timestamp of the last applied lifecycle event.",
                        null=True,
                    ),
                ),
                ("version", models.PositiveIntegerField(default=0)),
                (
                    "plan",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="billing.plan",
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="tenants.tenant",
                    ),
                ),
            ],
            options={
                "get_latest_by": "created",
                "indexes": [
                    models.Index(
                        fields=["tenant", "status"],
                        name="billing_sub_tenant_status_idx",
                    ),
                    models.Index(fields=["status"], name="billing_sub_status_idx"),
                    models.Index(
                        fields=["external_customer_ref"],
                        name="billing_sub_ext_customer_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(
                            ("status__in", ["trial", "active", "past_due", "grace_period"]),
                        ),
                        fields=("tenant",),
                        name="uq_billing_one_live_subscription_per_tenant",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(
                                ("status", "grace_period"),
                                ("grace_period_ends_at__isnull", False),
                            ),
                            models.Q(
                                models.Q(("status", "grace_period"), _negated=True),
                                ("grace_period_ends_at__isnull", True),
                            ),
                            _connector="OR",
                        ),
                        name="ck_billing_grace_end_iff_grace_status",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BillingEvent",
            fields=[
                _big_auto_id(),
                *_timestamps(),
                ("event_id", models.CharField(max_length=255, unique=True)),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("payment_succeeded", "Payment succeeded"),
                            ("payment_failed", "Payment failed"),
                            ("subscription_canceled", "Subscription canceled"),
                            ("subscription_renewed", "Subscription renewed"),
                        ],
                        max_length=32,
                    ),
                ),
                ("occurred_at", models.DateTimeField()),
                ("payload", models.JSONField(blank=True, default=dict)),
                (
                    "outcome",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("applied", "Applied"),
                            ("no_transition", "No transition"),
                            ("duplicate", "Duplicate"),
                            ("stale", "Stale"),
                        ],
                        max_length=20,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "subscription",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="billing_events",
                        to="billing.subscription",
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="billing_events",
                        to="tenants.tenant",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=["tenant", "occurred_at"],
                        name="billing_event_tenant_time_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="JobReservation",
            fields=[
                *_timestamps(),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("committed", "Committed"),
                            ("released", "Released"),
                            ("expired", "Expired"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("cycle_anchor", models.DateTimeField(blank=True, null=True)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                (
                    "subscription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="job_reservations",
                        to="billing.subscription",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=["status", "created"],
                        name="billing_resv_status_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="LifecycleNotification",
            fields=[
                _big_auto_id(),
                *_timestamps(),
                (
                    "old_status",
                    models.CharField(
                        choices=SUBSCRIPTION_STATUS_CHOICES,
                        max_length=20,
                    ),
                ),
                (
                    "new_status",
                    models.CharField(
                        choices=SUBSCRIPTION_STATUS_CHOICES,
                        max_length=20,
                    ),
                ),
                ("reason", models.TextField(blank=True)),
                ("occurred_at", models.DateTimeField()),
                ("dispatched_at", models.DateTimeField(blank=True, null=True)),
                (
                    "subscription",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="notifications",
                        to="billing.subscription",
                    ),
                ),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="lifecycle_notifications",
                        to="tenants.tenant",
                    ),
                ),
            ],
            options={
                "ordering": ["created"],
                "indexes": [
                    models.Index(
                        fields=["dispatched_at"],
                        name="billing_notif_dispatched_idx",
                    ),
                ],
            },
        ),
    ]
