from rest_framework import serializers

from recruitdesk.billing.constants import MAX_GRACE_PERIOD_DAYS
from recruitdesk.billing.constants import MIN_GRACE_PERIOD_DAYS
from recruitdesk.billing.models import Plan
from recruitdesk.billing.models import Subscription
from recruitdesk.billing.services import CustomPlanFields


class PlanSerializer(serializers.ModelSerializer[Plan]):
    class Meta:
        model = Plan
        fields = [
            "code",
            "name",
            "monthly_price_cents",
            "job_limit",
            "member_limit",
            "features",
            "is_custom",
        ]


class SubscriptionSerializer(serializers.ModelSerializer[Subscription]):
    """Lifecycle fields of a subscription, as returned by the admin actions."""

    plan = PlanSerializer(read_only=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "tenant",
            "plan",
            "status",
            "period_start",
            "period_end",
            "trial_ends_at",
            "grace_period_ends_at",
            "grace_period_days",
            "suspension_reason",
            "ended_at",
            "jobs_created_this_month",
        ]
        read_only_fields = fields


class GracePeriodSerializer(serializers.Serializer):
    days = serializers.IntegerField(
        min_value=MIN_GRACE_PERIOD_DAYS,
        max_value=MAX_GRACE_PERIOD_DAYS,
    )
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class SuspendSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=False, trim_whitespace=True)


class CustomPlanSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    job_limit = serializers.IntegerField(min_value=0, allow_null=True, required=False, default=None)
    member_limit = serializers.IntegerField(min_value=1)
    monthly_price_cents = serializers.IntegerField(min_value=0, required=False, default=0)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    features = serializers.ListField(
        child=serializers.CharField(max_length=64),
        required=False,
        default=list,
    )

    def to_fields(self) -> CustomPlanFields:
        return CustomPlanFields(**self.validated_data)
