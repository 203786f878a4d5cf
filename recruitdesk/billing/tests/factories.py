from datetime import UTC
from datetime import datetime
from datetime import timedelta

import factory
from factory.django import DjangoModelFactory

from recruitdesk.billing.constants import BillingEventKind
from recruitdesk.billing.constants import SubscriptionStatus
from recruitdesk.billing.models import BillingEvent
from recruitdesk.billing.models import Plan
from recruitdesk.billing.models import Subscription
from recruitdesk.tenants.tests.factories import TenantFactory

# A fixed point in time tests can reason about without touching the clock.
BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
MONTH_START = datetime(2026, 3, 1, 0, 0, tzinfo=UTC)
NEXT_MONTH = datetime(2026, 4, 1, 0, 5, tzinfo=UTC)


class PlanFactory(DjangoModelFactory[Plan]):
    class Meta:
        model = Plan
        django_get_or_create = ["code"]

    code = factory.Sequence(lambda n: f"test-plan-{n}")
    name = factory.Sequence(lambda n: f"Test Plan {n}")
    job_limit = 5
    member_limit = 2
    monthly_price_cents = 10_000


class SubscriptionFactory(DjangoModelFactory[Subscription]):
    """
    An active subscription whose billing period covers BASE_TIME.

    The counter was last reset at the start of BASE_TIME's month, so the lazy
    monthly reset only fires once a test moves `now` into April.
    """

    class Meta:
        model = Subscription

    tenant = factory.SubFactory(TenantFactory)
    plan = factory.SubFactory(PlanFactory)
    status = SubscriptionStatus.ACTIVE
    period_start = BASE_TIME - timedelta(days=5)
    period_end = BASE_TIME + timedelta(days=25)
    last_counter_reset_at = MONTH_START
    jobs_created_this_month = 0

    class Params:
        trial = factory.Trait(
            status=SubscriptionStatus.TRIAL,
            trial_ends_at=BASE_TIME + timedelta(days=5),
            period_end=BASE_TIME + timedelta(days=5),
        )
        past_due = factory.Trait(status=SubscriptionStatus.PAST_DUE)
        grace = factory.Trait(
            status=SubscriptionStatus.GRACE_PERIOD,
            grace_period_ends_at=BASE_TIME + timedelta(days=10),
            grace_period_days=10,
        )
        expired = factory.Trait(
            status=SubscriptionStatus.EXPIRED,
            ended_at=BASE_TIME - timedelta(days=1),
            last_event_at=BASE_TIME - timedelta(days=1),
        )


class BillingEventFactory(DjangoModelFactory[BillingEvent]):
    class Meta:
        model = BillingEvent

    event_id = factory.Sequence(lambda n: f"evt_{n:06d}")
    tenant = factory.SubFactory(TenantFactory)
    kind = BillingEventKind.PAYMENT_SUCCEEDED
    occurred_at = BASE_TIME
