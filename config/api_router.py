"""
API router for the v1 API.

Staff-facing entitlement endpoints, plus the scheduled-task triggers that
only answer on worker instances.
"""

from django.conf import settings
from django.urls import path
from rest_framework.routers import DefaultRouter
from rest_framework.routers import SimpleRouter

from recruitdesk.billing.api.views import TenantEntitlementViewSet
from recruitdesk.core.api.scheduled_tasks import LifecycleSweepView
from recruitdesk.core.api.scheduled_tasks import ResetUsageCountersView

router = DefaultRouter() if settings.DEBUG else SimpleRouter()

router.register("entitlements", TenantEntitlementViewSet, basename="entitlement")

app_name = "api"
urlpatterns = [
    path(
        "scheduled/lifecycle-sweep/",
        LifecycleSweepView.as_view(),
        name="scheduled-lifecycle-sweep",
    ),
    path(
        "scheduled/reset-usage-counters/",
        ResetUsageCountersView.as_view(),
        name="scheduled-reset-usage-counters",
    ),
    *router.urls,
]
