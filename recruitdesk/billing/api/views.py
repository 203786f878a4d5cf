"""
Admin API for tenant entitlements.

Exposes the entitlement summary and the admin lifecycle operations (grace
period, suspension, reactivation, custom plan) to staff users. Tenants are
addressed by primary key:

    GET  /api/v1/entitlements/{tenant_id}/
    POST /api/v1/entitlements/{tenant_id}/grace-period/   {"days": 14, "reason": "..."}
    POST /api/v1/entitlements/{tenant_id}/suspend/        {"reason": "..."}
    POST /api/v1/entitlements/{tenant_id}/reactivate/
    POST /api/v1/entitlements/{tenant_id}/custom-plan/    {"name": "...", "job_limit": 200, ...}
"""

import logging

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from recruitdesk.billing import services
from recruitdesk.billing.api.serializers import CustomPlanSerializer
from recruitdesk.billing.api.serializers import GracePeriodSerializer
from recruitdesk.billing.api.serializers import SubscriptionSerializer
from recruitdesk.billing.api.serializers import SuspendSerializer
from recruitdesk.billing.exceptions import ActiveSubscriptionExistsError
from recruitdesk.billing.exceptions import BillingError
from recruitdesk.billing.exceptions import InvalidTransitionError
from recruitdesk.billing.exceptions import SubscriptionNotFoundError
from recruitdesk.billing.exceptions import TemporarilyUnavailableError
from recruitdesk.billing.usage import UsageCounter
from recruitdesk.tenants.models import Tenant

logger = logging.getLogger(__name__)


def billing_error_response(exc: BillingError) -> Response:
    if isinstance(exc, SubscriptionNotFoundError):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (InvalidTransitionError, ActiveSubscriptionExistsError)):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, TemporarilyUnavailableError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        status_code = status.HTTP_400_BAD_REQUEST
    return Response({"detail": exc.detail, "code": exc.code}, status=status_code)


class TenantEntitlementViewSet(GenericViewSet):
    """Staff-only view of a tenant's plan, lifecycle state and usage."""

    queryset = Tenant.objects.all()
    permission_classes = [IsAdminUser]
    serializer_class = SubscriptionSerializer

    def retrieve(self, request, pk=None):
        tenant = self.get_object()
        try:
            summary = UsageCounter().usage_summary(tenant.pk)
        except BillingError as exc:
            return billing_error_response(exc)
        return Response(summary, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="grace-period")
    def grace_period(self, request, pk=None):
        tenant = self.get_object()
        serializer = GracePeriodSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._run(
            services.grant_grace_period,
            tenant.pk,
            serializer.validated_data["days"],
            serializer.validated_data["reason"],
        )

    @action(detail=True, methods=["post"])
    def suspend(self, request, pk=None):
        tenant = self.get_object()
        serializer = SuspendSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._run(services.suspend, tenant.pk, serializer.validated_data["reason"])

    @action(detail=True, methods=["post"])
    def reactivate(self, request, pk=None):
        tenant = self.get_object()
        return self._run(services.reactivate, tenant.pk)

    @action(detail=True, methods=["post"], url_path="custom-plan")
    def custom_plan(self, request, pk=None):
        tenant = self.get_object()
        serializer = CustomPlanSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._run(services.apply_custom_plan, tenant.pk, serializer.to_fields())

    def _run(self, operation, *args):
        try:
            subscription = operation(*args)
        except BillingError as exc:
            logger.info("Admin %s refused: %s", operation.__name__, exc.detail)
            return billing_error_response(exc)
        logger.info(
            "Admin %s by %s for tenant %s",
            operation.__name__,
            self.request.user,
            subscription.tenant_id,
        )
        return Response(SubscriptionSerializer(subscription).data, status=status.HTTP_200_OK)
