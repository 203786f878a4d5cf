"""
EntitlementGate: the one call metered actions make before writing.

    gate = EntitlementGate()
    decision = gate.authorize(tenant.id, MeteredResource.JOB)
    if isinstance(decision, Deny):
        return error_response(decision.reason)
    try:
        with transaction.atomic():
            job = Job.objects.create(...)
            gate.commit(decision.reservation_token)
    except Exception:
        gate.release(decision.reservation_token)
        raise

Member checks return Allow without a token; there is nothing to commit.

The gate fails closed: if storage can't be reached, or the retry budget for
concurrent updates runs out, `authorize` denies with TEMPORARILY_UNAVAILABLE.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import StrEnum

from recruitdesk.billing.constants import MeteredResource
from recruitdesk.billing.exceptions import TemporarilyUnavailableError
from recruitdesk.billing.usage import JobSlotGrant
from recruitdesk.billing.usage import LimitReached
from recruitdesk.billing.usage import MemberSlotAvailable
from recruitdesk.billing.usage import NoActiveSubscription
from recruitdesk.billing.usage import UsageCounter

logger = logging.getLogger(__name__)


class DenialReason(StrEnum):
    NO_ACTIVE_SUBSCRIPTION = "no_active_subscription"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    LIMIT_REACHED = "limit_reached"
    TEMPORARILY_UNAVAILABLE = "temporarily_unavailable"


@dataclass(frozen=True)
class Allow:
    reservation_token: uuid.UUID | None = None
    remaining: int | None = None


@dataclass(frozen=True)
class Deny:
    reason: DenialReason
    limit: int | None = None
    current: int | None = None


class EntitlementGate:
    def __init__(self, usage: UsageCounter | None = None):
        self.usage = usage or UsageCounter()

    def authorize(self, tenant_id: int, resource: str) -> Allow | Deny:
        resource = MeteredResource(resource)
        try:
            if resource == MeteredResource.JOB:
                result = self.usage.try_reserve_job_slot(tenant_id)
            else:
                result = self.usage.check_member_slot(tenant_id)
        except TemporarilyUnavailableError:
            logger.warning(
                "Denying %s for tenant %s: billing storage unavailable",
                resource,
                tenant_id,
            )
            return Deny(DenialReason.TEMPORARILY_UNAVAILABLE)

        if isinstance(result, JobSlotGrant):
            return Allow(result.reservation_token, result.remaining)
        if isinstance(result, MemberSlotAvailable):
            return Allow(remaining=result.limit - result.current - 1)
        if isinstance(result, LimitReached):
            logger.info(
                "Tenant %s reached its %s limit (%s/%s)",
                tenant_id,
                resource,
                result.current,
                result.limit,
            )
            return Deny(DenialReason.LIMIT_REACHED, result.limit, result.current)
        if isinstance(result, NoActiveSubscription) and result.lapsed:
            return Deny(DenialReason.SUBSCRIPTION_EXPIRED)
        return Deny(DenialReason.NO_ACTIVE_SUBSCRIPTION)

    def commit(self, reservation_token) -> None:
        self.usage.commit(reservation_token)

    def release(self, reservation_token) -> bool:
        return self.usage.release(reservation_token)
