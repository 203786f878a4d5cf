"""
Exceptions raised by the entitlement engine.

Business outcomes (limit reached, duplicate or stale billing events) are
returned as values, not raised. These exceptions cover the cases where the
caller asked for something that cannot be done right now.
"""


class BillingError(Exception):
    """Base exception for billing-related errors."""

    def __init__(self, detail: str, code: str = "billing_error"):
        self.detail = detail
        self.code = code
        super().__init__(detail)


class SubscriptionNotFoundError(BillingError):
    """Raised when a tenant has no subscription at all."""

    def __init__(self, tenant_id=None):
        self.tenant_id = tenant_id
        super().__init__(
            f"No subscription found for tenant {tenant_id}.",
            code="not_found",
        )


class ConflictError(BillingError):
    """
    Raised when a conditional update lost to a concurrent writer.

    Callers retry the whole operation from a fresh read; they never assume
    the write happened.
    """

    def __init__(self, detail: str = "Concurrent update detected."):
        super().__init__(detail, code="conflict")


class TemporarilyUnavailableError(BillingError):
    """Raised when storage is unreachable or the conflict retry budget ran out."""

    def __init__(
        self,
        detail: str = "Billing service is temporarily unavailable. Please retry.",
    ):
        super().__init__(detail, code="temporarily_unavailable")


class InvalidTransitionError(BillingError):
    """Raised when an admin operation does not apply to the current state."""

    def __init__(self, detail: str, status: str = ""):
        self.status = status
        super().__init__(detail, code="invalid_transition")


class ActiveSubscriptionExistsError(BillingError):
    """Raised when starting a subscription for a tenant that already has a live one."""

    def __init__(self, tenant_id=None):
        self.tenant_id = tenant_id
        super().__init__(
            f"Tenant {tenant_id} already has a live subscription.",
            code="subscription_exists",
        )


class ReservationNotFoundError(BillingError):
    """Raised when committing or releasing an unknown reservation token."""

    def __init__(self, token=None):
        self.token = token
        super().__init__(
            f"Reservation {token} does not exist.",
            code="reservation_not_found",
        )
