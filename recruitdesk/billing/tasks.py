"""
Celery tasks for billing event intake.

The webhook adapter verifies and normalizes processor payloads, then queues
them here so the HTTP response to the processor never waits on our database.
"""

import logging

from celery import shared_task
from django.db import OperationalError

from recruitdesk.billing.exceptions import SubscriptionNotFoundError
from recruitdesk.billing.exceptions import TemporarilyUnavailableError
from recruitdesk.billing.reconciler import NormalizedBillingEvent
from recruitdesk.billing.reconciler import PaymentEventReconciler

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    name="recruitdesk.apply_billing_event",
    autoretry_for=(TemporarilyUnavailableError, OperationalError),
    max_retries=5,
    retry_backoff=10,
    retry_backoff_max=300,
    acks_late=True,
)
def apply_billing_event(self, event_data: dict) -> str:
    """
    Apply one normalized billing event.

    Returns the reconcile outcome. An event for a tenant without any
    subscription is logged and reported as "not_found"; redelivering it once
    the tenant has signed up will apply it.
    """
    event = NormalizedBillingEvent.from_dict(event_data)
    try:
        outcome = PaymentEventReconciler().apply(event)
    except SubscriptionNotFoundError:
        logger.warning(
            "Billing event %s for tenant %s has no subscription (task_id=%s)",
            event.event_id,
            event.tenant_id,
            self.request.id,
        )
        return "not_found"

    logger.info("Billing event %s: %s", event.event_id, outcome)
    return outcome.value
