"""
Outbound lifecycle notifications.

Every status change writes a LifecycleNotification row in the same
transaction as the transition (an outbox), and sends the
`subscription_status_changed` signal once that transaction commits. The
email subsystem either listens to the signal or polls for undispatched rows;
this module never sends anything itself.

Receivers get `notification` (the outbox row) as a keyword argument:

    @receiver(subscription_status_changed)
    def on_status_changed(sender, notification, **kwargs):
        ...
"""

import logging
from datetime import datetime

from django.db import transaction
from django.dispatch import Signal
from django.utils import timezone

from recruitdesk.billing.models import LifecycleNotification

logger = logging.getLogger(__name__)

subscription_status_changed = Signal()


def record_status_change(
    subscription,
    *,
    old_status: str,
    new_status: str,
    reason: str,
    occurred_at: datetime,
) -> LifecycleNotification:
    notification = LifecycleNotification.objects.create(
        tenant_id=subscription.tenant_id,
        subscription=subscription,
        old_status=old_status,
        new_status=new_status,
        reason=reason,
        occurred_at=occurred_at,
    )
    transaction.on_commit(
        lambda: subscription_status_changed.send(
            sender=LifecycleNotification,
            notification=notification,
        ),
    )
    return notification


def pending_notifications(limit: int = 100):
    return LifecycleNotification.objects.filter(dispatched_at__isnull=True).order_by(
        "created",
    )[:limit]


def mark_dispatched(notification_ids) -> int:
    """Flag outbox rows as handed to the email subsystem."""
    count = LifecycleNotification.objects.filter(
        pk__in=notification_ids,
        dispatched_at__isnull=True,
    ).update(dispatched_at=timezone.now())
    logger.debug("Marked %s lifecycle notifications dispatched", count)
    return count
