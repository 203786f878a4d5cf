"""
Reconcile normalized billing events from the payment processor.

The processor may redeliver events and may deliver them out of order. Each
event is handled once:

    1. An event_id already in the ledger returns DUPLICATE, untouched.
    2. An event older than the subscription's last applied event is recorded
       as STALE and not applied, so a late notice can't move a tenant back.
    3. Otherwise the state machine decides. The ledger row, the new
       subscription state, any counter reset and the notification outbox row
       commit in one transaction.

A lost compare-and-swap rolls everything back, including the ledger row, and
the whole attempt is retried from a fresh read.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from enum import StrEnum

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from recruitdesk.billing import state_machine as sm
from recruitdesk.billing.constants import BillingEventKind
from recruitdesk.billing.constants import BillingEventOutcome
from recruitdesk.billing.exceptions import ConflictError
from recruitdesk.billing.exceptions import SubscriptionNotFoundError
from recruitdesk.billing.exceptions import TemporarilyUnavailableError
from recruitdesk.billing.store import EntitlementStore
from recruitdesk.billing.usage import conflict_retry_limit

logger = logging.getLogger(__name__)


class ReconcileOutcome(StrEnum):
    APPLIED = BillingEventOutcome.APPLIED.value
    NO_TRANSITION = BillingEventOutcome.NO_TRANSITION.value
    DUPLICATE = BillingEventOutcome.DUPLICATE.value
    STALE = BillingEventOutcome.STALE.value


@dataclass(frozen=True)
class NormalizedBillingEvent:
    """A billing event as handed over by the webhook adapter."""

    event_id: str
    tenant_id: int
    kind: str
    occurred_at: datetime
    payload: dict = field(default_factory=dict)

    def __post_init__(self):
        if not self.event_id:
            raise ValueError("event_id is required")
        # Raises ValueError for unknown kinds
        BillingEventKind(self.kind)
        if timezone.is_naive(self.occurred_at):
            raise ValueError("occurred_at must be timezone-aware")

    @classmethod
    def from_dict(cls, data: dict) -> NormalizedBillingEvent:
        occurred_at = data["occurred_at"]
        if isinstance(occurred_at, str):
            parsed = parse_datetime(occurred_at)
            if parsed is None:
                raise ValueError(f"Invalid occurred_at: {occurred_at!r}")
            occurred_at = parsed
        return cls(
            event_id=str(data["event_id"]),
            tenant_id=int(data["tenant_id"]),
            kind=data["kind"],
            occurred_at=occurred_at,
            payload=data.get("payload") or {},
        )

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "tenant_id": self.tenant_id,
            "kind": self.kind,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": self.payload,
        }


class PaymentEventReconciler:
    def __init__(self, store: EntitlementStore | None = None):
        self.store = store or EntitlementStore()

    def apply(self, event: NormalizedBillingEvent) -> ReconcileOutcome:
        """
        Apply one billing event.

        Raises:
            SubscriptionNotFoundError: the tenant has no subscription. Nothing
                is recorded, so a redelivery after signup can still apply.
            TemporarilyUnavailableError: storage is unreachable, or the
                conflict retry budget ran out.
        """
        attempts = conflict_retry_limit()
        for attempt in range(1, attempts + 1):
            try:
                with self.store.guard(), transaction.atomic():
                    return self._apply_once(event)
            except ConflictError:
                logger.info(
                    "Billing event %s lost a concurrent update (attempt %s/%s)",
                    event.event_id,
                    attempt,
                    attempts,
                )

        logger.warning(
            "Billing event %s still conflicting after %s attempts",
            event.event_id,
            attempts,
        )
        raise TemporarilyUnavailableError

    def _apply_once(self, event: NormalizedBillingEvent) -> ReconcileOutcome:
        if self.store.event_exists(event.event_id):
            logger.info("Duplicate billing event %s ignored", event.event_id)
            return ReconcileOutcome.DUPLICATE

        subscription = self.store.current_subscription(event.tenant_id)
        if subscription is None:
            raise SubscriptionNotFoundError(event.tenant_id)

        record = self.store.claim_event(
            event_id=event.event_id,
            tenant_id=event.tenant_id,
            subscription=subscription,
            kind=event.kind,
            occurred_at=event.occurred_at,
            payload=event.payload,
        )
        if record is None:
            logger.info("Duplicate billing event %s ignored", event.event_id)
            return ReconcileOutcome.DUPLICATE

        now = timezone.now()
        snapshot = self.store.to_snapshot(subscription)
        if snapshot.last_event_at is not None and event.occurred_at < snapshot.last_event_at:
            logger.warning(
                "Stale billing event %s (%s at %s) for tenant %s; last applied %s",
                event.event_id,
                event.kind,
                event.occurred_at.isoformat(),
                event.tenant_id,
                snapshot.last_event_at.isoformat(),
            )
            self.store.mark_event(record, ReconcileOutcome.STALE, now)
            return ReconcileOutcome.STALE

        result = sm.transition(snapshot, sm.event_for_kind(event.kind), event.occurred_at)
        if result is None:
            logger.info(
                "Billing event %s (%s) does not apply to %s subscription %s",
                event.event_id,
                event.kind,
                subscription.status,
                subscription.pk,
            )
            self.store.mark_event(record, ReconcileOutcome.NO_TRANSITION, now)
            return ReconcileOutcome.NO_TRANSITION

        self.store.apply_transition(subscription, result, event.occurred_at)
        self.store.mark_event(record, ReconcileOutcome.APPLIED, now)
        return ReconcileOutcome.APPLIED
