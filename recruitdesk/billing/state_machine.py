"""
Subscription lifecycle state machine.

A pure function from (snapshot, event, now) to either "no change" or a new
snapshot plus the side-effect intents the caller must carry out. Nothing in
this module touches the database; EntitlementStore maps rows to and from
snapshots.

Each lifecycle state is its own frozen dataclass carrying only the fields that
make sense in that state, so a grace period without an end date cannot be
expressed.

Transition priority when several could apply: explicit events (payments,
cancellations, admin actions) are evaluated as they arrive; time-based expiry
only happens on a Tick. A payment that lands after a deadline passed but
before the sweep ran therefore wins.

Usage:
    result = transition(snapshot, PaymentSucceeded(), now)
    if result is not None:
        store.apply_transition(subscription, result, now)
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
from datetime import datetime
from datetime import timedelta
from enum import Enum
from typing import ClassVar

from recruitdesk.billing.constants import BILLING_CYCLE_DAYS
from recruitdesk.billing.constants import BillingEventKind
from recruitdesk.billing.constants import SubscriptionStatus

# =============================================================================
# States
# =============================================================================


@dataclass(frozen=True)
class Trial:
    trial_ends_at: datetime
    period_start: datetime | None = None

    status: ClassVar[str] = SubscriptionStatus.TRIAL


@dataclass(frozen=True)
class Active:
    period_start: datetime
    period_end: datetime

    status: ClassVar[str] = SubscriptionStatus.ACTIVE


@dataclass(frozen=True)
class PastDue:
    period_start: datetime
    period_end: datetime

    status: ClassVar[str] = SubscriptionStatus.PAST_DUE


@dataclass(frozen=True)
class GracePeriod:
    period_start: datetime | None
    period_end: datetime | None
    grace_period_ends_at: datetime
    grace_period_days: int
    reason: str = ""

    status: ClassVar[str] = SubscriptionStatus.GRACE_PERIOD


@dataclass(frozen=True)
class Canceled:
    ended_at: datetime
    suspension_reason: str = ""

    status: ClassVar[str] = SubscriptionStatus.CANCELED


@dataclass(frozen=True)
class Expired:
    expired_at: datetime

    status: ClassVar[str] = SubscriptionStatus.EXPIRED


Phase = Trial | Active | PastDue | GracePeriod | Canceled | Expired

TERMINAL_PHASES = (Canceled, Expired)


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """
    Everything the state machine needs to know about one subscription.

    trial_ends_at outlives the Trial phase so the audit trail keeps it.
    last_event_at is the timestamp of the last applied transition; it only
    ever moves forward.
    """

    phase: Phase
    trial_ends_at: datetime | None = None
    last_event_at: datetime | None = None

    @property
    def status(self) -> str:
        return self.phase.status

    @property
    def is_terminal(self) -> bool:
        return isinstance(self.phase, TERMINAL_PHASES)


# =============================================================================
# Events
# =============================================================================


@dataclass(frozen=True)
class PaymentSucceeded:
    label: ClassVar[str] = "payment succeeded"


@dataclass(frozen=True)
class SubscriptionRenewed:
    label: ClassVar[str] = "subscription renewed"


@dataclass(frozen=True)
class PaymentFailed:
    label: ClassVar[str] = "payment failed"


@dataclass(frozen=True)
class SubscriptionCanceled:
    label: ClassVar[str] = "subscription canceled"


@dataclass(frozen=True)
class GrantGracePeriod:
    days: int
    reason: str = ""

    label: ClassVar[str] = "grant a grace period to"


@dataclass(frozen=True)
class Suspend:
    reason: str

    label: ClassVar[str] = "suspend"


@dataclass(frozen=True)
class Reactivate:
    label: ClassVar[str] = "reactivate"


@dataclass(frozen=True)
class Tick:
    """Time passing. Only deadlines are evaluated."""

    label: ClassVar[str] = "time passed"


Event = (
    PaymentSucceeded
    | SubscriptionRenewed
    | PaymentFailed
    | SubscriptionCanceled
    | GrantGracePeriod
    | Suspend
    | Reactivate
    | Tick
)

_EVENTS_BY_KIND = {
    BillingEventKind.PAYMENT_SUCCEEDED: PaymentSucceeded,
    BillingEventKind.SUBSCRIPTION_RENEWED: SubscriptionRenewed,
    BillingEventKind.PAYMENT_FAILED: PaymentFailed,
    BillingEventKind.SUBSCRIPTION_CANCELED: SubscriptionCanceled,
}


def event_for_kind(kind: str) -> Event:
    """Map a billing event kind to its state machine event."""
    try:
        return _EVENTS_BY_KIND[BillingEventKind(kind)]()
    except ValueError as exc:
        raise ValueError(f"Unknown billing event kind: {kind!r}") from exc


# =============================================================================
# Effects and results
# =============================================================================


@dataclass(frozen=True)
class ResetCounters:
    """Zero the monthly job counter and re-anchor the cycle."""


@dataclass(frozen=True)
class NotifyTenant:
    old_status: str
    new_status: str
    reason: str


Effect = ResetCounters | NotifyTenant


@dataclass(frozen=True)
class Transition:
    snapshot: SubscriptionSnapshot
    effects: tuple[Effect, ...] = field(default_factory=tuple)
    reason: str = ""


class Entitlement(str, Enum):
    """Whether a subscription may consume metered resources right now."""

    ENTITLED = "entitled"
    # Expired, or entitled status whose deadline has passed
    LAPSED = "lapsed"
    # past_due, canceled
    INACTIVE = "inactive"


# =============================================================================
# Transition function
# =============================================================================


def expiry_deadline(phase: Phase) -> datetime | None:
    """Return the moment after which a Tick expires this phase."""
    if isinstance(phase, Trial):
        return phase.trial_ends_at
    if isinstance(phase, (Active, PastDue)):
        return phase.period_end
    if isinstance(phase, GracePeriod):
        return phase.grace_period_ends_at
    return None


def entitlement(snapshot: SubscriptionSnapshot, now: datetime) -> Entitlement:
    phase = snapshot.phase
    if isinstance(phase, Expired):
        return Entitlement.LAPSED
    if isinstance(phase, (PastDue, Canceled)):
        return Entitlement.INACTIVE
    deadline = expiry_deadline(phase)
    if deadline is not None and now > deadline:
        return Entitlement.LAPSED
    return Entitlement.ENTITLED


def _new_period(now: datetime) -> tuple[datetime, datetime]:
    return now, now + timedelta(days=BILLING_CYCLE_DAYS)


def _next_phase(phase: Phase, event: Event, now: datetime) -> tuple[Phase, str] | None:
    # Payments and renewals
    if isinstance(event, (PaymentSucceeded, SubscriptionRenewed)):
        if isinstance(phase, Active):
            end = max(phase.period_end, now) + timedelta(days=BILLING_CYCLE_DAYS)
            return Active(period_start=now, period_end=end), event.label
        if isinstance(phase, (Trial, PastDue, GracePeriod)):
            start, end = _new_period(now)
            return Active(period_start=start, period_end=end), event.label
        return None

    if isinstance(event, PaymentFailed):
        if isinstance(phase, Active):
            return PastDue(phase.period_start, phase.period_end), event.label
        return None

    if isinstance(event, SubscriptionCanceled):
        return Canceled(ended_at=now), event.label

    if isinstance(event, Suspend):
        return Canceled(ended_at=now, suspension_reason=event.reason), event.reason

    if isinstance(event, GrantGracePeriod):
        if isinstance(phase, (PastDue, GracePeriod)):
            grace = GracePeriod(
                period_start=phase.period_start,
                period_end=phase.period_end,
                grace_period_ends_at=now + timedelta(days=event.days),
                grace_period_days=event.days,
                reason=event.reason,
            )
            return grace, event.reason or f"grace period of {event.days} days"
        return None

    if isinstance(event, Reactivate):
        if isinstance(phase, (PastDue, GracePeriod)):
            start, end = _new_period(now)
            return Active(period_start=start, period_end=end), "reactivated"
        return None

    if isinstance(event, Tick):
        deadline = expiry_deadline(phase)
        if deadline is not None and now > deadline:
            reason = "trial ended" if isinstance(phase, Trial) else f"{phase.status} ended"
            return Expired(expired_at=now), reason
        return None

    raise TypeError(f"Unsupported event: {event!r}")


def transition(
    snapshot: SubscriptionSnapshot,
    event: Event,
    now: datetime,
) -> Transition | None:
    """
    Compute the result of applying `event` at time `now`.

    Returns None when the event does not move the subscription. Terminal
    states never move; a returning tenant gets a new subscription instead.
    """
    if snapshot.is_terminal:
        return None

    result = _next_phase(snapshot.phase, event, now)
    if result is None:
        return None
    phase, reason = result

    last_event_at = now
    if snapshot.last_event_at is not None:
        last_event_at = max(snapshot.last_event_at, now)

    new_snapshot = replace(snapshot, phase=phase, last_event_at=last_event_at)

    effects: list[Effect] = []
    if isinstance(snapshot.phase, Trial) and isinstance(phase, Active):
        effects.append(ResetCounters())
    if phase.status != snapshot.status:
        effects.append(
            NotifyTenant(
                old_status=snapshot.status,
                new_status=phase.status,
                reason=reason,
            ),
        )
    return Transition(snapshot=new_snapshot, effects=tuple(effects), reason=reason)


def fold(
    snapshot: SubscriptionSnapshot,
    events: Iterable[tuple[Event, datetime]],
) -> SubscriptionSnapshot:
    """Apply a sequence of (event, occurred_at) pairs, skipping no-ops."""
    for event, occurred_at in events:
        result = transition(snapshot, event, occurred_at)
        if result is not None:
            snapshot = result.snapshot
    return snapshot
