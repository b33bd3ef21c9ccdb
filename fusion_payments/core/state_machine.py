"""
Payment state machine.

Pure decision logic: given the current state of a payment and an incoming
event, decide the new state and the fields to persist. Nothing here touches
storage or the network.

    pending -> paid | failed | cancelled

All three outcomes are terminal. Once terminal, a payment only accumulates
raw gateway payloads; the first terminal outcome wins.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .exceptions import ConflictingEventError


class PaymentState(str, Enum):
    """Persisted payment states."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"


class EventKind(str, Enum):
    """Normalized kinds of events fed into the state machine."""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    PENDING = "pending"
    UNKNOWN = "unknown"


TERMINAL_STATES = frozenset({PaymentState.PAID, PaymentState.FAILED, PaymentState.CANCELLED})

_OUTCOMES: Dict[EventKind, PaymentState] = {
    EventKind.SUCCESS: PaymentState.PAID,
    EventKind.FAILURE: PaymentState.FAILED,
    EventKind.CANCELLED: PaymentState.CANCELLED,
}

# Payload keys copied onto the record on the success transition.
SUCCESS_FIELDS = ("transaction_ref", "method", "fee")

# Raw bag key holding every unrecognized event, oldest first.
UNKNOWN_EVENTS_KEY = "unknown_events"


@dataclass(frozen=True)
class Decision:
    """Outcome of applying one event to one payment state."""

    previous_state: PaymentState
    new_state: PaymentState
    changes: Dict[str, Any] = field(default_factory=dict)
    raw_response: Dict[str, Any] = field(default_factory=dict)
    duplicate: bool = False
    conflict: Optional[ConflictingEventError] = None

    @property
    def transitioned(self) -> bool:
        return self.new_state != self.previous_state


def implied_outcome(kind: EventKind) -> Optional[PaymentState]:
    """Terminal state an event kind leads to, or None for pending/unknown."""
    return _OUTCOMES.get(EventKind(kind))


def is_terminal(state: str) -> bool:
    return PaymentState(state) in TERMINAL_STATES


def is_duplicate(state: str, kind: EventKind) -> bool:
    """True when the record already sits in the terminal state the event implies."""
    outcome = implied_outcome(kind)
    return outcome is not None and PaymentState(state) == outcome


def merge_raw_response(
    existing: Optional[Mapping[str, Any]], incoming: Optional[Mapping[str, Any]]
) -> Dict[str, Any]:
    """
    Shallow union of two raw payload bags.

    Keys from ``incoming`` overwrite matching keys; keys only present in
    ``existing`` are always kept. Unknown event entries are appended.
    """
    merged: Dict[str, Any] = dict(existing or {})
    incoming = dict(incoming or {})
    if UNKNOWN_EVENTS_KEY in incoming:
        history = list(merged.get(UNKNOWN_EVENTS_KEY) or [])
        incoming[UNKNOWN_EVENTS_KEY] = history + list(incoming[UNKNOWN_EVENTS_KEY])
    merged.update(incoming)
    return merged


def apply(
    current_state: str,
    event_kind: EventKind,
    payload: Optional[Mapping[str, Any]] = None,
    raw_response: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
    token: Optional[str] = None,
) -> Decision:
    """
    Decide how an event changes a payment.

    Args:
        current_state: Persisted state of the payment
        event_kind: Normalized event kind
        payload: Normalized event fields (transaction_ref, method, fee)
        raw_response: Raw gateway payload to accumulate on the record
        now: Clock override for paid_at
        token: Payment token, only used to describe conflicts

    Returns:
        Decision: New state plus the fields to persist
    """
    state = PaymentState(current_state)
    kind = EventKind(event_kind)
    payload = payload or {}
    raw: Dict[str, Any] = dict(raw_response) if raw_response is not None else dict(payload)
    now = now or datetime.now(timezone.utc)

    if kind == EventKind.UNKNOWN:
        raw = {UNKNOWN_EVENTS_KEY: [{"payload": raw, "received_at": now.isoformat()}]}

    if state in TERMINAL_STATES:
        outcome = implied_outcome(kind)
        if outcome == state:
            return Decision(state, state, raw_response=raw, duplicate=True)
        conflict = None
        if outcome is not None:
            conflict = ConflictingEventError(token, state.value, kind.value)
        return Decision(state, state, raw_response=raw, conflict=conflict)

    if kind == EventKind.SUCCESS:
        changes: Dict[str, Any] = {"state": PaymentState.PAID.value, "paid_at": now}
        for key in SUCCESS_FIELDS:
            if payload.get(key) is not None:
                changes[key] = payload[key]
        return Decision(state, PaymentState.PAID, changes=changes, raw_response=raw)

    if kind in (EventKind.FAILURE, EventKind.CANCELLED):
        outcome = _OUTCOMES[kind]
        return Decision(state, outcome, changes={"state": outcome.value}, raw_response=raw)

    # pending / unknown: audit trail only
    return Decision(state, state, raw_response=raw)
