"""Core payment logic: error kinds, state machine and payload normalization.

The reconciliation engine lives in ``fusion_payments.core.reconciliation`` and
is imported from there directly, since it depends on the database package.
"""
from .exceptions import (
    ConcurrentUpdateError,
    ConflictingEventError,
    GatewayError,
    InvalidStateError,
    NetworkError,
    NotFoundError,
    PaymentError,
    ValidationError,
)
from .state_machine import Decision, EventKind, PaymentState

__all__ = [
    "ConcurrentUpdateError",
    "ConflictingEventError",
    "Decision",
    "EventKind",
    "GatewayError",
    "InvalidStateError",
    "NetworkError",
    "NotFoundError",
    "PaymentError",
    "PaymentState",
    "ValidationError",
]
