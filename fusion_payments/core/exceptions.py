"""Error kinds raised by the payment core."""
from typing import Optional


class PaymentError(Exception):
    """Base exception for payment processing errors."""

    pass


class ValidationError(PaymentError):
    """Raised when caller input or an inbound payload is malformed."""

    pass


class NotFoundError(PaymentError):
    """Raised when no payment record exists for a token."""

    def __init__(self, token: str):
        super().__init__(f"Payment {token} not found")
        self.token = token


class GatewayError(PaymentError):
    """Raised when the gateway rejects a call or returns an unusable payload."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        transient: bool = False,
        original_error: Optional[Exception] = None,
    ):
        """
        Initialize gateway error.

        Args:
            message: Error message
            status_code: HTTP status returned by the gateway, if any
            transient: True when retries were exhausted on a transient failure
            original_error: Underlying exception
        """
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient
        self.original_error = original_error


class NetworkError(PaymentError):
    """Transient transport failure; retried before surfacing as GatewayError."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class InvalidStateError(PaymentError):
    """Raised when an operation is not permitted from the record's current state."""

    pass


class ConflictingEventError(PaymentError):
    """
    A terminal record received an event implying a different terminal outcome.

    Never raised to callers: the state machine attaches it to its decision so
    the conflict can be logged and counted.
    """

    def __init__(self, token: Optional[str], current_state: str, event_kind: str):
        super().__init__(
            f"Payment {token or '?'} is {current_state}; ignoring late {event_kind} event"
        )
        self.token = token
        self.current_state = current_state
        self.event_kind = event_kind


class ConcurrentUpdateError(PaymentError):
    """Raised when optimistic writes keep losing to concurrent writers."""

    pass


class DuplicateTokenError(PaymentError):
    """Raised by the store when inserting a token that already exists."""

    pass
