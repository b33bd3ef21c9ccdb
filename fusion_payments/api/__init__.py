"""FastAPI application and routes."""
from .main import create_app
from .schemas import (
    InitiatePaymentRequest,
    InitiatePaymentResponse,
    PaymentStatusResponse,
    WebhookResponse,
)

__all__ = [
    "create_app",
    "InitiatePaymentRequest",
    "InitiatePaymentResponse",
    "PaymentStatusResponse",
    "WebhookResponse",
]
