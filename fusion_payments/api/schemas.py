"""
Pydantic schemas for API request/response models.
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


class InitiatePaymentRequest(BaseModel):
    """
    Request schema for initiating a payment.

    Line items are passed through as objects and normalized by the payload
    layer, which accepts ``name|nom``, ``price|unit_price|montant`` and
    ``quantity|quantite``.
    """

    amount: Decimal = Field(
        ...,
        validation_alias=AliasChoices("amount", "total_price"),
        description="Total amount to charge",
    )
    line_items: List[Dict[str, Any]] = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("line_items", "articles"),
        description="Items being paid for",
    )
    customer_name: str = Field(
        ...,
        max_length=255,
        validation_alias=AliasChoices("customer_name", "nom_client"),
        description="Customer name",
    )
    customer_phone: Optional[str] = Field(
        default=None,
        max_length=20,
        validation_alias=AliasChoices("customer_phone", "numero_send"),
        description="Customer phone number",
    )
    user_id: Optional[str] = Field(default=None, description="Caller user identifier")
    order_id: Optional[str] = Field(default=None, description="Caller order identifier")
    return_url: Optional[str] = Field(default=None, description="Override of the return URL")
    webhook_url: Optional[str] = Field(default=None, description="Override of the webhook URL")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Extra correlation data")

    @field_validator("user_id", "order_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        """Numeric ids are accepted and stored as strings."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "amount": 5000,
                    "line_items": [{"name": "Abonnement", "price": 5000, "quantity": 1}],
                    "customer_name": "Awa Kone",
                    "customer_phone": "0700000000",
                    "user_id": "42",
                    "order_id": "1001",
                }
            ]
        }
    }


class InitiatePaymentResponse(BaseModel):
    """Response schema for payment initiation."""

    success: bool = Field(default=True)
    token: str = Field(..., description="Gateway payment token")
    payment_url: str = Field(..., description="URL the customer pays at")
    message: Optional[str] = Field(default=None, description="Gateway message")


class PaymentStatusResponse(BaseModel):
    """Response schema for payment status."""

    token: str = Field(..., description="Gateway payment token")
    state: str = Field(..., description="pending, paid, failed or cancelled")
    amount: Decimal = Field(..., description="Payment amount")
    fee: Decimal = Field(..., description="Gateway fee")
    transaction_ref: Optional[str] = Field(default=None, description="Gateway transaction ref")
    method: Optional[str] = Field(default=None, description="Payment channel")
    paid_at: Optional[datetime] = Field(default=None, description="Payment time")
    source: str = Field(..., description="gateway, local_fallback or local")


class CancelPaymentRequest(BaseModel):
    """Request schema for cancelling a payment."""

    actor: Optional[str] = Field(default=None, description="Who requested the cancellation")


class WebhookResponse(BaseModel):
    """Response schema for webhook processing."""

    status: str = Field(..., description="ok or error")
    message: str = Field(..., description="Status message")
    timestamp: str = Field(..., description="Processing time (ISO 8601)")


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")
