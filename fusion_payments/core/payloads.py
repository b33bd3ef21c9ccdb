"""
Normalization of payloads crossing the gateway boundary.

Every alias accepted from callers or from MoneyFusion is listed here; the rest
of the package only sees the normalized structures.

Line items (caller input):
    name        <- name | nom                      (default "Article")
    unit price  <- price | unit_price | montant
    quantity    <- quantity | quantite             (default 1)

Gateway responses:
    success flag      <- statut | status
    transaction ref   <- numeroTransaction
    payment channel   <- moyen
    fee               <- frais
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .exceptions import GatewayError, ValidationError
from .state_machine import EventKind

NAME_KEYS = ("name", "nom")
PRICE_KEYS = ("price", "unit_price", "montant")
QUANTITY_KEYS = ("quantity", "quantite")

# data.statut values returned by the check-payment endpoint
CHECK_STATUS_KINDS: Dict[str, EventKind] = {
    "paid": EventKind.SUCCESS,
    "pending": EventKind.PENDING,
    "failure": EventKind.FAILURE,
    "failed": EventKind.FAILURE,
    "no paid": EventKind.FAILURE,
    "cancelled": EventKind.CANCELLED,
    "canceled": EventKind.CANCELLED,
}


@dataclass(frozen=True)
class LineItem:
    name: str
    unit_price: Decimal
    quantity: int = 1

    def to_record(self) -> Dict[str, Any]:
        """JSON-safe form stored on the payment record."""
        return {"name": self.name, "unit_price": str(self.unit_price), "quantity": self.quantity}

    def to_gateway(self) -> Dict[str, Any]:
        return {"nom": self.name, "montant": int(self.unit_price), "quantite": self.quantity}


@dataclass
class PaymentRequest:
    """A caller's request to initiate a payment."""

    amount: Decimal
    line_items: List[LineItem]
    customer_name: str
    customer_phone: Optional[str] = None
    user_id: Optional[str] = None
    order_id: Optional[str] = None
    return_url: Optional[str] = None
    webhook_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def correlation(self) -> Dict[str, Any]:
        """Correlation ids echoed to the gateway and kept in record metadata."""
        return {"userId": self.user_id, "orderId": self.order_id}


def _first(item: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        if item.get(key) is not None:
            return item[key]
    return None


def to_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a numeric value into a Decimal, raising ValidationError otherwise."""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be numeric")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be numeric, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite")
    return result


def normalize_line_item(item: Mapping[str, Any]) -> LineItem:
    if isinstance(item, LineItem):
        return item
    if not isinstance(item, Mapping):
        raise ValidationError("Line item must be an object")

    name = _first(item, NAME_KEYS) or "Article"
    price = _first(item, PRICE_KEYS)
    if price is None:
        raise ValidationError(f"Line item {name!r} has no price")
    unit_price = to_decimal(price, "price")

    raw_quantity = _first(item, QUANTITY_KEYS)
    try:
        quantity = 1 if raw_quantity is None else int(raw_quantity)
    except (TypeError, ValueError):
        raise ValidationError(f"Line item {name!r} has a non-integer quantity")

    return LineItem(name=str(name), unit_price=unit_price, quantity=quantity)


def normalize_line_items(items: Optional[Sequence[Mapping[str, Any]]]) -> List[LineItem]:
    return [normalize_line_item(item) for item in items or []]


def build_create_body(
    request: PaymentRequest,
    default_return_url: Optional[str] = None,
    default_webhook_url: Optional[str] = None,
) -> Dict[str, Any]:
    """Request body for the create-payment endpoint."""
    return {
        "totalPrice": f"{request.amount:f}",
        "article": [item.to_gateway() for item in request.line_items],
        "personal_Info": [request.correlation()],
        "numeroSend": request.customer_phone or "",
        "nomclient": request.customer_name,
        "return_url": request.return_url or default_return_url,
        "webhook_url": request.webhook_url or default_webhook_url,
    }


def response_flag(body: Mapping[str, Any]) -> bool:
    """Success flag of a gateway response (``statut`` or ``status``)."""
    flag = body.get("statut", body.get("status"))
    return flag is True or (isinstance(flag, str) and flag.lower() == "true")


def success_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Extract the fields written on the success transition.

    Missing fields come back as None so the state machine keeps prior values.

    Raises:
        ValidationError: If ``frais`` is not a non-negative number
    """
    fee = data.get("frais")
    if fee not in (None, ""):
        fee = to_decimal(fee, "frais")
        if fee < 0:
            raise ValidationError(f"frais must not be negative, got {fee}")
    else:
        fee = None
    return {
        "transaction_ref": data.get("numeroTransaction"),
        "method": data.get("moyen"),
        "fee": fee,
    }


def normalize_check_response(
    body: Mapping[str, Any],
) -> Tuple[EventKind, Dict[str, Any], Dict[str, Any]]:
    """
    Turn a check-payment response into (kind, payload, raw data).

    Raises:
        GatewayError: If the response is not a successful status payload
    """
    if not response_flag(body):
        raise GatewayError(f"Status check rejected: {body.get('message', 'unknown error')}")
    data = body.get("data")
    if not isinstance(data, Mapping):
        raise GatewayError("Status check response has no data object")

    status = str(data.get("statut") or "").strip().lower()
    kind = CHECK_STATUS_KINDS.get(status, EventKind.UNKNOWN)
    try:
        payload = success_fields(data)
    except ValidationError as e:
        raise GatewayError(f"Malformed status payload: {e}")
    return kind, payload, dict(data)
