"""
MoneyFusion webhook ingress.

Implements:
- Payload normalization (token aliases, event names, success fields)
- Duplicate detection against the persisted state before any write
- Delegation to the reconciliation engine for the single conditional write

MoneyFusion does not sign its webhook deliveries, so payloads are accepted
unauthenticated. This is logged at startup as a known security gap.
"""
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

import structlog

from fusion_payments.core import state_machine
from fusion_payments.core.exceptions import (
    ConcurrentUpdateError,
    NotFoundError,
    ValidationError,
)
from fusion_payments.core.payloads import success_fields
from fusion_payments.core.reconciliation import ReconciliationEngine
from fusion_payments.core.state_machine import EventKind
from fusion_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

TOKEN_KEYS = ("tokenPay", "token")
DEFAULT_EVENT = "payment.update"

EVENT_KINDS: Dict[str, EventKind] = {
    "payment.success": EventKind.SUCCESS,
    "payment.failed": EventKind.FAILURE,
    "payment.failure": EventKind.FAILURE,
    "payment.pending": EventKind.PENDING,
    "payment.cancelled": EventKind.CANCELLED,
    "payment.canceled": EventKind.CANCELLED,
}


@dataclass(frozen=True)
class WebhookEvent:
    """Normalized webhook delivery."""

    token: str
    name: str
    kind: EventKind
    payload: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)


def parse_event(raw_event: Any) -> WebhookEvent:
    """
    Normalize a raw webhook body.

    Raises:
        ValidationError: If the body is not an object, has no token, or
            carries a non-numeric fee
    """
    if not isinstance(raw_event, Mapping):
        raise ValidationError("Webhook body must be a JSON object")

    token = next((raw_event[key] for key in TOKEN_KEYS if raw_event.get(key)), None)
    if not token:
        raise ValidationError("Webhook payload is missing tokenPay")

    name = str(raw_event.get("event") or DEFAULT_EVENT)
    kind = EVENT_KINDS.get(name, EventKind.UNKNOWN)

    payload: Dict[str, Any] = {}
    if kind == EventKind.SUCCESS:
        payload = success_fields(raw_event)

    return WebhookEvent(
        token=str(token), name=name, kind=kind, payload=payload, raw=dict(raw_event)
    )


class WebhookIngress:
    """
    Receives MoneyFusion webhook deliveries and applies them to payments.

    Every delivery that reaches a known payment is acknowledged, including
    duplicates, unknown event names and late events that contradict an
    already terminal payment, so the gateway stops retrying.
    """

    def __init__(self, engine: ReconciliationEngine):
        self.engine = engine
        logger.warning(
            "webhook_signature_verification_disabled",
            reason="MoneyFusion webhooks carry no signature",
        )
        logger.info("webhook_ingress_initialized")

    async def ingest(self, raw_event: Any) -> Dict[str, str]:
        """
        Process one webhook delivery.

        Args:
            raw_event: Decoded JSON body

        Returns:
            Dict[str, str]: {status: "ok", message}

        Raises:
            ValidationError: If the payload is malformed
            NotFoundError: If the token is unknown
            ConcurrentUpdateError: If the write kept losing races
        """
        start_time = time.time()
        try:
            event = parse_event(raw_event)
        except ValidationError as e:
            metrics.record_webhook_event("invalid", "rejected", time.time() - start_time)
            logger.warning("webhook_payload_rejected", error=str(e))
            raise

        kind = event.kind.value
        logger.info(
            "processing_webhook_event",
            token=event.token,
            event_name=event.name,
            event_kind=kind,
        )

        try:
            record = await self.engine.get_payment(event.token)

            if state_machine.is_duplicate(record.state, event.kind):
                metrics.record_webhook_event(kind, "duplicate", time.time() - start_time)
                logger.info(
                    "webhook_event_already_processed",
                    token=event.token,
                    state=record.state,
                    event_name=event.name,
                )
                return {"status": "ok", "message": "Payment already processed"}

            result = await self.engine.apply_event(
                event.token,
                event.kind,
                event.payload,
                raw_response=event.raw,
                source="webhook",
            )
        except NotFoundError:
            metrics.record_webhook_event(kind, "not_found", time.time() - start_time)
            logger.warning("webhook_payment_not_found", token=event.token, event_name=event.name)
            raise
        except ConcurrentUpdateError:
            metrics.record_webhook_event(kind, "conflict", time.time() - start_time)
            logger.error("webhook_write_conflict_exhausted", token=event.token)
            raise

        if result.duplicate:
            outcome = "duplicate"
            message = "Payment already processed"
        elif result.transitioned:
            outcome = "processed"
            message = f"Payment {result.record.state}"
        else:
            outcome = "recorded"
            message = "Event recorded"

        metrics.record_webhook_event(kind, outcome, time.time() - start_time)
        logger.info(
            "webhook_event_processed_successfully",
            token=event.token,
            event_name=event.name,
            outcome=outcome,
            state=result.record.state,
        )
        return {"status": "ok", "message": message}
