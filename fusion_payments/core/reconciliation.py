"""
Reconciliation engine for MoneyFusion payments.

Keeps the local payment record in step with the gateway:
- creates records after a successful create-payment call
- applies gateway status checks and webhook events through the state machine
- serves the last known local state when the gateway is unreachable
"""
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

import structlog

from fusion_payments.config import Settings
from fusion_payments.core import state_machine
from fusion_payments.core.exceptions import (
    ConcurrentUpdateError,
    DuplicateTokenError,
    GatewayError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from fusion_payments.core.payloads import (
    PaymentRequest,
    build_create_body,
    normalize_check_response,
    response_flag,
)
from fusion_payments.core.state_machine import Decision, EventKind, PaymentState
from fusion_payments.database.models import PaymentRecord
from fusion_payments.database.store import PaymentRecordStore
from fusion_payments.integrations.gateway_client import MoneyFusionClient
from fusion_payments.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

SOURCE_GATEWAY = "gateway"
SOURCE_LOCAL_FALLBACK = "local_fallback"
SOURCE_LOCAL = "local"


@dataclass(frozen=True)
class ApplyResult:
    """Result of pushing one event through the state machine and the store."""

    record: PaymentRecord
    decision: Decision

    @property
    def duplicate(self) -> bool:
        return self.decision.duplicate

    @property
    def transitioned(self) -> bool:
        return self.decision.transitioned


def status_view(record: PaymentRecord, source: str) -> Dict[str, Any]:
    """Caller-facing view of a payment record."""
    return {
        "token": record.token,
        "state": record.state,
        "amount": record.amount,
        "fee": record.fee,
        "transaction_ref": record.transaction_ref,
        "method": record.method,
        "paid_at": record.paid_at,
        "source": source,
    }


class ReconciliationEngine:
    """
    Orchestrates gateway calls, state machine decisions and record writes.

    All writes after creation go through ``apply_event``, which performs a
    compare-and-set on (token, state, version) and re-reads on conflict.
    """

    def __init__(
        self,
        settings: Settings,
        store: PaymentRecordStore,
        gateway: MoneyFusionClient,
    ):
        """
        Initialize reconciliation engine.

        Args:
            settings: Application settings
            store: Payment record store
            gateway: MoneyFusion API client
        """
        self.settings = settings
        self.store = store
        self.gateway = gateway
        logger.info("reconciliation_engine_initialized")

    def _validate_request(self, request: PaymentRequest) -> None:
        """
        Validate a payment request.

        Raises:
            ValidationError: If validation fails
        """
        if request.amount <= 0:
            raise ValidationError("Amount must be positive")

        if request.amount < self.settings.minimum_amount:
            raise ValidationError(f"Amount must be at least {self.settings.minimum_amount}")

        if not request.line_items:
            raise ValidationError("At least one line item is required")

        for item in request.line_items:
            if item.unit_price <= 0:
                raise ValidationError(f"Line item {item.name!r} must have a positive price")
            if item.quantity < 1:
                raise ValidationError(f"Line item {item.name!r} must have quantity >= 1")

        if not request.customer_name or not request.customer_name.strip():
            raise ValidationError("Customer name is required")

    async def get_payment(self, token: str) -> PaymentRecord:
        record = await self.store.get(token)
        if record is None:
            raise NotFoundError(token)
        return record

    async def list_payments(
        self, user_id: str, state: Optional[str] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        records = await self.store.list_by_user(user_id, state=state, limit=limit)
        return [status_view(record, SOURCE_LOCAL) for record in records]

    async def create_payment(self, request: PaymentRequest) -> Dict[str, Any]:
        """
        Create a payment on the gateway and persist it as pending.

        Args:
            request: Validated caller request

        Returns:
            Dict[str, Any]: {token, payment_url, message}

        Raises:
            ValidationError: If the request is invalid
            GatewayError: If the gateway fails or answers without token/url
        """
        correlation_id = str(uuid.uuid4())
        logger.info(
            "payment_creation_started",
            correlation_id=correlation_id,
            amount=str(request.amount),
            user_id=request.user_id,
            order_id=request.order_id,
        )

        try:
            self._validate_request(request)
        except ValidationError:
            metrics.record_payment_created("rejected")
            raise

        body = build_create_body(
            request,
            default_return_url=self.settings.moneyfusion_return_url,
            default_webhook_url=self.settings.moneyfusion_webhook_url,
        )

        try:
            response = await self.gateway.create(body)
            if not response_flag(response):
                raise GatewayError(
                    f"Payment creation failed: {response.get('message', 'Unknown error')}"
                )
            token = response.get("token")
            payment_url = response.get("url")
            if not token or not payment_url:
                raise GatewayError("Gateway response is missing token or url")
        except GatewayError as e:
            metrics.record_payment_created("gateway_error")
            logger.error(
                "payment_creation_failed",
                correlation_id=correlation_id,
                error=str(e),
            )
            raise

        record = PaymentRecord(
            token=str(token),
            amount=request.amount,
            fee=0,
            state=PaymentState.PENDING.value,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            payment_url=payment_url,
            user_id=request.user_id,
            order_id=request.order_id,
            line_items=[item.to_record() for item in request.line_items],
            extra_metadata={**request.metadata, **request.correlation()},
            raw_last_response=dict(response),
        )

        try:
            await self.store.add(record)
        except DuplicateTokenError as e:
            metrics.record_payment_created("gateway_error")
            logger.error(
                "payment_creation_duplicate_token",
                correlation_id=correlation_id,
                token=token,
            )
            raise GatewayError(f"Gateway returned an already known token: {token}") from e

        metrics.record_payment_created("created", float(request.amount))
        logger.info(
            "payment_created_successfully",
            correlation_id=correlation_id,
            token=record.token,
        )

        return {
            "token": record.token,
            "payment_url": record.payment_url,
            "message": response.get("message"),
        }

    async def apply_event(
        self,
        token: str,
        kind: EventKind,
        payload: Optional[Mapping[str, Any]] = None,
        raw_response: Optional[Mapping[str, Any]] = None,
        source: str = SOURCE_GATEWAY,
        strict: bool = False,
    ) -> ApplyResult:
        """
        Apply one event to a payment under optimistic concurrency.

        A losing writer re-reads the record and decides again, so a race
        between two terminal events ends with the first one persisted and the
        second treated as a duplicate or a conflicting late event. Duplicates
        and late events still have their raw payload merged for audit.

        Args:
            token: Payment token
            kind: Normalized event kind
            payload: Normalized event fields
            raw_response: Raw payload to accumulate on the record
            source: Where the event came from (webhook, gateway, operator)
            strict: Raise InvalidStateError instead of absorbing the event
                when the record is no longer pending

        Returns:
            ApplyResult: Persisted record and the decision taken

        Raises:
            NotFoundError: If the token is unknown
            InvalidStateError: If strict and the record is terminal
            ConcurrentUpdateError: If every write attempt lost a race
        """
        attempts = self.settings.store_max_write_attempts
        for attempt in range(1, attempts + 1):
            record = await self.get_payment(token)

            if strict and not record.is_pending:
                raise InvalidStateError(
                    f"Payment {token} is {record.state}; only pending payments can be changed"
                )

            decision = state_machine.apply(
                record.state, kind, payload, raw_response=raw_response, token=token
            )
            changes = dict(decision.changes)
            changes["raw_last_response"] = state_machine.merge_raw_response(
                record.raw_last_response, decision.raw_response
            )

            unchanged_raw = changes["raw_last_response"] == (record.raw_last_response or {})
            if not decision.changes and unchanged_raw:
                self._log_decision(token, decision, source)
                return ApplyResult(record=record, decision=decision)

            if await self.store.compare_and_set(token, record.state, record.version, changes):
                self._log_decision(token, decision, source)
                updated = await self.get_payment(token)
                return ApplyResult(record=updated, decision=decision)

            metrics.record_write_conflict()
            logger.info(
                "payment_write_conflict_retrying",
                token=token,
                attempt=attempt,
                event_kind=EventKind(kind).value,
            )

        raise ConcurrentUpdateError(
            f"Payment {token} could not be updated after {attempts} attempts"
        )

    def _log_decision(self, token: str, decision: Decision, source: str) -> None:
        if decision.transitioned:
            metrics.record_transition(
                decision.previous_state.value, decision.new_state.value, source
            )
            logger.info(
                "payment_state_transition",
                token=token,
                old_state=decision.previous_state.value,
                new_state=decision.new_state.value,
                source=source,
            )
        elif decision.conflict is not None:
            metrics.record_conflicting_event(
                decision.conflict.current_state, decision.conflict.event_kind
            )
            logger.warning(
                "payment_conflicting_late_event",
                token=token,
                state=decision.conflict.current_state,
                event_kind=decision.conflict.event_kind,
                source=source,
                error=str(decision.conflict),
            )
        elif decision.duplicate:
            logger.info(
                "payment_event_duplicate",
                token=token,
                state=decision.new_state.value,
                source=source,
            )
        else:
            logger.info(
                "payment_raw_response_merged",
                token=token,
                state=decision.new_state.value,
                source=source,
            )

    async def check_status(self, token: str) -> Dict[str, Any]:
        """
        Refresh a payment from the gateway and return its status view.

        Gateway failures and exhausted write attempts never reach the caller:
        the last persisted state is returned with ``source="local_fallback"``
        instead.

        Raises:
            NotFoundError: If the token is unknown locally
        """
        record = await self.get_payment(token)

        try:
            response = await self.gateway.check(token)
            kind, payload, raw = normalize_check_response(response)
        except GatewayError as e:
            metrics.record_status_fallback()
            logger.warning(
                "status_check_local_fallback",
                token=token,
                state=record.state,
                error=str(e),
                status_code=e.status_code,
                transient=e.transient,
            )
            return status_view(record, SOURCE_LOCAL_FALLBACK)

        try:
            result = await self.apply_event(
                token, kind, payload, raw_response=raw, source=SOURCE_GATEWAY
            )
        except ConcurrentUpdateError as e:
            metrics.record_status_fallback()
            logger.warning("status_check_write_contention", token=token, error=str(e))
            return status_view(await self.get_payment(token), SOURCE_LOCAL_FALLBACK)
        return status_view(result.record, SOURCE_GATEWAY)

    async def cancel(self, token: str, actor: Optional[str] = None) -> Dict[str, Any]:
        """
        Cancel a pending payment on behalf of an operator or the customer.

        Raises:
            NotFoundError: If the token is unknown
            InvalidStateError: If the payment is not pending
        """
        raw = {
            "cancellation": {
                "actor": actor,
                "cancelled_at": datetime.now(timezone.utc).isoformat(),
            }
        }
        result = await self.apply_event(
            token, EventKind.CANCELLED, raw_response=raw, source="operator", strict=True
        )
        logger.info("payment_cancelled", token=token, actor=actor)
        return status_view(result.record, SOURCE_LOCAL)

    async def reconcile_pending(
        self, older_than_seconds: Optional[int] = None, limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Poll the gateway for pending payments older than a cutoff.

        Caller-driven: the sweep worker and the CLI invoke this; nothing runs
        in the background on its own.

        Returns:
            Dict[str, Any]: {checked, transitioned, fallbacks}
        """
        age = older_than_seconds
        if age is None:
            age = self.settings.pending_sweep_age_seconds
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=age)
        records = await self.store.list_by_state(
            PaymentState.PENDING.value,
            created_before=cutoff,
            limit=limit or self.settings.pending_sweep_batch_size,
        )

        logger.info("pending_sweep_started", candidates=len(records), older_than_seconds=age)

        summary = {"checked": 0, "transitioned": 0, "fallbacks": 0}
        for record in records:
            view = await self.check_status(record.token)
            summary["checked"] += 1
            if view["source"] == SOURCE_LOCAL_FALLBACK:
                summary["fallbacks"] += 1
            elif view["state"] != record.state:
                summary["transitioned"] += 1

        metrics.mark_pending_sweep()
        logger.info("pending_sweep_completed", **summary)
        return summary
