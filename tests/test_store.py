"""
Tests for the payment record store.
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from fusion_payments.core.exceptions import DuplicateTokenError
from fusion_payments.database.models import PaymentRecord
from fusion_payments.database.store import PaymentRecordStore


def _record(token: str, **fields: object) -> PaymentRecord:
    values = {
        "token": token,
        "amount": Decimal("5000"),
        "fee": Decimal("0"),
        "state": "pending",
        "customer_name": "Awa Kone",
        "user_id": "42",
        "line_items": [{"name": "Abonnement", "unit_price": "5000", "quantity": 1}],
        "extra_metadata": {"userId": "42", "orderId": "1001"},
        "raw_last_response": {"statut": True, "token": token},
    }
    values.update(fields)
    return PaymentRecord(**values)


class TestPaymentRecordStore:
    """Test suite for PaymentRecordStore."""

    @pytest.mark.asyncio
    async def test_add_and_get(self, store: PaymentRecordStore) -> None:
        await store.add(_record("T1"))

        record = await store.get("T1")

        assert record is not None
        assert record.state == "pending"
        assert record.amount == Decimal("5000")
        assert record.version == 1
        assert record.paid_at is None
        assert record.is_pending and not record.is_paid
        assert record.extra_metadata == {"userId": "42", "orderId": "1001"}

    @pytest.mark.asyncio
    async def test_get_unknown_token(self, store: PaymentRecordStore) -> None:
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_duplicate_token_is_rejected(self, store: PaymentRecordStore) -> None:
        await store.add(_record("T1"))

        with pytest.raises(DuplicateTokenError):
            await store.add(_record("T1"))

    @pytest.mark.asyncio
    async def test_compare_and_set_bumps_version(self, store: PaymentRecordStore) -> None:
        await store.add(_record("T1"))

        won = await store.compare_and_set("T1", "pending", 1, {"state": "failed"})

        record = await store.get("T1")
        assert won
        assert record.state == "failed"
        assert record.version == 2

    @pytest.mark.asyncio
    async def test_compare_and_set_with_stale_version_loses(
        self, store: PaymentRecordStore
    ) -> None:
        await store.add(_record("T1"))
        await store.compare_and_set("T1", "pending", 1, {"raw_last_response": {"a": 1}})

        won = await store.compare_and_set("T1", "pending", 1, {"state": "failed"})

        record = await store.get("T1")
        assert not won
        assert record.state == "pending"
        assert record.version == 2

    @pytest.mark.asyncio
    async def test_compare_and_set_with_stale_state_loses(
        self, store: PaymentRecordStore
    ) -> None:
        await store.add(_record("T1"))
        await store.compare_and_set("T1", "pending", 1, {"state": "cancelled"})

        won = await store.compare_and_set("T1", "pending", 2, {"state": "failed"})

        assert not won
        assert (await store.get("T1")).state == "cancelled"

    @pytest.mark.asyncio
    async def test_compare_and_set_refuses_immutable_columns(
        self, store: PaymentRecordStore
    ) -> None:
        await store.add(_record("T1"))

        with pytest.raises(ValueError, match="immutable"):
            await store.compare_and_set("T1", "pending", 1, {"amount": Decimal("1")})

    @pytest.mark.asyncio
    async def test_list_by_user_newest_first(self, store: PaymentRecordStore) -> None:
        now = datetime.now(timezone.utc)
        await store.add(_record("OLD", created_at=now - timedelta(hours=2)))
        await store.add(_record("NEW", created_at=now - timedelta(minutes=5)))
        await store.add(_record("OTHER", user_id="7"))
        await store.compare_and_set("OLD", "pending", 1, {"state": "failed"})

        all_tokens = [r.token for r in await store.list_by_user("42")]
        pending_tokens = [r.token for r in await store.list_by_user("42", state="pending")]

        assert all_tokens == ["NEW", "OLD"]
        assert pending_tokens == ["NEW"]

    @pytest.mark.asyncio
    async def test_list_by_state_oldest_first_with_cutoff(
        self, store: PaymentRecordStore
    ) -> None:
        now = datetime.now(timezone.utc)
        await store.add(_record("A", created_at=now - timedelta(hours=3)))
        await store.add(_record("B", created_at=now - timedelta(hours=1)))
        await store.add(_record("FRESH", created_at=now))

        records = await store.list_by_state(
            "pending", created_before=now - timedelta(minutes=30)
        )

        assert [r.token for r in records] == ["A", "B"]
