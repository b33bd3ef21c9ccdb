"""
Durable keyed storage for payment records.

Every write after creation is a single conditional UPDATE on
(token, state, version). A writer whose precondition no longer holds gets
False back and is expected to re-read the record.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fusion_payments.core.exceptions import DuplicateTokenError
from fusion_payments.database.models import PaymentRecord

logger = structlog.get_logger(__name__)

# Columns that may never be touched by a conditional update.
IMMUTABLE_COLUMNS = frozenset({"token", "amount", "created_at", "version"})


class PaymentRecordStore:
    """Payment record persistence with optimistic concurrency."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add(self, record: PaymentRecord) -> PaymentRecord:
        """
        Insert a new payment record.

        Raises:
            DuplicateTokenError: If a record with the same token exists
        """
        now = datetime.now(timezone.utc)
        record.created_at = record.created_at or now
        record.updated_at = now
        record.version = 1

        async with self.session_factory() as session:
            try:
                async with session.begin():
                    session.add(record)
            except IntegrityError as e:
                logger.warning("payment_record_duplicate_token", token=record.token)
                raise DuplicateTokenError(f"Token {record.token} already exists") from e

        logger.info("payment_record_inserted", token=record.token, state=record.state)
        return record

    async def get(self, token: str) -> Optional[PaymentRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(PaymentRecord).where(PaymentRecord.token == token)
            )
            return result.scalar_one_or_none()

    async def compare_and_set(
        self,
        token: str,
        expected_state: str,
        expected_version: int,
        changes: Dict[str, Any],
    ) -> bool:
        """
        Apply ``changes`` only if the record is still at (state, version).

        Args:
            token: Payment token
            expected_state: State the caller based its decision on
            expected_version: Version the caller read
            changes: Column values to write

        Returns:
            bool: True if this writer won, False if the precondition failed
        """
        forbidden = IMMUTABLE_COLUMNS.intersection(changes)
        if forbidden:
            raise ValueError(f"Cannot update immutable columns: {sorted(forbidden)}")

        stmt = (
            update(PaymentRecord)
            .where(
                PaymentRecord.token == token,
                PaymentRecord.state == expected_state,
                PaymentRecord.version == expected_version,
            )
            .values(
                **changes,
                version=PaymentRecord.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )

        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)

        won = result.rowcount == 1
        if not won:
            logger.info(
                "payment_record_precondition_failed",
                token=token,
                expected_state=expected_state,
                expected_version=expected_version,
            )
        return won

    async def list_by_user(
        self,
        user_id: str,
        state: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[PaymentRecord]:
        """List a user's payments, newest first."""
        stmt = select(PaymentRecord).where(PaymentRecord.user_id == user_id)
        if state is not None:
            stmt = stmt.where(PaymentRecord.state == state)
        if created_from is not None:
            stmt = stmt.where(PaymentRecord.created_at >= created_from)
        if created_to is not None:
            stmt = stmt.where(PaymentRecord.created_at < created_to)
        stmt = stmt.order_by(PaymentRecord.created_at.desc()).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_by_state(
        self,
        state: str,
        created_before: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[PaymentRecord]:
        """List payments in a state, oldest first."""
        stmt = select(PaymentRecord).where(PaymentRecord.state == state)
        if created_before is not None:
            stmt = stmt.where(PaymentRecord.created_at < created_before)
        stmt = stmt.order_by(PaymentRecord.created_at.asc()).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
