"""SQLAlchemy database models for MoneyFusion payment records."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class PaymentRecord(Base):
    """
    MoneyFusion payments table.

    One row per gateway token. Rows are never deleted: terminal states are
    kept for audit. Writes go through compare-and-set on (token, state, version).
    """

    __tablename__ = "moneyfusion_payments"

    token: Mapped[str] = mapped_column(String(100), primary_key=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    transaction_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    line_items: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    extra_metadata: Mapped[Dict[str, Any]] = mapped_column(
        "metadata", JSONType, nullable=False, default=dict
    )
    raw_last_response: Mapped[Dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="positive_amount"),
        CheckConstraint("fee >= 0", name="non_negative_fee"),
        CheckConstraint(
            "state IN ('pending', 'paid', 'failed', 'cancelled')",
            name="valid_state",
        ),
        CheckConstraint(
            "(state = 'paid' AND paid_at IS NOT NULL) OR (state != 'paid' AND paid_at IS NULL)",
            name="paid_at_iff_paid",
        ),
        Index("idx_moneyfusion_state", "state"),
        Index("idx_moneyfusion_created_at", "created_at"),
        Index("idx_moneyfusion_user_state", "user_id", "state"),
        Index("idx_moneyfusion_transaction_ref", "transaction_ref"),
    )

    @property
    def is_paid(self) -> bool:
        return self.state == "paid"

    @property
    def is_pending(self) -> bool:
        return self.state == "pending"

    def __repr__(self) -> str:
        """String representation of PaymentRecord."""
        return (
            f"<PaymentRecord(token={self.token}, amount={self.amount}, "
            f"state={self.state}, version={self.version})>"
        )
