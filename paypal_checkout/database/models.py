"""SQLAlchemy database models for the PayPal checkout integration."""
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, validates

from paypal_checkout.enums import OrderStatus, PaymentStatus, RequestType


def utcnow() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class Order(Base):
    """
    Orders registered at PayPal by this application.

    One row per successful create-order call. The PayPal order ID is assigned
    once and never changes.
    """

    __tablename__ = "paypal_orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    paypal_order_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_ref: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    date_created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        CheckConstraint("amount >= 0", name="order_non_negative_amount"),
        CheckConstraint("length(currency) = 3", name="order_valid_currency"),
    )

    @validates("status")
    def _validate_status(self, key: str, value: str) -> str:
        return OrderStatus.parse(value).value

    def __repr__(self) -> str:
        """String representation of Order."""
        return (
            f"<Order(id={self.id}, paypal_order_id={self.paypal_order_id}, "
            f"amount={self.amount}, status={self.status})>"
        )


class Payment(Base):
    """
    Captured payments.

    One row per capture unit of a successful capture response. A provider
    payment ID appears at most once per order.
    """

    __tablename__ = "paypal_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_ref: Mapped[int] = mapped_column(
        Integer, ForeignKey("paypal_orders.id", ondelete="RESTRICT"), nullable=False
    )
    paypal_payment_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    date_captured: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("order_ref", "paypal_payment_id", name="uq_payment_per_order"),
        Index("idx_payments_order_ref", "order_ref"),
    )

    @validates("status")
    def _validate_status(self, key: str, value: str) -> str:
        return PaymentStatus.parse(value).value

    def __repr__(self) -> str:
        """String representation of Payment."""
        return (
            f"<Payment(id={self.id}, order_ref={self.order_ref}, "
            f"paypal_payment_id={self.paypal_payment_id}, status={self.status})>"
        )


class Log(Base):
    """
    Audit trail of PayPal API calls.

    Written before the call is issued and completed afterwards. A row without
    ``date_response`` is an attempt whose outcome was never recorded.
    """

    __tablename__ = "paypal_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_type: Mapped[str] = mapped_column(String(32), nullable=False)
    request_data: Mapped[str] = mapped_column(Text, nullable=False)
    date_request: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    response_data: Mapped[str | None] = mapped_column(Text, nullable=True)
    response_status: Mapped[int] = mapped_column(Integer, nullable=False)
    date_response: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_logs_request_type", "request_type"),
        Index("idx_logs_date_response", "date_response"),
    )

    @validates("request_type")
    def _validate_request_type(self, key: str, value: str) -> str:
        return RequestType.parse(value).value

    @property
    def is_in_flight(self) -> bool:
        """True while no outcome has been recorded for the call."""
        return self.date_response is None

    def __repr__(self) -> str:
        """String representation of Log."""
        return (
            f"<Log(id={self.id}, type={self.request_type}, "
            f"status={self.response_status})>"
        )
