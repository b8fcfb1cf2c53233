"""
Closed enumerations for the values stored in the orders, payments and logs tables.

Unknown strings are rejected at the model boundary instead of being stored.
"""
from enum import Enum
from typing import Type, TypeVar

E = TypeVar("E", bound="StrEnum")


class InvalidStatusError(ValueError):
    """Raised when a value is outside a closed enumeration."""

    pass


class StrEnum(str, Enum):
    """String-valued enum with strict parsing."""

    @classmethod
    def parse(cls: Type[E], value: "str | E") -> E:
        """
        Convert a raw string into an enum member.

        Args:
            value: Raw value or an existing member

        Returns:
            The matching member

        Raises:
            InvalidStatusError: If the value is not a member
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            raise InvalidStatusError(
                f"Invalid {cls.__name__} value {value!r}. Must be one of: {allowed}"
            ) from None

    def __str__(self) -> str:
        return self.value


class OrderStatus(StrEnum):
    """Lifecycle of a PayPal order as known locally."""

    CREATED = "CREATED"  # Order created but not paid
    APPROVED = "APPROVED"  # Payer approved, funds not captured yet
    COMPLETED = "COMPLETED"  # Funds captured
    VOIDED = "VOIDED"
    FAILED = "FAILED"


class PaymentStatus(StrEnum):
    """Status of one captured fund transfer."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    DENIED = "DENIED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"

    @classmethod
    def from_capture(cls, value: str) -> "PaymentStatus":
        """Parse a capture status as reported by PayPal."""
        # PayPal reports a declined capture as DECLINED.
        if value == "DECLINED":
            return cls.DENIED
        return cls.parse(value)


class RequestType(StrEnum):
    """Kinds of PayPal API calls recorded in the audit log."""

    ORDER_CREATE = "order_create"
    ORDER_CAPTURE = "order_capture"
    ORDER_GET = "order_get"
    PAYMENT_REFUND = "payment_refund"
    PAYMENT_GET = "payment_get"
