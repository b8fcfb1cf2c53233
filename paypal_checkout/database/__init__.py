"""Database package for the PayPal checkout integration."""
from .connection import close_db, get_session_factory, init_db
from .models import Base, Log, Order, Payment
from .repositories import (
    CrudRepository,
    DuplicateKeyError,
    LogRepository,
    OrderRepository,
    PaymentRepository,
    RecordNotFoundError,
    RepositoryError,
    TransactionWrapper,
)

__all__ = [
    "Base",
    "Order",
    "Payment",
    "Log",
    "CrudRepository",
    "OrderRepository",
    "PaymentRepository",
    "LogRepository",
    "TransactionWrapper",
    "RepositoryError",
    "DuplicateKeyError",
    "RecordNotFoundError",
    "close_db",
    "get_session_factory",
    "init_db",
]
