"""Core checkout logic: audit log, orchestrators and composition root."""
from .adapter import NullPaymentAdapter, PaymentAdapter
from .audit_log import IN_FLIGHT_STATUS, AuditLog
from .order_creation import OrderCreationOrchestrator, OrderCreationResult, OrderValidationError
from .payment_capture import (
    CapturePersistenceError,
    CaptureResult,
    OrderNotFoundError,
    PaymentCaptureOrchestrator,
    ReplayError,
    SavePaymentsResult,
)
from .service import CheckoutService, build_checkout_service

__all__ = [
    "AuditLog",
    "IN_FLIGHT_STATUS",
    "PaymentAdapter",
    "NullPaymentAdapter",
    "OrderCreationOrchestrator",
    "OrderCreationResult",
    "OrderValidationError",
    "PaymentCaptureOrchestrator",
    "CaptureResult",
    "SavePaymentsResult",
    "OrderNotFoundError",
    "CapturePersistenceError",
    "ReplayError",
    "CheckoutService",
    "build_checkout_service",
]
