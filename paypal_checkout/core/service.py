"""
Composition root of the checkout integration.

Everything is built explicitly here and handed to the orchestrators; there is
no lazily created global PayPal client.
"""
from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from paypal_checkout.config import Settings, get_settings
from paypal_checkout.core.adapter import PaymentAdapter
from paypal_checkout.core.audit_log import AuditLog
from paypal_checkout.core.order_creation import OrderCreationOrchestrator
from paypal_checkout.core.payment_capture import PaymentCaptureOrchestrator
from paypal_checkout.database.connection import get_session_factory
from paypal_checkout.database.repositories import (
    LogRepository,
    OrderRepository,
    PaymentRepository,
    TransactionWrapper,
)
from paypal_checkout.integrations.paypal_client import PayPalGateway
from paypal_checkout.monitoring.health import HealthCheck

logger = structlog.get_logger(__name__)


@dataclass
class CheckoutService:
    """Wired collaborators of the checkout flow."""

    settings: Settings
    gateway: PayPalGateway
    orders: OrderRepository
    payments: PaymentRepository
    logs: LogRepository
    audit_log: AuditLog
    transaction: TransactionWrapper
    order_creation: OrderCreationOrchestrator
    payment_capture: PaymentCaptureOrchestrator
    health: HealthCheck

    async def aclose(self) -> None:
        """Release the PayPal HTTP connections."""
        await self.gateway.aclose()
        logger.info("checkout_service_closed")


def build_checkout_service(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    gateway: Optional[PayPalGateway] = None,
    adapter: Optional[PaymentAdapter] = None,
) -> CheckoutService:
    """
    Build the checkout service.

    Args:
        settings: Application settings (defaults to the cached settings)
        session_factory: Session factory (defaults to the global one)
        gateway: PayPal gateway (built from settings when omitted)
        adapter: Application hook called after successful captures

    Returns:
        CheckoutService: Ready-to-use service
    """
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()
    gateway = gateway or PayPalGateway(settings)

    orders = OrderRepository(session_factory)
    payments = PaymentRepository(session_factory)
    logs = LogRepository(session_factory)
    audit_log = AuditLog(logs)
    transaction = TransactionWrapper(session_factory)

    service = CheckoutService(
        settings=settings,
        gateway=gateway,
        orders=orders,
        payments=payments,
        logs=logs,
        audit_log=audit_log,
        transaction=transaction,
        order_creation=OrderCreationOrchestrator(
            gateway, audit_log, orders, prefer=settings.paypal_create_prefer
        ),
        payment_capture=PaymentCaptureOrchestrator(
            gateway,
            audit_log,
            orders,
            payments,
            transaction,
            adapter=adapter,
            prefer=settings.paypal_capture_prefer,
        ),
        health=HealthCheck(session_factory, gateway),
    )
    logger.info("checkout_service_built", paypal_mode=settings.paypal_mode.value)
    return service
