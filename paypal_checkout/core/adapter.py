"""
Application hook invoked after a capture is stored locally.

The checkout integration knows nothing about what was sold. Applications plug
their fulfilment logic (activate a subscription, ship goods, ...) in here.
"""
from typing import Any, Dict, Protocol

import structlog

logger = structlog.get_logger(__name__)


class PaymentAdapter(Protocol):
    """Interface between the checkout integration and the host application."""

    async def process_successful_payment(
        self, order_id: int, provider_response: Dict[str, Any]
    ) -> None:
        """
        Run application-specific actions for a paid order.

        Called once the order and its payments are committed. Exceptions
        propagate to the caller; the stored payments are not rolled back.

        Args:
            order_id: Internal order ID
            provider_response: Full capture response from PayPal
        """
        ...


class NullPaymentAdapter:
    """Default adapter that only logs the event."""

    async def process_successful_payment(
        self, order_id: int, provider_response: Dict[str, Any]
    ) -> None:
        logger.info(
            "payment_adapter_noop",
            order_id=order_id,
            paypal_order_id=provider_response.get("id"),
        )
