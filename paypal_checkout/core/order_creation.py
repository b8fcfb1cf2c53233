"""
Order creation at PayPal.

Flow:
1. Validate the cart
2. Log the request (audit log ``begin``)
3. Call PayPal create-order
4. Log the response (``complete`` or ``fail``)
5. Store the order locally with status CREATED
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

import structlog

from paypal_checkout.core.audit_log import AuditLog, parse_payload
from paypal_checkout.database.models import Order
from paypal_checkout.database.repositories import DuplicateKeyError, OrderRepository
from paypal_checkout.enums import OrderStatus, RequestType
from paypal_checkout.integrations.paypal_client import (
    PayPalGateway,
    ProviderApiError,
    TransportError,
    UnreadableResponseError,
)
from paypal_checkout.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

INTENT_CAPTURE = "CAPTURE"

# Logged status of a 2xx response that could not be used.
UNREADABLE_RESPONSE_STATUS = 502


class OrderValidationError(ValueError):
    """Raised when the cart cannot be sent to PayPal."""

    pass


@dataclass
class OrderCreationResult:
    """Outcome of a successful order creation."""

    provider_order_id: str
    http_status: int
    order_id: int
    log_id: int
    response: Dict[str, Any] = field(default_factory=dict)


def is_success_status(http_status: int) -> bool:
    """True for HTTP 2xx."""
    return 200 <= http_status < 300


class OrderCreationOrchestrator:
    """Creates orders at PayPal and registers them locally."""

    def __init__(
        self,
        gateway: PayPalGateway,
        audit_log: AuditLog,
        orders: OrderRepository,
        prefer: Optional[str] = "return=minimal",
    ):
        """
        Initialize orchestrator.

        Args:
            gateway: PayPal gateway
            audit_log: Audit log for request/response pairs
            orders: Order repository
            prefer: Prefer header sent with the create call
        """
        self.gateway = gateway
        self.audit_log = audit_log
        self.orders = orders
        self.prefer = prefer

    @staticmethod
    def _validate_purchase_units(purchase_units: List[Dict[str, Any]]) -> Tuple[Decimal, str]:
        """
        Validate the cart and read the order amount from its first unit.

        Returns:
            Amount and currency of the first purchase unit

        Raises:
            OrderValidationError: If the cart is empty or malformed
        """
        if not purchase_units:
            raise OrderValidationError("Cart must contain at least one purchase unit")

        amount = purchase_units[0].get("amount") if isinstance(purchase_units[0], dict) else None
        if not isinstance(amount, dict):
            raise OrderValidationError("First purchase unit has no amount")

        try:
            value = Decimal(str(amount.get("value")))
        except InvalidOperation:
            raise OrderValidationError(f"Invalid amount value: {amount.get('value')!r}") from None
        if not value.is_finite() or value < 0:
            raise OrderValidationError(f"Invalid amount value: {amount.get('value')!r}")

        currency = amount.get("currency_code")
        if not isinstance(currency, str) or len(currency) != 3:
            raise OrderValidationError("Currency must be 3-letter code")

        return value, currency.upper()

    async def create_order(
        self, user_ref: Optional[str], purchase_units: List[Dict[str, Any]]
    ) -> OrderCreationResult:
        """
        Create an order at PayPal and store it locally.

        Args:
            user_ref: Reference of the user checking out
            purchase_units: Cart in PayPal's purchase unit shape

        Returns:
            OrderCreationResult: PayPal order ID, HTTP status and local order ID

        Raises:
            OrderValidationError: If the cart is malformed (nothing is logged)
            ProviderApiError: If PayPal rejects the order
            UnreadableResponseError: If PayPal answers 2xx without an order ID
            TransportError: If the call does not complete
            DuplicateKeyError: If the returned PayPal order ID is already stored
        """
        amount, currency = self._validate_purchase_units(purchase_units)

        logger.info(
            "order_create_started",
            user_ref=user_ref,
            amount=str(amount),
            currency=currency,
            purchase_units=len(purchase_units),
        )

        request = {
            "body": {"intent": INTENT_CAPTURE, "purchase_units": purchase_units},
            "prefer": self.prefer,
        }
        log_id = await self.audit_log.begin(RequestType.ORDER_CREATE, request)

        try:
            result = await self.gateway.create_order(
                INTENT_CAPTURE, purchase_units, prefer=self.prefer
            )
        except UnreadableResponseError as e:
            # PayPal may hold an order this system has no ID for.
            await self.audit_log.fail_best_effort(log_id, e.body, UNREADABLE_RESPONSE_STATUS)
            logger.critical(
                "order_create_response_unreadable",
                log_id=log_id,
                http_status=e.http_status,
                response=e.body,
            )
            raise
        except ProviderApiError as e:
            await self.audit_log.fail_best_effort(log_id, e.body, e.http_status)
            logger.error(
                "order_create_rejected",
                log_id=log_id,
                http_status=e.http_status,
                issue=e.issue,
            )
            raise
        except TransportError as e:
            await self.audit_log.fail_best_effort(log_id, str(e))
            logger.error("order_create_transport_error", log_id=log_id, error=str(e))
            raise
        except Exception as e:
            await self.audit_log.fail_best_effort(log_id, repr(e))
            logger.error("order_create_unexpected_error", log_id=log_id, error=str(e))
            raise

        if not is_success_status(result.http_status):
            await self.audit_log.fail_best_effort(log_id, result.raw_body, result.http_status)
            raise ProviderApiError(result.http_status, result.raw_body)

        await self.audit_log.complete(log_id, result.http_status, result.raw_body)

        order = Order(
            paypal_order_id=result.provider_order_id,
            user_ref=user_ref,
            amount=amount,
            currency=currency,
            status=OrderStatus.CREATED.value,
        )
        try:
            order_id = await self.orders.create_one(order)
        except DuplicateKeyError:
            logger.error(
                "order_create_duplicate_paypal_id",
                log_id=log_id,
                paypal_order_id=result.provider_order_id,
            )
            raise

        metrics.record_order_created(currency)
        logger.info(
            "order_created",
            order_id=order_id,
            paypal_order_id=result.provider_order_id,
            user_ref=user_ref,
            log_id=log_id,
        )

        return OrderCreationResult(
            provider_order_id=result.provider_order_id,
            http_status=result.http_status,
            order_id=order_id,
            log_id=log_id,
            response=parse_payload(result.raw_body),
        )
