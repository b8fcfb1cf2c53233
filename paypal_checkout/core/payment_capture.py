"""
Payment capture at PayPal and local bookkeeping of the captured funds.

Flow:
1. Log the request (audit log ``begin``)
2. Call PayPal capture, outside any local transaction
3. Log the response (``complete``, ``fail`` or unknown outcome)
4. In one local transaction: mark the order COMPLETED and store one payment
   per capture entry of the response
5. Notify the application adapter

Once step 2 succeeds the money has moved and no rollback undoes it. The
completed log row holds the full capture response, so step 4 can be replayed
from the log without calling PayPal again. The capture call is never retried.
"""
import json
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from paypal_checkout.core.adapter import NullPaymentAdapter, PaymentAdapter
from paypal_checkout.core.audit_log import AuditLog, parse_payload
from paypal_checkout.core.order_creation import is_success_status
from paypal_checkout.database.models import Payment
from paypal_checkout.database.repositories import (
    DuplicateKeyError,
    OrderRepository,
    PaymentRepository,
    RecordNotFoundError,
    TransactionWrapper,
)
from paypal_checkout.enums import OrderStatus, PaymentStatus, RequestType
from paypal_checkout.integrations.paypal_client import (
    PayPalGateway,
    ProviderApiError,
    TransportError,
)
from paypal_checkout.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class OrderNotFoundError(RecordNotFoundError):
    """PayPal confirmed a capture for an order unknown locally."""

    def __init__(self, provider_order_id: str, log_id: Optional[int] = None):
        super().__init__(f"Order {provider_order_id} not found for captured payment")
        self.provider_order_id = provider_order_id
        self.log_id = log_id


class CapturePersistenceError(Exception):
    """
    Local bookkeeping failed after PayPal captured the payment.

    The audit log row ``log_id`` holds the capture response needed for replay.
    """

    def __init__(self, message: str, provider_order_id: str, log_id: Optional[int] = None):
        super().__init__(message)
        self.provider_order_id = provider_order_id
        self.log_id = log_id


class MalformedCaptureError(ValueError):
    """A capture entry is missing fields or carries invalid values."""

    pass


class ReplayError(Exception):
    """A log row cannot be replayed into local state."""

    pass


@dataclass(frozen=True)
class CaptureUnit:
    """One capture entry of a capture response."""

    paypal_payment_id: str
    payer_id: Optional[str]
    amount: Decimal
    currency: str
    status: PaymentStatus
    date_captured: Optional[datetime]


@dataclass
class SavePaymentsResult:
    """Outcome of applying a capture response to local state."""

    order_id: int
    created_payment_ids: List[int] = field(default_factory=list)
    already_applied: bool = False


@dataclass
class CaptureResult:
    """Outcome of a capture call, plus local persistence when performed."""

    response: Dict[str, Any]
    http_status: int
    log_id: int
    saved: Optional[SavePaymentsResult] = None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise MalformedCaptureError(f"Invalid capture timestamp: {value!r}") from None


def extract_captures(response: Dict[str, Any]) -> List[CaptureUnit]:
    """
    Collect the capture entries of every purchase unit in a capture response.

    Args:
        response: Decoded capture response

    Returns:
        List of captures in response order

    Raises:
        MalformedCaptureError: If an entry lacks an ID, amount or known status
    """
    payer_id = (response.get("payer") or {}).get("payer_id")
    units = []
    for purchase_unit in response.get("purchase_units") or []:
        captures = ((purchase_unit or {}).get("payments") or {}).get("captures") or []
        for capture in captures:
            capture_id = capture.get("id")
            if not capture_id:
                raise MalformedCaptureError("Capture entry without id")

            amount = capture.get("amount") or {}
            try:
                value = Decimal(str(amount.get("value")))
            except InvalidOperation:
                raise MalformedCaptureError(
                    f"Invalid amount for capture {capture_id}: {amount.get('value')!r}"
                ) from None
            if not value.is_finite():
                raise MalformedCaptureError(f"Invalid amount for capture {capture_id}")

            currency = amount.get("currency_code")
            if not isinstance(currency, str) or len(currency) != 3:
                raise MalformedCaptureError(f"Invalid currency for capture {capture_id}")

            try:
                status = PaymentStatus.from_capture(capture.get("status"))
            except ValueError as e:
                raise MalformedCaptureError(str(e)) from None

            units.append(
                CaptureUnit(
                    paypal_payment_id=capture_id,
                    payer_id=payer_id,
                    amount=value,
                    currency=currency.upper(),
                    status=status,
                    date_captured=_parse_timestamp(capture.get("create_time")),
                )
            )
    return units


class PaymentCaptureOrchestrator:
    """Captures approved orders at PayPal and records the payments locally."""

    def __init__(
        self,
        gateway: PayPalGateway,
        audit_log: AuditLog,
        orders: OrderRepository,
        payments: PaymentRepository,
        transaction: TransactionWrapper,
        adapter: Optional[PaymentAdapter] = None,
        prefer: Optional[str] = "return=minimal",
    ):
        """
        Initialize orchestrator.

        Args:
            gateway: PayPal gateway
            audit_log: Audit log for request/response pairs
            orders: Order repository
            payments: Payment repository
            transaction: Wrapper running the local bookkeeping atomically
            adapter: Application hook called after payments are stored
            prefer: Prefer header sent with the capture call
        """
        self.gateway = gateway
        self.audit_log = audit_log
        self.orders = orders
        self.payments = payments
        self.transaction = transaction
        self.adapter = adapter or NullPaymentAdapter()
        self.prefer = prefer

    async def capture_order(self, provider_order_id: str) -> CaptureResult:
        """
        Capture an approved order at PayPal.

        Local order and payment state is not touched here.

        Args:
            provider_order_id: PayPal order ID

        Returns:
            CaptureResult: Decoded response, HTTP status and audit log ID

        Raises:
            ProviderApiError: If PayPal rejects the capture
            TransportError: If the call does not complete (outcome unknown)
            CapturePersistenceError: If a 2xx response cannot be logged or decoded
        """
        logger.info("order_capture_started", paypal_order_id=provider_order_id)

        log_id = await self.audit_log.begin(
            RequestType.ORDER_CAPTURE, {"id": provider_order_id, "prefer": self.prefer}
        )

        try:
            result = await self.gateway.capture_order(provider_order_id, prefer=self.prefer)
        except ProviderApiError as e:
            await self.audit_log.fail_best_effort(log_id, e.body, e.http_status)
            logger.error(
                "order_capture_rejected",
                log_id=log_id,
                paypal_order_id=provider_order_id,
                http_status=e.http_status,
                issue=e.issue,
            )
            raise
        except TransportError as e:
            # The capture may have happened; only the provider can tell.
            metrics.record_capture_unknown_outcome()
            await self.audit_log.record_unknown_outcome_best_effort(log_id, str(e))
            logger.critical(
                "order_capture_outcome_unknown",
                log_id=log_id,
                paypal_order_id=provider_order_id,
                error=str(e),
            )
            raise
        except Exception as e:
            await self.audit_log.fail_best_effort(log_id, repr(e))
            logger.error(
                "order_capture_unexpected_error",
                log_id=log_id,
                paypal_order_id=provider_order_id,
                error=str(e),
            )
            raise

        if not is_success_status(result.http_status):
            await self.audit_log.fail_best_effort(log_id, result.raw_body, result.http_status)
            raise ProviderApiError(result.http_status, result.raw_body)

        try:
            await self.audit_log.complete(log_id, result.http_status, result.raw_body)
        except Exception as e:
            # Money has moved; this event is the only copy of the response.
            metrics.record_capture_persistence_failure("log_write_failed")
            logger.critical(
                "order_capture_log_write_failed",
                log_id=log_id,
                paypal_order_id=provider_order_id,
                http_status=result.http_status,
                response=result.raw_body,
                error=str(e),
            )
            raise CapturePersistenceError(
                f"Failed to log capture response for {provider_order_id}: {e}",
                provider_order_id=provider_order_id,
                log_id=log_id,
            ) from e

        try:
            response = json.loads(result.raw_body)
        except (TypeError, ValueError):
            response = None
        if not isinstance(response, dict):
            logger.critical(
                "order_capture_response_unreadable",
                log_id=log_id,
                paypal_order_id=provider_order_id,
            )
            raise CapturePersistenceError(
                f"Capture response for {provider_order_id} is not a JSON object",
                provider_order_id=provider_order_id,
                log_id=log_id,
            )

        logger.info(
            "order_captured",
            log_id=log_id,
            paypal_order_id=provider_order_id,
            http_status=result.http_status,
            status=response.get("status"),
        )
        return CaptureResult(response=response, http_status=result.http_status, log_id=log_id)

    async def save_payments(
        self,
        provider_order_id: str,
        response: Dict[str, Any],
        log_id: Optional[int] = None,
    ) -> SavePaymentsResult:
        """
        Apply a capture response to local state in one transaction.

        Payments whose PayPal ID is already stored for the order are skipped,
        so applying the same response twice is harmless.

        Args:
            provider_order_id: PayPal order ID
            response: Decoded capture response
            log_id: Audit log row holding the response (for error context)

        Returns:
            SavePaymentsResult: Order ID, new payment IDs and whether the
            response had already been applied

        Raises:
            OrderNotFoundError: If no local order has this PayPal ID
            CapturePersistenceError: If the transaction fails for another reason
        """
        stored: List[CaptureUnit] = []

        async def apply(db: AsyncSession) -> SavePaymentsResult:
            stored.clear()
            order = await self.orders.read_by_paypal_order_id(provider_order_id, session=db)
            if order is None:
                raise OrderNotFoundError(provider_order_id, log_id=log_id)

            was_completed = order.status == OrderStatus.COMPLETED.value
            existing = {
                payment.paypal_payment_id
                for payment in await self.payments.read_for_order(order.id, session=db)
            }

            await self.orders.update_one(
                order.id, {"status": OrderStatus.COMPLETED.value}, session=db
            )

            created = []
            for unit in units:
                if unit.paypal_payment_id in existing:
                    continue
                payment = Payment(
                    order_ref=order.id,
                    paypal_payment_id=unit.paypal_payment_id,
                    payer_id=unit.payer_id,
                    amount=unit.amount,
                    currency=unit.currency,
                    status=unit.status.value,
                    date_captured=unit.date_captured,
                )
                created.append(await self.payments.create_one(payment, session=db))
                stored.append(unit)
                existing.add(unit.paypal_payment_id)

            return SavePaymentsResult(
                order_id=order.id,
                created_payment_ids=created,
                already_applied=was_completed and not created,
            )

        try:
            units = extract_captures(response)
            result = await self.transaction.execute(None, apply)
        except OrderNotFoundError:
            metrics.record_capture_persistence_failure("order_not_found")
            logger.critical(
                "captured_order_not_found",
                paypal_order_id=provider_order_id,
                log_id=log_id,
            )
            raise
        except DuplicateKeyError:
            # A concurrent save stored the same payments first.
            order = await self.orders.read_by_paypal_order_id(provider_order_id)
            if order is None:
                raise
            logger.warning(
                "capture_already_applied",
                paypal_order_id=provider_order_id,
                log_id=log_id,
            )
            return SavePaymentsResult(order_id=order.id, already_applied=True)
        except Exception as e:
            metrics.record_capture_persistence_failure(type(e).__name__)
            logger.critical(
                "capture_persistence_failed",
                paypal_order_id=provider_order_id,
                log_id=log_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise CapturePersistenceError(
                f"Failed to store capture of {provider_order_id}: {e}",
                provider_order_id=provider_order_id,
                log_id=log_id,
            ) from e

        for unit in stored:
            metrics.record_payment_captured(unit.currency, unit.status.value)

        logger.info(
            "payments_saved",
            order_id=result.order_id,
            paypal_order_id=provider_order_id,
            created=len(result.created_payment_ids),
            already_applied=result.already_applied,
        )

        if not result.already_applied:
            await self.adapter.process_successful_payment(result.order_id, response)

        return result

    async def capture_and_save(self, provider_order_id: str) -> CaptureResult:
        """
        Capture an order and store its payments.

        Raises:
            ProviderApiError: If PayPal rejects the capture (nothing stored)
            TransportError: If the capture outcome is unknown (nothing stored)
            OrderNotFoundError: If PayPal captured an order unknown locally
            CapturePersistenceError: If local persistence failed after capture
        """
        captured = await self.capture_order(provider_order_id)
        saved = await self.save_payments(
            provider_order_id, captured.response, log_id=captured.log_id
        )
        return replace(captured, saved=saved)

    async def replay_capture(self, log_id: int) -> SavePaymentsResult:
        """
        Re-apply a stored capture response without calling PayPal.

        Args:
            log_id: Completed ``order_capture`` log row

        Returns:
            SavePaymentsResult: Outcome of the local transaction

        Raises:
            ReplayError: If the row is missing, not a completed 2xx capture,
                or its response cannot be decoded
        """
        entry = await self.audit_log.read(log_id)
        if entry is None:
            raise ReplayError(f"Log entry {log_id} not found")
        if entry.request_type != RequestType.ORDER_CAPTURE.value:
            raise ReplayError(f"Log entry {log_id} is a {entry.request_type} request")
        if entry.is_in_flight:
            raise ReplayError(
                f"Log entry {log_id} has no recorded outcome; query PayPal for the order state"
            )
        if not is_success_status(entry.response_status):
            raise ReplayError(
                f"Log entry {log_id} recorded a failed capture ({entry.response_status})"
            )

        try:
            response = json.loads(entry.response_data)
        except (TypeError, ValueError):
            response = None
        if not isinstance(response, dict):
            raise ReplayError(f"Log entry {log_id} holds no decodable capture response")

        provider_order_id = parse_payload(entry.request_data).get("id") or response.get("id")
        if not provider_order_id:
            raise ReplayError(f"Log entry {log_id} does not name a PayPal order")

        logger.warning("capture_replay_started", log_id=log_id, paypal_order_id=provider_order_id)
        result = await self.save_payments(provider_order_id, response, log_id=log_id)
        metrics.record_log_replay("already_applied" if result.already_applied else "applied")
        return result

    async def fetch_provider_order(self, provider_order_id: str) -> Dict[str, Any]:
        """
        Read the current order state from PayPal (for reconciliation).

        The call is logged as ``order_get``; no local state changes.

        Raises:
            ProviderApiError: If PayPal rejects the request
            TransportError: If the call does not complete after retries
        """
        log_id = await self.audit_log.begin(RequestType.ORDER_GET, {"id": provider_order_id})
        try:
            result = await self.gateway.get_order(provider_order_id)
        except ProviderApiError as e:
            await self.audit_log.fail_best_effort(log_id, e.body, e.http_status)
            raise
        except Exception as e:
            await self.audit_log.fail_best_effort(log_id, str(e))
            raise

        await self.audit_log.complete(log_id, result.http_status, result.raw_body)
        return parse_payload(result.raw_body)
