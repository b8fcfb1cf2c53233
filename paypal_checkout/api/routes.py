"""
API routes for the PayPal checkout flow.
"""
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from paypal_checkout.core.order_creation import OrderValidationError
from paypal_checkout.core.payment_capture import (
    CapturePersistenceError,
    OrderNotFoundError,
    ReplayError,
)
from paypal_checkout.core.service import CheckoutService
from paypal_checkout.enums import InvalidStatusError, RequestType
from paypal_checkout.integrations.paypal_client import ProviderApiError, TransportError

from .schemas import (
    CaptureOrderRequest,
    CaptureOrderResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    ErrorResponse,
    HealthCheckResponse,
    LogEntryResponse,
    ReplayResponse,
)

logger = structlog.get_logger(__name__)

# Create routers
checkout_router = APIRouter(prefix="/api/order", tags=["checkout"])
admin_router = APIRouter(prefix="/admin", tags=["admin"])
monitoring_router = APIRouter(tags=["monitoring"])


def get_checkout_service(request: Request) -> CheckoutService:
    """Checkout service owned by the application."""
    return request.app.state.checkout


def _http_error(
    status_code: int, error: str, message: str, **fields: Any
) -> HTTPException:
    detail = ErrorResponse(error=error, message=message, **fields)
    return HTTPException(status_code=status_code, detail=detail.model_dump(exclude_none=True))


def _provider_error(e: ProviderApiError) -> HTTPException:
    return _http_error(
        status.HTTP_502_BAD_GATEWAY,
        "provider_error",
        f"PayPal rejected the request ({e.issue or e.http_status})",
        provider_status=e.http_status,
        provider_body=e.body,
    )


def _transport_error(e: TransportError) -> HTTPException:
    return _http_error(
        status.HTTP_504_GATEWAY_TIMEOUT,
        "provider_unreachable",
        str(e),
    )


def _bookkeeping_error(e: OrderNotFoundError | CapturePersistenceError) -> HTTPException:
    # The payment went through; the log row is what support needs.
    return _http_error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "capture_not_recorded",
        "Payment was captured but could not be recorded. Support has been notified.",
        log_id=e.log_id,
    )


@checkout_router.post(
    "/create",
    response_model=CreateOrderResponse,
    summary="Create a PayPal order",
    description="Register the cart as a PayPal order and store it locally",
)
async def create_order(
    request: CreateOrderRequest,
    x_user_ref: Optional[str] = Header(default=None, alias="X-User-Ref"),
    service: CheckoutService = Depends(get_checkout_service),
) -> Dict[str, Any]:
    """Create an order for the payer's cart."""
    if request.discount_code:
        logger.info("discount_code_applied", discount_code=request.discount_code)

    try:
        result = await service.order_creation.create_order(x_user_ref, request.cart)
    except OrderValidationError as e:
        logger.warning("api_create_order_validation_error", error=str(e))
        raise _http_error(status.HTTP_400_BAD_REQUEST, "validation_error", str(e))
    except ProviderApiError as e:
        raise _provider_error(e)
    except TransportError as e:
        raise _transport_error(e)

    logger.info(
        "api_create_order_success",
        paypal_order_id=result.provider_order_id,
        order_id=result.order_id,
    )
    return {**result.response, "id": result.provider_order_id}


@checkout_router.post(
    "/capture",
    response_model=CaptureOrderResponse,
    summary="Capture an approved order",
    description="Capture the payment at PayPal and record it locally",
)
async def capture_order(
    request: CaptureOrderRequest,
    service: CheckoutService = Depends(get_checkout_service),
) -> Dict[str, Any]:
    """Capture the payment of an order approved by the payer."""
    try:
        result = await service.payment_capture.capture_and_save(request.order_id)
    except ProviderApiError as e:
        raise _provider_error(e)
    except TransportError as e:
        raise _transport_error(e)
    except (OrderNotFoundError, CapturePersistenceError) as e:
        raise _bookkeeping_error(e)

    logger.info(
        "api_capture_order_success",
        paypal_order_id=request.order_id,
        log_id=result.log_id,
        already_applied=result.saved.already_applied if result.saved else None,
    )
    return result.response


@admin_router.get(
    "/logs/in-flight",
    response_model=List[LogEntryResponse],
    summary="List unresolved PayPal calls",
    description="Audit log rows whose outcome was never recorded",
)
async def list_in_flight_logs(
    request_type: Optional[str] = None,
    service: CheckoutService = Depends(get_checkout_service),
) -> List[Any]:
    """Rows to reconcile against PayPal before any retry."""
    try:
        kind = RequestType.parse(request_type) if request_type else None
    except InvalidStatusError as e:
        raise _http_error(status.HTTP_400_BAD_REQUEST, "validation_error", str(e))
    return await service.audit_log.in_flight(kind)


@admin_router.post(
    "/logs/{log_id}/replay",
    response_model=ReplayResponse,
    summary="Replay a capture log row",
    description="Apply a stored capture response to local state without calling PayPal",
)
async def replay_capture_log(
    log_id: int,
    service: CheckoutService = Depends(get_checkout_service),
) -> Dict[str, Any]:
    """Replay a capture whose local bookkeeping failed."""
    try:
        result = await service.payment_capture.replay_capture(log_id)
    except ReplayError as e:
        raise _http_error(status.HTTP_409_CONFLICT, "replay_rejected", str(e), log_id=log_id)
    except (OrderNotFoundError, CapturePersistenceError) as e:
        raise _bookkeeping_error(e)

    logger.info("api_replay_success", log_id=log_id, order_id=result.order_id)
    return {
        "log_id": log_id,
        "order_id": result.order_id,
        "created_payment_ids": result.created_payment_ids,
        "already_applied": result.already_applied,
    }


@admin_router.get(
    "/orders/{paypal_order_id}/provider",
    summary="PayPal's view of an order",
    description="Query PayPal for the current order state (reconciliation)",
)
async def get_provider_order(
    paypal_order_id: str,
    service: CheckoutService = Depends(get_checkout_service),
) -> Dict[str, Any]:
    """Current order state as reported by PayPal."""
    try:
        return await service.payment_capture.fetch_provider_order(paypal_order_id)
    except ProviderApiError as e:
        raise _provider_error(e)
    except TransportError as e:
        raise _transport_error(e)


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
async def health(service: CheckoutService = Depends(get_checkout_service)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    return await service.health.check_all()


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
    description="Kubernetes liveness probe endpoint",
)
async def liveness(service: CheckoutService = Depends(get_checkout_service)) -> Dict[str, Any]:
    """Liveness probe endpoint."""
    return await service.health.liveness()


@monitoring_router.get(
    "/health/ready",
    response_model=HealthCheckResponse,
    summary="Readiness probe",
    description="Kubernetes readiness probe endpoint",
)
async def readiness(service: CheckoutService = Depends(get_checkout_service)) -> Dict[str, Any]:
    """Readiness probe endpoint."""
    result = await service.health.readiness()
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,
)
async def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
