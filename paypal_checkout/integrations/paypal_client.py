"""
PayPal Orders v2 REST client.

Implements:
- OAuth2 client-credentials token caching
- Bounded waits on every call (configured timeout)
- Error classification into API errors and transport errors
- Retries only for read-only calls; create and capture are never retried
"""
import json
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from paypal_checkout.config import Settings, get_settings
from paypal_checkout.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

# Refresh the access token this many seconds before PayPal expires it.
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class ProviderError(Exception):
    """Base exception for PayPal-related errors."""

    pass


class ProviderApiError(ProviderError):
    """PayPal answered with a non-2xx status."""

    def __init__(self, http_status: int, body: str):
        """
        Initialize API error.

        Args:
            http_status: HTTP status returned by PayPal
            body: Raw response body
        """
        super().__init__(f"PayPal API error {http_status}: {body}")
        self.http_status = http_status
        self.body = body

    @property
    def issue(self) -> Optional[str]:
        """First ``details[].issue`` code of the error body, if any."""
        try:
            data = json.loads(self.body)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        details = data.get("details") or []
        if details and isinstance(details[0], dict):
            return details[0].get("issue")
        return data.get("name")


class UnreadableResponseError(ProviderApiError):
    """
    PayPal answered 2xx with a body that lacks the expected fields.

    The request may have taken effect at PayPal.
    """

    pass


class TransportError(ProviderError):
    """The call did not complete; its outcome at PayPal is unknown."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


@dataclass(frozen=True)
class CreateOrderResult:
    """Successful create-order call."""

    provider_order_id: str
    raw_body: str
    http_status: int


@dataclass(frozen=True)
class CaptureOrderResult:
    """Completed capture call."""

    raw_body: str
    http_status: int


@dataclass(frozen=True)
class OrderDetailsResult:
    """Completed get-order call."""

    raw_body: str
    http_status: int


class PayPalGateway:
    """
    Async wrapper over the PayPal Orders API.

    The instance is built explicitly and owned by the composition root.
    Pass ``http_client`` to supply a preconfigured ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize PayPal gateway.

        Args:
            settings: Application settings (defaults to the cached settings)
            http_client: Optional HTTP client
        """
        self.settings = settings or get_settings()
        self.http_client = http_client or httpx.AsyncClient(
            base_url=self.settings.api_base_url,
            timeout=httpx.Timeout(self.settings.paypal_timeout_seconds),
        )
        self._access_token: Optional[str] = None
        self._token_expires_at = 0.0

        logger.info(
            "paypal_gateway_initialized",
            mode=self.settings.paypal_mode.value,
            base_url=self.settings.api_base_url,
        )

    async def aclose(self) -> None:
        """Release the underlying HTTP connections."""
        await self.http_client.aclose()

    @retry(
        retry=retry_if_exception_type(TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _fetch_access_token(self) -> None:
        try:
            response = await self.http_client.post(
                "/v1/oauth2/token",
                data={"grant_type": "client_credentials"},
                auth=(self.settings.paypal_client_id, self.settings.paypal_client_secret),
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            logger.error("paypal_token_transport_error", error=str(e))
            raise TransportError(f"PayPal token request failed: {e}", original_error=e) from e

        if not response.is_success:
            logger.error("paypal_token_rejected", http_status=response.status_code)
            raise ProviderApiError(response.status_code, response.text)

        payload = response.json()
        self._access_token = payload["access_token"]
        expires_in = float(payload.get("expires_in", 0))
        self._token_expires_at = time.monotonic() + max(
            expires_in - TOKEN_EXPIRY_MARGIN_SECONDS, 0
        )
        logger.info("paypal_token_acquired", expires_in=expires_in)

    async def get_access_token(self) -> str:
        """Return a valid OAuth2 access token, fetching a new one when needed."""
        if self._access_token is None or time.monotonic() >= self._token_expires_at:
            await self._fetch_access_token()
        assert self._access_token is not None
        return self._access_token

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        json_body: Optional[Dict[str, Any]] = None,
        prefer: Optional[str] = None,
    ) -> httpx.Response:
        token = await self.get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer

        start_time = time.monotonic()
        try:
            response = await self.http_client.request(method, url, json=json_body, headers=headers)
        except httpx.TimeoutException as e:
            metrics.record_provider_call(operation, "timeout", time.monotonic() - start_time)
            logger.error("paypal_request_timeout", operation=operation, url=url)
            raise TransportError(f"PayPal {operation} timed out", original_error=e) from e
        except httpx.HTTPError as e:
            metrics.record_provider_call(operation, "transport_error", time.monotonic() - start_time)
            logger.error("paypal_transport_error", operation=operation, url=url, error=str(e))
            raise TransportError(f"PayPal {operation} failed: {e}", original_error=e) from e

        duration = time.monotonic() - start_time
        metrics.record_provider_call(operation, str(response.status_code), duration)

        if not response.is_success:
            logger.error(
                "paypal_api_error",
                operation=operation,
                http_status=response.status_code,
                debug_id=response.headers.get("PayPal-Debug-Id"),
            )
            raise ProviderApiError(response.status_code, response.text)

        logger.info(
            "paypal_request_completed",
            operation=operation,
            http_status=response.status_code,
            duration_seconds=duration,
        )
        return response

    async def create_order(
        self,
        intent: str,
        purchase_units: List[Dict[str, Any]],
        prefer: Optional[str] = None,
    ) -> CreateOrderResult:
        """
        Create an order at PayPal.

        Args:
            intent: CAPTURE or AUTHORIZE
            purchase_units: Purchase units in PayPal's JSON shape
            prefer: Value of the Prefer header

        Returns:
            CreateOrderResult: PayPal order ID, raw body and HTTP status

        Raises:
            ProviderApiError: If PayPal rejects the request
            UnreadableResponseError: If a 2xx response carries no order ID
            TransportError: If the call does not complete
        """
        response = await self._request(
            "order_create",
            "POST",
            "/v2/checkout/orders",
            json_body={"intent": intent, "purchase_units": purchase_units},
            prefer=prefer,
        )
        body = response.text
        try:
            provider_order_id = json.loads(body)["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise UnreadableResponseError(response.status_code, body) from e
        return CreateOrderResult(
            provider_order_id=provider_order_id,
            raw_body=body,
            http_status=response.status_code,
        )

    async def capture_order(
        self, provider_order_id: str, prefer: Optional[str] = None
    ) -> CaptureOrderResult:
        """
        Capture the payment of an approved order.

        Not idempotent: the caller must never repeat it blindly.

        Raises:
            ProviderApiError: If PayPal rejects the capture
            TransportError: If the call does not complete
        """
        response = await self._request(
            "order_capture",
            "POST",
            f"/v2/checkout/orders/{provider_order_id}/capture",
            json_body={},
            prefer=prefer,
        )
        return CaptureOrderResult(raw_body=response.text, http_status=response.status_code)

    @retry(
        retry=retry_if_exception_type(TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def get_order(self, provider_order_id: str) -> OrderDetailsResult:
        """
        Retrieve the current state of an order.

        Read-only, so transient transport failures are retried.
        """
        response = await self._request(
            "order_get", "GET", f"/v2/checkout/orders/{provider_order_id}"
        )
        return OrderDetailsResult(raw_body=response.text, http_status=response.status_code)
