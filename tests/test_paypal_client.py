"""
Tests for the PayPal REST gateway against a mocked HTTP transport.
"""
import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from paypal_checkout.config import Settings
from paypal_checkout.integrations.paypal_client import (
    PayPalGateway,
    ProviderApiError,
    TransportError,
    UnreadableResponseError,
)

TOKEN_BODY = {"access_token": "A21AA-token", "token_type": "Bearer", "expires_in": 32400}


def build_gateway(
    settings: Settings, handler: Callable[[httpx.Request], httpx.Response]
) -> PayPalGateway:
    client = httpx.AsyncClient(
        base_url=settings.api_base_url, transport=httpx.MockTransport(handler)
    )
    return PayPalGateway(settings, http_client=client)


class PayPalStub:
    """Records requests and answers with queued responses per path."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self.routes: Dict[str, List[Any]] = {}

    def add(self, path: str, *responses: Any) -> None:
        self.routes.setdefault(path, []).extend(responses)

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes[request.url.path]
        answer = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(answer, Exception):
            raise answer
        status_code, body = answer
        if isinstance(body, str):
            return httpx.Response(status_code, text=body)
        return httpx.Response(status_code, json=body)


@pytest.fixture
def stub() -> PayPalStub:
    paypal = PayPalStub()
    paypal.add("/v1/oauth2/token", (200, TOKEN_BODY))
    return paypal


class TestPayPalGateway:
    """Test suite for PayPalGateway."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_order(self, test_settings: Settings, stub: PayPalStub) -> None:
        stub.add("/v2/checkout/orders", (201, {"id": "5O190127TN364715T", "status": "CREATED"}))
        gateway = build_gateway(test_settings, stub)
        units = [{"amount": {"currency_code": "USD", "value": "100.00"}}]

        result = await gateway.create_order("CAPTURE", units, prefer="return=minimal")

        assert result.provider_order_id == "5O190127TN364715T"
        assert result.http_status == 201
        assert json.loads(result.raw_body)["status"] == "CREATED"

        request = stub.calls("/v2/checkout/orders")[0]
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer A21AA-token"
        assert request.headers["Prefer"] == "return=minimal"
        assert json.loads(request.content) == {"intent": "CAPTURE", "purchase_units": units}

        token_request = stub.calls("/v1/oauth2/token")[0]
        assert token_request.headers["Authorization"].startswith("Basic ")
        assert b"grant_type=client_credentials" in token_request.content
        await gateway.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_token_is_cached(self, test_settings: Settings, stub: PayPalStub) -> None:
        stub.add("/v2/checkout/orders/ORDER-1", (200, {"id": "ORDER-1", "status": "APPROVED"}))
        gateway = build_gateway(test_settings, stub)

        await gateway.get_order("ORDER-1")
        await gateway.get_order("ORDER-1")

        assert len(stub.calls("/v1/oauth2/token")) == 1
        assert len(stub.calls("/v2/checkout/orders/ORDER-1")) == 2
        await gateway.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed(self, test_settings: Settings) -> None:
        paypal = PayPalStub()
        paypal.add("/v1/oauth2/token", (200, {**TOKEN_BODY, "expires_in": 0}))
        paypal.add("/v2/checkout/orders/ORDER-1", (200, {"id": "ORDER-1"}))
        gateway = build_gateway(test_settings, paypal)

        await gateway.get_order("ORDER-1")
        await gateway.get_order("ORDER-1")

        assert len(paypal.calls("/v1/oauth2/token")) == 2
        await gateway.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_capture_order(self, test_settings: Settings, stub: PayPalStub) -> None:
        stub.add("/v2/checkout/orders/ORDER-1/capture", (201, {"id": "ORDER-1", "status": "COMPLETED"}))
        gateway = build_gateway(test_settings, stub)

        result = await gateway.capture_order("ORDER-1", prefer="return=minimal")

        assert result.http_status == 201
        assert json.loads(result.raw_body)["status"] == "COMPLETED"
        request = stub.calls("/v2/checkout/orders/ORDER-1/capture")[0]
        assert request.method == "POST"
        assert json.loads(request.content) == {}
        await gateway.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_api_error(self, test_settings: Settings, stub: PayPalStub) -> None:
        body = {
            "name": "UNPROCESSABLE_ENTITY",
            "details": [{"issue": "INSTRUMENT_DECLINED", "description": "declined"}],
        }
        stub.add("/v2/checkout/orders/ORDER-1/capture", (422, body))
        gateway = build_gateway(test_settings, stub)

        with pytest.raises(ProviderApiError) as exc_info:
            await gateway.capture_order("ORDER-1")

        assert exc_info.value.http_status == 422
        assert exc_info.value.issue == "INSTRUMENT_DECLINED"
        assert json.loads(exc_info.value.body) == body
        await gateway.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_capture_timeout_is_not_retried(
        self, test_settings: Settings, stub: PayPalStub
    ) -> None:
        path = "/v2/checkout/orders/ORDER-1/capture"
        stub.add(path, httpx.ReadTimeout("timed out"), (201, {"id": "ORDER-1"}))
        gateway = build_gateway(test_settings, stub)

        with pytest.raises(TransportError):
            await gateway.capture_order("ORDER-1")

        assert len(stub.calls(path)) == 1
        await gateway.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_connection_error_is_not_retried(
        self, test_settings: Settings, stub: PayPalStub
    ) -> None:
        stub.add("/v2/checkout/orders", httpx.ConnectError("refused"), (201, {"id": "ORDER-1"}))
        gateway = build_gateway(test_settings, stub)

        with pytest.raises(TransportError):
            await gateway.create_order("CAPTURE", [])

        assert len(stub.calls("/v2/checkout/orders")) == 1
        await gateway.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_order_retries_transport_errors(
        self, test_settings: Settings, stub: PayPalStub
    ) -> None:
        path = "/v2/checkout/orders/ORDER-1"
        stub.add(path, httpx.ConnectError("reset"), (200, {"id": "ORDER-1", "status": "APPROVED"}))
        gateway = build_gateway(test_settings, stub)

        result = await gateway.get_order("ORDER-1")

        assert json.loads(result.raw_body)["status"] == "APPROVED"
        assert len(stub.calls(path)) == 2
        await gateway.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_rejected_credentials(self, test_settings: Settings) -> None:
        paypal = PayPalStub()
        paypal.add("/v1/oauth2/token", (401, {"error": "invalid_client"}))
        gateway = build_gateway(test_settings, paypal)

        with pytest.raises(ProviderApiError) as exc_info:
            await gateway.get_access_token()

        assert exc_info.value.http_status == 401
        await gateway.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_create_response_without_id(
        self, test_settings: Settings, stub: PayPalStub
    ) -> None:
        stub.add("/v2/checkout/orders", (201, "not json"))
        gateway = build_gateway(test_settings, stub)

        with pytest.raises(UnreadableResponseError) as exc_info:
            await gateway.create_order("CAPTURE", [])

        assert isinstance(exc_info.value, ProviderApiError)
        assert exc_info.value.http_status == 201
        assert exc_info.value.body == "not json"
        await gateway.aclose()

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_default_client_uses_mode_base_url(self, test_settings: Settings) -> None:
        gateway = PayPalGateway(test_settings)
        assert str(gateway.http_client.base_url).startswith("https://api-m.sandbox.paypal.com")
        await gateway.aclose()
