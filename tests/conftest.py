"""
Pytest configuration and fixtures.
"""
import json
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from paypal_checkout.config import Settings
from paypal_checkout.core.adapter import NullPaymentAdapter
from paypal_checkout.core.audit_log import AuditLog
from paypal_checkout.core.service import CheckoutService, build_checkout_service
from paypal_checkout.database.connection import (
    create_engine_from_settings,
    create_session_factory,
    init_db,
)
from paypal_checkout.database.repositories import (
    LogRepository,
    OrderRepository,
    PaymentRepository,
    TransactionWrapper,
)
from paypal_checkout.integrations.paypal_client import (
    CaptureOrderResult,
    CreateOrderResult,
    PayPalGateway,
)


@pytest.fixture
def test_settings(tmp_path: Any) -> Settings:
    """Create test settings backed by a throwaway SQLite file."""
    return Settings(
        _env_file=None,
        paypal_client_id="test-client-id",
        paypal_client_secret="test-client-secret",
        paypal_mode="sandbox",
        paypal_timeout_seconds=5,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'checkout.db'}",
        app_name="paypal-checkout-test",
        app_env="test",
        log_level="DEBUG",
        debug=True,
    )


@pytest_asyncio.fixture
async def engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, Any]:
    """Create test database engine with all tables."""
    engine = create_engine_from_settings(test_settings)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create test session factory."""
    return create_session_factory(engine)


@pytest.fixture
def orders(session_factory: async_sessionmaker[AsyncSession]) -> OrderRepository:
    return OrderRepository(session_factory)


@pytest.fixture
def payments(session_factory: async_sessionmaker[AsyncSession]) -> PaymentRepository:
    return PaymentRepository(session_factory)


@pytest.fixture
def logs(session_factory: async_sessionmaker[AsyncSession]) -> LogRepository:
    return LogRepository(session_factory)


@pytest.fixture
def audit_log(logs: LogRepository) -> AuditLog:
    return AuditLog(logs)


@pytest.fixture
def transaction(session_factory: async_sessionmaker[AsyncSession]) -> TransactionWrapper:
    return TransactionWrapper(session_factory)


@pytest.fixture
def gateway(test_settings: Settings) -> AsyncMock:
    """Mock PayPal gateway; each test sets the results it needs."""
    mock_gateway = AsyncMock(spec=PayPalGateway)
    mock_gateway.settings = test_settings
    mock_gateway.get_access_token.return_value = "access-token"
    return mock_gateway


@pytest.fixture
def adapter() -> AsyncMock:
    """Mock application adapter."""
    return AsyncMock(spec=NullPaymentAdapter)


@pytest.fixture
def service(
    test_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    gateway: AsyncMock,
    adapter: AsyncMock,
) -> CheckoutService:
    """Checkout service wired to the test database and mock gateway."""
    return build_checkout_service(
        test_settings,
        session_factory=session_factory,
        gateway=gateway,
        adapter=adapter,
    )


@pytest.fixture
def sample_cart() -> List[Dict[str, Any]]:
    """Cart with one purchase unit of 100 USD."""
    return [
        {
            "reference_id": "default",
            "amount": {"currency_code": "USD", "value": "100.00"},
        }
    ]


@pytest.fixture
def make_create_result() -> Callable[..., CreateOrderResult]:
    """Build a successful create-order result."""

    def factory(order_id: str = "ORDER-1", http_status: int = 201) -> CreateOrderResult:
        body = {
            "id": order_id,
            "status": "CREATED",
            "links": [
                {
                    "href": f"https://www.sandbox.paypal.com/checkoutnow?token={order_id}",
                    "rel": "approve",
                    "method": "GET",
                }
            ],
        }
        return CreateOrderResult(
            provider_order_id=order_id, raw_body=json.dumps(body), http_status=http_status
        )

    return factory


@pytest.fixture
def make_capture_response() -> Callable[..., Dict[str, Any]]:
    """
    Build a capture response body.

    ``units`` is a list of purchase units, each a list of
    ``(capture_id, value, status)`` tuples.
    """

    def factory(
        order_id: str = "ORDER-1",
        units: Optional[List[List[Tuple[str, str, str]]]] = None,
        currency: str = "USD",
        payer_id: str = "PAYER-1",
    ) -> Dict[str, Any]:
        if units is None:
            units = [[("CAPTURE-1", "100.00", "COMPLETED")]]
        purchase_units = []
        for index, captures in enumerate(units):
            purchase_units.append(
                {
                    "reference_id": f"unit-{index}",
                    "payments": {
                        "captures": [
                            {
                                "id": capture_id,
                                "status": status,
                                "amount": {"currency_code": currency, "value": value},
                                "create_time": "2024-05-01T10:15:30Z",
                            }
                            for capture_id, value, status in captures
                        ]
                    },
                }
            )
        return {
            "id": order_id,
            "status": "COMPLETED",
            "payer": {"payer_id": payer_id},
            "purchase_units": purchase_units,
        }

    return factory


@pytest.fixture
def make_capture_result(
    make_capture_response: Callable[..., Dict[str, Any]],
) -> Callable[..., CaptureOrderResult]:
    """Build a successful capture result."""

    def factory(http_status: int = 201, **kwargs: Any) -> CaptureOrderResult:
        return CaptureOrderResult(
            raw_body=json.dumps(make_capture_response(**kwargs)), http_status=http_status
        )

    return factory
