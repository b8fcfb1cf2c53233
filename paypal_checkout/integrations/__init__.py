"""External integrations for the PayPal checkout flow."""
from .paypal_client import (
    CaptureOrderResult,
    CreateOrderResult,
    OrderDetailsResult,
    PayPalGateway,
    ProviderApiError,
    ProviderError,
    TransportError,
    UnreadableResponseError,
)

__all__ = [
    "PayPalGateway",
    "CreateOrderResult",
    "CaptureOrderResult",
    "OrderDetailsResult",
    "ProviderError",
    "ProviderApiError",
    "TransportError",
    "UnreadableResponseError",
]
