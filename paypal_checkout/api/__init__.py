"""FastAPI application and routes."""
from .main import create_app
from .schemas import (
    CaptureOrderRequest,
    CaptureOrderResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    ReplayResponse,
)

__all__ = [
    "create_app",
    "CreateOrderRequest",
    "CreateOrderResponse",
    "CaptureOrderRequest",
    "CaptureOrderResponse",
    "ReplayResponse",
]
