"""
Pydantic schemas for API request/response models.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CreateOrderRequest(BaseModel):
    """Request schema for creating a PayPal order from the cart."""

    cart: List[Dict[str, Any]] = Field(
        ..., min_length=1, description="Purchase units in PayPal's JSON shape"
    )
    discount_code: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("discount_code", "discountCode"),
        description="Discount code applied by the checkout page",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "cart": [{"amount": {"currency_code": "USD", "value": "100.00"}}],
                    "discount_code": None,
                }
            ]
        }
    }


class CreateOrderResponse(BaseModel):
    """PayPal's create-order response, passed through to the checkout page."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., description="PayPal order ID")
    status: Optional[str] = Field(default=None, description="PayPal order status")


class CaptureOrderRequest(BaseModel):
    """Request schema for capturing an approved order."""

    order_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("order_id", "orderId", "orderID"),
        description="PayPal order ID approved by the payer",
    )


class CaptureOrderResponse(BaseModel):
    """PayPal's capture response, returned once payments are stored."""

    model_config = ConfigDict(extra="allow")

    id: Optional[str] = Field(default=None, description="PayPal order ID")
    status: Optional[str] = Field(default=None, description="PayPal order status")


class LogEntryResponse(BaseModel):
    """One audit log row."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Log row ID")
    request_type: str = Field(..., description="Kind of PayPal call")
    request_data: str = Field(..., description="Serialized request")
    date_request: datetime = Field(..., description="When the request was logged")
    response_data: Optional[str] = Field(default=None, description="Response or error body")
    response_status: int = Field(..., description="HTTP status (500 until a response arrives)")
    date_response: Optional[datetime] = Field(default=None, description="When the outcome was logged")


class ReplayResponse(BaseModel):
    """Result of replaying a capture log row."""

    log_id: int = Field(..., description="Replayed log row ID")
    order_id: int = Field(..., description="Internal order ID")
    created_payment_ids: List[int] = Field(..., description="Payments created by the replay")
    already_applied: bool = Field(..., description="True when nothing was left to apply")


class HealthCheckResponse(BaseModel):
    """Response schema for health check."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")


class ErrorResponse(BaseModel):
    """Error body returned by the checkout endpoints."""

    error: str = Field(..., description="Error category")
    message: str = Field(..., description="Human readable message")
    log_id: Optional[int] = Field(default=None, description="Audit log row for reconciliation")
    provider_status: Optional[int] = Field(default=None, description="HTTP status from PayPal")
    provider_body: Optional[str] = Field(default=None, description="Error body from PayPal")
