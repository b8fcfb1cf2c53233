"""PayPal checkout integration: order creation, payment capture and audit trail."""

__version__ = "0.1.0"
