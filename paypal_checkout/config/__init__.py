"""Configuration package for the PayPal checkout integration."""
from .settings import Mode, Settings, get_settings

__all__ = ["Mode", "Settings", "get_settings"]
