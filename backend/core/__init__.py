# backend/core/__init__.py
# Config, errors, logging

from .config import Settings, get_settings
from .errors import (
    BridgeError,
    ValidationError,
    GatewayError,
    AccountingError,
    StorageError
)
from .log import configure_logging

__all__ = [
    "Settings",
    "get_settings",
    "BridgeError",
    "ValidationError",
    "GatewayError",
    "AccountingError",
    "StorageError",
    "configure_logging"
]
