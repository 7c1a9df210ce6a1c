# backend/core/errors.py
# Error kinds raised across the bridge

from typing import Optional


class BridgeError(Exception):
    """Base error - message is safe to show to the caller"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BridgeError):
    """Bad caller input (amount, phone, payment method, missing field)"""


class GatewayError(BridgeError):
    """Pelecard call failed or returned nothing usable"""

    def __init__(self, message: str, body: Optional[str] = None):
        super().__init__(message)
        self.body = body


class AccountingError(BridgeError):
    """Summit returned a failure status or an incomplete success"""


class StorageError(BridgeError):
    """Scratch store read/write failure - always recovered locally"""
