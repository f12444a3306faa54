"""
Custom Exception Classes for the data layer.

This module defines the exception hierarchy shared by the client-side data
layer and the reference remote store. Most of these never cross the data
layer boundary: transport failures, malformed responses and local storage
faults are recovered internally and degrade to "no data". Checkout failures
are the exception, they are surfaced to the caller with a readable message.

Key Components:
- `DataLayerError`: The base exception class. It carries a message, an error
  code and an optional details dictionary.
- Specific Exception Classes: `LocalStorageError`, `RemoteCallError`,
  `PayloadValidationError`, `UnknownActionError`, `CheckoutError` and
  `DatabaseConnectionError`.
- `to_error_response`: Maps a `DataLayerError` to a FastAPI `JSONResponse`
  for the remote action endpoint.
"""

from typing import Optional, Dict, Any
from fastapi.responses import JSONResponse


class DataLayerError(Exception):
    """Base exception class for the data layer"""

    def __init__(
        self,
        message: str,
        error_code: str = "DATA_LAYER_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class LocalStorageError(DataLayerError):
    """Raised by a storage backend when a read or write cannot be completed"""

    def __init__(self, operation: str, key: str, reason: str):
        super().__init__(
            f"Local storage {operation} failed for '{key}': {reason}",
            "LOCAL_STORAGE_ERROR",
            {"operation": operation, "key": key, "reason": reason},
        )


class RemoteCallError(DataLayerError):
    """Raised when a remote action does not produce a usable response"""

    def __init__(
        self,
        action: str,
        reason: str,
        status: Optional[int] = None,
        server_message: Optional[str] = None,
    ):
        self.action = action
        self.reason = reason
        self.status = status
        self.server_message = server_message
        super().__init__(
            f"Remote action '{action}' failed: {reason}",
            "REMOTE_CALL_ERROR",
            {"action": action, "reason": reason, "status": status},
        )


class PayloadValidationError(DataLayerError):
    """Raised when an action payload does not match its schema"""

    def __init__(self, action: str, reason: str):
        super().__init__(
            f"Invalid payload for action '{action}': {reason}",
            "VALIDATION_ERROR",
            {"action": action, "reason": reason},
        )


class UnknownActionError(DataLayerError):
    """Raised when the dispatcher receives an action it does not handle"""

    def __init__(self, action: str):
        super().__init__(
            f"Unknown action: {action}",
            "UNKNOWN_ACTION",
            {"action": action},
        )


class CheckoutError(DataLayerError):
    """Raised when a checkout session cannot be created"""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message, "CHECKOUT_ERROR", {"status": status})


class DatabaseConnectionError(DataLayerError):
    """Raised when database operations fail"""

    def __init__(self, operation: str, reason: str):
        super().__init__(
            f"Database operation '{operation}' failed: {reason}",
            "DATABASE_ERROR",
            {"operation": operation, "reason": reason},
        )


def error_status_code(exc: DataLayerError) -> int:
    """HTTP status used when a DataLayerError leaves the action endpoint"""

    status_code_map = {
        "VALIDATION_ERROR": 400,
        "UNKNOWN_ACTION": 400,
        "CHECKOUT_ERROR": 500,
        "DATABASE_ERROR": 500,
    }

    if isinstance(exc, CheckoutError) and exc.status:
        return exc.status
    return status_code_map.get(exc.error_code, 500)


def to_error_response(exc: DataLayerError) -> JSONResponse:
    """Convert DataLayerError to a JSON error response for the action endpoint.

    The body keeps `error` at the top level because the checkout caller reads
    the message from there.
    """
    return JSONResponse(
        status_code=error_status_code(exc),
        content={
            "error": exc.message,
            "error_code": exc.error_code,
            "details": exc.details,
        },
    )
