"""
Error taxonomy for the storefront.

Every failure the cart, session and checkout layers report is a StoreError.
The HTTP layer renders them with their status_code.
"""
from enum import Enum
from typing import Optional


class StoreError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(StoreError):
    status_code = 401

    def __init__(self, message: str = "Sign in required"):
        super().__init__(message)


class Forbidden(StoreError):
    status_code = 403

    def __init__(self, message: str = "Admins only"):
        super().__init__(message)


class ValidationError(StoreError):
    status_code = 422


class NotFound(StoreError):
    status_code = 404


class Conflict(StoreError):
    status_code = 409


class RemoteFailure(StoreError):
    status_code = 502


class AuthErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


class AuthError(RemoteFailure):
    def __init__(self, kind: AuthErrorKind, message: Optional[str] = None):
        super().__init__(message or kind.value.replace("_", " ").capitalize())
        self.kind = kind
        self.status_code = 401 if kind == AuthErrorKind.INVALID_CREDENTIALS else 502


class EmailTaken(AuthError):
    def __init__(self, message: str = "Email already registered"):
        super().__init__(AuthErrorKind.INVALID_CREDENTIALS, message)
        self.status_code = 409


class CheckoutInProgress(StoreError):
    status_code = 409

    def __init__(self, message: str = "A checkout is already in progress"):
        super().__init__(message)


class PartialOrder(StoreError):
    """Order row exists but its items could not be written. Needs manual reconciliation."""

    status_code = 500

    def __init__(self, order_id: str, order_number: str, message: Optional[str] = None):
        super().__init__(message or f"Order {order_number} was created without its items")
        self.order_id = order_id
        self.order_number = order_number
