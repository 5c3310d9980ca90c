# Overview: Domain error taxonomy shared by services and routes.

"""
Deposit engine errors.

Every error carries a human-readable message and a structured `details`
dict so the point-of-sale UI can explain the problem to front-line staff
(item name, requested vs. available, remaining balance, ...).

Only ContentionError is retryable. Everything else needs the caller to
change the request.
"""

from __future__ import annotations


class DepositError(Exception):
    """Base class for deposit order engine errors."""
    http_status = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "error_type": type(self).__name__,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationError(DepositError):
    """Malformed input: non-positive amounts or quantities, missing references, wrong types."""
    http_status = 400


class NotFoundError(DepositError):
    """Referenced order, item, product, sale or settlement does not exist."""
    http_status = 404


class InsufficientStockError(DepositError):
    """
    Requested quantity exceeds what is available.

    details["items"] lists every offending product with requested and
    available quantities.
    """
    http_status = 409


class OverpaymentError(DepositError):
    """Payment would take amount paid beyond the payable total (plus tolerance)."""
    http_status = 409


class InvalidStateError(DepositError):
    """Operation not allowed in the order's (or record's) current status."""
    http_status = 409


class ContentionError(DepositError):
    """Lock wait or optimistic version check failed after retries. Safe to retry."""
    http_status = 503
    retryable = True
