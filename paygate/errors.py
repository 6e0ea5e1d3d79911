"""
Error hierarchy for the payment flow.

Every error carries a stable error code, a message and optional details,
and knows the HTTP status the API layer answers with.
"""
from typing import Optional, Dict, Any


class PaygateError(Exception):
    """Base exception for all payment flow errors."""

    status_code: int = 500

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class ValidationError(PaygateError):
    """
    Request or notification is malformed.

    Examples:
    - Notification body is not JSON
    - No transaction id in payment_link.reference_id or payment.notes.txid
    - Item is not payable
    """

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("paygate:request:invalid", message, details)


class AuthenticationError(PaygateError):
    """Webhook signature missing or does not match the raw body."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("paygate:webhook:signature_invalid", message, details)


class NotFoundError(PaygateError):
    """Unknown transaction or item."""

    status_code = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("paygate:transaction:not_found", message, details)


class ConflictError(PaygateError):
    """Transaction id already exists."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("paygate:transaction:conflict", message, details)


class ProviderError(PaygateError):
    """
    Payment provider rejected or never answered the payment link request.

    details carries the provider's response body when there is one.
    """

    status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("paygate:provider:error", message, details)


class DeliveryError(PaygateError):
    """
    Consumer callback unreachable or answered with a non-2xx status.

    Recovered inside the lifecycle engine; never reaches the provider.
    """

    status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("paygate:callback:undelivered", message, details)


class SigningKeyError(PaygateError):
    """Proof signing key missing, unreadable or unable to sign."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("paygate:proof:signing_failed", message, details)
