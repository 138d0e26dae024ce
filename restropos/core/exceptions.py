"""
Exception hierarchy for the order and billing core.

Mirrors the taxonomy the presentation layer reacts to: local validation
failures, HTTP failures grouped by status, transport failures and
payload failures.
"""

from typing import Any, Dict, Optional


class RestroPOSError(Exception):
    """Base error with a user-presentable detail and a machine code"""

    default_detail = "Something went wrong"
    default_error_code = "ERROR"

    def __init__(self, detail: Optional[str] = None, error_code: Optional[str] = None):
        self.detail = detail or self.default_detail
        self.error_code = error_code or self.default_error_code
        super().__init__(self.detail)


class ValidationError(RestroPOSError):
    """Rejected locally before any request was made"""

    default_detail = "Validation failed"
    default_error_code = "VALIDATION_ERROR"


class DuplicateBillError(ValidationError):
    """A bill already exists (or is being generated) for the order"""

    default_detail = "Bill already generated for this order"
    default_error_code = "DUPLICATE_BILL"

    def __init__(
        self,
        order_id: str,
        bill_id: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(detail=detail)
        self.order_id = order_id
        self.bill_id = bill_id


class APIError(RestroPOSError):
    """Base error for non-2xx responses from the order-service"""

    default_error_code = "API_ERROR"

    def __init__(
        self,
        status_code: int,
        detail: Optional[str] = None,
        error_code: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(detail=detail, error_code=error_code)
        self.status_code = status_code
        self.payload = payload or {}


class AuthenticationError(APIError):
    """Session expired or token rejected; the session has been invalidated"""

    default_detail = "Your session has expired. Please login again."
    default_error_code = "AUTH_FAILED"

    def __init__(self, detail: Optional[str] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=401, detail=detail, payload=payload)


class PermissionDeniedError(APIError):
    """Permission denied error"""

    default_detail = "You don't have permission to access this resource"
    default_error_code = "PERMISSION_DENIED"

    def __init__(self, detail: Optional[str] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=403, detail=detail, payload=payload)


class NotFoundError(APIError):
    """Resource not found error"""

    default_detail = "Resource not found"
    default_error_code = "NOT_FOUND"

    def __init__(self, detail: Optional[str] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(status_code=404, detail=detail, payload=payload)


class ConflictError(APIError):
    """Business rule rejection (4xx with a message body)"""

    default_detail = "Request rejected by the server"
    default_error_code = "CONFLICT"

    @property
    def has_unbilled_orders(self) -> bool:
        return bool(self.payload.get("hasUnbilledOrders"))


class ServiceError(APIError):
    """The order-service failed (5xx)"""

    default_detail = "The server could not process the request"
    default_error_code = "SERVICE_ERROR"


class TransportError(RestroPOSError):
    """Network, socket or protocol failure"""

    default_detail = "Connection to the server failed"
    default_error_code = "TRANSPORT_ERROR"


class PayloadError(RestroPOSError):
    """Server payload could not be normalized into the expected shape"""

    default_detail = "Unexpected response from the server"
    default_error_code = "INVALID_PAYLOAD"


class InvoiceDownloadError(RestroPOSError):
    """Invoice download failed; detail holds the recovered message"""

    default_detail = "Failed to download invoice"
    default_error_code = "INVOICE_DOWNLOAD_FAILED"
