"""Error taxonomy shared by the session, booking and payment flows."""

from enum import Enum
from typing import Dict, Optional


class ErrorKind(str, Enum):
    NETWORK_UNREACHABLE = "NetworkUnreachable"
    UNAUTHORIZED = "Unauthorized"
    SESSION_EXPIRED = "SessionExpired"
    VALIDATION_REJECTED = "ValidationRejected"
    PAYMENT_DECLINED = "PaymentDeclined"
    PAYMENT_RECORDING_FAILED = "PaymentRecordingFailed"
    NOT_FOUND = "NotFound"
    UNKNOWN = "Unknown"


class ApiError(Exception):
    """Raised by the REST client for every failed backend call."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str = "",
        status_code: Optional[int] = None,
        field_errors: Optional[Dict[str, str]] = None,
    ):
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value
        self.status_code = status_code
        self.field_errors = field_errors or {}
