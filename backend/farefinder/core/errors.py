from enum import Enum
from typing import Optional

class ErrorKind(str, Enum):
    VALIDATION = "validation"
    CLIENT = "client"  # 4xx, not found, malformed payload
    TRANSIENT = "transient"  # connectivity, timeout, 5xx
    PERMISSION = "permission"  # geolocation denied / unavailable

class FareServiceError(Exception):
    """Base error for everything the fare service layer raises.

    `kind` is assigned once, where the error is created (the remote
    client or a parameter validator); nothing downstream re-parses the
    message to decide what happened.
    """
    kind: ErrorKind = ErrorKind.CLIENT

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "status": self.status,
            "error": self.code,
            "message": self.message,
        }

class ValidationError(FareServiceError):
    kind = ErrorKind.VALIDATION

class NotFoundOrClientError(FareServiceError):
    kind = ErrorKind.CLIENT

class TransientNetworkError(FareServiceError):
    kind = ErrorKind.TRANSIENT

class LocationPermissionError(FareServiceError):
    kind = ErrorKind.PERMISSION

# Statuses outside 5xx that are still worth another attempt
TRANSIENT_STATUSES = {408, 425, 429}
PERMISSION_STATUSES = {401, 403}
LOCATION_HINTS = ("location", "permission", "geolocation")

def classify_http_error(status: int, message: str, code: Optional[str] = None, location_scoped: bool = False) -> FareServiceError:
    """
    Map a non-2xx response to the error taxonomy.
    location_scoped marks endpoints that depend on the caller's position
    (closest / nearby airport).
    """
    if location_scoped:
        hint = f"{code or ''} {message or ''}".lower()
        if status in PERMISSION_STATUSES or any(h in hint for h in LOCATION_HINTS):
            return LocationPermissionError(message, status=status, code=code)

    if status >= 500 or status in TRANSIENT_STATUSES:
        return TransientNetworkError(message, status=status, code=code)

    return NotFoundOrClientError(message, status=status, code=code)
