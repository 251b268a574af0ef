"""
Error taxonomy shared by the services and the HTTP layer.

Verification outcomes (unknown, revoked, expired) are results, not errors;
only malformed input raises here.
"""
from typing import Optional


class LicensaError(Exception):
    """Base class for every error the services raise on purpose."""

    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__


class ValidationError(LicensaError):
    """Caller input is wrong; ``field`` names the offending wire field."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, code="VALIDATION_ERROR")
        self.field = field


class NotFound(LicensaError):
    status_code = 404

    def __init__(self, message: str = "License not found"):
        super().__init__(message, code="NOT_FOUND")


class Unauthorized(LicensaError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED")


class StorageError(LicensaError):
    """
    The store is unreachable or rejected a write.

    The message is logged; callers only ever see a generic failure.
    """

    status_code = 503
    retryable = True

    def __init__(self, message: str = "Storage unavailable"):
        super().__init__(message, code="STORAGE_ERROR")


class DuplicateKeyError(StorageError):
    """A generated license key collided with an existing one."""

    def __init__(self, message: str = "License key already exists"):
        super().__init__(message)
        self.code = "DUPLICATE_KEY"


class NotificationError(LicensaError):
    """Email or chat delivery failed. Swallowed wherever it is a side effect."""

    status_code = 400

    def __init__(self, message: str, channel: Optional[str] = None):
        super().__init__(message, code="NOTIFICATION_ERROR")
        self.channel = channel
