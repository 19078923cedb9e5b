# errors.py
from enum import Enum
from typing import Optional


class DenialReason(str, Enum):
    NOT_MEMBER = "NOT_MEMBER"
    NOT_OWNER = "NOT_OWNER"
    UNAUTHENTICATED = "UNAUTHENTICATED"


class TaskboardError(Exception):
    """Base class for every error the service layer raises on purpose."""

    code = "ERROR"
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class Unauthenticated(TaskboardError):
    code = "UNAUTHENTICATED"


class Forbidden(TaskboardError):
    code = "FORBIDDEN"

    def __init__(self, reason: DenialReason, message: str = ""):
        super().__init__(message or reason.value)
        self.reason = reason


class NotFound(TaskboardError):
    code = "NOT_FOUND"


class ValidationError(TaskboardError):
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConflictError(TaskboardError):
    # uniqueness violations; retried internally, not meant for callers
    code = "CONFLICT"


class TransactionFailure(TaskboardError):
    code = "TRANSACTION_FAILURE"
    retryable = True
