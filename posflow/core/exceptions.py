"""
Domain error taxonomy

Every failure a service can report is one of these types. They describe
invalid requests, not transient faults, so nothing here is retried.
``ConcurrentUpdate`` is raised only after a storage-level race has already
been retried.
"""

from typing import Any, Dict, Optional


class PosflowError(Exception):
    """Base class for domain errors"""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"error": self.code, "detail": self.message}
        if self.context:
            data["context"] = {k: str(v) for k, v in self.context.items()}
        return data


class ValidationError(PosflowError):
    """Malformed input"""
    status_code = 422
    code = "validation_error"


class InvalidConfiguration(PosflowError):
    """A size or modifier selection the product does not offer"""
    status_code = 422
    code = "invalid_configuration"


class IllegalTransition(PosflowError):
    """Rejected state move"""
    status_code = 409
    code = "illegal_transition"

    def __init__(
        self,
        message: str,
        current: Optional[str] = None,
        target: Optional[str] = None,
        **context: Any
    ):
        super().__init__(message, **context)
        self.current = current
        self.target = target


class TableNotAvailable(PosflowError):
    status_code = 409
    code = "table_not_available"


class SessionAlreadyOpen(PosflowError):
    status_code = 409
    code = "session_already_open"


class SessionClosed(PosflowError):
    status_code = 409
    code = "session_closed"


class CouponInvalid(PosflowError):
    status_code = 422
    code = "coupon_invalid"


class CouponExhausted(PosflowError):
    status_code = 409
    code = "coupon_exhausted"


class NotFound(PosflowError):
    status_code = 404
    code = "not_found"


class ConcurrentUpdate(PosflowError):
    """Another process claimed the same unique value first"""
    status_code = 409
    code = "concurrent_update"
