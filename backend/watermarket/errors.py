"""Domain errors raised by services and mapped to HTTP status codes by routers."""

from typing import Optional


class MarketError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = 500

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class NotFoundError(MarketError):
    status_code = 404


class ForbiddenError(MarketError):
    """Viewer is unknown, holds the wrong role, or the trade is not actionable."""

    status_code = 403


class ValidationError(MarketError):
    status_code = 400


class ConflictError(MarketError):
    """A concurrent writer changed the record first; refetch and retry."""

    status_code = 409
