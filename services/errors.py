"""
Error taxonomy for portfolio operations.
Each error carries a stable kind string and an HTTP-style status code so
request handlers and the UI can report it without exposing internals.
"""


class PortfolioError(Exception):
    """Base class for all errors raised by the portfolio services."""

    kind = "portfolio_error"
    status_code = 500
    default_message = "Portfolio operation failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.kind, "message": self.message}


class Unauthenticated(PortfolioError):
    kind = "unauthenticated"
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(PortfolioError):
    kind = "forbidden"
    status_code = 403
    default_message = "Forbidden"


class NotFound(PortfolioError):
    kind = "not_found"
    status_code = 404
    default_message = "Transaction not found"


class InvalidInput(PortfolioError):
    kind = "invalid_input"
    status_code = 400
    default_message = "Invalid input"


class InsufficientBalance(PortfolioError):
    kind = "insufficient_balance"
    status_code = 400
    default_message = "Insufficient balance"


class InvalidState(PortfolioError):
    kind = "invalid_state"
    status_code = 409
    default_message = "Portfolio is in an inconsistent state"


class StorageFailure(PortfolioError):
    kind = "storage_failure"
    status_code = 503
    default_message = "Storage is temporarily unavailable, please retry"


class ConcurrentUpdateError(Exception):
    """
    Raised inside a unit of work when a holding changed underneath it.
    Internal only: the reconciler retries, then reports StorageFailure.
    """
