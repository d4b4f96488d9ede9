"""Error hierarchy for the portfolio service.

Services raise these; the API layer turns them into error envelopes with
the status code carried by each class.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    INSUFFICIENT_QUANTITY = "INSUFFICIENT_QUANTITY"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"


class PortfolioError(Exception):
    """Base typed exception converted to API error responses."""

    status_code = 500

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_error_payload(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PortfolioError):
    status_code = 400

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.VALIDATION_ERROR, message, details=details)


class NotFoundError(PortfolioError):
    status_code = 404

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.NOT_FOUND, message, details=details)


class InsufficientQuantity(PortfolioError):
    status_code = 409

    def __init__(self, instrument_id: int, held: float, requested: float) -> None:
        super().__init__(
            ErrorCode.INSUFFICIENT_QUANTITY,
            f"Cannot sell {requested:g} units of instrument {instrument_id}: only {held:g} held",
            details={"instrument_id": instrument_id, "held": held, "requested": requested},
        )
        self.held = held
        self.requested = requested


class PersistenceError(PortfolioError):
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.PERSISTENCE_ERROR, message, details=details)


class UpstreamError(PortfolioError):
    """A market data provider failed or returned unusable data."""

    status_code = 502

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(ErrorCode.UPSTREAM_ERROR, message, details=details)
