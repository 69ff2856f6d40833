"""
Application error hierarchy.

Services raise these for business failures; aid.views turns them into
JSON bodies with a machine-readable error_code. The class decides the
HTTP status, the code tells clients which failure it was.

Hierarchy:
    BaseApplicationError
    ├── ValidationError       400  bad amounts, dates, uploads
    ├── NotFoundError         404  missing budgets, applications, receipts
    ├── ConflictError         409  duplicates, stale references, bad transitions
    └── ExternalServiceError  502  PayMongo failures and open circuits

Usage:
    from core.exceptions import NotFoundError

    raise NotFoundError(
        f"No active budget for school {school_id}",
        error_code="BUDGET_NOT_FOUND",
        details={"school_id": school_id},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base for all domain errors.

    Attributes:
        message: Human-readable description, safe to show to staff
        error_code: Stable code for clients (defaults per subclass)
        details: Extra context such as amounts or ids, JSON-serialisable
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Response body for this error.

        Example:
            {
                "error": "Insufficient school budget",
                "error_code": "INSUFFICIENT_FUNDS",
                "details": {"available": "3000.00", "required": "5000.00"}
            }
        """
        body: dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(message={self.message!r}, "
            f"error_code={self.error_code!r}, details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """Input rejected by a service (as opposed to a DRF serializer)."""

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """A single record or stored file that was expected to exist is missing."""

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    The request clashes with current state.

    Raised for duplicate sub-ledgers, already reversed withdrawals, stale
    lock references and transitions the state machine refuses.
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    A call to the payment provider failed.

    Carry the provider's own error code in details rather than in the
    message; messages reach API clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
