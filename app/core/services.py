"""
Service layer base classes.

Aid services are classes of classmethods holding no state. They return a
ServiceResult for refusals a caller is expected to handle (insufficient
funds, no funding source, nothing to revert) and raise
core.exceptions errors when the operation has to abort and roll back.

Usage:
    from core.services import BaseService, ServiceResult

    class WithdrawalService(BaseService):
        @classmethod
        def record(cls, school_id, amount, ...) -> ServiceResult[PartnerSchoolBudgetWithdrawal]:
            validation = cls.validate_required(purpose=purpose)
            if validation:
                return validation
            with cls.atomic():
                ...
            return ServiceResult.success(withdrawal)

    # In a view
    result = WithdrawalService.record(...)
    if not result.success:
        return failure_response(result)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    Attributes:
        success: Whether the operation went through
        data: Payload on success
        error: Human-readable failure message
        error_code: Stable failure code, e.g. "INSUFFICIENT_FUNDS"
        errors: Field-level messages for missing or invalid inputs
        details: Failure context such as available and required amounts
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = None
    details: dict[str, Any] | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
        details: dict[str, Any] | None = None,
    ) -> ServiceResult[T]:
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
            details=details,
        )

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Failure carrying an application error's message, code and details.

        Other exceptions fall back to str(exc) and the class name as code.
        """
        code = error_code or getattr(exc, "error_code", None)
        return cls(
            success=False,
            error=getattr(exc, "message", None) or str(exc),
            error_code=code or exc.__class__.__name__.upper(),
            details=getattr(exc, "details", None) or None,
        )

    def to_response(self) -> dict[str, Any]:
        """Response body; failures omit empty errors and details."""
        if self.success:
            return {"success": True, "data": self.data}

        body: dict[str, Any] = {"success": False, "error": self.error}
        if self.error_code:
            body["error_code"] = self.error_code
        if self.errors:
            body["errors"] = self.errors
        if self.details:
            body["details"] = self.details
        return body


class BaseService:
    """Shared helpers for aid services."""

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named after the concrete service, e.g. aid.services.grant_service.GrantService."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Run a block in one database transaction.

        Ledger writes and the record that justifies them (withdrawal,
        disbursement, reversal) must commit or roll back together.
        """
        with transaction.atomic():
            yield

    @classmethod
    def validate_required(cls, **kwargs) -> ServiceResult | None:
        """
        Failure result naming every argument that is None or blank.

        Returns None when all are present.
        """
        errors = {
            name: ["This field is required."]
            for name, value in kwargs.items()
            if value is None or (isinstance(value, str) and not value.strip())
        }
        if errors:
            return ServiceResult.failure(
                "Required fields missing",
                error_code="VALIDATION_ERROR",
                errors=errors,
            )
        return None
