"""
Core infrastructure for the school aid service.

Holds the pieces aid builds on and nothing domain specific:

- core.models / core.model_mixins: BaseModel timestamps, UUID keys, soft delete
- core.managers: SoftDeleteManager and SoftDeleteQuerySet
- core.services: BaseService and ServiceResult
- core.exceptions: error hierarchy mapped to HTTP statuses by aid.views
- core.circuit_breaker: cache-backed breaker around PayMongo calls
- core.validators: upload checks for proof documents and receipts
- core.views: the /health/ probe

Models and mixins are not re-exported here; importing them before the app
registry is ready raises AppRegistryNotReady.
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from .services import BaseService, ServiceResult
from .validators import validate_file_extension, validate_file_size, validate_upload

__all__ = [
    "BaseService",
    "ServiceResult",
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "ExternalServiceError",
    "validate_file_size",
    "validate_file_extension",
    "validate_upload",
]
