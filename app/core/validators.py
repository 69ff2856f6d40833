"""
Upload validators for proof documents and receipts.

Withdrawal proof documents and manual disbursement receipts are checked
against AID_PROOF_ALLOWED_EXTENSIONS and AID_PROOF_MAX_UPLOAD_MB before
they reach storage.

Usage:
    from core.validators import validate_upload

    validate_upload(
        uploaded_file,
        allowed_extensions=settings.AID_PROOF_ALLOWED_EXTENSIONS,
        max_mb=settings.AID_PROOF_MAX_UPLOAD_MB,
    )

The factories also work as model or serializer field validators:

    receipt = serializers.FileField(validators=[validate_file_size(max_mb=5)])
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from django.core.files import File


def validate_file_size(max_mb: int = 10):
    """Validator rejecting files larger than max_mb megabytes."""

    def validator(file: File):
        if file.size > max_mb * 1024 * 1024:
            raise ValidationError(
                f"File size must be less than {max_mb}MB. "
                f"Current size: {file.size / 1024 / 1024:.1f}MB",
                code="file_too_large",
            )

    return validator


def validate_file_extension(allowed_extensions: Iterable[str]):
    """Validator rejecting files whose extension (case-insensitive, no dot) is not allowed."""
    allowed = [ext.lower().lstrip(".") for ext in allowed_extensions]

    def validator(file: File):
        ext = os.path.splitext(file.name)[1].lower().lstrip(".")
        if ext not in allowed:
            raise ValidationError(
                f"File extension '{ext}' is not allowed. Allowed: {', '.join(allowed)}",
                code="invalid_extension",
            )

    return validator


def validate_upload(file: File, allowed_extensions: Iterable[str], max_mb: int) -> None:
    """
    Run the extension and size checks on one upload.

    Raises:
        django.core.exceptions.ValidationError: With every failed check
            in .messages, extension first
    """
    messages = []
    for check in (validate_file_extension(allowed_extensions), validate_file_size(max_mb)):
        try:
            check(file)
        except ValidationError as e:
            messages.extend(e.messages)
    if messages:
        raise ValidationError(messages)
