"""
Receipt generation for disbursements.

Receipts are rendered from the aid/receipt.html template and written
with Django's default storage under AID_RECEIPT_DIR. A disbursement's
receipt_path is filled once; later calls return the existing path.

Usage:
    from aid.services import ReceiptService

    path = ReceiptService.generate(disbursement)
    with ReceiptService.open_receipt(disbursement) as handle:
        body = handle.read()
"""

from __future__ import annotations

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.template.loader import render_to_string
from django.utils import timezone
from django.utils.text import get_valid_filename

from aid.locks import lock_row
from aid.models import AidDisbursement
from core.exceptions import NotFoundError
from core.services import BaseService

RECEIPT_TEMPLATE = "aid/receipt.html"


class ReceiptService(BaseService):
    """Render, store and open disbursement receipts."""

    @classmethod
    def render(cls, disbursement: AidDisbursement) -> str:
        application = disbursement.application
        return render_to_string(
            RECEIPT_TEMPLATE,
            {
                "disbursement": disbursement,
                "application": application,
                "transaction": disbursement.payment_transaction,
                "receipt_number": disbursement.reference_number or disbursement.application_number,
                "account_number": disbursement.account_number
                or application.wallet_account_number
                or "N/A",
                "generated_at": timezone.now(),
            },
        )

    @classmethod
    def generate(cls, disbursement: AidDisbursement) -> str:
        """
        Render and store the receipt, then fill receipt_path once.

        Returns:
            The disbursement's receipt path (existing or new)
        """
        if disbursement.receipt_path:
            return disbursement.receipt_path

        reference = get_valid_filename(
            disbursement.reference_number or disbursement.application_number
        )
        name = f"{settings.AID_RECEIPT_DIR}/receipt_{reference}.html"
        path = default_storage.save(name, ContentFile(cls.render(disbursement).encode("utf-8")))

        with cls.atomic():
            locked = lock_row(AidDisbursement, disbursement.pk, error_code="DISBURSEMENT_NOT_FOUND")
            attached = locked.attach_receipt(path)

        if not attached:
            # Another worker filled it first
            default_storage.delete(path)
            return locked.receipt_path

        cls.get_logger().info(
            "Receipt generated",
            extra={"disbursement_id": disbursement.pk, "receipt_path": path},
        )
        return path

    @classmethod
    def open_receipt(cls, disbursement: AidDisbursement):
        """
        Open the stored receipt for reading.

        Raises:
            NotFoundError: No receipt path, or the file is gone from storage
        """
        path = disbursement.receipt_path
        if not path or not default_storage.exists(path):
            raise NotFoundError(
                "Receipt not found",
                error_code="RECEIPT_NOT_FOUND",
                details={"disbursement_id": disbursement.pk},
            )
        return default_storage.open(path, "rb")
