"""Tests for ReceiptService."""

import pytest
from django.core.files.storage import default_storage

from aid.models import AidDisbursement
from aid.services import ReceiptService
from aid.tests.factories import AidDisbursementFactory, PaymentTransactionFactory
from core.exceptions import NotFoundError


class TestRender:
    def test_includes_disbursement_details(self, db):
        disbursement = AidDisbursementFactory(reference_number="LB-000777")

        html = ReceiptService.render(disbursement)

        assert "LB-000777" in html
        assert disbursement.application.student_name in html
        assert "PHP 5000.00" in html

    def test_includes_transaction_reference(self, db):
        txn = PaymentTransactionFactory()
        disbursement = AidDisbursementFactory(application=txn.application, payment_transaction=txn)

        assert txn.transaction_reference in ReceiptService.render(disbursement)


class TestGenerate:
    def test_writes_receipt_and_records_path(self, db):
        disbursement = AidDisbursementFactory(reference_number="LB-000777")

        path = ReceiptService.generate(disbursement)

        assert path.startswith("receipts/receipt_LB-000777")
        assert path.endswith(".html")
        assert default_storage.exists(path)
        assert AidDisbursement.objects.get(pk=disbursement.pk).receipt_path == path

    def test_is_idempotent(self, db):
        disbursement = AidDisbursementFactory()
        first = ReceiptService.generate(disbursement)

        second = ReceiptService.generate(AidDisbursement.objects.get(pk=disbursement.pk))

        assert second == first

    def test_concurrent_writer_keeps_first_path(self, db):
        """A stale instance loses to the path already stored."""
        disbursement = AidDisbursementFactory()
        stale = AidDisbursement.objects.get(pk=disbursement.pk)
        first = ReceiptService.generate(disbursement)

        second = ReceiptService.generate(stale)

        assert second == first


class TestOpenReceipt:
    def test_opens_stored_receipt(self, db):
        disbursement = AidDisbursementFactory()
        ReceiptService.generate(disbursement)
        disbursement = AidDisbursement.objects.get(pk=disbursement.pk)

        with ReceiptService.open_receipt(disbursement) as handle:
            body = handle.read()

        assert b"Disbursement Receipt" in body

    def test_missing_path(self, db):
        disbursement = AidDisbursementFactory()

        with pytest.raises(NotFoundError) as exc_info:
            ReceiptService.open_receipt(disbursement)

        assert exc_info.value.error_code == "RECEIPT_NOT_FOUND"

    def test_missing_file(self, db):
        disbursement = AidDisbursementFactory(receipt_path="receipts/gone.html")

        with pytest.raises(NotFoundError):
            ReceiptService.open_receipt(disbursement)
