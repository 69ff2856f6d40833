"""
Tests for WithdrawalService.

These tests verify that:
- A withdrawal deducts the sub-ledger and writes the row together
- Refused withdrawals leave the ledger and the history untouched
- Withdrawal rows are append-only and reversals are one-shot
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.files.storage import default_storage
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone

from aid.exceptions import ImmutableRecordError
from aid.ledger.services import SubLedgerService
from aid.models import PartnerSchoolBudget, PartnerSchoolBudgetWithdrawal
from aid.services import WithdrawalService
from aid.state_machines import SubLedgerStatus, WithdrawalEntryType
from core.exceptions import ConflictError, NotFoundError, ValidationError


def _record(**overrides):
    params = {
        "amount": Decimal("2500.00"),
        "purpose": "Learning materials",
        "proof_document_path": "budget_withdrawals/proof.pdf",
        "withdrawal_date": timezone.now(),
    }
    params.update(overrides)
    return WithdrawalService.record(**params)


class TestStoreProofDocument:
    """Proof document validation and storage."""

    def test_stores_pdf(self, proof_pdf):
        path = WithdrawalService.store_proof_document(proof_pdf)

        assert path.startswith("budget_withdrawals/")
        assert path.endswith(".pdf")
        assert default_storage.exists(path)

    def test_rejects_disallowed_extension(self):
        upload = SimpleUploadedFile("script.exe", b"MZ", content_type="application/octet-stream")

        with pytest.raises(ValidationError) as exc_info:
            WithdrawalService.store_proof_document(upload)

        assert exc_info.value.error_code == "INVALID_DOCUMENT"

    def test_rejects_oversized_file(self, settings):
        settings.AID_PROOF_MAX_UPLOAD_MB = 1
        upload = SimpleUploadedFile(
            "big.pdf", b"0" * (1024 * 1024 + 1), content_type="application/pdf"
        )

        with pytest.raises(ValidationError):
            WithdrawalService.store_proof_document(upload)


class TestRecord:
    """Recording withdrawals."""

    def test_records_against_school_current_budget(self, school_budget, user):
        result = _record(school_id=42, recorded_by=user, notes="Grade 7 modules")

        assert result.success
        withdrawal = result.data
        assert withdrawal.partner_school_budget_id == school_budget.id
        assert withdrawal.entry_type == WithdrawalEntryType.WITHDRAWAL
        assert withdrawal.available_after == Decimal("47500.00")
        assert withdrawal.recorded_by == user

        budget = PartnerSchoolBudget.objects.get(pk=school_budget.pk)
        assert budget.disbursed_amount == Decimal("2500.00")

    def test_records_against_budget_id(self, school_budget):
        result = _record(budget_id=school_budget.id)

        assert result.success
        assert result.data.school_id == 42

    def test_insufficient_funds_leaves_everything_unchanged(self, small_budget):
        """A PHP 5,000 withdrawal against PHP 3,000 available is refused."""
        result = _record(budget_id=small_budget.id, amount=Decimal("5000"))

        assert not result.success
        assert result.error_code == "INSUFFICIENT_FUNDS"
        assert result.details["available"] == "3000.00"
        assert PartnerSchoolBudget.objects.get(pk=small_budget.pk).disbursed_amount == Decimal(
            "7000.00"
        )
        assert not PartnerSchoolBudgetWithdrawal.objects.exists()

    def test_school_without_budget(self, db):
        result = _record(school_id=999)

        assert not result.success
        assert result.error_code == "BUDGET_NOT_FOUND"

    def test_withdrawing_everything_depletes(self, small_budget):
        result = _record(budget_id=small_budget.id, amount=Decimal("3000"))

        assert result.success
        assert result.data.available_after == Decimal("0.00")
        assert PartnerSchoolBudget.objects.get(pk=small_budget.pk).status == SubLedgerStatus.DEPLETED

    @pytest.mark.parametrize("amount", ["0", "-5", "abc"])
    def test_invalid_amount(self, school_budget, amount):
        result = _record(budget_id=school_budget.id, amount=amount)

        assert not result.success
        assert result.error_code == "INVALID_AMOUNT"

    def test_missing_fields(self, school_budget):
        result = _record(budget_id=school_budget.id, purpose="", proof_document_path=None)

        assert not result.success
        assert result.error_code == "VALIDATION_ERROR"
        assert set(result.errors) == {"purpose", "proof_document_path"}

    def test_requires_budget_or_school(self, db):
        result = _record()

        assert not result.success
        assert result.error_code == "VALIDATION_ERROR"


class TestImmutability:
    """Withdrawal rows are append-only."""

    def test_update_is_refused(self, school_budget):
        withdrawal = _record(budget_id=school_budget.id).data
        withdrawal.amount = Decimal("1.00")

        with pytest.raises(ImmutableRecordError):
            withdrawal.save()

    def test_delete_is_refused(self, school_budget):
        withdrawal = _record(budget_id=school_budget.id).data

        with pytest.raises(ImmutableRecordError):
            withdrawal.delete()

        assert PartnerSchoolBudgetWithdrawal.objects.filter(pk=withdrawal.pk).exists()


class TestHistory:
    """Read-only withdrawal history."""

    def test_newest_first(self, school_budget):
        now = timezone.now()
        older = _record(budget_id=school_budget.id, withdrawal_date=now - timedelta(days=2)).data
        newer = _record(budget_id=school_budget.id, withdrawal_date=now).data

        assert list(WithdrawalService.list_for_school(42)) == [newer, older]
        assert list(WithdrawalService.list_for_school(7)) == []

    def test_get_unknown(self, db):
        with pytest.raises(NotFoundError) as exc_info:
            WithdrawalService.get(424242)

        assert exc_info.value.error_code == "WITHDRAWAL_NOT_FOUND"


class TestReverse:
    """Correcting withdrawals with reversal rows."""

    def test_reversal_refunds_and_appends(self, school_budget, user):
        original = _record(budget_id=school_budget.id).data

        reversal = WithdrawalService.reverse(original.id, "Entered twice", recorded_by=user)

        assert reversal.entry_type == WithdrawalEntryType.REVERSAL
        assert reversal.reverses_id == original.id
        assert reversal.amount == original.amount
        assert reversal.notes == "Entered twice"
        assert reversal.available_after == Decimal("50000.00")
        assert SubLedgerService.get(school_budget.id).disbursed_amount == Decimal("0.00")
        # The original row is unchanged
        assert PartnerSchoolBudgetWithdrawal.objects.get(pk=original.pk).amount == Decimal("2500.00")

    def test_second_reversal_is_refused(self, school_budget):
        original = _record(budget_id=school_budget.id).data
        WithdrawalService.reverse(original.id, "Entered twice")

        with pytest.raises(ConflictError) as exc_info:
            WithdrawalService.reverse(original.id, "Again")

        assert exc_info.value.error_code == "ALREADY_REVERSED"
        assert SubLedgerService.get(school_budget.id).disbursed_amount == Decimal("0.00")

    def test_reversal_rows_cannot_be_reversed(self, school_budget):
        original = _record(budget_id=school_budget.id).data
        reversal = WithdrawalService.reverse(original.id, "Entered twice")

        with pytest.raises(ConflictError) as exc_info:
            WithdrawalService.reverse(reversal.id, "Undo the undo")

        assert exc_info.value.error_code == "REVERSAL_NOT_ALLOWED"

    def test_reason_is_required(self, school_budget):
        original = _record(budget_id=school_budget.id).data

        with pytest.raises(ValidationError):
            WithdrawalService.reverse(original.id, "  ")

    def test_unknown_withdrawal(self, db):
        with pytest.raises(NotFoundError):
            WithdrawalService.reverse(424242, "Missing")
