"""Tests for payment allocation."""

from datetime import date
from decimal import Decimal

import pytest

from billflow.domain.directory import DirectoryService
from billflow.domain.entities import (
    ContractStatus,
    Document,
    DocumentKind,
    DocumentStatus,
    TransactionType,
)
from billflow.domain.errors import NotFoundError, ValidationError
from billflow.domain.payments import (
    FailureKind,
    PaymentService,
    apply_transaction_effect,
    classify_failure,
    derive_status,
    propose_bulk_payments,
    validate_payment,
)
from billflow.gateway.base import RemoteStoreError, TransactionGateway


class FakeGateway(TransactionGateway):
    """Accepts every transaction except those for the given documents."""

    def __init__(self, reject=None):
        self.reject = reject or {}
        self.saved = []
        self.closed = False

    async def save_transaction(self, transaction):
        error = self.reject.get(transaction.document_id)
        if error is not None:
            raise error
        self.saved.append(transaction)
        return transaction

    async def close(self):
        self.closed = True


def plain_bill(amount="1000", paid="0"):
    return Document(
        id="b",
        kind=DocumentKind.BILL,
        number="BILL-1",
        contact_id="v",
        amount=Decimal(amount),
        paid_amount=Decimal(paid),
        issue_date=date(2024, 1, 1),
    )


class TestPureRules:
    """Tests for status derivation and payment validation."""

    def test_derive_status(self):
        today = date(2024, 6, 1)
        assert derive_status(Decimal("100"), Decimal("0")) == DocumentStatus.UNPAID
        assert derive_status(Decimal("100"), Decimal("40")) == DocumentStatus.PARTIALLY_PAID
        assert derive_status(Decimal("100"), Decimal("99.995")) == DocumentStatus.PAID
        assert derive_status(Decimal("100"), Decimal("40"), date(2024, 5, 1), today) == DocumentStatus.OVERDUE
        assert derive_status(Decimal("100"), Decimal("100"), date(2024, 5, 1), today) == DocumentStatus.PAID

    def test_overpayment_rejected(self):
        reason = validate_payment(plain_bill("1000", "800"), Decimal("250"))
        assert reason == "Payment for #BILL-1 (250.00) exceeds balance due (200.00)."

    def test_payment_within_epsilon_accepted(self):
        assert validate_payment(plain_bill("1000", "800"), Decimal("200.01")) is None

    def test_non_positive_rejected(self):
        assert validate_payment(plain_bill(), Decimal("0")) == "Payment amount must be greater than zero."

    def test_effect_is_clamped(self):
        document = apply_transaction_effect(plain_bill("100", "90"), Decimal("20"))
        assert document.paid_amount == Decimal("100")
        assert document.status == DocumentStatus.PAID
        assert document.version == 2

        reversed_document = apply_transaction_effect(plain_bill("100", "10"), Decimal("20"), reverse=True)
        assert reversed_document.paid_amount == Decimal("0")
        assert reversed_document.status == DocumentStatus.UNPAID

    def test_balance_invariant_over_sequence(self):
        document = plain_bill("500")
        for amount, reverse in [("100", False), ("300", False), ("250", False), ("600", True), ("50", False)]:
            document = apply_transaction_effect(document, Decimal(amount), reverse=reverse)
            assert Decimal("0") <= document.paid_amount <= document.amount

    def test_classify_failure(self):
        assert classify_failure(RemoteStoreError("x", status_code=409)) == FailureKind.CONFLICT
        assert classify_failure(RemoteStoreError("x", status_code=400, code="BILL_LOCKED")) == FailureKind.CONFLICT
        assert classify_failure(RemoteStoreError("x", code="BILL_VERSION_MISMATCH")) == FailureKind.CONFLICT
        assert classify_failure(RemoteStoreError("x", status_code=400, code="PAYMENT_OVERPAYMENT")) == (
            FailureKind.OVERPAYMENT
        )
        assert classify_failure(RemoteStoreError("x", status_code=500)) == FailureKind.UNKNOWN
        assert classify_failure(RemoteStoreError("x", code="PAYMENT_OVERPAYMENT")) == FailureKind.OVERPAYMENT
        assert classify_failure(RemoteStoreError("x", status_code=400)) == FailureKind.UNKNOWN
        assert classify_failure(RuntimeError("socket reset")) == FailureKind.UNKNOWN

    def test_propose_orders_by_due_date(self):
        early = Document("a", DocumentKind.BILL, "A", "v", Decimal("10"), date(2024, 1, 1), due_date=date(2024, 2, 1))
        late = Document("b", DocumentKind.BILL, "B", "v", Decimal("20"), date(2024, 1, 1), due_date=date(2024, 3, 1))
        proposals = propose_bulk_payments([late, early])
        assert [p.document.number for p in proposals] == ["A", "B"]
        assert [p.amount for p in proposals] == [Decimal("10"), Decimal("20")]


class TestApplyPayment:
    """Tests for single payments."""

    def test_partial_then_full(self, temp_db, payment_service, make_bill, sample_data):
        bill = make_bill("1000")
        payment_service.apply_payment(bill.id, Decimal("400"), sample_data["account"])
        stored = temp_db.get_document(bill.id)
        assert stored.paid_amount == Decimal("400")
        assert stored.status == DocumentStatus.PARTIALLY_PAID

        transaction = payment_service.apply_payment(bill.id, Decimal("600"), sample_data["account"])
        stored = temp_db.get_document(bill.id)
        assert stored.paid_amount == Decimal("1000")
        assert stored.status == DocumentStatus.PAID
        assert transaction.transaction_type == TransactionType.EXPENSE
        assert transaction.bill_id == bill.id
        assert transaction.description == f"Payment for Bill #{bill.number}"
        assert transaction.category_id == sample_data["maintenance"]

    def test_overpayment_writes_nothing(self, temp_db, payment_service, make_bill, sample_data):
        bill = make_bill("1000")
        payment_service.apply_payment(bill.id, Decimal("800"), sample_data["account"])

        with pytest.raises(ValidationError, match=r"\(250.00\) exceeds balance due \(200.00\)"):
            payment_service.apply_payment(bill.id, Decimal("250"), sample_data["account"])

        assert temp_db.get_document(bill.id).paid_amount == Decimal("800")
        assert len(temp_db.snapshot().transactions) == 1

    def test_account_required(self, payment_service, make_bill):
        bill = make_bill("100")
        with pytest.raises(ValidationError, match="Please select a payment account."):
            payment_service.apply_payment(bill.id, Decimal("10"), "")

    def test_unknown_document(self, payment_service, sample_data):
        with pytest.raises(NotFoundError):
            payment_service.apply_payment("missing", Decimal("10"), sample_data["account"])

    def test_invoice_payment_is_income(self, payment_service, make_invoice, sample_data):
        invoice = make_invoice("500")
        transaction = payment_service.apply_payment(invoice.id, Decimal("500"), sample_data["account"])
        assert transaction.transaction_type == TransactionType.INCOME
        assert transaction.invoice_id == invoice.id
        assert transaction.bill_id is None

    def test_tenant_rewrite(self, temp_db, payment_service, make_bill, sample_data):
        bill = make_bill(
            "1200",
            building_id=sample_data["building"],
            property_id=sample_data["property"],
            rental_agreement_id=sample_data["rental_agreement"],
        )
        transaction = payment_service.apply_payment(bill.id, Decimal("1200"), sample_data["account"])

        assert transaction.contact_id == sample_data["tenant"]
        assert transaction.category_id == sample_data["maintenance_tenant"]
        # The bill itself keeps its vendor and category
        stored = temp_db.get_document(bill.id)
        assert stored.contact_id == sample_data["vendor"]
        assert stored.line_items[0].category_id == sample_data["maintenance"]

    def test_tenant_rewrite_without_tenant_category(self, payment_service, make_bill, sample_data):
        bill = make_bill(
            "300",
            category=sample_data["utilities"],
            property_id=sample_data["property"],
            rental_agreement_id=sample_data["rental_agreement"],
        )
        transaction = payment_service.apply_payment(bill.id, Decimal("300"), sample_data["account"])
        assert transaction.contact_id == sample_data["tenant"]
        assert transaction.category_id == sample_data["utilities"]

    def test_contract_completes_and_reopens(self, temp_db, payment_service, make_bill, sample_data):
        contract = DirectoryService(temp_db).add_contract(
            "C-001", "Plumbing", sample_data["vendor"], Decimal("1000"), sample_data["p1"]
        )
        bill = make_bill("1000", project_id=sample_data["p1"], contract_id=contract.id)

        transaction = payment_service.apply_payment(bill.id, Decimal("1000"), sample_data["account"])
        assert transaction.contract_id == contract.id
        assert temp_db.snapshot().contract(contract.id).status == ContractStatus.COMPLETED

        payment_service.delete_transaction(transaction.id)
        assert temp_db.snapshot().contract(contract.id).status == ContractStatus.ACTIVE


class TestTransactionEdits:
    """Tests for deleting and editing payments."""

    def test_delete_rolls_back(self, temp_db, payment_service, make_bill, sample_data):
        bill = make_bill("1000")
        transaction = payment_service.apply_payment(bill.id, Decimal("1000"), sample_data["account"])
        payment_service.delete_transaction(transaction.id)

        stored = temp_db.get_document(bill.id)
        assert stored.paid_amount == Decimal("0")
        assert stored.status == DocumentStatus.UNPAID
        assert temp_db.get_transaction(transaction.id) is None

    def test_update_amount(self, temp_db, payment_service, make_bill, sample_data):
        bill = make_bill("1000")
        transaction = payment_service.apply_payment(bill.id, Decimal("300"), sample_data["account"])

        payment_service.update_transaction_amount(transaction.id, Decimal("700"))
        stored = temp_db.get_document(bill.id)
        assert stored.paid_amount == Decimal("700")
        assert temp_db.get_transaction(transaction.id).amount == Decimal("700")

    def test_update_amount_cannot_overpay(self, temp_db, payment_service, make_bill, sample_data):
        bill = make_bill("1000")
        payment_service.apply_payment(bill.id, Decimal("500"), sample_data["account"])
        transaction = payment_service.apply_payment(bill.id, Decimal("300"), sample_data["account"])

        with pytest.raises(ValidationError):
            payment_service.update_transaction_amount(transaction.id, Decimal("600"))
        assert temp_db.get_document(bill.id).paid_amount == Decimal("800")

    def test_delete_missing(self, payment_service):
        with pytest.raises(NotFoundError):
            payment_service.delete_transaction("missing")


class TestBulkPayment:
    """Tests for bulk payments with per-document failures."""

    @pytest.mark.asyncio
    async def test_all_succeed(self, temp_db, make_bill, sample_data):
        bills = [make_bill("100"), make_bill("200")]
        gateway = FakeGateway()
        service = PaymentService(temp_db, gateway)

        result = await service.apply_bulk_payment(
            [b.id for b in bills], {b.id: b.balance for b in bills}, sample_data["account"]
        )

        assert result.committed
        assert len(result.succeeded) == 2
        assert result.failed == ()
        assert result.message == "Processed bulk payment for 2 bills."
        transactions = temp_db.snapshot().transactions
        assert {t.batch_id for t in transactions} == {result.batch_id}
        assert result.batch_id.startswith("batch-")
        assert transactions[0].description.startswith("Bulk Payment: Bills (Bill #")
        for bill in bills:
            assert temp_db.get_document(bill.id).status == DocumentStatus.PAID

    @pytest.mark.asyncio
    async def test_partial_failure(self, temp_db, make_bill, sample_data):
        bills = [make_bill("100"), make_bill("200"), make_bill("300")]
        gateway = FakeGateway({bills[1].id: RemoteStoreError("locked", status_code=409, code="BILL_LOCKED")})
        service = PaymentService(temp_db, gateway)

        result = await service.apply_bulk_payment(
            [b.id for b in bills],
            {b.id: b.balance for b in bills},
            sample_data["account"],
            reference="March run",
        )

        assert [s.number for s in result.succeeded] == [bills[0].number, bills[2].number]
        assert result.failed_numbers == [bills[1].number]
        assert result.failed[0].kind == FailureKind.CONFLICT
        assert result.message == (
            f"Processed 2 payment(s). Failed for bill(s): {bills[1].number}. Please refresh and try again."
        )
        assert len(temp_db.snapshot().transactions) == 2
        assert temp_db.get_document(bills[0].id).status == DocumentStatus.PAID
        assert temp_db.get_document(bills[1].id).paid_amount == Decimal("0")
        assert temp_db.get_document(bills[2].id).status == DocumentStatus.PAID
        assert all(t.description.startswith("Bulk Payment: March run") for t in gateway.saved)

    @pytest.mark.asyncio
    async def test_unexpected_error_stays_with_its_bill(self, temp_db, make_bill, sample_data):
        bills = [make_bill("100"), make_bill("200"), make_bill("300")]
        gateway = FakeGateway({bills[1].id: RuntimeError("socket reset")})
        service = PaymentService(temp_db, gateway)

        result = await service.apply_bulk_payment(
            [b.id for b in bills], {b.id: b.balance for b in bills}, sample_data["account"]
        )

        assert [s.number for s in result.succeeded] == [bills[0].number, bills[2].number]
        assert result.failed_numbers == [bills[1].number]
        assert result.failed[0].kind == FailureKind.UNKNOWN
        assert result.failed[0].error == "socket reset"
        assert len(temp_db.snapshot().transactions) == 2
        assert temp_db.get_document(bills[0].id).status == DocumentStatus.PAID
        assert temp_db.get_document(bills[1].id).paid_amount == Decimal("0")
        assert temp_db.get_document(bills[2].id).status == DocumentStatus.PAID

    @pytest.mark.asyncio
    async def test_unexpected_error_on_only_bill(self, temp_db, make_bill, sample_data):
        bill = make_bill("100")
        service = PaymentService(temp_db, FakeGateway({bill.id: RuntimeError("socket reset")}))

        result = await service.apply_bulk_payment([bill.id], {bill.id: Decimal("100")}, sample_data["account"])

        assert not result.committed
        assert result.message == "Failed to process payments: socket reset"
        assert temp_db.snapshot().transactions == ()

    @pytest.mark.asyncio
    async def test_tenant_rewrite(self, temp_db, make_bill, sample_data):
        bill = make_bill(
            "1200",
            building_id=sample_data["building"],
            property_id=sample_data["property"],
            rental_agreement_id=sample_data["rental_agreement"],
        )
        service = PaymentService(temp_db, FakeGateway())

        result = await service.apply_bulk_payment([bill.id], {bill.id: Decimal("1200")}, sample_data["account"])

        transaction = result.succeeded[0].transaction
        assert transaction.contact_id == sample_data["tenant"]
        assert transaction.category_id == sample_data["maintenance_tenant"]
        assert transaction.bill_id == bill.id
        stored = temp_db.get_document(bill.id)
        assert stored.contact_id == sample_data["vendor"]
        assert stored.line_items[0].category_id == sample_data["maintenance"]

    @pytest.mark.asyncio
    async def test_all_fail_commits_nothing(self, temp_db, make_bill, sample_data):
        bill = make_bill("100")
        error = RemoteStoreError("too much", status_code=400, code="PAYMENT_OVERPAYMENT")
        service = PaymentService(temp_db, FakeGateway({bill.id: error}))

        result = await service.apply_bulk_payment([bill.id], {bill.id: Decimal("100")}, sample_data["account"])

        assert not result.committed
        assert result.message == "Overpayment detected. too much"
        assert temp_db.snapshot().transactions == ()
        assert temp_db.get_document(bill.id).paid_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_conflict_message_when_nothing_committed(self, temp_db, make_bill, sample_data):
        bill = make_bill("100")
        service = PaymentService(temp_db, FakeGateway({bill.id: RemoteStoreError("busy", status_code=409)}))

        result = await service.apply_bulk_payment([bill.id], {bill.id: Decimal("100")}, sample_data["account"])

        assert result.message == (
            "Payment conflict detected. One or more bills are being processed by another user. "
            "Please refresh and try again."
        )

    @pytest.mark.asyncio
    async def test_over_balance_rejected_before_sending(self, temp_db, make_bill, sample_data, payment_service):
        bill = make_bill("1000")
        payment_service.apply_payment(bill.id, Decimal("800"), sample_data["account"])
        gateway = FakeGateway()
        service = PaymentService(temp_db, gateway)

        with pytest.raises(ValidationError, match="exceeds balance due"):
            await service.apply_bulk_payment([bill.id], {bill.id: Decimal("250")}, sample_data["account"])
        assert gateway.saved == []

    @pytest.mark.asyncio
    async def test_zero_total_rejected(self, temp_db, make_bill, sample_data):
        bill = make_bill("100")
        service = PaymentService(temp_db, FakeGateway())
        with pytest.raises(ValidationError, match="Total payment amount must be greater than zero."):
            await service.apply_bulk_payment([bill.id], {}, sample_data["account"])

    @pytest.mark.asyncio
    async def test_skips_zero_rows(self, temp_db, make_bill, sample_data):
        bills = [make_bill("100"), make_bill("200")]
        gateway = FakeGateway()
        service = PaymentService(temp_db, gateway)

        result = await service.apply_bulk_payment(
            [b.id for b in bills], {bills[0].id: Decimal("50")}, sample_data["account"]
        )

        assert len(result.succeeded) == 1
        assert temp_db.get_document(bills[0].id).status == DocumentStatus.PARTIALLY_PAID
        assert temp_db.get_document(bills[1].id).paid_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_default_local_gateway(self, temp_db, payment_service, make_bill, sample_data):
        bill = make_bill("100")
        result = await payment_service.apply_bulk_payment([bill.id], {bill.id: Decimal("100")}, sample_data["account"])
        assert result.committed
        assert temp_db.get_document(bill.id).status == DocumentStatus.PAID


class TestRentalPayments:
    """Tests for split rent and deposit receipts."""

    def test_receive_rent_and_deposit(self, temp_db, document_service, payment_service, sample_data):
        invoice = document_service.create_rental_invoice(
            sample_data["rental_agreement"], issue_date=date(2024, 4, 1)
        )
        assert invoice.amount == Decimal("90000.00")
        assert payment_service.rental_remaining(invoice.id) == (Decimal("30000.00"), Decimal("60000"))

        transactions = payment_service.receive_rental_payment(
            invoice.id, Decimal("30000"), Decimal("20000"), sample_data["account"]
        )

        assert [t.category_id for t in transactions] == [
            sample_data["rental_income"],
            sample_data["security_deposit"],
        ]
        assert transactions[0].description == f"Rent payment for Invoice #{invoice.number}"
        assert transactions[1].description == f"Security Deposit for Invoice #{invoice.number}"
        assert payment_service.rental_remaining(invoice.id) == (Decimal("0.00"), Decimal("40000"))
        stored = temp_db.get_document(invoice.id)
        assert stored.paid_amount == Decimal("50000")
        # Due on the agreement day in April 2024, so long past
        assert stored.status == DocumentStatus.OVERDUE

    def test_rent_capped_by_remaining(self, document_service, payment_service, sample_data):
        invoice = document_service.create_rental_invoice(
            sample_data["rental_agreement"], issue_date=date(2024, 4, 1), security_deposit_charge=Decimal("0")
        )
        with pytest.raises(ValidationError, match="Amount cannot exceed remaining balance of 30,000.00."):
            payment_service.receive_rental_payment(invoice.id, Decimal("31000"), Decimal("0"), sample_data["account"])

    def test_bill_rejected(self, payment_service, make_bill, sample_data):
        bill = make_bill("100")
        with pytest.raises(ValidationError, match="is not an invoice"):
            payment_service.receive_rental_payment(bill.id, Decimal("10"), Decimal("0"), sample_data["account"])
