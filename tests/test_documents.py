"""Tests for the bill and invoice save pipeline."""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest
from dateutil.relativedelta import relativedelta

from billflow.domain.amounts import line_item_from_quantity
from billflow.domain.directory import DirectoryService
from billflow.domain.documents import DocumentService
from billflow.domain.entities import (
    AgreementStatus,
    ContactType,
    Document,
    DocumentKind,
    DocumentStatus,
    InvoiceType,
    new_id,
)
from billflow.domain.errors import (
    ConflictError,
    DependencyError,
    MissingSystemCategoryError,
    NotFoundError,
    ValidationError,
)


def new_bill(sample_data, **fields):
    fields.setdefault("contact_id", sample_data["vendor"])
    fields.setdefault("number", "BILL-00001")
    fields.setdefault("amount", Decimal("0"))
    return Document(id=new_id(), kind=DocumentKind.BILL, issue_date=date.today(), **fields)


class TestSaveBill:
    """Tests for creating and editing bills."""

    def test_amount_derived_from_items(self, document_service, sample_data):
        bill = document_service.save_document(
            new_bill(
                sample_data,
                amount=Decimal("1"),
                line_items=(
                    line_item_from_quantity(sample_data["maintenance"], Decimal("10"), Decimal("25")),
                    line_item_from_quantity(sample_data["utilities"], Decimal("1"), Decimal("50")),
                ),
            )
        )
        assert bill.amount == Decimal("300")
        assert bill.status == DocumentStatus.UNPAID
        assert bill.version == 1
        assert bill.due_date == date.today() + relativedelta(months=1)

    def test_items_persist_in_order(self, temp_db, document_service, sample_data):
        saved = document_service.save_document(
            new_bill(
                sample_data,
                line_items=(
                    line_item_from_quantity(sample_data["utilities"], Decimal("2"), Decimal("10")),
                    line_item_from_quantity(sample_data["maintenance"], Decimal("3"), Decimal("10")),
                ),
            )
        )
        stored = temp_db.get_document(saved.id)
        assert [item.category_id for item in stored.line_items] == [
            sample_data["utilities"],
            sample_data["maintenance"],
        ]
        assert stored.amount == Decimal("50")

    def test_legacy_single_category_converted(self, document_service, sample_data):
        bill = document_service.save_document(
            new_bill(sample_data, amount=Decimal("450"), category_id=sample_data["maintenance"])
        )
        assert len(bill.line_items) == 1
        assert bill.line_items[0].category_id == sample_data["maintenance"]
        assert bill.amount == Decimal("450")

    def test_bill_without_items_rejected(self, temp_db, document_service, sample_data):
        with pytest.raises(ValidationError, match="Please add at least one expense category item."):
            document_service.save_document(new_bill(sample_data, amount=Decimal("100")))
        assert temp_db.snapshot().documents == ()

    def test_number_required(self, document_service, sample_data):
        with pytest.raises(ValidationError, match="Bill number is required."):
            document_service.save_document(new_bill(sample_data, number="  ", category_id=sample_data["maintenance"]))

    def test_duplicate_number(self, document_service, make_bill, sample_data):
        make_bill(number="BILL-00001")
        with pytest.raises(ConflictError, match="This bill number is already in use"):
            make_bill(number="bill-00001 ")

    def test_same_number_allowed_across_kinds(self, make_bill, make_invoice):
        make_bill(number="X-1")
        assert make_invoice(number="X-1").number == "X-1"

    def test_stale_version_rejected(self, document_service, make_bill, sample_data):
        bill = make_bill("100")
        document_service.save_document(replace(bill, description="first edit"))

        with pytest.raises(ConflictError, match="modified by someone else"):
            document_service.save_document(replace(bill, description="second edit"))

    def test_edit_bumps_version(self, document_service, make_bill):
        bill = make_bill("100")
        edited = document_service.save_document(replace(bill, description="note"))
        assert edited.version == bill.version + 1

    def test_cannot_reduce_below_paid(self, temp_db, document_service, payment_service, make_bill, sample_data):
        bill = make_bill("1000")
        payment_service.apply_payment(bill.id, Decimal("600"), sample_data["account"])
        stored = temp_db.get_document(bill.id)

        smaller = replace(
            stored, line_items=(line_item_from_quantity(sample_data["maintenance"], Decimal("1"), Decimal("500")),)
        )
        with pytest.raises(ValidationError, match="already paid amount of 600.00"):
            document_service.save_document(smaller)

    def test_edit_keeps_paid_amount_and_status(self, temp_db, document_service, payment_service, make_bill, sample_data):
        bill = make_bill("1000")
        payment_service.apply_payment(bill.id, Decimal("1000"), sample_data["account"])
        stored = temp_db.get_document(bill.id)

        larger = replace(
            stored, line_items=(line_item_from_quantity(sample_data["maintenance"], Decimal("2"), Decimal("750")),)
        )
        saved = document_service.save_document(larger)
        assert saved.amount == Decimal("1500")
        assert saved.paid_amount == Decimal("1000")
        assert saved.status == DocumentStatus.PARTIALLY_PAID

    def test_draft_is_kept(self, make_bill):
        assert make_bill("100", status=DocumentStatus.DRAFT).status == DocumentStatus.DRAFT

    def test_property_fills_building(self, make_bill, sample_data):
        bill = make_bill("100", property_id=sample_data["property"])
        assert bill.building_id == sample_data["building"]

    def test_conflicting_allocation_rejected(self, make_bill, sample_data):
        with pytest.raises(ValidationError, match="only one of project, building or staff"):
            make_bill("100", project_id=sample_data["p1"], staff_id=sample_data["staff"])

    def test_project_bill_with_rental_agreement_rejected(self, temp_db, make_bill, sample_data):
        with pytest.raises(ValidationError, match="only one of project, building or staff"):
            make_bill("500", project_id=sample_data["p1"], rental_agreement_id=sample_data["rental_agreement"])
        assert temp_db.snapshot().documents == ()

    def test_contract_cleared_when_vendor_changes(self, temp_db, document_service, make_bill, sample_data):
        contract = DirectoryService(temp_db).add_contract(
            "C-001", "Plumbing", sample_data["vendor"], Decimal("5000"), sample_data["p1"]
        )
        bill = make_bill("100", contract_id=contract.id)
        assert bill.project_id == sample_data["p1"]

        edited = document_service.save_document(replace(bill, contact_id=sample_data["other_vendor"]))
        assert edited.contract_id is None


class TestSaveInvoice:
    """Tests for invoice-specific save checks."""

    def test_invoice_due_in_a_week(self, make_invoice):
        invoice = make_invoice("500", issue_date=date(2030, 1, 1))
        assert invoice.due_date == date(2030, 1, 8)

    def test_cancelled_agreement(self, temp_db, make_invoice, sample_data):
        DirectoryService(temp_db).set_agreement_status(sample_data["project_agreement"], AgreementStatus.CANCELLED)
        with pytest.raises(ValidationError, match="project agreement is cancelled"):
            make_invoice("100", project_id=sample_data["p1"], project_agreement_id=sample_data["project_agreement"])

    def test_agreement_balance(self, make_invoice, sample_data):
        make_invoice("900000", project_id=sample_data["p1"], project_agreement_id=sample_data["project_agreement"])
        with pytest.raises(ValidationError, match="remaining agreement balance of 100,000.00"):
            make_invoice("100001", project_id=sample_data["p1"], project_agreement_id=sample_data["project_agreement"])

    def test_rental_invoice_gets_rental_income(self, make_invoice, sample_data):
        invoice = make_invoice(
            "30000",
            contact_id=sample_data["tenant"],
            invoice_type=InvoiceType.RENTAL,
            property_id=sample_data["property"],
            rental_agreement_id=sample_data["rental_agreement"],
        )
        assert invoice.category_id == sample_data["rental_income"]

    def test_missing_rental_income_category(self, temp_db):
        directory = DirectoryService(temp_db)
        tenant = directory.add_contact("Tina", ContactType.TENANT)
        invoice = Document(
            id=new_id(),
            kind=DocumentKind.INVOICE,
            number="INV-00001",
            contact_id=tenant.id,
            amount=Decimal("100"),
            issue_date=date.today(),
            invoice_type=InvoiceType.RENTAL,
        )
        with pytest.raises(MissingSystemCategoryError, match="Critical Error: 'Rental Income' category not found"):
            DocumentService(temp_db).save_document(invoice)
        assert temp_db.snapshot().documents == ()


class TestRentalInvoice:
    """Tests for generating rent invoices."""

    def test_first_invoice_charges_deposit(self, document_service, sample_data):
        invoice = document_service.create_rental_invoice(sample_data["rental_agreement"], issue_date=date(2024, 4, 16))
        assert invoice.number == "INV-00001"
        assert invoice.security_deposit_charge == Decimal("60000")
        assert invoice.amount == Decimal("75000.00")
        assert invoice.description == "Rent for Flat 101 - April 2024 (Pro-rata: 15 days)"
        assert invoice.rental_month == "2024-04"
        assert invoice.contact_id == sample_data["tenant"]
        assert invoice.building_id == sample_data["building"]

    def test_later_invoices_skip_deposit(self, document_service, sample_data):
        document_service.create_rental_invoice(sample_data["rental_agreement"], issue_date=date(2024, 4, 1))
        second = document_service.create_rental_invoice(sample_data["rental_agreement"], issue_date=date(2024, 5, 1))
        assert second.number == "INV-00002"
        assert second.security_deposit_charge == Decimal("0")
        assert second.amount == Decimal("30000.00")
        assert second.description == "Rent for Flat 101 - May 2024"

    def test_unknown_agreement(self, document_service, sample_data):
        with pytest.raises(NotFoundError):
            document_service.create_rental_invoice("missing")


class TestDeleteAndQuery:
    """Tests for deleting, finding and listing documents."""

    def test_delete_unpaid(self, temp_db, document_service, make_bill):
        bill = make_bill("100")
        document_service.delete_document(bill.id)
        assert temp_db.get_document(bill.id) is None

    def test_delete_blocked_by_payments(self, document_service, payment_service, make_bill, sample_data):
        bill = make_bill("100")
        payment_service.apply_payment(bill.id, Decimal("40"), sample_data["account"])
        with pytest.raises(DependencyError, match=r"associated payments \(40.00\)"):
            document_service.delete_document(bill.id)

    def test_find_by_number(self, document_service, make_bill):
        bill = make_bill("100", number="BILL-00042")
        assert document_service.find_by_number(DocumentKind.BILL, " bill-00042").id == bill.id
        assert document_service.find_by_number(DocumentKind.INVOICE, "BILL-00042") is None

    def test_list_filters(self, document_service, make_bill, sample_data):
        make_bill("100", project_id=sample_data["p1"])
        make_bill("200", contact_id=sample_data["other_vendor"])

        assert len(document_service.list_documents(DocumentKind.BILL)) == 2
        assert len(document_service.list_documents(DocumentKind.BILL, project_id=sample_data["p1"])) == 1
        other = document_service.list_documents(DocumentKind.BILL, contact_id=sample_data["other_vendor"])
        assert [doc.amount for doc in other] == [Decimal("200")]
        assert document_service.list_documents(DocumentKind.BILL, status=DocumentStatus.PAID) == []
