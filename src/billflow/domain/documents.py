"""Bill and invoice save/delete pipeline."""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Optional

import structlog

from billflow.database.base import Database
from billflow.domain.allocation import resolve_property_building, validate_allocation
from billflow.domain.amounts import (
    default_due_date,
    is_rental_invoice,
    prorate_rent,
    rent_description,
    rental_due_date,
    single_category_line_item,
    validate_amount,
    with_computed_amount,
)
from billflow.domain.contracts import revalidate_contract_link
from billflow.domain.entities import (
    AgreementStatus,
    CategoryType,
    Document,
    DocumentKind,
    DocumentStatus,
    InvoiceType,
    Snapshot,
    new_id,
)
from billflow.domain.errors import (
    ConflictError,
    DependencyError,
    MissingSystemCategoryError,
    NotFoundError,
    ValidationError,
)
from billflow.domain import errors
from billflow.domain.numbering import NumberingService, is_duplicate_number, series_for
from billflow.domain.payments import RENTAL_INCOME_CATEGORY, derive_status

logger = structlog.get_logger(__name__)


class DocumentService:
    """Service for creating, editing and deleting bills and invoices."""

    def __init__(self, db: Database):
        """Initialize document service.

        Args:
            db: Database instance
        """
        self.db = db
        self.numbering = NumberingService(db)

    def get_document(self, document_id: str) -> Document:
        """Get a bill or invoice by ID.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        document = self.db.get_document(document_id)
        if document is None:
            raise NotFoundError(errors.entity_not_found("Document", document_id))
        return document

    def find_by_number(self, kind: DocumentKind, number: str) -> Optional[Document]:
        wanted = number.strip().lower()
        for document in self.db.snapshot().documents_of_kind(kind):
            if document.number.strip().lower() == wanted:
                return document
        return None

    def list_documents(
        self,
        kind: DocumentKind,
        status: Optional[DocumentStatus] = None,
        contact_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> list[Document]:
        """List documents of one kind, optionally filtered."""
        documents = self.db.snapshot().documents_of_kind(kind)
        if status is not None:
            documents = [doc for doc in documents if doc.status == status]
        if contact_id is not None:
            documents = [doc for doc in documents if doc.contact_id == contact_id]
        if project_id is not None:
            documents = [doc for doc in documents if doc.project_id == project_id]
        return documents

    def prepare_document(self, document: Document, snapshot: Snapshot) -> Document:
        """Run every save check on ``document`` without persisting it.

        Args:
            document: Bill or invoice as entered
            snapshot: Current store snapshot

        Returns:
            The document as it would be stored (derived amount, status,
            resolved building, cleared stale contract, system category)

        Raises:
            ValidationError: If any check fails
            ConflictError: If the number is taken or the document changed
                since it was loaded
            MissingSystemCategoryError: If a required category is missing
        """
        previous = snapshot.document(document.id)

        if not document.number or not document.number.strip():
            raise ValidationError(errors.number_required(document.kind.value))
        document = replace(document, number=document.number.strip())
        if is_duplicate_number(document.number, snapshot.documents, document.kind, exclude_id=document.id):
            raise ConflictError(errors.duplicate_number(document.kind.value))

        if previous is not None and previous.version != document.version:
            raise ConflictError(
                f"{errors.document_label(document.kind.value)} #{document.number} was modified "
                "by someone else. Please reload and try again."
            )

        if document.kind == DocumentKind.BILL:
            if not document.line_items and document.category_id:
                document = replace(
                    document,
                    line_items=(single_category_line_item(document.category_id, document.amount),),
                )
            if not document.line_items:
                raise ValidationError(errors.line_items_required())

        document = with_computed_amount(document)
        if document.amount <= 0:
            raise ValidationError(errors.amount_not_positive())

        agreement = snapshot.project_agreement(document.project_agreement_id)
        if agreement is not None and agreement.status == AgreementStatus.CANCELLED:
            raise ValidationError(errors.agreement_cancelled())

        reason = validate_amount(document, agreement, snapshot.documents, previous)
        if reason is not None:
            raise ValidationError(reason)

        document = resolve_property_building(document, snapshot)
        reason = validate_allocation(document, snapshot)
        if reason is not None:
            raise ValidationError(reason)

        document = revalidate_contract_link(document, snapshot)

        if is_rental_invoice(document):
            category = snapshot.category_by_name(RENTAL_INCOME_CATEGORY, CategoryType.INCOME)
            if category is None:
                raise MissingSystemCategoryError(RENTAL_INCOME_CATEGORY)
            document = replace(document, category_id=category.id)

        if document.due_date is None:
            document = replace(document, due_date=default_due_date(document.kind, document.issue_date))

        paid_amount = previous.paid_amount if previous is not None else Decimal("0")
        status = document.status
        if status != DocumentStatus.DRAFT or paid_amount > 0:
            status = derive_status(document.amount, paid_amount, document.due_date, date.today())
        return replace(
            document,
            paid_amount=paid_amount,
            status=status,
            version=previous.version + 1 if previous is not None else 1,
        )

    def save_document(self, document: Document) -> Document:
        """Create or update a bill or invoice.

        Nothing is written when a check fails. On create, the document's
        numbering series is advanced past the saved number.

        Args:
            document: Bill or invoice; an unknown ``id`` means create

        Returns:
            The stored document

        Raises:
            ValidationError: If any check fails
            ConflictError: If the number is taken or the document changed
                since it was loaded
            MissingSystemCategoryError: If a required category is missing
        """
        snapshot = self.db.snapshot()
        is_new = snapshot.document(document.id) is None
        prepared = self.prepare_document(document, snapshot)

        if is_new:
            self.db.add_document(prepared)
            self.numbering.reserve(series_for(prepared.kind, prepared.invoice_type), prepared.number)
            logger.info(
                "document_created",
                kind=prepared.kind.value,
                number=prepared.number,
                amount=str(prepared.amount),
            )
        else:
            self.db.update_document(prepared)
            logger.info(
                "document_updated",
                kind=prepared.kind.value,
                number=prepared.number,
                version=prepared.version,
            )
        return prepared

    def create_rental_invoice(
        self,
        agreement_id: str,
        issue_date: Optional[date] = None,
        grace_period_days: int = 0,
        security_deposit_charge: Optional[Decimal] = None,
        number: Optional[str] = None,
    ) -> Document:
        """Create a rent invoice for a rental agreement.

        Rent is pro-rated over the rest of the issue month (less any grace
        days). The security deposit is charged on the agreement's first
        invoice unless ``security_deposit_charge`` says otherwise.

        Args:
            agreement_id: Rental agreement ID
            issue_date: Invoice date (defaults to today)
            grace_period_days: Rent-free days at the start of the period
            security_deposit_charge: Deposit to add to the rent
            number: Invoice number (defaults to the next rental number)

        Returns:
            The stored invoice

        Raises:
            NotFoundError: If the agreement or its property doesn't exist
        """
        snapshot = self.db.snapshot()
        agreement = snapshot.rental_agreement(agreement_id)
        if agreement is None:
            raise NotFoundError(errors.entity_not_found("Rental agreement", agreement_id))
        prop = snapshot.property(agreement.property_id)
        if prop is None:
            raise NotFoundError(errors.entity_not_found("Property", agreement.property_id))

        issue_date = issue_date or date.today()
        prorated = prorate_rent(agreement.monthly_rent, issue_date, grace_period_days)

        if security_deposit_charge is None:
            deposit_invoiced = any(
                doc.rental_agreement_id == agreement.id and doc.security_deposit_charge > 0
                for doc in snapshot.documents_of_kind(DocumentKind.INVOICE)
            )
            security_deposit_charge = Decimal("0") if deposit_invoiced else agreement.security_deposit

        invoice = Document(
            id=new_id(),
            kind=DocumentKind.INVOICE,
            number=number or self.numbering.next_number(series_for(DocumentKind.INVOICE, InvoiceType.RENTAL)),
            contact_id=agreement.tenant_id,
            amount=prorated.rent + security_deposit_charge,
            issue_date=issue_date,
            due_date=rental_due_date(issue_date, agreement.rent_due_day),
            description=rent_description(prop.name, issue_date, prorated, grace_period_days),
            building_id=prop.building_id,
            property_id=prop.id,
            rental_agreement_id=agreement.id,
            invoice_type=InvoiceType.RENTAL,
            security_deposit_charge=security_deposit_charge,
            rental_month=issue_date.strftime("%Y-%m"),
        )
        return self.save_document(invoice)

    def delete_document(self, document_id: str) -> None:
        """Delete a bill or invoice that has no payments.

        Raises:
            NotFoundError: If the document doesn't exist
            DependencyError: If payments have been recorded against it
        """
        document = self.get_document(document_id)
        if document.paid_amount > 0:
            raise DependencyError(
                errors.document_delete_blocked(document.kind.value, document.paid_amount)
            )
        self.db.delete_document(document_id)
        logger.info("document_deleted", kind=document.kind.value, number=document.number)
