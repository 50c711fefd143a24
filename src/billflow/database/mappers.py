"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, so the flat legacy document shape
stored in the database never leaks past the database package.
"""

from decimal import Decimal
from typing import Optional

from billflow.domain import entities as domain
from billflow.database.models import (
    Account as ORMAccount,
    Building as ORMBuilding,
    Category as ORMCategory,
    Contact as ORMContact,
    Contract as ORMContract,
    Document as ORMDocument,
    LineItem as ORMLineItem,
    NumberSeries as ORMNumberSeries,
    Project as ORMProject,
    ProjectAgreement as ORMProjectAgreement,
    Property as ORMProperty,
    RentalAgreement as ORMRentalAgreement,
    Transaction as ORMTransaction,
)


def _money(value: Optional[Decimal]) -> Decimal:
    return Decimal(value) if value is not None else Decimal("0")


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        name=orm_account.name,
        account_type=domain.AccountType(orm_account.account_type),
    )


def contact_to_domain(orm_contact: ORMContact) -> domain.Contact:
    """Convert SQLAlchemy Contact model to domain Contact entity."""
    return domain.Contact(
        id=orm_contact.id,
        name=orm_contact.name,
        contact_type=domain.ContactType(orm_contact.contact_type),
    )


def project_to_domain(orm_project: ORMProject) -> domain.Project:
    return domain.Project(id=orm_project.id, name=orm_project.name)


def building_to_domain(orm_building: ORMBuilding) -> domain.Building:
    return domain.Building(id=orm_building.id, name=orm_building.name)


def property_to_domain(orm_property: ORMProperty) -> domain.Property:
    return domain.Property(
        id=orm_property.id,
        name=orm_property.name,
        building_id=orm_property.building_id,
        owner_id=orm_property.owner_id,
    )


def category_to_domain(orm_category: ORMCategory) -> domain.Category:
    """Convert SQLAlchemy Category model to domain Category entity."""
    return domain.Category(
        id=orm_category.id,
        name=orm_category.name,
        category_type=domain.CategoryType(orm_category.category_type),
        parent_id=orm_category.parent_id,
    )


def contract_to_domain(orm_contract: ORMContract) -> domain.Contract:
    """Convert SQLAlchemy Contract model to domain Contract entity."""
    return domain.Contract(
        id=orm_contract.id,
        contract_number=orm_contract.contract_number,
        name=orm_contract.name,
        vendor_id=orm_contract.vendor_id,
        total_amount=_money(orm_contract.total_amount),
        status=domain.ContractStatus(orm_contract.status),
        project_id=orm_contract.project_id,
    )


def rental_agreement_to_domain(orm_agreement: ORMRentalAgreement) -> domain.RentalAgreement:
    return domain.RentalAgreement(
        id=orm_agreement.id,
        agreement_number=orm_agreement.agreement_number,
        tenant_id=orm_agreement.tenant_id,
        property_id=orm_agreement.property_id,
        monthly_rent=_money(orm_agreement.monthly_rent),
        security_deposit=_money(orm_agreement.security_deposit),
        rent_due_day=orm_agreement.rent_due_day,
        start_date=orm_agreement.start_date,
        status=domain.AgreementStatus(orm_agreement.status),
    )


def project_agreement_to_domain(orm_agreement: ORMProjectAgreement) -> domain.ProjectAgreement:
    return domain.ProjectAgreement(
        id=orm_agreement.id,
        agreement_number=orm_agreement.agreement_number,
        client_id=orm_agreement.client_id,
        project_id=orm_agreement.project_id,
        selling_price=_money(orm_agreement.selling_price),
        status=domain.AgreementStatus(orm_agreement.status),
    )


def line_item_to_domain(orm_item: ORMLineItem) -> domain.LineItem:
    return domain.LineItem(
        category_id=orm_item.category_id,
        unit=domain.LineItemUnit(orm_item.unit),
        quantity=_money(orm_item.quantity),
        price_per_unit=_money(orm_item.price_per_unit),
        net_value=_money(orm_item.net_value),
    )


def document_to_domain(orm_document: ORMDocument) -> domain.Document:
    """Convert SQLAlchemy Document model to domain Document entity."""
    invoice_type = orm_document.invoice_type
    return domain.Document(
        id=orm_document.id,
        kind=domain.DocumentKind(orm_document.kind),
        number=orm_document.number,
        contact_id=orm_document.contact_id,
        amount=_money(orm_document.amount),
        issue_date=orm_document.issue_date,
        paid_amount=_money(orm_document.paid_amount),
        status=domain.DocumentStatus(orm_document.status),
        due_date=orm_document.due_date,
        description=orm_document.description,
        category_id=orm_document.category_id,
        project_id=orm_document.project_id,
        building_id=orm_document.building_id,
        property_id=orm_document.property_id,
        staff_id=orm_document.staff_id,
        contract_id=orm_document.contract_id,
        rental_agreement_id=orm_document.rental_agreement_id,
        project_agreement_id=orm_document.project_agreement_id,
        invoice_type=domain.InvoiceType(invoice_type) if invoice_type else None,
        security_deposit_charge=_money(orm_document.security_deposit_charge),
        rental_month=orm_document.rental_month,
        line_items=tuple(line_item_to_domain(item) for item in orm_document.line_items),
        version=orm_document.version,
    )


def document_columns(document: domain.Document) -> dict:
    """Column values for storing a domain Document (line items excluded)."""
    return {
        "kind": document.kind.value,
        "number": document.number,
        "contact_id": document.contact_id,
        "amount": document.amount,
        "paid_amount": document.paid_amount,
        "status": document.status.value,
        "issue_date": document.issue_date,
        "due_date": document.due_date,
        "description": document.description,
        "category_id": document.category_id,
        "project_id": document.project_id,
        "building_id": document.building_id,
        "property_id": document.property_id,
        "staff_id": document.staff_id,
        "contract_id": document.contract_id,
        "rental_agreement_id": document.rental_agreement_id,
        "project_agreement_id": document.project_agreement_id,
        "invoice_type": document.invoice_type.value if document.invoice_type else None,
        "security_deposit_charge": document.security_deposit_charge,
        "rental_month": document.rental_month,
        "version": document.version,
    }


def line_items_to_orm(items: tuple[domain.LineItem, ...]) -> list[ORMLineItem]:
    return [
        ORMLineItem(
            position=position,
            category_id=item.category_id,
            unit=item.unit.value,
            quantity=item.quantity,
            price_per_unit=item.price_per_unit,
            net_value=item.net_value,
        )
        for position, item in enumerate(items)
    ]


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        transaction_type=domain.TransactionType(orm_transaction.transaction_type),
        amount=_money(orm_transaction.amount),
        date=orm_transaction.date,
        account_id=orm_transaction.account_id,
        category_id=orm_transaction.category_id,
        contact_id=orm_transaction.contact_id,
        project_id=orm_transaction.project_id,
        building_id=orm_transaction.building_id,
        property_id=orm_transaction.property_id,
        contract_id=orm_transaction.contract_id,
        bill_id=orm_transaction.bill_id,
        invoice_id=orm_transaction.invoice_id,
        batch_id=orm_transaction.batch_id,
        reference=orm_transaction.reference,
        description=orm_transaction.description,
        created_at=orm_transaction.created_at,
    )


def transaction_columns(transaction: domain.Transaction) -> dict:
    """Column values for storing a domain Transaction."""
    return {
        "transaction_type": transaction.transaction_type.value,
        "amount": transaction.amount,
        "date": transaction.date,
        "account_id": transaction.account_id,
        "category_id": transaction.category_id,
        "contact_id": transaction.contact_id,
        "project_id": transaction.project_id,
        "building_id": transaction.building_id,
        "property_id": transaction.property_id,
        "contract_id": transaction.contract_id,
        "bill_id": transaction.bill_id,
        "invoice_id": transaction.invoice_id,
        "batch_id": transaction.batch_id,
        "reference": transaction.reference,
        "description": transaction.description,
    }


def number_series_to_domain(orm_series: ORMNumberSeries) -> domain.NumberSeries:
    return domain.NumberSeries(
        name=orm_series.name,
        prefix=orm_series.prefix,
        next_number=orm_series.next_number,
        padding=orm_series.padding,
    )
