"""Domain model entities for billflow.

These are pure data classes representing business concepts, independent of
database schema. Services receive them inside an immutable ``Snapshot`` of the
entity store and return new values instead of mutating shared state.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


def new_id() -> str:
    """Generate a new entity identifier."""
    return uuid.uuid4().hex


class DocumentKind(str, Enum):
    """Payable (bill) or receivable (invoice) document."""

    BILL = "bill"
    INVOICE = "invoice"


class DocumentStatus(str, Enum):
    """Payment status of a document."""

    DRAFT = "Draft"
    UNPAID = "Unpaid"
    PARTIALLY_PAID = "Partially Paid"
    PAID = "Paid"
    OVERDUE = "Overdue"


class InvoiceType(str, Enum):
    """Invoice flavours; each draws its number from its own series."""

    RENTAL = "Rental"
    INSTALLMENT = "Installment"
    SERVICE_CHARGE = "Service Charge"
    SECURITY_DEPOSIT = "Security Deposit"


class ContactType(str, Enum):
    VENDOR = "Vendor"
    TENANT = "Tenant"
    OWNER = "Owner"
    CLIENT = "Client"
    STAFF = "Staff"


class CategoryType(str, Enum):
    INCOME = "Income"
    EXPENSE = "Expense"


class TransactionType(str, Enum):
    INCOME = "Income"
    EXPENSE = "Expense"


class AccountType(str, Enum):
    BANK = "Bank"
    CASH = "Cash"
    CLEARING = "Clearing"


class ContractStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    TERMINATED = "Terminated"


class AgreementStatus(str, Enum):
    ACTIVE = "Active"
    CANCELLED = "Cancelled"
    COMPLETED = "Completed"
    TERMINATED = "Terminated"


class LineItemUnit(str, Enum):
    QUANTITY = "quantity"
    CUBIC_FEET = "Cubic Feet"
    SQUARE_FEET = "Square feet"
    FEET = "feet"


@dataclass(frozen=True)
class Account:
    """Payment account (bank, cash or internal clearing)."""

    id: str
    name: str
    account_type: AccountType = AccountType.BANK


@dataclass(frozen=True)
class Contact:
    """Vendor, tenant, owner, client or staff member."""

    id: str
    name: str
    contact_type: ContactType


@dataclass(frozen=True)
class Project:
    id: str
    name: str


@dataclass(frozen=True)
class Building:
    id: str
    name: str


@dataclass(frozen=True)
class Property:
    """Rentable unit inside a building."""

    id: str
    name: str
    building_id: str
    owner_id: Optional[str] = None


@dataclass(frozen=True)
class Category:
    """Income or expense category."""

    id: str
    name: str
    category_type: CategoryType
    parent_id: Optional[str] = None


@dataclass(frozen=True)
class Contract:
    """Vendor contract, optionally scoped to a project."""

    id: str
    contract_number: str
    name: str
    vendor_id: str
    total_amount: Decimal
    status: ContractStatus = ContractStatus.ACTIVE
    project_id: Optional[str] = None


@dataclass(frozen=True)
class RentalAgreement:
    """Tenant lease on a property."""

    id: str
    agreement_number: str
    tenant_id: str
    property_id: str
    monthly_rent: Decimal
    security_deposit: Decimal
    rent_due_day: int
    start_date: date
    status: AgreementStatus = AgreementStatus.ACTIVE


@dataclass(frozen=True)
class ProjectAgreement:
    """Unit sale agreement with a client inside a project."""

    id: str
    agreement_number: str
    client_id: str
    project_id: str
    selling_price: Decimal
    status: AgreementStatus = AgreementStatus.ACTIVE


@dataclass(frozen=True)
class LineItem:
    """Categorized bill line; ``net_value`` is the authoritative figure."""

    category_id: str
    unit: LineItemUnit
    quantity: Decimal
    price_per_unit: Decimal
    net_value: Decimal


@dataclass(frozen=True)
class Document:
    """Bill or invoice.

    ``amount`` is derived from ``line_items`` (bills) or rent plus deposit
    (rental invoices) whenever those are present.
    """

    id: str
    kind: DocumentKind
    number: str
    contact_id: str
    amount: Decimal
    issue_date: date
    paid_amount: Decimal = Decimal("0")
    status: DocumentStatus = DocumentStatus.UNPAID
    due_date: Optional[date] = None
    description: Optional[str] = None
    category_id: Optional[str] = None
    project_id: Optional[str] = None
    building_id: Optional[str] = None
    property_id: Optional[str] = None
    staff_id: Optional[str] = None
    contract_id: Optional[str] = None
    rental_agreement_id: Optional[str] = None
    project_agreement_id: Optional[str] = None
    invoice_type: Optional[InvoiceType] = None
    security_deposit_charge: Decimal = Decimal("0")
    rental_month: Optional[str] = None
    line_items: tuple[LineItem, ...] = ()
    version: int = 1

    @property
    def balance(self) -> Decimal:
        return self.amount - self.paid_amount

    @property
    def is_bill(self) -> bool:
        return self.kind == DocumentKind.BILL


@dataclass(frozen=True)
class Transaction:
    """Ledger-visible payment or receipt."""

    id: str
    transaction_type: TransactionType
    amount: Decimal
    date: date
    account_id: str
    category_id: Optional[str] = None
    contact_id: Optional[str] = None
    project_id: Optional[str] = None
    building_id: Optional[str] = None
    property_id: Optional[str] = None
    contract_id: Optional[str] = None
    bill_id: Optional[str] = None
    invoice_id: Optional[str] = None
    batch_id: Optional[str] = None
    reference: Optional[str] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def document_id(self) -> Optional[str]:
        return self.bill_id or self.invoice_id


@dataclass(frozen=True)
class NumberSeries:
    """Persisted counter for one document numbering series."""

    name: str
    prefix: str
    next_number: int
    padding: int


@dataclass(frozen=True)
class TreeNode:
    """Rollup node (group or vendor); rebuilt on every query."""

    id: str
    name: str
    node_type: str
    count: int = 0
    amount: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    children: tuple["TreeNode", ...] = ()


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of the entity store at one point in time."""

    accounts: tuple[Account, ...] = ()
    contacts: tuple[Contact, ...] = ()
    projects: tuple[Project, ...] = ()
    buildings: tuple[Building, ...] = ()
    properties: tuple[Property, ...] = ()
    categories: tuple[Category, ...] = ()
    contracts: tuple[Contract, ...] = ()
    rental_agreements: tuple[RentalAgreement, ...] = ()
    project_agreements: tuple[ProjectAgreement, ...] = ()
    documents: tuple[Document, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    number_series: tuple[NumberSeries, ...] = ()
    _index: dict = field(default_factory=dict, init=False, repr=False, compare=False)

    def _lookup(self, collection: str, entity_id: Optional[str]):
        if not entity_id:
            return None
        index = self._index.get(collection)
        if index is None:
            index = {item.id: item for item in getattr(self, collection)}
            self._index[collection] = index
        return index.get(entity_id)

    def account(self, account_id: Optional[str]) -> Optional[Account]:
        return self._lookup("accounts", account_id)

    def contact(self, contact_id: Optional[str]) -> Optional[Contact]:
        return self._lookup("contacts", contact_id)

    def project(self, project_id: Optional[str]) -> Optional[Project]:
        return self._lookup("projects", project_id)

    def building(self, building_id: Optional[str]) -> Optional[Building]:
        return self._lookup("buildings", building_id)

    def property(self, property_id: Optional[str]) -> Optional[Property]:
        return self._lookup("properties", property_id)

    def category(self, category_id: Optional[str]) -> Optional[Category]:
        return self._lookup("categories", category_id)

    def contract(self, contract_id: Optional[str]) -> Optional[Contract]:
        return self._lookup("contracts", contract_id)

    def rental_agreement(self, agreement_id: Optional[str]) -> Optional[RentalAgreement]:
        return self._lookup("rental_agreements", agreement_id)

    def project_agreement(self, agreement_id: Optional[str]) -> Optional[ProjectAgreement]:
        return self._lookup("project_agreements", agreement_id)

    def document(self, document_id: Optional[str]) -> Optional[Document]:
        return self._lookup("documents", document_id)

    def transaction(self, transaction_id: Optional[str]) -> Optional[Transaction]:
        return self._lookup("transactions", transaction_id)

    def category_by_name(
        self, name: str, category_type: Optional[CategoryType] = None
    ) -> Optional[Category]:
        for category in self.categories:
            if category.name == name and (
                category_type is None or category.category_type == category_type
            ):
                return category
        return None

    def series(self, name: str) -> Optional[NumberSeries]:
        for series in self.number_series:
            if series.name == name:
                return series
        return None

    def documents_of_kind(self, kind: DocumentKind) -> list[Document]:
        return [doc for doc in self.documents if doc.kind == kind]
