"""Shared pytest fixtures for billflow tests."""

import os
import tempfile
from datetime import date
from decimal import Decimal

import pytest

from billflow.database.factories import create_sqlite_database
from billflow.domain.directory import DirectoryService
from billflow.domain.documents import DocumentService
from billflow.domain.entities import (
    CategoryType,
    ContactType,
    Document,
    DocumentKind,
    InvoiceType,
    new_id,
)
from billflow.domain.amounts import line_item_from_quantity
from billflow.domain.numbering import NumberingService
from billflow.domain.payments import PaymentService
from billflow.domain.tree import TreeService


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def directory_service(temp_db):
    """Create a DirectoryService with a temporary database."""
    return DirectoryService(temp_db)


@pytest.fixture
def document_service(temp_db):
    """Create a DocumentService with a temporary database."""
    return DocumentService(temp_db)


@pytest.fixture
def payment_service(temp_db):
    """Create a PaymentService with a temporary database."""
    return PaymentService(temp_db)


@pytest.fixture
def numbering_service(temp_db):
    """Create a NumberingService with a temporary database."""
    return NumberingService(temp_db)


@pytest.fixture
def tree_service(temp_db):
    """Create a TreeService with a temporary database."""
    return TreeService(temp_db)


@pytest.fixture
def sample_data(temp_db, directory_service):
    """Initialize system defaults and a small set of reference entities.

    Returns a dict of IDs keyed by a short name.
    """
    directory_service.initialize_defaults()
    snapshot = temp_db.snapshot()

    ids = {
        "maintenance": snapshot.category_by_name("Maintenance", CategoryType.EXPENSE).id,
        "maintenance_tenant": snapshot.category_by_name("Maintenance (Tenant)", CategoryType.EXPENSE).id,
        "utilities": snapshot.category_by_name("Utilities", CategoryType.EXPENSE).id,
        "rental_income": snapshot.category_by_name("Rental Income", CategoryType.INCOME).id,
        "security_deposit": snapshot.category_by_name("Security Deposit", CategoryType.INCOME).id,
    }
    ids["vendor"] = directory_service.add_contact("Acme Plumbing", ContactType.VENDOR).id
    ids["other_vendor"] = directory_service.add_contact("Bolt Electric", ContactType.VENDOR).id
    ids["tenant"] = directory_service.add_contact("Tina Tenant", ContactType.TENANT).id
    ids["owner"] = directory_service.add_contact("Oscar Owner", ContactType.OWNER).id
    ids["client"] = directory_service.add_contact("Carl Client", ContactType.CLIENT).id
    ids["staff"] = directory_service.add_contact("Sara Staff", ContactType.STAFF).id
    ids["p1"] = directory_service.add_project("Project One").id
    ids["p2"] = directory_service.add_project("Project Two").id
    ids["building"] = directory_service.add_building("Tower A").id
    ids["other_building"] = directory_service.add_building("Tower B").id
    ids["property"] = directory_service.add_property("Flat 101", ids["building"], ids["owner"]).id
    ids["account"] = directory_service.add_account("Main Bank").id
    ids["rental_agreement"] = directory_service.add_rental_agreement(
        "RA-001",
        ids["tenant"],
        ids["property"],
        Decimal("30000"),
        date(2024, 1, 1),
        security_deposit=Decimal("60000"),
    ).id
    ids["project_agreement"] = directory_service.add_project_agreement(
        "PA-001", ids["client"], ids["p1"], Decimal("1000000")
    ).id
    return ids


@pytest.fixture
def make_bill(document_service, sample_data):
    """Factory that saves a single-line maintenance bill."""
    counter = iter(range(1, 1000))

    def _make_bill(amount="1000", number=None, category=None, **fields):
        fields.setdefault("contact_id", sample_data["vendor"])
        bill = Document(
            id=new_id(),
            kind=DocumentKind.BILL,
            number=number or f"BILL-{next(counter):05d}",
            amount=Decimal("0"),
            issue_date=fields.pop("issue_date", date.today()),
            line_items=(
                line_item_from_quantity(
                    category or sample_data["maintenance"], Decimal("1"), Decimal(amount)
                ),
            ),
            **fields,
        )
        return document_service.save_document(bill)

    return _make_bill


@pytest.fixture
def make_invoice(document_service, sample_data):
    """Factory that saves an installment invoice for the sample client."""
    counter = iter(range(1, 1000))

    def _make_invoice(amount="1000", number=None, **fields):
        fields.setdefault("contact_id", sample_data["client"])
        fields.setdefault("invoice_type", InvoiceType.INSTALLMENT)
        invoice = Document(
            id=new_id(),
            kind=DocumentKind.INVOICE,
            number=number or f"P-INV-{next(counter):05d}",
            amount=Decimal(amount),
            issue_date=fields.pop("issue_date", date.today()),
            **fields,
        )
        return document_service.save_document(invoice)

    return _make_invoice


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
