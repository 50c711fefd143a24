"""SQLAlchemy models for billflow database."""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()


class Account(Base):
    """Payment account model."""

    __tablename__ = "accounts"

    id = Column(String, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    account_type = Column(String, nullable=False, default="Bank")
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class Contact(Base):
    """Vendor, tenant, owner, client or staff model."""

    __tablename__ = "contacts"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    contact_type = Column(String, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class Project(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)


class Building(Base):
    __tablename__ = "buildings"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)

    # Relationships
    properties = relationship("Property", back_populates="building")


class Property(Base):
    """Rentable unit model."""

    __tablename__ = "properties"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    building_id = Column(String, ForeignKey("buildings.id"), nullable=False)
    owner_id = Column(String, ForeignKey("contacts.id"), nullable=True)

    # Relationships
    building = relationship("Building", back_populates="properties")


class Category(Base):
    """Category model with optional parent."""

    __tablename__ = "categories"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    category_type = Column(String, nullable=False)
    parent_id = Column(String, ForeignKey("categories.id"), nullable=True)

    __table_args__ = (UniqueConstraint("name", "category_type", name="uq_category_name_type"),)


class Contract(Base):
    """Vendor contract model."""

    __tablename__ = "contracts"

    id = Column(String, primary_key=True)
    contract_number = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    vendor_id = Column(String, ForeignKey("contacts.id"), nullable=False)
    project_id = Column(String, ForeignKey("projects.id"), nullable=True)
    total_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="Active")


class RentalAgreement(Base):
    __tablename__ = "rental_agreements"

    id = Column(String, primary_key=True)
    agreement_number = Column(String, unique=True, nullable=False)
    tenant_id = Column(String, ForeignKey("contacts.id"), nullable=False)
    property_id = Column(String, ForeignKey("properties.id"), nullable=False)
    monthly_rent = Column(Numeric(12, 2), nullable=False)
    security_deposit = Column(Numeric(12, 2), nullable=False, default=0)
    rent_due_day = Column(Integer, nullable=False, default=1)
    start_date = Column(Date, nullable=False)
    status = Column(String, nullable=False, default="Active")


class ProjectAgreement(Base):
    __tablename__ = "project_agreements"

    id = Column(String, primary_key=True)
    agreement_number = Column(String, unique=True, nullable=False)
    client_id = Column(String, ForeignKey("contacts.id"), nullable=False)
    project_id = Column(String, ForeignKey("projects.id"), nullable=False)
    selling_price = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="Active")


class Document(Base):
    """Bill or invoice model."""

    __tablename__ = "documents"

    id = Column(String, primary_key=True)
    kind = Column(String, nullable=False)
    number = Column(String, nullable=False)
    contact_id = Column(String, ForeignKey("contacts.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String, nullable=False, default="Unpaid")
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    description = Column(String, nullable=True)
    category_id = Column(String, ForeignKey("categories.id"), nullable=True)
    project_id = Column(String, ForeignKey("projects.id"), nullable=True)
    building_id = Column(String, ForeignKey("buildings.id"), nullable=True)
    property_id = Column(String, ForeignKey("properties.id"), nullable=True)
    staff_id = Column(String, ForeignKey("contacts.id"), nullable=True)
    contract_id = Column(String, ForeignKey("contracts.id"), nullable=True)
    rental_agreement_id = Column(String, ForeignKey("rental_agreements.id"), nullable=True)
    project_agreement_id = Column(String, ForeignKey("project_agreements.id"), nullable=True)
    invoice_type = Column(String, nullable=True)
    security_deposit_charge = Column(Numeric(12, 2), nullable=False, default=0)
    rental_month = Column(String, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Numbers are unique per kind; case-insensitive uniqueness is enforced by the service
    __table_args__ = (UniqueConstraint("kind", "number", name="uq_document_kind_number"),)

    # Relationships
    line_items = relationship(
        "LineItem",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="LineItem.position",
    )


class LineItem(Base):
    """Categorized bill line model."""

    __tablename__ = "line_items"

    id = Column(Integer, primary_key=True)
    document_id = Column(String, ForeignKey("documents.id"), nullable=False)
    position = Column(Integer, nullable=False)
    category_id = Column(String, ForeignKey("categories.id"), nullable=False)
    unit = Column(String, nullable=False, default="quantity")
    quantity = Column(Numeric(14, 6), nullable=False)
    price_per_unit = Column(Numeric(14, 6), nullable=False)
    net_value = Column(Numeric(12, 2), nullable=False)

    # Relationships
    document = relationship("Document", back_populates="line_items")


class Transaction(Base):
    """Ledger transaction model."""

    __tablename__ = "transactions"

    id = Column(String, primary_key=True)
    transaction_type = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    date = Column(Date, nullable=False)
    account_id = Column(String, ForeignKey("accounts.id"), nullable=False)
    category_id = Column(String, ForeignKey("categories.id"), nullable=True)
    contact_id = Column(String, ForeignKey("contacts.id"), nullable=True)
    project_id = Column(String, ForeignKey("projects.id"), nullable=True)
    building_id = Column(String, ForeignKey("buildings.id"), nullable=True)
    property_id = Column(String, ForeignKey("properties.id"), nullable=True)
    contract_id = Column(String, ForeignKey("contracts.id"), nullable=True)
    bill_id = Column(String, ForeignKey("documents.id"), nullable=True)
    invoice_id = Column(String, ForeignKey("documents.id"), nullable=True)
    batch_id = Column(String, nullable=True)
    reference = Column(String, nullable=True)
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)


class NumberSeries(Base):
    """Document numbering counter model."""

    __tablename__ = "number_series"

    name = Column(String, primary_key=True)
    prefix = Column(String, nullable=False)
    next_number = Column(Integer, nullable=False, default=1)
    padding = Column(Integer, nullable=False, default=5)


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
