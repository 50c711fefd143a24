"""Reference entity registration and lookups."""

from datetime import date
from decimal import Decimal
from typing import Optional

import structlog

from billflow.database.base import Database
from billflow.domain.entities import (
    Account,
    AccountType,
    AgreementStatus,
    Building,
    Category,
    CategoryType,
    Contact,
    ContactType,
    Contract,
    ContractStatus,
    Project,
    ProjectAgreement,
    Property,
    RentalAgreement,
    new_id,
)
from billflow.domain.errors import ConflictError, NotFoundError, ValidationError
from billflow.domain import errors
from billflow.domain.numbering import DEFAULT_SERIES

logger = structlog.get_logger(__name__)

# Categories the payment and invoicing flows look up by name
SYSTEM_CATEGORIES = [
    ("Rental Income", CategoryType.INCOME),
    ("Security Deposit", CategoryType.INCOME),
    ("Service Charge Income", CategoryType.INCOME),
    ("Project Sales", CategoryType.INCOME),
    ("Maintenance", CategoryType.EXPENSE),
    ("Maintenance (Tenant)", CategoryType.EXPENSE),
    ("Utilities", CategoryType.EXPENSE),
    ("Construction", CategoryType.EXPENSE),
    ("Salaries", CategoryType.EXPENSE),
]

DEFAULT_ACCOUNTS = [
    ("Cash", AccountType.CASH),
    ("Internal Clearing", AccountType.CLEARING),
]


def _require_name(name: str, what: str) -> str:
    if not name or not name.strip():
        raise ValidationError(f"{what} is required.")
    return name.strip()


class DirectoryService:
    """Service for managing contacts, places, categories, accounts and agreements."""

    def __init__(self, db: Database):
        """Initialize directory service.

        Args:
            db: Database instance
        """
        self.db = db

    def initialize_defaults(self) -> dict[str, int]:
        """Create system categories, default accounts and numbering series.

        Existing entries are left alone, so this is safe to run repeatedly.

        Returns:
            Number of categories, accounts and series created
        """
        snapshot = self.db.snapshot()
        created = {"categories": 0, "accounts": 0, "series": 0}

        for name, category_type in SYSTEM_CATEGORIES:
            if snapshot.category_by_name(name, category_type) is None:
                self.db.add_category(Category(id=new_id(), name=name, category_type=category_type))
                created["categories"] += 1

        existing_accounts = {account.name for account in snapshot.accounts}
        for name, account_type in DEFAULT_ACCOUNTS:
            if name not in existing_accounts:
                self.db.add_account(Account(id=new_id(), name=name, account_type=account_type))
                created["accounts"] += 1

        for series in DEFAULT_SERIES:
            if snapshot.series(series.name) is None:
                self.db.update_number_series(series)
                created["series"] += 1

        logger.info("defaults_initialized", **created)
        return created

    # Contacts and places
    def add_contact(self, name: str, contact_type: ContactType) -> Contact:
        contact = Contact(id=new_id(), name=_require_name(name, "Contact name"), contact_type=contact_type)
        self.db.add_contact(contact)
        return contact

    def add_project(self, name: str) -> Project:
        project = Project(id=new_id(), name=_require_name(name, "Project name"))
        self.db.add_project(project)
        return project

    def add_building(self, name: str) -> Building:
        building = Building(id=new_id(), name=_require_name(name, "Building name"))
        self.db.add_building(building)
        return building

    def add_property(self, name: str, building_id: str, owner_id: Optional[str] = None) -> Property:
        """Register a property inside a building.

        Raises:
            NotFoundError: If the building or owner doesn't exist
        """
        snapshot = self.db.snapshot()
        if snapshot.building(building_id) is None:
            raise NotFoundError(errors.entity_not_found("Building", building_id))
        if owner_id is not None and snapshot.contact(owner_id) is None:
            raise NotFoundError(errors.entity_not_found("Contact", owner_id))
        prop = Property(
            id=new_id(), name=_require_name(name, "Property name"), building_id=building_id, owner_id=owner_id
        )
        self.db.add_property(prop)
        return prop

    def add_category(
        self, name: str, category_type: CategoryType, parent_id: Optional[str] = None
    ) -> Category:
        """Create a category.

        Raises:
            NotFoundError: If the parent doesn't exist
            ConflictError: If a category of that type and name exists
        """
        snapshot = self.db.snapshot()
        if parent_id is not None and snapshot.category(parent_id) is None:
            raise NotFoundError(errors.entity_not_found("Category", parent_id))
        name = _require_name(name, "Category name")
        if snapshot.category_by_name(name, category_type) is not None:
            raise ConflictError(f"{category_type.value} category '{name}' already exists")
        category = Category(id=new_id(), name=name, category_type=category_type, parent_id=parent_id)
        self.db.add_category(category)
        return category

    def add_account(self, name: str, account_type: AccountType = AccountType.BANK) -> Account:
        """Create a payment account.

        Raises:
            ConflictError: If an account with the same name exists
        """
        name = _require_name(name, "Account name")
        if any(account.name == name for account in self.db.snapshot().accounts):
            raise ConflictError(f"Account with name '{name}' already exists")
        account = Account(id=new_id(), name=name, account_type=account_type)
        self.db.add_account(account)
        return account

    # Contracts
    def add_contract(
        self,
        contract_number: str,
        name: str,
        vendor_id: str,
        total_amount: Decimal,
        project_id: Optional[str] = None,
    ) -> Contract:
        """Create a vendor contract.

        Raises:
            NotFoundError: If the vendor or project doesn't exist
            ValidationError: If the total is not positive
        """
        snapshot = self.db.snapshot()
        if snapshot.contact(vendor_id) is None:
            raise NotFoundError(errors.entity_not_found("Vendor", vendor_id))
        if project_id is not None and snapshot.project(project_id) is None:
            raise NotFoundError(errors.entity_not_found("Project", project_id))
        if total_amount <= 0:
            raise ValidationError("Contract total must be greater than zero.")
        contract = Contract(
            id=new_id(),
            contract_number=_require_name(contract_number, "Contract number"),
            name=_require_name(name, "Contract name"),
            vendor_id=vendor_id,
            total_amount=total_amount,
            project_id=project_id,
        )
        self.db.add_contract(contract)
        return contract

    def terminate_contract(self, contract_id: str) -> None:
        if self.db.snapshot().contract(contract_id) is None:
            raise NotFoundError(errors.entity_not_found("Contract", contract_id))
        self.db.update_contract_status(contract_id, ContractStatus.TERMINATED)

    # Agreements
    def add_rental_agreement(
        self,
        agreement_number: str,
        tenant_id: str,
        property_id: str,
        monthly_rent: Decimal,
        start_date: date,
        security_deposit: Decimal = Decimal("0"),
        rent_due_day: int = 1,
    ) -> RentalAgreement:
        """Create a rental agreement.

        Raises:
            NotFoundError: If the tenant or property doesn't exist
            ValidationError: If the rent or due day is out of range
        """
        snapshot = self.db.snapshot()
        if snapshot.contact(tenant_id) is None:
            raise NotFoundError(errors.entity_not_found("Tenant", tenant_id))
        if snapshot.property(property_id) is None:
            raise NotFoundError(errors.entity_not_found("Property", property_id))
        if monthly_rent <= 0:
            raise ValidationError("Monthly rent must be greater than zero.")
        if not 1 <= rent_due_day <= 31:
            raise ValidationError("Rent due day must be between 1 and 31.")
        agreement = RentalAgreement(
            id=new_id(),
            agreement_number=_require_name(agreement_number, "Agreement number"),
            tenant_id=tenant_id,
            property_id=property_id,
            monthly_rent=monthly_rent,
            security_deposit=security_deposit,
            rent_due_day=rent_due_day,
            start_date=start_date,
        )
        self.db.add_rental_agreement(agreement)
        return agreement

    def add_project_agreement(
        self, agreement_number: str, client_id: str, project_id: str, selling_price: Decimal
    ) -> ProjectAgreement:
        """Create a project (unit sale) agreement.

        Raises:
            NotFoundError: If the client or project doesn't exist
        """
        snapshot = self.db.snapshot()
        if snapshot.contact(client_id) is None:
            raise NotFoundError(errors.entity_not_found("Client", client_id))
        if snapshot.project(project_id) is None:
            raise NotFoundError(errors.entity_not_found("Project", project_id))
        agreement = ProjectAgreement(
            id=new_id(),
            agreement_number=_require_name(agreement_number, "Agreement number"),
            client_id=client_id,
            project_id=project_id,
            selling_price=selling_price,
        )
        self.db.add_project_agreement(agreement)
        return agreement

    def set_agreement_status(self, agreement_id: str, status: AgreementStatus) -> None:
        snapshot = self.db.snapshot()
        if snapshot.rental_agreement(agreement_id) is None and snapshot.project_agreement(agreement_id) is None:
            raise NotFoundError(errors.entity_not_found("Agreement", agreement_id))
        self.db.update_agreement_status(agreement_id, status)
        logger.info("agreement_status_changed", agreement_id=agreement_id, status=status.value)
