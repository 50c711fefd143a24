"""Abstract entity store interface."""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

# Import entities directly to avoid circular import through domain/__init__.py
from billflow.domain.entities import (
    Account,
    AgreementStatus,
    Building,
    Category,
    Contact,
    Contract,
    ContractStatus,
    Document,
    NumberSeries,
    Project,
    ProjectAgreement,
    Property,
    RentalAgreement,
    Snapshot,
    Transaction,
)


class Database(ABC):
    """Abstract entity store for billflow.

    Reads go through ``snapshot()``; every write is a discrete command so the
    engine never mutates shared state directly.
    """

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def snapshot(self) -> Snapshot:
        """Return an immutable view of every stored entity."""
        pass

    # Reference entity operations
    @abstractmethod
    def add_account(self, account: Account) -> str:
        """Store a payment account. Returns its ID."""
        pass

    @abstractmethod
    def add_contact(self, contact: Contact) -> str:
        """Store a contact. Returns its ID."""
        pass

    @abstractmethod
    def add_project(self, project: Project) -> str:
        """Store a project. Returns its ID."""
        pass

    @abstractmethod
    def add_building(self, building: Building) -> str:
        """Store a building. Returns its ID."""
        pass

    @abstractmethod
    def add_property(self, prop: Property) -> str:
        """Store a property. Returns its ID."""
        pass

    @abstractmethod
    def add_category(self, category: Category) -> str:
        """Store a category. Returns its ID."""
        pass

    # Contract operations
    @abstractmethod
    def add_contract(self, contract: Contract) -> str:
        """Store a vendor contract. Returns its ID."""
        pass

    @abstractmethod
    def update_contract_status(self, contract_id: str, status: ContractStatus) -> None:
        """Set a contract's status."""
        pass

    # Agreement operations
    @abstractmethod
    def add_rental_agreement(self, agreement: RentalAgreement) -> str:
        """Store a rental agreement. Returns its ID."""
        pass

    @abstractmethod
    def add_project_agreement(self, agreement: ProjectAgreement) -> str:
        """Store a project agreement. Returns its ID."""
        pass

    @abstractmethod
    def update_agreement_status(self, agreement_id: str, status: AgreementStatus) -> None:
        """Set the status of a rental or project agreement."""
        pass

    # Document operations
    @abstractmethod
    def add_document(self, document: Document) -> str:
        """Store a new bill or invoice. Returns its ID."""
        pass

    @abstractmethod
    def get_document(self, document_id: str) -> Optional[Document]:
        """Get a bill or invoice by ID."""
        pass

    @abstractmethod
    def update_document(self, document: Document) -> None:
        """Replace a stored bill or invoice, including its line items."""
        pass

    @abstractmethod
    def delete_document(self, document_id: str) -> None:
        """Delete a bill or invoice."""
        pass

    # Transaction operations
    @abstractmethod
    def add_transaction(self, transaction: Transaction) -> str:
        """Store a transaction. Returns its ID."""
        pass

    @abstractmethod
    def batch_add_transactions(self, transactions: Iterable[Transaction]) -> list[str]:
        """Store several transactions in one commit. Returns their IDs."""
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        """Get a transaction by ID."""
        pass

    @abstractmethod
    def update_transaction(self, transaction: Transaction) -> None:
        """Replace a stored transaction."""
        pass

    @abstractmethod
    def delete_transaction(self, transaction_id: str) -> None:
        """Delete a transaction."""
        pass

    # Number series operations
    @abstractmethod
    def update_number_series(self, series: NumberSeries) -> None:
        """Create or replace a numbering series."""
        pass
