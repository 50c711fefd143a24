"""Shared domain error messages and error types."""

from decimal import Decimal


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic.

    The message is the user-facing rejection reason; nothing has been
    persisted when it is raised.
    """


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class DependencyError(DomainError):
    """Operation blocked due to dependent domain data."""


class MissingSystemCategoryError(DomainError):
    """A required built-in category is absent from the store.

    This signals a corrupted or incompletely initialized store rather than a
    user input problem, so the whole save is aborted.
    """

    def __init__(self, category_name: str):
        self.category_name = category_name
        super().__init__(
            f"Critical Error: '{category_name}' category not found. Please check settings."
        )


def format_money(value: Decimal) -> str:
    """Render an amount the way rejection messages show it."""
    return f"{value:,.2f}"


def entity_not_found(entity: str, entity_id: str) -> str:
    """Return message for a missing entity."""
    return f"{entity} {entity_id} not found"


def document_label(kind_value: str) -> str:
    """Return 'Bill' or 'Invoice' for a document kind value."""
    return kind_value.capitalize()


def duplicate_number(kind_value: str) -> str:
    """Return message for a document number already in use."""
    return f"This {kind_value} number is already in use. Please choose a unique number."


def number_required(kind_value: str) -> str:
    return f"{document_label(kind_value)} number is required."


def line_items_required() -> str:
    return "Please add at least one expense category item."


def amount_not_positive() -> str:
    return "Amount must be greater than zero."


def amount_below_paid(paid_amount: Decimal) -> str:
    """Return message when an edit would drop the amount below payments."""
    return (
        f"Cannot reduce amount below the already paid amount of "
        f"{format_money(paid_amount)}."
    )


def agreement_cancelled() -> str:
    return "Cannot update invoice: The associated project agreement is cancelled."


def agreement_balance_exceeded(remaining: Decimal) -> str:
    return (
        f"Invoice amount cannot exceed remaining agreement balance of "
        f"{format_money(remaining)}."
    )


def document_delete_blocked(kind_value: str, paid_amount: Decimal) -> str:
    """Return message when a document with payments is deleted."""
    return (
        f"Cannot delete this {kind_value} because it has associated payments "
        f"({format_money(paid_amount)}). Please delete the payment transactions "
        "from the ledger first."
    )


def payment_not_positive() -> str:
    return "Payment amount must be greater than zero."


def payment_exceeds_balance(number: str, amount: Decimal, balance: Decimal) -> str:
    """Return message when a payment is larger than the remaining balance."""
    return (
        f"Payment for #{number} ({format_money(amount)}) exceeds balance due "
        f"({format_money(balance)})."
    )


def payment_account_required() -> str:
    return "Please select a payment account."


def bulk_total_not_positive() -> str:
    return "Total payment amount must be greater than zero."


def contract_vendor_mismatch() -> str:
    return "Contract belongs to a different vendor."


def contract_project_mismatch() -> str:
    return (
        "This contract belongs to a different project. A bill can only be linked "
        "to a contract with the same project."
    )


def allocation_conflict() -> str:
    return "A document can be allocated to only one of project, building or staff."


def property_building_mismatch() -> str:
    return "Selected property does not belong to the selected building."


def agreement_building_mismatch() -> str:
    return "Rental agreement property is not in the selected building."


def agreement_project_mismatch() -> str:
    return "Project agreement belongs to a different project."


def rent_exceeds_remaining(remaining: Decimal) -> str:
    return f"Amount cannot exceed remaining balance of {format_money(remaining)}."


def deposit_exceeds_remaining(remaining: Decimal) -> str:
    return (
        f"Security deposit payment cannot exceed remaining deposit of "
        f"{format_money(remaining)}."
    )


def not_an_invoice(number: str) -> str:
    return f"Document #{number} is not an invoice."
