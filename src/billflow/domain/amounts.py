"""Amount calculation for bills and invoices.

A document's total comes from exactly one source:

- categorized line items (bills): the sum of their net values;
- rent plus security deposit (rental invoices);
- the flat ``amount`` field otherwise.
"""

import calendar
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from billflow.domain.entities import (
    Document,
    DocumentKind,
    InvoiceType,
    LineItem,
    LineItemUnit,
    ProjectAgreement,
)
from billflow.domain import errors

CENT = Decimal("0.01")


def quantize(value: Decimal) -> Decimal:
    """Round a money value to cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_item_from_quantity(
    category_id: str,
    quantity: Decimal,
    price_per_unit: Decimal,
    unit: LineItemUnit = LineItemUnit.QUANTITY,
) -> LineItem:
    """Build a line item from quantity and unit price (net = qty x price)."""
    return LineItem(
        category_id=category_id,
        unit=unit,
        quantity=quantity,
        price_per_unit=price_per_unit,
        net_value=quantity * price_per_unit,
    )


def edit_quantity(item: LineItem, quantity: Decimal) -> LineItem:
    """Change the quantity and recompute the net value."""
    return replace(item, quantity=quantity, net_value=quantity * item.price_per_unit)


def edit_price_per_unit(item: LineItem, price_per_unit: Decimal) -> LineItem:
    """Change the unit price and recompute the net value."""
    return replace(
        item, price_per_unit=price_per_unit, net_value=item.quantity * price_per_unit
    )


def edit_net_value(item: LineItem, net_value: Decimal) -> LineItem:
    """Set the net value directly and back-derive the unit price.

    A zero quantity is treated as a single item.
    """
    if item.quantity > 0:
        return replace(item, net_value=net_value, price_per_unit=net_value / item.quantity)
    return replace(item, net_value=net_value, price_per_unit=net_value, quantity=Decimal("1"))


def single_category_line_item(category_id: str, amount: Decimal) -> LineItem:
    """Convert a legacy single-category bill into one line item."""
    return line_item_from_quantity(category_id, Decimal("1"), amount)


def line_items_total(items: Iterable[LineItem]) -> Decimal:
    return sum((item.net_value for item in items), Decimal("0"))


def is_rental_invoice(document: Document) -> bool:
    return (
        document.kind == DocumentKind.INVOICE
        and document.invoice_type == InvoiceType.RENTAL
    )


def compute_amount(document: Document, rent_amount: Optional[Decimal] = None) -> Decimal:
    """Derive a document's total.

    Args:
        document: Bill or invoice
        rent_amount: Rent portion for rental invoices; when omitted it is
            taken as ``amount - security_deposit_charge``

    Returns:
        The authoritative amount for the document
    """
    if is_rental_invoice(document):
        if rent_amount is None:
            rent_amount = document.amount - document.security_deposit_charge
        return rent_amount + document.security_deposit_charge
    if document.line_items:
        return line_items_total(document.line_items)
    return document.amount


def with_computed_amount(document: Document) -> Document:
    """Return the document with ``amount`` overwritten by its derived total."""
    amount = compute_amount(document)
    if amount == document.amount:
        return document
    return replace(document, amount=amount)


@dataclass(frozen=True)
class ProratedRent:
    """Pro-rated rent for a partial first month."""

    rent: Decimal
    billable_days: int
    days_in_month: int

    @property
    def is_partial(self) -> bool:
        return self.billable_days < self.days_in_month


def days_in_month(day: date) -> int:
    return calendar.monthrange(day.year, day.month)[1]


def prorate_rent(
    monthly_rent: Decimal, issue_date: date, grace_period_days: int = 0
) -> ProratedRent:
    """Apportion a monthly rent over the remaining days of the issue month.

    billable_days = max(0, days_in_month - day_of_month + 1 - grace)
    """
    month_days = days_in_month(issue_date)
    remaining_days = month_days - issue_date.day + 1
    billable_days = max(0, remaining_days - max(0, grace_period_days))
    daily_rate = monthly_rent / Decimal(month_days)
    return ProratedRent(
        rent=quantize(daily_rate * billable_days),
        billable_days=billable_days,
        days_in_month=month_days,
    )


def rent_description(property_name: str, issue_date: date, prorated: ProratedRent, grace_period_days: int = 0) -> str:
    """Describe a rent invoice, noting pro-ration when the month is partial."""
    description = f"Rent for {property_name} - {issue_date.strftime('%B %Y')}"
    if grace_period_days > 0 or prorated.is_partial:
        description += f" (Pro-rata: {prorated.billable_days} days)"
    return description


def rental_due_date(issue_date: date, rent_due_day: int) -> date:
    """Agreement due day in the issue month, or next month if already past."""
    day = min(rent_due_day, days_in_month(issue_date))
    due = issue_date.replace(day=day)
    if due < issue_date:
        following = issue_date + relativedelta(months=1)
        due = following.replace(day=min(rent_due_day, days_in_month(following)))
    return due


def default_due_date(kind: DocumentKind, issue_date: date) -> date:
    """Invoices are due a week after issue, bills a month after."""
    if kind == DocumentKind.INVOICE:
        return issue_date + timedelta(days=7)
    return issue_date + relativedelta(months=1)


def agreement_remaining_balance(
    agreement: ProjectAgreement,
    documents: Iterable[Document],
    exclude_id: Optional[str] = None,
) -> Decimal:
    """Selling price minus everything already invoiced against the agreement."""
    invoiced = sum(
        (
            doc.amount
            for doc in documents
            if doc.kind == DocumentKind.INVOICE
            and doc.project_agreement_id == agreement.id
            and doc.id != exclude_id
        ),
        Decimal("0"),
    )
    return agreement.selling_price - invoiced


def validate_amount(
    document: Document,
    agreement: Optional[ProjectAgreement] = None,
    documents: Iterable[Document] = (),
    previous: Optional[Document] = None,
) -> Optional[str]:
    """Check the derived amount of a document about to be saved.

    Args:
        document: Document with its amount already derived
        agreement: Project agreement the invoice draws down, if any
        documents: Existing documents (for the agreement balance)
        previous: Stored version of the document when editing

    Returns:
        Rejection reason, or None when the amount is acceptable
    """
    if document.amount <= 0:
        return errors.amount_not_positive()

    if agreement is not None and document.kind == DocumentKind.INVOICE:
        remaining = agreement_remaining_balance(agreement, documents, exclude_id=document.id)
        if document.amount > remaining:
            return errors.agreement_balance_exceeded(remaining)

    paid_amount = previous.paid_amount if previous is not None else document.paid_amount
    if paid_amount > 0 and document.amount < paid_amount:
        return errors.amount_below_paid(paid_amount)

    return None
