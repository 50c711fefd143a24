"""Payment allocation against bills and invoices.

Payments are recorded as transactions linked to their document through
``bill_id`` or ``invoice_id``. The document's ``paid_amount`` and ``status``
are always re-derived from the payment being applied or rolled back, so the
balance invariant ``0 <= paid_amount <= amount`` holds after any sequence of
payments, edits and deletions.

Bulk payments are sent one transaction at a time to a ``TransactionGateway``;
per-document failures are collected in the result instead of aborting the
batch, and only the accepted transactions are committed locally.
"""

import random
import string
import time
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional

import structlog

from billflow.database.base import Database
from billflow.domain.contracts import contract_status_after_payments
from billflow.domain.entities import (
    CategoryType,
    Document,
    DocumentKind,
    DocumentStatus,
    InvoiceType,
    Snapshot,
    Transaction,
    TransactionType,
    new_id,
)
from billflow.domain.errors import (
    MissingSystemCategoryError,
    NotFoundError,
    ValidationError,
)
from billflow.domain import errors
from billflow.gateway.base import TransactionGateway
from billflow.gateway.local import LocalTransactionGateway

logger = structlog.get_logger(__name__)

EPSILON = Decimal("0.01")

RENTAL_INCOME_CATEGORY = "Rental Income"
SECURITY_DEPOSIT_CATEGORY = "Security Deposit"
SERVICE_CHARGE_CATEGORY = "Service Charge Income"
TENANT_CATEGORY_SUFFIX = " (Tenant)"

CONFLICT_CODES = frozenset({"BILL_LOCKED", "INVOICE_LOCKED", "BILL_VERSION_MISMATCH"})
OVERPAYMENT_CODE = "PAYMENT_OVERPAYMENT"


def derive_status(
    amount: Decimal,
    paid_amount: Decimal,
    due_date: Optional[date] = None,
    today: Optional[date] = None,
) -> DocumentStatus:
    """Status implied by a document's amount, payments and due date."""
    if paid_amount >= amount - EPSILON:
        return DocumentStatus.PAID
    if due_date is not None and today is not None and due_date < today:
        return DocumentStatus.OVERDUE
    if paid_amount > 0:
        return DocumentStatus.PARTIALLY_PAID
    return DocumentStatus.UNPAID


def validate_payment(document: Document, amount: Decimal) -> Optional[str]:
    """Check a single payment against a document's balance.

    Returns:
        Rejection reason, or None when the payment is acceptable
    """
    if amount <= 0:
        return errors.payment_not_positive()
    if amount > document.balance + EPSILON:
        return errors.payment_exceeds_balance(document.number, amount, document.balance)
    return None


def apply_transaction_effect(
    document: Document,
    amount: Decimal,
    today: Optional[date] = None,
    reverse: bool = False,
) -> Document:
    """Add (or with ``reverse`` remove) a payment on a document.

    ``paid_amount`` is clamped to ``[0, amount]`` and the status recomputed.
    """
    paid = document.paid_amount - amount if reverse else document.paid_amount + amount
    paid = min(max(paid, Decimal("0")), document.amount)
    return replace(
        document,
        paid_amount=paid,
        status=derive_status(document.amount, paid, document.due_date, today),
        version=document.version + 1,
    )


def payment_category_id(document: Document) -> Optional[str]:
    if document.category_id:
        return document.category_id
    if document.line_items:
        return document.line_items[0].category_id
    return None


def resolve_payment_party(document: Document, snapshot: Snapshot) -> tuple[str, Optional[str]]:
    """Contact and category a payment on ``document`` is booked against.

    Bills charged to a tenant through a rental agreement pay out against the
    tenant, using the "<category> (Tenant)" expense category when one exists.
    The bill itself is left untouched.

    Returns:
        ``(contact_id, category_id)``
    """
    contact_id = document.contact_id
    category_id = payment_category_id(document)
    if document.kind != DocumentKind.BILL or not document.rental_agreement_id:
        return contact_id, category_id

    agreement = snapshot.rental_agreement(document.rental_agreement_id)
    if agreement is None:
        return contact_id, category_id

    category = snapshot.category(category_id)
    if category is not None:
        tenant_category = snapshot.category_by_name(
            f"{category.name}{TENANT_CATEGORY_SUFFIX}", CategoryType.EXPENSE
        )
        if tenant_category is not None:
            category_id = tenant_category.id
    return agreement.tenant_id, category_id


def build_payment_transaction(
    document: Document,
    amount: Decimal,
    account_id: str,
    payment_date: date,
    snapshot: Snapshot,
    description: Optional[str] = None,
    reference: Optional[str] = None,
    batch_id: Optional[str] = None,
) -> Transaction:
    """Build the transaction that records a payment on ``document``."""
    contact_id, category_id = resolve_payment_party(document, snapshot)
    is_bill = document.kind == DocumentKind.BILL
    return Transaction(
        id=new_id(),
        transaction_type=TransactionType.EXPENSE if is_bill else TransactionType.INCOME,
        amount=amount,
        date=payment_date,
        account_id=account_id,
        category_id=category_id,
        contact_id=contact_id,
        project_id=document.project_id,
        building_id=document.building_id,
        property_id=document.property_id,
        contract_id=document.contract_id,
        bill_id=document.id if is_bill else None,
        invoice_id=None if is_bill else document.id,
        batch_id=batch_id,
        reference=reference,
        description=description
        or f"Payment for {errors.document_label(document.kind.value)} #{document.number}",
    )


def new_batch_id() -> str:
    """Batch id shared by every transaction of one bulk payment."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
    return f"batch-{int(time.time() * 1000)}-{suffix}"


class FailureKind(str, Enum):
    CONFLICT = "conflict"
    OVERPAYMENT = "overpayment"
    UNKNOWN = "unknown"


def classify_failure(error: Exception) -> FailureKind:
    """Classify a rejected save by HTTP status and error code.

    Overpayment is recognised by its code alone; a bare 400 is unknown, as is
    any error without a status or code.
    """
    status_code = getattr(error, "status_code", None)
    code = getattr(error, "code", None)
    if status_code == 409 or code in CONFLICT_CODES:
        return FailureKind.CONFLICT
    if code == OVERPAYMENT_CODE:
        return FailureKind.OVERPAYMENT
    return FailureKind.UNKNOWN


@dataclass(frozen=True)
class PaymentProposal:
    """One row of a bulk payment, pre-filled with the full balance."""

    document: Document
    amount: Decimal


@dataclass(frozen=True)
class PaymentSuccess:
    document_id: str
    number: str
    transaction: Transaction


@dataclass(frozen=True)
class PaymentFailure:
    document_id: str
    number: str
    kind: FailureKind
    error: str


@dataclass(frozen=True)
class BulkPaymentResult:
    """Outcome of a bulk payment.

    Only ``succeeded`` transactions were committed; nothing was committed when
    every payment failed.
    """

    batch_id: str
    succeeded: tuple[PaymentSuccess, ...]
    failed: tuple[PaymentFailure, ...]
    label: str = "bill"

    @property
    def committed(self) -> bool:
        return bool(self.succeeded)

    @property
    def failed_numbers(self) -> list[str]:
        return [failure.number for failure in self.failed]

    @property
    def message(self) -> str:
        """User-facing summary of the batch."""
        if not self.succeeded:
            first = self.failed[0] if self.failed else None
            if first is not None and first.kind == FailureKind.CONFLICT:
                return (
                    f"Payment conflict detected. One or more {self.label}s are being "
                    "processed by another user. Please refresh and try again."
                )
            if first is not None and first.kind == FailureKind.OVERPAYMENT:
                return (
                    "Overpayment detected. "
                    f"{first.error or f'One or more payments exceed the {self.label} amount.'}"
                )
            reason = first.error if first is not None and first.error else "Unknown error occurred"
            return f"Failed to process payments: {reason}"
        if self.failed:
            return (
                f"Processed {len(self.succeeded)} payment(s). Failed for {self.label}(s): "
                f"{', '.join(self.failed_numbers)}. Please refresh and try again."
            )
        return f"Processed bulk payment for {len(self.succeeded)} {self.label}s."


def propose_bulk_payments(documents: Iterable[Document]) -> list[PaymentProposal]:
    """Order documents by due date (issue date when unset) at full balance."""
    ordered = sorted(documents, key=lambda doc: doc.due_date or doc.issue_date)
    return [PaymentProposal(document=doc, amount=doc.balance) for doc in ordered]


class PaymentService:
    """Service for applying payments to bills and invoices."""

    def __init__(self, db: Database, gateway: Optional[TransactionGateway] = None):
        """Initialize payment service.

        Args:
            db: Database instance
            gateway: Store that accepts bulk payment transactions; defaults to
                a loopback gateway validating against ``db``
        """
        self.db = db
        self.gateway = gateway or LocalTransactionGateway(db)

    def _get_document(self, snapshot: Snapshot, document_id: str) -> Document:
        document = snapshot.document(document_id)
        if document is None:
            raise NotFoundError(errors.entity_not_found("Document", document_id))
        return document

    def _check_account(self, snapshot: Snapshot, account_id: Optional[str]) -> None:
        if not account_id:
            raise ValidationError(errors.payment_account_required())
        if snapshot.account(account_id) is None:
            raise NotFoundError(errors.entity_not_found("Account", account_id))

    def _commit(self, transactions: list[Transaction]) -> None:
        """Store accepted transactions and re-derive their documents."""
        self.db.batch_add_transactions(transactions)
        today = date.today()
        for transaction in transactions:
            if not transaction.document_id:
                continue
            document = self.db.get_document(transaction.document_id)
            if document is None:
                continue
            self.db.update_document(apply_transaction_effect(document, transaction.amount, today))
        for contract_id in {t.contract_id for t in transactions if t.contract_id}:
            self.refresh_contract_status(contract_id)

    def refresh_contract_status(self, contract_id: str) -> None:
        """Complete or reopen a contract based on its linked payments."""
        snapshot = self.db.snapshot()
        contract = snapshot.contract(contract_id)
        if contract is None:
            return
        status = contract_status_after_payments(contract, snapshot.transactions)
        if status != contract.status:
            self.db.update_contract_status(contract_id, status)
            logger.info(
                "contract_status_changed",
                contract_id=contract_id,
                old_status=contract.status.value,
                new_status=status.value,
            )

    def apply_payment(
        self,
        document_id: str,
        amount: Decimal,
        account_id: str,
        payment_date: Optional[date] = None,
        reference: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Transaction:
        """Record a single payment on a bill or invoice.

        Args:
            document_id: Bill or invoice ID
            amount: Payment amount
            account_id: Payment account ID
            payment_date: Payment date (defaults to today)
            reference: Optional payment reference
            description: Optional description (defaults to "Payment for ...")

        Returns:
            The recorded transaction

        Raises:
            NotFoundError: If the document or account doesn't exist
            ValidationError: If the amount is not positive or exceeds the balance
        """
        snapshot = self.db.snapshot()
        document = self._get_document(snapshot, document_id)
        self._check_account(snapshot, account_id)

        reason = validate_payment(document, amount)
        if reason is not None:
            raise ValidationError(reason)

        transaction = build_payment_transaction(
            document,
            amount,
            account_id,
            payment_date or date.today(),
            snapshot,
            description=description,
            reference=reference,
        )
        self._commit([transaction])
        logger.info(
            "payment_applied",
            document_id=document_id,
            amount=str(amount),
            transaction_id=transaction.id,
        )
        return transaction

    def propose_bulk_payments(self, document_ids: Iterable[str]) -> list[PaymentProposal]:
        """Pre-fill a bulk payment with each document's full balance."""
        snapshot = self.db.snapshot()
        documents = [self._get_document(snapshot, doc_id) for doc_id in dict.fromkeys(document_ids)]
        return propose_bulk_payments(documents)

    async def apply_bulk_payment(
        self,
        document_ids: Iterable[str],
        payment_map: dict[str, Decimal],
        account_id: str,
        payment_date: Optional[date] = None,
        reference: Optional[str] = None,
    ) -> BulkPaymentResult:
        """Pay several documents in one batch.

        Transactions are saved one at a time through the gateway in the order
        given. A rejected save is recorded as a failure for that document and
        the batch continues; afterwards only the accepted transactions are
        committed to the local store.

        Args:
            document_ids: Documents to pay, in order
            payment_map: Payment amount per document ID; missing or zero
                amounts are skipped
            account_id: Payment account ID
            payment_date: Payment date (defaults to today)
            reference: Optional reference shared by the batch

        Returns:
            BulkPaymentResult with accepted and rejected payments

        Raises:
            NotFoundError: If a document or the account doesn't exist
            ValidationError: If the batch is rejected before anything is sent
        """
        snapshot = self.db.snapshot()
        documents = [self._get_document(snapshot, doc_id) for doc_id in dict.fromkeys(document_ids)]
        self._check_account(snapshot, account_id)

        payments = {doc.id: payment_map.get(doc.id, Decimal("0")) for doc in documents}
        if sum(payments.values(), Decimal("0")) <= 0:
            raise ValidationError(errors.bulk_total_not_positive())
        for document in documents:
            amount = payments[document.id]
            if amount < 0:
                raise ValidationError(errors.payment_not_positive())
            if amount > document.balance + EPSILON:
                raise ValidationError(
                    errors.payment_exceeds_balance(document.number, amount, document.balance)
                )

        batch_id = new_batch_id()
        payment_date = payment_date or date.today()
        label = "bill" if all(doc.kind == DocumentKind.BILL for doc in documents) else "invoice"
        logger.info("bulk_payment_started", batch_id=batch_id, documents=len(documents))

        succeeded: list[PaymentSuccess] = []
        failed: list[PaymentFailure] = []
        for document in documents:
            amount = payments[document.id]
            if amount <= 0:
                continue
            transaction = build_payment_transaction(
                document,
                amount,
                account_id,
                payment_date,
                snapshot,
                description=(
                    f"Bulk Payment: {reference or label.capitalize() + 's'} "
                    f"({errors.document_label(document.kind.value)} #{document.number})"
                ),
                reference=reference,
                batch_id=batch_id,
            )
            try:
                saved = await self.gateway.save_transaction(transaction)
            except Exception as e:
                # Any failure stays with its document; the batch carries on
                kind = classify_failure(e)
                if kind == FailureKind.CONFLICT:
                    logger.warning(
                        "payment_conflict",
                        document_id=document.id,
                        number=document.number,
                        error=str(e),
                    )
                else:
                    logger.error(
                        "payment_rejected",
                        document_id=document.id,
                        number=document.number,
                        kind=kind.value,
                        error=str(e),
                    )
                failed.append(PaymentFailure(document.id, document.number, kind, str(e)))
                continue
            succeeded.append(PaymentSuccess(document.id, document.number, saved))

        result = BulkPaymentResult(
            batch_id=batch_id, succeeded=tuple(succeeded), failed=tuple(failed), label=label
        )
        if not succeeded:
            logger.warning("bulk_payment_failed", batch_id=batch_id, failed=len(failed))
            return result

        self._commit([success.transaction for success in succeeded])
        logger.info(
            "bulk_payment_completed",
            batch_id=batch_id,
            succeeded=len(succeeded),
            failed=len(failed),
        )
        return result

    def rental_remaining(self, invoice_id: str) -> tuple[Decimal, Decimal]:
        """Remaining rent and security deposit on a rental invoice.

        Returns:
            ``(rent_remaining, deposit_remaining)``
        """
        snapshot = self.db.snapshot()
        invoice = self._get_document(snapshot, invoice_id)
        return self._rental_remaining(invoice, snapshot)

    def _rental_remaining(self, invoice: Document, snapshot: Snapshot) -> tuple[Decimal, Decimal]:
        rent_due = invoice.amount - invoice.security_deposit_charge
        deposit_due = invoice.security_deposit_charge
        rent_category = snapshot.category_by_name(RENTAL_INCOME_CATEGORY)
        deposit_category = snapshot.category_by_name(SECURITY_DEPOSIT_CATEGORY)
        payments = [
            t
            for t in snapshot.transactions
            if t.invoice_id == invoice.id and t.transaction_type == TransactionType.INCOME
        ]
        rent_paid = sum(
            (t.amount for t in payments if rent_category and t.category_id == rent_category.id),
            Decimal("0"),
        )
        deposit_paid = sum(
            (t.amount for t in payments if deposit_category and t.category_id == deposit_category.id),
            Decimal("0"),
        )
        return max(Decimal("0"), rent_due - rent_paid), max(Decimal("0"), deposit_due - deposit_paid)

    def _rent_category_id(self, invoice: Document, snapshot: Snapshot) -> str:
        category_id = invoice.category_id
        if not category_id:
            if invoice.invoice_type == InvoiceType.SECURITY_DEPOSIT:
                category = snapshot.category_by_name(SECURITY_DEPOSIT_CATEGORY)
            elif invoice.invoice_type == InvoiceType.SERVICE_CHARGE:
                category = snapshot.category_by_name(SERVICE_CHARGE_CATEGORY)
            else:
                category = None
            category = category or snapshot.category_by_name(RENTAL_INCOME_CATEGORY)
            category_id = category.id if category else None
        if not category_id:
            raise MissingSystemCategoryError(RENTAL_INCOME_CATEGORY)
        return category_id

    def receive_rental_payment(
        self,
        invoice_id: str,
        rent_amount: Decimal,
        deposit_amount: Decimal,
        account_id: str,
        payment_date: Optional[date] = None,
    ) -> list[Transaction]:
        """Receive a rental invoice payment split into rent and deposit.

        The rent portion is booked to "Rental Income" (or the invoice's own
        category) and the deposit portion to "Security Deposit"; each is
        capped by its own remaining amount.

        Returns:
            The recorded transactions (one or two)

        Raises:
            NotFoundError: If the invoice or account doesn't exist
            ValidationError: If an amount is invalid
            MissingSystemCategoryError: If a required category is missing
        """
        snapshot = self.db.snapshot()
        invoice = self._get_document(snapshot, invoice_id)
        if invoice.kind != DocumentKind.INVOICE:
            raise ValidationError(errors.not_an_invoice(invoice.number))
        self._check_account(snapshot, account_id)

        if rent_amount < 0 or deposit_amount < 0:
            raise ValidationError(errors.payment_not_positive())
        if rent_amount + deposit_amount <= 0:
            raise ValidationError(errors.bulk_total_not_positive())
        rent_remaining, deposit_remaining = self._rental_remaining(invoice, snapshot)
        if rent_amount > rent_remaining + EPSILON:
            raise ValidationError(errors.rent_exceeds_remaining(rent_remaining))
        if deposit_amount > deposit_remaining + EPSILON:
            raise ValidationError(errors.deposit_exceeds_remaining(deposit_remaining))

        payment_date = payment_date or date.today()
        transactions = []
        if rent_amount > 0:
            transactions.append(
                replace(
                    build_payment_transaction(
                        invoice,
                        rent_amount,
                        account_id,
                        payment_date,
                        snapshot,
                        description=f"Rent payment for Invoice #{invoice.number}",
                    ),
                    category_id=self._rent_category_id(invoice, snapshot),
                )
            )
        if deposit_amount > 0:
            deposit_category = snapshot.category_by_name(SECURITY_DEPOSIT_CATEGORY)
            if deposit_category is None:
                raise MissingSystemCategoryError(SECURITY_DEPOSIT_CATEGORY)
            transactions.append(
                replace(
                    build_payment_transaction(
                        invoice,
                        deposit_amount,
                        account_id,
                        payment_date,
                        snapshot,
                        description=f"Security Deposit for Invoice #{invoice.number}",
                    ),
                    category_id=deposit_category.id,
                )
            )

        self._commit(transactions)
        logger.info(
            "rental_payment_received",
            invoice_id=invoice_id,
            rent=str(rent_amount),
            deposit=str(deposit_amount),
        )
        return transactions

    def delete_transaction(self, transaction_id: str) -> None:
        """Delete a transaction and roll back its document's payment.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        transaction = self.db.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(errors.entity_not_found("Transaction", transaction_id))

        self.db.delete_transaction(transaction_id)
        if transaction.document_id:
            document = self.db.get_document(transaction.document_id)
            if document is not None:
                self.db.update_document(
                    apply_transaction_effect(document, transaction.amount, date.today(), reverse=True)
                )
        if transaction.contract_id:
            self.refresh_contract_status(transaction.contract_id)
        logger.info("transaction_deleted", transaction_id=transaction_id)

    def update_transaction_amount(self, transaction_id: str, amount: Decimal) -> Transaction:
        """Change a payment's amount and re-derive its document.

        Raises:
            NotFoundError: If the transaction doesn't exist
            ValidationError: If the new amount is not positive or would
                overpay the document
        """
        transaction = self.db.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError(errors.entity_not_found("Transaction", transaction_id))
        if amount <= 0:
            raise ValidationError(errors.payment_not_positive())

        today = date.today()
        document = self.db.get_document(transaction.document_id) if transaction.document_id else None
        if document is not None:
            rolled_back = apply_transaction_effect(document, transaction.amount, today, reverse=True)
            reason = validate_payment(rolled_back, amount)
            if reason is not None:
                raise ValidationError(reason)

        updated = replace(transaction, amount=amount)
        self.db.update_transaction(updated)
        if document is not None:
            self.db.update_document(apply_transaction_effect(rolled_back, amount, today))
        if transaction.contract_id:
            self.refresh_contract_status(transaction.contract_id)
        logger.info(
            "transaction_amount_updated",
            transaction_id=transaction_id,
            old_amount=str(transaction.amount),
            new_amount=str(amount),
        )
        return updated
