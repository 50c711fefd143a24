"""Loopback transaction store that checks payments against the local database."""

from decimal import Decimal

import structlog

from billflow.database.base import Database
from billflow.domain.entities import Transaction
from billflow.gateway.base import RemoteStoreError, TransactionGateway

logger = structlog.get_logger(__name__)

# The server accepts a slightly larger rounding slack on invoices.
BILL_TOLERANCE = Decimal("0.01")
INVOICE_TOLERANCE = Decimal("0.1")


class LocalTransactionGateway(TransactionGateway):
    """Validates transactions the way the remote store does, without saving.

    Used when no remote store is configured; the caller commits accepted
    transactions to the local database itself.
    """

    def __init__(self, db: Database):
        """Initialize loopback gateway.

        Args:
            db: Database instance
        """
        self.db = db

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        if transaction.bill_id:
            self._check_payment(transaction, transaction.bill_id, "Bill", BILL_TOLERANCE)
        if transaction.invoice_id:
            self._check_payment(transaction, transaction.invoice_id, "Invoice", INVOICE_TOLERANCE)
        return transaction

    def _check_payment(
        self, transaction: Transaction, document_id: str, label: str, tolerance: Decimal
    ) -> None:
        document = self.db.get_document(document_id)
        if document is None:
            raise RemoteStoreError(f"{label} not found", status_code=404, code="NOT_FOUND")
        if document.paid_amount + transaction.amount > document.amount + tolerance:
            overpayment = document.paid_amount + transaction.amount - document.amount
            logger.info(
                "local_overpayment_rejected",
                document_id=document_id,
                overpayment=str(overpayment),
            )
            raise RemoteStoreError(
                f"Payment amount ({transaction.amount}) would exceed {label.lower()} amount. "
                f"Current paid: {document.paid_amount}, {label} amount: {document.amount}, "
                f"Overpayment: {overpayment:.2f}",
                status_code=400,
                code="PAYMENT_OVERPAYMENT",
                details={"overpayment": str(overpayment)},
            )
