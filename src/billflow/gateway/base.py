"""Abstract remote transaction store."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from billflow.domain.entities import Transaction


class RemoteStoreError(Exception):
    """The remote store rejected a transaction.

    Attributes:
        status_code: HTTP status code, when the rejection came over HTTP
        code: Machine-readable reason such as ``BILL_LOCKED`` or
            ``PAYMENT_OVERPAYMENT``
        details: Raw error payload
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.details = details


class TransactionGateway(ABC):
    """Persists one transaction at a time to the authoritative store."""

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> Transaction:
        """Save a transaction.

        Returns:
            The transaction as accepted by the store

        Raises:
            RemoteStoreError: If the store rejects the transaction
        """
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass
