"""HTTP transaction store client."""

from dataclasses import replace
from typing import Any, Optional

import httpx
import structlog

from billflow.config.settings import get_settings
from billflow.domain.entities import Transaction
from billflow.gateway.base import RemoteStoreError, TransactionGateway

logger = structlog.get_logger(__name__)


def transaction_payload(transaction: Transaction) -> dict[str, Any]:
    """Serialize a transaction the way the transactions endpoint expects."""
    return {
        "id": transaction.id,
        "type": transaction.transaction_type.value,
        "amount": str(transaction.amount),
        "date": transaction.date.isoformat(),
        "accountId": transaction.account_id,
        "categoryId": transaction.category_id,
        "contactId": transaction.contact_id,
        "projectId": transaction.project_id,
        "buildingId": transaction.building_id,
        "propertyId": transaction.property_id,
        "contractId": transaction.contract_id,
        "billId": transaction.bill_id,
        "invoiceId": transaction.invoice_id,
        "batchId": transaction.batch_id,
        "reference": transaction.reference,
        "description": transaction.description,
    }


class HttpTransactionGateway(TransactionGateway):
    """Saves transactions through ``POST /api/transactions``."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.remote_url or "").rstrip("/")
        self._timeout = timeout if timeout is not None else settings.remote_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def save_transaction(self, transaction: Transaction) -> Transaction:
        client = await self._get_client()
        try:
            response = await client.post("/api/transactions", json=transaction_payload(transaction))
        except httpx.HTTPError as e:
            logger.error("remote_request_failed", transaction_id=transaction.id, error=str(e))
            raise RemoteStoreError(f"Could not reach transaction store: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {"message": response.text}
            if not isinstance(body, dict):
                body = {"message": str(body)}
            message = body.get("message") or body.get("error") or f"HTTP {response.status_code}"
            logger.warning(
                "remote_transaction_rejected",
                transaction_id=transaction.id,
                status=response.status_code,
                code=body.get("code"),
            )
            raise RemoteStoreError(
                message,
                status_code=response.status_code,
                code=body.get("code"),
                details=body,
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        if isinstance(data, dict) and data.get("id"):
            return replace(transaction, id=str(data["id"]))
        return transaction
