"""Remote persistence for payment transactions."""

from billflow.gateway.base import RemoteStoreError, TransactionGateway
from billflow.gateway.factories import create_transaction_gateway
from billflow.gateway.http import HttpTransactionGateway
from billflow.gateway.local import LocalTransactionGateway

__all__ = [
    "HttpTransactionGateway",
    "LocalTransactionGateway",
    "RemoteStoreError",
    "TransactionGateway",
    "create_transaction_gateway",
]
