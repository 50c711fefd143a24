"""Gateway factory functions."""

from typing import Optional

from billflow.config.settings import get_settings
from billflow.database.base import Database
from billflow.gateway.base import TransactionGateway
from billflow.gateway.http import HttpTransactionGateway
from billflow.gateway.local import LocalTransactionGateway


def create_transaction_gateway(
    db: Database, remote_url: Optional[str] = None, timeout: Optional[float] = None
) -> TransactionGateway:
    """Create the gateway bulk payments are sent through.

    Args:
        db: Local database, used for loopback validation
        remote_url: Remote store base URL. If None, uses the BILLFLOW_REMOTE_URL
            setting; when that is unset too, a loopback gateway is returned

    Returns:
        TransactionGateway instance
    """
    remote_url = remote_url or get_settings().remote_url
    if remote_url:
        return HttpTransactionGateway(base_url=remote_url, timeout=timeout)
    return LocalTransactionGateway(db)
