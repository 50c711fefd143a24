"""Contract budget linking for vendor bills."""

from dataclasses import replace
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from billflow.domain.entities import (
    Contract,
    ContractStatus,
    Document,
    Snapshot,
    Transaction,
)
from billflow.domain.errors import ValidationError
from billflow.domain import errors

logger = structlog.get_logger(__name__)

# Contracts are considered fully paid within one currency unit of the total.
COMPLETION_TOLERANCE = Decimal("1.0")


def validate_contract_link(document: Document, contract: Contract) -> Optional[str]:
    """Check that a contract may be linked to a document.

    The contract must belong to the document's vendor, and when either side
    names a project both must name the same one.

    Returns:
        Rejection reason, or None when the link is valid
    """
    if contract.vendor_id != document.contact_id:
        return errors.contract_vendor_mismatch()
    # A document without a project adopts the contract's project on linking.
    if document.project_id and contract.project_id != document.project_id:
        return errors.contract_project_mismatch()
    return None


def link_contract(document: Document, contract: Contract) -> Document:
    """Link ``contract`` to ``document`` and back-fill the project.

    Raises:
        ValidationError: If the contract's vendor or project does not match
    """
    reason = validate_contract_link(document, contract)
    if reason is not None:
        raise ValidationError(reason)
    project_id = document.project_id or contract.project_id
    return replace(document, contract_id=contract.id, project_id=project_id)


def unlink_contract(document: Document) -> Document:
    return replace(document, contract_id=None)


def revalidate_contract_link(document: Document, snapshot: Snapshot) -> Document:
    """Clear a contract link that no longer matches the document.

    Called after the vendor or contract changes; a stale link is dropped
    rather than rejected.
    """
    if not document.contract_id:
        return document
    contract = snapshot.contract(document.contract_id)
    if contract is None or validate_contract_link(document, contract) is not None:
        logger.info(
            "contract_link_cleared",
            document_id=document.id,
            contract_id=document.contract_id,
        )
        return unlink_contract(document)
    if not document.project_id and contract.project_id:
        return replace(document, project_id=contract.project_id)
    return document


def available_contracts(document: Document, snapshot: Snapshot) -> list[Contract]:
    """Contracts selectable for a document.

    Active contracts that could be linked, plus whichever contract is
    already linked.
    """
    result = []
    for contract in snapshot.contracts:
        if contract.id == document.contract_id:
            result.append(contract)
            continue
        if contract.status != ContractStatus.ACTIVE:
            continue
        if validate_contract_link(document, contract) is None:
            result.append(contract)
    return sorted(result, key=lambda c: c.contract_number)


def contract_paid_amount(contract_id: str, transactions: Iterable[Transaction]) -> Decimal:
    return sum(
        (t.amount for t in transactions if t.contract_id == contract_id),
        Decimal("0"),
    )


def contract_status_after_payments(
    contract: Contract, transactions: Iterable[Transaction]
) -> ContractStatus:
    """Derive a contract's status from the payments linked to it.

    Active contracts complete once payments reach the total (within the
    tolerance) and revert to active when payments fall below it again.
    Terminated contracts are never changed.
    """
    if contract.status == ContractStatus.TERMINATED:
        return contract.status
    paid = contract_paid_amount(contract.id, transactions)
    if paid >= contract.total_amount - COMPLETION_TOLERANCE:
        return ContractStatus.COMPLETED
    return ContractStatus.ACTIVE
