"""Utilities for resolving user-supplied references to entities."""

from typing import Iterable, Optional, TypeVar

from billflow.domain.entities import Document, DocumentKind, Snapshot
from billflow.domain.errors import NotFoundError, ValidationError

T = TypeVar("T")


def resolve_entity(items: Iterable[T], reference: str, what: str, label: str = "name") -> T:
    """Resolve an ID or a name to one entity.

    Exact ID matches win; otherwise the reference is compared to ``label``
    ignoring case.

    Args:
        items: Candidate entities (with ``id`` and ``label`` attributes)
        reference: ID or name
        what: Entity description for error messages
        label: Attribute holding the human-readable name

    Returns:
        The matching entity

    Raises:
        NotFoundError: If nothing matches
        ValidationError: If the name matches more than one entity
    """
    items = list(items)
    for item in items:
        if item.id == reference:
            return item

    wanted = reference.strip().lower()
    matches = [item for item in items if str(getattr(item, label)).strip().lower() == wanted]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise ValidationError(f"{what} '{reference}' is ambiguous; use its ID instead")
    raise NotFoundError(f"{what} '{reference}' not found")


def resolve_optional(items: Iterable[T], reference: Optional[str], what: str, label: str = "name") -> Optional[str]:
    """Resolve a reference to an ID, passing None through."""
    if reference is None:
        return None
    return resolve_entity(items, reference, what, label).id


def resolve_document(snapshot: Snapshot, kind: DocumentKind, reference: str) -> Document:
    """Resolve a bill or invoice by ID or number."""
    what = "Bill" if kind == DocumentKind.BILL else "Invoice"
    return resolve_entity(snapshot.documents_of_kind(kind), reference, what, label="number")
