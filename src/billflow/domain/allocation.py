"""Allocation classification for bills and invoices.

Every document is charged to at most one organizational root. Internally the
allocation is a tagged union; the store keeps the flat optional-field shape,
so ``classify_allocation`` and ``flatten_allocation`` convert between the two.
"""

from dataclasses import asdict, dataclass, replace
from enum import Enum
from typing import Optional, Union

import structlog

from billflow.domain.entities import Document, Snapshot
from billflow.domain import errors

logger = structlog.get_logger(__name__)


class AllocationRoot(str, Enum):
    PROJECT = "project"
    BUILDING = "building"
    STAFF = "staff"


@dataclass(frozen=True)
class ProjectAllocation:
    project_id: str


@dataclass(frozen=True)
class BuildingServiceAllocation:
    """Building-wide service cost, not tied to a unit."""

    building_id: str


@dataclass(frozen=True)
class BuildingOwnerAllocation:
    """Cost charged to the owner of a property."""

    building_id: str
    property_id: str


@dataclass(frozen=True)
class TenantAllocation:
    """Cost charged to the tenant of a rental agreement."""

    building_id: str
    property_id: str
    rental_agreement_id: str
    tenant_id: str


@dataclass(frozen=True)
class StaffAllocation:
    staff_id: str


Allocation = Union[
    ProjectAllocation,
    BuildingServiceAllocation,
    BuildingOwnerAllocation,
    TenantAllocation,
    StaffAllocation,
]


@dataclass(frozen=True)
class AllocationFields:
    """Legacy flat representation stored on documents."""

    project_id: Optional[str] = None
    building_id: Optional[str] = None
    property_id: Optional[str] = None
    staff_id: Optional[str] = None
    rental_agreement_id: Optional[str] = None


def root_of(allocation: Optional[Allocation]) -> Optional[AllocationRoot]:
    if allocation is None:
        return None
    if isinstance(allocation, ProjectAllocation):
        return AllocationRoot.PROJECT
    if isinstance(allocation, StaffAllocation):
        return AllocationRoot.STAFF
    return AllocationRoot.BUILDING


def resolve_property_building(document: Document, snapshot: Snapshot) -> Document:
    """Fill in ``building_id`` from the property when only the property is set."""
    if document.property_id and not document.building_id:
        prop = snapshot.property(document.property_id)
        if prop is not None:
            return replace(document, building_id=prop.building_id)
    return document


def classify_allocation(document: Document, snapshot: Snapshot) -> Optional[Allocation]:
    """Reconstruct a document's allocation from its stored fields.

    Precedence follows how documents are loaded into the editor: staff, then
    a rental agreement (tenant), then project, then property (owner), then
    building (service).

    Args:
        document: Stored bill or invoice
        snapshot: Store snapshot used to resolve property and agreement links

    Returns:
        The allocation, or None for a general / unassigned document
    """
    if document.staff_id:
        return StaffAllocation(staff_id=document.staff_id)

    document = resolve_property_building(document, snapshot)

    if document.rental_agreement_id:
        agreement = snapshot.rental_agreement(document.rental_agreement_id)
        if agreement is not None:
            prop = snapshot.property(agreement.property_id)
            return TenantAllocation(
                building_id=document.building_id or (prop.building_id if prop else ""),
                property_id=document.property_id or agreement.property_id,
                rental_agreement_id=agreement.id,
                tenant_id=agreement.tenant_id,
            )

    if document.project_id:
        return ProjectAllocation(project_id=document.project_id)

    if document.property_id:
        return BuildingOwnerAllocation(
            building_id=document.building_id or "",
            property_id=document.property_id,
        )

    if document.building_id:
        return BuildingServiceAllocation(building_id=document.building_id)

    return None


def flatten_allocation(allocation: Optional[Allocation]) -> AllocationFields:
    """Serialize an allocation into the stored optional-field shape."""
    if allocation is None:
        return AllocationFields()
    if isinstance(allocation, ProjectAllocation):
        return AllocationFields(project_id=allocation.project_id)
    if isinstance(allocation, StaffAllocation):
        return AllocationFields(staff_id=allocation.staff_id)
    if isinstance(allocation, BuildingServiceAllocation):
        return AllocationFields(building_id=allocation.building_id)
    if isinstance(allocation, BuildingOwnerAllocation):
        return AllocationFields(
            building_id=allocation.building_id, property_id=allocation.property_id
        )
    return AllocationFields(
        building_id=allocation.building_id,
        property_id=allocation.property_id,
        rental_agreement_id=allocation.rental_agreement_id,
    )


def apply_allocation(document: Document, allocation: Optional[Allocation]) -> Document:
    """Overwrite the document's allocation fields with ``allocation``.

    A project agreement is kept only while the document stays on its project.
    """
    fields = flatten_allocation(allocation)
    project_agreement_id = document.project_agreement_id
    if fields.project_id != document.project_id:
        project_agreement_id = None
    return replace(document, project_agreement_id=project_agreement_id, **asdict(fields))


def select_root(document: Document, root: AllocationRoot) -> Document:
    """Switch the document to ``root``, clearing fields of the other roots."""
    if root == AllocationRoot.STAFF:
        return replace(
            document,
            project_id=None,
            building_id=None,
            property_id=None,
            rental_agreement_id=None,
            project_agreement_id=None,
        )
    if root == AllocationRoot.PROJECT:
        return replace(
            document,
            building_id=None,
            property_id=None,
            staff_id=None,
            rental_agreement_id=None,
        )
    return replace(
        document,
        project_id=None,
        staff_id=None,
        property_id=None,
        rental_agreement_id=None,
        project_agreement_id=None,
    )


def resolve_legacy_agreement(
    agreement_id: Optional[str], snapshot: Snapshot
) -> tuple[Optional[str], Optional[str]]:
    """Split a legacy overloaded agreement id into its two typed fields.

    Args:
        agreement_id: Id that may refer to a rental or a project agreement
        snapshot: Store snapshot

    Returns:
        ``(rental_agreement_id, project_agreement_id)``; both None when the id
        matches neither kind of agreement
    """
    if not agreement_id:
        return None, None
    if snapshot.rental_agreement(agreement_id) is not None:
        return agreement_id, None
    if snapshot.project_agreement(agreement_id) is not None:
        return None, agreement_id
    logger.warning("legacy_agreement_unresolved", agreement_id=agreement_id)
    return None, None


def validate_allocation(document: Document, snapshot: Snapshot) -> Optional[str]:
    """Check that the document's allocation is coherent.

    Returns:
        Rejection reason, or None when the allocation is valid
    """
    roots = [
        bool(document.project_id),
        bool(document.building_id or document.property_id or document.rental_agreement_id),
        bool(document.staff_id),
    ]
    if sum(roots) > 1:
        return errors.allocation_conflict()

    if document.project_id and snapshot.project(document.project_id) is None:
        return errors.entity_not_found("Project", document.project_id)
    if document.building_id and snapshot.building(document.building_id) is None:
        return errors.entity_not_found("Building", document.building_id)
    if document.staff_id and snapshot.contact(document.staff_id) is None:
        return errors.entity_not_found("Staff member", document.staff_id)

    if document.property_id:
        prop = snapshot.property(document.property_id)
        if prop is None:
            return errors.entity_not_found("Property", document.property_id)
        if document.building_id and prop.building_id != document.building_id:
            return errors.property_building_mismatch()

    if document.rental_agreement_id:
        agreement = snapshot.rental_agreement(document.rental_agreement_id)
        if agreement is None:
            return errors.entity_not_found("Rental agreement", document.rental_agreement_id)
        prop = snapshot.property(agreement.property_id)
        building_id = document.building_id
        if building_id is None and document.property_id:
            owner_prop = snapshot.property(document.property_id)
            building_id = owner_prop.building_id if owner_prop else None
        if building_id and (prop is None or prop.building_id != building_id):
            return errors.agreement_building_mismatch()

    if document.project_agreement_id:
        agreement = snapshot.project_agreement(document.project_agreement_id)
        if agreement is None:
            return errors.entity_not_found("Project agreement", document.project_agreement_id)
        if document.project_id and agreement.project_id != document.project_id:
            return errors.agreement_project_mismatch()

    return None
