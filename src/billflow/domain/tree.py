"""Group and vendor rollup trees over bills and invoices."""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Callable, Iterable, Optional, Protocol

from billflow.database.base import Database
from billflow.domain.entities import (
    Contact,
    ContactType,
    Document,
    DocumentKind,
    InvoiceType,
    Snapshot,
    TreeNode,
)
from billflow.domain.errors import ValidationError

UNASSIGNED_ID = "unassigned"
GENERAL_UNASSIGNED = "General / Unassigned"
UNKNOWN_VENDOR = "Unknown Vendor"

GROUP_NODE = "group"
VENDOR_NODE = "vendor"

SORT_KEYS = ("name", "balance", "count")

GroupKey = Callable[[Document], Optional[str]]


class Named(Protocol):
    id: str
    name: str


@dataclass
class _Bucket:
    id: str
    name: str
    node_type: str
    count: int = 0
    amount: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    children: dict = field(default_factory=dict)

    def add(self, document: Document) -> None:
        self.count += 1
        self.amount += document.amount
        self.balance += document.balance


def _name_key(node: TreeNode) -> str:
    return node.name.lower()


def group_by_project(document: Document) -> Optional[str]:
    return document.project_id


def group_by_staff(document: Document) -> Optional[str]:
    return document.staff_id


def group_by_building(snapshot: Snapshot) -> GroupKey:
    """Group key on building, taking the building from the property if needed."""

    def key(document: Document) -> Optional[str]:
        if document.building_id:
            return document.building_id
        prop = snapshot.property(document.property_id)
        return prop.building_id if prop is not None else None

    return key


def build_tree(
    documents: Iterable[Document],
    group_key: GroupKey,
    groups: Iterable[Named],
    contacts: Iterable[Contact],
    unassigned_name: Optional[str] = GENERAL_UNASSIGNED,
    unknown_contact_name: str = UNKNOWN_VENDOR,
) -> list[TreeNode]:
    """Roll documents up into group -> vendor nodes.

    Every known group is seeded, plus an "unassigned" bucket unless
    ``unassigned_name`` is None. Each document adds to ``count``, ``amount``
    and ``balance`` on its group and on the vendor child for its contact.
    Documents pointing at an unknown group are ignored. Empty groups are
    pruned and both levels are sorted by name.

    Args:
        documents: Bills or invoices to aggregate
        group_key: Returns the group id for a document (None for unassigned)
        groups: Known groups (projects, buildings, staff)
        contacts: Contacts used to name vendor nodes
        unassigned_name: Name of the unassigned bucket, or None to omit it
        unknown_contact_name: Name used when a contact cannot be resolved

    Returns:
        List of group nodes
    """
    buckets: dict[str, _Bucket] = {
        group.id: _Bucket(id=group.id, name=group.name, node_type=GROUP_NODE) for group in groups
    }
    if unassigned_name is not None:
        buckets[UNASSIGNED_ID] = _Bucket(id=UNASSIGNED_ID, name=unassigned_name, node_type=GROUP_NODE)
    contact_names = {contact.id: contact.name for contact in contacts}

    for document in documents:
        bucket = buckets.get(group_key(document) or UNASSIGNED_ID)
        if bucket is None:
            continue
        bucket.add(document)
        vendor = bucket.children.get(document.contact_id)
        if vendor is None:
            vendor = _Bucket(
                id=document.contact_id,
                name=contact_names.get(document.contact_id, unknown_contact_name),
                node_type=VENDOR_NODE,
            )
            bucket.children[document.contact_id] = vendor
        vendor.add(document)

    nodes = []
    for bucket in buckets.values():
        if bucket.count == 0:
            continue
        children = sorted(
            (
                TreeNode(
                    id=v.id,
                    name=v.name,
                    node_type=v.node_type,
                    count=v.count,
                    amount=v.amount,
                    balance=v.balance,
                )
                for v in bucket.children.values()
            ),
            key=_name_key,
        )
        nodes.append(
            TreeNode(
                id=bucket.id,
                name=bucket.name,
                node_type=bucket.node_type,
                count=bucket.count,
                amount=bucket.amount,
                balance=bucket.balance,
                children=tuple(children),
            )
        )
    return sorted(nodes, key=_name_key)


def sort_tree(nodes: Iterable[TreeNode], key: str = "balance", direction: str = "desc") -> list[TreeNode]:
    """Re-sort a tree at every level by name, balance or count.

    Raises:
        ValidationError: If ``key`` or ``direction`` is unknown
    """
    if key not in SORT_KEYS:
        raise ValidationError(f"Unknown sort key '{key}'. Use one of: {', '.join(SORT_KEYS)}")
    if direction not in ("asc", "desc"):
        raise ValidationError(f"Unknown sort direction '{direction}'. Use 'asc' or 'desc'")

    def sort_value(node: TreeNode):
        if key == "name":
            return node.name.lower()
        return getattr(node, key)

    ordered = sorted(nodes, key=sort_value, reverse=direction == "desc")
    return [
        replace(node, children=tuple(sort_tree(node.children, key, direction))) if node.children else node
        for node in ordered
    ]


def filter_tree(nodes: Iterable[TreeNode], query: str) -> list[TreeNode]:
    """Keep nodes whose name contains ``query`` or that have matching descendants.

    A matching node keeps all of its children unless some of them match too,
    in which case only the matching children are kept.
    """
    if not query.strip():
        return list(nodes)
    needle = query.lower()
    result = []
    for node in nodes:
        label_match = needle in node.name.lower()
        children = filter_tree(node.children, query) if node.children else []
        if children:
            result.append(replace(node, children=tuple(children)))
        elif label_match:
            result.append(node)
    return result


def is_project_bill(document: Document) -> bool:
    """Bills shown in the project tree: project bills and unallocated bills."""
    return bool(document.project_id) or not (document.building_id or document.property_id)


class TreeService:
    """Service for building rollup trees from the current store."""

    def __init__(self, db: Database):
        """Initialize tree service.

        Args:
            db: Database instance
        """
        self.db = db

    def bill_tree(self, project_id: Optional[str] = None, group_by: str = "project") -> list[TreeNode]:
        """Build the bill tree.

        Args:
            project_id: Only include this project (no unassigned bucket)
            group_by: ``project``, ``building`` or ``staff``

        Returns:
            List of group nodes
        """
        snapshot = self.db.snapshot()
        bills = snapshot.documents_of_kind(DocumentKind.BILL)

        if group_by == "project":
            bills = [bill for bill in bills if is_project_bill(bill)]
            if project_id is not None:
                bills = [bill for bill in bills if bill.project_id == project_id]
                groups = [p for p in snapshot.projects if p.id == project_id]
                return build_tree(bills, group_by_project, groups, snapshot.contacts, unassigned_name=None)
            return build_tree(bills, group_by_project, snapshot.projects, snapshot.contacts)

        if group_by == "building":
            bills = [bill for bill in bills if not bill.project_id and not bill.staff_id]
            return build_tree(bills, group_by_building(snapshot), snapshot.buildings, snapshot.contacts)

        if group_by == "staff":
            staff = [c for c in snapshot.contacts if c.contact_type == ContactType.STAFF]
            bills = [bill for bill in bills if bill.staff_id]
            return build_tree(bills, group_by_staff, staff, snapshot.contacts, unassigned_name=None)

        raise ValidationError(f"Unknown grouping '{group_by}'. Use project, building or staff")

    def invoice_tree(
        self,
        invoice_type: InvoiceType = InvoiceType.RENTAL,
        project_id: Optional[str] = None,
        building_id: Optional[str] = None,
    ) -> list[TreeNode]:
        """Build the invoice tree.

        Rental invoices are grouped by building, everything else by project.
        Contacts at the second level are tenants or clients.
        """
        snapshot = self.db.snapshot()
        invoices = [
            inv for inv in snapshot.documents_of_kind(DocumentKind.INVOICE) if inv.invoice_type == invoice_type
        ]

        if invoice_type == InvoiceType.RENTAL:
            key = group_by_building(snapshot)
            groups = list(snapshot.buildings)
            if building_id is not None:
                invoices = [inv for inv in invoices if key(inv) == building_id]
                groups = [b for b in groups if b.id == building_id]
            return build_tree(
                invoices,
                key,
                groups,
                snapshot.contacts,
                unassigned_name=None if building_id else "Unassigned",
                unknown_contact_name="Unknown Tenant",
            )

        groups = list(snapshot.projects)
        if project_id is not None:
            invoices = [inv for inv in invoices if inv.project_id == project_id]
            groups = [p for p in groups if p.id == project_id]
        return build_tree(
            invoices,
            group_by_project,
            groups,
            snapshot.contacts,
            unassigned_name=None if project_id else "Unassigned",
            unknown_contact_name="Unknown Client",
        )
