"""Tests for allocation classification."""

from datetime import date
from decimal import Decimal

import pytest

from billflow.domain.allocation import (
    AllocationRoot,
    BuildingOwnerAllocation,
    BuildingServiceAllocation,
    ProjectAllocation,
    StaffAllocation,
    TenantAllocation,
    apply_allocation,
    classify_allocation,
    flatten_allocation,
    resolve_legacy_agreement,
    root_of,
    select_root,
    validate_allocation,
)
from billflow.domain.entities import (
    Building,
    Contact,
    ContactType,
    Document,
    DocumentKind,
    Project,
    ProjectAgreement,
    Property,
    RentalAgreement,
    Snapshot,
)


@pytest.fixture
def snapshot():
    return Snapshot(
        contacts=(
            Contact("vendor", "Acme", ContactType.VENDOR),
            Contact("tenant", "Tina", ContactType.TENANT),
            Contact("owner", "Oscar", ContactType.OWNER),
            Contact("staff", "Sara", ContactType.STAFF),
        ),
        projects=(Project("p1", "Project One"), Project("p2", "Project Two")),
        buildings=(Building("b1", "Tower A"), Building("b2", "Tower B")),
        properties=(Property("flat", "Flat 101", "b1", owner_id="owner"),),
        rental_agreements=(
            RentalAgreement(
                id="ra",
                agreement_number="RA-1",
                tenant_id="tenant",
                property_id="flat",
                monthly_rent=Decimal("30000"),
                security_deposit=Decimal("0"),
                rent_due_day=1,
                start_date=date(2024, 1, 1),
            ),
        ),
        project_agreements=(
            ProjectAgreement(
                id="pa", agreement_number="PA-1", client_id="vendor", project_id="p1", selling_price=Decimal("1")
            ),
        ),
    )


def bill(**fields):
    return Document(
        id="bill",
        kind=DocumentKind.BILL,
        number="BILL-1",
        contact_id="vendor",
        amount=Decimal("100"),
        issue_date=date(2024, 3, 1),
        **fields,
    )


class TestClassifyAllocation:
    """Tests for rebuilding an allocation from stored fields."""

    def test_unassigned(self, snapshot):
        assert classify_allocation(bill(), snapshot) is None
        assert root_of(None) is None

    def test_project(self, snapshot):
        allocation = classify_allocation(bill(project_id="p1"), snapshot)
        assert allocation == ProjectAllocation(project_id="p1")
        assert root_of(allocation) == AllocationRoot.PROJECT

    def test_building_service(self, snapshot):
        allocation = classify_allocation(bill(building_id="b1"), snapshot)
        assert allocation == BuildingServiceAllocation(building_id="b1")
        assert root_of(allocation) == AllocationRoot.BUILDING

    def test_owner_building_filled_from_property(self, snapshot):
        allocation = classify_allocation(bill(property_id="flat"), snapshot)
        assert allocation == BuildingOwnerAllocation(building_id="b1", property_id="flat")

    def test_tenant(self, snapshot):
        allocation = classify_allocation(bill(property_id="flat", rental_agreement_id="ra"), snapshot)
        assert allocation == TenantAllocation(
            building_id="b1", property_id="flat", rental_agreement_id="ra", tenant_id="tenant"
        )

    def test_staff_wins(self, snapshot):
        allocation = classify_allocation(bill(staff_id="staff", building_id="b1"), snapshot)
        assert allocation == StaffAllocation(staff_id="staff")
        assert root_of(allocation) == AllocationRoot.STAFF

    def test_round_trip_through_flat_fields(self, snapshot):
        for document in (
            bill(project_id="p1"),
            bill(building_id="b1"),
            bill(building_id="b1", property_id="flat"),
            bill(building_id="b1", property_id="flat", rental_agreement_id="ra"),
            bill(staff_id="staff"),
        ):
            allocation = classify_allocation(document, snapshot)
            restored = apply_allocation(bill(), allocation)
            assert classify_allocation(restored, snapshot) == allocation

    def test_flatten_none(self):
        fields = flatten_allocation(None)
        assert fields.project_id is None and fields.building_id is None and fields.staff_id is None


class TestSelectRoot:
    """Tests for switching allocation roots."""

    def test_staff_clears_everything_else(self):
        document = select_root(
            bill(project_id="p1", building_id="b1", property_id="flat", rental_agreement_id="ra"),
            AllocationRoot.STAFF,
        )
        assert document.project_id is None
        assert document.building_id is None
        assert document.property_id is None
        assert document.rental_agreement_id is None

    def test_project_clears_building_and_staff(self):
        document = select_root(bill(building_id="b1", staff_id="staff", project_id="p1"), AllocationRoot.PROJECT)
        assert document.project_id == "p1"
        assert document.building_id is None
        assert document.staff_id is None

    def test_building_clears_project_and_property(self):
        document = select_root(
            bill(project_id="p1", property_id="flat", building_id="b1", project_agreement_id="pa"),
            AllocationRoot.BUILDING,
        )
        assert document.building_id == "b1"
        assert document.project_id is None
        assert document.property_id is None
        assert document.project_agreement_id is None

    def test_apply_allocation_drops_project_agreement_when_project_changes(self):
        document = apply_allocation(bill(project_id="p1", project_agreement_id="pa"), ProjectAllocation("p2"))
        assert document.project_id == "p2"
        assert document.project_agreement_id is None

    def test_apply_allocation_keeps_project_agreement_on_same_project(self):
        document = apply_allocation(bill(project_id="p1", project_agreement_id="pa"), ProjectAllocation("p1"))
        assert document.project_agreement_id == "pa"


class TestLegacyAgreement:
    """Tests for splitting the legacy agreement reference."""

    def test_rental(self, snapshot):
        assert resolve_legacy_agreement("ra", snapshot) == ("ra", None)

    def test_project(self, snapshot):
        assert resolve_legacy_agreement("pa", snapshot) == (None, "pa")

    def test_unknown(self, snapshot):
        assert resolve_legacy_agreement("nope", snapshot) == (None, None)
        assert resolve_legacy_agreement(None, snapshot) == (None, None)


class TestValidateAllocation:
    """Tests for allocation validation."""

    def test_valid(self, snapshot):
        assert validate_allocation(bill(project_id="p1"), snapshot) is None
        assert validate_allocation(bill(building_id="b1", property_id="flat"), snapshot) is None

    def test_two_roots_rejected(self, snapshot):
        reason = validate_allocation(bill(project_id="p1", staff_id="staff"), snapshot)
        assert reason == "A document can be allocated to only one of project, building or staff."

    def test_project_with_rental_agreement_rejected(self, snapshot):
        reason = validate_allocation(bill(project_id="p1", rental_agreement_id="ra"), snapshot)
        assert reason == "A document can be allocated to only one of project, building or staff."

    def test_rental_agreement_alone_is_building_root(self, snapshot):
        document = bill(rental_agreement_id="ra")
        assert validate_allocation(document, snapshot) is None
        assert root_of(classify_allocation(document, snapshot)) == AllocationRoot.BUILDING

    def test_property_in_other_building(self, snapshot):
        reason = validate_allocation(bill(building_id="b2", property_id="flat"), snapshot)
        assert reason == "Selected property does not belong to the selected building."

    def test_agreement_in_other_building(self, snapshot):
        reason = validate_allocation(bill(building_id="b2", rental_agreement_id="ra"), snapshot)
        assert reason == "Rental agreement property is not in the selected building."

    def test_unknown_project(self, snapshot):
        assert validate_allocation(bill(project_id="missing"), snapshot) == "Project missing not found"

    def test_project_agreement_mismatch(self, snapshot):
        reason = validate_allocation(bill(project_id="p2", project_agreement_id="pa"), snapshot)
        assert reason == "Project agreement belongs to a different project."
