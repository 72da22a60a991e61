"""
Vehicle service tests.

Verifies:
- Plate numbers upper-cased and unique (409)
- Vehicle and owner share a branch
- Delete only deactivates
"""

import pytest

from autoshop.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from autoshop.models import Customer, Vehicle
from autoshop.services import vehicle_service
from autoshop.time_utils import utcnow


def _payload(customer, branch, **overrides):
    payload = {
        "plate_number": "nbc 1234",
        "vehicle_type": "suv",
        "model": "Fortuner",
        "customer_id": customer.id,
        "branch_id": branch.id,
    }
    payload.update(overrides)
    return payload


class TestCreateVehicle:

    def test_create_uppercases_plate(self, db_session, receptionist_a, customer_a, branch_a):
        vehicle = vehicle_service.create_vehicle(receptionist_a, _payload(customer_a, branch_a, year=2020))
        assert vehicle["plate_number"] == "NBC 1234"
        assert vehicle["year"] == 2020
        assert vehicle["customer_id"] == customer_a.id

    def test_duplicate_plate_conflicts(self, db_session, receptionist_a, customer_a, vehicle_a, branch_a):
        with pytest.raises(ConflictError, match="plate number already exists"):
            vehicle_service.create_vehicle(receptionist_a, _payload(customer_a, branch_a, plate_number="abc-1234"))

    def test_unique_constraint_surfaces_as_conflict(self, db_session, receptionist_a, customer_a, vehicle_a, branch_a, monkeypatch):
        monkeypatch.setattr(vehicle_service, "_assert_plate_free", lambda *a, **kw: None)
        with pytest.raises(ConflictError):
            vehicle_service.create_vehicle(receptionist_a, _payload(customer_a, branch_a, plate_number="ABC-1234"))

    def test_owner_in_other_branch_rejected(self, db_session, hm, customer_a, branch_b):
        with pytest.raises(ValidationError, match="same branch as the customer"):
            vehicle_service.create_vehicle(hm, _payload(customer_a, branch_b))

    def test_missing_owner(self, db_session, receptionist_a, branch_a):
        with pytest.raises(NotFoundError, match="Customer not found"):
            vehicle_service.create_vehicle(receptionist_a, {
                "plate_number": "X1", "vehicle_type": "van", "model": "Hiace", "customer_id": 999, "branch_id": branch_a.id,
            })

    def test_year_bounds(self, db_session, receptionist_a, customer_a, branch_a):
        with pytest.raises(ValidationError, match="Invalid year"):
            vehicle_service.create_vehicle(receptionist_a, _payload(customer_a, branch_a, year=1899))
        with pytest.raises(ValidationError, match="Invalid year"):
            vehicle_service.create_vehicle(receptionist_a, _payload(customer_a, branch_a, year=utcnow().year + 2))

    def test_unknown_vehicle_type(self, db_session, receptionist_a, customer_a, branch_a):
        with pytest.raises(ValidationError, match="Vehicle type must be one of"):
            vehicle_service.create_vehicle(receptionist_a, _payload(customer_a, branch_a, vehicle_type="tank"))

    def test_technician_cannot_create(self, db_session, technician_a, customer_a, branch_a):
        with pytest.raises(ForbiddenError):
            vehicle_service.create_vehicle(technician_a, _payload(customer_a, branch_a))


class TestVehicleReadAndUpdate:

    def test_list_scoped_and_filtered(self, db_session, receptionist_a, receptionist_b, vehicle_a, other_customer_vehicle, customer_a):
        assert vehicle_service.list_vehicles(receptionist_a, {})["pagination"]["total"] == 2
        assert vehicle_service.list_vehicles(receptionist_b, {})["pagination"]["total"] == 0
        by_owner = vehicle_service.list_vehicles(receptionist_a, {"customer_id": str(customer_a.id)})
        assert [v["id"] for v in by_owner["data"]] == [vehicle_a.id]
        assert vehicle_service.list_vehicles(receptionist_a, {"search": "civic"})["data"][0]["id"] == other_customer_vehicle.id

    def test_get_foreign_vehicle_forbidden(self, db_session, receptionist_b, vehicle_a):
        with pytest.raises(ForbiddenError, match="vehicle's branch"):
            vehicle_service.get_vehicle(receptionist_b, vehicle_a.id)

    def test_rename_plate_into_taken_one(self, db_session, receptionist_a, vehicle_a, other_customer_vehicle):
        with pytest.raises(ConflictError):
            vehicle_service.update_vehicle(receptionist_a, vehicle_a.id, {"plate_number": other_customer_vehicle.plate_number})

    def test_transfer_owner_within_branch(self, db_session, receptionist_a, vehicle_a, other_customer_vehicle):
        new_owner = other_customer_vehicle.customer_id
        updated = vehicle_service.update_vehicle(receptionist_a, vehicle_a.id, {"customer_id": new_owner, "color": "red"})
        assert updated["customer_id"] == new_owner
        assert updated["color"] == "red"

    def test_transfer_owner_across_branches_rejected(self, db_session, hm, vehicle_a, branch_b):
        outsider = Customer(full_name="Branch B Client", contact_number="09181111111", branch_id=branch_b.id)
        db_session.add(outsider)
        db_session.commit()

        with pytest.raises(ValidationError, match="same branch as the customer"):
            vehicle_service.update_vehicle(hm, vehicle_a.id, {"customer_id": outsider.id})


class TestDeactivateVehicle:

    def test_delete_only_deactivates(self, db_session, receptionist_a, vehicle_a):
        result = vehicle_service.deactivate_vehicle(receptionist_a, vehicle_a.id)
        assert result["deactivated"] is True
        assert db_session.get(Vehicle, vehicle_a.id).status == "inactive"

    def test_foreign_branch_forbidden(self, db_session, receptionist_b, vehicle_a):
        with pytest.raises(ForbiddenError):
            vehicle_service.deactivate_vehicle(receptionist_b, vehicle_a.id)
        assert db_session.get(Vehicle, vehicle_a.id).status == "active"
