"""
Fleet schema tests.

Defaults, profiles, trips with their cargo and costs, and what happens to
dependent records when users, trips and vehicles are deleted.
"""

from decimal import Decimal

import pytest

from engine.query.errors import ForeignKeyConstraintError, UniqueConstraintError
from fleet.schema import ENUMS, build_schema

# ============================================================================
# Declarations
# ============================================================================


class TestDeclarations:
    def test_models(self):
        assert set(build_schema().models) == {
            "User",
            "DriverProfile",
            "ClientProfile",
            "Vehicle",
            "Maintenance",
            "Trip",
            "Shipment",
            "Expense",
            "Issue",
            "Notification",
        }

    def test_enum_columns_use_declared_values(self):
        schema = build_schema()
        assert schema["Trip"].fields["status"].enum_values == ENUMS["TripStatus"]
        assert schema["Expense"].fields["type"].enum_values == ENUMS["ExpenseType"]

    def test_delegates(self, empty_fleet):
        assert empty_fleet.driver_profile.model.name == "DriverProfile"
        assert empty_fleet.delegate("ClientProfile") is empty_fleet.client_profile


# ============================================================================
# Records
# ============================================================================


class TestRecords:
    def test_user_defaults(self, empty_fleet):
        user = empty_fleet.user.create(data={"name": "Zoe"})
        assert (user["role"], user["status"], user["is_active"]) == ("CLIENT", "ACTIVE", True)
        assert isinstance(user["id"], str) and len(user["id"]) == 36

    def test_optional_unique_email(self, fleet):
        fleet.user.create(data={"name": "No Mail"})
        with pytest.raises(UniqueConstraintError):
            fleet.user.create(data={"name": "Copy", "email": "ana@fleet.io"})

    def test_driver_profile_links_user(self, fleet):
        profile = fleet.driver_profile.find_unique(where={"license_number": "DL-1"}, include={"user": True})
        assert profile["user"]["name"] == "Ana Diaz"
        assert profile["status"] == "ACTIVE"

    def test_trip_defaults_and_cargo(self, fleet):
        trip = fleet.trip.find_first(include={"shipments": {"order_by": {"tracking_number": "asc"}}})
        assert trip["status"] == "PLANNED"
        assert trip["total_cost"] == Decimal("0")
        assert [s["tracking_number"] for s in trip["shipments"]] == ["TRK-1", "TRK-2"]
        assert trip["shipments"][0]["priority"] == "NORMAL"

    def test_shipment_totals(self, fleet):
        totals = fleet.shipment.aggregate(_sum={"price": True, "weight": True}, _count={"_all": True})
        assert totals == {
            "_sum": {"price": Decimal("125.50"), "weight": 15.5},
            "_count": {"_all": 2},
        }

    def test_trip_cost_from_expenses(self, fleet):
        trip = fleet.trip.find_first()
        fleet.expense.create_many(
            data=[
                {"trip_id": trip["id"], "type": "FUEL", "amount": "62.40"},
                {"trip_id": trip["id"], "type": "TOLL", "amount": "18.90"},
            ]
        )
        spent = fleet.expense.aggregate(where={"trip_id": trip["id"]}, _sum={"amount": True})["_sum"]["amount"]
        updated = fleet.trip.update(where={"id": trip["id"]}, data={"total_cost": {"increment": spent}})
        assert updated["total_cost"] == Decimal("81.30")

    def test_drivers_with_planned_trips(self, fleet):
        drivers = fleet.user.find_many(
            where={"driver_profile": {"is": {"trips": {"some": {"status": "PLANNED"}}}}},
            select={"name": True},
        )
        assert drivers == [{"name": "Ana Diaz"}]


# ============================================================================
# Deletes
# ============================================================================


class TestDeletes:
    def test_user_with_trips_cannot_be_deleted(self, fleet):
        """The profile would cascade, but its trips restrict the delete."""
        with pytest.raises(ForeignKeyConstraintError):
            fleet.user.delete(where={"email": "ana@fleet.io"})
        assert fleet.driver_profile.count() == 1

    def test_user_delete_cascades_profile_and_notifications(self, fleet):
        root = fleet.user.find_unique(where={"username": "root"})
        fleet.notification.create(data={"user_id": root["id"], "title": "Hi", "message": "Welcome"})
        fleet.user.delete(where={"id": root["id"]})
        assert fleet.notification.count() == 0

    def test_notification_defaults(self, fleet):
        root = fleet.user.find_unique(where={"username": "root"})
        note = fleet.notification.create(data={"user_id": root["id"], "title": "Hi", "message": "Welcome"})
        assert (note["type"], note["status"]) == ("GENERAL", "UNREAD")

    def test_trip_delete(self, fleet):
        trip = fleet.trip.find_first()
        driver_id = trip["driver_id"]
        fleet.expense.create(data={"trip_id": trip["id"], "type": "FUEL", "amount": "10"})
        fleet.issue.create(
            data={
                "trip_id": trip["id"],
                "driver_id": driver_id,
                "type": "DELAY",
                "severity": "LOW",
                "description": "Traffic",
            }
        )
        fleet.trip.delete(where={"id": trip["id"]})
        assert fleet.expense.count() == 0
        assert fleet.issue.count() == 0
        assert fleet.shipment.count(where={"trip_id": None}) == 2

    def test_vehicle_delete_cascades_maintenance(self, fleet):
        truck = fleet.vehicle.update(
            where={"plate_number": "TR-900"},
            data={"maintenances": {"create": {"type": "BRAKES", "cost": "340.00"}}},
        )
        fleet.expense.create(data={"vehicle_id": truck["id"], "type": "REPAIR", "amount": "340.00"})
        fleet.vehicle.delete(where={"id": truck["id"]})
        assert fleet.maintenance.count() == 0
        assert fleet.expense.find_first()["vehicle_id"] is None

    def test_vehicle_on_a_trip_cannot_be_deleted(self, fleet):
        with pytest.raises(ForeignKeyConstraintError):
            fleet.vehicle.delete(where={"plate_number": "AB-123"})
