"""
Fleet schema — the bundled models for the fleet-management domain.

Users hold an account; drivers and clients extend a user through a one-to-one
profile. Trips tie a driver to a vehicle and carry shipments, expenses and
issues. Vehicles keep their maintenance history.
"""

from __future__ import annotations

from engine.query.types import RelationDef, Schema, model, scalar

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

ROLE = ("ADMIN", "DRIVER", "CLIENT")
USER_STATUS = ("ACTIVE", "INACTIVE", "SUSPENDED")
DRIVER_STATUS = ("ACTIVE", "INACTIVE", "SUSPENDED")
VEHICLE_STATUS = ("ACTIVE", "IN_MAINTENANCE", "INACTIVE")
TRIP_STATUS = ("PLANNED", "ONGOING", "COMPLETED", "CANCELLED")
SHIPMENT_STATUS = ("PENDING", "ASSIGNED", "IN_TRANSIT", "DELIVERED", "CANCELLED")
SHIPMENT_PRIORITY = ("LOW", "NORMAL", "HIGH", "URGENT")
EXPENSE_TYPE = ("FUEL", "TOLL", "REPAIR", "MAINTENANCE", "OTHER")
ISSUE_STATUS = ("OPEN", "IN_PROGRESS", "RESOLVED", "CLOSED")
NOTIFICATION_STATUS = ("UNREAD", "READ")

ENUMS: dict[str, tuple[str, ...]] = {
    "Role": ROLE,
    "UserStatus": USER_STATUS,
    "DriverStatus": DRIVER_STATUS,
    "VehicleStatus": VEHICLE_STATUS,
    "TripStatus": TRIP_STATUS,
    "ShipmentStatus": SHIPMENT_STATUS,
    "ShipmentPriority": SHIPMENT_PRIORITY,
    "ExpenseType": EXPENSE_TYPE,
    "IssueStatus": ISSUE_STATUS,
    "NotificationStatus": NOTIFICATION_STATUS,
}


# ---------------------------------------------------------------------------
# Relation shorthands
# ---------------------------------------------------------------------------


def belongs_to(name: str, target: str, fk: str, optional: bool = False, on_delete: str | None = None) -> RelationDef:
    """Owner side: this model's `fk` column points at target.id."""
    return RelationDef(
        name=name,
        target=target,
        fields=(fk,),
        references=("id",),
        owner=True,
        optional=optional,
        on_delete=on_delete,
    )


def has_many(name: str, target: str, fk: str) -> RelationDef:
    """Back side: target rows whose `fk` column points at this row."""
    return RelationDef(name=name, target=target, fields=("id",), references=(fk,), to_many=True)


def has_one(name: str, target: str, fk: str) -> RelationDef:
    return RelationDef(name=name, target=target, fields=("id",), references=(fk,))


def _id():
    return scalar("id", "String", id=True, default="uuid")


def _timestamps():
    return [
        scalar("created_at", "DateTime", default="now"),
        scalar("updated_at", "DateTime", updated_at=True),
    ]


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


def build_schema() -> Schema:
    """Build the fleet schema. Raises ValueError if the declarations are inconsistent."""
    user = model(
        "User",
        [
            _id(),
            scalar("name", "String"),
            scalar("email", "String", optional=True, unique=True),
            scalar("username", "String", optional=True, unique=True),
            scalar("phone", "String", optional=True),
            scalar("image", "String", optional=True),
            scalar("role", "Enum", values=ROLE, default="CLIENT"),
            scalar("status", "Enum", values=USER_STATUS, default="ACTIVE"),
            scalar("is_active", "Boolean", default=True),
            *_timestamps(),
        ],
        [
            has_one("driver_profile", "DriverProfile", "user_id"),
            has_one("client_profile", "ClientProfile", "user_id"),
            has_many("notifications", "Notification", "user_id"),
        ],
    )

    driver_profile = model(
        "DriverProfile",
        [
            _id(),
            scalar("user_id", "String", unique=True),
            scalar("license_number", "String", unique=True),
            scalar("experience_years", "Int", default=0),
            scalar("status", "Enum", values=DRIVER_STATUS, default="ACTIVE"),
            *_timestamps(),
        ],
        [
            belongs_to("user", "User", "user_id", on_delete="cascade"),
            has_many("trips", "Trip", "driver_id"),
            has_many("issues", "Issue", "driver_id"),
        ],
    )

    client_profile = model(
        "ClientProfile",
        [
            _id(),
            scalar("user_id", "String", unique=True),
            scalar("company_name", "String", optional=True),
            scalar("address", "String", optional=True),
            scalar("vat_number", "String", optional=True),
            *_timestamps(),
        ],
        [
            belongs_to("user", "User", "user_id", on_delete="cascade"),
            has_many("shipments", "Shipment", "client_id"),
        ],
    )

    vehicle = model(
        "Vehicle",
        [
            _id(),
            scalar("plate_number", "String", unique=True),
            scalar("type", "String"),
            scalar("brand", "String"),
            scalar("model", "String"),
            scalar("status", "Enum", values=VEHICLE_STATUS, default="ACTIVE"),
            scalar("image", "String", optional=True),
            scalar("mileage", "Float", default=0.0),
            scalar("purchase_date", "DateTime", optional=True),
            scalar("last_service_date", "DateTime", optional=True),
            scalar("capacity_weight", "Float", optional=True),
            scalar("capacity_volume", "Float", optional=True),
            *_timestamps(),
        ],
        [
            has_many("trips", "Trip", "vehicle_id"),
            has_many("maintenances", "Maintenance", "vehicle_id"),
            has_many("expenses", "Expense", "vehicle_id"),
        ],
    )

    maintenance = model(
        "Maintenance",
        [
            _id(),
            scalar("vehicle_id", "String"),
            scalar("type", "String"),
            scalar("description", "String", optional=True),
            scalar("cost", "Decimal", default="0"),
            scalar("date", "DateTime", default="now"),
            *_timestamps(),
        ],
        [belongs_to("vehicle", "Vehicle", "vehicle_id", on_delete="cascade")],
    )

    trip = model(
        "Trip",
        [
            _id(),
            scalar("driver_id", "String"),
            scalar("vehicle_id", "String"),
            scalar("departure", "String"),
            scalar("destination", "String"),
            scalar("date_start", "DateTime"),
            scalar("date_end", "DateTime", optional=True),
            scalar("estimated_duration", "Float", optional=True),
            scalar("actual_duration", "Float", optional=True),
            scalar("distance", "Float", optional=True),
            scalar("status", "Enum", values=TRIP_STATUS, default="PLANNED"),
            scalar("total_cost", "Decimal", default="0"),
            scalar("notes", "String", optional=True),
            *_timestamps(),
        ],
        [
            belongs_to("driver", "DriverProfile", "driver_id"),
            belongs_to("vehicle", "Vehicle", "vehicle_id"),
            has_many("shipments", "Shipment", "trip_id"),
            has_many("expenses", "Expense", "trip_id"),
            has_many("issues", "Issue", "trip_id"),
        ],
    )

    shipment = model(
        "Shipment",
        [
            _id(),
            scalar("tracking_number", "String", unique=True),
            scalar("client_id", "String"),
            scalar("trip_id", "String", optional=True),
            scalar("description", "String", optional=True),
            scalar("weight", "Float"),
            scalar("volume", "Float", optional=True),
            scalar("price", "Decimal"),
            scalar("pickup_address", "String"),
            scalar("delivery_address", "String"),
            scalar("priority", "Enum", values=SHIPMENT_PRIORITY, default="NORMAL"),
            scalar("status", "Enum", values=SHIPMENT_STATUS, default="PENDING"),
            scalar("pickup_date", "DateTime", optional=True),
            scalar("delivery_date", "DateTime", optional=True),
            *_timestamps(),
        ],
        [
            belongs_to("client", "ClientProfile", "client_id"),
            belongs_to("trip", "Trip", "trip_id", optional=True),
        ],
    )

    expense = model(
        "Expense",
        [
            _id(),
            scalar("trip_id", "String", optional=True),
            scalar("vehicle_id", "String", optional=True),
            scalar("type", "Enum", values=EXPENSE_TYPE),
            scalar("amount", "Decimal"),
            scalar("date", "DateTime", default="now"),
            scalar("note", "String", optional=True),
            scalar("receipt_url", "String", optional=True),
            *_timestamps(),
        ],
        [
            belongs_to("trip", "Trip", "trip_id", optional=True, on_delete="cascade"),
            belongs_to("vehicle", "Vehicle", "vehicle_id", optional=True),
        ],
    )

    issue = model(
        "Issue",
        [
            _id(),
            scalar("trip_id", "String"),
            scalar("driver_id", "String"),
            scalar("type", "String"),
            scalar("severity", "String"),
            scalar("description", "String"),
            scalar("status", "Enum", values=ISSUE_STATUS, default="OPEN"),
            *_timestamps(),
        ],
        [
            belongs_to("trip", "Trip", "trip_id", on_delete="cascade"),
            belongs_to("driver", "DriverProfile", "driver_id"),
        ],
    )

    notification = model(
        "Notification",
        [
            _id(),
            scalar("user_id", "String"),
            scalar("title", "String"),
            scalar("message", "String"),
            scalar("type", "String", default="GENERAL"),
            scalar("link", "String", optional=True),
            scalar("status", "Enum", values=NOTIFICATION_STATUS, default="UNREAD"),
            *_timestamps(),
        ],
        [belongs_to("user", "User", "user_id", on_delete="cascade")],
    )

    return Schema(
        [
            user,
            driver_profile,
            client_profile,
            vehicle,
            maintenance,
            trip,
            shipment,
            expense,
            issue,
            notification,
        ]
    )
