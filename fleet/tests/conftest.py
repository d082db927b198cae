"""
Fleet test configuration.

The `fleet` fixture seeds a small but complete fleet: one driver, one client
company, two vehicles and a trip carrying two shipments.
"""

import pytest

from fleet.client import make_client


@pytest.fixture
def empty_fleet():
    return make_client({})


@pytest.fixture
def fleet(empty_fleet):
    """
    Users:     Ana Diaz (DRIVER), Ben Ortiz (CLIENT, Corp Ltd), Root (ADMIN, inactive)
    Vehicles:  AB-123 Ford Transit (ACTIVE), TR-900 Volvo FH (IN_MAINTENANCE)
    Trips:     Lyon -> Paris by Ana in AB-123
    Shipments: TRK-1 (PENDING), TRK-2 (DELIVERED, URGENT)
    """
    client = empty_fleet
    ana = client.user.create(
        data={
            "name": "Ana Diaz",
            "email": "ana@fleet.io",
            "role": "DRIVER",
            "driver_profile": {"create": {"license_number": "DL-1", "experience_years": 6}},
        },
        include={"driver_profile": True},
    )
    ben = client.user.create(
        data={
            "name": "Ben Ortiz",
            "email": "ben@corp.io",
            "client_profile": {"create": {"company_name": "Corp Ltd"}},
        },
        include={"client_profile": True},
    )
    client.user.create(data={"name": "Root", "username": "root", "role": "ADMIN", "status": "INACTIVE"})
    van = client.vehicle.create(
        data={"plate_number": "AB-123", "type": "VAN", "brand": "Ford", "model": "Transit"}
    )
    client.vehicle.create(
        data={
            "plate_number": "TR-900",
            "type": "TRUCK",
            "brand": "Volvo",
            "model": "FH",
            "status": "IN_MAINTENANCE",
        }
    )
    client_id = ben["client_profile"]["id"]
    client.trip.create(
        data={
            "driver": {"connect": {"id": ana["driver_profile"]["id"]}},
            "vehicle": {"connect": {"id": van["id"]}},
            "departure": "Lyon",
            "destination": "Paris",
            "date_start": "2024-06-01T08:00:00Z",
            "shipments": {
                "create": [
                    {
                        "tracking_number": "TRK-1",
                        "client_id": client_id,
                        "weight": 12.5,
                        "price": "80.00",
                        "pickup_address": "1 Rue A, Lyon",
                        "delivery_address": "2 Rue B, Paris",
                    },
                    {
                        "tracking_number": "TRK-2",
                        "client_id": client_id,
                        "weight": 3.0,
                        "price": "45.50",
                        "pickup_address": "5 Quai C, Lyon",
                        "delivery_address": "9 Avenue D, Paris",
                        "priority": "URGENT",
                        "status": "DELIVERED",
                    },
                ]
            },
        }
    )
    return client
