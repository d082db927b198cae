"""
Fleet listing helper tests: paging, free-text search, status summaries.
"""

import pytest

from fleet.listing import page_args, search_where, status_counts, total_pages

# ============================================================================
# Paging
# ============================================================================


class TestPaging:
    @pytest.mark.parametrize(
        "page,expected",
        [
            (1, {"take": 5, "skip": 0}),
            (3, {"take": 5, "skip": 10}),
            ("2", {"take": 5, "skip": 5}),
            (None, {"take": 5, "skip": 0}),
            ("abc", {"take": 5, "skip": 0}),
            (0, {"take": 5, "skip": 0}),
            (-4, {"take": 5, "skip": 0}),
        ],
    )
    def test_page_args(self, page, expected):
        assert page_args(page, page_size=5) == expected

    def test_default_page_size_from_settings(self, monkeypatch):
        monkeypatch.setattr("fleet.listing.settings.PAGE_SIZE", 10)
        assert page_args(2) == {"take": 10, "skip": 10}

    def test_total_pages(self):
        assert total_pages(0, 5) == 1
        assert total_pages(5, 5) == 1
        assert total_pages(6, 5) == 2

    def test_paging_through_records(self, fleet):
        first = fleet.shipment.find_many(order_by={"tracking_number": "asc"}, **page_args(1, page_size=1))
        second = fleet.shipment.find_many(order_by={"tracking_number": "asc"}, **page_args(2, page_size=1))
        third = fleet.shipment.find_many(order_by={"tracking_number": "asc"}, **page_args(3, page_size=1))
        assert [s["tracking_number"] for s in first + second] == ["TRK-1", "TRK-2"]
        assert third == []


# ============================================================================
# Search
# ============================================================================


class TestSearch:
    def test_blank_text_means_no_filter(self):
        assert search_where("  ", ["name"]) is None
        assert search_where(None, ["name"]) is None

    def test_builds_or_of_insensitive_contains(self):
        assert search_where(" ford ", ["brand", "model"]) == {
            "OR": [
                {"brand": {"contains": "ford", "mode": "insensitive"}},
                {"model": {"contains": "ford", "mode": "insensitive"}},
            ]
        }

    def test_dotted_path_nests_relations(self):
        assert search_where("ana", ["driver.user.name"]) == {
            "OR": [{"driver": {"user": {"name": {"contains": "ana", "mode": "insensitive"}}}}]
        }

    def test_search_vehicles(self, fleet):
        found = fleet.vehicle.find_many(where=search_where("VOL", ["plate_number", "brand"]))
        assert [v["plate_number"] for v in found] == ["TR-900"]

    def test_search_through_relations(self, fleet):
        found = fleet.trip.find_many(where=search_where("diaz", ["departure", "driver.user.name"]))
        assert [t["destination"] for t in found] == ["Paris"]

    def test_search_combined_with_other_filters(self, fleet):
        where = {"AND": [search_where("lyon", ["pickup_address"]), {"status": "DELIVERED"}]}
        assert [s["tracking_number"] for s in fleet.shipment.find_many(where=where)] == ["TRK-2"]


# ============================================================================
# Status summaries
# ============================================================================


class TestStatusCounts:
    def test_every_value_present(self, fleet):
        assert status_counts(fleet.vehicle) == {"ACTIVE": 1, "IN_MAINTENANCE": 1, "INACTIVE": 0}

    def test_other_enum_field_and_where(self, fleet):
        assert status_counts(fleet.user, field="role", where={"status": "ACTIVE"}) == {
            "ADMIN": 0,
            "DRIVER": 1,
            "CLIENT": 1,
        }

    def test_empty_table(self, empty_fleet):
        assert set(status_counts(empty_fleet.trip).values()) == {0}
