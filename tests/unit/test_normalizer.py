"""Tests for the UEX response normalizer."""
from datetime import datetime

import pytest

from stationsync.uex.normalizer import (
    normalize_category,
    normalize_company,
    normalize_item,
    normalize_poi,
    normalize_space_station,
    parse_uex_datetime,
    positive_id,
    to_boolean_flag,
)


class TestBooleanFlag:
    @pytest.mark.parametrize("value", [0, 0.0, "0", "false", "", False])
    def test_falsy_values(self, value):
        assert to_boolean_flag(value) is False

    @pytest.mark.parametrize("value", [1, 2, "1", "yes", True])
    def test_truthy_values(self, value):
        assert to_boolean_flag(value) is True

    def test_missing_uses_fallback(self):
        assert to_boolean_flag(None) is True
        assert to_boolean_flag(None, False) is False


class TestPositiveId:
    @pytest.mark.parametrize("value", [None, 0, -3, "abc", True])
    def test_absent(self, value):
        assert positive_id(value) is None

    def test_numeric_string(self):
        assert positive_id("42") == 42


class TestParseDatetime:
    def test_epoch_seconds(self):
        assert parse_uex_datetime(1700000000) == datetime(2023, 11, 14, 22, 13, 20)

    def test_epoch_string(self):
        assert parse_uex_datetime("1700000000") == datetime(2023, 11, 14, 22, 13, 20)

    def test_iso_with_offset_becomes_naive_utc(self):
        assert parse_uex_datetime("2025-01-01T12:00:00+02:00") == datetime(2025, 1, 1, 10, 0)

    def test_garbage(self):
        assert parse_uex_datetime("yesterday") is None
        assert parse_uex_datetime(None) is None


class TestCatalog:
    def test_category(self):
        fields = normalize_category(
            {"id": 5, "type": "item", "section": "Armor", "name": "Helmets",
             "is_game_related": 1, "date_added": 1700000000}
        )
        assert fields["type"] == "item"
        assert fields["name"] == "Helmets"
        assert fields["is_game_related"] is True
        assert fields["uex_date_added"] == datetime(2023, 11, 14, 22, 13, 20)
        assert fields["uex_date_modified"] is None

    def test_company(self):
        fields = normalize_company({"id": 3, "name": "Aegis Dynamics", "nickname": "Aegis"})
        assert fields["name"] == "Aegis Dynamics"
        assert fields["nickname"] == "Aegis"

    def test_item_keeps_known_company(self):
        fields = normalize_item({"id": 9, "name": "Arclight", "id_company": 3}, 12, {3})
        assert fields["category_id"] == 12
        assert fields["company_id"] == 3

    def test_item_drops_unknown_company(self):
        fields = normalize_item({"id": 9, "name": "Arclight", "id_company": 4}, 12, {3})
        assert fields["company_id"] is None

    def test_item_commodity_and_weight(self):
        fields = normalize_item(
            {"id": 9, "name": "Gold", "kind": "commodity", "weight_scu": "0.5"}, 1, set()
        )
        assert fields["is_commodity"] is True
        assert fields["weight_scu"] == pytest.approx(0.5)


class TestLocations:
    def test_station_code_falls_back_to_nickname(self):
        fields = normalize_space_station({"id": 1, "name": "Port Olisar", "nickname": "PO"})
        assert fields["code"] == "PO"

    def test_station_zero_parents_are_absent(self):
        fields = normalize_space_station(
            {"id": 1, "name": "Everus Harbor", "id_planet": 0, "id_moon": None, "id_orbit": 7}
        )
        assert fields["planet_id"] is None
        assert fields["moon_id"] is None
        assert fields["orbit_id"] == 7

    def test_poi_availability_defaults_to_true(self):
        fields = normalize_poi({"id": 2, "name": "Jumptown"})
        assert fields["is_available"] is True

    def test_poi_unavailable(self):
        assert normalize_poi({"id": 2, "name": "X", "is_available": 0})["is_available"] is False
