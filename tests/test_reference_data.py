"""Tests for the static pincode tables."""
import json

import pytest

from freightbid.core.reference_data import (
    Centroid,
    GlobalZoneTable,
    PincodeGeocoder,
    load_reference_data,
)


class TestPincodeGeocoder:

    def test_locate_known_pincode(self):
        geocoder = PincodeGeocoder.from_records([{"pincode": "110001", "lat": "28.6", "lng": 77.2}])
        assert geocoder.locate("110001") == Centroid(28.6, 77.2)
        assert geocoder.locate(110001) == Centroid(28.6, 77.2)

    def test_skips_bad_rows(self):
        geocoder = PincodeGeocoder.from_records([
            {"pincode": "110001", "lat": "north", "lng": 77.2},
            {"pincode": "400001"},
            {"lat": 1, "lng": 2},
        ])
        assert len(geocoder) == 0
        assert geocoder.locate(None) is None

    def test_table_is_read_only(self):
        geocoder = PincodeGeocoder({"110001": Centroid(1, 2)})
        with pytest.raises(TypeError):
            geocoder._centroids["400001"] = Centroid(3, 4)


class TestGlobalZoneTable:

    def test_zone_codes_upper_cased(self):
        zones = GlobalZoneTable.from_records([{"pincode": " 560001 ", "zone": "s1"}])
        assert zones.zone_for("560001") == "S1"

    def test_unknown_and_blank(self):
        zones = GlobalZoneTable.from_records([{"pincode": "560001", "zone": ""}])
        assert zones.zone_for("560001") is None
        assert zones.zone_for("") is None


class TestLoadReferenceData:

    def test_loads_from_files(self, tmp_path):
        centroids = tmp_path / "centroids.json"
        zones = tmp_path / "zones.json"
        centroids.write_text(json.dumps([{"pincode": "110001", "lat": 28.6, "lng": 77.2}]))
        zones.write_text(json.dumps([{"pincode": "110001", "zone": "N1"}]))

        data = load_reference_data(str(centroids), str(zones))

        assert data.geocoder.locate("110001") == Centroid(28.6, 77.2)
        assert data.zones.zone_for("110001") == "N1"

    def test_missing_or_malformed_files_give_empty_tables(self, tmp_path):
        not_a_list = tmp_path / "zones.json"
        not_a_list.write_text(json.dumps({"110001": "N1"}))

        data = load_reference_data(str(tmp_path / "missing.json"), str(not_a_list))

        assert len(data.geocoder) == 0
        assert len(data.zones) == 0

    def test_packaged_tables(self):
        data = load_reference_data()
        assert data.zones.zone_for("110001") == "N1"
        assert data.geocoder.locate("400001") is not None
