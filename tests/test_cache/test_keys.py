"""Tests for cache key naming."""

import pytest

from marketcache.cache.keys import (
    canonical_json,
    collection_pattern,
    collection_query_pattern,
    document_key,
    escape_pattern,
    fingerprint,
    format_number,
    geo_index_key,
    geo_query_key,
    merchant_location_key,
    query_key,
)
from marketcache.errors.exceptions import SerializationError
from marketcache.types import GeospatialQuery


class TestCanonicalJson:
    def test_sorted_and_compact(self):
        assert canonical_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test_nested_mappings_sorted(self):
        assert canonical_json({"z": {"y": 1, "x": 2}}) == '{"z":{"x":2,"y":1}}'

    def test_integral_floats_print_as_ints(self):
        assert canonical_json({"r": 5.0, "l": [1.0, 2.5]}) == '{"l":[1,2.5],"r":5}'

    def test_non_ascii_kept(self):
        assert canonical_json({"city": "Parañaque"}) == '{"city":"Parañaque"}'

    def test_unserializable_raises(self):
        with pytest.raises(SerializationError):
            canonical_json({"value": object()})


class TestFormatNumber:
    def test_integral_float(self):
        assert format_number(5.0) == "5"

    def test_fractional_float(self):
        assert format_number(2.5) == "2.5"

    def test_int(self):
        assert format_number(3) == "3"


class TestGeoQueryKey:
    def test_minimal_query(self):
        query = GeospatialQuery(latitude=14.5995, longitude=120.9842, radius_km=5)
        assert geo_query_key(query) == "geo:query:14.5995_120.9842_5_all_{}"

    def test_coordinates_rounded_to_four_decimals(self):
        a = GeospatialQuery(latitude=14.599501, longitude=120.984199, radius_km=5)
        b = GeospatialQuery(latitude=14.5995, longitude=120.9842, radius_km=5)
        assert geo_query_key(a) == geo_query_key(b)

    def test_limit_and_filters(self):
        query = GeospatialQuery(
            latitude=1.5, longitude=-2.25, radius_km=2.5, limit=10,
            filters={"open": True, "cuisine": "thai"},
        )
        assert geo_query_key(query) == (
            'geo:query:1.5000_-2.2500_2.5_10_{"cuisine":"thai","open":true}'
        )

    def test_filter_order_does_not_matter(self):
        a = GeospatialQuery(latitude=0, longitude=0, radius_km=1, filters={"a": 1, "b": 2})
        b = GeospatialQuery(latitude=0, longitude=0, radius_km=1, filters={"b": 2, "a": 1})
        assert geo_query_key(a) == geo_query_key(b)

    def test_alias_accepted(self):
        query = GeospatialQuery.model_validate({"latitude": 0, "longitude": 0, "radiusKm": 3})
        assert query.radius_km == 3


class TestSimpleKeys:
    def test_merchant_location(self):
        assert merchant_location_key("m1") == "merchant:location:m1"

    def test_geo_index(self):
        assert geo_index_key("14:120") == "geo:index:14:120"

    def test_document(self):
        assert document_key("merchants", "m1") == "payload:collection:merchants:m1"

    def test_query_key_shape(self):
        key = query_key("merchants", {"status": "open"})
        assert key.startswith("payload:collection:merchants:query:")


class TestFingerprint:
    def test_known_value(self):
        # "{}" -> 123 * 31 + 125 = 3938 -> "31e" in base 36
        assert fingerprint({}) == "31e"

    def test_deterministic_and_order_independent(self):
        assert fingerprint({"a": 1, "b": [1, 2]}) == fingerprint({"b": [1, 2], "a": 1})

    def test_different_queries_differ(self):
        assert fingerprint({"status": "open"}) != fingerprint({"status": "closed"})

    def test_base36_alphabet(self):
        value = fingerprint({"latitude": 14.5995, "longitude": 120.9842, "radiusKm": 5})
        assert value
        assert set(value) <= set("0123456789abcdefghijklmnopqrstuvwxyz")

    def test_long_input_stays_within_32_bits(self):
        value = fingerprint({"text": "x" * 5000})
        assert int(value, 36) <= 2**31


class TestPatterns:
    def test_collection_pattern(self):
        assert collection_pattern("merchants") == "payload:collection:merchants:*"

    def test_collection_query_pattern(self):
        assert collection_query_pattern("merchants") == "payload:collection:merchants:query:*"

    def test_escape_pattern(self):
        assert escape_pattern("a*b?[c]") == "a\\*b\\?\\[c\\]"

    def test_collection_name_with_glob_chars_escaped(self):
        assert collection_pattern("odd*") == "payload:collection:odd\\*:*"
