"""Tests for query_builders.py SoQL predicates."""

from query_builders import (
    and_clauses,
    between_iso,
    bbl_predicate,
    bin_predicate,
    borough_predicate,
    compare_iso,
    in_values,
    is_not_null,
    point_in_polygon,
    quote,
    timestamp_literal,
    within_circle,
)


def test_and_clauses_skips_empty():
    assert and_clauses("a = 1", None, "", "  ", "b = 2") == "a = 1 AND b = 2"
    assert and_clauses(None) == ""


def test_quote_escapes_single_quotes():
    assert quote("O'BRIEN") == "'O''BRIEN'"


def test_within_circle():
    assert within_circle("the_geom", 40.75, -73.98, 400) == "within_circle(the_geom, 40.75, -73.98, 400)"


def test_compare_iso_plain_literal():
    assert compare_iso("created_date", ">=", "2026-03-01T00:00:00.000Z") == \
        "created_date >= '2026-03-01T00:00:00.000Z'"


def test_compare_iso_cast_literal_is_truncated():
    assert compare_iso("issuance_date", ">=", "2026-03-01T10:20:30.456Z", cast=True) == \
        "issuance_date::floating_timestamp >= '2026-03-01T10:20:30'"


def test_timestamp_literal():
    assert timestamp_literal("2026-03-01T10:20:30.456Z") == "'2026-03-01T10:20:30'"


def test_between_iso_open_and_closed():
    assert between_iso("crash_date", "2026-01-01T00:00:00.000Z") == "crash_date >= '2026-01-01T00:00:00.000Z'"
    assert between_iso("created_date", "2026-01-01T00:00:00.000Z", "2026-02-01T00:00:00.000Z") == \
        "created_date between '2026-01-01T00:00:00.000Z' and '2026-02-01T00:00:00.000Z'"


def test_in_values():
    assert in_values("zip", ["10001", " ", "10002"]) == "zip in ('10001', '10002')"
    assert in_values("zip", []) is None


def test_borough_predicate_upper_cases():
    assert borough_predicate("boroughname", "Staten Island") == "upper(boroughname) = 'STATEN ISLAND'"
    assert borough_predicate("boroughname", None) is None


def test_identifier_predicates():
    assert bbl_predicate("bbl", "1008350041") == "bbl = '1008350041'"
    assert bin_predicate("bin", "1015862") == "bin = '1015862'"
    assert bin_predicate("bin", None) is None


def test_point_in_polygon_is_lon_lat():
    assert point_in_polygon("multipolygon", -73.98, 40.75) == "intersects(multipolygon, 'POINT (-73.98 40.75)')"


def test_is_not_null():
    assert is_not_null("wkt") == "wkt is not null"
