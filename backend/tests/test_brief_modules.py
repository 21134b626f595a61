"""Module builder tests against a FakeSoda.

Each builder is exercised for its happy path, partial failure and total
failure. Dates are relative to NOW = 2026-03-15T12:00Z.
"""

import pytest

from brief_modules.collisions import (
    CrashPoint, build_collisions, cluster_points, combine_crash_datetime, hotspot_label,
)
from brief_modules.dob_permits import build_dob_permits, split_bbl
from brief_modules.events import (
    board_numbers, build_events, district_number, rank_events, street_tokens,
)
from brief_modules.film import build_film
from brief_modules.pulse311 import build_pulse311
from brief_modules.right_now import build_right_now
from brief_modules.sanitation import build_sanitation
from brief_modules.street_works import build_street_works, rank_street_works
from brief import build_query_context
from models import Location
from soda_client import SodaError
from tests.conftest import NOW, state_plane_wkt


def _stats(module) -> dict:
    return {s.label: s.value for s in module.stats}


def _near_wkt(location, lat_offset: float = 0.0) -> str:
    lat = location.lat + lat_offset
    return state_plane_wkt([(lat, location.lon - 0.0005), (lat, location.lon + 0.0005)])


def _assert_unavailable(module, fragment: str):
    assert module.status == "unavailable"
    assert module.items == []
    assert len(module.stats) == 1
    assert module.warnings and fragment in module.warnings[0]


# ─────────────────────────── right_now ──────────────────────────

class TestRightNow:
    async def test_counts_active_disruptions(self, ctx, services, fake_soda, location):
        fake_soda.responses = {
            "i6b5-j7bu": [{"uniqueid": "C1", "onstreetname": "W 34 ST", "fromstreetname": "5 AVE",
                           "tostreetname": "6 AVE", "purpose": "Crane"}],
            "tqtj-sjs8": [
                {"permitnumber": "P-near", "permittypedesc": "Sidewalk", "wkt": _near_wkt(location)},
                {"permitnumber": "P-far", "permittypedesc": "Sidewalk", "wkt": _near_wkt(location, 0.02)},
            ],
            "tg4x-b46p": [
                {"eventid": "F1", "eventtype": "Shooting Permit", "zipcode_s": "10001, 10118"},
                {"eventid": "F2", "eventtype": "Shooting Permit", "zipcode_s": "11201"},
            ],
        }
        module = await build_right_now(ctx, services)

        assert module.status == "ok"
        assert _stats(module) == {"Active closures": 1, "Active street works": 1, "Active film permits": 1}
        assert module.items[0].title == "W 34 ST (5 AVE to 6 AVE)"
        assert {i.raw_id for i in module.items} == {"C1", "P-near", "F1"}

    async def test_one_dataset_failing_is_partial(self, ctx, services, fake_soda):
        fake_soda.responses = {"tg4x-b46p": SodaError("tg4x-b46p", "SODA tg4x-b46p failed (500): oops")}
        module = await build_right_now(ctx, services)
        assert module.status == "partial"
        assert module.warnings == ["tg4x-b46p: SODA tg4x-b46p failed (500): oops"]
        assert _stats(module)["Active film permits"] == 0

    async def test_all_failing_is_unavailable(self, ctx, services, fake_soda):
        err = SodaError("x", "network down")
        fake_soda.responses = {"i6b5-j7bu": err, "tqtj-sjs8": err, "tg4x-b46p": err}
        _assert_unavailable(await build_right_now(ctx, services), "network down")

    async def test_queries_are_cached_per_hour(self, ctx, services, fake_soda):
        await build_right_now(ctx, services)
        await build_right_now(ctx, services)
        assert len(fake_soda.calls) == 3


# ─────────────────────────── dob_permits ────────────────────────

class TestDobPermits:
    def test_split_bbl(self):
        assert split_bbl("1008350041") == ("1", "00835", "0041")
        assert split_bbl("1-00835-0041") == ("1", "00835", "0041")
        assert split_bbl("12345") == (None, None, None)

    async def test_aggregates_permits_complaints_violations(self, ctx, services, fake_soda, location):
        near = {"gis_latitude": str(location.lat + 0.0005), "gis_longitude": str(location.lon)}
        far = {"gis_latitude": str(location.lat + 0.01), "gis_longitude": str(location.lon)}

        def violations(query):
            if "respondent_name" in query["select"]:
                return [{"respondent_name": "ACME LLC", "count": "2"}]
            return [{"count": "6", "latest": "20260201"}]

        fake_soda.responses = {
            "ipu4-2q9a": [
                {"permit_si_no": "1", "work_type": "PL", "house__": "350", "street_name": "5 AVENUE",
                 "issuance_date": "03/01/2026", **near},
                {"permit_si_no": "2", "work_type": "PL", **near},
                {"permit_si_no": "3", "work_type": "EW", **far},
            ],
            "rbx6-tga4": [{"tracking_number": "T1", "work_type": "Plumbing", "latitude": near["gis_latitude"],
                           "longitude": near["gis_longitude"]}],
            "eabe-havv": [
                {"complaint_category": "45", "status": "OPEN", "count": "4"},
                {"complaint_category": "05", "status": "CLOSED", "count": "7"},
            ],
            "6bgk-3dad": violations,
        }
        module = await build_dob_permits(ctx, services)
        stats = _stats(module)

        assert module.status == "ok"
        assert stats["DOB permits (90d)"] == 3
        assert stats["Top work type"] == "PL"
        assert stats["DOB complaints (90d)"] == 11
        assert stats["Open complaints"] == 4
        assert stats["ECB violations (12m)"] == 6
        assert stats["Latest ECB issue date"] == "20260201"
        permit_item = next(i for i in module.items if i.raw_id == "1")
        assert permit_item.date_start == "2026-03-01T00:00:00.000Z"
        assert permit_item.lat == pytest.approx(location.lat + 0.0005)

    async def test_query_shapes(self, ctx, services, fake_soda):
        await build_dob_permits(ctx, services)
        issuance = fake_soda.calls_for("ipu4-2q9a")[0]
        assert "issuance_date::floating_timestamp >= '2025-12-15T12:00:00'" in issuance["where"]
        assert "gis_latitude::number between" in issuance["where"]
        violation_where = fake_soda.calls_for("6bgk-3dad")[0]["where"]
        assert "issue_date >= '20250315'" in violation_where
        assert "boro = '1'" in violation_where
        assert "block = '00835'" in violation_where
        assert "lot = '0041'" in violation_where
        assert "bin = '1015862'" in violation_where

    async def test_missing_bin_skips_complaints(self, services, fake_soda, location):
        ctx = build_query_context(location.model_copy(update={"bin": None}), now=NOW)
        module = await build_dob_permits(ctx, services)
        assert fake_soda.calls_for("eabe-havv") == []
        assert module.status == "partial"
        assert any("BIN metadata missing" in w for w in module.warnings)
        assert module.coverage_note == "Non-geocoded DOB datasets rely on BIN/BBL matching in v1."

    async def test_bbl_only_violations_scoped_to_borough(self, services, fake_soda, location):
        ctx = build_query_context(location.model_copy(update={"bin": None, "bbl": "3012340056"}), now=NOW)
        await build_dob_permits(ctx, services)
        violation_where = fake_soda.calls_for("6bgk-3dad")[0]["where"]
        assert "boro = '3'" in violation_where
        assert "block = '01234'" in violation_where
        assert "lot = '0056'" in violation_where
        assert "bin =" not in violation_where

    async def test_no_identifiers_skips_violations(self, services, fake_soda, location):
        ctx = build_query_context(location.model_copy(update={"bin": None, "bbl": None}), now=NOW)
        module = await build_dob_permits(ctx, services)
        assert fake_soda.calls_for("6bgk-3dad") == []
        assert _stats(module)["ECB violations (12m)"] == 0

    async def test_all_failing_is_unavailable(self, ctx, services, fake_soda):
        err = SodaError("x", "boom")
        fake_soda.responses = {d: err for d in ("ipu4-2q9a", "rbx6-tga4", "eabe-havv", "6bgk-3dad")}
        _assert_unavailable(await build_dob_permits(ctx, services), "boom")


# ─────────────────────────── street_works ───────────────────────

class TestStreetWorks:
    def test_rank_active_first_then_longer(self):
        rows = [
            {"id": "future-long", "issuedworkstartdate": "2026-03-20T00:00:00", "issuedworkenddate": "2026-06-20T00:00:00"},
            {"id": "active-short", "issuedworkstartdate": "2026-03-14T00:00:00", "issuedworkenddate": "2026-03-16T00:00:00"},
            {"id": "active-long", "issuedworkstartdate": "2026-03-01T00:00:00", "issuedworkenddate": "2026-04-01T00:00:00"},
            {"id": "active-short-2", "issuedworkstartdate": "2026-03-14T00:00:00", "issuedworkenddate": "2026-03-16T00:00:00"},
        ]
        ranked = [r["id"] for r in rank_street_works(rows, NOW)]
        assert ranked == ["active-long", "active-short", "active-short-2", "future-long"]

    async def test_builds_ranked_module(self, ctx, services, fake_soda, location):
        fake_soda.responses = {
            "i6b5-j7bu": [
                {"uniqueid": "C-active", "onstreetname": "W 34 ST", "work_start_date": "2026-03-10T00:00:00",
                 "work_end_date": "2026-03-20T00:00:00"},
                {"uniqueid": "C-later", "onstreetname": "W 33 ST", "work_start_date": "2026-03-25T00:00:00",
                 "work_end_date": "2026-03-30T00:00:00"},
            ],
            "tqtj-sjs8": [
                {"permitnumber": "P-future", "permittypedesc": "Crane", "permitteename": "CON ED",
                 "issuedworkstartdate": "2026-03-20T00:00:00", "issuedworkenddate": "2026-06-20T00:00:00",
                 "wkt": _near_wkt(location)},
                {"permitnumber": "P-active", "permittypedesc": "Sidewalk Shed", "permitteename": "CON ED",
                 "issuedworkstartdate": "2026-03-01T00:00:00", "issuedworkenddate": "2026-03-30T00:00:00",
                 "wkt": _near_wkt(location, 0.001)},
                {"permitnumber": "P-far", "permittypedesc": "Paving", "permitteename": "DOT",
                 "issuedworkstartdate": "2026-03-01T00:00:00", "issuedworkenddate": "2026-03-30T00:00:00",
                 "wkt": _near_wkt(location, 0.02)},
            ],
            "9jic-byiu": [{"permitnumber": "O1", "permitteename": "VERIZON", "permitstatusshortdesc": "ISSUED"}],
        }
        module = await build_street_works(ctx, services)
        stats = _stats(module)

        assert module.status == "ok"
        assert stats["Active street works"] == 1
        assert stats["Active closures"] == 1
        assert stats["Most disruptive"] == "Sidewalk Shed"
        assert stats["Top permittees"] == "CON ED (2)"
        permit_ids = [i.raw_id for i in module.items if i.source_dataset_id == "tqtj-sjs8"]
        assert permit_ids == ["P-active", "P-future"]
        assert module.coverage_note.startswith("Street opening permits (9jic-byiu)")
        opening = next(i for i in module.items if i.source_dataset_id == "9jic-byiu")
        assert opening.subtitle == "VERIZON · ISSUED"

    async def test_opening_failure_is_partial(self, ctx, services, fake_soda):
        fake_soda.responses = {"9jic-byiu": SodaError("9jic-byiu", "timeout")}
        module = await build_street_works(ctx, services)
        assert module.status == "partial"
        assert module.warnings == ["9jic-byiu: timeout"]


# ─────────────────────────── collisions ─────────────────────────

class TestCollisions:
    def test_greedy_cluster_with_centroid_drift(self):
        points = [CrashPoint(0, 0), CrashPoint(0, 0.0001), CrashPoint(0, 0.0002)]
        clusters = cluster_points(points, 75)
        assert len(clusters) == 1
        assert len(clusters[0].points) == 3
        assert clusters[0].center_lon == pytest.approx(0.0001)

    def test_far_point_starts_new_cluster(self):
        clusters = cluster_points([CrashPoint(0, 0), CrashPoint(0, 0.01)], 75)
        assert [len(c.points) for c in clusters] == [1, 1]

    def test_hotspot_label_most_common(self):
        cluster = cluster_points([
            CrashPoint(40.75, -73.98, "5 AVE & W 34 ST"),
            CrashPoint(40.75, -73.98, "5 AVE & W 34 ST"),
            CrashPoint(40.75, -73.98, ""),
        ])[0]
        assert hotspot_label(cluster) == "5 AVE & W 34 ST"
        assert hotspot_label(None) == "No hotspot"

    def test_combine_crash_datetime(self):
        assert combine_crash_datetime("2026-03-01T00:00:00.000", "8:05") == "2026-03-01T08:05:00"
        assert combine_crash_datetime("2026-03-01T00:00:00.000", "25:00") == "2026-03-01"
        assert combine_crash_datetime(None, "8:05") is None

    async def test_builds_module(self, ctx, services, fake_soda):
        def handler(query):
            if query["select"].startswith("count(*)"):
                return [{"crashes": "12", "injuries": "4"}]
            return [
                {"collision_id": "1", "crash_date": "2026-03-01T00:00:00.000", "crash_time": "9:15",
                 "on_street_name": "5 AVENUE", "cross_street_name": "WEST 34 STREET",
                 "latitude": "40.7485", "longitude": "-73.9857", "number_of_persons_injured": "0"},
                {"collision_id": "2", "crash_date": "2026-03-02T00:00:00.000", "crash_time": "",
                 "on_street_name": "5 AVENUE", "cross_street_name": "WEST 34 STREET",
                 "latitude": "40.7486", "longitude": "-73.9857", "number_of_persons_injured": "2"},
                {"collision_id": "3", "crash_date": "2026-03-03T00:00:00.000",
                 "on_street_name": "BROADWAY", "latitude": "40.7510", "longitude": "-73.9880",
                 "number_of_persons_injured": "1"},
            ]

        fake_soda.responses = {"h9gi-nx95": handler}
        module = await build_collisions(ctx, services)
        stats = _stats(module)

        assert module.status == "ok"
        assert stats["Crashes (90d)"] == 12
        assert stats["Injuries (90d)"] == 4
        assert stats["Hot intersection"] == "5 AVENUE & WEST 34 STREET"
        assert stats["Hotspot crashes"] == 2
        assert [i.raw_id for i in module.items] == ["2", "3", "1"]
        assert module.items[0].subtitle == "2 injuries · Time not reported"
        assert "within 400m" in module.methodology

    async def test_aggregate_failure_falls_back_to_rows(self, ctx, services, fake_soda):
        def handler(query):
            if query["select"].startswith("count(*)"):
                raise SodaError("h9gi-nx95", "agg failed")
            return [{"collision_id": "1", "latitude": "40.7485", "longitude": "-73.9857",
                     "number_of_persons_injured": "3"}]

        fake_soda.responses = {"h9gi-nx95": handler}
        module = await build_collisions(ctx, services)
        assert module.status == "partial"
        assert _stats(module)["Crashes (90d)"] == 1
        assert _stats(module)["Injuries (90d)"] == 3


# ─────────────────────────── 311_pulse ──────────────────────────

class TestPulse311:
    async def test_delta_against_prior_period(self, ctx, services, fake_soda):
        def handler(query):
            if "group" in query and query["group"]:
                return [{"complaint_type": "Noise - Residential", "count": "90"},
                        {"complaint_type": "Illegal Parking", "count": "40"}]
            if " between " in query["where"]:
                return [{"count": "150"}]
            return [{"count": "220"}]

        fake_soda.responses = {"erm2-nwe9": handler}
        module = await build_pulse311(ctx, services)
        requests = module.stats[0]

        assert module.status == "ok"
        assert requests.label == "Requests (30d)"
        assert requests.value == 220
        assert requests.delta == 70
        assert _stats(module)["Prior period"] == 150
        assert _stats(module)["Top issue"] == "Noise - Residential"
        assert module.items[1].subtitle == "40 requests"

    async def test_total_failure(self, ctx, services, fake_soda):
        fake_soda.responses = {"erm2-nwe9": SodaError("erm2-nwe9", "503")}
        _assert_unavailable(await build_pulse311(ctx, services), "erm2-nwe9")


# ─────────────────────────── sanitation ─────────────────────────

FREQS = {"district": "MN05", "section": "052", "freq_refuse": "MWF", "freq_recycling": "W",
         "freq_organics": "W", "freq_bulk": "MWF"}


class TestSanitation:
    async def test_preferred_dataset(self, ctx, services, fake_soda):
        fake_soda.responses = {"p7k6-2pm8": [FREQS]}
        module = await build_sanitation(ctx, services)
        assert module.status == "ok"
        assert _stats(module) == {"Refuse": "MWF", "Recycling": "W", "Organics": "W", "Bulk": "MWF"}
        assert module.items[0].source_dataset_id == "p7k6-2pm8"
        assert module.coverage_note is None
        assert fake_soda.calls_for("rv63-53db") == []

    async def test_falls_back_when_preferred_empty(self, ctx, services, fake_soda):
        fake_soda.responses = {
            "p7k6-2pm8": [{"district": "MN05"}],
            "rv63-53db": [{**FREQS, "freq_organics": None}],
        }
        module = await build_sanitation(ctx, services)
        assert module.items[0].source_dataset_id == "rv63-53db"
        assert "rv63-53db" in module.coverage_note
        assert _stats(module)["Organics"] == "N/A"

    async def test_preferred_error_still_falls_back(self, ctx, services, fake_soda):
        fake_soda.responses = {"p7k6-2pm8": SodaError("p7k6-2pm8", "400"), "rv63-53db": [FREQS]}
        module = await build_sanitation(ctx, services)
        assert module.status == "ok"

    async def test_no_boundary_match(self, ctx, services, fake_soda):
        module = await build_sanitation(ctx, services)
        assert module.status == "partial"
        assert _stats(module) == {"Status": "No boundary match"}

    async def test_fallback_error_is_unavailable(self, ctx, services, fake_soda):
        fake_soda.responses = {"rv63-53db": SodaError("rv63-53db", "down")}
        _assert_unavailable(await build_sanitation(ctx, services), "down")

    async def test_cached_by_block(self, ctx, services, fake_soda):
        fake_soda.responses = {"p7k6-2pm8": [FREQS]}
        await build_sanitation(ctx, services)
        await build_sanitation(ctx, services)
        assert len(fake_soda.calls) == 1
        assert services.cache.get(f"sanitation:{ctx.block_key}") is not None


# ─────────────────────────── events ─────────────────────────────

def _event(event_id, board="5", closure="N/A", where="BROADWAY", event_type="Special Event",
           start="2026-03-20T10:00:00.000"):
    return {"event_id": event_id, "event_name": f"Event {event_id}", "event_type": event_type,
            "event_location": where, "community_board": board, "street_closure_type": closure,
            "start_date_time": start}


class TestEvents:
    def test_district_parsing(self):
        assert district_number("105") == 5
        assert district_number("Manhattan 05") == 5
        assert district_number(None) is None
        assert board_numbers("1, 5,") == {1, 5}

    def test_street_tokens(self):
        assert street_tokens("350 5th Ave, Manhattan, NY 10118") == {"5TH"}
        assert street_tokens("12 West 34th Street, Manhattan") == {"34TH"}
        assert street_tokens(None) == set()

    def test_rank_by_score_then_start(self):
        rows = [
            _event("sports", event_type="Sport - Youth", start="2026-03-16T10:00:00.000"),
            _event("plain", start="2026-03-17T10:00:00.000"),
            _event("closure-street", closure="Full Street Closure", where="5TH AVENUE between 33 and 34"),
            _event("other-district", board="7", closure="Full Street Closure"),
        ]
        ranked = [r["event_id"] for r in rank_events(rows, 5, {"5TH"})]
        assert ranked == ["closure-street", "plain", "sports"]

    def test_no_district_match_keeps_borough_pool(self):
        rows = [_event("a", board="7"), _event("b", board="8")]
        assert len(rank_events(rows, 5, set())) == 2

    def test_large_pool_trimmed_when_enough_signal(self):
        routine = [_event(f"r{i}", event_type="Sport - Adult") for i in range(30)]
        signal = [_event(f"s{i}", closure="Sidewalk Closure", event_type="Sport - Adult") for i in range(8)]
        ranked = rank_events(routine + signal, 5, set())
        assert {r["event_id"] for r in ranked} == {f"s{i}" for i in range(8)}

    def test_large_pool_kept_when_trim_too_aggressive(self):
        routine = [_event(f"r{i}", event_type="Sport - Adult") for i in range(30)]
        signal = [_event(f"s{i}", closure="Sidewalk Closure", event_type="Sport - Adult") for i in range(7)]
        assert len(rank_events(routine + signal, 5, set())) == 37

    async def test_builds_module(self, ctx, services, fake_soda):
        fake_soda.responses = {"tvpp-9vvx": [
            _event("1", start="2026-03-18T10:00:00.000"),
            _event("2", closure="Full Street Closure", where="5TH AVENUE", start="2026-03-20T10:00:00.000"),
        ]}
        module = await build_events(ctx, services)
        stats = _stats(module)
        assert module.status == "ok"
        assert stats["Upcoming events"] == 2
        assert stats["Next event"] == "Event 2"
        assert stats["Starts"] == "3/20/2026"
        assert module.coverage_note is None
        assert fake_soda.calls_for("5crt-au7u") == []

    async def test_looks_up_district_when_missing(self, services, fake_soda, location):
        ctx = build_query_context(location.model_copy(update={"community_district": None}), now=NOW)
        fake_soda.responses = {
            "5crt-au7u": [{"borocd": "105"}],
            "tvpp-9vvx": [_event("in", board="5"), _event("out", board="4")],
        }
        module = await build_events(ctx, services)
        assert [i.raw_id for i in module.items] == ["in"]
        assert "intersects(the_geom" in fake_soda.calls_for("5crt-au7u")[0]["where"]

    async def test_nearby_points_resolve_their_own_district(self, services, fake_soda):
        # ~45 m apart, on either side of a district line
        west = Location(lat=40.7481, lon=-73.9851, borough="Manhattan")
        east = Location(lat=40.7482, lon=-73.9846, borough="Manhattan")
        fake_soda.responses = {
            "5crt-au7u": lambda q: [{"borocd": "105" if "POINT (-73.9851 40.7481)" in q["where"] else "106"}],
            "tvpp-9vvx": [_event("cd5", board="5"), _event("cd6", board="6")],
        }
        west_module = await build_events(build_query_context(west, now=NOW), services)
        east_module = await build_events(build_query_context(east, now=NOW), services)

        assert [i.raw_id for i in west_module.items] == ["cd5"]
        assert [i.raw_id for i in east_module.items] == ["cd6"]
        assert len(fake_soda.calls_for("5crt-au7u")) == 2

    async def test_no_borough_skips_district(self, services, fake_soda, location):
        ctx = build_query_context(location.model_copy(update={"borough": None}), now=NOW)
        fake_soda.responses = {"tvpp-9vvx": [
            _event("manhattan-5", board="5", start="2026-03-16T10:00:00.000"),
            _event("closure-7", board="7", closure="Full Street Closure", start="2026-03-18T10:00:00.000"),
        ]}
        module = await build_events(ctx, services)

        assert [i.raw_id for i in module.items] == ["closure-7", "manhattan-5"]
        assert fake_soda.calls_for("5crt-au7u") == []
        assert module.coverage_note.startswith("Borough metadata was not available")

    async def test_district_lookup_failure_is_partial(self, services, fake_soda, location):
        ctx = build_query_context(location.model_copy(update={"community_district": None}), now=NOW)
        fake_soda.responses = {"5crt-au7u": SodaError("5crt-au7u", "down"), "tvpp-9vvx": [_event("1")]}
        module = await build_events(ctx, services)
        assert module.status == "partial"
        assert module.coverage_note is not None

    async def test_events_failure_is_unavailable(self, ctx, services, fake_soda):
        fake_soda.responses = {"tvpp-9vvx": SodaError("tvpp-9vvx", "down")}
        _assert_unavailable(await build_events(ctx, services), "down")


# ─────────────────────────── film ───────────────────────────────

class TestFilm:
    async def test_zip_filter_and_active_count(self, ctx, services, fake_soda):
        fake_soda.responses = {"tg4x-b46p": [
            {"eventid": "1", "eventtype": "Shooting Permit", "zipcode_s": "10118",
             "startdatetime": "2026-03-15T06:00:00.000", "enddatetime": "2026-03-15T22:00:00.000"},
            {"eventid": "2", "category": "Television", "zipcode_s": "10001, 10118",
             "startdatetime": "2026-03-18T06:00:00.000", "enddatetime": "2026-03-18T22:00:00.000"},
            {"eventid": "3", "zipcode_s": "11201"},
        ]}
        module = await build_film(ctx, services)
        stats = _stats(module)
        assert stats == {"Upcoming permits": 2, "Active now": 1, "Area filter": "ZIP 10118"}
        assert [i.title for i in module.items] == ["Shooting Permit", "Television"]

    async def test_zip_fallback_to_borough(self, ctx, services, fake_soda):
        fake_soda.responses = {"tg4x-b46p": [{"eventid": "1", "zipcode_s": "11201"}]}
        module = await build_film(ctx, services)
        assert _stats(module)["Upcoming permits"] == 1

    async def test_no_zip_is_borough_scoped(self, services, fake_soda, location):
        ctx = build_query_context(location.model_copy(update={"zip_code": None}), now=NOW)
        module = await build_film(ctx, services)
        assert _stats(module)["Area filter"] == "Borough"
        assert "borough-scoped" in module.coverage_note

    async def test_failure_is_unavailable(self, ctx, services, fake_soda):
        fake_soda.responses = {"tg4x-b46p": SodaError("tg4x-b46p", "down")}
        _assert_unavailable(await build_film(ctx, services), "down")
