"""street_works: DOT construction permits, closures and street openings near the block."""

import math
import asyncio

from brief_modules.helpers import (
    BuildServices, cached_query, cap_items, clean, count_by, join_parts, module_sources,
    settled, street_segment_title, total_failure, unavailable_module,
)
from geo import distance_point_to_line_meters, parse_wkt_linestring
from models import Module, ModuleItem, ModuleStat, QueryContext
from query_builders import and_clauses, between_iso, borough_predicate, compare_iso, is_not_null, within_circle
from time_utils import days_ahead_iso, duration_days, is_active_now

DATASET_IDS = ["tqtj-sjs8", "9jic-byiu", "i6b5-j7bu"]
METHODOLOGY = (
    "active-first ranking: active now, then longer duration, then closer geometry; closure radius is "
    "geospatial, opening permits use borough+street fallback"
)
UNAVAILABLE_HEADLINE = "Street works data is temporarily unavailable."
COVERAGE_NOTE = (
    "Street opening permits (9jic-byiu) are borough-filtered in v1 because precise geometry is not "
    "consistently exposed in this feed."
)


def permits_by_proximity(rows: list[dict], lat: float, lon: float, radius_m: float) -> list[dict]:
    """Permits whose WKT line passes within the radius, nearest first."""
    scored = []
    for row in rows:
        line = parse_wkt_linestring(row.get("wkt"))
        proximity = distance_point_to_line_meters(lat, lon, line) if line else math.inf
        if proximity <= radius_m:
            scored.append((proximity, row))
    scored.sort(key=lambda pair: pair[0])
    return [row for _, row in scored]


def rank_street_works(rows: list[dict], now: str) -> list[dict]:
    """Active permits first, then longer duration. Stable, so input order breaks ties."""
    return sorted(
        rows,
        key=lambda r: (
            not is_active_now(r.get("issuedworkstartdate"), r.get("issuedworkenddate"), now),
            -duration_days(r.get("issuedworkstartdate"), r.get("issuedworkenddate")),
        ),
    )


async def build_street_works(ctx: QueryContext, services: BuildServices) -> Module:
    sources = module_sources(DATASET_IDS)
    loc = ctx.location
    day = ctx.now[:10]

    try:
        next_30 = days_ahead_iso(30, now=ctx.now)
        closures_where = and_clauses(
            within_circle("the_geom", loc.lat, loc.lon, ctx.radius_secondary_m),
            between_iso("work_end_date", ctx.now),
        )
        permits_where = and_clauses(
            borough_predicate("boroughname", loc.borough),
            compare_iso("issuedworkenddate", ">=", ctx.window_90d),
            compare_iso("issuedworkstartdate", "<=", next_30),
            is_not_null("wkt"),
        )
        openings_where = and_clauses(
            borough_predicate("boroughname", loc.borough),
            compare_iso("issuedworkenddate", ">=", ctx.window_90d),
            compare_iso("issuedworkstartdate", "<=", next_30),
        )

        results = await asyncio.gather(
            cached_query(
                services, f"i6b5-j7bu:closures:{ctx.block_key}:{day}", 900, "i6b5-j7bu",
                select="uniqueid, onstreetname, fromstreetname, tostreetname, work_start_date, work_end_date, purpose",
                where=closures_where, order="work_start_date ASC", limit=80,
            ),
            cached_query(
                services, f"tqtj-sjs8:permits:{ctx.block_key}:{day}", 900, "tqtj-sjs8",
                select=("permitnumber, permitstatusshortdesc, permittypedesc, permitteename, onstreetname, "
                        "fromstreetname, tostreetname, issuedworkstartdate, issuedworkenddate, wkt"),
                where=permits_where, order="issuedworkstartdate ASC", limit=1200,
            ),
            cached_query(
                services, f"9jic-byiu:openings:{ctx.block_key}:{day}", 900, "9jic-byiu",
                select=("permitnumber, permittypedesc, permitstatusshortdesc, permitteename, onstreetname, "
                        "fromstreetname, tostreetname, issuedworkstartdate, issuedworkenddate"),
                where=openings_where, order="issuedworkstartdate ASC", limit=250,
            ),
            return_exceptions=True,
        )

        failure = total_failure(results, ["i6b5-j7bu", "tqtj-sjs8", "9jic-byiu"])
        if failure:
            return unavailable_module("street_works", UNAVAILABLE_HEADLINE, sources, METHODOLOGY, failure)

        warnings: list[str] = []
        closure_rows = settled(results[0], "i6b5-j7bu", warnings)
        permit_rows = settled(results[1], "tqtj-sjs8", warnings)
        opening_rows = settled(results[2], "9jic-byiu", warnings)

        ranked = rank_street_works(
            permits_by_proximity(permit_rows, loc.lat, loc.lon, ctx.radius_secondary_m), ctx.now
        )
        active_works = [r for r in ranked
                        if is_active_now(r.get("issuedworkstartdate"), r.get("issuedworkenddate"), ctx.now)]
        active_closures = [r for r in closure_rows
                           if is_active_now(r.get("work_start_date"), r.get("work_end_date"), ctx.now)]

        top_permittees = ", ".join(
            f"{name} ({count})" for name, count in count_by(r.get("permitteename") for r in ranked)[:3]
        )
        most_disruptive = clean(ranked[0].get("permittypedesc")) if ranked else None

        active_total = len(active_works) + len(active_closures)
        if active_total:
            headline = f"{active_total} active street disruptions are currently in effect nearby."
        else:
            headline = "No active street disruptions were found in the immediate radius right now."

        items: list[ModuleItem] = []
        for row in active_closures[:5]:
            on, frm, to = clean(row.get("onstreetname")), clean(row.get("fromstreetname")), clean(row.get("tostreetname"))
            items.append(ModuleItem(
                title=street_segment_title(on, frm, to) or "Street closure",
                subtitle=clean(row.get("purpose")),
                date_start=clean(row.get("work_start_date")),
                date_end=clean(row.get("work_end_date")),
                location_desc=join_parts(on, frm, to),
                source_dataset_id="i6b5-j7bu",
                raw_id=clean(row.get("uniqueid")),
            ))
        for row in ranked[:5]:
            items.append(ModuleItem(
                title=clean(row.get("permittypedesc")) or "Street work permit",
                subtitle=clean(row.get("permitteename")),
                date_start=clean(row.get("issuedworkstartdate")),
                date_end=clean(row.get("issuedworkenddate")),
                location_desc=join_parts(clean(row.get("onstreetname")), clean(row.get("fromstreetname")),
                                         clean(row.get("tostreetname"))),
                source_dataset_id="tqtj-sjs8",
                raw_id=clean(row.get("permitnumber")),
                geometry_wkt=clean(row.get("wkt")),
            ))
        for row in opening_rows[:2]:
            items.append(ModuleItem(
                title=clean(row.get("permittypedesc")) or "Street opening permit",
                subtitle=(f"{clean(row.get('permitteename')) or 'Unknown permittee'} · "
                          f"{clean(row.get('permitstatusshortdesc')) or 'Unknown status'}"),
                date_start=clean(row.get("issuedworkstartdate")),
                date_end=clean(row.get("issuedworkenddate")),
                location_desc=join_parts(clean(row.get("onstreetname")), clean(row.get("fromstreetname")),
                                         clean(row.get("tostreetname"))),
                source_dataset_id="9jic-byiu",
                raw_id=clean(row.get("permitnumber")),
            ))

        return Module(
            id="street_works",
            headline=headline,
            status="partial" if warnings else "ok",
            stats=[
                ModuleStat(label="Active street works", value=len(active_works)),
                ModuleStat(label="Active closures", value=len(active_closures)),
                ModuleStat(label="Most disruptive", value=most_disruptive or "N/A"),
                ModuleStat(label="Top permittees", value=top_permittees or "N/A"),
            ],
            items=cap_items(items),
            methodology=METHODOLOGY,
            sources=sources,
            warnings=warnings or None,
            coverage_note=COVERAGE_NOTE,
        )
    except Exception as e:
        return unavailable_module("street_works", UNAVAILABLE_HEADLINE, sources, METHODOLOGY, str(e))
