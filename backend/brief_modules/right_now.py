"""right_now: what is active at this moment (closures, street works, film shoots)."""

import asyncio

from brief_modules.helpers import (
    BuildServices, cached_query, cap_items, clean, join_parts, module_sources,
    settled, street_segment_title, total_failure, unavailable_module, zip_list_matches,
)
from geo import distance_point_to_line_meters, parse_wkt_linestring
from models import Module, ModuleItem, ModuleStat, QueryContext
from query_builders import and_clauses, borough_predicate, compare_iso, is_not_null, within_circle

METHODOLOGY = (
    "active-now strip built from live time overlap checks; closures use geospatial radius, "
    "street works use WKT proximity, film uses borough+ZIP fallback"
)
UNAVAILABLE_HEADLINE = "Live disruption strip is temporarily unavailable."


def nearby_street_works(rows: list[dict], lat: float, lon: float, radius_m: float) -> list[dict]:
    nearby = []
    for row in rows:
        line = parse_wkt_linestring(row.get("wkt"))
        if line and distance_point_to_line_meters(lat, lon, line) <= radius_m:
            nearby.append(row)
    return nearby


async def build_right_now(ctx: QueryContext, services: BuildServices) -> Module:
    sources = module_sources(["i6b5-j7bu", "tqtj-sjs8", "tg4x-b46p"])
    loc = ctx.location
    now = ctx.now
    hour_bucket = now[:13]

    try:
        closure_where = and_clauses(
            within_circle("the_geom", loc.lat, loc.lon, ctx.radius_secondary_m),
            compare_iso("work_start_date", "<=", now),
            compare_iso("work_end_date", ">=", now),
        )
        work_where = and_clauses(
            borough_predicate("boroughname", loc.borough),
            compare_iso("issuedworkstartdate", "<=", now),
            compare_iso("issuedworkenddate", ">=", now),
            is_not_null("wkt"),
        )
        film_where = and_clauses(
            borough_predicate("borough", loc.borough),
            compare_iso("startdatetime", "<=", now),
            compare_iso("enddatetime", ">=", now),
        )

        results = await asyncio.gather(
            cached_query(
                services, f"i6b5-j7bu:rightnow:{ctx.block_key}:{hour_bucket}", 900, "i6b5-j7bu",
                select="uniqueid, onstreetname, fromstreetname, tostreetname, work_start_date, work_end_date, purpose",
                where=closure_where, order="work_end_date ASC", limit=20,
            ),
            cached_query(
                services, f"tqtj-sjs8:rightnow:{ctx.block_key}:{hour_bucket}", 900, "tqtj-sjs8",
                select=("permitnumber, permittypedesc, permitteename, onstreetname, fromstreetname, "
                        "tostreetname, issuedworkstartdate, issuedworkenddate, wkt"),
                where=work_where, order="issuedworkenddate ASC", limit=500,
            ),
            cached_query(
                services, f"tg4x-b46p:rightnow:{ctx.block_key}:{hour_bucket}", 1800, "tg4x-b46p",
                select="eventid, eventtype, parkingheld, startdatetime, enddatetime, zipcode_s",
                where=film_where, order="enddatetime ASC", limit=60,
            ),
            return_exceptions=True,
        )

        failure = total_failure(results, ["i6b5-j7bu", "tqtj-sjs8", "tg4x-b46p"])
        if failure:
            return unavailable_module("right_now", UNAVAILABLE_HEADLINE, sources, METHODOLOGY, failure)

        warnings: list[str] = []
        closures = settled(results[0], "i6b5-j7bu", warnings)
        works = settled(results[1], "tqtj-sjs8", warnings)
        films = settled(results[2], "tg4x-b46p", warnings)

        works = nearby_street_works(works, loc.lat, loc.lon, ctx.radius_secondary_m)
        films = [r for r in films if zip_list_matches(r.get("zipcode_s"), loc.zip_code)]

        total = len(closures) + len(works) + len(films)
        if total:
            headline = (f"Right now: {len(closures)} active closures, {len(works)} active street works, "
                        f"and {len(films)} active film permits nearby.")
        else:
            headline = "Right now: no active closures, film permits, or street works were detected nearby."

        items: list[ModuleItem] = []
        for row in closures[:5]:
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
        for row in works[:5]:
            items.append(ModuleItem(
                title=clean(row.get("permittypedesc")) or "Street work",
                subtitle=clean(row.get("permitteename")),
                date_start=clean(row.get("issuedworkstartdate")),
                date_end=clean(row.get("issuedworkenddate")),
                location_desc=join_parts(clean(row.get("onstreetname")), clean(row.get("fromstreetname")),
                                         clean(row.get("tostreetname"))),
                source_dataset_id="tqtj-sjs8",
                raw_id=clean(row.get("permitnumber")),
                geometry_wkt=clean(row.get("wkt")),
            ))
        for row in films[:5]:
            items.append(ModuleItem(
                title=clean(row.get("eventtype")) or "Film permit",
                subtitle=clean(row.get("parkingheld")),
                date_start=clean(row.get("startdatetime")),
                date_end=clean(row.get("enddatetime")),
                location_desc=clean(row.get("parkingheld")),
                source_dataset_id="tg4x-b46p",
                raw_id=clean(row.get("eventid")),
            ))

        return Module(
            id="right_now",
            headline=headline,
            status="partial" if warnings else "ok",
            stats=[
                ModuleStat(label="Active closures", value=len(closures)),
                ModuleStat(label="Active street works", value=len(works)),
                ModuleStat(label="Active film permits", value=len(films)),
            ],
            items=cap_items(items),
            methodology=METHODOLOGY,
            sources=sources,
            warnings=warnings or None,
            coverage_note=(None if loc.zip_code else
                           "Film matching is borough-level because ZIP metadata was unavailable for this location."),
        )
    except Exception as e:
        return unavailable_module("right_now", UNAVAILABLE_HEADLINE, sources, METHODOLOGY, str(e))
