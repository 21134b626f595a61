"""dob_permits: recent DOB permits, complaints and ECB violations around the block."""

import re
import asyncio
from typing import Optional

from brief_modules.helpers import (
    BuildServices, cached_query, cap_items, clean, count_by, module_sources,
    settled, to_coord, to_number, total_failure, unavailable_module,
)
from geo import bbox_for_radius, haversine_meters
from models import Module, ModuleItem, ModuleStat, QueryContext
from query_builders import and_clauses, between_iso, bin_predicate, compare_iso, quote
from time_utils import parse_iso, parse_mm_dd_yyyy

DATASET_IDS = ["ipu4-2q9a", "rbx6-tga4", "eabe-havv", "6bgk-3dad"]
METHODOLOGY = (
    "last 90 days for permits/complaints, last 12 months for ECB violations; radius match where "
    "geometry exists and BIN/BBL fallback for non-geocoded datasets"
)
UNAVAILABLE_HEADLINE = "DOB permit and complaint data is temporarily unavailable."
COVERAGE_NOTE = "Non-geocoded DOB datasets rely on BIN/BBL matching in v1."


def split_bbl(bbl: Optional[str]) -> tuple[Optional[str], Optional[str], Optional[str]]:
    """Borough, block and lot from a 10-digit BBL (1 borough, 5 block, 4 lot)."""
    digits = re.sub(r"\D", "", bbl or "")
    if len(digits) != 10:
        return None, None, None
    return digits[0], digits[1:6], digits[6:]


def violation_date_threshold(window_iso: str) -> str:
    """ECB issue_date is stored as YYYYMMDD text."""
    dt = parse_iso(window_iso)
    return dt.strftime("%Y%m%d") if dt else window_iso[:10].replace("-", "")


def within_radius(rows: list[dict], lat_field: str, lon_field: str, lat: float, lon: float,
                  radius_m: float) -> list[dict]:
    kept = []
    for row in rows:
        row_lat, row_lon = to_coord(row.get(lat_field)), to_coord(row.get(lon_field))
        if row_lat is None or row_lon is None:
            continue
        if haversine_meters(lat, lon, row_lat, row_lon) <= radius_m:
            kept.append(row)
    return kept


async def _empty() -> list[dict]:
    return []


async def build_dob_permits(ctx: QueryContext, services: BuildServices) -> Module:
    sources = module_sources(DATASET_IDS)
    loc = ctx.location

    try:
        box = bbox_for_radius(loc.lat, loc.lon, ctx.radius_secondary_m)
        permit_where = and_clauses(
            compare_iso("issuance_date", ">=", ctx.window_90d, cast=True),
            f"gis_latitude::number between {box['min_lat']} and {box['max_lat']}",
            f"gis_longitude::number between {box['min_lon']} and {box['max_lon']}",
        )
        permit_now_where = and_clauses(
            between_iso("issued_date", ctx.window_90d),
            f"latitude between {box['min_lat']} and {box['max_lat']}",
            f"longitude between {box['min_lon']} and {box['max_lon']}",
        )

        threshold_12m = violation_date_threshold(ctx.window_12m)
        boro, block, lot = split_bbl(loc.bbl)
        has_violation_keys = bool(block or loc.bin)
        violation_where = and_clauses(
            f"issue_date >= {quote(threshold_12m)}",
            f"boro = {quote(boro)}" if boro else None,
            f"block = {quote(block)}" if block else None,
            f"lot = {quote(lot)}" if lot else None,
            bin_predicate("bin", loc.bin),
        )

        queries = [
            cached_query(
                services, f"ipu4-2q9a:permits:{ctx.block_key}:{ctx.window_90d}", 900, "ipu4-2q9a",
                select=("permit_si_no, work_type, issuance_date, house__, street_name, "
                        "permittee_s_business_name, gis_latitude, gis_longitude"),
                where=permit_where, order="issuance_date DESC", limit=900,
            ),
            cached_query(
                services, f"rbx6-tga4:permits:{ctx.block_key}:{ctx.window_90d}", 900, "rbx6-tga4",
                select="tracking_number, work_type, issued_date, latitude, longitude, street_name, house_no, permit_status",
                where=permit_now_where, order="issued_date DESC", limit=900,
            ),
        ]
        if loc.bin:
            queries.append(cached_query(
                services, f"eabe-havv:complaints:{ctx.block_key}:{ctx.window_90d}", 900, "eabe-havv",
                select="complaint_category, status, count(*) as count",
                where=and_clauses(compare_iso("date_entered", ">=", ctx.window_90d), bin_predicate("bin", loc.bin)),
                group="complaint_category, status", order="count(*) DESC", limit=40,
            ))
        else:
            queries.append(_empty())
        if has_violation_keys:
            queries.append(cached_query(
                services, f"6bgk-3dad:violations:{ctx.block_key}:{threshold_12m}", 900, "6bgk-3dad",
                select="count(*) as count, max(issue_date) as latest",
                where=violation_where, limit=1,
            ))
            queries.append(cached_query(
                services, f"6bgk-3dad:respondents:{ctx.block_key}:{threshold_12m}", 900, "6bgk-3dad",
                select="respondent_name, count(*) as count",
                where=violation_where, group="respondent_name", order="count(*) DESC", limit=3,
            ))
        else:
            queries.extend([_empty(), _empty()])

        results = await asyncio.gather(*queries, return_exceptions=True)

        attempted = [(r, d) for r, d, ran in zip(
            results,
            ["ipu4-2q9a", "rbx6-tga4", "eabe-havv", "6bgk-3dad", "6bgk-3dad"],
            [True, True, bool(loc.bin), has_violation_keys, has_violation_keys],
        ) if ran]
        failure = total_failure([r for r, _ in attempted], [d for _, d in attempted])
        if failure:
            return unavailable_module("dob_permits", UNAVAILABLE_HEADLINE, sources, METHODOLOGY, failure)

        warnings: list[str] = []
        issuance_rows = settled(results[0], "ipu4-2q9a", warnings)
        now_rows = settled(results[1], "rbx6-tga4", warnings)
        complaint_rows = settled(results[2], "eabe-havv", warnings)
        violation_agg = settled(results[3], "6bgk-3dad", warnings)
        respondents = settled(results[4], "6bgk-3dad", warnings)

        issuance = within_radius(issuance_rows, "gis_latitude", "gis_longitude",
                                 loc.lat, loc.lon, ctx.radius_secondary_m)
        approved = within_radius(now_rows, "latitude", "longitude", loc.lat, loc.lon, ctx.radius_secondary_m)

        work_types = count_by(row.get("work_type") for row in issuance + approved)
        top_work_type = work_types[0][0] if work_types else "N/A"
        permit_count = len(issuance) + len(approved)

        complaints_total = sum(to_number(row.get("count")) for row in complaint_rows)
        open_complaints = sum(
            to_number(row.get("count")) for row in complaint_rows
            if "open" in (row.get("status") or "").lower()
        )
        violations_total = to_number(violation_agg[0].get("count")) if violation_agg else 0
        latest_violation = clean(violation_agg[0].get("latest")) if violation_agg else None

        if permit_count:
            headline = f"{permit_count} DOB permits were issued/approved nearby in the last 90 days."
        else:
            headline = "No recent DOB permit activity was found within the selected radius."

        items: list[ModuleItem] = []
        for work_type, count in work_types[:3]:
            items.append(ModuleItem(title=f"Work type: {work_type}", subtitle=f"{count} permits",
                                    source_dataset_id="ipu4-2q9a"))
        for row in sorted(complaint_rows, key=lambda r: to_number(r.get("count")), reverse=True)[:5]:
            items.append(ModuleItem(
                title=f"Complaint category {clean(row.get('complaint_category')) or 'Unknown'}",
                subtitle=f"{to_number(row.get('count'))} reports ({clean(row.get('status')) or 'unknown status'})",
                source_dataset_id="eabe-havv",
            ))
        for row in respondents:
            items.append(ModuleItem(
                title=clean(row.get("respondent_name")) or "Unnamed respondent",
                subtitle=f"{to_number(row.get('count'))} violations in last 12 months",
                source_dataset_id="6bgk-3dad",
            ))
        for row in issuance[:4]:
            address = " ".join(p for p in (clean(row.get("house__")), clean(row.get("street_name"))) if p) or None
            items.append(ModuleItem(
                title=address or "DOB permit",
                subtitle=(f"{clean(row.get('work_type')) or 'Unknown work type'} · "
                          f"{clean(row.get('permittee_s_business_name')) or 'Unknown permittee'}"),
                date_start=parse_mm_dd_yyyy(row.get("issuance_date")),
                location_desc=address,
                source_dataset_id="ipu4-2q9a",
                raw_id=clean(row.get("permit_si_no")),
                lat=to_coord(row.get("gis_latitude")),
                lon=to_coord(row.get("gis_longitude")),
            ))

        if not loc.bin:
            warnings.append("BIN metadata missing; DOB complaints are likely undercounted for this query.")
        if not loc.bbl:
            warnings.append("BBL metadata missing; ECB violation matching uses available BIN only.")

        stats = [
            ModuleStat(label="DOB permits (90d)", value=permit_count),
            ModuleStat(label="Top work type", value=top_work_type),
            ModuleStat(label="DOB complaints (90d)", value=complaints_total),
            ModuleStat(label="ECB violations (12m)", value=violations_total),
        ]
        if latest_violation:
            stats.append(ModuleStat(label="Latest ECB issue date", value=latest_violation))
        if complaints_total > 0:
            stats.append(ModuleStat(label="Open complaints", value=open_complaints))

        return Module(
            id="dob_permits",
            headline=headline,
            status="partial" if warnings else "ok",
            stats=stats,
            items=cap_items(items),
            methodology=METHODOLOGY,
            sources=sources,
            warnings=warnings or None,
            coverage_note=COVERAGE_NOTE if warnings else None,
        )
    except Exception as e:
        return unavailable_module("dob_permits", UNAVAILABLE_HEADLINE, sources, METHODOLOGY, str(e))
