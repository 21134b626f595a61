"""311_pulse: recent 311 volume, change against the prior 30 days, and top complaint types.

Also serves the raw call listing behind ``/api/brief/by-block/{block_id}/311-calls``.
"""

import asyncio
from typing import Optional

from brief_modules.helpers import (
    BuildServices, cached_query, cap_items, clean, module_sources, settled,
    to_number, total_failure, unavailable_module,
)
from config import RADIUS_SECONDARY_M
from models import CallItem, CallsResponse, Module, ModuleItem, ModuleStat, QueryContext
from query_builders import and_clauses, between_iso, within_circle
from time_utils import days_ago_iso, minus_days, now_utc_iso, to_iso_or_none

DATASET_ID = "erm2-nwe9"
UNAVAILABLE_HEADLINE = "311 request data is temporarily unavailable."


async def build_pulse311(ctx: QueryContext, services: BuildServices) -> Module:
    sources = module_sources([DATASET_ID])
    loc = ctx.location
    methodology = (f"within {ctx.radius_secondary_m}m; top complaint types from last 30 days; "
                   f"delta vs prior 30 days")

    try:
        radius = within_circle("location", loc.lat, loc.lon, ctx.radius_secondary_m)
        prior_start = minus_days(ctx.window_30d, 30)
        current_where = and_clauses(radius, between_iso("created_date", ctx.window_30d))
        prior_where = and_clauses(radius, between_iso("created_date", prior_start, ctx.window_30d))

        results = await asyncio.gather(
            cached_query(
                services, f"{DATASET_ID}:current:{ctx.block_key}:{ctx.window_30d}", 900, DATASET_ID,
                select="count(*) as count", where=current_where, limit=1,
            ),
            cached_query(
                services, f"{DATASET_ID}:prior:{ctx.block_key}:{prior_start}:{ctx.window_30d}", 900, DATASET_ID,
                select="count(*) as count", where=prior_where, limit=1,
            ),
            cached_query(
                services, f"{DATASET_ID}:top:{ctx.block_key}:{ctx.window_30d}", 900, DATASET_ID,
                select="complaint_type, count(*) as count", where=current_where,
                group="complaint_type", order="count(*) DESC", limit=5,
            ),
            return_exceptions=True,
        )

        failure = total_failure(results, [DATASET_ID] * 3)
        if failure:
            return unavailable_module("311_pulse", UNAVAILABLE_HEADLINE, sources, methodology, failure)

        warnings: list[str] = []
        current_rows = settled(results[0], DATASET_ID, warnings)
        prior_rows = settled(results[1], DATASET_ID, warnings)
        top_rows = settled(results[2], DATASET_ID, warnings)

        current = to_number(current_rows[0].get("count")) if current_rows else 0
        prior = to_number(prior_rows[0].get("count")) if prior_rows else 0
        top_issue = (clean(top_rows[0].get("complaint_type")) if top_rows else None) or "No dominant type"

        if current > 0:
            headline = f"{current} recent 311 requests were filed nearby in the last 30 days."
        else:
            headline = "No 311 requests were found in this radius during the last 30 days."

        return Module(
            id="311_pulse",
            headline=headline,
            status="partial" if warnings else "ok",
            stats=[
                ModuleStat(label="Requests (30d)", value=current, delta=current - prior),
                ModuleStat(label="Prior period", value=prior),
                ModuleStat(label="Top issue", value=top_issue),
            ],
            items=cap_items([
                ModuleItem(
                    title=clean(row.get("complaint_type")) or "Unknown issue",
                    subtitle=f"{to_number(row.get('count'))} requests",
                    source_dataset_id=DATASET_ID,
                )
                for row in top_rows
            ]),
            methodology=methodology,
            sources=sources,
            warnings=warnings or None,
        )
    except Exception as e:
        return unavailable_module("311_pulse", UNAVAILABLE_HEADLINE, sources, methodology, str(e))


# ─────────────────────────── Raw call listing ───────────────────────

def call_location(row: dict) -> Optional[str]:
    direct = clean(row.get("incident_address"))
    if direct:
        return direct
    street = clean(row.get("street_name"))
    cross_one = clean(row.get("cross_street_1"))
    cross_two = clean(row.get("cross_street_2"))
    if street and cross_one:
        return f"{street} & {cross_one}"
    if cross_one and cross_two:
        return f"{cross_one} & {cross_two}"
    return street or cross_one or cross_two


def to_call_item(row: dict, index: int) -> CallItem:
    title = clean(row.get("complaint_type")) or "Unknown complaint"
    status = clean(row.get("status"))
    subtitle = " • ".join(p for p in (clean(row.get("descriptor")), f"Status: {status}" if status else None) if p)
    return CallItem(
        id=clean(row.get("unique_key")) or f"{title}:{row.get('created_date') or index}",
        title=title,
        subtitle=subtitle or None,
        status=status,
        date_start=to_iso_or_none(row.get("created_date")),
        date_end=to_iso_or_none(row.get("closed_date")),
        location_desc=call_location(row),
    )


async def fetch_311_calls(services: BuildServices, block_id: str, lat: float, lon: float,
                          days: int = 30, limit: int = 500,
                          radius_m: int = RADIUS_SECONDARY_M) -> CallsResponse:
    """Newest-first 311 calls around a point with the full-window total.

    Dataset errors propagate; the route maps them to an error response.
    """
    where = and_clauses(
        within_circle("location", lat, lon, radius_m),
        between_iso("created_date", days_ago_iso(days)),
    )
    count_rows, rows = await asyncio.gather(
        cached_query(
            services, f"{DATASET_ID}:all311:count:{block_id}:{days}", 900, DATASET_ID,
            select="count(*) as count", where=where, limit=1,
        ),
        cached_query(
            services, f"{DATASET_ID}:all311:rows:{block_id}:{days}:{limit}", 900, DATASET_ID,
            select=("unique_key, created_date, closed_date, complaint_type, descriptor, status, "
                    "incident_address, street_name, cross_street_1, cross_street_2"),
            where=where, order="created_date::floating_timestamp DESC", limit=limit,
        ),
    )

    total = to_number(count_rows[0].get("count")) if count_rows else 0
    calls = [to_call_item(row, i) for i, row in enumerate(rows)]
    return CallsResponse(
        total_calls=total,
        returned_calls=len(calls),
        truncated=total > len(calls),
        window_days=days,
        radius_m=radius_m,
        generated_at_utc=now_utc_iso(),
        methodology=f"within {radius_m}m; last {days} days; sorted newest first",
        source=module_sources([DATASET_ID])[0],
        calls=calls,
    )
