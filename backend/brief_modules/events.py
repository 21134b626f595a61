"""events: permitted events in the next 30 days, ranked by local relevance.

Relevance score per event::

    5 x community district match
  + 3 x street closure signal
  + 2 x event location mentions the query street
  + 1 x not a routine sports permit

When the district is known the pool is narrowed to district matches (falling
back to the whole borough when nothing matches). Large pools are trimmed to
rows carrying at least one non-district signal, provided enough survive.
"""

import re
import asyncio
from typing import Optional

from brief_modules.helpers import (
    BuildServices, cached_query, cap_items, clean, module_sources, settled, unavailable_module,
)
from config import EVENT_SCORE_WEIGHTS, EVENT_TRIM_MIN_ROWS, EVENT_TRIM_THRESHOLD
from models import Module, ModuleItem, ModuleStat, QueryContext
from query_builders import and_clauses, between_iso, borough_predicate, is_not_null, point_in_polygon
from time_utils import days_ahead_iso, parse_iso

EVENTS_DATASET = "tvpp-9vvx"
DISTRICTS_DATASET = "5crt-au7u"
UNAVAILABLE_HEADLINE = "Events data is temporarily unavailable."
METHODOLOGY = (
    "next 30 days; borough-filtered, narrowed to the community district when known, ranked by "
    "district match, street closures, street-name overlap and non-routine event type"
)

STREET_SUFFIXES = {
    "ST", "STREET", "AVE", "AVENUE", "AV", "BLVD", "BOULEVARD", "RD", "ROAD", "PL", "PLACE",
    "DR", "DRIVE", "LN", "LANE", "PKWY", "PARKWAY", "SQ", "SQUARE", "TER", "TERRACE", "CT", "COURT",
    "HWY", "HIGHWAY", "EXPY", "WAY", "THE", "AND", "EAST", "WEST", "NORTH", "SOUTH",
}
NO_CLOSURE_VALUES = {"", "N/A", "NA", "NONE"}


def district_number(value: Optional[str]) -> Optional[int]:
    """District number from ``105``, ``5`` or ``Manhattan 05``."""
    digits = re.sub(r"\D", "", value or "")
    if not digits:
        return None
    number = int(digits)
    return number % 100 if number >= 100 else number


def board_numbers(value: Optional[str]) -> set[int]:
    """Event rows can list several boards, e.g. ``"1, 2,"``."""
    return {district_number(part) for part in re.findall(r"\d+", value or "")} - {None}


def street_tokens(normalized_address: Optional[str]) -> set[str]:
    if not normalized_address:
        return set()
    street = normalized_address.split(",")[0].upper()
    street = re.sub(r"^\s*[\d-]+[A-Z]?\s+", "", street)
    return {t for t in re.findall(r"[A-Z0-9]+", street) if len(t) >= 3 and t not in STREET_SUFFIXES}


def has_closure(row: dict) -> bool:
    return (clean(row.get("street_closure_type")) or "").upper() not in NO_CLOSURE_VALUES


def is_routine_sports(row: dict) -> bool:
    return (clean(row.get("event_type")) or "").lower().startswith("sport")


def mentions_street(row: dict, tokens: set[str]) -> bool:
    if not tokens:
        return False
    text = (row.get("event_location") or "").upper()
    return any(t in text for t in tokens)


def score_event(row: dict, district: Optional[int], tokens: set[str]) -> int:
    w = EVENT_SCORE_WEIGHTS
    score = 0
    if district is not None and district in board_numbers(row.get("community_board")):
        score += w["community_district"]
    if has_closure(row):
        score += w["street_closure"]
    if mentions_street(row, tokens):
        score += w["street_match"]
    if not is_routine_sports(row):
        score += w["non_routine"]
    return score


def rank_events(rows: list[dict], district: Optional[int], tokens: set[str]) -> list[dict]:
    pool = rows
    if district is not None:
        matched = [r for r in rows if district in board_numbers(r.get("community_board"))]
        pool = matched or rows

    if len(pool) > EVENT_TRIM_THRESHOLD:
        trimmed = [r for r in pool
                   if has_closure(r) or mentions_street(r, tokens) or not is_routine_sports(r)]
        if len(trimmed) >= EVENT_TRIM_MIN_ROWS:
            pool = trimmed

    def start_key(row):
        dt = parse_iso(row.get("start_date_time"))
        return dt.timestamp() if dt else float("inf")

    return sorted(pool, key=lambda r: (-score_event(r, district, tokens), start_key(r)))


async def resolve_community_district(ctx: QueryContext, services: BuildServices) -> Optional[int]:
    """District number within the location's borough, or None.

    Board numbers repeat across boroughs and event rows carry only the number,
    so without a borough no district is used.
    """
    loc = ctx.location
    if not loc.borough:
        return None
    if loc.community_district:
        return district_number(loc.community_district)

    rows = await cached_query(
        services, f"{DISTRICTS_DATASET}:cd:{ctx.block_key}", 86400, DISTRICTS_DATASET,
        select="borocd", where=point_in_polygon("the_geom", loc.lon, loc.lat), limit=1,
    )
    if not rows:
        return None
    return district_number(clean(rows[0].get("borocd")))


def format_start(value: Optional[str]) -> str:
    dt = parse_iso(value)
    return f"{dt.month}/{dt.day}/{dt.year}" if dt else "N/A"


async def build_events(ctx: QueryContext, services: BuildServices) -> Module:
    sources = module_sources([EVENTS_DATASET, DISTRICTS_DATASET])
    loc = ctx.location

    try:
        where = and_clauses(
            between_iso("start_date_time", ctx.now, days_ahead_iso(30, now=ctx.now)),
            borough_predicate("event_borough", loc.borough),
            is_not_null("event_name"),
        )
        events_result, district_result = await asyncio.gather(
            cached_query(
                services, f"{EVENTS_DATASET}:upcoming:{ctx.block_key}:{ctx.now[:10]}", 1800, EVENTS_DATASET,
                select=("event_id, event_name, event_type, event_location, event_borough, start_date_time, "
                        "end_date_time, community_board, street_closure_type"),
                where=where, order="start_date_time ASC", limit=200,
            ),
            resolve_community_district(ctx, services),
            return_exceptions=True,
        )
        if isinstance(events_result, BaseException):
            raise events_result

        warnings: list[str] = []
        district: Optional[int] = None
        if isinstance(district_result, BaseException):
            settled(district_result, DISTRICTS_DATASET, warnings)
        else:
            district = district_result
        tokens = street_tokens(loc.normalized_address)
        ranked = rank_events(events_result, district, tokens)
        next_event = ranked[0] if ranked else None

        if ranked:
            headline = f"{len(ranked)} permitted events are scheduled in the next 30 days for this area."
        else:
            headline = "No upcoming permitted events were found for this area in the next 30 days."

        coverage_note = None
        if not loc.borough:
            coverage_note = ("Borough metadata was not available, so events are not filtered or ranked by "
                             "community district.")
        elif district is None:
            coverage_note = ("This module uses borough-level filtering because community district metadata "
                             "was not available for the query.")

        return Module(
            id="events",
            headline=headline,
            status="partial" if warnings else "ok",
            stats=[
                ModuleStat(label="Upcoming events", value=len(ranked)),
                ModuleStat(label="Next event", value=(clean(next_event.get("event_name")) if next_event else None) or "None"),
                ModuleStat(label="Starts", value=format_start(next_event.get("start_date_time")) if next_event else "N/A"),
            ],
            items=cap_items([
                ModuleItem(
                    title=clean(row.get("event_name")) or "Permitted event",
                    subtitle=clean(row.get("event_type")),
                    date_start=clean(row.get("start_date_time")),
                    date_end=clean(row.get("end_date_time")),
                    location_desc=clean(row.get("event_location")),
                    source_dataset_id=EVENTS_DATASET,
                    raw_id=clean(row.get("event_id")),
                )
                for row in ranked
            ]),
            methodology=METHODOLOGY,
            sources=sources,
            warnings=warnings or None,
            coverage_note=coverage_note,
        )
    except Exception as e:
        return unavailable_module("events", UNAVAILABLE_HEADLINE, sources, METHODOLOGY, str(e))
