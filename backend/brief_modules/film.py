"""film: film permits scheduled in the next 30 days, plus how many are active now."""

from brief_modules.helpers import (
    BuildServices, cached_query, cap_items, clean, module_sources, unavailable_module, zip_list_matches,
)
from models import Module, ModuleItem, ModuleStat, QueryContext
from query_builders import and_clauses, between_iso, borough_predicate
from time_utils import days_ahead_iso, is_active_now

DATASET_ID = "tg4x-b46p"
METHODOLOGY = "next 30 days and active-now check; borough + ZIP fallback matching"
UNAVAILABLE_HEADLINE = "Film permit data is temporarily unavailable."


async def build_film(ctx: QueryContext, services: BuildServices) -> Module:
    sources = module_sources([DATASET_ID])
    loc = ctx.location

    try:
        where = and_clauses(
            between_iso("startdatetime", ctx.now, days_ahead_iso(30, now=ctx.now)),
            borough_predicate("borough", loc.borough),
        )
        rows = await cached_query(
            services, f"{DATASET_ID}:upcoming:{ctx.block_key}:{ctx.now[:10]}", 1800, DATASET_ID,
            select=("eventid, category, subcategoryname, borough, zipcode_s, parkingheld, startdatetime, "
                    "enddatetime, eventtype"),
            where=where, order="startdatetime ASC", limit=100,
        )

        # ZIP filter falls back to the borough set when nothing matches
        matched = [r for r in rows if zip_list_matches(r.get("zipcode_s"), loc.zip_code)]
        candidates = matched or rows
        active = sum(1 for r in candidates if is_active_now(r.get("startdatetime"), r.get("enddatetime"), ctx.now))

        if candidates:
            headline = f"{len(candidates)} film permits are scheduled nearby in the next 30 days."
        else:
            headline = "No upcoming film permits were found in this area for the next 30 days."

        return Module(
            id="film",
            headline=headline,
            status="ok",
            stats=[
                ModuleStat(label="Upcoming permits", value=len(candidates)),
                ModuleStat(label="Active now", value=active),
                ModuleStat(label="Area filter", value=f"ZIP {loc.zip_code}" if loc.zip_code else "Borough"),
            ],
            items=cap_items([
                ModuleItem(
                    title=clean(row.get("eventtype")) or clean(row.get("category")) or "Film permit",
                    subtitle=clean(row.get("subcategoryname")),
                    date_start=clean(row.get("startdatetime")),
                    date_end=clean(row.get("enddatetime")),
                    location_desc=clean(row.get("parkingheld")),
                    source_dataset_id=DATASET_ID,
                    raw_id=clean(row.get("eventid")),
                )
                for row in candidates
            ]),
            methodology=METHODOLOGY,
            sources=sources,
            coverage_note=(None if loc.zip_code else
                           "ZIP metadata was unavailable, so this module is borough-scoped in v1."),
        )
    except Exception as e:
        return unavailable_module("film", UNAVAILABLE_HEADLINE, sources, METHODOLOGY, str(e))
