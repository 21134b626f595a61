"""sanitation: DSNY collection frequencies for the service area containing the point."""

import logging
from typing import Optional

from brief_modules.helpers import BuildServices, clean, module_sources, unavailable_module
from models import Module, ModuleItem, ModuleStat, QueryContext
from query_builders import point_in_polygon

logger = logging.getLogger("blockbrief.modules")

PREFERRED_DATASET = "p7k6-2pm8"
FALLBACK_DATASET = "rv63-53db"
CACHE_TTL = 86400
FREQUENCY_FIELDS = [
    ("Refuse", "freq_refuse"),
    ("Recycling", "freq_recycling"),
    ("Organics", "freq_organics"),
    ("Bulk", "freq_bulk"),
]
SELECT = "district, section, freq_refuse, freq_recycling, freq_organics, freq_bulk"
METHODOLOGY = (
    "point-in-polygon boundary match at query location; frequencies represent area-level service "
    "patterns, not guaranteed exact pickup day"
)
UNAVAILABLE_HEADLINE = "Sanitation data is temporarily unavailable."


def has_frequencies(row: dict) -> bool:
    return any(clean(row.get(f)) for _, f in FREQUENCY_FIELDS)


async def lookup_schedule(services: BuildServices, lat: float, lon: float) -> dict:
    """Boundary row from the preferred dataset, else from the fallback.

    Returns ``{"row": dict | None, "source": dataset_id}``. Only a fallback
    failure propagates.
    """
    where = point_in_polygon("multipolygon", lon, lat)
    try:
        rows = await services.soda.query_dataset(PREFERRED_DATASET, select=SELECT, where=where, limit=1,
                                                 cache_seconds=CACHE_TTL)
    except Exception as e:
        logger.warning(f"Sanitation preferred dataset failed, using fallback: {e}")
        rows = []
    if rows and has_frequencies(rows[0]):
        return {"row": rows[0], "source": PREFERRED_DATASET}

    rows = await services.soda.query_dataset(FALLBACK_DATASET, select=SELECT, where=where, limit=1,
                                             cache_seconds=CACHE_TTL)
    return {"row": rows[0] if rows else None, "source": FALLBACK_DATASET}


async def build_sanitation(ctx: QueryContext, services: BuildServices) -> Module:
    sources = module_sources([FALLBACK_DATASET, PREFERRED_DATASET])
    loc = ctx.location

    try:
        async def _load():
            return await lookup_schedule(services, loc.lat, loc.lon)

        result = await services.cache.get_or_compute(f"sanitation:{ctx.block_key}", CACHE_TTL, _load)
        row: Optional[dict] = result["row"]
        source: str = result["source"]
        headline = "Area collection frequencies based on DSNY service boundaries."

        if not row:
            return Module(
                id="sanitation",
                headline=headline,
                status="partial",
                stats=[ModuleStat(label="Status", value="No boundary match")],
                items=[],
                methodology=METHODOLOGY,
                sources=sources,
                warnings=["No sanitation boundary match was returned for this location."],
                coverage_note="Sanitation coverage uses DSNY area frequencies and may miss edge-case points.",
            )

        coverage_note = None
        if source == FALLBACK_DATASET:
            coverage_note = (f"Primary dataset {PREFERRED_DATASET} is currently sparse via API, so v1 uses "
                             f"DSNY Frequencies ({FALLBACK_DATASET}) fallback.")

        return Module(
            id="sanitation",
            headline=headline,
            status="ok",
            stats=[ModuleStat(label=label, value=clean(row.get(f)) or "N/A") for label, f in FREQUENCY_FIELDS],
            items=[ModuleItem(
                title=f"District {clean(row.get('district')) or 'Unknown'} Section {clean(row.get('section')) or 'Unknown'}",
                subtitle=f"Source: {source}",
                source_dataset_id=source,
            )],
            methodology=METHODOLOGY,
            sources=sources,
            coverage_note=coverage_note,
        )
    except Exception as e:
        return unavailable_module("sanitation", UNAVAILABLE_HEADLINE, sources, METHODOLOGY, str(e))
