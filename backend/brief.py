"""Blockbrief Backend - Brief aggregator

Runs all module builders against one shared QueryContext and assembles the
BriefResponse. A builder that raises instead of degrading gracefully is
replaced by an unavailable placeholder; the brief always has every module.
"""

import asyncio
import logging
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from brief_modules import BUILDERS, ModuleBuilder
from brief_modules.helpers import BuildServices, module_sources, unavailable_module
from config import MAX_MAP_FEATURES, MODULE_DATASETS, MODULE_ORDER, RADIUS_PRIMARY_M, RADIUS_SECONDARY_M
from geo import parse_wkt_linestring, to_block_key
from models import (
    BriefInput, BriefLocation, BriefMapData, BriefMapFeature, BriefParameters, BriefResponse,
    Location, MapCenter, Module, QueryContext,
)
from time_utils import days_ago_iso, now_utc_iso

logger = logging.getLogger("blockbrief.brief")

FALLBACK_HEADLINE = "This module is temporarily unavailable."
FALLBACK_METHODOLOGY = "Rendering fallback because one or more datasets failed."


class BriefInputError(ValueError):
    """The location handed to the aggregator is unusable."""


def coerce_location(location: Union[Location, Mapping[str, Any]]) -> Location:
    if isinstance(location, Location):
        return location
    if not isinstance(location, Mapping):
        raise BriefInputError("location must be a mapping with lat and lon")
    try:
        return Location.model_validate(dict(location))
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise BriefInputError(f"Invalid location ({fields})") from e


def build_query_context(location: Location, now: Optional[str] = None) -> QueryContext:
    now = now or now_utc_iso()
    return QueryContext(
        location=location,
        radius_primary_m=RADIUS_PRIMARY_M,
        radius_secondary_m=RADIUS_SECONDARY_M,
        window_30d=days_ago_iso(30, now=now),
        window_90d=days_ago_iso(90, now=now),
        window_12m=days_ago_iso(365, now=now),
        now=now,
        block_key=to_block_key(location.lat, location.lon, location.bbl),
    )


def fallback_module(module_id: str, error: BaseException) -> Module:
    return unavailable_module(
        module_id,
        FALLBACK_HEADLINE,
        module_sources(MODULE_DATASETS.get(module_id, [])),
        FALLBACK_METHODOLOGY,
        str(error) or type(error).__name__,
    )


def collect_map_features(modules: list[Module], limit: int = MAX_MAP_FEATURES) -> list[BriefMapFeature]:
    """Point and line features in module order then item order, first ``limit`` kept."""
    features: list[BriefMapFeature] = []
    for module in modules:
        for item in module.items:
            ident = item.raw_id or item.title
            if item.lat is not None and item.lon is not None:
                features.append(BriefMapFeature(
                    id=f"{module.id}:{ident}:point",
                    module_id=module.id,
                    kind="point",
                    label=item.title,
                    coordinates=[[item.lat, item.lon]],
                ))
            if item.geometry_wkt:
                line = parse_wkt_linestring(item.geometry_wkt)
                if len(line) > 1:
                    features.append(BriefMapFeature(
                        id=f"{module.id}:{ident}:line",
                        module_id=module.id,
                        kind="line",
                        label=item.title,
                        coordinates=line,
                    ))
            if len(features) >= limit:
                return features[:limit]
    return features


async def build_brief(
    location: Union[Location, Mapping[str, Any]],
    services: BuildServices,
    raw_address: Optional[str] = None,
    builders: Optional[Mapping[str, ModuleBuilder]] = None,
    now: Optional[str] = None,
) -> BriefResponse:
    """Assemble a brief. Only an unusable location raises (``BriefInputError``)."""
    loc = coerce_location(location)
    ctx = build_query_context(loc, now=now)
    registry = {**BUILDERS, **(builders or {})}

    results = await asyncio.gather(
        *(registry[module_id](ctx, services) for module_id in MODULE_ORDER),
        return_exceptions=True,
    )

    modules: list[Module] = []
    for module_id, result in zip(MODULE_ORDER, results):
        if isinstance(result, BaseException):
            logger.error(f"Builder {module_id} raised: {result!r}")
            modules.append(fallback_module(module_id, result))
        else:
            modules.append(result)

    degraded = [m.id for m in modules if m.status != "ok"]
    logger.info(f"Brief {ctx.block_key}: {len(modules) - len(degraded)}/{len(modules)} modules ok"
                + (f", degraded: {', '.join(degraded)}" if degraded else ""))

    return BriefResponse(
        input=BriefInput(
            raw_address=raw_address,
            normalized_address=loc.normalized_address,
            geoclient_confidence=loc.confidence,
        ),
        location=BriefLocation(
            lat=loc.lat,
            lon=loc.lon,
            bbl=loc.bbl,
            bin=loc.bin,
            borough=loc.borough,
            community_district=loc.community_district,
            council_district=loc.council_district,
            zip_code=loc.zip_code,
        ),
        updated_at_utc=ctx.now,
        parameters=BriefParameters(
            radius_primary_m=ctx.radius_primary_m,
            radius_secondary_m=ctx.radius_secondary_m,
            window_30d=ctx.window_30d,
            window_90d=ctx.window_90d,
        ),
        modules=modules,
        map=BriefMapData(
            center=MapCenter(lat=loc.lat, lon=loc.lon),
            radius_primary_m=ctx.radius_primary_m,
            radius_secondary_m=ctx.radius_secondary_m,
            features=collect_map_features(modules),
        ),
    )
