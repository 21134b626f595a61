"""collisions: 90-day crash and injury counts plus a 75 m hotspot cluster."""

import re
import asyncio
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from brief_modules.helpers import (
    BuildServices, cached_query, cap_items, clean, module_sources, settled,
    to_coord, to_number, total_failure, unavailable_module,
)
from config import CLUSTER_RADIUS_M
from geo import haversine_meters
from models import Module, ModuleItem, ModuleStat, QueryContext
from query_builders import and_clauses, between_iso, is_not_null, within_circle

UNAVAILABLE_HEADLINE = "Collision data is temporarily unavailable."
CRASH_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


@dataclass
class CrashPoint:
    lat: float
    lon: float
    label: str = ""


@dataclass
class Cluster:
    center_lat: float
    center_lon: float
    points: list[CrashPoint] = field(default_factory=list)

    def add(self, point: CrashPoint):
        self.points.append(point)
        self.center_lat = sum(p.lat for p in self.points) / len(self.points)
        self.center_lon = sum(p.lon for p in self.points) / len(self.points)


def cluster_points(points: list[CrashPoint], radius_m: float = CLUSTER_RADIUS_M) -> list[Cluster]:
    """Greedy first-fit clustering. Each point joins the first cluster whose
    running centroid is within ``radius_m``, otherwise starts a new one.
    Result depends on input order."""
    clusters: list[Cluster] = []
    for point in points:
        for cluster in clusters:
            if haversine_meters(point.lat, point.lon, cluster.center_lat, cluster.center_lon) <= radius_m:
                cluster.add(point)
                break
        else:
            clusters.append(Cluster(center_lat=point.lat, center_lon=point.lon, points=[point]))
    return clusters


def intersection_label(row: dict) -> str:
    cross = clean(row.get("cross_street_name")) or clean(row.get("off_street_name"))
    return " & ".join(p for p in (clean(row.get("on_street_name")), cross) if p)


def crash_points(rows: list[dict]) -> list[CrashPoint]:
    points = []
    for row in rows:
        lat, lon = to_coord(row.get("latitude")), to_coord(row.get("longitude"))
        if lat is None or lon is None:
            continue
        points.append(CrashPoint(lat=lat, lon=lon, label=intersection_label(row)))
    return points


def hotspot_label(cluster: Optional[Cluster]) -> str:
    if cluster is None:
        return "No hotspot"
    counts = Counter(p.label or "Unnamed intersection" for p in cluster.points)
    return counts.most_common(1)[0][0]


def parse_crash_time(value: Optional[str]) -> Optional[tuple[int, int]]:
    match = CRASH_TIME_RE.match((value or "").strip())
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return None
    return hour, minute


def combine_crash_datetime(date_value: Optional[str], time_value: Optional[str]) -> Optional[str]:
    """crash_date is a floating midnight timestamp; crash_time is H:MM text."""
    date_part = (date_value or "").split("T")[0]
    if not date_part:
        return None
    parsed = parse_crash_time(time_value)
    if parsed is None:
        return date_part
    return f"{date_part}T{parsed[0]:02d}:{parsed[1]:02d}:00"


async def build_collisions(ctx: QueryContext, services: BuildServices) -> Module:
    sources = module_sources(["h9gi-nx95"])
    loc = ctx.location
    methodology = f"within {ctx.radius_secondary_m}m; last 90 days; clusters by {CLUSTER_RADIUS_M}m for hotspot"

    try:
        where = and_clauses(
            within_circle("location", loc.lat, loc.lon, ctx.radius_secondary_m),
            between_iso("crash_date", ctx.window_90d),
            is_not_null("latitude"),
            is_not_null("longitude"),
        )

        results = await asyncio.gather(
            cached_query(
                services, f"h9gi-nx95:agg:{ctx.block_key}:{ctx.window_90d}", 900, "h9gi-nx95",
                select="count(*) as crashes, sum(number_of_persons_injured) as injuries",
                where=where, limit=1,
            ),
            cached_query(
                services, f"h9gi-nx95:rows:{ctx.block_key}:{ctx.window_90d}", 900, "h9gi-nx95",
                select=("collision_id, crash_date, crash_time, on_street_name, cross_street_name, "
                        "off_street_name, latitude, longitude, number_of_persons_injured"),
                where=where, order="crash_date DESC", limit=300,
            ),
            return_exceptions=True,
        )

        failure = total_failure(results, ["h9gi-nx95", "h9gi-nx95"])
        if failure:
            return unavailable_module("collisions", UNAVAILABLE_HEADLINE, sources, methodology, failure)

        warnings: list[str] = []
        aggregate_rows = settled(results[0], "h9gi-nx95", warnings)
        detail_rows = settled(results[1], "h9gi-nx95", warnings)

        if aggregate_rows:
            crashes = to_number(aggregate_rows[0].get("crashes"))
            injuries = to_number(aggregate_rows[0].get("injuries"))
        else:
            crashes = len(detail_rows)
            injuries = sum(to_number(r.get("number_of_persons_injured")) for r in detail_rows)

        clusters = sorted(cluster_points(crash_points(detail_rows)), key=lambda c: len(c.points), reverse=True)
        hotspot = clusters[0] if clusters else None

        if crashes > 0:
            headline = f"{crashes} crashes reported nearby in the last 90 days, including {injuries} injuries."
        else:
            headline = "No recent crashes were found in this radius during the last 90 days."

        items = []
        by_injuries = sorted(detail_rows, key=lambda r: to_number(r.get("number_of_persons_injured")), reverse=True)
        for row in by_injuries:
            label = intersection_label(row)
            time_known = parse_crash_time(row.get("crash_time")) is not None
            items.append(ModuleItem(
                title=label or "Collision record",
                subtitle=(f"{to_number(row.get('number_of_persons_injured'))} injuries"
                          f"{'' if time_known else ' · Time not reported'}"),
                date_start=combine_crash_datetime(row.get("crash_date"), row.get("crash_time")),
                location_desc=label or None,
                source_dataset_id="h9gi-nx95",
                raw_id=clean(row.get("collision_id")),
                lat=to_coord(row.get("latitude")),
                lon=to_coord(row.get("longitude")),
            ))

        return Module(
            id="collisions",
            headline=headline,
            status="partial" if warnings else "ok",
            stats=[
                ModuleStat(label="Crashes (90d)", value=crashes),
                ModuleStat(label="Injuries (90d)", value=injuries),
                ModuleStat(label="Hot intersection", value=hotspot_label(hotspot)),
                ModuleStat(label="Hotspot crashes", value=len(hotspot.points) if hotspot else 0),
            ],
            items=cap_items(items),
            methodology=methodology,
            sources=sources,
            warnings=warnings or None,
        )
    except Exception as e:
        return unavailable_module("collisions", UNAVAILABLE_HEADLINE, sources, methodology, str(e))
