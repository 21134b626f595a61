"""Blockbrief Backend - Headline numbers pulled from a finished brief (widget, CLI)"""

from typing import Optional

from interpretation import stat_number
from models import BriefResponse, HighlightItem, Module, WidgetMetrics


def find_module(brief: BriefResponse, module_id: str) -> Optional[Module]:
    return next((m for m in brief.modules if m.id == module_id), None)


def numeric_stat(module: Optional[Module], label: str) -> float:
    if module is None:
        return 0
    return stat_number(module, label)


def summary_metrics(brief: BriefResponse) -> WidgetMetrics:
    right_now = find_module(brief, "right_now")
    collisions = find_module(brief, "collisions")
    pulse = find_module(brief, "311_pulse")
    events = find_module(brief, "events")
    return WidgetMetrics(
        active_disruptions=sum(
            numeric_stat(right_now, label)
            for label in ("Active closures", "Active street works", "Active film permits")
        ),
        crashes_90d=numeric_stat(collisions, "Crashes (90d)"),
        injuries_90d=numeric_stat(collisions, "Injuries (90d)"),
        requests_30d=numeric_stat(pulse, "Requests (30d)"),
        upcoming_events_30d=numeric_stat(events, "Upcoming events"),
    )


def top_module_items(module: Optional[Module], limit: int = 3) -> list[HighlightItem]:
    """First ``limit`` items, skipping case-insensitive title/subtitle repeats."""
    if module is None:
        return []
    seen: set[tuple[str, str]] = set()
    unique: list[HighlightItem] = []
    for item in module.items:
        title = item.title.strip()
        if not title:
            continue
        subtitle = (item.subtitle or "").strip()
        key = (title.lower(), subtitle.lower())
        if key in seen:
            continue
        seen.add(key)
        unique.append(HighlightItem(title=title, subtitle=subtitle or None))
        if len(unique) >= limit:
            break
    return unique
