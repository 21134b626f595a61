"""Blockbrief Backend - Module severity interpretation

Turns a module's stats into a Low / Medium / High reading with a short impact
line. Cutoffs are fixed domain thresholds, evaluated per stat group; the
module's severity is the highest level any group reaches.
"""

from typing import Optional

from models import Module, ModuleInterpretation, SeverityLevel

LEVELS: list[SeverityLevel] = ["low", "medium", "high"]

UNAVAILABLE_IMPACT = "This module is temporarily unavailable, so current local conditions cannot be confirmed."
UNAVAILABLE_NOTE = "Unavailable modules default to High uncertainty until data recovers."

# ─────────────────────────── Threshold table ───────────────────────
# module id → (stat groups, impact per level, threshold note)
# stat group: (labels summed, medium min, high min, use positive delta instead of value)
RULES: dict[str, tuple[list[tuple[tuple[str, ...], float, float, bool]], dict[str, str], str]] = {
    "right_now": (
        [(("Active closures", "Active street works", "Active film permits"), 1, 3, False)],
        {
            "low": "No immediate disruption signal. Typical travel and curb access conditions are likely right now.",
            "medium": "Expect localized slowdowns or parking friction near active work areas today.",
            "high": "Multiple active disruptions are likely to affect travel time, curb access, or street circulation now.",
        },
        "Low: 0 active disruptions. Medium: 1-2. High: 3+.",
    ),
    "dob_permits": (
        [
            (("DOB permits (90d)",), 15, 35, False),
            (("DOB complaints (90d)",), 10, 25, False),
            (("ECB violations (12m)",), 5, 12, False),
        ],
        {
            "low": "Recent construction pressure looks limited. Fewer signs of sustained permit and complaint activity nearby.",
            "medium": "Moderate construction activity may create intermittent noise, access, or complaint pressure.",
            "high": "High construction and enforcement signal suggests recurring neighborhood disruption risk.",
        },
        "High if any: permits 35+, complaints 25+, or violations 12+. "
        "Medium if any: permits 15+, complaints 10+, or violations 5+.",
    ),
    "street_works": (
        [(("Active street works", "Active closures"), 2, 5, False)],
        {
            "low": "Street operations are relatively quiet. Near-term road impacts appear limited.",
            "medium": "Plan for occasional route changes, lane friction, or curb limitations.",
            "high": "High chance of recurring traffic friction and route detours in this area.",
        },
        "Low: 0-1 active street disruptions. Medium: 2-4. High: 5+.",
    ),
    "collisions": (
        [
            (("Crashes (90d)",), 15, 40, False),
            (("Injuries (90d)",), 3, 8, False),
        ],
        {
            "low": "Recent crash and injury counts are comparatively low for this radius.",
            "medium": "Use extra caution at nearby intersections; collision activity is notable.",
            "high": "Elevated recent crash and injury signal indicates higher roadway safety risk nearby.",
        },
        "High if injuries 8+ or crashes 40+. Medium if injuries 3+ or crashes 15+.",
    ),
    "311_pulse": (
        [
            (("Requests (30d)",), 150, 350, False),
            (("Requests (30d)",), 50, 120, True),
        ],
        {
            "low": "311 pressure is steady to light, with fewer signs of broad neighborhood strain.",
            "medium": "Service issues are active and may affect quality-of-life conditions.",
            "high": "High and/or sharply rising complaint volume points to concentrated neighborhood stress.",
        },
        "High if requests 350+ or 30d increase 120+. Medium if requests 150+ or increase 50+.",
    ),
    "events": (
        [(("Upcoming events",), 8, 20, False)],
        {
            "low": "Limited upcoming permitted event activity is expected in this local area.",
            "medium": "Expect periodic local event activity that may affect foot traffic and curb use.",
            "high": "Dense upcoming event activity could create sustained crowding, parking, or circulation impacts.",
        },
        "Low: 0-7 locally relevant events. Medium: 8-19. High: 20+.",
    ),
    "film": (
        [
            (("Upcoming permits",), 5, 15, False),
            (("Active now",), 1, 3, False),
        ],
        {
            "low": "Film-related curb and traffic impact appears limited in the near term.",
            "medium": "Some parking and lane constraints are possible around film activity windows.",
            "high": "Frequent or active film permits may significantly affect parking and street operations.",
        },
        "High if active now 3+ or upcoming permits 15+. Medium if active now 1+ or upcoming permits 5+.",
    ),
}

SANITATION_TEXT = {
    "medium": ("Service frequency is partly resolved; treat pickup expectations as approximate.",
               "Medium when any collection frequency is missing or module status is partial."),
    "low": ("Area service frequency is available, useful for routine curb and disposal planning.",
            "Low when all frequency fields are present."),
}


def max_level(*levels: SeverityLevel) -> SeverityLevel:
    return max(levels, key=LEVELS.index, default="low")


def classify(value: float, medium_min: float, high_min: float) -> SeverityLevel:
    if value >= high_min:
        return "high"
    if value >= medium_min:
        return "medium"
    return "low"


def stat_number(module: Module, label: str, delta: bool = False) -> float:
    """Numeric stat value by label. Missing or non-numeric values read as 0."""
    stat = next((s for s in module.stats if s.label == label), None)
    if stat is None:
        return 0
    value: Optional[object] = stat.delta if delta else stat.value
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.replace(",", ""))
        except ValueError:
            return 0
    return 0


def _sanitation_decision(module: Module) -> tuple[SeverityLevel, str, str]:
    has_missing = any(str(s.value).upper() == "N/A" for s in module.stats)
    level: SeverityLevel = "medium" if has_missing or module.status == "partial" else "low"
    impact, note = SANITATION_TEXT[level]
    return level, impact, note


def _decision(module: Module) -> tuple[SeverityLevel, str, str]:
    if module.id == "sanitation":
        return _sanitation_decision(module)
    rule = RULES.get(module.id)
    if rule is None:
        return "low", "No interpretation available.", "No threshold configured."

    groups, impacts, note = rule
    levels = []
    for labels, medium_min, high_min, use_delta in groups:
        value = sum(stat_number(module, label, delta=use_delta) for label in labels)
        if use_delta:
            value = max(0, value)
        levels.append(classify(value, medium_min, high_min))
    level = max_level(*levels)
    return level, impacts[level], note


def interpret_module(module: Module) -> ModuleInterpretation:
    if module.status == "unavailable":
        return ModuleInterpretation(
            severity="high", severity_label="High",
            impact=UNAVAILABLE_IMPACT, threshold_note=UNAVAILABLE_NOTE,
        )

    level, impact, note = _decision(module)
    if module.status == "partial":
        level = max_level(level, "medium")
    return ModuleInterpretation(
        severity=level,
        severity_label=level.capitalize(),
        impact=impact,
        threshold_note=note,
    )
