"""Blockbrief Backend - SoQL $where predicate builders

Socrata datasets are inconsistent about timestamp columns. Most accept a plain
quoted ISO literal; text-typed date columns (e.g. DOB ``issuance_date``) need a
``::floating_timestamp`` cast against a truncated ``YYYY-MM-DDTHH:MM:SS``
literal. Builders pick the style per dataset with ``cast=True``.
"""

from typing import Iterable, Optional

from time_utils import parse_iso


def and_clauses(*clauses: Optional[str]) -> str:
    return " AND ".join(c for c in clauses if c and c.strip())


def quote(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def timestamp_literal(iso: str) -> str:
    dt = parse_iso(iso)
    text = dt.strftime("%Y-%m-%dT%H:%M:%S") if dt else iso[:19]
    return quote(text)


def _time_operand(field: str, iso: str, cast: bool) -> tuple[str, str]:
    if cast:
        return f"{field}::floating_timestamp", timestamp_literal(iso)
    return field, quote(iso)


def compare_iso(field: str, op: str, iso: str, cast: bool = False) -> str:
    lhs, literal = _time_operand(field, iso, cast)
    return f"{lhs} {op} {literal}"


def between_iso(field: str, start_iso: str, end_iso: Optional[str] = None, cast: bool = False) -> str:
    lhs, start = _time_operand(field, start_iso, cast)
    if end_iso:
        _, end = _time_operand(field, end_iso, cast)
        return f"{lhs} between {start} and {end}"
    return f"{lhs} >= {start}"


def within_circle(field: str, lat: float, lon: float, radius_m: float) -> str:
    return f"within_circle({field}, {lat}, {lon}, {radius_m})"


def in_values(field: str, values: Iterable[str]) -> Optional[str]:
    cleaned = [v.strip() for v in values if v and v.strip()]
    if not cleaned:
        return None
    return f"{field} in ({', '.join(quote(v) for v in cleaned)})"


def borough_predicate(field: str, borough: Optional[str]) -> Optional[str]:
    if not borough:
        return None
    return f"upper({field}) = {quote(borough.upper())}"


def bbl_predicate(field: str, bbl: Optional[str]) -> Optional[str]:
    if not bbl:
        return None
    return f"{field} = {quote(bbl)}"


def bin_predicate(field: str, bin_: Optional[str]) -> Optional[str]:
    if not bin_:
        return None
    return f"{field} = {quote(bin_)}"


def is_not_null(field: str) -> str:
    return f"{field} is not null"


def point_in_polygon(field: str, lon: float, lat: float) -> str:
    return f"intersects({field}, {quote(f'POINT ({lon} {lat})')})"
