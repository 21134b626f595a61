"""Shared pieces for module builders: services bundle, cached queries, coercion."""

import math
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from cache import TTLCache
from config import DATASETS, LIMIT_ITEMS
from models import Module, ModuleSource, ModuleStat
from soda_client import SodaClient

logger = logging.getLogger("blockbrief.modules")


@dataclass(frozen=True)
class BuildServices:
    """Injected collaborators shared by every builder for one process."""

    soda: SodaClient
    cache: TTLCache


async def cached_query(services: BuildServices, key: str, ttl: int, dataset_id: str, **query: Any) -> list[dict]:
    """Run a SODA query through the result cache."""
    async def _load():
        return await services.soda.query_dataset(dataset_id, cache_seconds=ttl, **query)

    return await services.cache.get_or_compute(key, ttl, _load)


def module_sources(ids: Iterable[str]) -> list[ModuleSource]:
    return [
        ModuleSource(dataset_id=i, dataset_name=DATASETS[i]["name"], dataset_url=DATASETS[i]["url"])
        for i in ids
    ]


def to_number(value: Any) -> int | float:
    """Coerce a SODA string value. Unparseable values become 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else 0
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            parsed = float(text)
        except ValueError:
            return 0
        if not math.isfinite(parsed):
            return 0
        return int(parsed) if parsed.is_integer() else parsed
    return 0


def to_coord(value: Any) -> Optional[float]:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


def clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def join_parts(*parts: Optional[str], sep: str = " / ") -> Optional[str]:
    text = sep.join(p for p in parts if p)
    return text or None


def street_segment_title(on_street: Optional[str], from_street: Optional[str], to_street: Optional[str]) -> str:
    between = f"({from_street} to {to_street})" if from_street and to_street else ""
    return " ".join(p for p in (on_street, between) if p)


def zip_list_matches(zips: Optional[str], zip_code: Optional[str]) -> bool:
    """Film permits carry a comma list of ZIPs. Unknown on either side matches (borough fallback)."""
    if not zip_code or not zips:
        return True
    return zip_code in [z.strip() for z in zips.split(",") if z.strip()]


def count_by(values: Iterable[Optional[str]]) -> list[tuple[str, int]]:
    counts = Counter(v.strip() for v in values if v and v.strip())
    return counts.most_common()


def dataset_warning(dataset_id: str, error: BaseException) -> str:
    return f"{dataset_id}: {str(error) or type(error).__name__}"


def settled(result: Any, dataset_id: str, warnings: list[str], default: Any = None) -> Any:
    """Unpack one asyncio.gather(return_exceptions=True) outcome, recording failures."""
    if isinstance(result, BaseException):
        logger.warning(f"Dataset {dataset_id} failed: {result}")
        warnings.append(dataset_warning(dataset_id, result))
        return [] if default is None else default
    return result


def total_failure(results: list[Any], dataset_ids: list[str]) -> Optional[str]:
    """Joined error text when every gathered query failed, else None."""
    if not results or not all(isinstance(r, BaseException) for r in results):
        return None
    return " | ".join(dataset_warning(d, r) for d, r in zip(dataset_ids, results))


def unavailable_module(module_id: str, headline: str, sources: list[ModuleSource],
                       methodology: str, warning: str) -> Module:
    return Module(
        id=module_id,
        headline=headline,
        status="unavailable",
        stats=[ModuleStat(label="Status", value="Data temporarily unavailable")],
        items=[],
        methodology=methodology,
        sources=sources,
        warnings=[warning or "Unknown error"],
    )


def cap_items(items: list) -> list:
    return items[:LIMIT_ITEMS]
