"""Blockbrief Backend - Pydantic Models"""

import math
from typing import Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

ModuleId = Literal[
    "right_now",
    "dob_permits",
    "street_works",
    "collisions",
    "311_pulse",
    "sanitation",
    "events",
    "film",
]
ModuleStatus = Literal["ok", "partial", "unavailable"]
SeverityLevel = Literal["low", "medium", "high"]


class Location(BaseModel):
    """Resolved input location. Produced upstream by geocoding."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float
    bbl: Optional[str] = None
    bin: Optional[str] = None
    borough: Optional[str] = None
    community_district: Optional[str] = None
    council_district: Optional[str] = None
    zip_code: Optional[str] = None
    normalized_address: Optional[str] = None
    confidence: Optional[float] = None

    @field_validator("lat")
    @classmethod
    def _check_lat(cls, v: float) -> float:
        if not math.isfinite(v) or not -90 <= v <= 90:
            raise ValueError("lat must be a finite value in [-90, 90]")
        return v

    @field_validator("lon")
    @classmethod
    def _check_lon(cls, v: float) -> float:
        if not math.isfinite(v) or not -180 <= v <= 180:
            raise ValueError("lon must be a finite value in [-180, 180]")
        return v

    @field_validator("bbl", "bin", "borough", "community_district", "council_district", "zip_code",
                     "normalized_address", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class QueryContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    location: Location
    radius_primary_m: int
    radius_secondary_m: int
    window_30d: str
    window_90d: str
    window_12m: str
    now: str
    block_key: str


class ModuleStat(BaseModel):
    label: str
    value: Union[int, float, str]
    unit: Optional[str] = None
    delta: Optional[Union[int, float]] = None


class ModuleItem(BaseModel):
    title: str
    subtitle: Optional[str] = None
    date_start: Optional[str] = None
    date_end: Optional[str] = None
    location_desc: Optional[str] = None
    url: Optional[str] = None
    source_dataset_id: str
    raw_id: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None
    geometry_wkt: Optional[str] = None


class ModuleSource(BaseModel):
    dataset_id: str
    dataset_name: str
    dataset_url: str


class Module(BaseModel):
    id: ModuleId
    headline: str
    status: ModuleStatus = "ok"
    stats: list[ModuleStat] = []
    items: list[ModuleItem] = []
    methodology: str
    sources: list[ModuleSource] = []
    warnings: Optional[list[str]] = None
    coverage_note: Optional[str] = None


class BriefInput(BaseModel):
    raw_address: Optional[str] = None
    normalized_address: Optional[str] = None
    geoclient_confidence: Optional[float] = None


class BriefLocation(BaseModel):
    lat: float
    lon: float
    bbl: Optional[str] = None
    bin: Optional[str] = None
    borough: Optional[str] = None
    community_district: Optional[str] = None
    council_district: Optional[str] = None
    zip_code: Optional[str] = None


class BriefParameters(BaseModel):
    radius_primary_m: int
    radius_secondary_m: int
    window_30d: str
    window_90d: str


class BriefMapFeature(BaseModel):
    id: str
    module_id: ModuleId
    kind: Literal["point", "line"]
    label: str
    coordinates: list[list[float]]  # [[lat, lon], ...]


class MapCenter(BaseModel):
    lat: float
    lon: float


class BriefMapData(BaseModel):
    center: MapCenter
    radius_primary_m: int
    radius_secondary_m: int
    features: list[BriefMapFeature]


class BriefResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    input: BriefInput
    location: BriefLocation
    updated_at_utc: str
    parameters: BriefParameters
    modules: list[Module]
    map: BriefMapData


class ModuleInterpretation(BaseModel):
    severity: SeverityLevel
    severity_label: Literal["Low", "Medium", "High"]
    impact: str
    threshold_note: str


# ─────────────────────────── API payloads ───────────────────────

class BriefEnvelope(BaseModel):
    block_id: str
    share_path: str
    brief: BriefResponse


class CallItem(BaseModel):
    id: str
    title: str
    subtitle: Optional[str] = None
    status: Optional[str] = None
    date_start: Optional[str] = None
    date_end: Optional[str] = None
    location_desc: Optional[str] = None


class CallsResponse(BaseModel):
    total_calls: int
    returned_calls: int
    truncated: bool
    window_days: int
    radius_m: int
    generated_at_utc: str
    methodology: str
    source: ModuleSource
    calls: list[CallItem]


class HighlightItem(BaseModel):
    title: str
    subtitle: Optional[str] = None


class WidgetMetrics(BaseModel):
    active_disruptions: float = 0
    crashes_90d: float = 0
    injuries_90d: float = 0
    requests_30d: float = 0
    upcoming_events_30d: float = 0


class WidgetResponse(BaseModel):
    block_id: str
    address: Optional[str] = None
    updated_at_utc: str
    share_url: str
    embed_url: str
    metrics: WidgetMetrics
    highlights: dict[str, list[HighlightItem]] = Field(default_factory=dict)
    severity: dict[str, SeverityLevel] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    ok: bool
    service: str
    timestamp_utc: str
