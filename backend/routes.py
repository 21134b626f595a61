"""Blockbrief Backend - FastAPI Routes"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from brief import BriefInputError, build_brief, coerce_location
from brief_modules.helpers import BuildServices
from brief_modules.pulse311 import fetch_311_calls
from cache import TTLCache
from config import BRIEF_CACHE_TTL, CORS_ORIGINS
from interpretation import interpret_module
from models import (
    BriefEnvelope, BriefResponse, CallsResponse, HealthResponse, Location, WidgetResponse,
)
from rate_limit import FixedWindowRateLimiter, client_key
from share_id import BlockIdPayload, ShareIdError, decode_block_id, encode_block_id
from soda_client import SodaClient, SodaError
from summary_metrics import find_module, summary_metrics, top_module_items
from time_utils import now_utc_iso

logger = logging.getLogger("blockbrief")


# ─────────────────────────── App Setup ──────────────────────────

app = FastAPI(title="Blockbrief API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
)

# Process-wide collaborators. Tests swap these on app.state.
app.state.services = BuildServices(soda=SodaClient(), cache=TTLCache(default_ttl=BRIEF_CACHE_TTL))
app.state.limiter = FixedWindowRateLimiter()


@app.on_event("shutdown")
async def shutdown_event():
    await app.state.services.soda.aclose()


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.url.path}: {exc!r}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ─────────────────────────── Rate Limiting ──────────────────────

def _rate_purpose(path: str) -> Optional[str]:
    if path == "/api/health":
        return None
    if path.endswith("/311-calls"):
        return "311-calls"
    if path.startswith("/api/widget/"):
        return "widget"
    return "brief"


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    purpose = _rate_purpose(request.url.path)
    if purpose is None:
        return await call_next(request)

    key = client_key(request.headers.get("x-forwarded-for"), purpose)
    decision = request.app.state.limiter.check(key)
    if not decision.allowed:
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded"},
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )
    return await call_next(request)


# ─────────────────────────── Helpers ────────────────────────────

def _location_from_payload(payload: BlockIdPayload) -> Location:
    return Location(
        lat=payload.lat,
        lon=payload.lon,
        bbl=payload.bbl,
        bin=payload.bin,
        borough=payload.borough,
        community_district=payload.community_district,
        council_district=payload.council_district,
        zip_code=payload.zip_code,
        normalized_address=payload.normalized_address or f"{payload.lat}, {payload.lon}",
    )


def _block_id_for(location: Location) -> str:
    return encode_block_id(BlockIdPayload(
        lat=location.lat,
        lon=location.lon,
        bbl=location.bbl,
        bin=location.bin,
        borough=location.borough,
        normalized_address=location.normalized_address,
        community_district=location.community_district,
        council_district=location.council_district,
        zip_code=location.zip_code,
    ))


def _decode_or_400(block_id: str) -> BlockIdPayload:
    try:
        return decode_block_id(block_id)
    except ShareIdError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def _cached_brief(request: Request, block_id: str, location: Location,
                        raw_address: Optional[str] = None) -> BriefResponse:
    services: BuildServices = request.app.state.services

    async def _build():
        return await build_brief(location, services, raw_address=raw_address)

    return await services.cache.get_or_compute(f"brief:{block_id}", BRIEF_CACHE_TTL, _build)


def _clamp(value: int, low: int, high: int) -> int:
    return min(max(value, low), high)


# ─────────────────────────── Brief Endpoints ────────────────────

@app.get("/api/brief", response_model=BriefEnvelope, response_model_exclude_none=True)
async def get_brief(
    request: Request,
    lat: float,
    lon: float,
    address: Optional[str] = None,
    bbl: Optional[str] = None,
    bin: Optional[str] = None,
    borough: Optional[str] = None,
    community_district: Optional[str] = None,
    council_district: Optional[str] = None,
    zip_code: Optional[str] = None,
):
    try:
        location = coerce_location({
            "lat": lat, "lon": lon, "bbl": bbl, "bin": bin, "borough": borough,
            "community_district": community_district, "council_district": council_district,
            "zip_code": zip_code, "normalized_address": address,
        })
    except BriefInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    block_id = _block_id_for(location)
    brief = await _cached_brief(request, block_id, location, raw_address=address or bbl)
    logger.info(f"Brief served for {block_id}")
    return BriefEnvelope(block_id=block_id, share_path=f"/b/{block_id}", brief=brief)


@app.get("/api/brief/by-block/{block_id}", response_model=BriefEnvelope, response_model_exclude_none=True)
async def get_brief_by_block(request: Request, block_id: str):
    payload = _decode_or_400(block_id)
    brief = await _cached_brief(request, block_id, _location_from_payload(payload))
    return BriefEnvelope(block_id=block_id, share_path=f"/b/{block_id}", brief=brief)


@app.get("/api/brief/by-block/{block_id}/311-calls", response_model=CallsResponse,
         response_model_exclude_none=True)
async def get_311_calls(request: Request, block_id: str, days: int = 30, limit: int = 500):
    payload = _decode_or_400(block_id)
    try:
        return await fetch_311_calls(
            request.app.state.services, block_id, payload.lat, payload.lon,
            days=_clamp(days, 1, 90), limit=_clamp(limit, 50, 1000),
        )
    except SodaError as e:
        logger.warning(f"311 call listing failed for {block_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))


# ─────────────────────────── Widget ─────────────────────────────

@app.get("/api/widget/{block_id}", response_model=WidgetResponse, response_model_exclude_none=True)
async def get_widget(request: Request, block_id: str):
    payload = _decode_or_400(block_id)
    brief = await _cached_brief(request, block_id, _location_from_payload(payload))
    return WidgetResponse(
        block_id=block_id,
        address=brief.input.normalized_address,
        updated_at_utc=brief.updated_at_utc,
        share_url=f"/b/{block_id}",
        embed_url=f"/embed/{block_id}",
        metrics=summary_metrics(brief),
        highlights={
            "right_now": top_module_items(find_module(brief, "right_now"), 3),
            "top_311_types": top_module_items(find_module(brief, "311_pulse"), 3),
        },
        severity={m.id: interpret_module(m).severity for m in brief.modules},
    )


# ─────────────────────────── Utility Endpoints ──────────────────

@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(ok=True, service="blockbrief", timestamp_utc=now_utc_iso())
