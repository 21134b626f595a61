"""Blockbrief Backend - Shareable block identifiers

A block id is ``v1_`` followed by unpadded base64url JSON of the location
payload. Coordinates are rounded to 5 decimals so nearby lookups of the same
point produce the same id (and hit the same brief cache entry).
"""

import json
import base64
import binascii
from typing import Literal, Optional

from pydantic import BaseModel, ValidationError, model_validator

VERSION_PREFIX = "v1_"


class ShareIdError(ValueError):
    pass


class BlockIdPayload(BaseModel):
    v: Literal[1] = 1
    lat: float
    lon: float
    bbl: Optional[str] = None
    bin: Optional[str] = None
    borough: Optional[str] = None
    normalized_address: Optional[str] = None
    community_district: Optional[str] = None
    council_district: Optional[str] = None
    zip_code: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _legacy_keys(cls, data):
        # Early ids were minted with a misspelled borough key
        if isinstance(data, dict) and "norough" in data and "borough" not in data:
            data = {**data, "borough": data["norough"]}
        return data


def _b64url_encode(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def _b64url_decode(value: str) -> str:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")


def encode_block_id(payload: BlockIdPayload | dict) -> str:
    data = payload if isinstance(payload, BlockIdPayload) else BlockIdPayload.model_validate(payload)
    canonical = data.model_copy(update={"v": 1, "lat": round(data.lat, 5), "lon": round(data.lon, 5)})
    body = json.dumps(canonical.model_dump(exclude_none=True), separators=(",", ":"))
    return VERSION_PREFIX + _b64url_encode(body)


def decode_block_id(block_id: str) -> BlockIdPayload:
    if not block_id.startswith(VERSION_PREFIX):
        raise ShareIdError("Unsupported block id version")
    try:
        raw = json.loads(_b64url_decode(block_id[len(VERSION_PREFIX):]))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise ShareIdError("Malformed block id") from e
    try:
        return BlockIdPayload.model_validate(raw)
    except ValidationError as e:
        raise ShareIdError("Malformed block id payload") from e
