"""Tests for shareable block ids."""

import base64
import json

import pytest

from share_id import BlockIdPayload, ShareIdError, decode_block_id, encode_block_id


def _raw_id(payload: dict) -> str:
    body = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode().rstrip("=")
    return f"v1_{body}"


class TestEncode:
    def test_prefix_and_no_padding(self):
        block_id = encode_block_id({"lat": 40.7484411, "lon": -73.9856644})
        assert block_id.startswith("v1_")
        assert "=" not in block_id

    def test_coordinates_rounded(self):
        payload = decode_block_id(encode_block_id({"lat": 40.7484411, "lon": -73.9856644, "bbl": "1008350041"}))
        assert payload.lat == 40.74844
        assert payload.lon == -73.98566
        assert payload.bbl == "1008350041"
        assert payload.v == 1

    def test_nearby_points_share_an_id(self):
        assert encode_block_id({"lat": 40.748441, "lon": -73.985661}) == \
            encode_block_id({"lat": 40.748439, "lon": -73.985659})

    def test_none_fields_omitted(self):
        block_id = encode_block_id(BlockIdPayload(lat=40.7, lon=-73.9, borough="Manhattan"))
        body = block_id[3:] + "=" * (-len(block_id[3:]) % 4)
        assert json.loads(base64.urlsafe_b64decode(body)) == {"v": 1, "lat": 40.7, "lon": -73.9, "borough": "Manhattan"}


class TestDecode:
    def test_unsupported_version(self):
        with pytest.raises(ShareIdError, match="Unsupported block id version"):
            decode_block_id("v2_abc")

    def test_malformed_body(self):
        with pytest.raises(ShareIdError, match="Malformed block id"):
            decode_block_id("v1_" + base64.urlsafe_b64encode(b"not json").decode())

    def test_malformed_payload(self):
        with pytest.raises(ShareIdError, match="Malformed block id payload"):
            decode_block_id(_raw_id({"v": 1, "lat": "north"}))

    def test_wrong_payload_version(self):
        with pytest.raises(ShareIdError, match="payload"):
            decode_block_id(_raw_id({"v": 2, "lat": 40.7, "lon": -73.9}))

    def test_legacy_borough_key(self):
        payload = decode_block_id(_raw_id({"v": 1, "lat": 40.7, "lon": -73.9, "norough": "Brooklyn"}))
        assert payload.borough == "Brooklyn"
