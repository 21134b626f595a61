"""Build a neighborhood brief from the command line, without running the API.

Usage:
  python scripts/print_brief.py brief 40.74844 -73.98566 --borough Manhattan --zip 10118
  python scripts/print_brief.py brief 40.74844 -73.98566 --summary          # severity table only
  python scripts/print_brief.py brief 40.74844 -73.98566 --module collisions
  python scripts/print_brief.py calls v1_eyJ2IjoxLC... --days 7 --limit 100
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from brief import BriefInputError, build_brief  # noqa: E402
from brief_modules.helpers import BuildServices  # noqa: E402
from brief_modules.pulse311 import fetch_311_calls  # noqa: E402
from cache import TTLCache  # noqa: E402
from interpretation import interpret_module  # noqa: E402
from share_id import ShareIdError, decode_block_id  # noqa: E402
from soda_client import SodaClient, SodaError  # noqa: E402
from summary_metrics import summary_metrics  # noqa: E402

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "WARNING"),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("blockbrief.cli")


async def _run_brief(args) -> int:
    services = BuildServices(soda=SodaClient(), cache=TTLCache())
    location = {
        "lat": args.lat, "lon": args.lon, "bbl": args.bbl, "bin": args.bin, "borough": args.borough,
        "community_district": args.community_district, "zip_code": args.zip,
        "normalized_address": args.address,
    }
    try:
        brief = await build_brief(location, services, raw_address=args.address)
    except BriefInputError as e:
        logger.error(str(e))
        return 2
    finally:
        await services.soda.aclose()

    if args.summary:
        print(f"{'module':<14} {'status':<12} severity")
        for module in brief.modules:
            print(f"{module.id:<14} {module.status:<12} {interpret_module(module).severity_label}")
        print(json.dumps(summary_metrics(brief).model_dump(), indent=2))
        return 0

    payload = brief.model_dump(exclude_none=True)
    if args.module:
        payload = next((m for m in payload["modules"] if m["id"] == args.module), None)
        if payload is None:
            logger.error(f"Unknown module id: {args.module}")
            return 2
    print(json.dumps(payload, indent=2))
    return 0


async def _run_calls(args) -> int:
    try:
        payload = decode_block_id(args.block_id)
    except ShareIdError as e:
        logger.error(str(e))
        return 2

    services = BuildServices(soda=SodaClient(), cache=TTLCache())
    try:
        calls = await fetch_311_calls(services, args.block_id, payload.lat, payload.lon,
                                      days=min(max(args.days, 1), 90),
                                      limit=min(max(args.limit, 50), 1000))
    except SodaError as e:
        logger.error(str(e))
        return 1
    finally:
        await services.soda.aclose()
    print(json.dumps(calls.model_dump(exclude_none=True), indent=2))
    return 0


def main():
    parser = argparse.ArgumentParser(description="Build NYC neighborhood briefs from Socrata open data")
    sub = parser.add_subparsers(dest="command")

    p_brief = sub.add_parser("brief", help="Build a brief for a point")
    p_brief.add_argument("lat", type=float)
    p_brief.add_argument("lon", type=float)
    p_brief.add_argument("--address", help="Display address, also used for event street matching")
    p_brief.add_argument("--bbl", help="10-digit borough-block-lot")
    p_brief.add_argument("--bin", help="Building identification number")
    p_brief.add_argument("--borough", help="Borough name, e.g. Manhattan")
    p_brief.add_argument("--community-district", help="Community district, e.g. 105")
    p_brief.add_argument("--zip", help="ZIP code")
    p_brief.add_argument("--module", help="Print only this module")
    p_brief.add_argument("--summary", action="store_true", help="Print severity and headline metrics only")
    p_brief.set_defaults(func=_run_brief)

    p_calls = sub.add_parser("calls", help="List recent 311 calls for a block id")
    p_calls.add_argument("block_id")
    p_calls.add_argument("--days", type=int, default=30, help="Window in days (1-90)")
    p_calls.add_argument("--limit", type=int, default=500, help="Max rows (50-1000)")
    p_calls.set_defaults(func=_run_calls)

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)
    sys.exit(asyncio.run(args.func(args)))


if __name__ == "__main__":
    main()
