"""Blockbrief Backend - Configuration & Constants"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root (one level up from backend/)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path)

# ── Socrata Open Data (NYC) ──
SOCRATA_APP_TOKEN = os.environ.get("SOCRATA_APP_TOKEN", "")
SODA_BASE_URL = os.environ.get("SODA_BASE_URL", "https://data.cityofnewyork.us/resource")
SODA_CONCURRENCY = int(os.environ.get("SODA_CONCURRENCY", "4"))
SODA_TIMEOUT_SECONDS = float(os.environ.get("SODA_TIMEOUT_SECONDS", "20"))
SODA_MAX_RETRIES = int(os.environ.get("SODA_MAX_RETRIES", "1"))
SODA_RETRY_BACKOFF_SECONDS = 0.25
SODA_DEFAULT_LIMIT = 1000
SODA_RESPONSE_CACHE = os.environ.get("SODA_RESPONSE_CACHE", "1").lower() in ("1", "true", "yes")
SODA_RESPONSE_CACHE_SECONDS = 300

# ── Request handling ──
RATE_LIMIT = int(os.environ.get("RATE_LIMIT", "30"))  # requests per window per client key
RATE_WINDOW = int(os.environ.get("RATE_WINDOW", "60"))  # seconds
BRIEF_CACHE_TTL = int(os.environ.get("BRIEF_CACHE_TTL", "900"))
CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if o.strip()
]

# ── Brief parameters ──
RADIUS_PRIMARY_M = 150
RADIUS_SECONDARY_M = 400
CLUSTER_RADIUS_M = 75
LIMIT_ITEMS = 12
MAX_MAP_FEATURES = 200

# Event relevance scoring weights
EVENT_SCORE_WEIGHTS = {
    "community_district": 5,
    "street_closure": 3,
    "street_match": 2,
    "non_routine": 1,
}
EVENT_TRIM_THRESHOLD = 30   # trim pools larger than this...
EVENT_TRIM_MIN_ROWS = 8     # ...only when at least this many rows survive

# NAD83 / New York Long Island (ftUS), used by street-work WKT geometry
EPSG_2263 = (
    "+proj=lcc +lat_1=41.03333333333333 +lat_2=40.66666666666666 "
    "+lat_0=40.16666666666666 +lon_0=-74 +x_0=300000 +y_0=0 "
    "+datum=NAD83 +units=us-ft +no_defs"
)

# ── Module catalog ──
MODULE_ORDER = [
    "right_now",
    "dob_permits",
    "street_works",
    "collisions",
    "311_pulse",
    "sanitation",
    "events",
    "film",
]

DATASETS = {
    "ipu4-2q9a": {
        "name": "DOB Permit Issuance",
        "url": "https://data.cityofnewyork.us/Housing-Development/DOB-Permit-Issuance/ipu4-2q9a",
        "ttl": 900,
    },
    "rbx6-tga4": {
        "name": "DOB NOW: Build - Approved Permits",
        "url": "https://data.cityofnewyork.us/Housing-Development/DOB-NOW-Build-Approved-Permits/rbx6-tga4",
        "ttl": 900,
    },
    "eabe-havv": {
        "name": "DOB Complaints Received",
        "url": "https://data.cityofnewyork.us/Housing-Development/DOB-Complaints-Received/eabe-havv",
        "ttl": 900,
    },
    "6bgk-3dad": {
        "name": "DOB ECB Violations",
        "url": "https://data.cityofnewyork.us/Housing-Development/DOB-ECB-Violations/6bgk-3dad",
        "ttl": 900,
    },
    "tqtj-sjs8": {
        "name": "Street Construction Permits (2022-Present)",
        "url": "https://data.cityofnewyork.us/Transportation/Street-Construction-Permits-2022-Present/tqtj-sjs8",
        "ttl": 900,
    },
    "9jic-byiu": {
        "name": "Street Opening Permits",
        "url": "https://data.cityofnewyork.us/Transportation/Street-Opening-Permits/9jic-byiu",
        "ttl": 900,
    },
    "i6b5-j7bu": {
        "name": "Street Closures due to construction activities by Block",
        "url": "https://data.cityofnewyork.us/Transportation/Street-Closures-due-to-construction-activities-by-/i6b5-j7bu",
        "ttl": 900,
    },
    "h9gi-nx95": {
        "name": "Motor Vehicle Collisions - Crashes",
        "url": "https://data.cityofnewyork.us/Public-Safety/Motor-Vehicle-Collisions-Crashes/h9gi-nx95",
        "ttl": 900,
    },
    "erm2-nwe9": {
        "name": "311 Service Requests from 2020 to Present",
        "url": "https://data.cityofnewyork.us/Social-Services/311-Service-Requests-from-2020-to-Present/erm2-nwe9",
        "ttl": 900,
    },
    "p7k6-2pm8": {
        "name": "Garbage Collection Schedule",
        "url": "https://data.cityofnewyork.us/City-Government/Garbage-Collection-Schedule/p7k6-2pm8",
        "ttl": 86400,
    },
    "rv63-53db": {
        "name": "DSNY Frequencies",
        "url": "https://data.cityofnewyork.us/City-Government/DSNY-Frequencies/rv63-53db",
        "ttl": 86400,
    },
    "tvpp-9vvx": {
        "name": "NYC Permitted Event Information",
        "url": "https://data.cityofnewyork.us/City-Government/NYC-Permitted-Event-Information/tvpp-9vvx",
        "ttl": 1800,
    },
    "5crt-au7u": {
        "name": "Community Districts",
        "url": "https://data.cityofnewyork.us/City-Government/Community-Districts/5crt-au7u",
        "ttl": 86400,
    },
    "tg4x-b46p": {
        "name": "Film Permits",
        "url": "https://data.cityofnewyork.us/City-Government/Film-Permits/tg4x-b46p",
        "ttl": 1800,
    },
}

# Datasets cited by each module (also used for fallback modules)
MODULE_DATASETS = {
    "right_now": ["i6b5-j7bu", "tqtj-sjs8", "tg4x-b46p"],
    "dob_permits": ["ipu4-2q9a", "rbx6-tga4", "eabe-havv", "6bgk-3dad"],
    "street_works": ["tqtj-sjs8", "9jic-byiu", "i6b5-j7bu"],
    "collisions": ["h9gi-nx95"],
    "311_pulse": ["erm2-nwe9"],
    "sanitation": ["rv63-53db", "p7k6-2pm8"],
    "events": ["tvpp-9vvx", "5crt-au7u"],
    "film": ["tg4x-b46p"],
}
