from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def read_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def read_list(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def read_int(key: str, default: int, minimum: int | None = None) -> int:
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return default

    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}.")

    if minimum is not None and value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}.")

    return value


def read_float(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return default

    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}.")


# storage
DB_DSN = os.environ.get("DB_DSN", "")
REDIS_DSN = os.environ.get("REDIS_DSN", "")

# logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").lower()
LOG_WITH_COLORS = read_bool(os.environ.get("LOG_WITH_COLORS", "true"))
LOG_LEVEL_RESET_MINUTES = read_float("LOG_LEVEL_RESET_MINUTES", 60.0)

# score importing
IMPORT_LOCK_RETRY_COUNT = read_int("IMPORT_LOCK_RETRY_COUNT", 7, minimum=0)
IMPORT_LOCK_BACKOFF_BASE = read_float("IMPORT_LOCK_BACKOFF_BASE", 4.0)
IMPORT_LOCK_TTL = read_int("IMPORT_LOCK_TTL", 600, minimum=1)

# orphan chart promotion
USC_QUEUE_SIZE = read_int("USC_QUEUE_SIZE", 3, minimum=2)

# profile ratings are the mean of this many best values
BEST_N_RATING_LIMIT = read_int("BEST_N_RATING_LIMIT", 20, minimum=1)

# outbound
WEBHOOK_URLS = read_list(os.environ.get("WEBHOOK_URLS", ""))
FLO_API_URL = os.environ.get("FLO_API_URL", "")
EAG_API_URL = os.environ.get("EAG_API_URL", "")
MIN_API_URL = os.environ.get("MIN_API_URL", "")

DEVELOPER_MODE = read_bool(os.environ.get("DEVELOPER_MODE", "false"))

if LOG_LEVEL not in ("crit", "severe", "error", "warn", "info", "verbose", "debug"):
    raise ValueError(f"Invalid LOG_LEVEL {LOG_LEVEL!r}.")
