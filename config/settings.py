import os
from dotenv import load_dotenv

# Load environment variables from the project root
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), "..", ".env"))


def _bool_env(name: str, default: str = "1") -> bool:
    value = os.getenv(name, default).strip().lower()
    return value not in {"0", "false", "no"}


def _optional_float_env(name: str) -> float | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return float(value)


PLANS_PATH = os.getenv("PLANS_PATH", "./plans")
DATA_PATH = os.getenv("DATA_PATH", "./data")

# Unset means DATA_PATH/graph.sqlite
DATABASE_URL = os.getenv("DATABASE_URL") or None

DATABASE_ECHO = _bool_env("DATABASE_ECHO", "false")

# Scoring
SCORING_PRESET = os.getenv("SCORING_PRESET", "default").strip().lower()

# Conflict detection
FEATURE_OVERLAP_THRESHOLD = float(os.getenv("FEATURE_OVERLAP_THRESHOLD", "0.85"))
FEATURE_SIMILARITY_THRESHOLD = float(os.getenv("FEATURE_SIMILARITY_THRESHOLD", "0.8"))
STALE_WIP_DAYS = float(os.getenv("STALE_WIP_DAYS", "7"))
STALE_WIP_ERROR_DAYS = _optional_float_env("STALE_WIP_ERROR_DAYS")
