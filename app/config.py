"""
Service configuration.

Values come from environment variables, optionally loaded from a ``.env``
file in the project root. Invalid numeric values fall back to the default.
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)


def _get_int_env(key: str, default: Optional[int]) -> Optional[int]:
    """Get an int value from environment variable or use default."""
    value = os.environ.get(key)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            pass
    return default


# =============================================================================
# Tide Generation
# =============================================================================

# Days of tides generated when the caller doesn't ask for a specific horizon
# Environment variable: TIDE_HORIZON_DAYS
HORIZON_DAYS = _get_int_env('TIDE_HORIZON_DAYS', 3)

# Largest horizon accepted by the API
# Environment variable: TIDE_MAX_HORIZON_DAYS
MAX_HORIZON_DAYS = _get_int_env('TIDE_MAX_HORIZON_DAYS', 14)

# Fixed seed for the random source; unset means seed from system entropy.
# Setting it makes repeated status polls see the same tide table.
# Environment variable: TIDE_RANDOM_SEED
RANDOM_SEED = _get_int_env('TIDE_RANDOM_SEED', None)

# Number of upcoming tides returned alongside a status snapshot
# Environment variable: TIDE_UPCOMING_LIMIT
UPCOMING_LIMIT = _get_int_env('TIDE_UPCOMING_LIMIT', 4)


# =============================================================================
# API
# =============================================================================

# Per-client rate limit (slowapi syntax)
# Environment variable: RATE_LIMIT
RATE_LIMIT = os.environ.get('RATE_LIMIT', '120/minute')
