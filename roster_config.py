"""
Configuration constants for the Hospital Duty Roster engine.

All business-rule thresholds live here so the scheduler, the conflict
detector and the UI agree on a single set of values. A couple of values can be
overridden from the environment.
"""

import os
from typing import Dict, List


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ============================================================================
# I. RUNTIME SETTINGS
# ============================================================================

# Strict mode raises ReferenceNotFoundError on unknown staff/shift-type ids.
# Lenient mode (default) logs a warning and skips the reference.
STRICT_REFERENCES: bool = _env_flag("ROSTER_STRICT_REFERENCES")

LOG_LEVEL: str = os.environ.get("ROSTER_LOG_LEVEL", "INFO").upper()


# ============================================================================
# II. STAFF DEFAULTS
# ============================================================================

DEFAULT_MAX_GUARDS_PER_MONTH: int = 10

DEPARTMENTS: List[str] = [
    "Emergency",
    "Surgery",
    "Intensive Care",
    "Pediatrics",
    "Cardiology",
    "Neurology",
    "Orthopedics",
    "Gynecology",
    "Ophthalmology",
    "ENT",
    "Dermatology",
    "Psychiatry",
]


# ============================================================================
# III. SHIFT DEFINITIONS
# ============================================================================

# Used when a shift type carries no duration.
DEFAULT_SHIFT_DURATION: int = 12

# Start hours that make a shift a night shift: [NIGHT_START_HOUR, 24) + [0, NIGHT_END_HOUR)
NIGHT_START_HOUR: int = 20
NIGHT_END_HOUR: int = 8

DAY_SHIFT_ID: str = "DAY_12"
NIGHT_SHIFT_ID: str = "NIGHT_12"
FULL_SHIFT_ID: str = "GUARD_24"

DEFAULT_SHIFT_TYPES: Dict[str, dict] = {
    DAY_SHIFT_ID: {
        "id": DAY_SHIFT_ID,
        "name": "Day Guard (08-20)",
        "start": "08:00",
        "end": "20:00",
        "color": "#3B82F6",
        "duration": 12,
    },
    NIGHT_SHIFT_ID: {
        "id": NIGHT_SHIFT_ID,
        "name": "Night Guard (20-08)",
        "start": "20:00",
        "end": "08:00",
        "color": "#7C3AED",
        "duration": 12,
    },
    FULL_SHIFT_ID: {
        "id": FULL_SHIFT_ID,
        "name": "24h Guard (08-08)",
        "start": "08:00",
        "end": "08:00",
        "color": "#10B981",
        "duration": 24,
    },
}

# Allowed shift ids when a standard12_24 hospital leaves its lists empty.
STANDARD_WEEKDAY_SHIFT_IDS: List[str] = [NIGHT_SHIFT_ID]
STANDARD_WEEKEND_SHIFT_IDS: List[str] = [DAY_SHIFT_ID, NIGHT_SHIFT_ID, FULL_SHIFT_ID]

SHIFT_PATTERN_LABELS: Dict[str, str] = {
    "only24": "24-hour guards only",
    "standard12_24": "Standard (12h on weekdays, mixed on weekends)",
    "custom": "Custom shift pattern",
}


# ============================================================================
# IV. CONFLICT RULES
# ============================================================================

MAX_WEEKLY_HOURS: int = 60

MIN_REST_HOURS: int = 12

# Weekend overload: flag when the staff member worked this many preceding
# weekends in a row. The look-back stops after WEEKEND_LOOKBACK weekends.
MAX_CONSECUTIVE_WEEKENDS: int = 2
WEEKEND_LOOKBACK: int = 4


# ============================================================================
# V. ASSIGNMENT DEFAULTS
# ============================================================================

DEFAULT_REQUIREMENTS: Dict[str, object] = {"minDoctors": 1, "specializations": []}

UNFILLED_NOTE: str = "UNFILLED"
