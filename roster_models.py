"""
Data model for the Hospital Duty Roster engine.

Staff, shift types, hospital shift-pattern configuration, calendar days,
assignments and conflicts. Also the lossless dict shapes used to exchange the
date-keyed assignment map with the surrounding application.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from roster_config import (
    DEFAULT_MAX_GUARDS_PER_MONTH,
    DEFAULT_REQUIREMENTS,
    DEFAULT_SHIFT_DURATION,
    DEFAULT_SHIFT_TYPES,
    NIGHT_END_HOUR,
    NIGHT_START_HOUR,
)
import roster_config
from roster_errors import InvalidConfigurationError, ReferenceNotFoundError
from roster_logging import get_logger

log = get_logger("models")

StaffId = Union[int, str]
ShiftMap = Dict[str, List["ShiftAssignment"]]


class ShiftCategory(Enum):
    DAY = "Day"
    NIGHT = "Night"
    FULL_24H = "24h"


class CoverageType(Enum):
    WEEKDAY_NIGHT = "WEEKDAY_NIGHT"
    WEEKEND_DAY_NIGHT = "WEEKEND_DAY_NIGHT"
    SATURDAY_24H = "SATURDAY_24H"


class QuotaCategory(str, Enum):
    DAY = "D"
    NIGHT = "N"
    WEEKEND = "W"


class ShiftPattern(Enum):
    ONLY_24 = "only24"
    STANDARD_12_24 = "standard12_24"
    CUSTOM = "custom"


class AssignmentStatus(Enum):
    OPEN = "open"
    RESERVED = "reserved"
    CONFIRMED = "confirmed"
    SWAP_REQUESTED = "swap_requested"


class Severity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"

    @property
    def rank(self) -> int:
        """Higher is more severe."""
        return {"critical": 3, "high": 2, "medium": 1}[self.value]


class ConflictKind(Enum):
    OVERLAPPING_SHIFTS = "overlapping_shifts"
    CONSECUTIVE_NIGHTS = "consecutive_nights"
    UNAVAILABLE_CONFLICT = "unavailable_conflict"
    GUARD_LIMIT_EXCEEDED = "guard_limit_exceeded"
    EXCESSIVE_HOURS = "excessive_hours"
    WEEKEND_OVERLOAD = "weekend_overload"
    RAPID_TURNAROUND = "rapid_turnaround"

    @property
    def severity(self) -> Severity:
        return CONFLICT_SEVERITY[self]

    @property
    def label(self) -> str:
        return CONFLICT_LABELS[self]


CONFLICT_SEVERITY = {
    ConflictKind.OVERLAPPING_SHIFTS: Severity.CRITICAL,
    ConflictKind.CONSECUTIVE_NIGHTS: Severity.HIGH,
    ConflictKind.UNAVAILABLE_CONFLICT: Severity.CRITICAL,
    ConflictKind.GUARD_LIMIT_EXCEEDED: Severity.HIGH,
    ConflictKind.EXCESSIVE_HOURS: Severity.MEDIUM,
    ConflictKind.WEEKEND_OVERLOAD: Severity.MEDIUM,
    ConflictKind.RAPID_TURNAROUND: Severity.MEDIUM,
}

CONFLICT_LABELS = {
    ConflictKind.OVERLAPPING_SHIFTS: "Overlapping shifts",
    ConflictKind.CONSECUTIVE_NIGHTS: "Consecutive nights",
    ConflictKind.UNAVAILABLE_CONFLICT: "Unavailable",
    ConflictKind.GUARD_LIMIT_EXCEEDED: "Monthly guard limit exceeded",
    ConflictKind.EXCESSIVE_HOURS: "Excessive weekly hours",
    ConflictKind.WEEKEND_OVERLOAD: "Weekend overload",
    ConflictKind.RAPID_TURNAROUND: "Rapid turnaround",
}


def as_date(value: Union[date, datetime, str]) -> date:
    """Accept a date, a datetime or an ISO ``YYYY-MM-DD`` string."""
    # datetime subclasses date, so it has to be narrowed first
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def date_key(value: Union[date, str]) -> str:
    """ISO key used by the assignment map."""
    return as_date(value).isoformat()


def parse_hhmm(value: str) -> Tuple[int, int]:
    """Parse a 24-hour ``HH:MM`` string into (hour, minute)."""
    try:
        hour_str, _, minute_str = str(value).strip().partition(":")
        hour = int(hour_str)
        minute = int(minute_str or 0)
    except ValueError:
        raise InvalidConfigurationError(f"Invalid time {value!r}, expected HH:MM")
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise InvalidConfigurationError(f"Invalid time {value!r}, expected HH:MM")
    return hour, minute


def _pick(raw: dict, *keys):
    """First value among ``keys`` that is present and not None."""
    for key in keys:
        value = raw.get(key)
        if value is not None:
            return value
    return None


def positive_int(value, what: str) -> Optional[int]:
    """
    Coerce a configured count to a positive int.

    None and "" mean "not set" and give None. Anything else must parse as an
    integer of at least 1, otherwise InvalidConfigurationError is raised.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidConfigurationError(f"{what}: expected a positive integer, got {value!r}")
    if number < 1:
        raise InvalidConfigurationError(f"{what}: expected a positive integer, got {value!r}")
    return number


def resolve_category(start: str, duration: int) -> ShiftCategory:
    """Derive the category of a shift type from its window."""
    if duration >= 24:
        return ShiftCategory.FULL_24H
    hour, _ = parse_hhmm(start)
    if hour >= NIGHT_START_HOUR or hour < NIGHT_END_HOUR:
        return ShiftCategory.NIGHT
    return ShiftCategory.DAY


@dataclass(frozen=True)
class ShiftType:
    """A shift window definition. Immutable; looked up by id from a catalog."""
    id: str
    name: str
    start: str
    end: str
    duration: int = DEFAULT_SHIFT_DURATION
    color: str = "#FFFFFF"
    category: ShiftCategory = ShiftCategory.DAY

    @property
    def start_hour(self) -> int:
        return parse_hhmm(self.start)[0]

    @property
    def end_hour(self) -> int:
        return parse_hhmm(self.end)[0]

    @property
    def is_night(self) -> bool:
        return self.category == ShiftCategory.NIGHT

    @classmethod
    def from_dict(cls, raw: dict, shift_id: Optional[str] = None) -> "ShiftType":
        """
        Build a ShiftType from its exchanged dict shape.

        The category is resolved here, once. An explicit ``category`` in the raw
        data wins; otherwise it is derived from duration and start hour.
        """
        sid = raw.get("id") or shift_id
        if not sid:
            raise InvalidConfigurationError(f"Shift type without id: {raw!r}")
        start = raw.get("start") or raw.get("startTime") or "08:00"
        end = raw.get("end") or raw.get("endTime") or start
        parse_hhmm(start)
        parse_hhmm(end)

        duration = raw.get("duration")
        if duration is None or duration == "":
            duration = DEFAULT_SHIFT_DURATION
        try:
            duration = int(duration)
        except (TypeError, ValueError):
            raise InvalidConfigurationError(f"Shift type {sid!r}: invalid duration {duration!r}")
        if not 0 < duration <= 24:
            raise InvalidConfigurationError(f"Shift type {sid!r}: duration must be in 1..24, got {duration}")

        raw_category = raw.get("category")
        if raw_category:
            try:
                category = ShiftCategory(raw_category)
            except ValueError:
                raise InvalidConfigurationError(f"Shift type {sid!r}: unknown category {raw_category!r}")
        else:
            category = resolve_category(start, duration)

        return cls(
            id=str(sid),
            name=str(raw.get("name") or sid),
            start=start,
            end=end,
            duration=duration,
            color=str(raw.get("color") or "#FFFFFF"),
            category=category,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "start": self.start,
            "end": self.end,
            "color": self.color,
            "duration": self.duration,
            "category": self.category.value,
        }


class ShiftCatalog:
    """Hospital-scoped set of shift types, keyed by id, in definition order."""

    def __init__(self, shift_types: Iterable[ShiftType] = ()):
        self._types: Dict[str, ShiftType] = {}
        for st in shift_types:
            self._types[st.id] = st

    @classmethod
    def load(cls, raw: Union[Dict[str, dict], List[dict], None] = None) -> "ShiftCatalog":
        """Load from a dict of id -> raw shift type, or a list of raw shift types."""
        if raw is None:
            raw = DEFAULT_SHIFT_TYPES
        if isinstance(raw, dict):
            items = [ShiftType.from_dict(v, shift_id=k) for k, v in raw.items()]
        else:
            items = [ShiftType.from_dict(v) for v in raw]
        return cls(items)

    def get(self, shift_id: str) -> ShiftType:
        try:
            return self._types[shift_id]
        except KeyError:
            raise ReferenceNotFoundError("shift type", shift_id)

    def __contains__(self, shift_id) -> bool:
        return shift_id in self._types

    def __iter__(self):
        return iter(self._types.values())

    def __len__(self) -> int:
        return len(self._types)

    def ids(self) -> List[str]:
        return list(self._types)

    def first_of_category(
        self, category: ShiftCategory, allowed_ids: Optional[Iterable[str]] = None
    ) -> Optional[ShiftType]:
        """First shift type of a category, optionally restricted to allowed ids."""
        if allowed_ids is not None:
            candidates = [self._types[i] for i in allowed_ids if i in self._types]
        else:
            candidates = list(self._types.values())
        for st in candidates:
            if st.category == category:
                return st
        return None


def as_catalog(shift_catalog) -> ShiftCatalog:
    if isinstance(shift_catalog, ShiftCatalog):
        return shift_catalog
    return ShiftCatalog.load(shift_catalog)


@dataclass
class StaffMember:
    """A schedulable staff member. Read-only to the engine."""
    id: StaffId
    name: str
    employment_type: str = "physician"
    specialization: str = ""
    hospital_id: str = ""
    role: str = "staff"
    # None defers to the hospital's max_shifts_per_month, then to the default
    max_guards_per_month: Optional[int] = None
    unavailable: Set[str] = field(default_factory=set)

    def __post_init__(self):
        self.unavailable = {date_key(d) for d in self.unavailable}
        self.max_guards_per_month = positive_int(
            self.max_guards_per_month, f"Staff {self.id!r} max guards per month"
        )

    def is_available_on(self, d: Union[date, str]) -> bool:
        """Check if the staff member can be assigned on a specific date."""
        return date_key(d) not in self.unavailable

    def guard_limit(self, fallback: Optional[int] = None) -> int:
        """Monthly guard limit: own value, else the hospital fallback, else the default."""
        return self.max_guards_per_month or fallback or DEFAULT_MAX_GUARDS_PER_MONTH

    @classmethod
    def from_dict(cls, raw: dict) -> "StaffMember":
        return cls(
            id=raw["id"],
            name=str(raw.get("name", raw["id"])),
            employment_type=raw.get("type", raw.get("employment_type", "physician")),
            specialization=raw.get("specialization", ""),
            hospital_id=raw.get("hospital", raw.get("hospital_id", "")),
            role=raw.get("role", "staff"),
            max_guards_per_month=_pick(raw, "maxGuardsPerMonth", "max_guards_per_month"),
            unavailable=set(raw.get("unavailable") or []),
        )


@dataclass
class HospitalShiftConfig:
    """Which shift types are legal on weekdays and weekends for a hospital."""
    hospital_id: str
    shift_pattern: ShiftPattern = ShiftPattern.STANDARD_12_24
    weekday_shift_ids: List[str] = field(default_factory=list)
    weekend_shift_ids: List[str] = field(default_factory=list)
    shift_types: Optional[ShiftCatalog] = None
    max_shifts_per_month: Optional[int] = None

    def __post_init__(self):
        self.max_shifts_per_month = positive_int(
            self.max_shifts_per_month, f"Hospital {self.hospital_id!r} max shifts per month"
        )

    @classmethod
    def from_dict(cls, raw: dict) -> "HospitalShiftConfig":
        pattern = raw.get("shiftPattern") or raw.get("shift_pattern") or "standard12_24"
        # stored configs use underscores ("standard_12_24", "only_24")
        pattern = str(pattern).replace("_", "")
        pattern = {"only24": "only24", "standard1224": "standard12_24", "custom": "custom"}.get(pattern, pattern)
        try:
            shift_pattern = ShiftPattern(pattern)
        except ValueError:
            raise InvalidConfigurationError(f"Unknown shift pattern {pattern!r}")

        raw_types = raw.get("shiftTypes") or raw.get("shift_types")
        return cls(
            hospital_id=str(raw.get("hospitalId") or raw.get("hospital_id") or ""),
            shift_pattern=shift_pattern,
            weekday_shift_ids=list(raw.get("weekdayShifts") or raw.get("weekday_shifts") or []),
            weekend_shift_ids=list(raw.get("weekendShifts") or raw.get("weekend_shifts") or []),
            shift_types=ShiftCatalog.load(raw_types) if raw_types else None,
            max_shifts_per_month=_pick(raw, "maxShiftsPerMonth", "max_shifts_per_month"),
        )


@dataclass(frozen=True)
class Day:
    """A calendar day and the coverage it requires."""
    date: date
    day_of_week: int
    coverage_type: CoverageType

    @property
    def iso(self) -> str:
        return self.date.isoformat()

    @property
    def is_weekend(self) -> bool:
        return self.day_of_week in (5, 6)


def make_assignment_id(d: Union[date, str], shift_type_id: str, staff_ids: Iterable[StaffId], stamp) -> str:
    """Assignment id: date + shift type + staff ids + a creation stamp."""
    staff_part = "-".join(str(s) for s in staff_ids) or "open"
    return f"{date_key(d)}-{shift_type_id}-{staff_part}-{stamp}"


@dataclass
class ShiftAssignment:
    """One staffed (or open) shift on a date."""
    id: str
    date: date
    shift_type: ShiftType
    staff_ids: List[StaffId] = field(default_factory=list)
    department: str = ""
    status: AssignmentStatus = AssignmentStatus.OPEN
    requirements: dict = field(default_factory=lambda: dict(DEFAULT_REQUIREMENTS))
    note: Optional[str] = None
    # produced by a rotation run; regeneration may replace it
    generated: bool = False

    def has_staff(self, staff_id: StaffId) -> bool:
        return staff_id in self.staff_ids

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "type": self.shift_type.to_dict(),
            "staffIds": list(self.staff_ids),
            "department": self.department,
            "status": self.status.value,
            "requirements": {
                "minDoctors": self.requirements.get("minDoctors", 1),
                "specializations": list(self.requirements.get("specializations", [])),
            },
        }
        if self.note:
            data["note"] = self.note
        if self.generated:
            data["generated"] = True
        return data

    @classmethod
    def from_dict(cls, raw: dict, date_str: str) -> "ShiftAssignment":
        requirements = dict(DEFAULT_REQUIREMENTS)
        requirements.update(raw.get("requirements") or {})
        return cls(
            id=str(raw.get("id") or make_assignment_id(date_str, raw["type"]["id"], raw.get("staffIds", []), 0)),
            date=as_date(date_str),
            shift_type=ShiftType.from_dict(raw["type"]),
            staff_ids=list(raw.get("staffIds") or []),
            department=raw.get("department") or "",
            status=AssignmentStatus(raw.get("status") or "open"),
            requirements=requirements,
            note=raw.get("note"),
            generated=bool(raw.get("generated", False)),
        )


@dataclass(frozen=True)
class Conflict:
    """A classified scheduling conflict. Computed on demand, never persisted."""
    kind: ConflictKind
    staff_id: StaffId
    date: str
    details: str

    @property
    def severity(self) -> Severity:
        return self.kind.severity

    def to_dict(self) -> dict:
        return {
            "id": self.kind.value,
            "name": self.kind.label,
            "severity": self.severity.value,
            "staffId": self.staff_id,
            "date": self.date,
            "details": self.details,
        }


def shift_map_to_dict(shifts: ShiftMap) -> Dict[str, List[dict]]:
    return {key: [a.to_dict() for a in day_shifts] for key, day_shifts in shifts.items()}


def shift_map_from_dict(raw: Dict[str, List[dict]]) -> ShiftMap:
    return {key: [ShiftAssignment.from_dict(a, key) for a in day_shifts] for key, day_shifts in raw.items()}


def find_staff(staff: Iterable[StaffMember], staff_id: StaffId) -> StaffMember:
    for member in staff:
        if member.id == staff_id:
            return member
    raise ReferenceNotFoundError("staff member", staff_id)


def lookup_or_skip(lookup: Callable, *args):
    """
    Run a lookup under the configured reference policy.

    Strict mode re-raises ReferenceNotFoundError; lenient mode logs it and
    returns None so production paths can skip the reference and continue.
    """
    try:
        return lookup(*args)
    except ReferenceNotFoundError as e:
        if roster_config.STRICT_REFERENCES:
            raise
        log.warning("Skipping unresolved reference: %s", e)
        return None
