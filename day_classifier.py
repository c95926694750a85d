"""
Calendar Day Classifier.

Turns a target month into an ordered sequence of Day records tagged with the
coverage they need, filters the shift types a hospital allows on a date, and
expands days into the concrete slots the rotation assigners fill.
"""

import calendar
import math
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Union

from roster_config import SHIFT_PATTERN_LABELS, STANDARD_WEEKDAY_SHIFT_IDS, STANDARD_WEEKEND_SHIFT_IDS
from roster_logging import get_logger
from roster_models import (
    CoverageType,
    Day,
    HospitalShiftConfig,
    QuotaCategory,
    ShiftCatalog,
    ShiftCategory,
    ShiftPattern,
    ShiftType,
    as_catalog,
    as_date,
    lookup_or_skip,
)

log = get_logger("calendar")

# Slot categories each coverage type must fill, in assignment order.
COVERAGE_SLOTS = {
    CoverageType.WEEKDAY_NIGHT: [ShiftCategory.NIGHT],
    CoverageType.WEEKEND_DAY_NIGHT: [ShiftCategory.DAY, ShiftCategory.NIGHT],
    CoverageType.SATURDAY_24H: [ShiftCategory.FULL_24H],
}


def classify_date(d: date) -> CoverageType:
    """
    Coverage type for a single date.
    - Monday-Friday: night only
    - Saturday: 24h on every even ordinal Saturday of the month, else day + night
    - Sunday: day + night
    """
    weekday = d.weekday()
    if weekday < 5:
        return CoverageType.WEEKDAY_NIGHT
    if weekday == 5 and math.ceil(d.day / 7) % 2 == 0:
        return CoverageType.SATURDAY_24H
    return CoverageType.WEEKEND_DAY_NIGHT


def classify_month(year: int, month: int, hospital_config: Optional[HospitalShiftConfig] = None) -> List[Day]:
    """
    Generate one Day per calendar day of the month.

    The classification follows the fixed calendar pattern; the hospital config is
    applied later by build_slots, which decides which shift types may fill each
    slot.
    """
    num_days = calendar.monthrange(year, month)[1]
    days = []
    for day_num in range(1, num_days + 1):
        d = date(year, month, day_num)
        days.append(Day(date=d, day_of_week=d.weekday(), coverage_type=classify_date(d)))
    if hospital_config is not None:
        log.debug(
            "Classified %d-%02d for hospital %s (%s)",
            year, month, hospital_config.hospital_id, hospital_config.shift_pattern.value,
        )
    return days


def _allowed_shift_ids(d: date, hospital_config: HospitalShiftConfig, catalog: ShiftCatalog) -> List[str]:
    is_weekend = d.weekday() in (5, 6)
    pattern = hospital_config.shift_pattern

    if pattern == ShiftPattern.ONLY_24:
        return [st.id for st in catalog if st.category == ShiftCategory.FULL_24H]
    if pattern == ShiftPattern.STANDARD_12_24:
        if is_weekend:
            return hospital_config.weekend_shift_ids or STANDARD_WEEKEND_SHIFT_IDS
        return hospital_config.weekday_shift_ids or STANDARD_WEEKDAY_SHIFT_IDS
    # custom: configured lists only
    if is_weekend:
        return list(hospital_config.weekend_shift_ids)
    return list(hospital_config.weekday_shift_ids)


def get_available_shift_types(
    d: Union[date, str], hospital_config: Optional[HospitalShiftConfig], shift_catalog=None
) -> List[ShiftType]:
    """Shift types a hospital allows on a date, in catalog order."""
    if hospital_config is None:
        return list(as_catalog(shift_catalog))
    catalog = hospital_config.shift_types or as_catalog(shift_catalog)
    allowed = set(_allowed_shift_ids(as_date(d), hospital_config, catalog))
    return [st for st in catalog if st.id in allowed]


def get_default_shift_type(
    d: Union[date, str], hospital_config: Optional[HospitalShiftConfig], shift_catalog=None
) -> Optional[ShiftType]:
    """
    Most appropriate shift type for quick selection: night on weekdays, day on
    weekends, otherwise the first allowed one.
    """
    available = get_available_shift_types(d, hospital_config, shift_catalog)
    if not available:
        return None
    if len(available) == 1:
        return available[0]

    preferred = ShiftCategory.DAY if as_date(d).weekday() in (5, 6) else ShiftCategory.NIGHT
    for st in available:
        if st.category == preferred:
            return st
    return available[0]


def describe_shift_pattern(hospital_config: Optional[HospitalShiftConfig]) -> str:
    if hospital_config is None:
        return "Not configured"
    return SHIFT_PATTERN_LABELS.get(hospital_config.shift_pattern.value, "Not configured")


@dataclass(frozen=True)
class ScheduleSlot:
    """One shift that must be staffed on a day."""
    day: Day
    shift_type: ShiftType

    @property
    def date(self) -> date:
        return self.day.date

    @property
    def iso(self) -> str:
        return self.day.iso

    @property
    def category(self) -> QuotaCategory:
        """Coarse fairness category: night, weekend (non-night) or weekday day."""
        if self.shift_type.category == ShiftCategory.NIGHT:
            return QuotaCategory.NIGHT
        if self.day.is_weekend:
            return QuotaCategory.WEEKEND
        return QuotaCategory.DAY


def resolve_day_slots(day: Day, catalog: ShiftCatalog, allowed_ids: Optional[List[str]] = None) -> List[ScheduleSlot]:
    """
    Concrete slots for one day.

    The coverage type says what must be covered; the allowed ids say which shift
    types may cover it. A 12h slot that cannot be filled collapses the day into a
    single 24h slot when one is allowed, and a 24h slot that is not allowed
    splits into day + night when both are.
    """
    required = COVERAGE_SLOTS[day.coverage_type]

    def pick(category):
        return catalog.first_of_category(category, allowed_ids)

    full = pick(ShiftCategory.FULL_24H)
    if ShiftCategory.FULL_24H in required and full is None:
        day_type, night_type = pick(ShiftCategory.DAY), pick(ShiftCategory.NIGHT)
        if day_type and night_type:
            return [ScheduleSlot(day, day_type), ScheduleSlot(day, night_type)]

    resolved = [pick(category) for category in required]
    if any(st is None for st in resolved) and full is not None:
        return [ScheduleSlot(day, full)]

    slots = []
    for category, st in zip(required, resolved):
        if st is None:
            log.warning("No allowed %s shift type on %s; slot dropped", category.value, day.iso)
            continue
        slots.append(ScheduleSlot(day, st))
    return slots


def build_slots(
    days: List[Day], shift_catalog=None, hospital_config: Optional[HospitalShiftConfig] = None
) -> List[ScheduleSlot]:
    """Expand the day sequence into slots, honouring the hospital's allowed shift types."""
    catalog = as_catalog(shift_catalog)
    if hospital_config is not None and hospital_config.shift_types is not None:
        catalog = hospital_config.shift_types
    if hospital_config is not None:
        for shift_id in hospital_config.weekday_shift_ids + hospital_config.weekend_shift_ids:
            lookup_or_skip(catalog.get, shift_id)

    slots = []
    for day in days:
        allowed = None
        if hospital_config is not None:
            allowed = _allowed_shift_ids(day.date, hospital_config, catalog)
        slots.extend(resolve_day_slots(day, catalog, allowed))
    return slots
