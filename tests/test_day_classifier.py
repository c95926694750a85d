from collections import Counter
from datetime import date

import pytest

import roster_config
from day_classifier import (
    build_slots,
    classify_date,
    classify_month,
    describe_shift_pattern,
    get_available_shift_types,
    get_default_shift_type,
    resolve_day_slots,
)
from roster_config import DAY_SHIFT_ID, FULL_SHIFT_ID, NIGHT_SHIFT_ID
from roster_errors import ReferenceNotFoundError
from roster_models import CoverageType, HospitalShiftConfig, QuotaCategory, ShiftCategory, ShiftPattern


def test_classify_month_covers_every_day_in_order():
    days = classify_month(2024, 2)
    assert len(days) == 29
    assert [d.date.day for d in days] == list(range(1, 30))


def test_classify_month_coverage_counts_january_2024():
    counts = Counter(d.coverage_type for d in classify_month(2024, 1))
    assert counts[CoverageType.WEEKDAY_NIGHT] == 23
    assert counts[CoverageType.SATURDAY_24H] == 2
    assert counts[CoverageType.WEEKEND_DAY_NIGHT] == 6


@pytest.mark.parametrize("day, expected", [
    (date(2024, 1, 6), CoverageType.WEEKEND_DAY_NIGHT),   # 1st Saturday
    (date(2024, 1, 13), CoverageType.SATURDAY_24H),       # 2nd Saturday
    (date(2024, 1, 20), CoverageType.WEEKEND_DAY_NIGHT),  # 3rd Saturday
    (date(2024, 1, 27), CoverageType.SATURDAY_24H),       # 4th Saturday
    (date(2024, 1, 7), CoverageType.WEEKEND_DAY_NIGHT),   # Sunday
    (date(2024, 1, 10), CoverageType.WEEKDAY_NIGHT),
])
def test_classify_date(day, expected):
    assert classify_date(day) == expected


def test_default_slots_follow_coverage(catalog):
    slots = build_slots(classify_month(2024, 1), catalog)
    assert len(slots) == 37

    saturday_24h = [s for s in slots if s.iso == "2024-01-13"]
    assert [s.shift_type.id for s in saturday_24h] == [FULL_SHIFT_ID]

    sunday = [s for s in slots if s.iso == "2024-01-07"]
    assert [s.shift_type.id for s in sunday] == [DAY_SHIFT_ID, NIGHT_SHIFT_ID]


def test_slot_categories(catalog):
    slots = build_slots(classify_month(2024, 1)[:7], catalog)
    assert [s.category for s in slots] == [QuotaCategory.NIGHT] * 5 + [
        QuotaCategory.WEEKEND, QuotaCategory.NIGHT, QuotaCategory.WEEKEND, QuotaCategory.NIGHT,
    ]


def test_only24_collapses_every_day_to_one_guard(catalog):
    config = HospitalShiftConfig(hospital_id="h1", shift_pattern=ShiftPattern.ONLY_24)
    slots = build_slots(classify_month(2024, 1), catalog, config)
    assert len(slots) == 31
    assert {s.shift_type.id for s in slots} == {FULL_SHIFT_ID}


def test_custom_pattern_splits_24h_saturday(catalog):
    config = HospitalShiftConfig(
        hospital_id="h1",
        shift_pattern=ShiftPattern.CUSTOM,
        weekday_shift_ids=[NIGHT_SHIFT_ID],
        weekend_shift_ids=[DAY_SHIFT_ID, NIGHT_SHIFT_ID],
    )
    slots = build_slots(classify_month(2024, 1), catalog, config)
    saturday = [s.shift_type.id for s in slots if s.iso == "2024-01-13"]
    assert saturday == [DAY_SHIFT_ID, NIGHT_SHIFT_ID]


def test_custom_pattern_drops_uncoverable_slots(catalog):
    config = HospitalShiftConfig(
        hospital_id="h1",
        shift_pattern=ShiftPattern.CUSTOM,
        weekday_shift_ids=[DAY_SHIFT_ID],
        weekend_shift_ids=[],
    )
    assert build_slots(classify_month(2024, 1), catalog, config) == []


def test_resolve_day_slots_without_restriction(catalog):
    day = classify_month(2024, 1)[0]
    slots = resolve_day_slots(day, catalog)
    assert [s.shift_type.category for s in slots] == [ShiftCategory.NIGHT]


def test_unknown_configured_shift_id_is_skipped_when_lenient(catalog, monkeypatch):
    monkeypatch.setattr(roster_config, "STRICT_REFERENCES", False)
    config = HospitalShiftConfig(
        hospital_id="h1",
        shift_pattern=ShiftPattern.CUSTOM,
        weekday_shift_ids=[NIGHT_SHIFT_ID, "MISSING"],
        weekend_shift_ids=[NIGHT_SHIFT_ID],
    )
    slots = build_slots(classify_month(2024, 1)[:5], catalog, config)
    assert len(slots) == 5


def test_unknown_configured_shift_id_raises_when_strict(catalog, monkeypatch):
    monkeypatch.setattr(roster_config, "STRICT_REFERENCES", True)
    config = HospitalShiftConfig(
        hospital_id="h1",
        shift_pattern=ShiftPattern.CUSTOM,
        weekday_shift_ids=["MISSING"],
    )
    with pytest.raises(ReferenceNotFoundError):
        build_slots(classify_month(2024, 1), catalog, config)


def test_available_shift_types_standard_pattern(catalog):
    config = HospitalShiftConfig(hospital_id="h1")
    weekday = get_available_shift_types(date(2024, 1, 1), config, catalog)
    weekend = get_available_shift_types("2024-01-06", config, catalog)
    assert [s.id for s in weekday] == [NIGHT_SHIFT_ID]
    assert [s.id for s in weekend] == [DAY_SHIFT_ID, NIGHT_SHIFT_ID, FULL_SHIFT_ID]


def test_available_shift_types_without_config_returns_catalog(catalog):
    assert len(get_available_shift_types(date(2024, 1, 1), None, catalog)) == len(catalog)


def test_default_shift_type_prefers_night_on_weekdays_and_day_on_weekends(catalog):
    config = HospitalShiftConfig(
        hospital_id="h1",
        shift_pattern=ShiftPattern.CUSTOM,
        weekday_shift_ids=[DAY_SHIFT_ID, NIGHT_SHIFT_ID],
        weekend_shift_ids=[NIGHT_SHIFT_ID, DAY_SHIFT_ID],
    )
    assert get_default_shift_type(date(2024, 1, 2), config, catalog).id == NIGHT_SHIFT_ID
    assert get_default_shift_type(date(2024, 1, 7), config, catalog).id == DAY_SHIFT_ID


def test_default_shift_type_none_when_nothing_allowed(catalog):
    config = HospitalShiftConfig(hospital_id="h1", shift_pattern=ShiftPattern.CUSTOM)
    assert get_default_shift_type(date(2024, 1, 2), config, catalog) is None


def test_describe_shift_pattern():
    assert describe_shift_pattern(None) == "Not configured"
    only24 = HospitalShiftConfig(hospital_id="h1", shift_pattern=ShiftPattern.ONLY_24)
    assert describe_shift_pattern(only24) == "24-hour guards only"
