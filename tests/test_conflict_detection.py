from datetime import date, datetime

import pytest

from conflict_detection import (
    batch_detect_conflicts,
    detect_conflicts,
    get_conflict_summary,
    highest_severity,
    hours_between,
    shifts_overlap,
)
from roster_models import ConflictKind, HospitalShiftConfig, Severity, StaffMember, shift_map_to_dict


def kinds(conflicts):
    return [c.kind for c in conflicts]


def test_unavailable_date_is_critical(night_shift, make_shift):
    staff = [StaffMember(id="A", name="Alice", unavailable={"2024-03-15"})]
    candidate = make_shift(night_shift, "A", date(2024, 3, 15))

    conflicts = detect_conflicts(candidate, "A", {}, staff, "2024-03-15")

    assert kinds(conflicts) == [ConflictKind.UNAVAILABLE_CONFLICT]
    assert conflicts[0].severity == Severity.CRITICAL
    assert conflicts[0].date == "2024-03-15"


def test_day_after_night_is_rapid_turnaround(staff_abc, night_shift, day_shift, make_shift, shift_map):
    existing = shift_map(make_shift(night_shift, "A", date(2024, 3, 14)))
    candidate = make_shift(day_shift, "A", date(2024, 3, 15))

    conflicts = detect_conflicts(candidate, "A", existing, staff_abc, date(2024, 3, 15))

    assert kinds(conflicts) == [ConflictKind.RAPID_TURNAROUND]
    assert conflicts[0].severity == Severity.MEDIUM
    assert "0 hours" in conflicts[0].details


def test_monthly_guard_limit(night_shift, make_shift, shift_map):
    staff = [StaffMember(id="A", name="Alice", max_guards_per_month=5)]
    existing = shift_map(*[make_shift(night_shift, "A", date(2024, 3, d)) for d in (1, 3, 5, 7, 9)])
    candidate = make_shift(night_shift, "A", date(2024, 3, 20))

    conflicts = detect_conflicts(candidate, "A", existing, staff, date(2024, 3, 20))

    assert kinds(conflicts) == [ConflictKind.GUARD_LIMIT_EXCEEDED]
    assert conflicts[0].details == "6/5 guards this month"


def test_guard_limit_counts_only_the_target_month(night_shift, make_shift, shift_map):
    staff = [StaffMember(id="A", name="Alice", max_guards_per_month=2)]
    existing = shift_map(
        make_shift(night_shift, "A", date(2024, 2, 20)),
        make_shift(night_shift, "A", date(2024, 2, 22)),
    )
    candidate = make_shift(night_shift, "A", date(2024, 3, 20))
    assert detect_conflicts(candidate, "A", existing, staff, date(2024, 3, 20)) == []


def test_guard_limit_falls_back_to_hospital_limit(night_shift, make_shift, shift_map):
    staff = [StaffMember(id="A", name="Alice")]
    hospital = HospitalShiftConfig(hospital_id="h1", max_shifts_per_month=2)
    existing = shift_map(*[make_shift(night_shift, "A", date(2024, 3, d)) for d in (1, 3)])
    candidate = make_shift(night_shift, "A", date(2024, 3, 20))

    conflicts = detect_conflicts(candidate, "A", existing, staff, date(2024, 3, 20), hospital)

    assert kinds(conflicts) == [ConflictKind.GUARD_LIMIT_EXCEEDED]
    assert conflicts[0].details == "3/2 guards this month"
    # without the hospital limit the default of 10 applies
    assert detect_conflicts(candidate, "A", existing, staff, date(2024, 3, 20)) == []


def test_own_guard_limit_wins_over_hospital_limit(night_shift, make_shift, shift_map):
    staff = [StaffMember(id="A", name="Alice", max_guards_per_month=5)]
    hospital = HospitalShiftConfig(hospital_id="h1", max_shifts_per_month=2)
    existing = shift_map(*[make_shift(night_shift, "A", date(2024, 3, d)) for d in (1, 3)])
    candidate = make_shift(night_shift, "A", date(2024, 3, 20))

    assert detect_conflicts(candidate, "A", existing, staff, date(2024, 3, 20), hospital) == []


def test_datetime_target_is_checked_by_its_date(night_shift, make_shift, shift_map):
    staff = [StaffMember(id="A", name="Alice", unavailable={"2024-03-15"})]
    candidate = make_shift(night_shift, "A", date(2024, 3, 15))

    conflicts = detect_conflicts(candidate, "A", {}, staff, datetime(2024, 3, 15, 9))

    assert kinds(conflicts) == [ConflictKind.UNAVAILABLE_CONFLICT]
    assert conflicts[0].date == "2024-03-15"

    existing = shift_map(make_shift(night_shift, "A", date(2024, 3, 14)))
    conflicts = detect_conflicts(candidate, "A", existing, staff, datetime(2024, 3, 15, 21, 30))
    assert kinds(conflicts) == [ConflictKind.CONSECUTIVE_NIGHTS, ConflictKind.UNAVAILABLE_CONFLICT]


def test_same_start_is_overlap(staff_abc, day_shift, make_shift, shift_map):
    existing = shift_map(make_shift(day_shift, "A", date(2024, 3, 13)))
    candidate = make_shift(day_shift, "A", date(2024, 3, 13))

    conflicts = detect_conflicts(candidate, "A", existing, staff_abc, date(2024, 3, 13))

    assert kinds(conflicts) == [ConflictKind.OVERLAPPING_SHIFTS]
    assert conflicts[0].details == "Conflicts with: Day Guard (08-20)"


def test_day_and_night_on_same_date_do_not_overlap(staff_abc, day_shift, night_shift, make_shift, shift_map):
    existing = shift_map(make_shift(day_shift, "A", date(2024, 3, 13)))
    candidate = make_shift(night_shift, "A", date(2024, 3, 13))
    assert detect_conflicts(candidate, "A", existing, staff_abc, date(2024, 3, 13)) == []


def test_24h_guard_overlaps_anything_that_day(staff_abc, full_shift, night_shift, make_shift, shift_map):
    existing = shift_map(make_shift(full_shift, "A", date(2024, 3, 13)))
    candidate = make_shift(night_shift, "A", date(2024, 3, 13))
    assert ConflictKind.OVERLAPPING_SHIFTS in kinds(
        detect_conflicts(candidate, "A", existing, staff_abc, date(2024, 3, 13))
    )


def test_other_staff_shifts_are_ignored(staff_abc, day_shift, make_shift, shift_map):
    existing = shift_map(make_shift(day_shift, "B", date(2024, 3, 13)))
    candidate = make_shift(day_shift, "A", date(2024, 3, 13))
    assert detect_conflicts(candidate, "A", existing, staff_abc, date(2024, 3, 13)) == []


def test_consecutive_nights(staff_abc, night_shift, make_shift, shift_map):
    existing = shift_map(make_shift(night_shift, "A", date(2024, 3, 12)))
    candidate = make_shift(night_shift, "A", date(2024, 3, 13))

    conflicts = detect_conflicts(candidate, "A", existing, staff_abc, date(2024, 3, 13))

    assert kinds(conflicts) == [ConflictKind.CONSECUTIVE_NIGHTS]
    assert conflicts[0].severity == Severity.HIGH


def test_excessive_weekly_hours(staff_abc, full_shift, make_shift, shift_map):
    # Sunday and Monday of the week starting 2024-03-10
    existing = shift_map(
        make_shift(full_shift, "A", date(2024, 3, 10)),
        make_shift(full_shift, "A", date(2024, 3, 11)),
    )
    candidate = make_shift(full_shift, "A", date(2024, 3, 13))

    conflicts = detect_conflicts(candidate, "A", existing, staff_abc, date(2024, 3, 13))

    assert kinds(conflicts) == [ConflictKind.EXCESSIVE_HOURS]
    assert conflicts[0].details == "72 hours this week (limit: 60)"


def test_exactly_sixty_hours_is_allowed(staff_abc, full_shift, day_shift, make_shift, shift_map):
    existing = shift_map(
        make_shift(full_shift, "A", date(2024, 3, 10)),
        make_shift(full_shift, "A", date(2024, 3, 11)),
    )
    candidate = make_shift(day_shift, "A", date(2024, 3, 13))
    assert detect_conflicts(candidate, "A", existing, staff_abc, date(2024, 3, 13)) == []


def test_hours_from_previous_week_do_not_count(staff_abc, full_shift, make_shift, shift_map):
    # Saturday 2024-03-09 belongs to the previous Sunday-to-Saturday week
    existing = shift_map(
        make_shift(full_shift, "A", date(2024, 3, 7)),
        make_shift(full_shift, "A", date(2024, 3, 9)),
    )
    candidate = make_shift(full_shift, "A", date(2024, 3, 13))
    assert detect_conflicts(candidate, "A", existing, staff_abc, date(2024, 3, 13)) == []


def test_weekend_overload_after_two_worked_weekends(staff_abc, day_shift, make_shift, shift_map):
    existing = shift_map(
        make_shift(day_shift, "A", date(2024, 3, 2)),
        make_shift(day_shift, "A", date(2024, 3, 9)),
    )
    for target in (date(2024, 3, 16), date(2024, 3, 17)):
        candidate = make_shift(day_shift, "A", target)
        conflicts = detect_conflicts(candidate, "A", existing, staff_abc, target)
        assert kinds(conflicts) == [ConflictKind.WEEKEND_OVERLOAD]
        assert conflicts[0].details == "3 consecutive weekends"


def test_weekend_streak_counts_sundays(staff_abc, day_shift, make_shift, shift_map):
    existing = shift_map(
        make_shift(day_shift, "A", date(2024, 3, 3)),
        make_shift(day_shift, "A", date(2024, 3, 10)),
    )
    candidate = make_shift(day_shift, "A", date(2024, 3, 16))
    assert kinds(detect_conflicts(candidate, "A", existing, staff_abc, date(2024, 3, 16))) == [
        ConflictKind.WEEKEND_OVERLOAD,
    ]


def test_single_previous_weekend_is_fine(staff_abc, day_shift, make_shift, shift_map):
    existing = shift_map(make_shift(day_shift, "A", date(2024, 3, 9)))
    candidate = make_shift(day_shift, "A", date(2024, 3, 16))
    assert detect_conflicts(candidate, "A", existing, staff_abc, date(2024, 3, 16)) == []


def test_conflicts_keep_check_order(night_shift, make_shift, shift_map):
    staff = [StaffMember(id="A", name="Alice", unavailable={"2024-03-13"}, max_guards_per_month=1)]
    existing = shift_map(
        make_shift(night_shift, "A", date(2024, 3, 12)),
        make_shift(night_shift, "A", date(2024, 3, 13)),
    )
    candidate = make_shift(night_shift, "A", date(2024, 3, 13))

    conflicts = detect_conflicts(candidate, "A", existing, staff, date(2024, 3, 13))

    assert kinds(conflicts) == [
        ConflictKind.OVERLAPPING_SHIFTS,
        ConflictKind.CONSECUTIVE_NIGHTS,
        ConflictKind.UNAVAILABLE_CONFLICT,
        ConflictKind.GUARD_LIMIT_EXCEEDED,
    ]


def test_detection_does_not_modify_existing(staff_abc, night_shift, make_shift, shift_map):
    existing = shift_map(make_shift(night_shift, "A", date(2024, 3, 12)))
    before = shift_map_to_dict(existing)
    detect_conflicts(make_shift(night_shift, "A", date(2024, 3, 13)), "A", existing, staff_abc, date(2024, 3, 13))
    assert shift_map_to_dict(existing) == before


def test_unknown_staff_yields_no_conflicts(staff_abc, night_shift, make_shift):
    candidate = make_shift(night_shift, "Z", date(2024, 3, 13))
    assert detect_conflicts(candidate, "Z", {}, staff_abc, date(2024, 3, 13)) == []


def test_missing_candidate_yields_no_conflicts(staff_abc):
    assert detect_conflicts(None, "A", {}, staff_abc, date(2024, 3, 13)) == []


def test_malformed_date_keys_are_ignored(staff_abc, night_shift, make_shift):
    existing = {"not-a-date": [make_shift(night_shift, "A", date(2024, 3, 1))]}
    candidate = make_shift(night_shift, "A", date(2024, 3, 20))
    assert detect_conflicts(candidate, "A", existing, staff_abc, date(2024, 3, 20)) == []


@pytest.mark.parametrize("last, new, expected", [
    ("night_shift", "day_shift", 0),
    ("day_shift", "night_shift", 0),
    ("day_shift", "day_shift", 12),
    ("night_shift", "night_shift", 12),
])
def test_hours_between(request, make_shift, last, new, expected):
    first = make_shift(request.getfixturevalue(last), "A", date(2024, 3, 1))
    second = make_shift(request.getfixturevalue(new), "A", date(2024, 3, 2))
    assert hours_between(first, second) == expected


def test_shifts_overlap(day_shift, night_shift, full_shift, make_shift):
    d = date(2024, 3, 1)
    assert shifts_overlap(make_shift(day_shift, "A", d), make_shift(day_shift, "B", d))
    assert shifts_overlap(make_shift(full_shift, "A", d), make_shift(night_shift, "B", d))
    assert not shifts_overlap(make_shift(day_shift, "A", d), make_shift(night_shift, "B", d))


def test_batch_detection(night_shift, make_shift):
    staff = [StaffMember(id="A", name="Alice", unavailable={"2024-03-15"}), StaffMember(id="B", name="Bogdan")]
    proposals = [
        {"shift": make_shift(night_shift, "A", date(2024, 3, 15)), "staff_id": "A", "date": "2024-03-15"},
        {"shift": make_shift(night_shift, "B", date(2024, 3, 15)), "staff_id": "B", "date": "2024-03-15"},
    ]
    conflicts = batch_detect_conflicts(proposals, {}, staff)
    assert [(c.kind, c.staff_id) for c in conflicts] == [(ConflictKind.UNAVAILABLE_CONFLICT, "A")]


def test_batch_detection_applies_hospital_limit(night_shift, make_shift, shift_map):
    staff = [StaffMember(id="B", name="Bogdan")]
    hospital = HospitalShiftConfig(hospital_id="h1", max_shifts_per_month=1)
    existing = shift_map(make_shift(night_shift, "B", date(2024, 3, 1)))
    proposals = [{"shift": make_shift(night_shift, "B", date(2024, 3, 15)), "staff_id": "B", "date": "2024-03-15"}]

    conflicts = batch_detect_conflicts(proposals, existing, staff, hospital)

    assert kinds(conflicts) == [ConflictKind.GUARD_LIMIT_EXCEEDED]


def test_summary_and_highest_severity(night_shift, make_shift, shift_map):
    staff = [StaffMember(id="A", name="Alice", unavailable={"2024-03-13"})]
    existing = shift_map(make_shift(night_shift, "A", date(2024, 3, 12)))
    conflicts = detect_conflicts(make_shift(night_shift, "A", date(2024, 3, 13)), "A", existing, staff, "2024-03-13")

    summary = get_conflict_summary(conflicts)
    assert summary["total"] == 2
    assert summary["critical"] == 1
    assert summary["high"] == 1
    assert summary["medium"] == 0
    assert summary["by_kind"]["consecutive_nights"] == 1
    assert highest_severity(conflicts) == Severity.CRITICAL
    assert highest_severity([]) is None
