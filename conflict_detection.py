"""
Conflict Detection for proposed shift assignments.

A stateless validator: given one candidate assignment and the full existing
assignment map it returns every scheduling conflict found. Seven independent
checks run in a fixed order and never short-circuit each other. Detection is
advisory; it never raises and never blocks a save on its own.
"""

from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Union

from roster_config import (
    DEFAULT_SHIFT_DURATION,
    MAX_CONSECUTIVE_WEEKENDS,
    MAX_WEEKLY_HOURS,
    MIN_REST_HOURS,
    WEEKEND_LOOKBACK,
)
from roster_errors import RosterError
from roster_logging import get_logger
from roster_models import (
    Conflict,
    ConflictKind,
    HospitalShiftConfig,
    Severity,
    ShiftAssignment,
    ShiftMap,
    StaffId,
    StaffMember,
    as_date,
    find_staff,
)

log = get_logger("conflicts")


def _staff_shifts_on(existing: ShiftMap, d: date, staff_id: StaffId) -> List[ShiftAssignment]:
    return [a for a in existing.get(d.isoformat(), []) if a.has_staff(staff_id)]


def _duration(assignment: ShiftAssignment) -> int:
    return assignment.shift_type.duration or DEFAULT_SHIFT_DURATION


def shifts_overlap(first: ShiftAssignment, second: ShiftAssignment) -> bool:
    """Same-day windows overlap when either is a 24h guard or both start together."""
    if _duration(first) >= 24 or _duration(second) >= 24:
        return True
    return first.shift_type.start == second.shift_type.start


def hours_between(last: ShiftAssignment, new: ShiftAssignment) -> int:
    """Hours from the end of ``last`` to the start of ``new``, wrapping at midnight."""
    gap = new.shift_type.start_hour - last.shift_type.end_hour
    if gap < 0:
        gap += 24
    return gap


def check_overlapping_shifts(candidate, staff_id, existing, target: date) -> List[Conflict]:
    same_day = _staff_shifts_on(existing, target, staff_id)
    if not any(shifts_overlap(candidate, a) for a in same_day):
        return []
    names = ", ".join(a.shift_type.name for a in same_day)
    return [Conflict(ConflictKind.OVERLAPPING_SHIFTS, staff_id, target.isoformat(), f"Conflicts with: {names}")]


def check_consecutive_nights(candidate, staff_id, existing, target: date) -> List[Conflict]:
    if not candidate.shift_type.is_night:
        return []
    previous = _staff_shifts_on(existing, target - timedelta(days=1), staff_id)
    if not any(a.shift_type.is_night for a in previous):
        return []
    return [Conflict(
        ConflictKind.CONSECUTIVE_NIGHTS, staff_id, target.isoformat(),
        "Night shift directly after another night shift",
    )]


def check_unavailable(member: StaffMember, target: date) -> List[Conflict]:
    if member.is_available_on(target):
        return []
    return [Conflict(
        ConflictKind.UNAVAILABLE_CONFLICT, member.id, target.isoformat(),
        "Marked as unavailable on this date",
    )]


def check_guard_limit(
    member: StaffMember, existing, target: date, fallback_limit: Optional[int] = None,
) -> List[Conflict]:
    held = 0
    for key, day_shifts in existing.items():
        try:
            d = as_date(key)
        except ValueError:
            log.warning("Ignoring malformed date key %r", key)
            continue
        if (d.year, d.month) != (target.year, target.month):
            continue
        held += sum(1 for a in day_shifts if a.has_staff(member.id))

    limit = member.guard_limit(fallback_limit)
    if held < limit:
        return []
    return [Conflict(
        ConflictKind.GUARD_LIMIT_EXCEEDED, member.id, target.isoformat(),
        f"{held + 1}/{limit} guards this month",
    )]


def check_weekly_hours(candidate, staff_id, existing, target: date) -> List[Conflict]:
    # weeks run Sunday to Saturday
    week_start = target - timedelta(days=(target.weekday() + 1) % 7)
    hours = 0
    for offset in range(7):
        for a in _staff_shifts_on(existing, week_start + timedelta(days=offset), staff_id):
            hours += _duration(a)

    total = hours + _duration(candidate)
    if total <= MAX_WEEKLY_HOURS:
        return []
    return [Conflict(
        ConflictKind.EXCESSIVE_HOURS, staff_id, target.isoformat(),
        f"{total} hours this week (limit: {MAX_WEEKLY_HOURS})",
    )]


def _worked_weekend(existing, staff_id, saturday: date) -> bool:
    sunday = saturday + timedelta(days=1)
    return bool(_staff_shifts_on(existing, saturday, staff_id) or _staff_shifts_on(existing, sunday, staff_id))


def check_weekend_overload(candidate, staff_id, existing, target: date) -> List[Conflict]:
    if target.weekday() not in (5, 6):
        return []

    saturday = target if target.weekday() == 5 else target - timedelta(days=1)
    streak = 0
    for week in range(1, WEEKEND_LOOKBACK + 1):
        if not _worked_weekend(existing, staff_id, saturday - timedelta(weeks=week)):
            break
        streak += 1

    if streak < MAX_CONSECUTIVE_WEEKENDS:
        return []
    return [Conflict(
        ConflictKind.WEEKEND_OVERLOAD, staff_id, target.isoformat(),
        f"{streak + 1} consecutive weekends",
    )]


def check_rapid_turnaround(candidate, staff_id, existing, target: date) -> List[Conflict]:
    previous = _staff_shifts_on(existing, target - timedelta(days=1), staff_id)
    if not previous:
        return []
    gap = hours_between(previous[-1], candidate)
    if gap >= MIN_REST_HOURS:
        return []
    return [Conflict(
        ConflictKind.RAPID_TURNAROUND, staff_id, target.isoformat(),
        f"Only {gap} hours between shifts (recommended minimum: {MIN_REST_HOURS})",
    )]


def detect_conflicts(
    candidate: Optional[ShiftAssignment],
    staff_id: StaffId,
    existing: ShiftMap,
    staff: Iterable[StaffMember],
    target_date: Union[date, datetime, str],
    hospital_config: Optional[HospitalShiftConfig] = None,
) -> List[Conflict]:
    """
    Check a proposed assignment of ``staff_id`` against the existing map.

    Returns conflicts in check order (overlap, consecutive nights,
    unavailability, guard limit, weekly hours, weekend overload, rapid
    turnaround). Unknown staff or a missing candidate yield an empty list.
    The guard limit falls back to the hospital's ``max_shifts_per_month``
    for staff without a limit of their own.
    """
    if candidate is None:
        return []
    try:
        member = find_staff(staff, staff_id)
        target = as_date(target_date)
    except (RosterError, ValueError) as e:
        log.warning("Conflict check skipped: %s", e)
        return []

    conflicts: List[Conflict] = []
    conflicts += check_overlapping_shifts(candidate, staff_id, existing, target)
    conflicts += check_consecutive_nights(candidate, staff_id, existing, target)
    conflicts += check_unavailable(member, target)
    fallback_limit = hospital_config.max_shifts_per_month if hospital_config else None
    conflicts += check_guard_limit(member, existing, target, fallback_limit)
    conflicts += check_weekly_hours(candidate, staff_id, existing, target)
    conflicts += check_weekend_overload(candidate, staff_id, existing, target)
    conflicts += check_rapid_turnaround(candidate, staff_id, existing, target)
    return conflicts


def batch_detect_conflicts(
    proposals: Iterable[dict],
    existing: ShiftMap,
    staff: Iterable[StaffMember],
    hospital_config: Optional[HospitalShiftConfig] = None,
) -> List[Conflict]:
    """
    Run detect_conflicts over several proposals, each a dict with
    ``shift``, ``staff_id`` and ``date`` keys. Proposals are checked
    independently against the same snapshot.
    """
    staff = list(staff)
    conflicts = []
    for proposal in proposals:
        conflicts += detect_conflicts(
            proposal.get("shift"), proposal.get("staff_id"), existing, staff, proposal.get("date"),
            hospital_config,
        )
    return conflicts


def highest_severity(conflicts: Iterable[Conflict]) -> Optional[Severity]:
    severities = [c.severity for c in conflicts]
    if not severities:
        return None
    return max(severities, key=lambda s: s.rank)


def get_conflict_summary(conflicts: List[Conflict]) -> Dict[str, object]:
    """Counts by severity and by kind, for reporting."""
    return {
        "total": len(conflicts),
        "critical": sum(1 for c in conflicts if c.severity == Severity.CRITICAL),
        "high": sum(1 for c in conflicts if c.severity == Severity.HIGH),
        "medium": sum(1 for c in conflicts if c.severity == Severity.MEDIUM),
        "by_kind": {kind.value: sum(1 for c in conflicts if c.kind == kind) for kind in ConflictKind},
    }
