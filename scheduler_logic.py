"""
Core Scheduler Logic for the Hospital Duty Roster.

Two rotation strategies fill the month's slots:
- assign_fair: quota-aware, fairness-sorted greedy assignment (canonical)
- assign_round_robin: plain rotating index over the roster (alternate mode)

Both are deterministic and keep all mutable run state in a SchedulerState
created per call. RosterScheduler wires classification, quotas and assignment
together and reports statistics on the result.
"""

import statistics
import time
from dataclasses import dataclass, field
from datetime import date
from itertools import groupby
from typing import Dict, List, Optional, Set, Tuple

from day_classifier import ScheduleSlot, build_slots, classify_month
from quota_calculator import Quota, compute_quotas, quota_total
from roster_config import UNFILLED_NOTE
from roster_errors import ScheduleDeadlineExceeded
from roster_logging import get_logger
from roster_models import (
    AssignmentStatus,
    Day,
    HospitalShiftConfig,
    QuotaCategory,
    ShiftAssignment,
    ShiftCategory,
    ShiftMap,
    StaffId,
    StaffMember,
    as_catalog,
    as_date,
    find_staff,
    lookup_or_skip,
    make_assignment_id,
    shift_map_to_dict,
)

log = get_logger("scheduler")

STRATEGY_FAIR = "fair"
STRATEGY_ROUND_ROBIN = "round_robin"


@dataclass
class SlotOutcome:
    """What happened to one slot: who got it, or why nobody did."""
    slot: ScheduleSlot
    assignee: Optional[StaffId] = None
    assignee_name: Optional[str] = None
    note: Optional[str] = None
    relaxed: bool = False
    # kept from a reserved or confirmed assignment instead of being rotated
    preassigned: bool = False

    @property
    def filled(self) -> bool:
        return self.assignee is not None


@dataclass
class ScheduleResult:
    """Output of a rotation run: the date-keyed assignment map plus per-slot outcomes."""
    strategy: str
    shifts: ShiftMap
    outcomes: List[SlotOutcome]
    final_quotas: Dict[StaffId, Quota] = field(default_factory=dict)

    @property
    def unfilled(self) -> List[SlotOutcome]:
        return [o for o in self.outcomes if not o.filled]

    @property
    def relaxations(self) -> List[SlotOutcome]:
        return [o for o in self.outcomes if o.relaxed]

    @property
    def preassigned(self) -> List[SlotOutcome]:
        return [o for o in self.outcomes if o.preassigned]

    @property
    def is_complete(self) -> bool:
        return not self.unfilled

    def to_dict(self) -> Dict[str, List[dict]]:
        return shift_map_to_dict(self.shifts)


@dataclass
class SchedulerState:
    """
    Mutable state of one scheduling run.

    Created fresh by each assign_* call and threaded through every step; never
    shared between runs.
    """
    original_quotas: Dict[StaffId, Quota] = field(default_factory=dict)
    remaining: Dict[StaffId, Quota] = field(default_factory=dict)
    last_night: Dict[StaffId, bool] = field(default_factory=dict)
    # held shifts credited beyond a member's quota for that category
    overflow: Dict[StaffId, int] = field(default_factory=dict)
    rotation_index: int = 0
    last_night_assignee: Optional[StaffId] = None
    sequence: int = 0
    deadline: Optional[float] = None

    @classmethod
    def start(
        cls,
        staff: List[StaffMember],
        quotas: Optional[Dict[StaffId, Quota]] = None,
        deadline_seconds: Optional[float] = None,
    ) -> "SchedulerState":
        quotas = quotas or {}
        return cls(
            original_quotas={sid: dict(q) for sid, q in quotas.items()},
            remaining={sid: dict(q) for sid, q in quotas.items()},
            last_night={member.id: False for member in staff},
            overflow={member.id: 0 for member in staff},
            deadline=time.monotonic() + deadline_seconds if deadline_seconds is not None else None,
        )

    def worked(self, staff_id: StaffId) -> int:
        """Total shifts already worked this run (original minus remaining quota, plus overflow)."""
        used = quota_total(self.original_quotas[staff_id]) - quota_total(self.remaining[staff_id])
        return used + self.overflow.get(staff_id, 0)

    def next_stamp(self) -> int:
        self.sequence += 1
        return self.sequence

    def check_deadline(self):
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise ScheduleDeadlineExceeded("Scheduling run exceeded its deadline")


def _empty_shift_map(days: List[Day]) -> ShiftMap:
    return {day.iso: [] for day in days}


def _make_assignment(state: SchedulerState, slot: ScheduleSlot, member: Optional[StaffMember]) -> ShiftAssignment:
    if member is None:
        return ShiftAssignment(
            id=make_assignment_id(slot.date, slot.shift_type.id, [], state.next_stamp()),
            date=slot.date,
            shift_type=slot.shift_type,
            status=AssignmentStatus.OPEN,
            note=UNFILLED_NOTE,
            generated=True,
        )
    return ShiftAssignment(
        id=make_assignment_id(slot.date, slot.shift_type.id, [member.id], state.next_stamp()),
        date=slot.date,
        shift_type=slot.shift_type,
        staff_ids=[member.id],
        department=member.specialization,
        status=AssignmentStatus.CONFIRMED,
        generated=True,
    )


def _record(
    state: SchedulerState,
    shifts: ShiftMap,
    outcomes: List[SlotOutcome],
    slot: ScheduleSlot,
    member: Optional[StaffMember],
    relaxed: bool = False,
):
    shifts.setdefault(slot.iso, []).append(_make_assignment(state, slot, member))
    if member is None:
        log.warning("UNFILLED: no eligible staff for %s on %s", slot.shift_type.id, slot.iso)
        outcomes.append(SlotOutcome(slot=slot, note=UNFILLED_NOTE))
    else:
        outcomes.append(SlotOutcome(slot=slot, assignee=member.id, assignee_name=member.name, relaxed=relaxed))


# ============================================================================
# Held assignments (reserved or confirmed before the run)
# ============================================================================

HELD_STATUSES = {AssignmentStatus.RESERVED, AssignmentStatus.CONFIRMED}


def _is_held(assignment: ShiftAssignment) -> bool:
    return assignment.status in HELD_STATUSES and bool(assignment.staff_ids) and not assignment.generated


def _claim_held(existing: Optional[ShiftMap], slot: ScheduleSlot, claimed: Set[str]) -> Optional[ShiftAssignment]:
    """First unclaimed held assignment of the slot's shift type on its date."""
    if not existing:
        return None
    for assignment in existing.get(slot.iso, []):
        if assignment.id in claimed or not _is_held(assignment):
            continue
        if assignment.shift_type.id == slot.shift_type.id:
            claimed.add(assignment.id)
            return assignment
    return None


def _record_held(
    shifts: ShiftMap,
    outcomes: List[SlotOutcome],
    slot: ScheduleSlot,
    assignment: ShiftAssignment,
    staff: List[StaffMember],
) -> Optional[StaffMember]:
    """Keep a held assignment in place of a rotation pick and return its holder."""
    holder = next((m for m in staff if m.id in assignment.staff_ids), None)
    if holder is None:
        # raises in strict mode, logged and skipped otherwise
        lookup_or_skip(find_staff, staff, assignment.staff_ids[0])

    shifts.setdefault(slot.iso, []).append(assignment)
    outcomes.append(SlotOutcome(
        slot=slot,
        assignee=holder.id if holder else assignment.staff_ids[0],
        assignee_name=holder.name if holder else None,
        note=assignment.status.value,
        preassigned=True,
    ))
    return holder


def _carry_unclaimed(existing: Optional[ShiftMap], days: List[Day], claimed: Set[str], shifts: ShiftMap):
    """Held assignments that match no required slot stay on their date."""
    if not existing:
        return
    for day in days:
        for assignment in existing.get(day.iso, []):
            if assignment.id in claimed or not _is_held(assignment):
                continue
            log.info("Keeping %s on %s outside the required slots", assignment.shift_type.id, day.iso)
            shifts.setdefault(day.iso, []).append(assignment)


# ============================================================================
# Strategy A: quota-aware fairness
# ============================================================================

def _fair_candidates(
    state: SchedulerState, slot: ScheduleSlot, staff: List[StaffMember]
) -> Tuple[List[StaffMember], bool]:
    """
    Eligible candidates for a slot and whether the no-consecutive-night rule
    had to be relaxed to find any.
    """
    category = slot.category
    base = [
        m for m in staff
        if state.remaining[m.id][category] > 0 and m.is_available_on(slot.date)
    ]
    if category != QuotaCategory.NIGHT:
        return base, False

    rested = [m for m in base if not state.last_night[m.id]]
    if rested:
        return rested, False
    return base, bool(base)


def _apply_fair_assignment(state: SchedulerState, member: StaffMember, slot: ScheduleSlot):
    remaining = state.remaining[member.id]
    if remaining[slot.category] > 0:
        remaining[slot.category] -= 1
    else:
        # only held shifts get here
        state.overflow[member.id] += 1
    if slot.category == QuotaCategory.NIGHT:
        for sid in state.last_night:
            state.last_night[sid] = False
        state.last_night[member.id] = True
    else:
        state.last_night[member.id] = False


def assign_fair(
    days: List[Day],
    staff: List[StaffMember],
    shift_catalog=None,
    hospital_config: Optional[HospitalShiftConfig] = None,
    deadline_seconds: Optional[float] = None,
    existing: Optional[ShiftMap] = None,
    slots: Optional[List[ScheduleSlot]] = None,
) -> ScheduleResult:
    """
    Quota-aware fair assignment (Strategy A).

    For each slot in day order: keep staff with quota left for the slot's
    category who are available that date; for nights also drop whoever worked
    the previous night, unless that leaves nobody. The least-worked candidate
    wins, ties going to roster order. Slots with no candidate are recorded as
    UNFILLED and the run continues.

    A slot already held in ``existing`` by a reserved or confirmed assignment
    of the same shift type keeps that assignment; its holder is credited as if
    the rotation had picked them. ``slots`` skips rebuilding the month's slots.
    """
    if slots is None:
        slots = build_slots(days, shift_catalog, hospital_config)
    quotas = compute_quotas(slots, staff)
    state = SchedulerState.start(staff, quotas, deadline_seconds)

    shifts = _empty_shift_map(days)
    outcomes: List[SlotOutcome] = []
    claimed: Set[str] = set()

    for slot in slots:
        state.check_deadline()
        held = _claim_held(existing, slot, claimed)
        if held is not None:
            holder = _record_held(shifts, outcomes, slot, held, staff)
            if holder is not None:
                _apply_fair_assignment(state, holder, slot)
            continue

        candidates, relaxed = _fair_candidates(state, slot, staff)
        if not candidates:
            _record(state, shifts, outcomes, slot, None)
            continue
        if relaxed:
            log.warning("Relaxed consecutive-night rule for %s on %s", slot.shift_type.id, slot.iso)

        # sorted() is stable: equal workloads keep roster order
        chosen = sorted(candidates, key=lambda m: state.worked(m.id))[0]
        _apply_fair_assignment(state, chosen, slot)
        _record(state, shifts, outcomes, slot, chosen, relaxed=relaxed)

    _carry_unclaimed(existing, days, claimed, shifts)
    log.info(
        "Fair assignment: %d slots, %d held, %d unfilled, %d relaxed",
        len(slots),
        sum(1 for o in outcomes if o.preassigned),
        sum(1 for o in outcomes if not o.filled),
        sum(1 for o in outcomes if o.relaxed),
    )
    return ScheduleResult(
        strategy=STRATEGY_FAIR,
        shifts=shifts,
        outcomes=outcomes,
        final_quotas={sid: dict(q) for sid, q in state.remaining.items()},
    )


# ============================================================================
# Strategy B: round-robin index
# ============================================================================

def _rotate(staff: List[StaffMember], index: int) -> StaffMember:
    return staff[index % len(staff)]


def _assign_round_robin_day(state: SchedulerState, day_slots: List[ScheduleSlot], staff: List[StaffMember]):
    """Pick assignees for one day's slots and advance the rotation."""
    if len(day_slots) == 1:
        member = _rotate(staff, state.rotation_index)
        state.rotation_index += 1
        if day_slots[0].shift_type.category == ShiftCategory.NIGHT:
            state.last_night_assignee = member.id
        else:
            # a 24h guard breaks the night sequence
            state.last_night_assignee = None
        return [member]

    picks = []
    for offset, slot in enumerate(day_slots):
        member = _rotate(staff, state.rotation_index + offset)
        if slot.shift_type.category == ShiftCategory.NIGHT:
            if member.id == state.last_night_assignee:
                member = _rotate(staff, state.rotation_index + offset + 1)
            state.last_night_assignee = member.id
        picks.append(member)
    # the index moves by the number of slots even when the night pick skipped ahead
    state.rotation_index += len(day_slots)
    return picks


def assign_round_robin(
    days: List[Day],
    staff: List[StaffMember],
    shift_catalog=None,
    hospital_config: Optional[HospitalShiftConfig] = None,
    deadline_seconds: Optional[float] = None,
    existing: Optional[ShiftMap] = None,
    slots: Optional[List[ScheduleSlot]] = None,
) -> ScheduleResult:
    """
    Round-robin assignment (Strategy B).

    Cycles one index through the roster: a night-only day takes the next
    person, a day + night pair takes the next two (the night skips one further
    if it would repeat the previous night's assignee) and advances by two, a
    24h day takes the next person and resets the night tracker. No quota,
    fairness or availability checks are made.

    Slots held in ``existing`` keep their assignment and the rotation runs
    over the day's remaining slots only.
    """
    if slots is None:
        slots = build_slots(days, shift_catalog, hospital_config)
    state = SchedulerState.start(staff, deadline_seconds=deadline_seconds)

    shifts = _empty_shift_map(days)
    outcomes: List[SlotOutcome] = []
    claimed: Set[str] = set()

    for _, group in groupby(slots, key=lambda s: s.iso):
        state.check_deadline()
        day_slots = list(group)
        held = [_claim_held(existing, slot, claimed) for slot in day_slots]
        free = [slot for slot, assignment in zip(day_slots, held) if assignment is None]
        if free and staff:
            picks = iter(_assign_round_robin_day(state, free, staff))
        else:
            picks = iter([None] * len(free))

        for slot, assignment in zip(day_slots, held):
            if assignment is None:
                _record(state, shifts, outcomes, slot, next(picks))
                continue
            holder = _record_held(shifts, outcomes, slot, assignment, staff)
            if holder is not None and slot.shift_type.category == ShiftCategory.NIGHT:
                state.last_night_assignee = holder.id

    _carry_unclaimed(existing, days, claimed, shifts)
    log.info("Round-robin assignment: %d slots over %d staff", len(slots), len(staff))
    return ScheduleResult(strategy=STRATEGY_ROUND_ROBIN, shifts=shifts, outcomes=outcomes)


STRATEGIES = {
    STRATEGY_FAIR: assign_fair,
    STRATEGY_ROUND_ROBIN: assign_round_robin,
}


class RosterScheduler:
    """
    Monthly roster generation for one hospital.

    Classifies the month, computes quotas and runs the chosen rotation
    strategy. The fair strategy is the default; round-robin is available as an
    explicitly named alternate mode.
    """

    def __init__(
        self,
        year: int,
        month: int,
        staff: List[StaffMember],
        shift_catalog=None,
        hospital_config: Optional[HospitalShiftConfig] = None,
    ):
        self.year = year
        self.month = month
        self.staff = {m.id: m for m in staff}
        self.hospital_config = hospital_config
        self.catalog = as_catalog(shift_catalog)
        if hospital_config is not None and hospital_config.shift_types is not None:
            self.catalog = hospital_config.shift_types

        self.days = classify_month(year, month, hospital_config)
        self.dates = [day.date for day in self.days]
        self.weekends = {day.date for day in self.days if day.is_weekend}
        self.slots = build_slots(self.days, self.catalog, hospital_config)
        self.quotas = compute_quotas(self.slots, staff)

        self.result: Optional[ScheduleResult] = None

    def is_weekend(self, d: date) -> bool:
        return d in self.weekends

    @property
    def guard_limit_fallback(self) -> Optional[int]:
        return self.hospital_config.max_shifts_per_month if self.hospital_config else None

    def generate_schedule(
        self,
        strategy: str = STRATEGY_FAIR,
        deadline_seconds: Optional[float] = None,
        existing: Optional[ShiftMap] = None,
    ) -> bool:
        """
        Run a rotation strategy over the month.
        Reserved or confirmed assignments in ``existing`` keep their slots.
        Returns True when every slot was filled.
        """
        try:
            assign = STRATEGIES[strategy]
        except KeyError:
            raise ValueError(f"Unknown strategy {strategy!r}; expected one of {sorted(STRATEGIES)}")

        self.result = assign(
            self.days,
            list(self.staff.values()),
            self.catalog,
            self.hospital_config,
            deadline_seconds=deadline_seconds,
            existing=existing,
            slots=self.slots,
        )
        return self.result.is_complete

    @property
    def shifts(self) -> ShiftMap:
        return self.result.shifts if self.result else {}

    def _iter_assignments(self):
        for key in sorted(self.shifts):
            for assignment in self.shifts[key]:
                yield assignment

    def get_schedule_dict(self) -> Dict[Tuple[StaffId, date], str]:
        """Return schedule as (staff_id, date) -> shift type name."""
        schedule = {}
        for assignment in self._iter_assignments():
            for sid in assignment.staff_ids:
                schedule[(sid, assignment.date)] = assignment.shift_type.name
        return schedule

    def get_staff_stats(self) -> Dict[StaffId, dict]:
        """Return statistics for all staff."""
        stats = {
            sid: {
                "name": member.name,
                "quota": quota_total(self.quotas.get(sid, {})),
                "max_guards": member.guard_limit(self.guard_limit_fallback),
                "total_shifts": 0,
                "day_shifts": 0,
                "night_shifts": 0,
                "24h_shifts": 0,
                "weekend_shifts": 0,
                "hours": 0,
            }
            for sid, member in self.staff.items()
        }

        for assignment in self._iter_assignments():
            for sid in assignment.staff_ids:
                if sid not in stats:
                    # raises in strict mode, logged and skipped otherwise
                    lookup_or_skip(find_staff, list(self.staff.values()), sid)
                    continue
                person = stats[sid]
                person["total_shifts"] += 1
                person["hours"] += assignment.shift_type.duration
                category = assignment.shift_type.category
                if category == ShiftCategory.DAY:
                    person["day_shifts"] += 1
                elif category == ShiftCategory.NIGHT:
                    person["night_shifts"] += 1
                else:
                    person["24h_shifts"] += 1
                if self.is_weekend(assignment.date):
                    person["weekend_shifts"] += 1

        return stats

    def get_fairness_metrics(self) -> dict:
        """Calculate fairness metrics for the schedule."""
        if not self.staff:
            return {}

        stats = self.get_staff_stats().values()
        total_shifts = [s["total_shifts"] for s in stats]
        night_shifts = [s["night_shifts"] for s in stats]
        weekend_shifts = [s["weekend_shifts"] for s in stats]
        hours = [s["hours"] for s in stats]

        def safe_stdev(data):
            return statistics.stdev(data) if len(data) > 1 else 0

        return {
            "total_shifts_mean": statistics.mean(total_shifts),
            "total_shifts_stdev": safe_stdev(total_shifts),
            "total_shifts_range": max(total_shifts) - min(total_shifts),
            "night_shifts_mean": statistics.mean(night_shifts),
            "night_shifts_stdev": safe_stdev(night_shifts),
            "weekend_shifts_mean": statistics.mean(weekend_shifts),
            "weekend_shifts_stdev": safe_stdev(weekend_shifts),
            "hours_mean": statistics.mean(hours),
            "hours_stdev": safe_stdev(hours),
        }

    def get_coverage_summary(self) -> List[dict]:
        """Get coverage summary for each day."""
        summary = []
        for day in self.days:
            staffed, open_shifts = [], []
            for assignment in self.shifts.get(day.iso, []):
                if assignment.staff_ids:
                    names = [self.staff[s].name if s in self.staff else str(s) for s in assignment.staff_ids]
                    staffed.append(f"{assignment.shift_type.name}: {', '.join(names)}")
                else:
                    open_shifts.append(assignment.shift_type.name)

            summary.append({
                "date": day.date,
                "day_of_week": day.date.strftime("%a"),
                "coverage_type": day.coverage_type.value,
                "is_weekend": day.is_weekend,
                "assigned": staffed,
                "unfilled": open_shifts,
            })
        return summary

    def validate_schedule(self) -> Tuple[List[str], List[str]]:
        """
        Check the generated schedule.
        Returns (errors, warnings): unfilled slots are errors, staff above their
        monthly guard limit are warnings.
        """
        errors, warnings = [], []
        if self.result is None:
            return ["No schedule generated"], warnings

        for outcome in self.result.unfilled:
            errors.append(f"Unfilled shift on {outcome.slot.iso}: {outcome.slot.shift_type.name}")

        for sid, person in self.get_staff_stats().items():
            limit = person["max_guards"]
            if person["total_shifts"] > limit:
                warnings.append(f"{person['name']} has {person['total_shifts']} shifts (max: {limit})")

        return errors, warnings

    def regenerate_month(self, existing: ShiftMap, strategy: str = STRATEGY_FAIR) -> ShiftMap:
        """
        Regenerate this month and merge it into an existing assignment map.
        Reserved and confirmed assignments of this month survive; keys of other
        months, and keys that are not dates, are kept untouched.
        """
        self.generate_schedule(strategy, existing=existing)
        merged = {}
        for key, day_shifts in existing.items():
            try:
                d = as_date(key)
            except ValueError:
                log.warning("Keeping malformed date key %r as is", key)
                merged[key] = list(day_shifts)
                continue
            if (d.year, d.month) != (self.year, self.month):
                merged[key] = list(day_shifts)
        merged.update(self.shifts)
        return merged
