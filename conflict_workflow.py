"""
Conflict Resolution Workflow.

Gates saving a manual assignment on the conflicts found for it:

    CLEAN -> COMMITTED                       (no conflicts)
    CLEAN -> WARNED -> PROCEEDED | FORCED | CANCELLED

Proceeding is offered only when no conflict is critical. Forcing is always
offered: a save is never hard-blocked, only warned about.
"""

from enum import Enum
from typing import Callable, List, Optional, Union

from conflict_detection import detect_conflicts, get_conflict_summary
from roster_errors import InvalidTransitionError
from roster_logging import get_logger
from roster_models import Conflict, HospitalShiftConfig, Severity, ShiftAssignment, ShiftMap, date_key

log = get_logger("workflow")

CommitCallback = Callable[[ShiftAssignment], None]


class ResolutionState(Enum):
    CLEAN = "clean"
    WARNED = "warned"
    COMMITTED = "committed"
    PROCEEDED = "proceeded"
    FORCED = "forced"
    CANCELLED = "cancelled"


COMMITTED_STATES = {ResolutionState.COMMITTED, ResolutionState.PROCEEDED, ResolutionState.FORCED}


class ConflictResolution:
    """Resolution of one proposed assignment."""

    def __init__(self, assignment: ShiftAssignment, conflicts: List[Conflict], commit: Optional[CommitCallback] = None):
        self.assignment = assignment
        self.conflicts = list(conflicts)
        self._commit = commit
        self.state = ResolutionState.CLEAN

    @property
    def requires_force(self) -> bool:
        return any(c.severity == Severity.CRITICAL for c in self.conflicts)

    @property
    def can_proceed(self) -> bool:
        return self.state == ResolutionState.WARNED and not self.requires_force

    @property
    def is_committed(self) -> bool:
        return self.state in COMMITTED_STATES

    @property
    def summary(self) -> dict:
        return get_conflict_summary(self.conflicts)

    def _expect(self, *states: ResolutionState):
        if self.state not in states:
            raise InvalidTransitionError(f"Cannot leave state {self.state.value!r} this way")

    def _do_commit(self, new_state: ResolutionState) -> ResolutionState:
        if self._commit is not None:
            self._commit(self.assignment)
        self.state = new_state
        return self.state

    def start(self) -> ResolutionState:
        """Commit straight away when there is nothing to warn about."""
        self._expect(ResolutionState.CLEAN)
        if not self.conflicts:
            return self._do_commit(ResolutionState.COMMITTED)
        self.state = ResolutionState.WARNED
        return self.state

    def proceed(self) -> ResolutionState:
        """Save despite high/medium warnings."""
        self._expect(ResolutionState.WARNED)
        if self.requires_force:
            raise InvalidTransitionError("Critical conflicts present; use force() to save anyway")
        return self._do_commit(ResolutionState.PROCEEDED)

    def force(self) -> ResolutionState:
        """Save regardless of severity."""
        self._expect(ResolutionState.WARNED)
        log.warning(
            "Forced save of %s with %d conflict(s): %s",
            self.assignment.id, len(self.conflicts), ", ".join(c.kind.value for c in self.conflicts),
        )
        return self._do_commit(ResolutionState.FORCED)

    def cancel(self) -> ResolutionState:
        self._expect(ResolutionState.WARNED)
        self.state = ResolutionState.CANCELLED
        return self.state


def append_to(shifts: ShiftMap) -> CommitCallback:
    """Commit callback that adds the assignment to an in-memory map."""
    def commit(assignment: ShiftAssignment):
        shifts.setdefault(date_key(assignment.date), []).append(assignment)
    return commit


def review_assignment(
    candidate: ShiftAssignment,
    staff_id,
    existing: Union[ShiftMap, Callable[[], ShiftMap]],
    staff,
    commit: Optional[CommitCallback] = None,
    hospital_config: Optional[HospitalShiftConfig] = None,
) -> ConflictResolution:
    """
    Validate a candidate against the latest snapshot and start its workflow.

    ``existing`` may be a callable returning the current map so the check runs
    against the freshest data right before commit. ``hospital_config`` supplies
    the guard-limit fallback for staff without a limit of their own.
    """
    snapshot = existing() if callable(existing) else existing
    conflicts = detect_conflicts(candidate, staff_id, snapshot, staff, candidate.date, hospital_config)
    resolution = ConflictResolution(candidate, conflicts, commit)
    resolution.start()
    return resolution
