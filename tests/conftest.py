from datetime import date

import pytest

from roster_config import DAY_SHIFT_ID, FULL_SHIFT_ID, NIGHT_SHIFT_ID
from roster_models import AssignmentStatus, ShiftAssignment, ShiftCatalog, StaffMember, make_assignment_id


@pytest.fixture
def catalog():
    return ShiftCatalog.load()


@pytest.fixture
def day_shift(catalog):
    return catalog.get(DAY_SHIFT_ID)


@pytest.fixture
def night_shift(catalog):
    return catalog.get(NIGHT_SHIFT_ID)


@pytest.fixture
def full_shift(catalog):
    return catalog.get(FULL_SHIFT_ID)


@pytest.fixture
def staff_abc():
    return [
        StaffMember(id="A", name="Alice", specialization="Emergency"),
        StaffMember(id="B", name="Bogdan", specialization="Emergency"),
        StaffMember(id="C", name="Carmen", specialization="Surgery"),
    ]


@pytest.fixture
def make_shift():
    """Factory for a confirmed single-staff assignment."""
    counter = iter(range(1, 10_000))

    def _make(shift_type, staff_id, d: date) -> ShiftAssignment:
        return ShiftAssignment(
            id=make_assignment_id(d, shift_type.id, [staff_id], next(counter)),
            date=d,
            shift_type=shift_type,
            staff_ids=[staff_id],
            status=AssignmentStatus.CONFIRMED,
        )

    return _make


@pytest.fixture
def shift_map():
    """Build a date-keyed map from a list of assignments."""
    def _build(*assignments):
        shifts = {}
        for a in assignments:
            shifts.setdefault(a.date.isoformat(), []).append(a)
        return shifts

    return _build
