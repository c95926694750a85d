"""
Quota Calculator.

Per staff member, a ceiling on how many day (D), night (N) and weekend (W)
slots they should take this period. Ceiling division over-provisions on
purpose so the greedy assigner always has candidates; totals can exceed the
slot count by up to staffCount - 1 per category.
"""

import math
from collections import Counter
from typing import Dict, Iterable, List

from roster_models import QuotaCategory, StaffId, StaffMember

Quota = Dict[QuotaCategory, int]


def count_categories(slots: Iterable) -> Dict[QuotaCategory, int]:
    """Number of slots per category. Anything with a ``category`` attribute works."""
    counts = Counter(slot.category for slot in slots)
    return {category: counts.get(category, 0) for category in QuotaCategory}


def compute_quotas(slots: Iterable, staff: List[StaffMember]) -> Dict[StaffId, Quota]:
    """Return {staff_id: {D, N, W}} with each value ceil(count / staffCount)."""
    if not staff:
        return {}

    counts = count_categories(slots)
    staff_count = len(staff)
    return {
        member.id: {category: math.ceil(counts[category] / staff_count) for category in QuotaCategory}
        for member in staff
    }


def quota_total(quota: Quota) -> int:
    return sum(quota.values())
