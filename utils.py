"""
Utility functions for the Hospital Duty Roster.
Handles date operations, staff table parsing, DataFrame views and export.
"""

import calendar
import json
from datetime import date
from typing import Dict, List, Set, Tuple

import pandas as pd

from roster_models import Conflict, ShiftCategory, ShiftMap, StaffMember, shift_map_to_dict


def get_month_dates(year: int, month: int) -> List[date]:
    """Get all dates in a given month."""
    num_days = calendar.monthrange(year, month)[1]
    return [date(year, month, day) for day in range(1, num_days + 1)]


def get_weekends(year: int, month: int) -> Set[date]:
    """Get all weekend dates (Saturday and Sunday) in a month."""
    return {d for d in get_month_dates(year, month) if is_weekend(d)}


def is_weekend(d: date) -> bool:
    """Check if a date is a weekend."""
    return d.weekday() in (5, 6)


def get_default_staff_data() -> pd.DataFrame:
    """Generate default staff data for demo purposes."""
    data = {
        "Id": [1, 2, 3, 4, 5, 6, 7, 8],
        "Name": [
            "Dr. Popescu",
            "Dr. Ionescu",
            "Dr. Marin",
            "Dr. Stan",
            "Dr. Dumitru",
            "Dr. Georgescu",
            "Dr. Lazar",
            "Dr. Petrescu",
        ],
        "Specialization": [
            "Emergency",
            "Emergency",
            "Emergency",
            "Intensive Care",
            "Intensive Care",
            "Surgery",
            "Surgery",
            "Cardiology",
        ],
        "MaxGuards": [10, 10, 8, 10, 10, 6, 10, 10],
        "Unavailable": ["", "", "10-14", "", "", "", "24-28", ""],
    }
    return pd.DataFrame(data)


def parse_date_list(date_str: str, year: int, month: int) -> List[date]:
    """
    Parse a comma-separated string of dates.
    Supports formats:
    - "1,2,3" - individual days
    - "2026-01-01,2026-01-02" - full dates
    - "17-20" - date range (days 17, 18, 19, 20)
    Semicolons are accepted as separators too. Invalid parts are skipped.
    """
    if not date_str or date_str.strip() == "":
        return []

    # Handle "nan" string from pandas
    if date_str.strip().lower() == "nan":
        return []

    normalized = date_str.replace(";", ",")

    dates = []
    for part in normalized.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            if "-" in part:
                parts = part.split("-")
                if len(parts) == 2 and parts[0].isdigit() and parts[1].isdigit():
                    for day in range(int(parts[0]), int(parts[1]) + 1):
                        try:
                            dates.append(date(year, month, day))
                        except ValueError:
                            continue
                else:
                    dates.append(date.fromisoformat(part))
            else:
                dates.append(date(year, month, int(part)))
        except (ValueError, TypeError):
            continue
    return dates


def create_staff_from_dataframe(df: pd.DataFrame, year: int, month: int) -> List[StaffMember]:
    """
    Create StaffMember objects from a pandas DataFrame.

    Expected columns:
    - Name: str
    - Id: optional, defaults to the row position (1-based)
    - Specialization: optional str
    - MaxGuards: optional int; empty falls back to the hospital limit
    - Unavailable: optional str (comma-separated days, ranges like "17-20" or ISO dates)
    """
    staff = []

    for position, (_, row) in enumerate(df.iterrows(), start=1):
        name = str(row.get("Name", "")).strip()
        if not name or name.lower() == "nan":
            continue

        staff_id = row.get("Id", position)
        if pd.isna(staff_id):
            staff_id = position
        elif isinstance(staff_id, float) and staff_id.is_integer():
            staff_id = int(staff_id)

        # empty MaxGuards defers to the hospital limit
        max_guards = row.get("MaxGuards")
        if max_guards is not None and pd.isna(max_guards):
            max_guards = None

        unavailable = parse_date_list(str(row.get("Unavailable", "")), year, month)
        specialization = row.get("Specialization", "")

        staff.append(StaffMember(
            id=staff_id,
            name=name,
            specialization="" if pd.isna(specialization) else str(specialization),
            max_guards_per_month=max_guards,
            unavailable={d.isoformat() for d in unavailable},
        ))

    return staff


def validate_staff_data(df: pd.DataFrame) -> Tuple[bool, str]:
    """
    Validate staff DataFrame has required columns.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if "Name" not in df.columns:
        return False, "Missing required column: Name"

    if df.empty:
        return False, "Staff list is empty"

    if df["Name"].duplicated().any():
        return False, "Duplicate staff names found"

    if "Id" in df.columns and df["Id"].dropna().duplicated().any():
        return False, "Duplicate staff ids found"

    if "MaxGuards" in df.columns:
        guards = pd.to_numeric(df["MaxGuards"], errors="coerce").dropna()
        if (guards < 1).any():
            return False, "MaxGuards must be a positive number"

    return True, ""


def get_shift_symbol(category: ShiftCategory) -> str:
    """Get display symbol for a shift category."""
    symbols = {
        ShiftCategory.DAY: "D",
        ShiftCategory.NIGHT: "N",
        ShiftCategory.FULL_24H: "24",
    }
    return symbols.get(category, "")


def get_shift_color(symbol: str) -> str:
    """Get color code for a shift symbol (for styling)."""
    colors = {
        "D": "#90EE90",      # Light green
        "N": "#ADD8E6",      # Light blue
        "24": "#FFB6C1",     # Light pink
    }
    return colors.get(symbol, "#FFFFFF")


def create_schedule_dataframe(staff: List[StaffMember], dates: List[date], shifts: ShiftMap) -> pd.DataFrame:
    """
    Create the matrix view of a schedule.

    Returns:
        DataFrame with staff names as rows, days as columns and shift symbols
        (D / N / 24) as values. An extra "OPEN" row lists unfilled slots.
    """
    names = {m.id: m.name for m in staff}
    rows = [m.name for m in staff] + ["OPEN"]
    data = {}
    for d in dates:
        column = {name: "" for name in rows}
        for assignment in shifts.get(d.isoformat(), []):
            symbol = get_shift_symbol(assignment.shift_type.category)
            targets = [names.get(sid, str(sid)) for sid in assignment.staff_ids] or ["OPEN"]
            for name in targets:
                column[name] = "/".join(filter(None, [column.get(name, ""), symbol]))
        data[str(d.day)] = [column.get(name, "") for name in rows]

    df = pd.DataFrame(data, index=rows)
    df.index.name = "Staff"
    return df


def create_statistics_dataframe(staff_stats: Dict) -> pd.DataFrame:
    """
    Create statistics DataFrame from staff stats.

    Args:
        staff_stats: Dict with staff statistics, as returned by RosterScheduler.get_staff_stats

    Returns:
        DataFrame with statistics
    """
    rows = []
    for stats in staff_stats.values():
        rows.append({
            "Name": stats.get("name", ""),
            "Quota": stats.get("quota", 0),
            "Max": stats.get("max_guards", 0),
            "Total": stats.get("total_shifts", 0),
            "Day": stats.get("day_shifts", 0),
            "Night": stats.get("night_shifts", 0),
            "24h": stats.get("24h_shifts", 0),
            "Weekend": stats.get("weekend_shifts", 0),
            "Hours": stats.get("hours", 0),
        })

    df = pd.DataFrame(rows)
    if not df.empty:
        df = df.sort_values("Name").reset_index(drop=True)
    return df


def create_conflicts_dataframe(conflicts: List[Conflict]) -> pd.DataFrame:
    """One row per conflict, most severe first."""
    rows = [
        {
            "Severity": c.severity.value,
            "Conflict": c.kind.label,
            "Date": c.date,
            "Details": c.details,
            "_rank": c.severity.rank,
        }
        for c in conflicts
    ]
    df = pd.DataFrame(rows, columns=["Severity", "Conflict", "Date", "Details", "_rank"])
    df = df.sort_values("_rank", ascending=False, kind="stable").drop(columns="_rank")
    return df.reset_index(drop=True)


def export_schedule_to_csv(schedule_df: pd.DataFrame, stats_df: pd.DataFrame) -> str:
    """
    Export schedule and stats to CSV string.
    """
    output = "=== DUTY ROSTER ===\n"
    output += schedule_df.to_csv()
    output += "\n\n=== STATISTICS ===\n"
    output += stats_df.to_csv(index=False)
    return output


def export_shift_map_json(shifts: ShiftMap) -> str:
    """Serialize the date-keyed assignment map in its exchange shape."""
    return json.dumps(shift_map_to_dict(shifts), ensure_ascii=False, indent=2, sort_keys=True)
