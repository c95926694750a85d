"""
Hospital Duty Roster - Streamlit UI
Monthly guard scheduling with conflict review for manual changes
"""

import streamlit as st
import pandas as pd
from datetime import date, datetime
import calendar

from utils import (
    get_default_staff_data,
    get_month_dates,
    get_weekends,
    create_schedule_dataframe,
    create_statistics_dataframe,
    create_conflicts_dataframe,
    validate_staff_data,
    get_shift_color,
    export_schedule_to_csv,
    export_shift_map_json,
    create_staff_from_dataframe,
)
from conflict_workflow import append_to, review_assignment
from day_classifier import describe_shift_pattern, get_available_shift_types, get_default_shift_type
from roster_config import DEFAULT_MAX_GUARDS_PER_MONTH, DEPARTMENTS, SHIFT_PATTERN_LABELS
from roster_errors import InvalidTransitionError, RosterError
from roster_logging import get_logger
from roster_models import (
    AssignmentStatus,
    HospitalShiftConfig,
    ShiftAssignment,
    ShiftCatalog,
    ShiftPattern,
    make_assignment_id,
)
from scheduler_logic import STRATEGY_FAIR, STRATEGY_ROUND_ROBIN, RosterScheduler

log = get_logger("app")


# Page configuration
st.set_page_config(
    page_title="Hospital Duty Roster",
    page_icon="🏥",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better table display
st.markdown("""
<style>
    .stDataFrame { font-size: 12px; }
    div[data-testid="stMetricValue"] { font-size: 24px; }
</style>
""", unsafe_allow_html=True)


def init_session_state():
    """Initialize session state variables."""
    if "staff_df" not in st.session_state:
        st.session_state.staff_df = get_default_staff_data()
    if "schedule_generated" not in st.session_state:
        st.session_state.schedule_generated = False
    if "scheduler" not in st.session_state:
        st.session_state.scheduler = None
    if "staff" not in st.session_state:
        st.session_state.staff = []
    if "pending_resolution" not in st.session_state:
        st.session_state.pending_resolution = None
    if "resolution_log" not in st.session_state:
        st.session_state.resolution_log = []


def render_sidebar():
    """Render the sidebar with configuration options."""
    st.sidebar.header("Roster Configuration")

    # Month and Year selection
    col1, col2 = st.sidebar.columns(2)
    with col1:
        year = st.number_input(
            "Year",
            min_value=2024,
            max_value=2030,
            value=2026,
            step=1,
        )
    with col2:
        month = st.selectbox(
            "Month",
            options=list(range(1, 13)),
            format_func=lambda x: calendar.month_name[x],
            index=0,
        )

    st.sidebar.divider()

    # Hospital shift pattern
    st.sidebar.subheader("Hospital")
    hospital_id = st.sidebar.text_input("Hospital id", value="hospital-1")
    pattern = st.sidebar.selectbox(
        "Shift pattern",
        options=[p.value for p in ShiftPattern],
        format_func=lambda x: SHIFT_PATTERN_LABELS.get(x, x),
        index=1,
    )

    catalog = ShiftCatalog.load()
    weekday_ids, weekend_ids = [], []
    if pattern != ShiftPattern.ONLY_24.value:
        help_text = "Leave empty to use the standard pattern" if pattern == ShiftPattern.STANDARD_12_24.value else None
        weekday_ids = st.sidebar.multiselect(
            "Weekday shifts",
            options=catalog.ids(),
            format_func=lambda x: catalog.get(x).name,
            help=help_text,
        )
        weekend_ids = st.sidebar.multiselect(
            "Weekend shifts",
            options=catalog.ids(),
            format_func=lambda x: catalog.get(x).name,
            help=help_text,
        )

    max_shifts = st.sidebar.number_input(
        "Max guards per month (hospital)",
        min_value=1,
        max_value=31,
        value=DEFAULT_MAX_GUARDS_PER_MONTH,
        help="Used for staff whose MaxGuards is left empty",
    )

    hospital_config = HospitalShiftConfig(
        hospital_id=hospital_id,
        shift_pattern=ShiftPattern(pattern),
        weekday_shift_ids=weekday_ids,
        weekend_shift_ids=weekend_ids,
        max_shifts_per_month=int(max_shifts),
    )
    st.sidebar.caption(describe_shift_pattern(hospital_config))

    st.sidebar.divider()

    # Rotation strategy
    st.sidebar.subheader("Rotation")
    strategy = st.sidebar.radio(
        "Strategy",
        options=[STRATEGY_FAIR, STRATEGY_ROUND_ROBIN],
        format_func=lambda x: {"fair": "Fair (quota-aware)", "round_robin": "Round-robin"}[x],
        help="Fair balances workload by quota; round-robin simply rotates through the list.",
    )

    st.sidebar.divider()

    # Legend
    st.sidebar.subheader("Shift Legend")
    st.sidebar.markdown("""
    - **D** = Day Guard (08-20)
    - **N** = Night Guard (20-08)
    - **24** = 24h Guard (08-08)
    """)

    return year, month, hospital_config, strategy


def render_staff_editor():
    """Render the staff data editor."""
    st.subheader("Staff Configuration")

    # File upload option
    uploaded_file = st.file_uploader(
        "Upload staff CSV (optional)",
        type=["csv"],
        help="CSV should have columns: Id, Name, Specialization, MaxGuards, Unavailable",
    )

    if uploaded_file is not None:
        try:
            uploaded_df = pd.read_csv(uploaded_file)
            # Ensure required columns exist
            required_cols = ["Name"]
            if all(col in uploaded_df.columns for col in required_cols):
                # Add missing optional columns with defaults
                if "Id" not in uploaded_df.columns:
                    uploaded_df["Id"] = range(1, len(uploaded_df) + 1)
                if "Specialization" not in uploaded_df.columns:
                    uploaded_df["Specialization"] = ""
                if "MaxGuards" not in uploaded_df.columns:
                    uploaded_df["MaxGuards"] = None
                if "Unavailable" not in uploaded_df.columns:
                    uploaded_df["Unavailable"] = ""

                st.session_state.staff_df = uploaded_df
                st.success("Staff data loaded from CSV!")
            else:
                st.error(f"CSV must contain columns: {required_cols}")
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            st.error(f"Error reading CSV: {e}")

    # Editable data table with form to prevent auto-refresh
    st.markdown("**Edit Staff Data:**")
    st.caption("Edit the table below, then click **Save Changes** to confirm. Unavailable: days off (e.g., '5,10,15' or '17-20').")

    # Column configuration for the editor
    column_config = {
        "Id": st.column_config.NumberColumn("Id", required=True, width="small"),
        "Name": st.column_config.TextColumn("Name", required=True, width="medium"),
        "Specialization": st.column_config.SelectboxColumn(
            "Department",
            options=DEPARTMENTS,
            width="medium",
        ),
        "MaxGuards": st.column_config.NumberColumn("Max guards", min_value=1, max_value=31, width="small"),
        "Unavailable": st.column_config.TextColumn(
            "Unavailable",
            help="Days off: 5,10,15 or range 17-20",
            width="large",
        ),
    }

    # Use a form to batch edits and prevent auto-refresh
    with st.form("staff_editor_form"):
        edited_df = st.data_editor(
            st.session_state.staff_df,
            column_config=column_config,
            num_rows="dynamic",
            use_container_width=True,
            hide_index=True,
        )

        # Save button inside form
        col1, col2 = st.columns([1, 4])
        with col1:
            save_clicked = st.form_submit_button("Save Changes", type="primary")

        if save_clicked:
            is_valid, message = validate_staff_data(edited_df)
            if is_valid:
                st.session_state.staff_df = edited_df
                st.success("Changes saved!")
            else:
                st.error(message)

    # Show current staff count
    num_staff = len(st.session_state.staff_df[st.session_state.staff_df["Name"].notna() & (st.session_state.staff_df["Name"] != "")])
    st.caption(f"Staff count: {num_staff}")

    return num_staff > 0


def generate_schedule(year, month, hospital_config, strategy):
    """Generate the schedule based on current configuration."""
    try:
        staff = create_staff_from_dataframe(st.session_state.staff_df, year, month)
    except RosterError as e:
        st.error(f"Invalid staff data: {e}")
        return False

    if not staff:
        st.error("No valid staff members configured!")
        return False

    # manual assignments of the same month keep their slots
    previous = st.session_state.get("scheduler")
    existing = None
    if previous is not None and (previous.year, previous.month) == (year, month):
        existing = previous.shifts

    try:
        scheduler = RosterScheduler(
            year=year,
            month=month,
            staff=staff,
            hospital_config=hospital_config,
        )
        with st.spinner("Generating roster..."):
            complete = scheduler.generate_schedule(strategy, existing=existing)
    except RosterError as e:
        log.error("Schedule generation failed: %s", e)
        st.error(f"Could not generate schedule: {e}")
        return False

    if not complete:
        st.warning(f"{len(scheduler.result.unfilled)} shift(s) could not be filled. Review staff availability.")
    if scheduler.result.relaxations:
        st.info(f"Consecutive-night rule relaxed for {len(scheduler.result.relaxations)} shift(s).")
    if scheduler.result.preassigned:
        st.info(f"Kept {len(scheduler.result.preassigned)} reserved or confirmed shift(s) from manual assignment.")

    # Store in session state
    st.session_state.scheduler = scheduler
    st.session_state.staff = staff
    st.session_state.schedule_generated = True
    st.session_state.current_year = year
    st.session_state.current_month = month
    st.session_state.pending_resolution = None
    st.session_state.resolution_log = []

    return True


def render_schedule_table():
    """Render the generated schedule table."""
    scheduler = st.session_state.scheduler
    if scheduler is None:
        return

    st.subheader("Generated Roster")

    year = st.session_state.current_year
    month = st.session_state.current_month
    weekends = get_weekends(year, month)
    schedule_df = create_schedule_dataframe(st.session_state.staff, get_month_dates(year, month), scheduler.shifts)

    def highlight_shifts(val):
        if not val:
            return ""
        return f"background-color: {get_shift_color(val.split('/')[0])}; color: #000"

    def highlight_columns(col):
        d = date(year, month, int(col.name))
        if d in weekends:
            return ["background-color: #FFF3CD"] * len(col)
        return [""] * len(col)

    styled_df = schedule_df.style.map(highlight_shifts).apply(highlight_columns, axis=0)
    st.dataframe(styled_df, use_container_width=True, height=400)

    # Legend
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.markdown("🟢 **Day Guard**")
    with col2:
        st.markdown("🔵 **Night Guard**")
    with col3:
        st.markdown("🔴 **24h Guard**")
    with col4:
        st.markdown("🟡 **Weekend**")

    errors, warnings = scheduler.validate_schedule()
    if errors or warnings:
        with st.expander(f"**Validation ({len(errors)} errors, {len(warnings)} warnings)**"):
            for error in errors:
                st.error(error)
            for warning in warnings:
                st.warning(warning)


def render_statistics():
    """Render statistics panel."""
    scheduler = st.session_state.scheduler
    if scheduler is None:
        return

    st.subheader("Staff Statistics")

    stats_df = create_statistics_dataframe(scheduler.get_staff_stats())
    fairness = scheduler.get_fairness_metrics()

    # Fairness summary
    st.markdown("**Fairness Check (Max Diff ≤ 1 is ideal):**")
    col1, col2, col3 = st.columns(3)

    for column, label in zip((col1, col2, col3), ("Total", "Night", "Weekend")):
        low, high = stats_df[label].min(), stats_df[label].max()
        diff = high - low
        color = "green" if diff <= 1 else "red"
        with column:
            st.markdown(f"{label}: **:{color}[{low}-{high}]** (diff: {diff})")

    st.divider()

    # Summary metrics
    metrics = [
        ("Avg Total", "total_shifts"),
        ("Avg Night", "night_shifts"),
        ("Avg Weekend", "weekend_shifts"),
        ("Avg Hours", "hours"),
    ]
    for column, (label, key) in zip(st.columns(len(metrics)), metrics):
        with column:
            st.metric(
                label,
                f"{fairness[key + '_mean']:.1f}",
                delta=f"StdDev: {fairness[key + '_stdev']:.2f}",
            )

    st.divider()

    # Full statistics table
    st.dataframe(
        stats_df.style.highlight_max(
            subset=["Total", "Night", "Weekend"],
            color="#FFCCCB",
        ).highlight_min(
            subset=["Total", "Night", "Weekend"],
            color="#90EE90",
        ),
        use_container_width=True,
        hide_index=True,
    )


def render_coverage_summary():
    """Render daily coverage summary."""
    scheduler = st.session_state.scheduler
    if scheduler is None:
        return

    with st.expander("Daily Coverage Details"):
        coverage_data = []
        for day_info in scheduler.get_coverage_summary():
            coverage_data.append({
                "Date": day_info["date"].strftime("%Y-%m-%d"),
                "Day": day_info["day_of_week"],
                "Weekend": "Yes" if day_info["is_weekend"] else "",
                "Coverage": day_info["coverage_type"],
                "Assigned": "; ".join(day_info["assigned"]),
                "Unfilled": ", ".join(day_info["unfilled"]),
            })

        coverage_df = pd.DataFrame(coverage_data)
        st.dataframe(coverage_df, use_container_width=True, hide_index=True)


def render_manual_assignment(hospital_config):
    """Add a single assignment by hand, reviewing its conflicts before saving."""
    scheduler = st.session_state.scheduler
    if scheduler is None:
        return

    st.divider()
    st.subheader("Manual Assignment")
    st.caption("Add a guard by hand. Conflicts are shown before anything is saved.")

    staff = st.session_state.staff
    staff_by_id = {m.id: m for m in staff}

    col1, col2, col3 = st.columns(3)
    with col1:
        target = st.selectbox(
            "Date",
            options=scheduler.dates,
            format_func=lambda d: d.strftime("%a %d %b"),
        )
    with col2:
        staff_id = st.selectbox(
            "Staff member",
            options=list(staff_by_id),
            format_func=lambda sid: staff_by_id[sid].name,
        )
    with col3:
        available = get_available_shift_types(target, hospital_config, scheduler.catalog)
        default = get_default_shift_type(target, hospital_config, scheduler.catalog)
        shift_type = st.selectbox(
            "Shift type",
            options=available,
            index=available.index(default) if default in available else 0,
            format_func=lambda s: s.name,
        ) if available else None

    if shift_type is None:
        st.info("No shift types are allowed on this date for the selected hospital pattern.")

    if st.button("Check & Save", type="primary", disabled=shift_type is None or st.session_state.pending_resolution is not None):
        member = staff_by_id[staff_id]
        candidate = ShiftAssignment(
            id=make_assignment_id(target, shift_type.id, [staff_id], int(datetime.now().timestamp() * 1000)),
            date=target,
            shift_type=shift_type,
            staff_ids=[staff_id],
            department=member.specialization,
            status=AssignmentStatus.CONFIRMED,
        )
        resolution = review_assignment(
            candidate,
            staff_id,
            lambda: scheduler.shifts,
            staff,
            commit=append_to(scheduler.shifts),
            hospital_config=hospital_config,
        )
        if resolution.is_committed:
            st.session_state.resolution_log.append(f"Saved {shift_type.name} on {target:%m/%d} for {member.name}")
            st.rerun()
        st.session_state.pending_resolution = resolution

    render_pending_resolution()

    if st.session_state.resolution_log:
        st.markdown("**Recent Manual Changes:**")
        for entry in st.session_state.resolution_log:
            st.write(f"- {entry}")


def render_pending_resolution():
    """Show the conflicts of a pending assignment and let the user decide."""
    resolution = st.session_state.pending_resolution
    if resolution is None:
        return

    summary = resolution.summary
    if resolution.requires_force:
        st.error(f"{summary['critical']} critical conflict(s) found. Saving requires an override.")
    else:
        st.warning(f"{summary['total']} conflict(s) found.")
    st.dataframe(create_conflicts_dataframe(resolution.conflicts), use_container_width=True, hide_index=True)

    col1, col2, col3 = st.columns(3)
    label = f"{resolution.assignment.shift_type.name} on {resolution.assignment.date:%m/%d}"
    try:
        with col1:
            if st.button("Proceed", disabled=not resolution.can_proceed):
                resolution.proceed()
                st.session_state.resolution_log.append(f"Saved {label} with warnings")
                st.session_state.pending_resolution = None
                st.rerun()
        with col2:
            if st.button("Force Save", type="primary" if resolution.requires_force else "secondary"):
                resolution.force()
                st.session_state.resolution_log.append(f"Force-saved {label}")
                st.session_state.pending_resolution = None
                st.rerun()
        with col3:
            if st.button("Cancel"):
                resolution.cancel()
                st.session_state.pending_resolution = None
                st.rerun()
    except InvalidTransitionError as e:
        st.error(str(e))
        st.session_state.pending_resolution = None


def render_export_options():
    """Render export/download options."""
    scheduler = st.session_state.scheduler
    if scheduler is None:
        return

    st.subheader("Export")

    year = st.session_state.current_year
    month = st.session_state.current_month
    schedule_df = create_schedule_dataframe(st.session_state.staff, get_month_dates(year, month), scheduler.shifts)
    stats_df = create_statistics_dataframe(scheduler.get_staff_stats())

    col1, col2 = st.columns(2)

    with col1:
        st.download_button(
            label="Download Roster (CSV)",
            data=export_schedule_to_csv(schedule_df, stats_df),
            file_name=f"roster_{year}_{month:02d}.csv",
            mime="text/csv",
        )

    with col2:
        st.download_button(
            label="Download Assignments (JSON)",
            data=export_shift_map_json(scheduler.shifts),
            file_name=f"shifts_{year}_{month:02d}.json",
            mime="application/json",
        )


def main():
    """Main application entry point."""
    st.title("Hospital Duty Roster")
    st.caption("Monthly guard scheduling")

    # Initialize session state
    init_session_state()

    # Sidebar configuration
    year, month, hospital_config, strategy = render_sidebar()

    # Main content area
    tab1, tab2, tab3 = st.tabs(["Staff Setup", "Roster", "Statistics"])

    with tab1:
        staff_valid = render_staff_editor()

        st.divider()

        # Generate button
        if st.button(
            "Generate Roster",
            type="primary",
            disabled=not staff_valid,
            use_container_width=True,
        ):
            if generate_schedule(year, month, hospital_config, strategy):
                st.success("Roster generated successfully!")

    with tab2:
        if st.session_state.schedule_generated:
            render_schedule_table()
            render_manual_assignment(hospital_config)
            render_coverage_summary()
            render_export_options()
        else:
            st.info("Configure staff and click 'Generate Roster' to create the monthly roster.")

    with tab3:
        if st.session_state.schedule_generated:
            render_statistics()
        else:
            st.info("Generate a roster to view statistics.")


if __name__ == "__main__":
    main()
