import numpy as np
import pandas as pd
import streamlit as st
import structlog

from credit_calculator import config
from credit_calculator.backend_logic import (
    CLASSIFICATION_BANDS,
    FAIL_LABEL,
    marks_out_of_range,
    parse_credits,
    parse_mark,
    required_average_for_target,
    round_1dp_half_up,
)
from credit_calculator.io_csv import export_csv, parse_modules, read_csv_upload, validate_modules_csv
from credit_calculator.loop_runner import BackgroundLoop
from credit_calculator.remote import build_remote
from credit_calculator.storage import LocalStore
from credit_calculator.tracker import GradeTracker

logger = structlog.get_logger(__name__)

# ------------------------
# Streamlit UI
# ------------------------

st.set_page_config(
    page_title="Credit Calculator | Weighted Average & Degree Classification",
    page_icon="🎓",
    layout="wide",
)


@st.cache_resource
def get_runner() -> BackgroundLoop:
    return BackgroundLoop()


@st.cache_resource
def get_tracker() -> GradeTracker:
    runner = get_runner()
    remote = runner.run(
        build_remote(config.supabase_url(), config.supabase_key(), config.supabase_table())
    )
    tracker = GradeTracker.open(
        LocalStore(config.data_dir()), remote, default_batch=config.default_batch()
    )
    runner.run(tracker.start())
    runner.spawn(tracker.run_sync_timer(config.sync_interval_seconds()))
    logger.info("tracker_ready", user_id=tracker.user_id, remote=tracker.remote_enabled)
    return tracker


runner = get_runner()
tracker = get_tracker()


def persist():
    tracker.persist_in_background(runner)


NORMALISE = {"title": str, "credits": parse_credits, "mark": parse_mark}


@st.fragment(run_every=config.sync_interval_seconds())
def sync_badge():
    if not tracker.remote_enabled:
        st.caption("Saved on this device")
        return
    status = tracker.queue.status.value
    pending = tracker.queue.pending
    st.caption(f"Sync: {status}" + (f" ({pending} pending)" if pending else ""))


def module_frame(semester) -> pd.DataFrame:
    return pd.DataFrame(
        [{"Title": m.title, "Credits": m.credits, "Mark": m.mark} for m in semester.modules],
        index=[m.id for m in semester.modules],
        columns=["Title", "Credits", "Mark"],
    )


def apply_edits(semester, edited: pd.DataFrame) -> bool:
    """Fold a data_editor result back into the semester. Returns True on change."""
    changed = False
    existing = {m.id: m for m in semester.modules}
    kept = set()

    for idx, row in edited.iterrows():
        values = {
            "title": "" if pd.isna(row["Title"]) else row["Title"],
            "credits": None if pd.isna(row["Credits"]) else row["Credits"],
            "mark": None if pd.isna(row["Mark"]) else row["Mark"],
        }
        module = existing.get(idx)
        if module is None:
            module = tracker.add_module(semester.id)
            changed = True
        kept.add(module.id)
        for field_name, value in values.items():
            if NORMALISE[field_name](value) != getattr(module, field_name):
                tracker.update_module(semester.id, module.id, field_name, value)
                changed = True

    for module_id in existing:
        if module_id not in kept:
            tracker.delete_module(semester.id, module_id)
            changed = True
    return changed


st.title("🎓 Credit Calculator")
st.write("Track your weighted credits and degree classification.")

# ------------------------
# Profile
# ------------------------

p1, p2 = st.columns(2)
with p1:
    user_name = st.text_input("Name", value=tracker.profile.user_name)
with p2:
    user_batch = st.text_input("Batch", value=tracker.profile.user_batch)

if user_name != tracker.profile.user_name or user_batch != tracker.profile.user_batch:
    tracker.set_user_name(user_name)
    tracker.set_user_batch(user_batch)
    persist()

col_main, col_side = st.columns([2, 1])

# ------------------------
# Semesters
# ------------------------

with col_main:
    for semester in list(tracker.profile.semesters):
        with st.container(border=True):
            head, delete = st.columns([6, 1])
            with head:
                name = st.text_input(
                    "Semester name", value=semester.name, key=f"name_{semester.id}",
                    label_visibility="collapsed",
                )
                if name != semester.name:
                    tracker.rename_semester(semester.id, name)
                    persist()
            with delete:
                if st.button("Delete", key=f"delete_{semester.id}"):
                    tracker.delete_semester(semester.id)
                    persist()
                    st.rerun()

            edited = st.data_editor(
                module_frame(semester),
                key=f"modules_{semester.id}",
                num_rows="dynamic",
                hide_index=True,
                use_container_width=True,
                column_config={
                    "Title": st.column_config.TextColumn("Title"),
                    "Credits": st.column_config.NumberColumn("Credits", step=5, format="%d", min_value=0),
                    "Mark": st.column_config.NumberColumn("Mark (%)", step=0.1, format="%.1f",
                                                          min_value=0.0, max_value=100.0),
                },
            )
            if apply_edits(semester, edited):
                persist()
                # the editor replays its own deltas on rerun; start from the saved rows
                st.session_state.pop(f"modules_{semester.id}", None)
                st.rerun()

            upload = st.file_uploader(
                "Import modules CSV (Title, Credits, Mark)", type=["csv"], key=f"csv_{semester.id}",
            )
            if upload is not None and st.button("Import", key=f"import_{semester.id}"):
                try:
                    modules = parse_modules(validate_modules_csv(read_csv_upload(upload)))
                except ValueError as e:
                    st.error(f"CSV error: {e}")
                else:
                    tracker.import_modules(semester.id, modules)
                    persist()
                    st.rerun()

    a1, a2, a3 = st.columns(3)
    with a1:
        if st.button("Add semester", type="primary"):
            tracker.add_semester()
            persist()
            st.rerun()
    with a2:
        st.download_button("Export CSV", export_csv(tracker.profile), file_name="modules.csv")
    with a3:
        if st.button("Clear all data"):
            st.session_state["confirm_clear"] = True
        if st.session_state.get("confirm_clear"):
            st.warning("Clear all data? This cannot be undone.")
            if st.button("Yes, clear everything"):
                tracker.reset_in_background(runner)
                st.session_state["confirm_clear"] = False
                st.rerun()

# ------------------------
# Summary
# ------------------------

with col_side:
    summary = tracker.summary()
    st.metric("Weighted average", f"{summary['weighted_average_rounded']:.1f}%")
    st.metric("Classification", summary["classification"])
    st.caption(f"{summary['total_credits']} total credits")

    out_of_range = marks_out_of_range(tracker.profile)
    if out_of_range:
        st.warning(f"{len(out_of_range)} module mark(s) fall outside 0-100 and are still counted.")

    if summary["semesters"]:
        st.subheader("Semester averages")
        for row in summary["semesters"]:
            st.metric(row["name"], f"{round_1dp_half_up(row['average']):.1f}%",
                      help=f"{row['credits']} credits")

    st.subheader("Classification guide")
    guide = [{"Band": label, "Average": f"≥ {threshold:g}%"} for threshold, label in CLASSIFICATION_BANDS]
    guide.append({"Band": FAIL_LABEL, "Average": f"< {CLASSIFICATION_BANDS[-1][0]:g}%"})
    st.table(pd.DataFrame(guide))

    st.subheader("Planner")
    target_label = st.selectbox("Target classification", [label for _, label in CLASSIFICATION_BANDS])
    remaining = st.number_input("Credits still to take", min_value=0, value=60, step=5)
    needed = required_average_for_target(tracker.profile, target_label, remaining)
    if np.isnan(needed):
        st.info("Enter the credits you still have to take.")
    elif needed > 100:
        st.error(f"{target_label} is out of reach: it needs {needed:.1f}% on remaining credits.")
    else:
        st.success(f"Average needed on remaining credits: {max(needed, 0.0):.1f}%")

    sync_badge()
