# pages/2_session_analysis.py
# Score one recorded transport on demand and optionally store the analysis.
# Captures exported as CSV (data_sources/) can be imported into the local SQLite store first.

import streamlit as st
import pandas as pd
import asyncio
import logging

from config import app_config
from utils.core_data_processing import load_measurement_points, load_measurements
from utils.tvi_calculator import TransportVibrationCalculator
from utils.tvi_models import InsufficientDataError, TVIStorageError
from utils.tvi_repository import SQLiteTVIRepository
from utils.ui_visualization_helpers import (
    plot_component_scores_web,
    render_web_kpi_card,
    render_web_traffic_light_indicator,
)

st.set_page_config(
    page_title=f"Session Analysis - {app_config.APP_NAME}",
    layout="wide",
    initial_sidebar_state="expanded"
)

logger = logging.getLogger(__name__)


@st.cache_resource
def get_repository() -> SQLiteTVIRepository:
    return SQLiteTVIRepository(app_config.TVI_SQLITE_DB_PATH)

repository = get_repository()
calculator = TransportVibrationCalculator.from_repository(repository)

# --- Sidebar: CSV import ---
st.sidebar.markdown("## Import captures")
st.sidebar.caption(f"Reads {app_config.MEASUREMENTS_CSV} and {app_config.MEASUREMENT_POINTS_CSV}.")
if st.sidebar.button("Import CSV captures", key="session_analysis_import_csv"):
    measurements_df = load_measurements()
    points_df = load_measurement_points()
    try:
        imported = repository.import_dataframes(measurements_df, points_df)
    except TVIStorageError as e_import:
        st.sidebar.error(f"Import failed: {e_import}")
    else:
        st.sidebar.success(f"Imported {len(imported)} capture(s).")

# --- Measurement picker ---
st.title("🔬 Transport Session Analysis")
st.markdown("---")

measurements = asyncio.run(repository.list_measurements(limit=app_config.TVI_BATCH_MEASUREMENT_LIMIT))
if not measurements:
    st.info("No recorded measurements yet. Import CSV captures from the sidebar or record them from the mobile capture.")
    st.stop()

measurements_df = pd.DataFrame(measurements)
labels = {
    int(m['id']): f"#{int(m['id'])} · session {m['session_id']} · {m['start_time']} · unit {m['unit_id'] if m['unit_id'] is not None else '-'}"
    for m in measurements
}
selected_id = st.selectbox("Measurement", list(labels.keys()), format_func=labels.get, key="session_analysis_measurement")
selected_row = measurements_df[measurements_df['id'] == selected_id].iloc[0]

info_cols = st.columns(4)
info_cols[0].metric("Device", str(selected_row['device_id']))
info_cols[1].metric("Duration", f"{float(selected_row['duration']):.0f} s")
info_cols[2].metric("Declared peak", f"{float(selected_row['peak_vibration']):.2f} g")
info_cols[3].metric("Declared average", f"{float(selected_row['average_vibration']):.2f} g")

action_cols = st.columns([0.2, 0.2, 0.6])
run_clicked = action_cols[0].button("Calculate TVI", key="session_analysis_calculate", type="primary")
save_clicked = action_cols[1].button("Calculate & save", key="session_analysis_calculate_save")

if not (run_clicked or save_clicked):
    st.stop()

try:
    if save_clicked:
        result = asyncio.run(calculator.calculate_and_save(int(selected_id)))
        st.success(f"Analysis for measurement {selected_id} saved.")
    else:
        result = asyncio.run(calculator.calculate_tvi(int(selected_id)))
except InsufficientDataError as e_data:
    logger.warning(f"Session analysis aborted for measurement {selected_id}: {e_data}")
    st.error(f"Cannot compute TVI: {e_data}")
    st.stop()
except TVIStorageError as e_store:
    st.error(f"TVI computed but could not be saved: {e_store}")
    st.stop()

# --- Results ---
st.markdown("### Result")
result_cols = st.columns(4)
with result_cols[0]:
    render_web_kpi_card("TVI Score", f"{result.tvi_score:.1f}", icon="🎯", status_level=result.safety_rating, units="/100")
with result_cols[1]:
    render_web_kpi_card("Safety Rating", result.safety_rating.title(), icon="🛡️", status_level=result.safety_rating)
with result_cols[2]:
    percentile_text = f"{result.percentile_rank:.0f}" if result.percentile_rank is not None else "n/a"
    render_web_kpi_card("Unit Percentile", percentile_text, icon="📊",
                        help_text="Share of the unit's earlier analyses with a lower score.")
with result_cols[3]:
    if result.baseline_comparison is not None:
        render_web_kpi_card("Vs. Unit Baseline", f"{result.baseline_comparison:+.1f}", icon="📐", units="%",
                            delta_is_positive=result.baseline_comparison >= 0,
                            delta="above baseline" if result.baseline_comparison >= 0 else "below baseline",
                            help_text=f"Deviation from the mean of the unit's last {app_config.TVI_BASELINE_WINDOW} analyses.")
    else:
        render_web_kpi_card("Vs. Unit Baseline", "n/a", icon="📐", help_text="Measurement has no unit.")

render_web_traffic_light_indicator(f"Risk level: {result.risk_level}", result.risk_level,
                                   details_text=f"Analysis version {result.analysis_version}")

detail_cols = st.columns([0.55, 0.45])
with detail_cols[0]:
    components = {
        'peak_vibration': result.components.peak_vibration_score,
        'sustained_vibration': result.components.sustained_vibration_score,
        'frequency_pattern': result.components.frequency_pattern_score,
    }
    st.plotly_chart(plot_component_scores_web(components, "Component Scores", smoothness_index=result.statistics.smoothness_index),
                    use_container_width=True)
with detail_cols[1]:
    st.markdown("##### Vibration statistics")
    st.markdown(f"- Variance: **{result.statistics.vibration_variance:.4f}** g²\n"
                f"- Standard deviation: **{result.statistics.vibration_std_dev:.4f}** g\n"
                f"- Smoothness index: **{result.statistics.smoothness_index:.1f}**")
    st.markdown("##### Recommended actions")
    for action in result.recommendations:
        st.markdown(f"- {action}")

logger.info(f"Session analysis rendered for measurement {selected_id}.")
