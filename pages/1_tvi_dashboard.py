# pages/1_tvi_dashboard.py
# Unit-level view of stored TVI analyses: summary KPIs, score trend, rating/risk distributions
# and the latest recommendations.

import streamlit as st
import pandas as pd
import asyncio
import logging

from config import app_config
from utils.core_data_processing import (
    filter_tvi_history,
    get_tvi_summary,
    get_tvi_trend_data,
    tvi_history_to_dataframe,
)
from utils.tvi_calculator import analyze_pending_measurements
from utils.tvi_repository import SQLiteTVIRepository
from utils.ui_visualization_helpers import (
    plot_bar_chart_web,
    plot_donut_chart_web,
    plot_tvi_trend_line_web,
    render_web_kpi_card,
    render_web_traffic_light_indicator,
    status_level_for_score,
)

st.set_page_config(
    page_title=f"TVI Dashboard - {app_config.APP_NAME}",
    layout="wide",
    initial_sidebar_state="expanded"
)

logger = logging.getLogger(__name__)


@st.cache_resource
def get_repository() -> SQLiteTVIRepository:
    return SQLiteTVIRepository(app_config.TVI_SQLITE_DB_PATH)

def load_history(repository: SQLiteTVIRepository) -> pd.DataFrame:
    records = asyncio.run(repository.get_analysis_records())
    logger.info(f"TVI dashboard loaded {len(records)} stored analyses.")
    return tvi_history_to_dataframe(records)


repository = get_repository()

# --- Sidebar Filters ---
st.sidebar.markdown("## Filters")
history_df = load_history(repository)
unit_options = ["All units"] + sorted(int(u) for u in history_df['unit_id'].dropna().unique())
selected_unit = st.sidebar.selectbox("Transport unit", unit_options, key="tvi_dashboard_unit")
unit_filter = None if selected_unit == "All units" else int(selected_unit)

window_days = st.sidebar.selectbox(
    "Time window (days)", app_config.WEB_DASHBOARD_TIME_WINDOWS_DAYS,
    index=app_config.WEB_DASHBOARD_TIME_WINDOWS_DAYS.index(app_config.WEB_DASHBOARD_DEFAULT_TIME_WINDOW_DAYS),
    key="tvi_dashboard_window"
)

st.sidebar.markdown("---")
if st.sidebar.button("Analyze pending measurements", key="tvi_dashboard_analyze_pending"):
    with st.spinner("Scoring transports without a stored analysis..."):
        outcome = asyncio.run(analyze_pending_measurements(repository, source_context="TVIDashboard"))
    st.sidebar.success(f"Analyzed {len(outcome['analyzed'])} measurement(s).")
    if outcome['skipped']:
        st.sidebar.warning(f"Skipped {len(outcome['skipped'])} measurement(s) without readings.")
    history_df = load_history(repository)

# --- Header ---
st.title("📈 Transport Vibration Index Dashboard")
scope_label = "all units" if unit_filter is None else f"unit {unit_filter}"
st.caption(f"Stored analyses for {scope_label} over the last {window_days} days.")
st.markdown("---")

summary = get_tvi_summary(history_df, unit_id=unit_filter, days=window_days)
window_df = filter_tvi_history(history_df, unit_id=unit_filter, days=window_days) if not history_df.empty else history_df

if summary['total_measurements'] == 0:
    st.info("No TVI analyses in this window. Run an analysis from the Session Analysis page "
            "or use 'Analyze pending measurements' in the sidebar.")
    st.stop()

# --- KPI Row ---
trend = summary['trends']
if trend['improving']:
    trend_text, trend_positive, trend_icon = "Improving", True, "↗"
elif trend['declining']:
    trend_text, trend_positive, trend_icon = "Declining", False, "↘"
else:
    trend_text, trend_positive, trend_icon = "Stable", None, "→"

kpi_cols = st.columns(4)
with kpi_cols[0]:
    render_web_kpi_card("Analyses", str(summary['total_measurements']), icon="🚑",
                        help_text="Transports analyzed in the selected window.")
with kpi_cols[1]:
    render_web_kpi_card("Average TVI", f"{summary['average_tvi_score']:.1f}", icon="🎯",
                        status_level=status_level_for_score(summary['average_tvi_score']), units="/100")
with kpi_cols[2]:
    render_web_kpi_card("Trend", trend_text, icon=trend_icon, delta=trend_text, delta_is_positive=trend_positive,
                        help_text=f"Newer half of the window vs older half; shifts above {app_config.TVI_TREND_DELTA_POINTS:.0f} points count.")
with kpi_cols[3]:
    critical_count = summary['risk_distribution'].get('critical', 0)
    render_web_kpi_card("Critical Risk", str(critical_count), icon="⚠️",
                        status_level="critical" if critical_count else "low",
                        help_text="Analyses with a critical risk level.")

# --- Charts ---
st.markdown("### Score Trend")
trend_series = get_tvi_trend_data(window_df, limit=app_config.WEB_DASHBOARD_TREND_POINTS)
st.plotly_chart(plot_tvi_trend_line_web(trend_series, f"Last {app_config.WEB_DASHBOARD_TREND_POINTS} TVI scores"),
                use_container_width=True)

dist_cols = st.columns(2)
with dist_cols[0]:
    safety_df = pd.DataFrame(list(summary['safety_distribution'].items()), columns=['safety_rating', 'count'])
    st.plotly_chart(plot_donut_chart_web(safety_df, 'safety_rating', 'count', "Safety Ratings", color_type="safety_rating"),
                    use_container_width=True)
with dist_cols[1]:
    risk_df = pd.DataFrame(list(summary['risk_distribution'].items()), columns=['risk_level', 'count'])
    st.plotly_chart(plot_bar_chart_web(risk_df, 'risk_level', 'count', "Risk Levels", color_type="risk_level",
                                       category_order=app_config.RISK_LEVELS, chart_height=app_config.WEB_PLOT_COMPACT_HEIGHT),
                    use_container_width=True)

# --- Recent Analyses ---
st.markdown("### Recent Analyses")
recent_df = window_df.head(app_config.WEB_DASHBOARD_RECENT_ANALYSES)
display_cols = ['calculated_at', 'measurement_id', 'unit_id', 'tvi_score', 'safety_rating', 'risk_level',
                'peak_vibration_score', 'sustained_vibration_score', 'frequency_pattern_score', 'smoothness_index']
st.dataframe(
    recent_df[display_cols].rename(columns=lambda c: c.replace('_', ' ').title()),
    use_container_width=True, hide_index=True,
    column_config={"Tvi Score": st.column_config.NumberColumn("TVI Score", format="%.1f")}
)

for record in recent_df.itertuples(index=False):
    calculated_label = record.calculated_at.strftime('%Y-%m-%d %H:%M') if pd.notna(record.calculated_at) else "unknown time"
    with st.expander(f"Measurement {record.measurement_id} · {calculated_label} · TVI {record.tvi_score:.1f}"):
        render_web_traffic_light_indicator(
            f"{str(record.safety_rating).title()} transport", record.risk_level,
            details_text=f"Risk: {record.risk_level}"
        )
        for action in record.recommended_actions:
            st.markdown(f"- {action}")

st.markdown("---")
st.caption(app_config.APP_FOOTER_TEXT)
logger.info(f"TVI dashboard rendered for {scope_label}, {window_days}-day window.")
