# app_home.py
# Entry point of the Neonatal Transport Vibration Monitor (streamlit run app_home.py).

import streamlit as st
import os
from config import app_config
import logging

st.set_page_config(
    page_title=f"{app_config.APP_NAME} - Overview",
    page_icon=app_config.APP_LOGO_SMALL if os.path.exists(app_config.APP_LOGO_SMALL) else "🚑",
    layout="wide",
    initial_sidebar_state="expanded",
    menu_items={
        'Get Help': f"mailto:{app_config.SUPPORT_CONTACT_INFO}?subject=Help Request - {app_config.APP_NAME}",
        'Report a bug': f"mailto:{app_config.SUPPORT_CONTACT_INFO}?subject=Bug Report - {app_config.APP_NAME} v{app_config.APP_VERSION}",
        'About': f"""
        ### {app_config.APP_NAME}
        **Version:** {app_config.APP_VERSION}
        Scores the vibration exposure of neonatal transports from mobile accelerometer captures.
        {app_config.APP_FOOTER_TEXT}
        """
    }
)

# --- Logging Setup ---
logging.basicConfig(
    level=getattr(logging, app_config.LOG_LEVEL.upper(), logging.INFO),
    format=app_config.LOG_FORMAT,
    datefmt=app_config.LOG_DATE_FORMAT,
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)

@st.cache_resource
def load_web_css(css_file_path: str):
    if os.path.exists(css_file_path):
        try:
            with open(css_file_path, encoding="utf-8") as f:
                st.markdown(f'<style>{f.read()}</style>', unsafe_allow_html=True)
            logger.info(f"Web CSS loaded successfully from {css_file_path}")
        except OSError as e_css:
            logger.error(f"Error reading web CSS file {css_file_path}: {e_css}")
    else:
        logger.warning(f"Web CSS file not found: {css_file_path}. Default Streamlit styles will apply.")

load_web_css(app_config.STYLE_CSS_PATH_WEB)


# --- App Header ---
header_cols_home = st.columns([0.15, 0.85])
with header_cols_home[0]:
    main_page_logo_to_use = app_config.APP_LOGO_LARGE if os.path.exists(app_config.APP_LOGO_LARGE) else app_config.APP_LOGO_SMALL
    if os.path.exists(main_page_logo_to_use):
        st.image(main_page_logo_to_use, width=100)
    else:
        st.markdown("🚑")
with header_cols_home[1]:
    st.title(app_config.APP_NAME)
    st.caption(f"Version {app_config.APP_VERSION}  |  TVI analysis version {app_config.TVI_ANALYSIS_VERSION}")
st.markdown("---")

# --- What the index measures ---
weights = app_config.TVI_COMPONENT_WEIGHTS
st.markdown(f"""
    #### The Transport Vibration Index (TVI)

    Each transport is recorded by a phone mounted on the incubator. Its accelerometer readings are reduced to a
    single **0-100 score, where higher is safer**, built from three sub-scores:

    - **Peak vibration** ({weights['peak']:.0%}): the worst jolt of the trip, from ≤ {app_config.TVI_PEAK_SCORE_BREAKPOINTS[0][0]} g (best) to above {app_config.TVI_PEAK_SCORE_BREAKPOINTS[-1][0]} g (worst).
    - **Sustained vibration** ({weights['sustained']:.0%}): the share of readings above {app_config.TVI_SUSTAINED_WARNING_G} g and {app_config.TVI_SUSTAINED_CRITICAL_G} g, with extra penalties for trips longer than 5 and 10 minutes.
    - **Frequency pattern** ({weights['pattern']:.0%}): jerky spikes lower it, a consistent rhythm raises it.

    A smoothness adjustment based on the coefficient of variation is added, then the score is mapped to a
    **safety rating** (excellent, good, fair, poor, critical), a **risk level** (low, moderate, high, critical)
    and a list of recommended actions. When the transport belongs to a unit, the score is also ranked against
    that unit's earlier transports.
""")

st.subheader("Views")
with st.expander("📈 **Unit TVI Dashboard**", expanded=True):
    st.markdown("""
    Stored analyses per transport unit over the last 7, 30 or 90 days: number of analyses, average score, trend,
    rating and risk distributions, and the most recent recommendations.
    """)
    if st.button("Go to TVI Dashboard", key="nav_tvi_dashboard_home", type="primary"):
        st.switch_page("pages/1_tvi_dashboard.py")

with st.expander("🔬 **Session Analysis**", expanded=True):
    st.markdown("""
    Pick a recorded transport, compute its TVI with the full component breakdown and save the analysis.
    Measurements exported as CSV can be imported into the local store from the same page.
    """)
    if st.button("Go to Session Analysis", key="nav_session_analysis_home", type="primary"):
        st.switch_page("pages/2_session_analysis.py")

# --- Sidebar ---
if os.path.exists(app_config.APP_LOGO_SMALL):
    st.sidebar.image(app_config.APP_LOGO_SMALL, width=180)
st.sidebar.caption(f"Version {app_config.APP_VERSION}")
st.sidebar.markdown("---")
st.sidebar.markdown(f"**Support & Info:**<br/>{app_config.ORGANIZATION_NAME}<br/>"
                    f"Contact: [{app_config.SUPPORT_CONTACT_INFO}](mailto:{app_config.SUPPORT_CONTACT_INFO})", unsafe_allow_html=True)
st.sidebar.markdown("---")
st.sidebar.caption(app_config.APP_FOOTER_TEXT)

logger.info(f"Application home page ({app_config.APP_NAME}) loaded successfully.")
