# config/app_config.py
# Central configuration for the Neonatal Transport Vibration Index (TVI) service.

import os
import pandas as pd # Used for the footer year, same as the dashboard footers

# --- I. Core System & Directory Configuration ---
# BASE_DIR calculation assumes this config file's location relative to project root.
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

# ASSETS_DIR: logos and web CSS for the dashboard pages.
ASSETS_DIR = os.path.join(BASE_DIR, "assets")
# DATA_SOURCES_DIR: CSV exports of mobile accelerometer captures.
DATA_SOURCES_DIR = os.path.join(BASE_DIR, "data_sources")

APP_NAME = "Neonatal Transport Vibration Monitor"
APP_VERSION = "1.0.0"
APP_LOGO_SMALL = os.path.join(ASSETS_DIR, "tvi_logo_small.png")
APP_LOGO_LARGE = os.path.join(ASSETS_DIR, "tvi_logo_large.png")
STYLE_CSS_PATH_WEB = os.path.join(ASSETS_DIR, "style_web_reports.css")

ORGANIZATION_NAME = "Neonatal Transport Safety Program"
APP_FOOTER_TEXT = f"© {pd.Timestamp('now').year} {ORGANIZATION_NAME}. For transport quality review."
SUPPORT_CONTACT_INFO = "support@neonatal-transport.org"

# --- II. Data Sources & Persistence ---
MEASUREMENTS_CSV = os.path.join(DATA_SOURCES_DIR, "mobile_measurements.csv")
MEASUREMENT_POINTS_CSV = os.path.join(DATA_SOURCES_DIR, "mobile_measurement_points.csv")
# SQLite store for measurements and TVI analyses. ENV var wins so deployments can relocate it.
TVI_SQLITE_DB_PATH = os.getenv("TVI_SQLITE_DB_PATH", os.path.join(BASE_DIR, "local_data", "tvi.db"))
CACHE_TTL_SECONDS_WEB_REPORTS = 600

# --- III. Transport Vibration Index (TVI) Thresholds ---
# All magnitudes are in g. Scores are on a 0-100 scale, higher is safer.
TVI_ANALYSIS_VERSION = "1.0"
TVI_SCORE_MIN = 0.0
TVI_SCORE_MAX = 100.0

# A. PEAK VIBRATION SUB-SCORE (declared peak magnitude -> score, first match wins)
TVI_PEAK_SCORE_BREAKPOINTS = [
    (0.5, 95.0),   # Excellent
    (1.0, 80.0),   # Good
    (2.0, 60.0),   # Fair
    (3.0, 40.0),   # Poor
]
TVI_PEAK_SCORE_ABOVE_ALL = 20.0 # > 3.0g critical

# B. SUSTAINED VIBRATION SUB-SCORE
TVI_SUSTAINED_WARNING_G = 1.0
TVI_SUSTAINED_CRITICAL_G = 2.0
TVI_SUSTAINED_WARNING_PENALTY = 0.5   # Points per percent of samples above warning
TVI_SUSTAINED_CRITICAL_PENALTY = 2.0  # Points per percent of samples above critical
# Duration multipliers are cumulative: a 700s transport gets 0.9 * 0.8.
TVI_DURATION_PENALTIES = [
    (300, 0.9),    # 5+ minutes
    (600, 0.8),    # 10+ minutes
]

# C. FREQUENCY PATTERN SUB-SCORE
TVI_PATTERN_MIN_SAMPLES = 10
TVI_PATTERN_NEUTRAL_SCORE = 50.0
TVI_PATTERN_BASE_SCORE = 90.0
TVI_PATTERN_SPIKE_PENALTY = 2.0       # Points per percent of spike samples
TVI_PATTERN_AUTOCORR_BONUS = 10.0
TVI_SPIKE_STD_THRESHOLD = 2.0

# D. COMPOSITE WEIGHTING
TVI_COMPONENT_WEIGHTS = {
    'peak': 0.40,
    'sustained': 0.35,
    'pattern': 0.25,
}
TVI_SMOOTHNESS_NEUTRAL = 50.0
TVI_SMOOTHNESS_FACTOR = 0.1

# E. SAFETY RATING & RISK LEVEL
TVI_SAFETY_RATING_THRESHOLDS = [
    (85.0, "excellent"),
    (70.0, "good"),
    (55.0, "fair"),
    (35.0, "poor"),
]
TVI_SAFETY_RATING_FLOOR = "critical"
SAFETY_RATINGS = ["excellent", "good", "fair", "poor", "critical"]
RISK_LEVELS = ["low", "moderate", "high", "critical"]
TVI_RISK_LOW_MIN_SCORE = 75.0
TVI_RISK_LOW_MIN_PEAK = 80.0
TVI_RISK_MODERATE_MIN_SCORE = 60.0
TVI_RISK_MODERATE_MIN_PEAK = 60.0
TVI_RISK_HIGH_MIN_SCORE = 40.0
TVI_RISK_HIGH_MIN_PEAK = 40.0

# F. RECOMMENDATIONS (each check below its threshold appends both lines)
TVI_RECOMMEND_PEAK_BELOW = 60.0
TVI_RECOMMEND_SUSTAINED_BELOW = 70.0
TVI_RECOMMEND_PATTERN_BELOW = 60.0
TVI_RECOMMEND_SMOOTHNESS_BELOW = 40.0
TVI_RECOMMEND_URGENT_BELOW = 50.0
TVI_RECOMMENDATION_TEXTS = {
    'peak': [
        "Reduce transport speed and avoid sudden movements",
        "Use enhanced suspension or vibration dampening",
    ],
    'sustained': [
        "Minimize transport duration when possible",
        "Consider route optimization to avoid rough surfaces",
    ],
    'pattern': [
        "Focus on smoother acceleration and deceleration",
        "Train staff on gentle transport techniques",
    ],
    'smoothness': [
        "Review transport equipment for mechanical issues",
        "Implement additional stabilization measures",
    ],
    'urgent': [
        "IMMEDIATE REVIEW REQUIRED - Consider alternative transport methods",
        "Conduct safety assessment before next transport",
    ],
    'default': [
        "Transport conditions within acceptable safety parameters",
        "Continue current transport protocols",
    ],
}

# G. HISTORICAL COMPARISON
TVI_BASELINE_WINDOW = 10              # Most recent analyses for the unit baseline
TVI_DEFAULT_PERCENTILE_RANK = 50.0
TVI_DEFAULT_BASELINE_COMPARISON = 0.0
TVI_BATCH_MEASUREMENT_LIMIT = 500      # Newest captures considered by the pending-analysis batch

# --- IV. Dashboard Configuration ---
WEB_DASHBOARD_TIME_WINDOWS_DAYS = [7, 30, 90]
WEB_DASHBOARD_DEFAULT_TIME_WINDOW_DAYS = 30
WEB_DASHBOARD_TREND_POINTS = 20
WEB_DASHBOARD_RECENT_ANALYSES = 10
TVI_TREND_DELTA_POINTS = 5.0          # Mean shift between halves that counts as a trend
WEB_PLOT_DEFAULT_HEIGHT = 400
WEB_PLOT_COMPACT_HEIGHT = 320

# LOGGING
LOG_LEVEL = os.getenv("TVI_LOG_LEVEL", "INFO")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(module)s.%(funcName)s:%(lineno)d] - %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# COLORS
COLOR_RISK_HIGH = "#D32F2F"      # Strong Red
COLOR_RISK_MODERATE = "#FBC02D"  # Strong Yellow/Amber
COLOR_RISK_LOW = "#388E3C"       # Strong Green
COLOR_RISK_NEUTRAL = "#757575"   # Grey
COLOR_ACTION_PRIMARY = "#1976D2"
COLOR_ACTION_SECONDARY = "#546E7A"

SAFETY_RATING_COLORS = {
    "excellent": "#22C55E", "good": "#84CC16", "fair": "#EAB308",
    "poor": "#F97316", "critical": "#EF4444",
}
RISK_LEVEL_COLORS = {
    "low": "#22C55E", "moderate": "#EAB308", "high": "#F97316", "critical": "#EF4444",
}
