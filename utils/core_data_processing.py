# utils/core_data_processing.py
# Loading, cleaning and aggregation utilities for mobile accelerometer captures and stored TVI analyses.
# Used by:
#   1. The repositories, to turn raw rows into immutable Session objects.
#   2. The dashboard pages, to summarize TVI history per unit and time window.

import streamlit as st # For @st.cache_data on the CSV loaders
import pandas as pd
import numpy as np
import os
import json
import logging
from config import app_config
from typing import Any, Dict, List, Optional

from utils.tvi_models import Sample, Session

logger = logging.getLogger(__name__)

# --- I. Core Helper Functions ---
def _clean_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """Standardizes column names: lower case, replaces spaces/hyphens with underscores."""
    if not isinstance(df, pd.DataFrame):
        logger.error(f"_clean_column_names expects a pandas DataFrame, got {type(df)}.")
        return df if df is not None else pd.DataFrame()
    df.columns = df.columns.astype(str).str.strip().str.lower().str.replace(' ', '_').str.replace('-', '_')
    return df

def _convert_to_numeric(series: pd.Series, default_value: Any = np.nan) -> pd.Series:
    """Safely converts a pandas Series to numeric, coercing errors to default_value."""
    if not isinstance(series, pd.Series):
        logger.debug(f"_convert_to_numeric given non-Series type: {type(series)}. Attempting conversion to Series.")
        series = pd.Series(series)
    return pd.to_numeric(series, errors='coerce').fillna(default_value)

def parse_iso_timestamps(values: Any) -> pd.Series:
    """
    Parses ISO-8601 text (or datetimes) into a datetime Series; unparseable values become NaT.
    Values with and without fractional seconds may be mixed in one column.
    """
    series = values if isinstance(values, pd.Series) else pd.Series(values)
    return pd.to_datetime(series, format='ISO8601', errors='coerce')

def _optional_int(value: Any) -> Optional[int]:
    if value is None or pd.isna(value):
        return None
    return int(value)


def compute_total_magnitude(points_df: pd.DataFrame) -> pd.Series:
    """Vector magnitude sqrt(x^2 + y^2 + z^2) of each reading, in g."""
    axes = points_df[['x', 'y', 'z']].apply(lambda s: _convert_to_numeric(s, 0.0))
    return np.sqrt((axes ** 2).sum(axis=1))


# --- II. Data Loading and Basic Cleaning Functions ---

@st.cache_data(ttl=app_config.CACHE_TTL_SECONDS_WEB_REPORTS, show_spinner="Loading transport measurements...")
def load_measurements(file_path: Optional[str] = None) -> pd.DataFrame:
    """
    Loads mobile measurement sessions (one row per transport capture).
    Missing or unreadable files are logged and yield an empty DataFrame.
    """
    actual_file_path = file_path or app_config.MEASUREMENTS_CSV
    logger.info(f"Attempting to load measurements from: {actual_file_path}")
    if not os.path.exists(actual_file_path):
        logger.error(f"Measurements file not found: {actual_file_path}")
        return pd.DataFrame()
    try:
        df = pd.read_csv(actual_file_path, low_memory=False)
    except pd.errors.EmptyDataError:
        logger.warning(f"Measurements file is empty: {actual_file_path}")
        return pd.DataFrame()
    except Exception as e:
        logger.error(f"Error loading measurements from {actual_file_path}: {e}", exc_info=True)
        return pd.DataFrame()

    df = _clean_column_names(df)
    if 'id' not in df.columns and 'measurement_id' in df.columns:
        df = df.rename(columns={'measurement_id': 'id'})

    for col in ['start_time', 'timestamp']:
        if col in df.columns: df[col] = parse_iso_timestamps(df[col])
    for col, default in {'duration': 0, 'peak_vibration': 0.0, 'average_vibration': 0.0}.items():
        df[col] = _convert_to_numeric(df[col], default) if col in df.columns else default
    if 'unit_id' in df.columns:
        df['unit_id'] = pd.to_numeric(df['unit_id'], errors='coerce').astype('Int64')
    else:
        df['unit_id'] = pd.Series([pd.NA] * len(df), dtype='Int64')
    for col in ['session_id', 'device_id']:
        df[col] = df[col].astype(str) if col in df.columns else "Unknown"

    df.dropna(subset=['id'], inplace=True)
    df['id'] = df['id'].astype(int)
    logger.info(f"Loaded {len(df)} measurement sessions from {actual_file_path}.")
    return df

@st.cache_data(ttl=app_config.CACHE_TTL_SECONDS_WEB_REPORTS, show_spinner="Loading accelerometer readings...")
def load_measurement_points(file_path: Optional[str] = None) -> pd.DataFrame:
    """Loads accelerometer readings; derives 'total' from the axes when the export lacks it."""
    actual_file_path = file_path or app_config.MEASUREMENT_POINTS_CSV
    logger.info(f"Attempting to load measurement points from: {actual_file_path}")
    if not os.path.exists(actual_file_path):
        logger.error(f"Measurement points file not found: {actual_file_path}")
        return pd.DataFrame()
    try:
        df = pd.read_csv(actual_file_path, low_memory=False)
    except pd.errors.EmptyDataError:
        logger.warning(f"Measurement points file is empty: {actual_file_path}")
        return pd.DataFrame()
    except Exception as e:
        logger.error(f"Error loading measurement points from {actual_file_path}: {e}", exc_info=True)
        return pd.DataFrame()

    df = _clean_column_names(df)
    required_cols = ['measurement_id', 'x', 'y', 'z']
    if not all(col in df.columns for col in required_cols):
        logger.error(f"Measurement points file missing one or more required columns: {required_cols}")
        return pd.DataFrame()

    if 'timestamp' in df.columns:
        # Mobile captures post epoch milliseconds; CSV exports may carry ISO strings instead.
        if pd.api.types.is_numeric_dtype(df['timestamp']):
            df['timestamp'] = pd.to_datetime(df['timestamp'], unit='ms', errors='coerce')
        else:
            df['timestamp'] = parse_iso_timestamps(df['timestamp'])
    else:
        df['timestamp'] = pd.NaT

    for axis in ['x', 'y', 'z']:
        df[axis] = _convert_to_numeric(df[axis], 0.0)
    if 'total' in df.columns:
        df['total'] = pd.to_numeric(df['total'], errors='coerce')
        missing_total = df['total'].isna()
        if missing_total.any():
            df.loc[missing_total, 'total'] = compute_total_magnitude(df.loc[missing_total])
    else:
        df['total'] = compute_total_magnitude(df)

    df['measurement_id'] = pd.to_numeric(df['measurement_id'], errors='coerce')
    df.dropna(subset=['measurement_id'], inplace=True)
    df['measurement_id'] = df['measurement_id'].astype(int)
    logger.info(f"Loaded {len(df)} accelerometer readings from {actual_file_path}.")
    return df


# --- III. Session Assembly ---

def summarize_capture(points_df: pd.DataFrame) -> Dict[str, float]:
    """Peak and average magnitude of a capture, as the mobile page reports them."""
    if points_df is None or points_df.empty or 'total' not in points_df.columns:
        return {'peak_vibration': 0.0, 'average_vibration': 0.0}
    totals = _convert_to_numeric(points_df['total'], 0.0)
    return {'peak_vibration': float(totals.max()), 'average_vibration': float(totals.mean())}

def build_session(row: Any, points_df: Optional[pd.DataFrame]) -> Session:
    """
    Assembles an immutable Session from one measurement row (Series or dict) and the readings table.
    Readings are filtered to the measurement and kept in chronological order; ties keep insertion order.
    """
    measurement_id = int(row.get('id', row.get('measurement_id')))

    samples: List[Sample] = []
    if points_df is not None and not points_df.empty:
        session_points = points_df[points_df['measurement_id'] == measurement_id]
        if 'timestamp' in session_points.columns:
            session_points = session_points.assign(timestamp=parse_iso_timestamps(session_points['timestamp']).values)
            # Readings without a timestamp stay after the dated ones, in their stored order.
            session_points = session_points.sort_values('timestamp', kind='mergesort', na_position='last')
        for point in session_points.itertuples(index=False):
            ts = point.timestamp if 'timestamp' in session_points.columns else pd.NaT
            samples.append(Sample(
                timestamp=None if pd.isna(ts) else pd.Timestamp(ts).to_pydatetime(),
                x=float(point.x), y=float(point.y), z=float(point.z), total=float(point.total),
            ))

    start_time = pd.to_datetime(row.get('start_time'), errors='coerce')
    return Session(
        measurement_id=measurement_id,
        session_id=str(row.get('session_id', measurement_id)),
        device_id=str(row.get('device_id', "Unknown")),
        start_time=None if pd.isna(start_time) else start_time.to_pydatetime(),
        duration=float(row.get('duration', 0) or 0),
        peak_vibration=float(row.get('peak_vibration', 0.0) or 0.0),
        average_vibration=float(row.get('average_vibration', 0.0) or 0.0),
        unit_id=_optional_int(row.get('unit_id')),
        samples=tuple(samples),
    )


# --- IV. TVI History Aggregation (Dashboard) ---

TVI_HISTORY_COLUMNS = [
    'id', 'measurement_id', 'unit_id', 'calculated_at', 'tvi_score', 'safety_rating', 'risk_level',
    'peak_vibration_score', 'sustained_vibration_score', 'frequency_pattern_score',
    'smoothness_index', 'recommended_actions', 'percentile_rank', 'baseline_comparison',
]

def _decode_actions(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return list(value)
    if value is None or (isinstance(value, float) and pd.isna(value)) or not str(value).strip():
        return []
    try:
        decoded = json.loads(str(value))
    except ValueError:
        logger.warning(f"Unreadable recommended_actions value: {str(value)[:80]}")
        return [str(value)]
    return list(decoded) if isinstance(decoded, list) else [str(decoded)]

def tvi_history_to_dataframe(records: List[Dict[str, Any]]) -> pd.DataFrame:
    """Flattens stored TVI analyses into a DataFrame sorted newest-first, recommendations decoded into lists."""
    if not records:
        return pd.DataFrame(columns=TVI_HISTORY_COLUMNS)
    df = pd.DataFrame(records)
    for col in TVI_HISTORY_COLUMNS:
        if col not in df.columns: df[col] = np.nan
    df['calculated_at'] = parse_iso_timestamps(df['calculated_at'])
    for col in ['tvi_score', 'peak_vibration_score', 'sustained_vibration_score', 'frequency_pattern_score',
                'smoothness_index', 'percentile_rank', 'baseline_comparison']:
        df[col] = pd.to_numeric(df[col], errors='coerce')
    df['unit_id'] = pd.to_numeric(df['unit_id'], errors='coerce').astype('Int64')
    df['recommended_actions'] = df['recommended_actions'].apply(_decode_actions)
    return df.sort_values('calculated_at', ascending=False, kind='mergesort').reset_index(drop=True)

def filter_tvi_history(history_df: pd.DataFrame, unit_id: Optional[int] = None, days: Optional[int] = None,
                       as_of: Optional[pd.Timestamp] = None) -> pd.DataFrame:
    """Rows of one unit (all units when None) calculated within the last `days` days of `as_of` (default now)."""
    df = history_df
    if unit_id is not None:
        df = df[(df['unit_id'] == unit_id).fillna(False).astype(bool)]
    if days is not None:
        reference_time = pd.Timestamp(as_of) if as_of is not None else pd.Timestamp.now()
        df = df[df['calculated_at'] >= reference_time - pd.Timedelta(days=days)]
    return df

def get_tvi_summary(history_df: pd.DataFrame, unit_id: Optional[int] = None,
                    days: Optional[int] = None, as_of: Optional[pd.Timestamp] = None) -> Dict[str, Any]:
    """
    Dashboard summary over stored analyses: count, average score, rating/risk distributions and trend.
    Trend compares the mean score of the newer half of the window with the older half;
    a shift beyond TVI_TREND_DELTA_POINTS counts as improving or declining.
    """
    summary: Dict[str, Any] = {
        'total_measurements': 0,
        'average_tvi_score': 0.0,
        'safety_distribution': {rating: 0 for rating in app_config.SAFETY_RATINGS},
        'risk_distribution': {level: 0 for level in app_config.RISK_LEVELS},
        'trends': {'improving': False, 'stable': True, 'declining': False},
    }
    if history_df is None or history_df.empty:
        return summary

    window_df = filter_tvi_history(history_df, unit_id, days, as_of)
    if window_df.empty:
        return summary

    summary['total_measurements'] = int(len(window_df))
    summary['average_tvi_score'] = float(window_df['tvi_score'].mean())
    for rating, count in window_df['safety_rating'].value_counts().items():
        summary['safety_distribution'][rating] = int(count)
    for level, count in window_df['risk_level'].value_counts().items():
        summary['risk_distribution'][level] = int(count)

    chronological = window_df.sort_values('calculated_at', kind='mergesort')['tvi_score'].dropna()
    if len(chronological) >= 2:
        half = len(chronological) // 2
        delta = chronological.iloc[half:].mean() - chronological.iloc[:half].mean()
        if delta > app_config.TVI_TREND_DELTA_POINTS:
            summary['trends'] = {'improving': True, 'stable': False, 'declining': False}
        elif delta < -app_config.TVI_TREND_DELTA_POINTS:
            summary['trends'] = {'improving': False, 'stable': False, 'declining': True}
    return summary

def get_tvi_trend_data(history_df: pd.DataFrame, limit: int = app_config.WEB_DASHBOARD_TREND_POINTS) -> pd.Series:
    """Most recent `limit` scores in chronological order, indexed by calculation time."""
    if history_df is None or history_df.empty:
        return pd.Series(dtype='float64')
    recent = history_df.sort_values('calculated_at', ascending=False, kind='mergesort').head(limit)
    trend = recent.sort_values('calculated_at', kind='mergesort').set_index('calculated_at')['tvi_score']
    trend.index.name = 'calculated_at'
    trend.name = 'tvi_score'
    return trend.astype(float)
