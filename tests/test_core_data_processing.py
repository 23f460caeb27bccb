# tests/test_core_data_processing.py
# Pytest tests for the loaders and aggregations in utils.core_data_processing.

import pytest
import pandas as pd
import numpy as np

from config import app_config
from utils.core_data_processing import (
    _clean_column_names,
    _convert_to_numeric,
    build_session,
    compute_total_magnitude,
    filter_tvi_history,
    get_tvi_summary,
    get_tvi_trend_data,
    load_measurement_points,
    load_measurements,
    parse_iso_timestamps,
    summarize_capture,
    tvi_history_to_dataframe,
)

AS_OF = pd.Timestamp("2024-03-10 12:00:00")


# --- Tests for Helper Functions ---

def test_clean_column_names():
    df = pd.DataFrame(columns=['Test Column', 'Another-Col', 'allgood'])
    cleaned_df = _clean_column_names(df.copy())
    assert list(cleaned_df.columns) == ['test_column', 'another_col', 'allgood']
    assert list(_clean_column_names(pd.DataFrame()).columns) == []

def test_convert_to_numeric():
    series = pd.Series(['1', '2.5', 'abc', None])
    pd.testing.assert_series_equal(_convert_to_numeric(series.copy()), pd.Series([1.0, 2.5, np.nan, np.nan]), check_dtype=False)
    pd.testing.assert_series_equal(_convert_to_numeric(series.copy(), default_value=0), pd.Series([1.0, 2.5, 0.0, 0.0]), check_dtype=False)

def test_compute_total_magnitude():
    points = pd.DataFrame({'x': [0.3, 0.0, 'n/a'], 'y': [0.4, 0.0, 0.0], 'z': [0.0, 2.0, 1.0]})
    assert list(compute_total_magnitude(points)) == pytest.approx([0.5, 2.0, 1.0])

def test_parse_iso_timestamps_mixed_precision():
    parsed = parse_iso_timestamps(["2024-03-01T08:00:00", "2024-03-01T08:00:00.500000", "not a time", None])
    assert list(parsed[:2]) == [pd.Timestamp("2024-03-01 08:00:00"), pd.Timestamp("2024-03-01 08:00:00.5")]
    assert parsed[2:].isna().all()


# --- Loaders ---

def test_load_measurements(measurement_csv_files):
    measurements_path, _ = measurement_csv_files
    df = load_measurements(measurements_path)
    assert list(df['id']) == [11, 12, 13]
    assert {'session_id', 'device_id', 'start_time', 'duration', 'peak_vibration', 'unit_id'} <= set(df.columns)
    assert pd.api.types.is_datetime64_any_dtype(df['start_time'])
    assert list(df['duration']) == [120, 400, 0]  # unparseable duration defaults to 0
    assert df['unit_id'].isna().tolist() == [False, True, False]

def test_load_measurement_points_derives_total(measurement_csv_files):
    _, points_path = measurement_csv_files
    df = load_measurement_points(points_path)
    assert len(df) == 5
    assert pd.api.types.is_datetime64_any_dtype(df['timestamp'])
    assert df['timestamp'].min() == pd.Timestamp(1709280000000, unit='ms')
    assert list(df['total']) == pytest.approx([0.5, 0.5, 0.2, 2.0, 0.1])

def test_loaders_return_empty_for_missing_file(tmp_path):
    assert load_measurements(str(tmp_path / "missing.csv")).empty
    assert load_measurement_points(str(tmp_path / "missing_points.csv")).empty

def test_load_measurement_points_requires_axes(tmp_path):
    bad_path = tmp_path / "bad_points.csv"
    pd.DataFrame({'measurement_id': [1], 'x': [0.1]}).to_csv(bad_path, index=False)
    assert load_measurement_points(str(bad_path)).empty


# --- Session assembly ---

def test_summarize_capture():
    assert summarize_capture(pd.DataFrame({'total': [0.2, 1.0, 0.6]})) == {'peak_vibration': 1.0, 'average_vibration': pytest.approx(0.6)}
    assert summarize_capture(pd.DataFrame()) == {'peak_vibration': 0.0, 'average_vibration': 0.0}

def test_build_session_orders_samples(measurement_csv_files):
    measurements_path, points_path = measurement_csv_files
    measurements = load_measurements(measurements_path)
    points = load_measurement_points(points_path)
    session = build_session(measurements.iloc[0], points)
    assert session.measurement_id == 11
    assert session.unit_id == 7
    assert session.duration == 120.0
    assert session.peak_vibration == 0.5
    assert session.magnitudes == pytest.approx([0.5, 0.2, 0.5])
    timestamps = [s.timestamp for s in session.samples]
    assert timestamps == sorted(timestamps)

def test_build_session_orders_mixed_precision_text_timestamps():
    points = pd.DataFrame({
        'measurement_id': [5] * 5,
        'timestamp': ["2024-03-01T08:00:00", "2024-03-01T08:00:00.500000", None,
                      "2024-03-01T08:00:01", "2024-03-01T08:00:01.500000"],
        'x': 0.0, 'y': 0.0, 'z': 0.0,
        'total': [0.1, 0.2, 0.9, 0.3, 0.4],
    }).iloc[[4, 2, 0, 3, 1]]
    session = build_session({'measurement_id': 5, 'duration': 2}, points)
    # The undated reading keeps its place after every dated one.
    assert session.magnitudes == pytest.approx([0.1, 0.2, 0.3, 0.4, 0.9])
    assert session.samples[1].timestamp == pd.Timestamp("2024-03-01 08:00:00.5").to_pydatetime()
    assert session.samples[-1].timestamp is None

def test_build_session_from_dict_without_points():
    session = build_session({'measurement_id': 3, 'session_id': 'abc', 'start_time': '2024-01-01T00:00:00',
                             'duration': 30, 'peak_vibration': 0.4, 'average_vibration': 0.2, 'unit_id': None}, None)
    assert session.measurement_id == 3
    assert session.unit_id is None
    assert session.samples == ()
    assert session.device_id == "Unknown"


# --- TVI history aggregation ---

def test_tvi_history_to_dataframe(analysis_records):
    df = tvi_history_to_dataframe(analysis_records)
    assert df['calculated_at'].is_monotonic_decreasing
    assert df.iloc[0]['tvi_score'] == 92.0
    assert df.iloc[0]['recommended_actions'] == ["Continue current transport protocols"]
    assert str(df['unit_id'].dtype) == 'Int64'

def test_tvi_history_to_dataframe_empty_and_bad_actions():
    assert list(tvi_history_to_dataframe([]).columns) == [
        'id', 'measurement_id', 'unit_id', 'calculated_at', 'tvi_score', 'safety_rating', 'risk_level',
        'peak_vibration_score', 'sustained_vibration_score', 'frequency_pattern_score',
        'smoothness_index', 'recommended_actions', 'percentile_rank', 'baseline_comparison',
    ]
    df = tvi_history_to_dataframe([{'calculated_at': '2024-01-01', 'tvi_score': 50, 'unit_id': None,
                                    'recommended_actions': 'not json'}])
    assert df.iloc[0]['recommended_actions'] == ['not json']

def test_tvi_history_to_dataframe_mixed_precision_calculated_at(analysis_records):
    mixed = [dict(rec) for rec in analysis_records[:2]]
    mixed[0]['calculated_at'] = "2024-03-03T12:00:00"
    mixed[1]['calculated_at'] = "2024-03-03T12:00:00.000500"
    df = tvi_history_to_dataframe(mixed)
    assert df['calculated_at'].notna().all()
    assert list(df['id']) == [2, 1]
    assert len(filter_tvi_history(df, days=1, as_of=pd.Timestamp("2024-03-04"))) == 2

def test_filter_tvi_history(analysis_records):
    df = tvi_history_to_dataframe(analysis_records)
    assert set(filter_tvi_history(df, unit_id=9)['unit_id']) == {9}
    assert len(filter_tvi_history(df, days=3, as_of=AS_OF)) == 4
    assert len(filter_tvi_history(df, unit_id=7, days=3, as_of=AS_OF)) == 2

def test_get_tvi_summary(analysis_records):
    summary = get_tvi_summary(tvi_history_to_dataframe(analysis_records), as_of=AS_OF)
    assert summary['total_measurements'] == 8
    assert summary['average_tvi_score'] == pytest.approx(np.mean([40, 45, 50, 55, 80, 85, 90, 92]))
    assert summary['safety_distribution'] == {'excellent': 3, 'good': 1, 'fair': 1, 'poor': 2, 'critical': 1}
    assert summary['risk_distribution'] == {'low': 3, 'moderate': 1, 'high': 3, 'critical': 1}
    assert summary['trends'] == {'improving': True, 'stable': False, 'declining': False}

def test_get_tvi_summary_declining_and_stable(analysis_records):
    reversed_scores = [dict(rec, tvi_score=100 - rec['tvi_score']) for rec in analysis_records]
    declining = get_tvi_summary(tvi_history_to_dataframe(reversed_scores))
    assert declining['trends']['declining'] is True

    flat = [dict(rec, tvi_score=70.0 + (i % 2)) for i, rec in enumerate(analysis_records)]
    assert get_tvi_summary(tvi_history_to_dataframe(flat))['trends']['stable'] is True

def test_get_tvi_summary_empty_window(analysis_records):
    summary = get_tvi_summary(tvi_history_to_dataframe(analysis_records), unit_id=42, days=30, as_of=AS_OF)
    assert summary['total_measurements'] == 0
    assert summary['average_tvi_score'] == 0.0
    assert set(summary['safety_distribution']) == set(app_config.SAFETY_RATINGS)
    assert summary['trends']['stable'] is True
    assert get_tvi_summary(pd.DataFrame())['total_measurements'] == 0

def test_get_tvi_trend_data(analysis_records):
    trend = get_tvi_trend_data(tvi_history_to_dataframe(analysis_records), limit=3)
    assert list(trend.values) == [85.0, 90.0, 92.0]
    assert trend.index.is_monotonic_increasing
    assert trend.name == 'tvi_score'
    assert get_tvi_trend_data(pd.DataFrame()).empty
