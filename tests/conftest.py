# tests/conftest.py
# Shared fixtures: synthetic transport sessions, stored analysis records and CSV exports.

import pytest
import pandas as pd
import numpy as np
from datetime import datetime, timedelta

from utils.tvi_models import HistoricalScore, Sample, Session
from utils.tvi_repository import InMemoryTVIRepository

SESSION_START = datetime(2024, 3, 1, 8, 0, 0)


def make_session(magnitudes, measurement_id=1, duration=60.0, peak_vibration=None, unit_id=None,
                 start_time=SESSION_START, interval_ms=100):
    """Session whose samples carry the given magnitudes on the z axis, one reading every interval_ms."""
    samples = tuple(
        Sample(timestamp=start_time + timedelta(milliseconds=i * interval_ms), x=0.0, y=0.0, z=float(m), total=float(m))
        for i, m in enumerate(magnitudes)
    )
    declared_peak = float(max(magnitudes)) if peak_vibration is None and len(magnitudes) else float(peak_vibration or 0.0)
    return Session(
        measurement_id=measurement_id,
        session_id=f"session-{measurement_id}",
        device_id="device-A",
        start_time=start_time,
        duration=float(duration),
        peak_vibration=declared_peak,
        average_vibration=float(np.mean(magnitudes)) if len(magnitudes) else 0.0,
        unit_id=unit_id,
        samples=samples,
    )


# --- Sessions ---
@pytest.fixture
def session_factory():
    return make_session

@pytest.fixture
def smooth_session():
    """Twenty identical 0.2g readings over a one-minute transport, no unit."""
    return make_session([0.2] * 20, measurement_id=1, duration=60, peak_vibration=0.2)

@pytest.fixture
def rough_session():
    """Alternating 0.5g / 2.5g readings (half above the critical threshold), 3.5g declared peak, 700s."""
    return make_session([0.5, 2.5] * 10, measurement_id=2, duration=700, peak_vibration=3.5)

@pytest.fixture
def short_session():
    """Five quiet readings; too few for the frequency pattern analysis."""
    return make_session([0.3, 0.4, 0.2, 0.5, 0.3], measurement_id=3, duration=30, peak_vibration=0.5)

@pytest.fixture
def empty_session():
    return make_session([], measurement_id=4, duration=30, peak_vibration=0.0)

@pytest.fixture
def unit_session():
    """Smooth session attached to unit 7."""
    return make_session([0.2] * 20, measurement_id=5, duration=60, peak_vibration=0.2, unit_id=7)


# --- History ---
@pytest.fixture
def unit_history():
    """Three prior analyses of unit 7, scores 60/70/80 (newest first)."""
    return [
        HistoricalScore(tvi_score=60.0, calculated_at=datetime(2024, 2, 28, 12, 0), unit_id=7),
        HistoricalScore(tvi_score=70.0, calculated_at=datetime(2024, 2, 27, 12, 0), unit_id=7),
        HistoricalScore(tvi_score=80.0, calculated_at=datetime(2024, 2, 26, 12, 0), unit_id=7),
    ]

@pytest.fixture
def in_memory_repository(smooth_session, rough_session, short_session, empty_session, unit_session):
    return InMemoryTVIRepository([smooth_session, rough_session, short_session, empty_session, unit_session])

@pytest.fixture
def analysis_records():
    """Stored analyses as the repositories return them: two units, ten days, scores drifting upward."""
    base_time = pd.Timestamp("2024-03-10 12:00:00")
    records = []
    scores = [40.0, 45.0, 50.0, 55.0, 80.0, 85.0, 90.0, 92.0]
    ratings = ["poor", "poor", "critical", "fair", "good", "excellent", "excellent", "excellent"]
    risks = ["high", "high", "critical", "high", "moderate", "low", "low", "low"]
    for i, (score, rating, risk) in enumerate(zip(scores, ratings, risks)):
        records.append({
            'id': i + 1,
            'measurement_id': 100 + i,
            'unit_id': 7 if i % 2 == 0 else 9,
            'calculated_at': (base_time - pd.Timedelta(days=len(scores) - 1 - i)).isoformat(),
            'tvi_score': score,
            'safety_rating': rating,
            'risk_level': risk,
            'peak_vibration_score': 80.0,
            'sustained_vibration_score': 90.0,
            'frequency_pattern_score': 70.0,
            'smoothness_index': 60.0,
            'recommended_actions': '["Continue current transport protocols"]',
            'percentile_rank': 50.0,
            'baseline_comparison': 0.0,
        })
    return records


# --- CSV exports ---
@pytest.fixture
def measurement_csv_files(tmp_path):
    """Measurements and readings CSVs shaped like the mobile capture export (epoch-ms timestamps, no total column)."""
    measurements = pd.DataFrame({
        'Measurement ID': [11, 12, 13],
        'Session-ID': ['s-11', 's-12', 's-13'],
        'Device ID': ['dev-1', 'dev-1', 'dev-2'],
        'Start Time': ['2024-03-01T08:00:00', '2024-03-01T09:00:00', '2024-03-01T10:00:00'],
        'Duration': [120, 400, 'bad'],
        'Peak Vibration': [0.5, 2.2, 0.4],
        'Average Vibration': [0.3, 1.1, 0.2],
        'Unit ID': [7, None, 7],
    })
    base_ms = 1709280000000
    points = pd.DataFrame({
        'measurement_id': [11, 11, 11, 12, 12],
        'timestamp': [base_ms + 200, base_ms, base_ms + 100, base_ms + 50, base_ms],
        'x': [0.0, 0.3, 0.0, 1.2, 0.0],
        'y': [0.0, 0.4, 0.0, 1.6, 0.0],
        'z': [0.5, 0.0, 0.2, 0.0, 0.1],
    })
    measurements_path = tmp_path / "mobile_measurements.csv"
    points_path = tmp_path / "mobile_measurement_points.csv"
    measurements.to_csv(measurements_path, index=False)
    points.to_csv(points_path, index=False)
    return str(measurements_path), str(points_path)
