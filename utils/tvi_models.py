# utils/tvi_models.py
# Value objects and error types shared by the TVI calculator, repositories and pages.

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from config import app_config


class TVIError(Exception):
    """Base error for the vibration index service."""


class InsufficientDataError(TVIError):
    """A session has no samples to score."""


class SessionNotFoundError(InsufficientDataError):
    """The session lookup returned nothing for the requested measurement."""


class TVIStorageError(TVIError):
    """A result or measurement could not be written to the store."""


@dataclass(frozen=True)
class Sample:
    timestamp: datetime
    x: float
    y: float
    z: float
    total: float  # precomputed magnitude in g


@dataclass(frozen=True)
class Session:
    measurement_id: int
    session_id: str
    device_id: str
    start_time: datetime
    duration: float  # seconds
    peak_vibration: float
    average_vibration: float
    unit_id: Optional[int] = None
    samples: Tuple[Sample, ...] = ()

    @property
    def magnitudes(self) -> List[float]:
        return [s.total for s in self.samples]


@dataclass(frozen=True)
class TVIComponents:
    peak_vibration_score: float
    sustained_vibration_score: float
    frequency_pattern_score: float


@dataclass(frozen=True)
class TVIStatistics:
    vibration_variance: float
    vibration_std_dev: float
    smoothness_index: float


@dataclass(frozen=True)
class HistoricalScore:
    tvi_score: float
    calculated_at: datetime
    unit_id: Optional[int] = None


@dataclass(frozen=True)
class TVIResult:
    tvi_score: float
    safety_rating: str   # excellent|good|fair|poor|critical
    risk_level: str      # low|moderate|high|critical
    components: TVIComponents
    statistics: TVIStatistics
    recommendations: Tuple[str, ...]
    percentile_rank: Optional[float] = None
    baseline_comparison: Optional[float] = None
    analysis_version: str = field(default=app_config.TVI_ANALYSIS_VERSION)

    def to_record(self, measurement_id: int, unit_id: Optional[int] = None) -> Dict[str, Any]:
        """Flat row for the transport_vibration_index store; recommendations become a JSON string."""
        return {
            'measurement_id': measurement_id,
            'unit_id': unit_id,
            'tvi_score': self.tvi_score,
            'safety_rating': self.safety_rating,
            'peak_vibration_score': self.components.peak_vibration_score,
            'sustained_vibration_score': self.components.sustained_vibration_score,
            'frequency_pattern_score': self.components.frequency_pattern_score,
            'vibration_variance': self.statistics.vibration_variance,
            'vibration_std_dev': self.statistics.vibration_std_dev,
            'smoothness_index': self.statistics.smoothness_index,
            'risk_level': self.risk_level,
            'recommended_actions': json.dumps(list(self.recommendations)),
            'percentile_rank': self.percentile_rank,
            'baseline_comparison': self.baseline_comparison,
            'analysis_version': self.analysis_version,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "TVIResult":
        actions = record.get('recommended_actions') or "[]"
        if isinstance(actions, str):
            actions = json.loads(actions)
        return cls(
            tvi_score=float(record['tvi_score']),
            safety_rating=record['safety_rating'],
            risk_level=record['risk_level'],
            components=TVIComponents(
                peak_vibration_score=float(record['peak_vibration_score']),
                sustained_vibration_score=float(record['sustained_vibration_score']),
                frequency_pattern_score=float(record['frequency_pattern_score']),
            ),
            statistics=TVIStatistics(
                vibration_variance=float(record['vibration_variance']),
                vibration_std_dev=float(record['vibration_std_dev']),
                smoothness_index=float(record['smoothness_index']),
            ),
            recommendations=tuple(actions),
            percentile_rank=record.get('percentile_rank'),
            baseline_comparison=record.get('baseline_comparison'),
            analysis_version=record.get('analysis_version') or app_config.TVI_ANALYSIS_VERSION,
        )
