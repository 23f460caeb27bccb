# utils/tvi_calculator.py
# Transport Vibration Index (TVI) engine for neonatal transport incubators.
# Turns the accelerometer samples of one completed transport session into:
#   - descriptive statistics (variance, std-dev, smoothness index),
#   - three sub-scores (peak, sustained, frequency pattern) and a weighted composite,
#   - a safety rating, a risk level and ordered recommendations,
#   - optional comparison against the unit's earlier analyses (percentile rank, baseline deviation).
# Storage is reached only through the injected repository capabilities (utils.tvi_repository).

import numpy as np
import logging
from typing import Dict, List, Optional, Sequence

from config import app_config
from utils.tvi_models import (
    HistoricalScore,
    InsufficientDataError,
    Session,
    SessionNotFoundError,
    TVIComponents,
    TVIResult,
    TVIStatistics,
)
from utils.tvi_repository import HistoricalScoresLookup, ResultStore, SessionLookup

logger = logging.getLogger(__name__)


# --- I. Statistical Helpers ---

def _clamp_score(value: float) -> float:
    return float(np.clip(value, app_config.TVI_SCORE_MIN, app_config.TVI_SCORE_MAX))

def calculate_statistics(values: Sequence[float]) -> TVIStatistics:
    """Population variance/std-dev of the magnitudes and the smoothness index (100 minus CV%, floored at 0)."""
    magnitudes = np.asarray(values, dtype=float)
    if magnitudes.size == 0:
        raise InsufficientDataError("Cannot compute vibration statistics without samples.")
    mean = magnitudes.mean()
    variance = float(magnitudes.var())
    std_dev = float(np.sqrt(variance))

    if mean == 0:
        # CV is undefined; an all-zero capture is perfectly smooth.
        smoothness_index = 100.0 if std_dev == 0 else 0.0
    else:
        coefficient_of_variation = std_dev / mean
        smoothness_index = max(0.0, 100.0 - coefficient_of_variation * 100.0)
    return TVIStatistics(vibration_variance=variance, vibration_std_dev=std_dev, smoothness_index=float(smoothness_index))

def calculate_autocorrelation(values: Sequence[float]) -> float:
    """Lag-1 autocorrelation normalized by (n-1) * population variance. Constant series correlate perfectly."""
    magnitudes = np.asarray(values, dtype=float)
    if magnitudes.size < 2:
        return 0.0
    variance = magnitudes.var()
    if variance == 0:
        return 1.0
    deviations = magnitudes - magnitudes.mean()
    lagged_products = np.sum(deviations[:-1] * deviations[1:])
    return float(lagged_products / ((magnitudes.size - 1) * variance))

def detect_spikes(values: Sequence[float], std_threshold: float = app_config.TVI_SPIKE_STD_THRESHOLD) -> List[int]:
    """Indices of samples deviating from the mean by more than std_threshold standard deviations."""
    magnitudes = np.asarray(values, dtype=float)
    if magnitudes.size == 0:
        return []
    deviation = np.abs(magnitudes - magnitudes.mean())
    return [int(i) for i in np.flatnonzero(deviation > std_threshold * magnitudes.std())]


# --- II. Scoring, Classification & Recommendations ---

class TransportVibrationCalculator:
    """
    Scores one transport session at a time. Holds no per-session state, so a single instance
    can serve concurrent calculations for different sessions.
    """
    def __init__(self,
                 session_lookup: Optional[SessionLookup] = None,
                 history_lookup: Optional[HistoricalScoresLookup] = None,
                 result_store: Optional[ResultStore] = None):
        self.session_lookup = session_lookup
        self.history_lookup = history_lookup
        self.result_store = result_store

        self.component_weights = dict(app_config.TVI_COMPONENT_WEIGHTS)
        self.peak_breakpoints = list(app_config.TVI_PEAK_SCORE_BREAKPOINTS)
        self.duration_penalties = list(app_config.TVI_DURATION_PENALTIES)
        self.safety_thresholds = list(app_config.TVI_SAFETY_RATING_THRESHOLDS)
        logger.info("TransportVibrationCalculator initialized (analysis version %s).", app_config.TVI_ANALYSIS_VERSION)

    @classmethod
    def from_repository(cls, repository) -> "TransportVibrationCalculator":
        """Wires all three capabilities from one repository object."""
        return cls(session_lookup=repository, history_lookup=repository, result_store=repository)

    # Sub-scores
    def calculate_peak_vibration_score(self, peak_vibration: float) -> float:
        for max_peak_g, score in self.peak_breakpoints:
            if peak_vibration <= max_peak_g:
                return float(score)
        return float(app_config.TVI_PEAK_SCORE_ABOVE_ALL)

    def calculate_sustained_vibration_score(self, values: Sequence[float], duration: float) -> float:
        magnitudes = np.asarray(values, dtype=float)
        if magnitudes.size == 0:
            raise InsufficientDataError("Cannot score sustained vibration without samples.")
        warning_pct = np.count_nonzero(magnitudes > app_config.TVI_SUSTAINED_WARNING_G) / magnitudes.size * 100
        critical_pct = np.count_nonzero(magnitudes > app_config.TVI_SUSTAINED_CRITICAL_G) / magnitudes.size * 100

        score = 100.0
        score -= warning_pct * app_config.TVI_SUSTAINED_WARNING_PENALTY
        score -= critical_pct * app_config.TVI_SUSTAINED_CRITICAL_PENALTY
        # Longer exposure compounds: every threshold the duration exceeds applies its multiplier.
        for min_duration_s, multiplier in self.duration_penalties:
            if duration > min_duration_s:
                score *= multiplier
        return float(max(0.0, score))

    def calculate_frequency_pattern_score(self, values: Sequence[float]) -> float:
        if len(values) < app_config.TVI_PATTERN_MIN_SAMPLES:
            return float(app_config.TVI_PATTERN_NEUTRAL_SCORE)
        autocorrelation = calculate_autocorrelation(values)
        spike_pct = len(detect_spikes(values)) / len(values) * 100

        score = app_config.TVI_PATTERN_BASE_SCORE
        score -= spike_pct * app_config.TVI_PATTERN_SPIKE_PENALTY      # jerky movement
        score += autocorrelation * app_config.TVI_PATTERN_AUTOCORR_BONUS  # consistent pattern
        return _clamp_score(score)

    def calculate_composite_score(self, components: TVIComponents, statistics: TVIStatistics) -> float:
        weighted_score = (
            components.peak_vibration_score * self.component_weights['peak']
            + components.sustained_vibration_score * self.component_weights['sustained']
            + components.frequency_pattern_score * self.component_weights['pattern']
        )
        smoothness_adjustment = (statistics.smoothness_index - app_config.TVI_SMOOTHNESS_NEUTRAL) * app_config.TVI_SMOOTHNESS_FACTOR
        return _clamp_score(weighted_score + smoothness_adjustment)

    # Classification
    def determine_safety_rating(self, tvi_score: float) -> str:
        for min_score, rating in self.safety_thresholds:
            if tvi_score >= min_score:
                return rating
        return app_config.TVI_SAFETY_RATING_FLOOR

    def determine_risk_level(self, tvi_score: float, peak_vibration_score: float) -> str:
        # low/moderate need both dimensions; a single acceptable dimension keeps it at "high".
        if tvi_score >= app_config.TVI_RISK_LOW_MIN_SCORE and peak_vibration_score >= app_config.TVI_RISK_LOW_MIN_PEAK:
            return "low"
        if tvi_score >= app_config.TVI_RISK_MODERATE_MIN_SCORE and peak_vibration_score >= app_config.TVI_RISK_MODERATE_MIN_PEAK:
            return "moderate"
        if tvi_score >= app_config.TVI_RISK_HIGH_MIN_SCORE or peak_vibration_score >= app_config.TVI_RISK_HIGH_MIN_PEAK:
            return "high"
        return "critical"

    def generate_recommendations(self, tvi_score: float, components: TVIComponents, statistics: TVIStatistics) -> List[str]:
        texts = app_config.TVI_RECOMMENDATION_TEXTS
        checks = [
            ('peak', components.peak_vibration_score < app_config.TVI_RECOMMEND_PEAK_BELOW),
            ('sustained', components.sustained_vibration_score < app_config.TVI_RECOMMEND_SUSTAINED_BELOW),
            ('pattern', components.frequency_pattern_score < app_config.TVI_RECOMMEND_PATTERN_BELOW),
            ('smoothness', statistics.smoothness_index < app_config.TVI_RECOMMEND_SMOOTHNESS_BELOW),
            ('urgent', tvi_score < app_config.TVI_RECOMMEND_URGENT_BELOW),
        ]
        recommendations: List[str] = []
        for key, fired in checks:
            if fired:
                recommendations.extend(texts[key])
        if not recommendations:
            recommendations.extend(texts['default'])
        return recommendations

    # Historical comparison
    @staticmethod
    def percentile_rank(tvi_score: float, historical_scores: Sequence[HistoricalScore]) -> float:
        if not historical_scores:
            return float(app_config.TVI_DEFAULT_PERCENTILE_RANK)
        lower_count = sum(1 for h in historical_scores if h.tvi_score < tvi_score)
        return lower_count / len(historical_scores) * 100

    @staticmethod
    def baseline_comparison(tvi_score: float, historical_scores: Sequence[HistoricalScore],
                            window: int = app_config.TVI_BASELINE_WINDOW) -> float:
        if not historical_scores:
            return float(app_config.TVI_DEFAULT_BASELINE_COMPARISON)
        recent = sorted(historical_scores, key=lambda h: h.calculated_at, reverse=True)[:window]
        baseline = float(np.mean([h.tvi_score for h in recent]))
        if baseline == 0:
            return float(app_config.TVI_DEFAULT_BASELINE_COMPARISON)
        return (tvi_score - baseline) / baseline * 100

    async def _calculate_percentile_rank(self, tvi_score: float, unit_id: Optional[int]) -> float:
        try:
            history = await self.history_lookup.get_historical_scores(unit_id)
            return self.percentile_rank(tvi_score, history)
        except Exception as e_history:
            logger.error(f"Error calculating percentile rank for unit {unit_id}: {e_history}", exc_info=True)
            return float(app_config.TVI_DEFAULT_PERCENTILE_RANK)

    async def _calculate_baseline_comparison(self, tvi_score: float, unit_id: int) -> float:
        try:
            history = await self.history_lookup.get_historical_scores(unit_id)
            return self.baseline_comparison(tvi_score, history)
        except Exception as e_history:
            logger.error(f"Error calculating baseline comparison for unit {unit_id}: {e_history}", exc_info=True)
            return float(app_config.TVI_DEFAULT_BASELINE_COMPARISON)

    # --- III. Public Operations ---

    def score_session(self, session: Session) -> TVIResult:
        """Pure scoring of a session, without historical comparison."""
        if not session.samples:
            raise InsufficientDataError(f"No vibration data points found for measurement {session.measurement_id}")
        magnitudes = session.magnitudes
        if len(magnitudes) < app_config.TVI_PATTERN_MIN_SAMPLES:
            logger.warning(f"Measurement {session.measurement_id} has only {len(magnitudes)} samples; "
                           f"frequency pattern score defaults to {app_config.TVI_PATTERN_NEUTRAL_SCORE}.")

        statistics = calculate_statistics(magnitudes)
        components = TVIComponents(
            peak_vibration_score=self.calculate_peak_vibration_score(session.peak_vibration),
            sustained_vibration_score=self.calculate_sustained_vibration_score(magnitudes, session.duration),
            frequency_pattern_score=self.calculate_frequency_pattern_score(magnitudes),
        )
        tvi_score = self.calculate_composite_score(components, statistics)
        return TVIResult(
            tvi_score=tvi_score,
            safety_rating=self.determine_safety_rating(tvi_score),
            risk_level=self.determine_risk_level(tvi_score, components.peak_vibration_score),
            components=components,
            statistics=statistics,
            recommendations=tuple(self.generate_recommendations(tvi_score, components, statistics)),
        )

    async def analyze_session(self, session: Session) -> TVIResult:
        """Scores a session and, when it references a unit, adds percentile rank and baseline comparison."""
        result = self.score_session(session)
        if session.unit_id is None or self.history_lookup is None:
            return result
        percentile = await self._calculate_percentile_rank(result.tvi_score, session.unit_id)
        baseline = await self._calculate_baseline_comparison(result.tvi_score, session.unit_id)
        return TVIResult(
            tvi_score=result.tvi_score,
            safety_rating=result.safety_rating,
            risk_level=result.risk_level,
            components=result.components,
            statistics=result.statistics,
            recommendations=result.recommendations,
            percentile_rank=percentile,
            baseline_comparison=baseline,
        )

    async def _load_session(self, measurement_id: int) -> Session:
        if self.session_lookup is None:
            raise RuntimeError("TransportVibrationCalculator has no session lookup configured.")
        session = await self.session_lookup.get_session(measurement_id)
        if session is None:
            raise SessionNotFoundError(f"Measurement {measurement_id} not found")
        return session

    async def calculate_tvi(self, measurement_id: int) -> TVIResult:
        """Looks the session up and analyzes it. Raises InsufficientDataError if missing or empty."""
        logger.info(f"Calculating TVI for measurement ID: {measurement_id}")
        session = await self._load_session(measurement_id)
        result = await self.analyze_session(session)
        logger.info(f"TVI for measurement {measurement_id}: {result.tvi_score:.1f} "
                    f"({result.safety_rating}, risk {result.risk_level})")
        return result

    async def save_tvi_analysis(self, measurement_id: int, result: TVIResult, unit_id: Optional[int] = None) -> int:
        """Persists a complete result keyed by measurement and optional unit; returns the stored id."""
        if self.result_store is None:
            raise RuntimeError("TransportVibrationCalculator has no result store configured.")
        stored_id = await self.result_store.save_result(result.to_record(measurement_id, unit_id))
        logger.info(f"TVI analysis saved with ID: {stored_id}")
        return stored_id

    async def calculate_and_save(self, measurement_id: int) -> TVIResult:
        """Calculate then save; nothing is written unless the calculation completes."""
        logger.info(f"Calculating and saving TVI for measurement ID: {measurement_id}")
        session = await self._load_session(measurement_id)
        result = await self.analyze_session(session)
        await self.save_tvi_analysis(measurement_id, result, session.unit_id)
        return result


# --- Batch Application ---
async def analyze_pending_measurements(repository, source_context: str = "Dashboard") -> Dict[str, List[int]]:
    """
    Scores and saves every recorded measurement that has no stored analysis yet.
    Sessions without samples are skipped and reported, not fatal for the batch.
    Returns {'analyzed': [...], 'skipped': [...]} measurement ids.
    """
    outcome: Dict[str, List[int]] = {'analyzed': [], 'skipped': []}
    measurements = await repository.list_measurements(limit=app_config.TVI_BATCH_MEASUREMENT_LIMIT)
    analyzed_ids = {rec.get('measurement_id') for rec in await repository.get_analysis_records()}
    pending_ids = [int(m['id']) for m in reversed(measurements) if m['id'] not in analyzed_ids]
    logger.info(f"({source_context}) {len(pending_ids)} measurements pending TVI analysis.")
    if not pending_ids:
        return outcome

    calculator = TransportVibrationCalculator.from_repository(repository)
    for measurement_id in pending_ids:
        try:
            await calculator.calculate_and_save(measurement_id)
            outcome['analyzed'].append(measurement_id)
        except InsufficientDataError as e_data:
            logger.warning(f"({source_context}) Skipping measurement {measurement_id}: {e_data}")
            outcome['skipped'].append(measurement_id)
    logger.info(f"({source_context}) TVI batch complete: {len(outcome['analyzed'])} analyzed, {len(outcome['skipped'])} skipped.")
    return outcome
