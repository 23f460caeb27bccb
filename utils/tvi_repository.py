# utils/tvi_repository.py
# Storage capabilities consumed by the TVI calculator.
# The calculator only sees three narrow capabilities (session lookup, historical scores, result store);
# the concrete repositories below back them with process memory (tests, demos) or a SQLite file
# (the dashboard pages and any backend service sharing the same DB).

import abc
import json
import logging
import os
import sqlite3
from contextlib import closing
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from config import app_config
from utils.core_data_processing import build_session, parse_iso_timestamps, summarize_capture
from utils.tvi_models import HistoricalScore, Session, TVIStorageError

logger = logging.getLogger(__name__)


# --- I. Capability Interfaces ---

class SessionLookup(abc.ABC):
    @abc.abstractmethod
    async def get_session(self, measurement_id: int) -> Optional[Session]:
        """Returns the measurement with its ordered samples, or None if unknown."""


class HistoricalScoresLookup(abc.ABC):
    @abc.abstractmethod
    async def get_historical_scores(self, unit_id: Optional[int] = None) -> List[HistoricalScore]:
        """Previously computed scores, all units when unit_id is None. Order is not guaranteed."""


class ResultStore(abc.ABC):
    @abc.abstractmethod
    async def save_result(self, record: Dict[str, Any]) -> int:
        """Persists one flattened TVI result and returns its stored id."""


class TVIRepository(SessionLookup, HistoricalScoresLookup, ResultStore):
    """All three capabilities plus the read-side queries the dashboard needs."""

    @abc.abstractmethod
    async def get_analysis_records(self, unit_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """Stored result rows, newest first."""

    @abc.abstractmethod
    async def list_measurements(self, limit: int = 50) -> List[Dict[str, Any]]:
        ...


# --- II. In-Memory Repository ---

class InMemoryTVIRepository(TVIRepository):
    def __init__(self, sessions: Optional[List[Session]] = None):
        self._sessions: Dict[int, Session] = {s.measurement_id: s for s in (sessions or [])}
        self._analyses: List[Dict[str, Any]] = []

    @classmethod
    def from_dataframes(cls, measurements_df: pd.DataFrame, points_df: pd.DataFrame) -> "InMemoryTVIRepository":
        """Seeds sessions from the CSV loaders' output."""
        sessions = []
        if measurements_df is not None and not measurements_df.empty:
            for _, row in measurements_df.iterrows():
                sessions.append(build_session(row, points_df))
        logger.info(f"In-memory TVI repository seeded with {len(sessions)} sessions.")
        return cls(sessions)

    def add_session(self, session: Session) -> None:
        self._sessions[session.measurement_id] = session

    async def get_session(self, measurement_id: int) -> Optional[Session]:
        return self._sessions.get(measurement_id)

    async def get_historical_scores(self, unit_id: Optional[int] = None) -> List[HistoricalScore]:
        return [
            HistoricalScore(tvi_score=rec['tvi_score'], calculated_at=rec['calculated_at'], unit_id=rec.get('unit_id'))
            for rec in self._analyses
            if unit_id is None or rec.get('unit_id') == unit_id
        ]

    async def save_result(self, record: Dict[str, Any]) -> int:
        stored = dict(record)
        stored['id'] = len(self._analyses) + 1
        stored.setdefault('calculated_at', datetime.now())
        self._analyses.append(stored)
        return stored['id']

    async def get_analysis_records(self, unit_id: Optional[int] = None) -> List[Dict[str, Any]]:
        matching = [dict(rec) for rec in self._analyses if unit_id is None or rec.get('unit_id') == unit_id]
        return sorted(matching, key=lambda rec: (rec['calculated_at'], rec['id']), reverse=True)

    async def list_measurements(self, limit: int = 50) -> List[Dict[str, Any]]:
        ordered = sorted(self._sessions.values(), key=lambda s: (s.start_time or datetime.min, s.measurement_id), reverse=True)[:limit]
        return [
            {
                'id': s.measurement_id, 'session_id': s.session_id, 'device_id': s.device_id,
                'start_time': s.start_time, 'duration': s.duration, 'peak_vibration': s.peak_vibration,
                'average_vibration': s.average_vibration, 'unit_id': s.unit_id,
            }
            for s in ordered
        ]


# --- III. SQLite Repository ---

_SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS mobile_measurements (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id TEXT NOT NULL,
        device_id TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        start_time TEXT NOT NULL,
        duration INTEGER NOT NULL,
        peak_vibration REAL NOT NULL,
        average_vibration REAL NOT NULL,
        unit_id INTEGER,
        metadata TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS mobile_measurement_points (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        measurement_id INTEGER NOT NULL REFERENCES mobile_measurements(id),
        timestamp TEXT NOT NULL,
        x REAL NOT NULL,
        y REAL NOT NULL,
        z REAL NOT NULL,
        total REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS transport_vibration_index (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        measurement_id INTEGER NOT NULL REFERENCES mobile_measurements(id),
        unit_id INTEGER,
        calculated_at TEXT NOT NULL,
        tvi_score REAL NOT NULL,
        safety_rating TEXT NOT NULL,
        peak_vibration_score REAL NOT NULL,
        sustained_vibration_score REAL NOT NULL,
        frequency_pattern_score REAL NOT NULL,
        vibration_variance REAL NOT NULL,
        vibration_std_dev REAL NOT NULL,
        smoothness_index REAL NOT NULL,
        risk_level TEXT NOT NULL,
        recommended_actions TEXT NOT NULL,
        percentile_rank REAL,
        baseline_comparison REAL,
        analysis_version TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tvi_unit_calculated ON transport_vibration_index (unit_id, calculated_at)",
]

_TVI_COLUMNS = [
    'measurement_id', 'unit_id', 'calculated_at', 'tvi_score', 'safety_rating',
    'peak_vibration_score', 'sustained_vibration_score', 'frequency_pattern_score',
    'vibration_variance', 'vibration_std_dev', 'smoothness_index', 'risk_level',
    'recommended_actions', 'percentile_rank', 'baseline_comparison', 'analysis_version',
]


def _none_if_nan(value: Any) -> Any:
    if value is None or (pd.api.types.is_scalar(value) and pd.isna(value)):
        return None
    return value


def _to_iso(value: Any) -> Optional[str]:
    """
    Fixed-width ISO text (microsecond precision) for datetimes, ISO strings and epoch-millisecond
    numbers (as the mobile capture posts them), so stored values sort and parse uniformly.
    """
    if _none_if_nan(value) is None:
        return None
    if pd.api.types.is_number(value) and not isinstance(value, bool):
        return pd.Timestamp(value, unit='ms').isoformat(timespec='microseconds')
    return pd.Timestamp(value).isoformat(timespec='microseconds')


class SQLiteTVIRepository(TVIRepository):
    """
    SQLite-backed store mirroring the mobile measurement tables.
    Each call opens its own connection, so one instance can be shared by concurrent callers;
    SQLite's own locking serializes the inserts.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or app_config.TVI_SQLITE_DB_PATH
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _ensure_schema(self) -> None:
        with closing(self._connect()) as conn, conn:
            for statement in _SCHEMA_STATEMENTS:
                conn.execute(statement)
        logger.debug(f"TVI SQLite schema ensured at {self.db_path}")

    def record_measurement(self, measurement: Dict[str, Any], readings: List[Dict[str, Any]]) -> int:
        """Stores a capture and its readings in one transaction; returns the measurement id."""
        if not readings:
            raise TVIStorageError("A measurement needs at least one reading to be recorded.")
        start_time = _to_iso(measurement.get('start_time')) or _to_iso(readings[0].get('timestamp')) or _to_iso(datetime.now())
        metadata = _none_if_nan(measurement.get('metadata'))
        if isinstance(metadata, dict):
            metadata = json.dumps(metadata)
        unit_id = _none_if_nan(measurement.get('unit_id'))
        unit_id = int(unit_id) if unit_id is not None else None
        try:
            with closing(self._connect()) as conn, conn:
                cursor = conn.execute(
                    "INSERT INTO mobile_measurements (session_id, device_id, timestamp, start_time, duration, "
                    "peak_vibration, average_vibration, unit_id, metadata) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        str(measurement['session_id']), str(measurement['device_id']),
                        _to_iso(datetime.now()), start_time, int(measurement['duration']),
                        float(measurement['peak_vibration']), float(measurement['average_vibration']),
                        unit_id, metadata,
                    ),
                )
                measurement_id = int(cursor.lastrowid)
                conn.executemany(
                    "INSERT INTO mobile_measurement_points (measurement_id, timestamp, x, y, z, total) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    [
                        (measurement_id, _to_iso(r.get('timestamp')) or start_time,
                         float(r['x']), float(r['y']), float(r['z']), float(r['total']))
                        for r in readings
                    ],
                )
        except sqlite3.Error as e_write:
            logger.error(f"Failed to record measurement for session {measurement.get('session_id')}: {e_write}", exc_info=True)
            raise TVIStorageError(f"Could not record measurement: {e_write}") from e_write
        logger.info(f"Recorded measurement {measurement_id} with {len(readings)} readings.")
        return measurement_id

    def import_dataframes(self, measurements_df: pd.DataFrame, points_df: pd.DataFrame) -> Dict[int, int]:
        """
        Records CSV-loaded captures (see load_measurements / load_measurement_points).
        Captures without readings are skipped. Returns {source id: stored measurement id}.
        """
        id_map: Dict[int, int] = {}
        if measurements_df is None or measurements_df.empty or points_df is None or points_df.empty:
            logger.warning("Nothing to import: measurements or readings DataFrame is empty.")
            return id_map
        for _, row in measurements_df.iterrows():
            source_id = int(row['id'])
            capture_points = points_df[points_df['measurement_id'] == source_id]
            if capture_points.empty:
                logger.warning(f"Measurement {source_id} has no readings; not imported.")
                continue
            measurement = row.to_dict()
            if not measurement.get('peak_vibration'):
                measurement.update(summarize_capture(capture_points))
            id_map[source_id] = self.record_measurement(measurement, capture_points.to_dict(orient='records'))
        logger.info(f"Imported {len(id_map)} of {len(measurements_df)} measurements into {self.db_path}.")
        return id_map

    async def get_session(self, measurement_id: int) -> Optional[Session]:
        with closing(self._connect()) as conn:
            measurement_df = pd.read_sql_query(
                "SELECT * FROM mobile_measurements WHERE id = ?", conn, params=(int(measurement_id),)
            )
            if measurement_df.empty:
                return None
            points_df = pd.read_sql_query(
                "SELECT measurement_id, timestamp, x, y, z, total FROM mobile_measurement_points "
                "WHERE measurement_id = ? ORDER BY timestamp, id",
                conn, params=(int(measurement_id),),
            )
        return build_session(measurement_df.iloc[0], points_df)

    async def get_historical_scores(self, unit_id: Optional[int] = None) -> List[HistoricalScore]:
        query = "SELECT tvi_score, calculated_at, unit_id FROM transport_vibration_index"
        params: tuple = ()
        if unit_id is not None:
            query += " WHERE unit_id = ?"
            params = (int(unit_id),)
        with closing(self._connect()) as conn:
            history_df = pd.read_sql_query(query, conn, params=params)
        history_df['calculated_at'] = parse_iso_timestamps(history_df['calculated_at'])
        return [
            HistoricalScore(
                tvi_score=float(row.tvi_score),
                calculated_at=row.calculated_at.to_pydatetime(),
                unit_id=None if pd.isna(row.unit_id) else int(row.unit_id),
            )
            for row in history_df.itertuples(index=False)
        ]

    async def save_result(self, record: Dict[str, Any]) -> int:
        row = dict(record)
        calculated_at = row.get('calculated_at') or datetime.now()
        row['calculated_at'] = _to_iso(calculated_at)
        values = tuple(_none_if_nan(row.get(col)) for col in _TVI_COLUMNS)
        placeholders = ", ".join("?" for _ in _TVI_COLUMNS)
        try:
            with closing(self._connect()) as conn, conn:
                cursor = conn.execute(
                    f"INSERT INTO transport_vibration_index ({', '.join(_TVI_COLUMNS)}) VALUES ({placeholders})",
                    values,
                )
                return int(cursor.lastrowid)
        except sqlite3.Error as e_write:
            logger.error(f"Failed to save TVI analysis for measurement {row.get('measurement_id')}: {e_write}", exc_info=True)
            raise TVIStorageError(f"Could not save TVI analysis: {e_write}") from e_write

    async def get_analysis_records(self, unit_id: Optional[int] = None) -> List[Dict[str, Any]]:
        query = "SELECT * FROM transport_vibration_index"
        params: tuple = ()
        if unit_id is not None:
            query += " WHERE unit_id = ?"
            params = (int(unit_id),)
        query += " ORDER BY calculated_at DESC, id DESC"
        with closing(self._connect()) as conn:
            records_df = pd.read_sql_query(query, conn, params=params)
        records_df = records_df.astype(object).where(records_df.notna(), None)
        return records_df.to_dict(orient='records')

    async def list_measurements(self, limit: int = 50) -> List[Dict[str, Any]]:
        with closing(self._connect()) as conn:
            measurements_df = pd.read_sql_query(
                "SELECT id, session_id, device_id, start_time, duration, peak_vibration, average_vibration, unit_id "
                "FROM mobile_measurements ORDER BY timestamp DESC, id DESC LIMIT ?",
                conn, params=(int(limit),),
            )
        measurements_df = measurements_df.astype(object).where(measurements_df.notna(), None)
        return measurements_df.to_dict(orient='records')
