"""
persistence.py - Practice history store: sessions, settings and statistics
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from config import Config
from database import create_db_engine, create_session_factory, init_database, session_scope
from errors import PersistenceError
from models import PracticeSession, Setting, Statistic
from session_engine import SessionSummary, parse_duration
from stats_aggregator import RunningStatistics, StatsAggregator

logger = logging.getLogger(__name__)

STATISTICS_KEY = "global"
STORES = ["sessions", "settings", "statistics"]


class PersistenceGateway:
    """
    SQLAlchemy-backed store for session summaries, key/value settings and
    the single running-statistics record.

    Statistics are re-derived from the full session history after every
    save, delete and clear, inside the same transaction.
    """

    parse_duration = staticmethod(parse_duration)

    def __init__(self, session_factory, aggregator: Optional[StatsAggregator] = None):
        self._session_factory = session_factory
        self.aggregator = aggregator or StatsAggregator()

    def _scope(self):
        return session_scope(self._session_factory)

    # ==================== SESSIONS ====================

    def save(self, summary: SessionSummary) -> int:
        try:
            with self._scope() as db:
                row = PracticeSession.from_summary(summary)
                db.add(row)
                db.flush()
                session_id = row.id
                self._update_statistics(db)
            logger.info(f"💾 Session saved with ID: {session_id}")
            return session_id
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save session: {e}") from e

    def get(self, session_id: int) -> Optional[SessionSummary]:
        try:
            with self._scope() as db:
                row = db.get(PracticeSession, session_id)
                return row.to_summary() if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read session {session_id}: {e}") from e

    def list(self) -> List[SessionSummary]:
        """All sessions, newest first"""
        return self.get_recent_sessions(limit=None)

    def get_recent_sessions(self, limit: Optional[int] = Config.RECENT_SESSIONS_LIMIT) -> List[SessionSummary]:
        try:
            with self._scope() as db:
                query = db.query(PracticeSession).order_by(
                    PracticeSession.started_at.desc(), PracticeSession.id.desc())
                if limit is not None:
                    query = query.limit(limit)
                return [row.to_summary() for row in query.all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not list sessions: {e}") from e

    def delete(self, session_id: int) -> bool:
        try:
            with self._scope() as db:
                row = db.get(PracticeSession, session_id)
                if row is None:
                    return False
                db.delete(row)
                db.flush()
                self._update_statistics(db)
            logger.info(f"🗑️ Session deleted: {session_id}")
            return True
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not delete session {session_id}: {e}") from e

    def clear_all_sessions(self) -> None:
        try:
            with self._scope() as db:
                db.query(PracticeSession).delete()
                self._reset_statistics(db)
            logger.info("🗑️ All sessions cleared")
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not clear sessions: {e}") from e

    # ==================== STATISTICS ====================

    def _update_statistics(self, db) -> RunningStatistics:
        summaries = [row.to_summary() for row in db.query(PracticeSession).all()]
        stats = self.aggregator.recompute(summaries)

        record = db.get(Statistic, STATISTICS_KEY)
        if record is None:
            record = Statistic(key=STATISTICS_KEY)
            db.add(record)
        record.total_sessions = stats.total_sessions
        record.avg_score = stats.avg_score
        record.total_time_seconds = stats.total_time_seconds
        record.total_steps = stats.total_steps
        record.total_turns = stats.total_turns
        record.last_updated = stats.last_updated
        return stats

    def _reset_statistics(self, db) -> None:
        stats = self.aggregator.recompute([])
        db.query(Statistic).delete()
        db.add(Statistic(key=STATISTICS_KEY, total_sessions=0, avg_score=0, total_time_seconds=0,
                         total_steps=0, total_turns=0, last_updated=stats.last_updated))

    def get_statistics(self) -> RunningStatistics:
        """Stored statistics, computed and stored on first read"""
        try:
            with self._scope() as db:
                record = db.get(Statistic, STATISTICS_KEY)
                if record is None:
                    return self._update_statistics(db)
                return RunningStatistics(
                    total_sessions=record.total_sessions or 0,
                    avg_score=record.avg_score or 0,
                    total_time_seconds=record.total_time_seconds or 0,
                    total_steps=record.total_steps or 0,
                    total_turns=record.total_turns or 0,
                    last_updated=record.last_updated
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read statistics: {e}") from e

    # ==================== SETTINGS ====================

    def get_setting(self, key: str, default: Any = None) -> Any:
        try:
            with self._scope() as db:
                record = db.get(Setting, key)
                if record is None or record.value is None:
                    return default
                return record.get_value()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read setting '{key}': {e}") from e

    def save_setting(self, key: str, value: Any) -> None:
        self.save_settings({key: value})

    def get_settings(self) -> Dict[str, Any]:
        try:
            with self._scope() as db:
                return {record.key: record.get_value() for record in db.query(Setting).all()}
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read settings: {e}") from e

    def save_settings(self, settings: Dict[str, Any]) -> None:
        try:
            with self._scope() as db:
                for key, value in settings.items():
                    record = db.get(Setting, key)
                    if record is None:
                        record = Setting(key=key)
                        db.add(record)
                    record.set_value(value)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not save settings: {e}") from e

    def delete_setting(self, key: str) -> bool:
        try:
            with self._scope() as db:
                record = db.get(Setting, key)
                if record is None:
                    return False
                db.delete(record)
                return True
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not delete setting '{key}': {e}") from e

    # User preferences

    def get_user_name(self) -> str:
        return self.get_setting("userName", Config.DEFAULT_USER_NAME)

    def save_user_name(self, name: str) -> None:
        self.save_setting("userName", name)

    def get_selected_routine(self) -> str:
        return self.get_setting("selectedRoutine", Config.DEFAULT_ROUTINE)

    def set_selected_routine(self, routine: str) -> None:
        self.save_setting("selectedRoutine", routine)

    def get_permission_status(self) -> Dict[str, bool]:
        return self.get_setting("permissions", {"camera": False, "microphone": False, "motion": False})

    def save_permission_status(self, permissions: Dict[str, bool]) -> None:
        self.save_setting("permissions", permissions)

    # ==================== EXPORT / IMPORT ====================

    def export_all_data(self) -> Dict[str, Any]:
        return {
            "sessions": [summary.to_dict() for summary in self.list()],
            "settings": self.get_settings(),
            "statistics": self.get_statistics().to_dict(),
            "exportDate": datetime.now().isoformat(),
            "version": Config.VERSION
        }

    def import_data(self, data: Dict[str, Any]) -> int:
        """Replace all sessions and settings with the payload's in one transaction, returns sessions imported"""
        if not isinstance(data, dict) or not isinstance(data.get("sessions"), list):
            raise PersistenceError("Invalid data format: 'sessions' list is required")

        summaries = []
        for item in data["sessions"]:
            try:
                summary = SessionSummary.from_dict(item)
            except (TypeError, ValueError) as e:
                raise PersistenceError(f"Invalid session record: {e}") from e
            summaries.append(summary)

        settings = data.get("settings")
        try:
            with self._scope() as db:
                db.query(PracticeSession).delete()
                db.query(Setting).delete()
                for summary in summaries:
                    # Imported ids are discarded; the store assigns new ones
                    db.add(PracticeSession.from_summary(summary))
                if isinstance(settings, dict):
                    for key, value in settings.items():
                        record = Setting(key=key)
                        record.set_value(value)
                        db.add(record)
                db.flush()
                self._update_statistics(db)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not import data: {e}") from e

        logger.info(f"📥 Imported {len(summaries)} sessions")
        return len(summaries)

    def clear_all_data(self) -> None:
        try:
            with self._scope() as db:
                db.query(PracticeSession).delete()
                db.query(Setting).delete()
                self._reset_statistics(db)
            logger.info("🗑️ All data cleared")
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not clear data: {e}") from e

    def get_database_info(self) -> Dict[str, Any]:
        try:
            with self._scope() as db:
                bind = db.get_bind()
                return {
                    "name": Config.APP_NAME,
                    "version": Config.VERSION,
                    "dialect": bind.dialect.name,
                    "stores": list(STORES),
                    "sessionCount": db.query(PracticeSession).count(),
                    "settingCount": db.query(Setting).count()
                }
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not read database info: {e}") from e


def create_gateway(database_url: Optional[str] = None, aggregator: Optional[StatsAggregator] = None) -> PersistenceGateway:
    """Build engine, create tables and return a gateway bound to them"""
    engine = create_db_engine(database_url)
    init_database(engine)
    return PersistenceGateway(create_session_factory(engine), aggregator)
