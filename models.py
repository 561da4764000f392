# SQLAlchemy models (models.py) for the practice history store
# models.py

import json

from sqlalchemy import Column, DateTime, Float, Integer, String, Text
from sqlalchemy.sql import func

from database import Base
from session_engine import SessionSummary, format_duration, parse_duration


class PracticeSession(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    routine_name = Column(String, nullable=False)
    started_at = Column(DateTime, nullable=False, index=True)
    duration = Column(String)  # "M:SS" display form
    duration_seconds = Column(Integer, nullable=True)  # missing on legacy imports
    posture_score = Column(Integer, default=0)
    avg_tempo_bpm = Column(Integer, default=0)
    steps = Column(Integer, default=0)
    turns = Column(Integer, default=0)
    energy = Column(Integer, default=0)
    posture_readings = Column(Text, nullable=True)  # JSON string
    tempo_readings = Column(Text, nullable=True)  # JSON string
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Helper methods for JSON serialization/deserialization
    def get_posture_readings(self):
        if self.posture_readings:
            return json.loads(self.posture_readings)
        return []

    def get_tempo_readings(self):
        if self.tempo_readings:
            return json.loads(self.tempo_readings)
        return []

    def set_posture_readings(self, data):
        self.posture_readings = json.dumps(list(data))

    def set_tempo_readings(self, data):
        self.tempo_readings = json.dumps(list(data))

    @property
    def total_seconds(self) -> int:
        if self.duration_seconds is not None:
            return self.duration_seconds
        return parse_duration(self.duration)

    @classmethod
    def from_summary(cls, summary: SessionSummary) -> "PracticeSession":
        row = cls(
            routine_name=summary.routine_name,
            started_at=summary.started_at,
            duration=format_duration(summary.duration_seconds),
            duration_seconds=summary.duration_seconds,
            posture_score=summary.posture_score,
            avg_tempo_bpm=summary.avg_tempo_bpm,
            steps=summary.steps,
            turns=summary.turns,
            energy=summary.energy
        )
        row.set_posture_readings(summary.posture_readings)
        row.set_tempo_readings(summary.tempo_readings)
        return row

    def to_summary(self) -> SessionSummary:
        return SessionSummary(
            routine_name=self.routine_name,
            started_at=self.started_at,
            duration_seconds=self.total_seconds,
            posture_score=self.posture_score or 0,
            avg_tempo_bpm=self.avg_tempo_bpm or 0,
            steps=self.steps or 0,
            turns=self.turns or 0,
            energy=self.energy or 0,
            posture_readings=tuple(self.get_posture_readings()),
            tempo_readings=tuple(self.get_tempo_readings()),
            session_id=self.id
        )


class Setting(Base):
    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=True)  # JSON string
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def get_value(self):
        if self.value is not None:
            return json.loads(self.value)
        return None

    def set_value(self, data):
        self.value = json.dumps(data)


class Statistic(Base):
    __tablename__ = "statistics"

    key = Column(String, primary_key=True, default="global")
    total_sessions = Column(Integer, default=0)
    avg_score = Column(Float, default=0)
    total_time_seconds = Column(Integer, default=0)
    total_steps = Column(Integer, default=0)
    total_turns = Column(Integer, default=0)
    last_updated = Column(DateTime, nullable=True)
