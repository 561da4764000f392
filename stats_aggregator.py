"""
stats_aggregator.py - Running statistics rebuilt from the full session history
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Optional


@dataclass(frozen=True)
class RunningStatistics:
    total_sessions: int
    avg_score: float
    total_time_seconds: int
    total_steps: int
    total_turns: int
    last_updated: Optional[datetime] = None

    @classmethod
    def empty(cls) -> "RunningStatistics":
        return cls(total_sessions=0, avg_score=0, total_time_seconds=0,
                   total_steps=0, total_turns=0, last_updated=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalSessions": self.total_sessions,
            "avgScore": self.avg_score,
            "totalTime": self.total_time_seconds,
            "totalSteps": self.total_steps,
            "totalTurns": self.total_turns,
            "lastUpdated": self.last_updated.isoformat() if self.last_updated else None
        }


class StatsAggregator:
    """
    Stateless: every call re-scans all summaries.

    Summaries only need the attributes posture_score, duration_seconds,
    steps and turns, so both SessionSummary objects and ORM rows work.
    """

    def __init__(self, clock=None):
        self._clock = clock

    def _now(self) -> datetime:
        return self._clock.now() if self._clock else datetime.now()

    def recompute(self, summaries: Iterable, now: Optional[datetime] = None) -> RunningStatistics:
        summaries = list(summaries)
        total = len(summaries)
        score_sum = sum((s.posture_score or 0) for s in summaries)

        return RunningStatistics(
            total_sessions=total,
            avg_score=score_sum / total if total else 0,
            total_time_seconds=sum((s.duration_seconds or 0) for s in summaries),
            total_steps=sum((s.steps or 0) for s in summaries),
            total_turns=sum((s.turns or 0) for s in summaries),
            last_updated=now or self._now()
        )
