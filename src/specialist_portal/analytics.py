import math
from typing import List, Optional, Sequence

import pandas as pd

from .config import settings
from .models import (
    AnalyticsStats,
    ChartDataset,
    DifficultyHistogram,
    SessionSummary,
    SkillBucket,
    SuccessRatio,
    TimelinePoint,
)

SESSION_COLUMNS = [
    "session_date",
    "duration",
    "total_attempts",
    "successful_attempts",
    "failed_attempts",
    "average_score",
    "success_rate",
]
DIFFICULTY_LABELS = ["hard", "medium", "easy"]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percentage(part: float, whole: float) -> int:
    return round_half_up(part / whole * 100) if whole > 0 else 0


def sessions_frame(sessions: Sequence[SessionSummary]) -> pd.DataFrame:
    return pd.DataFrame([s.model_dump() for s in sessions], columns=SESSION_COLUMNS)


# --- Aggregates ---
def skill_buckets(total_sessions: int, average_score: int) -> List[SkillBucket]:
    # Single bucket until upstream reports per-skill scores.
    return [
        SkillBucket(
            skill="general",
            sessions_count=total_sessions,
            average_score=average_score,
        )
    ]


def compute_statistics(sessions: Sequence[SessionSummary]) -> AnalyticsStats:
    frame = sessions_frame(sessions)
    total_sessions = len(frame)
    total_attempts = int(frame["total_attempts"].sum()) if total_sessions else 0
    successful = int(frame["successful_attempts"].sum()) if total_sessions else 0
    average_score = (
        round_half_up(float(frame["average_score"].mean())) if total_sessions else 0
    )

    return AnalyticsStats(
        total_sessions=total_sessions,
        total_attempts=total_attempts,
        successful_attempts=successful,
        success_rate=percentage(successful, total_attempts),
        average_score=average_score,
        skills_progress=skill_buckets(total_sessions, average_score),
    )


def difficulty_histogram(sessions: Sequence[SessionSummary]) -> DifficultyHistogram:
    """Buckets sessions by average score: >=80 easy, >=50 medium, else hard."""
    if not sessions:
        return DifficultyHistogram()
    buckets = pd.cut(
        sessions_frame(sessions)["average_score"].astype(float),
        bins=[-math.inf, settings.MEDIUM_THRESHOLD, settings.EASY_THRESHOLD, math.inf],
        right=False,
        labels=DIFFICULTY_LABELS,
    )
    counts = buckets.value_counts()
    return DifficultyHistogram(**{label: int(counts.get(label, 0)) for label in DIFFICULTY_LABELS})


def timeline_label(session: SessionSummary, position: int) -> str:
    if session.session_date is not None:
        return session.session_date.strftime("%d/%m")
    return f"Session {position}"


def timeline(sessions: Sequence[SessionSummary]) -> List[TimelinePoint]:
    window = list(sessions)[-settings.TIMELINE_LENGTH:]
    return [
        TimelinePoint(
            label=timeline_label(session, position),
            value=round_half_up(session.average_score),
        )
        for position, session in enumerate(window, start=1)
    ]


def build_chart_data(
    sessions: Sequence[SessionSummary], stats: Optional[AnalyticsStats] = None
) -> ChartDataset:
    if stats is None:
        stats = compute_statistics(sessions)
    return ChartDataset(
        timeline=timeline(sessions),
        skills=stats.skills_progress,
        success_ratio=SuccessRatio(
            successful=stats.successful_attempts,
            failed=max(0, stats.total_attempts - stats.successful_attempts),
        ),
        difficulty=difficulty_histogram(sessions),
    )
