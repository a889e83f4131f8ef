from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class PortalModel(BaseModel):
    """Base model: snake_case attributes, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# --- Sessions & Attempts ---
class SessionSummary(PortalModel):
    session_date: Optional[datetime] = None
    duration: float = 0
    total_attempts: int = 0
    successful_attempts: int = 0
    failed_attempts: int = 0
    average_score: float = 0
    success_rate: float = 0


class AttemptRecord(PortalModel):
    session_date: Optional[datetime] = None
    timestamp: Optional[datetime] = None
    target: Optional[str] = None
    success: bool = False
    score: Optional[float] = None
    pronunciation_score: Optional[float] = None
    accuracy_score: Optional[float] = None
    fluency_score: Optional[float] = None
    completeness_score: Optional[float] = None
    recognized_text: Optional[str] = None
    reference_text: Optional[str] = None
    analysis_source: Optional[str] = None


class FinalWordEntry(PortalModel):
    target: str
    recognized_text: Optional[str] = None
    score: Optional[float] = None
    analysis_source: Optional[str] = None


# --- Charts & Stats ---
class TimelinePoint(PortalModel):
    label: str
    value: int


class SkillBucket(PortalModel):
    skill: str
    sessions_count: int
    average_score: int


class SuccessRatio(PortalModel):
    successful: int = 0
    failed: int = 0


class DifficultyHistogram(PortalModel):
    easy: int = 0
    medium: int = 0
    hard: int = 0


class ChartDataset(PortalModel):
    timeline: List[TimelinePoint]
    skills: List[SkillBucket]
    success_ratio: SuccessRatio
    difficulty: DifficultyHistogram


class AnalyticsStats(PortalModel):
    total_sessions: int = 0
    total_attempts: int = 0
    successful_attempts: int = 0
    success_rate: int = 0
    average_score: int = 0
    skills_progress: List[SkillBucket] = []


# --- Session notices ---
class FlashNotice(PortalModel):
    category: str
    message: str


# --- Report ---
class ReportSessionRow(PortalModel):
    date: str
    total_attempts: int
    successful_attempts: int
    failed_attempts: int
    success_rate: int
    average_score: int
    duration: float


class ReportPayload(PortalModel):
    learner_id: str
    learner_name: str
    learner_age: Optional[Any] = None
    generated_at: str
    stats: AnalyticsStats
    chart_data: ChartDataset
    best_session: Optional[ReportSessionRow] = None
    worst_session: Optional[ReportSessionRow] = None
    first_session_date: str = ""
    last_session_date: str = ""
    recent_average_score: int = 0
    recent_success_rate: int = 0
    recent_sessions: List[ReportSessionRow] = []
    final_word_analysis: List[FinalWordEntry] = []


class SpecialistRow(BaseModel):
    name: str
    email: str
    phone: str
    staff_id: str
    specialization: str
    joined_date: str
