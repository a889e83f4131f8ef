"""Resolves a learner's analytics from the canonical record plus optional sources.

The canonical progress record is mandatory. The sessions and attempts
listings are enhancements: whenever one fails, the same data is derived from
the canonical record instead, so the analytics can always be built from the
canonical record alone.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, List, Sequence, TypeVar, Union

from .analytics import build_chart_data, compute_statistics
from .config import settings
from .models import AnalyticsStats, AttemptRecord, ChartDataset, FinalWordEntry, SessionSummary
from .normalizer import (
    clamp_limit,
    coerce_attempts,
    final_word_analysis,
    flatten_attempts,
    normalize_sessions,
)
from .upstream import UpstreamNotFound, UpstreamRejected

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LearnerNotFound(Exception):
    def __init__(self, learner_id: str):
        super().__init__(f"No progress record for learner {learner_id}")
        self.learner_id = learner_id


# --- Fallback combinator ---
@dataclass(frozen=True)
class FallbackStep(Generic[T]):
    name: str
    run: Callable[[], Union[Awaitable[T], T]]


async def first_success(steps: Sequence[FallbackStep], label: str = "source") -> Any:
    """Runs ``steps`` in order and returns the first result that does not raise.

    A 404 from a step that has a fallback is expected and skipped quietly; any
    other failure is logged as a warning before moving on. The last step's
    error propagates.
    """
    if not steps:
        raise ValueError("first_success needs at least one step")

    last_index = len(steps) - 1
    for index, step in enumerate(steps):
        try:
            result = step.run()
            if inspect.isawaitable(result):
                result = await result
            return result
        except UpstreamNotFound:
            if index == last_index:
                raise
            logger.debug(f"{label}: {step.name} not found, using {steps[index + 1].name}")
        except Exception as exc:
            if index == last_index:
                raise
            logger.warning(
                f"{label}: {step.name} failed ({exc}), using {steps[index + 1].name}"
            )


# --- Result ---
@dataclass
class ResolvedAnalytics:
    learner_id: str
    learner: Dict[str, Any]
    raw_sessions: List[Any]
    sessions: List[SessionSummary]
    attempts: List[AttemptRecord]
    final_words: List[FinalWordEntry]
    stats: AnalyticsStats = field(init=False)
    chart_data: ChartDataset = field(init=False)

    def __post_init__(self):
        self.stats = compute_statistics(self.sessions)
        self.chart_data = build_chart_data(self.sessions, self.stats)

    def data_payload(self) -> Dict[str, Any]:
        return {
            "success": True,
            "sessions": [s.to_wire() for s in self.sessions],
            "stats": self.stats.to_wire(),
            "chartData": self.chart_data.to_wire(),
        }

    def view_payload(self) -> Dict[str, Any]:
        return {
            "learner": self.learner,
            "progress": {
                "sessions": [s.to_wire() for s in self.sessions],
                "stats": self.stats.to_wire(),
                "chartData": self.chart_data.to_wire(),
            },
            "attempts": [a.to_wire() for a in self.attempts],
            "finalWordAnalysis": [entry.to_wire() for entry in self.final_words],
        }


# --- Resolution ---
async def fetch_or_default(call: Awaitable[T], default: T, label: str) -> T:
    """Awaits ``call``; on failure logs a warning and returns ``default``."""
    try:
        return await call
    except Exception as exc:
        logger.warning(f"{label} unavailable ({exc}), using default")
        return default


async def _learner_profile(sources, learner_id: str) -> Dict[str, Any]:
    profile = await fetch_or_default(
        sources.get_learner_profile(learner_id), {}, f"profile[{learner_id}]"
    )
    return profile if isinstance(profile, dict) else {}


def merge_learner(learner_id: str, learner: Dict[str, Any], profile: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(learner)
    merged.setdefault("id", learner.get("_id", learner_id))
    for key in ("name", "age"):
        if merged.get(key) in (None, "") and profile.get(key) not in (None, ""):
            merged[key] = profile[key]
    merged.setdefault("name", "")
    merged.setdefault("age", None)
    if merged["name"] is None:
        merged["name"] = ""
    return merged


async def resolve_analytics(
    sources, learner_id: str, attempts_limit: Any = settings.ATTEMPTS_DEFAULT_LIMIT
) -> ResolvedAnalytics:
    try:
        canonical = await sources.get_canonical_progress(learner_id)
    except (UpstreamNotFound, UpstreamRejected) as exc:
        raise LearnerNotFound(learner_id) from exc

    raw_sessions = canonical.get("sessions") or []
    limit = clamp_limit(attempts_limit)

    async def listed_sessions() -> List[SessionSummary]:
        return normalize_sessions(await sources.get_sessions_list(learner_id), limit=None)

    async def listed_attempts() -> List[AttemptRecord]:
        return coerce_attempts(await sources.get_attempts_list(learner_id, limit), limit)

    sessions, attempts, profile = await asyncio.gather(
        first_success(
            [
                FallbackStep("sessions listing", listed_sessions),
                FallbackStep("canonical sessions", lambda: normalize_sessions(raw_sessions)),
            ],
            label=f"sessions[{learner_id}]",
        ),
        first_success(
            [
                FallbackStep("attempts listing", listed_attempts),
                FallbackStep("canonical attempts", lambda: flatten_attempts(raw_sessions, limit)),
            ],
            label=f"attempts[{learner_id}]",
        ),
        _learner_profile(sources, learner_id),
    )

    return ResolvedAnalytics(
        learner_id=learner_id,
        learner=merge_learner(learner_id, canonical.get("learner") or {}, profile),
        raw_sessions=raw_sessions,
        sessions=sessions,
        attempts=attempts,
        final_words=final_word_analysis(raw_sessions),
    )
