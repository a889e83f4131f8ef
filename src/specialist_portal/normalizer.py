"""Ingestion boundary for upstream session and attempt records.

Upstream producers disagree on key spelling (``totalAttempts`` vs
``total_attempts``) and on types (numbers arrive as strings, dates as ISO text
or epoch milliseconds). Everything is reconciled here so that downstream code
only ever sees :class:`SessionSummary`, :class:`AttemptRecord` and
:class:`FinalWordEntry` instances. Nothing in this module raises on malformed
input.
"""
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

from .config import settings
from .models import AttemptRecord, FinalWordEntry, SessionSummary

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

SESSION_DATE_KEYS = ("sessionDate", "date", "createdAt")
ATTEMPT_LIST_KEYS = ("attempts", "attemptsList")
ATTEMPT_TIME_KEYS = ("timestamp", "createdAt")
TARGET_KEYS = ("word", "letter", "vowel")
SUCCESS_KEYS = ("success", "isCorrect", "correct")


# --- Field reconciliation ---
def snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def pick(record: Mapping[str, Any], key: str) -> Any:
    """Reads ``key`` under its camelCase or snake_case spelling."""
    value = record.get(key)
    if value is None:
        value = record.get(snake_case(key))
    return value


def pick_first(record: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = pick(record, key)
        if value is not None and value != "":
            return value
    return None


def to_number(value: Any) -> Optional[float]:
    """Coerces like JavaScript ``Number(value)``; returns None for NaN."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def number_or_zero(value: Any) -> float:
    number = to_number(value)
    return 0.0 if number is None or math.isinf(number) else number


def optional_number(value: Any) -> Optional[float]:
    """Numeric value if one is actually present, else None."""
    if value is None or isinstance(value, bool) or value == "":
        return None
    number = to_number(value)
    if number is None or math.isinf(number):
        return None
    return number


def optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text or None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parses ISO strings, datetimes and epoch milliseconds into aware datetimes."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if not isinstance(value, (str, int, float, datetime)):
        return None
    try:
        if isinstance(value, (int, float)):
            stamp = pd.to_datetime(value, unit="ms", utc=True, errors="coerce")
        else:
            stamp = pd.to_datetime(value, utc=True, errors="coerce")
    except (TypeError, ValueError, OverflowError):
        return None
    if stamp is None or pd.isna(stamp):
        return None
    return stamp.to_pydatetime()


def epoch_millis(moment: Optional[datetime]) -> float:
    if moment is None:
        return 0.0
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp() * 1000


def _as_records(raw: Any) -> List[Mapping[str, Any]]:
    if not isinstance(raw, (list, tuple)):
        return []
    return [item for item in raw if isinstance(item, Mapping)]


def clamp_limit(limit: Any) -> int:
    number = to_number(limit)
    if number is None or math.isinf(number) or limit is None:
        return settings.ATTEMPTS_DEFAULT_LIMIT
    return int(min(max(int(number), 1), settings.ATTEMPTS_MAX_LIMIT))


# --- Session Normalizer ---
def normalize_session(record: Mapping[str, Any]) -> SessionSummary:
    total = max(0.0, number_or_zero(pick(record, "totalAttempts")))
    successful = min(max(0.0, number_or_zero(pick(record, "successfulAttempts"))), total)

    supplied_failed = pick(record, "failedAttempts")
    failed = to_number(supplied_failed) if supplied_failed is not None else None
    if failed is None or math.isinf(failed):
        failed = total - successful
    failed = max(0.0, failed)

    return SessionSummary(
        session_date=parse_timestamp(pick_first(record, SESSION_DATE_KEYS)),
        duration=max(0.0, number_or_zero(pick(record, "duration"))),
        total_attempts=int(total),
        successful_attempts=int(successful),
        failed_attempts=int(failed),
        average_score=number_or_zero(pick(record, "averageScore")),
        success_rate=(successful / total) * 100 if total > 0 else 0,
    )


def normalize_sessions(
    raw: Any, limit: Optional[int] = settings.SESSION_HISTORY_LIMIT
) -> List[SessionSummary]:
    """Canonical session summaries, keeping only the newest ``limit`` entries."""
    summaries = [normalize_session(record) for record in _as_records(raw)]
    if limit is not None and len(summaries) > limit:
        summaries = summaries[-limit:]
    return summaries


# --- Attempt Flattener ---
def target_of(attempt: Mapping[str, Any]) -> Optional[str]:
    for key in TARGET_KEYS:
        value = attempt.get(key)
        if value is not None and str(value).strip():
            return str(value)
    return None


def nested_attempts(session: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    for key in ATTEMPT_LIST_KEYS:
        attempts = pick(session, key)
        if attempts is not None:
            return _as_records(attempts)
    return []


def to_attempt_record(
    attempt: Mapping[str, Any], session_date: Any = None
) -> AttemptRecord:
    if session_date is None:
        session_date = pick_first(attempt, SESSION_DATE_KEYS)
    return AttemptRecord(
        session_date=parse_timestamp(session_date),
        timestamp=parse_timestamp(pick_first(attempt, ATTEMPT_TIME_KEYS)),
        target=target_of(attempt),
        success=bool(pick_first(attempt, SUCCESS_KEYS)),
        score=optional_number(pick(attempt, "score")),
        pronunciation_score=optional_number(pick(attempt, "pronunciationScore")),
        accuracy_score=optional_number(pick(attempt, "accuracyScore")),
        fluency_score=optional_number(pick(attempt, "fluencyScore")),
        completeness_score=optional_number(pick(attempt, "completenessScore")),
        recognized_text=optional_text(pick(attempt, "recognizedText")),
        reference_text=optional_text(pick(attempt, "referenceText")),
        analysis_source=optional_text(pick(attempt, "analysisSource")),
    )


def sort_attempts(attempts: List[AttemptRecord]) -> List[AttemptRecord]:
    """Most recent first; records without a usable timestamp sort last."""
    return sorted(attempts, key=lambda a: epoch_millis(a.timestamp), reverse=True)


def flatten_attempts(raw: Any, limit: Any = settings.ATTEMPTS_DEFAULT_LIMIT) -> List[AttemptRecord]:
    attempts = []
    for session in _as_records(raw):
        session_date = pick_first(session, SESSION_DATE_KEYS)
        for attempt in nested_attempts(session):
            attempts.append(to_attempt_record(attempt, session_date))
    return sort_attempts(attempts)[: clamp_limit(limit)]


def coerce_attempts(raw: Any, limit: Any = settings.ATTEMPTS_DEFAULT_LIMIT) -> List[AttemptRecord]:
    """Typed view over an attempts listing that is already flat."""
    return [to_attempt_record(attempt) for attempt in _as_records(raw)][: clamp_limit(limit)]


# --- Final-Attempt Reducer ---
def _entry_score(attempt: Mapping[str, Any]) -> Optional[float]:
    pronunciation = optional_number(pick(attempt, "pronunciationScore"))
    if pronunciation is not None:
        return pronunciation
    return optional_number(pick(attempt, "score"))


def final_word_analysis(raw: Any) -> List[FinalWordEntry]:
    """Latest attempt per target within the most recent session only."""
    try:
        sessions = _as_records(raw)
        if not sessions:
            return []

        latest: Dict[str, Mapping[str, Any]] = {}
        latest_at: Dict[str, float] = {}
        for attempt in nested_attempts(sessions[-1]):
            target = target_of(attempt)
            if target is None:
                continue
            at = epoch_millis(parse_timestamp(pick_first(attempt, ATTEMPT_TIME_KEYS)))
            if target not in latest or at >= latest_at[target]:
                latest[target] = attempt
                latest_at[target] = at

        return [
            FinalWordEntry(
                target=target,
                recognized_text=optional_text(pick(attempt, "recognizedText")),
                score=_entry_score(attempt),
                analysis_source=optional_text(pick(attempt, "analysisSource")),
            )
            for target, attempt in latest.items()
        ]
    except Exception:
        logger.exception("Final word analysis failed; continuing without it")
        return []
