from datetime import datetime, timezone

from specialist_portal.analytics import compute_statistics
from specialist_portal.normalizer import (
    clamp_limit,
    coerce_attempts,
    epoch_millis,
    final_word_analysis,
    flatten_attempts,
    normalize_sessions,
    parse_timestamp,
    pick,
    sort_attempts,
    to_number,
)


def test_pick_reads_camel_and_snake_spellings():
    assert pick({"totalAttempts": 4}, "totalAttempts") == 4
    assert pick({"total_attempts": 5}, "totalAttempts") == 5
    assert pick({}, "totalAttempts") is None


def test_to_number_follows_javascript_coercion():
    assert to_number(None) == 0
    assert to_number("") == 0
    assert to_number(" 12 ") == 12
    assert to_number(True) == 1
    assert to_number("abc") is None
    assert to_number({"a": 1}) is None
    assert to_number(float("nan")) is None


def test_normalize_sessions_reconciles_both_naming_conventions(raw_sessions):
    first, second = normalize_sessions(raw_sessions)

    assert first.total_attempts == 10
    assert first.successful_attempts == 9
    assert first.failed_attempts == 1
    assert first.success_rate == 90
    assert first.session_date == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    assert second.total_attempts == 10
    assert second.successful_attempts == 3
    assert second.failed_attempts == 7
    assert second.duration == 420
    assert second.average_score == 40


def test_normalize_sessions_defaults_garbage_to_zero():
    (summary,) = normalize_sessions(
        [{"totalAttempts": "lots", "successfulAttempts": None, "averageScore": "n/a", "sessionDate": "never"}]
    )
    assert summary.total_attempts == 0
    assert summary.successful_attempts == 0
    assert summary.failed_attempts == 0
    assert summary.average_score == 0
    assert summary.success_rate == 0
    assert summary.session_date is None


def test_normalize_sessions_keeps_supplied_failed_attempts():
    (summary,) = normalize_sessions([{"totalAttempts": 10, "successfulAttempts": 4, "failedAttempts": 2}])
    assert summary.failed_attempts == 2


def test_normalize_sessions_never_derives_negative_failures():
    (summary,) = normalize_sessions([{"totalAttempts": 2, "successfulAttempts": 5}])
    assert summary.failed_attempts == 0


def test_successes_are_capped_at_total_attempts():
    sessions = normalize_sessions([{"totalAttempts": 2, "successfulAttempts": 5, "averageScore": 70}])
    (summary,) = sessions
    assert summary.successful_attempts == 2
    assert summary.success_rate == 100
    assert compute_statistics(sessions).success_rate <= 100


def test_negative_counts_are_clamped_to_zero():
    (summary,) = normalize_sessions(
        [{"totalAttempts": "-4", "successfulAttempts": -1, "failedAttempts": -3}]
    )
    assert summary.total_attempts == 0
    assert summary.successful_attempts == 0
    assert summary.failed_attempts == 0
    assert summary.success_rate == 0


def test_normalize_sessions_recomputes_success_rate_from_counts():
    (summary,) = normalize_sessions([{"totalAttempts": 4, "successfulAttempts": 1, "successRate": 99}])
    assert summary.success_rate == 25


def test_derived_failures_complete_the_total():
    raw = [{"totalAttempts": t, "successfulAttempts": s} for t, s in [(0, 0), (7, 3), (12, 12), (5, 0)]]
    for summary in normalize_sessions(raw):
        assert summary.failed_attempts + summary.successful_attempts == summary.total_attempts


def test_normalize_sessions_keeps_the_newest_thirty():
    raw = [{"totalAttempts": index} for index in range(35)]
    summaries = normalize_sessions(raw)
    assert len(summaries) == 30
    assert summaries[0].total_attempts == 5
    assert summaries[-1].total_attempts == 34


def test_normalize_sessions_is_total_over_non_lists():
    assert normalize_sessions(None) == []
    assert normalize_sessions({"sessions": []}) == []
    assert normalize_sessions("sessions") == []
    assert len(normalize_sessions([{"totalAttempts": 1}, "junk", 3])) == 1


def test_parse_timestamp_accepts_iso_and_epoch_millis():
    assert parse_timestamp("2024-01-02T03:04:05Z") == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert parse_timestamp(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(["2024-01-01"]) is None
    assert parse_timestamp(None) is None


def test_flatten_attempts_sorts_newest_first_with_missing_timestamps_last(raw_sessions):
    attempts = flatten_attempts(raw_sessions)

    assert len(attempts) == 6
    assert attempts[0].target == "dog"
    assert attempts[0].score == 70
    assert attempts[-1].timestamp is None
    assert attempts[-1].target == "a"
    stamps = [epoch_millis(a.timestamp) for a in attempts]
    assert stamps == sorted(stamps, reverse=True)


def test_flatten_attempts_annotates_parent_session_date(raw_sessions):
    attempts = flatten_attempts(raw_sessions)
    cat = next(a for a in attempts if a.target == "cat")
    assert cat.session_date == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


def test_flatten_attempts_keeps_attempts_without_target(raw_sessions):
    attempts = flatten_attempts(raw_sessions)
    assert any(a.target is None and a.score == 10 for a in attempts)


def test_flattened_order_is_stable_under_resorting(raw_sessions):
    attempts = flatten_attempts(raw_sessions)
    assert sort_attempts(attempts) == attempts


def test_flatten_attempts_caps_to_limit(raw_sessions):
    assert len(flatten_attempts(raw_sessions, limit=2)) == 2
    assert len(flatten_attempts(raw_sessions, limit=0)) == 1


def test_clamp_limit_bounds():
    assert clamp_limit(None) == 50
    assert clamp_limit("abc") == 50
    assert clamp_limit(0) == 1
    assert clamp_limit(-5) == 1
    assert clamp_limit("75") == 75
    assert clamp_limit(1000) == 200


def test_coerce_attempts_reads_flat_listing():
    attempts = coerce_attempts(
        [{"vowel": "o", "is_correct": True, "pronunciation_score": "81", "created_at": "2024-05-01T00:00:00Z"}]
    )
    assert attempts[0].target == "o"
    assert attempts[0].success is True
    assert attempts[0].pronunciation_score == 81
    assert attempts[0].timestamp is not None


def test_final_word_analysis_uses_only_the_last_session(raw_sessions):
    entries = final_word_analysis(raw_sessions)
    targets = [entry.target for entry in entries]

    assert "cat" not in targets
    assert "b" not in targets
    assert sorted(targets) == ["a", "dog"]


def test_final_word_analysis_keeps_latest_attempt_per_target(raw_sessions):
    entries = {entry.target: entry for entry in final_word_analysis(raw_sessions)}

    assert entries["dog"].score == 75
    assert entries["dog"].recognized_text == "dog"
    assert entries["dog"].analysis_source == "azure"
    assert entries["a"].score == 60


def test_final_word_analysis_later_attempt_wins_on_equal_timestamps():
    session = {
        "attempts": [
            {"word": "sun", "score": 10, "timestamp": "2024-01-01T00:00:00Z"},
            {"word": "sun", "score": 20, "timestamp": "2024-01-01T00:00:00Z"},
        ]
    }
    (entry,) = final_word_analysis([session])
    assert entry.score == 20


def test_final_word_analysis_ignores_earlier_attempt_seen_last():
    session = {
        "attempts": [
            {"word": "sun", "score": 90, "timestamp": "2024-01-02T00:00:00Z"},
            {"word": "sun", "score": 20, "timestamp": "2024-01-01T00:00:00Z"},
        ]
    }
    (entry,) = final_word_analysis([session])
    assert entry.score == 90


def test_final_word_analysis_never_repeats_a_target(raw_sessions):
    targets = [entry.target for entry in final_word_analysis(raw_sessions)]
    assert len(targets) == len(set(targets))


def test_final_word_analysis_score_is_none_without_numbers():
    (entry,) = final_word_analysis([{"attempts": [{"word": "moon", "score": "n/a"}]}])
    assert entry.score is None


def test_final_word_analysis_survives_malformed_data():
    assert final_word_analysis(None) == []
    assert final_word_analysis([{"attempts": "broken"}]) == []
    assert final_word_analysis([{"attempts": [{"word": "x", "timestamp": {"bad": True}}]}])[0].target == "x"
