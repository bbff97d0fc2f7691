from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from quizflow.services.games.timing import (
    countdown_start_ms, epoch_ms, open_question_window, question_duration_seconds, remaining_time,
)

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _question(show=10, answering=30):
    return SimpleNamespace(show_question_time=show, answering_time=answering)


def test_duration_uses_question_times():
    assert question_duration_seconds(_question(5, 20), 10, 30) == 25


def test_duration_falls_back_for_unset_or_zero():
    assert question_duration_seconds(_question(None, None), 10, 30) == 40
    assert question_duration_seconds(_question(0, 15), 10, 30) == 25


def test_open_question_window():
    window = open_question_window(_question(), 10, 30, now=NOW)
    assert window.start_time == NOW
    assert window.end_time == NOW + timedelta(seconds=40)
    assert window.duration_ms == 40000
    assert window.starts_at == epoch_ms(NOW)
    assert window.ends_at == window.starts_at + 40000


def test_open_question_window_accepts_naive_now():
    window = open_question_window(_question(), 10, 30, now=NOW.replace(tzinfo=None))
    assert window.starts_at == epoch_ms(NOW)


def test_remaining_time_counts_down():
    timing = remaining_time(_question(), NOW, 10, 30, now=NOW + timedelta(seconds=15))
    assert timing.remaining_ms == 25000
    assert timing.is_active is True


def test_remaining_time_never_negative():
    timing = remaining_time(_question(), NOW, 10, 30, now=NOW + timedelta(minutes=5))
    assert timing.remaining_ms == 0
    assert timing.is_active is False


def test_remaining_time_before_question_starts():
    timing = remaining_time(_question(), None, 10, 30, now=NOW)
    assert timing.remaining_ms == 0
    assert timing.is_active is False
    assert timing.server_time == NOW


def test_countdown_start_is_offset_from_now():
    assert countdown_start_ms(3000, now=NOW) == epoch_ms(NOW) + 3000
