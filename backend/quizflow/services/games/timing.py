"""Authoritative server-side question timing.

Durations are stored as whole seconds and only turned into milliseconds for
responses and event payloads. Clients never supply timing.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from quizflow.models import as_utc, utcnow

MS_PER_SECOND = 1000


@dataclass(frozen=True)
class QuestionWindow:
    start_time: datetime
    end_time: datetime
    starts_at: int
    ends_at: int
    duration_ms: int


@dataclass(frozen=True)
class RemainingTime:
    server_time: datetime
    remaining_ms: int
    is_active: bool


def epoch_ms(value: datetime) -> int:
    return int(as_utc(value).timestamp() * MS_PER_SECOND)


def question_duration_seconds(question, default_show: int, default_answering: int) -> int:
    # Zero counts as unset, matching how authored quizzes leave these blank
    show = question.show_question_time or default_show
    answering = question.answering_time or default_answering
    return show + answering


def open_question_window(question, default_show: int, default_answering: int,
                         now: Optional[datetime] = None) -> QuestionWindow:
    now = as_utc(now) if now is not None else utcnow()
    duration_ms = question_duration_seconds(question, default_show, default_answering) * MS_PER_SECOND
    starts_at = epoch_ms(now)
    return QuestionWindow(
        start_time=now,
        end_time=now + timedelta(milliseconds=duration_ms),
        starts_at=starts_at,
        ends_at=starts_at + duration_ms,
        duration_ms=duration_ms,
    )


def remaining_time(question, start_time: Optional[datetime], default_show: int,
                   default_answering: int, now: Optional[datetime] = None) -> RemainingTime:
    now = as_utc(now) if now is not None else utcnow()
    if start_time is None:
        return RemainingTime(server_time=now, remaining_ms=0, is_active=False)
    total_ms = question_duration_seconds(question, default_show, default_answering) * MS_PER_SECOND
    elapsed_ms = epoch_ms(now) - epoch_ms(start_time)
    remaining_ms = max(0, total_ms - elapsed_ms)
    return RemainingTime(server_time=now, remaining_ms=remaining_ms, is_active=remaining_ms > 0)


def countdown_start_ms(lead_ms: int, now: Optional[datetime] = None) -> int:
    now = as_utc(now) if now is not None else utcnow()
    return epoch_ms(now) + lead_ms
