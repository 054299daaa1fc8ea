"""
Streak and statistics engine.

Pure functions over a habit's completion history and streak fields. Nothing
here touches the store or the HTTP layer; callers read a habit, hand it to
these helpers and persist whatever comes back.

All day arithmetic is done on UTC calendar dates. Timestamps without tzinfo
are treated as UTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Protocol, Sequence

from habitforge.errors import AlreadyCompletedToday

DEFAULT_WINDOW_DAYS = 30
DEFAULT_WEEK_DAYS = 7


class StreakFields(Protocol):
    """The parts of a habit document the engine reads."""

    completion_history: Sequence[datetime]
    current_streak: int
    longest_streak: int
    last_completed: Optional[datetime]


@dataclass(frozen=True)
class CompletionUpdate:
    completion_history: list[datetime]
    current_streak: int
    longest_streak: int
    last_completed: datetime


@dataclass(frozen=True)
class HabitStats:
    current_streak: int
    longest_streak: int
    total_completions: int
    completions_in_window: int
    completion_percentage: int
    last_completed: Optional[datetime]


@dataclass(frozen=True)
class UserStats:
    total_habits: int
    total_completions: int
    current_streaks: int
    longest_streak: int
    weekly_completions: int
    average_streak: int


def as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def to_day(ts: datetime) -> date:
    """Normalize a timestamp to its UTC calendar day."""
    return as_utc(ts).date()


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def completed_days(history: Iterable[datetime]) -> set[date]:
    return {to_day(ts) for ts in history}


def count_since(history: Iterable[datetime], now: datetime, days: int) -> int:
    # Timestamp-level comparison against a day-shifted "now", not day-normalized.
    cutoff = as_utc(now) - timedelta(days=days)
    return sum(1 for ts in history if as_utc(ts) >= cutoff)


def record_completion(habit: StreakFields, now: datetime) -> CompletionUpdate:
    """
    Compute the fields written when a habit is marked complete at ``now``.

    Raises AlreadyCompletedToday if the history already holds an entry on the
    same UTC day. The habit itself is left untouched.
    """
    today = to_day(now)
    days = completed_days(habit.completion_history)
    if today in days:
        raise AlreadyCompletedToday()

    if today - timedelta(days=1) in days:
        new_streak = habit.current_streak + 1
    else:
        new_streak = 1
    new_longest = max(new_streak, habit.longest_streak)

    return CompletionUpdate(
        completion_history=[*habit.completion_history, now],
        current_streak=new_streak,
        longest_streak=new_longest,
        last_completed=now,
    )


def habit_stats(
    habit: StreakFields, now: datetime, window_days: int = DEFAULT_WINDOW_DAYS
) -> HabitStats:
    in_window = count_since(habit.completion_history, now, window_days)
    percentage = round_half_up(Decimal(100 * in_window) / Decimal(window_days))
    return HabitStats(
        current_streak=habit.current_streak,
        longest_streak=habit.longest_streak,
        total_completions=len(habit.completion_history),
        completions_in_window=in_window,
        completion_percentage=percentage,
        last_completed=habit.last_completed,
    )


def user_stats(
    habits: Sequence[StreakFields], now: datetime, week_days: int = DEFAULT_WEEK_DAYS
) -> UserStats:
    total_habits = len(habits)
    current_streaks = sum(h.current_streak for h in habits)
    average = (
        round_half_up(Decimal(current_streaks) / Decimal(total_habits))
        if total_habits
        else 0
    )
    return UserStats(
        total_habits=total_habits,
        total_completions=sum(len(h.completion_history) for h in habits),
        current_streaks=current_streaks,
        longest_streak=max((h.longest_streak for h in habits), default=0),
        weekly_completions=sum(
            count_since(h.completion_history, now, week_days) for h in habits
        ),
        average_streak=average,
    )
