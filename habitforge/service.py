"""
Habit service: wires the streak engine to the store and the per-habit locks.
"""

from __future__ import annotations

import logging
from datetime import datetime

from habitforge import streaks
from habitforge.db import DbClient, HabitFilter
from habitforge.errors import AlreadyCompletedToday, HabitNotFound, StoreUnavailable
from habitforge.locks import HabitLocks
from habitforge.streaks import CompletionUpdate, HabitStats, UserStats

logger = logging.getLogger(__name__)


class HabitService:
    def __init__(
        self,
        db: DbClient,
        locks: HabitLocks,
        *,
        window_days: int = streaks.DEFAULT_WINDOW_DAYS,
        week_days: int = streaks.DEFAULT_WEEK_DAYS,
        retry_attempts: int = 3,
    ):
        self.db = db
        self.locks = locks
        self.window_days = window_days
        self.week_days = week_days
        self.retry_attempts = retry_attempts

    def record_completion(self, habit_id: str, now: datetime) -> CompletionUpdate:
        """
        Mark a habit complete for the UTC day containing ``now``.

        Runs under the habit's lock and writes only if the stored revision is
        unchanged since the read. A lost race re-reads the habit, so a
        concurrent same-day completion surfaces as AlreadyCompletedToday.
        """
        with self.locks.hold(habit_id):
            for attempt in range(1, self.retry_attempts + 1):
                habit = self.db.get_habit(habit_id)
                if not habit:
                    raise HabitNotFound(habit_id)
                try:
                    completion = streaks.record_completion(habit, now)
                except AlreadyCompletedToday as exc:
                    exc.habit_id = habit_id
                    logger.info("Habit %s already completed today", habit_id)
                    raise
                if self.db.save_completion(
                    habit_id, completion, expected_revision=habit.revision
                ):
                    logger.info(
                        "Habit %s completed: streak=%d longest=%d",
                        habit_id,
                        completion.current_streak,
                        completion.longest_streak,
                    )
                    return completion
                logger.warning(
                    "Habit %s changed during completion (attempt %d/%d)",
                    habit_id,
                    attempt,
                    self.retry_attempts,
                )
        raise StoreUnavailable(f"Could not record completion for habit {habit_id}")

    def get_habit_stats(self, habit_id: str, now: datetime) -> HabitStats:
        habit = self.db.get_habit(habit_id)
        if not habit:
            raise HabitNotFound(habit_id)
        return streaks.habit_stats(habit, now, self.window_days)

    def get_user_stats(self, user_email: str, now: datetime) -> UserStats:
        habits = self.db.list_habits(HabitFilter(user_email=user_email))
        return streaks.user_stats(habits, now, self.week_days)
