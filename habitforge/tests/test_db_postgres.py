import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from habitforge.db import (
    HabitFilter,
    HabitRecord,
    InMemoryDbClient,
    PostgresDbClient,
    UserRecord,
)
from habitforge.errors import StoreUnavailable
from habitforge.streaks import record_completion

T0 = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)


class PostgresDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres client logic.
    """

    def setUp(self):
        self.db = PostgresDbClient("sqlite+pysqlite:///:memory:")

    def _habit(self, title="Meditate", email="ana@example.com", offset=0, **kwargs):
        created = T0 + timedelta(minutes=offset)
        return self.db.create_habit(
            HabitRecord(
                title=title,
                user_email=email,
                created_at=created,
                updated_at=created,
                **kwargs,
            )
        )

    def test_create_and_get_habit(self):
        habit = self._habit(category="health")
        fetched = self.db.get_habit(habit.habit_id)
        self.assertIsNotNone(fetched)
        self.assertEqual(fetched.title, "Meditate")
        self.assertEqual(fetched.category, "health")
        self.assertTrue(fetched.is_public)
        self.assertEqual(fetched.completion_history, [])
        self.assertEqual(fetched.current_streak, 0)
        self.assertEqual(fetched.longest_streak, 0)
        self.assertIsNone(fetched.last_completed)
        self.assertEqual(fetched.created_at, T0)

    def test_get_missing_habit(self):
        self.assertIsNone(self.db.get_habit("nope"))

    def test_create_user_is_idempotent_on_email(self):
        user, created = self.db.create_user(UserRecord(email="ana@example.com", name="Ana"))
        self.assertTrue(created)
        again, created_again = self.db.create_user(
            UserRecord(email="ana@example.com", name="Someone else")
        )
        self.assertFalse(created_again)
        self.assertEqual(again.user_id, user.user_id)
        self.assertEqual(self.db.get_user("ana@example.com").name, "Ana")
        self.assertIsNone(self.db.get_user("missing@example.com"))

    def test_list_habits_filters_and_sorts(self):
        first = self._habit(title="Morning run", offset=0, category="fitness")
        second = self._habit(title="Read", offset=1, is_public=False)
        third = self._habit(title="Evening Run", email="bo@example.com", offset=2, category="fitness")

        newest = self.db.list_habits()
        self.assertEqual(
            [h.habit_id for h in newest],
            [third.habit_id, second.habit_id, first.habit_id],
        )
        oldest = self.db.list_habits(order="oldest", limit=2)
        self.assertEqual([h.habit_id for h in oldest], [first.habit_id, second.habit_id])

        mine = self.db.list_habits(HabitFilter(user_email="ana@example.com"))
        self.assertEqual({h.habit_id for h in mine}, {first.habit_id, second.habit_id})

        public_runs = self.db.list_habits(HabitFilter(is_public=True, search="run"))
        self.assertEqual({h.habit_id for h in public_runs}, {first.habit_id, third.habit_id})

        fitness = self.db.list_habits(HabitFilter(category="fitness", user_email="bo@example.com"))
        self.assertEqual([h.habit_id for h in fitness], [third.habit_id])

    def test_search_treats_wildcards_literally(self):
        memory = InMemoryDbClient()
        for store in (self.db, memory):
            for title in ("Walk 10 min", "Save 100% effort"):
                store.create_habit(
                    HabitRecord(title=title, user_email="ana@example.com", created_at=T0)
                )

        for search, expected in (("%", ["Save 100% effort"]), ("10_", []), ("10", None)):
            sql_titles = sorted(
                h.title for h in self.db.list_habits(HabitFilter(search=search))
            )
            memory_titles = sorted(
                h.title for h in memory.list_habits(HabitFilter(search=search))
            )
            self.assertEqual(sql_titles, memory_titles, search)
            if expected is not None:
                self.assertEqual(sql_titles, expected, search)

    def test_same_instant_ties_order_like_in_memory_store(self):
        memory = InMemoryDbClient()
        ids = ["c" * 32, "a" * 32, "b" * 32]
        for store in (self.db, memory):
            for habit_id in ids:
                store.create_habit(
                    HabitRecord(
                        title="Stretch",
                        user_email="ana@example.com",
                        habit_id=habit_id,
                        created_at=T0,
                        updated_at=T0,
                    )
                )

        for order in ("newest", "oldest"):
            sql_ids = [h.habit_id for h in self.db.list_habits(order=order)]
            memory_ids = [h.habit_id for h in memory.list_habits(order=order)]
            self.assertEqual(sql_ids, memory_ids, order)
        self.assertEqual(
            [h.habit_id for h in self.db.list_habits(order="oldest")], sorted(ids)
        )

    def test_update_habit_bumps_revision(self):
        habit = self._habit()
        updated = self.db.update_habit(habit.habit_id, {"title": "Meditate daily", "is_public": False})
        self.assertEqual(updated.title, "Meditate daily")
        self.assertFalse(updated.is_public)
        self.assertEqual(updated.revision, habit.revision + 1)
        self.assertIsNone(self.db.update_habit("nope", {"title": "x"}))

    def test_update_habit_rejects_streak_fields(self):
        habit = self._habit()
        with self.assertRaises(ValueError):
            self.db.update_habit(habit.habit_id, {"current_streak": 40})
        self.assertEqual(self.db.get_habit(habit.habit_id).current_streak, 0)

    def test_delete_habit(self):
        habit = self._habit()
        self.assertTrue(self.db.delete_habit(habit.habit_id))
        self.assertFalse(self.db.delete_habit(habit.habit_id))
        self.assertIsNone(self.db.get_habit(habit.habit_id))

    def test_save_completion_is_conditional_on_revision(self):
        habit = self._habit()
        now = T0 + timedelta(days=1, hours=3)
        completion = record_completion(habit, now)

        self.assertTrue(
            self.db.save_completion(habit.habit_id, completion, expected_revision=habit.revision)
        )
        stored = self.db.get_habit(habit.habit_id)
        self.assertEqual(stored.completion_history, [now])
        self.assertEqual(stored.current_streak, 1)
        self.assertEqual(stored.longest_streak, 1)
        self.assertEqual(stored.last_completed, now)
        self.assertEqual(stored.revision, habit.revision + 1)

        # Stale revision: the second writer loses.
        self.assertFalse(
            self.db.save_completion(habit.habit_id, completion, expected_revision=habit.revision)
        )
        self.assertEqual(len(self.db.get_habit(habit.habit_id).completion_history), 1)

    def test_driver_errors_become_store_unavailable(self):
        with patch.object(
            self.db,
            "Session",
            side_effect=OperationalError("SELECT 1", {}, Exception("connection refused")),
        ):
            with self.assertRaises(StoreUnavailable):
                self.db.get_habit("any")


if __name__ == "__main__":
    unittest.main()
