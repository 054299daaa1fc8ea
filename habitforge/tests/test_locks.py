import threading
import time
import unittest
from unittest.mock import MagicMock, patch

from redis import exceptions as redis_exceptions

from habitforge.errors import StoreUnavailable
from habitforge.locks import InMemoryHabitLocks, RedisHabitLocks


class InMemoryHabitLocksTests(unittest.TestCase):
    def test_distinct_habits_get_distinct_locks(self):
        locks = InMemoryHabitLocks()
        with locks.hold("a"), locks.hold("b"):
            self.assertIsNot(locks.locks["a"], locks.locks["b"])
        self.assertEqual(locks.locks, {})

    def test_hold_excludes_other_threads(self):
        locks = InMemoryHabitLocks()
        acquired_elsewhere = []

        with locks.hold("a"):
            held = locks.locks["a"]
            thread = threading.Thread(
                target=lambda: acquired_elsewhere.append(held.acquire(blocking=False))
            )
            thread.start()
            thread.join()
        self.assertEqual(acquired_elsewhere, [False])
        self.assertFalse(held.locked())

    def test_entries_dropped_after_last_release(self):
        locks = InMemoryHabitLocks()
        first_inside = threading.Event()
        release_first = threading.Event()
        order = []

        def first():
            with locks.hold("a"):
                order.append("first")
                first_inside.set()
                release_first.wait(timeout=5)

        def second():
            with locks.hold("a"):
                order.append("second")

        t1 = threading.Thread(target=first)
        t1.start()
        self.assertTrue(first_inside.wait(timeout=5))
        t2 = threading.Thread(target=second)
        t2.start()
        for _ in range(500):
            if locks.users.get("a") == 2:
                break
            time.sleep(0.01)
        # The waiter keeps the entry alive while the holder is inside.
        self.assertEqual(locks.users.get("a"), 2)
        release_first.set()
        t1.join()
        t2.join()

        self.assertEqual(order, ["first", "second"])
        self.assertEqual(locks.locks, {})
        self.assertEqual(locks.users, {})

    def test_entry_dropped_when_body_raises(self):
        locks = InMemoryHabitLocks()
        with self.assertRaises(RuntimeError):
            with locks.hold("a"):
                raise RuntimeError("boom")
        self.assertEqual(locks.locks, {})


@patch("habitforge.locks.redis.Redis.from_url")
class RedisHabitLocksTests(unittest.TestCase):
    def test_hold_acquires_and_releases_keyed_lock(self, mock_from_url):
        client = mock_from_url.return_value
        lock = client.lock.return_value
        lock.acquire.return_value = True

        locks = RedisHabitLocks(url="redis://localhost:6379/0", prefix="hf", timeout=3, blocking_timeout=1)
        with locks.hold("habit-1"):
            pass

        client.lock.assert_called_once_with("hf:habit-1", timeout=3, blocking_timeout=1)
        lock.acquire.assert_called_once()
        lock.release.assert_called_once()

    def test_acquire_timeout_is_store_unavailable(self, mock_from_url):
        mock_from_url.return_value.lock.return_value.acquire.return_value = False
        locks = RedisHabitLocks(url="redis://localhost:6379/0")
        body = MagicMock()
        with self.assertRaises(StoreUnavailable):
            with locks.hold("habit-1"):
                body()
        body.assert_not_called()

    def test_connection_error_is_store_unavailable(self, mock_from_url):
        mock_from_url.return_value.lock.return_value.acquire.side_effect = (
            redis_exceptions.ConnectionError("down")
        )
        locks = RedisHabitLocks(url="redis://localhost:6379/0")
        with self.assertRaises(StoreUnavailable):
            with locks.hold("habit-1"):
                pass

    def test_expired_lock_on_release_does_not_raise(self, mock_from_url):
        lock = mock_from_url.return_value.lock.return_value
        lock.acquire.return_value = True
        lock.release.side_effect = redis_exceptions.LockNotOwnedError("expired")
        locks = RedisHabitLocks(url="redis://localhost:6379/0")
        with locks.hold("habit-1"):
            pass
        lock.release.assert_called_once()


if __name__ == "__main__":
    unittest.main()
