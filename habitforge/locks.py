"""
Per-habit mutual exclusion for completion writes.

Supports an in-process fallback for tests/local runs and a Redis-backed
implementation when several API processes share one store.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import ContextManager, Dict, Iterator, Protocol

import redis
from redis import exceptions as redis_exceptions

from habitforge.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class HabitLocks(Protocol):
    """Serializes writers of a single habit."""

    def hold(self, habit_id: str) -> ContextManager[None]:
        ...


@dataclass
class InMemoryHabitLocks:
    """
    One threading.Lock per habit id, valid within a single process.

    An entry lives only while some thread holds or waits on it, so the map
    is bounded by the number of in-flight completions.
    """

    locks: Dict[str, threading.Lock] = field(default_factory=dict)
    users: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        self._guard = threading.Lock()

    def _checkout(self, habit_id: str) -> threading.Lock:
        with self._guard:
            lock = self.locks.get(habit_id)
            if lock is None:
                lock = self.locks[habit_id] = threading.Lock()
            self.users[habit_id] = self.users.get(habit_id, 0) + 1
            return lock

    def _checkin(self, habit_id: str) -> None:
        with self._guard:
            remaining = self.users[habit_id] - 1
            if remaining:
                self.users[habit_id] = remaining
            else:
                del self.users[habit_id]
                del self.locks[habit_id]

    @contextmanager
    def hold(self, habit_id: str) -> Iterator[None]:
        lock = self._checkout(habit_id)
        try:
            with lock:
                yield
        finally:
            self._checkin(habit_id)


@dataclass
class RedisHabitLocks:
    """Redis-backed locks keyed ``<prefix>:<habit_id>``."""

    url: str
    prefix: str = "habitforge:locks"
    timeout: float = 10.0
    blocking_timeout: float = 5.0

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url)

    def key(self, habit_id: str) -> str:
        return f"{self.prefix}:{habit_id}"

    @contextmanager
    def hold(self, habit_id: str) -> Iterator[None]:
        lock = self.client.lock(
            self.key(habit_id),
            timeout=self.timeout,
            blocking_timeout=self.blocking_timeout,
        )
        try:
            acquired = lock.acquire()
        except (redis_exceptions.ConnectionError, redis_exceptions.TimeoutError) as exc:
            raise StoreUnavailable("Lock backend unavailable") from exc
        if not acquired:
            raise StoreUnavailable(f"Timed out waiting for lock on habit {habit_id}")
        try:
            yield
        finally:
            try:
                lock.release()
            except redis_exceptions.LockError:
                # Expired while held; the revision check still guards the write.
                logger.warning("Lock on habit %s expired before release", habit_id)
