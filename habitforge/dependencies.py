"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone

from fastapi import Depends

from habitforge.config import get_settings
from habitforge.db import DbClient, InMemoryDbClient, PostgresDbClient
from habitforge.locks import HabitLocks, InMemoryHabitLocks, RedisHabitLocks
from habitforge.service import HabitService

logger = logging.getLogger(__name__)

_db_client: DbClient | None = None
_habit_locks: HabitLocks | None = None
_init_lock = threading.Lock()


def get_db_client() -> DbClient:
    """
    Return a singleton DB client, created on first use and kept for the process lifetime.
    """
    global _db_client
    if _db_client:
        return _db_client

    with _init_lock:
        if _db_client:
            return _db_client
        settings = get_settings()
        if settings.use_in_memory_backends or not settings.database_url:
            logger.info("Using in-memory habit store")
            _db_client = InMemoryDbClient()
        else:
            _db_client = PostgresDbClient(settings.database_url)
        return _db_client


def get_habit_locks() -> HabitLocks:
    """
    Return a singleton lock backend serializing completion writes per habit.
    """
    global _habit_locks
    if _habit_locks:
        return _habit_locks

    with _init_lock:
        if _habit_locks:
            return _habit_locks
        settings = get_settings()
        if settings.redis_url and not settings.use_in_memory_backends:
            _habit_locks = RedisHabitLocks(
                url=settings.redis_url,
                prefix=settings.redis_lock_prefix,
                timeout=settings.lock_timeout_seconds,
                blocking_timeout=settings.lock_blocking_timeout_seconds,
            )
        else:
            _habit_locks = InMemoryHabitLocks()
        return _habit_locks


def reset_clients() -> None:
    """Drop cached handles so the next request rebuilds them (tests only)."""
    global _db_client, _habit_locks
    with _init_lock:
        _db_client = None
        _habit_locks = None


def get_now() -> datetime:
    return datetime.now(timezone.utc)


def get_habit_service(
    db: DbClient = Depends(get_db_client),
    locks: HabitLocks = Depends(get_habit_locks),
) -> HabitService:
    settings = get_settings()
    return HabitService(
        db,
        locks,
        window_days=settings.stats_window_days,
        week_days=settings.weekly_window_days,
        retry_attempts=settings.completion_retry_attempts,
    )
