"""
Typed outcomes raised by the store, the lock backends and the habit service.

Each error carries the HTTP status and a stable ``code`` so clients can tell a
rejected completion apart from a transient store failure.
"""

from __future__ import annotations


class HabitForgeError(Exception):
    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message())

    @classmethod
    def default_message(cls) -> str:
        return cls.code.replace("_", " ").capitalize()

    @property
    def message(self) -> str:
        return str(self)


class HabitNotFound(HabitForgeError):
    status_code = 404
    code = "habit_not_found"

    def __init__(self, habit_id: str):
        self.habit_id = habit_id
        super().__init__(f"Habit {habit_id} not found")


class UserNotFound(HabitForgeError):
    status_code = 404
    code = "user_not_found"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"User {email} not found")


class AlreadyCompletedToday(HabitForgeError):
    """The habit already has a completion on the current UTC day."""

    status_code = 409
    code = "already_completed_today"

    def __init__(self, habit_id: str | None = None):
        self.habit_id = habit_id
        super().__init__("Habit already completed today")


class StoreUnavailable(HabitForgeError):
    """The store or lock backend failed; safe for clients to retry."""

    status_code = 503
    code = "store_unavailable"
    retry_after_seconds = 1
