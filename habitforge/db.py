"""
Document store for users and habits: Postgres via SQLAlchemy and an in-memory
implementation for development and tests.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Literal, Optional, Protocol

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    create_engine,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from habitforge.errors import StoreUnavailable
from habitforge.streaks import CompletionUpdate, as_utc

logger = logging.getLogger(__name__)

SortOrder = Literal["newest", "oldest"]

# Fields the generic habit update may touch. Streak fields and the completion
# history are written only through save_completion.
UPDATABLE_HABIT_FIELDS = frozenset(
    {
        "title",
        "category",
        "description",
        "reminder_time",
        "image_url",
        "user_name",
        "is_public",
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass
class UserRecord:
    email: str
    name: Optional[str] = None
    photo_url: Optional[str] = None
    user_id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class HabitRecord:
    title: str
    user_email: str
    category: Optional[str] = None
    description: Optional[str] = None
    reminder_time: Optional[str] = None
    image_url: Optional[str] = None
    user_name: Optional[str] = None
    is_public: bool = True
    completion_history: list[datetime] = field(default_factory=list)
    current_streak: int = 0
    longest_streak: int = 0
    last_completed: Optional[datetime] = None
    habit_id: str = field(default_factory=_new_id)
    revision: int = 0
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass
class HabitFilter:
    user_email: Optional[str] = None
    is_public: Optional[bool] = None
    category: Optional[str] = None
    search: Optional[str] = None

    def matches(self, habit: HabitRecord) -> bool:
        if self.user_email is not None and habit.user_email != self.user_email:
            return False
        if self.is_public is not None and habit.is_public != self.is_public:
            return False
        if self.category is not None and habit.category != self.category:
            return False
        if self.search and self.search.lower() not in habit.title.lower():
            return False
        return True


class DbClient(Protocol):
    """Interface for database access."""

    def create_user(self, user: UserRecord) -> tuple[UserRecord, bool]:
        ...

    def get_user(self, email: str) -> Optional[UserRecord]:
        ...

    def create_habit(self, habit: HabitRecord) -> HabitRecord:
        ...

    def get_habit(self, habit_id: str) -> Optional[HabitRecord]:
        ...

    def list_habits(
        self,
        habit_filter: Optional[HabitFilter] = None,
        *,
        order: SortOrder = "newest",
        limit: Optional[int] = None,
    ) -> list[HabitRecord]:
        ...

    def update_habit(
        self, habit_id: str, fields: Dict[str, Any]
    ) -> Optional[HabitRecord]:
        ...

    def delete_habit(self, habit_id: str) -> bool:
        ...

    def save_completion(
        self, habit_id: str, completion: CompletionUpdate, *, expected_revision: int
    ) -> bool:
        ...


def _check_update_fields(fields: Dict[str, Any]) -> None:
    illegal = set(fields) - UPDATABLE_HABIT_FIELDS
    if illegal:
        raise ValueError(f"Fields cannot be updated directly: {sorted(illegal)}")


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.habits: Dict[str, HabitRecord] = {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            self.habits.clear()

    def create_user(self, user: UserRecord) -> tuple[UserRecord, bool]:
        with self._lock:
            existing = self.users.get(user.email)
            if existing:
                return copy.deepcopy(existing), False
            self.users[user.email] = copy.deepcopy(user)
            return copy.deepcopy(user), True

    def get_user(self, email: str) -> Optional[UserRecord]:
        user = self.users.get(email)
        return copy.deepcopy(user) if user else None

    def create_habit(self, habit: HabitRecord) -> HabitRecord:
        with self._lock:
            self.habits[habit.habit_id] = copy.deepcopy(habit)
        return copy.deepcopy(habit)

    def get_habit(self, habit_id: str) -> Optional[HabitRecord]:
        habit = self.habits.get(habit_id)
        return copy.deepcopy(habit) if habit else None

    def list_habits(
        self,
        habit_filter: Optional[HabitFilter] = None,
        *,
        order: SortOrder = "newest",
        limit: Optional[int] = None,
    ) -> list[HabitRecord]:
        habit_filter = habit_filter or HabitFilter()
        with self._lock:
            items = [h for h in self.habits.values() if habit_filter.matches(h)]
            items.sort(
                key=lambda h: (as_utc(h.created_at), h.habit_id),
                reverse=order == "newest",
            )
        if limit is not None:
            items = items[:limit]
        return [copy.deepcopy(h) for h in items]

    def update_habit(
        self, habit_id: str, fields: Dict[str, Any]
    ) -> Optional[HabitRecord]:
        _check_update_fields(fields)
        with self._lock:
            habit = self.habits.get(habit_id)
            if not habit:
                return None
            updated = replace(
                habit,
                **fields,
                revision=habit.revision + 1,
                updated_at=_utcnow(),
            )
            self.habits[habit_id] = updated
            return copy.deepcopy(updated)

    def delete_habit(self, habit_id: str) -> bool:
        with self._lock:
            return self.habits.pop(habit_id, None) is not None

    def save_completion(
        self, habit_id: str, completion: CompletionUpdate, *, expected_revision: int
    ) -> bool:
        with self._lock:
            habit = self.habits.get(habit_id)
            if not habit or habit.revision != expected_revision:
                return False
            self.habits[habit_id] = replace(
                habit,
                completion_history=list(completion.completion_history),
                current_streak=completion.current_streak,
                longest_streak=completion.longest_streak,
                last_completed=completion.last_completed,
                revision=habit.revision + 1,
                updated_at=_utcnow(),
            )
            return True


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            logger.exception("Failed to initialize habit store schema")
            raise StoreUnavailable("Habit store unavailable") from exc

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.Session() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.exception("Habit store operation failed")
            raise StoreUnavailable("Habit store unavailable") from exc

    def _to_user_record(self, row: "UserRow") -> UserRecord:
        return UserRecord(
            user_id=row.user_id,
            email=row.email,
            name=row.name,
            photo_url=row.photo_url,
            created_at=as_utc(row.created_at),
        )

    def _to_habit_record(self, row: "HabitRow") -> HabitRecord:
        return HabitRecord(
            habit_id=row.habit_id,
            title=row.title,
            user_email=row.user_email,
            category=row.category,
            description=row.description,
            reminder_time=row.reminder_time,
            image_url=row.image_url,
            user_name=row.user_name,
            is_public=row.is_public,
            completion_history=[
                as_utc(datetime.fromisoformat(ts)) for ts in row.completion_history or []
            ],
            current_streak=row.current_streak,
            longest_streak=row.longest_streak,
            last_completed=as_utc(row.last_completed) if row.last_completed else None,
            revision=row.revision,
            created_at=as_utc(row.created_at),
            updated_at=as_utc(row.updated_at),
        )

    def create_user(self, user: UserRecord) -> tuple[UserRecord, bool]:
        with self._session() as session:
            existing = session.execute(
                select(UserRow).where(UserRow.email == user.email)
            ).scalar_one_or_none()
            if existing:
                return self._to_user_record(existing), False
            row = UserRow(
                user_id=user.user_id,
                email=user.email,
                name=user.name,
                photo_url=user.photo_url,
                created_at=user.created_at,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                # Lost an insert race on the unique email; return the winner.
                session.rollback()
                winner = session.execute(
                    select(UserRow).where(UserRow.email == user.email)
                ).scalar_one()
                return self._to_user_record(winner), False
            session.refresh(row)
            return self._to_user_record(row), True

    def get_user(self, email: str) -> Optional[UserRecord]:
        with self._session() as session:
            row = session.execute(
                select(UserRow).where(UserRow.email == email)
            ).scalar_one_or_none()
            return self._to_user_record(row) if row else None

    def create_habit(self, habit: HabitRecord) -> HabitRecord:
        with self._session() as session:
            row = HabitRow(
                habit_id=habit.habit_id,
                title=habit.title,
                user_email=habit.user_email,
                category=habit.category,
                description=habit.description,
                reminder_time=habit.reminder_time,
                image_url=habit.image_url,
                user_name=habit.user_name,
                is_public=habit.is_public,
                completion_history=[
                    as_utc(ts).isoformat() for ts in habit.completion_history
                ],
                current_streak=habit.current_streak,
                longest_streak=habit.longest_streak,
                last_completed=habit.last_completed,
                revision=habit.revision,
                created_at=habit.created_at,
                updated_at=habit.updated_at,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_habit_record(row)

    def get_habit(self, habit_id: str) -> Optional[HabitRecord]:
        with self._session() as session:
            row = session.get(HabitRow, habit_id)
            if not row:
                return None
            return self._to_habit_record(row)

    def list_habits(
        self,
        habit_filter: Optional[HabitFilter] = None,
        *,
        order: SortOrder = "newest",
        limit: Optional[int] = None,
    ) -> list[HabitRecord]:
        habit_filter = habit_filter or HabitFilter()
        stmt = select(HabitRow)
        if habit_filter.user_email is not None:
            stmt = stmt.where(HabitRow.user_email == habit_filter.user_email)
        if habit_filter.is_public is not None:
            stmt = stmt.where(HabitRow.is_public == habit_filter.is_public)
        if habit_filter.category is not None:
            stmt = stmt.where(HabitRow.category == habit_filter.category)
        if habit_filter.search:
            stmt = stmt.where(
                HabitRow.title.icontains(habit_filter.search, autoescape=True)
            )
        if order == "newest":
            stmt = stmt.order_by(HabitRow.created_at.desc(), HabitRow.habit_id.desc())
        else:
            stmt = stmt.order_by(HabitRow.created_at.asc(), HabitRow.habit_id.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._session() as session:
            rows = session.execute(stmt).scalars().all()
            return [self._to_habit_record(row) for row in rows]

    def update_habit(
        self, habit_id: str, fields: Dict[str, Any]
    ) -> Optional[HabitRecord]:
        _check_update_fields(fields)
        with self._session() as session:
            row = session.get(HabitRow, habit_id)
            if not row:
                return None
            for name, value in fields.items():
                setattr(row, name, value)
            row.revision = row.revision + 1
            row.updated_at = _utcnow()
            session.commit()
            session.refresh(row)
            return self._to_habit_record(row)

    def delete_habit(self, habit_id: str) -> bool:
        with self._session() as session:
            row = session.get(HabitRow, habit_id)
            if not row:
                return False
            session.delete(row)
            session.commit()
            return True

    def save_completion(
        self, habit_id: str, completion: CompletionUpdate, *, expected_revision: int
    ) -> bool:
        stmt = (
            update(HabitRow)
            .where(
                HabitRow.habit_id == habit_id,
                HabitRow.revision == expected_revision,
            )
            .values(
                completion_history=[
                    as_utc(ts).isoformat() for ts in completion.completion_history
                ],
                current_streak=completion.current_streak,
                longest_streak=completion.longest_streak,
                last_completed=completion.last_completed,
                revision=HabitRow.revision + 1,
                updated_at=_utcnow(),
            )
        )
        with self._session() as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    user_id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=True)
    photo_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class HabitRow(Base):
    __tablename__ = "habits"

    habit_id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    user_email = Column(String, nullable=False, index=True)
    category = Column(String, nullable=True, index=True)
    description = Column(String, nullable=True)
    reminder_time = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    user_name = Column(String, nullable=True)
    is_public = Column(Boolean, nullable=False, default=True, index=True)
    completion_history = Column(JSON, nullable=False, default=list)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_completed = Column(DateTime(timezone=True), nullable=True)
    revision = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
