"""
Pydantic schemas for the HabitForge API. Fields are camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from habitforge.db import HabitRecord, UserRecord
from habitforge.streaks import CompletionUpdate, HabitStats, UserStats


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(ApiModel):
    status: Literal["OK"]
    timestamp: datetime


class ErrorResponse(ApiModel):
    detail: str
    code: str


class UserCreate(ApiModel):
    email: str = Field(..., min_length=3, max_length=320)
    name: Optional[str] = Field(default=None, max_length=200)
    photo_url: Optional[str] = Field(default=None, max_length=2048)


class UserResponse(ApiModel):
    id: str
    email: str
    name: Optional[str] = None
    photo_url: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserResponse":
        return cls(
            id=user.user_id,
            email=user.email,
            name=user.name,
            photo_url=user.photo_url,
            created_at=user.created_at,
        )


class UserCreateResponse(ApiModel):
    created: bool
    user: UserResponse


class HabitCreate(ApiModel):
    title: str = Field(..., min_length=1, max_length=200)
    user_email: str = Field(..., min_length=3, max_length=320)
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    reminder_time: Optional[str] = Field(default=None, max_length=32)
    image_url: Optional[str] = Field(default=None, max_length=2048)
    user_name: Optional[str] = Field(default=None, max_length=200)
    is_public: bool = True


class HabitUpdate(ApiModel):
    """Descriptive fields only; streak fields and history are rejected."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    is_public: Optional[bool] = None
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=2000)
    reminder_time: Optional[str] = Field(default=None, max_length=32)
    image_url: Optional[str] = Field(default=None, max_length=2048)
    user_name: Optional[str] = Field(default=None, max_length=200)

    @field_validator("title", "is_public")
    @classmethod
    def reject_null(cls, value):
        # Omit the field to leave it unchanged; null is not a valid value.
        if value is None:
            raise ValueError("may not be null")
        return value


class HabitResponse(ApiModel):
    id: str
    title: str
    user_email: str
    category: Optional[str] = None
    description: Optional[str] = None
    reminder_time: Optional[str] = None
    image_url: Optional[str] = None
    user_name: Optional[str] = None
    is_public: bool
    completion_history: list[datetime]
    current_streak: int
    longest_streak: int
    last_completed: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, habit: HabitRecord) -> "HabitResponse":
        return cls(
            id=habit.habit_id,
            title=habit.title,
            user_email=habit.user_email,
            category=habit.category,
            description=habit.description,
            reminder_time=habit.reminder_time,
            image_url=habit.image_url,
            user_name=habit.user_name,
            is_public=habit.is_public,
            completion_history=habit.completion_history,
            current_streak=habit.current_streak,
            longest_streak=habit.longest_streak,
            last_completed=habit.last_completed,
            created_at=habit.created_at,
            updated_at=habit.updated_at,
        )


class ListHabitsResponse(ApiModel):
    habits: list[HabitResponse]


class CompletionResponse(ApiModel):
    current_streak: int
    longest_streak: int
    last_completed: datetime

    @classmethod
    def from_update(cls, completion: CompletionUpdate) -> "CompletionResponse":
        return cls(
            current_streak=completion.current_streak,
            longest_streak=completion.longest_streak,
            last_completed=completion.last_completed,
        )


class HabitStatsResponse(ApiModel):
    current_streak: int
    longest_streak: int
    total_completions: int
    completions_in_window: int
    completion_percentage: int
    window_days: int
    last_completed: Optional[datetime] = None

    @classmethod
    def from_stats(cls, stats: HabitStats, window_days: int) -> "HabitStatsResponse":
        return cls(
            current_streak=stats.current_streak,
            longest_streak=stats.longest_streak,
            total_completions=stats.total_completions,
            completions_in_window=stats.completions_in_window,
            completion_percentage=stats.completion_percentage,
            window_days=window_days,
            last_completed=stats.last_completed,
        )


class UserStatsResponse(ApiModel):
    total_habits: int
    total_completions: int
    current_streaks: int
    longest_streak: int
    weekly_completions: int
    average_streak: int

    @classmethod
    def from_stats(cls, stats: UserStats) -> "UserStatsResponse":
        return cls(
            total_habits=stats.total_habits,
            total_completions=stats.total_completions,
            current_streaks=stats.current_streaks,
            longest_streak=stats.longest_streak,
            weekly_completions=stats.weekly_completions,
            average_streak=stats.average_streak,
        )
