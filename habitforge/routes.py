"""
HTTP routes for the HabitForge API.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import PlainTextResponse

from habitforge.db import DbClient, HabitFilter, HabitRecord, UserRecord
from habitforge.dependencies import get_db_client, get_habit_service, get_now
from habitforge.errors import HabitNotFound, UserNotFound
from habitforge.schemas import (
    CompletionResponse,
    ErrorResponse,
    HabitCreate,
    HabitResponse,
    HabitStatsResponse,
    HabitUpdate,
    HealthResponse,
    ListHabitsResponse,
    UserCreate,
    UserCreateResponse,
    UserResponse,
    UserStatsResponse,
)
from habitforge.service import HabitService

logger = logging.getLogger(__name__)

meta_router = APIRouter()
router = APIRouter()

NOT_FOUND = {404: {"model": ErrorResponse}}
STORE_ERRORS = {503: {"model": ErrorResponse}}


@meta_router.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "HabitForge Server is running!"


@meta_router.get("/health", response_model=HealthResponse)
def health(now: datetime = Depends(get_now)):
    return HealthResponse(status="OK", timestamp=now)


@router.post(
    "/users",
    response_model=UserCreateResponse,
    status_code=201,
    responses={200: {"model": UserCreateResponse}, **STORE_ERRORS},
)
def create_user(
    payload: UserCreate,
    response: Response,
    db: DbClient = Depends(get_db_client),
    now: datetime = Depends(get_now),
):
    """
    Register a user. An existing email returns the stored user unchanged.
    """
    user, created = db.create_user(
        UserRecord(
            email=payload.email,
            name=payload.name,
            photo_url=payload.photo_url,
            created_at=now,
        )
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return UserCreateResponse(created=created, user=UserResponse.from_record(user))


@router.get(
    "/users/{email}", response_model=UserResponse, responses={**NOT_FOUND}
)
def get_user(email: str, db: DbClient = Depends(get_db_client)):
    user = db.get_user(email)
    if not user:
        raise UserNotFound(email)
    return UserResponse.from_record(user)


@router.get("/users/{email}/stats", response_model=UserStatsResponse)
def get_user_stats(
    email: str,
    service: HabitService = Depends(get_habit_service),
    now: datetime = Depends(get_now),
):
    return UserStatsResponse.from_stats(service.get_user_stats(email, now))


@router.post("/habits", response_model=HabitResponse, status_code=201)
def create_habit(
    payload: HabitCreate,
    db: DbClient = Depends(get_db_client),
    now: datetime = Depends(get_now),
):
    habit = db.create_habit(
        HabitRecord(
            title=payload.title,
            user_email=payload.user_email,
            category=payload.category,
            description=payload.description,
            reminder_time=payload.reminder_time,
            image_url=payload.image_url,
            user_name=payload.user_name,
            is_public=payload.is_public,
            created_at=now,
            updated_at=now,
        )
    )
    logger.info("Created habit %s for %s", habit.habit_id, habit.user_email)
    return HabitResponse.from_record(habit)


@router.get("/habits", response_model=ListHabitsResponse)
def list_habits(
    user_email: Optional[str] = Query(None, alias="userEmail"),
    db: DbClient = Depends(get_db_client),
):
    habits = db.list_habits(HabitFilter(user_email=user_email), order="newest")
    return ListHabitsResponse(habits=[HabitResponse.from_record(h) for h in habits])


@router.get("/habits/public", response_model=ListHabitsResponse)
def list_public_habits(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None, min_length=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    db: DbClient = Depends(get_db_client),
):
    habits = db.list_habits(
        HabitFilter(is_public=True, category=category, search=search),
        order="newest",
        limit=limit,
    )
    return ListHabitsResponse(habits=[HabitResponse.from_record(h) for h in habits])


@router.get(
    "/habits/{habit_id}", response_model=HabitResponse, responses={**NOT_FOUND}
)
def get_habit(habit_id: str, db: DbClient = Depends(get_db_client)):
    habit = db.get_habit(habit_id)
    if not habit:
        raise HabitNotFound(habit_id)
    return HabitResponse.from_record(habit)


@router.patch(
    "/habits/{habit_id}", response_model=HabitResponse, responses={**NOT_FOUND}
)
def update_habit(
    habit_id: str,
    payload: HabitUpdate,
    db: DbClient = Depends(get_db_client),
):
    fields = payload.model_dump(exclude_unset=True)
    habit = db.update_habit(habit_id, fields) if fields else db.get_habit(habit_id)
    if not habit:
        raise HabitNotFound(habit_id)
    return HabitResponse.from_record(habit)


@router.delete("/habits/{habit_id}", status_code=204, responses={**NOT_FOUND})
def delete_habit(habit_id: str, db: DbClient = Depends(get_db_client)):
    if not db.delete_habit(habit_id):
        raise HabitNotFound(habit_id)
    logger.info("Deleted habit %s", habit_id)
    return Response(status_code=204)


@router.post(
    "/habits/{habit_id}/complete",
    response_model=CompletionResponse,
    responses={
        **NOT_FOUND,
        409: {"model": ErrorResponse},
        **STORE_ERRORS,
    },
)
def complete_habit(
    habit_id: str,
    service: HabitService = Depends(get_habit_service),
    now: datetime = Depends(get_now),
):
    """
    Mark a habit complete for today (UTC). A second call on the same day is
    rejected with 409 and leaves the habit unchanged.
    """
    completion = service.record_completion(habit_id, now)
    return CompletionResponse.from_update(completion)


@router.get(
    "/habits/{habit_id}/stats",
    response_model=HabitStatsResponse,
    responses={**NOT_FOUND},
)
def habit_stats(
    habit_id: str,
    service: HabitService = Depends(get_habit_service),
    now: datetime = Depends(get_now),
):
    stats = service.get_habit_stats(habit_id, now)
    return HabitStatsResponse.from_stats(stats, service.window_days)
