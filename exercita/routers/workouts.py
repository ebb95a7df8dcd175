import logging
from typing import Annotated, List
from datetime import datetime, timezone
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from exercita.auth import dependencies
from exercita.core.responses import StandardResponse
from exercita.database import get_db
from exercita.models.enums import AdminPermission, DifficultyLevel
from exercita.models.fitness import Exercise, Workout, WorkoutCategory, WorkoutExercise
from exercita.models.user import User
from exercita.models.workout_history import WorkoutCompletion
from exercita.services import progress_service

logger = logging.getLogger(__name__)

router = APIRouter()
DAYS_OF_WEEK = {"sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday"}

can_manage_categories = dependencies.PermissionChecker(AdminPermission.MANAGE_CATEGORIES)
can_manage_exercises = dependencies.PermissionChecker(AdminPermission.MANAGE_EXERCISES)
can_manage_workouts = dependencies.PermissionChecker(AdminPermission.MANAGE_WORKOUTS)


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1)
    color: str | None = None
    description: str | None = None

class CategoryResponse(CategoryCreate):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID

class ExerciseCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    category_id: uuid.UUID | None = None
    difficulty_level: DifficultyLevel | None = None
    video_url: AnyHttpUrl | None = None
    image_url: AnyHttpUrl | None = None

class ExerciseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None = None
    category_id: uuid.UUID | None = None
    difficulty_level: DifficultyLevel | None = None
    video_url: str | None = None
    image_url: str | None = None

class WorkoutExerciseData(BaseModel):
    exercise_id: uuid.UUID
    sets: int = Field(default=3, ge=1)
    reps: int = Field(default=10, ge=1)
    rest_seconds: int | None = Field(default=None, ge=0)
    weight_kg: float | None = Field(default=None, ge=0)
    day_of_week: str | None = None
    order: int = 0

    @field_validator("day_of_week")
    @classmethod
    def validate_day_of_week(cls, value: str | None) -> str | None:
        if value is None:
            return value
        normalized = value.strip().lower()
        if normalized not in DAYS_OF_WEEK:
            raise ValueError("day_of_week must be a weekday name")
        return normalized

class WorkoutExerciseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    exercise_id: uuid.UUID
    sets: int
    reps: int
    rest_seconds: int | None = None
    weight_kg: float | None = None
    day_of_week: str | None = None
    order: int
    exercise: ExerciseResponse | None = None

class WorkoutCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str | None = None
    category_id: uuid.UUID | None = None
    difficulty_level: DifficultyLevel | None = None
    duration_minutes: int | None = Field(default=None, ge=1)
    calories: int | None = Field(default=None, ge=0)
    is_recommended: bool = False
    exercises: List[WorkoutExerciseData] = []

class WorkoutResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None = None
    category_id: uuid.UUID | None = None
    difficulty_level: DifficultyLevel | None = None
    duration_minutes: int | None = None
    calories: int | None = None
    is_recommended: bool
    exercises: List[WorkoutExerciseResponse] = []

class CompletionCreate(BaseModel):
    completed_at: datetime | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=1000)

class CompletionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    workout_id: uuid.UUID
    completed_at: datetime
    duration_minutes: int | None = None
    notes: str | None = None

    @field_validator("completed_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


async def _get_or_404(db: AsyncSession, model, object_id: uuid.UUID, *, label: str):
    obj = await db.get(model, object_id)
    if obj is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


async def _get_workout_or_404(db: AsyncSession, workout_id: uuid.UUID) -> Workout:
    stmt = (
        select(Workout)
        .where(Workout.id == workout_id)
        .options(selectinload(Workout.exercises).selectinload(WorkoutExercise.exercise))
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    workout = result.scalar_one_or_none()
    if not workout:
        raise HTTPException(status_code=404, detail="Workout not found")
    return workout


async def _ensure_exercises_exist(db: AsyncSession, exercises: List[WorkoutExerciseData]) -> None:
    wanted = {item.exercise_id for item in exercises}
    if not wanted:
        return
    result = await db.execute(select(Exercise.id).where(Exercise.id.in_(wanted)))
    missing = wanted - set(result.scalars().all())
    if missing:
        raise HTTPException(status_code=400, detail=f"Unknown exercise ids: {sorted(str(m) for m in missing)}")


def _exercise_fields(data: ExerciseCreate) -> dict:
    fields = data.model_dump()
    for key in ("video_url", "image_url"):
        if fields[key] is not None:
            fields[key] = str(fields[key])
    return fields


def _add_workout_exercises(db: AsyncSession, workout_id: uuid.UUID, exercises: List[WorkoutExerciseData]) -> None:
    for item in exercises:
        db.add(WorkoutExercise(workout_id=workout_id, **item.model_dump()))


# Categories

@router.get("/categories", response_model=StandardResponse[List[CategoryResponse]])
async def list_categories(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    result = await db.execute(select(WorkoutCategory).order_by(WorkoutCategory.name))
    return StandardResponse(data=[CategoryResponse.model_validate(c) for c in result.scalars().all()])


@router.post("/categories", response_model=StandardResponse[CategoryResponse])
async def create_category(
    data: CategoryCreate,
    current_user: Annotated[User, Depends(can_manage_categories)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    category = WorkoutCategory(**data.model_dump())
    db.add(category)
    await db.commit()
    return StandardResponse(data=CategoryResponse.model_validate(category), message="Category created")


@router.put("/categories/{category_id}", response_model=StandardResponse[CategoryResponse])
async def update_category(
    category_id: uuid.UUID,
    data: CategoryCreate,
    current_user: Annotated[User, Depends(can_manage_categories)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    category = await _get_or_404(db, WorkoutCategory, category_id, label="Category")
    for key, value in data.model_dump().items():
        setattr(category, key, value)
    await db.commit()
    return StandardResponse(data=CategoryResponse.model_validate(category), message="Category updated")


@router.delete("/categories/{category_id}", response_model=StandardResponse)
async def delete_category(
    category_id: uuid.UUID,
    current_user: Annotated[User, Depends(can_manage_categories)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete a category; exercises and workouts in it become uncategorised."""
    category = await _get_or_404(db, WorkoutCategory, category_id, label="Category")
    for model in (Exercise, Workout):
        rows = await db.execute(select(model).where(model.category_id == category_id))
        for row in rows.scalars().all():
            row.category_id = None
    await db.delete(category)
    await db.commit()
    return StandardResponse(message="Category deleted")


# Exercises

@router.get("/exercises", response_model=StandardResponse[List[ExerciseResponse]])
async def list_exercises(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    category_id: uuid.UUID | None = Query(None),
    search: str | None = Query(None, max_length=100),
):
    stmt = select(Exercise).order_by(Exercise.name)
    if category_id:
        stmt = stmt.where(Exercise.category_id == category_id)
    if search:
        stmt = stmt.where(Exercise.name.ilike(f"%{search.strip()}%"))
    result = await db.execute(stmt)
    return StandardResponse(data=[ExerciseResponse.model_validate(e) for e in result.scalars().all()])


@router.post("/exercises", response_model=StandardResponse[ExerciseResponse])
async def create_exercise(
    data: ExerciseCreate,
    current_user: Annotated[User, Depends(can_manage_exercises)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create a new exercise in the library."""
    if data.category_id:
        await _get_or_404(db, WorkoutCategory, data.category_id, label="Category")
    exercise = Exercise(**_exercise_fields(data))
    db.add(exercise)
    await db.commit()
    return StandardResponse(data=ExerciseResponse.model_validate(exercise), message="Exercise created")


@router.put("/exercises/{exercise_id}", response_model=StandardResponse[ExerciseResponse])
async def update_exercise(
    exercise_id: uuid.UUID,
    data: ExerciseCreate,
    current_user: Annotated[User, Depends(can_manage_exercises)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    exercise = await _get_or_404(db, Exercise, exercise_id, label="Exercise")
    if data.category_id:
        await _get_or_404(db, WorkoutCategory, data.category_id, label="Category")
    for key, value in _exercise_fields(data).items():
        setattr(exercise, key, value)
    await db.commit()
    return StandardResponse(data=ExerciseResponse.model_validate(exercise), message="Exercise updated")


@router.delete("/exercises/{exercise_id}", response_model=StandardResponse)
async def delete_exercise(
    exercise_id: uuid.UUID,
    current_user: Annotated[User, Depends(can_manage_exercises)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    exercise = await _get_or_404(db, Exercise, exercise_id, label="Exercise")
    in_use = await db.execute(select(WorkoutExercise.id).where(WorkoutExercise.exercise_id == exercise_id).limit(1))
    if in_use.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Exercise is used by a workout. Remove it from the workout first.")
    await db.delete(exercise)
    await db.commit()
    return StandardResponse(message="Exercise deleted")


# Workout history

@router.get("/history", response_model=StandardResponse[List[CompletionResponse]])
async def list_my_history(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Workout completions logged by the current user, newest first."""
    completions = await progress_service.load_completions(current_user.id, db)
    return StandardResponse(data=[CompletionResponse.model_validate(c) for c in completions])


@router.delete("/history/{completion_id}", response_model=StandardResponse)
async def delete_history_entry(
    completion_id: uuid.UUID,
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    completion = await _get_or_404(db, WorkoutCompletion, completion_id, label="History entry")
    if completion.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="You can only delete your own history")
    await db.delete(completion)
    await db.commit()
    return StandardResponse(message="History entry deleted")


# Workouts

@router.get("", response_model=StandardResponse[List[WorkoutResponse]])
async def list_workouts(
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    category_id: uuid.UUID | None = Query(None),
    recommended_only: bool = Query(False),
):
    stmt = (
        select(Workout)
        .options(selectinload(Workout.exercises).selectinload(WorkoutExercise.exercise))
        .order_by(Workout.name)
    )
    if category_id:
        stmt = stmt.where(Workout.category_id == category_id)
    if recommended_only:
        stmt = stmt.where(Workout.is_recommended.is_(True))
    result = await db.execute(stmt)
    return StandardResponse(data=[WorkoutResponse.model_validate(w) for w in result.scalars().all()])


@router.post("", response_model=StandardResponse[WorkoutResponse])
async def create_workout(
    data: WorkoutCreate,
    current_user: Annotated[User, Depends(can_manage_workouts)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    if data.category_id:
        await _get_or_404(db, WorkoutCategory, data.category_id, label="Category")
    await _ensure_exercises_exist(db, data.exercises)

    workout = Workout(**data.model_dump(exclude={"exercises"}))
    db.add(workout)
    await db.flush()
    _add_workout_exercises(db, workout.id, data.exercises)
    await db.commit()
    logger.info("Workout %s created by %s", workout.id, current_user.id)

    workout = await _get_workout_or_404(db, workout.id)
    return StandardResponse(data=WorkoutResponse.model_validate(workout), message="Workout created")


@router.get("/{workout_id}", response_model=StandardResponse[WorkoutResponse])
async def get_workout(
    workout_id: uuid.UUID,
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    workout = await _get_workout_or_404(db, workout_id)
    return StandardResponse(data=WorkoutResponse.model_validate(workout))


@router.put("/{workout_id}", response_model=StandardResponse[WorkoutResponse])
async def update_workout(
    workout_id: uuid.UUID,
    data: WorkoutCreate,
    current_user: Annotated[User, Depends(can_manage_workouts)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Update a workout, replacing its exercise list."""
    workout = await _get_workout_or_404(db, workout_id)
    if data.category_id:
        await _get_or_404(db, WorkoutCategory, data.category_id, label="Category")
    await _ensure_exercises_exist(db, data.exercises)

    for key, value in data.model_dump(exclude={"exercises"}).items():
        setattr(workout, key, value)
    for item in list(workout.exercises):
        await db.delete(item)
    await db.flush()
    _add_workout_exercises(db, workout.id, data.exercises)
    await db.commit()

    workout = await _get_workout_or_404(db, workout_id)
    return StandardResponse(data=WorkoutResponse.model_validate(workout), message="Workout updated")


@router.delete("/{workout_id}", response_model=StandardResponse)
async def delete_workout(
    workout_id: uuid.UUID,
    current_user: Annotated[User, Depends(can_manage_workouts)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete a workout together with its exercise list and completion history."""
    workout = await _get_workout_or_404(db, workout_id)
    await db.execute(delete(WorkoutCompletion).where(WorkoutCompletion.workout_id == workout_id))
    await db.delete(workout)
    await db.commit()
    return StandardResponse(message="Workout deleted")


@router.post("/{workout_id}/complete", response_model=StandardResponse[CompletionResponse])
async def complete_workout(
    workout_id: uuid.UUID,
    data: CompletionCreate,
    current_user: Annotated[User, Depends(dependencies.get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Log a finished session of this workout for the current user."""
    await _get_or_404(db, Workout, workout_id, label="Workout")
    completed_at = data.completed_at or datetime.now(timezone.utc)
    if completed_at.tzinfo is None:
        completed_at = completed_at.replace(tzinfo=timezone.utc)

    completion = WorkoutCompletion(
        user_id=current_user.id,
        workout_id=workout_id,
        completed_at=completed_at.astimezone(timezone.utc),
        duration_minutes=data.duration_minutes,
        notes=data.notes,
    )
    db.add(completion)
    await db.commit()
    return StandardResponse(data=CompletionResponse.model_validate(completion), message="Workout completed")
