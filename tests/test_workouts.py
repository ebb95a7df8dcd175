from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from exercita.config import settings
from exercita.models.enums import AdminPermission, Role

WORKOUTS = f"{settings.API_V1_STR}/workouts"
ADMIN_PERMISSIONS = f"{settings.API_V1_STR}/admin/admins"


async def _create_exercise(client: AsyncClient, headers, name="Bird Dog", **extra):
    response = await client.post(f"{WORKOUTS}/exercises", json={"name": name, **extra}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]


async def _create_workout(client: AsyncClient, headers, exercise_id, name="Lower Back Routine"):
    response = await client.post(
        WORKOUTS,
        json={
            "name": name,
            "difficulty_level": "beginner",
            "duration_minutes": 20,
            "is_recommended": True,
            "exercises": [
                {"exercise_id": exercise_id, "sets": 3, "reps": 12, "day_of_week": "Monday", "order": 1},
            ],
        },
        headers=headers,
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_super_admin_builds_a_workout(client: AsyncClient, super_admin_headers):
    category = await client.post(
        f"{WORKOUTS}/categories",
        json={"name": "Mobility", "color": "#4ade80"},
        headers=super_admin_headers,
    )
    assert category.status_code == 200
    category_id = category.json()["data"]["id"]

    exercise = await _create_exercise(
        client,
        super_admin_headers,
        category_id=category_id,
        difficulty_level="intermediate",
        video_url="https://videos.example.com/bird-dog",
    )
    assert exercise["video_url"].startswith("https://videos.example.com/bird-dog")
    assert exercise["difficulty_level"] == "intermediate"

    workout = await _create_workout(client, super_admin_headers, exercise["id"])
    assert workout["is_recommended"] is True
    assert len(workout["exercises"]) == 1
    assert workout["exercises"][0]["day_of_week"] == "monday"
    assert workout["exercises"][0]["exercise"]["name"] == "Bird Dog"

    listed = await client.get(WORKOUTS, params={"recommended_only": True}, headers=super_admin_headers)
    assert [w["id"] for w in listed.json()["data"]] == [workout["id"]]


@pytest.mark.asyncio
async def test_workout_with_unknown_exercise_is_rejected(client: AsyncClient, super_admin_headers):
    response = await client.post(
        WORKOUTS,
        json={"name": "Ghost", "exercises": [{"exercise_id": "00000000-0000-0000-0000-000000000001"}]},
        headers=super_admin_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_invalid_day_of_week_is_a_validation_error(client: AsyncClient, super_admin_headers):
    exercise = await _create_exercise(client, super_admin_headers)
    response = await client.post(
        WORKOUTS,
        json={"name": "Odd", "exercises": [{"exercise_id": exercise["id"], "day_of_week": "someday"}]},
        headers=super_admin_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_replaces_exercise_list(client: AsyncClient, super_admin_headers):
    first = await _create_exercise(client, super_admin_headers, name="Plank")
    second = await _create_exercise(client, super_admin_headers, name="Bridge")
    workout = await _create_workout(client, super_admin_headers, first["id"])

    response = await client.put(
        f"{WORKOUTS}/{workout['id']}",
        json={
            "name": "Core Routine",
            "exercises": [
                {"exercise_id": second["id"], "order": 2},
                {"exercise_id": first["id"], "order": 1},
            ],
        },
        headers=super_admin_headers,
    )
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["name"] == "Core Routine"
    assert [item["exercise_id"] for item in data["exercises"]] == [first["id"], second["id"]]


@pytest.mark.asyncio
async def test_exercise_in_use_cannot_be_deleted(client: AsyncClient, super_admin_headers):
    exercise = await _create_exercise(client, super_admin_headers)
    workout = await _create_workout(client, super_admin_headers, exercise["id"])

    blocked = await client.delete(f"{WORKOUTS}/exercises/{exercise['id']}", headers=super_admin_headers)
    assert blocked.status_code == 400

    assert (await client.delete(f"{WORKOUTS}/{workout['id']}", headers=super_admin_headers)).status_code == 200
    assert (await client.delete(f"{WORKOUTS}/exercises/{exercise['id']}", headers=super_admin_headers)).status_code == 200


@pytest.mark.asyncio
async def test_deleting_a_category_uncategorises_its_exercises(client: AsyncClient, super_admin_headers):
    category = await client.post(f"{WORKOUTS}/categories", json={"name": "Strength"}, headers=super_admin_headers)
    category_id = category.json()["data"]["id"]
    exercise = await _create_exercise(client, super_admin_headers, category_id=category_id)

    response = await client.delete(f"{WORKOUTS}/categories/{category_id}", headers=super_admin_headers)
    assert response.status_code == 200

    exercises = await client.get(f"{WORKOUTS}/exercises", headers=super_admin_headers)
    [listed] = [e for e in exercises.json()["data"] if e["id"] == exercise["id"]]
    assert listed["category_id"] is None


@pytest.mark.asyncio
async def test_exercise_search(client: AsyncClient, super_admin_headers):
    await _create_exercise(client, super_admin_headers, name="Wall Squat")
    await _create_exercise(client, super_admin_headers, name="Side Plank")

    response = await client.get(f"{WORKOUTS}/exercises", params={"search": "squat"}, headers=super_admin_headers)
    assert [e["name"] for e in response.json()["data"]] == ["Wall Squat"]


@pytest.mark.asyncio
async def test_patient_cannot_manage_catalog(client: AsyncClient, user_headers):
    response = await client.post(f"{WORKOUTS}/exercises", json={"name": "Nope"}, headers=user_headers)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_workout_access_follows_granted_permissions(
    client: AsyncClient, create_user, login, super_admin_headers
):
    admin = await create_user("physio@test.com", Role.ADMIN, [AdminPermission.MANAGE_EXERCISES])
    headers = await login("physio@test.com")
    exercise = await _create_exercise(client, headers)

    denied = await client.post(WORKOUTS, json={"name": "Routine"}, headers=headers)
    assert denied.status_code == 403

    grant = await client.put(
        f"{ADMIN_PERMISSIONS}/{admin.id}/permissions/manage_workouts", headers=super_admin_headers
    )
    assert grant.status_code == 200
    await _create_workout(client, headers, exercise["id"])

    revoke = await client.delete(
        f"{ADMIN_PERMISSIONS}/{admin.id}/permissions/manage_workouts", headers=super_admin_headers
    )
    assert revoke.status_code == 200
    denied_again = await client.post(WORKOUTS, json={"name": "Routine 2"}, headers=headers)
    assert denied_again.status_code == 403


@pytest.mark.asyncio
async def test_completion_history_and_progress(client: AsyncClient, super_admin_headers, user_headers):
    exercise = await _create_exercise(client, super_admin_headers)
    workout = await _create_workout(client, super_admin_headers, exercise["id"])

    yesterday = datetime.now(timezone.utc) - timedelta(days=1)
    for payload in ({"duration_minutes": 25}, {"completed_at": yesterday.isoformat()}):
        response = await client.post(f"{WORKOUTS}/{workout['id']}/complete", json=payload, headers=user_headers)
        assert response.status_code == 200, response.text

    history = await client.get(f"{WORKOUTS}/history", headers=user_headers)
    entries = history.json()["data"]
    assert len(entries) == 2
    assert entries[0]["duration_minutes"] == 25

    stats = await client.get(f"{settings.API_V1_STR}/progress/stats", params={"tz": "UTC"}, headers=user_headers)
    assert stats.status_code == 200
    data = stats.json()["data"]
    assert data["timezone"] == "UTC"
    assert data["current_streak"] == 2
    assert len(data["completed_dates"]) == 2

    calendar = await client.get(f"{settings.API_V1_STR}/progress/calendar", params={"tz": "UTC"}, headers=user_headers)
    assert calendar.status_code == 200
    days = {cell["day"]: cell["day_class"] for cell in calendar.json()["data"]["days"]}
    assert days[datetime.now(timezone.utc).date().isoformat()] == "completed-today"


@pytest.mark.asyncio
async def test_progress_rejects_unknown_timezone(client: AsyncClient, user_headers):
    response = await client.get(
        f"{settings.API_V1_STR}/progress/stats", params={"tz": "Mars/Olympus_Mons"}, headers=user_headers
    )
    assert response.status_code == 400
    assert response.json()["success"] is False


@pytest.mark.asyncio
async def test_users_cannot_delete_each_others_history(
    client: AsyncClient, create_user, login, super_admin_headers, user_headers
):
    exercise = await _create_exercise(client, super_admin_headers)
    workout = await _create_workout(client, super_admin_headers, exercise["id"])
    logged = await client.post(f"{WORKOUTS}/{workout['id']}/complete", json={}, headers=user_headers)
    entry_id = logged.json()["data"]["id"]

    await create_user("other@test.com")
    other_headers = await login("other@test.com")
    forbidden = await client.delete(f"{WORKOUTS}/history/{entry_id}", headers=other_headers)
    assert forbidden.status_code == 403

    own = await client.delete(f"{WORKOUTS}/history/{entry_id}", headers=user_headers)
    assert own.status_code == 200
