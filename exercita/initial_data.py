import asyncio
import logging
from sqlalchemy import select
from exercita.database import AsyncSessionLocal
from exercita.models.admin import AdminPermissionGrant
from exercita.models.enums import AdminPermission, Role
from exercita.models.fitness import WorkoutCategory
from exercita.models.user import User
from exercita.auth.security import get_password_hash

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

USERS = [
    {
        "email": "owner@exercita.app",
        "full_name": "Clinic Owner",
        "role": Role.SUPER_ADMIN,
        "password": "Exercita123!",
    },
    {
        "email": "physio.ana@exercita.app",
        "full_name": "Ana Physio",
        "role": Role.ADMIN,
        "password": "Exercita123!",
        "permissions": [
            AdminPermission.MANAGE_WORKOUTS,
            AdminPermission.MANAGE_EXERCISES,
            AdminPermission.MANAGE_APPOINTMENTS,
        ],
    },
    {
        "email": "patient.joao@exercita.app",
        "full_name": "Joao Patient",
        "role": Role.USER,
        "password": "Exercita123!",
    },
]

CATEGORIES = [
    {"name": "Mobility", "color": "#4ade80"},
    {"name": "Strength", "color": "#f97316"},
    {"name": "Rehabilitation", "color": "#3b82f6"},
]


async def seed_data() -> None:
    logger.info("Seeding data...")
    async with AsyncSessionLocal() as session:
        for user_data in USERS:
            result = await session.execute(select(User).where(User.email == user_data["email"]))
            user = result.scalar_one_or_none()
            if user:
                logger.info("User %s already exists", user_data["email"])
                continue

            user = User(
                email=user_data["email"],
                full_name=user_data["full_name"],
                role=user_data["role"],
                hashed_password=get_password_hash(user_data["password"]),
                is_active=True,
            )
            session.add(user)
            await session.flush()
            for permission in user_data.get("permissions", []):
                session.add(AdminPermissionGrant(admin_id=user.id, permission=permission))
            logger.info("Created user %s (%s)", user.email, user.role.value)

        for category_data in CATEGORIES:
            result = await session.execute(
                select(WorkoutCategory).where(WorkoutCategory.name == category_data["name"])
            )
            if not result.scalar_one_or_none():
                session.add(WorkoutCategory(**category_data))
                logger.info("Created category %s", category_data["name"])

        await session.commit()
    logger.info("Seeding complete.")

if __name__ == "__main__":
    asyncio.run(seed_data())
