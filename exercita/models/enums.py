from enum import Enum

class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class AdminPermission(str, Enum):
    MANAGE_WORKOUTS = "manage_workouts"
    MANAGE_EXERCISES = "manage_exercises"
    MANAGE_CATEGORIES = "manage_categories"
    MANAGE_PRODUCTS = "manage_products"
    MANAGE_USERS = "manage_users"
    MANAGE_APPOINTMENTS = "manage_appointments"
    MANAGE_PAYMENTS = "manage_payments"
    MANAGE_GYM_PHOTOS = "manage_gym_photos"
    VIEW_ANALYTICS = "view_analytics"


class DifficultyLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
