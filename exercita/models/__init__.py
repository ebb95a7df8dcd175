from exercita.models.admin import AdminPermissionGrant
from exercita.models.appointment import Appointment
from exercita.models.fitness import Exercise, Workout, WorkoutCategory, WorkoutExercise
from exercita.models.symptom import DailySymptom
from exercita.models.user import User
from exercita.models.workout_history import WorkoutCompletion


__all__ = [
    "AdminPermissionGrant",
    "Appointment",
    "DailySymptom",
    "Exercise",
    "Workout",
    "WorkoutCategory",
    "WorkoutExercise",
    "User",
    "WorkoutCompletion",
]
