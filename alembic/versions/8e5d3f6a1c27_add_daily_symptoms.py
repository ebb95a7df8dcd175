"""add daily symptoms

Revision ID: 8e5d3f6a1c27
Revises: 4c1e7a2b9d05
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "8e5d3f6a1c27"
down_revision: Union[str, Sequence[str], None] = "4c1e7a2b9d05"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "daily_symptoms",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("pain_level", sa.Integer(), nullable=False),
        sa.Column("stiffness_level", sa.Integer(), nullable=False),
        sa.Column("fatigue_level", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("pain_level BETWEEN 0 AND 10", name="ck_daily_symptom_pain"),
        sa.CheckConstraint("stiffness_level BETWEEN 0 AND 10", name="ck_daily_symptom_stiffness"),
        sa.CheckConstraint("fatigue_level BETWEEN 0 AND 10", name="ck_daily_symptom_fatigue"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "date", name="uq_daily_symptom_user_date"),
    )
    op.create_index("ix_daily_symptoms_user_id", "daily_symptoms", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_daily_symptoms_user_id", table_name="daily_symptoms")
    op.drop_table("daily_symptoms")
