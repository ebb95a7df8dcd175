import uuid
from datetime import date, datetime, timezone
from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from exercita.database import Base


class DailySymptom(Base):
    """A patient's self-reported pain, stiffness and fatigue for one local day, each 0-10."""
    __tablename__ = "daily_symptoms"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_daily_symptom_user_date"),
        CheckConstraint("pain_level BETWEEN 0 AND 10", name="ck_daily_symptom_pain"),
        CheckConstraint("stiffness_level BETWEEN 0 AND 10", name="ck_daily_symptom_stiffness"),
        CheckConstraint("fatigue_level BETWEEN 0 AND 10", name="ck_daily_symptom_fatigue"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    day: Mapped[date] = mapped_column("date", Date, nullable=False)
    pain_level: Mapped[int] = mapped_column(Integer, nullable=False)
    stiffness_level: Mapped[int] = mapped_column(Integer, nullable=False)
    fatigue_level: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user = relationship("User")
