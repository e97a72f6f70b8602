from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    Column, Integer, String, Text,
    DateTime, ForeignKey, Index, CheckConstraint, func,
)
from sqlalchemy.orm import relationship
from unievent.core.database import Base


class EventStatus(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"   # terminal, only set by an explicit cancellation


class Event(Base):
    __tablename__ = "events"

    __table_args__ = (
        CheckConstraint(
            "status IN ('upcoming', 'ongoing', 'completed', 'cancelled')",
            name="ck_events_status",
        ),
        CheckConstraint(
            "(status = 'completed') = (completed_at IS NOT NULL)",
            name="ck_events_completed_at",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    category = Column(String(30), nullable=True)
    max_participants = Column(Integer, nullable=False, default=50)

    organizer_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    scheduled_at = Column(DateTime(timezone=True), nullable=False)

    # lifecycle, written by the status scheduler
    status = Column(String(20), nullable=False, default=EventStatus.UPCOMING.value)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    last_status_update = Column(DateTime(timezone=True), nullable=True)
    status_update_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    organizer = relationship("User")

    def __repr__(self) -> str:
        return f"<Event id={self.id} status={self.status} scheduled_at={self.scheduled_at}>"


Index("ix_events_scheduled_at", Event.scheduled_at)
Index("ix_events_status", Event.status)
Index("ix_events_last_status_update", Event.last_status_update)
