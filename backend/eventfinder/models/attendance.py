"""EventGoing ORM model: a user's "going" mark on an event."""
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from eventfinder.database import Base


class EventGoing(Base):
    __tablename__ = "event_going"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="event_going_event_user_unique"),
    )

    going_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event", back_populates="going")
    user = relationship("Profile")
