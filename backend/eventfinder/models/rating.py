"""EventRating ORM model.

The (event_id, user_id) unique constraint is what actually serializes two
concurrent submissions; the service-level check only avoids a round trip.
"""
import uuid
from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from eventfinder.database import Base


class EventRating(Base):
    __tablename__ = "event_ratings"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="event_ratings_event_user_unique"),
        CheckConstraint("rating >= 1.0 AND rating <= 5.0", name="rating_range"),
    )

    rating_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    rating = Column(Numeric(2, 1, asdecimal=False), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event", back_populates="ratings")
