"""EventImage ORM model.

No DB-level quota: the per-uploader cap is a soft limit checked in the service.
"""
import uuid
from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from eventfinder.database import Base


class EventImage(Base):
    __tablename__ = "event_images"

    image_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    image_ref = Column(Text, nullable=False)  # bare storage path or a previously issued URL
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    event = relationship("Event", back_populates="images")
    uploader = relationship("Profile")
