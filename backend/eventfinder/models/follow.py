"""OrganizerFollow ORM model."""
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from eventfinder.database import Base


class OrganizerFollow(Base):
    __tablename__ = "organizer_follows"
    __table_args__ = (
        UniqueConstraint("organizer_id", "user_id", name="organizer_follows_organizer_user_unique"),
    )

    follow_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organizer_id = Column(String(36), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
