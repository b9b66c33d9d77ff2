"""Profile ORM model: one row per authenticated user."""
import uuid
import enum
from sqlalchemy import Column, String, Text, Boolean, DateTime, Enum as SAEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from eventfinder.database import Base


class Role(str, enum.Enum):
    user = "user"
    organizer = "organizer"
    admin = "admin"


class Profile(Base):
    __tablename__ = "profiles"

    user_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(50), nullable=False, unique=True, index=True)
    role = Column(SAEnum(Role, values_callable=lambda e: [m.value for m in e]), nullable=False, default=Role.user)
    avatar_url = Column(Text, nullable=True)
    region = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    show_location = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    events = relationship("Event", back_populates="organizer", passive_deletes=True)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.admin
