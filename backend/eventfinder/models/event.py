"""Event ORM model."""
import uuid
import enum
from sqlalchemy import Column, String, Text, DateTime, Numeric, ForeignKey, CheckConstraint, Index, Enum as SAEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from eventfinder.database import Base


class EventStatus(str, enum.Enum):
    draft = "draft"
    published = "published"
    cancelled = "cancelled"


class Genre(str, enum.Enum):
    electronic = "electronic"
    rock = "rock"
    pop = "pop"
    hip_hop = "hip-hop"
    techno = "techno"
    house = "house"
    trance = "trance"
    dnb = "dnb"
    dubstep = "dubstep"
    other = "other"


class PriceType(str, enum.Enum):
    free = "free"
    paid = "paid"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="ends_at_after_starts_at"),
        Index("events_region_city_idx", "region", "city"),
    )

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organizer_id = Column(String(36), ForeignKey("profiles.user_id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    lineup = Column(Text, nullable=True)
    poster_url = Column(Text, nullable=True)
    region = Column(String(100), nullable=False)
    city = Column(String(100), nullable=False)
    address = Column(String(500), nullable=False)
    # Organizers may leave coordinates out; ranking falls back to the city table.
    lat = Column(Numeric(10, 6, asdecimal=False), nullable=True)
    lng = Column(Numeric(10, 6, asdecimal=False), nullable=True)
    starts_at = Column(DateTime(timezone=True), nullable=False, index=True)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    genre = Column(SAEnum(Genre, values_callable=_enum_values), nullable=False)
    age_label = Column(String(20), nullable=False, default="18+")
    price_type = Column(SAEnum(PriceType, values_callable=_enum_values), nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=True)
    ticket_url = Column(Text, nullable=True)
    status = Column(SAEnum(EventStatus, values_callable=_enum_values), nullable=False, default=EventStatus.draft, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    organizer = relationship("Profile", back_populates="events")
    going = relationship("EventGoing", back_populates="event", cascade="all, delete-orphan", passive_deletes=True)
    ratings = relationship("EventRating", back_populates="event", cascade="all, delete-orphan", passive_deletes=True)
    comments = relationship("EventComment", back_populates="event", cascade="all, delete-orphan", passive_deletes=True)
    images = relationship("EventImage", back_populates="event", cascade="all, delete-orphan", passive_deletes=True)
