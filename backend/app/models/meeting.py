"""Meeting and MeetingAttendee ORM models.

Meetings are owned by the record-keeping side of the application; this backend
only needs the group reference (cleared when a group is deleted) and the ordered
attendee list.
"""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Integer, ForeignKey
from sqlalchemy.orm import relationship
from app.database import Base


class Meeting(Base):
    __tablename__ = "meetings"

    meeting_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    group_id = Column(String(36), ForeignKey("meeting_groups.group_id", ondelete="SET NULL"), nullable=True)
    created_by = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    attendees = relationship(
        "MeetingAttendee",
        back_populates="meeting",
        cascade="all, delete-orphan",
        order_by="MeetingAttendee.position",
    )


class MeetingAttendee(Base):
    __tablename__ = "meeting_attendees"

    attendee_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    meeting_id = Column(String(36), ForeignKey("meetings.meeting_id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    name = Column(String(150), nullable=False)  # snapshot taken when added
    user_id = Column(String(36), ForeignKey("users.user_id"), nullable=True)  # null for guests

    meeting = relationship("Meeting", back_populates="attendees")

    @property
    def is_user(self) -> bool:
        return self.user_id is not None
