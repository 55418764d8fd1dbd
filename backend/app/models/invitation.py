"""GroupInvitation ORM model.

Status moves ``pending`` -> ``accepted`` | ``declined`` | ``cancelled`` exactly
once. Terminal rows are kept. The partial unique index allows a single pending
row per (group, email) while leaving any number of terminal rows.
"""
import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, ForeignKey, Index, Enum as SAEnum, text
from sqlalchemy.orm import relationship
from app.database import Base


class InvitationStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"
    cancelled = "cancelled"


class GroupInvitation(Base):
    __tablename__ = "group_invitations"
    __table_args__ = (
        Index(
            "uq_group_invitations_pending",
            "group_id",
            "email",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    invitation_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    group_id = Column(String(36), ForeignKey("meeting_groups.group_id", ondelete="CASCADE"), nullable=False)
    email = Column(String(320), nullable=False)
    invited_by = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    status = Column(SAEnum(InvitationStatus), nullable=False, default=InvitationStatus.pending)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    responded_at = Column(DateTime(timezone=True), nullable=True)

    group = relationship("Group")
