"""User ORM model."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime
from app.database import Base


class User(Base):
    __tablename__ = "users"

    user_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    display_name = Column(String(100), nullable=False, default="")
    email = Column(String(320), nullable=False, unique=True)  # stored trimmed + lower-cased
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
