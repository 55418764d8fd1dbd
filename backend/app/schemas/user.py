"""Pydantic schemas for Users."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator


class UserCreate(BaseModel):
    display_name: str
    email: str

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class UserUpdate(BaseModel):
    display_name: Optional[str] = None


class UserOut(BaseModel):
    user_id: str
    display_name: str
    email: str
    created_at: datetime

    model_config = {"from_attributes": True}
