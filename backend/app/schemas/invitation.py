"""Pydantic schemas for group invitations."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class InvitationCreate(BaseModel):
    group_id: str
    email: str


class InvitationOut(BaseModel):
    invitation_id: str
    group_id: str
    email: str
    invited_by: str
    status: str
    created_at: datetime
    responded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class MyInvitationOut(BaseModel):
    invitation_id: str
    group_id: str
    group_name: str
    email: str
    invited_by: str
    status: str
    created_at: datetime
