"""Pydantic schemas for attendee resolution."""
from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, computed_field


class AttendeeIn(BaseModel):
    name: str
    user_id: Optional[str] = None


class AttendeeOut(BaseModel):
    name: str
    user_id: Optional[str] = None

    @computed_field
    @property
    def is_user(self) -> bool:
        return self.user_id is not None


class CandidateOut(BaseModel):
    user_id: str
    display_name: str
    role: Optional[str] = None


class SuggestRequest(BaseModel):
    text: str
    group_id: Optional[str] = None
    attendees: list[AttendeeIn] = []


class CommitRequest(SuggestRequest):
    pass


class SaveAttendeesRequest(BaseModel):
    attendees: list[AttendeeIn] = []
