"""Pydantic schemas for Groups and memberships."""
from __future__ import annotations
from datetime import datetime
from pydantic import BaseModel


class GroupCreate(BaseModel):
    name: str


class GroupRename(BaseModel):
    name: str


class GroupOut(BaseModel):
    group_id: str
    name: str
    join_code: str
    created_by: str
    created_at: datetime
    members: list[GroupMemberOut] = []

    model_config = {"from_attributes": True}


class GroupSummaryOut(BaseModel):
    group_id: str
    name: str
    join_code: str
    role: str
    meeting_count: int


class JoinCodeOut(BaseModel):
    group_id: str
    join_code: str


class JoinByCode(BaseModel):
    join_code: str


class GroupMemberAdd(BaseModel):
    user_id: str
    role: str = "member"


class GroupMemberOut(BaseModel):
    membership_id: str
    group_id: str
    user_id: str
    role: str
    joined_at: datetime

    model_config = {"from_attributes": True}


class MemberListItem(GroupMemberOut):
    display_name: str


class GroupDeleted(BaseModel):
    group_id: str
    meetings_ungrouped: int


# Rebuild GroupOut now that GroupMemberOut is defined
GroupOut.model_rebuild()
