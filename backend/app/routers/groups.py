"""Group management API routes."""
import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_identity
from app.identity import Identity
from app.schemas.group import (
    GroupCreate,
    GroupDeleted,
    GroupMemberAdd,
    GroupMemberOut,
    GroupOut,
    GroupRename,
    GroupSummaryOut,
    JoinByCode,
    JoinCodeOut,
    MemberListItem,
)
from app.services import group_service, membership_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=GroupOut, status_code=status.HTTP_201_CREATED)
def create_group(payload: GroupCreate, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Create a new group. Creator is automatically added as owner."""
    return group_service.create_group(db, payload.name, identity.user_id)


@router.get("/", response_model=list[GroupSummaryOut])
def list_my_groups(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Groups the caller belongs to, with role and meeting count."""
    return group_service.list_groups_for_user(db, identity.user_id)


@router.post("/join", response_model=GroupMemberOut, status_code=status.HTTP_201_CREATED)
def join_group(payload: JoinByCode, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Join a group with its 6-character code."""
    return membership_service.join_group_by_code(db, payload.join_code, identity.user_id)


@router.delete("/members/{membership_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(membership_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Leave a group, or (owners) remove another member."""
    membership_service.remove_member(db, membership_id, identity.user_id)


@router.get("/{group_id}", response_model=GroupOut)
def get_group(group_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Fetch a single group by ID with members (members only)."""
    group = group_service.get_group(db, group_id)
    group_service.require_member(db, group_id, identity.user_id, "view the group")
    return group


@router.patch("/{group_id}", response_model=GroupOut)
def rename_group(
    group_id: str,
    payload: GroupRename,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Rename a group (owner only)."""
    return group_service.rename_group(db, group_id, payload.name, identity.user_id)


@router.delete("/{group_id}", response_model=GroupDeleted)
def delete_group(group_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Delete a group. Its meetings become ungrouped, not deleted."""
    ungrouped = group_service.delete_group(db, group_id, identity.user_id)
    return GroupDeleted(group_id=group_id, meetings_ungrouped=ungrouped)


@router.get("/{group_id}/join-code", response_model=JoinCodeOut)
def get_join_code(group_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    group_service.get_group(db, group_id)
    group_service.require_member(db, group_id, identity.user_id, "view the join code")
    return JoinCodeOut(group_id=group_id, join_code=group_service.get_join_code(db, group_id))


@router.get("/{group_id}/members", response_model=list[MemberListItem])
def list_members(group_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Members in join order with display names (members only)."""
    group_service.get_group(db, group_id)
    group_service.require_member(db, group_id, identity.user_id, "view the roster")
    return membership_service.list_members(db, group_id)


@router.post("/{group_id}/members", response_model=GroupMemberOut, status_code=status.HTTP_201_CREATED)
def add_member(
    group_id: str,
    payload: GroupMemberAdd,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Add a registered user to a group (owner only)."""
    group_service.require_owner(db, group_id, identity.user_id, "add members")
    return membership_service.add_member(db, group_id, payload.user_id, payload.role)
